"""Equipment repository."""
from collections import Counter
from typing import Any, Dict, List, Optional
from inspection_agent.services.equipment.base import Equipment, EquipmentProvider


class EquipmentRepository:
    """Repository for equipment registry lookups."""

    def __init__(self, provider: EquipmentProvider):
        self.provider = provider

    async def get_all(self) -> List[Equipment]:
        """Get all equipment."""
        return await self.provider.get_all()

    async def lookup_by_id(self, equipment_id: Optional[str]) -> Optional[Equipment]:
        """Get equipment by ID."""
        if not equipment_id or not equipment_id.strip():
            return None
        return await self.provider.get_by_id(equipment_id)

    async def exists(self, equipment_id: Optional[str]) -> bool:
        """Check if an equipment ID is registered."""
        return await self.lookup_by_id(equipment_id) is not None

    async def search_by_location(self, location_query: str) -> List[Equipment]:
        """Search equipment by location text."""
        return await self.provider.search_by_location(location_query)

    async def get_by_status(self, status: str) -> List[Equipment]:
        """Get equipment with the given status."""
        items = await self.provider.get_all()
        return [item for item in items if item.status == status]

    async def get_stats(self) -> Dict[str, Any]:
        """Count equipment in total, by status and by type."""
        items = await self.provider.get_all()
        return {
            "total": len(items),
            "by_status": dict(Counter(item.status for item in items)),
            "by_type": dict(Counter(item.type for item in items)),
        }
