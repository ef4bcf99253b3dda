"""In-memory equipment provider."""
import yaml
from pathlib import Path
from typing import List, Optional
from inspection_agent.services.equipment.base import Equipment, EquipmentProvider


class InMemoryEquipmentProvider(EquipmentProvider):
    """In-memory equipment registry using YAML configuration."""

    def __init__(self, registry_file: Optional[str] = None):
        """Initialize with optional registry file path."""
        if registry_file is None:
            registry_file = Path(__file__).parent / "data" / "equipment.yaml"
        self.registry_file = Path(registry_file)
        self._items: Optional[List[Equipment]] = None

    async def _load_items(self) -> List[Equipment]:
        """Load the registry from the YAML file."""
        if self._items is None:
            if not self.registry_file.exists():
                self._items = []
            else:
                with open(self.registry_file, "r") as f:
                    data = yaml.safe_load(f) or {}
                    self._items = [
                        Equipment(**item) for item in data.get("items", [])
                    ]
        return self._items

    async def get_all(self) -> List[Equipment]:
        """Get every registered item."""
        return list(await self._load_items())

    async def get_by_id(self, equipment_id: str) -> Optional[Equipment]:
        """Get an item by ID, ignoring case and surrounding whitespace."""
        items = await self._load_items()
        normalized_id = equipment_id.strip().upper()
        for item in items:
            if item.id.upper() == normalized_id:
                return item
        return None

    async def search_by_location(self, location_query: str) -> List[Equipment]:
        """Get items whose location contains the query, case-insensitively."""
        items = await self._load_items()
        query = location_query.lower()
        return [item for item in items if query in item.location.lower()]
