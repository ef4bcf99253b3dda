"""Equipment provider interface."""
from abc import ABC, abstractmethod
from typing import List, Optional
from pydantic import BaseModel


class Equipment(BaseModel):
    """Registered scaffolding equipment."""

    id: str
    type: str
    location: str
    height: Optional[str] = None
    last_inspection: Optional[str] = None
    status: str = "active"  # active, maintenance
    notes: Optional[str] = None


class EquipmentProvider(ABC):
    """Abstract base class for equipment registry providers."""

    @abstractmethod
    async def get_all(self) -> List[Equipment]:
        """Get every registered item."""
        pass

    @abstractmethod
    async def get_by_id(self, equipment_id: str) -> Optional[Equipment]:
        """Get an item by its registry ID."""
        pass

    @abstractmethod
    async def search_by_location(self, location_query: str) -> List[Equipment]:
        """Get items whose location contains the query text."""
        pass
