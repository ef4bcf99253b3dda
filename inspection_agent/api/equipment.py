"""Equipment registry API endpoints."""
import logging
from typing import Dict, List, Optional
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from inspection_agent.api.auth import require_auth
from inspection_agent.core.dependencies import get_equipment_repository
from inspection_agent.services.equipment.base import Equipment
from inspection_agent.services.equipment.repository import EquipmentRepository

router = APIRouter(dependencies=[Depends(require_auth)])
logger = logging.getLogger(__name__)


class EquipmentListResponse(BaseModel):
    """Equipment list response model."""
    equipment: List[Equipment]
    count: int


class EquipmentDetailResponse(BaseModel):
    """Single equipment response model."""
    equipment: Equipment


class EquipmentStats(BaseModel):
    """Equipment registry counts."""
    total: int
    by_status: Dict[str, int] = {}
    by_type: Dict[str, int] = {}


class EquipmentStatsResponse(BaseModel):
    """Equipment statistics response model."""
    stats: EquipmentStats


@router.get("/equipment", response_model=EquipmentListResponse)
async def list_equipment(
    status: Optional[str] = None,
    equipment_repository: EquipmentRepository = Depends(get_equipment_repository),
):
    """Get all registered equipment, optionally filtered by status."""
    if status:
        items = await equipment_repository.get_by_status(status)
    else:
        items = await equipment_repository.get_all()
    return EquipmentListResponse(equipment=items, count=len(items))


@router.get("/equipment/stats", response_model=EquipmentStatsResponse)
async def get_equipment_stats(
    equipment_repository: EquipmentRepository = Depends(get_equipment_repository),
):
    """Get equipment counts by status and type."""
    stats = await equipment_repository.get_stats()
    return EquipmentStatsResponse(stats=EquipmentStats(**stats))


@router.get("/equipment/location/{location}", response_model=EquipmentListResponse)
async def search_equipment_by_location(
    location: str,
    equipment_repository: EquipmentRepository = Depends(get_equipment_repository),
):
    """Search equipment by location text."""
    items = await equipment_repository.search_by_location(location)
    return EquipmentListResponse(equipment=items, count=len(items))


@router.get("/equipment/{equipment_id}", response_model=EquipmentDetailResponse)
async def get_equipment(
    equipment_id: str,
    equipment_repository: EquipmentRepository = Depends(get_equipment_repository),
):
    """Get one piece of equipment by ID."""
    item = await equipment_repository.lookup_by_id(equipment_id)
    if not item:
        logger.debug(f"[EQUIPMENT] Equipment not found: {equipment_id}")
        raise HTTPException(status_code=404, detail="Equipment not found")
    return EquipmentDetailResponse(equipment=item)
