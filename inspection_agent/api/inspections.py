"""Inspection record API endpoints."""
import logging
from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Request, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel

from inspection_agent.api.auth import require_auth
from inspection_agent.db.database import get_db
from inspection_agent.services.inspection.models import InspectionResult
from inspection_agent.services.persistence.inspections import InspectionPersistenceService

router = APIRouter(dependencies=[Depends(require_auth)])
logger = logging.getLogger(__name__)


class InspectionResponse(BaseModel):
    """Inspection response model."""
    id: int
    stream_sid: str
    phone_number: Optional[str] = None
    call_started_at: Optional[datetime] = None
    call_ended_at: Optional[datetime] = None
    call_duration_seconds: Optional[int] = None
    equipment_id: Optional[str] = None
    inspector_name: Optional[str] = None
    location: Optional[str] = None
    inspection_result: Optional[str] = None
    comments: Optional[str] = None
    submitted_at: Optional[datetime] = None
    status: str

    class Config:
        from_attributes = True


class InspectionListResponse(BaseModel):
    """Inspection list response model."""
    inspections: List[InspectionResponse]
    count: int
    result: Optional[str] = None


class InspectionStats(BaseModel):
    """Aggregate statistics over completed inspections."""
    total: int
    passed: int
    failed: int
    unique_inspectors: int
    unique_locations: int


class InspectionStatsResponse(BaseModel):
    """Inspection statistics response model."""
    stats: InspectionStats


def _to_list_response(inspections, result: Optional[str] = None) -> InspectionListResponse:
    return InspectionListResponse(
        inspections=[InspectionResponse.model_validate(i) for i in inspections],
        count=len(inspections),
        result=result,
    )


@router.get("/inspections", response_model=InspectionListResponse)
async def list_inspections(
    request: Request,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
):
    """Get the most recent inspections."""
    logger.info(
        f"[INSPECTIONS] List requested - limit: {limit}, "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )
    inspections = await InspectionPersistenceService(db).list_inspections(limit=limit)
    logger.debug(f"[INSPECTIONS] Found {len(inspections)} inspections")
    return _to_list_response(inspections)


@router.get("/inspections/stats", response_model=InspectionStatsResponse)
async def get_inspection_stats(db: AsyncSession = Depends(get_db)):
    """Get statistics over completed inspections."""
    stats = await InspectionPersistenceService(db).get_stats()
    return InspectionStatsResponse(stats=InspectionStats(**stats))


@router.get("/inspections/equipment/{equipment_id}", response_model=InspectionListResponse)
async def get_inspections_by_equipment(
    equipment_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Get every inspection recorded against one piece of equipment."""
    inspections = await InspectionPersistenceService(db).get_by_equipment_id(equipment_id)
    return _to_list_response(inspections)


@router.get("/inspections/result/{result}", response_model=InspectionListResponse)
async def get_inspections_by_result(
    result: str,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
):
    """Filter inspections by PASS/FAIL."""
    normalized = result.upper()
    if normalized not in (InspectionResult.PASS.value, InspectionResult.FAIL.value):
        raise HTTPException(status_code=400, detail="Result must be PASS or FAIL")
    inspections = await InspectionPersistenceService(db).get_by_result(normalized, limit=limit)
    return _to_list_response(inspections, result=normalized)


@router.get("/inspections/location/{location}", response_model=InspectionListResponse)
async def get_inspections_by_location(
    location: str,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
):
    """Search inspections by location text."""
    inspections = await InspectionPersistenceService(db).search_by_location(location, limit=limit)
    return _to_list_response(inspections)
