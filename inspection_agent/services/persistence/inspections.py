"""Inspection persistence service."""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc, func, case, distinct

from inspection_agent.db.models import Inspection

logger = logging.getLogger(__name__)


class InspectionPersistenceService:
    """Service for persisting inspection calls and their submitted data."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def begin_call(
        self, stream_sid: str, phone_number: Optional[str] = None
    ) -> Inspection:
        """Create the inspection record for a call or return the existing one."""
        existing = await self.get_by_stream_sid(stream_sid)
        if existing:
            return existing

        inspection = Inspection(
            stream_sid=stream_sid,
            phone_number=phone_number,
            status="in_progress",
        )
        self.db.add(inspection)
        await self.db.commit()
        await self.db.refresh(inspection)
        return inspection

    async def get_by_stream_sid(self, stream_sid: str) -> Optional[Inspection]:
        """Get inspection by media stream SID."""
        result = await self.db.execute(
            select(Inspection).where(Inspection.stream_sid == stream_sid)
        )
        return result.scalar_one_or_none()

    async def save_structured_data(
        self, stream_sid: str, data: Dict[str, Any], phone_number: Optional[str] = None
    ) -> Inspection:
        """
        Store submitted inspection data on the call's record.

        The record is created if the call has none yet. A later submission on
        the same call overwrites the earlier one, including its submission
        timestamp.
        """
        if not stream_sid:
            raise ValueError("Cannot save inspection data before the call has a stream")
        inspection = await self.begin_call(stream_sid, phone_number)

        inspection.equipment_id = data["equipment_id"].strip().upper()
        inspection.inspector_name = data["inspector_name"].strip()
        inspection.location = data["location"].strip()
        inspection.inspection_result = data["inspection_result"]
        inspection.comments = data.get("comments") or None
        inspection.submitted_at = datetime.utcnow()
        inspection.status = "completed"
        await self.db.commit()
        await self.db.refresh(inspection)
        return inspection

    async def end_call(self, stream_sid: str) -> Optional[Inspection]:
        """Record call end time and duration."""
        inspection = await self.get_by_stream_sid(stream_sid)
        if not inspection:
            return None

        ended_at = datetime.utcnow()
        inspection.call_ended_at = ended_at
        inspection.call_duration_seconds = max(
            0, int((ended_at - inspection.call_started_at).total_seconds())
        )
        # Never leave a finished call as in_progress
        if inspection.submitted_at is None:
            inspection.status = "failed"
        await self.db.commit()
        await self.db.refresh(inspection)
        return inspection

    async def list_inspections(self, limit: int = 100) -> List[Inspection]:
        """Get most recent inspections first."""
        result = await self.db.execute(
            select(Inspection)
            .order_by(desc(Inspection.call_started_at), desc(Inspection.id))
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_by_equipment_id(self, equipment_id: str) -> List[Inspection]:
        """Get all inspections recorded against one piece of equipment."""
        result = await self.db.execute(
            select(Inspection)
            .where(Inspection.equipment_id == equipment_id.strip().upper())
            .order_by(desc(Inspection.call_started_at), desc(Inspection.id))
        )
        return list(result.scalars().all())

    async def get_by_result(self, inspection_result: str, limit: int = 100) -> List[Inspection]:
        """Get inspections with the given PASS/FAIL result."""
        result = await self.db.execute(
            select(Inspection)
            .where(Inspection.inspection_result == inspection_result)
            .order_by(desc(Inspection.call_started_at), desc(Inspection.id))
            .limit(limit)
        )
        return list(result.scalars().all())

    async def search_by_location(self, location: str, limit: int = 100) -> List[Inspection]:
        """Get inspections whose location contains the given text."""
        result = await self.db.execute(
            select(Inspection)
            .where(Inspection.location.ilike(f"%{location}%"))
            .order_by(desc(Inspection.call_started_at), desc(Inspection.id))
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_stats(self) -> Dict[str, int]:
        """Aggregate statistics over completed inspections."""
        result = await self.db.execute(
            select(
                func.count(Inspection.id),
                func.sum(case((Inspection.inspection_result == "PASS", 1), else_=0)),
                func.sum(case((Inspection.inspection_result == "FAIL", 1), else_=0)),
                func.count(distinct(Inspection.inspector_name)),
                func.count(distinct(Inspection.location)),
            ).where(Inspection.status == "completed")
        )
        total, passed, failed, inspectors, locations = result.one()
        return {
            "total": total or 0,
            "passed": passed or 0,
            "failed": failed or 0,
            "unique_inspectors": inspectors or 0,
            "unique_locations": locations or 0,
        }
