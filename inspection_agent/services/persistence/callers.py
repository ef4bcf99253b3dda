"""Caller persistence service."""
from datetime import datetime
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from inspection_agent.db.models import Caller


class CallerPersistenceService:
    """Service for remembering callers between calls."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def lookup_caller(self, phone_number: Optional[str]) -> Optional[Caller]:
        """Get a caller by phone number."""
        if not phone_number:
            return None
        result = await self.db.execute(
            select(Caller).where(Caller.phone_number == phone_number)
        )
        return result.scalar_one_or_none()

    async def remember_caller(self, phone_number: str, caller_name: str) -> Caller:
        """Create or update the name stored for a phone number."""
        caller = await self.lookup_caller(phone_number)
        if caller:
            caller.caller_name = caller_name
            caller.updated_at = datetime.utcnow()
        else:
            caller = Caller(phone_number=phone_number, caller_name=caller_name)
            self.db.add(caller)
        await self.db.commit()
        await self.db.refresh(caller)
        return caller
