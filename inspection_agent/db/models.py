"""Database models."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class Inspection(Base):
    """One inspection call and the structured data submitted during it."""

    __tablename__ = "inspections"

    id = Column(Integer, primary_key=True, index=True)

    # Call metadata
    stream_sid = Column(String, unique=True, index=True, nullable=False)
    phone_number = Column(String, nullable=True, index=True)
    call_started_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    call_ended_at = Column(DateTime, nullable=True)
    call_duration_seconds = Column(Integer, nullable=True)

    # Inspection data
    equipment_id = Column(String, nullable=True, index=True)
    inspector_name = Column(String, nullable=True, index=True)
    location = Column(String, nullable=True, index=True)
    inspection_result = Column(String, nullable=True, index=True)  # PASS, FAIL
    comments = Column(Text, nullable=True)

    submitted_at = Column(DateTime, nullable=True)
    status = Column(String, default="in_progress", nullable=False)  # in_progress, completed, failed


class Caller(Base):
    """Known caller, keyed by phone number."""

    __tablename__ = "callers"

    id = Column(Integer, primary_key=True, index=True)
    phone_number = Column(String, unique=True, index=True, nullable=False)
    caller_name = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)
