"""Inspection models."""
from enum import Enum
from typing import List
from pydantic import BaseModel


class InspectionResult(str, Enum):
    """Overall inspection outcome."""

    PASS = "PASS"
    FAIL = "FAIL"


class ValidationResult(BaseModel):
    """Outcome of validating submitted inspection data."""

    valid: bool
    errors: List[str] = []
