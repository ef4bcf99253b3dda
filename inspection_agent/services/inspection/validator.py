"""Inspection validation service."""
from typing import Any, Dict, List
from inspection_agent.services.equipment.repository import EquipmentRepository
from inspection_agent.services.inspection.models import InspectionResult, ValidationResult


def _is_blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


class InspectionValidator:
    """Service for validating submitted inspection data."""

    def __init__(self, equipment_repository: EquipmentRepository):
        self.equipment_repository = equipment_repository

    async def validate(self, data: Dict[str, Any]) -> ValidationResult:
        """
        Check field presence and cross-reference the equipment registry.

        Every problem found is reported; validation does not stop at the
        first error.

        Returns:
            ValidationResult with the aggregated error messages
        """
        errors: List[str] = []

        equipment_id = data.get("equipment_id")
        if _is_blank(equipment_id):
            errors.append("equipment_id is required")
        elif not await self.equipment_repository.exists(equipment_id):
            errors.append(f'equipment_id "{equipment_id}" not found in registry')

        if _is_blank(data.get("inspector_name")):
            errors.append("inspector_name is required")

        if _is_blank(data.get("location")):
            errors.append("location is required")

        inspection_result = data.get("inspection_result")
        if not inspection_result:
            errors.append("inspection_result is required")
        elif inspection_result not in (InspectionResult.PASS.value, InspectionResult.FAIL.value):
            errors.append('inspection_result must be exactly "PASS" or "FAIL"')

        return ValidationResult(valid=not errors, errors=errors)
