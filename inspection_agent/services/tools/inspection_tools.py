"""Local tools for the scaffolding inspection workflow."""
import logging
from typing import Any, Dict, List

from inspection_agent.services.equipment.repository import EquipmentRepository
from inspection_agent.services.inspection.validator import InspectionValidator
from inspection_agent.services.tools.base import Tool, ToolDescriptor, ToolExecutionContext

logger = logging.getLogger(__name__)


class GetEquipmentInfoTool(Tool):
    """Look up one piece of equipment by ID."""

    def __init__(self, equipment_repository: EquipmentRepository):
        self.equipment_repository = equipment_repository

    @property
    def descriptor(self) -> ToolDescriptor:
        return ToolDescriptor(
            name="get_equipment_info",
            description=(
                "Look up equipment information from the registry by equipment ID. Use this to "
                "verify equipment exists and get its details before conducting an inspection."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "equipment_id": {
                        "type": "string",
                        "description": 'Equipment ID to look up (e.g., "SCAFF-001")',
                    }
                },
                "required": ["equipment_id"],
            },
        )

    async def execute(self, arguments: Dict[str, Any], context: ToolExecutionContext) -> Dict[str, Any]:
        equipment_id = arguments.get("equipment_id")
        equipment = await self.equipment_repository.lookup_by_id(
            equipment_id if isinstance(equipment_id, str) else None
        )
        if not equipment:
            return {
                "success": False,
                "error": "Equipment not found",
                "message": f'Equipment ID "{equipment_id}" not found in registry. Please verify the equipment ID.',
            }
        return {
            "success": True,
            "equipment": equipment.model_dump(),
            "message": f"Found equipment: {equipment.type} at {equipment.location}",
        }


class SearchEquipmentByLocationTool(Tool):
    """Find equipment whose location contains the given text."""

    def __init__(self, equipment_repository: EquipmentRepository):
        self.equipment_repository = equipment_repository

    @property
    def descriptor(self) -> ToolDescriptor:
        return ToolDescriptor(
            name="search_equipment_by_location",
            description=(
                "Search for equipment by location name. Useful when the inspector knows the "
                "location but not the specific equipment ID."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "location": {
                        "type": "string",
                        "description": 'Location to search for (e.g., "Warehouse A", "Building B")',
                    }
                },
                "required": ["location"],
            },
        )

    async def execute(self, arguments: Dict[str, Any], context: ToolExecutionContext) -> Dict[str, Any]:
        location = arguments.get("location") or ""
        results = await self.equipment_repository.search_by_location(str(location))
        if not results:
            return {
                "success": False,
                "message": f'No equipment found at location "{location}"',
            }
        return {
            "success": True,
            "equipment": [item.model_dump() for item in results],
            "count": len(results),
            "message": f'Found {len(results)} equipment item(s) at "{location}"',
        }


class SaveCallerNameTool(Tool):
    """Remember the caller's name against their phone number."""

    @property
    def descriptor(self) -> ToolDescriptor:
        return ToolDescriptor(
            name="save_caller_name",
            description=(
                "Save the caller's name associated with their phone number for future calls. "
                "Call this when you first learn the inspector's name."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "caller_name": {
                        "type": "string",
                        "description": "The name of the caller/inspector",
                    }
                },
                "required": ["caller_name"],
            },
        )

    async def execute(self, arguments: Dict[str, Any], context: ToolExecutionContext) -> Dict[str, Any]:
        if not context.caller_identity:
            return {
                "success": False,
                "error": "No phone number available",
                "message": "Cannot save caller name without phone number",
            }

        caller_name = arguments.get("caller_name")
        if not isinstance(caller_name, str) or not caller_name.strip():
            return {
                "success": False,
                "error": "Caller name is required",
                "message": "Please provide a valid name",
            }
        caller_name = caller_name.strip()

        try:
            await context.callers.remember_caller(context.caller_identity, caller_name)
        except Exception as e:
            logger.error(
                f"[TOOLS] Error saving caller name - StreamSid: {context.call_id}, "
                f"Error: {type(e).__name__}: {e}",
                exc_info=True,
            )
            return {
                "success": False,
                "error": "Database error",
                "message": "Failed to save caller name",
            }

        context.remember_caller_name(caller_name)
        logger.info(f"[TOOLS] Saved caller name - StreamSid: {context.call_id}, Phone: {context.caller_identity}")
        return {
            "success": True,
            "message": "Name saved successfully",
            "caller_name": caller_name,
        }


class SubmitInspectionDataTool(Tool):
    """Validate and record the structured inspection result."""

    def __init__(self, validator: InspectionValidator):
        self.validator = validator

    @property
    def descriptor(self) -> ToolDescriptor:
        return ToolDescriptor(
            name="submit_inspection_data",
            description=(
                "Submit structured scaffolding inspection data in JSON format. Must be called "
                "before ending the call. The equipment_id must reference a valid equipment ID "
                "from the registry."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "equipment_id": {
                        "type": "string",
                        "description": (
                            'Equipment ID from the registry (e.g., "SCAFF-001"). Must be '
                            "validated using get_equipment_info first."
                        ),
                    },
                    "inspector_name": {
                        "type": "string",
                        "description": "Name of the person conducting the inspection",
                    },
                    "location": {
                        "type": "string",
                        "description": "Location or site of the scaffolding",
                    },
                    "inspection_result": {
                        "type": "string",
                        "enum": ["PASS", "FAIL"],
                        "description": 'Overall inspection result - must be exactly "PASS" or "FAIL"',
                    },
                    "comments": {
                        "type": "string",
                        "description": "Any additional comments, concerns, or observations from the inspection",
                    },
                },
                "required": ["equipment_id", "inspector_name", "location", "inspection_result"],
            },
        )

    async def execute(self, arguments: Dict[str, Any], context: ToolExecutionContext) -> Dict[str, Any]:
        validation = await self.validator.validate(arguments)
        if not validation.valid:
            logger.info(
                f"[TOOLS] Inspection data rejected - StreamSid: {context.call_id}, "
                f"Errors: {validation.errors}"
            )
            return {
                "success": False,
                "error": "Validation failed",
                "details": validation.errors,
                "message": "Please provide all required fields: " + ", ".join(validation.errors),
            }

        try:
            await context.inspections.save_structured_data(
                context.call_id, arguments, context.caller_identity
            )
        except Exception as e:
            logger.error(
                f"[TOOLS] Database save error - StreamSid: {context.call_id}, "
                f"Error: {type(e).__name__}: {e}",
                exc_info=True,
            )
            return {
                "success": False,
                "error": "Database error",
                "message": "Failed to save inspection data. Please try again.",
            }

        context.mark_submitted(arguments)
        logger.info(
            f"[TOOLS] Inspection data submitted - StreamSid: {context.call_id}, "
            f"Equipment: {arguments.get('equipment_id')}, Result: {arguments.get('inspection_result')}"
        )
        return {
            "success": True,
            "message": "Inspection data successfully recorded",
            "data": arguments,
        }


class EndCallTool(Tool):
    """Hang up, but only once the inspection has been recorded."""

    @property
    def descriptor(self) -> ToolDescriptor:
        return ToolDescriptor(
            name="end_call",
            description=(
                "End the phone call. Can only be called AFTER successfully submitting "
                "inspection data via submit_inspection_data."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "reason": {
                        "type": "string",
                        "description": (
                            'Brief reason for ending the call (e.g., "inspection_complete", '
                            '"user_requested")'
                        ),
                    }
                },
                "required": ["reason"],
            },
        )

    async def execute(self, arguments: Dict[str, Any], context: ToolExecutionContext) -> Dict[str, Any]:
        reason = arguments.get("reason") or "unknown"
        if not context.request_termination(reason):
            logger.info(f"[TOOLS] End call refused before submission - StreamSid: {context.call_id}")
            return {
                "success": False,
                "error": "Cannot end call without submitting inspection data first",
                "message": "You must call submit_inspection_data before ending the call",
            }
        return {
            "success": True,
            "message": "Call will be ended",
            "reason": reason,
        }


def build_inspection_tools(
    equipment_repository: EquipmentRepository, validator: InspectionValidator
) -> List[Tool]:
    """The local tool set, in the order it is advertised."""
    return [
        GetEquipmentInfoTool(equipment_repository),
        SearchEquipmentByLocationTool(equipment_repository),
        SaveCallerNameTool(),
        SubmitInspectionDataTool(validator),
        EndCallTool(),
    ]
