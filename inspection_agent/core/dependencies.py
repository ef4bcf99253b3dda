"""FastAPI dependencies."""
from fastapi.requests import HTTPConnection

from inspection_agent.services.call_session.models import SessionConfig
from inspection_agent.services.equipment.in_memory_registry import InMemoryEquipmentProvider
from inspection_agent.services.equipment.repository import EquipmentRepository
from inspection_agent.services.inspection.validator import InspectionValidator
from inspection_agent.services.tools.bridge import ExternalToolBridge
from inspection_agent.services.tools.inspection_tools import build_inspection_tools
from inspection_agent.services.tools.registry import ToolRegistry


def get_equipment_repository() -> EquipmentRepository:
    """Get equipment repository instance."""
    return EquipmentRepository(provider=InMemoryEquipmentProvider())


def build_tool_registry(
    equipment_repository: EquipmentRepository, bridge: ExternalToolBridge
) -> ToolRegistry:
    """Assemble local tools and external providers into one registry."""
    validator = InspectionValidator(equipment_repository)
    return ToolRegistry(build_inspection_tools(equipment_repository, validator), bridge)


def get_tool_bridge(connection: HTTPConnection) -> ExternalToolBridge:
    """Get the tool provider bridge opened at startup."""
    return connection.app.state.tool_bridge


def get_tool_registry(connection: HTTPConnection) -> ToolRegistry:
    """Get the tool registry built at startup."""
    return connection.app.state.tool_registry


def get_session_config(connection: HTTPConnection) -> SessionConfig:
    """Get the backend session configuration loaded at startup."""
    return connection.app.state.session_config
