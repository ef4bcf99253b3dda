"""Health and status endpoints."""
import logging
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from inspection_agent.core.dependencies import get_equipment_repository, get_tool_bridge
from inspection_agent.db.database import get_db
from inspection_agent.services.call_session.manager import active_call_count
from inspection_agent.services.equipment.repository import EquipmentRepository
from inspection_agent.services.persistence.inspections import InspectionPersistenceService
from inspection_agent.services.tools.bridge import ExternalToolBridge

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check(request: Request):
    """Health check endpoint."""
    logger.debug(
        f"[HEALTH] Health check requested - Client: {request.client.host if request.client else 'unknown'}"
    )
    return {"status": "healthy"}


@router.get("/")
async def service_status(
    db: AsyncSession = Depends(get_db),
    equipment_repository: EquipmentRepository = Depends(get_equipment_repository),
    tool_bridge: ExternalToolBridge = Depends(get_tool_bridge),
):
    """Service status with tool providers, record counts and live calls."""
    providers = tool_bridge.provider_names
    return {
        "status": "ok",
        "message": "AI Realtime Audio Server - Scaffolding Inspection",
        "mcp_servers": providers if providers else "none configured",
        "database": await InspectionPersistenceService(db).get_stats(),
        "equipment": await equipment_repository.get_stats(),
        "active_calls": active_call_count(),
    }
