"""Main FastAPI application."""
import logging
from fastapi import FastAPI
from contextlib import asynccontextmanager

from inspection_agent.core.config import settings
from inspection_agent.core.dependencies import build_tool_registry, get_equipment_repository
from inspection_agent.core.logging import setup_logging
from inspection_agent.db.database import init_db, close_db
from inspection_agent.api import equipment, health, inspections
from inspection_agent.api.webhooks import voice
from inspection_agent.services.call_session.models import SessionConfig
from inspection_agent.services.call_session.prompts import load_system_message
from inspection_agent.services.tools.bridge import ExternalToolBridge

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    setup_logging()
    await init_db()

    bridge = ExternalToolBridge(settings.mcp_server_commands())
    await bridge.start()
    if bridge.provider_names:
        logger.info(f"[STARTUP] Tool providers active: {', '.join(bridge.provider_names)}")
    else:
        logger.info("[STARTUP] No tool providers configured (set MCP_SERVERS to add some)")

    app.state.tool_bridge = bridge
    app.state.tool_registry = build_tool_registry(get_equipment_repository(), bridge)
    app.state.session_config = SessionConfig.from_settings(
        settings, load_system_message(settings.system_message_file)
    )
    logger.info(
        f"[STARTUP] Ready - model: {settings.openai_model}, voice: {settings.voice}, "
        f"handshake: {settings.handshake_strategy}"
    )
    yield
    # Shutdown
    logger.info("[SHUTDOWN] Shutting down...")
    await bridge.stop()
    await close_db()


app = FastAPI(
    title="Scaffolding Inspection Voice Agent",
    description="Realtime voice line for recording scaffolding inspections",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router, tags=["health"])
app.include_router(voice.router, tags=["voice"])
app.include_router(inspections.router, tags=["inspections"])
app.include_router(equipment.router, tags=["equipment"])


def run() -> None:
    """Run the server with uvicorn."""
    import uvicorn

    uvicorn.run(
        "inspection_agent.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
