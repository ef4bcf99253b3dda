"""Call session manager."""
import logging
from functools import partial
from typing import Dict, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from inspection_agent.core.config import settings
from inspection_agent.services.call_session.models import SessionConfig
from inspection_agent.services.call_session.orchestrator import BackendConnector, SessionOrchestrator
from inspection_agent.services.call_session.scheduler import AsyncioScheduler
from inspection_agent.services.call_session.transport import SocketConnection, connect_realtime_backend
from inspection_agent.services.persistence.callers import CallerPersistenceService
from inspection_agent.services.persistence.inspections import InspectionPersistenceService
from inspection_agent.services.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

# Module-level registry of live calls (one process, one event loop)
_sessions: Dict[int, SessionOrchestrator] = {}


def active_call_count() -> int:
    return len(_sessions)


def default_backend_connector() -> BackendConnector:
    return partial(connect_realtime_backend, settings.realtime_ws_url, settings.openai_api_key)


class CallSessionManager:
    """Creates and tracks one orchestrator per media stream."""

    def __init__(
        self,
        db: AsyncSession,
        tool_registry: ToolRegistry,
        config: SessionConfig,
        backend_connector: Optional[BackendConnector] = None,
    ):
        self.db = db
        self.tool_registry = tool_registry
        self.config = config
        self.backend_connector = backend_connector or default_backend_connector()

    def create_session(
        self, media: SocketConnection, caller_identity: Optional[str] = None
    ) -> SessionOrchestrator:
        """Build the orchestrator for a newly accepted media stream."""
        orchestrator = SessionOrchestrator(
            media=media,
            backend_connector=self.backend_connector,
            tool_registry=self.tool_registry,
            inspections=InspectionPersistenceService(self.db),
            callers=CallerPersistenceService(self.db),
            config=self.config,
            scheduler=AsyncioScheduler(),
            caller_identity=caller_identity,
            on_close=self._unregister,
        )
        _sessions[id(orchestrator)] = orchestrator
        logger.info(f"[SESSION MANAGER] Session created - Active calls: {len(_sessions)}")
        return orchestrator

    async def run_session(
        self, media: SocketConnection, caller_identity: Optional[str] = None
    ) -> SessionOrchestrator:
        """Bridge a media stream until the call ends."""
        orchestrator = self.create_session(media, caller_identity)
        try:
            await orchestrator.run()
        finally:
            if not orchestrator.is_closed:
                await orchestrator.close("session aborted")
            self._unregister(orchestrator)
        return orchestrator

    @staticmethod
    def _unregister(orchestrator: SessionOrchestrator) -> None:
        if _sessions.pop(id(orchestrator), None) is not None:
            logger.info(
                f"[SESSION MANAGER] Session removed - StreamSid: {orchestrator.call_id}, "
                f"Active calls: {len(_sessions)}"
            )
