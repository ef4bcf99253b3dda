"""Unit tests for the call session manager."""
import pytest

from inspection_agent.services.call_session import manager
from inspection_agent.services.call_session.manager import CallSessionManager
from inspection_agent.services.call_session.models import SessionPhase


class TestCallSessionManager:
    """Test tracking of live calls."""

    @pytest.mark.asyncio
    async def test_create_session_registers(self, test_db, tool_registry, session_config, socket_factory, clean_call_sessions):
        async def connector():
            return socket_factory()

        session_manager = CallSessionManager(test_db, tool_registry, session_config, backend_connector=connector)

        orchestrator = session_manager.create_session(socket_factory(), caller_identity="+15550001111")

        assert manager.active_call_count() == 1
        assert orchestrator.context.caller_identity == "+15550001111"

        await orchestrator.close("test")
        assert manager.active_call_count() == 0

    @pytest.mark.asyncio
    async def test_run_session_unregisters(self, test_db, tool_registry, session_config, socket_factory, clean_call_sessions):
        """Test that a call that fails to connect is closed and forgotten."""
        async def connector():
            raise OSError("connection refused")

        session_manager = CallSessionManager(test_db, tool_registry, session_config, backend_connector=connector)
        media = socket_factory()

        orchestrator = await session_manager.run_session(media)

        assert orchestrator.phase == SessionPhase.CLOSED
        assert media.closed
        assert manager.active_call_count() == 0

