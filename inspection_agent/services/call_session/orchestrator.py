"""
Session orchestrator.

Bridges one telephony media stream to one realtime backend session. The
orchestrator owns both sockets for the call, relays audio in both
directions, dispatches backend tool calls through the tool registry and
enforces the submission gate before the call may end.
"""
import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Tuple

from inspection_agent.services.call_session import events
from inspection_agent.services.call_session.context import CallContext, CallContextError
from inspection_agent.services.call_session.models import SessionConfig, SessionPhase
from inspection_agent.services.call_session.prompts import greeting_instruction
from inspection_agent.services.call_session.scheduler import AsyncioScheduler, Scheduler
from inspection_agent.services.call_session.transport import OutboundQueue, SocketConnection
from inspection_agent.services.persistence.callers import CallerPersistenceService
from inspection_agent.services.persistence.inspections import InspectionPersistenceService
from inspection_agent.services.tools.base import ToolExecutionContext, ToolNotFoundError
from inspection_agent.services.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

BackendConnector = Callable[[], Awaitable[SocketConnection]]

GREETING_KEY = "greeting"


class SessionOrchestrator:
    """
    State machine for a single call.

    Phases run CONNECTING -> NEGOTIATING -> GREETING -> ACTIVE -> ENDING ->
    CLOSED. Losing either socket at any point moves straight to CLOSED.

    Inbound events from both sockets are handled on one event loop. Work
    that suspends on the database or a tool provider holds ``_state_lock``
    so call state is never mutated by two events at once; audio relay never
    takes the lock.
    """

    def __init__(
        self,
        media: SocketConnection,
        backend_connector: BackendConnector,
        tool_registry: ToolRegistry,
        inspections: InspectionPersistenceService,
        callers: CallerPersistenceService,
        config: Optional[SessionConfig] = None,
        scheduler: Optional[Scheduler] = None,
        caller_identity: Optional[str] = None,
        on_close: Optional[Callable[["SessionOrchestrator"], None]] = None,
    ):
        self.media = media
        self.backend_connector = backend_connector
        self.tool_registry = tool_registry
        self.inspections = inspections
        self.callers = callers
        self.config = config or SessionConfig()
        self.scheduler = scheduler or AsyncioScheduler()
        self.on_close = on_close

        self.context = CallContext(caller_identity)
        self.phase = SessionPhase.CONNECTING
        self.backend: Optional[SocketConnection] = None
        self.close_reason: Optional[str] = None

        self._media_queue = OutboundQueue("media", media, on_error=self._on_send_error)
        self._backend_queue: Optional[OutboundQueue] = None
        self._state_lock = asyncio.Lock()
        self._session_configured = False
        self._negotiated = False
        self._stream_started = False
        self._greeted = False
        self._awaiting_response: Set[str] = set()
        self._farewell_key: Optional[str] = None
        self._dispatch_tasks: Set[asyncio.Task] = set()
        self._pump_tasks: Set[asyncio.Task] = set()
        self._closed = False

    @property
    def call_id(self) -> Optional[str]:
        return self.context.call_id

    @property
    def is_closed(self) -> bool:
        return self._closed

    # --- lifecycle -----------------------------------------------------------

    async def run(self) -> None:
        """Bridge the call until either socket goes away."""
        try:
            await self.connect_backend()
        except Exception as e:
            logger.error(
                f"[ORCHESTRATOR] Failed to connect to realtime backend: {type(e).__name__}: {e}",
                exc_info=True,
            )
            await self.close("backend connection failed")
            return

        media_pump = asyncio.create_task(self._pump("media", self.media, self.handle_media_message))
        backend_pump = asyncio.create_task(self._pump("backend", self.backend, self.handle_backend_message))
        self._pump_tasks = {media_pump, backend_pump}

        reason = "socket closed"
        try:
            done, _ = await asyncio.wait(self._pump_tasks, return_when=asyncio.FIRST_COMPLETED)
            reason = "media socket closed" if media_pump in done else "backend socket closed"
        finally:
            for task in self._pump_tasks:
                if not task.done():
                    task.cancel()
            await self.close(reason)

    async def connect_backend(self) -> None:
        """Open the backend socket and start both outbound writers."""
        self._media_queue.start()
        self.backend = await self.backend_connector()
        self._backend_queue = OutboundQueue("backend", self.backend, on_error=self._on_send_error)
        self._backend_queue.start()
        self.phase = SessionPhase.NEGOTIATING
        logger.info("[ORCHESTRATOR] Backend socket open, waiting for session")

    async def _pump(
        self,
        side: str,
        connection: SocketConnection,
        handler: Callable[[str], Awaitable[None]],
    ) -> None:
        try:
            async for raw in connection.messages():
                await handler(raw)
                if self._closed:
                    break
            logger.info(f"[ORCHESTRATOR] {side.capitalize()} socket closed - StreamSid: {self.call_id}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                f"[ORCHESTRATOR] Transport error on {side} socket - StreamSid: {self.call_id}, "
                f"Error: {type(e).__name__}: {e}",
                exc_info=True,
            )

    async def close(self, reason: str = "closed") -> None:
        """Tear the call down. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self.close_reason = reason
        previous_phase = self.phase
        self.phase = SessionPhase.CLOSED
        self.context.mark_closed()
        self.scheduler.cancel_all()
        self._awaiting_response.clear()

        current = asyncio.current_task()
        cancelled = []
        for task in list(self._dispatch_tasks) + list(self._pump_tasks):
            if task is not current and not task.done():
                task.cancel()
                if task in self._dispatch_tasks:
                    cancelled.append(task)
        # Interrupted dispatches must unwind before the shared db session is reused
        if cancelled:
            await asyncio.gather(*cancelled, return_exceptions=True)

        await self._media_queue.stop()
        if self._backend_queue is not None:
            await self._backend_queue.stop()
        await self._close_socket("media", self.media)
        if self.backend is not None:
            await self._close_socket("backend", self.backend)

        if self.call_id:
            try:
                async with self._state_lock:
                    await self.inspections.end_call(self.call_id)
            except Exception as e:
                logger.error(
                    f"[ORCHESTRATOR] Failed to record call end - StreamSid: {self.call_id}, "
                    f"Error: {type(e).__name__}: {e}",
                    exc_info=True,
                )

        logger.info(
            f"[ORCHESTRATOR] Call closed - StreamSid: {self.call_id}, Reason: {reason}, "
            f"Phase: {previous_phase.value}, Submission: {self.context.submission_state.value}"
        )
        if self.on_close is not None:
            self.on_close(self)

    async def _close_socket(self, side: str, connection: SocketConnection) -> None:
        try:
            await connection.close()
        except Exception as e:
            logger.debug(f"[ORCHESTRATOR] Error closing {side} socket: {type(e).__name__}: {e}")

    async def _on_send_error(self, error: Exception) -> None:
        await self.close(f"send failed: {type(error).__name__}")

    async def flush(self) -> None:
        """Wait until everything posted to either socket has been written."""
        await self._media_queue.join()
        if self._backend_queue is not None:
            await self._backend_queue.join()

    async def wait_for_pending_dispatches(self) -> None:
        """Wait for every in-flight tool call to finish."""
        while self._dispatch_tasks:
            await asyncio.gather(*list(self._dispatch_tasks), return_exceptions=True)

    # --- outbound helpers ----------------------------------------------------

    def _send_backend(self, message: Dict[str, Any]) -> None:
        if self._closed or self._backend_queue is None:
            return
        self._backend_queue.post(message)

    def _send_media(self, message: Dict[str, Any]) -> None:
        if self._closed:
            return
        self._media_queue.post(message)

    def _request_response(self, key: str) -> None:
        """
        Ask the backend to respond once the item identified by ``key`` settles.

        With the fixed delay strategy the request goes out after the message
        sequence delay. With the acknowledgment strategy it goes out when the
        backend confirms the item, or when the fallback timer fires.
        """
        self._awaiting_response.add(key)
        if self.config.uses_acknowledgment:
            delay = self.config.acknowledgment_timeout
        else:
            delay = self.config.message_sequence_delay
        self.scheduler.schedule(f"respond:{key}", delay, lambda: self._send_response_create(key))

    async def _send_response_create(self, key: str) -> None:
        if key not in self._awaiting_response:
            return
        self._awaiting_response.discard(key)
        self.scheduler.cancel(f"respond:{key}")

        if self.phase is SessionPhase.CLOSED:
            return
        if self.phase is SessionPhase.ENDING and key != self._farewell_key:
            logger.debug(f"[ORCHESTRATOR] Suppressing response for {key} while ending - StreamSid: {self.call_id}")
            return

        self._send_backend(events.response_create())
        if key == GREETING_KEY and self.phase is SessionPhase.GREETING:
            self.phase = SessionPhase.ACTIVE
            logger.info(f"[ORCHESTRATOR] Call active - StreamSid: {self.call_id}")

    # --- media socket --------------------------------------------------------

    async def handle_media_message(self, raw: str) -> None:
        """Handle one message from the telephony media stream."""
        try:
            event = events.parse_media_event(raw)
        except events.ProtocolError as e:
            logger.warning(f"[ORCHESTRATOR] Skipping malformed media event - StreamSid: {self.call_id}, Error: {e}")
            return

        if isinstance(event, events.MediaFrame):
            self._on_caller_audio(event.payload)
        elif isinstance(event, events.StreamStarted):
            await self._on_stream_started(event)
        elif isinstance(event, events.StreamStopped):
            logger.info(f"[ORCHESTRATOR] Media stream stopped - StreamSid: {self.call_id}")
            await self.close("media stream stopped")
        else:
            logger.debug(f"[ORCHESTRATOR] Ignoring media event: {event.event}")

    def _on_caller_audio(self, payload: str) -> None:
        if self._backend_queue is None or self._closed:
            return
        if self.context.clear_ai_speaking():
            logger.info(f"[ORCHESTRATOR] Caller interrupted, cancelling response - StreamSid: {self.call_id}")
            self._send_backend(events.response_cancel())
            self.scheduler.schedule(
                "clear_input_buffer",
                self.config.message_sequence_delay,
                self._clear_input_buffer,
            )
            if self.call_id:
                self._send_media(events.clear_stream(self.call_id))
        self._send_backend(events.input_audio_append(payload))

    async def _clear_input_buffer(self) -> None:
        self._send_backend(events.input_audio_clear())

    async def _on_stream_started(self, event: events.StreamStarted) -> None:
        async with self._state_lock:
            try:
                self.context.bind_call(event.stream_sid)
            except CallContextError as e:
                logger.warning(f"[ORCHESTRATOR] Ignoring start event: {e}")
                return
            if self._stream_started:
                return
            self._stream_started = True
            self.context.set_caller_identity(event.caller_identity)
            logger.info(
                f"[ORCHESTRATOR] Incoming stream started - StreamSid: {self.call_id}, "
                f"Phone: {self.context.caller_identity or 'unknown'}"
            )

            try:
                caller = await self.callers.lookup_caller(self.context.caller_identity)
                if caller and caller.caller_name:
                    self.context.caller_name = caller.caller_name
                    logger.info(
                        f"[ORCHESTRATOR] Returning caller detected - StreamSid: {self.call_id}, "
                        f"Name: {caller.caller_name}"
                    )
                await self.inspections.begin_call(self.call_id, self.context.caller_identity)
            except Exception as e:
                logger.error(
                    f"[ORCHESTRATOR] Failed to record call start - StreamSid: {self.call_id}, "
                    f"Error: {type(e).__name__}: {e}",
                    exc_info=True,
                )

        self._maybe_greet()

    # --- backend socket ------------------------------------------------------

    async def handle_backend_message(self, raw: str) -> None:
        """Handle one message from the realtime backend."""
        try:
            event = events.parse_backend_event(raw)
        except events.ProtocolError as e:
            logger.warning(f"[ORCHESTRATOR] Skipping malformed backend event - StreamSid: {self.call_id}, Error: {e}")
            return

        if isinstance(event, events.AudioDelta):
            if self.call_id:
                self._send_media(events.outbound_media(self.call_id, event.delta))
        elif isinstance(event, events.AudioStarted):
            self.context.mark_ai_speaking()
        elif isinstance(event, events.AudioDone):
            self.context.clear_ai_speaking()
        elif isinstance(event, events.FunctionCallRequested):
            self._start_dispatch(event)
        elif isinstance(event, events.ItemCreated):
            await self._on_item_created(event)
        elif isinstance(event, events.SessionCreated):
            await self._on_session_created()
        elif isinstance(event, events.SessionUpdated):
            if self.config.uses_acknowledgment:
                self._on_negotiated()
        elif isinstance(event, events.BackendError):
            logger.error(f"[ORCHESTRATOR] Backend error - StreamSid: {self.call_id}, Error: {event.error}")
        else:
            logger.debug(f"[ORCHESTRATOR] Ignoring backend event: {event.type}")

    async def _on_session_created(self) -> None:
        if self._session_configured or self._closed:
            return
        self._session_configured = True

        tools = await self.tool_registry.to_realtime_schema()
        self._send_backend(
            events.session_update(
                instructions=self.config.instructions,
                voice=self.config.voice,
                audio_format=self.config.audio_format,
                turn_detection=self.config.turn_detection(),
                tools=tools,
                temperature=self.config.temperature,
            )
        )
        logger.info(f"[ORCHESTRATOR] Session configuration sent - Tools: {len(tools)}")

        if self.config.uses_acknowledgment:
            delay = self.config.acknowledgment_timeout
        else:
            delay = self.config.greeting_delay
        self.scheduler.schedule("negotiated", delay, self._negotiation_settled)

    async def _negotiation_settled(self) -> None:
        self._on_negotiated()

    def _on_negotiated(self) -> None:
        if self._negotiated or self._closed:
            return
        self._negotiated = True
        self.scheduler.cancel("negotiated")
        logger.debug(f"[ORCHESTRATOR] Session negotiated - StreamSid: {self.call_id}")
        self._maybe_greet()

    def _maybe_greet(self) -> None:
        if self._greeted or not (self._negotiated and self._stream_started):
            return
        if self.phase is not SessionPhase.NEGOTIATING:
            return
        self._greeted = True
        self.phase = SessionPhase.GREETING
        self._send_backend(events.user_message(greeting_instruction(self.context.caller_name)))
        logger.info(
            f"[ORCHESTRATOR] Greeting sent - StreamSid: {self.call_id}, "
            f"Returning caller: {self.context.is_returning_caller}"
        )
        self._request_response(GREETING_KEY)

    async def _on_item_created(self, event: events.ItemCreated) -> None:
        if not self.config.uses_acknowledgment:
            return
        key = self._acknowledged_key(event.item)
        if key is not None:
            await self._send_response_create(key)

    def _acknowledged_key(self, item: Dict[str, Any]) -> Optional[str]:
        item_type = item.get("type")
        if item_type == "function_call_output":
            key = f"tool:{item.get('call_id')}"
            return key if key in self._awaiting_response else None
        if item_type == "message" and item.get("role") == "user" and GREETING_KEY in self._awaiting_response:
            content = item.get("content") or []
            if any(isinstance(part, dict) and part.get("type") == "input_text" for part in content):
                return GREETING_KEY
        return None

    # --- tool dispatch -------------------------------------------------------

    def _start_dispatch(self, event: events.FunctionCallRequested) -> None:
        if self._closed:
            return
        logger.info(f"[ORCHESTRATOR] Tool call received - StreamSid: {self.call_id}, Tool: {event.name}")
        task = asyncio.create_task(self._dispatch(event))
        self._dispatch_tasks.add(task)
        task.add_done_callback(self._dispatch_tasks.discard)

    async def _dispatch(self, event: events.FunctionCallRequested) -> None:
        async with self._state_lock:
            if self._closed:
                return
            result, tool_context = await self._execute_tool(event)
            if self._closed:
                return

            self._send_backend(events.function_call_output(event.call_id, result))
            key = f"tool:{event.call_id}"

            if (
                tool_context is not None
                and tool_context.termination_requested
                and self.context.begin_ending(tool_context.termination_reason)
            ):
                self._begin_farewell(key)
            else:
                self._request_response(key)

    async def _execute_tool(
        self, event: events.FunctionCallRequested
    ) -> Tuple[Dict[str, Any], Optional[ToolExecutionContext]]:
        try:
            arguments = json.loads(event.arguments)
        except ValueError as e:
            logger.warning(f"[ORCHESTRATOR] Invalid tool arguments - StreamSid: {self.call_id}, Tool: {event.name}")
            return {"success": False, "error": f"Invalid JSON arguments: {e}"}, None
        if not isinstance(arguments, dict):
            return {"success": False, "error": "Invalid JSON arguments: expected an object"}, None

        tool_context = ToolExecutionContext(self.context, self.inspections, self.callers)
        try:
            result = await self.tool_registry.dispatch(event.name, arguments, tool_context)
        except ToolNotFoundError as e:
            logger.warning(f"[ORCHESTRATOR] {e} - StreamSid: {self.call_id}")
            return {"success": False, "error": str(e)}, None
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                f"[ORCHESTRATOR] Error calling tool - StreamSid: {self.call_id}, Tool: {event.name}, "
                f"Error: {type(e).__name__}: {e}",
                exc_info=True,
            )
            return {"success": False, "error": str(e) or type(e).__name__}, None

        if not isinstance(result, dict):
            result = {"success": True, "result": result}
        return result, tool_context

    def _begin_farewell(self, key: str) -> None:
        self.phase = SessionPhase.ENDING
        self._farewell_key = key
        logger.info(
            f"[ORCHESTRATOR] Call ending requested - StreamSid: {self.call_id}, "
            f"Reason: {self.context.termination_reason}"
        )
        self._request_response(key)
        self.scheduler.schedule("hang_up", self.config.farewell_window, self._hang_up)

    async def _hang_up(self) -> None:
        if self._closed:
            return
        if self.call_id:
            self._send_media(events.clear_stream(self.call_id))
        try:
            await asyncio.wait_for(self._media_queue.join(), timeout=self.config.media_drain_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[ORCHESTRATOR] Media stream did not drain before hang-up - StreamSid: {self.call_id}")
        await self.close("call ended")
