"""Twilio voice webhook and media stream endpoints."""
import logging
from typing import Optional
from fastapi import APIRouter, Request, Form, Depends, WebSocket
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from inspection_agent.db.database import get_db
from inspection_agent.core.config import settings
from inspection_agent.core.dependencies import get_session_config, get_tool_registry
from inspection_agent.services.call_session.manager import CallSessionManager
from inspection_agent.services.call_session.models import SessionConfig
from inspection_agent.services.call_session.transport import MediaStreamConnection
from inspection_agent.services.persistence.callers import CallerPersistenceService
from inspection_agent.services.telephony.twiml import generate_connect_stream_twiml, media_stream_url
from inspection_agent.services.tools.registry import ToolRegistry

router = APIRouter()
logger = logging.getLogger(__name__)


def get_public_host(request: Request) -> str:
    """
    Get the public base used to build the media stream URL.

    Uses BASE_URL if set, otherwise the Host header of the webhook request
    (which is what the telephony provider dialed).
    """
    if settings.base_url:
        return settings.base_url.rstrip("/")
    return request.headers.get("host") or request.url.netloc


def get_session_manager(
    db: AsyncSession = Depends(get_db),
    tool_registry: ToolRegistry = Depends(get_tool_registry),
    session_config: SessionConfig = Depends(get_session_config),
) -> CallSessionManager:
    """Get call session manager."""
    return CallSessionManager(db, tool_registry, session_config)


@router.post("/incoming-call")
async def handle_incoming_call(
    request: Request,
    From: Optional[str] = Form(None),
    db: AsyncSession = Depends(get_db),
):
    """
    Handle an incoming call from Twilio.

    Answers with TwiML that connects the call to the media stream endpoint,
    passing the caller's number along as a stream parameter.
    """
    caller_number = From or None
    logger.info(
        f"[INCOMING CALL] Received incoming call webhook - From: {caller_number or 'unknown'}, "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )

    if caller_number:
        try:
            caller = await CallerPersistenceService(db).lookup_caller(caller_number)
            if caller:
                logger.info(f"[INCOMING CALL] Returning caller - Name: {caller.caller_name or 'Name not set'}")
            else:
                logger.info("[INCOMING CALL] New caller")
        except Exception as e:
            logger.error(
                f"[INCOMING CALL] Caller lookup failed - From: {caller_number}, "
                f"Error: {type(e).__name__}: {str(e)}",
                exc_info=True,
            )

    stream_url = media_stream_url(get_public_host(request))
    twiml = generate_connect_stream_twiml(stream_url, caller_number)
    logger.debug(f"[INCOMING CALL] Connecting call to media stream: {stream_url}")
    return Response(content=twiml, media_type="application/xml")


@router.websocket("/media-stream")
async def handle_media_stream(
    websocket: WebSocket,
    session_manager: CallSessionManager = Depends(get_session_manager),
):
    """Bridge a Twilio media stream to the realtime backend for one call."""
    await websocket.accept()
    logger.info(
        f"[MEDIA STREAM] Client connected - "
        f"Client: {websocket.client.host if websocket.client else 'unknown'}"
    )
    orchestrator = await session_manager.run_session(MediaStreamConnection(websocket))
    logger.info(
        f"[MEDIA STREAM] Client disconnected - StreamSid: {orchestrator.call_id}, "
        f"Reason: {orchestrator.close_reason}"
    )
