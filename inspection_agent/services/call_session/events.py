"""
Event vocabularies for the two sockets of a call.

Each direction of each socket has a closed set of event types. Inbound
messages are parsed into one of the models below; a tag that is not part of
the vocabulary becomes an ``Unknown*`` event that callers ignore, while a
known tag with a broken shape raises ``ProtocolError``. Outbound events are
built by the plain functions at the bottom of each section.
"""
import json
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class ProtocolError(Exception):
    """Raised for a message that cannot be understood."""


def _load_json(raw: Union[str, bytes]) -> Dict[str, Any]:
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ProtocolError(f"Invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ProtocolError(f"Expected a JSON object, got {type(data).__name__}")
    return data


# --- Media stream (telephony side) -------------------------------------------


class StreamStarted(BaseModel):
    """``start``: the telephony layer opened the media stream."""

    model_config = ConfigDict(populate_by_name=True)

    stream_sid: str = Field(alias="streamSid", min_length=1)
    call_sid: Optional[str] = Field(default=None, alias="callSid")
    custom_parameters: Dict[str, str] = Field(default_factory=dict, alias="customParameters")

    @property
    def caller_identity(self) -> Optional[str]:
        return self.custom_parameters.get("phone") or None


class MediaFrame(BaseModel):
    """``media``: one base64 audio payload from the caller."""

    payload: str


class StreamStopped(BaseModel):
    """``stop``: the telephony layer ended the media stream."""

    stream_sid: Optional[str] = None


class UnknownMediaEvent(BaseModel):
    """Any other media stream event (connected, mark, dtmf, ...)."""

    event: Optional[str] = None


MediaEvent = Union[StreamStarted, MediaFrame, StreamStopped, UnknownMediaEvent]


def parse_media_event(raw: Union[str, bytes]) -> MediaEvent:
    """Parse one inbound media stream message."""
    data = _load_json(raw)
    event = data.get("event")
    try:
        if event == "start":
            return StreamStarted.model_validate(data.get("start") or {})
        if event == "media":
            return MediaFrame.model_validate(data.get("media") or {})
        if event == "stop":
            return StreamStopped(stream_sid=data.get("streamSid"))
    except ValidationError as e:
        raise ProtocolError(f"Malformed '{event}' event: {e.error_count()} validation error(s)") from e
    return UnknownMediaEvent(event=event if isinstance(event, str) else None)


def outbound_media(stream_sid: str, payload: str) -> Dict[str, Any]:
    """Audio for the caller."""
    return {"event": "media", "streamSid": stream_sid, "media": {"payload": payload}}


def clear_stream(stream_sid: str) -> Dict[str, Any]:
    """Ask the telephony layer to drop audio it has buffered for the caller."""
    return {"event": "clear", "streamSid": stream_sid}


# --- Realtime backend ----------------------------------------------------------


class SessionCreated(BaseModel):
    """``session.created``: the backend session is ready for configuration."""

    session: Dict[str, Any] = Field(default_factory=dict)


class SessionUpdated(BaseModel):
    """``session.updated``: the backend accepted the session configuration."""

    session: Dict[str, Any] = Field(default_factory=dict)


class AudioStarted(BaseModel):
    """``response.audio.start``: the backend started speaking."""

    response_id: Optional[str] = None


class AudioDelta(BaseModel):
    """``response.audio.delta``: a chunk of backend speech."""

    delta: str
    response_id: Optional[str] = None


class AudioDone(BaseModel):
    """``response.audio.done``: the backend finished speaking."""

    response_id: Optional[str] = None


class FunctionCallRequested(BaseModel):
    """``response.function_call_arguments.done``: a complete tool call."""

    call_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    arguments: str = ""


class ItemCreated(BaseModel):
    """``conversation.item.created``: the backend appended an item."""

    item: Dict[str, Any] = Field(default_factory=dict)


class BackendError(BaseModel):
    """``error``: the backend rejected something we sent."""

    error: Dict[str, Any] = Field(default_factory=dict)


class UnknownBackendEvent(BaseModel):
    """Any other backend event."""

    type: Optional[str] = None


BackendEvent = Union[
    SessionCreated,
    SessionUpdated,
    AudioStarted,
    AudioDelta,
    AudioDone,
    FunctionCallRequested,
    ItemCreated,
    BackendError,
    UnknownBackendEvent,
]

_BACKEND_EVENT_TYPES = {
    "session.created": SessionCreated,
    "session.updated": SessionUpdated,
    "response.audio.start": AudioStarted,
    "response.audio.delta": AudioDelta,
    "response.audio.done": AudioDone,
    "response.function_call_arguments.done": FunctionCallRequested,
    "conversation.item.created": ItemCreated,
    "error": BackendError,
}


def parse_backend_event(raw: Union[str, bytes]) -> BackendEvent:
    """Parse one inbound backend message."""
    data = _load_json(raw)
    event_type = data.get("type")
    model = _BACKEND_EVENT_TYPES.get(event_type)
    if model is None:
        return UnknownBackendEvent(type=event_type if isinstance(event_type, str) else None)
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ProtocolError(f"Malformed '{event_type}' event: {e.error_count()} validation error(s)") from e


def session_update(
    instructions: str,
    voice: str,
    audio_format: str,
    turn_detection: Dict[str, Any],
    tools: List[Dict[str, Any]],
    temperature: float,
) -> Dict[str, Any]:
    """Session configuration sent once the backend session exists."""
    session: Dict[str, Any] = {
        "turn_detection": turn_detection,
        "input_audio_format": audio_format,
        "output_audio_format": audio_format,
        "voice": voice,
        "instructions": instructions,
        "modalities": ["text", "audio"],
        "temperature": temperature,
    }
    if tools:
        session["tools"] = tools
        session["tool_choice"] = "auto"
    return {"type": "session.update", "session": session}


def user_message(text: str) -> Dict[str, Any]:
    """Synthetic conversational turn injected on the caller's side."""
    return {
        "type": "conversation.item.create",
        "item": {
            "type": "message",
            "role": "user",
            "content": [{"type": "input_text", "text": text}],
        },
    }


def function_call_output(call_id: str, output: Dict[str, Any]) -> Dict[str, Any]:
    """Tool result correlated with the tool call that produced it."""
    return {
        "type": "conversation.item.create",
        "item": {
            "type": "function_call_output",
            "call_id": call_id,
            "output": json.dumps(output, default=str),
        },
    }


def response_create() -> Dict[str, Any]:
    return {"type": "response.create"}


def response_cancel() -> Dict[str, Any]:
    return {"type": "response.cancel"}


def input_audio_append(audio: str) -> Dict[str, Any]:
    return {"type": "input_audio_buffer.append", "audio": audio}


def input_audio_clear() -> Dict[str, Any]:
    return {"type": "input_audio_buffer.clear"}
