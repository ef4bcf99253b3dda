"""Call session models."""
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel

from inspection_agent.core.config import Settings
from inspection_agent.services.call_session.prompts import DEFAULT_SYSTEM_MESSAGE


class SessionPhase(str, Enum):
    """Lifecycle of one bridged call."""

    CONNECTING = "connecting"
    NEGOTIATING = "negotiating"
    GREETING = "greeting"
    ACTIVE = "active"
    ENDING = "ending"
    CLOSED = "closed"


class HandshakeStrategy(str, Enum):
    """How the session waits for the backend between protocol steps."""

    FIXED_DELAY = "fixed_delay"
    ACKNOWLEDGMENT = "acknowledgment"


class SessionConfig(BaseModel):
    """Per-call backend configuration and timing policy."""

    instructions: str = DEFAULT_SYSTEM_MESSAGE
    voice: str = "alloy"
    audio_format: str = "g711_ulaw"
    temperature: float = 0.8
    vad_threshold: float = 0.5
    vad_prefix_padding_ms: int = 300
    vad_silence_duration_ms: int = 200

    handshake_strategy: HandshakeStrategy = HandshakeStrategy.FIXED_DELAY
    session_update_delay_ms: int = 250
    greeting_delay_offset_ms: int = 100
    message_sequence_delay_ms: int = 50
    acknowledgment_timeout_ms: int = 2000
    farewell_window_ms: int = 3000
    media_drain_timeout_ms: int = 1000

    @classmethod
    def from_settings(cls, settings: Settings, instructions: str) -> "SessionConfig":
        return cls(
            instructions=instructions,
            voice=settings.voice,
            audio_format=settings.audio_format,
            temperature=settings.temperature,
            vad_threshold=settings.vad_threshold,
            vad_prefix_padding_ms=settings.vad_prefix_padding_ms,
            vad_silence_duration_ms=settings.vad_silence_duration_ms,
            handshake_strategy=HandshakeStrategy(settings.handshake_strategy),
            session_update_delay_ms=settings.session_update_delay_ms,
            greeting_delay_offset_ms=settings.greeting_delay_offset_ms,
            message_sequence_delay_ms=settings.message_sequence_delay_ms,
            acknowledgment_timeout_ms=settings.acknowledgment_timeout_ms,
            farewell_window_ms=settings.farewell_window_ms,
        )

    @property
    def uses_acknowledgment(self) -> bool:
        return self.handshake_strategy is HandshakeStrategy.ACKNOWLEDGMENT

    @property
    def greeting_delay(self) -> float:
        """Settle time between session configuration and the greeting, in seconds."""
        return (self.session_update_delay_ms + self.greeting_delay_offset_ms) / 1000

    @property
    def message_sequence_delay(self) -> float:
        return self.message_sequence_delay_ms / 1000

    @property
    def acknowledgment_timeout(self) -> float:
        return self.acknowledgment_timeout_ms / 1000

    @property
    def farewell_window(self) -> float:
        return self.farewell_window_ms / 1000

    @property
    def media_drain_timeout(self) -> float:
        """Longest wait at hang-up for queued media to be written, in seconds."""
        return self.media_drain_timeout_ms / 1000

    def turn_detection(self) -> Dict[str, Any]:
        return {
            "type": "server_vad",
            "threshold": self.vad_threshold,
            "prefix_padding_ms": self.vad_prefix_padding_ms,
            "silence_duration_ms": self.vad_silence_duration_ms,
        }
