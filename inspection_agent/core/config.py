"""Application configuration."""
import os
import shlex
from pathlib import Path
from typing import Dict, List, Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SYSTEM_MESSAGE_FILE = str(
    Path(__file__).resolve().parent.parent / "prompts" / "system_prompt.txt"
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # OpenAI Realtime
    openai_api_key: str
    openai_model: str = "gpt-realtime"
    openai_realtime_url: str = "wss://api.openai.com/v1/realtime"
    voice: str = "alloy"
    temperature: float = 0.8
    system_message_file: str = DEFAULT_SYSTEM_MESSAGE_FILE
    audio_format: str = "g711_ulaw"

    # Server-side turn detection
    vad_threshold: float = 0.5
    vad_prefix_padding_ms: int = 300
    vad_silence_duration_ms: int = 200

    # Session timing (milliseconds)
    handshake_strategy: Literal["fixed_delay", "acknowledgment"] = "fixed_delay"
    session_update_delay_ms: int = 250
    greeting_delay_offset_ms: int = 100
    message_sequence_delay_ms: int = 50
    acknowledgment_timeout_ms: int = 2000
    farewell_window_ms: int = 3000

    # Database
    database_url: str = "sqlite:///./data/inspections.db"

    # Public base URL used to build the media stream URL
    base_url: Optional[str] = None

    # Record endpoints
    basic_auth_user: str = "admin"
    basic_auth_pass: str = "changeme"

    # External tool providers (MCP), comma separated
    mcp_servers: str = ""

    # Server
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 5050

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def realtime_ws_url(self) -> str:
        """Full backend socket URL including the model parameter."""
        return f"{self.openai_realtime_url}?model={self.openai_model}"

    def mcp_server_names(self) -> List[str]:
        """Configured tool provider identifiers."""
        return [name.strip() for name in self.mcp_servers.split(",") if name.strip()]

    def mcp_server_commands(self) -> Dict[str, Optional[List[str]]]:
        """
        Resolve the launch command for every configured tool provider.

        Each provider's command is read from ``MCP_<NAME>_COMMAND`` and split
        respecting quoted arguments. A provider with no command maps to None.
        """
        commands: Dict[str, Optional[List[str]]] = {}
        for name in self.mcp_server_names():
            raw = os.environ.get(f"MCP_{name.upper()}_COMMAND", "").strip()
            commands[name] = shlex.split(raw) if raw else None
        return commands


settings = Settings()
