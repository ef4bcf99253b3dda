"""Behavioral instructions and greeting turns."""
import logging
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_MESSAGE = "You are a helpful AI assistant."


def load_system_message(path: str) -> str:
    """
    Read the system instructions from a file.

    Falls back to a generic assistant instruction when the file is missing,
    unreadable or empty.
    """
    try:
        text = Path(path).read_text(encoding="utf-8").strip()
    except OSError as e:
        logger.warning(f"[PROMPTS] Could not read system message file {path}: {e}; using default")
        return DEFAULT_SYSTEM_MESSAGE
    if not text:
        logger.warning(f"[PROMPTS] System message file {path} is empty; using default")
        return DEFAULT_SYSTEM_MESSAGE
    logger.info(f"[PROMPTS] Loaded system message from {path} ({len(text)} chars)")
    return text


def greeting_instruction(caller_name: Optional[str] = None) -> str:
    """Instruction telling the backend how to open the call."""
    if caller_name:
        return (
            f"This is a returning caller named {caller_name}. Welcome them back warmly "
            f"and invite them to begin a scaffolding inspection. DO NOT ask for their "
            f"name - use {caller_name} for the inspector_name field."
        )
    return (
        "This is a new caller. Please greet them and invite them to begin a "
        "scaffolding inspection. You will need to ask for their name."
    )
