"""TwiML generation for the inbound call webhook."""
from typing import Optional


def escape_xml(text: str) -> str:
    """Escape XML special characters."""
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


def media_stream_url(base_url: str, path: str = "/media-stream") -> str:
    """
    Build the WebSocket URL of the media stream endpoint.

    Args:
        base_url: Public base URL of the service, with or without a scheme

    Returns:
        A ``wss://`` URL (``ws://`` when the base URL is plain http)
    """
    base = base_url.rstrip("/")
    if base.startswith("https://"):
        host, scheme = base[len("https://"):], "wss"
    elif base.startswith("http://"):
        host, scheme = base[len("http://"):], "ws"
    elif "://" in base:
        scheme, host = base.split("://", 1)
    else:
        host, scheme = base, "wss"
    return f"{scheme}://{host}{path}"


def generate_connect_stream_twiml(stream_url: str, caller_identity: Optional[str] = None) -> str:
    """
    Generate TwiML that connects the call to a bidirectional media stream.

    The caller's number travels as the ``phone`` stream parameter so the
    media stream handler can recover it from the ``start`` event.
    """
    parameter = ""
    if caller_identity:
        parameter = f'\n            <Parameter name="phone" value="{escape_xml(caller_identity)}"/>'

    return f"""<?xml version="1.0" encoding="UTF-8"?>
<Response>
    <Connect>
        <Stream url="{escape_xml(stream_url)}">{parameter}
        </Stream>
    </Connect>
</Response>"""
