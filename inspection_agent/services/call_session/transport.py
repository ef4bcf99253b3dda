"""Socket adapters and ordered, fire-and-forget outbound queues."""
import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

import websockets
from websockets.asyncio.client import ClientConnection
from websockets.exceptions import ConnectionClosed
from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

logger = logging.getLogger(__name__)


class SocketConnection(ABC):
    """One side of a call: a text message socket."""

    @abstractmethod
    def messages(self) -> AsyncIterator[str]:
        """Yield inbound text messages until the socket closes."""
        pass

    @abstractmethod
    async def send_text(self, text: str) -> None:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass

    @property
    @abstractmethod
    def is_open(self) -> bool:
        pass


class MediaStreamConnection(SocketConnection):
    """The telephony media stream, accepted by the FastAPI WebSocket route."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    async def messages(self) -> AsyncIterator[str]:
        try:
            async for text in self.websocket.iter_text():
                yield text
        except WebSocketDisconnect:
            return

    async def send_text(self, text: str) -> None:
        await self.websocket.send_text(text)

    async def close(self) -> None:
        if self.is_open:
            await self.websocket.close()

    @property
    def is_open(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )


class RealtimeBackendConnection(SocketConnection):
    """Client socket to the realtime speech backend."""

    def __init__(self, url: str, api_key: str):
        self.url = url
        self.api_key = api_key
        self.websocket: Optional[ClientConnection] = None

    async def open(self) -> "RealtimeBackendConnection":
        headers = [
            ("Authorization", f"Bearer {self.api_key}"),
            ("OpenAI-Beta", "realtime=v1"),
        ]
        self.websocket = await websockets.connect(self.url, additional_headers=headers)
        logger.info("[TRANSPORT] Connected to realtime backend")
        return self

    async def messages(self) -> AsyncIterator[str]:
        if self.websocket is None:
            return
        try:
            async for message in self.websocket:
                if isinstance(message, bytes):
                    message = message.decode("utf-8", errors="replace")
                yield message
        except ConnectionClosed as e:
            logger.info(f"[TRANSPORT] Backend connection closed - code={e.rcvd.code if e.rcvd else None}")

    async def send_text(self, text: str) -> None:
        if self.websocket is None:
            raise RuntimeError("Backend connection is not open")
        await self.websocket.send(text)

    async def close(self) -> None:
        if self.websocket is not None and self.is_open:
            await self.websocket.close()

    @property
    def is_open(self) -> bool:
        return self.websocket is not None and self.websocket.state.name == "OPEN"


async def connect_realtime_backend(url: str, api_key: str) -> RealtimeBackendConnection:
    """Open a backend connection."""
    return await RealtimeBackendConnection(url, api_key).open()


class OutboundQueue:
    """
    Serializes outbound messages for one socket.

    ``post`` never waits: messages are queued and written in order by a
    single writer task. A failed write stops further writes and reports the
    error once through ``on_error``.
    """

    def __init__(
        self,
        name: str,
        connection: SocketConnection,
        on_error: Optional[Callable[[Exception], Awaitable[None]]] = None,
    ):
        self.name = name
        self.connection = connection
        self.on_error = on_error
        self._queue: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue()
        self._writer: Optional[asyncio.Task] = None
        self._failed = False
        self._error_task: Optional[asyncio.Task] = None

    def start(self) -> None:
        if self._writer is None:
            self._writer = asyncio.create_task(self._write_loop())

    def post(self, message: Dict[str, Any]) -> None:
        if self._failed:
            return
        self._queue.put_nowait(message)

    async def join(self) -> None:
        """Wait until everything posted so far has been written or dropped."""
        if self._writer is None or self._writer.done():
            return
        await self._queue.join()

    async def stop(self) -> None:
        if self._writer is None:
            return
        writer, self._writer = self._writer, None
        if writer is not asyncio.current_task():
            writer.cancel()
            try:
                await writer
            except asyncio.CancelledError:
                pass

    async def _write_loop(self) -> None:
        while True:
            message = await self._queue.get()
            try:
                if not self._failed:
                    await self.connection.send_text(json.dumps(message))
            except Exception as e:
                self._failed = True
                logger.error(f"[TRANSPORT] Send failed on {self.name} socket: {type(e).__name__}: {e}")
                if self.on_error is not None:
                    self._error_task = asyncio.create_task(self.on_error(e))
            finally:
                self._queue.task_done()
