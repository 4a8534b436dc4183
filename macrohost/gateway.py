"""Connection registry and event fan-out.

Each connected client gets a ClientConnection: an outbound queue drained by
one writer task. Enqueueing never blocks and each client sees events in the
order they were broadcast. A slow or dead socket only stalls its own queue.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterator

log = logging.getLogger(__name__)

SendFunc = Callable[[str], Awaitable[None]]

# Sentinel that tells the writer task to exit
_CLOSE = None


class ClientConnection:
    """Outbound side of one client connection."""

    def __init__(self, client_id: str, send: SendFunc) -> None:
        self.client_id = client_id
        self._send = send
        self._queue: asyncio.Queue[str | None] = asyncio.Queue()
        self._task: asyncio.Task | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Start the writer task. Must be called from the event loop."""
        if self._task is None:
            self._task = asyncio.create_task(
                self._writer(), name=f'client-writer-{self.client_id[:8]}',
            )

    def enqueue(self, text: str) -> bool:
        """Queue one frame. Returns False if the connection is already closed."""
        if self._closed:
            return False
        self._queue.put_nowait(text)
        return True

    async def close(self) -> None:
        """Flush nothing further, stop the writer and wait for it."""
        self._closed = True
        if self._task is None:
            return
        self._queue.put_nowait(_CLOSE)
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _writer(self) -> None:
        while True:
            text = await self._queue.get()
            if text is _CLOSE:
                return
            try:
                await self._send(text)
            except Exception as exc:
                # Registry entry stays until the reader side sees the disconnect
                log.warning('Send to client %s failed: %s', self.client_id, exc)
                self._closed = True
                return


class ClientRegistry:
    """client_id -> ClientConnection. Mutated only on connect/disconnect."""

    def __init__(self) -> None:
        self._clients: dict[str, ClientConnection] = {}

    def __len__(self) -> int:
        return len(self._clients)

    def __contains__(self, client_id: object) -> bool:
        return client_id in self._clients

    def __iter__(self) -> Iterator[ClientConnection]:
        return iter(list(self._clients.values()))

    def add(self, conn: ClientConnection) -> None:
        if conn.client_id in self._clients:
            raise ValueError(f'Client {conn.client_id} already registered')
        self._clients[conn.client_id] = conn

    def remove(self, client_id: str) -> ClientConnection | None:
        return self._clients.pop(client_id, None)

    def get(self, client_id: str) -> ClientConnection | None:
        return self._clients.get(client_id)

    def unicast(self, client_id: str, text: str) -> bool:
        """Send to one client. False if it is gone or closed."""
        conn = self._clients.get(client_id)
        if conn is None:
            log.debug('Unicast to unknown client %s dropped', client_id)
            return False
        return conn.enqueue(text)

    def broadcast(self, text: str) -> int:
        """Send to every open client. Returns the number of clients queued."""
        delivered = 0
        for conn in self._clients.values():
            if conn.enqueue(text):
                delivered += 1
        return delivered
