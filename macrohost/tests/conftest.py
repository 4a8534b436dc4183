"""Shared pytest configuration for macrohost tests."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# macrohost/ is a namespace package (no __init__.py). The PROJECT ROOT
# (parent of macrohost/) must be on sys.path and macrohost/ itself must not.
_PROJECT_ROOT = str(Path(__file__).resolve().parent.parent.parent)
_PACKAGE_DIR = str(Path(__file__).resolve().parent.parent)

sys.path[:] = [p for p in sys.path if p != _PACKAGE_DIR]

if _PROJECT_ROOT not in sys.path:
    sys.path.insert(0, _PROJECT_ROOT)

# ---------------------------------------------------------------------------
# Device libraries need a display at import. Mock them before any
# macrohost.input module imports them so the desktop layer runs headless.
# ---------------------------------------------------------------------------

_pyautogui = MagicMock()
_pyautogui.PAUSE = 0
_pyautogui.FAILSAFE = True
_pyautogui.position.return_value = (500, 500)
sys.modules.setdefault('pyautogui', _pyautogui)

_pynput = MagicMock()
sys.modules.setdefault('pynput', _pynput)
sys.modules.setdefault('pynput.keyboard', _pynput.keyboard)
sys.modules.setdefault('pynput.mouse', _pynput.mouse)

from macrohost.gateway import ClientConnection
from macrohost.input.driver import MockClipboard, MockInputDriver
from macrohost.session import SessionState


# ---------------------------------------------------------------------------
# Event capture
# ---------------------------------------------------------------------------

class RecordingClient:
    """A registered client whose outbound frames land in a list."""

    def __init__(self, client_id: str) -> None:
        self.client_id = client_id
        self.sent: list[str] = []
        self.conn = ClientConnection(client_id, self._send)

    async def _send(self, text: str) -> None:
        self.sent.append(text)

    async def flush(self) -> None:
        """Let the writer task drain everything queued so far."""
        for _ in range(100):
            if self.conn._queue.empty():
                break
            await asyncio.sleep(0)
        await asyncio.sleep(0)

    def events(self, event_type: str | None = None) -> list[dict]:
        frames = [json.loads(t) for t in self.sent]
        if event_type is None:
            return frames
        return [f for f in frames if f['type'] == event_type]

    def types(self) -> list[str]:
        return [json.loads(t)['type'] for t in self.sent]


async def connect(state: SessionState, client_id: str) -> RecordingClient:
    client = RecordingClient(client_id)
    async with state.lock:
        state.clients.add(client.conn)
    client.conn.start()
    return client


async def no_sleep(seconds: float) -> None:
    """Stand-in for asyncio.sleep that only yields to the loop."""
    await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def state() -> SessionState:
    return SessionState()


@pytest.fixture()
def driver() -> MockInputDriver:
    return MockInputDriver(position=(100, 200))


@pytest.fixture()
def clipboard() -> MockClipboard:
    return MockClipboard(text='hello')
