"""Input driver and clipboard interfaces.

Two implementations of each:
  DesktopDriver / SystemClipboard  - real devices (input/desktop.py, input/clipboard.py)
  MockInputDriver / MockClipboard  - record calls, replay scripted samples (tests, headless)

Every method here blocks. The async layer calls them through
loop.run_in_executor, never directly from a coroutine.
"""

from __future__ import annotations

import sys
import threading
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field

from macrohost.input.keys import parse_key_spec


@dataclass(frozen=True)
class InputSample:
    """One observation of the physical input state."""
    position: tuple[int, int]
    buttons: frozenset[str] = field(default_factory=frozenset)
    keys: tuple[str, ...] = ()  # held keys, in press order


def shortcut_modifier(platform: str | None = None) -> str:
    """Modifier used for select-all / copy / paste on this platform."""
    return 'meta' if (platform or sys.platform) == 'darwin' else 'ctrl'


# ---------------------------------------------------------------------------
# Abstract base classes
# ---------------------------------------------------------------------------

class InputDriver(ABC):
    """Pointer and keyboard injection plus state observation."""

    def start(self) -> None:
        """Begin observing held buttons/keys. No-op unless the backend needs listeners."""

    def stop(self) -> None:
        """Stop observation listeners."""

    @abstractmethod
    def position(self) -> tuple[int, int]:
        """Current pointer position in screen coordinates."""

    @abstractmethod
    def move_to(self, x: int, y: int) -> None: ...

    @abstractmethod
    def click(self, button: str = 'left') -> None: ...

    @abstractmethod
    def double_click(self, button: str = 'left') -> None: ...

    @abstractmethod
    def press_key(self, spec: str) -> None:
        """Press and release a key spec like 'ctrl+shift+t'.

        Raises UnsupportedKeyError if the spec names an unknown key.
        """

    @abstractmethod
    def hotkey(self, *names: str) -> None:
        """Press names in order, release in reverse. Names are already normalized."""

    @abstractmethod
    def sample(self) -> InputSample:
        """Pointer position, held buttons and held keys right now."""

    # -- shortcuts -----------------------------------------------------------

    def select_all(self) -> None:
        self.hotkey(shortcut_modifier(), 'a')

    def copy(self) -> None:
        self.hotkey(shortcut_modifier(), 'c')

    def paste(self) -> None:
        self.hotkey(shortcut_modifier(), 'v')


class ClipboardService(ABC):
    """Plain-text system clipboard."""

    @abstractmethod
    def get_text(self) -> str: ...

    @abstractmethod
    def set_text(self, text: str) -> None: ...


# ---------------------------------------------------------------------------
# Mock implementations
# ---------------------------------------------------------------------------

class MockInputDriver(InputDriver):
    """Records every injected action in `calls`; serves queued samples.

    sample() pops from `samples` until it runs dry, then keeps returning the
    last state. Set `fail_on` to a set of method names that should raise.
    """

    def __init__(self, position: tuple[int, int] = (0, 0)) -> None:
        self._lock = threading.Lock()
        self._position = position
        self._last = InputSample(position=position)
        self.samples: deque[InputSample] = deque()
        self.calls: list[tuple] = []
        self.fail_on: set[str] = set()
        self.started = False

    def _record(self, name: str, *args) -> None:
        if name in self.fail_on:
            raise RuntimeError(f'{name} failed')
        with self._lock:
            self.calls.append((name, *args))

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.started = False

    def set_position(self, x: int, y: int) -> None:
        with self._lock:
            self._position = (x, y)

    def push_samples(self, *samples: InputSample) -> None:
        self.samples.extend(samples)

    def position(self) -> tuple[int, int]:
        if 'position' in self.fail_on:
            raise RuntimeError('position failed')
        with self._lock:
            return self._position

    def move_to(self, x: int, y: int) -> None:
        self._record('move_to', x, y)
        with self._lock:
            self._position = (x, y)

    def click(self, button: str = 'left') -> None:
        self._record('click', button)

    def double_click(self, button: str = 'left') -> None:
        self._record('double_click', button)

    def press_key(self, spec: str) -> None:
        names = parse_key_spec(spec)
        self._record('press_key', '+'.join(names))

    def hotkey(self, *names: str) -> None:
        self._record('hotkey', *names)

    def sample(self) -> InputSample:
        if 'sample' in self.fail_on:
            raise RuntimeError('sample failed')
        if self.samples:
            self._last = self.samples.popleft()
        return self._last


class MockClipboard(ClipboardService):
    """In-memory clipboard. `fail` makes every call raise."""

    def __init__(self, text: str = '') -> None:
        self.text = text
        self.fail = False
        self.writes: list[str] = []

    def get_text(self) -> str:
        if self.fail:
            raise RuntimeError('clipboard unavailable')
        return self.text

    def set_text(self, text: str) -> None:
        if self.fail:
            raise RuntimeError('clipboard unavailable')
        self.text = text
        self.writes.append(text)
