"""
Held-button and held-key tracking via pynput listeners.

pynput reports press/release edges on its own threads; InputMonitor folds
them into the current held state so the recorder can poll it like any
other sample. Keys are normalized to the key vocabulary on arrival.

Held keys are keyed by physical identity (virtual key code, or the
unshifted character when there is none), not by the reported character.
The character of a key can change between its press and its release when
shift is released first ('!' down, '1' up).
"""

from __future__ import annotations

import logging
import threading
from enum import Enum

from pynput import keyboard, mouse

from macrohost.input.keys import normalize_key_name

log = logging.getLogger(__name__)

_BUTTONS = ('left', 'right', 'middle')

# Shifted character -> base character on a US layout
_UNSHIFTED: dict[str, str] = {
    '!': '1', '@': '2', '#': '3', '$': '4', '%': '5',
    '^': '6', '&': '7', '*': '8', '(': '9', ')': '0',
    '_': '-', '+': '=', '{': '[', '}': ']', '|': '\\',
    ':': ';', '"': "'", '<': ',', '>': '.', '?': '/', '~': '`',
}


def key_name(key: keyboard.Key | keyboard.KeyCode | None) -> str | None:
    """Vocabulary name for a pynput key, or None if it has no place in it."""
    if key is None:
        return None
    if isinstance(key, Enum):
        return normalize_key_name(key.name)
    char = getattr(key, 'char', None)
    if char and char.isprintable():
        return normalize_key_name(char)
    # With ctrl held, char is a control code; fall back to the virtual key
    vk = getattr(key, 'vk', None)
    if vk is not None and (0x30 <= vk <= 0x39 or 0x41 <= vk <= 0x5A):
        return chr(vk).lower()
    return None


def key_identity(key: keyboard.Key | keyboard.KeyCode | None) -> tuple | None:
    """Modifier-independent identity of a physical key, for press/release pairing."""
    if key is None:
        return None
    if isinstance(key, Enum):
        return ('key', key.name)
    vk = getattr(key, 'vk', None)
    if vk is not None:
        return ('vk', vk)
    char = getattr(key, 'char', None)
    if char:
        return ('char', _UNSHIFTED.get(char, char.lower()))
    return None


class InputMonitor:
    """Global listeners plus the held state they maintain."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._buttons: set[str] = set()
        # identity -> name stored at press time; dict keeps press order
        self._keys: dict[tuple, str] = {}
        self._mouse_listener: mouse.Listener | None = None
        self._keyboard_listener: keyboard.Listener | None = None

    @property
    def running(self) -> bool:
        return self._keyboard_listener is not None

    def start(self) -> None:
        if self.running:
            return
        self._mouse_listener = mouse.Listener(on_click=self._on_click)
        self._keyboard_listener = keyboard.Listener(
            on_press=self._on_press,
            on_release=self._on_release,
        )
        self._mouse_listener.start()
        self._keyboard_listener.start()
        log.info('Input listeners started')

    def stop(self) -> None:
        for listener in (self._mouse_listener, self._keyboard_listener):
            if listener is not None:
                listener.stop()
        self._mouse_listener = None
        self._keyboard_listener = None
        with self._lock:
            self._buttons.clear()
            self._keys.clear()
        log.info('Input listeners stopped')

    def held(self) -> tuple[frozenset[str], tuple[str, ...]]:
        """(held buttons, held keys in press order)."""
        with self._lock:
            # shift_l and shift_r both read as 'shift'
            return frozenset(self._buttons), tuple(dict.fromkeys(self._keys.values()))

    # -- listener callbacks (pynput threads) ----------------------------------

    def _on_click(self, x, y, button, pressed) -> None:
        name = getattr(button, 'name', None)
        if name not in _BUTTONS:
            return
        with self._lock:
            if pressed:
                self._buttons.add(name)
            else:
                self._buttons.discard(name)

    def _on_press(self, key) -> None:
        name = key_name(key)
        ident = key_identity(key)
        if name is None or ident is None:
            return
        with self._lock:
            # Auto-repeat delivers repeated presses; keep the first
            if ident not in self._keys:
                self._keys[ident] = name

    def _on_release(self, key) -> None:
        ident = key_identity(key)
        if ident is None:
            return
        with self._lock:
            if self._keys.pop(ident, None) is not None:
                return
            # Identity differs from the press report; match by name instead
            name = key_name(key)
            for held_ident, held_name in list(self._keys.items()):
                if held_name == name:
                    del self._keys[held_ident]
                    return
