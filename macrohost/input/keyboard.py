"""
Key injection via pyautogui.

Accepts names from the key vocabulary (input/keys.py) and translates them
to pyautogui's key names at the last moment.
"""

from __future__ import annotations

import sys
import time

import pyautogui

from macrohost.input.keys import parse_key_spec

pyautogui.PAUSE = 0
pyautogui.FAILSAFE = True

# Hold time for a single key, and gap between presses in a chord
_HOLD_SEC = 0.05
_CHORD_GAP_SEC = 0.02

# Vocabulary name -> pyautogui name, where they differ
_PYAUTOGUI_NAMES: dict[str, str] = {
    'escape': 'esc',
    'menu': 'apps',
}


def to_pyautogui(name: str, platform: str | None = None) -> str:
    """Translate one vocabulary key name to pyautogui's spelling."""
    if name == 'meta':
        return 'command' if (platform or sys.platform) == 'darwin' else 'win'
    return _PYAUTOGUI_NAMES.get(name, name)


def hotkey(*names: str) -> None:
    """Press names in order, hold briefly, release in reverse."""
    keys = [to_pyautogui(n) for n in names]
    for key in keys:
        pyautogui.keyDown(key, _pause=False)
        time.sleep(_CHORD_GAP_SEC)
    time.sleep(_HOLD_SEC)
    for key in reversed(keys):
        pyautogui.keyUp(key, _pause=False)
        time.sleep(_CHORD_GAP_SEC)


def press_key(spec: str) -> None:
    """Press a key spec: 'enter', 'a', 'ctrl+shift+t'.

    Raises UnsupportedKeyError before touching the keyboard if any part of
    the spec is unknown.
    """
    names = parse_key_spec(spec)
    hotkey(*names)
