"""
Pointer injection via pyautogui.

Coordinates are screen coordinates as pyautogui reports them. Replay is
literal: moves jump straight to the target, clicks use fixed press timing.
"""

from __future__ import annotations

import time

import pyautogui

# Timing is handled by the execution engine, not pyautogui
pyautogui.PAUSE = 0
# Keep failsafe (move mouse to corner to abort)
pyautogui.FAILSAFE = True

# Press/release hold and the gap between the two clicks of a double click
_PRESS_SEC = 0.05
_DOUBLE_GAP_SEC = 0.08


def position() -> tuple[int, int]:
    x, y = pyautogui.position()
    return int(x), int(y)


def move_to(x: int, y: int) -> None:
    pyautogui.moveTo(x, y, _pause=False)


def _press(button: str) -> None:
    pyautogui.mouseDown(button=button, _pause=False)
    time.sleep(_PRESS_SEC)
    pyautogui.mouseUp(button=button, _pause=False)


def click(button: str = 'left') -> None:
    """Click at the current position."""
    _press(button)


def double_click(button: str = 'left') -> None:
    """Two clicks at the current position, close enough for the OS to pair them."""
    _press(button)
    time.sleep(_DOUBLE_GAP_SEC)
    _press(button)
