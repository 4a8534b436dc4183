"""DesktopDriver: the real mouse and keyboard.

Injection goes through pyautogui (mouse.py, keyboard.py); held-state
observation through pynput (monitor.py). Importing this module touches the
display, so the server only imports it when INPUT_BACKEND=desktop.
"""

from __future__ import annotations

from macrohost.input import keyboard, mouse
from macrohost.input.driver import InputDriver, InputSample
from macrohost.input.monitor import InputMonitor


class DesktopDriver(InputDriver):

    def __init__(self) -> None:
        self._monitor = InputMonitor()

    def start(self) -> None:
        self._monitor.start()

    def stop(self) -> None:
        self._monitor.stop()

    def position(self) -> tuple[int, int]:
        return mouse.position()

    def move_to(self, x: int, y: int) -> None:
        mouse.move_to(x, y)

    def click(self, button: str = 'left') -> None:
        mouse.click(button)

    def double_click(self, button: str = 'left') -> None:
        mouse.double_click(button)

    def press_key(self, spec: str) -> None:
        keyboard.press_key(spec)

    def hotkey(self, *names: str) -> None:
        keyboard.hotkey(*names)

    def sample(self) -> InputSample:
        buttons, keys = self._monitor.held()
        return InputSample(position=mouse.position(), buttons=buttons, keys=keys)
