"""Tests for the desktop input layer (monitor, keyboard, mouse, desktop).

pyautogui and pynput are MagicMocks (see conftest.py). Listener callbacks
are driven directly with stand-ins shaped like pynput's Key enum members
and KeyCode objects.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from enum import Enum
from types import SimpleNamespace

import pytest

from macrohost.input import keyboard as kb
from macrohost.input import mouse
from macrohost.input.desktop import DesktopDriver
from macrohost.input.keys import UnsupportedKeyError
from macrohost.input.monitor import InputMonitor, key_identity, key_name


class Key(Enum):
    """Named keys, as pynput.keyboard.Key members."""
    shift = 1
    shift_r = 2
    ctrl_l = 3
    cmd = 4
    space = 5
    f7 = 6
    esc = 7


@dataclass(frozen=True)
class KeyCode:
    """Character keys, as pynput.keyboard.KeyCode."""
    char: str | None = None
    vk: int | None = None


def button(name: str) -> SimpleNamespace:
    return SimpleNamespace(name=name)


@pytest.fixture()
def pg():
    """The mocked pyautogui module, with a clean call log."""
    pyautogui = sys.modules['pyautogui']
    pyautogui.reset_mock()
    pyautogui.position.return_value = (500, 500)
    return pyautogui


@pytest.fixture()
def no_wait(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(kb.time, 'sleep', lambda s: None)
    monkeypatch.setattr(mouse.time, 'sleep', lambda s: None)


def _key_events(pyautogui) -> list[tuple[str, str]]:
    return [
        (c[0], c[1][0]) for c in pyautogui.mock_calls
        if c[0] in ('keyDown', 'keyUp')
    ]


# ---------------------------------------------------------------------------
# key_name / key_identity
# ---------------------------------------------------------------------------

class TestKeyName:
    @pytest.mark.parametrize('key,expected', [
        (Key.shift_r, 'shift'),
        (Key.ctrl_l, 'ctrl'),
        (Key.cmd, 'meta'),
        (Key.space, 'space'),
        (Key.esc, 'escape'),
        (Key.f7, 'f7'),
        (KeyCode('A'), 'a'),
        (KeyCode('/'), '/'),
        (KeyCode(' '), 'space'),
    ])
    def test_names(self, key, expected):
        assert key_name(key) == expected

    def test_control_char_falls_back_to_vk(self):
        # ctrl+c arrives as '\x03' with the C virtual key
        assert key_name(KeyCode('\x03', vk=0x43)) == 'c'
        assert key_name(KeyCode('\x00', vk=0x35)) == '5'

    def test_unknown_keys(self):
        assert key_name(None) is None
        assert key_name(KeyCode(None, vk=0xAD)) is None

    def test_identity_ignores_shift_state(self):
        assert key_identity(KeyCode('!')) == key_identity(KeyCode('1'))
        assert key_identity(KeyCode('A')) == key_identity(KeyCode('a'))
        assert key_identity(KeyCode('?')) == key_identity(KeyCode('/'))
        assert key_identity(KeyCode('!', vk=0x31)) == key_identity(KeyCode('1', vk=0x31))
        assert key_identity(Key.shift) != key_identity(Key.shift_r)


# ---------------------------------------------------------------------------
# InputMonitor bookkeeping
# ---------------------------------------------------------------------------

class TestInputMonitor:
    def test_keys_in_press_order(self):
        mon = InputMonitor()
        mon._on_press(Key.ctrl_l)
        mon._on_press(Key.shift)
        mon._on_press(KeyCode('C'))
        assert mon.held() == (frozenset(), ('ctrl', 'shift', 'c'))

    def test_auto_repeat_keeps_one_entry(self):
        mon = InputMonitor()
        mon._on_press(KeyCode('a'))
        mon._on_press(KeyCode('a'))
        assert mon.held()[1] == ('a',)
        mon._on_release(KeyCode('a'))
        assert mon.held()[1] == ()

    def test_symbol_released_after_shift_is_cleared(self):
        mon = InputMonitor()
        mon._on_press(Key.shift)
        mon._on_press(KeyCode('!'))
        assert mon.held()[1] == ('shift', '!')
        mon._on_release(Key.shift)
        mon._on_release(KeyCode('1'))
        assert mon.held() == (frozenset(), ())

    def test_letter_released_after_shift_is_cleared(self):
        mon = InputMonitor()
        mon._on_press(Key.shift)
        mon._on_press(KeyCode('A'))
        mon._on_release(Key.shift)
        mon._on_release(KeyCode('a'))
        assert mon.held()[1] == ()

    def test_vk_pairs_press_and_release(self):
        mon = InputMonitor()
        mon._on_press(KeyCode('!', vk=0x31))
        mon._on_release(KeyCode('1', vk=0x31))
        assert mon.held()[1] == ()

    def test_lone_function_key_after_symbol_chord(self):
        """A cleared symbol leaves the next reserved key alone in the held set."""
        mon = InputMonitor()
        mon._on_press(Key.shift)
        mon._on_press(KeyCode('@'))
        mon._on_release(Key.shift)
        mon._on_release(KeyCode('2'))
        mon._on_press(Key.f7)
        assert mon.held()[1] == ('f7',)

    def test_both_shifts_read_as_one(self):
        mon = InputMonitor()
        mon._on_press(Key.shift)
        mon._on_press(Key.shift_r)
        assert mon.held()[1] == ('shift',)
        mon._on_release(Key.shift)
        assert mon.held()[1] == ('shift',)
        mon._on_release(Key.shift_r)
        assert mon.held()[1] == ()

    def test_unknown_key_ignored(self):
        mon = InputMonitor()
        mon._on_press(KeyCode(None, vk=0xAD))
        mon._on_release(KeyCode('z'))
        assert mon.held()[1] == ()

    def test_buttons(self):
        mon = InputMonitor()
        mon._on_click(0, 0, button('left'), True)
        mon._on_click(0, 0, button('right'), True)
        mon._on_click(0, 0, button('x1'), True)
        assert mon.held()[0] == frozenset({'left', 'right'})
        mon._on_click(0, 0, button('left'), False)
        assert mon.held()[0] == frozenset({'right'})

    def test_start_and_stop(self):
        from macrohost.input import monitor
        monitor.keyboard.Listener.reset_mock()
        mon = InputMonitor()
        mon.start()
        assert mon.running
        kwargs = monitor.keyboard.Listener.call_args.kwargs
        assert kwargs['on_press'] == mon._on_press
        assert kwargs['on_release'] == mon._on_release

        mon._on_press(KeyCode('a'))
        mon.stop()
        assert not mon.running
        assert mon.held() == (frozenset(), ())


# ---------------------------------------------------------------------------
# Keyboard injection
# ---------------------------------------------------------------------------

class TestKeyboard:
    @pytest.mark.parametrize('name,platform,expected', [
        ('meta', 'darwin', 'command'),
        ('meta', 'linux', 'win'),
        ('meta', 'win32', 'win'),
        ('escape', 'linux', 'esc'),
        ('menu', 'win32', 'apps'),
        ('a', 'darwin', 'a'),
        ('ctrl', 'darwin', 'ctrl'),
    ])
    def test_to_pyautogui(self, name, platform, expected):
        assert kb.to_pyautogui(name, platform) == expected

    def test_hotkey_releases_in_reverse(self, pg, no_wait):
        kb.hotkey('ctrl', 'shift', 't')
        assert _key_events(pg) == [
            ('keyDown', 'ctrl'), ('keyDown', 'shift'), ('keyDown', 't'),
            ('keyUp', 't'), ('keyUp', 'shift'), ('keyUp', 'ctrl'),
        ]

    def test_press_key_translates_names(self, pg, no_wait):
        kb.press_key('Esc')
        assert _key_events(pg) == [('keyDown', 'esc'), ('keyUp', 'esc')]

    def test_unsupported_spec_touches_nothing(self, pg, no_wait):
        with pytest.raises(UnsupportedKeyError):
            kb.press_key('ctrl+hyper')
        assert _key_events(pg) == []


# ---------------------------------------------------------------------------
# Mouse injection
# ---------------------------------------------------------------------------

class TestMouse:
    def test_position_is_int(self, pg):
        pg.position.return_value = (12.0, 34.0)
        assert mouse.position() == (12, 34)

    def test_double_click(self, pg, no_wait):
        mouse.double_click('right')
        presses = [c for c in pg.mock_calls if c[0] in ('mouseDown', 'mouseUp')]
        assert [c[0] for c in presses] == ['mouseDown', 'mouseUp'] * 2
        assert all(c[2]['button'] == 'right' for c in presses)

    def test_move_to(self, pg):
        mouse.move_to(5, 6)
        pg.moveTo.assert_called_once_with(5, 6, _pause=False)


# ---------------------------------------------------------------------------
# DesktopDriver
# ---------------------------------------------------------------------------

class TestDesktopDriver:
    def test_sample_combines_monitor_and_pointer(self, pg):
        driver = DesktopDriver()
        driver._monitor._on_click(0, 0, button('left'), True)
        driver._monitor._on_press(Key.ctrl_l)
        sample = driver.sample()
        assert sample.position == (500, 500)
        assert sample.buttons == frozenset({'left'})
        assert sample.keys == ('ctrl',)

    def test_select_all_uses_platform_shortcut(self, pg, no_wait, monkeypatch):
        monkeypatch.setattr(sys, 'platform', 'darwin')
        DesktopDriver().select_all()
        assert _key_events(pg) == [
            ('keyDown', 'command'), ('keyDown', 'a'),
            ('keyUp', 'a'), ('keyUp', 'command'),
        ]


# ---------------------------------------------------------------------------
# SystemClipboard
# ---------------------------------------------------------------------------

class TestSystemClipboard:
    def test_non_ascii_round_trip_on_windows(self, monkeypatch):
        from macrohost.input import clipboard
        runs = []

        def fake_run(cmd, **kwargs):
            runs.append((cmd, kwargs))
            return SimpleNamespace(stdout='\ufeffcafé ☕'.encode('utf-8'))

        monkeypatch.setattr(clipboard.subprocess, 'run', fake_run)
        clip = clipboard.SystemClipboard(platform='win32')

        clip.set_text('café ☕')
        assert runs[0][1]['input'] == 'café ☕'.encode('utf-8')
        assert 'Set-Clipboard' in runs[0][0][-1]

        assert clip.get_text() == 'café ☕'
