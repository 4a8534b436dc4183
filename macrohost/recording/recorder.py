"""Live input recording.

Two layers:
  InputAggregator  - pure: turns a stream of InputSamples into macro steps
  Recorder         - async: polls the driver while recording is on, appends
                     derived steps to the session and broadcasts them

Derivation rules:
  * A press edge on left/right/middle (one per sample, in that priority)
    records a mouse_move to the pointer followed by a mouse_click. New clicks
    are ignored for a short cooldown afterwards.
  * Keys are buffered from the first press until everything is released,
    then recorded as one key_press ('ctrl+c', 'a'). A 2-4 key chord held
    past the dwell time is also recorded as soon as any key of it lets go.
  * A reserved hotkey pressed on its own is never recorded; its press edge
    is reported so the caller can suppress the select-all that follows.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from macrohost import messages
from macrohost.config import (
    DEFAULT_RESERVED_HOTKEYS,
    RECORD_CLICK_COOLDOWN_SEC,
    RECORD_CLICK_WAIT,
    RECORD_COMBO_DWELL_SEC,
    RECORD_KEY_WAIT,
    RECORD_MAX_COMBO_KEYS,
    RECORD_MIN_COMBO_KEYS,
    RECORD_MOVE_WAIT,
    RECORD_POLL_INTERVAL,
)
from macrohost.input.driver import InputDriver, InputSample
from macrohost.input.keys import format_combo
from macrohost.models import KEY_PRESS, MOUSE_CLICK, MOUSE_MOVE, MacroStep
from macrohost.session import SessionState

log = logging.getLogger(__name__)

# Click detection priority
_CLICK_BUTTONS = ('left', 'right', 'middle')


@dataclass
class FeedResult:
    """What one sample produced."""
    steps: list[MacroStep] = field(default_factory=list)
    hotkey_pressed: bool = False  # press edge of a lone reserved key


# ---------------------------------------------------------------------------
# InputAggregator
# ---------------------------------------------------------------------------

class InputAggregator:
    """Stateful sample -> step derivation. No I/O, no clock of its own."""

    def __init__(
        self,
        reserved_hotkeys: frozenset[str] = DEFAULT_RESERVED_HOTKEYS,
        click_cooldown: float = RECORD_CLICK_COOLDOWN_SEC,
        combo_dwell: float = RECORD_COMBO_DWELL_SEC,
    ) -> None:
        self._reserved = frozenset(k.lower() for k in reserved_hotkeys)
        self._click_cooldown = click_cooldown
        self._combo_dwell = combo_dwell

        self._last_buttons: frozenset[str] = frozenset()
        self._last_keys: tuple[str, ...] = ()
        self._last_click_at: float | None = None

        self._buffer: list[str] = []
        self._buffer_started: float = 0.0

    def feed(self, sample: InputSample, now: float) -> FeedResult:
        result = FeedResult()
        keys = sample.keys

        if len(keys) == 1 and keys[0] in self._reserved:
            result.hotkey_pressed = keys[0] not in self._last_keys
            if result.hotkey_pressed:
                log.info('Reserved hotkey %s pressed, not recorded', keys[0])
            self._last_keys = keys
            self._last_buttons = sample.buttons
            return result

        self._detect_click(sample, now, result)
        self._detect_keys(keys, now, result)
        self._last_buttons = sample.buttons
        self._last_keys = keys
        return result

    # -- mouse --------------------------------------------------------------

    def _detect_click(self, sample: InputSample, now: float, result: FeedResult) -> None:
        if self._last_click_at is not None:
            if now - self._last_click_at <= self._click_cooldown:
                return
            self._last_click_at = None

        for button in _CLICK_BUTTONS:
            if button in sample.buttons and button not in self._last_buttons:
                x, y = sample.position
                result.steps.append(MacroStep.create(MOUSE_MOVE, {
                    'type': MOUSE_MOVE,
                    'x': x,
                    'y': y,
                    'wait_time': RECORD_MOVE_WAIT,
                    'randomize': False,
                }))
                result.steps.append(MacroStep.create(MOUSE_CLICK, {
                    'type': MOUSE_CLICK,
                    'button': button,
                    'wait_time': RECORD_CLICK_WAIT,
                    'randomize': False,
                }))
                self._last_click_at = now
                log.debug('Recorded %s click at (%d, %d)', button, x, y)
                return

    # -- keyboard -----------------------------------------------------------

    def _detect_keys(self, keys: tuple[str, ...], now: float, result: FeedResult) -> None:
        if not keys:
            if self._buffer:
                self._flush(result)
            return
        if set(keys) == set(self._last_keys) and len(keys) == len(self._last_keys):
            return

        if not self._buffer:
            # A chord starts on a new press. Keys left held after a
            # partial-release emission start nothing on their own.
            if any(k not in self._last_keys for k in keys):
                self._buffer = list(keys)
                self._buffer_started = now
            return

        for key in keys:
            if key not in self._buffer:
                self._buffer.append(key)

        # Partial release of a held chord
        if (RECORD_MIN_COMBO_KEYS <= len(self._buffer) <= RECORD_MAX_COMBO_KEYS
                and now - self._buffer_started >= self._combo_dwell
                and len(keys) < len(self._buffer)):
            self._emit(self._buffer, result)
            self._buffer = []

    def _flush(self, result: FeedResult) -> None:
        """Everything released: record the buffer if it is a usable size."""
        size = len(self._buffer)
        if size == 1 or RECORD_MIN_COMBO_KEYS <= size <= RECORD_MAX_COMBO_KEYS:
            self._emit(self._buffer, result)
        else:
            log.debug('Dropping %d-key chord %s', size, '+'.join(self._buffer))
        self._buffer = []

    def _emit(self, keys: list[str], result: FeedResult) -> None:
        spec = format_combo(keys, shift_held=len(keys) > 1 and 'shift' in keys)
        result.steps.append(MacroStep.create(KEY_PRESS, {
            'type': KEY_PRESS,
            'key': spec,
            'wait_time': RECORD_KEY_WAIT,
            'randomize': False,
        }))
        log.debug('Recorded key %s', spec)


# ---------------------------------------------------------------------------
# Recorder
# ---------------------------------------------------------------------------

class Recorder:
    """Polls the driver while its recording session is current."""

    def __init__(
        self,
        state: SessionState,
        driver: InputDriver,
        reserved_hotkeys: frozenset[str] = DEFAULT_RESERVED_HOTKEYS,
        poll_interval: float = RECORD_POLL_INTERVAL,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._state = state
        self._driver = driver
        self._reserved = reserved_hotkeys
        self._poll_interval = poll_interval
        self._sleep = sleep
        self._clock = clock

    async def run(self, record_id: int) -> int:
        """Record until recording stops. Returns the number of steps recorded."""
        state = self._state
        aggregator = InputAggregator(self._reserved)
        loop = asyncio.get_running_loop()
        recorded = 0
        log.info('Recorder %d started', record_id)

        while True:
            async with state.lock:
                if not state.recording_active(record_id):
                    break
            try:
                sample = await loop.run_in_executor(None, self._driver.sample)
            except Exception:
                log.exception('Recorder %d: sample failed', record_id)
                await self._sleep(self._poll_interval)
                continue

            result = aggregator.feed(sample, self._clock())
            if result.steps or result.hotkey_pressed:
                async with state.lock:
                    # Recording may have stopped while the sample was taken
                    if not state.recording_active(record_id):
                        break
                    if result.hotkey_pressed:
                        state.recording_toggle_pending = True
                    for step in result.steps:
                        state.steps.append(step)
                        state.clients.broadcast(messages.steps_updated(state.steps))
                recorded += len(result.steps)

            await self._sleep(self._poll_interval)

        log.info('Recorder %d stopped (%d steps)', record_id, recorded)
        return recorded
