"""Tests for live input recording (recording/recorder.py)."""

from __future__ import annotations

import asyncio
import itertools

import pytest

from macrohost.input.driver import InputSample
from macrohost.input.keys import parse_key_spec
from macrohost.recording import InputAggregator, Recorder
from macrohost.tests.conftest import connect


def S(buttons=(), keys=(), pos=(5, 6)) -> InputSample:
    return InputSample(position=pos, buttons=frozenset(buttons), keys=tuple(keys))


def _feed_all(agg: InputAggregator, samples: list[tuple[float, InputSample]]) -> list:
    """Feed (time, sample) pairs; return every step produced, in order."""
    steps = []
    for now, sample in samples:
        steps.extend(agg.feed(sample, now).steps)
    return steps


def _keys(steps) -> list[str]:
    return [s.payload['key'] for s in steps if s.kind == 'key_press']


# ---------------------------------------------------------------------------
# Click detection
# ---------------------------------------------------------------------------

class TestClickDetection:
    def test_press_edge_records_move_then_click(self):
        agg = InputAggregator()
        result = agg.feed(S(buttons={'left'}, pos=(40, 50)), 0.0)
        assert [s.kind for s in result.steps] == ['mouse_move', 'mouse_click']
        move, click = result.steps
        assert move.payload == {
            'type': 'mouse_move', 'x': 40, 'y': 50, 'wait_time': 0.2, 'randomize': False,
        }
        assert click.payload == {
            'type': 'mouse_click', 'button': 'left', 'wait_time': 0.5, 'randomize': False,
        }

    def test_held_button_records_once(self):
        agg = InputAggregator()
        steps = _feed_all(agg, [
            (0.0, S(buttons={'left'})),
            (0.05, S(buttons={'left'})),
            (0.5, S(buttons={'left'})),
        ])
        assert len(steps) == 2

    def test_cooldown_suppresses_quick_second_click(self):
        agg = InputAggregator()
        steps = _feed_all(agg, [
            (0.0, S(buttons={'left'})),
            (0.1, S()),
            (0.2, S(buttons={'left'})),   # inside cooldown
            (0.25, S()),
            (0.7, S(buttons={'left'})),   # after cooldown
        ])
        assert [s.kind for s in steps] == ['mouse_move', 'mouse_click'] * 2

    def test_button_held_through_cooldown_is_not_a_new_edge(self):
        agg = InputAggregator()
        steps = _feed_all(agg, [
            (0.0, S(buttons={'left'})),
            (0.1, S()),
            (0.2, S(buttons={'right'})),  # inside cooldown, still tracked
            (0.6, S(buttons={'right'})),
        ])
        assert len(steps) == 2

    def test_one_click_per_sample_left_first(self):
        agg = InputAggregator()
        result = agg.feed(S(buttons={'right', 'left', 'middle'}), 0.0)
        clicks = [s for s in result.steps if s.kind == 'mouse_click']
        assert [c.payload['button'] for c in clicks] == ['left']

    def test_middle_button(self):
        agg = InputAggregator()
        result = agg.feed(S(buttons={'middle'}), 0.0)
        assert result.steps[1].payload['button'] == 'middle'


# ---------------------------------------------------------------------------
# Key detection
# ---------------------------------------------------------------------------

class TestKeyDetection:
    def test_single_key(self):
        agg = InputAggregator()
        steps = _feed_all(agg, [(0.0, S(keys=['a'])), (0.1, S())])
        assert _keys(steps) == ['a']
        assert steps[0].payload['wait_time'] == 0.3
        assert steps[0].payload['randomize'] is False

    def test_combo_on_full_release(self):
        agg = InputAggregator()
        steps = _feed_all(agg, [
            (0.0, S(keys=['ctrl'])),
            (0.05, S(keys=['ctrl', 'c'])),
            (0.1, S()),
        ])
        assert _keys(steps) == ['ctrl+c']

    def test_modifiers_ordered_first(self):
        agg = InputAggregator()
        steps = _feed_all(agg, [
            (0.0, S(keys=['alt'])),
            (0.02, S(keys=['alt', 'ctrl'])),
            (0.04, S(keys=['alt', 'ctrl', 'delete'])),
            (0.1, S()),
        ])
        assert _keys(steps) == ['ctrl+alt+delete']

    def test_shift_makes_letters_upper(self):
        agg = InputAggregator()
        steps = _feed_all(agg, [
            (0.0, S(keys=['shift'])),
            (0.05, S(keys=['shift', 'a'])),
            (0.1, S()),
        ])
        assert _keys(steps) == ['shift+A']

    def test_partial_release_after_dwell_emits_once(self):
        agg = InputAggregator()
        steps = _feed_all(agg, [
            (0.0, S(keys=['ctrl'])),
            (0.1, S(keys=['ctrl', 'c'])),
            (0.5, S(keys=['ctrl'])),
            (0.6, S()),
        ])
        assert _keys(steps) == ['ctrl+c']

    def test_partial_release_before_dwell_waits_for_full_release(self):
        agg = InputAggregator()
        steps = _feed_all(agg, [
            (0.0, S(keys=['ctrl'])),
            (0.05, S(keys=['ctrl', 'c'])),
            (0.1, S(keys=['ctrl'])),
        ])
        assert steps == []
        steps = _feed_all(agg, [(0.2, S())])
        assert _keys(steps) == ['ctrl+c']

    def test_new_chord_after_partial_release_waits_for_dwell(self):
        agg = InputAggregator()
        steps = _feed_all(agg, [
            (0.0, S(keys=['ctrl'])),
            (0.1, S(keys=['ctrl', 'c'])),
            (0.5, S(keys=['ctrl'])),          # emits ctrl+c, ctrl still held
            (0.6, S(keys=['ctrl', 'v'])),
            (0.7, S(keys=['ctrl'])),          # only 0.1s since ctrl+v began
        ])
        assert _keys(steps) == ['ctrl+c']
        assert _keys(_feed_all(agg, [(0.8, S())])) == ['ctrl+v']

    def test_leftover_modifier_not_recorded_alone(self):
        agg = InputAggregator()
        steps = _feed_all(agg, [
            (0.0, S(keys=['ctrl'])),
            (0.05, S(keys=['ctrl', 'shift'])),
            (0.1, S(keys=['ctrl', 'shift', 's'])),
            (0.5, S(keys=['ctrl', 'shift'])),
            (0.6, S(keys=['ctrl'])),
            (0.7, S()),
        ])
        assert _keys(steps) == ['ctrl+shift+S']

    def test_five_key_chord_dropped(self):
        agg = InputAggregator()
        steps = _feed_all(agg, [
            (0.0, S(keys=['a', 'b', 'c', 'd', 'e'])),
            (0.1, S()),
        ])
        assert steps == []

    def test_recorded_combo_replays_through_parser(self):
        agg = InputAggregator()
        steps = _feed_all(agg, [
            (0.0, S(keys=['meta'])),
            (0.05, S(keys=['meta', 'shift'])),
            (0.1, S(keys=['meta', 'shift', 'z'])),
            (0.2, S()),
        ])
        assert _keys(steps) == ['shift+meta+Z']
        assert parse_key_spec(_keys(steps)[0]) == ('shift', 'meta', 'z')


# ---------------------------------------------------------------------------
# Reserved hotkeys
# ---------------------------------------------------------------------------

class TestReservedHotkeys:
    def test_sole_reserved_key_not_recorded(self):
        agg = InputAggregator()
        first = agg.feed(S(keys=['f7']), 0.0)
        held = agg.feed(S(keys=['f7']), 0.05)
        released = agg.feed(S(), 0.1)
        assert first.hotkey_pressed is True
        assert held.hotkey_pressed is False
        assert first.steps == held.steps == released.steps == []

    def test_reserved_sample_skips_clicks(self):
        agg = InputAggregator()
        result = agg.feed(S(buttons={'left'}, keys=['f7']), 0.0)
        assert result.steps == []
        # Button held since the skipped sample is not a new edge
        assert agg.feed(S(buttons={'left'}), 0.05).steps == []

    def test_reserved_key_in_combo_is_recorded(self):
        agg = InputAggregator()
        steps = _feed_all(agg, [
            (0.0, S(keys=['ctrl'])),
            (0.05, S(keys=['ctrl', 'f7'])),
            (0.1, S()),
        ])
        assert _keys(steps) == ['ctrl+f7']

    def test_reserved_key_left_held_is_not_a_new_press(self):
        agg = InputAggregator()
        agg.feed(S(keys=['a']), 0.0)
        agg.feed(S(keys=['a', 'f7']), 0.05)
        assert agg.feed(S(keys=['f7']), 0.1).hotkey_pressed is False

    def test_custom_reserved_set(self):
        agg = InputAggregator(reserved_hotkeys=frozenset({'f9'}))
        assert agg.feed(S(keys=['f9']), 0.0).hotkey_pressed is True
        agg.feed(S(), 0.05)
        steps = _feed_all(agg, [(0.1, S(keys=['f7'])), (0.2, S())])
        assert _keys(steps) == ['f7']


# ---------------------------------------------------------------------------
# Recorder loop
# ---------------------------------------------------------------------------

class TestRecorder:
    @pytest.mark.asyncio
    async def test_appends_and_broadcasts_until_stopped(self, state, driver):
        client = await connect(state, 'c1')
        driver.push_samples(
            S(buttons={'left'}, pos=(7, 8)),
            S(),
            S(keys=['f7']),
            S(),
        )
        calls = itertools.count(1)

        async def sleep(seconds):
            if next(calls) == 6:
                async with state.lock:
                    state.end_recording()
            await asyncio.sleep(0)

        clock = itertools.count(0.0, 0.05)
        async with state.lock:
            record_id = state.begin_recording()
        recorder = Recorder(state, driver, sleep=sleep, clock=lambda: next(clock))

        recorded = await recorder.run(record_id)
        await client.flush()

        assert recorded == 2
        assert [s.kind for s in state.steps] == ['mouse_move', 'mouse_click']
        assert state.steps[0].payload['x'] == 7
        assert state.recording_toggle_pending is True
        # One steps_updated per appended step
        updates = client.events('steps_updated')
        assert [len(u['data']['steps']) for u in updates] == [1, 2]

    @pytest.mark.asyncio
    async def test_sample_errors_do_not_stop_loop(self, state, driver):
        driver.fail_on = {'sample'}
        calls = itertools.count(1)

        async def sleep(seconds):
            if next(calls) == 3:
                async with state.lock:
                    state.end_recording()
            await asyncio.sleep(0)

        async with state.lock:
            record_id = state.begin_recording()
        recorder = Recorder(state, driver, sleep=sleep)

        assert await recorder.run(record_id) == 0
        assert state.steps == []

    @pytest.mark.asyncio
    async def test_exits_when_record_id_is_stale(self, state, driver):
        async with state.lock:
            old = state.begin_recording()
            state.end_recording()
            state.begin_recording()
        recorder = Recorder(state, driver, sleep=lambda s: asyncio.sleep(0))
        assert await recorder.run(old) == 0
