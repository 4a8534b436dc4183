"""Protocol dispatcher: one inbound frame -> state change + events.

Two message shapes share the socket:
  {"command": name, ...params}     device commands, reply to the sender only
  {"type": name, "data": {...}}    session events, mostly broadcast

`command` wins when both are present. Unknown names are logged and ignored.
Execution passes and recorders are spawned as tasks tracked here so the
server can cancel them on shutdown.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from macrohost import messages
from macrohost.config import (
    DEFAULT_LOOP_COUNT,
    DEFAULT_RESERVED_HOTKEYS,
    RECORD_POLL_INTERVAL,
    SHORTCUT_SETTLE_SEC,
)
from macrohost.executor import ExecutionEngine
from macrohost.input.driver import ClipboardService, InputDriver
from macrohost.input.keys import UnsupportedKeyError
from macrohost.models import MacroStep, RandomTimingConfig, parse_steps
from macrohost.recording import Recorder
from macrohost.session import SessionState

log = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]

_RECORDING_MESSAGE = 'Recording started - Capturing mouse clicks and keyboard presses'
_SELECT_ALL_SKIPPED = 'Select All skipped because it followed a recording hotkey'


def parse_loop_count(value: object) -> int:
    """Integer loop count; anything else means the default. Negative means zero."""
    if isinstance(value, bool) or not isinstance(value, int):
        return DEFAULT_LOOP_COUNT
    return max(value, 0)


class ProtocolDispatcher:
    """Routes parsed frames to handlers. One instance per server."""

    def __init__(
        self,
        state: SessionState,
        driver: InputDriver,
        clipboard: ClipboardService,
        reserved_hotkeys: frozenset[str] = DEFAULT_RESERVED_HOTKEYS,
        record_poll_interval: float = RECORD_POLL_INTERVAL,
        settle_sec: float = SHORTCUT_SETTLE_SEC,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self._state = state
        self._driver = driver
        self._clipboard = clipboard
        self._reserved = reserved_hotkeys
        self._record_poll_interval = record_poll_interval
        self._settle_sec = settle_sec
        self._sleep = sleep

        self._engine = ExecutionEngine(state, driver, sleep=sleep)
        self._tasks: set[asyncio.Task] = set()

        self._commands: dict[str, Callable[[str, dict], Awaitable[None]]] = {
            'get_clipboard': self._cmd_get_clipboard,
            'set_clipboard': self._cmd_set_clipboard,
            'perform_select_all': self._cmd_select_all,
            'key_press': self._cmd_key_press,
            'perform_copy': self._cmd_copy,
            'perform_paste': self._cmd_paste,
        }
        self._events: dict[str, Callable[[str, dict], Awaitable[None]]] = {
            'get_steps': self._on_get_steps,
            'get_random_timing': self._on_get_random_timing,
            'clear_steps': self._on_clear_steps,
            'add_step': self._on_add_step,
            'run_automation': self._on_run_automation,
            'run_selected_steps': self._on_run_selected_steps,
            'stop_automation': self._on_stop_automation,
            'start_recording': self._on_start_recording,
            'stop_recording': self._on_stop_recording,
            'toggle_recording': self._on_toggle_recording,
            'update_random_timing': self._on_update_random_timing,
            'update_steps_order': self._on_update_steps_order,
        }

    @property
    def tasks(self) -> set[asyncio.Task]:
        """Background passes and recorders still running."""
        return {t for t in self._tasks if not t.done()}

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def handle_message(self, client_id: str, text: str) -> None:
        msg = messages.parse_message(text)
        if msg is None:
            return

        command = msg.get('command')
        if isinstance(command, str):
            handler = self._commands.get(command)
            if handler is None:
                log.warning('Unknown command %r from %s', command, client_id)
                return
            log.info('Command %s from %s', command, client_id)
            await handler(client_id, msg)
            return

        event_type = msg.get('type')
        if isinstance(event_type, str):
            handler = self._events.get(event_type)
            if handler is None:
                log.warning('Unknown event type %r from %s', event_type, client_id)
                return
            data = msg.get('data')
            log.debug('Event %s from %s', event_type, client_id)
            await handler(client_id, data if isinstance(data, dict) else {})
            return

        log.warning('Message from %s has neither command nor type', client_id)

    async def shutdown(self) -> None:
        """Stop any pass and recording, then cancel and await background tasks."""
        async with self._state.lock:
            self._state.request_stop()
            self._state.end_recording()
        tasks = self.tasks
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _reply(self, client_id: str, text: str) -> None:
        async with self._state.lock:
            self._state.clients.unicast(client_id, text)

    async def _broadcast(self, text: str) -> None:
        async with self._state.lock:
            self._state.clients.broadcast(text)

    async def _device(self, func: Callable, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    def _spawn(self, coro: Awaitable, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # ------------------------------------------------------------------
    # Commands (reply to sender only)
    # ------------------------------------------------------------------

    async def _cmd_get_clipboard(self, client_id: str, msg: dict) -> None:
        try:
            text = await self._device(self._clipboard.get_text)
        except Exception as exc:
            log.warning('Clipboard read failed: %s', exc)
            text = ''
        await self._reply(client_id, messages.clipboard_text(text))

    async def _cmd_set_clipboard(self, client_id: str, msg: dict) -> None:
        text = msg.get('text')
        if not isinstance(text, str):
            log.debug('set_clipboard without text ignored')
            return
        try:
            await self._device(self._clipboard.set_text, text)
            status = messages.SUCCESS
        except Exception as exc:
            log.warning('Clipboard write failed: %s', exc)
            status = messages.ERROR
        await self._reply(client_id, messages.action_completed('set_clipboard', status))

    async def _cmd_select_all(self, client_id: str, msg: dict) -> None:
        async with self._state.lock:
            if self._state.recording_toggle_pending:
                self._state.recording_toggle_pending = False
                log.info('Select all skipped after recording toggle')
                self._state.clients.unicast(client_id, messages.action_completed(
                    'select_all', messages.SKIPPED, message=_SELECT_ALL_SKIPPED,
                ))
                return
        try:
            await self._device(self._driver.select_all)
            status = messages.SUCCESS
        except Exception as exc:
            log.warning('Select all failed: %s', exc)
            status = messages.ERROR
        await self._reply(client_id, messages.action_completed('select_all', status))

    async def _cmd_key_press(self, client_id: str, msg: dict) -> None:
        key = msg.get('key')
        if not isinstance(key, str) or not key:
            log.debug('key_press without key ignored')
            return
        extra: dict = {'key': key}
        try:
            await self._device(self._driver.press_key, key)
            status = messages.SUCCESS
        except UnsupportedKeyError as exc:
            log.warning('key_press: %s', exc)
            status = messages.ERROR
            extra['message'] = str(exc)
        except Exception as exc:  # device failure
            log.warning('key_press %r failed: %s', key, exc)
            status = messages.ERROR
            extra['message'] = str(exc)
        await self._reply(client_id, messages.action_completed('key_press', status, **extra))

    async def _cmd_copy(self, client_id: str, msg: dict) -> None:
        try:
            await self._device(self._driver.select_all)
            await self._sleep(self._settle_sec)
            await self._device(self._driver.copy)
            await self._sleep(self._settle_sec)
            text = await self._device(self._clipboard.get_text)
            status = messages.SUCCESS
        except Exception as exc:
            log.warning('Copy failed: %s', exc)
            text = ''
            status = messages.ERROR
        await self._reply(client_id, messages.action_completed(
            'copy', status, clipboard_text=text,
        ))

    async def _cmd_paste(self, client_id: str, msg: dict) -> None:
        text = msg.get('text')
        try:
            if isinstance(text, str) and text:
                await self._device(self._clipboard.set_text, text)
                await self._sleep(self._settle_sec)
            await self._device(self._driver.paste)
            status = messages.SUCCESS
        except Exception as exc:
            log.warning('Paste failed: %s', exc)
            status = messages.ERROR
        await self._reply(client_id, messages.action_completed('paste', status))

    # ------------------------------------------------------------------
    # Session events
    # ------------------------------------------------------------------

    async def _on_get_steps(self, client_id: str, data: dict) -> None:
        async with self._state.lock:
            self._state.clients.unicast(client_id, messages.steps_updated(self._state.steps))

    async def _on_get_random_timing(self, client_id: str, data: dict) -> None:
        async with self._state.lock:
            self._state.clients.unicast(
                client_id, messages.random_timing_updated(self._state.timing),
            )

    async def _on_clear_steps(self, client_id: str, data: dict) -> None:
        async with self._state.lock:
            self._state.steps = []
            self._state.clients.broadcast(messages.steps_updated(self._state.steps))
        log.info('Steps cleared')

    async def _on_add_step(self, client_id: str, data: dict) -> None:
        if not data:
            log.debug('add_step without data ignored')
            return
        step = MacroStep.from_add_step(data)
        async with self._state.lock:
            self._state.steps.append(step)
            self._state.clients.broadcast(messages.steps_updated(self._state.steps))
        log.info('Added %s step %s', step.kind, step.id)

    async def _on_run_automation(self, client_id: str, data: dict) -> None:
        loop_count = parse_loop_count(data.get('loop_count'))
        inline = data.get('steps')
        async with self._state.lock:
            steps = parse_steps(inline) if isinstance(inline, list) else self._state.snapshot_steps()
            run_id = self._begin_run_locked(client_id)
            if run_id is None:
                return
            self._state.clients.broadcast(messages.status_update(
                'running', f'Running automation with {loop_count} loops',
            ))
        self._spawn(self._engine.run_pass(run_id, steps, loop_count), name=f'run-{run_id}')

    async def _on_run_selected_steps(self, client_id: str, data: dict) -> None:
        loop_count = parse_loop_count(data.get('loop_count'))
        inline = data.get('steps')
        step_ids = data.get('step_ids')
        selected: list[str] | None = None

        if isinstance(inline, list) and inline:
            steps = parse_steps(inline)
            count = len(inline)
        elif isinstance(step_ids, list) and step_ids:
            selected = [i for i in step_ids if isinstance(i, str)]
            if not selected:
                log.debug('run_selected_steps with no usable ids ignored')
                return
            steps = None
            count = len(selected)
        else:
            log.debug('run_selected_steps without steps or step_ids ignored')
            return

        async with self._state.lock:
            if steps is None:
                steps = self._state.snapshot_steps()
            run_id = self._begin_run_locked(client_id)
            if run_id is None:
                return
            self._state.clients.broadcast(messages.status_update(
                'running', f'Running {count} selected steps',
            ))
        self._spawn(
            self._engine.run_pass(run_id, steps, loop_count, selected_ids=selected),
            name=f'run-{run_id}',
        )

    def _begin_run_locked(self, client_id: str) -> int | None:
        run_id = self._state.begin_run()
        if run_id is None:
            log.info('Run request from %s rejected: already running', client_id)
            self._state.clients.unicast(
                client_id, messages.status_update('running', 'Automation already running'),
            )
        return run_id

    async def _on_stop_automation(self, client_id: str, data: dict) -> None:
        async with self._state.lock:
            stopped = self._state.request_stop()
            self._state.clients.broadcast(messages.status_update('stopped', 'Automation stopped'))
        log.info('Stop requested (%s)', 'run halted' if stopped else 'nothing running')

    async def _on_start_recording(self, client_id: str, data: dict) -> None:
        async with self._state.lock:
            self._start_recording_locked()

    async def _on_stop_recording(self, client_id: str, data: dict) -> None:
        async with self._state.lock:
            self._stop_recording_locked()

    async def _on_toggle_recording(self, client_id: str, data: dict) -> None:
        async with self._state.lock:
            if self._state.is_recording:
                self._stop_recording_locked()
            else:
                self._start_recording_locked()

    def _start_recording_locked(self) -> None:
        record_id = self._state.begin_recording()
        if record_id is None:
            log.debug('start_recording while recording ignored')
            return
        self._state.recording_toggle_pending = True
        recorder = Recorder(
            self._state,
            self._driver,
            reserved_hotkeys=self._reserved,
            poll_interval=self._record_poll_interval,
        )
        self._spawn(recorder.run(record_id), name=f'recorder-{record_id}')
        self._state.clients.broadcast(messages.status_update('recording', _RECORDING_MESSAGE))
        log.info('Recording started')

    def _stop_recording_locked(self) -> None:
        if not self._state.end_recording():
            log.debug('stop_recording while idle ignored')
            return
        self._state.recording_toggle_pending = True
        self._state.clients.broadcast(messages.status_update('idle', 'Recording stopped'))
        log.info('Recording stopped')

    async def _on_update_random_timing(self, client_id: str, data: dict) -> None:
        if not data:
            log.debug('update_random_timing without data ignored')
            return
        timing = RandomTimingConfig.from_dict(data)
        async with self._state.lock:
            self._state.timing = timing
            self._state.clients.broadcast(messages.random_timing_updated(timing))
        log.info(
            'Random timing: enabled=%s min=%s max=%s',
            timing.enabled, timing.min_factor, timing.max_factor,
        )

    async def _on_update_steps_order(self, client_id: str, data: dict) -> None:
        items = data.get('steps')
        if not isinstance(items, list):
            log.debug('update_steps_order without steps ignored')
            return
        steps = parse_steps(items)
        async with self._state.lock:
            self._state.steps = steps
            self._state.clients.broadcast(messages.steps_updated(self._state.steps))
        log.info('Steps reordered (%d steps)', len(steps))
