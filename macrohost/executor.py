"""Execution engine: replays a step list against the input driver.

Usage:
    engine = ExecutionEngine(state, driver)
    run_id = state.begin_run()          # caller holds state.lock
    asyncio.create_task(engine.run_pass(run_id, steps, loop_count))

A pass checks that it still owns the run before every iteration and every
step, so a stop takes effect at the next step boundary. Sleeps are not
interrupted.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable, Iterable

from macrohost import messages
from macrohost.input.driver import InputDriver
from macrohost.input.keys import UnsupportedKeyError
from macrohost.models import (
    GROUP,
    KEY_PRESS,
    MOUSE_CLICK,
    MOUSE_DOUBLE_CLICK,
    MOUSE_MOVE,
    WAIT,
    MacroStep,
)
from macrohost.session import SessionState

log = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


class ExecutionEngine:
    """Runs execution passes for one session."""

    def __init__(
        self,
        state: SessionState,
        driver: InputDriver,
        sleep: SleepFunc = asyncio.sleep,
        rng: random.Random | None = None,
    ):
        """
        state: shared session (lock, run state, timing, clients)
        driver: device backend; called only from the default executor
        sleep: awaitable sleep, replaceable in tests
        rng: source for randomized waits (module random when None)
        """
        self._state = state
        self._driver = driver
        self._sleep = sleep
        self._rng = rng

    async def run_pass(
        self,
        run_id: int,
        steps: list[MacroStep],
        loop_count: int,
        selected_ids: Iterable[str] | None = None,
    ) -> int:
        """Execute steps loop_count times. Returns the number of loops completed.

        steps is the full list; when selected_ids is given only those steps
        run, in list order, and step_executing.index still refers to the
        full list.
        """
        state = self._state
        full = list(steps)
        if selected_ids is not None:
            wanted = set(selected_ids)
            plan = [(i, s) for i, s in enumerate(full) if s.id in wanted]
        else:
            plan = list(enumerate(full))

        total_loops = max(loop_count, 0)
        completed_loops = 0
        stopped = False
        log.info('Run %d: %d steps x %d loops', run_id, len(plan), total_loops)

        try:
            for loop_index in range(total_loops):
                if not await self._active(run_id):
                    stopped = True
                    break
                for position, (index, step) in enumerate(plan):
                    async with state.lock:
                        if not state.run_active(run_id):
                            stopped = True
                            break
                        state.clients.broadcast(messages.step_executing(
                            index=index,
                            total_steps=len(plan),
                            completed_steps=position,
                            loop_index=loop_index,
                            total_loops=total_loops,
                        ))
                    await self._perform(step)
                    await self._sleep(await self._wait_for(step))
                if stopped:
                    break
                completed_loops += 1
        except asyncio.CancelledError:
            stopped = True
            log.info('Run %d cancelled', run_id)
            raise
        except Exception:
            stopped = True
            log.exception('Run %d crashed', run_id)
        finally:
            async with state.lock:
                state.clients.broadcast(
                    messages.automation_completed(completed_loops, total_loops),
                )
                if state.finish_run(run_id):
                    state.clients.broadcast(messages.status_update(
                        'idle',
                        'Automation stopped' if stopped else 'Automation completed',
                    ))
            log.info('Run %d finished: %d/%d loops', run_id, completed_loops, total_loops)

        return completed_loops

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _active(self, run_id: int) -> bool:
        async with self._state.lock:
            return self._state.run_active(run_id)

    async def _wait_for(self, step: MacroStep) -> float:
        wait = step.wait_time
        if not step.randomize:
            return wait
        async with self._state.lock:
            timing = self._state.timing
        factor = timing.draw_factor(self._rng)
        log.debug('Randomized wait %.2fs (base %.2fs, factor %.2f)', wait * factor, wait, factor)
        return wait * factor

    async def _perform(self, step: MacroStep) -> None:
        """Run the step's device action in a worker thread. Never raises on device errors."""
        action = self._action_for(step)
        if action is None:
            return
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, action)
        except UnsupportedKeyError as exc:
            log.warning('Step %s: %s', step.id, exc)
        except Exception as exc:
            log.warning('Step %s (%s) failed: %s', step.id, step.kind, exc)

    def _action_for(self, step: MacroStep) -> Callable[[], None] | None:
        driver = self._driver
        kind = step.kind
        if kind == MOUSE_MOVE:
            pos = step.position
            if pos is None:
                log.debug('Step %s: mouse_move without numeric x/y', step.id)
                return None
            return lambda: driver.move_to(*pos)
        if kind == MOUSE_CLICK:
            button = step.button
            return lambda: driver.click(button)
        if kind == MOUSE_DOUBLE_CLICK:
            button = step.button
            return lambda: driver.double_click(button)
        if kind == KEY_PRESS:
            key = step.key
            if key is None:
                log.debug('Step %s: key_press without key', step.id)
                return None
            return lambda: driver.press_key(key)
        if kind in (WAIT, GROUP):
            return None
        log.info('Step %s: unknown kind %r, skipping', step.id, kind)
        return None
