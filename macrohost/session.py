"""Process-wide automation session state.

One SessionState per server. Every field is read and written only while
holding `lock`; the transition methods below assume the caller holds it.
Never hold the lock across an input driver or clipboard call.

Run states:    IDLE -> RUNNING -> STOPPED -> IDLE
Record states: IDLE -> RECORDING -> IDLE
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum

from macrohost.gateway import ClientRegistry
from macrohost.models import MacroStep, RandomTimingConfig

log = logging.getLogger(__name__)


class RunState(Enum):
    IDLE = 'idle'
    RUNNING = 'running'
    STOPPED = 'stopped'


class RecordState(Enum):
    IDLE = 'idle'
    RECORDING = 'recording'


class SessionState:
    """Shared mutable record: steps, run/record state, timing, clients."""

    def __init__(self, allow_concurrent_runs: bool = False) -> None:
        self.lock = asyncio.Lock()
        self.steps: list[MacroStep] = []
        self.timing = RandomTimingConfig()
        self.clients = ClientRegistry()
        # One-shot: suppresses the next perform_select_all after a hotkey toggle
        self.recording_toggle_pending = False

        self.allow_concurrent_runs = allow_concurrent_runs
        self.run_state = RunState.IDLE
        self.record_state = RecordState.IDLE
        self._run_id = 0
        self._record_id = 0

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self.run_state is RunState.RUNNING

    @property
    def is_recording(self) -> bool:
        return self.record_state is RecordState.RECORDING

    def snapshot_steps(self) -> list[MacroStep]:
        return list(self.steps)

    # ------------------------------------------------------------------
    # Execution passes
    # ------------------------------------------------------------------

    def begin_run(self) -> int | None:
        """Enter RUNNING. Returns the new run id, or None if a pass is already running."""
        if self.is_running and not self.allow_concurrent_runs:
            return None
        self._run_id += 1
        self.run_state = RunState.RUNNING
        return self._run_id

    def run_active(self, run_id: int) -> bool:
        """True while the given pass should keep going."""
        if not self.is_running:
            return False
        # Concurrent passes share one RUNNING flag; stop halts all of them
        return self.allow_concurrent_runs or run_id == self._run_id

    def request_stop(self) -> bool:
        """RUNNING -> STOPPED. Returns False if nothing was running."""
        if not self.is_running:
            return False
        self.run_state = RunState.STOPPED
        return True

    def finish_run(self, run_id: int) -> bool:
        """Back to IDLE if run_id is still the latest pass."""
        if run_id != self._run_id:
            return False
        self.run_state = RunState.IDLE
        return True

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def begin_recording(self) -> int | None:
        """Enter RECORDING. Returns the new record id, or None if already recording."""
        if self.is_recording:
            return None
        self._record_id += 1
        self.record_state = RecordState.RECORDING
        return self._record_id

    def recording_active(self, record_id: int) -> bool:
        return self.is_recording and record_id == self._record_id

    def end_recording(self) -> bool:
        """RECORDING -> IDLE. Returns False if not recording."""
        if not self.is_recording:
            return False
        self.record_state = RecordState.IDLE
        return True

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    def status(self) -> dict:
        return {
            'is_running': self.is_running,
            'is_recording': self.is_recording,
            'run_state': self.run_state.value,
            'record_state': self.record_state.value,
            'step_count': len(self.steps),
            'client_count': len(self.clients),
            'random_timing': self.timing.to_dict(),
        }
