"""
WebSocket event envelopes for the macrohost protocol.

Pure functions, no side effects, no I/O. Each builder returns the JSON text
of one {"type": <event>, "data": <payload>} frame.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable

from macrohost.models import MacroStep, RandomTimingConfig

log = logging.getLogger(__name__)

# Event names
STATUS_UPDATE = 'status_update'
STEPS_UPDATED = 'steps_updated'
MOUSE_POSITION = 'mouse_position'
STEP_EXECUTING = 'step_executing'
AUTOMATION_COMPLETED = 'automation_completed'
RANDOM_TIMING_UPDATED = 'random_timing_updated'
ACTION_COMPLETED = 'action_completed'
CLIPBOARD_TEXT = 'clipboard_text'

# action_completed statuses
SUCCESS = 'success'
ERROR = 'error'
SKIPPED = 'skipped'


def event(event_type: str, data: dict) -> str:
    """Serialize one outbound frame."""
    return json.dumps({'type': event_type, 'data': data})


def parse_message(text: str) -> dict | None:
    """Parse an inbound frame. Returns None for non-JSON or non-object frames."""
    try:
        msg = json.loads(text)
    except (TypeError, ValueError):
        log.warning('Non-JSON message received: %.200s', text)
        return None
    if not isinstance(msg, dict):
        log.warning('Ignoring non-object message: %.200s', text)
        return None
    return msg


# ---------------------------------------------------------------------------
# Session events
# ---------------------------------------------------------------------------


def status_update(status: str, message: str) -> str:
    return event(STATUS_UPDATE, {'status': status, 'message': message})


def steps_updated(steps: Iterable[MacroStep]) -> str:
    return event(STEPS_UPDATED, {'steps': [s.to_dict() for s in steps]})


def random_timing_updated(timing: RandomTimingConfig) -> str:
    return event(RANDOM_TIMING_UPDATED, timing.to_dict())


def mouse_position(x: int, y: int) -> str:
    return event(MOUSE_POSITION, {'x': x, 'y': y})


# ---------------------------------------------------------------------------
# Execution progress
# ---------------------------------------------------------------------------


def step_executing(
    index: int,
    total_steps: int,
    completed_steps: int,
    loop_index: int,
    total_loops: int,
) -> str:
    """Progress for one step.

    index is the step's position in the full (unfiltered) list.
    """
    return event(STEP_EXECUTING, {
        'index': index,
        'total_steps': total_steps,
        'completed_steps': completed_steps,
        'loop_index': loop_index,
        'total_loops': total_loops,
    })


def automation_completed(completed_loops: int, total_loops: int) -> str:
    return event(AUTOMATION_COMPLETED, {
        'completed_loops': completed_loops,
        'total_loops': total_loops,
    })


# ---------------------------------------------------------------------------
# Command replies
# ---------------------------------------------------------------------------


def action_completed(action: str, status: str, **extra: object) -> str:
    data: dict = {'action': action, 'status': status}
    data.update(extra)
    return event(ACTION_COMPLETED, data)


def clipboard_text(text: str) -> str:
    return event(CLIPBOARD_TEXT, {'text': text})
