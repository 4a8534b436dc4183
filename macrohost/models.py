"""Macro data structures: step definitions and random timing config."""

from __future__ import annotations

import logging
import random
import uuid
from dataclasses import dataclass, field

from macrohost.config import DEFAULT_RANDOM_MAX, DEFAULT_RANDOM_MIN, DEFAULT_WAIT_TIME

log = logging.getLogger(__name__)

# Step kinds
MOUSE_MOVE = 'mouse_move'
MOUSE_CLICK = 'mouse_click'
MOUSE_DOUBLE_CLICK = 'mouse_double_click'
KEY_PRESS = 'key_press'
WAIT = 'wait'
GROUP = 'group'

KNOWN_KINDS = frozenset({
    MOUSE_MOVE, MOUSE_CLICK, MOUSE_DOUBLE_CLICK, KEY_PRESS, WAIT, GROUP,
})

BUTTONS = ('left', 'right', 'middle')


def new_step_id() -> str:
    return str(uuid.uuid4())


def _number(value: object) -> float | None:
    """Return value as a float if it is a real number (bools excluded)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


# ---------------------------------------------------------------------------
# MacroStep
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MacroStep:
    """One recorded or authored action.

    Wire form is {"id": ..., "type": <kind>, "data": <payload>}.
    """

    id: str
    kind: str
    payload: dict = field(default_factory=dict)

    @staticmethod
    def create(kind: str, payload: dict) -> MacroStep:
        """New step with a fresh id."""
        return MacroStep(id=new_step_id(), kind=kind, payload=dict(payload))

    @staticmethod
    def from_add_step(data: dict) -> MacroStep:
        """Build a new step from an add_step message body.

        Kind comes from data.step_type, then data.type. The payload is
        data.data when that is an object, otherwise the whole body.
        """
        kind = data.get('step_type') or data.get('type') or 'unknown'
        if not isinstance(kind, str):
            kind = 'unknown'
        nested = data.get('data')
        payload = nested if isinstance(nested, dict) else data
        return MacroStep.create(kind, payload)

    @staticmethod
    def from_dict(d: object) -> MacroStep | None:
        """Parse a wire dict, keeping its id. Returns None when id/type/data is missing."""
        if not isinstance(d, dict):
            return None
        step_id = d.get('id')
        kind = d.get('type')
        payload = d.get('data')
        if not isinstance(step_id, str) or not isinstance(kind, str) or payload is None:
            return None
        if not isinstance(payload, dict):
            payload = {'value': payload}
        return MacroStep(id=step_id, kind=kind, payload=dict(payload))

    def to_dict(self) -> dict:
        return {'id': self.id, 'type': self.kind, 'data': dict(self.payload)}

    # -- payload accessors ---------------------------------------------------

    @property
    def position(self) -> tuple[int, int] | None:
        """(x, y) when both are numeric, else None."""
        x = _number(self.payload.get('x'))
        y = _number(self.payload.get('y'))
        if x is None or y is None:
            return None
        return int(round(x)), int(round(y))

    @property
    def button(self) -> str:
        name = self.payload.get('button', 'left')
        if isinstance(name, str) and name.lower() in BUTTONS:
            return name.lower()
        return 'left'

    @property
    def key(self) -> str | None:
        key = self.payload.get('key')
        return key if isinstance(key, str) and key else None

    @property
    def wait_time(self) -> float:
        wait = _number(self.payload.get('wait_time'))
        if wait is None or wait < 0:
            return DEFAULT_WAIT_TIME
        return wait

    @property
    def randomize(self) -> bool:
        return self.payload.get('randomize') is True


def parse_steps(items: object) -> list[MacroStep]:
    """Parse a list of wire dicts. Entries missing id/type/data are dropped."""
    if not isinstance(items, list):
        return []
    steps = []
    for item in items:
        step = MacroStep.from_dict(item)
        if step is None:
            log.debug('Dropping malformed step: %r', item)
            continue
        steps.append(step)
    return steps


# ---------------------------------------------------------------------------
# RandomTimingConfig
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RandomTimingConfig:
    """Wait-time randomization. 0 < min_factor <= max_factor is expected, not enforced."""

    enabled: bool = False
    min_factor: float = DEFAULT_RANDOM_MIN
    max_factor: float = DEFAULT_RANDOM_MAX

    @staticmethod
    def from_dict(d: dict) -> RandomTimingConfig:
        """Missing or non-numeric fields fall back to defaults."""
        enabled = d.get('enabled')
        min_factor = _number(d.get('min_factor'))
        max_factor = _number(d.get('max_factor'))
        return RandomTimingConfig(
            enabled=enabled if isinstance(enabled, bool) else False,
            min_factor=DEFAULT_RANDOM_MIN if min_factor is None else min_factor,
            max_factor=DEFAULT_RANDOM_MAX if max_factor is None else max_factor,
        )

    def to_dict(self) -> dict:
        return {
            'enabled': self.enabled,
            'min_factor': self.min_factor,
            'max_factor': self.max_factor,
        }

    def draw_factor(self, rng: random.Random | None = None) -> float:
        """Uniform factor in [min_factor, max_factor); exactly min_factor when equal."""
        r = (rng or random).random()
        return self.min_factor + r * (self.max_factor - self.min_factor)
