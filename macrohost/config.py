"""Server configuration: constants, polling intervals, recording thresholds.

Module-level constants are read at import time. Values that must reflect
the env files loaded in main() go through Config.load().
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# --- Polling (seconds) ---
POSITION_POLL_INTERVAL = float(os.getenv('POSITION_POLL_INTERVAL', '0.05'))
RECORD_POLL_INTERVAL = float(os.getenv('RECORD_POLL_INTERVAL', '0.05'))

# --- Recording ---
RECORD_CLICK_COOLDOWN_SEC = 0.3
RECORD_COMBO_DWELL_SEC = 0.3
RECORD_MIN_COMBO_KEYS = 2
RECORD_MAX_COMBO_KEYS = 4

# wait_time written into recorded steps
RECORD_MOVE_WAIT = 0.2
RECORD_CLICK_WAIT = 0.5
RECORD_KEY_WAIT = 0.3

# Function keys bound by the host application to recording control.
# Never recorded as steps when pressed on their own.
DEFAULT_RESERVED_HOTKEYS = frozenset(f'f{n}' for n in range(1, 13))

# --- Execution ---
DEFAULT_WAIT_TIME = 1.0
DEFAULT_LOOP_COUNT = 1

# --- Random timing defaults ---
DEFAULT_RANDOM_MIN = 0.8
DEFAULT_RANDOM_MAX = 1.2

# --- Device shortcuts ---
# Pause between chained shortcuts (select-all -> copy, set clipboard -> paste)
SHORTCUT_SETTLE_SEC = 0.3

SERVER_NAME = 'macrohost'
VERSION = '1.0.0'


def _bool(value: str) -> bool:
    return value.strip().lower() in ('1', 'true', 'yes')


def parse_hotkeys(csv: str) -> frozenset[str]:
    """Parse a comma-separated key list ('f7,f8') into normalized names."""
    return frozenset(k.strip().lower() for k in csv.split(',') if k.strip())


@dataclass(frozen=True)
class Config:
    """Immutable server configuration."""

    host: str
    port: int
    log_level: str

    # 'desktop' drives the real mouse/keyboard, 'mock' records calls only
    input_backend: str

    allow_concurrent_runs: bool
    reserved_hotkeys: frozenset[str]

    position_poll_interval: float
    record_poll_interval: float

    @classmethod
    def load(cls) -> Config:
        """Load configuration from environment variables.

        Reads ~/.macrohost/shared.env first, then ~/.macrohost/macrohost.env
        (component overrides). Every field has a default.
        """
        mh_dir = Path.home() / '.macrohost'
        shared_env = mh_dir / 'shared.env'
        component_env = mh_dir / 'macrohost.env'
        if shared_env.exists():
            load_dotenv(shared_env)
        if component_env.exists():
            load_dotenv(component_env, override=True)

        hotkeys_csv = os.environ.get('RESERVED_HOTKEYS', '')
        reserved = parse_hotkeys(hotkeys_csv) if hotkeys_csv.strip() else DEFAULT_RESERVED_HOTKEYS

        return cls(
            host=os.environ.get('MACROHOST_HOST', '127.0.0.1').strip(),
            port=int(os.environ.get('MACROHOST_PORT', '5000')),
            log_level=os.environ.get('LOG_LEVEL', 'INFO').strip().upper(),
            input_backend=os.environ.get('INPUT_BACKEND', 'desktop').strip().lower(),
            allow_concurrent_runs=_bool(os.environ.get('ALLOW_CONCURRENT_RUNS', '')),
            reserved_hotkeys=reserved,
            position_poll_interval=float(
                os.environ.get('POSITION_POLL_INTERVAL', str(POSITION_POLL_INTERVAL))
            ),
            record_poll_interval=float(
                os.environ.get('RECORD_POLL_INTERVAL', str(RECORD_POLL_INTERVAL))
            ),
        )
