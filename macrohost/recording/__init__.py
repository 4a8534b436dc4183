"""Live input recording.

Turns polled pointer/button/key state into macro steps while a recording
session is active.
"""

from macrohost.recording.recorder import FeedResult, InputAggregator, Recorder

__all__ = [
    'InputAggregator',
    'FeedResult',
    'Recorder',
]
