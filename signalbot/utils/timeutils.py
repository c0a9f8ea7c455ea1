"""
Time utilities.

Candle interval parsing and the clock abstraction used by the
scheduler.  Code that waits goes through a clock object so tests can
substitute one that advances instantly.
"""

from __future__ import annotations

import re
import threading
import time

_INTERVAL_RE = re.compile(r"^(\d+)([smhdw])$")
_UNIT_SECONDS = {'s': 1, 'm': 60, 'h': 3600, 'd': 86400, 'w': 604800}


def parse_interval(interval: str) -> int:
    """Convert an interval such as ``15m`` or ``4h`` to seconds.

    Raises
    ------
    ValueError
        If the string is not ``<positive integer><s|m|h|d|w>``.
    """
    match = _INTERVAL_RE.match(interval.strip().lower())
    if not match or int(match.group(1)) == 0:
        raise ValueError(f"Invalid interval: {interval!r}")
    return int(match.group(1)) * _UNIT_SECONDS[match.group(2)]


class SystemClock:
    """Wall clock backed by `time.monotonic`."""

    def monotonic(self) -> float:
        return time.monotonic()

    def wait(self, event: threading.Event, timeout: float) -> bool:
        """Block until `event` is set or `timeout` elapses.

        Returns `True` if the event was set.
        """
        return event.wait(max(0.0, timeout))
