"""Progress extraction from ffmpeg status lines."""

import re
from typing import Optional

from constants import PROGRESS_MARKER

_TIME_PATTERN = re.compile(r"[\d:.]*")


def parse_elapsed_ms(line: str) -> Optional[int]:
    """Return the elapsed milliseconds carried by a ``time=HH:MM:SS.mmm`` token.

    Only the first marker on the line is read: ``time=N/A ... time=00:00:01.000``
    yields None. Lines without the marker, or with a timestamp that does not
    split into hours, minutes, seconds and a fraction, yield None too. The
    fraction is read as a literal millisecond count: ``00:00:05.7`` is 5007 ms.
    """
    if not line:
        return None
    start = line.find(PROGRESS_MARKER)
    if start < 0:
        return None
    match = _TIME_PATTERN.match(line, start + len(PROGRESS_MARKER))
    try:
        hours, minutes, seconds = match.group(0).split(":")
        whole, fraction = seconds.split(".")
        return (
            int(hours) * 3600 * 1000
            + int(minutes) * 60 * 1000
            + int(whole) * 1000
            + int(fraction)
        )
    except ValueError:
        return None


class ProgressTracker:
    """Turn elapsed time into a completion percentage for a known duration."""

    def __init__(self, total_duration_ms: Optional[int]):
        # integer milliseconds; percent() uses floor division
        self.total_duration_ms = total_duration_ms

    @property
    def ready(self) -> bool:
        return bool(self.total_duration_ms) and self.total_duration_ms > 0

    def percent(self, elapsed_ms: Optional[int]) -> Optional[int]:
        if elapsed_ms is None or not self.ready:
            return None
        value = elapsed_ms * 100 // self.total_duration_ms
        return max(0, min(100, value))

    def percent_for_line(self, line: str) -> Optional[int]:
        return self.percent(parse_elapsed_ms(line))
