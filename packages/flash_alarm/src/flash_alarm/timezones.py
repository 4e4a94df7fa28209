"""UTC offset transition tables for a time zone."""

from __future__ import annotations

import bisect
from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta, timezone, tzinfo
from typing import overload

from .dt_utils import as_utc

_SCAN_STEP = timedelta(days=1)
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _offset_at(seconds: int, zone: tzinfo) -> timedelta | None:
    return (_EPOCH + timedelta(seconds=seconds)).astimezone(zone).utcoffset()


class TimeZoneTransitions(Sequence[datetime]):
    """
    Ordered UTC instants at which a zone's UTC offset changes.

    Examples:
        >>> from zoneinfo import ZoneInfo
        >>> table = TimeZoneTransitions.from_zone(
        ...     ZoneInfo("Europe/London"),
        ...     datetime(2025, 1, 1, tzinfo=timezone.utc),
        ...     datetime(2026, 1, 1, tzinfo=timezone.utc),
        ... )
        >>> len(table)
        2
    """

    def __init__(self, instants: Iterable[datetime] = ()):
        self._instants = sorted(as_utc(i) for i in instants)

    @classmethod
    def from_zone(
        cls, zone: tzinfo, start: datetime, end: datetime
    ) -> TimeZoneTransitions:
        """
        Build the table for ``zone`` between ``start`` and ``end``.

        Offsets are sampled once a day; a change between two samples is
        bisected down to the exact second.
        """
        lo_bound = int((as_utc(start) - _EPOCH).total_seconds())
        hi_bound = int((as_utc(end) - _EPOCH).total_seconds())
        step = int(_SCAN_STEP.total_seconds())

        instants: list[datetime] = []
        cursor = lo_bound
        offset = _offset_at(cursor, zone)
        while cursor < hi_bound:
            nxt = min(cursor + step, hi_bound)
            next_offset = _offset_at(nxt, zone)
            if next_offset != offset:
                lo, hi = cursor, nxt
                while hi - lo > 1:
                    mid = (lo + hi) // 2
                    if _offset_at(mid, zone) == offset:
                        lo = mid
                    else:
                        hi = mid
                instants.append(_EPOCH + timedelta(seconds=hi))
                offset = next_offset
            cursor = nxt
        return cls(instants)

    def transition_index(self, instant: datetime) -> int | None:
        """Index of the last transition at or before ``instant``, if any."""
        index = bisect.bisect_right(self._instants, as_utc(instant)) - 1
        return index if index >= 0 else None

    @overload
    def __getitem__(self, index: int) -> datetime: ...

    @overload
    def __getitem__(self, index: slice) -> list[datetime]: ...

    def __getitem__(self, index):
        return self._instants[index]

    def __len__(self) -> int:
        return len(self._instants)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self._instants!r})"
