from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable

from .config import RegularHoursWindow
from .models import Interval, Zone, ZoneSegment


def _clip(zone: Zone, start: datetime, end: datetime, lower: datetime | None, upper: datetime | None) -> ZoneSegment | None:
    clipped_start = start if lower is None else max(start, lower)
    clipped_end = end if upper is None else min(end, upper)
    if clipped_end <= clipped_start:
        return None
    return ZoneSegment(zone=zone, start=clipped_start, end=clipped_end)


def split_interval(interval: Interval, window: RegularHoursWindow) -> tuple[ZoneSegment, ...]:
    """Cut a work-bearing interval at the regular-hours boundaries.

    The window is taken on the local day the interval starts. Idle and
    terminal intervals are not overtime candidates and yield nothing.
    """
    if not interval.status.is_work_bearing:
        return ()

    window_start, window_end = window.bounds_on(interval.start)
    candidates = (
        _clip(Zone.MORNING_OT, interval.start, interval.end, None, window_start),
        _clip(Zone.REGULAR, interval.start, interval.end, window_start, window_end),
        _clip(Zone.EVENING_OT, interval.start, interval.end, window_end, None),
    )
    return tuple(segment for segment in candidates if segment is not None)


def zone_durations(segments: Iterable[ZoneSegment]) -> dict[Zone, timedelta]:
    totals = {zone: timedelta(0) for zone in Zone}
    for segment in segments:
        totals[segment.zone] += segment.duration
    return totals
