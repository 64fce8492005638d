from __future__ import annotations

from datetime import datetime
from typing import Sequence

from .models import Interval, StatusEvent, TicketStatus


def build_intervals(
    events: Sequence[StatusEvent],
    *,
    day_end: datetime,
) -> tuple[Interval, ...]:
    """Turn one ticket's normalized events into contiguous status intervals.

    Each event opens a segment that the next event closes. A ticket that is
    still open at the end of its events keeps its last status until
    ``day_end``. A lone ``COMPLETED`` event yields a zero-length interval.
    """
    if not events:
        return ()

    intervals: list[Interval] = []
    for current, following in zip(events, events[1:]):
        intervals.append(
            Interval(
                ticket_id=current.ticket_id,
                status=current.status,
                start=current.timestamp,
                end=following.timestamp,
            )
        )

    last = events[-1]
    if last.status is not TicketStatus.COMPLETED:
        intervals.append(
            Interval(
                ticket_id=last.ticket_id,
                status=last.status,
                start=last.timestamp,
                end=max(day_end, last.timestamp),
                open=True,
            )
        )
    elif len(events) == 1:
        intervals.append(
            Interval(
                ticket_id=last.ticket_id,
                status=last.status,
                start=last.timestamp,
                end=last.timestamp,
            )
        )

    return tuple(intervals)
