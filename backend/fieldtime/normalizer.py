from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from typing import Iterable, Sequence

from .errors import InvalidEventSequence
from .models import StatusEvent, TicketStatus

logger = logging.getLogger(__name__)


def _sorted_events(events: Iterable[StatusEvent]) -> list[StatusEvent]:
    return sorted(events, key=lambda item: item.sort_key)


def normalize_ticket_events(events: Sequence[StatusEvent]) -> tuple[StatusEvent, ...]:
    """Order one ticket's events and drop retransmitted duplicates.

    Raises ``InvalidEventSequence`` when anything follows ``COMPLETED``.
    """
    normalized: list[StatusEvent] = []
    previous_status: TicketStatus | None = None

    for event in _sorted_events(events):
        if event.status is previous_status:
            logger.warning(
                "Dropped duplicate %s event for ticket %s at %s (sequence %s)",
                event.status.value,
                event.ticket_id,
                event.timestamp,
                event.sequence,
            )
            continue

        if previous_status is TicketStatus.COMPLETED:
            raise InvalidEventSequence(
                event.ticket_id,
                f"{event.status.value} at {event.timestamp:%Y-%m-%d %H:%M:%S} follows COMPLETED",
                partial_events=normalized,
            )

        normalized.append(event)
        previous_status = event.status

    return tuple(normalized)


def group_events_by_ticket(
    events: Iterable[StatusEvent],
    *,
    employee_id: int,
    day: date,
) -> dict[int, list[StatusEvent]]:
    grouped: dict[int, list[StatusEvent]] = defaultdict(list)
    for event in events:
        if event.employee_id != employee_id:
            raise ValueError(
                f"event for employee {event.employee_id} passed to employee {employee_id}"
            )
        if event.timestamp.date() != day:
            raise ValueError(f"event at {event.timestamp} is outside {day:%Y-%m-%d}")
        grouped[event.ticket_id].append(event)
    return {ticket_id: grouped[ticket_id] for ticket_id in sorted(grouped)}


def normalize_events(
    events: Iterable[StatusEvent],
    *,
    employee_id: int,
    day: date,
) -> dict[int, tuple[StatusEvent, ...]]:
    """Normalize a whole employee-day; the first invalid ticket aborts.

    The pipeline calls ``normalize_ticket_events`` per ticket instead so one
    bad ticket does not hide the others.
    """
    return {
        ticket_id: normalize_ticket_events(ticket_events)
        for ticket_id, ticket_events in group_events_by_ticket(
            events, employee_id=employee_id, day=day
        ).items()
    }
