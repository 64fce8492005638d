from __future__ import annotations

import heapq
from datetime import date
from functools import reduce
from typing import Iterable, Sequence

from .models import EmployeeDay, LocationPoint, TicketAchievement, TimeBuckets


def merge_location_paths(tickets: Iterable[TicketAchievement]) -> tuple[LocationPoint, ...]:
    """k-way merge of the per-ticket paths, which are already time ordered.

    Tickets are merged in id order so equal timestamps always resolve the same way.
    """
    ordered = sorted(tickets, key=lambda item: item.ticket_id)
    return tuple(
        heapq.merge(
            *(ticket.location_points for ticket in ordered),
            key=lambda point: point.timestamp,
        )
    )


def _day_location(tickets: Sequence[TicketAchievement]) -> str | None:
    candidates = [
        ticket
        for ticket in tickets
        if ticket.metadata is not None and (ticket.metadata.generator_location or "").strip()
    ]
    if not candidates:
        return None
    latest = max(candidates, key=lambda item: (item.last_event_time, item.ticket_id))
    return latest.metadata.generator_location.strip()


def aggregate_employee_day(
    tickets: Iterable[TicketAchievement],
    *,
    employee_id: int,
    employee_name: str | None,
    day: date,
    notes: Sequence[str] = (),
) -> EmployeeDay:
    ordered = tuple(sorted(tickets, key=lambda item: (item.first_event_time, item.ticket_id)))

    buckets = reduce(lambda total, ticket: total + ticket.buckets, ordered, TimeBuckets())
    jobs_completed = sum(1 for ticket in ordered if ticket.completed)
    scored_tickets = sum(1 for ticket in ordered if ticket.scored)
    total_weight_earned = sum(
        ticket.weight or 0 for ticket in ordered if ticket.completed and ticket.scored
    )
    # No scored ticket means no average; report 0 rather than NaN.
    average_score = total_weight_earned / scored_tickets if scored_tickets else 0.0

    starts = [ticket.start_time for ticket in ordered if ticket.start_time is not None]
    ends = [ticket.end_time for ticket in ordered if ticket.end_time is not None]

    day_notes = list(notes)
    for ticket in ordered:
        day_notes.extend(f"Ticket {ticket.ticket_id}: {note}" for note in ticket.notes)

    return EmployeeDay(
        employee_id=employee_id,
        employee_name=employee_name,
        day=day,
        tickets=ordered,
        buckets=buckets,
        jobs_completed=jobs_completed,
        total_weight_earned=total_weight_earned,
        scored_tickets=scored_tickets,
        average_score=float(average_score),
        start_time=min(starts) if starts else None,
        end_time=max(ends) if ends else None,
        location=_day_location(ordered),
        location_path=merge_location_paths(ordered),
        notes=tuple(day_notes),
    )
