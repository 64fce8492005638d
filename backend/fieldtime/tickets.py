from __future__ import annotations

import logging
from datetime import timedelta
from typing import Iterable, Mapping, Sequence

from .config import EngineConfig
from .errors import MissingMetadata
from .intervals import build_intervals
from .models import (
    Interval,
    LocationPoint,
    StatusDuration,
    StatusEvent,
    TicketAchievement,
    TicketMetadata,
    TicketStatus,
    TimeBuckets,
    Zone,
    whole_minutes,
)
from .overtime import split_interval, zone_durations

logger = logging.getLogger(__name__)


def lookup_metadata(metadata: Mapping[int, TicketMetadata], ticket_id: int) -> TicketMetadata:
    try:
        return metadata[ticket_id]
    except KeyError as exc:
        raise MissingMetadata(ticket_id) from exc


def accumulate_buckets(intervals: Iterable[Interval], config: EngineConfig) -> TimeBuckets:
    work = travel = idle = timedelta(0)
    segments = []

    for interval in intervals:
        status = interval.status
        if status is TicketStatus.TRAVELING:
            travel += interval.duration
            work += interval.duration
            segments.extend(split_interval(interval, config.regular_hours))
        elif status is TicketStatus.STARTED:
            work += interval.duration
            segments.extend(split_interval(interval, config.regular_hours))
        elif status is TicketStatus.ON_HOLD:
            idle += interval.duration
        elif status is TicketStatus.COMPLETED:
            continue
        else:
            raise ValueError(f"unhandled ticket status {status!r}")

    zones = zone_durations(segments)
    return TimeBuckets(
        work=work,
        travel=travel,
        idle=idle,
        regular=zones[Zone.REGULAR],
        morning_ot=zones[Zone.MORNING_OT],
        evening_ot=zones[Zone.EVENING_OT],
    )


def travel_locations(
    intervals: Sequence[Interval],
    points: Iterable[LocationPoint],
) -> tuple[LocationPoint, ...]:
    """Keep the points logged while the ticket was travelling, oldest first."""
    travel_spans = [
        (interval.start, interval.end)
        for interval in intervals
        if interval.status is TicketStatus.TRAVELING
    ]
    if not travel_spans:
        return ()
    kept = [
        point
        for point in points
        if any(start <= point.timestamp <= end for start, end in travel_spans)
    ]
    return tuple(sorted(kept, key=lambda item: item.timestamp))


def _status_breakdown(intervals: Sequence[Interval]) -> tuple[StatusDuration, ...]:
    return tuple(
        StatusDuration(
            status=interval.status,
            minutes=whole_minutes(interval.duration),
            start_time=interval.start,
            end_time=interval.end,
        )
        for interval in intervals
    )


def _resolve_score(
    ticket_id: int,
    metadata: TicketMetadata | None,
    config: EngineConfig,
    notes: list[str],
) -> tuple[int | None, bool]:
    if metadata is None:
        return None, False

    weight = metadata.weight
    if not metadata.scored:
        return weight, False

    bounds = config.score_bounds
    if weight is None or not bounds.contains(weight):
        logger.warning(
            "Ticket %s is marked scored with weight %r outside %s-%s; treated as unscored",
            ticket_id,
            weight,
            bounds.minimum,
            bounds.maximum,
        )
        notes.append(
            f"Weight {weight!r} is outside the {bounds.minimum}-{bounds.maximum} scale; ticket not scored."
        )
        return weight, False

    return weight, True


def aggregate_ticket(
    events: Sequence[StatusEvent],
    *,
    config: EngineConfig,
    metadata: TicketMetadata | None = None,
    locations: Iterable[LocationPoint] = (),
    degraded_reason: str | None = None,
) -> TicketAchievement:
    """Fold one ticket's normalized events into its daily achievement."""
    if not events:
        raise ValueError("cannot aggregate a ticket without events")

    first = events[0]
    last = events[-1]
    intervals = build_intervals(events, day_end=config.day_end_on(first.timestamp))

    notes: list[str] = []
    if degraded_reason:
        notes.append(degraded_reason)
    weight, scored = _resolve_score(first.ticket_id, metadata, config, notes)

    start_time = next(
        (event.timestamp for event in events if event.status.is_work_bearing),
        None,
    )
    end_time = last.timestamp if last.status is TicketStatus.COMPLETED else None

    return TicketAchievement(
        employee_id=first.employee_id,
        ticket_id=first.ticket_id,
        current_status=last.status,
        buckets=accumulate_buckets(intervals, config),
        status_breakdown=_status_breakdown(intervals),
        first_event_time=first.timestamp,
        last_event_time=last.timestamp,
        start_time=start_time,
        end_time=end_time,
        metadata=metadata,
        weight=weight,
        scored=scored,
        approved=bool(metadata.approved) if metadata is not None else False,
        location_points=travel_locations(intervals, locations),
        degraded=degraded_reason is not None,
        notes=tuple(notes),
    )
