from __future__ import annotations

import logging
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, Iterable, Mapping, Sequence

from .assembler import build_daily_time_tracking_report, build_employee_achievement_report
from .config import EngineConfig
from .employee_day import aggregate_employee_day
from .errors import InvalidEventSequence, MissingMetadata
from .models import (
    EmployeeDay,
    LocationPoint,
    StatusEvent,
    TicketAchievement,
    TicketLocation,
    TicketMetadata,
)
from .normalizer import group_events_by_ticket, normalize_ticket_events
from .tickets import aggregate_ticket, lookup_metadata

logger = logging.getLogger(__name__)

SkipPredicate = Callable[[int, date], bool]


@dataclass(frozen=True)
class ReportSnapshot:
    """Everything a report request reads up front; the pipeline never goes back for more."""

    events: tuple[StatusEvent, ...] = ()
    metadata: Mapping[int, TicketMetadata] | None = None
    employees: Mapping[int, str] | None = None
    locations: tuple[TicketLocation, ...] = ()

    def employee_name(self, employee_id: int) -> str | None:
        return (self.employees or {}).get(employee_id)


@dataclass(frozen=True)
class EmployeeDayReport:
    day: EmployeeDay
    daily: Dict[str, Any]
    achievement: Dict[str, Any]


@dataclass(frozen=True)
class EmployeeDayFailure:
    employee_id: int
    day: date
    error: str


@dataclass(frozen=True)
class BatchResult:
    reports: tuple[EmployeeDayReport, ...]
    failures: tuple[EmployeeDayFailure, ...] = ()

    @property
    def daily_reports(self) -> list[Dict[str, Any]]:
        return [report.daily for report in self.reports]

    @property
    def achievement_reports(self) -> list[Dict[str, Any]]:
        return [report.achievement for report in self.reports]


def _ticket_achievement(
    ticket_id: int,
    events: Sequence[StatusEvent],
    *,
    config: EngineConfig,
    metadata: Mapping[int, TicketMetadata],
    locations: Sequence[LocationPoint],
    notes: list[str],
) -> TicketAchievement:
    degraded_reason: str | None = None
    try:
        normalized = normalize_ticket_events(events)
    except InvalidEventSequence as exc:
        logger.warning("Ticket %s reported as partial: %s", ticket_id, exc.reason)
        normalized = exc.partial_events
        degraded_reason = f"Invalid event sequence ({exc.reason}); events after COMPLETED ignored."

    try:
        ticket_metadata: TicketMetadata | None = lookup_metadata(metadata, ticket_id)
    except MissingMetadata as exc:
        logger.warning("%s; excluded from achievements, time still counted", exc)
        ticket_metadata = None
        notes.append(
            f"Ticket {ticket_id}: no ticket record found; time counted but ticket not listed."
        )

    return aggregate_ticket(
        normalized,
        config=config,
        metadata=ticket_metadata,
        locations=locations,
        degraded_reason=degraded_reason,
    )


def compute_employee_day(
    events: Iterable[StatusEvent],
    *,
    employee_id: int,
    employee_name: str | None,
    day: date,
    config: EngineConfig,
    metadata: Mapping[int, TicketMetadata] | None = None,
    locations: Mapping[int, Sequence[LocationPoint]] | None = None,
) -> EmployeeDay:
    """Run every stage for one employee-day. Pure: same inputs, same result."""
    grouped = group_events_by_ticket(events, employee_id=employee_id, day=day)
    metadata = metadata or {}
    locations = locations or {}

    notes: list[str] = []
    tickets = [
        _ticket_achievement(
            ticket_id,
            ticket_events,
            config=config,
            metadata=metadata,
            locations=locations.get(ticket_id, ()),
            notes=notes,
        )
        for ticket_id, ticket_events in grouped.items()
    ]

    return aggregate_employee_day(
        tickets,
        employee_id=employee_id,
        employee_name=employee_name,
        day=day,
        notes=notes,
    )


def build_employee_day_report(
    events: Iterable[StatusEvent],
    *,
    employee_id: int,
    employee_name: str | None,
    day: date,
    config: EngineConfig,
    metadata: Mapping[int, TicketMetadata] | None = None,
    locations: Mapping[int, Sequence[LocationPoint]] | None = None,
) -> EmployeeDayReport:
    result = compute_employee_day(
        events,
        employee_id=employee_id,
        employee_name=employee_name,
        day=day,
        config=config,
        metadata=metadata,
        locations=locations,
    )
    return EmployeeDayReport(
        day=result,
        daily=build_daily_time_tracking_report(result),
        achievement=build_employee_achievement_report(result),
    )


def _partition_snapshot(
    snapshot: ReportSnapshot,
    employee_id: int | None,
) -> dict[tuple[int, date], list[StatusEvent]]:
    partitions: dict[tuple[int, date], list[StatusEvent]] = defaultdict(list)
    for event in snapshot.events:
        if employee_id is not None and event.employee_id != employee_id:
            continue
        partitions[(event.employee_id, event.timestamp.date())].append(event)
    return partitions


def _locations_by_ticket(snapshot: ReportSnapshot) -> dict[int, list[LocationPoint]]:
    grouped: dict[int, list[LocationPoint]] = defaultdict(list)
    for entry in snapshot.locations:
        grouped[entry.ticket_id].append(entry.point)
    return grouped


def run_batch(
    snapshot: ReportSnapshot,
    *,
    config: EngineConfig,
    workers: int = 1,
    employee_id: int | None = None,
    skip: SkipPredicate | None = None,
) -> BatchResult:
    """Compute every employee-day in the snapshot, one pool task each.

    A failing employee-day is logged and listed in ``failures``; the others
    still produce reports. ``skip`` is asked before each task is submitted.
    """
    partitions = _partition_snapshot(snapshot, employee_id)
    locations = _locations_by_ticket(snapshot)
    metadata = snapshot.metadata or {}

    keys = sorted(
        partitions,
        key=lambda key: ((snapshot.employee_name(key[0]) or "").lower(), key[0], key[1]),
    )
    if skip is not None:
        keys = [key for key in keys if not skip(*key)]

    logger.info("Computing %s employee-day report(s) with %s worker(s)", len(keys), workers)

    def _run(key: tuple[int, date]) -> EmployeeDayReport:
        day_employee_id, day = key
        day_events = partitions[key]
        ticket_ids = {event.ticket_id for event in day_events}
        return build_employee_day_report(
            day_events,
            employee_id=day_employee_id,
            employee_name=snapshot.employee_name(day_employee_id),
            day=day,
            config=config,
            metadata=metadata,
            locations={
                ticket_id: [point for point in locations.get(ticket_id, ()) if point.timestamp.date() == day]
                for ticket_id in ticket_ids
            },
        )

    reports: list[EmployeeDayReport] = []
    failures: list[EmployeeDayFailure] = []

    with ThreadPoolExecutor(max_workers=max(1, workers)) as executor:
        futures = [(key, executor.submit(_run, key)) for key in keys]
        for (day_employee_id, day), future in futures:
            try:
                reports.append(future.result())
            except Exception as exc:
                logger.exception(
                    "Report computation failed for employee %s on %s", day_employee_id, day
                )
                failures.append(
                    EmployeeDayFailure(employee_id=day_employee_id, day=day, error=str(exc))
                )

    return BatchResult(reports=tuple(reports), failures=tuple(failures))
