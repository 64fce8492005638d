"""Immutable value records passed between the aggregation stages."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum


class TicketStatus(str, Enum):
    TRAVELING = "TRAVELING"
    STARTED = "STARTED"
    ON_HOLD = "ON_HOLD"
    COMPLETED = "COMPLETED"

    @property
    def is_work_bearing(self) -> bool:
        return self in (TicketStatus.TRAVELING, TicketStatus.STARTED)

    @property
    def is_idle(self) -> bool:
        return self is TicketStatus.ON_HOLD

    @property
    def is_terminal(self) -> bool:
        return self is TicketStatus.COMPLETED


class Zone(str, Enum):
    MORNING_OT = "MORNING_OT"
    REGULAR = "REGULAR"
    EVENING_OT = "EVENING_OT"


@dataclass(frozen=True)
class StatusEvent:
    employee_id: int
    ticket_id: int
    status: TicketStatus
    timestamp: datetime
    sequence: int
    latitude: float | None = None
    longitude: float | None = None

    @property
    def sort_key(self) -> tuple[datetime, int]:
        return self.timestamp, self.sequence


@dataclass(frozen=True)
class Interval:
    ticket_id: int
    status: TicketStatus
    start: datetime
    end: datetime
    open: bool = False

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError(f"interval end {self.end} precedes start {self.start}")

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


@dataclass(frozen=True)
class ZoneSegment:
    zone: Zone
    start: datetime
    end: datetime

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


@dataclass(frozen=True)
class LocationPoint:
    latitude: float
    longitude: float
    timestamp: datetime


@dataclass(frozen=True)
class TicketLocation:
    """A raw location log row before it is attributed to a travel interval."""

    ticket_id: int
    point: LocationPoint


@dataclass(frozen=True)
class TicketMetadata:
    ticket_id: int
    main_ticket_id: int | None = None
    ticket_number: str | None = None
    title: str | None = None
    job_type: str | None = None
    generator_name: str | None = None
    generator_model: str | None = None
    generator_location: str | None = None
    weight: int | None = None
    scored: bool = False
    approved: bool = False


@dataclass(frozen=True)
class StatusDuration:
    status: TicketStatus
    minutes: int
    start_time: datetime
    end_time: datetime


def whole_minutes(value: timedelta) -> int:
    """Truncate toward zero; durations here are never negative."""
    return int(value.total_seconds() // 60)


@dataclass(frozen=True)
class TimeBuckets:
    """Per-category durations, kept exact until they are reported."""

    work: timedelta = timedelta(0)
    travel: timedelta = timedelta(0)
    idle: timedelta = timedelta(0)
    regular: timedelta = timedelta(0)
    morning_ot: timedelta = timedelta(0)
    evening_ot: timedelta = timedelta(0)

    def __add__(self, other: "TimeBuckets") -> "TimeBuckets":
        return TimeBuckets(
            work=self.work + other.work,
            travel=self.travel + other.travel,
            idle=self.idle + other.idle,
            regular=self.regular + other.regular,
            morning_ot=self.morning_ot + other.morning_ot,
            evening_ot=self.evening_ot + other.evening_ot,
        )

    @property
    def work_minutes(self) -> int:
        return whole_minutes(self.work)

    @property
    def travel_minutes(self) -> int:
        return whole_minutes(self.travel)

    @property
    def idle_minutes(self) -> int:
        return whole_minutes(self.idle)

    @property
    def regular_minutes(self) -> int:
        return whole_minutes(self.regular)

    @property
    def morning_ot_minutes(self) -> int:
        return whole_minutes(self.morning_ot)

    @property
    def evening_ot_minutes(self) -> int:
        return whole_minutes(self.evening_ot)

    @property
    def total_ot_minutes(self) -> int:
        return self.morning_ot_minutes + self.evening_ot_minutes


@dataclass(frozen=True)
class TicketAchievement:
    employee_id: int
    ticket_id: int
    current_status: TicketStatus
    buckets: TimeBuckets
    status_breakdown: tuple[StatusDuration, ...]
    first_event_time: datetime
    last_event_time: datetime
    start_time: datetime | None = None
    end_time: datetime | None = None
    metadata: TicketMetadata | None = None
    weight: int | None = None
    scored: bool = False
    approved: bool = False
    location_points: tuple[LocationPoint, ...] = ()
    degraded: bool = False
    notes: tuple[str, ...] = ()

    @property
    def completed(self) -> bool:
        return self.current_status is TicketStatus.COMPLETED


@dataclass(frozen=True)
class EmployeeDay:
    employee_id: int
    employee_name: str | None
    day: date
    tickets: tuple[TicketAchievement, ...]
    buckets: TimeBuckets
    jobs_completed: int
    total_weight_earned: int
    scored_tickets: int
    average_score: float
    start_time: datetime | None
    end_time: datetime | None
    location: str | None
    location_path: tuple[LocationPoint, ...] = ()
    notes: tuple[str, ...] = ()

    @property
    def reported_tickets(self) -> tuple[TicketAchievement, ...]:
        return tuple(ticket for ticket in self.tickets if ticket.metadata is not None)
