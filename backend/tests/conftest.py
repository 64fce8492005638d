"""
Shared fixtures for the field-service report test suite.

Everything here is in-memory: no database, no network. The ``backend/``
directory is put on sys.path so ``fieldtime.*`` imports resolve however
pytest is invoked.
"""

import os
import sys
from datetime import date, datetime
from itertools import count

import pytest

_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)


REPORT_DAY = date(2024, 3, 4)


def at(hhmm: str, day: date = REPORT_DAY) -> datetime:
    """``"08:45"`` (or ``"08:45:30"``) on the report day."""
    parts = [int(part) for part in hhmm.split(":")]
    while len(parts) < 3:
        parts.append(0)
    return datetime(day.year, day.month, day.day, *parts)


@pytest.fixture
def engine_config():
    """Default business parameters: regular hours 08:30-17:30, scores 1-5."""
    from fieldtime.config import EngineConfig

    return EngineConfig()


@pytest.fixture
def make_event():
    """
    Factory for StatusEvent with an auto-incrementing sequence.

    ``make_event("STARTED", "08:45", ticket_id=7)``
    """
    from fieldtime.models import StatusEvent, TicketStatus

    sequence = count(1)

    def _make(status, hhmm, *, ticket_id=101, employee_id=1, day=REPORT_DAY, seq=None, **extra):
        return StatusEvent(
            employee_id=employee_id,
            ticket_id=ticket_id,
            status=TicketStatus(status),
            timestamp=at(hhmm, day),
            sequence=next(sequence) if seq is None else seq,
            **extra,
        )

    return _make


@pytest.fixture
def make_metadata():
    from fieldtime.models import TicketMetadata

    def _make(ticket_id, *, weight=None, scored=False, approved=False, **extra):
        values = {
            "ticket_number": f"TK-{ticket_id}",
            "title": f"Service visit {ticket_id}",
            "job_type": "Maintenance",
            "generator_name": f"Generator {ticket_id}",
        }
        values.update(extra)
        return TicketMetadata(
            ticket_id=ticket_id,
            weight=weight,
            scored=scored,
            approved=approved,
            **values,
        )

    return _make


@pytest.fixture
def scenario_events(make_event):
    """The reference day: travel, work, a hold, more work, completion at 18:00."""
    return [
        make_event("TRAVELING", "08:00"),
        make_event("STARTED", "08:45"),
        make_event("ON_HOLD", "12:00"),
        make_event("STARTED", "12:30"),
        make_event("COMPLETED", "18:00"),
    ]
