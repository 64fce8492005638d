from __future__ import annotations

import logging
import os
import sys
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta
from typing import Any, Iterable, Iterator, Sequence
from zoneinfo import ZoneInfo

import pyodbc

from .config import ensure_backend_env_loaded, settings
from .models import LocationPoint, StatusEvent, TicketLocation, TicketMetadata, TicketStatus
from .pipeline import ReportSnapshot

logger = logging.getLogger(__name__)

_DB_TARGET_LOGGED = False
_IN_CHUNK_SIZE = 1000

_EVENTS_SQL = """
    SELECT
        h.[id] AS Sequence,
        m.[employee_id] AS EmployeeId,
        h.[mini_job_card_id] AS TicketId,
        h.[status] AS Status,
        h.[changed_at] AS ChangedAt,
        h.[latitude] AS Latitude,
        h.[longitude] AS Longitude
    FROM [dbo].[job_card_status_history] h
    INNER JOIN [dbo].[mini_job_cards] m
        ON m.[id] = h.[mini_job_card_id]
    WHERE h.[changed_at] >= %s
      AND h.[changed_at] < %s
      {employee_filter}
    ORDER BY h.[id] ASC
"""

_METADATA_SQL = """
    SELECT
        m.[id] AS TicketId,
        m.[main_ticket_id] AS MainTicketId,
        t.[ticket_number] AS TicketNumber,
        t.[title] AS Title,
        t.[type] AS JobType,
        g.[name] AS GeneratorName,
        g.[model] AS GeneratorModel,
        g.[location_name] AS GeneratorLocation,
        m.[weight] AS Weight,
        m.[scored] AS Scored,
        m.[approved] AS Approved
    FROM [dbo].[mini_job_cards] m
    LEFT JOIN [dbo].[main_tickets] t
        ON t.[id] = m.[main_ticket_id]
    LEFT JOIN [dbo].[generators] g
        ON g.[id] = t.[generator_id]
    WHERE m.[id] IN ({placeholders})
"""

_EMPLOYEES_SQL = """
    SELECT u.[id] AS EmployeeId, u.[full_name] AS FullName
    FROM [dbo].[users] u
    WHERE u.[id] IN ({placeholders})
"""

_LOCATIONS_SQL = """
    SELECT
        l.[mini_job_card_id] AS TicketId,
        l.[latitude] AS Latitude,
        l.[longitude] AS Longitude,
        l.[logged_at] AS LoggedAt
    FROM [dbo].[employee_locations] l
    WHERE l.[logged_at] >= %s
      AND l.[logged_at] < %s
      AND l.[mini_job_card_id] IS NOT NULL
      {employee_filter}
    ORDER BY l.[logged_at] ASC, l.[id] ASC
"""


def _env_int(value: str | None, default: int) -> int:
    if value is None:
        return default
    text = value.strip()
    if not text:
        return default
    try:
        return int(text)
    except ValueError:
        return default


def _default_nix_driver_path() -> str:
    if sys.platform == "darwin":
        return "/opt/homebrew/lib/libtdsodbc.so"
    return "/usr/lib/x86_64-linux-gnu/odbc/libtdsodbc.so"


def get_db_settings() -> dict[str, Any]:
    ensure_backend_env_loaded()
    return {
        "server": (os.getenv("DB_SERVER") or "").strip(),
        "port": _env_int(os.getenv("DB_PORT"), 1433),
        "name": (os.getenv("DB_NAME") or "FieldService").strip() or "FieldService",
        "user": (os.getenv("DB_USER") or "").strip(),
        "pass": os.getenv("DB_PASS") or "",
        "win_driver": (os.getenv("WIN_DRIVER") or "SQL Server").strip() or "SQL Server",
        "tds_version": (os.getenv("TDS_VERSION") or "7.4").strip() or "7.4",
        "nix_driver_path": (
            os.getenv("NIX_DRIVER_PATH") or _default_nix_driver_path()
        ).strip()
        or _default_nix_driver_path(),
    }


def validate_db_server() -> None:
    db = get_db_settings()
    if not str(db["server"]).strip():
        raise RuntimeError("DB_SERVER is empty; set DB_SERVER in backend/.env")


def log_db_connection_target_once() -> None:
    global _DB_TARGET_LOGGED
    if _DB_TARGET_LOGGED:
        return
    db = get_db_settings()
    logger.info(
        "DB: connecting to %s:%s / %s as %s",
        db["server"],
        db["port"],
        db["name"],
        db["user"] or "<empty>",
    )
    _DB_TARGET_LOGGED = True


def get_db_connection_error_payload() -> dict[str, Any]:
    db = get_db_settings()
    return {
        "error": "DB connection failed",
        "hint": "Check VPN/tunnel and backend/.env DB_SERVER/DB_PORT",
        "server": db["server"],
        "port": db["port"],
    }


def _clean_driver(driver_value: str) -> str:
    return driver_value.strip().strip("{}")


def build_connection_string() -> str:
    db = get_db_settings()
    server = db["server"]
    port = int(db["port"])
    database = db["name"]
    user = db["user"]
    password = db["pass"]

    if sys.platform == "win32":
        win_driver = _clean_driver(str(db["win_driver"]))
        return (
            f"DRIVER={{{win_driver}}};"
            f"SERVER={server},{port};"
            f"DATABASE={database};"
            f"UID={user};"
            f"PWD={password};"
            "Trusted_Connection=no;"
        )

    nix_driver = _clean_driver(str(db["nix_driver_path"]))
    tds_version = str(db["tds_version"])
    return (
        f"DRIVER={{{nix_driver}}};"
        f"SERVER={server};"
        f"PORT={port};"
        f"DATABASE={database};"
        f"UID={user};"
        f"PWD={password};"
        f"TDS_Version={tds_version};"
        "Encrypt=no;"
    )


def _normalize_sql_placeholders(sql: str) -> str:
    # Queries are written with `%s`; pyodbc expects `?`.
    return sql.replace("%s", "?")


def _normalize_params(params: Any | None) -> tuple[Any, ...]:
    if params is None:
        return ()
    if isinstance(params, tuple):
        return params
    if isinstance(params, (list, set)):
        return tuple(params)
    if isinstance(params, dict):
        raise TypeError("Named parameters are not supported for this DB cursor.")
    if isinstance(params, (str, bytes)):
        return (params,)
    if isinstance(params, Iterable):
        return tuple(params)
    return (params,)


def _row_to_dict(description: Sequence[Any] | None, row: Any) -> dict[str, Any]:
    if row is None:
        return {}
    if isinstance(row, dict):
        return dict(row)

    columns = [str(column[0]) for column in (description or [])]
    return {columns[index]: row[index] for index in range(len(columns))}


class DictCursor:
    def __init__(self, cursor: pyodbc.Cursor):
        self._cursor = cursor

    def execute(self, sql: str, params: Any | None = None) -> "DictCursor":
        normalized_sql = _normalize_sql_placeholders(sql)
        normalized_params = _normalize_params(params)
        if normalized_params:
            self._cursor.execute(normalized_sql, *normalized_params)
        else:
            self._cursor.execute(normalized_sql)
        return self

    def fetchall(self) -> list[dict[str, Any]]:
        description = self._cursor.description
        return [_row_to_dict(description, row) for row in self._cursor.fetchall()]

    def close(self) -> None:
        self._cursor.close()


DBOperationalError = pyodbc.Error


@contextmanager
def get_connection() -> Iterator[pyodbc.Connection]:
    validate_db_server()
    log_db_connection_target_once()
    conn = pyodbc.connect(build_connection_string(), timeout=8, readonly=True)
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def get_cursor() -> Iterator[DictCursor]:
    with get_connection() as connection:
        wrapped = DictCursor(connection.cursor())
        try:
            yield wrapped
        finally:
            wrapped.close()


def _to_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(float(text))
    except ValueError:
        return None


def _to_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return str(value or "").strip().lower() in {"1", "true", "t", "yes", "y"}


def _clean_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def to_local(value: datetime, *, source_zone: ZoneInfo, local_zone: ZoneInfo) -> datetime:
    """Convert a stored timestamp to naive local time of the employee day."""
    aware = value if value.tzinfo is not None else value.replace(tzinfo=source_zone)
    return aware.astimezone(local_zone).replace(tzinfo=None)


def local_range_to_source(
    start: date,
    end: date,
    *,
    source_zone: ZoneInfo,
    local_zone: ZoneInfo,
) -> tuple[datetime, datetime]:
    """Map the local days ``[start, end]`` onto a half-open range in storage time."""
    local_start = datetime.combine(start, time.min).replace(tzinfo=local_zone)
    local_end = datetime.combine(end + timedelta(days=1), time.min).replace(tzinfo=local_zone)
    return (
        local_start.astimezone(source_zone).replace(tzinfo=None),
        local_end.astimezone(source_zone).replace(tzinfo=None),
    )


def status_events_from_rows(
    rows: Iterable[dict[str, Any]],
    *,
    source_zone: ZoneInfo,
    local_zone: ZoneInfo,
) -> list[StatusEvent]:
    events: list[StatusEvent] = []
    for row in rows:
        sequence = _to_int(row.get("Sequence"))
        employee_id = _to_int(row.get("EmployeeId"))
        ticket_id = _to_int(row.get("TicketId"))
        changed_at = row.get("ChangedAt")
        if sequence is None or employee_id is None or ticket_id is None:
            continue
        if not isinstance(changed_at, datetime):
            continue
        try:
            status = TicketStatus(str(row.get("Status") or "").strip().upper())
        except ValueError:
            logger.warning(
                "Skipped status history row %s with unknown status %r", sequence, row.get("Status")
            )
            continue
        events.append(
            StatusEvent(
                employee_id=employee_id,
                ticket_id=ticket_id,
                status=status,
                timestamp=to_local(changed_at, source_zone=source_zone, local_zone=local_zone),
                sequence=sequence,
                latitude=_to_float(row.get("Latitude")),
                longitude=_to_float(row.get("Longitude")),
            )
        )
    return events


def ticket_metadata_from_rows(rows: Iterable[dict[str, Any]]) -> dict[int, TicketMetadata]:
    metadata: dict[int, TicketMetadata] = {}
    for row in rows:
        ticket_id = _to_int(row.get("TicketId"))
        if ticket_id is None:
            continue
        metadata[ticket_id] = TicketMetadata(
            ticket_id=ticket_id,
            main_ticket_id=_to_int(row.get("MainTicketId")),
            ticket_number=_clean_text(row.get("TicketNumber")),
            title=_clean_text(row.get("Title")),
            job_type=_clean_text(row.get("JobType")),
            generator_name=_clean_text(row.get("GeneratorName")),
            generator_model=_clean_text(row.get("GeneratorModel")),
            generator_location=_clean_text(row.get("GeneratorLocation")),
            weight=_to_int(row.get("Weight")),
            scored=_to_bool(row.get("Scored")),
            approved=_to_bool(row.get("Approved")),
        )
    return metadata


def locations_from_rows(
    rows: Iterable[dict[str, Any]],
    *,
    source_zone: ZoneInfo,
    local_zone: ZoneInfo,
) -> list[TicketLocation]:
    locations: list[TicketLocation] = []
    for row in rows:
        ticket_id = _to_int(row.get("TicketId"))
        latitude = _to_float(row.get("Latitude"))
        longitude = _to_float(row.get("Longitude"))
        logged_at = row.get("LoggedAt")
        if ticket_id is None or latitude is None or longitude is None:
            continue
        if not isinstance(logged_at, datetime):
            continue
        locations.append(
            TicketLocation(
                ticket_id=ticket_id,
                point=LocationPoint(
                    latitude=latitude,
                    longitude=longitude,
                    timestamp=to_local(logged_at, source_zone=source_zone, local_zone=local_zone),
                ),
            )
        )
    return locations


def _event_locations(events: Iterable[StatusEvent]) -> list[TicketLocation]:
    return [
        TicketLocation(
            ticket_id=event.ticket_id,
            point=LocationPoint(
                latitude=event.latitude,
                longitude=event.longitude,
                timestamp=event.timestamp,
            ),
        )
        for event in events
        if event.latitude is not None and event.longitude is not None
    ]


def _in_placeholders(values: Sequence[Any]) -> str:
    return ", ".join("%s" for _ in values)


def _chunks(values: Sequence[Any], size: int = _IN_CHUNK_SIZE) -> Iterator[Sequence[Any]]:
    # SQL Server caps a statement at 2100 parameters.
    for index in range(0, len(values), size):
        yield values[index : index + size]


def load_snapshot(
    start: date,
    end: date,
    *,
    employee_id: int | None = None,
    source_zone: ZoneInfo | None = None,
    local_zone: ZoneInfo | None = None,
) -> ReportSnapshot:
    """Read everything the reports for local days ``[start, end]`` need, in one go."""
    source_zone = source_zone or settings.db_timezone
    local_zone = local_zone or settings.report_timezone
    window_start, window_end = local_range_to_source(
        start, end, source_zone=source_zone, local_zone=local_zone
    )

    employee_filter = "AND m.[employee_id] = %s" if employee_id is not None else ""
    location_filter = "AND l.[employee_id] = %s" if employee_id is not None else ""
    window_params: list[Any] = [window_start, window_end]
    if employee_id is not None:
        window_params.append(employee_id)

    with get_cursor() as cursor:
        cursor.execute(_EVENTS_SQL.format(employee_filter=employee_filter), window_params)
        events = status_events_from_rows(
            cursor.fetchall(), source_zone=source_zone, local_zone=local_zone
        )
        # Stored values straddle the local day edges once converted; keep the requested days only.
        events = [event for event in events if start <= event.timestamp.date() <= end]

        ticket_ids = sorted({event.ticket_id for event in events})
        employee_ids = sorted({event.employee_id for event in events})

        metadata: dict[int, TicketMetadata] = {}
        for chunk in _chunks(ticket_ids):
            cursor.execute(_METADATA_SQL.format(placeholders=_in_placeholders(chunk)), chunk)
            metadata.update(ticket_metadata_from_rows(cursor.fetchall()))

        employees: dict[int, str] = {}
        for chunk in _chunks(employee_ids):
            cursor.execute(_EMPLOYEES_SQL.format(placeholders=_in_placeholders(chunk)), chunk)
            for row in cursor.fetchall():
                row_id = _to_int(row.get("EmployeeId"))
                name = _clean_text(row.get("FullName"))
                if row_id is not None and name:
                    employees[row_id] = name

        cursor.execute(_LOCATIONS_SQL.format(employee_filter=location_filter), window_params)
        locations = locations_from_rows(
            cursor.fetchall(), source_zone=source_zone, local_zone=local_zone
        )

    logger.info(
        "Loaded %s status event(s), %s ticket record(s), %s location point(s) for %s..%s",
        len(events),
        len(metadata),
        len(locations),
        start,
        end,
    )
    return ReportSnapshot(
        events=tuple(events),
        metadata=metadata,
        employees=employees,
        locations=tuple(locations) + tuple(_event_locations(events)),
    )
