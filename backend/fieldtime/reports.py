from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List

from fastapi import HTTPException, status

from .config import settings
from .db import load_snapshot
from .pipeline import BatchResult, run_batch

logger = logging.getLogger(__name__)


def _parse_date(date_value: str, *, field: str = "date") -> date:
    try:
        return datetime.strptime(date_value, "%Y-%m-%d").date()
    except (TypeError, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{field} must be in YYYY-MM-DD format",
        ) from exc


def _parse_range(start_value: str, end_value: str) -> tuple[date, date]:
    start = _parse_date(start_value, field="startDate")
    end = _parse_date(end_value, field="endDate")
    if end < start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="endDate must not be before startDate",
        )
    max_days = settings.report_max_range_days
    if end - start >= timedelta(days=max_days):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"date range is limited to {max_days} days",
        )
    return start, end


def _compute(start: date, end: date, employee_id: int | None) -> BatchResult:
    snapshot = load_snapshot(start, end, employee_id=employee_id)
    result = run_batch(
        snapshot,
        config=settings.engine,
        workers=settings.report_workers,
        employee_id=employee_id,
    )
    if result.failures:
        logger.warning(
            "%s employee-day report(s) failed for %s..%s: %s",
            len(result.failures),
            start,
            end,
            ", ".join(f"{item.employee_id}@{item.day}" for item in result.failures),
        )
    return result


def fetch_daily_time_tracking_and_performance_report(
    start_date: str,
    end_date: str,
    employee_id: int | None = None,
) -> List[Dict[str, Any]]:
    start, end = _parse_range(start_date, end_date)
    return _compute(start, end, employee_id).daily_reports


def fetch_employee_achievement_report(
    employee_id: int,
    start_date: str,
    end_date: str,
) -> List[Dict[str, Any]]:
    start, end = _parse_range(start_date, end_date)
    return _compute(start, end, employee_id).achievement_reports


def report_period_label(start_date: str, end_date: str) -> str:
    start, end = _parse_range(start_date, end_date)
    return f"{start:%b %d, %Y} - {end:%b %d, %Y}"
