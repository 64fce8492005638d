"""HTTP surface for the field-service time and performance reports."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Query, Request, Response, status
from fastapi.responses import JSONResponse

from .config import settings
from .db import DBOperationalError, get_db_connection_error_payload, get_db_settings
from .logging_config import setup_logging
from .pdf_exports import generate_achievement_pdf, generate_daily_performance_pdf
from .reports import (
    fetch_daily_time_tracking_and_performance_report,
    fetch_employee_achievement_report,
    report_period_label,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(level=settings.log_level, json_output=settings.log_format == "json")
    window = settings.engine.regular_hours
    logger.info(
        "Regular hours %s-%s, day end %s, timezone %s, %s worker(s)",
        window.start.strftime("%H:%M"),
        window.end.strftime("%H:%M"),
        settings.engine.day_end.strftime("%H:%M:%S"),
        settings.report_timezone.key,
        settings.report_workers,
    )
    if not get_db_settings()["server"]:
        logger.warning("DB_SERVER is not set; report routes will fail until it is configured")
    yield


app = FastAPI(title="Field Service Reports", lifespan=lifespan)


@app.exception_handler(DBOperationalError)
async def _database_error_handler(request: Request, exc: DBOperationalError) -> JSONResponse:
    logger.error("Database error on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=get_db_connection_error_payload(),
    )


def _pdf_response(content: bytes, filename: str) -> Response:
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/api/reports/daily-time-tracking-performance")
def daily_time_tracking_performance(
    start_date: str = Query(..., alias="startDate"),
    end_date: str = Query(..., alias="endDate"),
    employee_id: Optional[int] = Query(None, alias="employeeId"),
) -> List[Dict[str, Any]]:
    return fetch_daily_time_tracking_and_performance_report(start_date, end_date, employee_id)


@app.get("/api/reports/daily-time-tracking-performance/pdf")
def daily_time_tracking_performance_pdf(
    start_date: str = Query(..., alias="startDate"),
    end_date: str = Query(..., alias="endDate"),
    employee_id: Optional[int] = Query(None, alias="employeeId"),
) -> Response:
    reports = fetch_daily_time_tracking_and_performance_report(start_date, end_date, employee_id)
    content = generate_daily_performance_pdf(reports, period=report_period_label(start_date, end_date))
    return _pdf_response(content, f"daily-performance_{start_date}_{end_date}.pdf")


@app.get("/api/reports/employee-achievement")
def employee_achievement(
    employee_id: int = Query(..., alias="employeeId"),
    start_date: str = Query(..., alias="startDate"),
    end_date: str = Query(..., alias="endDate"),
) -> List[Dict[str, Any]]:
    return fetch_employee_achievement_report(employee_id, start_date, end_date)


@app.get("/api/reports/employee-achievement/pdf")
def employee_achievement_pdf(
    employee_id: int = Query(..., alias="employeeId"),
    start_date: str = Query(..., alias="startDate"),
    end_date: str = Query(..., alias="endDate"),
) -> Response:
    reports = fetch_employee_achievement_report(employee_id, start_date, end_date)
    employee_name = next(
        (report.get("employeeName") for report in reports if report.get("employeeName")),
        f"Employee #{employee_id}",
    )
    content = generate_achievement_pdf(
        reports,
        employee_name=employee_name,
        period=report_period_label(start_date, end_date),
    )
    return _pdf_response(content, f"achievement_{employee_id}_{start_date}_{end_date}.pdf")
