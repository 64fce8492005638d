"""Projection of employee-day results onto the two report payloads.

No arithmetic happens here beyond reading the truncated minute totals, so the
output schema can change without touching the aggregation stages.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict

from .models import EmployeeDay, LocationPoint, StatusDuration, TicketAchievement


def _format_dt(value: datetime | None) -> str | None:
    return value.isoformat(timespec="seconds") if value else None


def _format_date(value: date) -> str:
    return value.strftime("%Y-%m-%d")


def _location_point(point: LocationPoint) -> Dict[str, Any]:
    return {
        "latitude": point.latitude,
        "longitude": point.longitude,
        "timestamp": _format_dt(point.timestamp),
    }


def _status_duration(entry: StatusDuration) -> Dict[str, Any]:
    return {
        "status": entry.status.value,
        "minutes": entry.minutes,
        "startTime": _format_dt(entry.start_time),
        "endTime": _format_dt(entry.end_time),
    }


def build_daily_time_tracking_report(day: EmployeeDay) -> Dict[str, Any]:
    buckets = day.buckets
    return {
        "employeeId": day.employee_id,
        "employeeName": day.employee_name,
        "date": _format_date(day.day),
        "startTime": _format_dt(day.start_time),
        "endTime": _format_dt(day.end_time),
        "location": day.location,
        "dailyWorkingMinutes": buckets.work_minutes,
        "idleMinutes": buckets.idle_minutes,
        "travelMinutes": buckets.travel_minutes,
        "totalMinutes": buckets.regular_minutes,
        "morningOtMinutes": buckets.morning_ot_minutes,
        "eveningOtMinutes": buckets.evening_ot_minutes,
        "totalOtMinutes": buckets.total_ot_minutes,
        "jobsCompleted": day.jobs_completed,
        "totalWeightEarned": day.total_weight_earned,
        "averageScore": day.average_score,
        "locationPath": [_location_point(point) for point in day.location_path],
    }


def build_ticket_achievement(ticket: TicketAchievement) -> Dict[str, Any]:
    metadata = ticket.metadata
    return {
        "miniJobCardId": ticket.ticket_id,
        "mainTicketId": metadata.main_ticket_id if metadata else None,
        "ticketNumber": metadata.ticket_number if metadata else None,
        "ticketTitle": metadata.title if metadata else None,
        "jobType": metadata.job_type if metadata else None,
        "generatorName": metadata.generator_name if metadata else None,
        "generatorModel": metadata.generator_model if metadata else None,
        "generatorLocation": metadata.generator_location if metadata else None,
        "startTime": _format_dt(ticket.start_time),
        "endTime": _format_dt(ticket.end_time),
        "workMinutes": ticket.buckets.work_minutes,
        "travelMinutes": ticket.buckets.travel_minutes,
        "idleMinutes": ticket.buckets.idle_minutes,
        "currentStatus": ticket.current_status.value,
        "weight": ticket.weight,
        "scored": ticket.scored,
        "approved": ticket.approved,
        "statusBreakdown": [_status_duration(entry) for entry in ticket.status_breakdown],
        "degraded": ticket.degraded,
    }


def build_employee_achievement_report(day: EmployeeDay) -> Dict[str, Any]:
    buckets = day.buckets
    reported = day.reported_tickets
    completed = sum(1 for ticket in reported if ticket.completed)
    return {
        "employeeId": day.employee_id,
        "employeeName": day.employee_name,
        "date": _format_date(day.day),
        "dayStartTime": _format_dt(day.start_time),
        "dayEndTime": _format_dt(day.end_time),
        "dailySummary": {
            "totalTickets": len(reported),
            "completedTickets": completed,
            "pendingTickets": len(reported) - completed,
            "totalWorkMinutes": buckets.work_minutes,
            "totalTravelMinutes": buckets.travel_minutes,
            "totalIdleMinutes": buckets.idle_minutes,
            "totalWeightEarned": day.total_weight_earned,
            "morningOtMinutes": buckets.morning_ot_minutes,
            "eveningOtMinutes": buckets.evening_ot_minutes,
            "totalOtMinutes": buckets.total_ot_minutes,
        },
        "ticketAchievements": [build_ticket_achievement(ticket) for ticket in reported],
        "notes": list(day.notes),
    }
