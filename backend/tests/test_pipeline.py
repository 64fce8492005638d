"""
End-to-end computation of employee-days and the batch runner.
"""

import random
from datetime import date

from fieldtime import pipeline
from fieldtime.models import LocationPoint, TicketLocation
from fieldtime.pipeline import ReportSnapshot, build_employee_day_report, compute_employee_day, run_batch

from conftest import REPORT_DAY, at

NEXT_DAY = date(2024, 3, 5)


def _report(events, engine_config, **kwargs):
    return build_employee_day_report(
        events,
        employee_id=1,
        employee_name="Aisha Khan",
        day=REPORT_DAY,
        config=engine_config,
        **kwargs,
    )


class TestComputeEmployeeDay:

    def test_scenario_through_the_whole_pipeline(self, scenario_events, engine_config, make_metadata):
        report = _report(scenario_events, engine_config, metadata={101: make_metadata(101)})
        daily = report.daily

        assert daily["travelMinutes"] == 45
        assert daily["idleMinutes"] == 30
        assert daily["dailyWorkingMinutes"] == 570
        assert daily["morningOtMinutes"] == 30
        assert daily["eveningOtMinutes"] == 30
        assert daily["totalOtMinutes"] == 60
        assert daily["totalMinutes"] == 510
        assert daily["jobsCompleted"] == 1

    def test_permuted_input_gives_identical_reports(self, make_event, engine_config, make_metadata):
        events = [
            make_event("TRAVELING", "07:50", ticket_id=1),
            make_event("STARTED", "08:40", ticket_id=1),
            make_event("COMPLETED", "11:00", ticket_id=1),
            make_event("STARTED", "11:00", ticket_id=2),
            make_event("STARTED", "11:00", ticket_id=2),
            make_event("ON_HOLD", "13:00", ticket_id=2),
            make_event("STARTED", "13:45", ticket_id=2),
            make_event("COMPLETED", "18:10", ticket_id=2),
            make_event("TRAVELING", "18:15", ticket_id=3),
        ]
        metadata = {
            1: make_metadata(1, weight=3, scored=True),
            2: make_metadata(2, weight=5, scored=True),
            3: make_metadata(3),
        }
        locations = {1: [LocationPoint(25.0, 55.0, at("08:00"))], 3: [LocationPoint(25.1, 55.1, at("19:00"))]}

        expected = _report(events, engine_config, metadata=metadata, locations=locations)
        shuffled = list(events)
        random.Random(7).shuffle(shuffled)
        again = _report(shuffled, engine_config, metadata=metadata, locations=locations)

        assert again.daily == expected.daily
        assert again.achievement == expected.achievement
        assert _report(list(reversed(events)), engine_config, metadata=metadata, locations=locations).daily == expected.daily

    def test_invalid_ticket_is_degraded_and_others_proceed(self, make_event, engine_config, make_metadata):
        events = [
            make_event("STARTED", "09:00", ticket_id=1),
            make_event("COMPLETED", "10:00", ticket_id=1),
            make_event("STARTED", "10:30", ticket_id=1),
            make_event("STARTED", "11:00", ticket_id=2),
            make_event("COMPLETED", "12:00", ticket_id=2),
        ]
        report = _report(
            events, engine_config, metadata={1: make_metadata(1), 2: make_metadata(2)}
        )

        listed = {item["miniJobCardId"]: item for item in report.achievement["ticketAchievements"]}
        assert listed[1]["degraded"] is True
        assert listed[1]["workMinutes"] == 60
        assert listed[2]["degraded"] is False
        assert report.daily["dailyWorkingMinutes"] == 120
        assert any(note.startswith("Ticket 1: Invalid event sequence") for note in report.achievement["notes"])

    def test_missing_metadata_keeps_time(self, scenario_events, engine_config, caplog):
        with caplog.at_level("WARNING", logger="fieldtime.pipeline"):
            report = _report(scenario_events, engine_config, metadata={})

        assert report.achievement["ticketAchievements"] == []
        assert report.achievement["dailySummary"]["totalTickets"] == 0
        assert report.daily["dailyWorkingMinutes"] == 570
        assert report.achievement["notes"][0].startswith("Ticket 101: no ticket record found")
        assert "no metadata record for ticket 101" in caplog.text

    def test_compute_is_pure(self, scenario_events, engine_config):
        first = compute_employee_day(
            scenario_events, employee_id=1, employee_name=None, day=REPORT_DAY, config=engine_config
        )
        second = compute_employee_day(
            scenario_events, employee_id=1, employee_name=None, day=REPORT_DAY, config=engine_config
        )
        assert first == second


class TestRunBatch:

    def _snapshot(self, make_event, make_metadata):
        events = (
            make_event("STARTED", "09:00", ticket_id=1, employee_id=1),
            make_event("COMPLETED", "10:00", ticket_id=1, employee_id=1),
            make_event("STARTED", "09:00", ticket_id=2, employee_id=1, day=NEXT_DAY),
            make_event("TRAVELING", "08:00", ticket_id=3, employee_id=2),
            make_event("COMPLETED", "08:30", ticket_id=3, employee_id=2),
        )
        return ReportSnapshot(
            events=events,
            metadata={ticket_id: make_metadata(ticket_id) for ticket_id in (1, 2, 3)},
            employees={1: "zainab Ali", 2: "Bilal Hassan"},
            locations=(
                TicketLocation(ticket_id=3, point=LocationPoint(25.0, 55.0, at("08:10"))),
                TicketLocation(ticket_id=3, point=LocationPoint(25.0, 55.0, at("08:10", NEXT_DAY))),
            ),
        )

    def test_reports_ordered_by_name_then_date(self, make_event, make_metadata, engine_config):
        result = run_batch(self._snapshot(make_event, make_metadata), config=engine_config, workers=3)

        assert [(report["employeeName"], report["date"]) for report in result.daily_reports] == [
            ("Bilal Hassan", "2024-03-04"),
            ("zainab Ali", "2024-03-04"),
            ("zainab Ali", "2024-03-05"),
        ]
        assert result.failures == ()
        assert len(result.achievement_reports) == 3

    def test_locations_are_limited_to_the_day(self, make_event, make_metadata, engine_config):
        result = run_batch(self._snapshot(make_event, make_metadata), config=engine_config)
        bilal = result.daily_reports[0]
        assert [point["timestamp"] for point in bilal["locationPath"]] == ["2024-03-04T08:10:00"]

    def test_worker_count_does_not_change_output(self, make_event, make_metadata, engine_config):
        snapshot = self._snapshot(make_event, make_metadata)
        single = run_batch(snapshot, config=engine_config, workers=1)
        pooled = run_batch(snapshot, config=engine_config, workers=4)
        assert single.daily_reports == pooled.daily_reports

    def test_employee_filter(self, make_event, make_metadata, engine_config):
        result = run_batch(self._snapshot(make_event, make_metadata), config=engine_config, employee_id=2)
        assert [report["employeeId"] for report in result.daily_reports] == [2]

    def test_skip_predicate(self, make_event, make_metadata, engine_config):
        result = run_batch(
            self._snapshot(make_event, make_metadata),
            config=engine_config,
            skip=lambda employee_id, day: day == NEXT_DAY,
        )
        assert [report["date"] for report in result.daily_reports] == ["2024-03-04", "2024-03-04"]

    def test_failed_day_is_isolated(self, make_event, make_metadata, engine_config, monkeypatch, caplog):
        original = pipeline.build_employee_day_report

        def _flaky(events, **kwargs):
            if kwargs["employee_id"] == 2:
                raise RuntimeError("boom")
            return original(events, **kwargs)

        monkeypatch.setattr(pipeline, "build_employee_day_report", _flaky)
        with caplog.at_level("ERROR", logger="fieldtime.pipeline"):
            result = run_batch(self._snapshot(make_event, make_metadata), config=engine_config, workers=2)

        assert [report["employeeId"] for report in result.daily_reports] == [1, 1]
        assert len(result.failures) == 1
        failure = result.failures[0]
        assert (failure.employee_id, failure.day, failure.error) == (2, REPORT_DAY, "boom")
        assert "Report computation failed for employee 2" in caplog.text

    def test_empty_snapshot(self, engine_config):
        result = run_batch(ReportSnapshot(), config=engine_config)
        assert result.reports == ()
        assert result.failures == ()
