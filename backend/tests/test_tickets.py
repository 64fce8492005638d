"""
Per-ticket aggregation: time buckets, overtime, scoring and travel locations.
"""

from datetime import timedelta

import pytest

from fieldtime.errors import MissingMetadata
from fieldtime.intervals import build_intervals
from fieldtime.models import Interval, LocationPoint, TicketStatus
from fieldtime.tickets import accumulate_buckets, aggregate_ticket, lookup_metadata, travel_locations

from conftest import at


def _point(hhmm, lat=25.2, lng=55.3):
    return LocationPoint(latitude=lat, longitude=lng, timestamp=at(hhmm))


class TestScenarioDay:
    """TRAVELING 08:00, STARTED 08:45, ON_HOLD 12:00, STARTED 12:30, COMPLETED 18:00."""

    def test_bucket_minutes(self, scenario_events, engine_config):
        buckets = aggregate_ticket(scenario_events, config=engine_config).buckets

        assert buckets.travel_minutes == 45
        assert buckets.idle_minutes == 30
        assert buckets.work_minutes == 570
        assert buckets.morning_ot_minutes == 30
        assert buckets.evening_ot_minutes == 30
        assert buckets.total_ot_minutes == 60
        assert buckets.regular_minutes == 510

    def test_work_and_idle_partition_the_tracked_time(self, scenario_events, engine_config):
        buckets = aggregate_ticket(scenario_events, config=engine_config).buckets
        assert buckets.work_minutes + buckets.idle_minutes == 600
        assert buckets.regular_minutes + buckets.total_ot_minutes + buckets.idle_minutes == 600

    def test_ticket_times_and_status(self, scenario_events, engine_config):
        ticket = aggregate_ticket(scenario_events, config=engine_config)

        assert ticket.current_status is TicketStatus.COMPLETED
        assert ticket.completed
        assert ticket.start_time == at("08:00")
        assert ticket.end_time == at("18:00")
        assert ticket.first_event_time == at("08:00")
        assert ticket.last_event_time == at("18:00")

    def test_status_breakdown(self, scenario_events, engine_config):
        breakdown = aggregate_ticket(scenario_events, config=engine_config).status_breakdown
        assert [(entry.status, entry.minutes) for entry in breakdown] == [
            (TicketStatus.TRAVELING, 45),
            (TicketStatus.STARTED, 195),
            (TicketStatus.ON_HOLD, 30),
            (TicketStatus.STARTED, 330),
        ]


class TestOpenAndEdgeTickets:

    def test_open_ticket_counts_until_day_end(self, make_event, engine_config):
        ticket = aggregate_ticket([make_event("STARTED", "16:00")], config=engine_config)

        assert ticket.current_status is TicketStatus.STARTED
        assert ticket.end_time is None
        # 16:00 to 23:59:59, truncated to whole minutes
        assert ticket.buckets.work_minutes == 479
        assert ticket.buckets.regular_minutes == 90
        assert ticket.buckets.evening_ot_minutes == 389

    def test_lone_completed_contributes_no_time(self, make_event, engine_config):
        ticket = aggregate_ticket([make_event("COMPLETED", "10:00")], config=engine_config)

        assert ticket.completed
        assert ticket.start_time is None
        assert ticket.end_time == at("10:00")
        assert ticket.buckets.work_minutes == 0
        assert [entry.minutes for entry in ticket.status_breakdown] == [0]

    def test_minutes_truncate_only_at_totals(self, make_event, engine_config):
        """Two 30.5 minute spans are 61 minutes of work, not 60."""
        events = [
            make_event("STARTED", "09:00:00"),
            make_event("ON_HOLD", "09:30:30"),
            make_event("STARTED", "10:00:00"),
            make_event("COMPLETED", "10:30:30"),
        ]
        ticket = aggregate_ticket(events, config=engine_config)
        assert ticket.buckets.work_minutes == 61
        assert [entry.minutes for entry in ticket.status_breakdown] == [30, 29, 30]

    def test_empty_ticket_is_an_error(self, engine_config):
        with pytest.raises(ValueError):
            aggregate_ticket([], config=engine_config)

    def test_degraded_reason_is_recorded(self, make_event, engine_config):
        ticket = aggregate_ticket(
            [make_event("STARTED", "09:00"), make_event("COMPLETED", "10:00")],
            config=engine_config,
            degraded_reason="Invalid event sequence",
        )
        assert ticket.degraded
        assert ticket.notes == ("Invalid event sequence",)


class TestScoring:

    def test_scored_weight_in_range(self, scenario_events, engine_config, make_metadata):
        ticket = aggregate_ticket(
            scenario_events,
            config=engine_config,
            metadata=make_metadata(101, weight=4, scored=True, approved=True),
        )
        assert ticket.weight == 4
        assert ticket.scored
        assert ticket.approved

    def test_unscored_ticket_keeps_its_weight(self, scenario_events, engine_config, make_metadata):
        ticket = aggregate_ticket(
            scenario_events, config=engine_config, metadata=make_metadata(101, weight=3)
        )
        assert ticket.weight == 3
        assert not ticket.scored

    @pytest.mark.parametrize("weight", [0, 6, None])
    def test_weight_outside_bounds_is_not_scored(self, scenario_events, engine_config, make_metadata, weight, caplog):
        with caplog.at_level("WARNING", logger="fieldtime.tickets"):
            ticket = aggregate_ticket(
                scenario_events,
                config=engine_config,
                metadata=make_metadata(101, weight=weight, scored=True),
            )
        assert not ticket.scored
        assert any("not scored" in note for note in ticket.notes)
        assert "treated as unscored" in caplog.text

    def test_without_metadata(self, scenario_events, engine_config):
        ticket = aggregate_ticket(scenario_events, config=engine_config)
        assert ticket.metadata is None
        assert ticket.weight is None
        assert not ticket.scored


class TestLookupMetadata:

    def test_missing_ticket_raises(self, make_metadata):
        with pytest.raises(MissingMetadata) as excinfo:
            lookup_metadata({1: make_metadata(1)}, 2)
        assert excinfo.value.ticket_id == 2

    def test_found(self, make_metadata):
        record = make_metadata(1)
        assert lookup_metadata({1: record}, 1) is record


class TestAccumulateBuckets:

    def test_hold_time_is_idle_only(self, engine_config):
        interval = Interval(ticket_id=1, status=TicketStatus.ON_HOLD, start=at("06:00"), end=at("07:00"))
        buckets = accumulate_buckets([interval], engine_config)
        assert buckets.idle == timedelta(hours=1)
        assert buckets.work == timedelta(0)
        assert buckets.morning_ot == timedelta(0)

    def test_travel_counts_as_work(self, engine_config):
        interval = Interval(ticket_id=1, status=TicketStatus.TRAVELING, start=at("09:00"), end=at("09:20"))
        buckets = accumulate_buckets([interval], engine_config)
        assert buckets.travel == buckets.work == timedelta(minutes=20)


class TestTravelLocations:

    def test_only_points_inside_travel_spans_are_kept(self, scenario_events, engine_config):
        intervals = build_intervals(scenario_events, day_end=engine_config.day_end_on(at("00:00")))
        points = [_point("10:00"), _point("08:30"), _point("07:59"), _point("08:00"), _point("08:45")]

        kept = travel_locations(intervals, points)

        assert [point.timestamp for point in kept] == [at("08:00"), at("08:30"), at("08:45")]

    def test_no_travel_means_no_path(self, make_event, engine_config):
        ticket = aggregate_ticket(
            [make_event("STARTED", "09:00"), make_event("COMPLETED", "10:00")],
            config=engine_config,
            locations=[_point("09:30")],
        )
        assert ticket.location_points == ()
