# tests/test_timeline.py

"""
Invariants de la timeline :
→ ordre (timestamp, id), stable
→ total_touchpoints == somme des sources == nombre d'events
→ timeline vide = None / 0 / {}
"""

from datetime import datetime, timedelta, timezone

from connectors import normalize_bundle
from journey.timeline import build_timeline, filter_events, minutes_between
from models import TimelineEvent, EventType, EventSource, DateRange


def _event(event_id: str, minute: int, source=EventSource.CLOSE, user_id=None):
    return TimelineEvent(
        id=event_id,
        type=EventType.ACTIVITY,
        title="Call",
        timestamp=datetime(2025, 3, 1, 8, 0, tzinfo=timezone.utc) + timedelta(minutes=minute),
        source=source,
        user_id=user_id,
    )


class TestBuildTimeline:

    def test_empty(self):
        timeline = build_timeline([])

        assert timeline.first_touch is None
        assert timeline.last_touch is None
        assert timeline.total_touchpoints == 0
        assert timeline.sources == {}
        assert timeline.journey_length_minutes is None

    def test_sorted_by_timestamp_then_id(self):
        events = [_event("b", 10), _event("c", 5), _event("a", 10)]
        timeline = build_timeline(events)

        assert [e.id for e in timeline] == ["c", "a", "b"]

    def test_order_does_not_depend_on_input_order(self):
        events = [_event("x", 3), _event("y", 1), _event("z", 2)]
        assert build_timeline(events).events == build_timeline(reversed(events)).events

    def test_sources_in_first_seen_order(self):
        events = [
            _event("1", 30, EventSource.CALENDLY),
            _event("2", 0, EventSource.TYPEFORM),
            _event("3", 10, EventSource.CLOSE),
            _event("4", 20, EventSource.CLOSE),
        ]
        timeline = build_timeline(events)

        assert list(timeline.sources) == ["typeform", "close", "calendly"]
        assert timeline.sources == {"typeform": 1, "close": 2, "calendly": 1}

    def test_touchpoint_invariant(self, jane_bundle):
        timeline = build_timeline(normalize_bundle(jane_bundle).events)

        assert timeline.total_touchpoints == 10
        assert sum(timeline.sources.values()) == timeline.total_touchpoints
        assert len(timeline.events) == timeline.total_touchpoints
        for event in timeline:
            assert event.source.value in timeline.sources

    def test_first_last_and_length(self, jane_bundle):
        timeline = build_timeline(normalize_bundle(jane_bundle).events)

        assert timeline.first_touch == datetime(2025, 3, 1, 8, 5, tzinfo=timezone.utc)
        assert timeline.last_touch == datetime(2025, 3, 5, 12, 0, tzinfo=timezone.utc)
        assert timeline.journey_length_minutes == 5995.0

    def test_last_activity_gap_never_negative(self):
        timeline = build_timeline([_event("a", 60)])
        before = datetime(2025, 3, 1, 8, 0, tzinfo=timezone.utc)

        assert timeline.last_activity_gap_minutes(before) == 0.0

    def test_gaps(self):
        timeline = build_timeline([_event("a", 0), _event("b", 15), _event("c", 45)])
        assert timeline.gaps_minutes() == [15.0, 30.0]


class TestFilterEvents:

    def test_date_range(self):
        events = [_event("a", 0), _event("b", 60 * 24 * 3)]
        day_one = DateRange(
            start=datetime(2025, 3, 1, tzinfo=timezone.utc),
            end=datetime(2025, 3, 1, 23, 59, 59, tzinfo=timezone.utc),
        )

        assert [e.id for e in filter_events(events, day_one)] == ["a"]

    def test_user_filter_keeps_unowned_events(self):
        events = [
            _event("mine", 0, user_id="rep_1"),
            _event("other", 1, user_id="rep_2"),
            _event("form", 2, EventSource.TYPEFORM),
        ]

        kept = filter_events(events, user_filter="rep_1")
        assert [e.id for e in kept] == ["mine", "form"]


def test_minutes_between_is_signed():
    start = datetime(2025, 3, 1, 8, 0, tzinfo=timezone.utc)
    assert minutes_between(start, start + timedelta(minutes=90)) == 90.0
    assert minutes_between(start + timedelta(minutes=90), start) == -90.0
