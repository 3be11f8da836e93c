# tests/test_connectors.py

"""
Ce qu'on teste :
→ Chaque adaptateur retourne un TimelineEvent au bon format
→ Les titres par défaut quand la source n'en donne pas
→ Les dates sont parsées en UTC, quel que soit le format
→ Un record cassé est rejeté et compté, jamais fatal au batch

Ce qu'on ne teste PAS :
→ Les vraies APIs (la sync est hors périmètre)
"""

import pytest
from datetime import datetime, timezone

from connectors import normalize_record, normalize_bundle, list_supported_records
from connectors.base import parse_timestamp, safe_float
from errors import MalformedRecordError
from models import EventType, EventSource, DealStatus, MeetingStatus


class TestParseTimestamp:

    def test_iso_with_z(self):
        parsed = parse_timestamp("2025-03-01T08:05:00Z")
        assert parsed == datetime(2025, 3, 1, 8, 5, tzinfo=timezone.utc)

    def test_offset_is_converted_to_utc(self):
        parsed = parse_timestamp("2025-03-01T10:05:00+02:00")
        assert parsed == datetime(2025, 3, 1, 8, 5, tzinfo=timezone.utc)

    def test_naive_is_taken_as_utc(self):
        parsed = parse_timestamp("2025-03-01 09:30:00")
        assert parsed.tzinfo is not None
        assert parsed.hour == 9

    def test_date_only(self):
        assert parse_timestamp("2025-03-01") == datetime(2025, 3, 1, tzinfo=timezone.utc)

    def test_epoch_seconds_and_millis(self):
        assert parse_timestamp(1740816000) == parse_timestamp(1740816000000)

    def test_garbage_returns_none(self):
        assert parse_timestamp("pas une date") is None
        assert parse_timestamp("") is None
        assert parse_timestamp(None) is None
        assert parse_timestamp(True) is None


class TestSafeFloat:

    def test_currency_string(self):
        assert safe_float("$1,200.50") == 1200.5

    def test_none_and_empty(self):
        assert safe_float(None) == 0.0
        assert safe_float("") == 0.0


class TestNormalizeRecord:

    def test_dispatch_table_covers_all_sources(self):
        supported = list_supported_records()
        assert ("close", "activity") in supported
        assert ("close", "note") in supported
        assert ("close", "deal") in supported
        assert ("calendly", "meeting") in supported
        assert ("typeform", "form") in supported

    def test_close_call(self):
        event = normalize_record("close", "activity", {
            "id": "42",
            "type": "Call",
            "date": "2025-03-01T08:20:00Z",
            "user_id": "rep_1",
        })

        assert event.id == "close_activity_42"
        assert event.type == EventType.ACTIVITY
        assert event.subtype == "call"
        assert event.title == "Call"
        assert event.source == EventSource.CLOSE
        assert event.score == 5
        assert event.user_name == "Unknown"

    def test_close_note_default_title(self):
        event = normalize_record("close", "note", {"id": "7", "date": "2025-03-01"})
        assert event.type == EventType.NOTE
        assert event.title == "Note"
        assert event.id == "close_note_7"

    def test_close_deal(self):
        event = normalize_record("close", "deal", {
            "id": "d1",
            "created_at": "2025-03-04T17:00:00Z",
            "status": "won",
            "value": 45000,
        })

        assert event.type == EventType.DEAL
        assert event.title == "Deal"
        assert event.description == "$45,000 - won"
        assert event.score == 15

    def test_calendly_untyped_meeting_is_triage(self):
        event = normalize_record("calendly", "meeting", {
            "id": "m1",
            "start_time": "2025-03-03T15:00:00Z",
        })

        assert event.title == "Triage Call"
        assert event.subtype is None
        assert event.score == 10

    def test_calendly_solution_inferred_from_title(self):
        event = normalize_record("calendly", "meeting", {
            "id": "m2",
            "title": "Solution Call - 45min",
            "start_time": "2025-03-04T16:00:00Z",
        })
        assert event.subtype == "solution_call"

    def test_calendly_scheduled_by_from_json_metadata(self):
        event = normalize_record("calendly", "meeting", {
            "id": "m3",
            "start_time": "2025-03-04T16:00:00Z",
            "metadata": '{"attribution": {"scheduledBy": "Alice Setter"}}',
        })
        assert event.user_name == "Alice Setter"

    def test_typeform_form(self):
        event = normalize_record("typeform", "form", {
            "id": "f1",
            "submitted_at": "2025-03-01T08:05:00Z",
            "answers": {"q1": "Coaching", "q2": "10k"},
        })

        assert event.type == EventType.FORM
        assert event.title == "Form Submission"
        assert event.description == "2 answers"
        assert event.source == EventSource.TYPEFORM

    def test_missing_timestamp_raises(self):
        with pytest.raises(MalformedRecordError) as exc:
            normalize_record("close", "activity", {"id": "1", "type": "call"})
        assert exc.value.code == "MALFORMED_RECORD"

    def test_missing_id_raises(self):
        with pytest.raises(MalformedRecordError):
            normalize_record("typeform", "form", {"submitted_at": "2025-03-01"})

    def test_unsupported_pair_raises(self):
        with pytest.raises(MalformedRecordError):
            normalize_record("hubspot", "deal", {"id": "1"})

    def test_ids_never_collide_across_tables(self):
        activity = normalize_record("close", "activity", {"id": "1", "date": "2025-03-01"})
        deal = normalize_record("close", "deal", {"id": "1", "created_at": "2025-03-01"})
        meeting = normalize_record("calendly", "meeting", {"id": "1", "start_time": "2025-03-01"})
        assert len({activity.id, deal.id, meeting.id}) == 3


class TestNormalizeBundle:

    def test_full_bundle(self, jane_bundle):
        normalized = normalize_bundle(jane_bundle)

        assert normalized.contact.id == "c_001"
        assert normalized.contact.email == "jane.roe@example.com"
        assert len(normalized.activities) == 6
        assert len(normalized.meetings) == 2
        assert len(normalized.deals) == 1
        assert len(normalized.forms) == 1
        assert len(normalized.status_changes) == 2
        assert len(normalized.events) == 10
        assert normalized.rejected_total == 0

    def test_typed_records(self, jane_bundle):
        normalized = normalize_bundle(jane_bundle)

        deal = normalized.deals[0]
        assert deal.status == DealStatus.WON
        assert deal.value == 5000.0
        assert deal.closed_at == datetime(2025, 3, 4, tzinfo=timezone.utc)

        triage = next(m for m in normalized.meetings if m.id == "m_1")
        assert triage.type == "triage_call"
        assert triage.status == MeetingStatus.COMPLETED.value
        assert triage.user_name == "Alice Setter"

        email = next(a for a in normalized.activities if a.id == "a_2")
        assert email.direction == "outbound"

    def test_broken_record_is_dropped_and_counted(self, john_bundle):
        normalized = normalize_bundle(john_bundle)

        assert normalized.activities == []
        assert normalized.rejected == {"activity": 1}
        assert len(normalized.events) == 2

    def test_no_show_status_mapped(self, john_bundle):
        normalized = normalize_bundle(john_bundle)
        assert normalized.meetings[0].status == MeetingStatus.NO_SHOW.value

    def test_contact_without_id_does_not_crash(self):
        from models import ContactBundle

        normalized = normalize_bundle(ContactBundle(contact={"name": "Sans id"}))
        assert normalized.contact.id == ""
        assert normalized.events == []
