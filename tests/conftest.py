# tests/conftest.py

import pytest
from datetime import datetime, timezone

from models import ContactBundle


# ─────────────────────────────────────────
# FIXTURES : DONNÉES RÉALISTES
# Des lignes qui ressemblent à ce que la sync
# écrit vraiment dans Supabase.
# ─────────────────────────────────────────

@pytest.fixture
def as_of():
    """Instant de référence figé : 1h après le dernier event de Jane."""
    return datetime(2025, 3, 5, 13, 0, tzinfo=timezone.utc)


@pytest.fixture
def jane_raw():
    """
    Parcours complet : formulaire → calls → triage → solution → deal gagné.
    Deux reps : Alice (setter) et Bob (closer).
    """
    return {
        "contact": {
            "id": "c_001",
            "name": "Jane Roe",
            "email": "Jane.Roe@Example.com",
            "status": "customer",
            "lead_source": "facebook",
            "created_at": "2025-03-01T08:00:00Z",
        },
        "forms": [
            {
                "id": "f_1",
                "submitted_at": "2025-03-01T08:05:00Z",
                "form_name": "Application",
                "answers": '["Coaching", "10k/month"]',
                "typeform_response_id": "tf_abc",
            },
        ],
        "activities": [
            {
                "id": "a_1",
                "type": "Call",
                "date": "2025-03-01T08:20:00Z",
                "status": "completed",
                "notes": "Set triage for Monday",
                "direction": "outbound",
                "stage": "Discovery",
                "user_id": "rep_1",
                "user_name": "Alice Setter",
            },
            {
                "id": "a_2",
                "type": "email",
                "date": "2025-03-01T09:00:00Z",
                "status": "sent",
                "title": "Follow-up",
                "metadata": {"direction": "outbound"},
                "user_id": "rep_1",
                "user_name": "Alice Setter",
            },
            {
                "id": "a_3",
                "type": "call",
                "date": "2025-03-01 09:30:00",
                "status": "no_answer",
                "direction": "outbound",
                "user_id": "rep_1",
                "user_name": "Alice Setter",
            },
            {
                "id": "a_4",
                "type": "admin",
                "date": "2025-03-04T12:00:00Z",
                "status": "completed",
                "user_id": "rep_2",
                "user_name": "Bob Closer",
            },
            {
                "id": "a_5",
                "type": "admin",
                "date": "2025-03-05T12:00:00Z",
                "status": "pending",
                "user_id": "rep_2",
                "user_name": "Bob Closer",
            },
            {
                "id": "a_6",
                "type": "note",
                "date": "2025-03-04T11:00:00Z",
                "notes": "Prête à signer",
                "user_id": "rep_2",
                "user_name": "Bob Closer",
            },
        ],
        "meetings": [
            {
                "id": "m_1",
                "title": "Triage Call - 30min",
                "start_time": "2025-03-03T15:00:00Z",
                "booked_at": "2025-03-01T08:30:00Z",
                "status": "completed",
                "user_id": "rep_1",
                "calendly_event_id": "cal_1",
                "metadata": {"attribution": {"scheduledBy": "Alice Setter"}},
            },
            {
                "id": "m_2",
                "type": "solution_call",
                "title": "",
                "start_time": "2025-03-04T16:00:00Z",
                "booked_at": "2025-03-03T15:30:00Z",
                "status": "completed",
                "user_id": "rep_2",
                "user_name": "Bob Closer",
            },
        ],
        "deals": [
            {
                "id": "d_1",
                "title": "Jane Roe - Coaching",
                "created_at": "2025-03-04T17:00:00Z",
                "status": "won",
                "stage": "Closed",
                "value": "$5,000",
                "cash_collected": 3000,
                "cost": 800,
                "profit": 2200,
                "close_date": "2025-03-04",
                "user_id": "rep_2",
                "user_name": "Bob Closer",
                "close_id": "oppo_1",
            },
        ],
        "status_changes": [
            {
                "id": "s_1",
                "from_status": "lead",
                "to_status": "qualified",
                "changed_at": "2025-03-03T15:30:00Z",
            },
            {
                "id": "s_2",
                "to_status": "customer",
                "changed_at": "2025-03-04T17:00:00Z",
            },
        ],
    }


@pytest.fixture
def john_raw():
    """
    Lead disqualifié : un formulaire, un triage no-show,
    et une activité cassée (sans date) qui doit être rejetée.
    """
    return {
        "contact": {
            "id": "c_002",
            "name": "John Doe",
            "status": "Disqualified",
            "created_at": "2025-03-02T10:00:00Z",
        },
        "forms": [
            {"id": "f_2", "submitted_at": "2025-03-02T10:00:00Z", "form_name": "Application"},
        ],
        "activities": [
            {"id": "a_bad", "type": "call", "user_id": "rep_1"},
        ],
        "meetings": [
            {
                "id": "m_3",
                "title": "Triage",
                "start_time": "2025-03-04T10:00:00Z",
                "booked_at": "2025-03-02T10:10:00Z",
                "status": "no-show",
                "user_id": "rep_1",
                "user_name": "Alice Setter",
            },
        ],
        "deals": [],
        "status_changes": [],
    }


@pytest.fixture
def jane_bundle(jane_raw):
    return ContactBundle(**jane_raw)


@pytest.fixture
def john_bundle(john_raw):
    return ContactBundle(**john_raw)


@pytest.fixture
def bundles(jane_bundle, john_bundle):
    return [jane_bundle, john_bundle]


@pytest.fixture
def empty_bundle():
    return ContactBundle(contact={"id": "c_empty", "status": "lead"})
