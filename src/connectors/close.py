# connectors/close.py

"""
Close CRM : contacts, activités (calls, emails, SMS, admin, notes),
opportunités et changements de lead status.

Les lignes arrivent déjà synchronisées en base (snake_case).
"""

from typing import Optional
import logging

from config import DEFAULT_ENGINE_CONFIG
from connectors.base import (
    safe_float, safe_str, optional_str, parse_timestamp,
    require_id, require_timestamp, event_id
)
from errors import MalformedRecordError
from models import (
    Contact, Activity, Deal, DealStatus, StatusChange,
    TimelineEvent, EventType, EventSource
)

logger = logging.getLogger(__name__)

SOURCE = EventSource.CLOSE.value

_DEAL_STATUS_MAP = {
    "won": DealStatus.WON,
    "closed_won": DealStatus.WON,
    "lost": DealStatus.LOST,
    "closed_lost": DealStatus.LOST,
    "open": DealStatus.OPEN,
    "active": DealStatus.OPEN,
}


# ─────────────────────────────────────────
# PARSING DES RECORDS
# ─────────────────────────────────────────

def parse_contact(raw: dict) -> Contact:
    """Un contact sans id est inutilisable, tout le reste est optionnel."""
    contact_id = require_id(raw, "contact", "id", "contact_id")

    return Contact(
        id=contact_id,
        name=safe_str(raw.get("name")),
        email=safe_str(raw.get("email")).lower(),
        status=safe_str(raw.get("status"), "lead") or "lead",
        lead_source=safe_str(raw.get("lead_source")),
        created_at=parse_timestamp(raw.get("created_at")),
        assigned_to=optional_str(raw.get("assigned_to")),
    )


def parse_activity(raw: dict) -> Activity:
    raw_id = require_id(raw, "activity", "id", "source_id")
    date = require_timestamp(raw, "activity", raw_id, "date", "created_at")
    metadata = raw.get("metadata") or {}

    return Activity(
        id=raw_id,
        type=safe_str(raw.get("type"), "activity").lower(),
        date=date,
        status=safe_str(raw.get("status")).lower(),
        title=safe_str(raw.get("title")),
        notes=safe_str(raw.get("notes") or raw.get("description")),
        direction=safe_str(
            raw.get("direction") or metadata.get("direction")
        ).lower(),
        stage=optional_str(raw.get("stage") or metadata.get("stage")),
        user_id=optional_str(raw.get("user_id") or raw.get("assigned_to")),
        user_name=optional_str(raw.get("user_name")),
        source_id=optional_str(raw.get("source_id")),
    )


def parse_deal(raw: dict) -> Deal:
    raw_id = require_id(raw, "deal", "id", "close_id")
    created_at = require_timestamp(raw, "deal", raw_id, "created_at", "date")

    status_raw = safe_str(raw.get("status"), "open").lower()
    status = _DEAL_STATUS_MAP.get(status_raw, DealStatus.OPEN)

    return Deal(
        id=raw_id,
        created_at=created_at,
        title=safe_str(raw.get("title") or raw.get("name")),
        status=status,
        stage=safe_str(raw.get("stage")),
        value=safe_float(raw.get("value")),
        cash_collected=safe_float(raw.get("cash_collected")),
        cost=safe_float(raw.get("cost")),
        profit=safe_float(raw.get("profit")),
        closed_at=parse_timestamp(raw.get("closed_at") or raw.get("close_date")),
        user_id=optional_str(raw.get("user_id") or raw.get("assigned_to")),
        user_name=optional_str(raw.get("user_name")),
        source_id=optional_str(raw.get("close_id") or raw.get("source_id")),
    )


def parse_status_change(raw: dict) -> StatusChange:
    to_status = safe_str(raw.get("to_status") or raw.get("new_status"))
    if not to_status:
        raise MalformedRecordError(
            "status_change", "nouveau statut manquant", raw.get("id")
        )

    changed_at = require_timestamp(
        raw, "status_change", raw.get("id"), "changed_at", "date"
    )

    return StatusChange(
        to_status=to_status.lower(),
        changed_at=changed_at,
        from_status=optional_str(
            raw.get("from_status") or raw.get("old_status")
        ),
    )


# ─────────────────────────────────────────
# RECORD → TIMELINE EVENT
# ─────────────────────────────────────────

def activity_to_event(activity: Activity, scores: Optional[dict] = None) -> TimelineEvent:
    scores = scores or DEFAULT_ENGINE_CONFIG["event_scores"]
    is_note = activity.type == "note"
    kind = "note" if is_note else "activity"
    default_title = "Note" if is_note else (activity.type.capitalize() or "Activity")

    return TimelineEvent(
        id=event_id(SOURCE, kind, activity.id),
        type=EventType.NOTE if is_note else EventType.ACTIVITY,
        subtype=activity.type,
        title=activity.title or default_title,
        description=activity.notes,
        timestamp=activity.date,
        source=EventSource.CLOSE,
        source_id=activity.source_id,
        user_id=activity.user_id,
        user_name=activity.user_name or "Unknown",
        score=scores[kind],
    )


def deal_to_event(deal: Deal, scores: Optional[dict] = None) -> TimelineEvent:
    scores = scores or DEFAULT_ENGINE_CONFIG["event_scores"]
    value = f"${deal.value:,.0f}" if deal.value else ""
    description = f"{value} - {deal.status.value}" if value else deal.status.value

    return TimelineEvent(
        id=event_id(SOURCE, "deal", deal.id),
        type=EventType.DEAL,
        subtype=deal.stage or None,
        title=deal.title or "Deal",
        description=description,
        timestamp=deal.created_at,
        source=EventSource.CLOSE,
        source_id=deal.source_id,
        user_id=deal.user_id,
        user_name=deal.user_name or "Unknown",
        score=scores["deal"],
    )


# ─────────────────────────────────────────
# ADAPTATEURS (table de dispatch)
# ─────────────────────────────────────────

def normalize_activity(raw: dict) -> TimelineEvent:
    return activity_to_event(parse_activity(raw))


def normalize_note(raw: dict) -> TimelineEvent:
    return activity_to_event(parse_activity({**raw, "type": "note"}))


def normalize_deal(raw: dict) -> TimelineEvent:
    return deal_to_event(parse_deal(raw))
