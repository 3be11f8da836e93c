# connectors/calendly.py

import json
import logging
from typing import Optional

from config import DEFAULT_ENGINE_CONFIG
from connectors.base import (
    safe_str, optional_str, parse_timestamp,
    require_id, require_timestamp, event_id
)
from models import Meeting, MeetingStatus, TimelineEvent, EventType, EventSource

logger = logging.getLogger(__name__)

SOURCE = EventSource.CALENDLY.value

_DEFAULT_TITLES = {
    "solution_call": "Solution Call",
    "triage_call": "Triage Call",
}

_STATUS_MAP = {
    "active": MeetingStatus.SCHEDULED.value,
    "scheduled": MeetingStatus.SCHEDULED.value,
    "completed": MeetingStatus.COMPLETED.value,
    "canceled": MeetingStatus.CANCELED.value,
    "cancelled": MeetingStatus.CANCELED.value,
    "no_show": MeetingStatus.NO_SHOW.value,
    "no-show": MeetingStatus.NO_SHOW.value,
}


def _infer_meeting_type(raw: dict) -> Optional[str]:
    """
    Le type vient du champ "type" si présent,
    sinon du nom de l'event Calendly ("Solution Call - 45min"...).
    """
    candidates = [safe_str(raw.get("type")), safe_str(raw.get("title"))]

    for text in candidates:
        lowered = text.lower()
        if "solution" in lowered:
            return "solution_call"
        if "triage" in lowered:
            return "triage_call"

    return None


def _scheduled_by(raw: dict) -> Optional[str]:
    """Nom de la personne qui a booké, stocké dans metadata.attribution."""
    metadata = raw.get("metadata")
    if not metadata:
        return None

    if isinstance(metadata, str):
        try:
            metadata = json.loads(metadata)
        except (json.JSONDecodeError, TypeError):
            logger.warning(
                f"[calendly] Metadata illisible pour meeting {raw.get('id')}"
            )
            return None

    attribution = metadata.get("attribution") or {}
    return optional_str(attribution.get("scheduledBy"))


def parse_meeting(raw: dict) -> Meeting:
    raw_id = require_id(raw, "meeting", "id", "calendly_event_id")
    start_time = require_timestamp(raw, "meeting", raw_id, "start_time")

    status_raw = safe_str(raw.get("status"), "scheduled").lower()

    return Meeting(
        id=raw_id,
        start_time=start_time,
        type=_infer_meeting_type(raw),
        status=_STATUS_MAP.get(status_raw, status_raw),
        title=safe_str(raw.get("title")),
        description=safe_str(raw.get("description")),
        booked_at=parse_timestamp(raw.get("booked_at") or raw.get("created_at")),
        user_id=optional_str(raw.get("user_id") or raw.get("assigned_to")),
        user_name=optional_str(raw.get("user_name")) or _scheduled_by(raw),
        source_id=optional_str(raw.get("calendly_event_id")),
    )


def meeting_to_event(meeting: Meeting, scores: Optional[dict] = None) -> TimelineEvent:
    scores = scores or DEFAULT_ENGINE_CONFIG["event_scores"]
    # Un meeting sans type est traité comme un triage par défaut
    default_title = _DEFAULT_TITLES.get(meeting.type, "Triage Call")

    return TimelineEvent(
        id=event_id(SOURCE, "meeting", meeting.id),
        type=EventType.MEETING,
        subtype=meeting.type,
        title=meeting.title or default_title,
        description=meeting.description,
        timestamp=meeting.start_time,
        source=EventSource.CALENDLY,
        source_id=meeting.source_id,
        user_id=meeting.user_id,
        user_name=meeting.user_name or "Unknown",
        score=scores["meeting"],
    )


def normalize_meeting(raw: dict) -> TimelineEvent:
    return meeting_to_event(parse_meeting(raw))
