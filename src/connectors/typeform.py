# connectors/typeform.py

import json
import logging
from typing import Optional

from config import DEFAULT_ENGINE_CONFIG
from connectors.base import safe_str, optional_str, require_id, require_timestamp, event_id
from models import FormSubmission, TimelineEvent, EventType, EventSource

logger = logging.getLogger(__name__)

SOURCE = EventSource.TYPEFORM.value


def parse_form(raw: dict) -> FormSubmission:
    raw_id = require_id(raw, "form", "id", "typeform_response_id")
    submitted_at = require_timestamp(raw, "form", raw_id, "submitted_at", "date")

    answers = raw.get("answers") or []
    if isinstance(answers, str):
        try:
            answers = json.loads(answers)
        except (json.JSONDecodeError, TypeError):
            answers = []
    if isinstance(answers, dict):
        answers = list(answers.values())

    return FormSubmission(
        id=raw_id,
        submitted_at=submitted_at,
        form_name=safe_str(raw.get("form_name")),
        answers=tuple(safe_str(a) for a in answers if not isinstance(a, (dict, list))),
        source_id=optional_str(raw.get("typeform_response_id")),
    )


def form_to_event(form: FormSubmission, scores: Optional[dict] = None) -> TimelineEvent:
    scores = scores or DEFAULT_ENGINE_CONFIG["event_scores"]
    description = f"{len(form.answers)} answers" if form.answers else ""

    return TimelineEvent(
        id=event_id(SOURCE, "form", form.id),
        type=EventType.FORM,
        subtype=form.form_name or None,
        title=form.form_name or "Form Submission",
        description=description,
        timestamp=form.submitted_at,
        source=EventSource.TYPEFORM,
        source_id=form.source_id,
        score=scores["form"],
    )


def normalize_form(raw: dict) -> TimelineEvent:
    return form_to_event(parse_form(raw))
