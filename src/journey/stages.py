# journey/stages.py

"""
Stage / Funnel Tracker.

Machine à états sur le lead status (texte libre côté Close).
Les transitions viennent uniquement des changements de statut
enregistrés, jamais déduites des autres events.

Une séquence non monotone est une erreur remontée à l'appelant :
la réordonner fausserait days_in_stage.
"""

from datetime import datetime
from typing import Iterable, Optional
import logging

from errors import OutOfOrderTransitionError
from journey.timeline import days_between
from models import StatusChange, StageTransition

logger = logging.getLogger(__name__)


def track_stage_transitions(
    changes: Iterable[StatusChange],
    journey_start: Optional[datetime],
    initial_stage: str = "lead",
) -> list[StageTransition]:
    """
    journey_start : first_touch du parcours (ou création du contact).

    days_in_stage = temps passé dans le statut précédent,
    depuis la transition précédente ou le début du parcours.
    """
    transitions: list[StageTransition] = []
    previous_at = journey_start
    previous_stage = None

    for index, change in enumerate(changes):
        if transitions and change.changed_at < transitions[-1].timestamp:
            raise OutOfOrderTransitionError(
                index, transitions[-1].timestamp, change.changed_at
            )

        from_stage = previous_stage or change.from_status or initial_stage

        if previous_at is None:
            days_in_stage = 0.0
        else:
            days_in_stage = max(0.0, days_between(previous_at, change.changed_at))

        transitions.append(StageTransition(
            from_stage=from_stage,
            to_stage=change.to_status,
            days_in_stage=days_in_stage,
            timestamp=change.changed_at,
        ))

        previous_at = change.changed_at
        previous_stage = change.to_status

    return transitions


def compute_sales_cycle_days(
    transitions: Iterable[StageTransition],
    first_touch: Optional[datetime],
    closed_won_statuses: Iterable[str],
) -> Optional[float]:
    """
    Jours entre le premier contact et l'entrée en closed-won.
    None si ce statut n'a jamais été atteint.
    """
    if first_touch is None:
        return None

    won = {s.lower() for s in closed_won_statuses}

    for transition in transitions:
        if transition.to_stage.lower() in won:
            return max(0.0, days_between(first_touch, transition.timestamp))

    return None


def current_stage(
    transitions: list[StageTransition],
    fallback: str,
) -> str:
    if transitions:
        return transitions[-1].to_stage
    return fallback or "unknown"
