# journey/timeline.py

"""
Timeline Builder.

Fusionne les events normalisés d'un contact en une séquence
ordonnée (timestamp, puis id) et en dérive les faits temporels :
premier / dernier contact, volume, fréquence par source, écarts.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional
import logging

from models import TimelineEvent, DateRange

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Timeline:
    events: tuple = ()
    first_touch: Optional[datetime] = None
    last_touch: Optional[datetime] = None
    total_touchpoints: int = 0
    sources: dict = field(default_factory=dict)

    def __iter__(self):
        return iter(self.events)

    def __len__(self) -> int:
        return len(self.events)

    @property
    def journey_length_minutes(self) -> Optional[float]:
        if self.first_touch is None or self.last_touch is None:
            return None
        return minutes_between(self.first_touch, self.last_touch)

    def last_activity_gap_minutes(self, as_of: datetime) -> Optional[float]:
        if self.last_touch is None:
            return None
        return max(0.0, minutes_between(self.last_touch, as_of))

    def gaps_minutes(self) -> list[float]:
        """Écarts entre events consécutifs."""
        return [
            minutes_between(prev.timestamp, curr.timestamp)
            for prev, curr in zip(self.events, self.events[1:])
        ]


def build_timeline(events: Iterable[TimelineEvent]) -> Timeline:
    """
    Tri stable par (timestamp, id).
    Entrée vide → timeline vide, jamais d'erreur.
    """
    ordered = tuple(sorted(events, key=lambda e: e.sort_key))

    if not ordered:
        return Timeline()

    sources: dict[str, int] = {}
    for event in ordered:
        key = event.source.value
        sources[key] = sources.get(key, 0) + 1

    return Timeline(
        events=ordered,
        first_touch=ordered[0].timestamp,
        last_touch=ordered[-1].timestamp,
        total_touchpoints=len(ordered),
        sources=sources,
    )


def filter_events(
    events: Iterable[TimelineEvent],
    date_range: Optional[DateRange] = None,
    user_filter: Optional[str] = None,
) -> list[TimelineEvent]:
    """
    Applique le scope du dashboard.
    user_filter écarte les events portés par un autre user ;
    les events sans propriétaire (formulaires) restent.
    """
    kept = []
    for event in events:
        if date_range and not date_range.contains(event.timestamp):
            continue
        if user_filter and event.user_id and event.user_id != user_filter:
            continue
        kept.append(event)
    return kept


def minutes_between(start: datetime, end: datetime) -> float:
    return round((end - start).total_seconds() / 60, 2)


def days_between(start: datetime, end: datetime) -> float:
    return round((end - start).total_seconds() / 86400, 2)
