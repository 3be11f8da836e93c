# journey/attribution.py

"""
Attribution Engine.

Trois modèles de crédit par source :
  first-touch → 1.0 sur la source du premier event
  last-touch  → 1.0 sur la source du dernier event
  linear      → part de chaque source dans le volume total

+ score d'engagement 0–100 (récence, fréquence, cross-platform, conversion)
+ certitude d'attribution 0–1 et influence pondérée par canal.
Les paliers viennent de la config : les modifier est une décision produit.
"""

from typing import Optional
import logging

from config import DEFAULT_ENGINE_CONFIG
from journey.timeline import Timeline
from models import (
    AttributionModel, AttributionResult, AttributionCertainty, Contact, EventSource, EventType
)

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────
# ATTRIBUTION
# ─────────────────────────────────────────

def compute_attribution(timeline: Timeline, model: AttributionModel) -> AttributionResult:
    """Timeline vide → poids vides, pour tous les modèles."""
    model = AttributionModel(model)

    if not timeline.events:
        return AttributionResult(model=model, weights={})

    if model == AttributionModel.FIRST_TOUCH:
        return AttributionResult(
            model=model, weights={timeline.events[0].source.value: 1.0}
        )

    if model == AttributionModel.LAST_TOUCH:
        return AttributionResult(
            model=model, weights={timeline.events[-1].source.value: 1.0}
        )

    total = timeline.total_touchpoints
    weights = {
        source: count / total
        for source, count in timeline.sources.items()
    }
    return AttributionResult(model=model, weights=weights)


def compute_all_attributions(timeline: Timeline) -> dict:
    return {
        model.value: compute_attribution(timeline, model)
        for model in AttributionModel
    }


# ─────────────────────────────────────────
# CERTITUDE D'ATTRIBUTION
# ─────────────────────────────────────────

def channel_influence(timeline: Timeline, config: Optional[dict] = None) -> dict:
    """
    Poids de chaque source pondéré par la force du signal :
    influence du canal × poids du type d'event. Somme 1.0.
    """
    cfg = (config or DEFAULT_ENGINE_CONFIG)["certainty"]
    strength: dict[str, float] = {}

    for event in timeline.events:
        source = event.source.value
        strength[source] = strength.get(source, 0.0) + _signal(event, cfg)

    total = sum(strength.values())
    if not total:
        return {}

    return {source: round(value / total, 4) for source, value in sorted(strength.items())}


def attribution_certainty(
    contact: Contact,
    timeline: Timeline,
    config: Optional[dict] = None,
) -> AttributionCertainty:
    """
    base + complétude + diversité + clarté + signal + cross-platform,
    chaque facteur dans [factor_floor, factor_cap], total plafonné à cap.
    Timeline vide → 0 : rien à attribuer.
    """
    cfg = (config or DEFAULT_ENGINE_CONFIG)["certainty"]

    if not timeline.events:
        return AttributionCertainty()

    floor, factor_cap = cfg["factor_floor"], cfg["factor_cap"]
    step = cfg["completeness_step"]

    completeness = floor
    if contact.name and contact.email:
        completeness += step
    if timeline.last_touch is not None:
        completeness += step
    if contact.lead_source:
        completeness += step
    if any(e.type == EventType.NOTE for e in timeline.events):
        completeness += step

    source_count = len(timeline.sources)
    diversity = cfg["diversity_multi"] if source_count >= 2 else cfg["diversity_single"]

    touchpoints = timeline.total_touchpoints
    if touchpoints >= cfg["clarity_many_touchpoints"]:
        clarity = cfg["clarity_many"]
    elif touchpoints >= 2:
        clarity = cfg["clarity_base"] + (touchpoints - 2) * cfg["clarity_step"]
    else:
        clarity = floor

    signal = sum(_signal(e, cfg) for e in timeline.events)

    platforms = sum(
        1 for p in EventSource if p.value in contact.lead_source.lower()
    )
    if platforms >= 3:
        cross_platform = cfg["cross_platform_three"]
    elif platforms == 2:
        cross_platform = cfg["cross_platform_two"]
    else:
        cross_platform = floor

    factors = [
        min(factor_cap, f)
        for f in (completeness, diversity, clarity, signal, cross_platform)
    ]
    certainty = min(cfg["cap"], cfg["base"] + sum(factors))

    return AttributionCertainty(
        certainty=round(certainty, 4),
        data_completeness=round(factors[0], 4),
        channel_diversity=round(factors[1], 4),
        timeline_clarity=round(factors[2], 4),
        touchpoint_signal=round(factors[3], 4),
        cross_platform=round(factors[4], 4),
        channel_influence=channel_influence(timeline, config),
    )


def _signal(event, cfg: dict) -> float:
    influence = cfg["channel_influence"].get(event.source.value, cfg["default_influence"])
    weight = cfg["signal_weights"].get(event.type.value, cfg["default_signal_weight"])
    return influence * weight


# ─────────────────────────────────────────
# ENGAGEMENT
# ─────────────────────────────────────────

def engagement_score(
    last_activity_gap_minutes: Optional[float],
    total_touchpoints: int,
    source_count: int,
    has_call: bool,
    has_won_deal: bool,
    config: Optional[dict] = None,
) -> int:
    """
    Somme de quatre composantes plafonnées à 25 chacune.
    Aucun touchpoint → 0 : rien à engager.
    """
    cfg = (config or DEFAULT_ENGINE_CONFIG)["engagement"]

    if total_touchpoints <= 0:
        return 0

    recency = cfg["recency_floor"]
    if last_activity_gap_minutes is not None:
        for threshold, points in cfg["recency_breakpoints"]:
            if last_activity_gap_minutes < threshold:
                recency = points
                break

    frequency = cfg["frequency_floor"]
    for threshold, points in cfg["frequency_breakpoints"]:
        if total_touchpoints > threshold:
            frequency = points
            break

    if source_count > 2:
        cross_platform = cfg["cross_platform_many"]
    elif source_count == 2:
        cross_platform = cfg["cross_platform_two"]
    else:
        cross_platform = cfg["cross_platform_floor"]

    conversion = cfg["conversion_points"] if (has_call or has_won_deal) else 0

    score = recency + frequency + cross_platform + conversion
    return max(0, min(100, int(score)))


def engagement_level(score: int, config: Optional[dict] = None) -> str:
    cfg = (config or DEFAULT_ENGINE_CONFIG)["engagement"]

    if score >= cfg["high_threshold"]:
        return "high"
    if score >= cfg["medium_threshold"]:
        return "medium"
    return "low"
