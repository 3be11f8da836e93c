# journey/builder.py

"""
Assembleur du parcours client.

Pipeline d'un contact :
  ContactBundle brut
    → normalize_bundle      (records typés + events, rejets comptés)
    → scope                 (date_range, user_filter)
    → build_timeline
    → stages / métriques / attribution
    → CustomerJourney

Fonction pure : même bundle + même scope + même as_of → même résultat.
Le parcours n'est jamais persisté, il est recalculé à chaque requête.
"""

from datetime import datetime, timezone
from typing import Callable, Iterable, Optional
import logging

from config import get_engine_config
from connectors import normalize_bundle
from errors import OutOfOrderTransitionError
from journey import metrics as m
from journey.attribution import (
    compute_all_attributions, attribution_certainty, engagement_score, engagement_level
)
from journey.stages import track_stage_transitions, compute_sales_cycle_days, current_stage
from journey.timeline import build_timeline, filter_events
from models import (
    ContactBundle, NormalizedBundle, CustomerJourney, JourneyMetrics, DateRange
)

logger = logging.getLogger(__name__)


def build_customer_journey(
    bundle: ContactBundle,
    date_range: Optional[DateRange] = None,
    user_filter: Optional[str] = None,
    as_of: Optional[datetime] = None,
    config: Optional[dict] = None,
) -> CustomerJourney:
    """
    as_of : instant de référence pour last_activity_gap.
            Par défaut maintenant (UTC) ; à fixer pour un résultat reproductible.
    config : overrides fusionnés sur DEFAULT_ENGINE_CONFIG.
    """
    return assemble_journey(
        normalize_bundle(bundle, config), date_range, user_filter, as_of, config
    )


def assemble_journey(
    normalized: NormalizedBundle,
    date_range: Optional[DateRange] = None,
    user_filter: Optional[str] = None,
    as_of: Optional[datetime] = None,
    config: Optional[dict] = None,
) -> CustomerJourney:
    """Même pipeline, à partir d'un bundle déjà normalisé (dashboard)."""
    cfg = get_engine_config(config)
    as_of = as_of or datetime.now(timezone.utc)

    scoped = scope_bundle(normalized, date_range, user_filter)
    contact = scoped.contact
    contact_id = contact.id

    timeline = build_timeline(scoped.events)
    flags: list[str] = []

    if normalized.rejected_total:
        flags.append(f"rejected_records:{normalized.rejected_total}")

    # ── Stages ──
    journey_start = timeline.first_touch or contact.created_at
    stage_cfg = cfg["stages"]

    try:
        transitions = track_stage_transitions(
            scoped.status_changes, journey_start, stage_cfg["initial_stage"]
        )
    except OutOfOrderTransitionError as e:
        logger.warning(f"[journey] Contact {contact_id} : {e}")
        flags.append("out_of_order_transitions")
        transitions = []

    sales_cycle = compute_sales_cycle_days(
        transitions, journey_start, stage_cfg["closed_won_statuses"]
    )

    # ── Métriques ──
    call_metrics = m.compute_call_metrics(
        contact, scoped.activities, scoped.meetings, scoped.deals, scoped.forms, cfg
    )
    sales_metrics = m.compute_sales_metrics(
        scoped.deals, scoped.meetings, sales_cycle, cfg
    )
    admin_metrics = m.compute_admin_metrics(scoped.activities)
    lead_metrics = m.compute_lead_metrics(contact, scoped.meetings, cfg)

    last_gap = timeline.last_activity_gap_minutes(as_of)
    score = engagement_score(
        last_gap,
        timeline.total_touchpoints,
        len(timeline.sources),
        m.has_call(scoped.activities, scoped.meetings),
        m.has_won_deal(scoped.deals),
        cfg,
    )

    journey_metrics = JourneyMetrics(
        average_response_time=m.average_response_time(scoped.activities, cfg),
        engagement_score=score,
        engagement_level=engagement_level(score, cfg),
        last_activity_gap=last_gap,
        stage_transitions=tuple(transitions),
        conversion_rate=m.conversion_rate(scoped.deals),
        lead_status=current_stage(transitions, contact.status),
        journey_length=timeline.journey_length_minutes,
    )

    logger.debug(
        f"[journey] Contact {contact_id} : {timeline.total_touchpoints} touchpoints, "
        f"score {score}"
    )

    return CustomerJourney(
        contact_id=contact_id,
        contact=contact,
        first_touch=timeline.first_touch,
        last_touch=timeline.last_touch,
        total_touchpoints=timeline.total_touchpoints,
        timeline_events=timeline.events,
        sources=timeline.sources,
        assigned_users=m.compute_assigned_users(
            scoped.activities, scoped.meetings, scoped.deals
        ),
        deals=tuple(sorted(scoped.deals, key=lambda d: (d.created_at, d.id))),
        call_metrics=call_metrics,
        sales_metrics=sales_metrics,
        admin_metrics=admin_metrics,
        lead_metrics=lead_metrics,
        journey_metrics=journey_metrics,
        attribution=compute_all_attributions(timeline),
        attribution_certainty=attribution_certainty(contact, timeline, cfg),
        rejected_records=normalized.rejected_total,
        data_quality_flags=tuple(flags),
    )


# ─────────────────────────────────────────
# SCOPE
# ─────────────────────────────────────────

def scope_bundle(
    normalized: NormalizedBundle,
    date_range: Optional[DateRange] = None,
    user_filter: Optional[str] = None,
) -> NormalizedBundle:
    """
    Restreint records et events au scope demandé.
    Les changements de statut ne sont pas filtrés par user :
    ils appartiennent au contact.
    """
    if date_range is None and not user_filter:
        return normalized

    return NormalizedBundle(
        contact=normalized.contact,
        activities=_keep(normalized.activities, lambda a: a.date, date_range, user_filter),
        meetings=_keep(normalized.meetings, lambda x: x.start_time, date_range, user_filter),
        deals=_keep(normalized.deals, lambda d: d.created_at, date_range, user_filter),
        forms=_keep(normalized.forms, lambda f: f.submitted_at, date_range, None),
        status_changes=_keep(
            normalized.status_changes, lambda s: s.changed_at, date_range, None
        ),
        events=filter_events(normalized.events, date_range, user_filter),
        rejected=dict(normalized.rejected),
    )


def _keep(
    records: Iterable,
    timestamp_of: Callable,
    date_range: Optional[DateRange],
    user_filter: Optional[str],
) -> list:
    kept = []
    for record in records:
        if date_range and not date_range.contains(timestamp_of(record)):
            continue
        owner = getattr(record, "user_id", None)
        if user_filter and owner and owner != user_filter:
            continue
        kept.append(record)
    return kept
