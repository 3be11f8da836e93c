# services/dashboard.py

"""
Agrégation du dashboard.

Plusieurs ContactBundle + un scope (période, rep) → DashboardData :
  totals                 compteurs et taux de l'équipe (ou du rep)
  reps                   performance par propriétaire de records
  attribution_channels   part linéaire moyenne de chaque source
  collections            séries par contact pour SUM/AVG/COUNT des KPIs

Un contact en erreur n'empêche jamais le reste du dashboard de s'afficher.
"""

from datetime import datetime, timezone
from typing import Iterable, Optional
import logging

from config import get_engine_config
from connectors import normalize_bundle
from journey.builder import assemble_journey, scope_bundle
from journey.metrics import rate, ratio
from kpi import FieldRegistry, evaluate_kpis
from models import (
    ContactBundle, DashboardData, DateRange, DealStatus, MeetingStatus,
    RepPerformance, KpiFormula, KpiResult, AttributionModel
)

logger = logging.getLogger(__name__)


def build_dashboard(
    bundles: Iterable[ContactBundle],
    date_range: Optional[DateRange] = None,
    user_filter: Optional[str] = None,
    as_of: Optional[datetime] = None,
    config: Optional[dict] = None,
) -> DashboardData:
    cfg = get_engine_config(config)
    as_of = as_of or datetime.now(timezone.utc)
    answered_statuses = set(cfg["metrics"]["answered_statuses"])

    counts = _empty_counts()
    reps: dict[str, dict] = {}
    channel_weights: dict[str, float] = {}
    influence_weights: dict[str, float] = {}
    collections = {
        "won_deal_values": [], "speed_to_lead": [], "engagement_scores": [],
        "attribution_certainties": [],
    }
    flags: list[str] = []
    rejected = 0
    analyzed = 0
    scoped_view = date_range is not None or bool(user_filter)

    for bundle in bundles:
        normalized = normalize_bundle(bundle, cfg)
        rejected += normalized.rejected_total
        scoped = scope_bundle(normalized, date_range, user_filter)

        if scoped_view and not scoped.events:
            continue

        journey = assemble_journey(normalized, date_range, user_filter, as_of, cfg)
        analyzed += 1

        for flag in journey.data_quality_flags:
            flags.append(f"{journey.contact_id}:{flag}")

        _count_records(counts, scoped, answered_statuses, cfg)
        _count_reps(reps, scoped, answered_statuses)

        if len(journey.sources) > 1:
            counts["multisource_contacts"] += 1

        linear = journey.attribution.get(AttributionModel.LINEAR.value)
        if linear:
            for source, weight in linear.weights.items():
                channel_weights[source] = channel_weights.get(source, 0.0) + weight

        if journey.total_touchpoints:
            certainty = journey.attribution_certainty
            collections["attribution_certainties"].append(certainty.certainty)
            for source, weight in certainty.channel_influence.items():
                influence_weights[source] = influence_weights.get(source, 0.0) + weight

        collections["won_deal_values"].extend(
            d.value for d in scoped.deals if d.status == DealStatus.WON
        )
        if journey.call_metrics.speed_to_lead is not None:
            collections["speed_to_lead"].append(journey.call_metrics.speed_to_lead)
        if journey.total_touchpoints:
            collections["engagement_scores"].append(journey.journey_metrics.engagement_score)

    counts["contacts"] = analyzed
    totals = _with_rates(counts, collections, cfg)
    attribution_channels = _normalized(channel_weights)

    logger.info(
        f"[dashboard] {analyzed} contacts analysés, {rejected} records rejetés, "
        f"{len(flags)} flags qualité"
    )

    return DashboardData(
        date_range=date_range,
        user_filter=user_filter,
        totals=totals,
        reps=tuple(_rep_rows(reps)),
        attribution_channels=attribution_channels,
        attribution_certainty=totals["average_attribution_certainty"],
        channel_influence=_normalized(influence_weights),
        collections={k: list(v) for k, v in collections.items()},
        contacts_analyzed=analyzed,
        rejected_records=rejected,
        data_quality_flags=tuple(flags),
    )


def _normalized(weights: dict) -> dict:
    """Somme de poids par source ramenée à 1.0."""
    total = sum(weights.values())
    if not total:
        return {}
    return {source: round(w / total, 4) for source, w in sorted(weights.items())}


# ─────────────────────────────────────────
# KPI
# ─────────────────────────────────────────

def build_kpi_dataset(dashboard: DashboardData, custom_values: Optional[dict] = None) -> dict:
    """Dataset résolu par les field_path du registre."""
    return {
        "totals": dict(dashboard.totals),
        "collections": dict(dashboard.collections),
        "custom": dict(custom_values or {}),
    }


def score_dashboard_kpis(
    dashboard: DashboardData,
    kpis: Iterable[KpiFormula],
    registry: FieldRegistry,
    custom_values: Optional[dict] = None,
) -> list[KpiResult]:
    dataset = build_kpi_dataset(dashboard, custom_values)
    values = registry.extract_field_values(dataset)
    return evaluate_kpis(list(kpis), values, registry)


# ─────────────────────────────────────────
# COMPTAGES
# ─────────────────────────────────────────

def _empty_counts() -> dict:
    return {
        "contacts": 0,
        "deals": 0,
        "closed_won": 0,
        "deals_lost": 0,
        "revenue": 0.0,
        "cash_collected": 0.0,
        "cost": 0.0,
        "profit": 0.0,
        "activities": 0,
        "total_dials": 0,
        "calls_answered": 0,
        "leads_disqualified": 0,
        "meetings": 0,
        "meetings_completed": 0,
        "meetings_no_show": 0,
        "meetings_canceled": 0,
        "triage_calls_booked": 0,
        "triage_calls_sits": 0,
        "solution_calls_booked": 0,
        "solution_calls_sits": 0,
        "forms": 0,
        "multisource_contacts": 0,
    }


def _count_records(counts: dict, scoped, answered_statuses: set, cfg: dict) -> None:
    won = [d for d in scoped.deals if d.status == DealStatus.WON]
    calls = [a for a in scoped.activities if a.type == "call"]
    disqualified = {s.lower() for s in cfg["stages"]["disqualified_statuses"]}

    counts["deals"] += len(scoped.deals)
    counts["closed_won"] += len(won)
    counts["deals_lost"] += len([d for d in scoped.deals if d.status == DealStatus.LOST])
    counts["revenue"] += sum(d.value for d in won)
    counts["cash_collected"] += sum(d.cash_collected for d in won)
    counts["profit"] += sum(d.profit for d in won)
    counts["cost"] += sum(d.cost for d in scoped.deals)
    counts["activities"] += len(scoped.activities)
    counts["total_dials"] += len(calls)
    counts["calls_answered"] += len([c for c in calls if c.status in answered_statuses])
    counts["leads_disqualified"] += 1 if scoped.contact.status.lower() in disqualified else 0
    counts["forms"] += len(scoped.forms)

    for meeting in scoped.meetings:
        counts["meetings"] += 1
        completed = meeting.status == MeetingStatus.COMPLETED.value
        if completed:
            counts["meetings_completed"] += 1
        elif meeting.status == MeetingStatus.NO_SHOW.value:
            counts["meetings_no_show"] += 1
        elif meeting.status == MeetingStatus.CANCELED.value:
            counts["meetings_canceled"] += 1

        if meeting.type == "triage_call":
            counts["triage_calls_booked"] += 1
            counts["triage_calls_sits"] += 1 if completed else 0
        elif meeting.type == "solution_call":
            counts["solution_calls_booked"] += 1
            counts["solution_calls_sits"] += 1 if completed else 0


def _with_rates(counts: dict, collections: dict, cfg: dict) -> dict:
    totals = dict(counts)
    for key in ("revenue", "cash_collected", "cost", "profit"):
        totals[key] = round(totals[key], 2)

    cost_per_closed_won = ratio(counts["cost"], counts["closed_won"])
    scores = collections["engagement_scores"]
    speeds = collections["speed_to_lead"]

    totals.update({
        "pick_up_rate": rate(counts["calls_answered"], counts["total_dials"]),
        "meeting_show_rate": rate(counts["meetings_completed"], counts["meetings"]),
        "triage_show_rate": rate(counts["triage_calls_sits"], counts["triage_calls_booked"]),
        "solution_call_show_rate": rate(
            counts["solution_calls_sits"], counts["solution_calls_booked"]
        ),
        "solution_call_close_rate": rate(counts["closed_won"], counts["solution_calls_sits"]),
        "cancel_rate": rate(counts["meetings_canceled"], counts["meetings"]),
        "cost_per_closed_won": cost_per_closed_won,
        "cost_per_solution_call": ratio(
            cost_per_closed_won, cfg["metrics"]["cost_per_solution_call_divisor"]
        ),
        "revenue_per_solution_call_booked": ratio(
            counts["revenue"], counts["solution_calls_booked"]
        ),
        "average_engagement_score": ratio(sum(scores), len(scores)),
        "average_attribution_certainty": ratio(
            sum(collections["attribution_certainties"]),
            len(collections["attribution_certainties"]),
        ),
        "average_speed_to_lead": ratio(sum(speeds), len(speeds)),
    })
    return totals


def _count_reps(reps: dict, scoped, answered_statuses: set) -> None:
    touched: set[str] = set()

    def entry(user_id: str, user_name: Optional[str]) -> dict:
        touched.add(user_id)
        row = reps.setdefault(user_id, {
            "user_name": user_name or "Unknown",
            "contacts": 0,
            "total_dials": 0,
            "calls_answered": 0,
            "solution_calls_booked": 0,
            "solution_calls_sits": 0,
            "triage_calls_booked": 0,
            "triage_calls_sits": 0,
            "closed_won": 0,
            "revenue": 0.0,
            "cash_collected": 0.0,
        })
        if row["user_name"] == "Unknown" and user_name:
            row["user_name"] = user_name
        return row

    for activity in scoped.activities:
        if not activity.user_id or activity.type != "call":
            continue
        row = entry(activity.user_id, activity.user_name)
        row["total_dials"] += 1
        if activity.status in answered_statuses:
            row["calls_answered"] += 1

    for meeting in scoped.meetings:
        if not meeting.user_id or meeting.type not in ("triage_call", "solution_call"):
            continue
        row = entry(meeting.user_id, meeting.user_name)
        prefix = "triage_calls" if meeting.type == "triage_call" else "solution_calls"
        row[f"{prefix}_booked"] += 1
        if meeting.status == MeetingStatus.COMPLETED.value:
            row[f"{prefix}_sits"] += 1

    for deal in scoped.deals:
        if not deal.user_id or deal.status != DealStatus.WON:
            continue
        row = entry(deal.user_id, deal.user_name)
        row["closed_won"] += 1
        row["revenue"] += deal.value
        row["cash_collected"] += deal.cash_collected

    for user_id in touched:
        reps[user_id]["contacts"] += 1


def _rep_rows(reps: dict) -> list[RepPerformance]:
    return [
        RepPerformance(
            user_id=user_id,
            user_name=row["user_name"],
            contacts=row["contacts"],
            total_dials=row["total_dials"],
            pick_up_rate=rate(row["calls_answered"], row["total_dials"]),
            solution_calls_booked=row["solution_calls_booked"],
            solution_calls_sits=row["solution_calls_sits"],
            solution_call_show_rate=rate(row["solution_calls_sits"], row["solution_calls_booked"]),
            triage_calls_booked=row["triage_calls_booked"],
            triage_calls_sits=row["triage_calls_sits"],
            triage_show_rate=rate(row["triage_calls_sits"], row["triage_calls_booked"]),
            closed_won=row["closed_won"],
            revenue=round(row["revenue"], 2),
            cash_collected=round(row["cash_collected"], 2),
        )
        for user_id, row in sorted(reps.items())
    ]
