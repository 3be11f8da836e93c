# journey/metrics.py

"""
Metrics Calculator : fonctions pures.

Conventions :
→ Les taux (show rate, pick-up rate...) valent 0 quand le
  dénominateur est nul. "Pas de données" se lit sur total_calls == 0.
→ Les ratios monétaires (coût par closed won...) valent None
  quand le dénominateur est nul. None s'affiche "N/A", jamais 0.
→ Jamais de NaN ni d'Infinity.
"""

from typing import Iterable, Optional
import logging

from journey.timeline import minutes_between
from models import (
    Activity, Meeting, Deal, FormSubmission, Contact, DealStatus, MeetingStatus,
    CallMetrics, SalesMetrics, AdminMetrics, AdminAssignment, LeadMetrics,
    AssignedUser
)

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────
# GARDES DE DIVISION
# ─────────────────────────────────────────

def rate(numerator: float, denominator: float) -> float:
    """
    Fraction [0, 1], 0 quand il n'y a rien à diviser.
    Numérateur plafonné au dénominateur : 3 deals gagnés pour
    1 solution call honoré donnent 1.0.
    """
    if not denominator:
        return 0.0
    return round(min(max(numerator, 0), denominator) / denominator, 4)


def ratio(numerator: Optional[float], denominator: Optional[float]) -> Optional[float]:
    """Ratio libre, None quand une des deux parts manque ou vaut 0 au dénominateur."""
    if numerator is None or denominator is None or denominator == 0:
        return None
    return round(numerator / denominator, 4)


# ─────────────────────────────────────────
# FILTRES
# ─────────────────────────────────────────

def _calls(activities: Iterable[Activity]) -> list[Activity]:
    return [a for a in activities if a.type == "call"]


def _by_type(meetings: Iterable[Meeting], meeting_type: str) -> list[Meeting]:
    return [m for m in meetings if m.type == meeting_type]


def _sits(meetings: Iterable[Meeting]) -> list[Meeting]:
    return [m for m in meetings if m.status == MeetingStatus.COMPLETED.value]


def _won(deals: Iterable[Deal]) -> list[Deal]:
    return [d for d in deals if d.status == DealStatus.WON]


def has_call(activities: list[Activity], meetings: list[Meeting]) -> bool:
    """Signal de conversion : un call passé ou un meeting tenu."""
    return bool(_calls(activities)) or bool(_sits(meetings))


def has_won_deal(deals: list[Deal]) -> bool:
    return bool(_won(deals))


# ─────────────────────────────────────────
# CALL METRICS
# ─────────────────────────────────────────

def compute_call_metrics(
    contact: Contact,
    activities: list[Activity],
    meetings: list[Meeting],
    deals: list[Deal],
    forms: list[FormSubmission],
    config: dict,
) -> CallMetrics:
    metrics_cfg = config["metrics"]
    answered_statuses = set(metrics_cfg["answered_statuses"])

    calls = _calls(activities)
    answered = [c for c in calls if c.status in answered_statuses]

    solution = _by_type(meetings, "solution_call")
    triage = _by_type(meetings, "triage_call")
    solution_sits = _sits(solution)
    triage_sits = _sits(triage)

    canceled = [m for m in meetings if m.status == MeetingStatus.CANCELED.value]
    response_time = lead_response_time(
        contact, activities, metrics_cfg["response_activity_types"]
    )
    benchmark = metrics_cfg["response_time_benchmark_minutes"]

    return CallMetrics(
        solution_calls_booked=len(solution),
        solution_calls_sits=len(solution_sits),
        solution_call_show_rate=rate(len(solution_sits), len(solution)),
        triage_calls_booked=len(triage),
        triage_calls_sits=len(triage_sits),
        triage_show_rate=rate(len(triage_sits), len(triage)),
        total_dials=len(calls),
        speed_to_lead=speed_to_lead(contact, activities, meetings, forms),
        pick_up_rate=rate(len(answered), len(calls)),
        calls_to_close=len(calls) if _won(deals) else 0,
        total_calls=len(calls),
        calls_per_stage=calls_per_stage(activities, deals),
        direct_booking_rate=direct_booking_rate(activities, meetings),
        cancel_rate=rate(len(canceled), len(meetings)),
        outbound_triages_set=len([
            c for c in calls
            if c.direction != "inbound" and "triage" in c.notes.lower()
        ]),
        lead_response_time=response_time,
        lead_response_within_benchmark=(
            None if response_time is None else response_time <= benchmark
        ),
    )


def speed_to_lead(
    contact: Contact,
    activities: list[Activity],
    meetings: list[Meeting],
    forms: list[FormSubmission],
) -> Optional[float]:
    """
    Minutes entre le premier contact entrant et le premier call sortant.

    Premier entrant = formulaire, booking Calendly ou activité inbound
    la plus ancienne ; à défaut, la création du contact.

    Négatif = on a appelé avant que le lead se manifeste (proactif).
    Ce n'est pas une erreur.
    """
    inbound = [f.submitted_at for f in forms]
    inbound += [m.booked_at or m.start_time for m in meetings]
    inbound += [a.date for a in activities if a.direction == "inbound"]

    first_inbound = min(inbound) if inbound else contact.created_at

    outbound_calls = [
        a.date for a in _calls(activities) if a.direction != "inbound"
    ]

    if first_inbound is None or not outbound_calls:
        return None

    return minutes_between(first_inbound, min(outbound_calls))


def lead_response_time(
    contact: Contact,
    activities: list[Activity],
    response_types: Iterable[str],
) -> Optional[float]:
    """Minutes entre la création du lead et la première réponse (email, call, SMS)."""
    if contact.created_at is None:
        return None

    types = set(response_types)
    responses = sorted(a.date for a in activities if a.type in types)

    if not responses:
        return None

    return minutes_between(contact.created_at, responses[0])


def calls_per_stage(activities: list[Activity], deals: list[Deal]) -> dict:
    counts: dict[str, int] = {d.stage: 0 for d in deals if d.stage}

    for call in _calls(activities):
        if call.stage:
            counts[call.stage] = counts.get(call.stage, 0) + 1

    return dict(sorted(counts.items()))


def direct_booking_rate(activities: list[Activity], meetings: list[Meeting]) -> float:
    """Part des meetings bookés sans aucun call avant."""
    if not meetings:
        return 0.0

    call_dates = [c.date for c in _calls(activities)]
    direct = [
        m for m in meetings
        if not any(d < m.start_time for d in call_dates)
    ]

    return rate(len(direct), len(meetings))


# ─────────────────────────────────────────
# SALES METRICS
# ─────────────────────────────────────────

def compute_sales_metrics(
    deals: list[Deal],
    meetings: list[Meeting],
    sales_cycle_days: Optional[float],
    config: dict,
) -> SalesMetrics:
    metrics_cfg = config["metrics"]

    won = _won(deals)
    solution = _by_type(meetings, "solution_call")
    sits = len(_sits(solution))
    booked = len(solution)

    total_cost = sum(d.cost for d in deals)
    revenue = sum(d.value for d in won)
    cash = sum(d.cash_collected for d in won)
    profit = sum(d.profit for d in won)

    cost_per_closed_won = ratio(total_cost, len(won))
    # Diviseur provisoire, à confirmer avec le métier
    cost_per_solution_call = ratio(
        cost_per_closed_won, metrics_cfg["cost_per_solution_call_divisor"]
    )

    profit_per_solution_call = ratio(profit, sits)
    cash_per_booked = ratio(cash, booked)

    closer_slots = metrics_cfg.get("closer_slots")

    return SalesMetrics(
        closed_won=len(won),
        cost_per_closed_won=cost_per_closed_won,
        closer_slot_utilization=ratio(sits, closer_slots) if closer_slots else None,
        solution_call_close_rate=rate(len(won), sits),
        sales_cycle_days=sales_cycle_days,
        profit_per_solution_call=profit_per_solution_call,
        cost_per_solution_call=cost_per_solution_call,
        cash_per_solution_call_booked=cash_per_booked,
        revenue_per_solution_call_booked=ratio(revenue, booked),
        cost_per_solution_call_sit=ratio(total_cost, sits),
        earning_per_call2_sit=ratio(revenue, sits),
        cash_efficiency_pc2=ratio(cash_per_booked, cost_per_solution_call),
        profit_efficiency_pc2=ratio(profit_per_solution_call, cost_per_solution_call),
    )


def conversion_rate(deals: list[Deal]) -> Optional[float]:
    if not deals:
        return None
    return rate(len(_won(deals)), len(deals))


# ─────────────────────────────────────────
# ADMIN METRICS
# ─────────────────────────────────────────

def compute_admin_metrics(activities: list[Activity]) -> AdminMetrics:
    admins = [a for a in activities if a.type == "admin"]
    completed = [a for a in admins if a.status == "completed"]
    missing = len(admins) - len(completed)

    per_user: dict[str, dict] = {}
    for admin in admins:
        if not admin.user_id:
            continue
        entry = per_user.setdefault(admin.user_id, {
            "user_name": admin.user_name or "Unknown",
            "count": 0,
            "completed": 0,
        })
        entry["count"] += 1
        if admin.status == "completed":
            entry["completed"] += 1

    assignments = tuple(
        AdminAssignment(
            user_id=user_id,
            user_name=entry["user_name"],
            count=entry["count"],
            completed=entry["completed"],
            missing=entry["count"] - entry["completed"],
            missing_percentage=ratio(entry["count"] - entry["completed"], entry["count"]),
        )
        for user_id, entry in sorted(per_user.items())
    )

    return AdminMetrics(
        completed_admin=len(completed),
        missing_admins=missing,
        admin_missing_percentage=ratio(missing, missing + len(completed)),
        admin_assignments=assignments,
    )


# ─────────────────────────────────────────
# LEAD METRICS
# ─────────────────────────────────────────

def compute_lead_metrics(
    contact: Contact,
    meetings: list[Meeting],
    config: dict,
) -> LeadMetrics:
    disqualified = {s.lower() for s in config["stages"]["disqualified_statuses"]}

    return LeadMetrics(
        new_leads=1,
        leads_disqualified=1 if contact.status.lower() in disqualified else 0,
        total_call_one_show_rate=rate(len(_sits(meetings)), len(meetings)),
    )


# ─────────────────────────────────────────
# RÉPONSE & UTILISATEURS
# ─────────────────────────────────────────

def average_response_time(activities: list[Activity], config: dict) -> Optional[float]:
    """
    Temps moyen de réponse (minutes) après un email ou un SMS,
    calculé à l'intérieur d'une même journée.
    On ignore les réponses au-delà de la fenêtre max (24h par défaut).
    """
    max_window = config["metrics"]["max_response_window_minutes"]

    by_day: dict[str, list[Activity]] = {}
    for activity in activities:
        by_day.setdefault(activity.date.date().isoformat(), []).append(activity)

    response_times = []
    for day in sorted(by_day):
        ordered = sorted(by_day[day], key=lambda a: (a.date, a.id))
        for prev, curr in zip(ordered, ordered[1:]):
            if prev.type not in ("email", "text"):
                continue
            minutes = minutes_between(prev.date, curr.date)
            if 0 < minutes < max_window:
                response_times.append(minutes)

    if not response_times:
        return None

    return round(sum(response_times) / len(response_times), 2)


def compute_assigned_users(
    activities: list[Activity],
    meetings: list[Meeting],
    deals: list[Deal],
) -> tuple:
    users: dict[str, dict] = {}

    owners = [
        (activities, "Activity Owner"),
        (meetings, "Meeting Owner"),
        (deals, "Deal Owner"),
    ]

    for records, assignment_type in owners:
        for record in records:
            if not record.user_id:
                continue
            entry = users.setdefault(record.user_id, {
                "name": record.user_name or "Unknown",
                "assignment_type": assignment_type,
                "total_interactions": 0,
            })
            entry["total_interactions"] += 1

    return tuple(
        AssignedUser(
            user_id=user_id,
            name=entry["name"],
            assignment_type=entry["assignment_type"],
            total_interactions=entry["total_interactions"],
        )
        for user_id, entry in sorted(
            users.items(), key=lambda item: (-item[1]["total_interactions"], item[0])
        )
    )
