# kpi/catalogue.py

"""
KPIs par défaut, proposés à chaque nouvel espace.
Les formules n'utilisent que des champs du registre standard.
cost_per_lead et meetings_per_day attendent des valeurs saisies
(marketing_spend, working_days) : sans elles le résultat est None.
"""

from models import KpiFormula

KPI_CATEGORIES = {
    "sales": "Sales Metrics",
    "marketing": "Marketing Metrics",
    "setter": "Setter Metrics",
    "admin": "Admin Metrics",
    "compliance": "Compliance Metrics",
    "attribution": "Attribution Metrics",
}


DEFAULT_KPIS: tuple = (
    KpiFormula(
        id="closed_deals",
        name="Closed Deals",
        formula="close_deals_won",
        category="sales",
        dashboard_types=("sales", "executive"),
        required_fields=("close_deals_won",),
        customizable=False,
        description="Nombre de deals gagnés sur la période",
    ),
    KpiFormula(
        id="closing_rate",
        name="Closing Rate",
        formula="(close_deals_won / (close_deals_won + close_deals_lost)) * 100",
        category="sales",
        dashboard_types=("sales", "executive"),
        required_fields=("close_deals_won", "close_deals_lost"),
        description="Part des deals gagnés parmi les deals clôturés (%)",
    ),
    KpiFormula(
        id="avg_deal_value",
        name="Average Deal Value",
        formula="AVG(close_won_deal_values)",
        category="sales",
        dashboard_types=("sales",),
        required_fields=("close_won_deal_values",),
    ),
    KpiFormula(
        id="cash_collected",
        name="Cash Collected",
        formula="close_cash_collected",
        category="sales",
        dashboard_types=("sales", "executive"),
        required_fields=("close_cash_collected",),
        customizable=False,
    ),
    KpiFormula(
        id="lead_conversion_rate",
        name="Lead Conversion Rate",
        formula="(close_deals_count / close_contacts_count) * 100",
        category="marketing",
        dashboard_types=("marketing",),
        required_fields=("close_deals_count", "close_contacts_count"),
    ),
    KpiFormula(
        id="cost_per_lead",
        name="Cost Per Lead",
        formula="marketing_spend / close_contacts_count",
        category="marketing",
        dashboard_types=("marketing",),
        required_fields=("marketing_spend", "close_contacts_count"),
        description="Nécessite le champ custom marketing_spend",
    ),
    KpiFormula(
        id="meeting_show_rate",
        name="Meeting Show Rate",
        formula="(calendly_meetings_shows / calendly_meetings_count) * 100",
        category="setter",
        dashboard_types=("setter", "sales"),
        required_fields=("calendly_meetings_shows", "calendly_meetings_count"),
    ),
    KpiFormula(
        id="triage_show_rate",
        name="Triage Show Rate",
        formula="(calendly_triage_sits / calendly_triage_booked) * 100",
        category="setter",
        dashboard_types=("setter",),
        required_fields=("calendly_triage_sits", "calendly_triage_booked"),
    ),
    KpiFormula(
        id="pick_up_rate",
        name="Pick-up Rate",
        formula="(close_calls_answered / close_calls_count) * 100",
        category="setter",
        dashboard_types=("setter",),
        required_fields=("close_calls_answered", "close_calls_count"),
    ),
    KpiFormula(
        id="meetings_per_day",
        name="Meetings Per Day",
        formula="calendly_meetings_count / working_days",
        category="setter",
        dashboard_types=("setter",),
        required_fields=("calendly_meetings_count", "working_days"),
        description="Nécessite le champ custom working_days",
    ),
)


def kpis_for_dashboard(kpis, dashboard_type: str) -> list[KpiFormula]:
    return [
        kpi for kpi in kpis
        if kpi.enabled and dashboard_type in kpi.dashboard_types
    ]
