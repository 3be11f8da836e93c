# models.py

from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Optional
from enum import Enum


# ─────────────────────────────────────────
# ENUMS
# ─────────────────────────────────────────

class EventType(str, Enum):
    MEETING = "meeting"
    ACTIVITY = "activity"
    DEAL = "deal"
    FORM = "form"
    NOTE = "note"


class EventSource(str, Enum):
    CLOSE = "close"
    CALENDLY = "calendly"
    TYPEFORM = "typeform"


class AttributionModel(str, Enum):
    FIRST_TOUCH = "first-touch"
    LAST_TOUCH = "last-touch"
    LINEAR = "linear"


class FieldSource(str, Enum):
    CLOSE = "close"
    CALENDLY = "calendly"
    TYPEFORM = "typeform"
    CUSTOM = "custom"


class FieldType(str, Enum):
    NUMBER = "number"
    STRING = "string"
    BOOLEAN = "boolean"
    DATE = "date"
    SELECT = "select"


class DealStatus(str, Enum):
    OPEN = "open"
    WON = "won"
    LOST = "lost"


class MeetingStatus(str, Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELED = "canceled"
    NO_SHOW = "no_show"


# ─────────────────────────────────────────
# RECORDS NORMALISÉS
# Produits par les connecteurs, jamais modifiés ensuite
# ─────────────────────────────────────────

@dataclass(frozen=True)
class Contact:
    id: str
    name: str = ""
    email: str = ""
    status: str = "lead"               # lead status Close (texte libre)
    lead_source: str = ""
    created_at: Optional[datetime] = None
    assigned_to: Optional[str] = None


@dataclass(frozen=True)
class Activity:
    id: str
    type: str                          # "call" | "email" | "text" | "admin" | "note" ...
    date: datetime
    status: str = ""                   # "completed" = décroché / fait
    title: str = ""
    notes: str = ""
    direction: str = ""                # "inbound" | "outbound"
    stage: Optional[str] = None
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    source_id: Optional[str] = None


@dataclass(frozen=True)
class Meeting:
    id: str
    start_time: datetime
    type: Optional[str] = None         # "triage_call" | "solution_call" | None
    status: str = MeetingStatus.SCHEDULED.value
    title: str = ""
    description: str = ""
    booked_at: Optional[datetime] = None
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    source_id: Optional[str] = None


@dataclass(frozen=True)
class Deal:
    id: str
    created_at: datetime
    title: str = ""
    status: DealStatus = DealStatus.OPEN
    stage: str = ""
    value: float = 0.0
    cash_collected: float = 0.0
    cost: float = 0.0
    profit: float = 0.0
    closed_at: Optional[datetime] = None
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    source_id: Optional[str] = None


@dataclass(frozen=True)
class FormSubmission:
    id: str
    submitted_at: datetime
    form_name: str = ""
    answers: tuple = ()
    source_id: Optional[str] = None


@dataclass(frozen=True)
class StatusChange:
    to_status: str
    changed_at: datetime
    from_status: Optional[str] = None


# ─────────────────────────────────────────
# TIMELINE
# ─────────────────────────────────────────

@dataclass(frozen=True)
class TimelineEvent:
    id: str                            # "<source>_<kind>_<raw id>"
    type: EventType
    title: str
    timestamp: datetime                # toujours UTC
    source: EventSource
    subtype: Optional[str] = None
    description: str = ""
    source_id: Optional[str] = None
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    score: Optional[int] = None

    @property
    def sort_key(self) -> tuple:
        return (self.timestamp, self.id)


@dataclass(frozen=True)
class StageTransition:
    from_stage: str
    to_stage: str
    days_in_stage: float
    timestamp: datetime


@dataclass(frozen=True)
class AttributionResult:
    model: AttributionModel
    weights: dict = field(default_factory=dict)    # source → poids


@dataclass
class ContactBundle:
    """
    Ce que la couche de sync nous donne pour un contact.
    Lignes brutes (dicts), déjà dédupliquées.
    """
    contact: dict
    activities: list[dict] = field(default_factory=list)
    meetings: list[dict] = field(default_factory=list)
    deals: list[dict] = field(default_factory=list)
    forms: list[dict] = field(default_factory=list)
    status_changes: list[dict] = field(default_factory=list)


@dataclass
class NormalizedBundle:
    contact: Contact
    activities: list[Activity] = field(default_factory=list)
    meetings: list[Meeting] = field(default_factory=list)
    deals: list[Deal] = field(default_factory=list)
    forms: list[FormSubmission] = field(default_factory=list)
    status_changes: list[StatusChange] = field(default_factory=list)
    events: list[TimelineEvent] = field(default_factory=list)
    rejected: dict = field(default_factory=dict)   # kind → nombre rejeté

    @property
    def rejected_total(self) -> int:
        return sum(self.rejected.values())


# ─────────────────────────────────────────
# MÉTRIQUES
# Les taux sont des fractions [0, 1].
# None = "N/A" côté affichage, jamais 0.
# ─────────────────────────────────────────

@dataclass(frozen=True)
class CallMetrics:
    solution_calls_booked: int = 0
    solution_calls_sits: int = 0
    solution_call_show_rate: float = 0.0
    triage_calls_booked: int = 0
    triage_calls_sits: int = 0
    triage_show_rate: float = 0.0
    total_dials: int = 0
    speed_to_lead: Optional[float] = None      # minutes, négatif = proactif
    pick_up_rate: float = 0.0
    calls_to_close: int = 0
    total_calls: int = 0
    calls_per_stage: dict = field(default_factory=dict)
    direct_booking_rate: float = 0.0
    cancel_rate: float = 0.0
    outbound_triages_set: int = 0
    lead_response_time: Optional[float] = None
    lead_response_within_benchmark: Optional[bool] = None   # None sans réponse


@dataclass(frozen=True)
class SalesMetrics:
    closed_won: int = 0
    cost_per_closed_won: Optional[float] = None
    closer_slot_utilization: Optional[float] = None
    solution_call_close_rate: float = 0.0
    sales_cycle_days: Optional[float] = None
    profit_per_solution_call: Optional[float] = None
    cost_per_solution_call: Optional[float] = None
    cash_per_solution_call_booked: Optional[float] = None
    revenue_per_solution_call_booked: Optional[float] = None
    cost_per_solution_call_sit: Optional[float] = None
    earning_per_call2_sit: Optional[float] = None
    cash_efficiency_pc2: Optional[float] = None
    profit_efficiency_pc2: Optional[float] = None


@dataclass(frozen=True)
class AdminAssignment:
    user_id: str
    user_name: str
    count: int
    completed: int
    missing: int
    missing_percentage: Optional[float]


@dataclass(frozen=True)
class AdminMetrics:
    completed_admin: int = 0
    missing_admins: int = 0
    admin_missing_percentage: Optional[float] = None
    admin_assignments: tuple = ()


@dataclass(frozen=True)
class LeadMetrics:
    new_leads: int = 1
    leads_disqualified: int = 0
    total_call_one_show_rate: float = 0.0


@dataclass(frozen=True)
class JourneyMetrics:
    average_response_time: Optional[float] = None
    engagement_score: int = 0
    engagement_level: str = "low"
    last_activity_gap: Optional[float] = None  # minutes
    stage_transitions: tuple = ()
    conversion_rate: Optional[float] = None
    lead_status: str = "unknown"
    journey_length: Optional[float] = None     # minutes


@dataclass(frozen=True)
class AssignedUser:
    user_id: str
    name: str
    assignment_type: str
    total_interactions: int


@dataclass(frozen=True)
class AttributionCertainty:
    """Confiance dans l'attribution d'un parcours, 0–1, et ses composantes."""
    certainty: float = 0.0
    data_completeness: float = 0.0
    channel_diversity: float = 0.0
    timeline_clarity: float = 0.0
    touchpoint_signal: float = 0.0
    cross_platform: float = 0.0
    channel_influence: dict = field(default_factory=dict)   # source → poids, somme 1.0


@dataclass(frozen=True)
class CustomerJourney:
    contact_id: str
    contact: Contact
    first_touch: Optional[datetime]
    last_touch: Optional[datetime]
    total_touchpoints: int
    timeline_events: tuple
    sources: dict
    assigned_users: tuple
    deals: tuple
    call_metrics: CallMetrics
    sales_metrics: SalesMetrics
    admin_metrics: AdminMetrics
    lead_metrics: LeadMetrics
    journey_metrics: JourneyMetrics
    attribution: dict = field(default_factory=dict)    # modèle → AttributionResult
    attribution_certainty: AttributionCertainty = field(default_factory=AttributionCertainty)
    rejected_records: int = 0
    data_quality_flags: tuple = ()


# ─────────────────────────────────────────
# KPI
# ─────────────────────────────────────────

@dataclass(frozen=True)
class FieldDefinition:
    id: str
    name: str
    field_type: FieldType = FieldType.NUMBER
    source: FieldSource = FieldSource.CUSTOM
    field_path: str = ""
    description: str = ""


@dataclass(frozen=True)
class KpiFormula:
    id: str
    name: str
    formula: str
    category: str = ""
    dashboard_types: tuple = ()
    required_fields: tuple = ()
    enabled: bool = True
    customizable: bool = True
    description: str = ""


@dataclass(frozen=True)
class KpiResult:
    kpi_id: str
    name: str
    value: Optional[float]
    error_code: Optional[str] = None


# ─────────────────────────────────────────
# DASHBOARD
# ─────────────────────────────────────────

@dataclass(frozen=True)
class DateRange:
    start: datetime
    end: datetime
    label: str = ""

    def contains(self, moment: Optional[datetime]) -> bool:
        if moment is None:
            return False
        return self.start <= moment <= self.end


@dataclass(frozen=True)
class RepPerformance:
    user_id: str
    user_name: str
    contacts: int = 0
    total_dials: int = 0
    pick_up_rate: float = 0.0
    solution_calls_booked: int = 0
    solution_calls_sits: int = 0
    solution_call_show_rate: float = 0.0
    triage_calls_booked: int = 0
    triage_calls_sits: int = 0
    triage_show_rate: float = 0.0
    closed_won: int = 0
    revenue: float = 0.0
    cash_collected: float = 0.0


@dataclass(frozen=True)
class DashboardData:
    date_range: Optional[DateRange]
    user_filter: Optional[str]
    totals: dict
    reps: tuple = ()
    attribution_channels: dict = field(default_factory=dict)
    attribution_certainty: Optional[float] = None       # moyenne des contacts avec touchpoints
    channel_influence: dict = field(default_factory=dict)
    collections: dict = field(default_factory=dict)     # nom → liste de valeurs (SUM/AVG/COUNT)
    contacts_analyzed: int = 0
    rejected_records: int = 0
    data_quality_flags: tuple = ()


# ─────────────────────────────────────────
# SÉRIALISATION
# ─────────────────────────────────────────

def serialize(dataclass_instance) -> dict:
    """
    Convertit un dataclass en dict compatible JSON.
    datetime → ISO, Enum → valeur, tuple → liste.
    Déterministe : même entrée → même sortie.
    """
    raw = asdict(dataclass_instance)

    def clean(obj):
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, dict):
            return {
                (k.value if isinstance(k, Enum) else k): clean(v)
                for k, v in obj.items()
            }
        if isinstance(obj, (list, tuple)):
            return [clean(i) for i in obj]
        return obj

    return clean(raw)
