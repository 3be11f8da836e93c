# kpi/registry.py

"""
Registre des champs interrogeables par les formules KPI.

Champs standards : un par agrégat exposé par le dashboard
(Close, Calendly, Typeform, attribution).
Champs custom : chargés depuis la table custom_fields et fusionnés.

field_path = chemin pointé dans le dataset KPI
    ex: "totals.closed_won", "collections.won_deal_values"
"""

from typing import Iterable, Optional
import logging

from models import FieldDefinition, FieldSource, FieldType

logger = logging.getLogger(__name__)


def _std(field_id: str, name: str, source: FieldSource, path: str, description: str = "") -> FieldDefinition:
    return FieldDefinition(
        id=field_id,
        name=name,
        field_type=FieldType.NUMBER,
        source=source,
        field_path=path,
        description=description,
    )


STANDARD_FIELDS: tuple = (
    # ── Close ──
    _std("close_contacts_count", "Contacts", FieldSource.CLOSE, "totals.contacts"),
    _std("close_deals_count", "Deals", FieldSource.CLOSE, "totals.deals"),
    _std("close_deals_won", "Deals gagnés", FieldSource.CLOSE, "totals.closed_won"),
    _std("close_deals_lost", "Deals perdus", FieldSource.CLOSE, "totals.deals_lost"),
    _std("close_deals_value", "Revenu des deals gagnés", FieldSource.CLOSE, "totals.revenue"),
    _std("close_cash_collected", "Cash encaissé", FieldSource.CLOSE, "totals.cash_collected"),
    _std("close_deals_cost", "Coût des deals", FieldSource.CLOSE, "totals.cost"),
    _std("close_activities_count", "Activités", FieldSource.CLOSE, "totals.activities"),
    _std("close_calls_count", "Appels passés", FieldSource.CLOSE, "totals.total_dials"),
    _std("close_calls_answered", "Appels décrochés", FieldSource.CLOSE, "totals.calls_answered"),
    _std("close_leads_disqualified", "Leads disqualifiés", FieldSource.CLOSE, "totals.leads_disqualified"),
    _std("close_won_deal_values", "Valeurs des deals gagnés", FieldSource.CLOSE,
         "collections.won_deal_values", "Collection, à utiliser avec SUM/AVG/COUNT"),
    _std("close_speed_to_lead", "Speed to lead par contact (min)", FieldSource.CLOSE,
         "collections.speed_to_lead", "Collection, à utiliser avec SUM/AVG/COUNT"),
    # ── Calendly ──
    _std("calendly_meetings_count", "Meetings", FieldSource.CALENDLY, "totals.meetings"),
    _std("calendly_meetings_shows", "Meetings tenus", FieldSource.CALENDLY, "totals.meetings_completed"),
    _std("calendly_meetings_noshows", "No-shows", FieldSource.CALENDLY, "totals.meetings_no_show"),
    _std("calendly_meetings_canceled", "Meetings annulés", FieldSource.CALENDLY, "totals.meetings_canceled"),
    _std("calendly_triage_booked", "Triage calls bookés", FieldSource.CALENDLY, "totals.triage_calls_booked"),
    _std("calendly_triage_sits", "Triage calls tenus", FieldSource.CALENDLY, "totals.triage_calls_sits"),
    _std("calendly_solution_booked", "Solution calls bookés", FieldSource.CALENDLY, "totals.solution_calls_booked"),
    _std("calendly_solution_sits", "Solution calls tenus", FieldSource.CALENDLY, "totals.solution_calls_sits"),
    # ── Typeform ──
    _std("typeform_forms_count", "Formulaires soumis", FieldSource.TYPEFORM, "totals.forms"),
    # ── Attribution (dérivé du parcours, rangé côté custom) ──
    _std("attribution_multisource_count", "Contacts multi-sources", FieldSource.CUSTOM,
         "totals.multisource_contacts"),
    _std("attribution_engagement_scores", "Scores d'engagement", FieldSource.CUSTOM,
         "collections.engagement_scores", "Collection, à utiliser avec SUM/AVG/COUNT"),
    _std("attribution_certainty_scores", "Certitudes d'attribution", FieldSource.CUSTOM,
         "collections.attribution_certainties", "Collection, à utiliser avec SUM/AVG/COUNT"),
    # ── Saisies manuelles (fournies par l'appelant) ──
    _std("marketing_spend", "Dépenses marketing", FieldSource.CUSTOM, "custom.marketing_spend"),
    _std("working_days", "Jours travaillés", FieldSource.CUSTOM, "custom.working_days"),
)


class FieldRegistry:
    """
    Index des champs par id.
    Un champ custom ne remplace jamais un champ standard du même id.
    """

    def __init__(self, fields: Optional[Iterable[FieldDefinition]] = None):
        self._fields: dict[str, FieldDefinition] = {}
        for definition in (STANDARD_FIELDS if fields is None else fields):
            self._fields[definition.id] = definition

    def __contains__(self, field_id: str) -> bool:
        return field_id in self._fields

    def __len__(self) -> int:
        return len(self._fields)

    def get(self, field_id: str) -> Optional[FieldDefinition]:
        return self._fields.get(field_id)

    def register(self, definition: FieldDefinition) -> bool:
        if definition.id in self._fields:
            logger.warning(f"[registry] Champ {definition.id} déjà défini, ignoré")
            return False
        self._fields[definition.id] = definition
        return True

    def merge_custom(self, definitions: Iterable[FieldDefinition]) -> "FieldRegistry":
        """Retourne un nouveau registre : standards + customs."""
        merged = FieldRegistry(self._fields.values())
        for definition in definitions:
            merged.register(definition)
        return merged

    def list_fields(self, source: Optional[FieldSource] = None) -> list[FieldDefinition]:
        fields = sorted(self._fields.values(), key=lambda f: f.id)
        if source is None:
            return fields
        source = FieldSource(source)
        return [f for f in fields if f.source == source]

    def extract_field_values(self, dataset: dict) -> dict:
        """
        Résout chaque field_path dans le dataset.
        Les champs sans valeur sont absents du résultat :
        l'évaluateur lèvera MissingFieldValueError s'ils sont utilisés.
        """
        values = {}
        for definition in self._fields.values():
            if not definition.field_path:
                continue
            value = resolve_path(dataset, definition.field_path)
            if value is not None:
                values[definition.id] = value
        return values


def resolve_path(data: dict, path: str):
    current = data
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return None
        current = current[part]
    return current


def custom_field_from_row(row: dict) -> FieldDefinition:
    """Ligne de la table custom_fields → FieldDefinition."""
    try:
        field_type = FieldType(str(row.get("field_type") or "number").lower())
    except ValueError:
        field_type = FieldType.NUMBER

    return FieldDefinition(
        id=str(row["id"]),
        name=str(row.get("name") or row["id"]),
        field_type=field_type,
        source=FieldSource.CUSTOM,
        field_path=str(row.get("field_path") or f"custom.{row['id']}"),
        description=str(row.get("description") or ""),
    )


def get_default_registry(custom_fields: Iterable[FieldDefinition] = ()) -> FieldRegistry:
    """Nouveau registre à chaque appel : aucun état partagé entre requêtes."""
    return FieldRegistry().merge_custom(custom_fields)
