# services/database.py

import os
from datetime import datetime, timezone
from typing import Any, Optional
from supabase import create_client, Client
from models import ContactBundle, FieldDefinition, KpiFormula, serialize
import logging

logger = logging.getLogger(__name__)

# Tables synchronisées par les jobs de sync (lecture seule ici)
RECORD_TABLES = {
    "activities": "activities",
    "meetings": "meetings",
    "deals": "deals",
    "forms": "forms",
    "status_changes": "status_changes",
}

# Le tracker de stages refuse de réordonner : l'ordre vient de la requête
RECORD_ORDER = {
    "status_changes": ("changed_at", "id"),
}


# ─────────────────────────────────────────
# CONNEXION
# ─────────────────────────────────────────

def get_client() -> Client:
    url = os.environ["SUPABASE_URL"]
    key = os.environ["SUPABASE_SERVICE_KEY"]
    return create_client(url, key)


# ─────────────────────────────────────────
# LECTURE
# ─────────────────────────────────────────

def get(
    table: str,
    filters: Optional[dict] = None,
    order: Optional[tuple] = None,
) -> list:
    """
    Récupère des lignes d'une table.
    filters : dict optionnel de conditions d'égalité
              ex: {"contact_id": "42", "status": "won"}
    order   : colonnes de tri ascendant, dans l'ordre
              ex: ("changed_at", "id")
    """
    client = get_client()

    query = client.table(table).select("*")

    if filters:
        for key, value in filters.items():
            query = query.eq(key, value)

    for column in order or ():
        query = query.order(column)

    result = query.execute()
    return result.data or []


def get_contact(contact_id: str) -> Optional[dict]:
    client = get_client()

    result = (
        client.table("contacts")
        .select("*")
        .eq("id", contact_id)
        .limit(1)
        .execute()
    )

    return result.data[0] if result.data else None


def load_contact_bundle(contact_id: str) -> Optional[ContactBundle]:
    """
    Snapshot lecture seule d'un contact et de tous ses records.
    None si le contact n'existe pas.
    """
    contact = get_contact(contact_id)
    if contact is None:
        return None

    rows = {
        attr: get(table, {"contact_id": contact_id}, RECORD_ORDER.get(attr))
        for attr, table in RECORD_TABLES.items()
    }

    return ContactBundle(contact=contact, **rows)


def load_contact_bundles(contact_ids: Optional[list[str]] = None) -> list[ContactBundle]:
    """
    Charge les bundles de tous les contacts (ou d'une sélection).
    Une requête par table, regroupement par contact_id en mémoire.
    """
    contacts = get("contacts")
    if contact_ids is not None:
        wanted = {str(c) for c in contact_ids}
        contacts = [c for c in contacts if str(c.get("id")) in wanted]

    grouped: dict[str, dict[str, list]] = {
        str(c.get("id")): {attr: [] for attr in RECORD_TABLES} for c in contacts
    }

    for attr, table in RECORD_TABLES.items():
        for row in get(table, order=RECORD_ORDER.get(attr)):
            owner = str(row.get("contact_id"))
            if owner in grouped:
                grouped[owner][attr].append(row)

    bundles = [
        ContactBundle(contact=c, **grouped[str(c.get("id"))])
        for c in contacts
    ]

    logger.info(f"[database] {len(bundles)} bundles chargés")
    return bundles


def load_kpi_formulas(enabled_only: bool = True) -> list[KpiFormula]:
    rows = get("kpi_formulas", {"enabled": True} if enabled_only else None)
    formulas = []

    for row in rows:
        try:
            formulas.append(kpi_formula_from_row(row))
        except (KeyError, TypeError) as e:
            logger.warning(f"[database] Formule KPI ignorée {row.get('id')} : {e}")

    return formulas


def load_custom_fields() -> list[FieldDefinition]:
    from kpi.registry import custom_field_from_row

    definitions = []
    for row in get("custom_fields"):
        try:
            definitions.append(custom_field_from_row(row))
        except KeyError as e:
            logger.warning(f"[database] Champ custom ignoré : {e}")
    return definitions


def kpi_formula_from_row(row: dict) -> KpiFormula:
    return KpiFormula(
        id=str(row["id"]),
        name=str(row.get("name") or row["id"]),
        formula=str(row["formula"]),
        category=str(row.get("category") or ""),
        dashboard_types=tuple(row.get("dashboard_types") or ()),
        required_fields=tuple(row.get("required_fields") or ()),
        enabled=bool(row.get("enabled", True)),
        customizable=bool(row.get("customizable", True)),
        description=str(row.get("description") or ""),
    )


# ─────────────────────────────────────────
# ÉCRITURE
# Seuls les snapshots de métriques sont persistés,
# jamais les parcours.
# ─────────────────────────────────────────

def save_metrics_snapshot(
    day: str,
    user_id: Optional[str],
    totals: dict,
    kpis: dict,
) -> dict:
    """
    Upsert d'une ligne de la table metrics.
    Clé de déduplication : (date, user_id). user_id "team" = toute l'équipe.
    """
    client = get_client()

    record: dict[str, Any] = {
        "date": day,
        "user_id": user_id or "team",
        "totals": totals,
        "kpis": kpis,
        "computed_at": datetime.now(timezone.utc).isoformat(),
    }

    result = (
        client.table("metrics")
        .upsert(record, on_conflict="date,user_id")
        .execute()
    )

    return result.data[0] if result.data else {}


def save_dashboard_snapshot(day: str, dashboard, kpi_results: list) -> dict:
    payload = serialize(dashboard)
    return save_metrics_snapshot(
        day,
        dashboard.user_filter,
        payload["totals"],
        {r.kpi_id: r.value for r in kpi_results},
    )
