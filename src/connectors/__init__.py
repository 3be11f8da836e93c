# connectors/__init__.py

"""
Table de dispatch centralisée pour tous les adaptateurs de source.

Utilisation :
    from connectors import normalize_record, normalize_bundle

    event = normalize_record("calendly", "meeting", raw)
    normalized = normalize_bundle(bundle)

Ajouter un type de record = ajouter une ligne dans _NORMALIZER_MAP.
"""

import logging
from typing import Callable, Optional

from config import get_engine_config
from connectors import close, calendly, typeform
from errors import MalformedRecordError
from models import ContactBundle, NormalizedBundle, TimelineEvent, Contact

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────
# MAP : (source, kind) → adaptateur raw → TimelineEvent
# ─────────────────────────────────────────

_NORMALIZER_MAP: dict[tuple[str, str], Callable[[dict], TimelineEvent]] = {
    ("close", "activity"): close.normalize_activity,
    ("close", "note"):     close.normalize_note,
    ("close", "deal"):     close.normalize_deal,
    ("calendly", "meeting"): calendly.normalize_meeting,
    ("typeform", "form"):    typeform.normalize_form,
}


def get_normalizer(source: str, kind: str) -> Optional[Callable[[dict], TimelineEvent]]:
    return _NORMALIZER_MAP.get((source.lower(), kind.lower()))


def list_supported_records() -> list[tuple[str, str]]:
    return list(_NORMALIZER_MAP.keys())


def normalize_record(source: str, kind: str, raw: dict) -> TimelineEvent:
    """
    Normalise un record brut en TimelineEvent.
    Lève MalformedRecordError si le record est inexploitable
    ou si le couple (source, kind) n'est pas supporté.
    """
    normalizer = get_normalizer(source, kind)

    if normalizer is None:
        raise MalformedRecordError(
            f"{source}/{kind}", "type de record non supporté", raw.get("id")
        )

    return normalizer(raw)


# ─────────────────────────────────────────
# BATCH : un contact complet
# Un record cassé ne fait jamais échouer le batch
# ─────────────────────────────────────────

def normalize_bundle(bundle: ContactBundle, config: Optional[dict] = None) -> NormalizedBundle:
    """
    Parse une fois chaque record du bundle et produit
    les records typés + les events de timeline.
    config : overrides du moteur (event_scores).

    Les records inexploitables sont jetés et comptés
    dans normalized.rejected[kind].
    """
    scores = get_engine_config(config)["event_scores"]
    normalized = NormalizedBundle(contact=_parse_contact(bundle.contact))

    sections = [
        ("activity", bundle.activities, close.parse_activity,
         close.activity_to_event, normalized.activities),
        ("meeting", bundle.meetings, calendly.parse_meeting,
         calendly.meeting_to_event, normalized.meetings),
        ("deal", bundle.deals, close.parse_deal,
         close.deal_to_event, normalized.deals),
        ("form", bundle.forms, typeform.parse_form,
         typeform.form_to_event, normalized.forms),
    ]

    for kind, raws, parse, to_event, target in sections:
        for raw in raws or []:
            try:
                record = parse(raw)
            except MalformedRecordError as e:
                _reject(normalized, kind, e)
                continue

            target.append(record)
            normalized.events.append(to_event(record, scores))

    for raw in bundle.status_changes or []:
        try:
            normalized.status_changes.append(close.parse_status_change(raw))
        except MalformedRecordError as e:
            _reject(normalized, "status_change", e)

    if normalized.rejected:
        logger.info(
            f"[normalizer] Contact {normalized.contact.id} : "
            f"{len(normalized.events)} events, "
            f"{normalized.rejected_total} records rejetés {normalized.rejected}"
        )

    return normalized


# ─────────────────────────────────────────
# UTILITAIRE INTERNE
# ─────────────────────────────────────────

def _parse_contact(raw: dict) -> Contact:
    """
    Le contact est l'ancre du bundle : sans id, on garde
    un contact vide plutôt que d'abandonner tout le parcours.
    """
    try:
        return close.parse_contact(raw or {})
    except MalformedRecordError as e:
        logger.warning(f"[normalizer] Contact inexploitable : {e}")
        return Contact(id="")


def _reject(normalized: NormalizedBundle, kind: str, error: MalformedRecordError) -> None:
    normalized.rejected[kind] = normalized.rejected.get(kind, 0) + 1
    logger.warning(f"[normalizer] {error}")
