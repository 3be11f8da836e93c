# connectors/base.py

"""
Utilitaires communs à tous les adaptateurs de source.

Pas de classe de base : chaque source expose des fonctions
normalize_*(raw) -> TimelineEvent, branchées dans la table
de dispatch de connectors/__init__.py.
"""

from datetime import datetime, timezone
from typing import Optional
import logging

from errors import MalformedRecordError

logger = logging.getLogger(__name__)


def safe_float(value, default: float = 0.0) -> float:
    """Gère aussi les montants texte type "$1,200.50"."""
    if value is None:
        return default
    if isinstance(value, (int, float)):
        return float(value)
    try:
        cleaned = "".join(c for c in str(value) if c.isdigit() or c in ".-")
        return float(cleaned) if cleaned else default
    except (ValueError, TypeError):
        return default


def safe_str(value, default: str = "") -> str:
    if value is None:
        return default
    return str(value).strip()


def optional_str(value) -> Optional[str]:
    s = safe_str(value)
    return s or None


def parse_timestamp(value) -> Optional[datetime]:
    """
    Parse universelle des dates → instant UTC (datetime aware).
    Gère ISO (avec ou sans Z), timestamp s/ms, YYYY-MM-DD
    et YYYY-MM-DD HH:MM:SS. Une date naïve est considérée UTC.
    """
    if value is None or value == "":
        return None

    try:
        if isinstance(value, datetime):
            parsed = value

        elif isinstance(value, bool):
            return None

        elif isinstance(value, (int, float)):
            # Timestamp millisecondes
            if value > 1e10:
                return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
            return datetime.fromtimestamp(value, tz=timezone.utc)

        else:
            s = str(value).strip().replace("Z", "+00:00")

            if "T" in s:
                parsed = datetime.fromisoformat(s)
            elif len(s) == 10 and s[4] == "-":
                parsed = datetime.strptime(s, "%Y-%m-%d")
            elif len(s) == 19 and s[4] == "-":
                parsed = datetime.strptime(s, "%Y-%m-%d %H:%M:%S")
            else:
                parsed = datetime.fromisoformat(s)

    except (ValueError, TypeError, OSError, OverflowError):
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def require_id(raw: dict, kind: str, *keys: str) -> str:
    """Premier identifiant non vide parmi keys, sinon MalformedRecordError."""
    for key in keys:
        value = safe_str(raw.get(key))
        if value:
            return value
    raise MalformedRecordError(kind, "identifiant manquant")


def require_timestamp(raw: dict, kind: str, raw_id: str, *keys: str) -> datetime:
    """Premier timestamp parseable parmi keys, sinon MalformedRecordError."""
    for key in keys:
        parsed = parse_timestamp(raw.get(key))
        if parsed is not None:
            return parsed
    raise MalformedRecordError(kind, "timestamp absent ou illisible", raw_id)


def event_id(source: str, kind: str, raw_id: str) -> str:
    return f"{source}_{kind}_{raw_id}"
