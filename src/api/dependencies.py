# api/dependencies.py

from typing import Optional

from fastapi import HTTPException, Query

from errors import InvalidDateRangeError
from models import DateRange
from services.date_range import parse_date_range


def get_date_range(
    date_range: Optional[str] = Query(
        None, description="YYYY-MM-DD_YYYY-MM-DD ou preset (last_30_days, this_month...)"
    ),
) -> Optional[DateRange]:
    """
    Période du scope. Absente → tout l'historique.
    Format invalide → 400.
    """
    try:
        return parse_date_range(date_range)
    except InvalidDateRangeError as e:
        raise HTTPException(status_code=400, detail=str(e))


def get_user_filter(
    user_id: Optional[str] = Query(None, description="Restreint au rep donné"),
) -> Optional[str]:
    if user_id is None or not user_id.strip() or user_id == "all":
        return None
    return user_id.strip()
