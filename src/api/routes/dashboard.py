# api/routes/dashboard.py

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends

from api.dependencies import get_date_range, get_user_filter
from models import DateRange, serialize

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("")
def get_dashboard(
    date_range: Optional[DateRange] = Depends(get_date_range),
    user_id: Optional[str] = Depends(get_user_filter),
) -> dict:
    """Totaux, performance par rep et attribution par canal."""
    from services.database import load_contact_bundles
    from services.dashboard import build_dashboard

    try:
        bundles = load_contact_bundles()
        dashboard = build_dashboard(bundles, date_range, user_id)
        return serialize(dashboard)

    except Exception as e:
        logger.error(f"Erreur get_dashboard : {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/reps")
def get_reps(
    date_range: Optional[DateRange] = Depends(get_date_range),
) -> dict:
    from services.database import load_contact_bundles
    from services.dashboard import build_dashboard

    try:
        dashboard = build_dashboard(load_contact_bundles(), date_range)
        reps = serialize(dashboard)["reps"]
        return {"reps": reps, "count": len(reps)}

    except Exception as e:
        logger.error(f"Erreur get_reps : {e}")
        raise HTTPException(status_code=500, detail=str(e))
