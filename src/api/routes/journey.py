# api/routes/journey.py

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends

from api.dependencies import get_date_range, get_user_filter
from models import DateRange, serialize

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/{contact_id}")
def get_journey(
    contact_id: str,
    date_range: Optional[DateRange] = Depends(get_date_range),
    user_id: Optional[str] = Depends(get_user_filter),
) -> dict:
    """Parcours complet d'un contact, recalculé à chaque appel."""
    from services.database import load_contact_bundle
    from journey.builder import build_customer_journey

    try:
        bundle = load_contact_bundle(contact_id)

        if bundle is None:
            raise HTTPException(status_code=404, detail="Contact introuvable")

        journey = build_customer_journey(bundle, date_range, user_id)
        return serialize(journey)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Erreur get_journey {contact_id} : {e}")
        raise HTTPException(status_code=500, detail=str(e))
