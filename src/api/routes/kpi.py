# api/routes/kpi.py

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends, Query
from pydantic import BaseModel

from api.dependencies import get_date_range, get_user_filter
from errors import FormulaError
from models import DateRange, FieldSource, serialize

router = APIRouter()
logger = logging.getLogger(__name__)


class FormulaRequest(BaseModel):
    formula: str


class EvaluateRequest(BaseModel):
    formula: str
    values: dict = {}


def _registry():
    from kpi import get_default_registry
    from services.database import load_custom_fields

    return get_default_registry(load_custom_fields())


def _formulas():
    """Formules de la table kpi_formulas, catalogue par défaut si vide."""
    from kpi import DEFAULT_KPIS
    from services.database import load_kpi_formulas

    return load_kpi_formulas() or list(DEFAULT_KPIS)


@router.get("/fields")
def list_fields(source: Optional[str] = Query(None)) -> dict:
    try:
        source_filter = FieldSource(source) if source else None
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Source inconnue : {source}")

    try:
        fields = [serialize(f) for f in _registry().list_fields(source_filter)]
        return {"fields": fields, "count": len(fields)}

    except Exception as e:
        logger.error(f"Erreur list_fields : {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/formulas")
def list_formulas() -> dict:
    """Chaque formule avec ses écarts required_fields / champs utilisés."""
    from kpi import check_required_fields

    try:
        registry = _registry()
        formulas = []
        for kpi in _formulas():
            row = serialize(kpi)
            try:
                row["field_issues"] = check_required_fields(kpi, registry)
            except FormulaError as e:
                row["field_issues"] = [e.code]
            formulas.append(row)
        return {"formulas": formulas, "count": len(formulas)}

    except Exception as e:
        logger.error(f"Erreur list_formulas : {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/validate")
def validate(body: FormulaRequest) -> dict:
    """Formule invalide → 200 avec valid=False : c'est une réponse, pas une panne."""
    from kpi import validate_formula

    try:
        fields = validate_formula(body.formula, _registry())
        return {"valid": True, "fields": list(fields)}

    except FormulaError as e:
        return {"valid": False, "error": e.code, "detail": str(e), "details": e.details}
    except Exception as e:
        logger.error(f"Erreur validate : {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/evaluate")
def evaluate(body: EvaluateRequest) -> dict:
    """
    Évalue une formule avec les valeurs fournies.
    Dénominateur nul ou valeur manquante → value null.
    """
    from kpi import evaluate_formula

    try:
        value = evaluate_formula(body.formula, body.values, _registry())
        return {"formula": body.formula, "value": value}

    except FormulaError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Erreur evaluate : {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/dashboard/{dashboard_type}")
def dashboard_kpis(
    dashboard_type: str,
    date_range: Optional[DateRange] = Depends(get_date_range),
    user_id: Optional[str] = Depends(get_user_filter),
) -> dict:
    """KPIs activés pour un type de dashboard, sur le scope demandé."""
    from kpi import kpis_for_dashboard
    from services.dashboard import build_dashboard, score_dashboard_kpis
    from services.database import load_contact_bundles

    try:
        kpis = kpis_for_dashboard(_formulas(), dashboard_type)
        if not kpis:
            return {"dashboard_type": dashboard_type, "kpis": []}

        dashboard = build_dashboard(load_contact_bundles(), date_range, user_id)
        results = score_dashboard_kpis(dashboard, kpis, _registry())

        return {
            "dashboard_type": dashboard_type,
            "kpis": [serialize(r) for r in results],
        }

    except Exception as e:
        logger.error(f"Erreur dashboard_kpis {dashboard_type} : {e}")
        raise HTTPException(status_code=500, detail=str(e))
