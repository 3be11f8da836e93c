# kpi/__init__.py

"""
Évaluateur de formules KPI.

Utilisation :
    from kpi import FieldRegistry, evaluate_kpi, DEFAULT_KPIS

    registry = FieldRegistry()
    values = registry.extract_field_values(dataset)
    results = [evaluate_kpi(k, values, registry) for k in DEFAULT_KPIS]
"""

from kpi.catalogue import DEFAULT_KPIS, KPI_CATEGORIES, kpis_for_dashboard
from kpi.evaluator import (
    validate_formula, check_required_fields, evaluate_formula, evaluate_kpi, evaluate_kpis
)
from kpi.parser import parse_formula, referenced_fields
from kpi.registry import (
    FieldRegistry, STANDARD_FIELDS, custom_field_from_row, get_default_registry
)
