# kpi/evaluator.py

"""
Évaluation des formules KPI sur une map field_id → valeur.

La map est préparée par l'appelant pour un scope donné
(équipe ou rep, période) : l'évaluateur ne va jamais chercher de données.
"""

from typing import Optional
import logging
import math

from errors import (
    FormulaError, UnknownFieldError, MissingFieldValueError, DivisionByZeroError,
    NonFiniteValueError
)
from kpi.parser import (
    parse_formula, referenced_fields, Literal, FieldRef, UnaryOp, BinaryOp, AggregateCall
)
from kpi.registry import FieldRegistry
from models import KpiFormula, KpiResult

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────
# VALIDATION (avant exécution)
# ─────────────────────────────────────────

def validate_formula(formula: str, registry: FieldRegistry) -> tuple:
    """
    Parse + vérifie que chaque identifiant existe dans le registre.
    Retourne les champs référencés.
    """
    tree = parse_formula(formula)
    fields = referenced_fields(tree)

    for field_id in fields:
        if field_id not in registry:
            raise UnknownFieldError(field_id)

    return fields


def check_required_fields(kpi: KpiFormula, registry: FieldRegistry) -> list[str]:
    """
    Compare les required_fields déclarés aux champs réellement utilisés.

    Retourne les écarts, ex: ["undeclared:close_deals_lost", "unused:typeform_forms_count"].
    Rien de déclaré → pas de contrôle (formules saisies à la main).
    Lève FormulaSyntaxError / UnknownFieldError comme validate_formula.
    """
    if not kpi.required_fields:
        return []

    used = set(validate_formula(kpi.formula, registry))
    declared = set(kpi.required_fields)

    issues = [f"undeclared:{f}" for f in sorted(used - declared)]
    issues += [f"unused:{f}" for f in sorted(declared - used)]
    issues += [f"unknown:{f}" for f in sorted(declared) if f not in registry]

    if issues:
        logger.warning(f"[kpi] {kpi.id} : required_fields incohérents {issues}")

    return issues


# ─────────────────────────────────────────
# ÉVALUATION
# ─────────────────────────────────────────

def evaluate_formula(
    formula: str,
    values: dict,
    registry: Optional[FieldRegistry] = None,
) -> Optional[float]:
    """
    Retourne la valeur numérique de la formule, ou None si
    un dénominateur est nul ou si un champ n'a pas de valeur.

    Lève FormulaSyntaxError / UnknownFieldError : ce sont des erreurs
    d'écriture de la formule, pas de données.
    """
    if registry is not None:
        validate_formula(formula, registry)

    tree = parse_formula(formula)

    try:
        return _eval(tree, values)
    except (DivisionByZeroError, MissingFieldValueError, NonFiniteValueError) as e:
        logger.debug(f"[kpi] {formula!r} → None : {e}")
        return None


def evaluate_kpi(
    kpi: KpiFormula,
    values: dict,
    registry: FieldRegistry,
) -> KpiResult:
    """Ne lève jamais : toute erreur devient value=None + error_code."""
    try:
        validate_formula(kpi.formula, registry)
        value = _eval(parse_formula(kpi.formula), values)
    except FormulaError as e:
        if not isinstance(e, (DivisionByZeroError, MissingFieldValueError, NonFiniteValueError)):
            logger.warning(f"[kpi] {kpi.id} : {e}")
        return KpiResult(kpi_id=kpi.id, name=kpi.name, value=None, error_code=e.code)

    return KpiResult(kpi_id=kpi.id, name=kpi.name, value=round(value, 4))


def evaluate_kpis(kpis: list[KpiFormula], values: dict, registry: FieldRegistry) -> list[KpiResult]:
    return [evaluate_kpi(kpi, values, registry) for kpi in kpis if kpi.enabled]


# ─────────────────────────────────────────
# INTERPRÉTEUR
# ─────────────────────────────────────────

def _eval(node, values: dict) -> float:
    if isinstance(node, Literal):
        return _finite(node.value, "literal")

    if isinstance(node, FieldRef):
        return _scalar(node.field_id, values)

    if isinstance(node, UnaryOp):
        return -_eval(node.operand, values)

    if isinstance(node, BinaryOp):
        left = _eval(node.left, values)
        right = _eval(node.right, values)
        return _finite(_apply(node.operator, left, right), node.operator)

    if isinstance(node, AggregateCall):
        return _finite(
            _aggregate(node.function, _collection(node.field_id, values)), node.function
        )

    raise FormulaError(f"Noeud inconnu : {node!r}", code="FORMULA_INTERNAL")


def _finite(value: float, where: str) -> float:
    if not math.isfinite(value):
        raise NonFiniteValueError(where)
    return value


def _apply(operator: str, left: float, right: float) -> float:
    if operator == "+":
        return left + right
    if operator == "-":
        return left - right
    if operator == "*":
        return left * right
    if right == 0:
        raise DivisionByZeroError(operator)
    if operator == "/":
        return left / right
    return math.fmod(left, right)


def _aggregate(function: str, items: list[float]) -> float:
    if function == "COUNT":
        return float(len(items))
    if function == "SUM":
        return float(sum(items))
    if not items:
        raise DivisionByZeroError("AVG")
    return sum(items) / len(items)


def _lookup(field_id: str, values: dict):
    if field_id not in values or values[field_id] is None:
        raise MissingFieldValueError(field_id)
    return values[field_id]


def _scalar(field_id: str, values: dict) -> float:
    value = _lookup(field_id, values)
    if isinstance(value, (list, tuple)):
        raise FormulaError(
            f"{field_id} est une collection : utiliser SUM(), AVG() ou COUNT()",
            code="COLLECTION_AS_SCALAR",
            details={"field_id": field_id},
        )
    return _number(field_id, value)


def _collection(field_id: str, values: dict) -> list[float]:
    value = _lookup(field_id, values)
    if isinstance(value, (list, tuple)):
        return [_number(field_id, v) for v in value if v is not None]
    return [_number(field_id, value)]


def _number(field_id: str, value) -> float:
    """Tout ce qui entre dans le calcul est un flottant fini."""
    try:
        number = float(value)
    except OverflowError:
        raise NonFiniteValueError(field_id)
    except (TypeError, ValueError):
        raise FormulaError(
            f"Valeur non numérique pour {field_id} : {value!r}",
            code="NON_NUMERIC_VALUE",
            details={"field_id": field_id},
        )
    return _finite(number, field_id)
