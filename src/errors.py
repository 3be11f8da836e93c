# errors.py

"""
Erreurs du moteur de parcours client.

Hiérarchie :
    JourneyError
    ├── MalformedRecordError        → par record : on jette et on compte
    ├── OutOfOrderTransitionError   → par contact : flag qualité de données
    ├── InvalidDateRangeError       → paramètre de scope invalide
    └── FormulaError
        ├── FormulaSyntaxError
        ├── UnknownFieldError
        ├── MissingFieldValueError
        └── DivisionByZeroError     → résultat KPI = None

Aucune de ces erreurs ne doit faire tomber une requête entière.
Le pire acceptable : une métrique affichée "N/A".
"""


class JourneyError(Exception):
    """Base de toutes les erreurs du moteur."""

    def __init__(self, message: str, code: str = "UNKNOWN", details: dict = None):
        self.code = code
        self.details = details or {}
        super().__init__(f"[{code}] {message}")


class MalformedRecordError(JourneyError):
    """Record brut sans id ou sans timestamp exploitable."""

    def __init__(self, kind: str, reason: str, raw_id=None):
        self.kind = kind
        self.raw_id = raw_id
        super().__init__(
            f"{kind} {raw_id!r} rejeté : {reason}",
            code="MALFORMED_RECORD",
            details={"kind": kind, "raw_id": raw_id, "reason": reason},
        )


class OutOfOrderTransitionError(JourneyError):
    """Changements de statut non monotones dans le temps."""

    def __init__(self, index: int, previous, current):
        self.index = index
        super().__init__(
            f"Transition #{index} ({current.isoformat()}) antérieure "
            f"à la précédente ({previous.isoformat()})",
            code="OUT_OF_ORDER_TRANSITION",
            details={
                "index": index,
                "previous": previous.isoformat(),
                "current": current.isoformat(),
            },
        )


class InvalidDateRangeError(JourneyError):

    def __init__(self, value: str, reason: str = ""):
        msg = f"Période invalide : {value!r}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg, code="INVALID_DATE_RANGE", details={"value": value})


# --- Formules KPI ---

class FormulaError(JourneyError):
    """Base des erreurs d'évaluation de formule."""


class FormulaSyntaxError(FormulaError):

    def __init__(self, formula: str, position: int, reason: str):
        self.position = position
        super().__init__(
            f"{reason} (position {position}) dans {formula!r}",
            code="FORMULA_SYNTAX",
            details={"formula": formula, "position": position},
        )


class UnknownFieldError(FormulaError):

    def __init__(self, field_id: str):
        self.field_id = field_id
        super().__init__(
            f"Champ inconnu du registre : {field_id}",
            code="UNKNOWN_FIELD",
            details={"field_id": field_id},
        )


class MissingFieldValueError(FormulaError):

    def __init__(self, field_id: str):
        self.field_id = field_id
        super().__init__(
            f"Aucune valeur fournie pour le champ {field_id}",
            code="MISSING_FIELD_VALUE",
            details={"field_id": field_id},
        )


class DivisionByZeroError(FormulaError):

    def __init__(self, operator: str = "/"):
        super().__init__(
            f"Dénominateur nul pour l'opérateur {operator!r}",
            code="DIVISION_BY_ZERO",
            details={"operator": operator},
        )


class NonFiniteValueError(FormulaError):

    def __init__(self, detail: str):
        super().__init__(
            f"Valeur hors de l'intervalle des flottants : {detail}",
            code="NON_FINITE",
            details={"detail": detail},
        )
