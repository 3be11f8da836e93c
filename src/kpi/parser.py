# kpi/parser.py

"""
Parser des formules KPI.

Grammaire :
    expr    := term (("+" | "-") term)*
    term    := unary (("*" | "/" | "%") unary)*
    unary   := "-" unary | primary
    primary := NUMBER
             | IDENT
             | AGG "(" IDENT ")"        AGG ∈ {SUM, AVG, COUNT}, casse libre
             | "(" expr ")"

La formule est parsée une seule fois en AST (cache),
jamais passée à eval().
"""

from dataclasses import dataclass
from functools import lru_cache
import logging
import re

from errors import FormulaSyntaxError

logger = logging.getLogger(__name__)

AGGREGATES = ("SUM", "AVG", "COUNT")


# ─────────────────────────────────────────
# AST
# ─────────────────────────────────────────

@dataclass(frozen=True)
class Literal:
    value: float


@dataclass(frozen=True)
class FieldRef:
    field_id: str


@dataclass(frozen=True)
class UnaryOp:
    operator: str
    operand: object


@dataclass(frozen=True)
class BinaryOp:
    operator: str
    left: object
    right: object


@dataclass(frozen=True)
class AggregateCall:
    function: str          # toujours en majuscules
    field_id: str


def referenced_fields(node) -> tuple:
    """Identifiants de champs cités par la formule, triés, sans doublon."""
    found: set[str] = set()

    def walk(n):
        if isinstance(n, FieldRef):
            found.add(n.field_id)
        elif isinstance(n, AggregateCall):
            found.add(n.field_id)
        elif isinstance(n, UnaryOp):
            walk(n.operand)
        elif isinstance(n, BinaryOp):
            walk(n.left)
            walk(n.right)

    walk(node)
    return tuple(sorted(found))


# ─────────────────────────────────────────
# TOKENIZER
# ─────────────────────────────────────────

_TOKEN_RE = re.compile(
    r"\s*(?:"
    r"(?P<number>\d+(?:\.\d+)?|\.\d+)"
    r"|(?P<ident>[A-Za-z_][A-Za-z0-9_.]*)"
    r"|(?P<op>[-+*/%()])"
    r")"
)


@dataclass(frozen=True)
class Token:
    kind: str              # "number" | "ident" | "op" | "end"
    text: str
    position: int


def tokenize(formula: str) -> list[Token]:
    tokens: list[Token] = []
    position = 0
    length = len(formula)

    while position < length:
        if formula[position].isspace():
            position += 1
            continue

        match = _TOKEN_RE.match(formula, position)
        if not match or match.lastgroup is None:
            raise FormulaSyntaxError(
                formula, position, f"caractère inattendu {formula[position]!r}"
            )

        kind = match.lastgroup
        tokens.append(Token(kind, match.group(kind), match.start(kind)))
        position = match.end()

    tokens.append(Token("end", "", length))
    return tokens


# ─────────────────────────────────────────
# PARSER (descente récursive)
# ─────────────────────────────────────────

class _Parser:

    def __init__(self, formula: str):
        self.formula = formula
        self.tokens = tokenize(formula)
        self.index = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def advance(self) -> Token:
        token = self.current
        self.index += 1
        return token

    def expect(self, text: str) -> Token:
        if self.current.text != text:
            self.fail(f"{text!r} attendu")
        return self.advance()

    def fail(self, reason: str):
        token = self.current
        found = token.text or "fin de formule"
        raise FormulaSyntaxError(self.formula, token.position, f"{reason}, trouvé {found!r}")

    def parse(self):
        if self.current.kind == "end":
            self.fail("formule vide")
        node = self.expr()
        if self.current.kind != "end":
            self.fail("opérateur attendu")
        return node

    def expr(self):
        node = self.term()
        while self.current.kind == "op" and self.current.text in ("+", "-"):
            operator = self.advance().text
            node = BinaryOp(operator, node, self.term())
        return node

    def term(self):
        node = self.unary()
        while self.current.kind == "op" and self.current.text in ("*", "/", "%"):
            operator = self.advance().text
            node = BinaryOp(operator, node, self.unary())
        return node

    def unary(self):
        if self.current.kind == "op" and self.current.text == "-":
            self.advance()
            return UnaryOp("-", self.unary())
        return self.primary()

    def primary(self):
        token = self.current

        if token.kind == "number":
            self.advance()
            return Literal(float(token.text))

        if token.kind == "ident":
            self.advance()
            name = token.text
            if self.current.text == "(":
                return self.aggregate(name, token)
            return FieldRef(name)

        if token.text == "(":
            self.advance()
            node = self.expr()
            self.expect(")")
            return node

        self.fail("valeur attendue")

    def aggregate(self, name: str, token: Token):
        function = name.upper()
        if function not in AGGREGATES:
            raise FormulaSyntaxError(
                self.formula, token.position, f"fonction inconnue {name!r}"
            )

        self.expect("(")
        if self.current.kind != "ident":
            self.fail(f"nom de champ attendu dans {function}()")
        field_id = self.advance().text
        self.expect(")")

        return AggregateCall(function, field_id)


@lru_cache(maxsize=512)
def parse_formula(formula: str):
    """
    Parse une formule en AST immuable.
    Lève FormulaSyntaxError si le texte est invalide.
    """
    if not isinstance(formula, str):
        raise FormulaSyntaxError(str(formula), 0, "la formule doit être une chaîne")

    return _Parser(formula).parse()
