"""Term model for formulas, relational atoms and rule patterns.

Grammar:
  term    := Atom(symbol) | Constant(truth|contradiction)
           | Compound(operator, args) | Indexed(time, formula)
           | Rel(relator, operands)
  pattern := term | Infer(locals, goal)

Metavariables are atoms whose symbol follows a naming convention: greek
letter names (phi, psi, ...) range over formulas, single lowercase latin
letters (i, j, x0, t') range over time points and individuals.

All nodes are frozen Pydantic models, so terms are immutable, hashable and
compare structurally with ``==``. Use ``equals`` when the commutativity of
``and``/``or`` matters.
"""

from __future__ import annotations

import re
from typing import Annotated, Iterator, Literal, Union

from pydantic import BaseModel, Discriminator, Tag, model_validator

TRUTH_SYMBOL = "truth"
CONTRADICTION_SYMBOL = "contradiction"

# Operands of these operators compare as multisets
COMMUTATIVE_OPERATORS = frozenset({"and", "or"})

# Quantifiers: first argument is the bound variable, second the body
BINDERS = frozenset({"forall", "exists"})

# Meta-operator (substitution phi x t): phi with free x replaced by t
SUBSTITUTION_OPERATOR = "substitution"

GREEK_NAMES = (
    "alpha", "beta", "gamma", "delta", "epsilon", "zeta", "eta", "theta",
    "iota", "kappa", "lambda", "mu", "nu", "xi", "omicron", "pi", "rho",
    "sigma", "tau", "upsilon", "phi", "chi", "psi", "omega",
)
GREEK_LETTERS = "αβγδεζηθικλμνξοπρστυφχψω"

_FORMULA_METAVARIABLE = re.compile(
    r"^(?:" + "|".join(GREEK_NAMES) + r"|[" + GREEK_LETTERS + r"])\d*'*$"
)
_TERM_METAVARIABLE = re.compile(r"^[a-z]\d*'*$")


class Atom(BaseModel):
    """Propositional atom, individual or time-point name, or metavariable."""

    model_config = {"frozen": True}
    tag: Literal["atom"] = "atom"
    symbol: str

    def __str__(self) -> str:
        return self.symbol


class Constant(BaseModel):
    """The 0-ary constants truth and contradiction."""

    model_config = {"frozen": True}
    tag: Literal["const"] = "const"
    value: Literal["truth", "contradiction"]

    def __str__(self) -> str:
        return self.value


class Compound(BaseModel):
    """Operator application: (operator arg1 arg2 ...)."""

    model_config = {"frozen": True}
    tag: Literal["compound"] = "compound"
    operator: str
    args: tuple[Term, ...] = ()

    def __str__(self) -> str:
        if not self.args:
            return f"({self.operator})"
        return f"({self.operator} {' '.join(str(a) for a in self.args)})"


class Indexed(BaseModel):
    """Temporal judgement: at time point ``time``, ``formula`` holds."""

    model_config = {"frozen": True}
    tag: Literal["at"] = "at"
    time: Atom
    formula: Term

    def __str__(self) -> str:
        return f"(at {self.time} {self.formula})"


class Rel(BaseModel):
    """Relational atom over time points: =, <=, succ, or a disjunction of them."""

    model_config = {"frozen": True}
    tag: Literal["rel"] = "rel"
    relator: Literal["=", "<=", "succ", "or"]
    operands: tuple[RelOperand, ...]

    @model_validator(mode="after")
    def _check_operands(self) -> "Rel":
        if self.relator == "or":
            if len(self.operands) < 2:
                raise ValueError("relational 'or' needs at least two disjuncts")
            if not all(isinstance(op, Rel) for op in self.operands):
                raise ValueError("relational 'or' takes relations as operands")
        else:
            if len(self.operands) != 2:
                raise ValueError(f"relator '{self.relator}' is binary")
            if not all(isinstance(op, Atom) for op in self.operands):
                raise ValueError(f"relator '{self.relator}' takes time points as operands")
        return self

    def __str__(self) -> str:
        return f"({self.relator} {' '.join(str(o) for o in self.operands)})"


class Infer(BaseModel):
    """Pattern-only node: assuming ``locals``, ``goal`` must be derivable."""

    model_config = {"frozen": True}
    tag: Literal["infer"] = "infer"
    locals: tuple[Term, ...]
    goal: Term

    def __str__(self) -> str:
        return f"(infer [{' '.join(str(t) for t in self.locals)}] {self.goal})"


class Placeholder(BaseModel):
    """Tree marker for a derivation that is not supplied yet."""

    model_config = {"frozen": True}
    tag: Literal["placeholder"] = "placeholder"

    def __str__(self) -> str:
        return "..."


Term = Annotated[
    Union[
        Annotated[Atom, Tag("atom")],
        Annotated[Constant, Tag("const")],
        Annotated[Compound, Tag("compound")],
        Annotated[Indexed, Tag("at")],
        Annotated[Rel, Tag("rel")],
    ],
    Discriminator("tag"),
]

RelOperand = Annotated[
    Union[
        Annotated[Atom, Tag("atom")],
        Annotated[Rel, Tag("rel")],
    ],
    Discriminator("tag"),
]

Pattern = Annotated[
    Union[
        Annotated[Atom, Tag("atom")],
        Annotated[Constant, Tag("const")],
        Annotated[Compound, Tag("compound")],
        Annotated[Indexed, Tag("at")],
        Annotated[Rel, Tag("rel")],
        Annotated[Infer, Tag("infer")],
    ],
    Discriminator("tag"),
]

TermNode = Union[Atom, Constant, Compound, Indexed, Rel]
PatternNode = Union[Atom, Constant, Compound, Indexed, Rel, Infer]

# Rebuild models now that the unions are defined (forward references)
Compound.model_rebuild()
Indexed.model_rebuild()
Rel.model_rebuild()
Infer.model_rebuild()

TRUTH = Constant(value="truth")
CONTRADICTION = Constant(value="contradiction")


def is_formula_metavariable(symbol: str) -> bool:
    return bool(_FORMULA_METAVARIABLE.match(symbol))


def is_term_metavariable(symbol: str) -> bool:
    return bool(_TERM_METAVARIABLE.match(symbol))


def is_metavariable(term: object) -> bool:
    """Whether ``term`` is an atom named by the metavariable convention."""
    return isinstance(term, Atom) and (
        is_formula_metavariable(term.symbol) or is_term_metavariable(term.symbol)
    )


def equals(a: PatternNode, b: PatternNode) -> bool:
    """Structural equality with multiset comparison for and/or operands."""
    if type(a) is not type(b):
        return False
    if isinstance(a, Compound):
        if a.operator != b.operator or len(a.args) != len(b.args):
            return False
        if a.operator in COMMUTATIVE_OPERATORS:
            return _pair_up(a.args, b.args)
        return all(equals(x, y) for x, y in zip(a.args, b.args))
    if isinstance(a, Rel):
        if a.relator != b.relator or len(a.operands) != len(b.operands):
            return False
        if a.relator == "or":
            return _pair_up(a.operands, b.operands)
        return all(equals(x, y) for x, y in zip(a.operands, b.operands))
    if isinstance(a, Indexed):
        return equals(a.time, b.time) and equals(a.formula, b.formula)
    if isinstance(a, Infer):
        return (
            len(a.locals) == len(b.locals)
            and all(equals(x, y) for x, y in zip(a.locals, b.locals))
            and equals(a.goal, b.goal)
        )
    return a == b


def _pair_up(xs: tuple, ys: tuple) -> bool:
    if not xs:
        return not ys
    head, rest = xs[0], xs[1:]
    for k, y in enumerate(ys):
        if equals(head, y) and _pair_up(rest, ys[:k] + ys[k + 1:]):
            return True
    return False


def iter_atoms(pattern: PatternNode) -> Iterator[Atom]:
    """All atoms in ``pattern``, depth-first, binders included."""
    if isinstance(pattern, Atom):
        yield pattern
    elif isinstance(pattern, Compound):
        for arg in pattern.args:
            yield from iter_atoms(arg)
    elif isinstance(pattern, Indexed):
        yield pattern.time
        yield from iter_atoms(pattern.formula)
    elif isinstance(pattern, Rel):
        for op in pattern.operands:
            yield from iter_atoms(op)
    elif isinstance(pattern, Infer):
        for loc in pattern.locals:
            yield from iter_atoms(loc)
        yield from iter_atoms(pattern.goal)


def metavariables(pattern: PatternNode) -> set[str]:
    return {a.symbol for a in iter_atoms(pattern) if is_metavariable(a)}


def free_names(pattern: PatternNode) -> set[str]:
    """Atom symbols not bound by an enclosing forall/exists."""
    if isinstance(pattern, Atom):
        return {pattern.symbol}
    if isinstance(pattern, Compound):
        if pattern.operator in BINDERS and pattern.args and isinstance(pattern.args[0], Atom):
            bound = pattern.args[0].symbol
            names: set[str] = set()
            for arg in pattern.args[1:]:
                names |= free_names(arg)
            return names - {bound}
        names = set()
        for arg in pattern.args:
            names |= free_names(arg)
        return names
    if isinstance(pattern, Indexed):
        return {pattern.time.symbol} | free_names(pattern.formula)
    if isinstance(pattern, Rel):
        names = set()
        for op in pattern.operands:
            names |= free_names(op)
        return names
    if isinstance(pattern, Infer):
        names = free_names(pattern.goal)
        for loc in pattern.locals:
            names |= free_names(loc)
        return names
    return set()


def contains_substitution(pattern: PatternNode) -> bool:
    if isinstance(pattern, Compound):
        return pattern.operator == SUBSTITUTION_OPERATOR or any(
            contains_substitution(a) for a in pattern.args
        )
    if isinstance(pattern, Indexed):
        return contains_substitution(pattern.formula)
    if isinstance(pattern, Infer):
        return contains_substitution(pattern.goal) or any(
            contains_substitution(loc) for loc in pattern.locals
        )
    return False


def compound(operator: str, args: tuple[PatternNode, ...]) -> PatternNode:
    """Build a compound node; an 'or' over relations becomes a relational disjunction."""
    if operator == "or" and len(args) >= 2 and all(isinstance(a, Rel) for a in args):
        return Rel(relator="or", operands=args)
    return Compound(operator=operator, args=args)


def substitute_free(formula: TermNode, name: str, replacement: TermNode) -> TermNode:
    """Replace free occurrences of the atom ``name`` in ``formula``.

    Stops below a quantifier that rebinds ``name``. Time-point positions are
    only rewritten when the replacement is itself an atom.
    """
    if isinstance(formula, Atom):
        return replacement if formula.symbol == name else formula
    if isinstance(formula, Compound):
        if (
            formula.operator in BINDERS
            and formula.args
            and isinstance(formula.args[0], Atom)
            and formula.args[0].symbol == name
        ):
            return formula
        return compound(
            formula.operator,
            tuple(substitute_free(a, name, replacement) for a in formula.args),
        )
    if isinstance(formula, Indexed):
        time = formula.time
        if time.symbol == name and isinstance(replacement, Atom):
            time = replacement
        return Indexed(time=time, formula=substitute_free(formula.formula, name, replacement))
    if isinstance(formula, Rel):
        operands = []
        for op in formula.operands:
            if isinstance(op, Atom):
                operands.append(
                    replacement if op.symbol == name and isinstance(replacement, Atom) else op
                )
            else:
                operands.append(substitute_free(op, name, replacement))
        return Rel(relator=formula.relator, operands=tuple(operands))
    return formula


def _closed(pattern: PatternNode, substitution: dict[str, TermNode]) -> bool:
    return metavariables(pattern) <= substitution.keys()


def instantiate(pattern: PatternNode, substitution: dict[str, TermNode]) -> PatternNode:
    """Apply ``substitution`` to ``pattern``.

    Unbound metavariables stay in place. A substitution meta-term is
    evaluated once its formula and variable arguments are bound.
    """
    if isinstance(pattern, Atom):
        if pattern.symbol in substitution and is_metavariable(pattern):
            return substitution[pattern.symbol]
        return pattern
    if isinstance(pattern, Compound):
        if pattern.operator == SUBSTITUTION_OPERATOR and len(pattern.args) == 3:
            formula, var, replacement = pattern.args
            if _closed(formula, substitution) and _closed(var, substitution):
                target = instantiate(var, substitution)
                if isinstance(target, Atom):
                    return substitute_free(
                        instantiate(formula, substitution),
                        target.symbol,
                        instantiate(replacement, substitution),
                    )
        return compound(
            pattern.operator,
            tuple(instantiate(a, substitution) for a in pattern.args),
        )
    if isinstance(pattern, Indexed):
        return Indexed(
            time=instantiate(pattern.time, substitution),
            formula=instantiate(pattern.formula, substitution),
        )
    if isinstance(pattern, Rel):
        return Rel(
            relator=pattern.relator,
            operands=tuple(instantiate(op, substitution) for op in pattern.operands),
        )
    if isinstance(pattern, Infer):
        return Infer(
            locals=tuple(instantiate(loc, substitution) for loc in pattern.locals),
            goal=instantiate(pattern.goal, substitution),
        )
    return pattern


def disjuncts(term: TermNode) -> tuple[TermNode, ...]:
    """Operands of a formula or relational disjunction, else ``()``."""
    if isinstance(term, Compound) and term.operator == "or":
        return term.args
    if isinstance(term, Rel) and term.relator == "or":
        return term.operands
    return ()
