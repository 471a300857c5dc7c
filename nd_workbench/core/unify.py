"""One-sided unification of rule patterns against concrete proof content.

match(pattern, term, theta) walks pattern and term in lock-step and returns
the extended substitution, or None when they do not unify. Only the
pattern's metavariables are variables; everything in the term is rigid.

Substitutions are never mutated in place: every binding produces a new
dict, so a failed branch during backtracking leaves its caller's
substitution untouched.
"""

from __future__ import annotations

from typing import Iterable, Sequence

from nd_workbench.core.terms import (
    COMMUTATIVE_OPERATORS,
    SUBSTITUTION_OPERATOR,
    Atom,
    Compound,
    Constant,
    Indexed,
    Infer,
    PatternNode,
    Rel,
    TermNode,
    contains_substitution,
    equals,
    instantiate,
    is_metavariable,
    is_term_metavariable,
    metavariables,
)

# Type alias for substitution
Substitution = dict[str, TermNode]


def match(
    pattern: PatternNode,
    term: TermNode,
    theta: Substitution | None = None,
) -> Substitution | None:
    """Match ``pattern`` against ``term`` extending ``theta``.

    Returns the extended substitution, or None if they do not unify.
    Infer patterns never match a term; they describe a subproof and are
    handled by the deduction driver.

    Example:
        # (and phi psi) against (and B A): operands are tried in declared
        # order first, so the result is {"phi": B, "psi": A}
        p = pattern_from_data(["and", "phi", "psi"])
        t = term_from_data(["and", "B", "A"])
        theta = match(p, t)
    """
    if theta is None:
        theta = {}

    if isinstance(pattern, Infer):
        return None

    if is_metavariable(pattern):
        return _match_metavariable(pattern, term, theta)

    if isinstance(pattern, Atom):
        if isinstance(term, Atom) and term.symbol == pattern.symbol:
            return theta
        return None

    if isinstance(pattern, Constant):
        return theta if pattern == term else None

    if isinstance(pattern, Compound):
        if pattern.operator == SUBSTITUTION_OPERATOR:
            return _match_substitution(pattern, term, theta)
        # A formula disjunction pattern also covers a disjunction of relations
        if pattern.operator == "or" and isinstance(term, Rel) and term.relator == "or":
            if len(term.operands) != len(pattern.args):
                return None
            return _match_permuted(pattern.args, term.operands, theta)
        if not isinstance(term, Compound):
            return None
        if term.operator != pattern.operator or len(term.args) != len(pattern.args):
            return None
        if pattern.operator in COMMUTATIVE_OPERATORS:
            return _match_permuted(pattern.args, term.args, theta)
        return _match_sequence(pattern.args, term.args, theta)

    if isinstance(pattern, Indexed):
        if not isinstance(term, Indexed):
            return None
        theta = match(pattern.time, term.time, theta)
        if theta is None:
            return None
        return match(pattern.formula, term.formula, theta)

    if isinstance(pattern, Rel):
        if not isinstance(term, Rel):
            return None
        if pattern.relator == "or":
            return _match_disjunction(pattern, term, theta)
        if term.relator != pattern.relator or len(term.operands) != len(pattern.operands):
            return None
        return _match_sequence(pattern.operands, term.operands, theta)

    return None


def _match_metavariable(var: Atom, term: TermNode, theta: Substitution) -> Substitution | None:
    """Bind ``var`` or check consistency with its existing binding."""
    bound = theta.get(var.symbol)
    if bound is not None:
        return theta if equals(bound, term) else None

    # Time points and individuals never stand for formulas
    if is_term_metavariable(var.symbol) and not isinstance(term, (Atom, Compound)):
        return None

    theta = dict(theta)
    theta[var.symbol] = term
    return theta


def _match_sequence(
    patterns: Sequence[PatternNode],
    terms: Sequence[TermNode],
    theta: Substitution,
) -> Substitution | None:
    for p, t in zip(patterns, terms):
        theta = match(p, t, theta)
        if theta is None:
            return None
    return theta


def _match_permuted(
    patterns: Sequence[PatternNode],
    terms: Sequence[TermNode],
    theta: Substitution,
) -> Substitution | None:
    """Match operands up to permutation, declared order tried first."""
    if not patterns:
        return theta if not terms else None
    head, rest = patterns[0], patterns[1:]
    for k, t in enumerate(terms):
        extended = match(head, t, theta)
        if extended is None:
            continue
        result = _match_permuted(rest, tuple(terms[:k]) + tuple(terms[k + 1:]), extended)
        if result is not None:
            return result
    return None


def _match_disjunction(pattern: Rel, term: Rel, theta: Substitution) -> Substitution | None:
    """A relational disjunction matches the same disjunction or any one disjunct."""
    if term.relator == "or" and len(term.operands) == len(pattern.operands):
        result = _match_permuted(pattern.operands, term.operands, theta)
        if result is not None:
            return result
    for disjunct in pattern.operands:
        result = match(disjunct, term, theta)
        if result is not None:
            return result
    return None


def _match_substitution(pattern: Compound, term: TermNode, theta: Substitution) -> Substitution | None:
    """Evaluate (substitution phi x t) once everything is bound, then compare."""
    if not metavariables(pattern) <= theta.keys():
        return None
    value = instantiate(pattern, theta)
    return theta if equals(value, term) else None


def match_all(
    pairs: Iterable[tuple[PatternNode, TermNode]],
    theta: Substitution | None = None,
) -> Substitution | None:
    """Match several pattern/term pairs under one substitution.

    Pairs whose pattern contains a substitution meta-term are matched last
    so that their arguments are bound by the others first.
    """
    if theta is None:
        theta = {}
    ordered = sorted(pairs, key=lambda pair: contains_substitution(pair[0]))
    for p, t in ordered:
        theta = match(p, t, theta)
        if theta is None:
            return None
    return theta
