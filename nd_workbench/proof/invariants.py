"""Whole-proof checks: completeness, placeholders, premises, references.

Each check_* function returns a list of violation strings (empty when the
proof is fine). check_proof and check_complete raise instead.
"""

from __future__ import annotations

from typing import Sequence

from nd_workbench.core.errors import IncompleteProof, Position, ScopeViolation
from nd_workbench.proof.tree import (
    ASSUMPTION,
    PREMISE,
    ElementNode,
    Proof,
    ProofLine,
    Subproof,
    iter_lines,
    numbered_lines,
    reference_violations,
)


def unproved_positions(proof: Proof) -> list[Position]:
    """1-based positions of the lines still lacking a justification.

    A subproof with nothing but unproved lines after its assumptions is
    reported once, as its (first, last) position span.
    """
    numbers = {ln.id: pos for pos, ln in numbered_lines(proof)}
    return _unproved(proof.items, numbers)


def _unproved(items: Sequence[ElementNode], numbers: dict[int, int]) -> list[Position]:
    found: list[Position] = []
    for el in items:
        if isinstance(el, Subproof):
            body = [
                ln for ln in iter_lines(el.items)
                if not ln.is_placeholder and ln.justification != ASSUMPTION
            ]
            if body and all(ln.is_unproved for ln in body):
                first, last = el.span
                found.append((numbers[first], numbers[last]))
            else:
                found.extend(_unproved(el.items, numbers))
        elif el.is_unproved:
            found.append(numbers[el.id])
    return found


def is_complete(proof: Proof) -> bool:
    return not any(ln.is_unproved for ln in iter_lines(proof.items))


def check_complete(proof: Proof) -> None:
    """Raise IncompleteProof listing the unproved positions."""
    positions = unproved_positions(proof)
    if positions:
        raise IncompleteProof(positions)


def check_placeholders(proof: Proof) -> list[str]:
    """Every unproved line has exactly one placeholder in front, and no other placeholders exist."""
    violations: list[str] = []
    _check_placeholder_scope(proof.items, violations)
    return violations


def _check_placeholder_scope(items: Sequence[ElementNode], violations: list[str]) -> None:
    for k, el in enumerate(items):
        if isinstance(el, Subproof):
            _check_placeholder_scope(el.items, violations)
            continue
        prev = items[k - 1] if k > 0 else None
        nxt = items[k + 1] if k + 1 < len(items) else None
        if el.is_placeholder:
            if not (isinstance(nxt, ProofLine) and nxt.is_unproved):
                violations.append(f"Placeholder {el.id} is not followed by an unproved line")
        elif el.is_unproved:
            if not (isinstance(prev, ProofLine) and prev.is_placeholder):
                violations.append(f"Unproved line {el.id} has no placeholder in front")


def check_premises(proof: Proof) -> list[str]:
    """Premises form a prefix of the top level; assumptions only open subproofs."""
    violations: list[str] = []
    in_prefix = True
    for el in proof.items:
        if isinstance(el, ProofLine) and el.justification == PREMISE:
            if not in_prefix:
                violations.append(f"Premise {el.id} follows a non-premise line")
        elif isinstance(el, ProofLine) and el.is_placeholder:
            continue
        else:
            in_prefix = False
        if isinstance(el, ProofLine) and el.justification == ASSUMPTION:
            violations.append(f"Assumption {el.id} outside a subproof")

    for el in proof.items:
        if isinstance(el, Subproof):
            _check_subproof_assumptions(el, violations)

    conclusion = proof.items[-1] if proof.items else None
    if not isinstance(conclusion, ProofLine):
        violations.append("The last top-level element is not a line")
    elif conclusion.justification == PREMISE:
        violations.append("The proof has no conclusion line")
    return violations


def _check_subproof_assumptions(sub: Subproof, violations: list[str]) -> None:
    opening = True
    for el in sub.items:
        if isinstance(el, Subproof):
            opening = False
            _check_subproof_assumptions(el, violations)
            continue
        if el.justification == PREMISE:
            violations.append(f"Premise {el.id} inside a subproof")
        if el.justification == ASSUMPTION:
            if not opening:
                violations.append(f"Assumption {el.id} does not open its subproof")
        elif not el.is_placeholder:
            opening = False


def validate_proof(proof: Proof) -> list[str]:
    """All structural checks combined."""
    return reference_violations(proof) + check_placeholders(proof) + check_premises(proof)


def check_proof(proof: Proof) -> None:
    """Raise ScopeViolation when validate_proof finds anything."""
    violations = validate_proof(proof)
    if violations:
        raise ScopeViolation(violations)
