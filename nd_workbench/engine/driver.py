"""Deduction driver: applies rules and theorems to a proof.

Forward steps reason from existing lines ("what follows"), backward steps
from an unproved goal ("what is still needed"). Both fetch the compiled
structure of a roth from the registry, match it against lines visible at
the target, and apply the outcome through the tree primitives. Every
function returns a new Proof.

Premises and subproofs are named by line id; an Infer input takes the id
of the first line of a subproof.
"""

from __future__ import annotations

import logging
from typing import Sequence

from nd_workbench.core.errors import MatchFailure, ScopeViolation
from nd_workbench.core.terms import (
    Atom,
    Compound,
    Infer,
    PatternNode,
    Rel,
    TermNode,
    disjuncts,
    instantiate,
    iter_atoms,
    is_metavariable,
    is_term_metavariable,
)
from nd_workbench.core.unify import Substitution, match_all
from nd_workbench.proof.invariants import check_complete
from nd_workbench.proof.tree import (
    ASSUMPTION,
    PREMISE,
    ElementNode,
    IdAllocator,
    Proof,
    ProofLine,
    Reference,
    Subproof,
    get_line,
    insert_at,
    insert_before,
    iter_lines,
    line_number,
    locate,
    locate_subproof,
    map_lines,
    normalize_placeholders,
    replace,
    subproof_starting_at,
    visible_references,
)
from nd_workbench.rules.registry import Registry
from nd_workbench.rules.roth import (
    THEOREM,
    LineObligation,
    Obligation,
    Roth,
    ScopeObligation,
)

logger = logging.getLogger(__name__)

CASES = "rel-cases"
OR_ELIMINATION = "or-e"

Pairs = list[tuple[PatternNode, TermNode]]


# ── Premise resolution ────────────────────────────────────────────


def _premise_pairs(
    proof: Proof,
    roth_id: str,
    pattern: PatternNode,
    line_id: int,
) -> tuple[Pairs, Reference]:
    """Pattern/term pairs for one premise, and the reference that cites it."""
    if isinstance(pattern, Infer):
        sub = subproof_starting_at(proof, line_id)
        if sub is None:
            raise MatchFailure(roth_id, f"line {line_id} does not open a subproof")
        lines = [ln for ln in iter_lines(sub.items) if not ln.is_placeholder]
        assumptions = [ln for ln in sub.items if isinstance(ln, ProofLine) and ln.justification == ASSUMPTION]
        if len(assumptions) != len(pattern.locals):
            raise MatchFailure(
                roth_id,
                f"subproof at {line_id} opens {len(assumptions)} assumption(s), "
                f"expected {len(pattern.locals)}",
            )
        last = lines[-1]
        if last.is_unproved or last.justification == ASSUMPTION:
            raise MatchFailure(roth_id, f"subproof at {line_id} is not finished")
        pairs: Pairs = [(loc, a.content) for loc, a in zip(pattern.locals, assumptions)]
        pairs.append((pattern.goal, last.content))
        return pairs, sub.span

    line = get_line(proof, line_id)
    if line.is_placeholder:
        raise MatchFailure(roth_id, f"line {line_id} is a placeholder")
    if line.is_unproved:
        raise MatchFailure(roth_id, f"line {line_id} is not justified yet")
    return [(pattern, line.content)], line_id


def _check_visible(proof: Proof, line_id: int, references: Sequence[Reference]) -> None:
    visible = visible_references(proof, line_id)
    bad = [r for r in references if r not in visible]
    if bad:
        raise ScopeViolation([f"Line {line_id}: {r} is not visible here" for r in bad])


def _unproved_line(proof: Proof, roth_id: str, line_id: int) -> ProofLine:
    line = get_line(proof, line_id)
    if line.is_placeholder:
        raise MatchFailure(roth_id, f"line {line_id} is a placeholder")
    if line.is_justified:
        raise MatchFailure(roth_id, f"line {line_id} is already justified")
    return line


# ── Fresh metavariables ───────────────────────────────────────────


def _freshen(proof: Proof, roth: Roth, theta: Substitution) -> tuple[Substitution, list[str]]:
    """Bind every metavariable of ``roth`` that ``theta`` leaves open to a fresh name.

    A fresh name keeps the letter of the metavariable and takes a number
    from the proof's id counter, skipping symbols the proof already uses,
    so that binding it later touches only the lines this step added.
    """
    missing = sorted(roth.metavariables() - theta.keys())
    if not missing:
        return theta, []
    used: set[str] = set()
    for ln in iter_lines(proof.items):
        if not ln.is_placeholder:
            used |= _symbols(ln.content)
    theta = dict(theta)
    fresh: list[str] = []
    for name in missing:
        base = name.rstrip("'").rstrip("0123456789")
        k = proof.next_id
        while f"{base}{k}" in used:
            k += 1
        used.add(f"{base}{k}")
        theta[name] = Atom(symbol=f"{base}{k}")
        fresh.append(f"{base}{k}")
    return theta, fresh


def _open(proof: Proof, fresh: Sequence[str]) -> Proof:
    if not fresh:
        return proof
    return proof.model_copy(update={"open_metavariables": proof.open_metavariables + tuple(fresh)})


# ── Forward ───────────────────────────────────────────────────────


def _match_forward(
    proof: Proof,
    registry: Registry,
    roth_id: str,
    premises: Sequence[int],
    target: int | None,
) -> tuple[list[TermNode], list[Reference], list[str]]:
    entry = registry.entry(roth_id)
    forward = entry.forward
    if len(premises) != len(forward.inputs):
        raise MatchFailure(
            roth_id, f"expects {len(forward.inputs)} premise(s), got {len(premises)}"
        )

    pairs: Pairs = []
    if target is not None:
        if len(forward.outputs) != 1:
            raise MatchFailure(roth_id, "a target needs a roth with a single conclusion")
        pairs.append((forward.outputs[0], _unproved_line(proof, roth_id, target).content))

    references: list[Reference] = []
    for pattern, line_id in zip(forward.inputs, premises):
        premise_pairs, ref = _premise_pairs(proof, roth_id, pattern, line_id)
        pairs.extend(premise_pairs)
        references.append(ref)

    theta = match_all(pairs)
    if theta is None:
        raise MatchFailure(roth_id, "premises do not match the rule")
    theta, fresh = _freshen(proof, entry.roth, theta)
    return forward.conclusions(theta), references, fresh


def derive_forward(
    proof: Proof,
    registry: Registry,
    roth_id: str,
    premises: Sequence[int],
    target: int | None = None,
) -> list[TermNode]:
    """What follows from ``premises`` by the roth, without editing the proof."""
    conclusions, _, _ = _match_forward(proof, registry, roth_id, premises, target)
    return conclusions


def apply_forward(
    proof: Proof,
    registry: Registry,
    roth_id: str,
    premises: Sequence[int],
    target: int | None = None,
) -> Proof:
    """Apply a roth forward.

    With ``target`` the unproved target line is justified. Without, the
    conclusions are inserted as new justified lines after the last
    referenced element.
    """
    conclusions, references, fresh = _match_forward(proof, registry, roth_id, premises, target)

    if target is not None:
        _check_visible(proof, target, references)
        line = get_line(proof, target)
        justified = line.model_copy(update={"justification": roth_id, "references": tuple(references)})
        result = normalize_placeholders(replace(proof, target, justified))
        logger.info("forward %s justified line %d", roth_id, target)
        return result

    ids = IdAllocator(proof.next_id)
    path = _insertion_path(proof, references)
    new_lines = [
        ProofLine(id=ids(), content=c, justification=roth_id, references=tuple(references))
        for c in conclusions
    ]
    result = _open(proof, fresh)
    for offset, ln in enumerate(new_lines):
        result = insert_at(result, path[:-1] + (path[-1] + offset,), ln)
    for ln in new_lines:
        _check_visible(result, ln.id, ln.references)
    result = normalize_placeholders(result)
    logger.info("forward %s added line(s) %s", roth_id, [ln.id for ln in new_lines])
    return result


def _insertion_path(proof: Proof, references: Sequence[Reference]) -> tuple[int, ...]:
    """Path right after the last referenced element, or after the premises."""
    if not references:
        premises = [k for k, el in enumerate(proof.items)
                    if isinstance(el, ProofLine) and el.justification == PREMISE]
        return (premises[-1] + 1 if premises else 0,)

    def end_position(ref: Reference) -> int:
        return line_number(proof, ref[1] if isinstance(ref, tuple) else ref)

    last = max(references, key=end_position)
    if isinstance(last, tuple):
        path = locate_subproof(proof, last[0])
        if path is None:
            raise ValueError(f"no subproof starts at line {last[0]}")
    else:
        path = locate(proof, last)
    return path[:-1] + (path[-1] + 1,)


# ── Backward ──────────────────────────────────────────────────────


def _match_backward(
    proof: Proof,
    registry: Registry,
    roth_id: str,
    goal_id: int,
    premises: Sequence[int | None],
) -> tuple[list[Obligation], list[Reference | None], list[str]]:
    entry = registry.entry(roth_id)
    backward = entry.backward
    if not backward.is_applicable:
        raise MatchFailure(roth_id, "has several conclusions and only applies forward")
    if len(premises) > len(backward.obligations):
        raise MatchFailure(
            roth_id,
            f"expects at most {len(backward.obligations)} premise(s), got {len(premises)}",
        )
    padded = list(premises) + [None] * (len(backward.obligations) - len(premises))

    goal = _unproved_line(proof, roth_id, goal_id)
    pairs: Pairs = [(backward.goal, goal.content)]
    references: list[Reference | None] = []
    for ob, line_id in zip(backward.obligations, padded):
        if line_id is None:
            references.append(None)
            continue
        pattern = Infer(locals=ob.locals, goal=ob.goal) if isinstance(ob, ScopeObligation) else ob.pattern
        premise_pairs, ref = _premise_pairs(proof, roth_id, pattern, line_id)
        pairs.extend(premise_pairs)
        references.append(ref)

    theta = match_all(pairs)
    if theta is None:
        raise MatchFailure(roth_id, f"does not match line {goal_id}")
    _check_visible(proof, goal_id, [r for r in references if r is not None])
    theta, fresh = _freshen(proof, entry.roth, theta)
    return backward.decompose(theta), references, fresh


def derive_backward(
    proof: Proof,
    registry: Registry,
    roth_id: str,
    goal_id: int,
    premises: Sequence[int | None] = (),
) -> list[Obligation]:
    """What is still needed to establish ``goal_id`` by the roth.

    Obligations discharged by ``premises`` are left out.
    """
    obligations, references, _ = _match_backward(proof, registry, roth_id, goal_id, premises)
    return [ob for ob, ref in zip(obligations, references) if ref is None]


def apply_backward(
    proof: Proof,
    registry: Registry,
    roth_id: str,
    goal_id: int,
    premises: Sequence[int | None] = (),
) -> Proof:
    """Justify ``goal_id`` with the roth and add its open obligations.

    Each open line obligation becomes an unproved line and each scope
    obligation a subproof (assumptions, then the unproved subgoal), all
    inserted before the goal in obligation order. ``None`` entries in
    ``premises`` leave the obligation open.
    """
    obligations, references, fresh = _match_backward(proof, registry, roth_id, goal_id, premises)

    ids = IdAllocator(proof.next_id)
    result = _open(proof, fresh)
    cited: list[Reference] = []
    for ob, ref in zip(obligations, references):
        if ref is not None:
            cited.append(ref)
            continue
        element = _obligation_element(ob, ids)
        cited.append(element.span if isinstance(element, Subproof) else element.id)
        result = insert_before(result, goal_id, element)

    goal = get_line(result, goal_id)
    result = replace(
        result,
        goal_id,
        goal.model_copy(update={"justification": roth_id, "references": tuple(cited)}),
    )
    logger.info("backward %s justified line %d", roth_id, goal_id)
    return normalize_placeholders(result)


def _obligation_element(ob: Obligation, ids: IdAllocator) -> ElementNode:
    if isinstance(ob, LineObligation):
        return ProofLine(id=ids(), content=ob.pattern)
    items: list[ElementNode] = [
        ProofLine(id=ids(), content=loc, justification=ASSUMPTION) for loc in ob.locals
    ]
    items.append(ProofLine(id=ids(), content=ob.goal))
    return Subproof(items=tuple(items))


# ── Case splits and disjunct choice ───────────────────────────────


def split_cases(proof: Proof, disjunction_id: int, goal_id: int) -> Proof:
    """Prove ``goal_id`` by cases over a visible disjunction.

    One subproof per disjunct, each assuming the disjunct and ending in an
    unproved copy of the goal. The goal is justified by ``or-e`` for a
    formula disjunction and ``rel-cases`` for a relational one.
    """
    disjunction = get_line(proof, disjunction_id)
    justification = CASES if isinstance(disjunction.content, Rel) else OR_ELIMINATION
    if disjunction.is_placeholder or disjunction.is_unproved:
        raise MatchFailure(justification, f"line {disjunction_id} is not justified yet")
    cases = disjuncts(disjunction.content)
    if not cases:
        raise MatchFailure(justification, f"line {disjunction_id} is not a disjunction")
    goal = _unproved_line(proof, justification, goal_id)
    _check_visible(proof, goal_id, [disjunction_id])

    ids = IdAllocator(proof.next_id)
    result = proof
    references: list[Reference] = [disjunction_id]
    for case in cases:
        sub = Subproof(items=(
            ProofLine(id=ids(), content=case, justification=ASSUMPTION),
            ProofLine(id=ids(), content=goal.content),
        ))
        references.append(sub.span)
        result = insert_before(result, goal_id, sub)

    result = replace(
        result,
        goal_id,
        goal.model_copy(update={"justification": justification, "references": tuple(references)}),
    )
    logger.info("split line %d into %d case(s) for line %d", disjunction_id, len(cases), goal_id)
    return normalize_placeholders(result)


def choose_disjunct(proof: Proof, line_id: int, index: int) -> Proof:
    """Replace an unproved relational disjunction by one of its disjuncts (0-based)."""
    line = get_line(proof, line_id)
    if not line.is_unproved:
        raise ValueError(f"Line {line_id} is not an unproved obligation")
    options = disjuncts(line.content)
    if not isinstance(line.content, Rel) or not options:
        raise ValueError(f"Line {line_id} is not a relational disjunction")
    if not 0 <= index < len(options):
        raise IndexError(f"Line {line_id} has {len(options)} disjuncts, no index {index}")
    return replace(proof, line_id, line.model_copy(update={"content": options[index]}))


# ── Queries and bookkeeping ───────────────────────────────────────


def applicable_rules(proof: Proof, registry: Registry, goal_id: int) -> list[str]:
    """Ids of roths that can be applied backward to ``goal_id``."""
    found = []
    for entry in registry:
        try:
            _match_backward(proof, registry, entry.roth.id, goal_id, ())
        except MatchFailure:
            continue
        found.append(entry.roth.id)
    return found


def instantiate_metavariable(proof: Proof, name: str, term: TermNode) -> Proof:
    """Bind a metavariable left open by a rule step, in every line.

    Only names listed in ``proof.open_metavariables`` can be bound; the
    name is closed afterwards.
    """
    symbol = Atom(symbol=name)
    if not is_metavariable(symbol):
        raise ValueError(f"'{name}' is not a metavariable")
    if name not in proof.open_metavariables:
        raise ValueError(f"'{name}' is not an open metavariable of this proof")
    if is_term_metavariable(name) and not isinstance(term, (Atom, Compound)):
        raise ValueError(f"'{name}' stands for a time point or individual, not {term}")
    mentioned = [
        ln for ln in iter_lines(proof.items)
        if not ln.is_placeholder and name in _symbols(ln.content)
    ]
    if not mentioned:
        raise ValueError(f"No line mentions '{name}'")

    theta: Substitution = {name: term}

    def bind(line: ProofLine) -> ProofLine:
        if line.is_placeholder:
            return line
        return line.model_copy(update={"content": instantiate(line.content, theta)})

    logger.info("instantiated %s := %s in %d line(s)", name, term, len(mentioned))
    result = map_lines(proof, bind)
    still_open = tuple(n for n in proof.open_metavariables if n != name)
    return result.model_copy(update={"open_metavariables": still_open})


def _symbols(term: TermNode) -> set[str]:
    return {a.symbol for a in iter_atoms(term)}


def export_theorem(proof: Proof, roth_id: str) -> Roth:
    """Turn a completed proof into a theorem usable like a rule.

    Raises IncompleteProof while lines are unproved.
    """
    check_complete(proof)
    roth = Roth(
        id=roth_id,
        kind=THEOREM,
        given=tuple(ln.content for ln in proof.premises),
        conclusion=(proof.conclusion.content,),
        proof=proof,
    )
    logger.info("exported theorem '%s'", roth_id)
    return roth
