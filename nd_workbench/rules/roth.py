"""Rules and theorems ("roths") and their compiled application structures.

A roth is data: given/extra premise patterns and conclusion patterns. It is
compiled once into two read-only structures:

  ForwardStructure   inputs (given + extra) -> outputs
  BackwardStructure  goal -> obligations (one per given/extra pattern)

Both are deterministic functions of the roth; instantiating them with a
substitution gives the concrete lines to add to a proof.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Union

from pydantic import BaseModel

from nd_workbench.core.terms import (
    Infer,
    Pattern,
    PatternNode,
    Term,
    TermNode,
    instantiate,
    metavariables,
)
from nd_workbench.core.unify import Substitution
from nd_workbench.proof.tree import Proof

RULE = "rule"
THEOREM = "theorem"


class Roth(BaseModel):
    """A rule or theorem.

    Theorems carry the completed proof they were exported from; otherwise
    they are used exactly like rules.
    """

    model_config = {"frozen": True}
    id: str
    kind: Literal["rule", "theorem"] = RULE
    given: tuple[Pattern, ...] = ()
    extra: tuple[Pattern, ...] = ()
    conclusion: tuple[Term, ...]
    logic: str | None = None
    proof: Proof | None = None

    @property
    def premises(self) -> tuple[PatternNode, ...]:
        return self.given + self.extra

    @property
    def is_theorem(self) -> bool:
        return self.kind == THEOREM

    def metavariables(self) -> set[str]:
        names: set[str] = set()
        for p in (*self.premises, *self.conclusion):
            names |= metavariables(p)
        return names


@dataclass(frozen=True)
class ForwardStructure:
    """Given lines matching ``inputs``, the roth yields ``outputs``."""

    roth_id: str
    inputs: tuple[PatternNode, ...]
    outputs: tuple[TermNode, ...]

    def conclusions(self, theta: Substitution) -> list[TermNode]:
        """Instantiate the outputs; unbound metavariables stay in place."""
        return [instantiate(o, theta) for o in self.outputs]


@dataclass(frozen=True)
class LineObligation:
    """A single line that must be derived."""

    pattern: PatternNode


@dataclass(frozen=True)
class ScopeObligation:
    """A subproof: assuming ``locals``, derive ``goal``."""

    locals: tuple[PatternNode, ...]
    goal: PatternNode


Obligation = Union[LineObligation, ScopeObligation]


@dataclass(frozen=True)
class BackwardStructure:
    """To establish ``goal`` with the roth, discharge ``obligations``.

    ``goal`` is None when the roth has several conclusions; such roths are
    only applicable forward.
    """

    roth_id: str
    goal: TermNode | None
    obligations: tuple[Obligation, ...]

    @property
    def is_applicable(self) -> bool:
        return self.goal is not None

    def decompose(self, theta: Substitution) -> list[Obligation]:
        """Instantiate every obligation with ``theta``."""
        out: list[Obligation] = []
        for ob in self.obligations:
            if isinstance(ob, ScopeObligation):
                out.append(ScopeObligation(
                    locals=tuple(instantiate(x, theta) for x in ob.locals),
                    goal=instantiate(ob.goal, theta),
                ))
            else:
                out.append(LineObligation(pattern=instantiate(ob.pattern, theta)))
        return out


def compile_forward(roth: Roth) -> ForwardStructure:
    return ForwardStructure(
        roth_id=roth.id,
        inputs=tuple(roth.premises),
        outputs=tuple(roth.conclusion),
    )


def compile_backward(roth: Roth) -> BackwardStructure:
    goal = roth.conclusion[0] if len(roth.conclusion) == 1 else None
    obligations: list[Obligation] = []
    for p in roth.premises:
        if isinstance(p, Infer):
            obligations.append(ScopeObligation(locals=p.locals, goal=p.goal))
        else:
            obligations.append(LineObligation(pattern=p))
    return BackwardStructure(roth_id=roth.id, goal=goal, obligations=tuple(obligations))
