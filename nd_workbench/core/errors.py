"""Error taxonomy for the proof engine.

Matching itself never raises (see core/unify.py); these exceptions are
raised by the tree primitives, the driver and the definition loader.
"""

from __future__ import annotations

from typing import Union

Position = Union[int, tuple[int, int]]


class ProofError(Exception):
    """Base class for all engine errors."""


class MatchFailure(ProofError):
    """A rule cannot be applied to the chosen lines.

    Internal control-flow signal: the driver consumes it silently when it
    enumerates candidate rules.
    """

    def __init__(self, roth_id: str, reason: str) -> None:
        self.roth_id = roth_id
        self.reason = reason
        super().__init__(f"Rule '{roth_id}' does not apply: {reason}")


class ScopeViolation(ProofError):
    """A reference is out of scope, dangling, or would become dangling."""

    def __init__(self, violations: list[str]) -> None:
        self.violations = list(violations)
        super().__init__("Scope violation:\n" + "\n".join(self.violations))


class IncompleteProof(ProofError):
    """Export attempted while lines are still unproved."""

    def __init__(self, positions: list[Position]) -> None:
        self.positions = list(positions)
        shown = " ".join(
            f"[{p[0]} {p[1]}]" if isinstance(p, tuple) else str(p)
            for p in self.positions
        )
        super().__init__(f"There are still unproved lines inside the proof ({shown})")


class RegistryConflict(ProofError):
    """A rule or theorem id is already registered."""

    def __init__(self, roth_id: str) -> None:
        self.roth_id = roth_id
        super().__init__(f"There is already a theorem or rule with id '{roth_id}'")


class InvalidDefinition(ProofError):
    """A rule/theorem record failed the structural schema."""

    def __init__(
        self,
        message: str,
        index: int | None = None,
        roth_id: str | None = None,
        field: str | None = None,
    ) -> None:
        self.index = index
        self.roth_id = roth_id
        self.field = field
        where = []
        if index is not None:
            where.append(f"record {index}")
        if roth_id:
            where.append(f"id '{roth_id}'")
        if field:
            where.append(f"field '{field}'")
        prefix = ", ".join(where)
        super().__init__(f"{prefix}: {message}" if prefix else message)


class NotFound(ProofError, KeyError):
    """No element with the given line id exists in the proof."""

    def __init__(self, line_id: int) -> None:
        self.line_id = line_id
        ProofError.__init__(self, f"No proof line with id {line_id}")

    def __str__(self) -> str:
        return f"No proof line with id {self.line_id}"


class UnknownRoth(ProofError, KeyError):
    """No rule or theorem with the given id is registered."""

    def __init__(self, roth_id: str) -> None:
        self.roth_id = roth_id
        ProofError.__init__(self, f"Unknown rule or theorem '{roth_id}'")

    def __str__(self) -> str:
        return f"Unknown rule or theorem '{self.roth_id}'"
