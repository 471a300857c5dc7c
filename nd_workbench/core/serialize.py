"""Compact data form for terms and patterns, plus JSON file helpers.

The compact form is what rule catalogs and theorem files contain:

  "A", "phi"                   -> Atom
  "truth", "contradiction"     -> Constant
  ["and", "phi", "psi"]        -> Compound
  ["at", "i", "phi"]           -> Indexed
  ["<=", "i", "j"]             -> Rel (also "=", "succ")
  ["or", ["<=", "i", "j"], ...] -> Rel("or") when every operand is a relation
  {"infer": [...], "goal": g}  -> Infer
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from nd_workbench.core.terms import (
    CONTRADICTION_SYMBOL,
    TRUTH_SYMBOL,
    Atom,
    Compound,
    Constant,
    Indexed,
    Infer,
    PatternNode,
    Rel,
    TermNode,
    compound,
)

_BINARY_RELATORS = frozenset({"=", "<=", "succ"})


def term_from_data(data: Any) -> TermNode:
    """Decode a term (no Infer) from its compact data form.

    Raises ValueError on malformed input.
    """
    term = pattern_from_data(data)
    if isinstance(term, Infer):
        raise ValueError("'infer' is only allowed at the top of a given/extra pattern")
    return term


def pattern_from_data(data: Any) -> PatternNode:
    """Decode a pattern from its compact data form.

    Raises ValueError on malformed input.
    """
    if isinstance(data, str):
        if not data:
            raise ValueError("empty symbol")
        if data in (TRUTH_SYMBOL, CONTRADICTION_SYMBOL):
            return Constant(value=data)
        return Atom(symbol=data)
    if isinstance(data, dict):
        if set(data) != {"infer", "goal"}:
            raise ValueError(f"expected keys 'infer' and 'goal', got {sorted(data)}")
        locals_ = data["infer"]
        if not isinstance(locals_, list):
            locals_ = [locals_]
        return Infer(
            locals=tuple(term_from_data(x) for x in locals_),
            goal=term_from_data(data["goal"]),
        )
    if isinstance(data, list):
        if not data or not isinstance(data[0], str):
            raise ValueError(f"compound must start with an operator symbol: {data!r}")
        op, raw_args = data[0], data[1:]
        if op == "at":
            if len(raw_args) != 2 or not isinstance(raw_args[0], str):
                raise ValueError(f"expected [\"at\", time, formula]: {data!r}")
            return Indexed(time=Atom(symbol=raw_args[0]), formula=term_from_data(raw_args[1]))
        args = tuple(term_from_data(a) for a in raw_args)
        if op in _BINARY_RELATORS:
            if len(args) != 2 or not all(isinstance(a, Atom) for a in args):
                raise ValueError(f"relator '{op}' takes two time points: {data!r}")
            return Rel(relator=op, operands=args)
        return compound(op, args)
    raise ValueError(f"cannot decode term from {type(data).__name__}: {data!r}")


def pattern_to_data(pattern: PatternNode) -> Any:
    """Encode a term or pattern into the compact data form."""
    if isinstance(pattern, Atom):
        return pattern.symbol
    if isinstance(pattern, Constant):
        return pattern.value
    if isinstance(pattern, Compound):
        return [pattern.operator, *(pattern_to_data(a) for a in pattern.args)]
    if isinstance(pattern, Indexed):
        return ["at", pattern.time.symbol, pattern_to_data(pattern.formula)]
    if isinstance(pattern, Rel):
        return [pattern.relator, *(pattern_to_data(o) for o in pattern.operands)]
    if isinstance(pattern, Infer):
        return {
            "infer": [pattern_to_data(x) for x in pattern.locals],
            "goal": pattern_to_data(pattern.goal),
        }
    raise TypeError(f"not a term: {pattern!r}")


def term_to_data(term: TermNode) -> Any:
    return pattern_to_data(term)


def export_dict(data: dict, path: str | Path) -> None:
    """Write a dict as JSON, replacing the file wholesale."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")


def import_dict(path: str | Path) -> Any:
    """Read a JSON file."""
    path = Path(path)
    return json.loads(path.read_text(encoding="utf-8"))
