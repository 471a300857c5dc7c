"""Text and Rich rendering of proofs and roths."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from nd_workbench.core.serialize import pattern_to_data
from nd_workbench.proof.tree import (
    ElementNode,
    Proof,
    ProofLine,
    Reference,
    Subproof,
    numbered_lines,
)
from nd_workbench.rules.roth import Roth


def _positions(proof: Proof) -> dict[int, int]:
    return {ln.id: pos for pos, ln in numbered_lines(proof)}


def format_reference(ref: Reference, positions: dict[int, int]) -> str:
    """A reference in line positions: ``3`` or ``4-6`` for a subproof."""
    if isinstance(ref, tuple):
        return f"{positions.get(ref[0], '?')}-{positions.get(ref[1], '?')}"
    return str(positions.get(ref, "?"))


def format_justification(line: ProofLine, positions: dict[int, int]) -> str:
    if line.justification is None:
        return ""
    if not line.references:
        return line.justification
    refs = " ".join(format_reference(r, positions) for r in line.references)
    return f"{line.justification} [{refs}]"


def _rows(items: tuple[ElementNode, ...], depth: int, positions: dict[int, int]) -> list[tuple[str, str, str]]:
    rows: list[tuple[str, str, str]] = []
    for el in items:
        if isinstance(el, Subproof):
            rows.extend(_rows(el.items, depth + 1, positions))
            continue
        number = "" if el.is_placeholder else str(positions[el.id])
        rows.append((number, "| " * depth + str(el.content), format_justification(el, positions)))
    return rows


def render_proof(proof: Proof) -> str:
    """Plain-text proof, one line per row, subproofs marked by ``|`` bars."""
    positions = _positions(proof)
    rows = _rows(proof.items, 0, positions)
    if not rows:
        return ""
    num_width = max(len(r[0]) for r in rows)
    body_width = max(len(r[1]) for r in rows)
    out = []
    for number, body, why in rows:
        prefix = f"{number:>{num_width}}: " if number else " " * (num_width + 2)
        out.append(f"{prefix}{body:<{body_width}}  {why}".rstrip())
    return "\n".join(out)


def proof_table(proof: Proof, title: str | None = None) -> Table:
    positions = _positions(proof)
    table = Table(title=title)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Formula")
    table.add_column("Justification", style="cyan")
    for number, body, why in _rows(proof.items, 0, positions):
        style = "dim" if not number else ("yellow" if not why else None)
        table.add_row(number, escape(body), escape(why), style=style)
    return table


def render_proof_table(proof: Proof, title: str | None = None, console: Console | None = None) -> None:
    """Print a proof as a Rich table; unproved lines in yellow."""
    if console is None:
        console = Console()
    console.print(proof_table(proof, title=title))


def format_roth(roth: Roth) -> str:
    """One-line summary: ``and-i: phi, psi => (and phi psi)``."""
    premises = ", ".join(str(p) for p in roth.premises)
    conclusions = ", ".join(str(c) for c in roth.conclusion)
    return f"{roth.id}: {premises} => {conclusions}" if premises else f"{roth.id}: => {conclusions}"


def roth_table(roths: list[Roth], title: str = "Rules and theorems") -> Table:
    table = Table(title=title)
    table.add_column("Id", style="bold")
    table.add_column("Kind")
    table.add_column("Logic", style="dim")
    table.add_column("Given")
    table.add_column("Conclusion")
    for roth in roths:
        table.add_row(
            escape(roth.id),
            roth.kind,
            roth.logic or "",
            escape("\n".join(str(p) for p in roth.premises)),
            escape("\n".join(str(c) for c in roth.conclusion)),
        )
    return table


def render_roth_table(roths: list[Roth], console: Console | None = None) -> None:
    if console is None:
        console = Console()
    console.print(roth_table(roths))


def roth_to_json(roth: Roth) -> dict:
    """JSON-serializable summary of a roth."""
    return {
        "id": roth.id,
        "kind": roth.kind,
        "logic": roth.logic,
        "given": [pattern_to_data(p) for p in roth.given],
        "extra": [pattern_to_data(p) for p in roth.extra],
        "conclusion": [pattern_to_data(c) for c in roth.conclusion],
    }
