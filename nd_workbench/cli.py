"""CLI entry point using Typer."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.markup import escape

from nd_workbench.core.errors import ProofError

app = typer.Typer(name="ndw", help="Natural deduction workbench")
rules_app = typer.Typer(help="Rule catalogs and definition files")
app.add_typer(rules_app, name="rules")
theorems_app = typer.Typer(help="Theorem files")
app.add_typer(theorems_app, name="theorems")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log engine events"),
) -> None:
    """Build and check natural deduction proofs."""
    if verbose:
        from rich.logging import RichHandler

        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(show_path=False)],
        )


def _fail(exc: Exception) -> NoReturn:
    Console(stderr=True).print(f"[red]{escape(str(exc))}[/red]")
    raise typer.Exit(code=1)


def _parse_term(text: str):
    """A compact JSON term; a bare word is an atom."""
    from nd_workbench.core.serialize import term_from_data

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        data = text
    return term_from_data(data)


@rules_app.command("list")
def rules_list(
    logic: Optional[str] = typer.Option(None, "--logic", help="Catalog: prop, pred or ltl"),
    theorems: Optional[Path] = typer.Option(None, "--theorems", help="Also load this theorem file"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """List the rules of the built-in catalogs."""
    from nd_workbench.reports.render import render_roth_table, roth_to_json
    from nd_workbench.rules.loader import default_registry, import_theorems

    try:
        registry = default_registry(logic) if logic else default_registry()
        if theorems is not None:
            import_theorems(theorems, registry)
    except (ProofError, ValueError) as exc:
        _fail(exc)

    roths = registry.rules(logic) + registry.theorems()
    if json_output:
        typer.echo(json.dumps([roth_to_json(r) for r in roths], indent=2, ensure_ascii=False))
    else:
        render_roth_table(roths)


@rules_app.command("check")
def rules_check(
    path: Path = typer.Argument(..., help="Definition file (JSON)"),
) -> None:
    """Validate a definition file and report rejected records."""
    from nd_workbench.rules.loader import check_definitions, read_definitions

    console = Console()
    try:
        report = check_definitions(read_definitions(path))
    except ProofError as exc:
        _fail(exc)

    console.print(f"[green]{len(report.loaded)} record(s) valid[/green]")
    for err in report.errors:
        console.print(f"[red]{escape(str(err))}[/red]")
    if not report.ok:
        raise typer.Exit(code=1)


@theorems_app.command("show")
def theorems_show(
    path: Path = typer.Argument(..., help="Theorem file written by an export"),
) -> None:
    """List the theorems of a file with their proofs."""
    from nd_workbench.reports.render import format_roth, render_proof_table
    from nd_workbench.rules.loader import import_theorems
    from nd_workbench.rules.registry import Registry

    console = Console()
    registry = Registry()
    try:
        import_theorems(path, registry)
    except ProofError as exc:
        _fail(exc)

    for roth in registry.theorems():
        console.print(f"[bold]{escape(format_roth(roth))}[/bold]")
        if roth.proof is not None:
            render_proof_table(roth.proof, console=console)


@app.command("prove")
def prove(
    premises: Optional[list[str]] = typer.Argument(None, help="Premises as compact JSON terms"),
    conclusion: str = typer.Option(..., "--conclusion", "-c", help="Conclusion as a compact JSON term"),
) -> None:
    """Start a proof of CONCLUSION from PREMISES and print it."""
    from nd_workbench.proof.tree import create_proof
    from nd_workbench.reports.render import render_proof

    try:
        proof = create_proof(
            [_parse_term(p) for p in premises or []],
            _parse_term(conclusion),
        )
    except ValueError as exc:
        _fail(exc)
    typer.echo(render_proof(proof))
