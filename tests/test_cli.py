"""Tests for the ndw command line."""

from __future__ import annotations

import json

from typer.testing import CliRunner

from nd_workbench.cli import app
from nd_workbench.core.serialize import term_from_data as t
from nd_workbench.engine.driver import apply_forward, export_theorem
from nd_workbench.proof.tree import create_proof
from nd_workbench.rules.loader import export_theorems
from nd_workbench.rules.registry import Registry

runner = CliRunner()


class TestRulesCommands:
    def test_list_json(self) -> None:
        result = runner.invoke(app, ["rules", "list", "--logic", "prop", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert len(data) == 19
        assert {"and-i", "or-e"} <= {r["id"] for r in data}

    def test_list_table(self) -> None:
        result = runner.invoke(app, ["rules", "list", "--logic", "ltl"])
        assert result.exit_code == 0
        assert "always-e" in result.output

    def test_unknown_logic(self) -> None:
        result = runner.invoke(app, ["rules", "list", "--logic", "modal"])
        assert result.exit_code == 1

    def test_check_valid(self, tmp_path) -> None:
        path = tmp_path / "rules.json"
        path.write_text(json.dumps([
            {"id": "and-i", "given": ["phi", "psi"], "conclusion": [["and", "phi", "psi"]]},
        ]))
        result = runner.invoke(app, ["rules", "check", str(path)])
        assert result.exit_code == 0
        assert "1 record(s) valid" in result.output

    def test_check_reports_bad_record(self, tmp_path) -> None:
        path = tmp_path / "rules.json"
        path.write_text(json.dumps([
            {"id": "and-i", "given": ["phi", "psi"], "conclusion": [["and", "phi", "psi"]]},
            {"id": "broken", "given": [[]], "conclusion": ["A"]},
        ]))
        result = runner.invoke(app, ["rules", "check", str(path)])
        assert result.exit_code == 1
        assert "1 record(s) valid" in result.output
        assert "broken" in result.output


class TestProofCommands:
    def test_prove(self) -> None:
        result = runner.invoke(app, ["prove", "A", "B", "-c", '["and", "A", "B"]'])
        assert result.exit_code == 0
        assert "1: A" in result.output
        assert "3: (and A B)" in result.output

    def test_prove_bad_term(self) -> None:
        result = runner.invoke(app, ["prove", "-c", '["<=", "t0"]'])
        assert result.exit_code == 1

    def test_theorems_show(self, prop_registry: Registry, tmp_path) -> None:
        proof = create_proof([t("A"), t("B")], t(["and", "A", "B"]))
        proof = apply_forward(proof, prop_registry, "and-i", [1, 2], target=3)
        path = tmp_path / "theorems.json"
        export_theorems([export_theorem(proof, "pair")], path)

        result = runner.invoke(app, ["theorems", "show", str(path)])
        assert result.exit_code == 0
        assert "pair: A, B => (and A B)" in result.output
