"""Tests for text and Rich rendering."""

from __future__ import annotations

import json

from rich.console import Console

from nd_workbench.core.serialize import term_from_data as t
from nd_workbench.engine.driver import apply_backward, apply_forward
from nd_workbench.proof.tree import Proof, create_proof
from nd_workbench.reports.render import (
    format_roth,
    proof_table,
    render_proof,
    roth_table,
    roth_to_json,
)
from nd_workbench.rules.registry import Registry


def _nand(registry: Registry) -> Proof:
    proof = create_proof([t(["not", "A"])], t(["not", ["and", "A", "B"]]))
    proof = apply_backward(proof, registry, "not-i", 2)
    proof = apply_forward(proof, registry, "and-e1", [4])
    return apply_forward(proof, registry, "not-e", [7, 1], target=5)


class TestRenderProof:
    def test_fresh_proof(self, and_proof: Proof) -> None:
        lines = render_proof(and_proof).splitlines()
        assert len(lines) == 4
        assert lines[0].startswith("1: A")
        assert lines[0].endswith("premise")
        assert lines[2] == "   ..."
        assert lines[3] == "3: (and A B)"

    def test_subproof_bars_and_references(self, prop_registry: Registry) -> None:
        lines = render_proof(_nand(prop_registry)).splitlines()
        assert lines[1].startswith("2: | (and A B)")
        assert lines[1].endswith("assumption")
        assert lines[2].endswith("and-e1 [2]")
        assert lines[3] == "4: | contradiction  not-e [3 1]"
        assert lines[4] == "5: (not (and A B))  not-i [2-4]"

    def test_empty_proof(self) -> None:
        assert render_proof(Proof(items=())) == ""

    def test_table_keeps_brackets(self, prop_registry: Registry) -> None:
        console = Console(record=True, width=100)
        console.print(proof_table(_nand(prop_registry)))
        text = console.export_text()
        assert "not-i [2-4]" in text
        assert "not-e [3 1]" in text


class TestRenderRoths:
    def test_format_roth(self, prop_registry: Registry) -> None:
        assert format_roth(prop_registry.get("and-i")) == "and-i: phi, psi => (and phi psi)"
        assert format_roth(prop_registry.get("tnd")) == "tnd: => (or phi (not phi))"
        assert format_roth(prop_registry.get("not-i")) == (
            "not-i: (infer [phi] contradiction) => (not phi)"
        )

    def test_roth_to_json(self, prop_registry: Registry) -> None:
        data = roth_to_json(prop_registry.get("not-i"))
        assert data == {
            "id": "not-i",
            "kind": "rule",
            "logic": "prop",
            "given": [{"infer": ["phi"], "goal": "contradiction"}],
            "extra": [],
            "conclusion": [["not", "phi"]],
        }
        json.dumps(data)

    def test_roth_table(self, prop_registry: Registry) -> None:
        console = Console(record=True, width=120)
        console.print(roth_table(prop_registry.rules()))
        text = console.export_text()
        assert "and-i" in text
        assert "(infer [phi] contradiction)" in text
