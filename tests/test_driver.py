"""Tests for forward and backward rule application on propositional proofs."""

from __future__ import annotations

import pytest

from nd_workbench.core.errors import IncompleteProof, MatchFailure, NotFound, ScopeViolation
from nd_workbench.core.serialize import term_from_data as t
from nd_workbench.engine.driver import (
    applicable_rules,
    apply_backward,
    apply_forward,
    derive_backward,
    derive_forward,
    export_theorem,
    instantiate_metavariable,
    split_cases,
)
from nd_workbench.proof.invariants import (
    is_complete,
    unproved_positions,
    validate_proof,
)
from nd_workbench.proof.tree import (
    ASSUMPTION,
    Proof,
    ProofLine,
    Subproof,
    create_proof,
    get_line,
    remove,
)
from nd_workbench.rules.registry import Registry
from nd_workbench.rules.roth import LineObligation, ScopeObligation


def ids(items) -> list:
    return [el.id if isinstance(el, ProofLine) else ids(el.items) for el in items]


@pytest.fixture
def nand_proof() -> Proof:
    """(not A) |- (not (and A B)), before any step."""
    return create_proof([t(["not", "A"])], t(["not", ["and", "A", "B"]]))


class TestForward:
    def test_and_i_on_target(self, and_proof: Proof, prop_registry: Registry) -> None:
        result = apply_forward(and_proof, prop_registry, "and-i", [1, 2], target=3)
        line = get_line(result, 3)
        assert line.justification == "and-i"
        assert line.references == (1, 2)
        assert ids(result.items) == [1, 2, 3]
        assert is_complete(result)

    def test_and_i_without_target(self, and_proof: Proof, prop_registry: Registry) -> None:
        result = apply_forward(and_proof, prop_registry, "and-i", [1, 2])
        assert ids(result.items) == [1, 2, 5, 4, 3]
        assert get_line(result, 5).content == t(["and", "A", "B"])
        assert get_line(result, 5).justification == "and-i"
        assert not is_complete(result)

    def test_derive_forward_does_not_edit(self, and_proof: Proof, prop_registry: Registry) -> None:
        assert derive_forward(and_proof, prop_registry, "and-i", [2, 1]) == [t(["and", "B", "A"])]

    def test_wrong_target(self, and_proof: Proof, prop_registry: Registry) -> None:
        with pytest.raises(MatchFailure, match="or-i1"):
            apply_forward(and_proof, prop_registry, "or-i1", [1], target=3)

    def test_premise_count(self, and_proof: Proof, prop_registry: Registry) -> None:
        with pytest.raises(MatchFailure, match="expects 2 premise"):
            apply_forward(and_proof, prop_registry, "and-i", [1])

    def test_unproved_premise(self, and_proof: Proof, prop_registry: Registry) -> None:
        with pytest.raises(MatchFailure, match="not justified"):
            apply_forward(and_proof, prop_registry, "and-e1", [3])

    def test_unknown_line(self, and_proof: Proof, prop_registry: Registry) -> None:
        with pytest.raises(NotFound):
            apply_forward(and_proof, prop_registry, "and-e1", [42])

    def test_conclusion_without_premises(self, and_proof: Proof, prop_registry: Registry) -> None:
        result = apply_forward(and_proof, prop_registry, "tnd", [])
        assert ids(result.items) == [1, 2, 5, 4, 3]
        assert get_line(result, 5).content == t(["or", "phi5", ["not", "phi5"]])
        assert result.open_metavariables == ("phi5",)

    def test_premise_inside_closed_subproof(self, nested_proof: Proof, prop_registry: Registry) -> None:
        proof = nested_proof.model_copy(update={
            "items": nested_proof.items + (ProofLine(id=9, content=t(["and", "A", "D"])),),
            "next_id": 10,
        })
        with pytest.raises(ScopeViolation):
            apply_forward(proof, prop_registry, "and-i", [6, 5], target=9)


class TestBackward:
    def test_not_i_opens_subproof(self, prop_registry: Registry) -> None:
        proof = create_proof([], t(["not", "A"]))
        result = apply_backward(proof, prop_registry, "not-i", 1)
        assert ids(result.items) == [[3, 5, 4], 1]
        sub = result.items[0]
        assert isinstance(sub, Subproof)
        assert sub.items[0].content == t("A")
        assert sub.items[0].justification == ASSUMPTION
        assert sub.items[2].content == t("contradiction")
        assert get_line(result, 1).references == ((3, 4),)
        assert unproved_positions(result) == [(1, 2)]
        with pytest.raises(IncompleteProof, match=r"\(\[1 2\]\)"):
            export_theorem(result, "t")

    def test_derive_backward(self, prop_registry: Registry) -> None:
        proof = create_proof([], t(["not", "A"]))
        assert derive_backward(proof, prop_registry, "not-i", 1) == [
            ScopeObligation(locals=(t("A"),), goal=t("contradiction")),
        ]

    def test_impl_e_with_premises(self, prop_registry: Registry) -> None:
        proof = create_proof([t("A"), t(["impl", "A", "B"])], t("B"))
        result = apply_backward(proof, prop_registry, "impl-e", 3, premises=[1, 2])
        assert get_line(result, 3).references == (1, 2)
        assert is_complete(result)

    def test_partial_premises(self, prop_registry: Registry) -> None:
        proof = create_proof([t("A"), t(["impl", "A", "B"])], t("B"))
        assert derive_backward(proof, prop_registry, "impl-e", 3, premises=[1]) == [
            LineObligation(pattern=t(["impl", "A", "B"])),
        ]
        result = apply_backward(proof, prop_registry, "impl-e", 3, premises=[1])
        assert ids(result.items) == [1, 2, 4, 5, 3]
        assert get_line(result, 5).content == t(["impl", "A", "B"])
        assert get_line(result, 3).references == (1, 5)

    def test_open_metavariable_then_instantiate(self, prop_registry: Registry) -> None:
        proof = create_proof([t("A"), t(["impl", "A", "B"])], t("B"))
        result = apply_backward(proof, prop_registry, "impl-e", 3)
        assert get_line(result, 5).content == t("phi5")
        assert get_line(result, 6).content == t(["impl", "phi5", "B"])
        bound = instantiate_metavariable(result, "phi5", t("A"))
        assert get_line(bound, 5).content == t("A")
        assert get_line(bound, 6).content == t(["impl", "A", "B"])
        assert bound.open_metavariables == ()

    def test_instantiate_requires_metavariable(self, and_proof: Proof) -> None:
        with pytest.raises(ValueError, match="not a metavariable"):
            instantiate_metavariable(and_proof, "A", t("B"))
        with pytest.raises(ValueError, match="not an open metavariable"):
            instantiate_metavariable(and_proof, "phi", t("B"))

    def test_instantiate_leaves_premises_alone(self, prop_registry: Registry) -> None:
        proof = create_proof([t(["and", "phi", "psi"])], t("psi"))
        result = apply_backward(proof, prop_registry, "impl-e", 2)
        assert result.open_metavariables == ("phi4",)
        bound = instantiate_metavariable(result, "phi4", t("C"))
        assert get_line(bound, 1).content == t(["and", "phi", "psi"])
        assert get_line(bound, 4).content == t("C")
        assert get_line(bound, 5).content == t(["impl", "C", "psi"])
        with pytest.raises(ValueError, match="not an open metavariable"):
            instantiate_metavariable(result, "phi", t("C"))

    def test_each_step_opens_its_own_names(self, prop_registry: Registry) -> None:
        proof = apply_backward(create_proof([], t("B")), prop_registry, "impl-e", 1)
        assert proof.open_metavariables == ("phi3",)
        proof = apply_backward(proof, prop_registry, "impl-e", 3)
        assert proof.open_metavariables == ("phi3", "phi7")
        assert get_line(proof, 8).content == t(["impl", "phi7", "phi3"])

    def test_goal_already_justified(self, and_proof: Proof, prop_registry: Registry) -> None:
        with pytest.raises(MatchFailure, match="already justified"):
            apply_backward(and_proof, prop_registry, "and-i", 1)

    def test_applicable_rules(self, and_proof: Proof, prop_registry: Registry) -> None:
        found = applicable_rules(and_proof, prop_registry, 3)
        assert "and-i" in found
        assert "or-i1" not in found
        assert "impl-i" not in found
        assert applicable_rules(and_proof, prop_registry, 1) == []


class TestWholeProof:
    def test_nand(self, nand_proof: Proof, prop_registry: Registry) -> None:
        proof = apply_backward(nand_proof, prop_registry, "not-i", 2)
        assert ids(proof.items) == [1, [4, 6, 5], 2]

        proof = apply_forward(proof, prop_registry, "and-e1", [4])
        assert ids(proof.items) == [1, [4, 7, 6, 5], 2]
        assert get_line(proof, 7).content == t("A")

        proof = apply_forward(proof, prop_registry, "not-e", [7, 1], target=5)
        assert ids(proof.items) == [1, [4, 7, 5], 2]
        assert is_complete(proof)
        assert validate_proof(proof) == []

        theorem = export_theorem(proof, "nand")
        assert theorem.kind == "theorem"
        assert theorem.given == (t(["not", "A"]),)
        assert theorem.conclusion == (t(["not", ["and", "A", "B"]]),)
        assert theorem.proof == proof

    def test_removing_cited_line(self, and_proof: Proof, prop_registry: Registry) -> None:
        proof = apply_forward(and_proof, prop_registry, "and-i", [1, 2], target=3)
        with pytest.raises(ScopeViolation, match="still references line 1"):
            remove(proof, 1)


class TestCases:
    def test_formula_disjunction(self, prop_registry: Registry) -> None:
        proof = create_proof([t(["or", "A", "B"])], t("C"))
        result = split_cases(proof, 1, 2)
        assert ids(result.items) == [1, [4, 8, 5], [6, 9, 7], 2]
        goal = get_line(result, 2)
        assert goal.justification == "or-e"
        assert goal.references == (1, (4, 5), (6, 7))
        assert unproved_positions(result) == [(2, 3), (4, 5)]
        assert validate_proof(result) == []

    def test_not_a_disjunction(self, and_proof: Proof) -> None:
        with pytest.raises(MatchFailure, match="not a disjunction"):
            split_cases(and_proof, 1, 3)
