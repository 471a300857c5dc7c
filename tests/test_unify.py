"""Tests for one-sided matching of rule patterns."""

from __future__ import annotations

import pytest

from nd_workbench.core.serialize import pattern_from_data as p
from nd_workbench.core.serialize import term_from_data as t
from nd_workbench.core.terms import CONTRADICTION, TRUTH, equals, instantiate
from nd_workbench.core.unify import match, match_all


class TestMetavariables:
    def test_binds_formula(self) -> None:
        assert match(p("phi"), t(["and", "A", "B"])) == {"phi": t(["and", "A", "B"])}

    def test_repeated_metavariable_must_agree(self) -> None:
        assert match(p(["and", "phi", "phi"]), t(["and", "A", "A"])) == {"phi": t("A")}
        assert match(p(["impl", "phi", "phi"]), t(["impl", "A", "B"])) is None

    def test_binding_compares_up_to_commutation(self) -> None:
        theta = match(p(["impl", "phi", "phi"]), t(["impl", ["and", "A", "B"], ["and", "B", "A"]]))
        assert theta == {"phi": t(["and", "A", "B"])}

    def test_term_metavariable_refuses_formulas(self) -> None:
        assert match(p("i"), TRUTH) is None
        assert match(p("x"), t(["<=", "a", "b"])) is None
        assert match(p("x"), t(["at", "i", "A"])) is None

    def test_term_metavariable_takes_function_terms(self) -> None:
        assert match(p("t"), t(["f", "a"])) == {"t": t(["f", "a"])}

    def test_input_substitution_untouched(self) -> None:
        theta = {"phi": t("A")}
        result = match(p(["and", "phi", "psi"]), t(["and", "A", "B"]), theta)
        assert result == {"phi": t("A"), "psi": t("B")}
        assert theta == {"phi": t("A")}


class TestRigid:
    def test_atoms(self) -> None:
        assert match(p("A"), t("A")) == {}
        assert match(p("A"), t("B")) is None

    def test_constants(self) -> None:
        assert match(p("contradiction"), CONTRADICTION) == {}
        assert match(p("truth"), CONTRADICTION) is None
        assert match(p("phi"), TRUTH) == {"phi": TRUTH}

    def test_operator_and_arity(self) -> None:
        assert match(p(["and", "phi", "psi"]), t(["or", "A", "B"])) is None
        assert match(p(["not", "phi"]), t(["not", "A", "B"])) is None


class TestCommutative:
    def test_declared_order_first(self) -> None:
        assert match(p(["and", "phi", "psi"]), t(["and", "B", "A"])) == {"phi": t("B"), "psi": t("A")}

    def test_backtracks_over_operands(self) -> None:
        assert match(p(["and", "phi", "B"]), t(["and", "B", "A"])) == {"phi": t("A")}

    def test_ordered_operator_does_not_permute(self) -> None:
        assert match(p(["impl", "phi", "B"]), t(["impl", "B", "A"])) is None


class TestTemporal:
    def test_indexed(self) -> None:
        theta = match(p(["at", "i", "phi"]), t(["at", "t1", "A"]))
        assert theta == {"i": t("t1"), "phi": t("A")}

    def test_relation(self) -> None:
        assert match(p(["<=", "i", "j"]), t(["<=", "a", "b"])) == {"i": t("a"), "j": t("b")}
        assert match(p(["<=", "i", "j"]), t(["succ", "a", "b"])) is None

    def test_disjunction_pattern_matches_one_disjunct(self) -> None:
        pattern = p(["or", ["succ", "i", "j"], ["=", "i", "j"]])
        assert match(pattern, t(["=", "a", "b"])) == {"i": t("a"), "j": t("b")}

    def test_disjunction_against_disjunction(self) -> None:
        pattern = p(["or", ["<=", "j", "k"], ["<=", "k", "j"]])
        theta = match(pattern, t(["or", ["<=", "b", "a"], ["<=", "a", "b"]]))
        assert theta == {"j": t("b"), "k": t("a")}

    def test_formula_disjunction_covers_relations(self) -> None:
        theta = match(p(["or", "phi", "psi"]), t(["or", ["<=", "a", "b"], ["=", "a", "b"]]))
        assert theta == {"phi": t(["<=", "a", "b"]), "psi": t(["=", "a", "b"])}
        assert match(p(["or", "phi", "psi"]), t(["or", ["<=", "a", "b"], ["=", "a", "b"], ["=", "b", "a"]])) is None


class TestSubstitutionPatterns:
    def test_infer_never_matches(self) -> None:
        assert match(p({"infer": ["phi"], "goal": "psi"}), t("A")) is None

    def test_open_substitution_fails(self) -> None:
        assert match(p(["substitution", "phi", "x", "t"]), t(["P", "a"])) is None

    def test_match_all_defers_substitution(self) -> None:
        theta = match_all([
            (p(["substitution", "phi", "x", "t"]), t(["P", "a"])),
            (p(["forall", "x", "phi"]), t(["forall", "x", ["P", "x"]])),
            (p(["actual", "t"]), t(["actual", "a"])),
        ])
        assert theta == {"x": t("x"), "phi": t(["P", "x"]), "t": t("a")}

    def test_match_all_rejects_wrong_instance(self) -> None:
        theta = match_all([
            (p(["substitution", "phi", "x", "t"]), t(["P", "b"])),
            (p(["forall", "x", "phi"]), t(["forall", "x", ["P", "x"]])),
            (p(["actual", "t"]), t(["actual", "a"])),
        ])
        assert theta is None


class TestSoundness:
    @pytest.mark.parametrize("pattern,term", [
        (["and", "phi", "psi"], ["and", "B", "A"]),
        (["impl", "phi", ["not", "psi"]], ["impl", "A", ["not", ["and", "B", "C"]]]),
        (["at", "i", ["always", "phi"]], ["at", "t0", ["always", ["impl", "P", "Q"]]]),
        (["forall", "x", "phi"], ["forall", "y", ["P", "y"]]),
        (["<=", "i", "j"], ["<=", "t0", "t1"]),
    ])
    def test_instantiated_pattern_equals_term(self, pattern, term) -> None:
        theta = match(p(pattern), t(term))
        assert theta is not None
        assert equals(instantiate(p(pattern), theta), t(term))
