"""Shared fixtures for nd-workbench tests."""

from __future__ import annotations

import pytest

from nd_workbench.core.serialize import term_from_data as t
from nd_workbench.proof.tree import (
    ASSUMPTION,
    PREMISE,
    Proof,
    ProofLine,
    Subproof,
    create_proof,
)
from nd_workbench.rules.loader import default_registry
from nd_workbench.rules.registry import Registry


@pytest.fixture
def prop_registry() -> Registry:
    return default_registry("prop")


@pytest.fixture
def full_registry() -> Registry:
    return default_registry()


@pytest.fixture
def and_proof() -> Proof:
    """A, B |- (and A B); line 3 unproved behind placeholder 4."""
    return create_proof([t("A"), t("B")], t(["and", "A", "B"]))


@pytest.fixture
def nested_proof() -> Proof:
    """Shape [1 2 [3 4] [5 6 7] 8]; line 8 cites 1 and the subproof 5-7."""
    return Proof(
        items=(
            ProofLine(id=1, content=t("A"), justification=PREMISE),
            ProofLine(id=2, content=t("B"), justification=PREMISE),
            Subproof(items=(
                ProofLine(id=3, content=t("C"), justification=ASSUMPTION),
                ProofLine(id=4, content=t("C"), justification="copy", references=(3,)),
            )),
            Subproof(items=(
                ProofLine(id=5, content=t("D"), justification=ASSUMPTION),
                ProofLine(id=6, content=t("A"), justification="copy", references=(1,)),
                ProofLine(id=7, content=t("A"), justification="copy", references=(6,)),
            )),
            ProofLine(
                id=8,
                content=t(["impl", "D", "A"]),
                justification="impl-i",
                references=(1, (5, 7)),
            ),
        ),
        next_id=9,
    )
