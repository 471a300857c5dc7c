"""Loading rule/theorem definitions and writing theorem files.

Definition files are v1.0 envelopes:

  {"format_version": "1.0", "kind": "rules" | "theorems", "records": [...]}

A bare JSON list of records is accepted as well. Each record is validated
with Pydantic and decoded into a Roth; a bad record is reported in the
ImportReport (with its index, id and field) and the rest still load.

Theorem files are rewritten wholesale on every export and carry a
generated header.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError

from nd_workbench.core.errors import (
    IncompleteProof,
    InvalidDefinition,
    RegistryConflict,
)
from nd_workbench.core.serialize import (
    export_dict,
    import_dict,
    pattern_from_data,
    pattern_to_data,
    term_from_data,
    term_to_data,
)
from nd_workbench.core.terms import equals
from nd_workbench.proof.invariants import check_complete
from nd_workbench.proof.tree import Proof
from nd_workbench.rules.registry import Registry
from nd_workbench.rules.roth import RULE, THEOREM, Roth

logger = logging.getLogger(__name__)

FORMAT_VERSION = "1.0"
CATALOG_DIR = Path(__file__).parent / "catalog"
GENERATOR = "nd-workbench"
GENERATED_NOTE = "Generated file, do not edit."

_ENVELOPE_KINDS = {"rules": RULE, "theorems": THEOREM}


class RothDefinition(BaseModel):
    """Raw record schema, before the terms are decoded."""

    model_config = {"extra": "forbid"}
    id: str = Field(min_length=1)
    given: list[Any] = Field(default_factory=list)
    extra: list[Any] = Field(default_factory=list)
    conclusion: list[Any] = Field(min_length=1)
    proof: list[Any] | None = None


@dataclass(frozen=True)
class ImportReport:
    """Outcome of loading one definition source."""

    loaded: tuple[str, ...]
    errors: tuple[InvalidDefinition, ...]

    @property
    def ok(self) -> bool:
        return not self.errors


# ── Decoding ──────────────────────────────────────────────────────


def definition_to_roth(
    record: Any,
    index: int | None = None,
    kind: str = RULE,
    logic: str | None = None,
) -> Roth:
    """Validate one record and decode it into a Roth.

    Raises InvalidDefinition naming the record index, id and field.
    """
    roth_id = record.get("id") if isinstance(record, dict) else None
    roth_id = roth_id if isinstance(roth_id, str) else None
    try:
        definition = RothDefinition.model_validate(record)
    except ValidationError as exc:
        err = exc.errors()[0]
        field = str(err["loc"][0]) if err["loc"] else None
        raise InvalidDefinition(err["msg"], index=index, roth_id=roth_id, field=field) from exc

    def decode(field: str, decoder, items: list[Any]) -> tuple:
        try:
            return tuple(decoder(x) for x in items)
        except ValueError as exc:
            raise InvalidDefinition(str(exc), index=index, roth_id=definition.id, field=field) from exc

    given = decode("given", pattern_from_data, definition.given)
    extra = decode("extra", pattern_from_data, definition.extra)
    conclusion = decode("conclusion", term_from_data, definition.conclusion)

    proof = None
    if kind == THEOREM:
        if definition.proof is None:
            raise InvalidDefinition(
                "a theorem needs the proof it was exported from",
                index=index, roth_id=definition.id, field="proof",
            )
        proof = _decode_theorem_proof(definition, given, conclusion, index)
    elif definition.proof is not None:
        raise InvalidDefinition(
            "only theorems carry a proof", index=index, roth_id=definition.id, field="proof",
        )

    return Roth(
        id=definition.id,
        kind=kind,
        given=given,
        extra=extra,
        conclusion=conclusion,
        logic=logic,
        proof=proof,
    )


def _decode_theorem_proof(
    definition: RothDefinition,
    given: tuple,
    conclusion: tuple,
    index: int | None,
) -> Proof:
    def invalid(message: str) -> InvalidDefinition:
        return InvalidDefinition(message, index=index, roth_id=definition.id, field="proof")

    try:
        proof = Proof.from_data(definition.proof)
    except ValueError as exc:
        raise invalid(str(exc)) from exc
    try:
        check_complete(proof)
    except IncompleteProof as exc:
        raise invalid(str(exc)) from exc

    premises = [ln.content for ln in proof.premises]
    if len(premises) != len(given) or not all(equals(p, g) for p, g in zip(premises, given)):
        raise invalid("premises of the proof differ from 'given'")
    if len(conclusion) != 1 or not equals(proof.conclusion.content, conclusion[0]):
        raise invalid("last line of the proof differs from 'conclusion'")
    return proof


def roth_to_record(roth: Roth) -> dict:
    record: dict[str, Any] = {"id": roth.id, "given": [pattern_to_data(p) for p in roth.given]}
    if roth.extra:
        record["extra"] = [pattern_to_data(p) for p in roth.extra]
    record["conclusion"] = [term_to_data(c) for c in roth.conclusion]
    if roth.proof is not None:
        record["proof"] = roth.proof.to_data()
    return record


def _unwrap(data: Any, default_kind: str) -> tuple[str, list[Any]]:
    """Return (roth kind, raw records) from an envelope or a bare list."""
    if isinstance(data, list):
        return default_kind, data
    if not isinstance(data, dict):
        raise InvalidDefinition("definition file must hold an envelope object or a list")
    version = data.get("format_version")
    if version != FORMAT_VERSION:
        raise InvalidDefinition(
            f"Unsupported format_version {version!r} (expected {FORMAT_VERSION!r})"
        )
    kind = data.get("kind")
    if kind not in _ENVELOPE_KINDS:
        raise InvalidDefinition(f"'kind' must be one of {sorted(_ENVELOPE_KINDS)}, got {kind!r}")
    records = data.get("records")
    if not isinstance(records, list):
        raise InvalidDefinition("'records' must be a list")
    return _ENVELOPE_KINDS[kind], records


# ── Loading ───────────────────────────────────────────────────────


def load_definitions(
    data: Any,
    registry: Registry,
    kind: str = RULE,
    logic: str | None = None,
) -> ImportReport:
    """Register every valid record of ``data``.

    Invalid records and ids that are already registered are collected in
    the report. Raises the first InvalidDefinition if no record at all
    could be loaded.
    """
    kind, records = _unwrap(data, kind)
    loaded: list[str] = []
    errors: list[InvalidDefinition] = []
    for index, record in enumerate(records):
        try:
            roth = definition_to_roth(record, index=index, kind=kind, logic=logic)
        except InvalidDefinition as exc:
            logger.warning("skipping definition: %s", exc)
            errors.append(exc)
            continue
        try:
            registry.register(roth)
        except RegistryConflict as exc:
            errors.append(InvalidDefinition(str(exc), index=index, roth_id=roth.id, field="id"))
            continue
        loaded.append(roth.id)

    if errors and not loaded:
        raise errors[0]
    logger.info("loaded %d %s definition(s), %d rejected", len(loaded), kind, len(errors))
    return ImportReport(loaded=tuple(loaded), errors=tuple(errors))


def check_definitions(data: Any, kind: str = RULE) -> ImportReport:
    """Validate ``data`` without touching any registry."""
    return load_definitions(data, Registry(), kind=kind)


def read_definitions(path: str | Path) -> Any:
    try:
        return import_dict(path)
    except OSError as exc:
        raise InvalidDefinition(f"Cannot read file: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise InvalidDefinition(f"Invalid JSON: {exc}") from exc


def load_file(path: str | Path, registry: Registry, logic: str | None = None) -> ImportReport:
    return load_definitions(read_definitions(path), registry, logic=logic)


def available_catalogs() -> list[str]:
    return sorted(p.stem for p in CATALOG_DIR.glob("*.json"))


def load_catalog(name: str, registry: Registry) -> ImportReport:
    """Load a built-in rule catalog (prop, pred or ltl)."""
    path = CATALOG_DIR / f"{name}.json"
    if not path.exists():
        raise ValueError(f"Unknown catalog {name!r}. Available: {available_catalogs()}")
    return load_file(path, registry, logic=name)


def default_registry(*logics: str) -> Registry:
    """A registry with the given built-in catalogs (all when none given)."""
    registry = Registry()
    for name in logics or available_catalogs():
        load_catalog(name, registry)
    return registry


# ── Theorem files ─────────────────────────────────────────────────


def theorems_envelope(roths: list[Roth]) -> dict:
    return {
        "format_version": FORMAT_VERSION,
        "kind": "theorems",
        "generator": GENERATOR,
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "note": GENERATED_NOTE,
        "records": [roth_to_record(r) for r in roths],
    }


def export_theorems(
    roths: list[Roth],
    path: str | Path,
    mode: Literal["check", "force"] = "check",
) -> list[str]:
    """Add theorems to the file at ``path``, rewriting it wholesale.

    In ``check`` mode an id already present in the file raises
    RegistryConflict and nothing is written; ``force`` replaces it.
    Returns the ids in the written file.
    """
    if mode not in ("check", "force"):
        raise ValueError(f"mode must be 'check' or 'force', got {mode!r}")
    path = Path(path)
    existing: dict[str, Roth] = {}
    if path.exists():
        scratch = Registry()
        report = load_definitions(read_definitions(path), scratch, kind=THEOREM)
        if report.errors:
            raise report.errors[0]
        existing = {r.id: r for r in scratch.theorems()}

    for roth in roths:
        if not roth.is_theorem:
            raise ValueError(f"'{roth.id}' is a rule, only theorems are exported")
        if roth.id in existing and mode == "check":
            raise RegistryConflict(roth.id)
        existing[roth.id] = roth

    export_dict(theorems_envelope(list(existing.values())), path)
    logger.info("wrote %d theorem(s) to %s", len(existing), path)
    return list(existing)


def import_theorems(path: str | Path, registry: Registry) -> ImportReport:
    """Register the theorems of a file written by export_theorems."""
    data = read_definitions(path)
    if isinstance(data, dict) and data.get("kind") != "theorems":
        raise InvalidDefinition(f"{path} is not a theorem file")
    return load_definitions(data, registry, kind=THEOREM)
