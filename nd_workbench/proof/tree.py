"""Proof tree: nested scopes of proof lines, addressed by line id.

A proof is a persistent nested value. Every edit locates its target as a
path of indices (one per nesting level) and rebuilds only the spine above
it, returning a new Proof; the input is never mutated.

  Proof    := items: (ProofLine | Subproof)*, next_id
  Subproof := items: (ProofLine | Subproof)*

A Subproof is referenced as a unit by the pair (first line id, last line id).
"""

from __future__ import annotations

from typing import Annotated, Any, Callable, Iterator, Literal, Sequence, Union

from pydantic import BaseModel, Discriminator, Tag

from nd_workbench.core.errors import NotFound, ScopeViolation
from nd_workbench.core.serialize import term_from_data, term_to_data
from nd_workbench.core.terms import (
    Atom,
    Compound,
    Constant,
    Indexed,
    Placeholder,
    Rel,
    TermNode,
)

PREMISE = "premise"
ASSUMPTION = "assumption"

Reference = Union[int, tuple[int, int]]
Path = tuple[int, ...]

LineContent = Annotated[
    Union[
        Annotated[Atom, Tag("atom")],
        Annotated[Constant, Tag("const")],
        Annotated[Compound, Tag("compound")],
        Annotated[Indexed, Tag("at")],
        Annotated[Rel, Tag("rel")],
        Annotated[Placeholder, Tag("placeholder")],
    ],
    Discriminator("tag"),
]


class ProofLine(BaseModel):
    """One line: a formula (or placeholder) with its justification."""

    model_config = {"frozen": True}
    tag: Literal["line"] = "line"
    id: int
    content: LineContent
    justification: str | None = None
    references: tuple[Reference, ...] = ()

    @property
    def is_placeholder(self) -> bool:
        return isinstance(self.content, Placeholder)

    @property
    def is_unproved(self) -> bool:
        return self.justification is None and not self.is_placeholder

    @property
    def is_justified(self) -> bool:
        return self.justification is not None


class Subproof(BaseModel):
    """A local scope opened by its assumption lines."""

    model_config = {"frozen": True}
    tag: Literal["subproof"] = "subproof"
    items: tuple[Element, ...] = ()

    @property
    def has_lines(self) -> bool:
        return any(not ln.is_placeholder for ln in iter_lines(self.items))

    @property
    def span(self) -> tuple[int, int]:
        """Ids of the first and last non-placeholder lines."""
        lines = [ln for ln in iter_lines(self.items) if not ln.is_placeholder]
        if not lines:
            raise ValueError("empty subproof has no span")
        return (lines[0].id, lines[-1].id)


Element = Annotated[
    Union[
        Annotated[ProofLine, Tag("line")],
        Annotated[Subproof, Tag("subproof")],
    ],
    Discriminator("tag"),
]
ElementNode = Union[ProofLine, Subproof]

Subproof.model_rebuild()


class Proof(BaseModel):
    """Root of a proof tree plus its id counter.

    Frozen after construction. Edit functions in this module return new
    Proof values.
    """

    model_config = {"frozen": True}
    items: tuple[Element, ...] = ()
    next_id: int = 1
    # Fresh metavariables left open by rule steps, bindable later
    open_metavariables: tuple[str, ...] = ()

    @property
    def premises(self) -> list[ProofLine]:
        return [
            el for el in self.items
            if isinstance(el, ProofLine) and el.justification == PREMISE
        ]

    @property
    def conclusion(self) -> ProofLine:
        tops = [el for el in self.items if isinstance(el, ProofLine) and not el.is_placeholder]
        if not tops:
            raise ValueError("The proof is empty")
        return tops[-1]

    def to_data(self) -> list[Any]:
        """Encode as nested lists of line objects (JSON-ready)."""
        return [_element_to_data(el) for el in self.items]

    @classmethod
    def from_data(cls, data: Any) -> "Proof":
        """Decode from nested lists of line objects.

        Raises ValueError on malformed input or duplicate ids.
        """
        if not isinstance(data, list):
            raise ValueError("a proof must be a list of lines and subproofs")
        items = tuple(_element_from_data(x) for x in data)
        ids = [ln.id for ln in iter_lines(items)]
        if len(ids) != len(set(ids)):
            raise ValueError("duplicate proof line ids")
        return cls(items=items, next_id=max(ids, default=0) + 1)


class IdAllocator:
    """Monotonic id source for one editing operation on one proof."""

    def __init__(self, start: int) -> None:
        self.next_id = start

    def __call__(self) -> int:
        value = self.next_id
        self.next_id += 1
        return value


# ── Navigation ─────────────────────────────────────────────────────


def iter_lines(items: Sequence[ElementNode]) -> Iterator[ProofLine]:
    for el in items:
        if isinstance(el, Subproof):
            yield from iter_lines(el.items)
        else:
            yield el


def element_ids(element: ElementNode) -> set[int]:
    if isinstance(element, Subproof):
        return {ln.id for ln in iter_lines(element.items)}
    return {element.id}


def locate(proof: Proof, line_id: int) -> Path:
    """Path of indices to the line with ``line_id``; NotFound if absent."""
    path = _locate(proof.items, line_id)
    if path is None:
        raise NotFound(line_id)
    return path


def _locate(items: Sequence[ElementNode], line_id: int) -> Path | None:
    for k, el in enumerate(items):
        if isinstance(el, Subproof):
            inner = _locate(el.items, line_id)
            if inner is not None:
                return (k,) + inner
        elif el.id == line_id:
            return (k,)
    return None


def element_at(proof: Proof, path: Path) -> ElementNode:
    items: Sequence[ElementNode] = proof.items
    el: ElementNode | None = None
    for k in path:
        el = items[k]
        if isinstance(el, Subproof):
            items = el.items
    if el is None:
        raise ValueError("empty path")
    return el


def get_line(proof: Proof, line_id: int) -> ProofLine:
    el = element_at(proof, locate(proof, line_id))
    if not isinstance(el, ProofLine):
        raise TypeError(f"id {line_id} does not name a proof line")
    return el


def locate_subproof(proof: Proof, first_line_id: int) -> Path | None:
    """Path to the innermost subproof whose span starts with ``first_line_id``."""
    path = locate(proof, first_line_id)
    for depth in range(len(path) - 1, 0, -1):
        el = element_at(proof, path[:depth])
        if isinstance(el, Subproof) and el.span[0] == first_line_id:
            return path[:depth]
    return None


def subproof_starting_at(proof: Proof, line_id: int) -> Subproof | None:
    """The subproof (at any depth) whose span starts with ``line_id``."""
    path = locate_subproof(proof, line_id)
    if path is None:
        return None
    el = element_at(proof, path)
    if not isinstance(el, Subproof):
        raise TypeError(f"no subproof starts at line {line_id}")
    return el


# ── Positions and scope ────────────────────────────────────────────


def numbered_lines(proof: Proof) -> list[tuple[int, ProofLine]]:
    """(position, line) pairs, 1-based, placeholders not counted."""
    lines = [ln for ln in iter_lines(proof.items) if not ln.is_placeholder]
    return list(enumerate(lines, start=1))


def line_number(proof: Proof, line_id: int) -> int:
    """1-based position of a line in the flattened proof."""
    for pos, ln in numbered_lines(proof):
        if ln.id == line_id:
            return pos
    raise NotFound(line_id)


def item_at(proof: Proof, position: Reference) -> ElementNode:
    """The line at a 1-based position, or the subproof spanning (start, end)."""
    numbered = dict(numbered_lines(proof))
    if isinstance(position, tuple):
        start, end = position
        if start not in numbered or end not in numbered:
            raise IndexError(f"no lines at positions {start}-{end}")
        span = (numbered[start].id, numbered[end].id)
        for sub in _iter_subproofs(proof.items):
            if sub.span == span:
                return sub
        raise IndexError(f"no subproof spans positions {start}-{end}")
    if position not in numbered:
        raise IndexError(f"no line at position {position}")
    return numbered[position]


def _iter_subproofs(items: Sequence[ElementNode]) -> Iterator[Subproof]:
    for el in items:
        if isinstance(el, Subproof) and el.has_lines:
            yield el
            yield from _iter_subproofs(el.items)


def scope_of(proof: Proof, line_id: int) -> list[ElementNode]:
    """Elements visible from a line.

    The line's own scope up to and including the line, preceded by the
    enclosing scopes' elements up to the point of descent. Earlier sibling
    subproofs appear as closed units, never their inner lines.
    """
    scope = _scope(proof.items, line_id)
    if scope is None:
        raise NotFound(line_id)
    return scope


def _scope(items: Sequence[ElementNode], line_id: int) -> list[ElementNode] | None:
    visible: list[ElementNode] = []
    for el in items:
        if isinstance(el, Subproof):
            inner = _scope(el.items, line_id)
            if inner is not None:
                return visible + inner
            visible.append(el)
        else:
            visible.append(el)
            if el.id == line_id:
                return visible
    return None


def visible_references(proof: Proof, line_id: int) -> set[Reference]:
    """References a line may legally cite: earlier visible lines and closed subproofs."""
    refs: set[Reference] = set()
    for el in scope_of(proof, line_id)[:-1]:
        if isinstance(el, Subproof):
            if el.has_lines:
                refs.add(el.span)
        elif not el.is_placeholder:
            refs.add(el.id)
    return refs


def reference_violations(proof: Proof) -> list[str]:
    """Duplicate ids, dangling references and out-of-scope references."""
    violations: list[str] = []
    seen: set[int] = set()
    for ln in iter_lines(proof.items):
        if ln.id in seen:
            violations.append(f"Line id {ln.id} occurs more than once")
        seen.add(ln.id)

    for ln in iter_lines(proof.items):
        if not ln.references:
            continue
        visible = visible_references(proof, ln.id)
        for ref in ln.references:
            if ref in visible:
                continue
            ids = ref if isinstance(ref, tuple) else (ref,)
            if not all(i in seen for i in ids):
                violations.append(f"Line {ln.id}: reference {_ref_str(ref)} does not exist")
            else:
                violations.append(f"Line {ln.id}: reference {_ref_str(ref)} is not in scope")
    return violations


def _ref_str(ref: Reference) -> str:
    return f"[{ref[0]} {ref[1]}]" if isinstance(ref, tuple) else str(ref)


def referencing_lines(proof: Proof, ids: set[int]) -> list[ProofLine]:
    """Lines whose references mention any of ``ids`` (spans included)."""
    found = []
    for ln in iter_lines(proof.items):
        for ref in ln.references:
            cited = set(ref) if isinstance(ref, tuple) else {ref}
            if cited & ids:
                found.append(ln)
                break
    return found


# ── Structural edits ───────────────────────────────────────────────


def _splice(
    items: tuple[ElementNode, ...],
    path: Path,
    edit: Callable[[list[ElementNode], int], list[ElementNode]],
) -> tuple[ElementNode, ...]:
    head, rest = path[0], path[1:]
    if not rest:
        return tuple(edit(list(items), head))
    child = items[head]
    if not isinstance(child, Subproof):
        raise TypeError(f"path descends into line {child.id}, not a subproof")
    new_child = child.model_copy(update={"items": _splice(child.items, rest, edit)})
    return items[:head] + (new_child,) + items[head + 1:]


def _with_items(proof: Proof, items: tuple[ElementNode, ...], extra_ids: set[int] = frozenset()) -> Proof:
    next_id = max([proof.next_id, *(i + 1 for i in extra_ids)])
    return proof.model_copy(update={"items": items, "next_id": next_id})


def _check_new_ids(proof: Proof, element: ElementNode, replaced: set[int] = frozenset()) -> set[int]:
    new_ids = element_ids(element)
    existing = {ln.id for ln in iter_lines(proof.items)} - replaced
    clash = new_ids & existing
    if clash:
        raise ValueError(f"Duplicate proof line id(s): {sorted(clash)}")
    return new_ids


def insert_after(proof: Proof, line_id: int, element: ElementNode) -> Proof:
    """Splice ``element`` right after the line with ``line_id``, same scope."""
    path = locate(proof, line_id)
    new_ids = _check_new_ids(proof, element)
    items = _splice(proof.items, path, lambda xs, k: xs[: k + 1] + [element] + xs[k + 1:])
    return _with_items(proof, items, new_ids)


def insert_before(proof: Proof, line_id: int, element: ElementNode) -> Proof:
    """Splice ``element`` right before the line with ``line_id``, same scope."""
    path = locate(proof, line_id)
    new_ids = _check_new_ids(proof, element)
    items = _splice(proof.items, path, lambda xs, k: xs[:k] + [element] + xs[k:])
    return _with_items(proof, items, new_ids)


def replace(proof: Proof, line_id: int, element: ElementNode) -> Proof:
    """Replace the line with ``line_id`` by ``element``.

    Rejected with ScopeViolation if another line still references
    ``line_id`` and the replacement does not keep that id.
    """
    path = locate(proof, line_id)
    new_ids = _check_new_ids(proof, element, replaced={line_id})
    if line_id not in new_ids:
        _reject_if_referenced(proof, {line_id})
    items = _splice(proof.items, path, lambda xs, k: xs[:k] + [element] + xs[k + 1:])
    return _with_items(proof, items, new_ids)


def remove(proof: Proof, line_id: int) -> Proof:
    """Remove the line with ``line_id``.

    Rejected with ScopeViolation while another line references it.
    """
    path = locate(proof, line_id)
    _reject_if_referenced(proof, {line_id})
    items = _splice(proof.items, path, lambda xs, k: xs[:k] + xs[k + 1:])
    return _with_items(proof, _prune(items))


def remove_subproof(proof: Proof, first_line_id: int) -> Proof:
    """Remove the whole subproof that starts with ``first_line_id``."""
    path = locate_subproof(proof, first_line_id)
    if path is None:
        raise NotFound(first_line_id)
    ids = element_ids(element_at(proof, path))
    outside = [ln for ln in referencing_lines(proof, ids) if ln.id not in ids]
    if outside:
        raise ScopeViolation([
            f"Line {ln.id} still references the subproof starting at {first_line_id}"
            for ln in outside
        ])
    items = _splice(proof.items, path, lambda xs, k: xs[:k] + xs[k + 1:])
    return _with_items(proof, _prune(items))


def insert_at(proof: Proof, path: Path, element: ElementNode) -> Proof:
    """Insert ``element`` so that it ends up at ``path``.

    The last index may equal the length of its scope (append).
    """
    new_ids = _check_new_ids(proof, element)
    items = _splice(proof.items, path, lambda xs, k: xs[:k] + [element] + xs[k:])
    return _with_items(proof, items, new_ids)


def relocate(proof: Proof, line_id: int, anchor_id: int, before: bool = False) -> Proof:
    """Move the line ``line_id`` next to ``anchor_id``.

    Rejected with ScopeViolation if the move breaks a reference.
    """
    if line_id == anchor_id:
        return proof
    element = element_at(proof, locate(proof, line_id))
    locate(proof, anchor_id)
    violations_before = set(reference_violations(proof))

    items = _splice(proof.items, locate(proof, line_id), lambda xs, k: xs[:k] + xs[k + 1:])
    moved = _with_items(proof, _prune(items))
    anchor_path = locate(moved, anchor_id)
    if before:
        items = _splice(moved.items, anchor_path, lambda xs, k: xs[:k] + [element] + xs[k:])
    else:
        items = _splice(moved.items, anchor_path, lambda xs, k: xs[: k + 1] + [element] + xs[k + 1:])
    result = _with_items(moved, items)

    introduced = [v for v in reference_violations(result) if v not in violations_before]
    if introduced:
        raise ScopeViolation(introduced)
    return result


def _prune(items: Sequence[ElementNode]) -> tuple[ElementNode, ...]:
    """Drop subproofs left without a single non-placeholder line."""
    out: list[ElementNode] = []
    for el in items:
        if isinstance(el, Subproof):
            if not el.has_lines:
                continue
            el = el.model_copy(update={"items": _prune(el.items)})
        out.append(el)
    return tuple(out)


def _reject_if_referenced(proof: Proof, ids: set[int]) -> None:
    users = [ln for ln in referencing_lines(proof, ids) if ln.id not in ids]
    if users:
        raise ScopeViolation([
            f"Line {ln.id} still references line {i}"
            for ln in users
            for i in sorted(ids)
            if any(i in (r if isinstance(r, tuple) else (r,)) for r in ln.references)
        ])


def map_lines(proof: Proof, fn: Callable[[ProofLine], ProofLine]) -> Proof:
    """Rebuild the tree applying ``fn`` to every line."""
    return proof.model_copy(update={"items": _map_items(proof.items, fn)})


def _map_items(items: Sequence[ElementNode], fn: Callable[[ProofLine], ProofLine]) -> tuple[ElementNode, ...]:
    out: list[ElementNode] = []
    for el in items:
        if isinstance(el, Subproof):
            out.append(el.model_copy(update={"items": _map_items(el.items, fn)}))
        else:
            out.append(fn(el))
    return tuple(out)


# ── Placeholders ───────────────────────────────────────────────────


def normalize_placeholders(proof: Proof) -> Proof:
    """Keep exactly one placeholder in front of every unproved line.

    A placeholder is dropped once the element after it is a proved line, a
    subproof, another placeholder, or nothing. Idempotent.
    """
    ids = IdAllocator(proof.next_id)
    items = _normalize_scope(proof.items, ids)
    return proof.model_copy(update={"items": items, "next_id": ids.next_id})


def _normalize_scope(items: Sequence[ElementNode], ids: IdAllocator) -> tuple[ElementNode, ...]:
    kept: list[ElementNode] = []
    for k, el in enumerate(items):
        if isinstance(el, ProofLine) and el.is_placeholder:
            nxt = items[k + 1] if k + 1 < len(items) else None
            if not (isinstance(nxt, ProofLine) and nxt.is_unproved):
                continue
        kept.append(el)

    out: list[ElementNode] = []
    for el in kept:
        if isinstance(el, Subproof):
            out.append(el.model_copy(update={"items": _normalize_scope(el.items, ids)}))
            continue
        if el.is_unproved:
            prev = out[-1] if out else None
            if not (isinstance(prev, ProofLine) and prev.is_placeholder):
                out.append(ProofLine(id=ids(), content=Placeholder()))
        out.append(el)
    return tuple(out)


def create_proof(premises: Sequence[TermNode], conclusion: TermNode) -> Proof:
    """Premise lines, one unproved conclusion line, placeholders added.

    Ids start at 1 in every fresh proof.
    """
    ids = IdAllocator(1)
    lines: list[ElementNode] = [
        ProofLine(id=ids(), content=p, justification=PREMISE) for p in premises
    ]
    lines.append(ProofLine(id=ids(), content=conclusion))
    return normalize_placeholders(Proof(items=tuple(lines), next_id=ids.next_id))


# ── Data form ──────────────────────────────────────────────────────


def _element_to_data(el: ElementNode) -> Any:
    if isinstance(el, Subproof):
        return [_element_to_data(x) for x in el.items]
    if el.is_placeholder:
        return {"id": el.id, "placeholder": True}
    return {
        "id": el.id,
        "content": term_to_data(el.content),
        "justification": el.justification,
        "references": [list(r) if isinstance(r, tuple) else r for r in el.references],
    }


def _element_from_data(data: Any) -> ElementNode:
    if isinstance(data, list):
        return Subproof(items=tuple(_element_from_data(x) for x in data))
    if not isinstance(data, dict) or not isinstance(data.get("id"), int):
        raise ValueError(f"proof line needs an integer 'id': {data!r}")
    if data.get("placeholder"):
        return ProofLine(id=data["id"], content=Placeholder())
    if "content" not in data:
        raise ValueError(f"proof line {data['id']} has no 'content'")
    refs: list[Reference] = []
    for r in data.get("references", []):
        if isinstance(r, int):
            refs.append(r)
        elif isinstance(r, list) and len(r) == 2 and all(isinstance(i, int) for i in r):
            refs.append((r[0], r[1]))
        else:
            raise ValueError(f"proof line {data['id']}: bad reference {r!r}")
    justification = data.get("justification")
    if justification is not None and not isinstance(justification, str):
        raise ValueError(f"proof line {data['id']}: justification must be a string")
    return ProofLine(
        id=data["id"],
        content=term_from_data(data["content"]),
        justification=justification,
        references=tuple(refs),
    )
