"""Flatten a rustdoc JSON dump into public ``DocItem`` records."""

from __future__ import annotations

import logging
from typing import Dict, List, Set

from rustdocfinder.errors import MalformedDump
from rustdocfinder.extraction.render import render_signature
from rustdocfinder.extraction.rustdoc import RawDocDump
from rustdocfinder.extraction.schema import (
    ImplBody,
    Item,
    ModuleBody,
    RustdocCrate,
    TraitBody,
    TypeBody,
    parse_crate,
)
from rustdocfinder.models import DocItem, ItemKind, SourceSpan

LOGGER = logging.getLogger(__name__)

_LEAF_KINDS: Dict[str, ItemKind] = {
    "function": ItemKind.FUNCTION,
    "trait_alias": ItemKind.TRAIT_ALIAS,
    "type_alias": ItemKind.TYPE_ALIAS,
    "typedef": ItemKind.TYPE_ALIAS,
    "constant": ItemKind.CONSTANT,
    "static": ItemKind.STATIC,
    "macro": ItemKind.MACRO,
    "proc_macro": ItemKind.PROC_MACRO,
}

_TYPE_KINDS: Dict[str, ItemKind] = {
    "struct": ItemKind.STRUCT,
    "enum": ItemKind.ENUM,
    "union": ItemKind.UNION,
}


def is_visible(item: Item, *, inherited: bool) -> bool:
    """Visibility policy for indexing.

    ``public`` items are kept. ``default`` visibility (trait members, trait impl
    members, enum variants) follows the container. ``crate`` and restricted
    visibilities are dropped.
    """
    if item.visibility == "public":
        return True
    if item.visibility == "default":
        return inherited
    return False


class _Walker:
    def __init__(self, crate: RustdocCrate, crate_name: str) -> None:
        self.crate = crate
        self.crate_name = crate_name
        self.items: List[DocItem] = []
        self._visited: Set[str] = set()
        self._path_counts: Dict[str, int] = {}

    def resolve_path(self, item: Item, parent_path: str) -> str:
        summary = self.crate.paths.get(item.id)
        if summary is not None and summary.crate_id == item.crate_id and summary.path:
            return "::".join(summary.path)
        return f"{parent_path}::{item.name}"

    def _unique(self, full_path: str) -> str:
        count = self._path_counts.get(full_path, 0) + 1
        self._path_counts[full_path] = count
        return full_path if count == 1 else f"{full_path}#{count}"

    def emit(self, item: Item, full_path: str, kind: ItemKind) -> str:
        full_path = self._unique(full_path)
        span = None
        if item.span is not None and item.span.begin:
            span = SourceSpan(file=item.span.filename, line=int(item.span.begin[0]))
        self.items.append(
            DocItem(
                full_path=full_path,
                kind=kind,
                name=item.name or full_path.rsplit("::", 1)[-1],
                crate_name=self.crate_name,
                description=(item.docs or "").strip(),
                signature=render_signature(item.tag, item.name or "", item.raw_body),
                source_span=span,
            )
        )
        return full_path

    def lookup(self, item_id: str) -> Item | None:
        if item_id in self._visited:
            return None
        item = self.crate.index.get(item_id)
        if item is None:
            # Stripped or external items are referenced but not present.
            return None
        self._visited.add(item_id)
        return item

    def walk_module(self, item: Item, parent_path: str | None) -> None:
        if parent_path is None:
            full_path = self.crate_name
        else:
            full_path = self.resolve_path(item, parent_path)
        full_path = self.emit(item, full_path, ItemKind.MODULE)

        body: ModuleBody = item.body()
        for child_id in body.items:
            child = self.crate.index.get(child_id)
            if child is None or child.tag == "impl" or not is_visible(child, inherited=False):
                continue
            child = self.lookup(child_id)
            if child is None:
                continue
            self.walk_item(child, full_path)

    def walk_item(self, item: Item, parent_path: str) -> None:
        tag = item.tag
        if tag == "module":
            self.walk_module(item, parent_path)
        elif tag in _TYPE_KINDS:
            full_path = self.emit(item, self.resolve_path(item, parent_path), _TYPE_KINDS[tag])
            body: TypeBody = item.body()
            for impl_id in body.impls:
                impl = self.lookup(impl_id)
                if impl is not None and impl.tag == "impl":
                    self.walk_impl(impl, full_path)
        elif tag == "trait":
            full_path = self.emit(item, self.resolve_path(item, parent_path), ItemKind.TRAIT)
            trait_body: TraitBody = item.body()
            self.walk_members(trait_body.items, full_path, inherited=True)
        elif tag in _LEAF_KINDS:
            self.emit(item, self.resolve_path(item, parent_path), _LEAF_KINDS[tag])
        else:
            LOGGER.debug("Not indexing %s item %s", tag, item.name or item.id)

    def walk_impl(self, impl: Item, owner_path: str) -> None:
        body: ImplBody = impl.body()
        if body.skipped:
            return
        if body.trait is not None:
            negation = "!" if body.negated else ""
            impl_path = f"{owner_path}::<impl {negation}{body.trait.display_name}>"
            members_path = impl_path
            inherited = True
        else:
            impl_path = f"{owner_path}::<impl>"
            members_path = owner_path
            inherited = False
        self.emit(impl, impl_path, ItemKind.IMPL)
        self.walk_members(body.items, members_path, inherited=inherited)

    def walk_members(self, member_ids: List[str], owner_path: str, *, inherited: bool) -> None:
        for member_id in member_ids:
            member = self.crate.index.get(member_id)
            if member is None or member.tag != "function":
                continue
            if not is_visible(member, inherited=inherited):
                continue
            member = self.lookup(member_id)
            if member is None:
                continue
            self.emit(member, f"{owner_path}::{member.name}", ItemKind.METHOD)


def normalize(dump: RawDocDump) -> List[DocItem]:
    """Convert a rustdoc dump into DocItems sorted by full path."""
    crate = parse_crate(dump.data)
    root = crate.index[crate.root]
    if root.tag != "module":
        raise MalformedDump(f"Root item {crate.root} is a {root.tag}, expected a module")

    crate_name = root.name or dump.crate_name
    walker = _Walker(crate, crate_name)
    walker.lookup(crate.root)
    walker.walk_module(root, None)

    items = sorted(walker.items, key=lambda doc_item: doc_item.full_path)
    LOGGER.info(
        "Normalized %d public items for crate %s (format version %d)",
        len(items),
        crate_name,
        crate.format_version,
    )
    return items
