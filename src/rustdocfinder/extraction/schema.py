"""Pydantic models for the subset of the rustdoc JSON format we consume.

Every rustdoc item carries an ``inner`` object with exactly one key naming the
item kind. That key is the discriminator: it is checked against the closed set
of tags known for the supported format versions, and the structural fields the
normalizer walks (child ids, impl targets) are validated per kind.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Optional, Type

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError, field_validator

from rustdocfinder.errors import MalformedDump

MIN_FORMAT_VERSION = 28
MAX_FORMAT_VERSION = 60


def _coerce_id(value: Any) -> Any:
    # Ids are strings up to format 39 and integers afterwards.
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


ItemId = Annotated[str, BeforeValidator(_coerce_id)]


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class Span(_Lenient):
    filename: str
    begin: List[int]
    end: Optional[List[int]] = None


class ItemSummary(_Lenient):
    crate_id: int
    path: List[str]
    kind: str


class ModuleBody(_Lenient):
    is_crate: bool = False
    items: List[ItemId] = Field(default_factory=list)
    is_stripped: bool = False


class TypeBody(_Lenient):
    """Struct, enum and union bodies: only their impl list is walked."""

    impls: List[ItemId] = Field(default_factory=list)


class TraitBody(_Lenient):
    is_auto: bool = False
    is_unsafe: bool = False
    items: List[ItemId] = Field(default_factory=list)


class PathRef(_Lenient):
    id: Optional[ItemId] = None
    path: Optional[str] = None
    name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.path or self.name or "_"


class ImplBody(_Lenient):
    trait: Optional[PathRef] = None
    for_: Any = Field(default=None, alias="for")
    items: List[ItemId] = Field(default_factory=list)
    is_synthetic: bool = False
    synthetic: bool = False
    is_negative: bool = False
    negative: bool = False
    blanket_impl: Any = None

    @property
    def skipped(self) -> bool:
        return bool(self.is_synthetic or self.synthetic or self.blanket_impl is not None)

    @property
    def negated(self) -> bool:
        return self.is_negative or self.negative


class OpaqueBody(_Lenient):
    """Kinds whose body is only used for rendering."""


#: Tag -> body model. Membership defines the closed set of recognized tags.
BODY_MODELS: Dict[str, Type[BaseModel] | None] = {
    "module": ModuleBody,
    "extern_crate": OpaqueBody,
    "use": OpaqueBody,
    "import": OpaqueBody,
    "union": TypeBody,
    "struct": TypeBody,
    "struct_field": None,
    "enum": TypeBody,
    "variant": OpaqueBody,
    "function": OpaqueBody,
    "trait": TraitBody,
    "trait_alias": OpaqueBody,
    "impl": ImplBody,
    "type_alias": OpaqueBody,
    "typedef": OpaqueBody,
    "opaque_ty": OpaqueBody,
    "constant": OpaqueBody,
    "static": OpaqueBody,
    "extern_type": None,
    "foreign_type": None,
    "macro": None,
    "proc_macro": OpaqueBody,
    "primitive": OpaqueBody,
    "assoc_const": OpaqueBody,
    "assoc_type": OpaqueBody,
}


class Item(_Lenient):
    id: ItemId
    crate_id: int = 0
    name: Optional[str] = None
    span: Optional[Span] = None
    visibility: Any = "default"
    docs: Optional[str] = None
    inner: Dict[str, Any]

    @field_validator("inner")
    @classmethod
    def _single_known_tag(cls, value: Dict[str, Any]) -> Dict[str, Any]:
        if len(value) != 1:
            raise ValueError(f"item inner must have exactly one kind tag, got {sorted(value)}")
        tag = next(iter(value))
        if tag not in BODY_MODELS:
            raise ValueError(f"unknown item kind tag: {tag!r}")
        return value

    @property
    def tag(self) -> str:
        return next(iter(self.inner))

    @property
    def raw_body(self) -> Any:
        return self.inner[self.tag]

    def body(self) -> Any:
        """Validate and return the structural body for this item's kind."""
        model = BODY_MODELS[self.tag]
        raw = self.raw_body
        if model is None or not isinstance(raw, dict):
            return raw
        try:
            return model.model_validate(raw)
        except ValidationError as exc:
            raise MalformedDump(f"Invalid {self.tag} body for item {self.id}: {exc}") from exc


class RustdocCrate(_Lenient):
    root: ItemId
    crate_version: Optional[str] = None
    includes_private: bool = False
    format_version: int
    index: Dict[ItemId, Item]
    paths: Dict[ItemId, ItemSummary] = Field(default_factory=dict)

    @field_validator("format_version")
    @classmethod
    def _supported_version(cls, value: int) -> int:
        if not MIN_FORMAT_VERSION <= value <= MAX_FORMAT_VERSION:
            raise ValueError(
                f"unsupported rustdoc JSON format_version {value} "
                f"(supported: {MIN_FORMAT_VERSION}-{MAX_FORMAT_VERSION})"
            )
        return value


def parse_crate(data: Dict[str, Any]) -> RustdocCrate:
    """Validate a raw rustdoc JSON document, raising MalformedDump on any mismatch."""
    if "format_version" not in data:
        raise MalformedDump("rustdoc JSON has no format_version field")
    try:
        crate = RustdocCrate.model_validate(data)
    except ValidationError as exc:
        raise MalformedDump(f"Unrecognized rustdoc JSON: {exc}") from exc
    if crate.root not in crate.index:
        raise MalformedDump(f"Root item {crate.root} missing from index")
    return crate
