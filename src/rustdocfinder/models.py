"""Core RustDocFinder data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict

if TYPE_CHECKING:
    from rustdocfinder.index.project_index import ProjectIndex


class ItemKind(str, Enum):
    """Closed set of documented entity kinds."""

    FUNCTION = "function"
    METHOD = "method"
    STRUCT = "struct"
    ENUM = "enum"
    UNION = "union"
    TRAIT = "trait"
    TRAIT_ALIAS = "trait_alias"
    IMPL = "impl"
    MODULE = "module"
    TYPE_ALIAS = "type_alias"
    MACRO = "macro"
    PROC_MACRO = "proc_macro"
    CONSTANT = "constant"
    STATIC = "static"


class ProjectStatus(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class SourceSpan:
    """File and 1-based line where an item is defined."""

    file: str
    line: int

    def __str__(self) -> str:
        return f"{self.file}:{self.line}"


@dataclass(frozen=True, slots=True)
class DocItem:
    """One documented code entity of a crate."""

    full_path: str
    kind: ItemKind
    name: str
    crate_name: str
    description: str = ""
    signature: str | None = None
    source_span: SourceSpan | None = None

    def embedding_text(self) -> str:
        """Text fed to the embedding model for this item."""
        if self.description.strip():
            return self.description
        if self.signature and self.signature.strip():
            return self.signature
        return self.full_path

    def to_dict(self) -> Dict[str, Any]:
        return {
            "full_path": self.full_path,
            "kind": self.kind.value,
            "name": self.name,
            "crate_name": self.crate_name,
            "signature": self.signature,
            "description": self.description,
            "source_span": (
                {"file": self.source_span.file, "line": self.source_span.line}
                if self.source_span
                else None
            ),
        }


@dataclass(frozen=True, slots=True)
class QueryResult:
    project_path: str
    item_full_path: str
    kind: ItemKind
    description_snippet: str
    score: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project_path": self.project_path,
            "item_full_path": self.item_full_path,
            "kind": self.kind.value,
            "description_snippet": self.description_snippet,
            "score": self.score,
        }


@dataclass(slots=True)
class Project:
    """A registered project root and its processing state.

    ``index`` keeps the last successfully built generation; it survives a
    reprocess until the new generation is swapped in.
    """

    path: str
    status: ProjectStatus = ProjectStatus.IDLE
    failure_reason: str | None = None
    index: "ProjectIndex | None" = None
    generation: int = 0
    crate_name: str | None = None
    metadata: Dict[str, Any] = field(default_factory=dict)
