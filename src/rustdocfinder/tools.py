"""Tool definitions shared by the protocol server and the command layer.

Each tool is a name, a description, a pydantic argument model and a handler
bound to a ``DocService``. Both transports dispatch through ``ToolRegistry``
so they validate arguments and raise errors identically.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from time import perf_counter
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from rustdocfinder.errors import RustDocFinderError, UnknownTool
from rustdocfinder.service import DocService

LOGGER = logging.getLogger(__name__)

PROCESS_RUST_PROJECT = "process_rust_project"
QUERY_DOCUMENTATION = "query_documentation"
GET_PROCESSED_PROJECT_LIST = "get_processed_project_list"
GET_RAW_DOCUMENTATION = "get_raw_documentation"


class _ToolArgs(BaseModel):
    model_config = ConfigDict(extra="forbid")


class ProcessRustProjectArgs(_ToolArgs):
    path: str = Field(
        description="Absolute path to the Rust project directory (containing Cargo.toml)."
    )


class QueryDocumentationArgs(_ToolArgs):
    natural_language_query: str = Field(description="The natural language query.")
    project_path: str | None = Field(
        default=None,
        description=(
            "Absolute path of a specific processed Rust project to query. "
            "When omitted, all processed projects are queried."
        ),
    )
    num_results: int = Field(default=5, ge=1, description="Number of results to return.")


class GetProcessedProjectListArgs(_ToolArgs):
    pass


class GetRawDocumentationArgs(_ToolArgs):
    item_full_path: str = Field(
        description="The full path to the Rust item (e.g. my_crate::module::MyStruct)."
    )
    project_path: str = Field(description="Absolute path of the Rust project the item belongs to.")


class ToolSpec(BaseModel):
    """Declarative tool specification for registration and validation."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str
    args_schema: type[BaseModel]
    handler: Callable[[Any], Any]

    def invoke(self, payload: Dict[str, Any] | None) -> Any:
        data = self.args_schema.model_validate(payload or {})
        return self.handler(data)

    def describe(self) -> Dict[str, Any]:
        """Tool-discovery entry (name, description, JSON schema of the arguments)."""
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.args_schema.model_json_schema(),
        }


class ToolRegistry:
    """Stores tool specs and executes them by name."""

    def __init__(self) -> None:
        self._tools: Dict[str, ToolSpec] = {}

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            raise ValueError(f"Tool already registered: {spec.name}")
        self._tools[spec.name] = spec

    def get(self, name: str) -> ToolSpec:
        spec = self._tools.get(name)
        if spec is None:
            raise UnknownTool(f"Unknown tool: {name}")
        return spec

    def specs(self) -> List[ToolSpec]:
        return list(self._tools.values())

    def describe(self) -> List[Dict[str, Any]]:
        return [spec.describe() for spec in self._tools.values()]

    def execute(self, name: str, payload: Dict[str, Any] | None = None) -> Any:
        spec = self.get(name)
        start = perf_counter()
        try:
            return spec.invoke(payload)
        finally:
            LOGGER.info("Tool %s finished in %.1f ms", name, (perf_counter() - start) * 1000.0)


def error_payload(exc: Exception) -> Dict[str, str]:
    """Transport-neutral rendering of a tool failure."""
    if isinstance(exc, ValidationError):
        return {"code": "invalid_arguments", "message": str(exc)}
    if isinstance(exc, RustDocFinderError):
        return {"code": exc.code, "message": str(exc)}
    if isinstance(exc, ValueError):
        return {"code": "invalid_arguments", "message": str(exc)}
    return {"code": "internal_error", "message": f"{type(exc).__name__}: {exc}"}


def build_tool_registry(service: DocService) -> ToolRegistry:
    """Register the four documentation tools against ``service``."""

    def _process(args: ProcessRustProjectArgs) -> str:
        return service.process_project(args.path).message()

    def _query(args: QueryDocumentationArgs) -> List[Dict[str, Any]]:
        results = service.query_documentation(
            args.natural_language_query,
            project_path=args.project_path,
            num_results=args.num_results,
        )
        return [result.to_dict() for result in results]

    def _list(_: GetProcessedProjectListArgs) -> List[str]:
        return service.processed_projects()

    def _raw(args: GetRawDocumentationArgs) -> Dict[str, Any]:
        return service.raw_documentation(args.item_full_path, args.project_path).to_dict()

    registry = ToolRegistry()
    registry.register(
        ToolSpec(
            name=PROCESS_RUST_PROJECT,
            description="Processes a Rust project to extract and embed its documentation.",
            args_schema=ProcessRustProjectArgs,
            handler=_process,
        )
    )
    registry.register(
        ToolSpec(
            name=QUERY_DOCUMENTATION,
            description="Queries the processed Rust documentation using a natural language query.",
            args_schema=QueryDocumentationArgs,
            handler=_query,
        )
    )
    registry.register(
        ToolSpec(
            name=GET_PROCESSED_PROJECT_LIST,
            description="Lists the paths of all successfully processed Rust projects.",
            args_schema=GetProcessedProjectListArgs,
            handler=_list,
        )
    )
    registry.register(
        ToolSpec(
            name=GET_RAW_DOCUMENTATION,
            description=(
                "Retrieves raw documentation for a specific Rust item from a processed project."
            ),
            args_schema=GetRawDocumentationArgs,
            handler=_raw,
        )
    )
    return registry
