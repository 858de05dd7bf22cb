"""In-process command layer for a desktop UI.

Offers the same four operations as the protocol server, dispatched through
the same tool registry, so argument validation and errors match exactly.
"""

from __future__ import annotations

from concurrent.futures import Future
from typing import Any, Dict, List

from rustdocfinder.service import DocService
from rustdocfinder.tools import (
    GET_PROCESSED_PROJECT_LIST,
    GET_RAW_DOCUMENTATION,
    PROCESS_RUST_PROJECT,
    QUERY_DOCUMENTATION,
    ToolRegistry,
    build_tool_registry,
)


class Commands:
    def __init__(self, service: DocService, tools: ToolRegistry | None = None) -> None:
        self.service = service
        self.tools = tools or build_tool_registry(service)

    def invoke_process_rust_project(self, path: str) -> str:
        return self.tools.execute(PROCESS_RUST_PROJECT, {"path": path})

    def invoke_process_rust_project_in_background(self, path: str) -> "Future[str]":
        """Same as ``invoke_process_rust_project`` but returns immediately."""
        return self.service.submit(self.invoke_process_rust_project, path)

    def invoke_query_documentation(
        self,
        natural_language_query: str,
        project_path: str | None = None,
        num_results: int | None = None,
    ) -> List[Dict[str, Any]]:
        payload: Dict[str, Any] = {
            "natural_language_query": natural_language_query,
            "project_path": project_path,
        }
        if num_results is not None:
            payload["num_results"] = num_results
        return self.tools.execute(QUERY_DOCUMENTATION, payload)

    def get_processed_project_list(self) -> List[str]:
        return self.tools.execute(GET_PROCESSED_PROJECT_LIST, {})

    def get_raw_documentation(self, item_full_path: str, project_path: str) -> Dict[str, Any]:
        return self.tools.execute(
            GET_RAW_DOCUMENTATION,
            {"item_full_path": item_full_path, "project_path": project_path},
        )
