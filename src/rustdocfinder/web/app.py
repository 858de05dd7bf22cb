"""FastAPI application exposing the documentation tools to external callers.

``POST /mcp`` speaks JSON-RPC 2.0 in the Model Context Protocol shape
(``initialize``, ``tools/list``, ``tools/call``). ``/tools`` is a plain JSON
mirror of the same registry for scripts and debugging.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List

from fastapi import Body, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError

from rustdocfinder import __version__
from rustdocfinder.errors import RustDocFinderError, UnknownTool
from rustdocfinder.service import DocService
from rustdocfinder.tools import ToolRegistry, build_tool_registry, error_payload

LOGGER = logging.getLogger(__name__)

PROTOCOL_VERSION = "2025-06-18"
SERVER_NAME = "RustDoc LLM MCP Server"
SERVER_INSTRUCTIONS = (
    "This server provides tools for LLMs to search and read the documentation "
    "of local Rust projects."
)

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

_HTTP_STATUS_BY_CODE = {
    "invalid_arguments": 422,
    "not_a_project": 400,
    "empty_query": 400,
    "empty_input": 400,
    "not_found": 404,
    "unknown_project": 404,
    "unknown_tool": 404,
    "already_processing": 409,
    "toolchain_missing": 503,
    "timeout": 504,
}


class JsonRpcError(Exception):
    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


def _rpc_result(request_id: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def _rpc_error(request_id: Any, code: int, message: str) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}


def tool_result_content(value: Any) -> Dict[str, Any]:
    """Render a successful tool return value as a ``tools/call`` result."""
    if isinstance(value, str):
        return {"content": [{"type": "text", "text": value}], "isError": False}
    return {
        "content": [{"type": "text", "text": json.dumps(value, ensure_ascii=False)}],
        "structuredContent": {"result": value},
        "isError": False,
    }


def tool_error_content(exc: Exception) -> Dict[str, Any]:
    payload = error_payload(exc)
    return {
        "content": [{"type": "text", "text": f"[{payload['code']}] {payload['message']}"}],
        "isError": True,
    }


async def _call_tool(tools: ToolRegistry, params: Dict[str, Any]) -> Dict[str, Any]:
    name = params.get("name")
    if not isinstance(name, str):
        raise JsonRpcError(INVALID_PARAMS, "tools/call requires a tool name")
    arguments = params.get("arguments") or {}
    if not isinstance(arguments, dict):
        raise JsonRpcError(INVALID_PARAMS, "tools/call arguments must be an object")
    try:
        value = await asyncio.to_thread(tools.execute, name, arguments)
    except UnknownTool as exc:
        raise JsonRpcError(INVALID_PARAMS, str(exc)) from exc
    except ValidationError as exc:
        raise JsonRpcError(INVALID_PARAMS, f"Invalid arguments for {name}: {exc}") from exc
    except RustDocFinderError as exc:
        LOGGER.warning("Tool %s failed: %s", name, exc)
        return tool_error_content(exc)
    except Exception as exc:
        LOGGER.exception("Tool %s crashed", name)
        return tool_error_content(exc)
    return tool_result_content(value)


async def _dispatch(tools: ToolRegistry, method: str, params: Dict[str, Any]) -> Any:
    if method == "initialize":
        return {
            "protocolVersion": params.get("protocolVersion") or PROTOCOL_VERSION,
            "capabilities": {"tools": {"listChanged": False}},
            "serverInfo": {"name": SERVER_NAME, "version": __version__},
            "instructions": SERVER_INSTRUCTIONS,
        }
    if method == "ping":
        return {}
    if method == "tools/list":
        return {"tools": tools.describe()}
    if method == "tools/call":
        return await _call_tool(tools, params)
    raise JsonRpcError(METHOD_NOT_FOUND, f"Method not found: {method}")


async def handle_message(tools: ToolRegistry, message: Any) -> Dict[str, Any] | None:
    """Handle one JSON-RPC message; returns None for notifications."""
    if not isinstance(message, dict) or message.get("jsonrpc") != "2.0":
        return _rpc_error(None, INVALID_REQUEST, "Invalid JSON-RPC 2.0 request")
    request_id = message.get("id")
    method = message.get("method")
    is_notification = "id" not in message
    if not isinstance(method, str):
        if is_notification:
            return None
        return _rpc_error(request_id, INVALID_REQUEST, "Request has no method")

    params = message.get("params") or {}
    try:
        if not isinstance(params, dict):
            raise JsonRpcError(INVALID_PARAMS, "params must be an object")
        if method.startswith("notifications/"):
            LOGGER.debug("Notification %s", method)
            return None
        result = await _dispatch(tools, method, params)
    except JsonRpcError as exc:
        return None if is_notification else _rpc_error(request_id, exc.code, exc.message)
    except Exception as exc:
        LOGGER.exception("Unhandled error for method %s", method)
        return None if is_notification else _rpc_error(request_id, INTERNAL_ERROR, str(exc))
    return None if is_notification else _rpc_result(request_id, result)


def create_app(service: DocService, tools: ToolRegistry | None = None) -> FastAPI:
    """Build the protocol server around an existing ``DocService``."""
    tools = tools or build_tool_registry(service)
    app = FastAPI(title="RustDocFinder", version=__version__)
    app.state.service = service
    app.state.tools = tools

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        service.shutdown()

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {
            "status": "ok",
            "processed_projects": len(service.processed_projects()),
            "model_loaded": service.embedder.is_loaded,
        }

    @app.post("/mcp")
    async def mcp_endpoint(request: Request) -> Response:
        try:
            payload = json.loads(await request.body())
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            return JSONResponse(_rpc_error(None, PARSE_ERROR, f"Parse error: {exc}"))

        if isinstance(payload, list):
            if not payload:
                return JSONResponse(_rpc_error(None, INVALID_REQUEST, "Empty batch"))
            responses = [await handle_message(tools, message) for message in payload]
            replies = [reply for reply in responses if reply is not None]
            return JSONResponse(replies) if replies else Response(status_code=202)

        reply = await handle_message(tools, payload)
        if reply is None:
            return Response(status_code=202)
        return JSONResponse(reply)

    @app.get("/tools")
    async def list_tools() -> Dict[str, List[Dict[str, Any]]]:
        return {"tools": tools.describe()}

    @app.post("/tools/{name}")
    async def call_tool(
        name: str,
        arguments: Dict[str, Any] | None = Body(default=None),
    ) -> Dict[str, Any]:
        try:
            value = await asyncio.to_thread(tools.execute, name, arguments or {})
        except (RustDocFinderError, ValidationError, ValueError) as exc:
            payload = error_payload(exc)
            status = _HTTP_STATUS_BY_CODE.get(payload["code"], 500)
            raise HTTPException(status_code=status, detail=payload) from exc
        return {"result": value}

    return app


def serve(service: DocService, *, host: str, port: int) -> None:
    """Run the protocol server until interrupted."""
    import uvicorn

    LOGGER.info("Tool protocol server listening on http://%s:%d/mcp", host, port)
    uvicorn.run(create_app(service), host=host, port=port, reload=False, log_level="info")
