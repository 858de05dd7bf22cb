"""Command line interface for RustDocFinder."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from rustdocfinder.config import AppConfig
from rustdocfinder.errors import RustDocFinderError
from rustdocfinder.service import DocService
from rustdocfinder.tools import build_tool_registry

console = Console()
app = typer.Typer(help="RustDocFinder - semantic search over Rust project documentation")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(name)s: %(message)s")


def _build_service(
    *,
    model: str,
    toolchain: str,
    timeout: float,
    keep_dumps: bool = False,
    host: str | None = None,
    port: int | None = None,
) -> DocService:
    defaults = AppConfig()
    config = AppConfig(
        model_name=model,
        toolchain=toolchain,
        extraction_timeout=timeout,
        keep_dumps=keep_dumps,
        host=host or defaults.host,
        port=port or defaults.port,
    )
    return DocService(config)


def _process_or_exit(service: DocService, path: Path) -> None:
    try:
        report = service.process_project(path)
    except RustDocFinderError as exc:
        console.print(f"[red]Failed to process {path}:[/red] {exc}")
        raise typer.Exit(code=1) from exc
    console.print(f"[green]{report.message()}[/green]")


@app.command()
def process(
    path: Path = typer.Argument(
        ..., help="Rust project root (containing Cargo.toml).", resolve_path=True
    ),
    model: str = typer.Option(AppConfig().model_name, help="Sentence-transformer model name"),
    toolchain: str = typer.Option(AppConfig().toolchain, help="Rust toolchain for rustdoc JSON"),
    timeout: float = typer.Option(AppConfig().extraction_timeout, help="Build timeout (seconds)"),
    keep_dumps: bool = typer.Option(False, "--keep-dumps", help="Keep a copy of the rustdoc JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Extract and embed the documentation of one project."""
    _setup_logging(verbose)
    service = _build_service(
        model=model, toolchain=toolchain, timeout=timeout, keep_dumps=keep_dumps
    )
    try:
        _process_or_exit(service, path)
    finally:
        service.shutdown()


@app.command()
def search(
    query: str = typer.Argument(..., help="Natural language query"),
    projects: List[Path] = typer.Option(
        ...,
        "--project",
        "-p",
        help="Project to process before searching (repeatable)",
        resolve_path=True,
    ),
    num_results: int = typer.Option(AppConfig().default_num_results, "--num-results", "-n", min=1),
    model: str = typer.Option(AppConfig().model_name, help="Sentence-transformer model name"),
    toolchain: str = typer.Option(AppConfig().toolchain, help="Rust toolchain for rustdoc JSON"),
    timeout: float = typer.Option(AppConfig().extraction_timeout, help="Build timeout (seconds)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Process projects, then run a semantic query across them."""
    _setup_logging(verbose)
    service = _build_service(model=model, toolchain=toolchain, timeout=timeout)
    try:
        for path in projects:
            _process_or_exit(service, path)
        try:
            results = service.query_documentation(query, num_results=num_results)
        except RustDocFinderError as exc:
            console.print(f"[red]Query failed:[/red] {exc}")
            raise typer.Exit(code=1) from exc
    finally:
        service.shutdown()

    if not results:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Score")
    table.add_column("Item")
    table.add_column("Kind")
    table.add_column("Project")
    table.add_column("Snippet")
    for result in results:
        snippet = result.description_snippet.replace("\n", " ")
        table.add_row(
            f"{result.score:.4f}",
            result.item_full_path,
            result.kind.value,
            result.project_path,
            snippet[:180],
        )
    console.print(table)


@app.command()
def tools() -> None:
    """List the tools exposed by the protocol server."""
    service = DocService()
    try:
        registry = build_tool_registry(service)
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Tool")
        table.add_column("Arguments")
        table.add_column("Description")
        for spec in registry.specs():
            arguments = ", ".join(spec.args_schema.model_fields) or "-"
            table.add_row(spec.name, arguments, spec.description)
        console.print(table)
    finally:
        service.shutdown()


@app.command()
def serve(
    host: str = typer.Option(AppConfig().host, help="Host interface"),
    port: int = typer.Option(AppConfig().port, help="Server port"),
    projects: Optional[List[Path]] = typer.Option(
        None,
        "--project",
        "-p",
        help="Project to process in the background at startup",
        resolve_path=True,
    ),
    model: str = typer.Option(AppConfig().model_name, help="Sentence-transformer model name"),
    toolchain: str = typer.Option(AppConfig().toolchain, help="Rust toolchain for rustdoc JSON"),
    timeout: float = typer.Option(AppConfig().extraction_timeout, help="Build timeout (seconds)"),
    keep_dumps: bool = typer.Option(False, "--keep-dumps", help="Keep a copy of the rustdoc JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Start the tool protocol server."""
    from rustdocfinder.web.app import serve as run_server

    _setup_logging(verbose)
    service = _build_service(
        model=model,
        toolchain=toolchain,
        timeout=timeout,
        keep_dumps=keep_dumps,
        host=host,
        port=port,
    )
    for path in projects or []:
        console.print(f"Processing {path} in the background...")
        service.submit_process(path)

    console.print(f"Starting tool server on http://{host}:{port}/mcp")
    run_server(service, host=host, port=port)
