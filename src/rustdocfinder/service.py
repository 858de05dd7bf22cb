"""Application state shared by the protocol server and the command layer."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, List, TypeVar

from rustdocfinder.config import AppConfig
from rustdocfinder.embedding.encoder import EmbeddingConfig, EmbeddingService
from rustdocfinder.errors import NotFound
from rustdocfinder.extraction.rustdoc import RustdocExtractor
from rustdocfinder.index.registry import ProjectRegistry, project_key
from rustdocfinder.index.search import QueryEngine
from rustdocfinder.models import DocItem, Project, QueryResult
from rustdocfinder.pipeline import Extractor, ProcessingReport, ProjectProcessor

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class DocService:
    """Explicitly constructed application state.

    One instance owns the project registry, the embedding model (loaded on
    first use) and a worker pool for processing jobs. Every transport calls
    the same four operations on it.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        embedder: EmbeddingService | None = None,
        extractor: Extractor | None = None,
        registry: ProjectRegistry | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self.registry = registry or ProjectRegistry()
        self.embedder = embedder or EmbeddingService(
            EmbeddingConfig(
                model_name=self.config.model_name,
                batch_size=self.config.embed_batch_size,
            ),
            max_batch_items=self.config.max_batch_items,
        )
        self.extractor = extractor or RustdocExtractor(
            toolchain=self.config.toolchain,
            timeout=self.config.extraction_timeout,
            dump_dir=self.config.resolve_dump_dir(Path.cwd()),
        )
        self.processor = ProjectProcessor(self.extractor, self.embedder, self.registry)
        self.engine = QueryEngine(
            self.embedder, self.registry, snippet_chars=self.config.snippet_chars
        )
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.max_workers, thread_name_prefix="rustdocfinder-process"
        )

    def add_project(self, path: str | Path) -> Project:
        return self.registry.add(path)

    def projects(self) -> List[Project]:
        return self.registry.projects()

    def process_project(self, path: str | Path) -> ProcessingReport:
        """Run the pipeline on the calling thread."""
        return self.processor.process(path)

    def submit(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> "Future[T]":
        """Run ``fn`` on the background worker pool."""
        return self._executor.submit(fn, *args, **kwargs)

    def submit_process(self, path: str | Path) -> "Future[ProcessingReport]":
        """Run the pipeline on a background worker."""
        LOGGER.info("Queued processing of %s", project_key(path))
        return self.submit(self.processor.process, path)

    def query_documentation(
        self,
        text: str,
        project_path: str | None = None,
        num_results: int | None = None,
    ) -> List[QueryResult]:
        limit = num_results if num_results is not None else self.config.default_num_results
        return self.engine.query(text, project_filter=project_path, limit=limit)

    def processed_projects(self) -> List[str]:
        return self.registry.processed_paths()

    def raw_documentation(self, item_full_path: str, project_path: str) -> DocItem:
        index = self.registry.index_of(project_path)
        if index is None:
            raise NotFound(f"Project '{project_path}' has not been processed or was not found.")
        item = index.get(item_full_path)
        if item is None:
            raise NotFound(
                f"Item '{item_full_path}' not found in project '{project_key(project_path)}'"
            )
        return item

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=False)
