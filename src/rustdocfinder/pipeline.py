"""Project processing pipeline: extract -> normalize -> embed -> swap index."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Protocol

from rustdocfinder.embedding.encoder import EmbeddingService
from rustdocfinder.errors import RustDocFinderError
from rustdocfinder.extraction.normalizer import normalize
from rustdocfinder.extraction.rustdoc import RawDocDump
from rustdocfinder.index.project_index import ProjectIndex
from rustdocfinder.index.registry import ProjectRegistry
from rustdocfinder.models import DocItem

LOGGER = logging.getLogger(__name__)


class Extractor(Protocol):
    def extract(self, project_root: Path) -> RawDocDump:
        ...


@dataclass(slots=True)
class ProcessingReport:
    project_path: str
    crate_name: str
    item_count: int
    generation: int
    elapsed_seconds: float
    total_projects: int

    def message(self) -> str:
        return (
            f"Successfully processed project {self.project_path} "
            f"(crate {self.crate_name}) and embedded {self.item_count} items "
            f"in {self.elapsed_seconds:.1f}s. Total processed projects: {self.total_projects}."
        )


class ProjectProcessor:
    """Runs the whole pipeline for one project under its processing token.

    Nothing is installed unless every stage succeeds; on failure the project
    is marked failed, its previous index is dropped, and the error is
    re-raised unchanged. The previous index keeps serving queries while the
    run is in progress.
    """

    def __init__(
        self,
        extractor: Extractor,
        embedder: EmbeddingService,
        registry: ProjectRegistry,
        *,
        normalizer: Callable[[RawDocDump], List[DocItem]] = normalize,
    ) -> None:
        self.extractor = extractor
        self.embedder = embedder
        self.registry = registry
        self.normalizer = normalizer

    def process(self, path: str | Path) -> ProcessingReport:
        started = time.perf_counter()
        with self.registry.processing(path) as key:
            try:
                dump = self.extractor.extract(Path(key))
                items = self.normalizer(dump)
                LOGGER.info("Embedding %d items for %s", len(items), key)
                embeddings = self.embedder.embed_batch([item.embedding_text() for item in items])
                index = ProjectIndex.build(items, embeddings)
            except RustDocFinderError as exc:
                LOGGER.error("Processing %s failed: %s", key, exc)
                self.registry.mark_failed(key, str(exc))
                raise
            except Exception as exc:
                LOGGER.exception("Unexpected failure while processing %s", key)
                self.registry.mark_failed(key, f"{type(exc).__name__}: {exc}")
                raise

            generation = self.registry.replace(key, index, crate_name=dump.crate_name)

        report = ProcessingReport(
            project_path=key,
            crate_name=dump.crate_name,
            item_count=len(index),
            generation=generation,
            elapsed_seconds=time.perf_counter() - started,
            total_projects=len(self.registry.processed_paths()),
        )
        LOGGER.info("%s", report.message())
        return report
