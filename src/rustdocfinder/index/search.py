"""Semantic search across processed projects."""

from __future__ import annotations

import logging
from typing import List

from rustdocfinder.embedding.encoder import EmbeddingService
from rustdocfinder.errors import EmbeddingError, EmptyQuery, QueryEmbeddingFailed, UnknownProject
from rustdocfinder.index.registry import ProjectRegistry, project_key
from rustdocfinder.models import QueryResult

LOGGER = logging.getLogger(__name__)

DEFAULT_SNIPPET_CHARS = 300


def make_snippet(description: str, max_chars: int = DEFAULT_SNIPPET_CHARS) -> str:
    """Bounded prefix of a description."""
    return description[:max_chars]


class QueryEngine:
    """Embeds a query and ranks items of one or all indexed projects."""

    def __init__(
        self,
        embedder: EmbeddingService,
        registry: ProjectRegistry,
        *,
        snippet_chars: int = DEFAULT_SNIPPET_CHARS,
    ) -> None:
        self.embedder = embedder
        self.registry = registry
        self.snippet_chars = snippet_chars

    def query(
        self,
        text: str,
        project_filter: str | None = None,
        limit: int = 5,
    ) -> List[QueryResult]:
        if not text or not text.strip():
            raise EmptyQuery("Query text is empty")
        if limit < 1:
            raise ValueError("limit must be at least 1")

        if project_filter is not None:
            key = project_key(project_filter)
            index = self.registry.index_of(key)
            if index is None:
                raise UnknownProject(f"Project '{project_filter}' has not been processed")
            targets = [(key, index)]
        else:
            targets = self.registry.indexed_projects()

        try:
            query_vector = self.embedder.embed_one(text)
        except EmbeddingError as exc:
            raise QueryEmbeddingFailed(f"Failed to embed query: {exc}") from exc

        candidates: List[QueryResult] = []
        for path, index in targets:
            # The global top ``limit`` is always contained in the per-project top ``limit``.
            for item, score in index.scan(query_vector, limit):
                candidates.append(
                    QueryResult(
                        project_path=path,
                        item_full_path=item.full_path,
                        kind=item.kind,
                        description_snippet=make_snippet(item.description, self.snippet_chars),
                        score=score,
                    )
                )

        candidates.sort(
            key=lambda result: (-result.score, result.project_path, result.item_full_path)
        )
        results = candidates[:limit]
        LOGGER.info(
            "Found %d results for query %r across %d project(s)", len(results), text, len(targets)
        )
        return results
