"""Thread-safe registry of projects keyed by absolute root path."""

from __future__ import annotations

import dataclasses
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Set, Tuple

from rustdocfinder.errors import AlreadyProcessing
from rustdocfinder.index.project_index import ProjectIndex
from rustdocfinder.models import Project, ProjectStatus

LOGGER = logging.getLogger(__name__)


def project_key(path: str | Path) -> str:
    """Canonical registry key for a project root."""
    return str(Path(path).expanduser().resolve())


class ProjectRegistry:
    """Maps project paths to their state.

    All reads return snapshots taken under the lock, and every mutation is a
    single critical section, so readers never see a half-updated project. The
    processing token for a path is held for a whole pipeline run; the lock is
    only held for the bookkeeping around it.
    """

    def __init__(self) -> None:
        self._projects: Dict[str, Project] = {}
        self._in_flight: Set[str] = set()
        self._lock = threading.Lock()

    def _ensure(self, key: str) -> Project:
        project = self._projects.get(key)
        if project is None:
            project = Project(path=key)
            self._projects[key] = project
            LOGGER.info("Registered project %s", key)
        return project

    def add(self, path: str | Path) -> Project:
        key = project_key(path)
        with self._lock:
            return dataclasses.replace(self._ensure(key))

    def get(self, path: str | Path) -> Project | None:
        key = project_key(path)
        with self._lock:
            project = self._projects.get(key)
            return dataclasses.replace(project) if project is not None else None

    def projects(self) -> List[Project]:
        with self._lock:
            return [dataclasses.replace(self._projects[key]) for key in sorted(self._projects)]

    def begin_processing(self, path: str | Path) -> str:
        key = project_key(path)
        with self._lock:
            if key in self._in_flight:
                raise AlreadyProcessing(f"Project {key} is already being processed")
            project = self._ensure(key)
            project.status = ProjectStatus.PROCESSING
            project.failure_reason = None
            self._in_flight.add(key)
        return key

    def end_processing(self, key: str) -> None:
        with self._lock:
            self._in_flight.discard(key)
            project = self._projects.get(key)
            if project is not None and project.status is ProjectStatus.PROCESSING:
                # Released without an outcome being recorded.
                has_index = project.index is not None
                project.status = ProjectStatus.PROCESSED if has_index else ProjectStatus.IDLE

    @contextmanager
    def processing(self, path: str | Path) -> Iterator[str]:
        """Hold the per-project processing token for the duration of the block."""
        key = self.begin_processing(path)
        try:
            yield key
        finally:
            self.end_processing(key)

    def replace(
        self, path: str | Path, index: ProjectIndex, *, crate_name: str | None = None
    ) -> int:
        """Install a new index generation; returns its generation number."""
        key = project_key(path)
        with self._lock:
            project = self._ensure(key)
            project.index = index
            project.generation += 1
            project.status = ProjectStatus.PROCESSED
            project.failure_reason = None
            if crate_name is not None:
                project.crate_name = crate_name
            return project.generation

    def mark_failed(self, path: str | Path, reason: str) -> None:
        """Record a failed run. A failed project has no queryable index."""
        key = project_key(path)
        with self._lock:
            project = self._ensure(key)
            project.status = ProjectStatus.FAILED
            project.failure_reason = reason
            project.index = None

    def index_of(self, path: str | Path) -> ProjectIndex | None:
        key = project_key(path)
        with self._lock:
            project = self._projects.get(key)
            return project.index if project is not None else None

    def indexed_projects(self) -> List[Tuple[str, ProjectIndex]]:
        """Every project that currently has a queryable index, ordered by path."""
        with self._lock:
            return [
                (key, self._projects[key].index)
                for key in sorted(self._projects)
                if self._projects[key].index is not None
            ]

    def processed_paths(self) -> List[str]:
        with self._lock:
            return [
                key
                for key in sorted(self._projects)
                if self._projects[key].status is ProjectStatus.PROCESSED
            ]
