"""Tests for the extract -> normalize -> embed -> swap pipeline."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from conftest import EXPECTED_PATHS, BlockingExtractor, StaticExtractor, make_embedding_service
from rustdocfinder.errors import (
    AlreadyProcessing,
    BuildFailed,
    EmptyInput,
    MalformedDump,
    NotAProject,
    UnknownProject,
)
from rustdocfinder.extraction.normalizer import normalize
from rustdocfinder.extraction.rustdoc import RawDocDump, RustdocExtractor
from rustdocfinder.index.registry import ProjectRegistry, project_key
from rustdocfinder.index.search import QueryEngine
from rustdocfinder.models import DocItem, ItemKind, ProjectStatus
from rustdocfinder.pipeline import ProcessingReport, ProjectProcessor


def _processor(extractor, registry: ProjectRegistry | None = None, **kwargs) -> ProjectProcessor:
    return ProjectProcessor(extractor, make_embedding_service(), registry or ProjectRegistry(), **kwargs)


class TestProcessingReport:
    def test_message(self) -> None:
        report = ProcessingReport(
            project_path="/work/foo",
            crate_name="foo",
            item_count=11,
            generation=1,
            elapsed_seconds=2.04,
            total_projects=3,
        )
        assert report.message() == (
            "Successfully processed project /work/foo (crate foo) and embedded 11 items "
            "in 2.0s. Total processed projects: 3."
        )


class TestProjectProcessor:
    """Tests for ProjectProcessor."""

    def test_success_installs_index(self, sample_dump: RawDocDump, tmp_path: Path) -> None:
        processor = _processor(StaticExtractor(sample_dump))

        report = processor.process(tmp_path / "foo")

        key = project_key(tmp_path / "foo")
        assert report.project_path == key
        assert report.crate_name == "foo"
        assert report.item_count == len(EXPECTED_PATHS)
        assert report.generation == 1
        assert report.total_projects == 1
        project = processor.registry.get(key)
        assert project.status is ProjectStatus.PROCESSED
        assert project.crate_name == "foo"
        assert processor.registry.index_of(key).get("foo::bar").description == "Adds two numbers."

    def test_extractor_receives_canonical_path(self, sample_dump: RawDocDump, tmp_path: Path) -> None:
        extractor = StaticExtractor(sample_dump)
        _processor(extractor).process(tmp_path / "x" / ".." / "foo")

        assert extractor.calls == [Path(project_key(tmp_path / "foo"))]

    def test_every_item_embedded_once(self, sample_dump: RawDocDump, tmp_path: Path) -> None:
        processor = _processor(StaticExtractor(sample_dump))
        processor.process(tmp_path / "foo")

        calls = processor.embedder._get_model().calls
        assert sum(len(call) for call in calls) == len(EXPECTED_PATHS)

    def test_reprocess_replaces_generation(self, sample_dump: RawDocDump, tmp_path: Path) -> None:
        processor = _processor(StaticExtractor(sample_dump))

        first = processor.process(tmp_path / "foo")
        second = processor.process(tmp_path / "foo")

        assert (first.generation, second.generation) == (1, 2)
        assert second.total_projects == 1

    def test_not_a_project(self, tmp_path: Path) -> None:
        """A directory without Cargo.toml fails before anything is built."""
        processor = _processor(RustdocExtractor())

        with pytest.raises(NotAProject):
            processor.process(tmp_path / "does" / "not" / "exist")

        project = processor.registry.get(tmp_path / "does" / "not" / "exist")
        assert project.status is ProjectStatus.FAILED
        assert project.index is None
        assert processor.registry.processed_paths() == []

    def test_failed_reprocess_drops_previous_index(
        self, sample_dump: RawDocDump, tmp_path: Path
    ) -> None:
        """Should leave the project unqueryable once a reprocess fails."""
        registry = ProjectRegistry()
        embedder = make_embedding_service()
        ProjectProcessor(StaticExtractor(sample_dump), embedder, registry).process(tmp_path / "foo")

        failing = _processor(StaticExtractor(error=BuildFailed("does not compile")), registry)
        with pytest.raises(BuildFailed):
            failing.process(tmp_path / "foo")

        project = registry.get(tmp_path / "foo")
        assert project.status is ProjectStatus.FAILED
        assert "does not compile" in project.failure_reason
        assert registry.index_of(tmp_path / "foo") is None
        assert registry.processed_paths() == []

        engine = QueryEngine(embedder, registry)
        assert engine.query("add two integers") == []
        with pytest.raises(UnknownProject):
            engine.query("add two integers", project_filter=str(tmp_path / "foo"))

    def test_previous_index_queryable_during_reprocess(
        self, sample_dump: RawDocDump, tmp_path: Path
    ) -> None:
        """Should keep serving the old generation until the new one is swapped in."""
        registry = ProjectRegistry()
        _processor(StaticExtractor(sample_dump), registry).process(tmp_path / "foo")
        previous = registry.index_of(tmp_path / "foo")

        extractor = BlockingExtractor(sample_dump)
        thread = threading.Thread(target=_processor(extractor, registry).process, args=(tmp_path / "foo",))
        thread.start()
        try:
            assert extractor.entered.wait(timeout=10)
            assert registry.get(tmp_path / "foo").status is ProjectStatus.PROCESSING
            assert registry.index_of(tmp_path / "foo") is previous
        finally:
            extractor.release.set()
            thread.join(timeout=10)

        assert registry.get(tmp_path / "foo").generation == 2

    def test_ranking_stable_across_reprocess(self, sample_dump: RawDocDump, tmp_path: Path) -> None:
        """Should return the same ranked results after reprocessing an unchanged project."""
        registry = ProjectRegistry()
        embedder = make_embedding_service()
        processor = ProjectProcessor(StaticExtractor(sample_dump), embedder, registry)
        engine = QueryEngine(embedder, registry)

        def ranked() -> list:
            results = engine.query("create a point from coordinates", limit=5)
            return [(r.item_full_path, r.score) for r in results]

        processor.process(tmp_path / "foo")
        first = ranked()
        processor.process(tmp_path / "foo")
        second = ranked()

        assert len(first) == 5
        assert second == first

    def test_malformed_dump_installs_nothing(self, sample_dump: RawDocDump, tmp_path: Path) -> None:
        sample_dump.data["format_version"] = 1
        processor = _processor(StaticExtractor(sample_dump))

        with pytest.raises(MalformedDump):
            processor.process(tmp_path / "foo")
        assert processor.registry.index_of(tmp_path / "foo") is None

    def test_embedding_failure_installs_nothing(self, sample_dump: RawDocDump, tmp_path: Path) -> None:
        def bad_normalizer(dump):
            # An item whose embedding text is blank cannot be embedded.
            blank = DocItem(full_path=" ", kind=ItemKind.FUNCTION, name=" ", crate_name="foo")
            return normalize(dump) + [blank]

        processor = _processor(StaticExtractor(sample_dump), normalizer=bad_normalizer)

        with pytest.raises(EmptyInput):
            processor.process(tmp_path / "foo")
        assert processor.registry.index_of(tmp_path / "foo") is None

    def test_unexpected_error_marks_failed(self, tmp_path: Path) -> None:
        processor = _processor(StaticExtractor(error=KeyError("surprise")))

        with pytest.raises(KeyError):
            processor.process(tmp_path / "foo")
        assert processor.registry.get(tmp_path / "foo").failure_reason.startswith("KeyError")

    def test_concurrent_same_project(self, sample_dump: RawDocDump, tmp_path: Path) -> None:
        """The second concurrent request fails fast; the first completes."""
        extractor = BlockingExtractor(sample_dump)
        processor = _processor(extractor)
        outcome = {}

        def first() -> None:
            outcome["report"] = processor.process(tmp_path / "foo")

        thread = threading.Thread(target=first)
        thread.start()
        assert extractor.entered.wait(timeout=10)

        with pytest.raises(AlreadyProcessing):
            processor.process(tmp_path / "foo")

        extractor.release.set()
        thread.join(timeout=10)

        assert outcome["report"].generation == 1
        assert processor.registry.get(tmp_path / "foo").status is ProjectStatus.PROCESSED

    def test_projects_are_independent(self, sample_dump: RawDocDump, tmp_path: Path) -> None:
        registry = ProjectRegistry()
        _processor(StaticExtractor(sample_dump), registry).process(tmp_path / "foo")
        with pytest.raises(BuildFailed):
            _processor(StaticExtractor(error=BuildFailed("nope")), registry).process(tmp_path / "other")

        assert registry.processed_paths() == [project_key(tmp_path / "foo")]
        assert registry.get(tmp_path / "foo").status is ProjectStatus.PROCESSED
