"""Exception taxonomy shared by the pipeline, the query path and both transports."""

from __future__ import annotations


class RustDocFinderError(Exception):
    """Base class for every expected, request-scoped failure."""

    code = "error"


class ExtractionError(RustDocFinderError):
    code = "extraction_error"


class NotAProject(ExtractionError):
    code = "not_a_project"


class ToolchainMissing(ExtractionError):
    code = "toolchain_missing"


class BuildFailed(ExtractionError):
    code = "build_failed"

    def __init__(self, message: str, stderr: str = "") -> None:
        super().__init__(message)
        self.stderr = stderr


class ExtractionTimeout(ExtractionError):
    code = "timeout"


class MalformedDump(RustDocFinderError):
    code = "malformed_dump"


class EmbeddingError(RustDocFinderError):
    code = "embedding_error"


class EmptyInput(EmbeddingError):
    code = "empty_input"


class ModelLoadFailed(EmbeddingError):
    code = "model_load_failed"


class ModelDownloadFailed(EmbeddingError):
    code = "model_download_failed"


class InferenceFailed(EmbeddingError):
    code = "inference_failed"


class ProjectIndexError(RustDocFinderError):
    code = "index_error"


class LengthMismatch(ProjectIndexError):
    code = "length_mismatch"


class QueryError(RustDocFinderError):
    code = "query_error"


class EmptyQuery(QueryError):
    code = "empty_query"


class UnknownProject(QueryError):
    code = "unknown_project"


class QueryEmbeddingFailed(QueryError):
    code = "embedding_failed"


class AlreadyProcessing(RustDocFinderError):
    code = "already_processing"


class NotFound(RustDocFinderError):
    code = "not_found"


class UnknownTool(RustDocFinderError):
    code = "unknown_tool"
