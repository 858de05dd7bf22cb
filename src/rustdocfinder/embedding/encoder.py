"""Embedding model management.

``EmbeddingModel`` wraps a loaded ``SentenceTransformer``. ``EmbeddingService``
owns the single process-wide model: it loads it lazily, retries a failed load
on the next call, rejects empty input, and chunks large batches.
"""

from __future__ import annotations

import dataclasses
import logging
import platform
import sys
import threading
from dataclasses import dataclass
from typing import Callable, Iterable, Literal, Sequence

import numpy as np
from huggingface_hub.errors import HfHubHTTPError, LocalEntryNotFoundError
from sentence_transformers import SentenceTransformer

from rustdocfinder.errors import (
    EmbeddingError,
    EmptyInput,
    InferenceFailed,
    ModelDownloadFailed,
    ModelLoadFailed,
)

DEFAULT_MODEL = "sentence-transformers/all-mpnet-base-v2"
ARM64_ONNX_FILE = "onnx/model_qint8_arm64.onnx"

LOGGER = logging.getLogger(__name__)

Backend = Literal["torch", "onnx", "openvino"]


def _check_gpu_availability() -> tuple[bool, str | None]:
    """Return ``(has_gpu, gpu_type)`` with gpu_type in {"cuda", "mps", "rocm", None}."""
    try:
        import torch
    except ImportError:
        LOGGER.debug("PyTorch not available for GPU detection")
        return (False, None)

    try:
        if torch.cuda.is_available():
            LOGGER.debug("CUDA GPU detected: %s", torch.cuda.get_device_name(0))
            return (True, "cuda")
        if hasattr(torch.backends, "mps") and torch.backends.mps.is_available():
            LOGGER.debug("Apple MPS GPU detected")
            return (True, "mps")
        if getattr(torch.version, "hip", None) is not None:
            LOGGER.debug("AMD ROCm GPU detected")
            return (True, "rocm")
    except Exception as exc:
        LOGGER.debug("GPU detection failed: %s", exc)
        return (False, None)

    LOGGER.debug("No GPU detected, will use CPU")
    return (False, None)


def _check_onnx_providers() -> list[str]:
    """List available ONNX Runtime execution providers (empty when not installed)."""
    try:
        import onnxruntime as ort
    except ImportError:
        return []
    return list(ort.get_available_providers())


def _is_apple_silicon() -> bool:
    return sys.platform == "darwin" and (
        platform.processor() == "arm" or platform.machine() == "arm64"
    )


def detect_optimal_backend() -> tuple[Backend, str | None]:
    """Pick the accelerated backend for this machine.

    Returns ``(backend, onnx_model_file)``. ONNX is preferred wherever
    ONNX Runtime is installed (with the quantized ARM64 weights on Apple
    Silicon); PyTorch is the portable fallback.
    """
    try:
        if _is_apple_silicon():
            LOGGER.info("Detected Apple Silicon - using ONNX with ARM64 quantized model")
            return ("onnx", ARM64_ONNX_FILE)

        _, gpu_type = _check_gpu_availability()
        providers = _check_onnx_providers()
        if gpu_type == "cuda" and "CUDAExecutionProvider" in providers:
            LOGGER.info("Detected NVIDIA GPU - using ONNX with CUDA acceleration")
            return ("onnx", None)
        if gpu_type == "rocm" and "ROCMExecutionProvider" in providers:
            LOGGER.info("Detected AMD GPU - using ONNX with ROCm acceleration")
            return ("onnx", None)
        if providers:
            LOGGER.info("Using ONNX backend (providers: %s)", ", ".join(providers))
            return ("onnx", None)

        LOGGER.info("ONNX Runtime not available, using PyTorch backend on %s", sys.platform)
        return ("torch", None)
    except Exception as exc:
        LOGGER.warning("Failed to detect optimal backend: %s, falling back to PyTorch", exc)
        return ("torch", None)


@dataclass(slots=True)
class EmbeddingConfig:
    model_name: str = DEFAULT_MODEL
    batch_size: int = 16
    normalize: bool = True
    backend: Backend | None = None
    onnx_model_file: str | None = None
    device: str | None = None


class EmbeddingModel:
    """Thin wrapper around `SentenceTransformer` producing float32 vectors.

    Loading happens in the constructor. When an accelerated backend fails to
    load, the model is loaded again with PyTorch; outputs are L2-normalized
    either way.
    """

    def __init__(self, config: EmbeddingConfig | None = None) -> None:
        self.config = config or EmbeddingConfig()
        if self.config.backend is None:
            self.config.backend, self.config.onnx_model_file = detect_optimal_backend()

        try:
            self._model = self._load_model()
        except Exception as exc:
            if self.config.backend == "torch" or _is_download_error(exc):
                raise
            LOGGER.warning(
                "Failed to load model with backend '%s': %s. Falling back to PyTorch.",
                self.config.backend,
                exc,
            )
            self.config.backend = "torch"
            self.config.onnx_model_file = None
            self._model = self._load_model()

        self.dimension = int(self._model.get_sentence_embedding_dimension())
        LOGGER.info(
            "Loaded %s (backend: %s, dimension: %d)",
            self.config.model_name,
            self.config.backend,
            self.dimension,
        )

    def _load_model(self) -> SentenceTransformer:
        model_kwargs = {}
        if self.config.backend == "onnx" and self.config.onnx_model_file:
            model_kwargs["file_name"] = self.config.onnx_model_file
        return SentenceTransformer(
            self.config.model_name,
            backend=self.config.backend,
            device=self.config.device,
            model_kwargs=model_kwargs or None,
        )

    def embed(self, texts: Sequence[str] | Iterable[str]) -> np.ndarray:
        """Return float32 embeddings for input texts."""
        embeddings = self._model.encode(
            list(texts),
            batch_size=self.config.batch_size,
            show_progress_bar=False,
            convert_to_numpy=True,
            normalize_embeddings=self.config.normalize,
        )
        return embeddings.astype("float32", copy=False)

    def embed_query(self, text: str) -> np.ndarray:
        return self.embed([text])[0]


def _is_download_error(exc: BaseException) -> bool:
    current: BaseException | None = exc
    while current is not None:
        if isinstance(
            current, (HfHubHTTPError, LocalEntryNotFoundError, ConnectionError, TimeoutError)
        ):
            return True
        current = current.__cause__ or current.__context__
    return False


ModelFactory = Callable[[EmbeddingConfig], EmbeddingModel]


class EmbeddingService:
    """Process-wide embedding entry point used by indexing and queries.

    The model is read-only once loaded, so concurrent ``embed_*`` calls share
    it without locking; only loading is serialized.
    """

    def __init__(
        self,
        config: EmbeddingConfig | None = None,
        *,
        max_batch_items: int = 256,
        model_factory: ModelFactory = EmbeddingModel,
    ) -> None:
        if max_batch_items < 1:
            raise ValueError("max_batch_items must be at least 1")
        self.config = config or EmbeddingConfig()
        self.max_batch_items = max_batch_items
        self._model_factory = model_factory
        self._model: EmbeddingModel | None = None
        self._load_lock = threading.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    @property
    def dimension(self) -> int:
        return self._get_model().dimension

    def _get_model(self) -> EmbeddingModel:
        model = self._model
        if model is not None:
            return model
        with self._load_lock:
            if self._model is None:
                # Each attempt gets its own config copy so a failed attempt leaves nothing behind.
                attempt_config = dataclasses.replace(self.config)
                try:
                    self._model = self._model_factory(attempt_config)
                except EmbeddingError:
                    raise
                except Exception as exc:
                    LOGGER.exception("Failed to load embedding model %s", self.config.model_name)
                    if _is_download_error(exc):
                        raise ModelDownloadFailed(
                            f"Could not download model {self.config.model_name}: {exc}"
                        ) from exc
                    raise ModelLoadFailed(
                        f"Could not load model {self.config.model_name}: {exc}"
                    ) from exc
            return self._model

    @staticmethod
    def _check_texts(texts: Sequence[str]) -> None:
        for position, text in enumerate(texts):
            if not isinstance(text, str) or not text.strip():
                raise EmptyInput(f"Text at position {position} is empty")

    def embed_batch(self, texts: Sequence[str] | Iterable[str]) -> np.ndarray:
        """Embed texts one-to-one, in order, in slices of ``max_batch_items``."""
        sentences = list(texts)
        self._check_texts(sentences)
        model = self._get_model()
        if not sentences:
            return np.zeros((0, model.dimension), dtype="float32")

        parts = []
        for start in range(0, len(sentences), self.max_batch_items):
            chunk = sentences[start : start + self.max_batch_items]
            parts.append(self._run(model, chunk))
        return np.vstack(parts) if len(parts) > 1 else parts[0]

    def embed_one(self, text: str) -> np.ndarray:
        """Embed a single query text."""
        self._check_texts([text])
        model = self._get_model()
        return self._run(model, [text])[0]

    @staticmethod
    def _run(model: EmbeddingModel, chunk: list[str]) -> np.ndarray:
        try:
            vectors = np.asarray(model.embed(chunk), dtype="float32")
        except Exception as exc:
            raise InferenceFailed(f"Embedding inference failed: {exc}") from exc
        if vectors.ndim != 2 or vectors.shape[0] != len(chunk):
            raise InferenceFailed(
                f"Model returned shape {vectors.shape} for {len(chunk)} inputs"
            )
        return vectors
