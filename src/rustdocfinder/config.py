"""Application configuration defaults."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path

from rustdocfinder.embedding.encoder import DEFAULT_MODEL

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3001


def _get_default_dump_dir() -> Path:
    """Directory where copies of rustdoc JSON dumps are kept."""
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Caches" / "RustDocFinder" / "rustdoc_json"
    return Path.home() / ".cache" / "rustdocfinder" / "rustdoc_json"


@dataclass(slots=True)
class AppConfig:
    model_name: str = DEFAULT_MODEL
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    toolchain: str = "nightly"
    extraction_timeout: float = 600.0
    snippet_chars: int = 300
    default_num_results: int = 5
    embed_batch_size: int = 16
    max_batch_items: int = 256
    max_workers: int = 2
    keep_dumps: bool = False
    dump_dir: Path | None = None

    def resolve_dump_dir(self, base_dir: Path | None = None) -> Path | None:
        """Return where dumps are copied, or None when dumps are not kept."""
        if not self.keep_dumps:
            return None
        if self.dump_dir is None:
            return _get_default_dump_dir()
        if Path(self.dump_dir).is_absolute() or base_dir is None:
            return Path(self.dump_dir)
        return base_dir / self.dump_dir
