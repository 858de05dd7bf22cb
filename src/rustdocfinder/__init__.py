"""RustDocFinder - semantic search over local Rust project documentation."""

__version__ = "0.1.0"
