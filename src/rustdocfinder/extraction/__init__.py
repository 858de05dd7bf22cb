"""Rustdoc extraction and normalization."""
