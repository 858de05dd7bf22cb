"""Tool protocol server."""
