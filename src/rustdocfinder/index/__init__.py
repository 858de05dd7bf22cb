"""In-memory project indexes and search."""
