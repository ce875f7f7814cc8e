"""Dependency traversal engine: dedup, download orchestration, bounded scheduling."""
