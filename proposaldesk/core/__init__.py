"""Shared paths, configuration, error kinds and the SQLite store."""
