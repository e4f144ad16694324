"""Ingest Slack workspace exports into SQLite with full-text search and browse them locally."""

__version__ = "0.1.0"