"""Markdown ingestion and chunking."""
