"""Span model, ingestion and tree building."""
