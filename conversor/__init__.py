"""Ingestion of accounting exports and SPED Fiscal adjustment rewriting."""

__version__ = "0.1.0"
