"""Ingestion boundary: the only authorized way to create cities and listings."""

from directory_pipeline.ingestion.boundary import ensure_city, import_repair_company, log_ingestion

__all__ = ["ensure_city", "import_repair_company", "log_ingestion"]
