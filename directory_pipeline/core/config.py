"""Application configuration helpers."""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

from directory_pipeline.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


@dataclass(frozen=True)
class Settings:
    database_url: str
    confidence_threshold: float = 0.85
    import_source: str = "outscraper"
    page_size: int = 1000
    merge_cancel_window_seconds: float = 5.0
    ingestion_log_enabled: bool = True


def _get_number(name: str, default: str, cast):
    raw = os.getenv(name, default)
    try:
        return cast(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be numeric, got {raw!r}") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    database_url = os.getenv("DATABASE_URL", "")
    confidence_threshold = _get_number("IMPORT_CONFIDENCE_THRESHOLD", "0.85", float)
    import_source = os.getenv("IMPORT_SOURCE", "outscraper").strip() or "outscraper"
    page_size = _get_number("LISTINGS_PAGE_SIZE", "1000", int)
    merge_cancel_window_seconds = _get_number("MERGE_CANCEL_WINDOW_SECONDS", "5", float)
    ingestion_log_enabled = os.getenv("INGESTION_LOG_TABLE_ENABLED", "true").lower() in {"1", "true", "yes"}

    if not database_url:
        logger.warning("DATABASE_URL is not set; database operations will fail.")
    if not 0.0 <= confidence_threshold <= 1.0:
        raise ConfigurationError("IMPORT_CONFIDENCE_THRESHOLD must be between 0 and 1")
    if page_size <= 0:
        raise ConfigurationError("LISTINGS_PAGE_SIZE must be positive")

    return Settings(
        database_url=database_url,
        confidence_threshold=confidence_threshold,
        import_source=import_source,
        page_size=page_size,
        merge_cancel_window_seconds=merge_cancel_window_seconds,
        ingestion_log_enabled=ingestion_log_enabled,
    )


def configure_logging() -> None:
    """Configure root logging for command-line entrypoints."""
    load_dotenv()
    level = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"
    logging.basicConfig(level=level, format=LOG_FORMAT)
