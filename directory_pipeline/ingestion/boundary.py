"""The single write path for cities and listings.

Scraping and crawling stay outside this package: records arrive already
collected, and callers are responsible for normalizing them first.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from directory_pipeline.core.config import get_settings
from directory_pipeline.core.errors import StoreError
from directory_pipeline.etl.normalize import slugify
from directory_pipeline.ingestion import _writes
from directory_pipeline.models import City

logger = logging.getLogger(__name__)


def log_ingestion(source: str, action: str, details: str) -> None:
    """Record an audit entry; a failed durable write never reaches the caller."""
    timestamp = datetime.now(timezone.utc)
    logger.info("[Ingestion] %s | %s | %s | %s", timestamp.isoformat(), source, action, details)

    if not get_settings().ingestion_log_enabled:
        return
    try:
        _writes.insert_log(
            {"source": source, "action": action, "details": details, "created_at": timestamp}
        )
    except Exception as exc:  # noqa: BLE001
        logger.warning("Could not persist ingestion log entry: %s", exc)


def ensure_city(
    state_id: int,
    state_code: str,
    city_name: str,
    lat: Optional[float] = None,
    lng: Optional[float] = None,
) -> City:
    """Return the city named ``city_name`` in the state, creating it if needed.

    The lookup is case-insensitive. Two callers racing on the same city both
    end up with the same row: the unique index on (state_id, lower(name))
    turns the losing insert into a no-op and the loser re-reads the winner.
    """
    existing = _writes.select_city(state_id, city_name)
    if existing:
        return City.from_row(existing)

    slug = slugify(city_name)
    created = _writes.insert_city(
        {
            "slug": slug,
            "name": city_name,
            "state_id": state_id,
            "state_code": state_code.lower(),
            "lat": lat,
            "lng": lng,
        }
    )
    if created is None:
        winner = _writes.select_city(state_id, city_name) or _writes.select_city_by_slug(state_id, slug)
        if winner is None:
            raise StoreError(f"city insert for {city_name!r} conflicted but no matching city was found")
        logger.debug("City %s (state_id=%s) was created concurrently; using id=%s", city_name, state_id, winner["id"])
        return City.from_row(winner)

    log_ingestion("manual", "city_created", f"Created city: {city_name} ({state_code.lower()})")
    return City.from_row(created)


def import_repair_company(record: Dict[str, Any]) -> int:
    """Insert a listing exactly as given and return its id.

    ``is_approved`` must be supplied: whether a listing starts out visible is
    decided by the calling ingestion path.
    """
    unknown = set(record) - set(_writes.LISTING_COLUMNS)
    if unknown:
        raise ValueError(f"unknown listing columns: {', '.join(sorted(unknown))}")
    if "is_approved" not in record:
        raise ValueError("is_approved must be decided by the caller")
    if not record.get("name") or not record.get("slug"):
        raise ValueError("name and slug are required for a listing")

    listing_id = _writes.insert_listing(record)
    logger.debug("Inserted listing %s (id=%s)", record.get("name"), listing_id)
    return listing_id
