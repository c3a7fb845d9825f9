"""Utilities for turning candidate JSON into listing rows."""

import logging
from typing import Any, Dict, Iterable, List, Optional

from directory_pipeline.etl.normalize import extract_zip_from_address, slugify
from directory_pipeline.models import CandidateRecord

logger = logging.getLogger(__name__)


def parse_candidate(raw: Dict[str, Any]) -> CandidateRecord:
    """Build a CandidateRecord from one element of the collector's JSON array.

    Nothing is rejected here; missing fields stay ``None`` so the importer can
    report a typed skip reason for them.
    """
    external_ids = raw.get("external_ids") or {}
    external_id = raw.get("external_id")
    if not external_id and isinstance(external_ids, dict):
        external_id = external_ids.get("google_place_id")

    confidence = _safe_float(raw.get("confidence"))
    categories = raw.get("categories") or []
    if not isinstance(categories, list):
        logger.debug("Ignoring non-list categories for %s", raw.get("name"))
        categories = []

    return CandidateRecord(
        name=_strip_or_none(raw.get("name")),
        address=_strip_or_none(raw.get("address")),
        city=_strip_or_none(raw.get("city")),
        state=_strip_or_none(raw.get("state")),
        lat=_safe_float(raw.get("lat")),
        lng=_safe_float(raw.get("lng")),
        phone=_strip_or_none(raw.get("phone")),
        website=_strip_or_none(raw.get("website")),
        categories=[str(category) for category in categories if category],
        external_id=_strip_or_none(external_id),
        confidence=confidence if confidence is not None else 0.0,
    )


def extract_services(categories: Iterable[str]) -> List[str]:
    """Collector categories map one-to-one onto listing services."""
    return [category.strip() for category in categories or [] if category and category.strip()]


def listing_slug(name: str, city: str) -> str:
    return slugify(f"{name}-{city}")


def to_listing_row(
    candidate: CandidateRecord,
    *,
    city_id: int,
    state_id: int,
    batch_id: str,
    source: str,
) -> Dict[str, Any]:
    """Map a validated candidate onto the listings table columns.

    Approval is left to the caller.
    """
    services = extract_services(candidate.categories)
    return {
        "name": candidate.name,
        "slug": listing_slug(candidate.name or "", candidate.city or ""),
        "address": candidate.address,
        "city_id": city_id,
        "state_id": state_id,
        "zip": extract_zip_from_address(candidate.address),
        "phone": candidate.phone,
        "website": candidate.website,
        "description": None,
        "services": services or None,
        "rating": None,
        "review_count": None,
        "lat": candidate.lat,
        "lng": candidate.lng,
        "external_id": candidate.external_id,
        "source": source,
        "batch_id": batch_id,
    }


def _strip_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    value_str = str(value).strip()
    return value_str or None


def _safe_float(value: Any) -> Optional[float]:
    try:
        if value is None:
            return None
        return float(value)
    except (TypeError, ValueError):
        return None
