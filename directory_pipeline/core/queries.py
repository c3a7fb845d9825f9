"""Read-only queries over the directory tables."""

from typing import Any, Dict, Iterator, List, Optional

from directory_pipeline.core.db import fetch_all, fetch_one

_LISTINGS_PAGE = """
SELECT
    l.id,
    l.name,
    l.slug,
    l.address,
    l.phone,
    l.city_id,
    l.state_id,
    l.external_id,
    l.is_approved,
    l.created_at,
    c.name AS city_name,
    s.name AS state_name
FROM listings l
LEFT JOIN cities c ON c.id = l.city_id
LEFT JOIN states s ON s.id = l.state_id
ORDER BY l.id
LIMIT %(limit)s OFFSET %(offset)s
"""


def get_state_by_slug(slug: str) -> Optional[Dict[str, Any]]:
    return fetch_one("SELECT id, slug, name FROM states WHERE slug = %(slug)s", {"slug": slug})


def listing_exists_by_external_id(external_id: str) -> bool:
    row = fetch_one(
        "SELECT id FROM listings WHERE external_id = %(external_id)s LIMIT 1",
        {"external_id": external_id},
    )
    return row is not None


def get_listing(listing_id: int) -> Optional[Dict[str, Any]]:
    return fetch_one("SELECT * FROM listings WHERE id = %(id)s", {"id": listing_id})


def fetch_listings_page(offset: int, limit: int) -> List[Dict[str, Any]]:
    return fetch_all(_LISTINGS_PAGE, {"offset": offset, "limit": limit})


def iter_listings(page_size: int) -> Iterator[Dict[str, Any]]:
    """Yield every listing, ordered by id, one page at a time."""
    offset = 0
    while True:
        page = fetch_listings_page(offset, page_size)
        yield from page
        if len(page) < page_size:
            return
        offset += page_size


def list_cities() -> List[Dict[str, Any]]:
    return fetch_all("SELECT id, name, state_id, store_count FROM cities ORDER BY id")


def list_states() -> List[Dict[str, Any]]:
    return fetch_all("SELECT id, name, store_count, city_count FROM states ORDER BY id")


def count_approved_by_city() -> Dict[int, int]:
    rows = fetch_all(
        """
        SELECT city_id, COUNT(*) AS approved
        FROM listings
        WHERE is_approved AND city_id IS NOT NULL
        GROUP BY city_id
        """
    )
    return {row["city_id"]: row["approved"] for row in rows}
