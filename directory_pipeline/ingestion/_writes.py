"""SQL that creates cities, listings and audit rows.

Private to the ingestion package: nothing outside ``directory_pipeline.ingestion``
imports this module.
"""

from typing import Any, Dict, Optional

import psycopg2
from psycopg2 import extras, sql

from directory_pipeline.core.db import fetch_one, get_connection
from directory_pipeline.core.errors import StoreError

LISTING_COLUMNS = (
    "name",
    "slug",
    "address",
    "city_id",
    "state_id",
    "zip",
    "phone",
    "website",
    "description",
    "services",
    "rating",
    "review_count",
    "lat",
    "lng",
    "is_approved",
    "external_id",
    "source",
    "batch_id",
)

_CITY_FIELDS = "id, slug, name, state_id, state_code, lat, lng, store_count"

_SELECT_CITY_BY_NAME = f"""
SELECT {_CITY_FIELDS}
FROM cities
WHERE state_id = %(state_id)s AND lower(name) = lower(%(name)s)
ORDER BY id
LIMIT 1
"""

_SELECT_CITY_BY_SLUG = f"""
SELECT {_CITY_FIELDS}
FROM cities
WHERE state_id = %(state_id)s AND slug = %(slug)s
LIMIT 1
"""

_INSERT_CITY = f"""
INSERT INTO cities (
    slug,
    name,
    state_id,
    state_code,
    lat,
    lng
) VALUES (
    %(slug)s,
    %(name)s,
    %(state_id)s,
    %(state_code)s,
    %(lat)s,
    %(lng)s
)
ON CONFLICT DO NOTHING
RETURNING {_CITY_FIELDS};
"""

_INSERT_LOG = """
INSERT INTO ingestion_log (source, action, details, created_at)
VALUES (%(source)s, %(action)s, %(details)s, %(created_at)s);
"""


def select_city(state_id: int, name: str) -> Optional[Dict[str, Any]]:
    return fetch_one(_SELECT_CITY_BY_NAME, {"state_id": state_id, "name": name})


def select_city_by_slug(state_id: int, slug: str) -> Optional[Dict[str, Any]]:
    return fetch_one(_SELECT_CITY_BY_SLUG, {"state_id": state_id, "slug": slug})


def insert_city(params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Insert a city row; returns None when a concurrent writer already created it."""
    return _insert_returning(_INSERT_CITY, params)


def insert_listing(record: Dict[str, Any]) -> int:
    query = sql.SQL("INSERT INTO listings ({columns}) VALUES ({values}) RETURNING id").format(
        columns=sql.SQL(", ").join(sql.Identifier(column) for column in record),
        values=sql.SQL(", ").join(sql.Placeholder(column) for column in record),
    )
    row = _insert_returning(query, record)
    if row is None:
        raise StoreError("listing insert returned no id")
    return row["id"]


def insert_log(params: Dict[str, Any]) -> None:
    _insert_returning(_INSERT_LOG, params, returning=False)


def _insert_returning(query: Any, params: Dict[str, Any], returning: bool = True) -> Optional[Dict[str, Any]]:
    with get_connection() as conn:
        try:
            with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                cur.execute(query, params)
                row = cur.fetchone() if returning else None
            conn.commit()
        except psycopg2.Error as exc:
            conn.rollback()
            raise StoreError.from_exception(exc) from exc
    return dict(row) if row is not None else None
