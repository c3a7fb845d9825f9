"""Core data models shared by the directory pipeline commands."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


@dataclass(slots=True)
class CandidateRecord:
    """Untrusted business record produced by the external collection system."""

    name: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    categories: List[str] = field(default_factory=list)
    external_id: Optional[str] = None
    confidence: float = 0.0


@dataclass(slots=True)
class City:
    id: int
    slug: str
    name: str
    state_id: int
    state_code: str
    lat: Optional[float] = None
    lng: Optional[float] = None
    store_count: int = 0

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "City":
        return cls(
            id=row["id"],
            slug=row["slug"],
            name=row["name"],
            state_id=row["state_id"],
            state_code=row["state_code"],
            lat=row.get("lat"),
            lng=row.get("lng"),
            store_count=row.get("store_count") or 0,
        )


@dataclass(slots=True)
class Listing:
    """Canonical listing as read back for duplicate analysis.

    ``city_name`` and ``state_name`` are the denormalized display names joined
    in at read time; they are empty when the reference is missing.
    """

    id: int
    name: str
    address: Optional[str] = None
    phone: Optional[str] = None
    city_id: Optional[int] = None
    state_id: Optional[int] = None
    city_name: str = ""
    state_name: str = ""
    external_id: Optional[str] = None
    is_approved: bool = False
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Listing":
        return cls(
            id=row["id"],
            name=row.get("name") or "",
            address=row.get("address"),
            phone=row.get("phone"),
            city_id=row.get("city_id"),
            state_id=row.get("state_id"),
            city_name=row.get("city_name") or "",
            state_name=row.get("state_name") or "",
            external_id=row.get("external_id"),
            is_approved=bool(row.get("is_approved")),
            created_at=row.get("created_at"),
        )


class MatchStrategy(str, Enum):
    NAME_CITY = "name_city"
    PHONE = "phone"
    EXACT_NAME_CITY = "exact_name_city"

    @property
    def strong(self) -> bool:
        return self is not MatchStrategy.EXACT_NAME_CITY


@dataclass(slots=True)
class DuplicateGroup:
    """Listings sharing one match key under a single strategy.

    When ``keep_ordered`` is set the listings are sorted by the advisory keep
    order and the first one is the recommended keep. Nothing acts on it.
    """

    strategy: MatchStrategy
    key: str
    listings: List[Listing]
    keep_ordered: bool = False

    @property
    def listing_ids(self) -> List[int]:
        return [listing.id for listing in self.listings]

    @property
    def recommended_keep_id(self) -> Optional[int]:
        if not self.keep_ordered or not self.listings:
            return None
        return self.listings[0].id


@dataclass(frozen=True, slots=True)
class MergeDirective:
    keep_id: int
    remove_id: int
