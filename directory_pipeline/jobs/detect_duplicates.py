"""CLI job reporting likely duplicate listings.

Three independent strategies each produce their own groups:

1. normalized business name + city id (strong match)
2. normalized phone number (strong match)
3. exact lowercase name + city display name (soft match, manual review)

Nothing here decides or applies a merge. Reviewers turn the report into
explicit keep/remove pairs for ``directory-merge``.
"""

import argparse
import csv
import logging
import os
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from directory_pipeline.core.config import configure_logging, get_settings
from directory_pipeline.core.db import init_pool
from directory_pipeline.core.errors import ConfigurationError, StoreError
from directory_pipeline.core.queries import iter_listings
from directory_pipeline.etl.normalize import normalize_business_name, normalize_phone
from directory_pipeline.models import DuplicateGroup, Listing, MatchStrategy

logger = logging.getLogger(__name__)

SAMPLE_GROUPS = 5
_OLDEST = datetime.max.replace(tzinfo=timezone.utc)


def load_listings(page_size: Optional[int] = None) -> List[Listing]:
    page_size = page_size or get_settings().page_size
    listings: List[Listing] = []
    for row in iter_listings(page_size):
        listings.append(Listing.from_row(row))
        if len(listings) % page_size == 0:
            logger.info("Fetched %d listings...", len(listings))
    logger.info("Loaded %d listings", len(listings))
    return listings


def keep_order_key(listing: Listing):
    """Approved first, then listings with an external id, then the oldest."""
    created_at = listing.created_at or _OLDEST
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return (not listing.is_approved, not listing.external_id, created_at)


def _collect(
    listings: Iterable[Listing],
    strategy: MatchStrategy,
    key_for: Callable[[Listing], Optional[str]],
    keep_ordered: bool = False,
) -> List[DuplicateGroup]:
    buckets: Dict[str, List[Listing]] = defaultdict(list)
    for listing in listings:
        key = key_for(listing)
        if key is None:
            continue
        buckets[key].append(listing)

    groups = []
    for key, members in buckets.items():
        if len(members) < 2:
            continue
        if keep_ordered:
            members = sorted(members, key=keep_order_key)
        groups.append(DuplicateGroup(strategy=strategy, key=key, listings=members, keep_ordered=keep_ordered))
    return groups


def _name_city_key(listing: Listing) -> Optional[str]:
    if not listing.city_id:
        return None
    return f"{normalize_business_name(listing.name)}|{listing.city_id}"


def _exact_name_city_key(listing: Listing) -> str:
    return f"{listing.name.lower().strip()}|{listing.city_name.lower().strip()}"


def group_by_name_city(listings: Iterable[Listing]) -> List[DuplicateGroup]:
    return _collect(listings, MatchStrategy.NAME_CITY, _name_city_key, keep_ordered=True)


def group_by_phone(listings: Iterable[Listing]) -> List[DuplicateGroup]:
    return _collect(listings, MatchStrategy.PHONE, lambda listing: normalize_phone(listing.phone))


def group_by_exact_name_city(listings: Iterable[Listing]) -> List[DuplicateGroup]:
    return _collect(listings, MatchStrategy.EXACT_NAME_CITY, _exact_name_city_key)


STRATEGIES = (
    (MatchStrategy.NAME_CITY, group_by_name_city),
    (MatchStrategy.PHONE, group_by_phone),
    (MatchStrategy.EXACT_NAME_CITY, group_by_exact_name_city),
)


@dataclass
class DuplicateReport:
    total_listings: int
    groups: Dict[MatchStrategy, List[DuplicateGroup]] = field(default_factory=dict)

    def group_count(self, strategy: MatchStrategy) -> int:
        return len(self.groups.get(strategy, []))

    def listing_count(self, strategy: MatchStrategy) -> int:
        return sum(len(group.listings) for group in self.groups.get(strategy, []))


def build_report(listings: Sequence[Listing]) -> DuplicateReport:
    report = DuplicateReport(total_listings=len(listings))
    for strategy, producer in STRATEGIES:
        report.groups[strategy] = producer(listings)
    return report


def print_report(report: DuplicateReport) -> None:
    titles = {
        MatchStrategy.NAME_CITY: "NAME + CITY DUPLICATES (Strong Match)",
        MatchStrategy.PHONE: "PHONE NUMBER DUPLICATES (Strong Match)",
        MatchStrategy.EXACT_NAME_CITY: "SAME EXACT NAME + CITY NAME (Soft Match - Manual Review)",
    }
    for index, (strategy, _) in enumerate(STRATEGIES, start=1):
        groups = report.groups.get(strategy, [])
        print("-" * 60)
        print(f"{index}. {titles[strategy]}")
        print("-" * 60)
        print(f"Found {len(groups)} duplicate groups\n")
        for group in groups[:SAMPLE_GROUPS]:
            print(f"  Key: {group.key}")
            for listing in group.listings:
                marker = "KEEP" if listing.id == group.recommended_keep_id else "    "
                print(f"  {marker} [{listing.id}] {listing.name}")
                print(f"        {listing.address or 'no address'}, {listing.city_name}, {listing.state_name}")
                print(
                    f"        Approved: {'Yes' if listing.is_approved else 'No'}"
                    f" | External id: {'Yes' if listing.external_id else 'No'}"
                )
            print()
        if len(groups) > SAMPLE_GROUPS:
            print(f"  ... and {len(groups) - SAMPLE_GROUPS} more groups\n")

    print("=" * 60)
    print("Summary")
    print("=" * 60)
    print(f"Total listings:               {report.total_listings}")
    print(
        f"Name+city duplicates:         {report.group_count(MatchStrategy.NAME_CITY)} groups"
        f" ({report.listing_count(MatchStrategy.NAME_CITY)} listings)"
    )
    print(f"Phone duplicates:             {report.group_count(MatchStrategy.PHONE)} groups")
    print(f"Exact name+city duplicates:   {report.group_count(MatchStrategy.EXACT_NAME_CITY)} groups")


EXPORT_COLUMNS = (
    "group_id",
    "strategy",
    "match_strength",
    "match_key",
    "listing_id",
    "name",
    "address",
    "phone",
    "city",
    "state",
    "approved",
    "external_id",
    "recommended_keep",
)


def export_report(report: DuplicateReport, export_dir: str) -> List[str]:
    """Write one CSV per strategy and return the written paths."""
    os.makedirs(export_dir, exist_ok=True)
    paths = []
    for strategy, _ in STRATEGIES:
        path = os.path.join(export_dir, f"{strategy.value.replace('_', '-')}-duplicates.csv")
        with open(path, "w", encoding="utf-8", newline="") as fh:
            writer = csv.DictWriter(fh, fieldnames=EXPORT_COLUMNS)
            writer.writeheader()
            for group_id, group in enumerate(report.groups.get(strategy, []), start=1):
                for listing in group.listings:
                    writer.writerow(
                        {
                            "group_id": group_id,
                            "strategy": strategy.value,
                            "match_strength": "strong" if strategy.strong else "soft",
                            "match_key": group.key,
                            "listing_id": listing.id,
                            "name": listing.name,
                            "address": listing.address or "",
                            "phone": listing.phone or "",
                            "city": listing.city_name,
                            "state": listing.state_name,
                            "approved": "Yes" if listing.is_approved else "No",
                            "external_id": listing.external_id or "",
                            "recommended_keep": "Yes" if listing.id == group.recommended_keep_id else "No",
                        }
                    )
        logger.info("Exported %s", path)
        paths.append(path)
    return paths


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Report likely duplicate listings (read-only)")
    parser.add_argument("--export", dest="export_dir", help="Directory to write per-strategy CSV files into")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    configure_logging()
    args = build_parser().parse_args(argv)

    try:
        init_pool()
        listings = load_listings()
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        return 1
    except StoreError as exc:
        logger.error("Failed to fetch listings: %s", exc)
        return 1

    if not listings:
        print("No listings found.")
        return 0

    report = build_report(listings)
    print_report(report)
    if args.export_dir:
        for path in export_report(report, args.export_dir):
            print(f"Exported: {path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
