"""CLI job checking referential integrity and derived counts (read-only).

Error-severity findings (orphaned references, listings missing identity
fields) make the command exit 1. Count mismatches and missing contact fields
are warnings; counts are repaired by ``directory-recompute-counts``.
"""

import argparse
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from directory_pipeline.core.config import configure_logging, get_settings
from directory_pipeline.core.db import init_pool
from directory_pipeline.core.errors import ConfigurationError, StoreError
from directory_pipeline.core.queries import count_approved_by_city, iter_listings, list_cities, list_states
from directory_pipeline.jobs.recompute_counts import derive_counts

logger = logging.getLogger(__name__)

ERROR = "error"
WARNING = "warning"
MAX_SAMPLE_IDS = 20

REQUIRED_FIELDS = (
    ("name", ERROR),
    ("city_id", ERROR),
    ("state_id", ERROR),
    ("slug", ERROR),
    ("address", WARNING),
    ("phone", WARNING),
)


@dataclass
class IntegrityIssue:
    check: str
    severity: str
    message: str
    ids: List[int] = field(default_factory=list)


def find_orphaned_listings(listings: Sequence[Mapping[str, Any]], city_ids: set) -> Optional[IntegrityIssue]:
    orphaned = [row["id"] for row in listings if row.get("city_id") is not None and row["city_id"] not in city_ids]
    if not orphaned:
        return None
    return IntegrityIssue(
        check="Orphaned listings (invalid city_id)",
        severity=ERROR,
        message=f"{len(orphaned)} listings have city_id not in cities table",
        ids=orphaned[:MAX_SAMPLE_IDS],
    )


def find_orphaned_cities(cities: Sequence[Mapping[str, Any]], state_ids: set) -> Optional[IntegrityIssue]:
    orphaned = [city["id"] for city in cities if city["state_id"] not in state_ids]
    if not orphaned:
        return None
    return IntegrityIssue(
        check="Orphaned cities (invalid state_id)",
        severity=ERROR,
        message=f"{len(orphaned)} cities have state_id not in states table",
        ids=orphaned[:MAX_SAMPLE_IDS],
    )


def find_count_mismatches(
    cities: Sequence[Mapping[str, Any]],
    states: Sequence[Mapping[str, Any]],
    approved_by_city: Mapping[int, int],
) -> List[IntegrityIssue]:
    derived = derive_counts(cities, states, approved_by_city)
    issues = []

    city_mismatches = [
        city for city in cities if (city["store_count"] or 0) != derived.city_store_counts[city["id"]]
    ]
    for city in city_mismatches[:5]:
        logger.info(
            "  [%s] %s: recorded=%s, actual=%s",
            city["id"],
            city["name"],
            city["store_count"],
            derived.city_store_counts[city["id"]],
        )
    if city_mismatches:
        issues.append(
            IntegrityIssue(
                check="City store_count mismatch",
                severity=WARNING,
                message=f"{len(city_mismatches)} cities have incorrect store_count",
                ids=[city["id"] for city in city_mismatches[:MAX_SAMPLE_IDS]],
            )
        )

    state_mismatch_ids: List[int] = []
    mismatch_count = 0
    for state in states:
        for column, actual in (
            ("store_count", derived.state_store_counts[state["id"]]),
            ("city_count", derived.state_city_counts[state["id"]]),
        ):
            if (state[column] or 0) != actual:
                mismatch_count += 1
                logger.info("  [%s] %s %s: recorded=%s, actual=%s", state["id"], state["name"], column, state[column], actual)
                if state["id"] not in state_mismatch_ids:
                    state_mismatch_ids.append(state["id"])
    if mismatch_count:
        issues.append(
            IntegrityIssue(
                check="State count mismatch",
                severity=WARNING,
                message=f"{mismatch_count} state count mismatches",
                ids=state_mismatch_ids[:MAX_SAMPLE_IDS],
            )
        )
    return issues


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def find_missing_fields(listings: Sequence[Mapping[str, Any]]) -> List[IntegrityIssue]:
    issues = []
    for column, severity in REQUIRED_FIELDS:
        missing = [row["id"] for row in listings if _is_missing(row.get(column))]
        if missing:
            issues.append(
                IntegrityIssue(
                    check=f"Listings missing {column}",
                    severity=severity,
                    message=f"{len(missing)} listings have no {column}",
                    ids=missing[:MAX_SAMPLE_IDS],
                )
            )
    return issues


def run_integrity_checks(page_size: Optional[int] = None) -> List[IntegrityIssue]:
    listings = list(iter_listings(page_size or get_settings().page_size))
    cities = list_cities()
    states = list_states()

    issues: List[IntegrityIssue] = []
    for issue in (
        find_orphaned_listings(listings, {city["id"] for city in cities}),
        find_orphaned_cities(cities, {state["id"] for state in states}),
    ):
        if issue:
            issues.append(issue)
    issues.extend(find_count_mismatches(cities, states, count_approved_by_city()))
    issues.extend(find_missing_fields(listings))
    return issues


def has_errors(issues: Sequence[IntegrityIssue]) -> bool:
    return any(issue.severity == ERROR for issue in issues)


def print_summary(issues: Sequence[IntegrityIssue]) -> Dict[str, int]:
    counts = {ERROR: 0, WARNING: 0}
    print("=" * 60)
    print("Integrity Summary")
    print("=" * 60)
    if not issues:
        print("  All checks passed.")
    for issue in issues:
        counts[issue.severity] += 1
        print(f"  [{issue.severity.upper()}] {issue.check}: {issue.message}")
        if issue.ids:
            print(f"      Sample ids: {', '.join(str(i) for i in issue.ids)}")
    print()
    print(f"  Errors:   {counts[ERROR]}")
    print(f"  Warnings: {counts[WARNING]}")
    print("=" * 60)
    return counts


def build_parser() -> argparse.ArgumentParser:
    return argparse.ArgumentParser(description="Check directory referential integrity and counts (read-only)")


def main(argv: Optional[Sequence[str]] = None) -> int:
    configure_logging()
    build_parser().parse_args(argv)

    try:
        init_pool()
        issues = run_integrity_checks()
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        return 1
    except StoreError as exc:
        logger.error("Integrity check failed: %s", exc)
        return 1

    print_summary(issues)
    return 1 if has_errors(issues) else 0


if __name__ == "__main__":
    raise SystemExit(main())
