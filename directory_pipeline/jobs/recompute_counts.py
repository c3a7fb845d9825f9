"""CLI job recomputing the derived city and state counts.

city.store_count   approved listings whose city_id is the city
state.store_count  sum of store_count over the state's cities
state.city_count   the state's cities with store_count > 0

Only values that differ are written, and each correction is logged.
"""

import argparse
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from psycopg2 import sql

from directory_pipeline.core.config import configure_logging
from directory_pipeline.core.db import execute, init_pool
from directory_pipeline.core.errors import ConfigurationError, StoreError
from directory_pipeline.core.queries import count_approved_by_city, list_cities, list_states

logger = logging.getLogger(__name__)


@dataclass
class DerivedCounts:
    city_store_counts: Dict[int, int]
    state_store_counts: Dict[int, int]
    state_city_counts: Dict[int, int]


@dataclass
class CountCorrection:
    table: str
    row_id: int
    name: str
    column: str
    recorded: Optional[int]
    actual: int


@dataclass
class CountsReport:
    dry_run: bool
    corrections: List[CountCorrection] = field(default_factory=list)
    errors: int = 0

    def count_for(self, table: str, column: str) -> int:
        return sum(1 for c in self.corrections if c.table == table and c.column == column)


def derive_counts(
    cities: Sequence[Mapping[str, Any]],
    states: Sequence[Mapping[str, Any]],
    approved_by_city: Mapping[int, int],
) -> DerivedCounts:
    city_store_counts = {city["id"]: approved_by_city.get(city["id"], 0) for city in cities}
    cities_by_state: Dict[int, List[int]] = defaultdict(list)
    for city in cities:
        cities_by_state[city["state_id"]].append(city["id"])

    state_store_counts = {}
    state_city_counts = {}
    for state in states:
        counts = [city_store_counts[city_id] for city_id in cities_by_state.get(state["id"], [])]
        state_store_counts[state["id"]] = sum(counts)
        state_city_counts[state["id"]] = sum(1 for count in counts if count > 0)
    return DerivedCounts(city_store_counts, state_store_counts, state_city_counts)


def _write_count(table: str, column: str, row_id: int, value: int) -> None:
    execute(
        sql.SQL("UPDATE {table} SET {column} = %(value)s WHERE id = %(id)s").format(
            table=sql.Identifier(table), column=sql.Identifier(column)
        ),
        {"value": value, "id": row_id},
    )


def _correct(report: CountsReport, correction: CountCorrection) -> None:
    label = "City" if correction.table == "cities" else "State"
    logger.info(
        "%s %s %s: %s -> %s",
        label,
        correction.name,
        correction.column,
        correction.recorded,
        correction.actual,
    )
    if not report.dry_run:
        try:
            _write_count(correction.table, correction.column, correction.row_id, correction.actual)
        except StoreError as exc:
            logger.error("Error updating %s %s %s: %s", label.lower(), correction.name, correction.column, exc)
            report.errors += 1
            return
    report.corrections.append(correction)


def recompute_counts(*, dry_run: bool = False) -> CountsReport:
    cities = list_cities()
    states = list_states()
    derived = derive_counts(cities, states, count_approved_by_city())
    report = CountsReport(dry_run=dry_run)

    for city in cities:
        actual = derived.city_store_counts[city["id"]]
        if actual != city["store_count"]:
            correction = CountCorrection("cities", city["id"], city["name"], "store_count", city["store_count"], actual)
            _correct(report, correction)

    for state in states:
        for column, actual in (
            ("store_count", derived.state_store_counts[state["id"]]),
            ("city_count", derived.state_city_counts[state["id"]]),
        ):
            if actual != state[column]:
                correction = CountCorrection("states", state["id"], state["name"], column, state[column], actual)
                _correct(report, correction)

    return report


def print_summary(report: CountsReport) -> None:
    print("=" * 60)
    print("Summary")
    print("=" * 60)
    print(f"  City store_count updates:  {report.count_for('cities', 'store_count')}")
    print(f"  State store_count updates: {report.count_for('states', 'store_count')}")
    print(f"  State city_count updates:  {report.count_for('states', 'city_count')}")
    print(f"  Errors:                    {report.errors}")
    print("=" * 60)
    if report.dry_run:
        print("\n(DRY RUN complete - no changes were made)")
    elif not report.corrections and not report.errors:
        print("\nAll counts are already correct!")
    else:
        print("\nCounts recomputed.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Recompute city and state listing counts")
    parser.add_argument("--dry-run", action="store_true", help="Report corrections without writing them")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    configure_logging()
    args = build_parser().parse_args(argv)

    try:
        init_pool()
        report = recompute_counts(dry_run=args.dry_run)
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        return 1
    except StoreError as exc:
        logger.error("Counts recompute failed: %s", exc)
        return 1

    print_summary(report)
    return 1 if report.errors else 0


if __name__ == "__main__":
    raise SystemExit(main())
