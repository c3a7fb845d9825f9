"""CLI job applying human-reviewed duplicate merges.

Input is a JSON array of ``{"keep_id": .., "remove_id": ..}`` pairs. For each
pair the removed listing is deleted and the kept listing receives any field
it was missing from the removed one. Fields already set on the kept listing
are never overwritten.

Runs as a dry run unless ``--execute`` is passed. City and state counts are
left alone; run ``directory-recompute-counts`` afterwards.
"""

import argparse
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import psycopg2
from psycopg2 import sql

from directory_pipeline.core.config import configure_logging, get_settings
from directory_pipeline.core.db import get_connection, init_pool
from directory_pipeline.core.errors import ConfigurationError, StoreError
from directory_pipeline.core.queries import get_listing
from directory_pipeline.models import MergeDirective

logger = logging.getLogger(__name__)

FILLABLE_FIELDS = (
    "address",
    "phone",
    "website",
    "description",
    "zip",
    "lat",
    "lng",
    "rating",
    "review_count",
    "services",
    "external_id",
    "source",
)


@dataclass
class MergeStats:
    pairs_processed: int = 0
    pairs_skipped: int = 0
    fields_filled: int = 0
    records_deleted: int = 0
    errors: int = 0


def load_directives(path: str) -> List[MergeDirective]:
    """Read and validate merge pairs; any malformed pair rejects the whole file."""
    try:
        with open(path, "r", encoding="utf-8") as fh:
            payload = json.load(fh)
    except FileNotFoundError as exc:
        raise ConfigurationError(f"File not found: {path}") from exc
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Failed to parse {path}: {exc}") from exc

    if not isinstance(payload, list) or not payload:
        raise ConfigurationError("Input must be a non-empty JSON array of { keep_id, remove_id } objects")

    directives = []
    for pair in payload:
        if not isinstance(pair, dict) or not pair.get("keep_id") or not pair.get("remove_id"):
            raise ConfigurationError(f"Invalid pair: {json.dumps(pair)} - must have keep_id and remove_id")
        try:
            keep_id, remove_id = int(pair["keep_id"]), int(pair["remove_id"])
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid pair: {json.dumps(pair)} - ids must be integers") from exc
        if keep_id == remove_id:
            raise ConfigurationError(f"Invalid pair: keep_id and remove_id are the same ({keep_id})")
        directives.append(MergeDirective(keep_id=keep_id, remove_id=remove_id))
    return directives


def stage_fills(keep: Dict[str, Any], remove: Dict[str, Any]) -> Dict[str, Any]:
    """Fields that are null on ``keep`` but present on ``remove``."""
    return {
        name: remove[name]
        for name in FILLABLE_FIELDS
        if keep.get(name) is None and remove.get(name) is not None
    }


def apply_merge(keep_id: int, remove_id: int, updates: Dict[str, Any]) -> None:
    """Delete the removed listing and fill the kept one in a single transaction.

    The delete runs first: the unique index on external_id is checked per
    statement, and the kept row may take over the removed row's external_id.
    """
    with get_connection() as conn:
        try:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM listings WHERE id = %(remove_id)s", {"remove_id": remove_id})
                if cur.rowcount != 1:
                    raise StoreError(f"Failed to delete remove_id={remove_id}")
                if updates:
                    cur.execute(
                        sql.SQL("UPDATE listings SET {assignments} WHERE id = %(keep_id)s").format(
                            assignments=sql.SQL(", ").join(
                                sql.SQL("{} = {}").format(sql.Identifier(name), sql.Placeholder(name))
                                for name in updates
                            )
                        ),
                        {**updates, "keep_id": keep_id},
                    )
                    if cur.rowcount != 1:
                        raise StoreError(f"Failed to update keep_id={keep_id}")
            conn.commit()
        except psycopg2.Error as exc:
            conn.rollback()
            raise StoreError.from_exception(exc) from exc
        except StoreError:
            conn.rollback()
            raise


def run_merge_job(directives: Sequence[MergeDirective], *, execute: bool = False) -> MergeStats:
    stats = MergeStats()
    for directive in directives:
        logger.info("--- Pair: keep=%s, remove=%s ---", directive.keep_id, directive.remove_id)
        try:
            keep = get_listing(directive.keep_id)
            if keep is None:
                logger.info("  SKIP: keep_id=%s not found", directive.keep_id)
                stats.pairs_skipped += 1
                continue
            remove = get_listing(directive.remove_id)
            if remove is None:
                logger.info("  SKIP: remove_id=%s not found", directive.remove_id)
                stats.pairs_skipped += 1
                continue

            logger.info("  Keep:   [%s] %s", keep["id"], keep.get("name"))
            logger.info("  Remove: [%s] %s", remove["id"], remove.get("name"))

            updates = stage_fills(keep, remove)
            for name, value in updates.items():
                logger.info("  Fill: %s = %s", name, json.dumps(value, default=str)[:60])

            if execute:
                apply_merge(directive.keep_id, directive.remove_id, updates)
                logger.info(
                    "  Updated %d field(s) on %s and deleted %s",
                    len(updates),
                    directive.keep_id,
                    directive.remove_id,
                )
            else:
                logger.info(
                    "  [DRY RUN] Would update %d field(s) and delete record %s",
                    len(updates),
                    directive.remove_id,
                )
        except Exception as exc:  # noqa: BLE001
            logger.error("  ERROR: keep=%s remove=%s - %s", directive.keep_id, directive.remove_id, exc)
            stats.errors += 1
            continue

        stats.pairs_processed += 1
        stats.fields_filled += len(updates)
        stats.records_deleted += 1
    return stats


def print_summary(stats: MergeStats, *, execute: bool) -> None:
    print("=" * 60)
    print("Summary")
    print("=" * 60)
    print(f"Mode:              {'LIVE' if execute else 'DRY RUN'}")
    print(f"Pairs processed:   {stats.pairs_processed}")
    print(f"Pairs skipped:     {stats.pairs_skipped}")
    print(f"Fields filled:     {stats.fields_filled}")
    print(f"Records deleted:   {stats.records_deleted}")
    print(f"Errors:            {stats.errors}")
    if not execute:
        print("\n[DRY RUN] No changes made. Use --execute to apply.")
    elif stats.errors == 0:
        print("\nMerge complete! Run directory-recompute-counts to update city/state counts.")
    else:
        print("\nMerge completed with errors. Review output above.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Merge reviewed duplicate listings")
    parser.add_argument("input_file", help="JSON array of {keep_id, remove_id} pairs")
    parser.add_argument("--execute", action="store_true", help="Apply the merges (default is a dry run)")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    configure_logging()
    args = build_parser().parse_args(argv)

    try:
        directives = load_directives(args.input_file)
        init_pool()
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        return 1

    print("=" * 60)
    print("Merge Duplicate Listings")
    print("=" * 60)
    print(f"Mode:   {'LIVE EXECUTION' if args.execute else 'DRY RUN (no changes)'}")
    print(f"Input:  {args.input_file}")
    print(f"Pairs:  {len(directives)}")
    print()

    if args.execute:
        window = get_settings().merge_cancel_window_seconds
        print("WARNING: This will modify the database!")
        print(f"Press Ctrl+C within {window:g} seconds to cancel...")
        try:
            time.sleep(window)
        except KeyboardInterrupt:
            print("Cancelled; no changes made.")
            return 1
        print()

    stats = run_merge_job(directives, execute=args.execute)
    print_summary(stats, execute=args.execute)
    return 1 if stats.errors > 0 else 0


if __name__ == "__main__":
    raise SystemExit(main())
