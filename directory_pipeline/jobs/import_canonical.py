"""CLI job importing canonical candidate records into the directory.

Candidates come from the external collection system as a JSON array. Each one
is validated, checked against existing listings, resolved to a known state and
city, and inserted through the ingestion boundary. One bad record never stops
the batch; the exit status only reports whether any record errored.

Usage:
    directory-import --file canonical.json --batch-id atf-batch-0-1 [--dry-run]
"""

import argparse
import json
import logging
import signal
import threading
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from directory_pipeline.core.config import configure_logging, get_settings
from directory_pipeline.core.db import init_pool
from directory_pipeline.core.errors import (
    ConfigurationError,
    DuplicateError,
    ResolutionError,
    ValidationError,
)
from directory_pipeline.core.queries import get_state_by_slug, listing_exists_by_external_id
from directory_pipeline.etl.normalize import resolve_state_code, state_slug
from directory_pipeline.etl.transform import parse_candidate, to_listing_row
from directory_pipeline.ingestion import ensure_city, import_repair_company, log_ingestion
from directory_pipeline.models import CandidateRecord

logger = logging.getLogger(__name__)

PREVIEW_SIZE = 10

SKIP_LABELS = {
    "already_exists": "Already exists",
    "empty_city": "Empty city",
    "missing_external_id": "Missing external id",
    "empty_name": "Empty name",
    "empty_address": "Empty address",
    "empty_state": "Empty state",
}


@dataclass(frozen=True)
class ImportOptions:
    file_path: str
    batch_id: str
    dry_run: bool = False
    confidence_threshold: float = 0.85
    limit: Optional[int] = None
    source: str = "outscraper"


@dataclass
class ImportStats:
    total: int = 0
    eligible: int = 0
    inserted: int = 0
    skipped: int = 0
    errors: int = 0
    skip_reasons: Counter = field(default_factory=Counter)
    stopped_early: bool = False


def load_candidates(path: str) -> List[CandidateRecord]:
    """Read the collector's JSON array; an unreadable file is a configuration error."""
    try:
        with open(path, "r", encoding="utf-8") as fh:
            payload = json.load(fh)
    except FileNotFoundError as exc:
        raise ConfigurationError(f"File not found: {path}") from exc
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Failed to parse {path}: {exc}") from exc

    if not isinstance(payload, list):
        raise ConfigurationError(f"{path} must contain a JSON array of candidate records")
    for index, item in enumerate(payload):
        if not isinstance(item, dict):
            raise ConfigurationError(f"{path}: element {index} is not a JSON object")
    return [parse_candidate(item) for item in payload]


def select_eligible(
    candidates: Sequence[CandidateRecord],
    threshold: float,
    limit: Optional[int] = None,
) -> List[CandidateRecord]:
    """Keep candidates meeting the confidence threshold, in input order, up to ``limit``."""
    eligible = [candidate for candidate in candidates if candidate.confidence >= threshold]
    if limit:
        eligible = eligible[:limit]
    return eligible


def validate_candidate(candidate: CandidateRecord) -> None:
    if not candidate.external_id:
        raise ValidationError("missing_external_id", "Missing external id")
    if not candidate.name:
        raise ValidationError("empty_name", "Missing or empty name")
    if not candidate.address:
        raise ValidationError("empty_address", "Missing or empty address")
    if not candidate.state:
        raise ValidationError("empty_state", "Missing state")


def resolve_state(designation: str) -> Tuple[Dict[str, Any], str]:
    """Return ``(state_row, code)`` for a state name or code known to the directory."""
    code = resolve_state_code(designation)
    slug = state_slug(code) if code else None
    if not slug:
        raise ResolutionError(f"Unknown state: {designation}")
    state = get_state_by_slug(slug)
    if state is None:
        raise ResolutionError(f"State not found: {slug}")
    return state, code


def process_candidate(candidate: CandidateRecord, options: ImportOptions) -> int:
    """Run one candidate through validate, duplicate check, resolve, ensure city and insert."""
    validate_candidate(candidate)

    if listing_exists_by_external_id(candidate.external_id):
        raise DuplicateError(f"{candidate.external_id} already exists")

    state, state_code = resolve_state(candidate.state)

    city_name = (candidate.city or "").strip()
    if not city_name:
        raise ValidationError("empty_city", "Empty city name")

    city = ensure_city(state["id"], state_code, city_name, candidate.lat, candidate.lng)

    row = to_listing_row(
        candidate,
        city_id=city.id,
        state_id=state["id"],
        batch_id=options.batch_id,
        source=options.source,
    )
    # Batch imports are approved on insert; other ingestion paths start unapproved.
    row["is_approved"] = True
    return import_repair_company(row)


def run_import_job(
    candidates: Sequence[CandidateRecord],
    options: ImportOptions,
    should_stop: Optional[Callable[[], bool]] = None,
) -> ImportStats:
    eligible = select_eligible(candidates, options.confidence_threshold, options.limit)
    stats = ImportStats(total=len(candidates), eligible=len(eligible))
    logger.info(
        "Loaded %d candidates, %d eligible (threshold=%.2f, limit=%s)",
        stats.total,
        stats.eligible,
        options.confidence_threshold,
        options.limit or "none",
    )

    if options.dry_run:
        print_preview(eligible)
        return stats

    for candidate in eligible:
        if should_stop and should_stop():
            logger.warning("Stop requested; leaving %d candidates unprocessed", stats.eligible - _handled(stats))
            stats.stopped_early = True
            break

        label = candidate.name or "(unnamed)"
        try:
            listing_id = process_candidate(candidate, options)
        except (ValidationError, DuplicateError) as exc:
            stats.skipped += 1
            stats.skip_reasons[exc.reason] += 1
            logger.info("SKIP: %s - %s", label, exc)
            continue
        except ResolutionError as exc:
            stats.errors += 1
            logger.error("ERROR: %s - %s", label, exc)
            continue
        except Exception as exc:  # noqa: BLE001
            stats.errors += 1
            logger.error(
                "ERROR: %s (%s, %s) external_id=%s - %s",
                label,
                candidate.city or "no city",
                candidate.state or "no state",
                candidate.external_id,
                exc,
                exc_info=True,
            )
            continue

        stats.inserted += 1
        logger.info("INSERT: %s (%s, %s) id=%s", label, candidate.city, candidate.state, listing_id)

    if stats.inserted > 0:
        log_ingestion(
            options.source,
            "import",
            f"Batch {options.batch_id}: imported {stats.inserted} repair companies",
        )
    return stats


def _handled(stats: ImportStats) -> int:
    return stats.inserted + stats.skipped + stats.errors


def print_preview(eligible: Sequence[CandidateRecord]) -> None:
    print("DRY RUN - No database writes")
    print()
    print(f"Preview (first {PREVIEW_SIZE}):")
    for candidate in eligible[:PREVIEW_SIZE]:
        code = resolve_state_code(candidate.state) or "??"
        print(f"   {candidate.name} ({candidate.city}, {code}) [{candidate.confidence}]")
    if len(eligible) > PREVIEW_SIZE:
        print(f"   ... and {len(eligible) - PREVIEW_SIZE} more")


def print_summary(stats: ImportStats, options: ImportOptions) -> None:
    print()
    print("=" * 60)
    print("  RESULTS")
    print("=" * 60)
    print(f"  Mode:             {'DRY RUN' if options.dry_run else 'LIVE'}")
    print(f"  Batch ID:         {options.batch_id}")
    print(f"  Total records:    {stats.total}")
    print(f"  Eligible:         {stats.eligible}")
    print(f"  Inserted:         {stats.inserted}")
    print(f"  Skipped:          {stats.skipped}")
    print(f"  Errors:           {stats.errors}")
    if stats.skipped:
        print()
        print("  Skipped breakdown:")
        for reason, count in stats.skip_reasons.most_common():
            print(f"    - {SKIP_LABELS.get(reason, reason)}: {count}")
    if stats.stopped_early:
        print()
        print("  Stopped before the end of the batch.")
    print("=" * 60)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Import canonical candidate records into the directory")
    parser.add_argument("--file", dest="file_path", help="Path to the canonical JSON array")
    parser.add_argument("--batch-id", dest="batch_id", help="Batch identifier used for audit and rollback")
    parser.add_argument("--dry-run", action="store_true", help="Preview eligible records without writing")
    parser.add_argument(
        "--confidence",
        dest="confidence_threshold",
        type=float,
        default=get_settings().confidence_threshold,
        help="Minimum confidence a candidate needs to be eligible",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=0,
        help="Maximum number of eligible records to process (0 = no limit)",
    )
    return parser


def options_from_args(args: argparse.Namespace) -> ImportOptions:
    if not args.file_path:
        raise ConfigurationError("--file is required")
    if not args.batch_id:
        raise ConfigurationError("--batch-id is required")
    if args.limit is not None and args.limit < 0:
        raise ConfigurationError("--limit must not be negative")
    return ImportOptions(
        file_path=args.file_path,
        batch_id=args.batch_id,
        dry_run=args.dry_run,
        confidence_threshold=args.confidence_threshold,
        limit=args.limit or None,
        source=get_settings().import_source,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    configure_logging()

    try:
        args = build_parser().parse_args(argv)
        options = options_from_args(args)
        candidates = load_candidates(options.file_path)
        if not options.dry_run:
            init_pool()
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        return 1

    print("=" * 60)
    print("  IMPORT CANONICAL DATA")
    print("=" * 60)
    print(f"  File:                 {options.file_path}")
    print(f"  Batch ID:             {options.batch_id}")
    print(f"  Confidence threshold: {options.confidence_threshold}")
    print(f"  Limit:                {options.limit or 'none'}")
    print(f"  Mode:                 {'DRY RUN' if options.dry_run else 'LIVE'}")
    print("=" * 60)

    stop_requested = threading.Event()
    previous_handler = signal.signal(signal.SIGINT, lambda signum, frame: stop_requested.set())
    try:
        stats = run_import_job(candidates, options, should_stop=stop_requested.is_set)
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    print_summary(stats, options)
    return 1 if stats.errors > 0 else 0


if __name__ == "__main__":
    raise SystemExit(main())
