#!/usr/bin/env python3
"""
List suspected duplicate patients of one tenant.

This script is used by clinic staff to review duplicates outside the admin
screen. It reads the record store configured by DATABASE_URL (or .env) and
never writes to it.

Usage:
    python -m scripts.detect_duplicates <tenant_id>
    python -m scripts.detect_duplicates clinic-a --min-score 70 --json
"""

import argparse
import asyncio
import json
import sys
from dataclasses import asdict

from src.core.logging import configure_logging
from src.dedup.models import DuplicateCandidate
from src.dedup.service import DedupService
from src.exceptions import NamayoseError
from src.settings import settings
from src.store.database import Database


def format_candidate(candidate: DuplicateCandidate) -> str:
    """One human-readable block per candidate."""
    a, b = candidate.patient_a, candidate.patient_b
    lines = [
        f"[{candidate.score:3d}] {candidate.patient_id_a} <-> {candidate.patient_id_b}"
        f"  (keep: {candidate.suggested_keep_id})",
        f"      {', '.join(candidate.reasons)}",
    ]
    for side in (a, b):
        lines.append(
            f"      {side.patient_id}: {side.name or '-'} / {side.name_kana or '-'}"
            f" / {side.tel or '-'} / {side.birthday or '-'}"
            f" (reservations={side.reservation_count}, orders={side.order_count})"
        )
    return "\n".join(lines)


async def detect(database_url: str, tenant_id: str, min_score: int) -> list[DuplicateCandidate]:
    database = Database(database_url)
    try:
        service = DedupService(database)
        return await service.detect_candidates(tenant_id, min_score)
    finally:
        await database.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(
        description="List suspected duplicate patients of a tenant",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Candidates at the default threshold
    python -m scripts.detect_duplicates clinic-a

    # Everything with at least one matching signal, as JSON
    python -m scripts.detect_duplicates clinic-a --min-score 0 --json
        """,
    )

    parser.add_argument("tenant_id", help="Tenant whose patients are compared")

    parser.add_argument(
        "--min-score",
        type=int,
        default=settings.dedup_default_min_score,
        help=f"Minimum similarity score (default: {settings.dedup_default_min_score})",
    )

    parser.add_argument(
        "--database-url",
        default=settings.database_url,
        help="SQLAlchemy async database URL (default: from settings)",
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Print candidates as JSON",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()

    configure_logging("DEBUG" if args.verbose else "WARNING")

    if not 0 <= args.min_score <= 100:
        print(f"Error: --min-score must be 0-100, got {args.min_score}", file=sys.stderr)
        sys.exit(1)

    try:
        candidates = asyncio.run(detect(args.database_url, args.tenant_id, args.min_score))
    except NamayoseError as e:
        print(f"Error: {e.code}: {e}", file=sys.stderr)
        sys.exit(1)

    if args.json:
        print(json.dumps([asdict(c) for c in candidates], default=str, ensure_ascii=False, indent=2))
        return

    print(f"{len(candidates)} candidate(s) for {args.tenant_id} (min score {args.min_score})")
    for candidate in candidates:
        print(format_candidate(candidate))


if __name__ == "__main__":
    main()
