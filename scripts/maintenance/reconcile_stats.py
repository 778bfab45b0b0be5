"""
Reconcile per-owner stats ledgers against the items they count.

Samples owners, recounts their items and overwrites any ledger whose drift
exceeds the threshold. Meant to run once a day from cron.

Usage:
    # Default pass (100 owners, drift threshold 5)
    python -m scripts.maintenance.reconcile_stats

    # Larger sample, stricter threshold
    python -m scripts.maintenance.reconcile_stats --sample-size 500 --drift-threshold 0
"""

from __future__ import annotations

import argparse
import logging
import sys

from recall.stats.constants import DEFAULT_DRIFT_THRESHOLD, DEFAULT_SAMPLE_SIZE
from recall.stats.reconcile import reconcile
from recall.store.mongo import MongoDocumentStore, get_database_name


def main() -> int:
    parser = argparse.ArgumentParser(description="Detect and correct stats ledger drift")
    parser.add_argument(
        "--sample-size",
        type=int,
        default=DEFAULT_SAMPLE_SIZE,
        help=f"Owners to check (default: {DEFAULT_SAMPLE_SIZE})"
    )
    parser.add_argument(
        "--drift-threshold",
        type=int,
        default=DEFAULT_DRIFT_THRESHOLD,
        help=f"Largest tolerated per-bucket difference (default: {DEFAULT_DRIFT_THRESHOLD})"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log per-owner details"
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    print("=" * 60)
    print(f"Reconciling stats ledgers in {get_database_name()}")
    print("=" * 60)

    result = reconcile(
        MongoDocumentStore(),
        sample_size=args.sample_size,
        drift_threshold=args.drift_threshold,
    )

    print()
    print(f"Status:         {result.status}")
    print(f"Owners sampled: {result.owners_sampled}")
    print(f"Owners checked: {result.owners_checked}")
    print(f"Drift detected: {result.drift_detected}")
    print(f"Corrections:    {result.corrections}")
    print(f"Errors:         {result.errors}")
    for owner_id in result.failed_owner_ids:
        print(f"  ✗ {owner_id}")
    print()
    print(result.message)

    return 0 if result.status == "completed" else 1


if __name__ == "__main__":
    sys.exit(main())
