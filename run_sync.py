"""
Script to run one order sync from the shell.

    python run_sync.py          # incremental: orders since the last completed run
    python run_sync.py --full   # everything since SYNC_EPOCH
"""
import argparse
import asyncio
import sys
sys.path.insert(0, '.')

from cruise_parking.config import settings
from cruise_parking.database import create_tables
from cruise_parking.exceptions import AppException
from cruise_parking.models.sync_run import SyncType
from cruise_parking.services.sync_service import run_order_sync
from cruise_parking.utils.logging_config import setup_logging


def main() -> int:
    parser = argparse.ArgumentParser(description="Sync WooCommerce orders and rebuild daily occupancy")
    parser.add_argument("--full", action="store_true", help="Re-read every order since the sync epoch")
    args = parser.parse_args()

    setup_logging(level=settings.log_level, json_format=settings.log_json)
    create_tables()

    sync_type = SyncType.FULL if args.full else SyncType.INCREMENTAL

    print("=" * 50)
    print(f"Running {sync_type.value} order sync...")
    print("=" * 50)

    try:
        outcome = asyncio.run(run_order_sync(sync_type))
    except AppException as e:
        print(f"Sync not run: {e.detail}")
        return 1

    print("\n" + "=" * 50)
    print("Results:")
    print(f"  Run:       {outcome.run_id}")
    print(f"  Status:    {outcome.status.value}")
    print(f"  Since:     {outcome.since.isoformat()}")
    print(f"  Fetched:   {outcome.orders_fetched}")
    print(f"  Processed: {outcome.orders_processed}")
    print(f"  Errors:    {outcome.error_count}")
    print("=" * 50)

    for error in outcome.errors:
        if "general" in error:
            print(f"  ! {error['general']}")
        else:
            print(f"  ! order #{error.get('order_id')}: {error.get('error')}")

    return 0 if outcome.status.value == "completed" else 1


if __name__ == "__main__":
    sys.exit(main())
