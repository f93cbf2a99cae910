#!/usr/bin/env python
"""
Analytics Store Command Line

Operator entry point for storage maintenance.
Usage:
    analytics-store init-indexes
    analytics-store stats
    analytics-store cleanup
    analytics-store emergency-cleanup --yes
"""

import argparse
import asyncio
import json
import sys
from typing import Any, Dict, List, Optional

from analytics_store.config.logging import configure_logging
from analytics_store.service import AnalyticsStore


async def run_command(command: str, store: Optional[AnalyticsStore] = None) -> Dict[str, Any]:
    """Connect, run one maintenance command and disconnect"""
    store = store or AnalyticsStore()
    await store.start(background=False, scheduler=False)
    try:
        if not store.is_available():
            return {"error": "analytics store unavailable"}

        if command == "init-indexes":
            result = await store.registry.ensure_indexes()
            return {"status": result.status.value, **(result.value or {})}
        if command == "stats":
            return (await store.monitor.get_storage_stats()).to_dict()
        if command == "cleanup":
            return (await store.engine.check_and_cleanup_storage()).to_dict()
        if command == "emergency-cleanup":
            return (await store.engine.emergency_cleanup()).to_dict()
        raise ValueError(f"Unknown command: {command}")
    finally:
        await store.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="analytics-store",
        description="Analytics store maintenance",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Log level (default: WARNING)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("init-indexes", help="Create TTL and uniqueness indexes")
    subparsers.add_parser("stats", help="Show storage usage per category")
    subparsers.add_parser("cleanup", help="Run a threshold-triggered cleanup pass")
    emergency = subparsers.add_parser(
        "emergency-cleanup",
        help="Delete everything older than half its retention window",
    )
    emergency.add_argument(
        "--yes",
        action="store_true",
        help="Confirm the emergency pass",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "emergency-cleanup" and not args.yes:
        print("Emergency cleanup halves every retention window. Re-run with --yes to confirm.", file=sys.stderr)
        return 2

    configure_logging(args.log_level, stream=sys.stderr)
    output = asyncio.run(run_command(args.command))
    print(json.dumps(output, indent=2, default=str))
    return 1 if "error" in output else 0


if __name__ == "__main__":
    sys.exit(main())
