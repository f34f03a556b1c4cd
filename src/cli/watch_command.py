"""CLI wiring for continuous snapshot monitoring."""

from __future__ import annotations

import argparse
from typing import Any

from store.vault_sdk import VaultClient


def add_watch_command(subparsers: Any) -> None:
    """Register watch subcommand."""
    parser = subparsers.add_parser(
        "watch",
        help="Ingest the snapshot, then re-ingest on every change until interrupted",
    )
    parser.add_argument("--snapshot", help="Override MEETVAULT_SNAPSHOT_PATH")
    parser.add_argument(
        "--poll-interval",
        type=float,
        help="Seconds between snapshot modification checks",
    )


def run_watch_command(client: VaultClient, args: argparse.Namespace) -> int:
    """Run the watch loop and print cycle counters after shutdown."""
    trigger = client.watch()
    print(f"cycles_run={trigger.cycles_run}")
    print(f"cycles_failed={trigger.failures}")
    return 0
