"""meetvault CLI entry points.
This module exposes ingest, watch, and inspection commands.
It maps argparse commands onto SDK calls.
"""

from __future__ import annotations

import argparse
from dataclasses import replace
import sys
from typing import Any, Sequence

from cli.watch_command import add_watch_command, run_watch_command
from core.config import VaultConfig, parse_poll_interval, resolve_path
from core.config_file import load_config_file
from core.errors import BatchIngestError, MalformedSnapshotError, VaultError
from store.vault_sdk import VaultClient


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level CLI parser.

    Returns:
        Configured argument parser.
    """
    parser = argparse.ArgumentParser(
        prog="meetvault",
        description="Versioned ingest of meeting snapshot files into SQLite",
    )
    parser.add_argument("--db-path", help="Override MEETVAULT_DB_PATH for this command")
    parser.add_argument("--config", help="Optional YAML config file")
    subparsers = parser.add_subparsers(dest="command", required=True)
    _add_ingest_command(subparsers)
    add_watch_command(subparsers)
    _add_history_command(subparsers)
    _add_stats_command(subparsers)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the meetvault CLI.

    Args:
        argv: Optional argument vector.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        config = _build_config(args)
        with VaultClient(config) as client:
            return _dispatch(parser, client, args)
    except VaultError as error:
        print(f"error={error}", file=sys.stderr)
        return 1


def _dispatch(
    parser: argparse.ArgumentParser,
    client: VaultClient,
    args: argparse.Namespace,
) -> int:
    if args.command == "ingest":
        return _run_ingest_command(client, args)
    if args.command == "watch":
        return run_watch_command(client, args)
    if args.command == "history":
        return _run_history_command(client, args)
    if args.command == "stats":
        return _run_stats_command(client)
    parser.error(f"Unsupported command: {args.command}")
    return 2


def _build_config(args: argparse.Namespace) -> VaultConfig:
    """Build config from env, then config file, then CLI flags.

    Args:
        args: Parsed CLI args.

    Returns:
        Effective runtime configuration.
    """
    config = VaultConfig.from_env()
    if args.config:
        config = load_config_file(args.config, config)
    if args.db_path:
        config = replace(config, db_path=resolve_path(args.db_path))
    snapshot = getattr(args, "snapshot", None)
    if snapshot:
        config = replace(config, snapshot_path=resolve_path(snapshot))
    poll_interval = getattr(args, "poll_interval", None)
    if poll_interval is not None:
        config = replace(
            config, poll_interval=parse_poll_interval(str(poll_interval), "--poll-interval")
        )
    return config


def _run_ingest_command(client: VaultClient, args: argparse.Namespace) -> int:
    """Handle ingest command.

    Args:
        client: SDK client.
        args: Parsed CLI args.

    Returns:
        Exit code.
    """
    try:
        report = client.ingest_once()
    except (MalformedSnapshotError, BatchIngestError) as error:
        print(f"ingest_error={error}", file=sys.stderr)
        return 1
    print(f"documents_seen={report.documents_seen}")
    print(f"batches_committed={report.batches_committed}")
    print(f"history_records={report.history_records}")
    print(f"upserts={report.total_upserts}")
    print(f"skipped_entities={report.skipped_entities}")
    return 0


def _run_history_command(client: VaultClient, args: argparse.Namespace) -> int:
    """Handle history command.

    Args:
        client: SDK client.
        args: Parsed CLI args.

    Returns:
        Exit code.
    """
    for record in client.history(args.document_id):
        print(
            f"{record.captured_at}\t"
            f"{record.history_id}\t"
            f"{record.state.get('title') or '-'}\t"
            f"{record.state.get('updated_at') or '-'}\t"
            f"{','.join(record.changed_fields) or '-'}"
        )
    return 0


def _run_stats_command(client: VaultClient) -> int:
    """Handle stats command."""
    for table, total in client.table_counts().items():
        print(f"{table}={total}")
    return 0


def _add_ingest_command(subparsers: Any) -> None:
    """Register ingest subcommand."""
    parser = subparsers.add_parser("ingest", help="Ingest the snapshot file once")
    parser.add_argument("--snapshot", help="Override MEETVAULT_SNAPSHOT_PATH")


def _add_history_command(subparsers: Any) -> None:
    """Register history subcommand."""
    parser = subparsers.add_parser("history", help="List prior states of a document")
    parser.add_argument("--document-id", required=True, help="Document id")


def _add_stats_command(subparsers: Any) -> None:
    """Register stats subcommand."""
    subparsers.add_parser("stats", help="Print row counts per table")
