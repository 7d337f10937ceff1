#!/usr/bin/env python3
"""
Show the provenance history of olive oil batches.

This script reads every transfer recorded by the asset registry, resolves
the batch metadata, attributes, composition and both participants of each
transfer, and writes a most-recent-first report as CSV or JSON.
"""

import argparse
import logging
import sys
from typing import List, Optional

from eth_utils import is_address

from scripts.lib.contracts import DEFAULT_ASSETS_ADDRESS, DEFAULT_PARTICIPANTS_ADDRESS
from scripts.lib.events import TransferFilter
from scripts.lib.formatters import OUTPUT_FORMATS, write_report
from scripts.lib.ledger_client import BlockIdentifier, LedgerClient
from scripts.lib.pipeline import (
    DEFAULT_MAX_FETCHES,
    DEFAULT_MAX_WORKERS,
    TransferHistoryError,
    filter_by_participant,
    group_by_asset,
    load_transfer_history,
)


DEFAULT_RPC_URL = "http://127.0.0.1:8545"
BLOCK_TAGS = ["earliest", "latest"]


def log(scope: str, message: str) -> None:
    """Log a message with scope prefix."""
    print(f"[{scope}] {message}", file=sys.stderr)


def parse_block(value: str) -> BlockIdentifier:
    """
    Parse a block argument: a tag, a decimal number or a 0x-prefixed number.

    Raises:
        ValueError: If the value is neither a tag nor a non-negative number
    """
    lowered = value.lower()
    if lowered in BLOCK_TAGS:
        return lowered
    number = int(lowered, 16) if lowered.startswith("0x") else int(lowered)
    if number < 0:
        raise ValueError(f"Invalid block: {value}")
    return number


def validate_address(value: str, option: str) -> str:
    """
    Validate a hex address given on the command line.

    Raises:
        ValueError: If the value is not a 20-byte hex address
    """
    if not is_address(value):
        raise ValueError(f"Invalid address for {option}: {value}")
    return value


def main(args: Optional[List[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        args: Command line arguments (uses sys.argv if None)

    Returns:
        Exit code (0 for success, 1 for error)
    """
    parser = argparse.ArgumentParser(
        description="Reconstruct the provenance history of olive oil batches from the ledger.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Full history against a local node, CSV to stdout
  %(prog)s

  # Route of a single batch as JSON, saved to file
  %(prog)s --asset-id 7 --format json --output batch_7.json

  # Route of a processed batch including its raw materials
  %(prog)s --asset-id 7 --with-sources

  # Transfers sent or received by one participant
  %(prog)s --participant 0x70997970C51812dc3A010C7d01b50e0d17dc79C8
        """,
    )

    parser.add_argument("--rpc-url", default=DEFAULT_RPC_URL, help="Ledger JSON-RPC endpoint")
    parser.add_argument(
        "--participants-contract",
        default=DEFAULT_PARTICIPANTS_ADDRESS,
        help="Participant registry address",
    )
    parser.add_argument(
        "--assets-contract",
        default=DEFAULT_ASSETS_ADDRESS,
        help="Asset registry address",
    )
    parser.add_argument("--from-block", default="earliest", help="First block to scan")
    parser.add_argument("--to-block", default="latest", help="Last block to scan")
    parser.add_argument("--asset-id", type=int, help="Only show transfers of this asset")
    parser.add_argument(
        "--with-sources",
        action="store_true",
        help="With --asset-id, also show transfers of the raw materials it was built from",
    )
    parser.add_argument("--participant", help="Only show transfers involving this address")
    parser.add_argument(
        "--max-workers",
        type=int,
        default=DEFAULT_MAX_WORKERS,
        help="Transfers enriched concurrently",
    )
    parser.add_argument(
        "--max-fetches",
        type=int,
        default=DEFAULT_MAX_FETCHES,
        help="Ledger reads in flight at once",
    )
    parser.add_argument("--format", choices=OUTPUT_FORMATS, default="csv", help="Report format")
    parser.add_argument(
        "--output",
        help="Output file path (timestamp auto-appended). If not specified, outputs to stdout.",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    parsed_args = parser.parse_args(args)

    logging.basicConfig(
        level=logging.DEBUG if parsed_args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        participants_address = validate_address(
            parsed_args.participants_contract, "--participants-contract"
        )
        assets_address = validate_address(parsed_args.assets_contract, "--assets-contract")
        if parsed_args.participant:
            validate_address(parsed_args.participant, "--participant")
        transfer_filter = TransferFilter(
            from_block=parse_block(parsed_args.from_block),
            to_block=parse_block(parsed_args.to_block),
            asset_id=parsed_args.asset_id,
        )
        if parsed_args.with_sources and parsed_args.asset_id is None:
            raise ValueError("--with-sources requires --asset-id")
        if parsed_args.max_workers < 1 or parsed_args.max_fetches < 1:
            raise ValueError("--max-workers and --max-fetches must be at least 1")
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    client = LedgerClient(parsed_args.rpc_url)

    log("history", "Loading transfer history...")
    try:
        transactions = load_transfer_history(
            client,
            participants_address,
            assets_address,
            transfer_filter=transfer_filter,
            max_workers=parsed_args.max_workers,
            max_fetches=parsed_args.max_fetches,
            with_sources=parsed_args.with_sources,
        )
    except TransferHistoryError as e:
        log("history", f"ERROR: {e}")
        return 1

    if parsed_args.participant:
        transactions = filter_by_participant(transactions, parsed_args.participant)

    groups = group_by_asset(transactions)
    log("history", f"Found {len(transactions)} transfers across {len(groups)} assets")

    output_file = write_report(transactions, parsed_args.format, parsed_args.output)
    if output_file:
        print(f"\nResults written to: {output_file}", file=sys.stderr)

    return 0


if __name__ == "__main__":
    sys.exit(main())
