#!/usr/bin/env python3
"""
Show whether burning UNI to release the token jar is currently profitable.

This script discovers every ERC-20 token held by the jar, resolves symbols,
decimals and USD prices, and compares the jar's value with the cost of
burning 4,000 UNI. It can keep watching on a fixed interval, export the
token breakdown to CSV, and submit the release transaction when profitable.
"""

import argparse
import sys
from typing import List, Optional

from scripts.lib.alchemy_client import AlchemyClient
from scripts.lib.config import (
    BURN_QUANTITY,
    FIREPIT_ADDRESS,
    KNOWN_TOKENS,
    PRICE_CHUNK_SIZE,
    REFRESH_INTERVAL,
    TOKEN_JAR_ADDRESS,
    UNI_ADDRESS,
    get_api_key,
)
from scripts.lib.dexscreener_client import DexScreenerClient
from scripts.lib.errors import NetworkError, ReleaseBlockedError
from scripts.lib.formatters import render_report, write_csv
from scripts.lib.metadata import MetadataResolver
from scripts.lib.models import JarSnapshot
from scripts.lib.monitor import JarMonitor, log
from scripts.lib.prices import PriceResolver
from scripts.lib.release import ReleaseAction, RpcTransactionSubmitter


def build_monitor(
    api_key: str,
    jar_address: str,
    burn_quantity: int,
    interval: float,
    verify_known: bool = False,
) -> JarMonitor:
    """
    Wire the clients and resolvers into a JarMonitor.

    Args:
        api_key: Alchemy API key
        jar_address: Jar whose holdings are valued
        burn_quantity: UNI required for the burn
        interval: Refresh interval in seconds
        verify_known: Read metadata on-chain even for well-known tokens

    Returns:
        Configured JarMonitor
    """
    client = AlchemyClient(api_key)
    metadata_resolver = MetadataResolver(client, KNOWN_TOKENS, verify_known=verify_known)
    price_resolver = PriceResolver(DexScreenerClient(), chunk_size=PRICE_CHUNK_SIZE)

    return JarMonitor(
        client,
        metadata_resolver,
        price_resolver,
        jar_address=jar_address,
        burn_token=UNI_ADDRESS,
        burn_quantity=burn_quantity,
        refresh_interval=interval,
    )


def validate_interval(value: str) -> float:
    """argparse type for a positive number of seconds."""
    try:
        interval = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid interval: {value}")
    if interval <= 0:
        raise argparse.ArgumentTypeError(f"Interval must be positive: {value}")
    return interval


def submit_release(action: ReleaseAction, snapshot: Optional[JarSnapshot]) -> int:
    """Submit the release transaction, returning an exit code."""
    try:
        tx_hash = action.submit(snapshot)
    except ReleaseBlockedError as e:
        log("release", f"Not submitted: {e}")
        return 1
    except NetworkError as e:
        log("release", f"ERROR: {e}")
        return 1

    log("release", f"Submitted transaction {tx_hash}")
    log("release", f"View: https://etherscan.io/tx/{tx_hash}")
    return 0


def main(args: Optional[List[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        args: Command line arguments (uses sys.argv if None)

    Returns:
        Exit code (0 for success, 1 for error)
    """
    parser = argparse.ArgumentParser(
        description="Value the UNI token jar and check whether burning is profitable.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # One-off valuation
  %(prog)s --api-key YOUR_KEY

  # Watch every 60 seconds and export each snapshot to CSV
  %(prog)s --watch --interval 60 --output jar_report.csv

  # Burn and release when profitable, signing through a local node
  %(prog)s --release --rpc-url http://localhost:8545 --sender 0x...
        """,
    )

    parser.add_argument(
        "--api-key",
        help="Alchemy API key (defaults to the ALCHEMY_API_KEY environment variable)",
    )
    parser.add_argument(
        "--jar",
        default=TOKEN_JAR_ADDRESS,
        help=f"Token jar address (default: {TOKEN_JAR_ADDRESS})",
    )
    parser.add_argument(
        "--burn-quantity",
        type=int,
        default=BURN_QUANTITY,
        help=f"UNI burned per release (default: {BURN_QUANTITY})",
    )
    parser.add_argument(
        "--watch",
        action="store_true",
        help="Keep refreshing until interrupted",
    )
    parser.add_argument(
        "--interval",
        type=validate_interval,
        default=REFRESH_INTERVAL,
        help=f"Refresh interval in seconds (default: {REFRESH_INTERVAL:g})",
    )
    parser.add_argument(
        "--verify-known",
        action="store_true",
        help="Read symbol/decimals on-chain even for well-known tokens",
    )
    parser.add_argument(
        "--output",
        help="CSV output path (timestamp auto-appended)",
    )
    parser.add_argument(
        "--release",
        action="store_true",
        help="Submit release(address[]) if the burn is profitable",
    )
    parser.add_argument("--rpc-url", help="JSON-RPC endpoint that signs for --sender")
    parser.add_argument("--sender", help="Account that holds and has approved the UNI")

    parsed_args = parser.parse_args(args)

    try:
        api_key = get_api_key(parsed_args.api_key)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if parsed_args.release and not (parsed_args.rpc_url and parsed_args.sender):
        print("Error: --release requires --rpc-url and --sender", file=sys.stderr)
        return 1

    if parsed_args.burn_quantity <= 0:
        print("Error: --burn-quantity must be positive", file=sys.stderr)
        return 1

    monitor = build_monitor(
        api_key,
        parsed_args.jar,
        parsed_args.burn_quantity,
        parsed_args.interval,
        verify_known=parsed_args.verify_known,
    )

    action: Optional[ReleaseAction] = None
    if parsed_args.release:
        submitter = RpcTransactionSubmitter(parsed_args.rpc_url, parsed_args.sender)
        action = ReleaseAction(submitter, FIREPIT_ADDRESS)

    exit_codes: List[int] = []

    def handle_snapshot(snapshot: Optional[JarSnapshot]) -> None:
        print(render_report(snapshot, is_loading=monitor.is_loading))
        print()

        if snapshot is None:
            exit_codes.append(1)
            return

        if parsed_args.output:
            filename = write_csv(snapshot, parsed_args.output)
            log("report", f"Results written to: {filename}")

        if action is None:
            exit_codes.append(0)
            return

        try:
            action.poll()
        except NetworkError as e:
            log("release", f"Could not check transaction {action.tx_hash}: {e}")

        if not monitor.is_current:
            stages = ", ".join(
                f"{name}={type(result).__name__.lower()}"
                for name, result in monitor.stage_results.items()
            )
            log("release", f"Skipped until every stage is fresh ({stages})")
            exit_codes.append(0)
        elif action.can_submit(snapshot):
            exit_codes.append(submit_release(action, snapshot))
        else:
            log("release", f"Skipped (status: {action.status}, profitable: {snapshot.is_profitable})")
            exit_codes.append(0)

    log("monitor", f"Watching jar {parsed_args.jar}")
    try:
        monitor.run(handle_snapshot, max_ticks=None if parsed_args.watch else 1)
    except KeyboardInterrupt:
        log("monitor", "Stopped")
        return 0

    return exit_codes[-1] if exit_codes else 1


if __name__ == "__main__":
    sys.exit(main())
