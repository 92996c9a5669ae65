#!/usr/bin/env python3
"""CLI for running an asset rescue through a private bundle relay"""

import argparse
import asyncio
import json
import signal
import sys
from decimal import Decimal

from eth_utils import from_wei, to_wei

from rescuer.config import get_settings
from rescuer.core.execution import FeeEstimator
from rescuer.core.recovery import ConfigurationError
from rescuer.logging_config import setup_logging
from rescuer.main import build_runtime, run_rescue


def print_fees(base_fee_gwei: Decimal, blocks_in_future: int, priority_fee_gwei: Decimal):
    """Pretty print fee bounds for a target block"""
    estimator = FeeEstimator(
        priority_fee_per_gas=int(to_wei(priority_fee_gwei, "gwei")),
        blocks_in_future=blocks_in_future,
    )
    fees = estimator.estimate(int(to_wei(base_fee_gwei, "gwei")))

    print(f"\n⛽ Fee bounds for block +{fees.blocks_in_future}")
    print("=" * 50)
    print(f"Base fee (now):         {from_wei(fees.base_fee_per_gas, 'gwei')} gwei")
    print(f"Projected base fee:     {from_wei(fees.projected_base_fee, 'gwei')} gwei")
    print(f"Max priority fee:       {from_wei(fees.max_priority_fee_per_gas, 'gwei')} gwei")
    print(f"Max fee per gas:        {from_wei(fees.max_fee_per_gas, 'gwei')} gwei")


async def cli_run() -> int:
    """Run the rescue until inclusion, a fatal error, or Ctrl-C"""
    settings = get_settings()
    setup_logging(settings.log_level)

    try:
        runtime = build_runtime(settings)
    except ConfigurationError as e:
        print(f"❌ Configuration error: {e}")
        return 1

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, runtime.pipeline.stop)
        except NotImplementedError:
            pass

    outcome = await run_rescue(settings, runtime)
    print(json.dumps(outcome.to_dict(), indent=2))

    if outcome.is_success:
        print(f"✅ Congrats, included in {outcome.included_block}")
        return 0
    print(f"❌ Rescue ended: {outcome.status.value} ({outcome.error or outcome.state.value})")
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Private-bundle asset rescue")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Submit rescue bundles every block until resolved")

    fees_parser = subparsers.add_parser("fees", help="Show fee bounds for a base fee")
    fees_parser.add_argument("--base-fee-gwei", type=Decimal, required=True, help="Current block base fee")
    fees_parser.add_argument("--blocks-in-future", type=int, help="Target block offset (default: from settings)")
    fees_parser.add_argument("--priority-fee-gwei", type=Decimal, help="Priority fee (default: from settings)")

    return parser


async def main() -> int:
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 0

    command = args.command.lower()

    if command == "run":
        return await cli_run()

    elif command == "fees":
        settings = get_settings()
        print_fees(
            args.base_fee_gwei,
            args.blocks_in_future if args.blocks_in_future is not None else settings.blocks_in_future,
            args.priority_fee_gwei if args.priority_fee_gwei is not None else settings.priority_fee_gwei,
        )
        return 0

    print(f"❌ Unknown command: {command}")
    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
