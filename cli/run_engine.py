#!/usr/bin/env python3
"""
Belief State Index CLI

Command-line interface for replaying recorded signals through markets.

Usage:
    python cli/run_engine.py list-markets
    python cli/run_engine.py replay --market ai-regulation-sentiment --signals signals.jsonl
    python cli/run_engine.py settle --market ai-regulation-sentiment --signals signals.jsonl --positions positions.json
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path for imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from belief_index.config import ORACLE_UPDATE_FREQUENCY
from belief_index.errors import BeliefIndexError
from belief_index.logging_utils import LOG_DATEFMT, LOG_FORMAT, log_summary
from cli.commands import ReplayOrchestrator, list_markets, load_positions, load_signals
from market.registry import MarketRegistry
from utils.json_utils import dump_json

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO

    # Create formatter
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)

    # Root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.addHandler(console_handler)

    logger.info("Logging configured")


def _registry(args) -> MarketRegistry:
    return MarketRegistry(args.config) if args.config else MarketRegistry()


def cmd_list_markets(args):
    """List registered markets."""
    logger.info("Command: list-markets")
    markets = list_markets(_registry(args), verbose=True)
    print(f"\n{len(markets)} markets registered")


def cmd_replay(args):
    """Replay recorded signals through a market."""
    logger.info(f"Command: replay --market {args.market}")

    try:
        orchestrator = ReplayOrchestrator(_registry(args), audit_dir=args.audit_dir)
        signals = load_signals(args.signals)
        report = orchestrator.replay(args.market, signals, cadence=args.cadence, until=args.until)
    except (BeliefIndexError, ValueError, FileNotFoundError) as e:
        print(f"Error: {e}")
        logger.error(f"Error: {e}")
        return 1

    counts = report.status_counts()
    print(f"\nCycles: {len(report.cycles)}  {counts}")
    print(f"Signals: {report.accepted} accepted, {report.rejected} rejected")

    if args.output:
        with open(args.output, 'w') as f:
            dump_json(report.to_dict(), f)
        print(f"\nResults saved to: {args.output}")
        logger.info(f"Results saved to: {args.output}")
    return 0


def cmd_settle(args):
    """Replay signals and settle recorded positions."""
    logger.info(f"Command: settle --market {args.market}")

    try:
        orchestrator = ReplayOrchestrator(_registry(args), audit_dir=args.audit_dir)
        signals = load_signals(args.signals)
        positions = load_positions(args.positions)
        payouts = orchestrator.settle(
            args.market,
            signals,
            positions,
            cadence=args.cadence,
            pool_supplement=args.pool_supplement,
        )
    except (BeliefIndexError, ValueError, FileNotFoundError) as e:
        print(f"Error: {e}")
        logger.error(f"Error: {e}")
        return 1

    if payouts is None:
        return 1

    if args.audit_dir:
        market = orchestrator.engine.get_market(args.market)
        summary_file = Path(args.audit_dir) / f"{args.market}_settlement.json"
        log_summary(summary_file, {
            "market_id": args.market,
            "inflection": market.inflection,
            "pool_total": market.pool_total,
            "total_paid": sum(p.amount for p in payouts.values()),
            "payouts": list(payouts.values()),
        })
        logger.info(f"Settlement summary saved to: {summary_file}")

    if args.output:
        with open(args.output, 'w') as f:
            dump_json({pid: p.to_dict() for pid, p in payouts.items()}, f)
        print(f"\nPayouts saved to: {args.output}")
        logger.info(f"Payouts saved to: {args.output}")
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Belief State Index Engine CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python cli/run_engine.py list-markets
  python cli/run_engine.py replay --market narrative-breakout --signals data/signals.jsonl
  python cli/run_engine.py settle --market narrative-breakout --signals data/signals.jsonl --positions data/positions.json
        """
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging"
    )
    parser.add_argument(
        "--config",
        help="Path to markets.json (default: config/markets.json)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # list-markets
    list_parser = subparsers.add_parser(
        "list-markets",
        help="List registered markets"
    )
    list_parser.set_defaults(func=cmd_list_markets)

    # replay
    replay_parser = subparsers.add_parser(
        "replay",
        help="Replay recorded signals through a market"
    )
    replay_parser.add_argument(
        "--market", "-m",
        required=True,
        help="Market ID"
    )
    replay_parser.add_argument(
        "--signals", "-s",
        required=True,
        help="Signal file (JSON array or JSONL)"
    )
    replay_parser.add_argument(
        "--cadence",
        type=int,
        default=ORACLE_UPDATE_FREQUENCY,
        help=f"Seconds between cycles (default: {ORACLE_UPDATE_FREQUENCY})"
    )
    replay_parser.add_argument(
        "--until",
        type=int,
        help="Last cycle time (default: last signal + persistence window + cadence)"
    )
    replay_parser.add_argument(
        "--audit-dir",
        help="Directory for per-market cycle audit JSONL"
    )
    replay_parser.add_argument(
        "-o", "--output",
        help="Output file for the replay report (JSON)"
    )
    replay_parser.set_defaults(func=cmd_replay)

    # settle
    settle_parser = subparsers.add_parser(
        "settle",
        help="Replay signals and settle recorded positions"
    )
    settle_parser.add_argument(
        "--market", "-m",
        required=True,
        help="Market ID"
    )
    settle_parser.add_argument(
        "--signals", "-s",
        required=True,
        help="Signal file (JSON array or JSONL)"
    )
    settle_parser.add_argument(
        "--positions", "-p",
        required=True,
        help="Position file (JSON array or JSONL)"
    )
    settle_parser.add_argument(
        "--cadence",
        type=int,
        default=ORACLE_UPDATE_FREQUENCY,
        help=f"Seconds between cycles (default: {ORACLE_UPDATE_FREQUENCY})"
    )
    settle_parser.add_argument(
        "--pool-supplement",
        type=int,
        default=0,
        help="Protocol-funded addition to the pool"
    )
    settle_parser.add_argument(
        "--audit-dir",
        help="Directory for cycle audit JSONL and the settlement summary"
    )
    settle_parser.add_argument(
        "-o", "--output",
        help="Output file for payouts (JSON)"
    )
    settle_parser.set_defaults(func=cmd_settle)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    setup_logging(args.verbose)

    # Run the command
    return args.func(args) or 0


if __name__ == "__main__":
    sys.exit(main())
