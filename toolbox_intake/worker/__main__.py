"""
Conversion worker entry point.

Usage:
    python -m toolbox_intake.worker [--poll-interval N] [--once]
"""

from __future__ import annotations

import argparse
import sys

from .loop import run_worker


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m toolbox_intake.worker",
        description="Runs queued tool conversion jobs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Poll forever using WORKER_POLL_INTERVAL
    python -m toolbox_intake.worker

    # Drain the queue once (e.g. from cron) and exit
    python -m toolbox_intake.worker --once
        """,
    )
    parser.add_argument(
        "--poll-interval",
        type=int,
        default=None,
        metavar="SECONDS",
        help="Seconds to sleep when the queue is empty (default: from config)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run every queued job, then exit",
    )
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        run_worker(poll_interval=args.poll_interval, once=args.once)
    except KeyboardInterrupt:
        return 0
    except Exception as e:
        print(f"Worker error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
