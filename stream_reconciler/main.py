"""Command-line runner for one-off reconciliation passes."""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from dotenv import load_dotenv

from .domain.exceptions import StreamReconcilerError
from .infrastructure.dependencies import ServiceContainer


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="stream-reconciler",
        description="Reconcile memorial livestreams against their video provider.",
    )
    parser.add_argument(
        "stream_ids",
        nargs="*",
        help="Streams to reconcile; sweeps every active stream when omitted",
    )
    parser.add_argument(
        "--wait-for-recording",
        action="store_true",
        help="Keep polling each given stream until its recording settles",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


async def run(args: argparse.Namespace, container: Optional[ServiceContainer] = None) -> int:
    """Run the requested passes and return a process exit code."""
    container = container or ServiceContainer()
    await container.startup(start_polling=False)

    engine = container.get_reconciliation_service()
    failed = 0
    try:
        if not args.stream_ids:
            summary = await engine.sweep()
            print(f"Swept streams: {summary['reconciled']} reconciled, {summary['failed']} failed")
            return 1 if summary["failed"] else 0

        poller = container.get_poll_scheduler().poller
        for stream_id in args.stream_ids:
            try:
                if args.wait_for_recording:
                    stream = await poller.poll(stream_id)
                else:
                    stream = await engine.reconcile(stream_id)
            except StreamReconcilerError as e:
                print(f"{stream_id}: error - {e}")
                failed += 1
                continue

            recording = "ready" if stream.recording_ready else (
                "needs manual check" if stream.needs_manual_recording_check else "pending"
            )
            print(f"{stream_id}: {stream.status.value} (recording {recording})")
        return 1 if failed else 0
    finally:
        await container.shutdown()


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the ``stream-reconciler`` script."""
    load_dotenv()
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
