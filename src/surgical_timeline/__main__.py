# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""
Live timeline tail for a surgical analysis session.

Starts a remote analysis job for an ad-hoc operation, subscribes to the
telemetry feed and prints every new timeline event as one JSON line until
interrupted (Ctrl+C), then stops the session.

Usage:
    python -m surgical_timeline --operation-id op1 --kind tool-detection
    python -m surgical_timeline --operation-id op1 --video-id video01 \\
        --broker ws://10.0.0.5:9001 --analysis-url http://10.0.0.5:13000

Exit Codes:
    0 - Session ran and was stopped
    1 - The analysis job could not be started
    2 - Error: CLI usage error or unexpected failure
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import sys

from surgical_timeline.catalog import InMemoryOperationCatalog, Operation
from surgical_timeline.config import TimelineSettings
from surgical_timeline.enums import AnalysisKind
from surgical_timeline.models import TimelineEvent
from surgical_timeline.procedure import ProcedureMonitor

logger = logging.getLogger("surgical_timeline")


class _EventPrinter:
    """Timeline listener that prints events it has not printed yet."""

    def __init__(self) -> None:
        self._seen: set[str] = set()

    def __call__(self, events: tuple[TimelineEvent, ...]) -> None:
        for event in reversed(events):
            if event.id in self._seen:
                continue
            self._seen.add(event.id)
            print(json.dumps(event.to_wire(), ensure_ascii=False), flush=True)


async def _run(
    settings: TimelineSettings,
    operation: Operation,
    kind: AnalysisKind,
    duration: float | None,
) -> int:
    catalog = InMemoryOperationCatalog([operation])
    async with ProcedureMonitor(settings=settings, catalog=catalog) as monitor:
        await monitor.load_operation(operation.id)
        monitor.timeline.add_listener(_EventPrinter())

        result = await monitor.start_analysis(kind)
        if not result.success:
            logger.error("%s", result.message)
            return 1
        logger.info("%s", result.message)

        try:
            if duration is None:
                await asyncio.Event().wait()
            else:
                await asyncio.sleep(duration)
        finally:
            stop = await monitor.stop_analysis()
            logger.info("%s", stop.message)
    return 0


def main(args: list[str] | None = None) -> int:
    """CLI entry point for the timeline tail.

    Args:
        args: Command line arguments (uses sys.argv if None).

    Returns:
        Exit code (see module docstring).
    """
    parser = argparse.ArgumentParser(
        description="Tail the live surgical event timeline",
        prog="python -m surgical_timeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Settings not given on the command line are read from SURGICAL_TIMELINE_*
environment variables.

Examples:
  %(prog)s --operation-id op1
  %(prog)s --operation-id op1 --kind stage-analysis --duration 600
""",
    )
    parser.add_argument("--operation-id", required=True, help="Operation identifier")
    parser.add_argument(
        "--procedure-type",
        default="Cholecystectomy",
        help="Procedure type label (default: Cholecystectomy)",
    )
    parser.add_argument(
        "--video-id",
        default=None,
        help="Recording to analyse (default: the operation id)",
    )
    parser.add_argument(
        "--kind",
        choices=[k.value for k in AnalysisKind],
        default=AnalysisKind.TOOL_DETECTION.value,
        help="Analysis kind (default: tool-detection)",
    )
    parser.add_argument("--broker", default=None, metavar="URL", help="Broker WebSocket URL")
    parser.add_argument(
        "--analysis-url", default=None, metavar="URL", help="Analysis service base URL"
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Stop after this many seconds (default: run until interrupted)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    parsed_args = parser.parse_args(args)

    logging.basicConfig(
        level=logging.DEBUG if parsed_args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    overrides: dict[str, str] = {}
    if parsed_args.broker:
        overrides["broker_url"] = parsed_args.broker
    if parsed_args.analysis_url:
        overrides["analysis_base_url"] = parsed_args.analysis_url

    try:
        settings = TimelineSettings(**overrides)
        operation = Operation(
            id=parsed_args.operation_id,
            procedure_type=parsed_args.procedure_type,
            video_id=parsed_args.video_id,
        )
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    with contextlib.suppress(KeyboardInterrupt):
        return asyncio.run(
            _run(settings, operation, AnalysisKind(parsed_args.kind), parsed_args.duration)
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
