"""copilot-runner process entry point.

Reads one runner configuration document and runs the agent session. The
outcome is written to stdout as a single JSON document:

    {"success": true, "message": "..."}
    {"success": false, "message": "...", "error": "..."}

Exit code is 0 on success and 1 on any failure, including malformed input.

Usage:
    copilot-runner --config /tmp/gh-aw/copilot-runner-config.json
    echo '{"prompt_file": "prompt.txt"}' | copilot-runner
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from pydantic import BaseModel

from awflow.errors import AwflowError

from .config import RunnerConfig, load_config, parse_config
from .errors import RunnerError
from .metrics import RunnerMetrics
from .runner import Runner

logger = logging.getLogger(__name__)


class RunnerOutcome(BaseModel):
    """Result document written to stdout."""

    success: bool
    message: str
    error: Optional[str] = None

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)


async def run_with_signals(config: RunnerConfig) -> RunnerMetrics:
    """Run a session, turning SIGINT/SIGTERM into the cancellation signal."""
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, cancel_event.set)
        except NotImplementedError:
            logger.debug("Signal handlers unavailable on this platform")
            break
    return await Runner(config).run(cancel_event)


def _outcome_for(exc: Exception) -> RunnerOutcome:
    if isinstance(exc, RunnerError):
        return RunnerOutcome(success=False, message=f"Runner {exc.classification}", error=str(exc))
    return RunnerOutcome(success=False, message="Invalid runner configuration", error=str(exc))


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="copilot-runner",
        description="Run an agent session from a runner configuration document",
    )
    parser.add_argument(
        "--config", "-c",
        help="Path to the runner config JSON (default: read from stdin)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        config = load_config(args.config) if args.config else parse_config(sys.stdin.read())
        metrics = asyncio.run(run_with_signals(config))
    except AwflowError as e:
        logger.error("%s", e)
        outcome = _outcome_for(e)
    except Exception as e:
        logger.exception("Unexpected runner error")
        outcome = RunnerOutcome(success=False, message="Runner failure", error=f"{type(e).__name__}: {e}")
    else:
        message = f"Session completed in {metrics.turns} turn(s) with {metrics.total_tool_calls} tool call(s)"
        outcome = RunnerOutcome(success=True, message=message)

    print(outcome.to_json())
    return 0 if outcome.success else 1


if __name__ == "__main__":
    sys.exit(main())
