"""CLI entry point for re-sending the failed writes of a plan submission.

Usage::

    python -m ams.cli --submission-id <UUID> [--token <JWT>]

The token defaults to the ``AMS_TOKEN`` environment variable; the backend
authorizes the retried writes with it.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
import uuid

from ams.backend.client import BackendClient
from ams.core.config import get_settings
from ams.core.database import create_engine
from ams.core.logging import configure_logging
from ams.planning.submission import AuditPlanSubmitter, SubmissionResult

logger = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="ams.cli",
        description="Retry the failed backend writes of a journaled audit plan submission.",
    )
    parser.add_argument(
        "--submission-id",
        required=True,
        type=uuid.UUID,
        help="UUID of the submission to retry.",
    )
    parser.add_argument(
        "--token",
        default=os.environ.get("AMS_TOKEN"),
        help="Bearer token for the AMS backend (default: $AMS_TOKEN).",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: from settings).",
    )
    return parser.parse_args(argv)


def _print_summary(result: SubmissionResult) -> None:
    print(f"\nRetry of submission {result.submission_id} (audit {result.audit_id})")
    print("-" * 60)
    if not result.phases:
        print("  Nothing to retry.")
    for phase in result.phases:
        print(f"  {phase.phase.value:<16} {phase.succeeded}/{phase.attempted} succeeded")
        for err in phase.errors:
            print(f"    - {err}")
    for warning in result.warnings:
        print(f"  ! {warning}")
    print()


async def _run(args: argparse.Namespace) -> int:
    settings = get_settings()
    engine, session_factory = create_engine(settings)
    client = BackendClient.from_settings(settings, token=args.token)
    submitter = AuditPlanSubmitter(client, session_factory, max_attempts=settings.submission_max_attempts)
    try:
        result = await submitter.retry(args.submission_id)
    except LookupError as exc:
        logger.error("%s", exc)
        return 2
    finally:
        await engine.dispose()

    _print_summary(result)
    return 0 if result.success else 1


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    args = _parse_args(argv)
    configure_logging(get_settings(), args.log_level)
    if not args.token:
        logger.error("No backend token given; pass --token or set AMS_TOKEN")
        sys.exit(2)
    sys.exit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
