"""Run marketing verification over one owner's pending leads and print the JSON report."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Sequence

from leadsniper.clients.verification import VerificationClient
from leadsniper.config import settings
from leadsniper.services.prospecting.batch import BatchVerificationReport, BatchVerifier
from leadsniper.services.prospecting.errors import ProspectingError
from leadsniper.services.prospecting.pacing import FixedIntervalPacer
from leadsniper.services.prospecting.repositories import (
    ProspectingRepository,
    build_prospecting_repository,
)
from leadsniper.services.prospecting.verifier import MarketingVerifier

logger = logging.getLogger("pipelines.verify_backlog")


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Verify the marketing stack of pending leads.")
    parser.add_argument("--owner", required=True, help="Owner id whose backlog is verified.")
    parser.add_argument(
        "--delay",
        type=float,
        default=settings.batch_verification_delay_seconds,
        help="Seconds to wait between verification calls.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only report how many leads are pending.",
    )
    return parser.parse_args(argv)


def run(
    argv: Sequence[str] | None = None,
    *,
    repository: ProspectingRepository | None = None,
    verifier: MarketingVerifier | None = None,
) -> BatchVerificationReport | int:
    args = parse_args(argv)
    if args.delay < 0:
        raise ProspectingError("--delay must be >= 0", code="400_INVALID_REQUEST")
    repository = repository or build_prospecting_repository()
    if args.dry_run:
        pending = repository.count_pending_verification(args.owner)
        sys.stdout.write(json.dumps({"owner": args.owner, "pending": pending}) + "\n")
        return pending
    verifier = verifier or MarketingVerifier(VerificationClient.from_settings())
    batch = BatchVerifier(repository, verifier, pacer=FixedIntervalPacer(args.delay))
    report = batch.run_batch(args.owner)
    sys.stdout.write(report.model_dump_json(indent=2) + "\n")
    return report


def main() -> None:
    """Entry point for `python -m pipelines.verify_backlog`."""
    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
    try:
        run()
    except ProspectingError as exc:
        logger.error("verification.backlog.failed", extra={"code": exc.code, "error": str(exc)})
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
