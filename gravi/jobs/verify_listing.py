"""CLI job to verify a single Maps listing and print the result JSON."""

import argparse
import json
import logging
import sys
from typing import List, Optional

from gravi.core.config import ConfigError, get_settings, require
from gravi.core.db import ensure_schema, init_pool, save_analysis_record
from gravi.pipeline.orchestrator import PipelineOrchestrator

logger = logging.getLogger(__name__)


def run_verify_job(listing_ref: str, *, persist: bool = False, indent: Optional[int] = 2) -> int:
    """Run the pipeline once; returns the process exit code (0 verified, 1 failed)."""
    settings = get_settings()
    store = None
    if persist:
        require(settings, "database_url", "DATABASE_URL")
        init_pool()
        ensure_schema()
        store = save_analysis_record

    outcome = PipelineOrchestrator(settings, persist=store).run(listing_ref)
    print(json.dumps(outcome.to_response(), indent=indent, ensure_ascii=False))
    logger.info("Verification %s for session %s", outcome.status, outcome.session_id)
    return 0 if outcome.verified else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Verify a retail store from its Google Maps listing")
    parser.add_argument("listing", help="Google Maps URL (short or long) or a free-text place query")
    parser.add_argument("--persist", action="store_true", help="Store the verified record in DATABASE_URL")
    parser.add_argument("--indent", type=int, default=2, help="JSON indent for the printed result")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    args = build_parser().parse_args(argv)

    try:
        exit_code = run_verify_job(args.listing, persist=args.persist, indent=args.indent)
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        raise SystemExit(2) from exc
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
