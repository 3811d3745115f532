"""CLI job to run one pizzeria search and print the answer as JSON."""

import argparse
import asyncio
import json
import logging
from typing import Optional

from pizzeria_search.core.config import get_settings
from pizzeria_search.core.search import SearchError, SearchService, build_service

logger = logging.getLogger(__name__)


async def run_search_job(
    service: SearchService,
    *,
    zipcode: str,
    radius: Optional[float],
    dedicated_only: bool,
    flush_cache: bool,
) -> dict:
    await service.start()
    try:
        if flush_cache:
            flushed = await service.flush_cache()
            logger.info("Cache flush requested: flushed=%s", flushed)
        result = await service.search(zipcode, radius, include_non_dedicated=not dedicated_only)
        logger.info(
            "Completed search: zipcode=%s results=%d cached=%s",
            zipcode,
            result.count,
            result.cached,
        )
        return result.to_dict()
    finally:
        # Waits for the background persistence tail to drain.
        await service.aclose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Search pizzerias around a US zipcode")
    parser.add_argument("--zipcode", dest="zipcode", required=True, help="5-digit or ZIP+4 zipcode")
    parser.add_argument(
        "--radius",
        dest="radius",
        type=float,
        default=get_settings().default_radius_miles,
        help="Search radius in miles",
    )
    parser.add_argument(
        "--dedicated-only",
        dest="dedicated_only",
        action="store_true",
        help="Only return dedicated pizzerias",
    )
    parser.add_argument(
        "--flush-cache",
        dest="flush_cache",
        action="store_true",
        help="Flush the search cache before searching",
    )
    return parser


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    parser = build_parser()
    args = parser.parse_args()

    try:
        payload = asyncio.run(
            run_search_job(
                build_service(),
                zipcode=args.zipcode,
                radius=args.radius,
                dedicated_only=args.dedicated_only,
                flush_cache=args.flush_cache,
            )
        )
    except SearchError as exc:
        parser.exit(2, f"error: {exc}\n")
    print(json.dumps(payload, indent=2))


if __name__ == "__main__":
    main()
