"""
Main entry point for gatedfeed.
"""

import argparse
import asyncio
import json
import sys

from gatedfeed.extractor.site_profile import get_site_profile, list_site_profiles
from gatedfeed.pipeline import FeedResult, Pipeline
from gatedfeed.utils.config import get_settings
from gatedfeed.utils.errors import GatedFeedError
from gatedfeed.utils.logging import configure_logging, get_logger


def initialize(verbose: bool = False) -> None:
    """Initialize the application."""
    settings = get_settings()
    configure_logging(log_level="DEBUG" if verbose else settings.general.log_level)

    logger = get_logger(__name__)
    logger.debug(
        "gatedfeed initializing",
        version=settings.general.version,
        log_level=settings.general.log_level,
    )


def print_result(result: FeedResult, as_json: bool) -> None:
    if as_json:
        print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
        return

    print(result.title)
    print(result.link)
    for item in result.items:
        date = item.pub_date.isoformat() if item.pub_date else "-"
        print(f"- [{date}] {item.title}\n  {item.link}")


async def run_site(site: str, param: str | None, as_json: bool) -> int:
    """Run one site profile and print its records.

    Returns:
        Process exit code.
    """
    logger = get_logger(__name__)
    try:
        profile = get_site_profile(site)
        result = await Pipeline(profile).run(param)
    except GatedFeedError as e:
        logger.error("Run failed", site=site, error_code=e.code.value, error=e.message)
        print(json.dumps(e.to_dict(), ensure_ascii=False), file=sys.stderr)
        return 1

    print_result(result, as_json)
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="gatedfeed - feeds from challenge-protected news sites"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Fetch one site listing")
    run_parser.add_argument("site", help="Site profile name (see 'sites')")
    run_parser.add_argument(
        "--param", "-p",
        type=str,
        default=None,
        help="Category path or year; profile default if omitted",
    )
    run_parser.add_argument("--json", action="store_true", help="Print the feed as JSON")

    subparsers.add_parser("sites", help="List site profiles")

    args = parser.parse_args(argv)
    initialize(verbose=args.verbose)

    if args.command == "sites":
        for name in list_site_profiles():
            print(name)
        return 0

    return asyncio.run(run_site(args.site, args.param, args.json))


if __name__ == "__main__":
    sys.exit(main())
