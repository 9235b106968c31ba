# main.py

"""Entry point for the storefront_search command-line interface."""

import argparse
import asyncio
import logging
import sys

from storefront_search.config.logging_config import setup_logging
from storefront_search.config.settings import Settings

logger = logging.getLogger("storefront_search.main")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    valid_regions = ", ".join(Settings.REGIONS)

    parser = argparse.ArgumentParser(
        prog="storefront_search",
        description="Regional digital storefront product search.",
        epilog=f"Available regions: {valid_regions}",
    )
    parser.add_argument(
        "query",
        nargs="?",
        default=None,
        help="Free-text search query.",
    )
    parser.add_argument(
        "-r",
        "--region",
        default=Settings.DEFAULT_REGION,
        help=f"Storefront region code (default: {Settings.DEFAULT_REGION}).",
    )
    parser.add_argument(
        "--lookup",
        default=None,
        metavar="PRODUCT_ID",
        help="Resolve a known product id instead of searching.",
    )
    parser.add_argument(
        "--include-dlc",
        action="store_true",
        default=False,
        dest="include_dlc",
        help="Return add-ons and DLC alongside base products.",
    )
    parser.add_argument(
        "--no-sort",
        action="store_false",
        default=True,
        dest="sort",
        help="Keep storefront order instead of sorting by relevance.",
    )
    parser.add_argument(
        "--enrich",
        action="store_true",
        default=False,
        help="Fetch product-page metadata for the top results.",
    )
    parser.add_argument(
        "-m",
        "--match",
        default=None,
        metavar="REGIONS",
        help="Comma-separated regions to match the top result against.",
    )
    parser.add_argument(
        "-f",
        "--format",
        choices=["json", "table"],
        default="json",
        dest="output_format",
        help="Output format (default: json).",
    )
    return parser


def _run_search(args: argparse.Namespace) -> None:
    from storefront_search.cli.runner import cli_search

    exit_code = asyncio.run(
        cli_search(
            query=args.query,
            region=args.region,
            include_dlc=args.include_dlc,
            sort=args.sort,
            enrich=args.enrich,
            match_csv=args.match,
            output_format=args.output_format,
        )
    )
    sys.exit(exit_code)


def _run_lookup(args: argparse.Namespace) -> None:
    from storefront_search.cli.runner import cli_lookup

    exit_code = asyncio.run(
        cli_lookup(
            product_id=args.lookup,
            region=args.region,
            output_format=args.output_format,
        )
    )
    sys.exit(exit_code)


def main() -> None:
    """Route to an id lookup or a free-text search."""
    log_file = setup_logging()
    logger.info("storefront_search starting, log file: %s", log_file)

    parser = _build_parser()
    args = parser.parse_args()

    if args.lookup:
        _run_lookup(args)
    elif args.query:
        _run_search(args)
    else:
        parser.print_help()
        sys.exit(2)


if __name__ == "__main__":
    main()
