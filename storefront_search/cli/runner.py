# storefront_search/cli/runner.py

"""Headless CLI runner over the async search service."""

import json
import logging
import sys
from typing import Any

from rich.console import Console
from rich.table import Table

from storefront_search.config.settings import Settings
from storefront_search.models.match import MatchBuckets
from storefront_search.models.product import ProductRecord
from storefront_search.models.result import Failure
from storefront_search.services.search_service import StorefrontSearchService

logger = logging.getLogger("storefront_search.cli")

# Stderr console for status messages so stdout stays clean for JSON
_err = Console(stderr=True)


def parse_regions(region_csv: str | None) -> list[str]:
    """Split a comma-separated region list, upper-cased.

    Raises ``SystemExit`` on unknown codes.
    """
    if not region_csv:
        return []
    requested = [r.strip().upper() for r in region_csv.split(",") if r.strip()]
    unknown = [r for r in requested if r not in Settings.REGIONS]
    if unknown:
        _err.print(f"[red]Unknown region(s): {', '.join(unknown)}[/red]")
        _err.print(f"[dim]Available: {', '.join(Settings.REGIONS)}[/dim]")
        raise SystemExit(1)
    return requested


def _report_failure(failure: Failure) -> None:
    _err.print(f"[red]Error ({failure.kind.value}): {failure.message}[/red]")
    if failure.retryable:
        _err.print("[dim]This looks temporary, try again later.[/dim]")


def _write_json(payload: Any) -> None:
    json.dump(payload, sys.stdout, ensure_ascii=False, indent=2)
    sys.stdout.write("\n")


def _print_table(products: list[ProductRecord], title: str) -> None:
    """Render a Rich table of products to stdout."""
    table = Table(title=title, show_lines=True, title_style="bold cyan")
    table.add_column("#", style="dim", width=4)
    table.add_column("Name", max_width=50)
    table.add_column("Price", justify="right", style="green")
    table.add_column(Settings.REFERENCE_CURRENCY, justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Product id", overflow="fold", style="magenta")

    for idx, p in enumerate(products, 1):
        table.add_row(
            str(idx),
            p.name[:50],
            p.price_text or "N/A",
            f"{p.price_in_reference_currency:,.2f}",
            str(p.relevance_score),
            p.identifier.raw if p.identifier else "—",
        )

    Console().print(table)


def _print_matches(buckets: MatchBuckets) -> None:
    table = Table(title="Cross-region matches", show_lines=True, title_style="bold cyan")
    table.add_column("Confidence", style="bold")
    table.add_column("Region")
    table.add_column("Score", justify="right")
    table.add_column("Name", max_width=50)
    table.add_column("Price", justify="right", style="green")

    for match in [*buckets.exact, *buckets.likely, *buckets.potential]:
        table.add_row(
            match.confidence.value,
            match.region,
            f"{match.score:.3f}",
            match.product.name[:50],
            match.product.price_text,
        )
    Console().print(table)


async def cli_search(
    query: str,
    region: str,
    include_dlc: bool,
    sort: bool,
    enrich: bool,
    match_csv: str | None,
    output_format: str,
) -> int:
    """Run a headless search and return an exit code (0=ok, 1=fail)."""
    targets = parse_regions(match_csv)
    service = StorefrontSearchService()
    _err.print(f"[bold]Searching:[/bold] {query}  [dim]region={region}[/dim]")

    try:
        outcome = await service.search_products(
            query,
            region,
            filter_dlc=not include_dlc,
            sort_by_relevance=sort,
            enrich=enrich,
        )
        if isinstance(outcome, Failure):
            _report_failure(outcome)
            return 1

        response = outcome.value
        if not response.search_results:
            _err.print("[yellow]No products found.[/yellow]")
            return 1

        _err.print(
            f"[green]✓ {len(response.search_results)} products"
            f" of {response.total_results}"
            f" ({response.filtered_count} add-ons filtered,"
            f" {response.dropped_count} incomplete listings)[/green]"
        )

        buckets: MatchBuckets | None = None
        if targets:
            top = response.search_results[0]
            _err.print(
                f"[bold]Matching[/bold] '{top.name}' across {', '.join(targets)}"
            )
            matched = await service.match_across_regions(top, targets)
            if isinstance(matched, Failure):
                _report_failure(matched)
            else:
                buckets = matched.value

        if output_format == "table":
            _print_table(response.search_results, f"Results for '{query}'")
            if buckets is not None:
                _print_matches(buckets)
        else:
            payload = response.to_dict()
            if buckets is not None:
                payload["crossRegionMatches"] = buckets.to_dict()
            _write_json(payload)
        return 0
    finally:
        await service.close()


async def cli_lookup(
    product_id: str,
    region: str,
    output_format: str,
) -> int:
    """Resolve one product id and print it."""
    service = StorefrontSearchService()
    try:
        outcome = await service.lookup_product_by_id(product_id, region)
        if isinstance(outcome, Failure):
            _report_failure(outcome)
            return 1
        found = outcome.value
        if output_format == "table":
            _print_table([found.product], f"Product {product_id} ({found.source})")
        else:
            _write_json(found.to_dict())
        return 0
    finally:
        await service.close()
