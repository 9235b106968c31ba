# storefront_search/services/search_service.py

"""Resolves queries and product ids into normalised product records."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

from bs4 import BeautifulSoup, Tag

from storefront_search.config.settings import Settings
from storefront_search.filters.relevance import RelevanceScorer
from storefront_search.models.match import MatchBuckets
from storefront_search.models.product import (
    MetadataCacheEntry,
    ProductIdentifier,
    ProductRecord,
)
from storefront_search.models.result import ErrorKind, Failure, Ok, Result
from storefront_search.pricing.exchange_rates import ExchangeRateCache
from storefront_search.pricing.price_parser import convert, format_price, parse_price
from storefront_search.scrapers.field_extractor import (
    RegionSelectors,
    canonical_url,
    extract,
    extract_product_id,
    find_listings,
    first_match,
    high_res_image_url,
    load_region_selectors,
)
from storefront_search.scrapers.store_client import StoreClient
from storefront_search.services.matcher import CrossRegionMatcher
from storefront_search.storage.metadata_cache import MetadataCache

logger = logging.getLogger("storefront_search.search")


@dataclass
class SearchResponse:
    """Everything a caller needs from one search request."""

    query: str
    region: str
    search_results: list[ProductRecord] = field(
        default_factory=lambda: list[ProductRecord]()
    )
    base_products: list[ProductRecord] = field(
        default_factory=lambda: list[ProductRecord]()
    )
    add_ons: list[ProductRecord] = field(
        default_factory=lambda: list[ProductRecord]()
    )
    total_results: int = 0
    filtered_count: int = 0
    dropped_count: int = 0
    failed_count: int = 0
    cache_info: dict[str, Any] = field(
        default_factory=lambda: dict[str, Any]()
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "region": self.region,
            "searchResults": [p.to_dict() for p in self.search_results],
            "baseProducts": [p.to_dict() for p in self.base_products],
            "addOns": [p.to_dict() for p in self.add_ons],
            "totalResults": self.total_results,
            "filteredCount": self.filtered_count,
            "droppedCount": self.dropped_count,
            "failedCount": self.failed_count,
            "cacheInfo": self.cache_info,
        }


@dataclass
class LookupResult:
    """A single product resolved from its identifier."""

    product: ProductRecord
    source: str  # "cache" or "live"
    price_in_reference_currency: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "product": self.product.to_dict(),
            "source": self.source,
            "priceInReferenceCurrency": round(
                self.price_in_reference_currency, 2
            ),
        }


def _region_failure(region_code: str) -> Failure:
    return Failure(
        ErrorKind.REGION_UNSUPPORTED,
        f"Invalid region. Supported regions: {', '.join(Settings.REGIONS)}",
        {"region": region_code, "available_regions": list(Settings.REGIONS)},
    )


class StorefrontSearchService:
    """Extraction, normalisation, ranking, enrichment and matching.

    The store client and both caches are injected so that tests (and
    the process entry point) control their lifecycle.
    """

    def __init__(
        self,
        client: StoreClient | None = None,
        metadata_cache: MetadataCache | None = None,
        rate_cache: ExchangeRateCache | None = None,
        scorer: RelevanceScorer | None = None,
    ) -> None:
        self.settings = Settings()
        self.client = client or StoreClient()
        self.metadata_cache = metadata_cache or MetadataCache()
        self.rate_cache = rate_cache or ExchangeRateCache()
        self.scorer = scorer or RelevanceScorer()
        self.matcher = CrossRegionMatcher(self._fetch_candidate)

    async def close(self) -> None:
        await self.client.close()

    # ── Private helpers ──────────────────────────────────

    async def _process_listing(
        self,
        index: int,
        element: Tag,
        selectors: RegionSelectors,
        region_code: str,
        rates: dict[str, float],
    ) -> ProductRecord | None:
        """Extract and price one listing; ``None`` when it lacks fields."""
        listing = extract(element, selectors)
        if listing is None:
            return None

        region = self.settings.REGIONS[region_code]
        raw_price = parse_price(listing.price_text)
        converted, rate = convert(raw_price, region["currency"], rates)
        url = canonical_url(listing.detail_url)
        product_id = extract_product_id(url)

        return ProductRecord(
            index=index,
            name=listing.name or "",
            price_text=listing.price_text or "",
            raw_price=raw_price,
            price_in_reference_currency=converted,
            currency_symbol=region["symbol"],
            currency_code=region["currency"],
            exchange_rate=rate,
            url=url,
            image_url=high_res_image_url(listing.image_url),
            region=region_code,
            identifier=(
                ProductIdentifier.from_raw(product_id, region_code)
                if product_id
                else None
            ),
        )

    async def _extract_all(
        self,
        soup: BeautifulSoup,
        region_code: str,
        rates: dict[str, float],
    ) -> tuple[list[ProductRecord], int, int]:
        """Process every listing concurrently.

        Returns the records, the count of listings dropped for missing
        fields, and the count that raised.
        """
        selectors = load_region_selectors(region_code)
        elements = find_listings(soup, selectors)

        outcomes = await asyncio.gather(
            *(
                self._process_listing(i, el, selectors, region_code, rates)
                for i, el in enumerate(elements)
            ),
            return_exceptions=True,
        )

        records: list[ProductRecord] = []
        dropped = 0
        failed = 0
        for outcome in outcomes:
            if isinstance(outcome, ProductRecord):
                records.append(outcome)
            elif isinstance(outcome, Exception):
                failed += 1
                logger.error(
                    "Listing processing failed in %s: %s",
                    region_code,
                    outcome,
                    exc_info=outcome,
                )
            else:
                dropped += 1

        if dropped:
            logger.info(
                "Dropped %d listings without a name or price", dropped
            )
        return records, dropped, failed

    def _parse_product_page(
        self,
        soup: BeautifulSoup,
        product_id: str,
        region_code: str,
    ) -> MetadataCacheEntry | None:
        """Read the detail fields of a product page."""
        selectors = load_region_selectors(region_code)
        name = first_match(soup, list(selectors.detail_name))
        final_text = first_match(soup, list(selectors.detail_final_price))
        if not name and not final_text:
            return None

        final_price = parse_price(final_text)
        description = first_match(soup, list(selectors.detail_description))
        rating = first_match(soup, list(selectors.detail_rating))
        original_text = first_match(soup, list(selectors.detail_original_price))
        original_price = parse_price(original_text)
        if original_price > final_price > 0:
            base_price, discounted = original_price, final_price
        else:
            base_price, discounted = final_price, None

        return MetadataCacheEntry(
            product_id=product_id,
            name=name or product_id,
            base_price=base_price,
            discounted_price=discounted,
            currency_code=self.settings.REGIONS[region_code]["currency"],
            image_url=high_res_image_url(
                first_match(soup, list(selectors.detail_image))
            ),
            fetched_at=time.time(),
            description=description or "",
            rating=rating or "",
        )

    async def _fetch_metadata(
        self,
        product_id: str,
        region_code: str,
    ) -> Result[tuple[MetadataCacheEntry, str]]:
        """Metadata for *product_id*, from cache when possible.

        Returns the entry and its source (``"cache"`` or ``"live"``).
        """
        locale = self.settings.REGIONS[region_code]["locale"]
        cached = self.metadata_cache.get(product_id, locale)
        if cached is not None:
            return Ok((cached, "cache"))

        url = self.settings.PRODUCT_URL.format(
            locale=locale, product_id=quote(product_id, safe="")
        )
        logger.info("Fetching product page %s", url)
        page = await self.client.fetch_soup(url, not_found=ErrorKind.NOT_FOUND)
        if isinstance(page, Failure):
            return page.with_context(product_id=product_id, region=region_code)

        try:
            entry = self._parse_product_page(page.value, product_id, region_code)
        except Exception as exc:
            logger.error(
                "Product page parsing failed for %s: %s",
                product_id,
                exc,
                exc_info=True,
            )
            entry = None
        if entry is None:
            return Failure(
                ErrorKind.EXTRACTION_FAILED,
                "Failed to extract product data",
                {"product_id": product_id, "region": region_code, "url": url},
            )

        self.metadata_cache.set(product_id, locale, entry)
        return Ok((entry, "live"))

    async def _enrich(
        self,
        products: list[ProductRecord],
        region_code: str,
    ) -> int:
        """Attach product-page metadata to the top products.

        Returns the number of metadata cache hits.
        """
        targets = [p for p in products if p.identifier is not None][
            : self.settings.ENRICH_LIMIT
        ]

        async def enrich_one(product: ProductRecord) -> bool:
            identifier = product.identifier
            if identifier is None:
                return False
            outcome = await self._fetch_metadata(identifier.raw, region_code)
            if isinstance(outcome, Failure):
                logger.warning(
                    "Enrichment skipped for %s: %s",
                    identifier.raw,
                    outcome.message,
                )
                return False
            entry, source = outcome.value
            if entry.image_url:
                product.image_url = entry.image_url
            if entry.discounted_price is not None:
                product.original_price = entry.base_price
                product.discount_percentage = entry.discount_percentage
            product.description = entry.description
            product.rating = entry.rating
            product.enriched = True
            return source == "cache"

        hits = await asyncio.gather(
            *(enrich_one(p) for p in targets), return_exceptions=True
        )
        for outcome in hits:
            if isinstance(outcome, Exception):
                logger.error(
                    "Enrichment failed: %s", outcome, exc_info=outcome
                )
        return sum(1 for h in hits if h is True)

    def _record_from_entry(
        self,
        entry: MetadataCacheEntry,
        region_code: str,
        rates: dict[str, float],
    ) -> ProductRecord:
        region = self.settings.REGIONS[region_code]
        price = entry.effective_price
        converted, rate = convert(price, entry.currency_code, rates)
        url = self.settings.PRODUCT_URL.format(
            locale=region["locale"], product_id=entry.product_id
        )
        return ProductRecord(
            index=0,
            name=entry.name,
            price_text=format_price(price, region["symbol"]),
            raw_price=price,
            price_in_reference_currency=converted,
            currency_symbol=region["symbol"],
            currency_code=entry.currency_code,
            exchange_rate=rate,
            url=url,
            image_url=entry.image_url,
            region=region_code,
            identifier=ProductIdentifier.from_raw(entry.product_id, region_code),
            enriched=True,
            original_price=(
                entry.base_price if entry.discounted_price is not None else None
            ),
            discount_percentage=entry.discount_percentage,
            description=entry.description,
            rating=entry.rating,
        )

    async def _fetch_candidate(
        self,
        product: ProductRecord,
        region_code: str,
    ) -> ProductRecord | None:
        """Best counterpart of *product* in *region_code*.

        Tries the identifier first, then a title search.
        """
        if product.identifier is not None:
            found = await self.lookup_product_by_id(
                product.identifier.raw, region_code
            )
            if isinstance(found, Ok):
                return found.value.product
            logger.debug(
                "Id lookup missed in %s (%s), searching by title",
                region_code,
                found.kind.value,
            )

        searched = await self.search_products(product.name, region_code)
        if isinstance(searched, Failure):
            logger.warning(
                "Region %s unavailable for matching: %s",
                region_code,
                searched.message,
            )
            return None
        response = searched.value
        if response.base_products:
            return response.base_products[0]
        if response.search_results:
            return response.search_results[0]
        return None

    # ── Public API ───────────────────────────────────────

    async def search_products(
        self,
        query: str,
        region_code: str = Settings.DEFAULT_REGION,
        filter_dlc: bool = True,
        sort_by_relevance: bool = True,
        enrich: bool = False,
    ) -> Result[SearchResponse]:
        """Search one regional storefront and rank the results.

        With ``filter_dlc`` (the default) only base products are in
        ``search_results``; otherwise every ranked product is.
        """
        query = (query or "").strip()
        if not query:
            return Failure(
                ErrorKind.INVALID_REQUEST, "Missing required parameter: query"
            )
        region_code = (region_code or "").upper()
        if region_code not in self.settings.REGIONS:
            return _region_failure(region_code)
        region = self.settings.REGIONS[region_code]

        logger.info("Starting search for '%s' in %s", query, region_code)
        url = self.settings.SEARCH_URL.format(
            locale=region["locale"], query=quote(query, safe="")
        )
        page = await self.client.fetch_soup(url)
        if isinstance(page, Failure):
            logger.error(
                "Search for '%s' in %s failed: %s (%s)",
                query,
                region_code,
                page.message,
                page.kind.value,
            )
            return page.with_context(query=query, region=region_code)

        rates = await self.rate_cache.get_rates()
        records, dropped, failed = await self._extract_all(
            page.value, region_code, rates
        )

        ranked = self.scorer.rank(records, query, sort_by_relevance)
        results = ranked.base_products if filter_dlc else ranked.all

        hits = 0
        if enrich and results:
            hits = await self._enrich(results, region_code)

        response = SearchResponse(
            query=query,
            region=region_code,
            search_results=list(results),
            base_products=ranked.base_products,
            add_ons=ranked.add_ons,
            total_results=len(ranked.all),
            filtered_count=len(ranked.all) - len(results),
            dropped_count=dropped,
            failed_count=failed,
            cache_info={
                "size": len(self.metadata_cache),
                "hits": hits,
                "hitRate": round(self.metadata_cache.hit_rate(len(records)), 3),
                "ttlSeconds": self.metadata_cache.ttl,
            },
        )
        logger.info(
            "Search for '%s' in %s returned %d of %d products",
            query,
            region_code,
            len(response.search_results),
            response.total_results,
        )
        return Ok(response)

    async def lookup_product_by_id(
        self,
        product_id: str,
        region_code: str = Settings.DEFAULT_REGION,
    ) -> Result[LookupResult]:
        """Resolve a product page by id and price it in the reference currency."""
        product_id = (product_id or "").strip()
        if not product_id:
            return Failure(
                ErrorKind.INVALID_REQUEST, "productId parameter is required"
            )
        region_code = (region_code or "").upper()
        if region_code not in self.settings.REGIONS:
            return _region_failure(region_code)

        fetched = await self._fetch_metadata(product_id, region_code)
        if isinstance(fetched, Failure):
            logger.error(
                "Lookup failed for %s in %s: %s",
                product_id,
                region_code,
                fetched.message,
            )
            return fetched

        entry, source = fetched.value
        rates = await self.rate_cache.get_rates()
        record = self._record_from_entry(entry, region_code, rates)
        return Ok(
            LookupResult(
                product=record,
                source=source,
                price_in_reference_currency=record.price_in_reference_currency,
            )
        )

    async def match_across_regions(
        self,
        product: ProductRecord,
        target_regions: list[str],
    ) -> Result[MatchBuckets]:
        """Bucket *product*'s counterparts in *target_regions*."""
        supported = [
            r.upper() for r in target_regions if r.upper() in self.settings.REGIONS
        ]
        skipped = [r for r in target_regions if r.upper() not in self.settings.REGIONS]
        if skipped:
            logger.warning("Ignoring unsupported regions: %s", ", ".join(skipped))
        return await self.matcher.match(product, supported)
