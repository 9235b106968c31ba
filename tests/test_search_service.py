# tests/test_search_service.py

"""End-to-end tests for StorefrontSearchService over saved pages."""

import time
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

from storefront_search.config.settings import Settings
from storefront_search.models.product import MetadataCacheEntry
from storefront_search.models.result import ErrorKind, Failure, Ok
from storefront_search.pricing.exchange_rates import ExchangeRateCache
from storefront_search.scrapers.store_client import StoreClient
from storefront_search.services.search_service import StorefrontSearchService
from storefront_search.storage.metadata_cache import MetadataCache

FIXTURES_DIR = Path(__file__).parent / "fixtures"
SEARCH_HTML = (FIXTURES_DIR / "search_doom_be.html").read_text(encoding="utf-8")
PRODUCT_HTML = (FIXTURES_DIR / "product_doom_be.html").read_text(encoding="utf-8")

DOOM_ID = "EP1003-CUSA02092_00-DOOM000000000000"

DE_PRODUCT_HTML = """<html><body>
<h1 data-qa="mfe-game-title#name">DOOM (2016)</h1>
<span data-qa="mfeCtaMain#offer0#finalPrice">19,99 €</span>
</body></html>"""


def _response(status: int, text: str = "") -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    return resp


def _routing_session(pages: dict[str, str]) -> MagicMock:
    """Fake session serving *pages* by URL substring, 404 otherwise."""

    def route(url: str, **kwargs: object) -> MagicMock:
        for fragment, body in pages.items():
            if fragment in url:
                return _response(200, body)
        return _response(404)

    session = MagicMock()
    session.get = AsyncMock(side_effect=route)
    return session


def _service(
    pages: dict[str, str] | None = None,
    metadata_cache: MetadataCache | None = None,
    rate_cache: ExchangeRateCache | None = None,
) -> tuple[StorefrontSearchService, MagicMock]:
    session = _routing_session(
        pages
        if pages is not None
        else {
            "/en-be/search/": SEARCH_HTML,
            f"/en-be/product/{DOOM_ID}": PRODUCT_HTML,
        }
    )
    service = StorefrontSearchService(
        client=StoreClient(session=session),
        metadata_cache=metadata_cache or MetadataCache(),
        rate_cache=rate_cache or ExchangeRateCache(api_url=""),
    )
    return service, session


def _product_fetches(session: MagicMock) -> int:
    return sum(1 for c in session.get.await_args_list if "/product/" in c.args[0])


class TestSearchProducts(unittest.IsolatedAsyncioTestCase):
    """search_products over the saved Belgian results page."""

    async def test_base_game_outranks_dlc(self) -> None:
        service, _ = _service()
        result = await service.search_products("Doom", "BE", filter_dlc=False)

        self.assertIsInstance(result, Ok)
        names = [p.name for p in result.value.search_results]
        self.assertEqual(names[0], "DOOM (2016)")
        self.assertLess(
            names.index("DOOM (2016)"),
            names.index("DOOM Eternal Deluxe Edition DLC Pack"),
        )
        top = result.value.search_results[0]
        self.assertEqual(top.relevance_score, 100)

    async def test_dlc_filtered_by_default(self) -> None:
        service, _ = _service()
        result = await service.search_products("Doom", "BE")

        response = result.value
        self.assertEqual(
            [p.name for p in response.search_results],
            ["DOOM (2016)", "DOOM 64", "DOOM Eternal"],
        )
        self.assertEqual(
            [p.name for p in response.add_ons],
            ["DOOM Eternal Deluxe Edition DLC Pack"],
        )
        self.assertEqual(response.total_results, 4)
        self.assertEqual(response.filtered_count, 1)
        self.assertEqual(response.dropped_count, 1)
        self.assertEqual(response.failed_count, 0)

    async def test_price_text_parsed(self) -> None:
        service, _ = _service()
        result = await service.search_products("Doom", "BE")

        eternal = next(
            p for p in result.value.search_results if p.name == "DOOM Eternal"
        )
        self.assertEqual(eternal.price_text, "€59,99")
        self.assertAlmostEqual(eternal.raw_price, 59.99)
        self.assertAlmostEqual(eternal.price_in_reference_currency, 59.99)
        self.assertEqual(eternal.currency_code, "EUR")
        self.assertEqual(eternal.exchange_rate, 1.0)

    async def test_full_list_still_ordered_by_score(self) -> None:
        service, _ = _service()
        result = await service.search_products("Doom", "BE", filter_dlc=False)

        scores = [p.relevance_score for p in result.value.search_results]
        self.assertEqual(len(scores), 4)
        self.assertEqual(scores, sorted(scores, reverse=True))
        self.assertEqual(result.value.filtered_count, 0)

    async def test_unsorted_keeps_page_order(self) -> None:
        service, _ = _service()
        result = await service.search_products(
            "Doom", "BE", filter_dlc=False, sort_by_relevance=False
        )
        self.assertEqual(
            [p.name for p in result.value.search_results],
            [
                "DOOM Eternal Deluxe Edition DLC Pack",
                "DOOM (2016)",
                "DOOM 64",
                "DOOM Eternal",
            ],
        )

    async def test_fallback_rates_when_refresh_fails(self) -> None:
        failing = MagicMock()
        failing.get = AsyncMock(side_effect=ConnectionError("rates down"))
        service, _ = _service(
            rate_cache=ExchangeRateCache(
                api_url="https://rates.test/latest/EUR", session=failing
            )
        )
        result = await service.search_products("Doom", "BE")

        self.assertIsInstance(result, Ok)
        self.assertTrue(result.value.search_results)
        self.assertEqual(result.value.search_results[0].exchange_rate, 1.0)

    async def test_non_euro_region_is_converted(self) -> None:
        service, _ = _service(pages={"/en-gb/search/": SEARCH_HTML})
        result = await service.search_products("Doom", "gb")

        top = result.value.search_results[0]
        gbp = Settings.DEFAULT_EXCHANGE_RATES["GBP"]
        self.assertEqual(top.region, "GB")
        self.assertEqual(top.currency_code, "GBP")
        self.assertEqual(top.currency_symbol, "£")
        self.assertAlmostEqual(top.price_in_reference_currency, 19.99 * gbp)

    async def test_listing_fields(self) -> None:
        service, _ = _service()
        result = await service.search_products("Doom", "BE")

        doom = result.value.search_results[0]
        self.assertEqual(
            doom.url, f"https://store.playstation.com/en-be/product/{DOOM_ID}"
        )
        self.assertEqual(doom.identifier.raw, DOOM_ID)
        self.assertEqual(doom.identifier.enriched, f"BE-{DOOM_ID}")
        self.assertTrue(doom.identifier.valid)
        self.assertEqual(
            doom.image_url,
            "https://image.api.playstation.com/vulcan/img/rnd/doom-2016.png"
            "?w=1920&thumb=false",
        )
        self.assertFalse(doom.enriched)

    async def test_query_string_stripped_from_id(self) -> None:
        service, _ = _service()
        result = await service.search_products("Doom", "BE")

        doom64 = next(
            p for p in result.value.search_results if p.name == "DOOM 64"
        )
        self.assertEqual(doom64.identifier.raw, "EP1003-CUSA06234_00-DOOM64ONPS400000")
        self.assertEqual(doom64.image_url, "")

    async def test_to_dict_shape(self) -> None:
        service, _ = _service()
        result = await service.search_products("Doom", "BE")

        data = result.value.to_dict()
        self.assertEqual(data["query"], "Doom")
        self.assertEqual(data["region"], "BE")
        self.assertEqual(data["totalResults"], 4)
        self.assertEqual(data["searchResults"][0]["rawPrice"], 19.99)
        self.assertIn("cacheInfo", data)
        self.assertEqual(data["cacheInfo"]["ttlSeconds"], Settings.METADATA_CACHE_TTL)


class TestSearchFailures(unittest.IsolatedAsyncioTestCase):
    """Request validation and upstream failures."""

    async def test_empty_query(self) -> None:
        service, session = _service()
        for query in ("", "   "):
            with self.subTest(query=query):
                result = await service.search_products(query, "BE")
                self.assertIsInstance(result, Failure)
                self.assertIs(result.kind, ErrorKind.INVALID_REQUEST)
        session.get.assert_not_awaited()

    async def test_unsupported_region(self) -> None:
        service, session = _service()
        result = await service.search_products("Doom", "XX")

        self.assertIs(result.kind, ErrorKind.REGION_UNSUPPORTED)
        self.assertIn("BE", result.context["available_regions"])
        session.get.assert_not_awaited()

    async def test_missing_region_page_is_unavailable(self) -> None:
        service, _ = _service(pages={})
        result = await service.search_products("Doom", "BE")

        self.assertIs(result.kind, ErrorKind.REGION_UNAVAILABLE)
        self.assertEqual(result.context["query"], "Doom")
        self.assertEqual(result.context["region"], "BE")

    async def test_upstream_error_passes_through(self) -> None:
        session = MagicMock()
        session.get = AsyncMock(return_value=_response(502))
        service = StorefrontSearchService(
            client=StoreClient(session=session),
            rate_cache=ExchangeRateCache(api_url=""),
        )
        result = await service.search_products("Doom", "BE")

        self.assertIs(result.kind, ErrorKind.UPSTREAM_ERROR)
        self.assertTrue(result.retryable)

    async def test_page_without_listings_is_empty(self) -> None:
        service, _ = _service(
            pages={"/en-be/search/": "<html><body><p>No results</p></body></html>"}
        )
        result = await service.search_products("Zzzz", "BE")

        self.assertIsInstance(result, Ok)
        self.assertEqual(result.value.search_results, [])
        self.assertEqual(result.value.total_results, 0)


class TestEnrichment(unittest.IsolatedAsyncioTestCase):
    """Product-page metadata attached to top results."""

    async def test_enrich_fetches_product_pages(self) -> None:
        service, session = _service()
        result = await service.search_products("Doom", "BE", enrich=True)

        doom = result.value.search_results[0]
        self.assertTrue(doom.enriched)
        self.assertEqual(doom.original_price, 19.99)
        self.assertEqual(doom.discount_percentage, 50)
        self.assertEqual(doom.rating, "4.72")
        self.assertTrue(doom.description.startswith("Developed by id Software"))
        self.assertEqual(
            doom.image_url,
            "https://image.api.playstation.com/vulcan/ap/rnd/doom-hero.jpg"
            "?w=1920&thumb=false",
        )
        others = result.value.search_results[1:]
        self.assertFalse(any(p.enriched for p in others))
        self.assertEqual(_product_fetches(session), 3)
        self.assertEqual(result.value.cache_info["size"], 1)
        self.assertEqual(result.value.cache_info["hits"], 0)

    async def test_enrich_uses_cache(self) -> None:
        cache = MetadataCache()
        cache.set(
            DOOM_ID,
            "en-be",
            MetadataCacheEntry(
                product_id=DOOM_ID,
                name="DOOM (2016)",
                base_price=19.99,
                discounted_price=None,
                currency_code="EUR",
                image_url="https://image.api.playstation.com/cached.jpg",
                fetched_at=time.time(),
            ),
        )
        service, session = _service(metadata_cache=cache)
        result = await service.search_products("Doom", "BE", enrich=True)

        doom = result.value.search_results[0]
        self.assertTrue(doom.enriched)
        self.assertIsNone(doom.original_price)
        self.assertIsNone(doom.discount_percentage)
        self.assertEqual(doom.image_url, "https://image.api.playstation.com/cached.jpg")
        self.assertEqual(result.value.cache_info["hits"], 1)
        self.assertEqual(_product_fetches(session), 2)

    async def test_enrich_limit(self) -> None:
        service, session = _service()
        with patch.object(Settings, "ENRICH_LIMIT", 1):
            await service.search_products("Doom", "BE", enrich=True)
        self.assertEqual(_product_fetches(session), 1)

    async def test_no_enrichment_by_default(self) -> None:
        service, session = _service()
        await service.search_products("Doom", "BE")
        self.assertEqual(_product_fetches(session), 0)


class TestLookupProductById(unittest.IsolatedAsyncioTestCase):
    """lookup_product_by_id over the saved product page."""

    async def test_live_then_cached(self) -> None:
        service, session = _service()

        first = await service.lookup_product_by_id(DOOM_ID, "BE")
        self.assertIsInstance(first, Ok)
        self.assertEqual(first.value.source, "live")
        product = first.value.product
        self.assertEqual(product.name, "DOOM (2016)")
        self.assertAlmostEqual(product.raw_price, 9.99)
        self.assertEqual(product.original_price, 19.99)
        self.assertEqual(product.price_text, "€9.99")
        self.assertAlmostEqual(first.value.price_in_reference_currency, 9.99)

        second = await service.lookup_product_by_id(DOOM_ID, "BE")
        self.assertEqual(second.value.source, "cache")
        self.assertEqual(session.get.await_count, 1)

    async def test_product_page_details(self) -> None:
        service, _ = _service()
        result = await service.lookup_product_by_id(DOOM_ID, "BE")

        product = result.value.product
        self.assertEqual(product.discount_percentage, 50)
        self.assertEqual(product.rating, "4.72")
        self.assertEqual(
            product.description,
            "Developed by id Software, DOOM returns as a brutally fun"
            " single-player campaign.",
        )
        data = result.value.to_dict()["product"]
        self.assertEqual(data["discountPercentage"], 50)
        self.assertEqual(data["rating"], "4.72")

    async def test_page_without_details(self) -> None:
        """Description and rating are optional; the price alone is enough."""
        service, _ = _service(
            pages={f"/de-de/product/{DOOM_ID}": DE_PRODUCT_HTML}
        )
        result = await service.lookup_product_by_id(DOOM_ID, "DE")

        product = result.value.product
        self.assertIsNone(product.discount_percentage)
        self.assertEqual(product.description, "")
        data = product.to_dict()
        self.assertNotIn("discountPercentage", data)
        self.assertIsNone(data["description"])
        self.assertIsNone(data["rating"])

    async def test_unknown_product_is_not_found(self) -> None:
        service, _ = _service()
        result = await service.lookup_product_by_id("EP0000-NONE00000_00-MISSING000000000", "BE")
        self.assertIs(result.kind, ErrorKind.NOT_FOUND)

    async def test_unparseable_page(self) -> None:
        service, _ = _service(
            pages={f"/product/{DOOM_ID}": "<html><body><p>Oops</p></body></html>"}
        )
        result = await service.lookup_product_by_id(DOOM_ID, "BE")
        self.assertIs(result.kind, ErrorKind.EXTRACTION_FAILED)
        self.assertEqual(len(service.metadata_cache), 0)

    async def test_validation(self) -> None:
        service, _ = _service()
        missing = await service.lookup_product_by_id("", "BE")
        self.assertIs(missing.kind, ErrorKind.INVALID_REQUEST)
        region = await service.lookup_product_by_id(DOOM_ID, "XX")
        self.assertIs(region.kind, ErrorKind.REGION_UNSUPPORTED)

    async def test_to_dict(self) -> None:
        service, _ = _service()
        result = await service.lookup_product_by_id(DOOM_ID, "be")
        data = result.value.to_dict()
        self.assertEqual(data["source"], "live")
        self.assertEqual(data["product"]["productId"]["enriched"], f"BE-{DOOM_ID}")


class TestMatchAcrossRegions(unittest.IsolatedAsyncioTestCase):
    """Cross-region matching through the service's candidate lookup."""

    async def test_same_product_in_other_region_is_exact(self) -> None:
        service, _ = _service(
            pages={
                "/en-be/search/": SEARCH_HTML,
                f"/de-de/product/{DOOM_ID}": DE_PRODUCT_HTML,
            }
        )
        searched = await service.search_products("Doom", "BE")
        doom = searched.value.search_results[0]

        result = await service.match_across_regions(doom, ["DE", "BE", "XX"])

        self.assertIsInstance(result, Ok)
        buckets = result.value
        self.assertEqual([m.region for m in buckets.exact], ["DE"])
        self.assertFalse(buckets.no_match)

    async def test_unavailable_region_gives_no_match(self) -> None:
        service, _ = _service()
        searched = await service.search_products("Doom", "BE")
        doom = searched.value.search_results[0]

        result = await service.match_across_regions(doom, ["US"])

        self.assertIsInstance(result, Ok)
        self.assertTrue(result.value.no_match)

    async def test_title_search_fallback(self) -> None:
        """No id hit in the target region, so the title search is used."""
        service, _ = _service(
            pages={
                "/en-be/search/": SEARCH_HTML,
                "/nl-nl/search/": SEARCH_HTML,
            }
        )
        searched = await service.search_products("Doom", "BE")
        doom = searched.value.search_results[0]

        result = await service.match_across_regions(doom, ["NL"])

        self.assertEqual([m.region for m in result.value.exact], ["NL"])
        self.assertEqual(result.value.exact[0].product.name, "DOOM (2016)")


if __name__ == "__main__":
    unittest.main()
