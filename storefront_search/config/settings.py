# storefront_search/config/settings.py

"""Central configuration for the storefront_search engine."""

import os
from pathlib import Path

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Central configuration for the storefront_search engine."""

    # --- Scraping ---
    REQUEST_DELAY: float = 1.0          # Base back-off between retries
    REQUEST_TIMEOUT: int = 10           # Seconds before a request times out
    MAX_RETRIES: int = 3                # Retry count on transient failures

    # --- Resilience ---
    CIRCUIT_BREAKER_THRESHOLD: int = 3  # Consecutive failures to trip
    CIRCUIT_BREAKER_COOLDOWN: float = 60.0
    MAX_DELAY_MULTIPLIER: int = 8       # Cap for adaptive backoff
    CAPTCHA_KEYWORDS: list[str] = [
        "captcha",
        "verify you are human",
        "unusual traffic",
        "automated requests",
    ]

    # --- Storefront ---
    STORE_BASE_URL: str = "https://store.playstation.com"
    SEARCH_URL: str = STORE_BASE_URL + "/{locale}/search/{query}"
    PRODUCT_URL: str = STORE_BASE_URL + "/{locale}/product/{product_id}"
    HIGH_RES_IMAGE_WIDTH: int = 1920

    # Region code -> storefront locale segment and currency
    REGIONS: dict[str, dict[str, str]] = {
        "BE": {"label": "Belgium", "locale": "en-be", "currency": "EUR", "symbol": "€"},
        "NL": {"label": "Netherlands", "locale": "nl-nl", "currency": "EUR", "symbol": "€"},
        "DE": {"label": "Germany", "locale": "de-de", "currency": "EUR", "symbol": "€"},
        "FR": {"label": "France", "locale": "fr-fr", "currency": "EUR", "symbol": "€"},
        "GB": {"label": "United Kingdom", "locale": "en-gb", "currency": "GBP", "symbol": "£"},
        "US": {"label": "United States", "locale": "en-us", "currency": "USD", "symbol": "$"},
        "AU": {"label": "Australia", "locale": "en-au", "currency": "AUD", "symbol": "$"},
        "JP": {"label": "Japan", "locale": "ja-jp", "currency": "JPY", "symbol": "¥"},
        "CH": {"label": "Switzerland", "locale": "de-ch", "currency": "CHF", "symbol": "CHF"},
        "PL": {"label": "Poland", "locale": "pl-pl", "currency": "PLN", "symbol": "zł"},
    }
    DEFAULT_REGION: str = "BE"

    # --- Currency ---
    REFERENCE_CURRENCY: str = "EUR"
    # Multiplier that converts one unit of the currency into EUR
    DEFAULT_EXCHANGE_RATES: dict[str, float] = {
        "EUR": 1.0,
        "USD": 0.92,
        "GBP": 1.17,
        "AUD": 0.61,
        "JPY": 0.0062,
        "CHF": 1.05,
        "PLN": 0.23,
    }
    EXCHANGE_RATE_API_URL: str = os.getenv(
        "EXCHANGE_RATE_API_URL",
        "https://open.er-api.com/v6/latest/EUR",
    )
    EXCHANGE_RATE_TTL: float = 3600.0   # Rate table staleness (secs)

    # --- Caching / enrichment ---
    METADATA_CACHE_TTL: float = 86400.0
    ENRICH_LIMIT: int = 5               # Upstream lookups per search

    # --- Relevance ---
    BASE_PRODUCT_THRESHOLD: int = 20
    # Checked in order; only the first hit is penalised
    ADDON_MARKERS: list[str] = [
        "dlc",
        "season pass",
        "expansion",
        "add-on",
        "addon",
        "bundle",
        "pack",
        "soundtrack",
        "costume",
        "skin",
        "avatar",
        "theme",
        "virtual currency",
        "coins",
        "points",
        "upgrade",
    ]
    EDITION_MARKERS: list[str] = [
        "deluxe",
        "ultimate",
        "goty",
        "game of the year",
        "gold edition",
        "premium",
        "definitive",
        "complete edition",
        "collector",
        "special edition",
    ]

    # --- Browser Impersonation ---
    IMPERSONATE_BROWSER: BrowserTypeLiteral = "chrome131"
    DEFAULT_HEADERS: dict[str, str] = {
        "Accept": (
            "text/html,application/xhtml+xml,"
            "application/xml;q=0.9,image/avif,"
            "image/webp,image/apng,*/*;q=0.8"
        ),
        "Accept-Language": "en-US,en;q=0.9",
        "sec-ch-ua": (
            '"Google Chrome";v="131", '
            '"Chromium";v="131", '
            '"Not_A Brand";v="24"'
        ),
        "sec-ch-ua-mobile": "?0",
        "sec-ch-ua-platform": '"Windows"',
        "Upgrade-Insecure-Requests": "1",
    }

    # --- Logging ---
    LOG_LEVEL: str = os.getenv("STOREFRONT_LOG_LEVEL", "DEBUG").upper()

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    SELECTORS_PATH: Path = (
        BASE_DIR / "storefront_search" / "config" / "selectors.json"
    )
    LOGS_DIR: Path = BASE_DIR / "logs"
