# storefront_search/scrapers/field_extractor.py

"""Multi-strategy field extraction from storefront listing markup.

Every logical field (name, price, image, url) is resolved by an ordered
list of small extractor functions.  The first one that yields a
non-empty value wins.  Ordering goes from structured data attributes,
through looser structural selectors, down to content-pattern matching.
"""

import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from storefront_search.config.settings import Settings
from storefront_search.models.product import RawListing

logger = logging.getLogger("storefront_search.extractor")

Strategy = Callable[[Tag], str | None]

_WHITESPACE_RE = re.compile(r"\s+")
_PRODUCT_PATH_RE = re.compile(r"/product/([^/]+)/?$")
_DECORATIVE_RE = re.compile(
    r"(icon|logo|sprite|placeholder|badge|spinner|avatar-default|\.svg)",
    re.IGNORECASE,
)
_STRIP_QUERY_RE = re.compile(r"[?#].*$")

_CURRENCY_SYMBOLS = ("US$", "A$", "CHF", "zł", "€", "$", "£", "¥")
_PRICE_PATTERN_RE = re.compile(
    r"(?:(?:{syms})\s?\d[\d.,]*|\d[\d.,]*\s?(?:€|zł|CHF))".format(
        syms="|".join(re.escape(s) for s in _CURRENCY_SYMBOLS)
    )
)


def _clean(text: str | None) -> str | None:
    if text is None:
        return None
    collapsed = _WHITESPACE_RE.sub(" ", text).strip()
    return collapsed or None


# ── Strategy builders ────────────────────────────────────


def text_strategy(css: str) -> Strategy:
    """Text content of the first element matching *css*."""

    def run(element: Tag) -> str | None:
        for found in element.select(css):
            value = _clean(found.get_text(" ", strip=True))
            if value:
                return value
        return None

    return run


def attr_strategy(css: str, attr: str) -> Strategy:
    """Attribute *attr* of the first element matching *css*."""

    def run(element: Tag) -> str | None:
        for found in element.select(css):
            value = found.get(attr)
            if isinstance(value, list):
                value = " ".join(value)
            cleaned = _clean(value)
            if cleaned:
                return cleaned
        return None

    return run


def price_pattern_strategy() -> Strategy:
    """Currency-symbol numerics found anywhere in the element's text."""

    def run(element: Tag) -> str | None:
        for node in element.find_all(string=True):
            match = _PRICE_PATTERN_RE.search(str(node))
            if match:
                return match.group(0).strip()
        return None

    return run


def _largest_srcset_candidate(value: str) -> str:
    """Pick the widest entry of a ``srcset`` attribute value."""
    best_url, best_width = "", -1
    for candidate in value.split(","):
        parts = candidate.strip().split()
        if not parts:
            continue
        width = 0
        if len(parts) > 1 and parts[1].endswith(("w", "x")):
            try:
                width = int(float(parts[1][:-1]))
            except ValueError:
                width = 0
        if width > best_width:
            best_url, best_width = parts[0], width
    return best_url


def is_decorative_image(url: str) -> bool:
    """Heuristic for icons, logos and placeholders."""
    if url.startswith("data:"):
        return True
    return bool(_DECORATIVE_RE.search(urlparse(url).path))


def image_strategy(css: str, attr: str) -> Strategy:
    """First non-decorative image URL from *attr* of *css* matches."""

    def run(element: Tag) -> str | None:
        for found in element.select(css):
            value = found.get(attr)
            if not isinstance(value, str) or not value.strip():
                continue
            url = value.strip()
            if attr == "srcset":
                url = _largest_srcset_candidate(url)
            if url and not is_decorative_image(url):
                return url
        return None

    return run


def first_image_strategy() -> Strategy:
    """Last resort: whatever the first ``<img>`` points at."""

    def run(element: Tag) -> str | None:
        img = element.find("img")
        if isinstance(img, Tag):
            src = img.get("src") or img.get("data-src")
            if isinstance(src, str) and src.strip():
                return src.strip()
        return None

    return run


def first_match(element: Tag, strategies: list[Strategy]) -> str | None:
    """Run *strategies* in order and return the first non-empty value."""
    for strategy in strategies:
        value = strategy(element)
        if value:
            return value
    return None


# ── Selector configuration ───────────────────────────────


def _build(entries: list[Any], default_attr: str | None = None) -> list[Strategy]:
    strategies: list[Strategy] = []
    for entry in entries:
        if isinstance(entry, str):
            if default_attr:
                strategies.append(attr_strategy(entry, default_attr))
            else:
                strategies.append(text_strategy(entry))
        elif isinstance(entry, dict):
            strategies.append(attr_strategy(entry["css"], entry["attr"]))
    return strategies


def _build_images(entries: list[Any]) -> list[Strategy]:
    strategies: list[Strategy] = []
    for entry in entries:
        if isinstance(entry, str):
            strategies.append(image_strategy(entry, "src"))
        elif isinstance(entry, dict):
            strategies.append(image_strategy(entry["css"], entry["attr"]))
    return strategies


@dataclass(frozen=True)
class RegionSelectors:
    """Ordered extraction strategies for one storefront region."""

    region: str
    listing: tuple[str, ...]
    name: tuple[Strategy, ...]
    price: tuple[Strategy, ...]
    image: tuple[Strategy, ...]
    url: tuple[Strategy, ...]
    detail_name: tuple[Strategy, ...]
    detail_final_price: tuple[Strategy, ...]
    detail_original_price: tuple[Strategy, ...]
    detail_image: tuple[Strategy, ...]
    detail_description: tuple[Strategy, ...]
    detail_rating: tuple[Strategy, ...]


@lru_cache(maxsize=1)
def _load_selector_file(path: Path) -> dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        data: dict[str, Any] = json.load(f)
    return data


def load_region_selectors(
    region: str,
    path: Path | None = None,
) -> RegionSelectors:
    """Build the strategy lists for *region* from selectors.json.

    Region blocks override the ``default`` block field by field.
    """
    all_selectors = _load_selector_file(path or Settings.SELECTORS_PATH)
    merged: dict[str, Any] = {
        **all_selectors.get("default", {}),
        **all_selectors.get(region.upper(), {}),
    }
    return RegionSelectors(
        region=region.upper(),
        listing=tuple(merged.get("listing", [])),
        name=tuple(_build(merged.get("name", []))),
        price=tuple(
            _build(merged.get("price", [])) + [price_pattern_strategy()]
        ),
        image=tuple(
            _build_images(merged.get("image", []))
            + [first_image_strategy()]
        ),
        url=tuple(_build(merged.get("url", []), default_attr="href")),
        detail_name=tuple(_build(merged.get("detail_name", []))),
        detail_final_price=tuple(
            _build(merged.get("detail_final_price", []))
        ),
        detail_original_price=tuple(
            _build(merged.get("detail_original_price", []))
        ),
        detail_image=tuple(
            _build_images(merged.get("detail_image", []))
        ),
        detail_description=tuple(
            _build(merged.get("detail_description", []))
        ),
        detail_rating=tuple(_build(merged.get("detail_rating", []))),
    )


# ── Extraction ───────────────────────────────────────────


def find_listings(soup: BeautifulSoup, selectors: RegionSelectors) -> list[Tag]:
    """Listing elements from the first container selector that matches."""
    for css in selectors.listing:
        found = soup.select(css)
        if found:
            logger.debug(
                "[%s] %d listings via %r", selectors.region, len(found), css
            )
            return found
    return []


def extract(element: Tag, selectors: RegionSelectors) -> RawListing | None:
    """Pull a :class:`RawListing` out of one listing element.

    Returns ``None`` when the name or price cannot be found.
    """
    listing = RawListing(
        name=first_match(element, list(selectors.name)),
        price_text=first_match(element, list(selectors.price)),
        image_url=first_match(element, list(selectors.image)),
        detail_url=first_match(element, list(selectors.url)),
    )
    if not listing.is_complete:
        return None
    return listing


# ── URL helpers ──────────────────────────────────────────


def absolute_url(url: str | None) -> str:
    """Resolve *url* against the store base; only http(s) survives."""
    if not url:
        return ""
    resolved = urljoin(Settings.STORE_BASE_URL + "/", url)
    return resolved if resolved.startswith(("http://", "https://")) else ""


def canonical_url(url: str | None) -> str:
    """Absolute URL without query string, fragment or trailing slash."""
    resolved = absolute_url(url)
    if not resolved:
        return ""
    return _STRIP_QUERY_RE.sub("", resolved).rstrip("/")


def high_res_image_url(url: str | None) -> str:
    """Ask the image CDN for the largest rendition of *url*."""
    resolved = absolute_url(url)
    if not resolved:
        return ""
    base = _STRIP_QUERY_RE.sub("", resolved)
    if "image.api.playstation.com" in base:
        return f"{base}?w={Settings.HIGH_RES_IMAGE_WIDTH}&thumb=false"
    return resolved


def extract_product_id(detail_url: str | None) -> str | None:
    """The ``<id>`` of a ``.../product/<id>`` URL, if the path ends so."""
    if not detail_url:
        return None
    match = _PRODUCT_PATH_RE.search(urlparse(detail_url).path)
    return match.group(1) if match else None
