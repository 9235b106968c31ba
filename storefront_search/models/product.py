# storefront_search/models/product.py

"""Product data models for inter-module data flow."""

import re
from dataclasses import dataclass, field
from typing import Any

from storefront_search.pricing import price_parser

# Short alphanumeric SKUs, or full storefront content ids
# such as ``EP1003-CUSA02092_00-DOOM000000000000``.
_SHORT_ID_RE = re.compile(r"^[A-Z0-9]{8,20}$", re.IGNORECASE)
_CONTENT_ID_RE = re.compile(
    r"^[A-Z]{2}\d{4}-[A-Z]{4}\d{5}_\d{2}-[A-Z0-9]{16}$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class RawListing:
    """Best-effort fields pulled from one search-result element."""

    name: str | None = None
    price_text: str | None = None
    image_url: str | None = None
    detail_url: str | None = None

    @property
    def is_complete(self) -> bool:
        """Name and price are required; image and url are optional."""
        return bool(self.name) and bool(self.price_text)


def validate_product_id(raw: str | None) -> bool:
    """Check that *raw* looks like a storefront product identifier."""
    if not raw or not isinstance(raw, str):
        return False
    candidate = raw.strip()
    return bool(
        _SHORT_ID_RE.match(candidate)
        or _CONTENT_ID_RE.match(candidate)
    )


def generate_checksum(raw: str) -> str:
    """Hex sum of character codes, used as an integrity tag."""
    return format(sum(ord(ch) for ch in raw), "x")


@dataclass(frozen=True)
class ProductIdentifier:
    """Region-qualified wrapper around a raw product id."""

    raw: str
    region: str
    enriched: str
    valid: bool
    checksum: str

    @classmethod
    def from_raw(cls, raw: str, region: str) -> "ProductIdentifier":
        region_code = region.upper() if region else "UNKNOWN"
        return cls(
            raw=raw,
            region=region_code,
            enriched=f"{region_code}-{raw}",
            valid=validate_product_id(raw),
            checksum=generate_checksum(raw),
        )


@dataclass
class ProductRecord:
    """A normalised product as returned to callers."""

    index: int
    name: str
    price_text: str
    raw_price: float
    price_in_reference_currency: float
    currency_symbol: str
    currency_code: str
    exchange_rate: float
    url: str = ""
    image_url: str = ""
    region: str = ""
    identifier: ProductIdentifier | None = None
    relevance_score: int = 0
    enriched: bool = False
    original_price: float | None = None
    discount_percentage: int | None = None
    description: str = ""
    rating: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Serialise to plain JSON-compatible types."""
        data: dict[str, Any] = {
            "index": self.index,
            "name": self.name,
            "price": self.price_text,
            "rawPrice": self.raw_price,
            "priceInReferenceCurrency": round(
                self.price_in_reference_currency, 2
            ),
            "currencySymbol": self.currency_symbol,
            "currencyCode": self.currency_code,
            "exchangeRateUsed": self.exchange_rate,
            "url": self.url,
            "imageUrl": self.image_url,
            "region": self.region,
            "productId": None,
            "relevanceScore": self.relevance_score,
            "enriched": self.enriched,
        }
        if self.identifier is not None:
            data["productId"] = {
                "raw": self.identifier.raw,
                "enriched": self.identifier.enriched,
                "validated": self.identifier.valid,
                "checksum": self.identifier.checksum,
            }
        if self.original_price is not None:
            data["originalPrice"] = self.original_price
        if self.discount_percentage is not None:
            data["discountPercentage"] = self.discount_percentage
        if self.enriched:
            data["description"] = self.description or None
            data["rating"] = self.rating or None
        return data


@dataclass(frozen=True)
class MetadataCacheEntry:
    """Product metadata fetched from the storefront product page."""

    product_id: str
    name: str
    base_price: float
    discounted_price: float | None
    currency_code: str
    image_url: str
    fetched_at: float
    description: str = ""
    rating: str = ""

    @property
    def effective_price(self) -> float:
        """The price a buyer pays today."""
        if self.discounted_price is not None:
            return self.discounted_price
        return self.base_price

    @property
    def discount_percentage(self) -> int | None:
        """Whole-percent saving, or ``None`` when not discounted."""
        if self.discounted_price is None:
            return None
        return price_parser.discount_percentage(
            self.base_price, self.discounted_price
        )


@dataclass
class RankedProducts:
    """Scored products split by the base-product threshold."""

    all: list[ProductRecord] = field(
        default_factory=lambda: list[ProductRecord]()
    )
    base_products: list[ProductRecord] = field(
        default_factory=lambda: list[ProductRecord]()
    )
    add_ons: list[ProductRecord] = field(
        default_factory=lambda: list[ProductRecord]()
    )
