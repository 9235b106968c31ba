# storefront_search/models/match.py

"""Cross-region match result models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from storefront_search.models.product import ProductRecord


class Confidence(Enum):
    """Confidence buckets derived from the composite match score."""

    EXACT = "exact"
    LIKELY = "likely"
    POTENTIAL = "potential"
    NONE = "none"


@dataclass(frozen=True)
class MatchResult:
    """One candidate from another region and how well it matched."""

    confidence: Confidence
    region: str
    product: ProductRecord
    score: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "confidence": self.confidence.value,
            "region": self.region,
            "score": round(self.score, 4),
            "product": self.product.to_dict(),
        }


@dataclass
class MatchBuckets:
    """All matches for one product, grouped by confidence."""

    exact: list[MatchResult] = field(
        default_factory=lambda: list[MatchResult]()
    )
    likely: list[MatchResult] = field(
        default_factory=lambda: list[MatchResult]()
    )
    potential: list[MatchResult] = field(
        default_factory=lambda: list[MatchResult]()
    )
    no_match: bool = False

    def add(self, result: MatchResult) -> None:
        """File *result* into its bucket; ``NONE`` is discarded."""
        if result.confidence is Confidence.EXACT:
            self.exact.append(result)
        elif result.confidence is Confidence.LIKELY:
            self.likely.append(result)
        elif result.confidence is Confidence.POTENTIAL:
            self.potential.append(result)

    @property
    def total(self) -> int:
        return len(self.exact) + len(self.likely) + len(self.potential)

    def to_dict(self) -> dict[str, Any]:
        return {
            "exact": [m.to_dict() for m in self.exact],
            "likely": [m.to_dict() for m in self.likely],
            "potential": [m.to_dict() for m in self.potential],
            "noMatch": self.no_match,
        }
