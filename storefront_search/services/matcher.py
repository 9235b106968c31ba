# storefront_search/services/matcher.py

"""Fuzzy matching of one product against its listings in other regions."""

import logging
import math
from collections.abc import Awaitable, Callable

from storefront_search.models.match import Confidence, MatchBuckets, MatchResult
from storefront_search.models.product import ProductRecord
from storefront_search.models.result import ErrorKind, Failure, Ok, Result

logger = logging.getLogger("storefront_search.matcher")

CandidateFetcher = Callable[[ProductRecord, str], Awaitable[ProductRecord | None]]

TITLE_WEIGHT = 0.40
PRICE_WEIGHT = 0.30
ID_WEIGHT = 0.30

EXACT_THRESHOLD = 0.95
LIKELY_THRESHOLD = 0.80
POTENTIAL_THRESHOLD = 0.60


def levenshtein_distance(a: str, b: str) -> int:
    """Unit-cost insert/delete/substitute edit distance.

    Uses the full ``(len(b) + 1) x (len(a) + 1)`` table.
    """
    matrix = [[0] * (len(a) + 1) for _ in range(len(b) + 1)]
    for i in range(len(b) + 1):
        matrix[i][0] = i
    for j in range(len(a) + 1):
        matrix[0][j] = j

    for i in range(1, len(b) + 1):
        for j in range(1, len(a) + 1):
            if b[i - 1] == a[j - 1]:
                matrix[i][j] = matrix[i - 1][j - 1]
            else:
                matrix[i][j] = min(
                    matrix[i - 1][j - 1] + 1,
                    matrix[i][j - 1] + 1,
                    matrix[i - 1][j] + 1,
                )
    return matrix[len(b)][len(a)]


def string_similarity(a: str, b: str) -> float:
    """``(max_len - distance) / max_len``; two empty strings score 1."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return (longest - levenshtein_distance(a, b)) / longest


def price_similarity(p1: float, p2: float) -> float:
    """``1 - 2 * relative difference``, floored at 0."""
    diff = abs(p1 - p2) / max(p1, p2)
    return max(0.0, 1 - diff * 2)


def _usable_price(product: ProductRecord) -> float | None:
    value = product.price_in_reference_currency
    if value is None or not math.isfinite(value) or value <= 0:
        return None
    return value


def match_score(a: ProductRecord, b: ProductRecord) -> float:
    """Weighted average of the title, price and id similarities.

    A criterion whose inputs are missing on either side is left out of
    both the weighted sum and the weight total.
    """
    weighted = 0.0
    weights = 0.0

    if a.name and b.name:
        weighted += string_similarity(a.name.lower(), b.name.lower()) * TITLE_WEIGHT
        weights += TITLE_WEIGHT

    price_a, price_b = _usable_price(a), _usable_price(b)
    if price_a is not None and price_b is not None:
        weighted += price_similarity(price_a, price_b) * PRICE_WEIGHT
        weights += PRICE_WEIGHT

    if a.identifier is not None and b.identifier is not None:
        raw_a, raw_b = a.identifier.raw, b.identifier.raw
        id_sim = 1.0 if raw_a == raw_b else string_similarity(raw_a, raw_b)
        weighted += id_sim * ID_WEIGHT
        weights += ID_WEIGHT

    return weighted / weights if weights else 0.0


def bucket_for(score: float) -> Confidence:
    if score >= EXACT_THRESHOLD:
        return Confidence.EXACT
    if score >= LIKELY_THRESHOLD:
        return Confidence.LIKELY
    if score >= POTENTIAL_THRESHOLD:
        return Confidence.POTENTIAL
    return Confidence.NONE


class CrossRegionMatcher:
    """Find a product's counterparts in other storefront regions.

    Candidates come from *fetch_candidate*, called once per target
    region, one region at a time.  A region that raises or returns
    nothing simply contributes no candidate.
    """

    def __init__(self, fetch_candidate: CandidateFetcher) -> None:
        self._fetch_candidate = fetch_candidate

    async def match(
        self,
        product: ProductRecord,
        target_regions: list[str],
    ) -> Result[MatchBuckets]:
        buckets = MatchBuckets()
        try:
            own_region = product.region.upper()
            for region in target_regions:
                region_code = region.upper()
                if region_code == own_region:
                    continue
                try:
                    candidate = await self._fetch_candidate(product, region_code)
                except Exception as exc:
                    logger.warning(
                        "Candidate fetch failed for %s in %s: %s",
                        product.name,
                        region_code,
                        exc,
                        exc_info=True,
                    )
                    continue
                if candidate is None:
                    logger.info(
                        "No candidate for '%s' in %s", product.name, region_code
                    )
                    continue

                score = match_score(product, candidate)
                confidence = bucket_for(score)
                logger.info(
                    "Candidate '%s' in %s scored %.3f (%s)",
                    candidate.name,
                    region_code,
                    score,
                    confidence.value,
                )
                buckets.add(
                    MatchResult(
                        confidence=confidence,
                        region=region_code,
                        product=candidate,
                        score=score,
                    )
                )
        except Exception as exc:
            logger.error(
                "Cross-region matching failed for '%s': %s",
                product.name,
                exc,
                exc_info=True,
            )
            return Failure(
                ErrorKind.MATCH_FAILED,
                "Failed to perform cross-region product matching",
                {"product": product.name, "error": exc},
            )

        buckets.no_match = buckets.total == 0
        return Ok(buckets)
