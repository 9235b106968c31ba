# storefront_search/filters/relevance.py

"""Heuristic relevance scoring and base-product / add-on classification."""

import logging
import re

from storefront_search.config.settings import Settings
from storefront_search.models.product import ProductRecord, RankedProducts

logger = logging.getLogger("storefront_search.relevance")

_GAME_WORD_RE = re.compile(r"\bgames?\b", re.IGNORECASE)
_YEAR_RE = re.compile(r"\(?\b20\d{2}\b\)?")


class RelevanceScorer:
    """Score product names against a query and split the ranking.

    The score is an unbounded signed integer.  Names scoring at least
    :attr:`threshold` are treated as base products, the rest as add-ons.
    The marker lexicons are ordered; only the first hit of each list
    applies.
    """

    EXACT_MATCH = 100
    SUBSTRING_MATCH = 50
    WORD_MATCH_MAX = 30
    ADDON_PENALTY = 40
    EDITION_PENALTY = 20
    GAME_WORD_BONUS = 15
    SHORT_NAME_BONUS = 10
    SHORT_NAME_LENGTH = 30
    PREFIX_BONUS = 25
    YEAR_BONUS = 15

    def __init__(
        self,
        addon_markers: list[str] | None = None,
        edition_markers: list[str] | None = None,
        threshold: int | None = None,
    ) -> None:
        self.addon_markers = [
            m.lower()
            for m in (
                Settings.ADDON_MARKERS if addon_markers is None else addon_markers
            )
        ]
        self.edition_markers = [
            m.lower()
            for m in (
                Settings.EDITION_MARKERS
                if edition_markers is None
                else edition_markers
            )
        ]
        self.threshold: int = (
            Settings.BASE_PRODUCT_THRESHOLD if threshold is None else threshold
        )

    @staticmethod
    def _first_marker(name_lower: str, markers: list[str]) -> str | None:
        for marker in markers:
            if marker in name_lower:
                return marker
        return None

    def score(self, name: str, query: str) -> int:
        """Deterministic relevance of *name* for *query*."""
        name_lower = name.lower().strip()
        query_lower = query.lower().strip()

        if name_lower == query_lower:
            total = self.EXACT_MATCH
        elif query_lower and query_lower in name_lower:
            total = self.SUBSTRING_MATCH
        else:
            words = query_lower.split()
            found = sum(1 for w in words if w in name_lower)
            total = (
                round(found / len(words) * self.WORD_MATCH_MAX) if words else 0
            )

        if self._first_marker(name_lower, self.addon_markers):
            total -= self.ADDON_PENALTY
        if self._first_marker(name_lower, self.edition_markers):
            total -= self.EDITION_PENALTY

        if _GAME_WORD_RE.search(name):
            total += self.GAME_WORD_BONUS
        if len(name) < self.SHORT_NAME_LENGTH:
            total += self.SHORT_NAME_BONUS
        if query_lower and name_lower.startswith(query_lower):
            total += self.PREFIX_BONUS
        if _YEAR_RE.search(name):
            total += self.YEAR_BONUS

        return total

    def is_base_product(self, score: int) -> bool:
        return score >= self.threshold

    def rank(
        self,
        products: list[ProductRecord],
        query: str,
        sort_by_relevance: bool = True,
    ) -> RankedProducts:
        """Score every product and partition by the threshold.

        Sorting is stable, so ties keep their page order.  With
        ``sort_by_relevance=False`` the page order is kept throughout.
        """
        for product in products:
            product.relevance_score = self.score(product.name, query)
            logger.debug(
                "Scored %r = %d (%s)",
                product.name,
                product.relevance_score,
                "base"
                if self.is_base_product(product.relevance_score)
                else "add-on",
            )

        ordered = (
            sorted(products, key=lambda p: p.relevance_score, reverse=True)
            if sort_by_relevance
            else list(products)
        )
        ranked = RankedProducts(all=ordered)
        for product in ordered:
            if self.is_base_product(product.relevance_score):
                ranked.base_products.append(product)
            else:
                ranked.add_ons.append(product)

        logger.info(
            "Ranked %d products for '%s': %d base, %d add-ons",
            len(ordered),
            query,
            len(ranked.base_products),
            len(ranked.add_ons),
        )
        return ranked
