# storefront_search/storage/metadata_cache.py

"""In-memory product metadata cache with a fixed entry lifetime."""

import logging
import time
from dataclasses import dataclass

from storefront_search.config.settings import Settings
from storefront_search.models.product import MetadataCacheEntry

logger = logging.getLogger("storefront_search.cache")


@dataclass(frozen=True)
class _Slot:
    """A cached entry and the moment it was inserted."""

    entry: MetadataCacheEntry
    inserted_at: float


class MetadataCache:
    """Time-bounded store keyed by ``(product_id, locale)``.

    Identifiers are locale-scoped, so the same id under two locales is
    two distinct entries.  There is no invalidation API: entries expire
    :attr:`ttl` seconds after insertion.
    """

    def __init__(self, ttl: float | None = None) -> None:
        self._slots: dict[str, _Slot] = {}
        self.ttl: float = Settings.METADATA_CACHE_TTL if ttl is None else ttl

    @staticmethod
    def _key(product_id: str, locale: str) -> str:
        return f"{product_id}:{locale}"

    def get(self, product_id: str, locale: str) -> MetadataCacheEntry | None:
        """Return the live entry for the key, or ``None``."""
        self._evict_expired(time.time())
        slot = self._slots.get(self._key(product_id, locale))
        if slot is None:
            logger.debug("Cache miss for %s (%s)", product_id, locale)
            return None
        logger.info("Cache hit for %s (%s)", product_id, locale)
        return slot.entry

    def set(
        self,
        product_id: str,
        locale: str,
        entry: MetadataCacheEntry,
    ) -> None:
        """Insert *entry*; its lifetime starts now."""
        self._slots[self._key(product_id, locale)] = _Slot(
            entry=entry, inserted_at=time.time()
        )
        logger.info("Cached metadata for %s (%s)", product_id, locale)

    def __len__(self) -> int:
        self._evict_expired(time.time())
        return len(self._slots)

    def hit_rate(self, processed: int) -> float:
        """Entries cached divided by ``processed + 1``.

        A per-request approximation for observability, not a rolling
        hit ratio.
        """
        return len(self) / (processed + 1)

    def clear(self) -> int:
        """Purge all cached entries.

        Returns the number of entries that were removed.
        """
        count = len(self._slots)
        self._slots.clear()
        logger.info("Cache manually purged (%d entries removed)", count)
        return count

    def _evict_expired(self, now: float) -> None:
        """Remove entries older than the TTL threshold."""
        before = len(self._slots)
        self._slots = {
            key: slot
            for key, slot in self._slots.items()
            if now - slot.inserted_at < self.ttl
        }
        evicted = before - len(self._slots)
        if evicted:
            logger.debug("Evicted %d expired cache entries", evicted)
