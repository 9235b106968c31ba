# storefront_search/pricing/exchange_rates.py

"""Exchange-rate table with time-based refresh and layered fallback."""

import json
import logging
import time
from typing import Any

from curl_cffi import requests as curl_requests

from storefront_search.config.settings import Settings

logger = logging.getLogger("storefront_search.rates")


class ExchangeRateCache:
    """Rates relative to the reference currency, refreshed hourly.

    Rates are stored as multipliers: ``amount * rate`` converts an
    amount into the reference currency.  A failed refresh serves the
    previous table even when stale, and falls back to
    :attr:`Settings.DEFAULT_EXCHANGE_RATES` when nothing was ever
    fetched, so callers never see an empty table.
    """

    def __init__(
        self,
        api_url: str | None = None,
        ttl: float | None = None,
        session: Any = None,
    ) -> None:
        self.api_url: str = (
            Settings.EXCHANGE_RATE_API_URL if api_url is None else api_url
        )
        self._ttl: float = (
            Settings.EXCHANGE_RATE_TTL if ttl is None else ttl
        )
        self._session: Any = session
        self._rates: dict[str, float] = {}
        self._refreshed_at: float = 0.0

    @property
    def refreshed_at(self) -> float:
        return self._refreshed_at

    def is_stale(self, now: float | None = None) -> bool:
        """True when the table is empty or older than the TTL."""
        if not self._rates:
            return True
        current = time.time() if now is None else now
        return current - self._refreshed_at >= self._ttl

    async def get_rates(self) -> dict[str, float]:
        """Return the current table, refreshing it first when stale."""
        if not self.is_stale():
            return dict(self._rates)

        fresh = await self._refresh()
        if fresh:
            self._rates = fresh
            self._refreshed_at = time.time()
            logger.info(
                "Exchange rates refreshed (%d currencies)", len(fresh)
            )
            return dict(self._rates)

        if self._rates:
            logger.warning(
                "Rate refresh failed, serving stale table from %.0f",
                self._refreshed_at,
            )
            return dict(self._rates)

        logger.warning("Rate refresh failed, using hardcoded defaults")
        return dict(Settings.DEFAULT_EXCHANGE_RATES)

    def clear(self) -> None:
        """Drop the cached table so the next call refreshes."""
        self._rates = {}
        self._refreshed_at = 0.0
        logger.info("Exchange rate cache cleared")

    async def _refresh(self) -> dict[str, float]:
        """Fetch and normalise a new table; empty dict on any failure."""
        if not self.api_url:
            logger.debug("No exchange rate source configured")
            return {}
        try:
            resp = await self._get(self.api_url)
            if resp.status_code != 200:
                logger.warning(
                    "Exchange rate API returned HTTP %d", resp.status_code
                )
                return {}
            payload: Any = json.loads(resp.text)
            return self._normalise(payload)
        except Exception as exc:
            logger.warning(
                "Exchange rate fetch failed: %s", exc, exc_info=True
            )
            return {}

    async def _get(self, url: str) -> Any:
        """GET through the injected session, or a short-lived one."""
        headers = {"Accept": "application/json"}
        if self._session is not None:
            return await self._session.get(
                url, headers=headers, timeout=Settings.REQUEST_TIMEOUT
            )
        async with curl_requests.AsyncSession(
            impersonate=Settings.IMPERSONATE_BROWSER
        ) as session:
            return await session.get(
                url, headers=headers, timeout=Settings.REQUEST_TIMEOUT
            )

    @staticmethod
    def _normalise(payload: Any) -> dict[str, float]:
        """Turn units-per-reference quotes into to-reference multipliers."""
        if not isinstance(payload, dict):
            logger.warning(
                "Exchange rate payload is %s, expected an object",
                type(payload).__name__,
            )
            return {}
        raw = payload.get("rates")
        if not isinstance(raw, dict) or not raw:
            logger.warning("Exchange rate payload has no 'rates' table")
            return {}

        base = str(payload.get("base_code") or payload.get("base") or "")
        if base and base.upper() != Settings.REFERENCE_CURRENCY:
            logger.warning(
                "Exchange rate payload is based on %s, expected %s",
                base,
                Settings.REFERENCE_CURRENCY,
            )
            return {}

        rates: dict[str, float] = {}
        for code, quote in raw.items():
            try:
                per_reference = float(quote)
            except (TypeError, ValueError):
                continue
            if per_reference > 0:
                rates[str(code).upper()] = 1.0 / per_reference
        rates[Settings.REFERENCE_CURRENCY] = 1.0
        return rates
