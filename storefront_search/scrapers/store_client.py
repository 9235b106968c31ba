# storefront_search/scrapers/store_client.py

"""Async storefront page fetcher with retries and a circuit breaker."""

import asyncio
import logging
import time
from typing import Any

import cloudscraper  # type: ignore[import-untyped]
from bs4 import BeautifulSoup
from curl_cffi import requests as curl_requests
from curl_cffi.requests.exceptions import RequestException
from curl_cffi.requests.exceptions import Timeout as CurlTimeout

from storefront_search.config.settings import Settings
from storefront_search.models.result import ErrorKind, Failure, Ok, Result


class StoreClient:
    """Fetches storefront HTML and translates transport errors.

    Every call returns a :class:`Result`.  HTTP statuses, timeouts and
    connection errors become :class:`Failure` values with an
    :class:`ErrorKind`; nothing transport-specific leaks to callers.
    """

    # Cloudflare / Akamai challenge page markers
    _CHALLENGE_MARKERS: list[str] = [
        "challenges.cloudflare.com",
        "cdn-cgi/challenge-platform",
        "just a moment",
        "cf-turnstile",
        "access denied",
    ]

    def __init__(self, session: Any = None) -> None:
        self.logger = logging.getLogger("storefront_search.store")
        self.settings = Settings()
        self.session: Any = session
        self._current_delay: float = self.settings.REQUEST_DELAY
        self._consecutive_failures: int = 0
        self._circuit_open: bool = False
        self._circuit_opened_at: float = 0.0
        self._request_timeout: int = self.settings.REQUEST_TIMEOUT

    def _get_session(self) -> Any:
        """Create the impersonating session on first use, inside the loop."""
        if self.session is None:
            self.session = curl_requests.AsyncSession(
                impersonate=self.settings.IMPERSONATE_BROWSER
            )
        return self.session

    async def close(self) -> None:
        """Release the underlying HTTP session."""
        closer = getattr(self.session, "close", None)
        if closer is not None:
            result = closer()
            if asyncio.iscoroutine(result):
                await result

    # ── Response checks ──────────────────────────────────

    def _is_blocked(self, text: str) -> bool:
        """Detect challenge pages and CAPTCHA interstitials."""
        lower = text.lower()
        for marker in self._CHALLENGE_MARKERS:
            if marker in lower:
                self.logger.warning(
                    "Challenge page detected (marker: '%s')", marker
                )
                return True

        # Skip the keyword scan on content-rich pages to avoid
        # false positives from product descriptions
        has_body_content = "<body" in lower and len(text) > 5000
        if not has_body_content:
            for keyword in self.settings.CAPTCHA_KEYWORDS:
                if keyword in lower:
                    self.logger.warning(
                        "CAPTCHA keyword '%s' detected", keyword
                    )
                    return True
        return False

    # ── Circuit breaker ──────────────────────────────────

    def _check_circuit(self) -> bool:
        """Return True if the circuit breaker blocks this request.

        After CIRCUIT_BREAKER_COOLDOWN seconds the breaker enters
        a half-open state, allowing a single probe request through.
        """
        if not self._circuit_open:
            return False
        elapsed = time.time() - self._circuit_opened_at
        if elapsed >= self.settings.CIRCUIT_BREAKER_COOLDOWN:
            self.logger.info(
                "Circuit breaker half-open after %.0fs", elapsed
            )
            self._circuit_open = False
            return False
        return True

    def _record_success(self) -> None:
        self._consecutive_failures = 0
        self._circuit_open = False
        self._circuit_opened_at = 0.0
        self._current_delay = self.settings.REQUEST_DELAY

    def _record_failure(self) -> None:
        self._consecutive_failures += 1
        if self._consecutive_failures >= self.settings.CIRCUIT_BREAKER_THRESHOLD:
            self._circuit_open = True
            self._circuit_opened_at = time.time()
            self.logger.error(
                "Circuit breaker opened after %d consecutive failures",
                self._consecutive_failures,
            )

    def _escalate_delay(self) -> None:
        """Double the current delay up to the configured max."""
        max_delay = (
            self.settings.REQUEST_DELAY * self.settings.MAX_DELAY_MULTIPLIER
        )
        self._current_delay = min(self._current_delay * 2, max_delay)
        self.logger.warning(
            "Rate-limited, delay escalated to %.1fs", self._current_delay
        )

    # ── Fetching ─────────────────────────────────────────

    async def _backoff(self, attempt: int, delay: float | None = None) -> None:
        """Wait before the next attempt; no wait after the last one.

        Defaults to a linear back-off on the current delay.
        """
        if attempt >= self.settings.MAX_RETRIES - 1:
            return
        await asyncio.sleep(
            self._current_delay * (attempt + 1) if delay is None else delay
        )

    @staticmethod
    def _status_failure(status: int, url: str, not_found: ErrorKind) -> Failure:
        """Map an HTTP status onto a domain failure."""
        context: dict[str, Any] = {"url": url, "status": status}
        if status == 404:
            return Failure(not_found, f"HTTP 404 for {url}", context)
        if status == 429:
            return Failure(ErrorKind.RATE_LIMITED, "Rate limit exceeded", context)
        if status == 403:
            return Failure(ErrorKind.BLOCKED, "Request was blocked", context)
        if status >= 500:
            return Failure(
                ErrorKind.UPSTREAM_ERROR, "Storefront server error", context
            )
        return Failure(ErrorKind.UPSTREAM_ERROR, f"HTTP {status}", context)

    async def fetch_html(
        self,
        url: str,
        not_found: ErrorKind = ErrorKind.REGION_UNAVAILABLE,
    ) -> Result[str]:
        """GET *url* with retries, adaptive delay and circuit breaker.

        *not_found* is the kind reported for HTTP 404, which differs
        between search pages (region gone) and product pages.
        """
        if self._check_circuit():
            return Failure(
                ErrorKind.REGION_UNAVAILABLE,
                "Storefront temporarily unavailable",
                {"url": url, "circuit_open": True},
            )

        headers = {
            **self.settings.DEFAULT_HEADERS,
            "Referer": self.settings.STORE_BASE_URL + "/",
        }
        last: Failure = Failure(ErrorKind.NETWORK, "No attempt made", {"url": url})

        for attempt in range(self.settings.MAX_RETRIES):
            try:
                resp = await self._get_session().get(
                    url, headers=headers, timeout=self._request_timeout
                )
            except (CurlTimeout, TimeoutError) as exc:
                self.logger.warning(
                    "Timeout on attempt %d for %s", attempt + 1, url
                )
                last = Failure(
                    ErrorKind.TIMEOUT,
                    "Request timeout, storefront is responding slowly",
                    {"url": url, "timeout": self._request_timeout, "error": exc},
                )
                await self._backoff(attempt)
                continue
            except (RequestException, OSError) as exc:
                self.logger.warning(
                    "Request error on attempt %d for %s: %s",
                    attempt + 1,
                    url,
                    exc,
                    exc_info=True,
                )
                last = Failure(
                    ErrorKind.NETWORK,
                    "Cannot reach storefront, network error",
                    {"url": url, "error": exc},
                )
                await self._backoff(attempt)
                continue
            except Exception as exc:
                self.logger.error(
                    "Unexpected error on attempt %d for %s: %s",
                    attempt + 1,
                    url,
                    exc,
                    exc_info=True,
                )
                last = Failure(
                    ErrorKind.NETWORK,
                    "Unexpected error while fetching storefront page",
                    {"url": url, "error": exc},
                )
                await self._backoff(attempt)
                continue

            if resp.status_code == 200:
                text = str(resp.text)
                if self._is_blocked(text):
                    last = Failure(
                        ErrorKind.BLOCKED,
                        "Storefront served a challenge page",
                        {"url": url},
                    )
                    self._escalate_delay()
                    await self._backoff(attempt, self._current_delay)
                    continue
                self._record_success()
                return Ok(text)

            self.logger.warning(
                "HTTP %d on attempt %d for %s",
                resp.status_code,
                attempt + 1,
                url,
            )
            last = self._status_failure(resp.status_code, url, not_found)
            if resp.status_code == 404:
                # Definitive answer, not a transport problem
                self._record_success()
                return last
            if resp.status_code in (429, 403):
                self._escalate_delay()
                await self._backoff(attempt, self._current_delay)
            else:
                await self._backoff(attempt)

        if last.kind is ErrorKind.BLOCKED:
            fallback = await self._fetch_cloudscraper(url, headers)
            if fallback is not None:
                self._record_success()
                return Ok(fallback)

        self._record_failure()
        return last.with_context(attempts=self.settings.MAX_RETRIES)

    async def _fetch_cloudscraper(
        self,
        url: str,
        headers: dict[str, str],
    ) -> str | None:
        """Retry a challenge-blocked page through cloudscraper."""
        self.logger.info(
            "curl_cffi blocked, falling back to cloudscraper for %s", url
        )

        def _get() -> str | None:
            scraper: Any = cloudscraper.create_scraper()
            resp: Any = scraper.get(
                url, headers=headers, timeout=self._request_timeout
            )
            if resp.status_code != 200:
                return None
            text = str(resp.text)
            return None if self._is_blocked(text) else text

        try:
            return await asyncio.to_thread(_get)
        except Exception as exc:
            self.logger.error(
                "cloudscraper fallback also failed: %s", exc, exc_info=True
            )
            return None

    async def fetch_soup(
        self,
        url: str,
        not_found: ErrorKind = ErrorKind.REGION_UNAVAILABLE,
    ) -> Result[BeautifulSoup]:
        """Like :meth:`fetch_html` but parsed with lxml."""
        result = await self.fetch_html(url, not_found)
        if isinstance(result, Failure):
            return result
        return Ok(BeautifulSoup(result.value, "lxml"))
