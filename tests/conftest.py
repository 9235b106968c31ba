# tests/conftest.py

"""Shared pytest fixtures for all storefront tests."""

from collections.abc import Generator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest


@pytest.fixture(autouse=True)
def mock_sleep() -> Generator[None, None, None]:
    """Patch asyncio.sleep in the store client so back-off runs instantly."""
    with patch(
        "storefront_search.scrapers.store_client.asyncio.sleep",
        new=AsyncMock(),
    ):
        yield


@pytest.fixture(autouse=True)
def mock_cloudscraper() -> Generator[MagicMock, None, None]:
    """Keep the cloudscraper fallback off the network."""
    blocked = MagicMock()
    blocked.status_code = 503
    blocked.text = ""
    scraper = MagicMock()
    scraper.get.return_value = blocked
    with patch(
        "storefront_search.scrapers.store_client.cloudscraper.create_scraper",
        return_value=scraper,
    ) as factory:
        yield factory
