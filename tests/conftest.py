"""Pytest configuration and shared fixtures for the Focus-UserCount test suite.

This module provides hermetic test infrastructure:
- No external network requests (httpx MockTransport, mocked Playwright)
- Isolated configuration (env overrides + singleton cache clear)
- Fake extractors with scripted outcomes for aggregator/scheduler tests
"""

import asyncio
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable
from unittest.mock import AsyncMock, MagicMock

import pytest
from loguru import logger
from pytest_mock import MockerFixture

from config.settings import GlobalConfig, SourceConfig, SourceId
from usercount.extractor import BaseExtractor


@pytest.fixture(autouse=True)
def reset_logging() -> None:
    """Drop sinks added by configure_logging so files in tmp dirs are released."""
    yield
    logger.remove()
    logger.add(sys.stderr, level="DEBUG")


@pytest.fixture
def mock_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> GlobalConfig:
    """Provide isolated GlobalConfig with safe test defaults.

    Overrides the lru_cache singleton to prevent state leakage between tests.
    """
    from config.settings import get_config

    get_config.cache_clear()

    log_dir = tmp_path / "logs"
    log_dir.mkdir()

    test_env = {
        "APP_NAME": "UserCount-Test",
        "ENVIRONMENT": "test",
        "DEBUG": "false",
        "HEADLESS": "true",
        "LOG_LEVEL": "DEBUG",
        "LOG_DIR": str(log_dir),
        "LOG_ROTATION": "1 day",
        "LOG_RETENTION": "1 day",
        "CHROME_URL": "https://chrome.test.example.com/detail/focus",
        "FIREFOX_URL": "https://firefox.test.example.com/addon/focus/",
        "EDGE_URL": "https://edge.test.example.com/detail/focus",
        "REQUEST_TIMEOUT_MS": "2000",
        "RENDER_TIMEOUT_MS": "5000",
        "CYCLE_TIMEOUT_SEC": "5",
        "REFRESH_INTERVAL_SEC": "3600",
        "FAILURE_ALERT_THRESHOLD": "2",
    }

    for key, value in test_env.items():
        monkeypatch.setenv(key, value)

    config = get_config()

    yield config

    get_config.cache_clear()


@pytest.fixture
def storefront_html() -> Callable[..., str]:
    """Factory for storefront-like listing pages.

    Example:
        html = storefront_html(chrome_text="2,000 users")
        html = storefront_html(firefox_cards=["4.5 Stars", "1,234 Users"])
    """

    def _generate_html(
        chrome_text: str | None = None,
        firefox_cards: list[str] | None = None,
    ) -> str:
        chrome_html = (
            f'<div class="F9iKBc">{chrome_text}</div>' if chrome_text is not None else ""
        )
        cards_html = "".join(
            f'<dl class="MetadataCard-list"><dd>{card}</dd></dl>'
            for card in (firefox_cards or [])
        )
        return f"""
        <!DOCTYPE html>
        <html>
        <head><title>Focus</title></head>
        <body>
            <main>
                {chrome_html}
                <section class="MetadataCard">{cards_html}</section>
            </main>
        </body>
        </html>
        """

    return _generate_html


@pytest.fixture
def playwright_chain(mocker: MockerFixture) -> SimpleNamespace:
    """Patch async_playwright with a mock driver -> browser -> context -> page chain.

    The page renders "1,234 users" in the target element by default.
    """
    count_locator = MagicMock()
    count_locator.count = AsyncMock(return_value=1)
    count_locator.first.text_content = AsyncMock(return_value="1,234 users")

    page = MagicMock()
    page.goto = AsyncMock(return_value=MagicMock(status=200))
    page.locator = MagicMock(return_value=count_locator)
    page.close = AsyncMock()

    context = MagicMock()
    context.new_page = AsyncMock(return_value=page)
    context.close = AsyncMock()

    browser = MagicMock()
    browser.new_context = AsyncMock(return_value=context)
    browser.close = AsyncMock()

    playwright = MagicMock()
    playwright.chromium.launch = AsyncMock(return_value=browser)
    playwright.stop = AsyncMock()

    starter = MagicMock()
    starter.start = AsyncMock(return_value=playwright)
    mocker.patch("usercount.browser.async_playwright", return_value=starter)

    return SimpleNamespace(
        playwright=playwright,
        browser=browser,
        context=context,
        page=page,
        locator=count_locator,
    )


class FakeExtractor(BaseExtractor):
    """Extractor with a scripted outcome.

    ``outcome`` is the text to return, an exception to raise, or a
    callable returning an awaitable for custom behaviour.
    """

    def __init__(self, source: SourceConfig, config: GlobalConfig, outcome: Any, heavy: bool) -> None:
        super().__init__(source, config)
        self.outcome = outcome
        self.heavyweight = heavy
        self.calls = 0

    async def read_count_text(self) -> str:
        self.calls += 1
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        if callable(self.outcome):
            return await self.outcome()
        await asyncio.sleep(0)
        return self.outcome


@pytest.fixture
def fake_extractor(mock_config: GlobalConfig) -> Callable[..., FakeExtractor]:
    """Factory building FakeExtractor instances for a given source."""

    def _make(source_id: SourceId, outcome: Any, heavy: bool = False) -> FakeExtractor:
        source = SourceConfig(
            source_id=source_id,
            url=f"https://{source_id.value}.test.example.com/",
            selector=".count",
        )
        return FakeExtractor(source, mock_config, outcome, heavy)

    return _make


def pytest_configure(config: Any) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests requiring full stack",
    )
