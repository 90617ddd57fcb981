"""Concrete extraction strategies for the three storefronts.

- StaticHtmlExtractor: one HTTP fetch, first node matching the selector
  (Chrome Web Store)
- FilteredHtmlExtractor: one HTTP fetch, first selected node whose text
  contains a marker word (Firefox Add-ons, where several metadata cards
  share a class)
- RenderedPageExtractor: full browser session, because the count is only
  inserted by client-side scripts (Edge Add-ons)

Selectors, URLs and the marker word come from GlobalConfig so a markup
change on a storefront is an environment change, not a code change.
"""

import random

import httpx
from bs4 import BeautifulSoup, Tag

from config.settings import GlobalConfig, SourceConfig, SourceId, get_config
from usercount.browser import BrowserManager
from usercount.exceptions import ElementNotFoundError, FetchError, ParseError
from usercount.extractor import BaseExtractor
from usercount.logger import get_logger

log = get_logger(__name__)


class HtmlPageExtractor(BaseExtractor):
    """Shared fetch-and-parse logic for storefronts serving static markup.

    Attributes:
        _transport: Optional httpx transport; tests inject a MockTransport.
    """

    def __init__(
        self,
        source: SourceConfig,
        config: GlobalConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(source, config)
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        return {
            "User-Agent": random.choice(self.config.user_agents),
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.5",
        }

    async def fetch_html(self) -> str:
        """Fetch the listing page body.

        Raises:
            FetchError: On transport failure or a non-2xx status.
        """
        url = self.source.url
        timeout = self.config.request_timeout_ms / 1000

        try:
            async with httpx.AsyncClient(
                timeout=timeout,
                follow_redirects=True,
                headers=self._headers(),
                transport=self._transport,
            ) as client:
                response = await client.get(url)
        except httpx.HTTPError as exc:
            raise FetchError(url=url, reason=f"{type(exc).__name__}: {exc}") from exc

        if not response.is_success:
            raise FetchError(
                url=url,
                reason=f"HTTP {response.status_code}",
                status_code=response.status_code,
            )

        log.debug(
            "Page fetched",
            source=self.source_id.value,
            status_code=response.status_code,
            content_length=len(response.text),
        )
        return response.text

    def select_nodes(self, html: str) -> list[Tag]:
        return BeautifulSoup(html, "html.parser").select(self.source.selector)


class StaticHtmlExtractor(HtmlPageExtractor):
    """Reads the count from the first node matching the selector."""

    async def read_count_text(self) -> str:
        nodes = self.select_nodes(await self.fetch_html())
        if not nodes:
            raise ParseError(selector=self.source.selector, url=self.source.url)
        return nodes[0].get_text(" ", strip=True)


class FilteredHtmlExtractor(HtmlPageExtractor):
    """Reads the count from the first selected node containing the marker.

    The marker comparison is case-insensitive.
    """

    def __init__(
        self,
        source: SourceConfig,
        config: GlobalConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not source.marker:
            raise ValueError(f"{source.source_id.value} source requires a marker word")
        super().__init__(source, config, transport)

    async def read_count_text(self) -> str:
        nodes = self.select_nodes(await self.fetch_html())
        marker = self.source.marker.lower()

        for node in nodes:
            text = node.get_text(" ", strip=True)
            if marker in text.lower():
                return text

        raise ParseError(
            selector=self.source.selector,
            url=self.source.url,
            reason=(
                f"None of {len(nodes)} selected nodes contain '{self.source.marker}'"
                " - possible layout shift"
            ),
        )


class RenderedPageExtractor(BaseExtractor):
    """Reads the count after the page's scripts have populated the DOM.

    Opens and closes its own browser session on every call.
    """

    heavyweight = True

    async def read_count_text(self) -> str:
        async with BrowserManager.create(self.config) as browser:
            page = await browser.new_page()
            await browser.navigate(page, self.source.url)

            locator = page.locator(self.source.selector)
            if await locator.count() == 0:
                raise ElementNotFoundError(
                    selector=self.source.selector, url=self.source.url
                )

            text = await locator.first.text_content()
            return text or ""


EXTRACTOR_TYPES: dict[SourceId, type[BaseExtractor]] = {
    SourceId.CHROME: StaticHtmlExtractor,
    SourceId.FIREFOX: FilteredHtmlExtractor,
    SourceId.EDGE: RenderedPageExtractor,
}


def build_extractors(
    config: GlobalConfig | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[BaseExtractor]:
    """Instantiate one extractor per configured source, in order.

    Args:
        config: Optional GlobalConfig. Uses singleton if not provided.
        transport: Optional httpx transport for the HTML extractors.

    Returns:
        Extractors ordered as ``config.source_configs()``.
    """
    config = config or get_config()
    extractors: list[BaseExtractor] = []

    for source in config.source_configs():
        extractor_type = EXTRACTOR_TYPES[source.source_id]
        if issubclass(extractor_type, HtmlPageExtractor):
            extractors.append(extractor_type(source, config, transport=transport))
        else:
            extractors.append(extractor_type(source, config))

    return extractors
