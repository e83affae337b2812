"""Web page scraper turning a URL into plain text for ingestion.

Fetches HTML with httpx, then extracts the readable text:

1. trafilatura's content extraction (drops navigation, ads, boilerplate);
2. when that yields nothing, a BeautifulSoup pass that removes
   script/style/nav/header/footer/aside and ad/share blocks, picks the
   longest of the usual main-content containers (``main``, ``article``,
   ``.content``, ...) and falls back to ``<body>``.

Whitespace is collapsed to single spaces.  The page title comes from
``<title>`` or, when absent, the URL's hostname.
"""

from __future__ import annotations

import re
from urllib.parse import urlparse

import httpx
import structlog
import trafilatura
from bs4 import BeautifulSoup
from pydantic import BaseModel, ConfigDict

from tenantrag.utils.errors import ScrapeError

logger = structlog.get_logger(logger_name=__name__)

MAX_URL_LENGTH = 2048
MAX_CONTENT_BYTES = 5 * 1024 * 1024
DEFAULT_TIMEOUT = 30.0

_DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}

_REMOVED_SELECTORS = "script, style, nav, header, footer, aside, .advertisement, .ads, .social-share"
_MAIN_SELECTORS = ("main", "article", ".content", ".post-content", ".entry-content", "#content")
_WHITESPACE = re.compile(r"\s+")


class ScrapedPage(BaseModel):
    """Readable text of one web page."""

    model_config = ConfigDict(frozen=True)

    url: str
    title: str
    content: str

    @property
    def size(self) -> int:
        return len(self.content.encode("utf-8"))


def validate_url(url: str, max_length: int = MAX_URL_LENGTH) -> str:
    """Return *url* stripped, or raise :class:`ScrapeError` if unusable."""
    candidate = (url or "").strip()
    if not candidate:
        raise ScrapeError(message="No URL provided")
    if len(candidate) > max_length:
        raise ScrapeError(message="Invalid URL format or URL too long")
    parsed = urlparse(candidate)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ScrapeError(message="Invalid URL format")
    return candidate


class UrlScraper:
    """Fetches a page and extracts its main text content."""

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        max_url_length: int = MAX_URL_LENGTH,
        max_content_bytes: int = MAX_CONTENT_BYTES,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers=_DEFAULT_HEADERS,
            follow_redirects=True,
        )
        self._max_url_length = max_url_length
        self._max_content_bytes = max_content_bytes

    async def scrape(self, url: str) -> ScrapedPage:
        """Fetch *url* and return its title and readable text.

        Raises
        ------
        ScrapeError
            Invalid URL, transport failure, non-2xx status, oversized
            body, or a page with no extractable text.
        """
        target = validate_url(url, self._max_url_length)
        html = await self._fetch(target)

        soup = BeautifulSoup(html, "html.parser")
        title_tag = soup.find("title")
        title = title_tag.get_text(strip=True) if title_tag else ""
        if not title:
            title = urlparse(target).hostname or target

        content = trafilatura.extract(html, include_comments=False, include_tables=True) or ""
        if not content.strip():
            logger.debug("trafilatura_extraction_empty", url=target)
            content = _extract_with_selectors(soup)

        content = _WHITESPACE.sub(" ", content).strip()
        if not content:
            raise ScrapeError(
                message="Failed to scrape URL: No content could be extracted from the URL",
                provider_name=self.get_provider_name(),
            )

        logger.info("url_scraped", url=target, title=title, chars=len(content))
        return ScrapedPage(url=target, title=title, content=content)

    async def aclose(self) -> None:
        await self._client.aclose()

    def get_provider_name(self) -> str:
        return "url_scraper"

    async def _fetch(self, url: str) -> str:
        try:
            async with self._client.stream("GET", url) as response:
                response.raise_for_status()
                body = bytearray()
                async for piece in response.aiter_bytes():
                    body.extend(piece)
                    if len(body) > self._max_content_bytes:
                        raise ScrapeError(
                            message=(
                                "Failed to scrape URL: content exceeds "
                                f"{self._max_content_bytes} bytes"
                            ),
                            provider_name=self.get_provider_name(),
                        )
                encoding = response.encoding or "utf-8"
        except httpx.TimeoutException as exc:
            raise ScrapeError(
                message=f"Failed to scrape URL: timeout fetching {url}",
                provider_name=self.get_provider_name(),
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise ScrapeError(
                message=f"Failed to scrape URL: HTTP {exc.response.status_code}",
                provider_name=self.get_provider_name(),
            ) from exc
        except httpx.HTTPError as exc:
            raise ScrapeError(
                message=f"Failed to scrape URL: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return bytes(body).decode(encoding, errors="replace")


def _extract_with_selectors(soup: BeautifulSoup) -> str:
    for element in soup.select(_REMOVED_SELECTORS):
        element.decompose()

    content = ""
    for selector in _MAIN_SELECTORS:
        candidate = soup.select_one(selector)
        if candidate is None:
            continue
        text = candidate.get_text(" ", strip=True)
        if len(text) > len(content):
            content = text

    if not content and soup.body is not None:
        content = soup.body.get_text(" ", strip=True)
    return content
