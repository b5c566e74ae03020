"""HTTP scraper that turns a public webpage into title, body text and metadata."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any
import httpx
from lxml import html as lxml_html
from lxml.etree import ParserError

from pagepersona.core.errors import InvalidRequest, StageTimeout, UpstreamFetchFailed
from pagepersona.core.urls import ensure_public_url, is_private_host

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; PagePersonaBot/1.0; +https://pagepersona.ai/bot)"

CONTENT_SELECTORS = [
    "//main",
    "//article",
    "//*[contains(concat(' ', normalize-space(@class), ' '), ' content ')]",
    "//*[contains(concat(' ', normalize-space(@class), ' '), ' main-content ')]",
    "//*[contains(concat(' ', normalize-space(@class), ' '), ' post-content ')]",
    "//*[contains(concat(' ', normalize-space(@class), ' '), ' entry-content ')]",
    "//*[@id='content']",
    "//*[@id='main']",
]

UNWANTED_XPATH = (
    "//script|//style|//nav|//header|//footer|//aside"
    "|//*[contains(concat(' ', normalize-space(@class), ' '), ' advertisement ')]"
    "|//*[contains(concat(' ', normalize-space(@class), ' '), ' ads ')]"
    "|//*[contains(concat(' ', normalize-space(@class), ' '), ' sidebar ')]"
)


@dataclass(slots=True)
class ScrapedContent:
    title: str
    content: str
    url: str
    description: str | None = None
    author: str | None = None
    publish_date: str | None = None
    word_count: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)


class WebScraper:
    """Fetch and extract readable content from public webpages."""

    def __init__(
        self,
        *,
        timeout: float = 15.0,
        max_content_length: int = 8000,
        user_agent: str = DEFAULT_USER_AGENT,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._max_content_length = max_content_length
        self._client = http_client or httpx.Client(
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
            max_redirects=5,
            headers={
                "User-Agent": user_agent,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                "Accept-Language": "en-US,en;q=0.5",
            },
        )
        self._owns_client = http_client is None
        hooks = self._client.event_hooks
        hooks.setdefault("request", []).append(self._guard_request)
        self._client.event_hooks = hooks

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _guard_request(request: httpx.Request) -> None:
        # runs before every hop, redirects included
        if is_private_host(request.url.host):
            logger.warning("Blocked request to private host %s", request.url.host)
            raise InvalidRequest("Private or internal URLs are not allowed")

    @staticmethod
    def _squash(value: str | None) -> str:
        return " ".join((value or "").split())

    @staticmethod
    def _first_attr(root, xpath: str) -> str | None:
        values = root.xpath(xpath)
        for value in values:
            text = " ".join(str(value).split())
            if text:
                return text
        return None

    def _extract_title(self, root) -> str:
        for xpath in ("//title", "//h1"):
            for element in root.xpath(xpath):
                text = self._squash(element.text_content())
                if text:
                    return text
        for xpath in ("//meta[@property='og:title']/@content", "//meta[@name='title']/@content"):
            text = self._first_attr(root, xpath)
            if text:
                return text
        return "Untitled Page"

    def _extract_content(self, root) -> str:
        for element in root.xpath(UNWANTED_XPATH):
            if element.getparent() is not None:
                element.drop_tree()

        content = ""
        for xpath in CONTENT_SELECTORS:
            matches = root.xpath(xpath)
            if not matches:
                continue
            text = self._squash(matches[0].text_content())
            if len(text) > len(content):
                content = text

        if len(content) < 100:
            bodies = root.xpath("//body")
            body_text = self._squash(bodies[0].text_content()) if bodies else ""
            if body_text:
                content = body_text
        return content

    def _extract_metadata(self, root, content: str) -> dict[str, Any]:
        description = (
            self._first_attr(root, "//meta[@name='description']/@content")
            or self._first_attr(root, "//meta[@property='og:description']/@content")
            or (content[:200] + "..." if content else None)
        )
        author = self._first_attr(root, "//meta[@name='author']/@content") or self._first_attr(
            root, "//meta[@property='article:author']/@content"
        )
        if not author:
            rel_author = root.xpath("//*[@rel='author']")
            author = self._squash(rel_author[0].text_content()) if rel_author else None
        publish_date = (
            self._first_attr(root, "//meta[@property='article:published_time']/@content")
            or self._first_attr(root, "//meta[@name='date']/@content")
            or self._first_attr(root, "//time[@datetime]/@datetime")
        )
        return {
            "description": description,
            "author": author or None,
            "publish_date": publish_date,
            "word_count": len(content.split()),
        }

    def truncate(self, content: str) -> str:
        limit = self._max_content_length
        if len(content) <= limit:
            return content
        truncated = content[:limit]
        last_space = truncated.rfind(" ")
        if last_space > limit * 0.8:
            return truncated[:last_space] + "..."
        return truncated + "..."

    def _fetch(self, url: str) -> httpx.Response:
        try:
            response = self._client.get(url)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise StageTimeout(f"Timed out fetching {url}") from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status == 403:
                raise UpstreamFetchFailed("Access forbidden. This website blocks automated requests.") from exc
            if status == 404:
                raise UpstreamFetchFailed("Page not found. Please check the URL.") from exc
            raise UpstreamFetchFailed(f"HTTP {status}: Failed to fetch webpage") from exc
        except httpx.ConnectError as exc:
            raise UpstreamFetchFailed("Connection failed. The website may be down or does not exist.") from exc
        except httpx.HTTPError as exc:
            raise UpstreamFetchFailed(f"Failed to scrape webpage: {exc}") from exc
        return response

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    def scrape(self, url: str) -> ScrapedContent:
        normalized = ensure_public_url(url)
        logger.info("Scraping %s", normalized)
        response = self._fetch(normalized)

        content_type = response.headers.get("content-type", "text/html").lower()
        if "html" not in content_type and "text" not in content_type:
            raise UpstreamFetchFailed(f"Unsupported content type: {content_type}")

        try:
            root = lxml_html.fromstring(response.text)
        except (ParserError, ValueError) as exc:
            raise UpstreamFetchFailed("Webpage returned no parseable content") from exc

        title = self._extract_title(root)
        content = self._extract_content(root)
        metadata = self._extract_metadata(root, content)
        if not content:
            raise UpstreamFetchFailed("Webpage did not contain any readable text")

        return ScrapedContent(
            title=title,
            content=self.truncate(content),
            url=normalized,
            description=metadata["description"],
            author=metadata["author"],
            publish_date=metadata["publish_date"],
            word_count=metadata["word_count"],
            metadata={"status_code": response.status_code, "final_url": str(response.url)},
        )

    def close(self) -> None:  # pragma: no cover - best effort cleanup
        if self._owns_client:
            self._client.close()


__all__ = ["ScrapedContent", "WebScraper"]
