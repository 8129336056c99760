from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from devops_content.config import CrawlConfig
from devops_content.corpus.documents import coerce_date
from digest.models import NewsItem, Source

logger = logging.getLogger("devops_content.digest.crawler")

EXCERPT_LIMIT = 500
COMMON_FEED_PATHS = ("/feed", "/rss", "/feed.xml", "/rss.xml", "/blog/feed")
EXCERPT_FIELDS = ("content:encoded", "description", "content", "summary")
DATE_FIELDS = ("pubDate", "published", "updated", "dc:date")


class FetchError(RuntimeError):
    """Raised when a URL cannot be fetched after all retries."""


def html_to_text(fragment: str, limit: Optional[int] = EXCERPT_LIMIT) -> str:
    text = BeautifulSoup(fragment, "html.parser").get_text(" ")
    text = re.sub(r"\s+", " ", text).strip()
    return text[:limit].strip() if limit else text


def _child_text(node, name: str) -> str:
    child = node.find(name, recursive=False)
    if child is None:
        return ""
    return child.get_text().strip()


def _entry_link(node) -> str:
    for link in node.find_all("link", recursive=False):
        href = link.get("href")
        if href:
            if link.get("rel", "alternate") == "alternate":
                return href.strip()
            continue
        text = link.get_text().strip()
        if text:
            return text
    guid = node.find("guid", recursive=False)
    if guid is not None and guid.get("isPermaLink", "true") != "false":
        text = guid.get_text().strip()
        if text.startswith(("http://", "https://")):
            return text
    return ""


def parse_feed(payload: str, source: Source, now: Optional[datetime] = None) -> List[NewsItem]:
    """Turn an RSS or Atom document into news items for ``source``."""

    now = now or datetime.now(timezone.utc)
    soup = BeautifulSoup(payload, "xml")
    items: List[NewsItem] = []
    for node in soup.find_all(["item", "entry"]):
        title = _child_text(node, "title")
        link = _entry_link(node)
        if not title or not link:
            continue
        raw_excerpt = next((text for text in (_child_text(node, name) for name in EXCERPT_FIELDS) if text), "")
        published = None
        for name in DATE_FIELDS:
            published = coerce_date(_child_text(node, name))
            if published:
                break
        items.append(
            NewsItem(
                title=title,
                url=link,
                excerpt=html_to_text(raw_excerpt) if raw_excerpt else "",
                source=source.name,
                published_at=published or now,
                category=source.category,
                priority=source.priority,
            )
        )
    return items


class FeedCrawler:
    """Fetches RSS feeds and web pages for the digest sources."""

    def __init__(
        self,
        config: CrawlConfig,
        client: Optional[httpx.Client] = None,
        backoff: float = 1.0,
    ) -> None:
        self.config = config
        self.backoff = backoff
        self._owns_client = client is None
        self.client = client or httpx.Client(follow_redirects=True)

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> "FeedCrawler":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def fetch(self, url: str, retries: Optional[int] = None, timeout: Optional[float] = None) -> str:
        attempts = retries or self.config.max_retries
        retryer = Retrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=self.backoff),
            retry=retry_if_exception_type(httpx.HTTPError),
            before_sleep=lambda state: logger.warning(
                "Attempt %d/%d failed for %s: %s",
                state.attempt_number,
                attempts,
                url,
                state.outcome.exception(),
            ),
            reraise=True,
        )
        try:
            for attempt in retryer:
                with attempt:
                    response = self.client.get(
                        url,
                        timeout=timeout or self.config.timeout_s,
                        headers={"User-Agent": self.config.user_agent},
                    )
                    response.raise_for_status()
                    return response.text
        except httpx.HTTPError as exc:
            raise FetchError(f"Failed to fetch {url}: {exc}") from exc
        raise FetchError(f"Failed to fetch {url}")

    def crawl_rss_feed(self, source: Source) -> List[NewsItem]:
        logger.info("Crawling RSS: %s (%s)", source.name, source.url)
        try:
            items = parse_feed(self.fetch(source.url), source)
        except Exception as exc:  # noqa: BLE001
            logger.error("Error crawling %s: %s", source.name, exc)
            return []
        logger.info("Found %d items from %s", len(items), source.name)
        return items

    def discover_feed(self, url: str) -> Optional[str]:
        try:
            html = self.fetch(url)
        except FetchError as exc:
            logger.error("Error discovering RSS for %s: %s", url, exc)
            return None
        soup = BeautifulSoup(html, "html.parser")
        candidates = [
            soup.find("link", attrs={"type": "application/rss+xml"}),
            soup.find("link", attrs={"type": "application/atom+xml"}),
            soup.select_one('a[href*="rss"]'),
            soup.select_one('a[href*="feed"]'),
        ]
        for tag in candidates:
            if tag is not None and tag.get("href"):
                return urljoin(url, tag["href"])
        for path in COMMON_FEED_PATHS:
            feed_url = urljoin(url, path)
            try:
                body = self.fetch(feed_url, retries=1, timeout=5.0)
            except FetchError:
                continue
            if "<rss" in body or "<feed" in body:
                return feed_url
        return None

    def crawl_web_source(self, source: Source) -> List[NewsItem]:
        logger.info("Crawling web: %s (%s)", source.name, source.url)
        try:
            feed_url = self.discover_feed(source.url)
        except Exception as exc:  # noqa: BLE001
            logger.error("Error crawling web source %s: %s", source.name, exc)
            return []
        if not feed_url:
            logger.warning("No RSS feed found for %s", source.name)
            return []
        logger.info("Found RSS feed for %s: %s", source.name, feed_url)
        return self.crawl_rss_feed(source.model_copy(update={"type": "rss", "url": feed_url}))

    def crawl_rss_feeds(self, sources: Sequence[Source], concurrency: Optional[int] = None) -> List[NewsItem]:
        feeds = [source for source in sources if source.type == "rss"]
        return self._crawl_all(feeds, self.crawl_rss_feed, concurrency or self.config.rss_concurrency)

    def crawl_web_sources(self, sources: Sequence[Source], concurrency: Optional[int] = None) -> List[NewsItem]:
        pages = [source for source in sources if source.type == "web"]
        return self._crawl_all(pages, self.crawl_web_source, concurrency or self.config.web_concurrency)

    @staticmethod
    def _crawl_all(
        sources: List[Source],
        crawl: Callable[[Source], List[NewsItem]],
        concurrency: int,
    ) -> List[NewsItem]:
        if not sources:
            return []
        collected: List[NewsItem] = []
        with ThreadPoolExecutor(max_workers=concurrency) as pool:
            # map keeps source order regardless of completion order
            for items in pool.map(crawl, sources):
                collected.extend(items)
        return collected
