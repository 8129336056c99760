"""Cleanup and selection steps applied to crawled news items."""

from __future__ import annotations

import html
import re
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from digest.crawler import EXCERPT_LIMIT, html_to_text
from digest.models import DEFAULT_CATEGORY, NewsItem

TRACKING_PARAMS = frozenset({"utm_source", "utm_medium", "utm_campaign", "ref"})
PRIORITY_ORDER = {"high": 3, "medium": 2, "low": 1}


def normalize_title(title: str) -> str:
    text = html.unescape(title)
    text = re.sub(r"\s+", " ", text).strip()
    text = re.sub(r"\[.*?\]", "", text)
    return re.sub(r"\s+", " ", text).strip()


def normalize_url(url: str) -> str:
    """Canonical form: lowercase scheme and host, ``/`` for an empty path."""

    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return url
    if not parts.scheme or not parts.netloc:
        return url
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), parts.path or "/", parts.query, parts.fragment))


def normalize_excerpt(excerpt: str) -> str:
    return html_to_text(html.unescape(excerpt), EXCERPT_LIMIT)


def normalize_date(value: Optional[datetime]) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_item(item: NewsItem) -> NewsItem:
    return replace(
        item,
        title=normalize_title(item.title),
        url=normalize_url(item.url),
        excerpt=normalize_excerpt(item.excerpt) if item.excerpt else "",
        published_at=normalize_date(item.published_at),
    )


def normalize_items(items: List[NewsItem]) -> List[NewsItem]:
    return [normalize_item(item) for item in items]


def dedupe_url_key(url: str) -> str:
    try:
        parts = urlsplit(url)
    except ValueError:
        return url.lower()
    if not parts.scheme or not parts.netloc:
        return url.lower()
    query = urlencode([(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in TRACKING_PARAMS])
    rebuilt = urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))
    return rebuilt.rstrip("/").lower()


def dedupe_title_key(title: str) -> str:
    text = re.sub(r"[^\w\s]", "", title.lower())
    return re.sub(r"\s+", " ", text).strip()


def deduplicate_by_url(items: List[NewsItem]) -> List[NewsItem]:
    seen: Set[str] = set()
    unique: List[NewsItem] = []
    for item in items:
        key = dedupe_url_key(item.url)
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique


def deduplicate(items: List[NewsItem]) -> List[NewsItem]:
    by_title: Dict[str, NewsItem] = {}
    for item in deduplicate_by_url(items):
        key = dedupe_title_key(item.title)
        existing = by_title.get(key)
        # a newer copy takes over the slot of the first one
        if existing is None or item.published_at > existing.published_at:
            by_title[key] = item
    return list(by_title.values())


def filter_recent(items: List[NewsItem], days: int = 7, now: Optional[datetime] = None) -> List[NewsItem]:
    threshold = (now or datetime.now(timezone.utc)) - timedelta(days=days)
    return [item for item in items if item.published_at > threshold]


def sort_by_date(items: List[NewsItem]) -> List[NewsItem]:
    return sorted(items, key=lambda item: item.published_at, reverse=True)


def _limit_groups(items: List[NewsItem], key, limit: int) -> List[NewsItem]:
    groups: Dict[str, List[NewsItem]] = {}
    for item in items:
        groups.setdefault(key(item), []).append(item)
    limited: List[NewsItem] = []
    for group in groups.values():
        limited.extend(sort_by_date(group)[:limit])
    return limited


def limit_per_source(items: List[NewsItem], max_per_source: int = 4) -> List[NewsItem]:
    return _limit_groups(items, lambda item: item.source, max_per_source)


def limit_per_category(items: List[NewsItem], max_per_category: int = 12) -> List[NewsItem]:
    return _limit_groups(items, lambda item: item.category or DEFAULT_CATEGORY, max_per_category)


def apply_limits(items: List[NewsItem], max_per_source: int = 4, max_per_category: int = 12) -> List[NewsItem]:
    return limit_per_category(limit_per_source(items, max_per_source), max_per_category)


def filter_by_priority(items: List[NewsItem], min_priority: str = "low") -> List[NewsItem]:
    threshold = PRIORITY_ORDER[min_priority]
    return [item for item in items if PRIORITY_ORDER.get(item.priority, 1) >= threshold]


def extract_domain(url: str) -> str:
    try:
        host = urlsplit(url).hostname
    except ValueError:
        return "unknown"
    if not host:
        return "unknown"
    return host[4:] if host.startswith("www.") else host
