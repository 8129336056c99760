"""Group curated items into a weekly digest and render it as a Markdown post."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional

import yaml

from digest.models import CATEGORY_ORDER, DEFAULT_CATEGORY, Digest, DigestMetadata, NewsItem

CATEGORY_EMOJIS: Dict[str, str] = {
    "Kubernetes": "⚓",
    "Cloud Native": "☁️",
    "CI/CD": "🔄",
    "IaC": "🏗️",
    "Observability": "📊",
    "Security": "🔐",
    "Databases": "💾",
    "Platforms": "🌐",
    "Misc": "📰",
}

BANNER = "> 📌 **Handpicked by DevOps Daily** - Your weekly dose of curated DevOps news and updates!"
SUMMARY = (
    "⚡ Curated updates from Kubernetes, cloud native tooling, CI/CD, IaC, observability, "
    "and security - handpicked for DevOps professionals!"
)
SECTION_SEPARATOR = "\n\n---\n\n"


def _week_one_start(year: int) -> date:
    # week 1 is the Monday-start week holding January 1st
    new_year = date(year, 1, 1)
    return new_year - timedelta(days=new_year.weekday())


def current_week(today: Optional[date] = None) -> int:
    today = today or datetime.now(timezone.utc).date()
    if today >= _week_one_start(today.year + 1):
        return 1
    return (today - _week_one_start(today.year)).days // 7 + 1


def current_year(today: Optional[date] = None) -> int:
    return (today or datetime.now(timezone.utc).date()).year


def format_display_date(value: datetime) -> str:
    return f"{value:%b} {value.day}, {value.year}"


def generate_title(week: int, year: int) -> str:
    return f"DevOps Weekly Digest - Week {week}, {year}"


def generate_summary() -> str:
    return SUMMARY


def group_by_category(items: List[NewsItem]) -> Dict[str, List[NewsItem]]:
    categories: Dict[str, List[NewsItem]] = {name: [] for name in CATEGORY_ORDER}
    for item in items:
        name = item.category if item.category in categories else DEFAULT_CATEGORY
        categories[name].append(item)
    for name in categories:
        categories[name].sort(key=lambda item: item.published_at, reverse=True)
    return categories


def assemble_digest(
    items: List[NewsItem],
    week: Optional[int] = None,
    year: Optional[int] = None,
    today: Optional[date] = None,
) -> Digest:
    today = today or datetime.now(timezone.utc).date()
    week = week or current_week(today)
    year = year or current_year(today)
    metadata = DigestMetadata(
        title=generate_title(week, year),
        date=today.isoformat(),
        week=week,
        year=year,
        summary=generate_summary(),
    )
    return Digest(metadata=metadata, categories=group_by_category(items))


def digest_stats(digest: Digest) -> Dict[str, object]:
    sources: List[str] = []
    for items in digest.categories.values():
        for item in items:
            if item.source not in sources:
                sources.append(item.source)
    return {
        "total_items": digest.item_count,
        "category_counts": {name: len(items) for name, items in digest.categories.items()},
        "sources": sources,
    }


def render_item(item: NewsItem) -> str:
    summary = item.summary or item.excerpt[:200]
    lines = [
        f"### 📄 {item.title}",
        "",
        summary,
        "",
        f"**📅 {format_display_date(item.published_at)}** • **📰 {item.source}**",
    ]
    if item.tags:
        lines.append("  🏷️ *" + ", ".join(f"`{tag}`" for tag in item.tags) + "*")
    lines.extend(["", f"[**🔗 Read more**]({item.url})"])
    return "\n".join(lines)


def render_front_matter(metadata: DigestMetadata) -> str:
    payload = {"title": metadata.title, "date": metadata.date, "summary": metadata.summary}
    dumped = yaml.safe_dump(payload, allow_unicode=True, sort_keys=False, width=1000)
    return f"---\n{dumped}---\n"


def render_digest(digest: Digest) -> str:
    sections = []
    for name, items in digest.categories.items():
        if not items:
            continue
        emoji = CATEGORY_EMOJIS.get(name, CATEGORY_EMOJIS[DEFAULT_CATEGORY])
        body = "\n\n".join(render_item(item) for item in items)
        sections.append(f"## {emoji} {name}\n\n{body}")
    header = f"{render_front_matter(digest.metadata)}\n{BANNER}\n\n---\n"
    return f"{header}\n{SECTION_SEPARATOR.join(sections)}\n"
