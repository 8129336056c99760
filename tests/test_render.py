from __future__ import annotations

from datetime import date, datetime, timezone

import yaml

from devops_content.corpus.documents import load_document
from digest.models import CATEGORY_ORDER, NewsItem
from digest.render import (
    BANNER,
    CATEGORY_EMOJIS,
    assemble_digest,
    current_week,
    current_year,
    digest_stats,
    format_display_date,
    generate_title,
    group_by_category,
    render_digest,
    render_item,
)
from linter.rules import NEWS, LintContext, apply_rules

TODAY = date(2025, 11, 17)


def news(title, category, day, source="Kubernetes Blog", tags=None, summary=None) -> NewsItem:
    return NewsItem(
        title=title,
        url=f"https://example.com/{title.lower().replace(' ', '-')}",
        excerpt=f"Excerpt for {title}.",
        source=source,
        published_at=datetime(2025, 11, day, 9, tzinfo=timezone.utc),
        category=category,
        tags=tags or [],
        summary=summary,
    )


ITEMS = [
    news("Helm 4 released", "Kubernetes", 12, tags=["helm", "release"], summary="Helm 4 ships server-side apply."),
    news("Kubernetes v1.34", "Kubernetes", 15),
    news("Terraform stacks GA", "IaC", 14, source="HashiCorp"),
    news("Something odd", "Quantum", 13, source="HashiCorp"),
]


class TestDates:
    def test_week_and_year(self):
        assert current_week(TODAY) == 47
        assert (current_week(date(2026, 1, 1)), current_year(date(2026, 1, 1))) == (1, 2026)
        # Friday 2027-01-01 opens week 1 of its calendar year
        assert (current_week(date(2027, 1, 1)), current_year(date(2027, 1, 1))) == (1, 2027)
        assert (current_week(date(2027, 1, 4)), current_year(date(2027, 1, 4))) == (2, 2027)

    def test_last_days_of_december_roll_into_week_one(self):
        # the Monday-start week holding 2026-01-01 begins on 2025-12-29
        assert (current_week(date(2025, 12, 28)), current_year(date(2025, 12, 28))) == (52, 2025)
        assert (current_week(date(2025, 12, 29)), current_year(date(2025, 12, 29))) == (1, 2025)

    def test_assemble_uses_calendar_year(self):
        digest = assemble_digest([], today=date(2027, 1, 1))

        assert (digest.metadata.week, digest.metadata.year) == (1, 2027)
        assert digest.metadata.title == "DevOps Weekly Digest - Week 1, 2027"

    def test_display_date(self):
        assert format_display_date(datetime(2025, 11, 6)) == "Nov 6, 2025"

    def test_title(self):
        assert generate_title(47, 2025) == "DevOps Weekly Digest - Week 47, 2025"


class TestAssemble:
    def test_groups_in_fixed_order_newest_first(self):
        groups = group_by_category(ITEMS)

        assert tuple(groups) == CATEGORY_ORDER
        assert [item.title for item in groups["Kubernetes"]] == ["Kubernetes v1.34", "Helm 4 released"]
        assert [item.title for item in groups["Misc"]] == ["Something odd"]
        assert groups["Security"] == []

    def test_metadata_defaults_from_today(self):
        digest = assemble_digest(ITEMS, today=TODAY)

        assert digest.metadata.week == 47
        assert digest.metadata.year == 2025
        assert digest.metadata.date == "2025-11-17"
        assert digest.metadata.title == "DevOps Weekly Digest - Week 47, 2025"
        assert digest.item_count == 4

    def test_explicit_week(self):
        digest = assemble_digest([], week=3, year=2024, today=TODAY)

        assert digest.metadata.title == "DevOps Weekly Digest - Week 3, 2024"

    def test_stats(self):
        stats = digest_stats(assemble_digest(ITEMS, today=TODAY))

        assert stats["total_items"] == 4
        assert stats["category_counts"]["Kubernetes"] == 2
        assert stats["category_counts"]["CI/CD"] == 0
        assert stats["sources"] == ["Kubernetes Blog", "HashiCorp"]


class TestRender:
    def test_item_with_tags(self):
        text = render_item(ITEMS[0])

        assert text.splitlines()[0] == "### 📄 Helm 4 released"
        assert "Helm 4 ships server-side apply." in text
        assert "**📅 Nov 12, 2025** • **📰 Kubernetes Blog**" in text
        assert "`helm`, `release`" in text
        assert text.endswith("[**🔗 Read more**](https://example.com/helm-4-released)")

    def test_item_without_summary_uses_excerpt(self):
        text = render_item(ITEMS[1])

        assert "Excerpt for Kubernetes v1.34." in text
        assert "🏷️" not in text

    def test_document_layout(self):
        text = render_digest(assemble_digest(ITEMS, today=TODAY))

        _, front, rest = text.split("---\n", 2)
        meta = yaml.safe_load(front)
        assert list(meta) == ["title", "date", "summary"]
        assert meta["date"] == "2025-11-17"
        assert rest.startswith(f"\n{BANNER}\n")
        headings = [line for line in text.splitlines() if line.startswith("## ")]
        assert headings == [f"## {CATEGORY_EMOJIS[name]} {name}" for name in ("Kubernetes", "IaC", "Misc")]
        assert text.endswith("\n")

    def test_rendered_digest_passes_news_rules(self, tmp_path):
        path = tmp_path / "week-47.md"
        path.write_text(render_digest(assemble_digest(ITEMS, today=TODAY)), encoding="utf-8")

        assert apply_rules(LintContext(), NEWS, load_document(path)) == []
