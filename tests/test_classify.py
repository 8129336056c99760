from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from digest.ai import AIResponseError
from digest.classify import (
    classify_item,
    classify_items,
    is_event_announcement,
    keyword_classify,
    summarize_item,
    summarize_items,
)
from digest.models import NewsItem


def news(title: str, excerpt: str = "", category=None, summary=None) -> NewsItem:
    return NewsItem(
        title=title,
        url=f"https://example.com/{abs(hash(title))}",
        excerpt=excerpt,
        source="Feed",
        published_at=datetime(2025, 11, 16, tzinfo=timezone.utc),
        category=category,
        summary=summary,
    )


class TestKeywordClassification:
    @pytest.mark.parametrize(
        "title, category",
        [
            ("Helm 4 is out", "Kubernetes"),
            ("Docker Desktop adds container snapshots", "Cloud Native"),
            ("GitHub Actions gets faster runners", "CI/CD"),
            ("Terraform 1.10 ephemeral values", "IaC"),
            ("Prometheus 3.0 native histograms", "Observability"),
            ("Critical CVE in runc", "Security"),
            ("Postgres 18 async IO", "Databases"),
            ("AWS launches new regions", "Platforms"),
        ],
    )
    def test_keyword_families(self, title, category):
        assert keyword_classify(news(title)).category == category

    def test_first_family_wins(self):
        assert keyword_classify(news("Running Kubernetes on AWS")).category == "Kubernetes"

    def test_excerpt_is_searched(self):
        assert keyword_classify(news("Weekly update", excerpt="New grafana dashboards")).category == "Observability"

    def test_falls_back_to_source_category(self):
        assert keyword_classify(news("Release notes", category="Platforms")).category == "Platforms"
        assert keyword_classify(news("Release notes")).category == "Misc"

    def test_summary_is_excerpt_head(self):
        result = keyword_classify(news("Helm", excerpt="x" * 300))

        assert result.include is True
        assert result.summary == "x" * 200

    @pytest.mark.parametrize(
        "title, expected",
        [
            ("KubeCon NA is coming!", True),
            ("Join us at the DevOps Conference 2026", True),
            ("Community meetup 2025 recap", True),
            ("Event-driven autoscaling with KEDA", False),
        ],
    )
    def test_event_announcements(self, title, expected):
        assert is_event_announcement(title) is expected

    def test_events_are_excluded(self):
        result = keyword_classify(news("KubeCon NA is coming!"))

        assert result.include is False
        assert result.tags == ["event"]


class TestAIClassification:
    def test_uses_model_reply(self):
        model = MagicMock()
        model.chat_json.return_value = {"include": True, "category": "Security", "tags": ["cve"], "summary": "Patch now."}

        result = classify_item(news("Something happened"), model)

        assert (result.category, result.tags, result.summary) == ("Security", ["cve"], "Patch now.")
        prompt = model.chat_json.call_args.args[1]
        assert "Title: Something happened" in prompt

    def test_unknown_category_becomes_misc(self):
        model = MagicMock()
        model.chat_json.return_value = {"include": True, "category": "Blockchain"}

        assert classify_item(news("x"), model).category == "Misc"

    def test_errors_fall_back_to_keywords(self):
        model = MagicMock()
        model.chat_json.side_effect = AIResponseError("bad")

        result = classify_item(news("Terraform news"), model)

        assert result.category == "IaC"

    def test_events_skip_the_model(self):
        model = MagicMock()

        assert classify_item(news("Meetup 2025 announced"), model).include is False
        model.chat_json.assert_not_called()

    def test_skip_ai_never_calls_model(self):
        model = MagicMock()

        classify_item(news("Helm"), model, skip_ai=True)

        model.chat_json.assert_not_called()


class TestClassifyItems:
    def test_excluded_items_are_dropped_in_order(self):
        items = [news("Helm chart tips"), news("Conference 2026 is coming!"), news("Terraform import blocks")]

        result = classify_items(items, skip_ai=True, batch_size=2)

        assert [(i.title, i.category) for i in result] == [("Helm chart tips", "Kubernetes"), ("Terraform import blocks", "IaC")]
        assert all(i.include for i in result)

    def test_ai_batches_pause_between_batches(self, monkeypatch):
        model = MagicMock()
        model.chat_json.return_value = {"include": False}
        sleeps = []
        monkeypatch.setattr("digest.classify.time.sleep", sleeps.append)

        result = classify_items([news(f"item {n}") for n in range(5)], model=model, batch_size=2, batch_delay_s=0.5)

        assert result == []
        assert sleeps == [0.5, 0.5]


class TestSummaries:
    def test_long_summary_is_kept(self):
        model = MagicMock()
        item = news("x", summary="s" * 60)

        assert summarize_items([item], model, batch_delay_s=0)[0].summary == "s" * 60
        model.chat.assert_not_called()

    def test_short_summary_is_replaced(self):
        model = MagicMock()
        model.chat.return_value = "  What happened. Why it matters.  "

        (result,) = summarize_items([news("x", summary="short")], model, batch_delay_s=0)

        assert result.summary == "What happened. Why it matters."

    def test_failure_uses_excerpt(self):
        model = MagicMock()
        model.chat.side_effect = RuntimeError("down")

        assert summarize_item(news("x", excerpt="e" * 250), model) == "e" * 200 + "..."
