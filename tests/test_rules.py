from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from devops_content.corpus.documents import Document, split_front_matter
from linter.rules import (
    GUIDE_PART,
    NEWS,
    POST,
    LintContext,
    LintIssue,
    Severity,
    apply_rules,
    extract_links,
    find_duplicate_links,
    find_unclosed_fences,
    iter_headings,
)

GOOD_POST = """\
---
title: Good
excerpt: Fine.
date: 2025-01-01
category: Kubernetes
author: Jane Doe
tags: [k8s]
---

Some text.
"""


def make_doc(text: str, name: str = "post.md") -> Document:
    text = textwrap.dedent(text)
    meta, body, offset = split_front_matter(text)
    raw = text.split("---\n", 2)[1] if text.startswith("---\n") else ""
    return Document(path=Path(name), metadata=meta, body=body, body_offset=offset, front_matter=raw)


def rules_hit(issues):
    return [issue.rule for issue in issues]


class TestFences:
    def test_closed_fences(self):
        body = "```bash\necho hi\n```\n\n~~~\nplain\n~~~\n"

        assert find_unclosed_fences(body) == []

    def test_unclosed_fence_reports_opening_line(self):
        body = "intro\n\n```python\nprint('x')\n"

        assert find_unclosed_fences(body, offset=10) == [12]

    def test_closing_fence_must_match_character(self):
        assert find_unclosed_fences("```\ncode\n~~~\n") == [1]

    def test_closing_fence_must_be_long_enough(self):
        assert find_unclosed_fences("````\ncode\n```\n") == [1]
        assert find_unclosed_fences("```\ncode\n`````\n") == []

    def test_closing_fence_has_no_info_string(self):
        assert find_unclosed_fences("```\ncode\n```bash\n") == [1]

    def test_inline_backticks_are_not_fences(self):
        assert find_unclosed_fences("```inline `code` here```\n") == []

    def test_nested_other_marker_is_content(self):
        body = "~~~~markdown\n```yaml\nkey: value\n```\n~~~~\n"

        assert find_unclosed_fences(body) == []


class TestHeadingsAndLinks:
    def test_headings_inside_fences_are_ignored(self):
        body = "## Real\n```\n## Not a heading\n```\n### Also real ###\n"

        assert list(iter_headings(body)) == [(1, 2, "Real"), (5, 3, "Also real")]

    def test_extract_links(self):
        body = "[a](https://a.example) and [b](http://b.example/x?y=1) and [rel](/local)"

        assert extract_links(body) == ["https://a.example", "http://b.example/x?y=1"]

    def test_duplicate_links_are_unique_in_first_seen_order(self):
        body = "[1](https://b.io) [2](https://a.io) [3](https://b.io) [4](https://a.io) [5](https://b.io)"

        assert find_duplicate_links(body) == ["https://b.io", "https://a.io"]


class TestPostRules:
    def test_clean_post(self):
        assert apply_rules(LintContext(), POST, make_doc(GOOD_POST)) == []

    def test_missing_required_fields(self):
        doc = make_doc("---\nexcerpt: x\ncategory: a\nauthor: b\ntags: [t]\ntitle: '  '\n---\nText\n")

        issues = apply_rules(LintContext(), POST, doc)

        assert rules_hit(issues) == ["missing-field", "missing-field"]
        assert all(issue.severity is Severity.ERROR for issue in issues)

    def test_recommended_fields_are_warnings(self):
        doc = make_doc("---\ntitle: T\ndate: 2025-01-01\n---\nText\n")

        issues = apply_rules(LintContext(), POST, doc)

        assert rules_hit(issues) == ["recommended-field"] * 4
        assert {issue.severity for issue in issues} == {Severity.WARNING}

    def test_invalid_date_points_at_field_line(self):
        doc = make_doc(GOOD_POST.replace("date: 2025-01-01", "date: 2025-01-01\nupdatedAt: someday"))

        (issue,) = apply_rules(LintContext(), POST, doc)

        assert issue.rule == "invalid-date"
        assert issue.line == 5

    @pytest.mark.parametrize("tags", ["tags: kubernetes", "tags: [ok, '']", "tags: [1, 2]"])
    def test_tags_type(self, tags):
        doc = make_doc(GOOD_POST.replace("tags: [k8s]", tags))

        assert "tags-type" in rules_hit(apply_rules(LintContext(), POST, doc))

    def test_unclosed_fence_line_is_file_relative(self):
        doc = make_doc(GOOD_POST + "\n```bash\nls\n")

        (issue,) = apply_rules(LintContext(), POST, doc)

        assert issue.rule == "unclosed-fence"
        assert issue.line == 12

    def test_empty_body(self):
        doc = make_doc(GOOD_POST.replace("Some text.\n", ""))

        assert rules_hit(apply_rules(LintContext(), POST, doc)) == ["empty-body"]

    def test_duplicate_heading_anchor(self):
        doc = make_doc(GOOD_POST + "\n## Setup\n\n## Setup!\n\n### Setup\n")

        issues = apply_rules(LintContext(), POST, doc)

        assert rules_hit(issues) == ["duplicate-heading"]
        assert issues[0].severity is Severity.WARNING

    def test_unknown_taxonomy_only_when_profiles_exist(self):
        doc = make_doc(GOOD_POST)
        ctx = LintContext(known_categories={"terraform"}, known_authors={"jane-doe"})

        assert rules_hit(apply_rules(ctx, POST, doc)) == ["unknown-category"]
        assert apply_rules(LintContext(known_categories=None), POST, doc) == []


class TestOtherKinds:
    def test_guide_part_only_checks_markdown(self):
        doc = make_doc("---\norder: 1\n---\n\n```\nopen\n")

        assert rules_hit(apply_rules(LintContext(), GUIDE_PART, doc)) == ["unclosed-fence"]

    def test_valid_digest(self):
        doc = make_doc(
            """\
            ---
            title: DevOps Weekly Digest - Week 46, 2025
            date: '2025-11-16'
            summary: Curated.
            ---

            [**🔗 Read more**](https://example.com/a)
            """
        )

        assert apply_rules(LintContext(), NEWS, doc) == []

    def test_digest_front_matter_errors(self):
        doc = make_doc("---\ntitle: Weekly news\ndate: 2025-11-16T10:00:00\n---\nText\n")

        assert rules_hit(apply_rules(LintContext(), NEWS, doc)) == ["digest-title", "digest-date", "digest-summary"]

    def test_digest_links(self):
        doc = make_doc(
            "---\ntitle: DevOps Weekly Digest - Week 1, 2026\ndate: 2026-01-04\nsummary: s\n---\n"
            "[a](https:///nohost) [b](https://x.io) [c](https://x.io)\n"
        )

        issues = apply_rules(LintContext(), NEWS, doc)

        assert rules_hit(issues) == ["invalid-link", "duplicate-link"]
        assert [issue.severity for issue in issues] == [Severity.ERROR, Severity.WARNING]

    def test_unbalanced_ipv6_link_is_invalid(self):
        doc = make_doc(
            "---\ntitle: DevOps Weekly Digest - Week 1, 2026\ndate: 2026-01-04\nsummary: s\n---\n"
            "[x](http://[::1) [ok](https://[::1]:8080/metrics)\n"
        )

        (issue,) = apply_rules(LintContext(), NEWS, doc)

        assert issue.rule == "invalid-link"
        assert "http://[::1" in issue.message

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            apply_rules(LintContext(), "pages", make_doc(GOOD_POST))


class TestLintIssue:
    def test_paths_relative_to_root(self, tmp_path):
        issue = LintIssue(tmp_path / "content" / "posts" / "a.md", "empty-body", Severity.ERROR, "empty", 3)

        assert issue.location(tmp_path) == "content/posts/a.md:3"
        assert issue.to_dict(tmp_path)["severity"] == "error"
        assert issue.display_path(Path("/elsewhere")).endswith("content/posts/a.md")
