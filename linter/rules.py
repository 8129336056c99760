from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple
from urllib.parse import urlsplit

from devops_content.corpus.documents import Document, TaxonomyRef, coerce_date
from devops_content.utils import heading_slug

FENCE_RE = re.compile(r"^ {0,3}(`{3,}|~{3,})(.*)$")
HEADING_RE = re.compile(r"^ {0,3}(#{1,6})[ \t]+(.+?)(?:[ \t]+#+)?[ \t]*$")
LINK_RE = re.compile(r"\[.*?\]\((https?://[^)]+)\)")
DIGEST_TITLE_RE = re.compile(r"^DevOps Weekly Digest - Week \d+, \d{4}$")
ISO_DAY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DATE_FIELDS = ("date", "publishedAt", "updatedAt")

POST = "posts"
GUIDE = "guides"
GUIDE_PART = "guide-part"
NEWS = "news"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass
class LintIssue:
    path: Path
    rule: str
    severity: Severity
    message: str
    line: Optional[int] = None

    def display_path(self, root: Optional[Path] = None) -> str:
        if root is not None:
            try:
                return self.path.relative_to(root).as_posix()
            except ValueError:
                pass
        return self.path.as_posix()

    def location(self, root: Optional[Path] = None) -> str:
        shown = self.display_path(root)
        return f"{shown}:{self.line}" if self.line else shown

    def to_dict(self, root: Optional[Path] = None) -> Dict[str, Any]:
        return {
            "path": self.display_path(root),
            "line": self.line,
            "rule": self.rule,
            "severity": self.severity.value,
            "message": self.message,
        }


@dataclass
class LintContext:
    required_fields: List[str] = field(default_factory=lambda: ["title", "date"])
    recommended_fields: List[str] = field(default_factory=lambda: ["excerpt", "category", "author", "tags"])
    # None means "no profile directory, skip the check"
    known_categories: Optional[Set[str]] = None
    known_authors: Optional[Set[str]] = None


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return not value
    return False


def scan_fences(body: str, offset: int = 1) -> Tuple[Set[int], Optional[int]]:
    """Return (lines inside fences, opening line of an unclosed fence)."""

    fenced: Set[int] = set()
    opened: Optional[Tuple[str, int, int]] = None
    for lineno, line in enumerate(body.splitlines(), start=offset):
        match = FENCE_RE.match(line)
        if opened is None:
            if not match:
                continue
            marker, info = match.group(1), match.group(2)
            if marker[0] == "`" and "`" in info:
                # inline code span, not a fence
                continue
            opened = (marker[0], len(marker), lineno)
            fenced.add(lineno)
            continue
        fenced.add(lineno)
        if match and match.group(1)[0] == opened[0] and len(match.group(1)) >= opened[1] and not match.group(2).strip():
            opened = None
    return fenced, (opened[2] if opened else None)


def find_unclosed_fences(body: str, offset: int = 1) -> List[int]:
    _, unclosed = scan_fences(body, offset)
    return [unclosed] if unclosed is not None else []


def iter_headings(body: str, offset: int = 1) -> Iterable[Tuple[int, int, str]]:
    fenced, _ = scan_fences(body, offset)
    for lineno, line in enumerate(body.splitlines(), start=offset):
        if lineno in fenced:
            continue
        match = HEADING_RE.match(line)
        if match:
            yield lineno, len(match.group(1)), match.group(2)


def extract_links(body: str) -> List[str]:
    return LINK_RE.findall(body)


def find_duplicate_links(body: str) -> List[str]:
    seen: Set[str] = set()
    duplicates: List[str] = []
    for url in extract_links(body):
        if url in seen and url not in duplicates:
            duplicates.append(url)
        seen.add(url)
    return duplicates


# rules: (context, document) -> issues

def check_required_fields(ctx: LintContext, doc: Document) -> Iterable[LintIssue]:
    for key in ctx.required_fields:
        if _is_blank(doc.metadata.get(key)):
            yield LintIssue(doc.path, "missing-field", Severity.ERROR, f"Front matter field '{key}' is missing or empty", 1)


def check_recommended_fields(ctx: LintContext, doc: Document) -> Iterable[LintIssue]:
    for key in ctx.recommended_fields:
        if _is_blank(doc.metadata.get(key)):
            yield LintIssue(doc.path, "recommended-field", Severity.WARNING, f"Front matter field '{key}' is not set", 1)


def check_dates(ctx: LintContext, doc: Document) -> Iterable[LintIssue]:
    for key in DATE_FIELDS:
        value = doc.metadata.get(key)
        if _is_blank(value):
            continue
        if coerce_date(value) is None:
            yield LintIssue(doc.path, "invalid-date", Severity.ERROR, f"'{key}' is not a valid date: {value!r}", doc.field_line(key))


def check_tags(ctx: LintContext, doc: Document) -> Iterable[LintIssue]:
    if "tags" not in doc.metadata or doc.metadata["tags"] is None:
        return
    tags = doc.metadata["tags"]
    if not isinstance(tags, list) or any(not isinstance(tag, str) or not tag.strip() for tag in tags):
        yield LintIssue(doc.path, "tags-type", Severity.ERROR, "'tags' must be a list of non-empty strings", doc.field_line("tags"))


def check_fences(ctx: LintContext, doc: Document) -> Iterable[LintIssue]:
    for lineno in find_unclosed_fences(doc.body, doc.body_offset):
        yield LintIssue(doc.path, "unclosed-fence", Severity.ERROR, "Code fence opened here is never closed", lineno)


def check_body(ctx: LintContext, doc: Document) -> Iterable[LintIssue]:
    if not doc.body.strip():
        yield LintIssue(doc.path, "empty-body", Severity.ERROR, "Document has no content after the front matter")


def check_headings(ctx: LintContext, doc: Document) -> Iterable[LintIssue]:
    seen: Dict[str, int] = {}
    for lineno, depth, text in iter_headings(doc.body, doc.body_offset):
        anchor = heading_slug(text, depth)
        if anchor in seen:
            yield LintIssue(
                doc.path,
                "duplicate-heading",
                Severity.WARNING,
                f"Heading anchor '{anchor}' already used on line {seen[anchor]}",
                lineno,
            )
        else:
            seen[anchor] = lineno


def check_taxonomy(ctx: LintContext, doc: Document) -> Iterable[LintIssue]:
    category = TaxonomyRef.parse(doc.metadata.get("category"))
    if category and ctx.known_categories is not None and category.slug not in ctx.known_categories:
        yield LintIssue(
            doc.path,
            "unknown-category",
            Severity.WARNING,
            f"Category '{category.slug}' has no profile in content/categories",
            doc.field_line("category"),
        )
    author = TaxonomyRef.parse(doc.metadata.get("author"))
    if author and ctx.known_authors is not None and author.slug not in ctx.known_authors:
        yield LintIssue(
            doc.path,
            "unknown-author",
            Severity.WARNING,
            f"Author '{author.slug}' has no profile in content/authors",
            doc.field_line("author"),
        )


def check_digest_front_matter(ctx: LintContext, doc: Document) -> Iterable[LintIssue]:
    meta = doc.metadata
    title = meta.get("title")
    if _is_blank(title):
        yield LintIssue(doc.path, "digest-title", Severity.ERROR, "Digest title is missing", 1)
    elif not DIGEST_TITLE_RE.match(str(title)):
        yield LintIssue(doc.path, "digest-title", Severity.ERROR, f"Invalid digest title format: {title!r}", doc.field_line("title"))

    value = meta.get("date")
    if _is_blank(value):
        yield LintIssue(doc.path, "digest-date", Severity.ERROR, "Digest date is missing", 1)
    elif isinstance(value, datetime) or not (isinstance(value, date) or ISO_DAY_RE.match(str(value))):
        yield LintIssue(doc.path, "digest-date", Severity.ERROR, f"Digest date must be YYYY-MM-DD: {value!r}", doc.field_line("date"))

    if _is_blank(meta.get("summary")):
        yield LintIssue(doc.path, "digest-summary", Severity.ERROR, "Digest summary is missing", 1)


def _has_host(url: str) -> bool:
    try:
        return bool(urlsplit(url).netloc)
    except ValueError:
        # unbalanced IPv6 brackets
        return False


def check_links(ctx: LintContext, doc: Document) -> Iterable[LintIssue]:
    for url in extract_links(doc.body):
        if not _has_host(url):
            yield LintIssue(doc.path, "invalid-link", Severity.ERROR, f"Link has no valid host: {url}")
    for url in find_duplicate_links(doc.body):
        yield LintIssue(doc.path, "duplicate-link", Severity.WARNING, f"Link appears more than once: {url}")


Rule = Callable[[LintContext, Document], Iterable[LintIssue]]

RULES: Dict[str, List[Rule]] = {
    POST: [
        check_required_fields,
        check_recommended_fields,
        check_dates,
        check_tags,
        check_fences,
        check_body,
        check_headings,
        check_taxonomy,
    ],
    GUIDE: [check_required_fields, check_dates, check_tags, check_fences, check_headings, check_taxonomy],
    GUIDE_PART: [check_fences, check_headings],
    NEWS: [check_digest_front_matter, check_dates, check_fences, check_body, check_links],
}


def apply_rules(ctx: LintContext, kind: str, doc: Document) -> List[LintIssue]:
    try:
        rules = RULES[kind]
    except KeyError:
        raise ValueError(f"Unknown document kind: {kind}") from None
    issues: List[LintIssue] = []
    for rule in rules:
        issues.extend(rule(ctx, doc))
    return issues
