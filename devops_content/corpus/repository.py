from __future__ import annotations

import logging
import re
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, TypeVar

from ..paths import ContentPaths
from ..utils import safe_join, tag_to_slug
from .documents import (
    Author,
    Category,
    FrontMatterError,
    Guide,
    NewsDigest,
    Post,
    Tag,
    load_document,
)

logger = logging.getLogger("devops_content.corpus")

ICON_MAP: Dict[str, str] = {
    "kubernetes": "Layers",
    "terraform": "Server",
    "docker": "Database",
    "ci-cd": "Workflow",
    "cloud": "Cloud",
    "git": "GitBranch",
    "security": "Lock",
    "cli": "Terminal",
    "code": "Code",
}

COLOR_MAP: Dict[str, str] = {
    "kubernetes": "bg-blue-500/10 text-blue-500",
    "terraform": "bg-purple-500/10 text-purple-500",
    "docker": "bg-cyan-500/10 text-cyan-500",
    "ci-cd": "bg-green-500/10 text-green-500",
    "cloud": "bg-orange-500/10 text-orange-500",
    "git": "bg-red-500/10 text-red-500",
    "security": "bg-yellow-500/10 text-yellow-500",
    "cli": "bg-indigo-500/10 text-indigo-500",
    "code": "bg-pink-500/10 text-pink-500",
}

WEEK_FILE_RE = re.compile(r"week-(\d+)\.md$")
NEWS_SLUG_RE = re.compile(r"^(\d{4})-week-(\d+)$")
YEAR_DIR_RE = re.compile(r"^\d{4}$")

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)

T = TypeVar("T", Post, Guide)


def _newest_first(entries: Iterable[T]) -> List[T]:
    # stable: undated entries keep their file order at the end
    return sorted(entries, key=lambda entry: entry.sort_date or _EPOCH, reverse=True)


class Corpus:
    """Read-side view over a content directory.

    Every listing is loaded on first use and cached; call :meth:`refresh`
    after the files change.
    """

    def __init__(self, paths: ContentPaths) -> None:
        self.paths = paths
        self._posts: Optional[List[Post]] = None
        self._guides: Optional[List[Guide]] = None
        self._news: Optional[List[NewsDigest]] = None

    def refresh(self) -> None:
        self._posts = None
        self._guides = None
        self._news = None

    # posts / guides

    def posts(self) -> List[Post]:
        if self._posts is None:
            self._posts = _newest_first(self._load_posts())
        return self._posts

    def _load_posts(self) -> List[Post]:
        loaded: List[Post] = []
        if not self.paths.posts.is_dir():
            return loaded
        for path in sorted(self.paths.posts.glob("*.md")):
            try:
                loaded.append(Post.from_document(load_document(path)))
            except (FrontMatterError, UnicodeDecodeError) as exc:
                logger.warning("Skipping post %s: %s", path.name, exc)
        return loaded

    def post(self, slug: str) -> Optional[Post]:
        for entry in self.posts():
            if entry.slug == slug:
                return entry
        return None

    def guides(self) -> List[Guide]:
        if self._guides is None:
            self._guides = _newest_first(self._load_guides())
        return self._guides

    def _load_guides(self) -> List[Guide]:
        loaded: List[Guide] = []
        if not self.paths.guides.is_dir():
            return loaded
        for directory in sorted(p for p in self.paths.guides.iterdir() if p.is_dir()):
            if not (directory / "index.md").exists():
                logger.debug("Guide %s has no index.md; skipping.", directory.name)
                continue
            try:
                loaded.append(Guide.from_directory(directory))
            except (FrontMatterError, UnicodeDecodeError) as exc:
                logger.warning("Skipping guide %s: %s", directory.name, exc)
        return loaded

    def guide(self, slug: str) -> Optional[Guide]:
        for entry in self.guides():
            if entry.slug == slug:
                return entry
        return None

    # authors

    def _profile_files(self, root: Path) -> List[Path]:
        if not root.is_dir():
            return []
        return sorted(root.glob("*.md"))

    def _author_from_file(self, path: Path) -> Author:
        data = load_document(path).metadata
        slug = path.stem
        return Author(
            slug=slug,
            name=str(data.get("name") or slug),
            bio=data.get("bio"),
            avatar=data.get("avatar"),
            post_count=sum(1 for p in self.posts() if p.author and p.author.slug == slug),
            guide_count=sum(1 for g in self.guides() if g.author and g.author.slug == slug),
        )

    def authors(self) -> List[Author]:
        authors: List[Author] = []
        for path in self._profile_files(self.paths.authors):
            try:
                authors.append(self._author_from_file(path))
            except (FrontMatterError, UnicodeDecodeError) as exc:
                logger.warning("Skipping author %s: %s", path.name, exc)
        return sorted(authors, key=lambda author: author.name.lower())

    def author(self, slug: str) -> Optional[Author]:
        try:
            path = safe_join(self.paths.authors, f"{slug}.md")
        except ValueError:
            return None
        if not path.exists():
            return None
        try:
            return self._author_from_file(path)
        except (FrontMatterError, UnicodeDecodeError):
            return None

    def posts_by_author(self, slug: str) -> List[Post]:
        return [p for p in self.posts() if p.author and p.author.slug == slug]

    def guides_by_author(self, slug: str) -> List[Guide]:
        return [g for g in self.guides() if g.author and g.author.slug == slug]

    # categories

    def category_counts(self) -> Dict[str, int]:
        counts: Counter = Counter()
        for entry in [*self.posts(), *self.guides()]:
            if entry.category and entry.category.slug:
                counts[entry.category.slug] += 1
        return dict(counts)

    def _category_from_file(self, path: Path, counts: Dict[str, int]) -> Category:
        data = load_document(path).metadata
        slug = path.stem
        return Category(
            slug=slug,
            name=str(data.get("name") or slug),
            description=data.get("description"),
            long_description=data.get("longDescription"),
            icon=data.get("icon") or ICON_MAP.get(slug),
            color=data.get("color") or COLOR_MAP.get(slug),
            count=counts.get(slug, 0),
        )

    def categories(self) -> List[Category]:
        counts = self.category_counts()
        categories: List[Category] = []
        for path in self._profile_files(self.paths.categories):
            try:
                categories.append(self._category_from_file(path, counts))
            except (FrontMatterError, UnicodeDecodeError) as exc:
                logger.warning("Skipping category %s: %s", path.name, exc)
        return sorted(categories, key=lambda category: (-category.count, category.name.lower()))

    def category(self, slug: str) -> Optional[Category]:
        try:
            path = safe_join(self.paths.categories, f"{slug}.md")
        except ValueError:
            return None
        if not path.exists():
            return None
        try:
            return self._category_from_file(path, self.category_counts())
        except (FrontMatterError, UnicodeDecodeError):
            return None

    def posts_by_category(self, slug: str) -> List[Post]:
        return [p for p in self.posts() if p.category and p.category.slug == slug]

    # tags

    def tags(self) -> List[Tag]:
        merged: Dict[str, Tag] = {}
        for entry in [*self.posts(), *self.guides()]:
            for name in entry.tags:
                slug = tag_to_slug(name)
                if not slug:
                    continue
                existing = merged.get(slug)
                if existing:
                    existing.count += 1
                else:
                    # first occurrence decides the display casing
                    merged[slug] = Tag(name=name, slug=slug, count=1)
        return sorted(merged.values(), key=lambda tag: -tag.count)

    def tag(self, slug: str) -> Optional[str]:
        for entry in self.tags():
            if entry.slug == slug:
                return entry.name
        return None

    def posts_by_tag(self, slug: str) -> List[Post]:
        name = self.tag(slug)
        if not name:
            return []
        wanted = name.lower()
        return [p for p in self.posts() if any(t.lower() == wanted for t in p.tags)]

    def guides_by_tag(self, slug: str) -> List[Guide]:
        name = self.tag(slug)
        if not name:
            return []
        wanted = name.lower()
        return [g for g in self.guides() if any(t.lower() == wanted for t in g.tags)]

    # news

    def news(self) -> List[NewsDigest]:
        if self._news is None:
            self._news = self._load_news()
        return self._news

    def _load_news(self) -> List[NewsDigest]:
        digests: List[NewsDigest] = []
        if not self.paths.news.is_dir():
            return digests
        for year_dir in sorted(p for p in self.paths.news.iterdir() if p.is_dir()):
            try:
                year = int(year_dir.name)
            except ValueError:
                logger.debug("Ignoring non-year news directory %s", year_dir.name)
                continue
            for path in sorted(year_dir.glob("*.md")):
                match = WEEK_FILE_RE.search(path.name)
                week = int(match.group(1)) if match else 0
                try:
                    digests.append(NewsDigest.from_document(year, week, load_document(path)))
                except (FrontMatterError, UnicodeDecodeError) as exc:
                    logger.warning("Skipping digest %s/%s: %s", year_dir.name, path.name, exc)
        return sorted(digests, key=lambda digest: (digest.year, digest.week), reverse=True)

    def news_by_slug(self, slug: str) -> Optional[NewsDigest]:
        match = NEWS_SLUG_RE.match(slug)
        if not match:
            return None
        year, week = int(match.group(1)), int(match.group(2))
        path = self.paths.news / match.group(1) / f"week-{week}.md"
        if not path.exists():
            return None
        try:
            return NewsDigest.from_document(year, week, load_document(path))
        except (FrontMatterError, UnicodeDecodeError):
            return None

    def latest_news(self, limit: int = 6) -> List[NewsDigest]:
        return self.news()[:limit]

    def news_by_year(self, year: int) -> List[NewsDigest]:
        return [digest for digest in self.news() if digest.year == year]

    def news_years(self) -> List[int]:
        if not self.paths.news.is_dir():
            return []
        years = [int(p.name) for p in self.paths.news.iterdir() if p.is_dir() and YEAR_DIR_RE.match(p.name)]
        return sorted(years, reverse=True)
