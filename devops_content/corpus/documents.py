from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from dateutil import parser as date_parser

from ..utils import default_image_path, tag_to_slug

FRONT_MATTER_DELIMITER = "---"
FRONT_MATTER_CLOSERS = ("---", "...")


class FrontMatterError(ValueError):
    """Raised when a document's YAML front matter cannot be read."""

    def __init__(self, message: str, line: Optional[int] = None) -> None:
        super().__init__(message)
        self.line = line


@dataclass
class Document:
    path: Path
    metadata: Dict[str, Any]
    body: str
    body_offset: int = 1
    front_matter: str = ""

    def field_line(self, key: str) -> Optional[int]:
        """1-based file line of a top-level front matter key, if present."""

        prefix = f"{key}:"
        for idx, line in enumerate(self.front_matter.splitlines()):
            if line.startswith(prefix):
                return idx + 2
        return None


def _split(text: str) -> Tuple[str, str, int]:
    if text.startswith("\ufeff"):
        text = text[1:]
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].rstrip("\r\n").rstrip() != FRONT_MATTER_DELIMITER:
        return "", text, 1
    for idx in range(1, len(lines)):
        if lines[idx].rstrip("\r\n").rstrip() in FRONT_MATTER_CLOSERS:
            return "".join(lines[1:idx]), "".join(lines[idx + 1 :]), idx + 2
    raise FrontMatterError("Front matter block is never closed", line=1)


def split_front_matter(text: str) -> Tuple[Dict[str, Any], str, int]:
    """Split ``text`` into (metadata, body, 1-based line of the first body line)."""

    raw, body, offset = _split(text)
    return _parse_yaml_block(raw), body, offset


def _value_error_line(raw: str) -> Optional[int]:
    """File line of the first top-level value PyYAML cannot construct."""

    try:
        root = yaml.compose(raw, Loader=yaml.SafeLoader)
    except yaml.YAMLError:
        return None
    if not isinstance(root, yaml.MappingNode):
        return None
    for _key, value in root.value:
        loader = yaml.SafeLoader("")
        try:
            loader.construct_object(value, deep=True)
        except ValueError:
            return value.start_mark.line + 2
        finally:
            loader.dispose()
    return None


def _parse_yaml_block(raw: str) -> Dict[str, Any]:
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        # +2: the opening delimiter line, then 0-based mark
        line = mark.line + 2 if mark is not None else None
        raise FrontMatterError(f"Invalid YAML front matter: {exc}", line=line) from exc
    except ValueError as exc:
        # out-of-range timestamps such as 2024-13-45 fail in the constructor
        raise FrontMatterError(f"Invalid value in front matter: {exc}", line=_value_error_line(raw)) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise FrontMatterError("Front matter must be a mapping", line=2)
    return data


def load_document(path: Path | str) -> Document:
    source = Path(path)
    raw, body, offset = _split(source.read_text(encoding="utf-8"))
    return Document(
        path=source,
        metadata=_parse_yaml_block(raw),
        body=body,
        body_offset=offset,
        front_matter=raw,
    )


def coerce_date(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if not isinstance(value, str):
        return None
    try:
        parsed = date_parser.parse(value)
    except (ValueError, OverflowError):
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _tags(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(tag).strip() for tag in value if isinstance(tag, (str, int, float)) and str(tag).strip()]


@dataclass(frozen=True)
class TaxonomyRef:
    name: str
    slug: str

    @classmethod
    def parse(cls, value: Any) -> Optional["TaxonomyRef"]:
        if isinstance(value, dict):
            name = _text(value.get("name"))
            slug = _text(value.get("slug"))
            if not name and not slug:
                return None
            return cls(name=name or slug, slug=slug or tag_to_slug(name))
        name = _text(value)
        if not name:
            return None
        return cls(name=name, slug=tag_to_slug(name))

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "slug": self.slug}


CategoryRef = TaxonomyRef
AuthorRef = TaxonomyRef


@dataclass
class Post:
    slug: str
    title: str
    path: Path
    body: str = ""
    excerpt: Optional[str] = None
    date: Optional[datetime] = None
    published_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    category: Optional[TaxonomyRef] = None
    author: Optional[TaxonomyRef] = None
    tags: List[str] = field(default_factory=list)
    image: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    kind = "posts"

    @property
    def sort_date(self) -> Optional[datetime]:
        return self.published_at or self.date

    @classmethod
    def from_document(cls, doc: Document, slug: Optional[str] = None) -> "Post":
        meta = doc.metadata
        slug = slug or doc.path.stem
        return cls(
            slug=slug,
            title=_text(meta.get("title")) or slug,
            path=doc.path,
            body=doc.body,
            excerpt=_text(meta.get("excerpt")),
            date=coerce_date(meta.get("date")),
            published_at=coerce_date(meta.get("publishedAt")),
            updated_at=coerce_date(meta.get("updatedAt")),
            category=TaxonomyRef.parse(meta.get("category")),
            author=TaxonomyRef.parse(meta.get("author")),
            tags=_tags(meta.get("tags")),
            image=_text(meta.get("image")) or default_image_path(cls.kind, slug),
            metadata=meta,
        )

    def summary(self) -> Dict[str, Any]:
        return {
            "slug": self.slug,
            "title": self.title,
            "excerpt": self.excerpt,
            "date": _iso(self.date),
            "publishedAt": _iso(self.published_at),
            "updatedAt": _iso(self.updated_at),
            "category": self.category.to_dict() if self.category else None,
            "author": self.author.to_dict() if self.author else None,
            "tags": list(self.tags),
            "image": self.image,
        }


@dataclass
class GuidePart:
    slug: str
    title: str
    path: Path
    order: Optional[int] = None
    body: str = ""

    @classmethod
    def from_document(cls, doc: Document) -> "GuidePart":
        order = doc.metadata.get("order")
        return cls(
            slug=doc.path.stem,
            title=_text(doc.metadata.get("title")) or doc.path.stem,
            path=doc.path,
            order=order if isinstance(order, int) else None,
            body=doc.body,
        )


@dataclass
class Guide(Post):
    parts: List[GuidePart] = field(default_factory=list)

    kind = "guides"

    @classmethod
    def from_directory(cls, directory: Path) -> "Guide":
        guide = cls.from_document(load_document(directory / "index.md"), slug=directory.name)
        parts = [
            GuidePart.from_document(load_document(path))
            for path in sorted(directory.glob("*.md"))
            if path.name != "index.md"
        ]
        # unordered parts go last, then by slug
        parts.sort(key=lambda part: (part.order is None, part.order or 0, part.slug))
        guide.parts = parts
        return guide

    def summary(self) -> Dict[str, Any]:
        payload = super().summary()
        payload["parts"] = [{"slug": part.slug, "title": part.title, "order": part.order} for part in self.parts]
        return payload


@dataclass
class NewsDigest:
    slug: str
    year: int
    week: int
    title: str
    path: Path
    body: str = ""
    date: Optional[datetime] = None
    summary: Optional[str] = None
    excerpt: Optional[str] = None
    image: Optional[str] = None
    item_count: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def make_slug(year: int, week: int) -> str:
        return f"{year}-week-{week}"

    @classmethod
    def from_document(cls, year: int, week: int, doc: Document) -> "NewsDigest":
        meta = doc.metadata
        slug = cls.make_slug(year, week)
        summary = _text(meta.get("summary"))
        item_count = meta.get("itemCount")
        return cls(
            slug=slug,
            year=year,
            week=week,
            title=_text(meta.get("title")) or slug,
            path=doc.path,
            body=doc.body,
            date=coerce_date(meta.get("date")),
            summary=summary,
            excerpt=summary or _text(meta.get("excerpt")),
            image=_text(meta.get("image")) or default_image_path("news", slug),
            item_count=item_count if isinstance(item_count, int) else None,
            metadata=meta,
        )

    def to_dict(self, include_body: bool = False) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "slug": self.slug,
            "year": self.year,
            "week": self.week,
            "title": self.title,
            "date": _iso(self.date),
            "summary": self.summary,
            "excerpt": self.excerpt,
            "image": self.image,
            "itemCount": self.item_count,
        }
        if include_body:
            payload["content"] = self.body
        return payload


@dataclass
class Author:
    slug: str
    name: str
    bio: Optional[str] = None
    avatar: Optional[str] = None
    post_count: int = 0
    guide_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "slug": self.slug,
            "name": self.name,
            "bio": self.bio,
            "avatar": self.avatar,
            "postCount": self.post_count,
            "guideCount": self.guide_count,
        }


@dataclass
class Category:
    slug: str
    name: str
    description: Optional[str] = None
    long_description: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "slug": self.slug,
            "name": self.name,
            "description": self.description,
            "longDescription": self.long_description,
            "icon": self.icon,
            "color": self.color,
            "count": self.count,
        }


@dataclass
class Tag:
    name: str
    slug: str
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "slug": self.slug, "count": self.count}


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
