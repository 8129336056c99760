from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


@dataclass(frozen=True)
class ContentPaths:
    base: Path
    content: Path
    posts: Path
    guides: Path
    authors: Path
    categories: Path
    news: Path
    public: Path


def resolve_content_paths(
    base_dir: Path | str,
    content_dir: Path | str = "content",
    public_dir: Path | str = "public",
) -> ContentPaths:
    base = Path(base_dir).resolve()
    content = Path(content_dir)
    content = content if content.is_absolute() else base / content
    public = Path(public_dir)
    public = public if public.is_absolute() else base / public
    return ContentPaths(
        base=base,
        content=content,
        posts=content / "posts",
        guides=content / "guides",
        authors=content / "authors",
        categories=content / "categories",
        news=content / "news",
        public=public,
    )
