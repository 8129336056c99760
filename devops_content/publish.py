"""RSS feed of post and digest metadata, and the raw Markdown export under ``public/``."""

from __future__ import annotations

import logging
import shutil
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import format_datetime
from pathlib import Path
from typing import List, Optional

import typer
from rich.logging import RichHandler

from .config import AppConfig, ContentConfig, load_config
from .corpus import Corpus, NewsDigest, Post
from .paths import ContentPaths, ensure_dir
from .utils import write_text_atomic

logger = logging.getLogger("devops_content.publish")
app = typer.Typer(help="Build feed.xml and copy raw Markdown into the public directory.")

ATOM_NS = "http://www.w3.org/2005/Atom"
NEWS_CATEGORY = "DevOps News"

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)

ET.register_namespace("atom", ATOM_NS)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, markup=False)],
    )


@dataclass
class FeedEntry:
    title: str
    path: str
    description: str
    published: Optional[datetime]
    categories: List[str] = field(default_factory=list)
    author: Optional[str] = None

    @classmethod
    def from_post(cls, post: Post) -> "FeedEntry":
        categories = [post.category.name] if post.category else []
        return cls(
            title=post.title,
            path=f"/posts/{post.slug}",
            description=post.excerpt or "",
            published=post.sort_date,
            categories=categories + list(post.tags),
            author=post.author.name if post.author else None,
        )

    @classmethod
    def from_news(cls, digest: NewsDigest) -> "FeedEntry":
        return cls(
            title=digest.title,
            path=f"/news/{digest.slug}",
            description=digest.excerpt or digest.summary or "",
            published=digest.date,
            categories=[NEWS_CATEGORY],
        )


def feed_entries(corpus: Corpus, limit: int = 50) -> List[FeedEntry]:
    entries = [FeedEntry.from_post(post) for post in corpus.posts()]
    entries.extend(FeedEntry.from_news(digest) for digest in corpus.news())
    entries.sort(key=lambda entry: entry.published or _EPOCH, reverse=True)
    return entries[:limit]


def _sub(parent: ET.Element, tag: str, text: Optional[str] = None, **attrib: str) -> ET.Element:
    node = ET.SubElement(parent, tag, attrib)
    if text is not None:
        node.text = text
    return node


def build_feed(
    corpus: Corpus,
    content: ContentConfig,
    limit: int = 50,
    now: Optional[datetime] = None,
) -> str:
    """Render RSS 2.0 for the newest posts and digests.

    Bodies are not rendered; each item carries the excerpt (or digest
    summary) as its description.
    """

    now = now or datetime.now(timezone.utc)
    site_url = content.site_url.rstrip("/")
    rss = ET.Element("rss", {"version": "2.0"})
    channel = _sub(rss, "channel")
    _sub(channel, "title", content.site_title)
    _sub(channel, "link", site_url)
    _sub(channel, "description", content.site_description)
    _sub(channel, "language", "en")
    _sub(channel, "lastBuildDate", format_datetime(now, usegmt=True))
    _sub(
        channel,
        f"{{{ATOM_NS}}}link",
        href=f"{site_url}/feed.xml",
        rel="self",
        type="application/rss+xml",
    )
    for entry in feed_entries(corpus, limit):
        url = f"{site_url}{entry.path}"
        item = _sub(channel, "item")
        _sub(item, "title", entry.title)
        _sub(item, "link", url)
        _sub(item, "description", entry.description)
        _sub(item, "pubDate", format_datetime(entry.published or now, usegmt=True))
        _sub(item, "guid", url, isPermaLink="true")
        for name in entry.categories:
            _sub(item, "category", name)
        if entry.author:
            _sub(item, "author", entry.author)
    ET.indent(rss, space="  ")
    body = ET.tostring(rss, encoding="unicode")
    return f'<?xml version="1.0" encoding="UTF-8"?>\n{body}\n'


def write_feed(config: AppConfig, output: Optional[Path] = None, now: Optional[datetime] = None) -> Path:
    corpus = Corpus(config.paths())
    xml = build_feed(corpus, config.content, limit=config.feed.limit, now=now)
    target = config.resolve(output or config.feed.output)
    write_text_atomic(target, xml)
    logger.info("RSS feed generated at %s", target)
    return target


@dataclass
class ExportResult:
    posts: List[Path] = field(default_factory=list)
    guides: List[Path] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.posts) + len(self.guides)


def _copy(source: Path, target: Path) -> Path:
    ensure_dir(target.parent)
    shutil.copyfile(source, target)
    return target


def export_markdown(paths: ContentPaths, output: Optional[Path] = None) -> ExportResult:
    """Copy raw posts and guides so ``/posts/<slug>.md`` and ``/guides/<slug>.md`` resolve."""

    public = Path(output) if output else paths.public
    result = ExportResult()
    if paths.posts.is_dir():
        for source in sorted(paths.posts.glob("*.md")):
            result.posts.append(_copy(source, public / "posts" / source.name))
    logger.info("Copied %d posts to %s", len(result.posts), public / "posts")
    if paths.guides.is_dir():
        guides_out = public / "guides"
        for directory in sorted(p for p in paths.guides.iterdir() if p.is_dir()):
            for source in sorted(directory.glob("*.md")):
                if source.name == "index.md":
                    target = guides_out / f"{directory.name}.md"
                else:
                    target = guides_out / directory.name / source.name
                result.guides.append(_copy(source, target))
    logger.info("Copied %d guide files to %s", len(result.guides), public / "guides")
    return result


@app.command()
def feed(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Where to write feed.xml."),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Write the RSS feed."""

    _setup_logging(verbose)
    write_feed(load_config(config_path), output=output)


@app.command()
def export(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Public directory to copy into."),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Copy raw Markdown posts and guides into the public directory."""

    _setup_logging(verbose)
    cfg = load_config(config_path)
    result = export_markdown(cfg.paths(), output=cfg.resolve(output) if output else None)
    logger.info("Exported %d file(s)", result.total)


def cli() -> None:
    app()


if __name__ == "__main__":
    cli()
