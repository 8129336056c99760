from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import typer
from rich.logging import RichHandler

from devops_content import AppConfig, load_config
from devops_content.utils import write_text_atomic
from digest import gitops
from digest.ai import ChatModel
from digest.classify import classify_items, summarize_items
from digest.crawler import FeedCrawler
from digest.curate import apply_limits, deduplicate, filter_recent, normalize_items
from digest.models import Digest, NewsItem, load_sources
from digest.render import assemble_digest, current_week, current_year, digest_stats, render_digest
from linter.pipeline import build_context, lint_document
from linter.rules import NEWS, LintIssue, Severity, find_duplicate_links

logger = logging.getLogger("devops_content.digest")
app = typer.Typer(help="Crawl DevOps news sources and write the weekly digest post.")


class DigestValidationError(RuntimeError):
    """Raised when the written digest fails the news lint rules."""

    def __init__(self, path: Path, issues: List[LintIssue]) -> None:
        self.path = path
        self.issues = issues
        details = "; ".join(f"[{issue.rule}] {issue.message}" for issue in issues)
        super().__init__(f"Digest {path} failed validation: {details}")


@dataclass
class DigestResult:
    path: Path
    digest: Digest
    stats: Dict[str, object]
    duplicate_links: List[str] = field(default_factory=list)
    branch: Optional[str] = None


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, markup=False)],
    )


class DigestGenerator:
    def __init__(
        self,
        config: AppConfig,
        crawler: Optional[FeedCrawler] = None,
        model: Optional[ChatModel] = None,
    ) -> None:
        self.config = config
        self.paths = config.paths()
        self.digest_cfg = config.digest
        self._crawler = crawler
        self._model = model

    @property
    def model(self) -> ChatModel:
        if self._model is None:
            self._model = ChatModel(self.config.ai)
        return self._model

    def output_path(self, year: int, week: int) -> Path:
        return self.paths.news / str(year) / f"week-{week}.md"

    def collect(self, sources_path: Optional[Path] = None) -> List[NewsItem]:
        path = self.config.resolve(sources_path or self.config.crawl.sources_file)
        sources = load_sources(path).sources
        logger.info("Loaded %d sources from %s", len(sources), path)
        crawler = self._crawler or FeedCrawler(self.config.crawl)
        try:
            rss_items = crawler.crawl_rss_feeds(sources)
            logger.info("Found %d items from RSS feeds", len(rss_items))
            web_items = crawler.crawl_web_sources(sources)
            logger.info("Found %d items from web sources", len(web_items))
        finally:
            if self._crawler is None:
                crawler.close()
        return rss_items + web_items

    def curate(self, items: List[NewsItem], skip_ai: bool, now: Optional[datetime] = None) -> List[NewsItem]:
        cfg = self.digest_cfg
        items = normalize_items(items)
        items = deduplicate(items)
        logger.info("%d unique items", len(items))
        items = filter_recent(items, days=cfg.lookback_days, now=now)
        logger.info("%d items from the last %d days", len(items), cfg.lookback_days)
        if not items:
            return []
        model = None if skip_ai else self.model
        items = classify_items(
            items,
            model=model,
            batch_size=cfg.batch_size,
            skip_ai=skip_ai,
            batch_delay_s=cfg.batch_delay_s,
        )
        items = apply_limits(items, cfg.max_per_source, cfg.max_per_category)
        logger.info("%d items after limits", len(items))
        if skip_ai:
            logger.info("Using excerpts (skipping AI summarization)")
            return items
        return summarize_items(items, self.model, batch_size=cfg.batch_size, batch_delay_s=cfg.batch_delay_s)

    def write(self, digest: Digest) -> Tuple[Path, List[str]]:
        markdown = render_digest(digest)
        duplicates = find_duplicate_links(markdown)
        if duplicates:
            logger.warning("Found %d duplicate URLs: %s", len(duplicates), ", ".join(duplicates))
        path = self.output_path(digest.metadata.year, digest.metadata.week)
        write_text_atomic(path, markdown)
        logger.info("Written to %s", path)
        return path, duplicates

    def validate(self, path: Path) -> None:
        issues = lint_document(build_context(self.config, self.paths), NEWS, path)
        errors = [issue for issue in issues if issue.severity is Severity.ERROR]
        if errors:
            raise DigestValidationError(path, errors)
        logger.info("Markdown validation passed")

    def publish(self, path: Path, year: int, week: int, branch: bool, commit: bool, push: bool) -> Optional[str]:
        if not (branch or commit or push):
            return None
        repo = self.paths.base
        name = gitops.branch_name(year, week)
        if branch:
            gitops.create_branch(repo, name)
        if commit or push:
            gitops.commit(repo, path, gitops.commit_message(week, year))
        if push:
            gitops.push(repo, name)
        return name

    def run(
        self,
        sources_path: Optional[Path] = None,
        skip_ai: Optional[bool] = None,
        week: Optional[int] = None,
        year: Optional[int] = None,
        branch: bool = False,
        commit: bool = False,
        push: bool = False,
        now: Optional[datetime] = None,
    ) -> Optional[DigestResult]:
        now = now or datetime.now(timezone.utc)
        skip_ai = self.digest_cfg.skip_ai if skip_ai is None else skip_ai
        if skip_ai:
            logger.info("Running without AI (keyword-based classification)")
        items = self.curate(self.collect(sources_path), skip_ai=skip_ai, now=now)
        if not items:
            logger.warning("No items found from the last %d days; nothing written.", self.digest_cfg.lookback_days)
            return None

        today = now.date()
        week = week or current_week(today)
        year = year or current_year(today)
        digest = assemble_digest(items, week=week, year=year, today=today)
        stats = digest_stats(digest)
        logger.info("Digest: %d items from %d sources", stats["total_items"], len(stats["sources"]))
        for category, count in stats["category_counts"].items():
            if count:
                logger.info("  %s: %d", category, count)

        path, duplicates = self.write(digest)
        self.validate(path)
        branch_used = self.publish(path, year, week, branch, commit, push)
        logger.info("Generated digest for Week %d, %d", week, year)
        return DigestResult(path=path, digest=digest, stats=stats, duplicate_links=duplicates, branch=branch_used)


@app.command()
def run(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c"),
    sources: Optional[Path] = typer.Option(None, "--sources", "-s", help="Override the sources YAML file."),
    skip_ai: Optional[bool] = typer.Option(None, "--skip-ai/--use-ai", help="Classify with keywords and keep excerpts."),
    week: Optional[int] = typer.Option(None, "--week", min=1, max=53),
    year: Optional[int] = typer.Option(None, "--year", min=2000),
    branch: bool = typer.Option(False, "--branch/--no-branch", help="Create or check out news-<year>-w<week>."),
    commit: bool = typer.Option(False, "--commit", help="Commit the generated digest."),
    push: bool = typer.Option(False, "--push", help="Push the branch to origin (implies --commit)."),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Generate this week's digest under content/news."""

    _setup_logging(verbose)
    cfg = load_config(config_path)
    generator = DigestGenerator(cfg)
    try:
        generator.run(
            sources_path=sources,
            skip_ai=skip_ai,
            week=week,
            year=year,
            branch=branch,
            commit=commit,
            push=push,
        )
    except DigestValidationError as exc:
        logger.error("%s", exc)
        raise typer.Exit(code=1) from exc
    except FileNotFoundError as exc:
        logger.error("%s", exc)
        raise typer.Exit(code=1) from exc


def cli() -> None:
    app()


if __name__ == "__main__":
    cli()
