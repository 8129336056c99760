from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

import typer
from rich.logging import RichHandler
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from devops_content import AppConfig, load_config
from devops_content.corpus.documents import FrontMatterError, load_document
from devops_content.paths import ContentPaths
from devops_content.utils import write_text_atomic
from linter.rules import (
    GUIDE,
    GUIDE_PART,
    NEWS,
    POST,
    LintContext,
    LintIssue,
    Severity,
    apply_rules,
)

logger = logging.getLogger("devops_content.linter")
app = typer.Typer(help="Check the Markdown corpus for broken front matter and unclosed code fences.")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, markup=False)],
    )


@dataclass
class LintReport:
    issues: List[LintIssue] = field(default_factory=list)
    files_checked: int = 0
    fail_on_warnings: bool = False

    @property
    def errors(self) -> List[LintIssue]:
        return [issue for issue in self.issues if issue.severity is Severity.ERROR]

    @property
    def warnings(self) -> List[LintIssue]:
        return [issue for issue in self.issues if issue.severity is Severity.WARNING]

    @property
    def ok(self) -> bool:
        if self.fail_on_warnings:
            return not self.issues
        return not self.errors

    def to_dict(self, root: Optional[Path] = None) -> Dict[str, object]:
        return {
            "ok": self.ok,
            "files_checked": self.files_checked,
            "errors": len(self.errors),
            "warnings": len(self.warnings),
            "issues": [issue.to_dict(root) for issue in self.issues],
        }


def _profile_slugs(root: Path) -> Optional[Set[str]]:
    if not root.is_dir():
        return None
    return {path.stem for path in root.glob("*.md")}


def build_context(config: AppConfig, paths: ContentPaths) -> LintContext:
    return LintContext(
        required_fields=list(config.lint.required_fields),
        recommended_fields=list(config.lint.recommended_fields),
        known_categories=_profile_slugs(paths.categories),
        known_authors=_profile_slugs(paths.authors),
    )


def lint_document(context: LintContext, kind: str, path: Path) -> List[LintIssue]:
    try:
        doc = load_document(path)
    except FrontMatterError as exc:
        return [LintIssue(path, "front-matter", Severity.ERROR, str(exc), exc.line)]
    except UnicodeDecodeError as exc:
        return [LintIssue(path, "front-matter", Severity.ERROR, f"File is not valid UTF-8: {exc}")]
    return apply_rules(context, kind, doc)


class CorpusLinter:
    def __init__(self, config: AppConfig) -> None:
        self.config = config
        self.paths = config.paths()
        self.lint_cfg = config.lint

    def context(self) -> LintContext:
        # rebuilt per run so new profile files are picked up in watch mode
        return build_context(self.config, self.paths)

    def iter_targets(self) -> Iterable[Tuple[str, Path]]:
        if self.paths.posts.is_dir():
            for path in sorted(self.paths.posts.glob("*.md")):
                yield POST, path
        if self.paths.guides.is_dir():
            for directory in sorted(p for p in self.paths.guides.iterdir() if p.is_dir()):
                for path in sorted(directory.glob("*.md")):
                    yield (GUIDE if path.name == "index.md" else GUIDE_PART), path
        if self.paths.news.is_dir():
            for path in sorted(self.paths.news.glob("*/*.md")):
                yield NEWS, path

    def classify(self, path: Path) -> str:
        resolved = path.resolve()
        for root, kind in ((self.paths.posts, POST), (self.paths.news, NEWS)):
            if root.resolve() in resolved.parents:
                return kind
        if self.paths.guides.resolve() in resolved.parents:
            return GUIDE if resolved.name == "index.md" else GUIDE_PART
        return POST

    def run(self, targets: Optional[Sequence[Path]] = None) -> LintReport:
        context = self.context()
        if targets:
            pairs = [(self.classify(path), path) for path in targets]
        else:
            pairs = list(self.iter_targets())
        report = LintReport(fail_on_warnings=self.lint_cfg.fail_on_warnings)
        for kind, path in pairs:
            report.issues.extend(lint_document(context, kind, path))
            report.files_checked += 1
        report.issues.extend(self._duplicate_slugs([path for kind, path in pairs if kind == POST]))
        logger.info(
            "Checked %d file(s): %d error(s), %d warning(s)",
            report.files_checked,
            len(report.errors),
            len(report.warnings),
        )
        return report

    @staticmethod
    def _duplicate_slugs(post_paths: Sequence[Path]) -> List[LintIssue]:
        issues: List[LintIssue] = []
        seen: Dict[str, Path] = {}
        for path in post_paths:
            key = path.stem.lower()
            first = seen.get(key)
            if first is None:
                seen[key] = path
                continue
            issues.append(
                LintIssue(path, "duplicate-slug", Severity.ERROR, f"Slug '{key}' is also used by {first.name}")
            )
        return issues

    def write_report(self, report: LintReport) -> Optional[Path]:
        if self.lint_cfg.report_path is None:
            return None
        target = self.config.resolve(self.lint_cfg.report_path)
        write_text_atomic(target, json.dumps(report.to_dict(self.paths.base), indent=2) + "\n")
        logger.debug("Wrote lint report to %s", target)
        return target

    def log_report(self, report: LintReport) -> None:
        for issue in report.issues:
            log = logger.error if issue.severity is Severity.ERROR else logger.warning
            log("%s [%s] %s", issue.location(self.paths.base), issue.rule, issue.message)

    def watch(self, poll_interval: float = 1.0, use_watchdog: bool = True) -> None:
        root = self.paths.content
        logger.info("Watching %s for Markdown changes", root)
        state = _ChangeState()
        observer: Optional[Observer] = None
        if use_watchdog and root.exists():
            observer = Observer()
            observer.schedule(_MarkdownEventHandler(state), str(root), recursive=True)
            observer.start()
        elif use_watchdog:
            logger.warning("Watchdog requested but %s does not exist; falling back to polling.", root)
        snapshot = self._snapshot()
        self._lint_and_report()
        try:
            while True:
                time.sleep(poll_interval)
                if observer is None:
                    current = self._snapshot()
                    if current != snapshot:
                        snapshot = current
                        state.touch()
                if state.ready(self.lint_cfg.watch_debounce_s):
                    state.clear()
                    self._lint_and_report()
        except KeyboardInterrupt:
            logger.info("Watcher stopped by user.")
        finally:
            if observer:
                observer.stop()
                observer.join()

    def _snapshot(self) -> Dict[Path, float]:
        root = self.paths.content
        if not root.exists():
            return {}
        snapshot: Dict[Path, float] = {}
        for path in root.rglob("*.md"):
            try:
                snapshot[path] = path.stat().st_mtime
            except FileNotFoundError:
                # removed between listing and stat
                continue
        return snapshot

    def _lint_and_report(self) -> LintReport:
        report = self.run()
        self.log_report(report)
        self.write_report(report)
        return report


class _ChangeState:
    def __init__(self) -> None:
        self.changed_at: Optional[float] = None

    def touch(self) -> None:
        self.changed_at = time.monotonic()

    def ready(self, debounce_s: float) -> bool:
        return self.changed_at is not None and time.monotonic() - self.changed_at >= debounce_s

    def clear(self) -> None:
        self.changed_at = None


class _MarkdownEventHandler(FileSystemEventHandler):
    def __init__(self, state: _ChangeState) -> None:
        self.state = state

    def on_any_event(self, event) -> None:  # type: ignore[override]
        if event.is_directory:
            return
        paths = [getattr(event, "src_path", ""), getattr(event, "dest_path", "")]
        if any(str(path).endswith(".md") for path in paths):
            self.state.touch()


@app.command()
def run(
    paths: Optional[List[Path]] = typer.Argument(None, help="Lint only these files."),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to devops_content config file."),
    watch: bool = typer.Option(False, "--watch", "-w", help="Re-lint whenever a Markdown file changes."),
    poll_interval: float = typer.Option(1.0, "--interval", "-i", help="Polling interval seconds in watch mode."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Lint the corpus and exit non-zero when errors are found."""

    _setup_logging(verbose)
    cfg = load_config(config_path)
    linter = CorpusLinter(cfg)
    if watch:
        linter.watch(poll_interval=poll_interval)
        return
    report = linter.run(paths or None)
    linter.log_report(report)
    linter.write_report(report)
    if not report.ok:
        raise typer.Exit(code=1)


def cli() -> None:
    app()


if __name__ == "__main__":
    cli()
