from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from .paths import ContentPaths, resolve_content_paths


class ContentConfig(BaseModel):
    content_dir: Path = Field(default=Path("content"), description="Root of the Markdown corpus.")
    public_dir: Path = Field(default=Path("public"), description="Where feed.xml and raw exports are written.")
    site_url: str = "https://devops-daily.com"
    site_title: str = "DevOps Daily"
    site_description: str = "The latest DevOps news, tutorials, and guides"

    @field_validator("site_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class LintConfig(BaseModel):
    required_fields: List[str] = Field(default_factory=lambda: ["title", "date"])
    recommended_fields: List[str] = Field(default_factory=lambda: ["excerpt", "category", "author", "tags"])
    fail_on_warnings: bool = False
    report_path: Optional[Path] = Path("lint-report.json")
    watch_debounce_s: float = Field(default=1.0, ge=0.0, description="Quiet period before a watched re-lint.")


class CrawlConfig(BaseModel):
    sources_file: Path = Path("configs/sources.yml")
    rss_concurrency: int = Field(default=5, ge=1)
    web_concurrency: int = Field(default=3, ge=1)
    timeout_s: float = Field(default=10.0, gt=0.0)
    max_retries: int = Field(default=3, ge=1)
    user_agent: str = "DevOps Daily News Crawler/1.0"


class DigestConfig(BaseModel):
    lookback_days: int = Field(default=7, ge=1)
    max_per_source: int = Field(default=4, ge=1)
    max_per_category: int = Field(default=12, ge=1)
    batch_size: int = Field(default=10, ge=1)
    batch_delay_s: float = Field(default=1.0, ge=0.0, description="Pause between AI batches (rate limits).")
    skip_ai: bool = False


class AIConfig(BaseModel):
    model: str = "gpt-5-nano-2025-08-07"
    api_key_env: str = "OPENAI_API_KEY"
    max_retries: int = Field(default=3, ge=1)
    max_completion_tokens: int = Field(default=500, ge=1)


class FeedConfig(BaseModel):
    limit: int = Field(default=50, ge=1)
    output: Path = Path("public/feed.xml")


class WebConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = Field(default=8080, ge=1, le=65535)


class AppConfig(BaseModel):
    base_dir: Path = Path(".")
    content: ContentConfig = ContentConfig()
    lint: LintConfig = LintConfig()
    crawl: CrawlConfig = CrawlConfig()
    digest: DigestConfig = DigestConfig()
    ai: AIConfig = AIConfig()
    feed: FeedConfig = FeedConfig()
    web: WebConfig = WebConfig()

    def paths(self) -> ContentPaths:
        return resolve_content_paths(self.base_dir, self.content.content_dir, self.content.public_dir)

    def resolve(self, path: Path) -> Path:
        """Resolve a config-relative path against ``base_dir``."""

        return path if path.is_absolute() else (Path(self.base_dir) / path)


def _load_from_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    text = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()
    if suffix == ".json":
        return json.loads(text)
    if suffix in {".yaml", ".yml"}:
        data = yaml.safe_load(text) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config root must be a mapping: {path}")
        return data
    raise ValueError(f"Unsupported config extension: {path}")


def load_config(explicit_path: Optional[Path] = None) -> AppConfig:
    """Load configuration from file or environment."""

    candidate: Optional[Path] = explicit_path
    if candidate is None:
        env_path = os.environ.get("DEVOPS_CONTENT_CONFIG")
        if env_path:
            candidate = Path(env_path)
    if candidate is None:
        default_candidate = Path("configs/devops_content.yml")
        if not default_candidate.exists():
            repo_default = Path(__file__).resolve().parent.parent / "configs" / "devops_content.yml"
            candidate = repo_default if repo_default.exists() else default_candidate
        else:
            candidate = default_candidate
    data = _load_from_file(candidate) if candidate.exists() else {}
    raw_base_dir = data.get("base_dir") or os.environ.get("DEVOPS_CONTENT_BASE", ".")
    base_path = Path(raw_base_dir)
    if not base_path.is_absolute():
        base_root = candidate.parent if candidate.exists() else Path.cwd()
        base_path = (base_root / base_path).resolve()
    else:
        base_path = base_path.resolve()
    data["base_dir"] = str(base_path)
    site_url = os.environ.get("DEVOPS_CONTENT_SITE_URL")
    if site_url:
        data.setdefault("content", {})["site_url"] = site_url
    return AppConfig(**data)
