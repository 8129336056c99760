from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field

CATEGORY_ORDER = (
    "Kubernetes",
    "Cloud Native",
    "CI/CD",
    "IaC",
    "Observability",
    "Security",
    "Databases",
    "Platforms",
    "Misc",
)
DEFAULT_CATEGORY = "Misc"


class Source(BaseModel):
    name: str
    type: Literal["rss", "web"]
    url: str
    category: str = DEFAULT_CATEGORY
    priority: Literal["high", "medium", "low"] = "medium"


class SourcesFile(BaseModel):
    sources: List[Source] = Field(default_factory=list)


def load_sources(path: Path) -> SourcesFile:
    if not path.exists():
        raise FileNotFoundError(f"Sources file not found: {path}")
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Sources file root must be a mapping: {path}")
    return SourcesFile(**data)


@dataclass
class NewsItem:
    title: str
    url: str
    excerpt: str
    source: str
    published_at: datetime
    category: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    summary: Optional[str] = None
    include: Optional[bool] = None
    priority: str = "low"


@dataclass
class Classification:
    include: bool
    category: str
    tags: List[str]
    summary: str


@dataclass
class DigestMetadata:
    title: str
    date: str
    week: int
    year: int
    summary: str


@dataclass
class Digest:
    metadata: DigestMetadata
    categories: Dict[str, List[NewsItem]]

    @property
    def item_count(self) -> int:
        return sum(len(items) for items in self.categories.values())
