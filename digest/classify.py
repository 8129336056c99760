from __future__ import annotations

import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import List, Optional, Sequence, Tuple

from digest.ai import ChatModel
from digest.models import CATEGORY_ORDER, DEFAULT_CATEGORY, Classification, NewsItem

logger = logging.getLogger("devops_content.digest.classify")

CLASSIFICATION_SYSTEM_PROMPT = """You are a DevOps editor. You classify news items into categories:
- Kubernetes: K8s core, distributions, tools
- Cloud Native: CNCF projects, containers, service mesh, networking
- CI/CD: Continuous integration/deployment, GitOps, pipelines
- IaC: Infrastructure as Code (Terraform, Pulumi, Ansible, etc.)
- Observability: Monitoring, logging, tracing, metrics
- Security: Container security, secrets management, policy enforcement
- Databases: SQL, NoSQL, data stores
- Platforms: Cloud providers, PaaS, hosting
- Misc: Everything else

Return strict JSON:
{
  "include": boolean,
  "category": "...",
  "tags": [],
  "summary": "1-2 sentences"
}

Include only technical, actionable updates.
Exclude: marketing fluff, company announcements without technical content, duplicate content."""

SUMMARIZATION_SYSTEM_PROMPT = """Write a compact, neutral technical summary.
1 sentence: what happened.
1 sentence: why DevOps engineers care.
If it's a release, add 1 short note about breaking changes or key features.
Maximum 3 lines total.
No marketing language. Be concise and technical."""

EVENT_RE = re.compile(r"\b(conference|event|meetup)\s+\d{4}\b")

# first match wins
KEYWORD_CATEGORIES: Tuple[Tuple[str, re.Pattern], ...] = (
    ("Kubernetes", re.compile(r"\b(kubernetes|k8s|kubectl|helm|kube)\b")),
    ("Cloud Native", re.compile(r"\b(docker|container|cncf|cloud native|service mesh|istio|envoy)\b")),
    ("CI/CD", re.compile(r"(\bci/cd\b|\bcicd\b|\bgithub actions\b|\bgitlab\b|\bjenkins\b|\bargo\b|\bflux\b)")),
    ("IaC", re.compile(r"\b(terraform|pulumi|ansible|iac|infrastructure as code)\b")),
    ("Observability", re.compile(r"\b(monitoring|observability|prometheus|grafana|datadog|logging|tracing)\b")),
    ("Security", re.compile(r"\b(security|vulnerability|cve|secrets|compliance)\b")),
    ("Databases", re.compile(r"\b(database|postgres|mysql|mongodb|redis|sql)\b")),
    ("Platforms", re.compile(r"\b(aws|azure|gcp|cloud|platform)\b")),
)

SUMMARY_FALLBACK_LENGTH = 200
SUMMARY_KEEP_THRESHOLD = 50


def is_event_announcement(title: str) -> bool:
    lowered = title.lower()
    return "is coming!" in lowered or bool(EVENT_RE.search(lowered))


def keyword_classify(item: NewsItem) -> Classification:
    excerpt_head = item.excerpt[:SUMMARY_FALLBACK_LENGTH]
    if is_event_announcement(item.title):
        return Classification(include=False, category=DEFAULT_CATEGORY, tags=["event"], summary=excerpt_head)
    combined = f"{item.title.lower()} {item.excerpt.lower()}"
    category = item.category or DEFAULT_CATEGORY
    for name, pattern in KEYWORD_CATEGORIES:
        if pattern.search(combined):
            category = name
            break
    return Classification(include=True, category=category, tags=[], summary=excerpt_head)


def _classification_prompt(item: NewsItem) -> str:
    return (
        f"Title: {item.title}\n"
        f"Excerpt: {item.excerpt}\n"
        f"Source: {item.source}\n"
        f"Date: {item.published_at.isoformat()}\n\n"
        "Classify this item and return only valid JSON."
    )


def classify_item(item: NewsItem, model: Optional[ChatModel], skip_ai: bool = False) -> Classification:
    if skip_ai or model is None:
        return keyword_classify(item)
    if is_event_announcement(item.title):
        return keyword_classify(item)
    try:
        result = model.chat_json(CLASSIFICATION_SYSTEM_PROMPT, _classification_prompt(item))
    except Exception as exc:  # noqa: BLE001
        logger.error("Error classifying item %r: %s", item.title, exc)
        return keyword_classify(item)
    category = result.get("category") or DEFAULT_CATEGORY
    if category not in CATEGORY_ORDER:
        category = DEFAULT_CATEGORY
    tags = result.get("tags") or []
    include = result.get("include")
    return Classification(
        include=True if include is None else bool(include),
        category=category,
        tags=[str(tag) for tag in tags] if isinstance(tags, list) else [],
        summary=result.get("summary") or item.excerpt[:SUMMARY_FALLBACK_LENGTH],
    )


def _batches(items: Sequence[NewsItem], size: int):
    for start in range(0, len(items), size):
        yield start, items[start : start + size]


def classify_items(
    items: List[NewsItem],
    model: Optional[ChatModel] = None,
    batch_size: int = 10,
    skip_ai: bool = False,
    batch_delay_s: float = 1.0,
) -> List[NewsItem]:
    mode = "keyword-based classification" if skip_ai or model is None else "AI"
    logger.info("Classifying %d items (using %s)", len(items), mode)
    classified: List[NewsItem] = []
    with ThreadPoolExecutor(max_workers=batch_size) as pool:
        for start, batch in _batches(items, batch_size):
            results = pool.map(lambda item: classify_item(item, model, skip_ai), batch)
            for item, result in zip(batch, results):
                classified.append(
                    replace(
                        item,
                        category=result.category,
                        tags=result.tags,
                        summary=result.summary,
                        include=result.include,
                    )
                )
            done = min(start + batch_size, len(items))
            logger.debug("Classified %d/%d", done, len(items))
            if mode == "AI" and done < len(items) and batch_delay_s:
                time.sleep(batch_delay_s)
    included = [item for item in classified if item.include is not False]
    logger.info("%d/%d items included after classification", len(included), len(items))
    return included


def summarize_item(item: NewsItem, model: ChatModel) -> str:
    prompt = (
        f"Title: {item.title}\n"
        f"Excerpt: {item.excerpt}\n"
        f"Source: {item.source}\n"
        f"Category: {item.category}\n"
        f"URL: {item.url}\n\n"
        "Write a technical summary."
    )
    try:
        return model.chat(SUMMARIZATION_SYSTEM_PROMPT, prompt).strip()
    except Exception as exc:  # noqa: BLE001
        logger.error("Error summarizing item %r: %s", item.title, exc)
        return item.excerpt[:SUMMARY_FALLBACK_LENGTH] + "..."


def summarize_items(
    items: List[NewsItem],
    model: ChatModel,
    batch_size: int = 10,
    batch_delay_s: float = 1.0,
) -> List[NewsItem]:
    logger.info("Summarizing %d items", len(items))

    def _summarize(item: NewsItem) -> NewsItem:
        if item.summary and len(item.summary) > SUMMARY_KEEP_THRESHOLD:
            return item
        return replace(item, summary=summarize_item(item, model))

    summarized: List[NewsItem] = []
    with ThreadPoolExecutor(max_workers=batch_size) as pool:
        for start, batch in _batches(items, batch_size):
            summarized.extend(pool.map(_summarize, batch))
            if start + batch_size < len(items) and batch_delay_s:
                time.sleep(batch_delay_s)
    return summarized
