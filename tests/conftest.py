"""Shared fixtures: a small on-disk corpus and a config pointing at it."""

from __future__ import annotations

import os
import textwrap
from pathlib import Path
from typing import Callable

# keep any real key out of the tests
os.environ["OPENAI_API_KEY"] = "test-openai-key"

import pytest

from devops_content.config import AppConfig, LintConfig

POSTS = {
    "kubernetes-basics.md": """\
        ---
        title: Kubernetes Basics
        excerpt: Pods, deployments and services.
        date: 2025-01-10
        publishedAt: 2025-01-12T09:00:00Z
        category:
          name: Kubernetes
          slug: kubernetes
        author:
          name: Jane Doe
          slug: jane-doe
        tags: [Kubernetes, Containers]
        ---

        ## Pods

        A pod runs one or more containers.

        ```yaml
        apiVersion: v1
        kind: Pod
        ```
        """,
    "terraform-state.md": """\
        ---
        title: Managing Terraform State
        excerpt: Remote backends and locking.
        date: 2025-02-01
        category: Terraform
        author: Jane Doe
        tags: [Terraform, IaC, Kubernetes]
        ---

        ## Remote backends

        Store state in S3 with DynamoDB locking.
        """,
}

GUIDE = {
    "index.md": """\
        ---
        title: Docker Guide
        excerpt: Containers from scratch.
        date: 2024-12-01
        category:
          name: Kubernetes
          slug: kubernetes
        author: Jane Doe
        tags: [docker, kubernetes]
        ---

        Overview of the guide.
        """,
    "02-networking.md": """\
        ---
        title: Networking
        order: 2
        ---

        Bridge networks.
        """,
    "01-images.md": """\
        ---
        title: Images
        order: 1
        ---

        Layers and caching.
        """,
    "appendix.md": """\
        ---
        title: Appendix
        ---

        Extra notes.
        """,
}

AUTHORS = {
    "jane-doe.md": """\
        ---
        name: Jane Doe
        bio: Platform engineer.
        avatar: /images/authors/jane-doe.png
        ---
        """,
}

CATEGORIES = {
    "kubernetes.md": """\
        ---
        name: Kubernetes
        description: Container orchestration.
        ---
        """,
    "terraform.md": """\
        ---
        name: Terraform
        description: Infrastructure as code.
        ---
        """,
}


def digest_markdown(week: int, year: int, day: str, url: str) -> str:
    return textwrap.dedent(
        f"""\
        ---
        title: DevOps Weekly Digest - Week {week}, {year}
        date: '{day}'
        summary: Curated updates for week {week}.
        ---

        > 📌 **Handpicked by DevOps Daily**

        ---

        ## ⚓ Kubernetes

        ### 📄 Kubernetes v1.34 released

        New scheduling features.

        [**🔗 Read more**]({url})
        """
    )


def _write_all(root: Path, files: dict) -> None:
    root.mkdir(parents=True, exist_ok=True)
    for name, text in files.items():
        (root / name).write_text(textwrap.dedent(text), encoding="utf-8")


@pytest.fixture
def write_md() -> Callable[[Path, str], Path]:
    """Write dedented Markdown to ``path`` and return it."""

    def _write(path: Path, text: str) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(text), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def corpus_dir(tmp_path: Path) -> Path:
    content = tmp_path / "content"
    _write_all(content / "posts", POSTS)
    _write_all(content / "guides" / "docker-guide", GUIDE)
    _write_all(content / "authors", AUTHORS)
    _write_all(content / "categories", CATEGORIES)
    news = content / "news" / "2025"
    news.mkdir(parents=True)
    (news / "week-46.md").write_text(digest_markdown(46, 2025, "2025-11-16", "https://example.com/a"), encoding="utf-8")
    (news / "week-47.md").write_text(digest_markdown(47, 2025, "2025-11-23", "https://example.com/b"), encoding="utf-8")
    return tmp_path


@pytest.fixture
def app_config(corpus_dir: Path) -> AppConfig:
    return AppConfig(base_dir=corpus_dir, lint=LintConfig(report_path=None))
