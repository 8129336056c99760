from __future__ import annotations

import os
import re
import tempfile
from pathlib import Path

from .paths import ensure_dir


def tag_to_slug(tag: str) -> str:
    slug = tag.lower()
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"[^\w-]+", "", slug, flags=re.ASCII)
    slug = re.sub(r"--+", "-", slug)
    return slug.strip("-")


def heading_slug(text: str, depth: int) -> str:
    """Anchor id for a heading; the level prefix keeps h2/h3 twins apart."""

    base = text.lower().strip()
    # ASCII word characters only; \s stays Unicode
    base = re.sub(r"[^0-9A-Za-z_\s-]", "", base)
    base = re.sub(r"\s+", "-", base)
    base = re.sub(r"-+", "-", base).strip("-")
    return f"h{depth}-{base}"


def default_image_path(kind: str, slug: str) -> str:
    return f"/images/{kind}/{slug}.svg"


def write_text_atomic(path: Path | str, text: str) -> Path:
    target = Path(path)
    ensure_dir(target.parent)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", dir=str(target.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
        Path(tmp_name).replace(target)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return target


def safe_join(root: Path, relative: str) -> Path:
    root_resolved = root.resolve()
    candidate = (root / relative).resolve()
    if root_resolved not in candidate.parents and candidate != root_resolved:
        raise ValueError(f"Path {relative} escapes {root}")
    return candidate
