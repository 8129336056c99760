"""Reusable helpers shared by linter, digest, and web subsystems."""

from __future__ import annotations

from .config import AppConfig, load_config  # noqa: F401
from .paths import ContentPaths  # noqa: F401
