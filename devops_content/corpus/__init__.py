"""Loading the Markdown corpus: front matter, posts, guides, taxonomy and news."""

from __future__ import annotations

from .documents import (  # noqa: F401
    Author,
    Category,
    Document,
    FrontMatterError,
    Guide,
    GuidePart,
    NewsDigest,
    Post,
    Tag,
    TaxonomyRef,
    coerce_date,
    load_document,
    split_front_matter,
)
from .repository import Corpus  # noqa: F401
