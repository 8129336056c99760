from __future__ import annotations

import asyncio
import os
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
import uvicorn
from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse
from rich.logging import RichHandler

from devops_content import AppConfig, load_config
from devops_content.corpus import Corpus, Post
from devops_content.utils import tag_to_slug
from linter.pipeline import CorpusLinter

logger = logging.getLogger("devops_content.web")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, markup=False)],
    )


class WebState:
    def __init__(self, config: AppConfig) -> None:
        self.config = config
        self.paths = config.paths()
        self.corpus = Corpus(self.paths)

    def refresh(self) -> None:
        self.corpus.refresh()
        logger.info("Corpus caches cleared; files will be re-read on next request.")

    def filter_posts(
        self,
        tag: Optional[str] = None,
        category: Optional[str] = None,
        author: Optional[str] = None,
    ) -> List[Post]:
        if tag:
            posts = self.corpus.posts_by_tag(tag_to_slug(tag))
        else:
            posts = self.corpus.posts()
        if category:
            posts = [post for post in posts if post.category and post.category.slug == category]
        if author:
            posts = [post for post in posts if post.author and post.author.slug == author]
        return posts


def _post_detail(post: Post) -> Dict[str, Any]:
    payload = post.summary()
    payload["content"] = post.body
    return payload


def create_app(state: WebState) -> FastAPI:
    fastapi_app = FastAPI(title="DevOps Content API")

    @fastapi_app.get("/api/health")
    async def health() -> Dict[str, Any]:
        return {"status": "ok", "content_dir": str(state.paths.content)}

    @fastapi_app.get("/api/posts")
    async def posts(
        limit: int = Query(20, ge=1, le=200),
        offset: int = Query(0, ge=0),
        tag: Optional[str] = Query(None),
        category: Optional[str] = Query(None),
        author: Optional[str] = Query(None),
    ) -> Dict[str, Any]:
        matching = state.filter_posts(tag=tag, category=category, author=author)
        page = matching[offset : offset + limit]
        return {
            "total": len(matching),
            "offset": offset,
            "limit": limit,
            "items": [post.summary() for post in page],
        }

    @fastapi_app.get("/api/posts/{slug}")
    async def post_detail(slug: str) -> Dict[str, Any]:
        post = state.corpus.post(slug)
        if post is None:
            raise HTTPException(status_code=404, detail="Post not found")
        return _post_detail(post)

    @fastapi_app.get("/api/guides")
    async def guides() -> List[Dict[str, Any]]:
        return [guide.summary() for guide in state.corpus.guides()]

    @fastapi_app.get("/api/guides/{slug}")
    async def guide_detail(slug: str) -> Dict[str, Any]:
        guide = state.corpus.guide(slug)
        if guide is None:
            raise HTTPException(status_code=404, detail="Guide not found")
        return _post_detail(guide)

    @fastapi_app.get("/api/tags")
    async def tags() -> List[Dict[str, Any]]:
        return [tag.to_dict() for tag in state.corpus.tags()]

    @fastapi_app.get("/api/tags/{slug}")
    async def tag_detail(slug: str) -> Dict[str, Any]:
        key = tag_to_slug(slug)
        name = state.corpus.tag(key)
        if name is None:
            raise HTTPException(status_code=404, detail="Tag not found")
        return {
            "name": name,
            "slug": key,
            "posts": [post.summary() for post in state.corpus.posts_by_tag(key)],
            "guides": [guide.summary() for guide in state.corpus.guides_by_tag(key)],
        }

    @fastapi_app.get("/api/categories")
    async def categories() -> List[Dict[str, Any]]:
        return [category.to_dict() for category in state.corpus.categories()]

    @fastapi_app.get("/api/categories/{slug}")
    async def category_detail(slug: str) -> Dict[str, Any]:
        category = state.corpus.category(slug)
        if category is None:
            raise HTTPException(status_code=404, detail="Category not found")
        payload = category.to_dict()
        payload["posts"] = [post.summary() for post in state.corpus.posts_by_category(slug)]
        return payload

    @fastapi_app.get("/api/authors")
    async def authors() -> List[Dict[str, Any]]:
        return [author.to_dict() for author in state.corpus.authors()]

    @fastapi_app.get("/api/authors/{slug}")
    async def author_detail(slug: str) -> Dict[str, Any]:
        author = state.corpus.author(slug)
        if author is None:
            raise HTTPException(status_code=404, detail="Author not found")
        payload = author.to_dict()
        payload["posts"] = [post.summary() for post in state.corpus.posts_by_author(slug)]
        payload["guides"] = [guide.summary() for guide in state.corpus.guides_by_author(slug)]
        return payload

    @fastapi_app.get("/api/news")
    async def news(year: Optional[int] = Query(None)) -> Dict[str, Any]:
        digests = state.corpus.news_by_year(year) if year is not None else state.corpus.news()
        return {
            "years": state.corpus.news_years(),
            "items": [digest.to_dict() for digest in digests],
        }

    @fastapi_app.get("/api/news/{slug}")
    async def news_detail(slug: str) -> Dict[str, Any]:
        digest = state.corpus.news_by_slug(slug)
        if digest is None:
            raise HTTPException(status_code=404, detail="News digest not found")
        return digest.to_dict(include_body=True)

    @fastapi_app.get("/api/lint")
    async def lint() -> Dict[str, object]:
        def _run() -> Dict[str, object]:
            linter = CorpusLinter(state.config)
            return linter.run().to_dict(state.paths.base)

        return await asyncio.to_thread(_run)

    @fastapi_app.post("/api/refresh")
    async def refresh() -> JSONResponse:
        state.refresh()
        return JSONResponse({"status": "ok"})

    return fastapi_app


def serve(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c"),
    host: Optional[str] = typer.Option(None, "--host", "-h"),
    port: Optional[int] = typer.Option(None, "--port", "-p"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload for development."),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    _setup_logging(verbose)
    cfg = load_config(config_path)
    if host:
        cfg.web.host = host
    if port:
        cfg.web.port = port
    if reload:
        # uvicorn reloads by import string; the module-level app reads the config from the environment
        if config_path is not None:
            os.environ["DEVOPS_CONTENT_CONFIG"] = str(config_path.resolve())
        uvicorn.run("web.app:app", host=cfg.web.host, port=cfg.web.port, reload=True)
        return
    uvicorn.run(create_app(WebState(cfg)), host=cfg.web.host, port=cfg.web.port)


def cli() -> None:
    typer.run(serve)


state = WebState(load_config())
app = create_app(state)


if __name__ == "__main__":
    cli()
