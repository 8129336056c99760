from __future__ import annotations

import xml.etree.ElementTree as ET
from datetime import datetime, timezone

from typer.testing import CliRunner

from devops_content.config import ContentConfig
from devops_content.corpus import Corpus
from devops_content.paths import resolve_content_paths
from devops_content.publish import (
    ATOM_NS,
    app,
    build_feed,
    export_markdown,
    feed_entries,
    write_feed,
)

NOW = datetime(2025, 11, 24, 8, tzinfo=timezone.utc)


def parse(xml: str) -> ET.Element:
    return ET.fromstring(xml.encode("utf-8"))


class TestFeed:
    def test_entries_newest_first(self, app_config):
        entries = feed_entries(Corpus(app_config.paths()))

        assert [entry.path for entry in entries] == [
            "/news/2025-week-47",
            "/news/2025-week-46",
            "/posts/terraform-state",
            "/posts/kubernetes-basics",
        ]
        assert entries[0].categories == ["DevOps News"]
        assert entries[0].description == "Curated updates for week 47."

    def test_channel(self, app_config):
        xml = build_feed(Corpus(app_config.paths()), ContentConfig(), now=NOW)

        assert xml.startswith('<?xml version="1.0" encoding="UTF-8"?>\n<rss')
        channel = parse(xml).find("channel")
        assert channel.findtext("title") == "DevOps Daily"
        assert channel.findtext("link") == "https://devops-daily.com"
        assert channel.findtext("lastBuildDate") == "Mon, 24 Nov 2025 08:00:00 GMT"
        atom = channel.find(f"{{{ATOM_NS}}}link")
        assert atom.get("href") == "https://devops-daily.com/feed.xml"
        assert atom.get("rel") == "self"

    def test_post_item(self, app_config):
        content = ContentConfig(site_url="https://example.org/")
        channel = parse(build_feed(Corpus(app_config.paths()), content, now=NOW)).find("channel")

        item = channel.findall("item")[-1]
        assert item.findtext("title") == "Kubernetes Basics"
        assert item.findtext("link") == "https://example.org/posts/kubernetes-basics"
        assert item.findtext("description") == "Pods, deployments and services."
        assert item.findtext("pubDate") == "Sun, 12 Jan 2025 09:00:00 GMT"
        assert item.find("guid").get("isPermaLink") == "true"
        assert [node.text for node in item.findall("category")] == ["Kubernetes", "Kubernetes", "Containers"]
        assert item.findtext("author") == "Jane Doe"

    def test_limit_and_no_bodies(self, app_config):
        xml = build_feed(Corpus(app_config.paths()), ContentConfig(), limit=2, now=NOW)

        assert len(parse(xml).find("channel").findall("item")) == 2
        assert "content:encoded" not in xml
        assert "A pod runs one or more containers." not in xml

    def test_write_feed(self, app_config, corpus_dir):
        target = write_feed(app_config, now=NOW)

        assert target == corpus_dir / "public" / "feed.xml"
        assert parse(target.read_text(encoding="utf-8")).tag == "rss"


class TestExport:
    def test_layout(self, app_config, corpus_dir):
        result = export_markdown(app_config.paths())

        public = corpus_dir / "public"
        assert result.posts == [public / "posts/kubernetes-basics.md", public / "posts/terraform-state.md"]
        assert (public / "guides/docker-guide.md").read_text(encoding="utf-8").startswith("---\ntitle: Docker Guide")
        assert sorted(p.name for p in (public / "guides/docker-guide").iterdir()) == [
            "01-images.md",
            "02-networking.md",
            "appendix.md",
        ]
        assert result.total == 6

    def test_custom_output_and_missing_dirs(self, tmp_path):
        paths = resolve_content_paths(tmp_path / "empty")
        result = export_markdown(paths, output=tmp_path / "out")

        assert result.total == 0


class TestCli:
    def test_feed_and_export(self, corpus_dir):
        config = corpus_dir / "site.yml"
        config.write_text('base_dir: "."\n', encoding="utf-8")
        runner = CliRunner()

        assert runner.invoke(app, ["feed", "--config", str(config), "-o", "out/rss.xml"]).exit_code == 0
        assert (corpus_dir / "out" / "rss.xml").exists()
        assert runner.invoke(app, ["export", "--config", str(config)]).exit_code == 0
        assert (corpus_dir / "public" / "posts" / "terraform-state.md").exists()
