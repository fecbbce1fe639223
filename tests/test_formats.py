"""Tests for the five export serializers."""

from __future__ import annotations

import json
import re
from datetime import datetime

import pytest

from favorites.export.formats import (
    CSV_HEADER,
    ExportFormat,
    build_csv,
    build_html,
    build_json,
    build_markdown,
    build_txt,
    discussion_url,
    serialize,
)
from favorites.storage.models import Favorite


def local(ts: int, fmt: str = "%Y-%m-%d %H:%M") -> str:
    return datetime.fromtimestamp(ts).strftime(fmt)


@pytest.fixture
def items():
    return [
        Favorite(id="1", url="http://a", title="A", saved_at=0),
        Favorite(id="2", url="http://b", title='Say "hi", <b>bold</b>', saved_at=86_400),
        Favorite(id="3", url="http://c", title="", saved_at=1_700_000_000),
    ]


class TestExportFormat:
    def test_extensions_and_mime_types(self):
        assert [(f.extension, f.mime_type) for f in ExportFormat] == [
            ("csv", "text/csv"),
            ("txt", "text/plain"),
            ("html", "text/html"),
            ("md", "text/markdown"),
            ("json", "application/json"),
        ]

    def test_parse_by_name_or_extension(self):
        assert ExportFormat.parse("markdown") is ExportFormat.MARKDOWN
        assert ExportFormat.parse("MD") is ExportFormat.MARKDOWN
        assert ExportFormat.parse(" json ") is ExportFormat.JSON
        with pytest.raises(ValueError):
            ExportFormat.parse("pdf")

    def test_discussion_url(self):
        assert discussion_url("8863") == "https://news.ycombinator.com/item?id=8863"
        assert discussion_url("5", "https://hn.example/%s") == "https://hn.example/5"


class TestCsv:
    def test_single_item_scenario(self):
        content = build_csv([Favorite(id="1", url="http://a", title="A", saved_at=0)])
        lines = content.splitlines()
        assert lines == [
            "Title,URL,Hacker News Link,Saved Date",
            f'"A",http://a,https://news.ycombinator.com/item?id=1,{local(0)}',
        ]

    def test_row_per_item_and_quote_doubling(self, items):
        lines = build_csv(items).splitlines()
        assert len(lines) == len(items) + 1
        assert lines[0] == CSV_HEADER
        assert lines[2].startswith('"Say ""hi"", <b>bold</b>",http://b,')

    def test_empty_title_falls_back_to_url(self, items):
        assert build_csv(items).splitlines()[3].startswith('"http://c",http://c,')


class TestTxt:
    def test_numbered_blocks(self, items):
        content = build_txt(items)
        assert content.startswith("=== Saved Stories ===\n\n")
        numbered = re.findall(r"^(\d+)\. ", content, re.MULTILINE)
        assert numbered == ["1", "2", "3"]
        assert "   URL: http://a\n" in content
        assert "   HN: https://news.ycombinator.com/item?id=2\n" in content
        assert f"   Saved: {local(0)}\n" in content


class TestHtml:
    def test_one_story_block_per_item(self, items):
        content = build_html(items)
        assert content.startswith("<!DOCTYPE html>")
        assert content.count('<div class="story">') == len(items)
        assert content.rstrip().endswith("</body></html>")

    def test_titles_are_escaped(self, items):
        content = build_html(items)
        assert "&lt;b&gt;bold&lt;/b&gt;" in content
        assert "<b>bold</b>" not in content
        assert '<a href="https://news.ycombinator.com/item?id=1">HN Discussion</a>' in content


class TestMarkdown:
    def test_sections(self, items):
        content = build_markdown(items)
        assert content.startswith("# Saved Stories\n")
        headings = [line for line in content.splitlines() if line.startswith("## ")]
        assert headings == ["## A", '## Say "hi", <b>bold</b>', "## http://c"]
        assert content.count("\n---\n") == len(items)
        assert "- **URL:** [Link](http://a)" in content
        assert "- **HN:** [Discussion](https://news.ycombinator.com/item?id=3)" in content


class TestJson:
    def test_two_stories_valid(self, items):
        data = json.loads(build_json(items[:2]))
        assert "exported" in data
        assert len(data["stories"]) == 2

    def test_single_story_valid(self, items):
        data = json.loads(build_json(items[:1]))
        assert len(data["stories"]) == 1

    def test_story_fields(self, items):
        exported_at = datetime(2024, 5, 6, 7, 8, 9)
        data = json.loads(build_json(items, exported_at=exported_at))
        assert data["exported"] == "2024-05-06T07:08:09"
        second = data["stories"][1]
        assert second == {
            "id": "2",
            "title": 'Say "hi", <b>bold</b>',
            "url": "http://b",
            "hnUrl": "https://news.ycombinator.com/item?id=2",
            "savedAt": local(86_400, "%Y-%m-%dT%H:%M:%S"),
        }


class TestSerializeDispatch:
    @pytest.mark.parametrize("fmt", list(ExportFormat))
    def test_every_format_mentions_every_item(self, fmt, items):
        content = serialize(fmt, items, "https://hn.example/item/%s")
        for item in items:
            assert f"https://hn.example/item/{item.id}" in content
