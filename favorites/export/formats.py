"""Export formats and their serializers.

Every serializer takes the saved stories in store order and returns the full
document as a string. They are only called with at least one story.
"""

from __future__ import annotations

import html
import json
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Optional, Sequence

from favorites.storage.models import Favorite

DEFAULT_DISCUSSION_URL_TEMPLATE = "https://news.ycombinator.com/item?id=%s"
DOCUMENT_TITLE = "Saved Stories"

DATE_FORMAT = "%Y-%m-%d %H:%M"
ISO_FORMAT = "%Y-%m-%dT%H:%M:%S"

CSV_HEADER = "Title,URL,Hacker News Link,Saved Date"


class ExportFormat(Enum):
    CSV = ("csv", "text/csv")
    TXT = ("txt", "text/plain")
    HTML = ("html", "text/html")
    MARKDOWN = ("md", "text/markdown")
    JSON = ("json", "application/json")

    def __init__(self, extension: str, mime_type: str) -> None:
        self.extension = extension
        self.mime_type = mime_type

    @classmethod
    def parse(cls, name: str) -> ExportFormat:
        """Look up a format by enum name or file extension."""
        key = name.strip().lower()
        for fmt in cls:
            if key in (fmt.name.lower(), fmt.extension):
                return fmt
        raise ValueError(f"Unknown export format: {name!r}")


def discussion_url(item_id: str, template: str = DEFAULT_DISCUSSION_URL_TEMPLATE) -> str:
    return template % item_id


def _date(item: Favorite) -> str:
    return item.saved_datetime.strftime(DATE_FORMAT)


def build_csv(items: Sequence[Favorite], template: str = DEFAULT_DISCUSSION_URL_TEMPLATE) -> str:
    lines = [CSV_HEADER]
    for item in items:
        title = item.display_title.replace('"', '""')
        lines.append(f'"{title}",{item.url},{discussion_url(item.id, template)},{_date(item)}')
    return "\n".join(lines) + "\n"


def build_txt(items: Sequence[Favorite], template: str = DEFAULT_DISCUSSION_URL_TEMPLATE) -> str:
    lines = [f"=== {DOCUMENT_TITLE} ===", ""]
    for index, item in enumerate(items, 1):
        lines.extend([
            f"{index}. {item.display_title}",
            f"   URL: {item.url}",
            f"   HN: {discussion_url(item.id, template)}",
            f"   Saved: {_date(item)}",
            "",
        ])
    return "\n".join(lines) + "\n"


_HTML_STYLE = (
    "<style>body{font-family:Arial,sans-serif;max-width:800px;margin:0 auto;padding:20px}\n"
    ".story{margin-bottom:20px;padding:15px;border:1px solid #ddd;border-radius:8px}\n"
    ".title{font-size:18px;font-weight:bold;margin-bottom:8px}\n"
    ".meta{color:#666;font-size:14px}</style>"
)


def build_html(items: Sequence[Favorite], template: str = DEFAULT_DISCUSSION_URL_TEMPLATE) -> str:
    esc = html.escape
    lines = [
        "<!DOCTYPE html>",
        '<html><head><meta charset="UTF-8">',
        f"<title>{DOCUMENT_TITLE}</title>",
        _HTML_STYLE + "</head><body>",
        f"<h1>{DOCUMENT_TITLE}</h1>",
    ]
    for item in items:
        lines.extend([
            '<div class="story">',
            f'<div class="title"><a href="{esc(item.url)}">{esc(item.display_title)}</a></div>',
            '<div class="meta">',
            f'<a href="{esc(discussion_url(item.id, template))}">HN Discussion</a> | Saved: {_date(item)}',
            "</div></div>",
        ])
    lines.append("</body></html>")
    return "\n".join(lines) + "\n"


def build_markdown(items: Sequence[Favorite], template: str = DEFAULT_DISCUSSION_URL_TEMPLATE) -> str:
    lines = [f"# {DOCUMENT_TITLE}", ""]
    for item in items:
        lines.extend([
            f"## {item.display_title}",
            "",
            f"- **URL:** [Link]({item.url})",
            f"- **HN:** [Discussion]({discussion_url(item.id, template)})",
            f"- **Saved:** {_date(item)}",
            "",
            "---",
            "",
        ])
    return "\n".join(lines) + "\n"


def build_json(
    items: Sequence[Favorite],
    template: str = DEFAULT_DISCUSSION_URL_TEMPLATE,
    exported_at: Optional[datetime] = None,
) -> str:
    exported_at = exported_at or datetime.now()
    document = {
        "exported": exported_at.strftime(ISO_FORMAT),
        "stories": [
            {
                "id": item.id,
                "title": item.display_title,
                "url": item.url,
                "hnUrl": discussion_url(item.id, template),
                "savedAt": item.saved_datetime.strftime(ISO_FORMAT),
            }
            for item in items
        ],
    }
    return json.dumps(document, indent=2, ensure_ascii=False) + "\n"


SERIALIZERS: Dict[ExportFormat, Callable[..., str]] = {
    ExportFormat.CSV: build_csv,
    ExportFormat.TXT: build_txt,
    ExportFormat.HTML: build_html,
    ExportFormat.MARKDOWN: build_markdown,
    ExportFormat.JSON: build_json,
}


def serialize(
    fmt: ExportFormat,
    items: Sequence[Favorite],
    template: str = DEFAULT_DISCUSSION_URL_TEMPLATE,
) -> str:
    """Render ``items`` in ``fmt``."""
    return SERIALIZERS[fmt](items, template)
