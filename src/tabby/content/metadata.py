"""Metadata resolution — slugs, titles, dates, drafts and reading stats.

Every function here is deterministic given its inputs, so re-scanning an
unchanged content tree reproduces identical records.
"""

from __future__ import annotations

import html
import math
import os
import re
import unicodedata
from datetime import UTC, date, datetime
from pathlib import PurePath
from typing import Any

CONTENT_EXTENSIONS = (".md", ".txt", ".html")
IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp", ".gif")

_DATE_PREFIX = re.compile(r"^(\d{4}-\d{2}-\d{2})-?")
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}")
_H1 = re.compile(r"^#\s+(.+)$", re.MULTILINE)
_CONTENT_EXT = re.compile(r"\.(md|txt|html)$", re.IGNORECASE)
_COMPLETE_DOC = re.compile(r"^<!DOCTYPE\s+html|<(html|head|body)[\s>]", re.IGNORECASE)
_XML_PROLOG = re.compile(r"^<\?xml[^>]*>\s*", re.IGNORECASE)
_LEADING_COMMENT = re.compile(r"^<!--.*?-->\s*", re.DOTALL)


def to_web_path(path: str | PurePath) -> str:
    """Normalise a relative path to forward slashes regardless of host OS."""
    return "/".join(PurePath(path).parts)


def is_content_file(name: str) -> bool:
    """True for ``.md``, ``.txt`` and ``.html`` sources."""
    return name.lower().endswith(CONTENT_EXTENSIONS)


def is_image_file(name: str) -> bool:
    """True for image formats the optimizer accepts."""
    return name.lower().endswith(IMAGE_EXTENSIONS)


def is_draft_path(web_path: str) -> bool:
    """True when any segment is a ``drafts`` folder or dot-prefixed."""
    return any(
        part.lower() == "drafts" or part.startswith(".")
        for part in web_path.split("/")
        if part
    )


def is_draft(front_matter: dict[str, Any]) -> bool:
    """True when front matter explicitly marks the file as a draft."""
    return front_matter.get("draft") is True


def strip_date_prefix(name: str) -> str:
    """Drop a leading ``YYYY-MM-DD-`` from a file or folder name."""
    stripped = _DATE_PREFIX.sub("", name, count=1)
    return stripped or name


def generate_url(web_path: str, url_mode: str = "clean") -> str:
    """Derive the URL of a content file from its relative path.

    ``posts/2024-01-01-hello.md`` becomes ``/posts/hello/`` in clean mode
    and ``/posts/2024-01-01-hello/`` in path mode; ``docs/index.md``
    becomes ``/docs/``; the root ``index.md`` becomes ``/``.
    """
    url = _CONTENT_EXT.sub("", web_path)
    parts = url.split("/")
    if url_mode == "clean":
        parts[-1] = strip_date_prefix(parts[-1])
    if parts[-1] == "index":
        parts.pop()
    url = "/".join(parts)
    return f"/{url}/" if url else "/"


def normalize_permalink(value: str) -> str:
    """Ensure a front-matter permalink has leading and trailing slashes."""
    url = str(value).strip()
    if not url.startswith("/"):
        url = "/" + url
    if not url.endswith("/"):
        url = url + "/"
    return url


def slug_from_url(url: str) -> str:
    """``/docs/intro/`` → ``docs/intro``; ``/`` → ``index``."""
    return url.strip("/") or "index"


def slugify(text: str) -> str:
    """URL-safe lowercase slug (accents folded, punctuation dropped)."""
    value = unicodedata.normalize("NFKD", str(text).lower())
    value = "".join(ch for ch in value if not unicodedata.combining(ch))
    value = re.sub(r"[^\w\s-]", "", value)
    value = re.sub(r"[\s_]+", "-", value)
    value = re.sub(r"-+", "-", value)
    return value.strip("-")


def title_from_filename(filename: str) -> str:
    """``2024-01-01-hello-world.md`` → ``hello world``."""
    stem = _CONTENT_EXT.sub("", filename)
    phrase = re.sub(r"[-_]", " ", strip_date_prefix(stem)).strip()
    return phrase or stem


def resolve_title(
    front_matter: dict[str, Any],
    body: str,
    filename: str,
    *,
    is_markdown: bool,
) -> str:
    """Front matter → first ``# H1`` (markdown) → filename phrase → raw filename."""
    title = front_matter.get("title")
    if title:
        return str(title)
    if is_markdown:
        match = _H1.search(body)
        if match:
            return match.group(1).strip()
    return title_from_filename(filename) or _CONTENT_EXT.sub("", filename)


def format_date(value: Any) -> str | None:
    """Normalise a front-matter date value to ``YYYY-MM-DD`` where possible."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = str(value).strip()
    if _ISO_DATE.match(text):
        return text[:10]
    return text or None


def _timestamp_date(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=UTC).date().isoformat()


def date_from_filename(filename: str) -> str | None:
    """Leading ``YYYY-MM-DD`` of a file name, if any."""
    match = _DATE_PREFIX.match(filename)
    return match.group(1) if match else None


def trustworthy_birthtime(stat: os.stat_result) -> float | None:
    """Birth time when the platform reports one that can be believed.

    Rejected when missing, non-positive, equal to ctime (filesystems that
    fake it), or later than mtime.
    """
    birth = getattr(stat, "st_birthtime", None)
    if birth is None or birth <= 0:
        return None
    if birth == stat.st_ctime or birth > stat.st_mtime:
        return None
    return birth


def resolve_dates(
    front_matter: dict[str, Any],
    filename: str,
    stat: os.stat_result,
) -> tuple[str, str]:
    """Return ``(created_at, updated_at)`` as ISO dates.

    created: ``created_at``/``createdAt``/``date`` → filename prefix →
    trustworthy birth time → mtime.  updated: ``updated_at``/``updatedAt``/
    ``updated`` → mtime.
    """
    created = (
        format_date(front_matter.get("created_at"))
        or format_date(front_matter.get("createdAt"))
        or format_date(front_matter.get("date"))
        or date_from_filename(filename)
    )
    if created is None:
        birth = trustworthy_birthtime(stat)
        created = _timestamp_date(birth if birth is not None else stat.st_mtime)

    updated = (
        format_date(front_matter.get("updated_at"))
        or format_date(front_matter.get("updatedAt"))
        or format_date(front_matter.get("updated"))
        or _timestamp_date(stat.st_mtime)
    )
    return created, updated


def reading_stats(body: str, words_per_minute: int = 200) -> tuple[int, int]:
    """Return ``(word_count, reading_minutes)`` for markdown source text."""
    text = re.sub(r"!\[.*?\]\(.*?\)", "", body)
    text = re.sub(r"\[([^\]]+)\]\(.*?\)", r"\1", text)
    text = re.sub(r"[#*`_~]", "", text)
    words = len(text.split())
    return words, math.ceil(words / max(words_per_minute, 1))


def as_str_tuple(value: Any) -> tuple[str, ...]:
    """Normalise a scalar-or-list front-matter field, preserving order, deduplicated."""
    if value is None or value == "":
        return ()
    items = value if isinstance(value, (list, tuple)) else [value]
    seen: dict[str, None] = {}
    for item in items:
        text = str(item).strip()
        if text:
            seen.setdefault(text, None)
    return tuple(seen)


def is_complete_html_document(markup: str) -> bool:
    """True when *markup* carries its own doctype or html/head/body element."""
    cleaned = _XML_PROLOG.sub("", markup.strip())
    cleaned = _LEADING_COMMENT.sub("", cleaned)
    return bool(_COMPLETE_DOC.search(cleaned))


def is_raw_html(markup: str, front_matter: dict[str, Any]) -> bool:
    """Decide whether an ``.html`` source is served verbatim.

    Explicit ``template: none``/``false`` → raw; any other explicit template
    → templated; otherwise raw only for complete documents.
    """
    template = front_matter.get("template")
    if template == "none" or template is False:
        return True
    if template:
        return False
    return is_complete_html_document(markup)


def text_to_html(body: str, *, escape: bool = True) -> str:
    """Wrap plain text in ``<pre>``."""
    return f"<pre>{html.escape(body) if escape else body}</pre>"


def search_text(body: str, limit: int = 5000) -> str:
    """Plain-text excerpt for the search index."""
    text = re.sub(r"[#*`\[\]]", "", body)
    return re.sub(r"\s+", " ", text).strip()[:limit]
