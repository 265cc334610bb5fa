"""RSS 2.0 feed generation."""

from __future__ import annotations

from datetime import UTC, datetime
from email.utils import format_datetime
from typing import TYPE_CHECKING
from xml.etree.ElementTree import Element, SubElement, tostring

if TYPE_CHECKING:
    from collections.abc import Sequence

    from tabby.content.records import ContentRecord

RSS_ITEMS = 20
_ATOM_NS = "http://www.w3.org/2005/Atom"
_CONTENT_NS = "http://purl.org/rss/1.0/modules/content/"


def _rfc822(iso_date: str) -> str:
    try:
        parsed = datetime.fromisoformat(iso_date)
    except ValueError:
        parsed = datetime(1970, 1, 1)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return format_datetime(parsed)


def generate_rss(
    records: Sequence[ContentRecord],
    site: dict[str, str],
    feed_path: str = "/rss.xml",
) -> str:
    """RSS 2.0 document of the newest ``RSS_ITEMS`` records.

    Args:
        records: Records sorted newest first.
        site: ``title``, ``description``, ``url`` and ``author``.
        feed_path: Site-relative URL of the feed itself (the atom self link).

    """
    base = site["url"].rstrip("/")
    rss = Element("rss", {"version": "2.0"})
    rss.set("xmlns:atom", _ATOM_NS)
    rss.set("xmlns:content", _CONTENT_NS)
    channel = SubElement(rss, "channel")
    SubElement(channel, "title").text = site["title"]
    SubElement(channel, "link").text = base + "/"
    SubElement(channel, "description").text = site["description"]
    SubElement(channel, "language").text = "en"
    SubElement(channel, "generator").text = "Tabby"
    SubElement(
        channel,
        "atom:link",
        {"href": f"{base}{feed_path}", "rel": "self", "type": "application/rss+xml"},
    )
    recent = records[:RSS_ITEMS]
    if recent:
        SubElement(channel, "lastBuildDate").text = _rfc822(recent[0].updated_at)

    for record in recent:
        link = f"{base}{record.url}"
        item = SubElement(channel, "item")
        SubElement(item, "title").text = record.title
        SubElement(item, "link").text = link
        SubElement(item, "guid", {"isPermaLink": "true"}).text = link
        SubElement(item, "pubDate").text = _rfc822(record.created_at)
        SubElement(item, "author").text = site["author"]
        SubElement(item, "description").text = record.description or record.raw_content[:200]
        SubElement(item, "content:encoded").text = record.rendered_html or record.body_html
        for tag in record.tags:
            SubElement(item, "category").text = tag

    xml = tostring(rss, encoding="unicode", xml_declaration=False)
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + xml + "\n"
