"""Sitemap generation — sitemap.xml over every published URL.

Lists the homepage, every content record (with ``lastmod``), and every tag,
category and series listing, each with its change frequency and priority.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from urllib.parse import quote
from xml.etree.ElementTree import Element, SubElement, tostring

from tabby.content.metadata import slugify

if TYPE_CHECKING:
    from collections.abc import Sequence

    from tabby.content.records import ContentRecord

# XML namespace for sitemaps
_SITEMAP_NS = "http://www.sitemaps.org/schemas/sitemap/0.9"


def sitemap_entries(
    records: Sequence[ContentRecord],
    tags: Sequence[str],
    categories: Sequence[str],
    series: Sequence[str],
) -> list[dict[str, str]]:
    """``loc``/``lastmod``/``changefreq``/``priority`` rows, homepage first."""
    entries = [{"loc": "/", "changefreq": "daily", "priority": "1.0"}]
    entries.extend(
        {
            "loc": record.url,
            "lastmod": record.updated_at,
            "changefreq": "monthly",
            "priority": "0.8",
        }
        for record in records
        if record.url != "/"
    )
    entries.extend(
        {"loc": f"/tag/{quote(tag)}/", "changefreq": "weekly", "priority": "0.5"}
        for tag in tags
    )
    entries.extend(
        {"loc": f"/category/{quote(name)}/", "changefreq": "weekly", "priority": "0.6"}
        for name in categories
    )
    entries.extend(
        {"loc": f"/series/{slugify(name)}/", "changefreq": "weekly", "priority": "0.6"}
        for name in series
    )
    return entries


def generate_sitemap(entries: Sequence[dict[str, str]], base_url: str) -> str:
    """Generate a sitemap.xml string.

    Args:
        entries: Rows from :func:`sitemap_entries`.
        base_url: Site base URL (e.g., ``"https://example.com"``).

    Returns:
        Complete XML string suitable for writing to ``sitemap.xml``.

    """
    base = base_url.rstrip("/")

    urlset = Element("urlset")
    urlset.set("xmlns", _SITEMAP_NS)

    for entry in entries:
        url_el = SubElement(urlset, "url")
        SubElement(url_el, "loc").text = base + entry["loc"]
        if entry.get("lastmod"):
            SubElement(url_el, "lastmod").text = entry["lastmod"]
        SubElement(url_el, "changefreq").text = entry["changefreq"]
        SubElement(url_el, "priority").text = entry["priority"]

    xml = tostring(urlset, encoding="unicode", xml_declaration=False)
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + xml + "\n"
