"""Listing pagination."""

from __future__ import annotations

import math
from typing import Any


def listing_url(page: int) -> str:
    """URL of listing page *page*; page 1 is the homepage listing."""
    return "/" if page <= 1 else f"/page/{page}/"


def total_pages(count: int, per_page: int) -> int:
    """Number of listing pages for *count* items (at least one)."""
    return max(1, math.ceil(count / per_page))


def page_numbers(current: int, total: int) -> list[int | str]:
    """Page links to show, with ``"..."`` gaps once there are more than 7 pages."""
    if total <= 7:
        return list(range(1, total + 1))
    pages: list[int | str] = [1]
    if current > 3:
        pages.append("...")
    pages.extend(range(max(2, current - 1), min(total - 1, current + 1) + 1))
    if current < total - 2:
        pages.append("...")
    pages.append(total)
    return pages


def pagination_context(current: int, total: int) -> dict[str, Any]:
    """Template-facing pagination data for listing page *current*."""
    return {
        "current_page": current,
        "total_pages": total,
        "pages": [
            {"gap": True, "number": None, "url": None, "current": False}
            if number == "..."
            else {
                "gap": False,
                "number": number,
                "url": listing_url(int(number)),
                "current": number == current,
            }
            for number in page_numbers(current, total)
        ],
        "has_prev": current > 1,
        "has_next": current < total,
        "prev_page": current - 1,
        "next_page": current + 1,
        "prev_url": listing_url(current - 1) if current > 1 else None,
        "next_url": listing_url(current + 1) if current < total else None,
    }
