"""RSS 2.0 フィード生成（新着作品）."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from email.utils import format_datetime
from zoneinfo import ZoneInfo

from bs4 import BeautifulSoup

from catalog_export.config import (
    FEED_ITEM_COUNT,
    SITE_BASE_URL,
    SITE_DESCRIPTION,
    SITE_TITLE,
    SOURCE_TIMEZONE,
)
from catalog_export.models import CanonicalItem, sort_by_recency

logger = logging.getLogger(__name__)

_ATOM_NS = "http://www.w3.org/2005/Atom"


def plain_text(html: str | None) -> str:
    """AI 要約などに混ざる HTML タグを除いたテキスト."""
    if not html:
        return ""
    return BeautifulSoup(html, "html.parser").get_text(" ", strip=True)


def _pub_date(item: CanonicalItem, now: datetime) -> str:
    if item.release_date:
        released = datetime.fromisoformat(item.release_date).replace(tzinfo=ZoneInfo(SOURCE_TIMEZONE))
        return format_datetime(released.astimezone(timezone.utc))
    return format_datetime(now.astimezone(timezone.utc))


def _item_title(item: CanonicalItem) -> str:
    pricing = item.pricing
    if pricing and pricing.is_on_sale and pricing.max_discount_rate:
        return f"【{pricing.max_discount_rate}%OFF】{item.title}"
    return item.title


def build_feed(items: list[CanonicalItem], now: datetime, base_url: str = SITE_BASE_URL) -> str:
    """新着 FEED_ITEM_COUNT 件の RSS を文字列で返す."""
    ET.register_namespace("atom", _ATOM_NS)
    rss = ET.Element("rss", {"version": "2.0"})
    channel = ET.SubElement(rss, "channel")
    ET.SubElement(channel, "title").text = SITE_TITLE
    ET.SubElement(channel, "link").text = base_url
    ET.SubElement(channel, "description").text = SITE_DESCRIPTION
    ET.SubElement(channel, "language").text = "ja"
    ET.SubElement(channel, "lastBuildDate").text = format_datetime(now.astimezone(timezone.utc))
    ET.SubElement(channel, f"{{{_ATOM_NS}}}link", {
        "href": f"{base_url}/feed.xml",
        "rel": "self",
        "type": "application/rss+xml",
    })

    newest = sort_by_recency(items)[:FEED_ITEM_COUNT]
    for item in newest:
        link = f"{base_url}/works/{item.id}/"
        entry = ET.SubElement(channel, "item")
        ET.SubElement(entry, "title").text = _item_title(item)
        ET.SubElement(entry, "link").text = link
        ET.SubElement(entry, "guid", {"isPermaLink": "true"}).text = link
        ET.SubElement(entry, "description").text = plain_text(item.summary) or f"{item.title}の詳細ページ"
        ET.SubElement(entry, "pubDate").text = _pub_date(item, now)
        if item.category:
            ET.SubElement(entry, "category").text = item.category
        if item.thumbnail_url:
            ET.SubElement(entry, "enclosure", {"url": item.thumbnail_url, "type": "image/jpeg"})

    logger.info("フィード: %d 件", len(newest))
    body = ET.tostring(rss, encoding="unicode")
    return f'<?xml version="1.0" encoding="UTF-8"?>\n{body}\n'
