"""sitemap.xml 生成."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from datetime import datetime

from catalog_export.config import SITE_BASE_URL
from catalog_export.pagination import encode_segment

logger = logging.getLogger(__name__)

_SITEMAP_NS = "http://www.sitemaps.org/schemas/sitemap/0.9"

# (パス, priority, changefreq)
STATIC_PAGES = [
    ("", "1.0", "daily"),
    ("/works/", "0.9", "daily"),
    ("/sale/", "0.9", "daily"),
    ("/sale/tokushu/", "0.9", "daily"),
    ("/recommendations/", "0.8", "daily"),
    ("/search/", "0.7", "weekly"),
    ("/cv/", "0.7", "weekly"),
    ("/tags/", "0.7", "weekly"),
    ("/circles/", "0.7", "weekly"),
]


def _add_url(urlset: ET.Element, loc: str, priority: str, changefreq: str, lastmod: str | None = None) -> None:
    url = ET.SubElement(urlset, "url")
    ET.SubElement(url, "loc").text = loc
    if lastmod:
        ET.SubElement(url, "lastmod").text = lastmod
    ET.SubElement(url, "changefreq").text = changefreq
    ET.SubElement(url, "priority").text = priority


def build_sitemap(
    work_ids: list[int],
    actor_names: list[str],
    tag_names: list[str],
    circle_names: list[str],
    now: datetime,
    base_url: str = SITE_BASE_URL,
) -> str:
    """静的ページ・作品・声優・タグ・サークルの URL を列挙する."""
    ET.register_namespace("", _SITEMAP_NS)
    urlset = ET.Element(f"{{{_SITEMAP_NS}}}urlset")
    today = now.date().isoformat()

    for path, priority, changefreq in STATIC_PAGES:
        _add_url(urlset, f"{base_url}{path}", priority, changefreq, today)
    for work_id in sorted(work_ids):
        _add_url(urlset, f"{base_url}/works/{work_id}/", "0.8", "weekly")
    for prefix, names, priority in (
        ("cv", actor_names, "0.7"),
        ("tags", tag_names, "0.6"),
        ("circles", circle_names, "0.6"),
    ):
        for name in sorted(set(names)):
            _add_url(urlset, f"{base_url}/{prefix}/{encode_segment(name)}/", priority, "weekly")

    count = len(urlset)
    logger.info("サイトマップ: %d URL", count)
    body = ET.tostring(urlset, encoding="unicode")
    return f'<?xml version="1.0" encoding="UTF-8"?>\n{body}\n'
