"""feed / sitemap モジュールのテスト."""

import xml.etree.ElementTree as ET
from datetime import datetime, timedelta, timezone

from catalog_export.feed import build_feed, plain_text
from catalog_export.models import CanonicalItem, MarketplaceOffer
from catalog_export.pricing import price_item
from catalog_export.sitemap import STATIC_PAGES, build_sitemap

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
BASE_URL = "https://example.com"
SM = "{http://www.sitemaps.org/schemas/sitemap/0.9}"


def _item(item_id, release_date=None, rate=None, summary=None):
    offers = (MarketplaceOffer(
        marketplace="dlsite", list_price=1000, discount_rate=rate, sale_end=NOW + timedelta(days=3),
    ),)
    item = CanonicalItem(id=item_id, title=f"作品{item_id}", release_date=release_date,
                         offers=offers, summary=summary, category="音声")
    return price_item(item, NOW)


class TestPlainText:
    def test_strips_tags(self):
        assert plain_text("<p>耳かき<br>ボイス</p>") == "耳かき ボイス"

    def test_empty(self):
        assert plain_text(None) == ""
        assert plain_text("") == ""


class TestBuildFeed:
    """build_feed のテスト."""

    def _channel(self, items):
        return ET.fromstring(build_feed(items, NOW, BASE_URL)).find("channel")

    def test_newest_first(self):
        items = [_item(1, "2026-01-01"), _item(2, "2026-03-01"), _item(3, None)]
        channel = self._channel(items)

        links = [e.findtext("link") for e in channel.findall("item")]
        assert links == [
            "https://example.com/works/2/",
            "https://example.com/works/1/",
            "https://example.com/works/3/",
        ]

    def test_sale_prefix(self):
        channel = self._channel([_item(1, "2026-01-01", rate=30), _item(2, "2025-01-01")])
        titles = [e.findtext("title") for e in channel.findall("item")]

        assert titles == ["【30%OFF】作品1", "作品2"]

    def test_description(self):
        channel = self._channel([_item(1, "2026-01-01", summary="<b>癒し</b>の音声"), _item(2, "2025-01-01")])
        descriptions = [e.findtext("description") for e in channel.findall("item")]

        assert descriptions == ["癒し の音声", "作品2の詳細ページ"]

    def test_item_count_limited(self):
        items = [_item(i, f"2026-01-{i:02d}") for i in range(1, 26)]
        assert len(self._channel(items).findall("item")) == 20

    def test_self_link(self):
        channel = self._channel([])
        link = channel.find("{http://www.w3.org/2005/Atom}link")
        assert link.get("href") == "https://example.com/feed.xml"


class TestBuildSitemap:
    """build_sitemap のテスト."""

    def _locs(self, **kwargs) -> list[str]:
        args = {"work_ids": [], "actor_names": [], "tag_names": [], "circle_names": []}
        args.update(kwargs)
        root = ET.fromstring(build_sitemap(now=NOW, base_url=BASE_URL, **args))
        return [u.findtext(f"{SM}loc") for u in root.findall(f"{SM}url")]

    def test_static_pages(self):
        locs = self._locs()
        assert len(locs) == len(STATIC_PAGES)
        assert locs[0] == "https://example.com"

    def test_names_are_encoded_and_deduplicated(self):
        locs = self._locs(work_ids=[3, 1], tag_names=["癒し", "癒し"], circle_names=["a b"])
        dynamic = locs[len(STATIC_PAGES):]

        assert dynamic == [
            "https://example.com/works/1/",
            "https://example.com/works/3/",
            "https://example.com/tags/%E7%99%92%E3%81%97/",
            "https://example.com/circles/a%20b/",
        ]

    def test_lastmod_on_static_pages(self):
        root = ET.fromstring(build_sitemap([], [], [], [], NOW, BASE_URL))
        assert root.find(f"{SM}url").findtext(f"{SM}lastmod") == "2026-10-19"
