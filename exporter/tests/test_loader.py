"""loader モジュールのモックテスト."""

from unittest.mock import MagicMock, patch

import requests

from catalog_export.loader import GroupPageLoader, fetch_page, fetch_search_index, page_url
from catalog_export.models import PaginationPolicy

BASE_URL = "https://example.com/data/"
POLICY = PaginationPolicy(page_size=20, inline_threshold=100)


def _response(payload, status=200):
    resp = MagicMock()
    resp.json.return_value = payload
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status}")
    return resp


def _records(start: int, n: int) -> list[dict]:
    return [{"id": i} for i in range(start, start + n)]


class TestPageUrl:
    def test_encoded_name(self):
        assert page_url(BASE_URL, "tags", "癒し", 2) == "https://example.com/data/tags/%E7%99%92%E3%81%97/2.json"


class TestFetchPage:
    """fetch_page のテスト."""

    @patch("catalog_export.loader.requests.get")
    def test_success(self, mock_get):
        mock_get.return_value = _response(_records(1, 20))

        page = fetch_page(BASE_URL, "cv", "春野ひより", 1)

        assert len(page) == 20
        assert mock_get.call_args.args[0].endswith("/cv/%E6%98%A5%E9%87%8E%E3%81%B2%E3%82%88%E3%82%8A/1.json")

    @patch("catalog_export.loader.requests.get")
    def test_not_found(self, mock_get):
        mock_get.return_value = _response(None, status=404)
        assert fetch_page(BASE_URL, "tags", "x", 9) is None

    @patch("catalog_export.loader.requests.get")
    def test_network_error(self, mock_get):
        mock_get.side_effect = requests.ConnectionError("offline")
        assert fetch_page(BASE_URL, "tags", "x", 2) is None

    @patch("catalog_export.loader.requests.get")
    def test_invalid_payload(self, mock_get):
        mock_get.return_value = _response({"not": "a list"})
        assert fetch_page(BASE_URL, "tags", "x", 2) is None


class TestFetchSearchIndex:
    @patch("catalog_export.loader.requests.get")
    def test_success(self, mock_get):
        mock_get.return_value = _response([{"id": 1, "t": "作品"}])

        assert fetch_search_index(BASE_URL) == [{"id": 1, "t": "作品"}]
        assert mock_get.call_args.args[0] == "https://example.com/data/search-index.json"

    @patch("catalog_export.loader.requests.get")
    def test_failure(self, mock_get):
        mock_get.side_effect = requests.Timeout("slow")
        assert fetch_search_index(BASE_URL) is None


class TestGroupPageLoader:
    """GroupPageLoader のテスト."""

    def _loader(self, total=45, initial=20):
        return GroupPageLoader(BASE_URL, "tags", "癒し", total, _records(1, initial), POLICY)

    def test_initial_state(self):
        loader = self._loader()

        assert loader.current_page == 1
        assert loader.has_more is True
        assert loader.remaining == 25

    @patch("catalog_export.loader.requests.get")
    def test_load_next_page(self, mock_get):
        mock_get.return_value = _response(_records(21, 20))
        loader = self._loader()

        assert loader.load_more() is True
        assert loader.current_page == 2
        assert len(loader.items) == 40
        assert mock_get.call_args.args[0].endswith("/2.json")

    @patch("catalog_export.loader.requests.get")
    def test_failure_keeps_items_and_retries_same_page(self, mock_get):
        """失敗しても読み込み済みの作品は残り、次回は同じページを再試行すること."""
        loader = self._loader()
        mock_get.side_effect = requests.ConnectionError("offline")

        assert loader.load_more() is False
        assert len(loader.items) == 20
        assert loader.current_page == 1
        assert loader.last_error == "failed to load page 2"

        mock_get.side_effect = None
        mock_get.return_value = _response(_records(21, 20))

        assert loader.load_more() is True
        assert mock_get.call_args.args[0].endswith("/2.json")
        assert loader.last_error is None
        assert [r["id"] for r in loader.items] == list(range(1, 41))

    @patch("catalog_export.loader.requests.get")
    def test_stops_at_total(self, mock_get):
        loader = self._loader(total=25)
        mock_get.return_value = _response(_records(21, 5))

        assert loader.load_more() is True
        assert loader.has_more is False
        assert loader.load_more() is False
        assert mock_get.call_count == 1

    @patch("catalog_export.loader.requests.get")
    def test_inline_group_never_fetches(self, mock_get):
        loader = GroupPageLoader(BASE_URL, "tags", "小", 12, _records(1, 12), POLICY)

        assert loader.has_more is False
        assert loader.load_more() is False
        mock_get.assert_not_called()

    @patch("catalog_export.loader.requests.get")
    def test_unaligned_initial_items(self, mock_get):
        """先頭部分がページ途中で終わっていても作品を飛ばさないこと."""
        loader = GroupPageLoader(BASE_URL, "tags", "癒し", 120, _records(1, 30), POLICY)
        assert loader.current_page == 1

        mock_get.return_value = _response(_records(21, 20))
        assert loader.load_more() is True
        assert mock_get.call_args.args[0].endswith("/2.json")
        assert [r["id"] for r in loader.items] == list(range(1, 41))

        mock_get.return_value = _response(_records(41, 20))
        assert loader.load_more() is True
        assert mock_get.call_args.args[0].endswith("/3.json")
        assert [r["id"] for r in loader.items] == list(range(1, 61))

    @patch("catalog_export.loader.requests.get")
    def test_short_prefix_starts_from_first_page(self, mock_get):
        loader = GroupPageLoader(BASE_URL, "tags", "癒し", 120, _records(1, 5), POLICY)
        mock_get.return_value = _response(_records(1, 20))

        assert loader.load_more() is True
        assert mock_get.call_args.args[0].endswith("/1.json")
        assert [r["id"] for r in loader.items] == list(range(1, 21))
