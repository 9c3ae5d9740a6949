"""db モジュールのモックテスト."""

from unittest.mock import MagicMock, patch

import pytest

from catalog_export.errors import SourceQueryError


def _chain(*pages):
    """select → eq → order → range → execute のチェーンを 1 つのモックで返す."""
    mock_chain = MagicMock()
    for method in ("select", "eq", "order", "range"):
        getattr(mock_chain, method).return_value = mock_chain
    mock_chain.execute.side_effect = [MagicMock(data=p) for p in pages]
    return mock_chain


class TestGetAvailableWorks:
    """get_available_works のテスト."""

    @patch("catalog_export.db._table")
    def test_filters_available(self, mock_table):
        from catalog_export.db import get_available_works

        mock_chain = _chain([{"id": 1, "title": "作品"}])
        mock_table.return_value = mock_chain

        rows = get_available_works()

        assert rows == [{"id": 1, "title": "作品"}]
        mock_table.assert_called_once_with("works")
        mock_chain.eq.assert_called_once_with("is_available", True)
        mock_chain.range.assert_called_once_with(0, 999)

    @patch("catalog_export.config.QUERY_BATCH_SIZE", 2)
    @patch("catalog_export.db._table")
    def test_ranges_until_short_page(self, mock_table):
        from catalog_export.db import get_available_works

        mock_chain = _chain([{"id": 1}, {"id": 2}], [{"id": 3}, {"id": 4}], [{"id": 5}])
        mock_table.return_value = mock_chain

        rows = get_available_works()

        assert [r["id"] for r in rows] == [1, 2, 3, 4, 5]
        assert [c.args for c in mock_chain.range.call_args_list] == [(0, 1), (2, 3), (4, 5)]

    @patch("catalog_export.retry.time.sleep")
    @patch("catalog_export.db._table")
    def test_retry_then_success(self, mock_table, mock_sleep):
        from catalog_export.db import get_available_works

        mock_chain = _chain()
        mock_chain.execute.side_effect = [ConnectionError("reset"), MagicMock(data=[{"id": 1}])]
        mock_table.return_value = mock_chain

        assert get_available_works() == [{"id": 1}]
        mock_sleep.assert_called_once()

    @patch("catalog_export.config.RETRY_MAX", 1)
    @patch("catalog_export.retry.time.sleep")
    @patch("catalog_export.db._table")
    def test_persistent_failure_is_fatal(self, mock_table, mock_sleep):
        from catalog_export.db import get_available_works

        mock_chain = _chain()
        mock_chain.execute.side_effect = ConnectionError("down")
        mock_table.return_value = mock_chain

        with pytest.raises(SourceQueryError):
            get_available_works()
        assert mock_chain.execute.call_count == 2


class TestGetCircles:
    """get_circles のテスト."""

    @patch("catalog_export.db._table")
    def test_counts_available_works(self, mock_table):
        from catalog_export.db import get_circles

        mock_table.return_value = _chain([
            {"id": 1, "name": "小", "dlsite_id": "RG1", "fanza_id": None, "main_genre": "音声",
             "works": [{"is_available": True}]},
            {"id": 2, "name": "大", "dlsite_id": None, "fanza_id": "F2", "main_genre": None,
             "works": [{"is_available": True}, {"is_available": True}, {"is_available": False}]},
            {"id": 3, "name": "空", "dlsite_id": None, "fanza_id": None, "main_genre": None,
             "works": []},
        ])

        circles = get_circles()

        assert [(c.name, c.work_count) for c in circles] == [("大", 2), ("小", 1), ("空", 0)]
        mock_table.assert_called_once_with("circles")


class TestDistinctNames:
    """get_actor_names / get_tag_names のテスト."""

    @patch("catalog_export.db._table")
    def test_actor_counts(self, mock_table):
        from catalog_export.db import get_actor_names

        mock_table.return_value = _chain([
            {"id": 1, "cv_names": ["春野ひより", "秋山もみじ"]},
            {"id": 2, "cv_names": ["春野ひより", "春野ひより"]},
            {"id": 3, "cv_names": None},
        ])

        names = get_actor_names()

        assert [(n.name, n.work_count) for n in names] == [("春野ひより", 2), ("秋山もみじ", 1)]

    @patch("catalog_export.db._table")
    def test_tag_json_string(self, mock_table):
        from catalog_export.db import get_tag_names

        mock_table.return_value = _chain([
            {"id": 1, "ai_tags": '["癒し", "耳かき"]'},
            {"id": 2, "ai_tags": "[broken"},
        ])

        assert [n.name for n in get_tag_names()] == ["癒し", "耳かき"]
