"""実行時ローダー: 公開済みスナップショットからページ・検索インデックスを取得する.

ページ取得の失敗は呼び出し側で回復可能とし、読み込み済みの作品は保持したまま
次回の load_more() で同じページを再試行する。
"""

from __future__ import annotations

import logging

import requests

from catalog_export.config import REQUEST_TIMEOUT
from catalog_export.models import PaginationPolicy
from catalog_export.pagination import encode_segment

logger = logging.getLogger(__name__)


def page_url(base_url: str, dimension: str, name: str, page: int) -> str:
    return f"{base_url.rstrip('/')}/{dimension}/{encode_segment(name)}/{page}.json"


def _get_json(url: str):
    """JSON を取得する. 失敗時は None."""
    try:
        resp = requests.get(url, headers={"Accept": "application/json"}, timeout=REQUEST_TIMEOUT)
        resp.raise_for_status()
        return resp.json()
    except (requests.RequestException, ValueError) as e:
        logger.error("取得失敗: url=%s, error=%s", url, e)
        return None


def fetch_page(base_url: str, dimension: str, name: str, page: int) -> list[dict] | None:
    """ページファイルを取得する.

    Returns:
        作品レコードのリスト。失敗時（404・通信エラー・不正な形式）は None。
    """
    data = _get_json(page_url(base_url, dimension, name, page))
    if data is None:
        return None
    if not isinstance(data, list):
        logger.error("ページの形式が不正: dimension=%s, name=%s, page=%d", dimension, name, page)
        return None
    return data


def fetch_search_index(base_url: str) -> list[dict] | None:
    """検索インデックスを丸ごと取得する. 失敗時は None."""
    data = _get_json(f"{base_url.rstrip('/')}/search-index.json")
    if not isinstance(data, list):
        return None
    return data


class GroupPageLoader:
    """1 グループの「もっと見る」読み込み状態.

    initial_items はビルド時に埋め込まれた先頭部分。ページ境界で揃っていなくてもよく、
    途中のページは再取得して読み込み済みの作品を除いて追加する。
    """

    def __init__(
        self,
        base_url: str,
        dimension: str,
        name: str,
        total_count: int,
        initial_items: list[dict],
        policy: PaginationPolicy,
    ):
        self.base_url = base_url
        self.dimension = dimension
        self.name = name
        self.total_count = total_count
        self.policy = policy
        self.items: list[dict] = list(initial_items)
        self.current_page = len(self.items) // policy.page_size
        self.last_error: str | None = None

    @property
    def has_more(self) -> bool:
        return len(self.items) < self.total_count

    @property
    def remaining(self) -> int:
        return max(0, self.total_count - len(self.items))

    def load_more(self) -> bool:
        """次のページを取得して追加する.

        Returns:
            追加できたら True。失敗時は False（items はそのまま、再試行可能）。
        """
        if not self.has_more:
            return False

        next_page = self.current_page + 1
        page_items = fetch_page(self.base_url, self.dimension, self.name, next_page)
        if page_items is None:
            self.last_error = f"failed to load page {next_page}"
            return False

        seen = {r.get("id") for r in self.items}
        self.items.extend(r for r in page_items if r.get("id") not in seen)
        self.current_page = next_page
        self.last_error = None
        return True
