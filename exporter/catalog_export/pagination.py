"""タグ・声優・サークル別のグルーピングとページ分割.

処理フロー:
  1. 全作品を 1 パスで走査し、次元ごとに 名前 → 作品リスト を作る
  2. 各グループを新しい順（発売日降順・NULL は最後、同日は id 降順）に並べる
  3. INLINE_THRESHOLD 件以下のグループはページファイルを作らない（静的埋め込み）
  4. それを超えるグループは PAGE_SIZE 件ずつ 1..N ページに分割する
     （1 ページ目は静的埋め込み分と同じ内容になる）
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import dataclass
from urllib.parse import quote, unquote

from catalog_export.models import CanonicalItem, PaginationPolicy, sort_by_recency

logger = logging.getLogger(__name__)

DIMENSIONS = ("tags", "cv", "circles")

# encodeURIComponent がエスケープしない記号（英数字と "-_.~" は quote 側で常に安全）
_URI_COMPONENT_SAFE = "!*'()"


def encode_segment(name: str) -> str:
    """グループ名をパスセグメント用にエスケープする（encodeURIComponent 互換）.

    "." や ".." だけの名前はディレクトリ参照にならないよう全体をエスケープする。
    """
    if name and set(name) == {"."}:
        return "%2E" * len(name)
    return quote(name, safe=_URI_COMPONENT_SAFE)


def decode_segment(segment: str) -> str:
    return unquote(segment)


def _names(item: CanonicalItem, dimension: str) -> tuple[str, ...]:
    if dimension == "tags":
        return item.tags
    if dimension == "cv":
        return item.cast
    if dimension == "circles":
        return (item.circle_name,) if item.circle_name else ()
    raise ValueError(f"unknown dimension: {dimension}")


@dataclass(frozen=True)
class Page:
    """グループの 1 ページ分."""

    dimension: str
    group: str
    number: int  # 1 始まり
    items: tuple[CanonicalItem, ...]

    @property
    def path(self) -> str:
        return f"{self.dimension}/{encode_segment(self.group)}/{self.number}.json"


@dataclass(frozen=True)
class GroupPlan:
    """1 グループの出力計画."""

    dimension: str
    name: str
    items: tuple[CanonicalItem, ...]
    inline: bool
    pages: tuple[Page, ...]

    @property
    def count(self) -> int:
        return len(self.items)

    @property
    def total_pages(self) -> int:
        return len(self.pages)


def group_items(items: list[CanonicalItem], dimension: str) -> dict[str, list[CanonicalItem]]:
    """名前 → 新しい順の作品リスト. 作品のない名前は含まれない."""
    groups: dict[str, list[CanonicalItem]] = defaultdict(list)
    for item in items:
        for name in _names(item, dimension):
            groups[name].append(item)
    return {name: sort_by_recency(members) for name, members in groups.items()}


def paginate(
    dimension: str, name: str, items: list[CanonicalItem], page_size: int
) -> tuple[Page, ...]:
    """並び済みの items を page_size 件ずつに分ける."""
    total_pages = math.ceil(len(items) / page_size)
    return tuple(
        Page(
            dimension=dimension,
            group=name,
            number=page,
            items=tuple(items[(page - 1) * page_size:page * page_size]),
        )
        for page in range(1, total_pages + 1)
    )


def plan_groups(
    items: list[CanonicalItem],
    policy: PaginationPolicy,
    dimensions: tuple[str, ...] = DIMENSIONS,
) -> list[GroupPlan]:
    """全次元のグループ計画を名前順で返す."""
    plans: list[GroupPlan] = []
    for dimension in dimensions:
        groups = group_items(items, dimension)
        paged = 0
        page_count = 0
        for name in sorted(groups):
            members = groups[name]
            inline = len(members) <= policy.inline_threshold
            pages = () if inline else paginate(dimension, name, members, policy.page_size)
            plans.append(GroupPlan(dimension, name, tuple(members), inline, pages))
            if not inline:
                paged += 1
                page_count += len(pages)
        logger.info(
            "グルーピング: %s = %d グループ（ページ分割 %d グループ / %d ファイル）",
            dimension, len(groups), paged, page_count,
        )
    return plans


def summarize_groups(plans: list[GroupPlan]) -> dict[str, list[dict]]:
    """次元 → グループ一覧（作品数の多い順、同数は名前順）."""
    summary: dict[str, list[dict]] = {}
    for plan in plans:
        summary.setdefault(plan.dimension, []).append({
            "name": plan.name,
            "slug": encode_segment(plan.name),
            "count": plan.count,
            "inline": plan.inline,
            "pages": plan.total_pages,
        })
    for entries in summary.values():
        entries.sort(key=lambda e: (-e["count"], e["name"]))
    return summary
