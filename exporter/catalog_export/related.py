"""関連作品の選定.

上半分: 同じ声優の作品（新しい順）
下半分: 同じタグ（一致数の多い順 → 新しい順）→ 同じサークル → 同じカテゴリ の順で補充
それでも limit に満たなければ同じカテゴリから追加する。

各段階は対象作品自身と選定済みの作品を除外する。
索引（build_related_index）は全作品を見てから作るため、選定は索引の完成後に行う。
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import Iterable

from catalog_export.config import RELATED_LIMIT
from catalog_export.models import CanonicalItem, recency_key, sort_by_recency

logger = logging.getLogger(__name__)


@dataclass
class RelatedIndex:
    """次元ごとの 値 → 新しい順の作品リスト."""

    by_cast: dict[str, list[CanonicalItem]] = field(default_factory=dict)
    by_tag: dict[str, list[CanonicalItem]] = field(default_factory=dict)
    by_circle: dict[tuple, list[CanonicalItem]] = field(default_factory=dict)
    by_category: dict[str, list[CanonicalItem]] = field(default_factory=dict)


def _circle_key(item: CanonicalItem) -> tuple | None:
    if item.circle_id is not None:
        return ("id", item.circle_id)
    if item.circle_name:
        return ("name", item.circle_name)
    return None


def build_related_index(items: list[CanonicalItem]) -> RelatedIndex:
    """全作品を 1 パスで走査して索引を作る."""
    by_cast: dict[str, list[CanonicalItem]] = defaultdict(list)
    by_tag: dict[str, list[CanonicalItem]] = defaultdict(list)
    by_circle: dict[tuple, list[CanonicalItem]] = defaultdict(list)
    by_category: dict[str, list[CanonicalItem]] = defaultdict(list)

    for item in items:
        for name in item.cast:
            by_cast[name].append(item)
        for tag in item.tags:
            by_tag[tag].append(item)
        key = _circle_key(item)
        if key is not None:
            by_circle[key].append(item)
        if item.category:
            by_category[item.category].append(item)

    def _sorted(d):
        return {k: sort_by_recency(v) for k, v in d.items()}

    return RelatedIndex(
        by_cast=_sorted(by_cast),
        by_tag=_sorted(by_tag),
        by_circle=_sorted(by_circle),
        by_category=_sorted(by_category),
    )


def _take(
    candidates: Iterable[CanonicalItem], picked: list[CanonicalItem], chosen: set[int], cap: int
) -> None:
    """candidates を順に見て、未選定のものを picked が cap 件になるまで追加する."""
    for cand in candidates:
        if len(picked) >= cap:
            return
        if cand.id not in chosen:
            chosen.add(cand.id)
            picked.append(cand)


def _shared_cast(target: CanonicalItem, index: RelatedIndex) -> list[CanonicalItem]:
    merged: dict[int, CanonicalItem] = {}
    for name in target.cast:
        for cand in index.by_cast.get(name, ()):
            merged.setdefault(cand.id, cand)
    return sort_by_recency(merged.values())


def _shared_tags(target: CanonicalItem, index: RelatedIndex) -> list[CanonicalItem]:
    overlap: Counter = Counter()
    by_id: dict[int, CanonicalItem] = {}
    for tag in target.tags:
        for cand in index.by_tag.get(tag, ()):
            overlap[cand.id] += 1
            by_id[cand.id] = cand
    return sorted(by_id.values(), key=lambda c: (overlap[c.id], recency_key(c)), reverse=True)


def recommend(
    target: CanonicalItem, index: RelatedIndex, limit: int = RELATED_LIMIT
) -> list[CanonicalItem]:
    """target の関連作品を最大 limit 件返す（target 自身・重複は含まない）."""
    if limit <= 0:
        return []
    half = limit // 2
    chosen: set[int] = {target.id}

    # 1. 同じ声優
    cast_picks: list[CanonicalItem] = []
    if target.cast:
        _take(_shared_cast(target, index), cast_picks, chosen, half)

    # 2. 同じタグ
    other_picks: list[CanonicalItem] = []
    if target.tags:
        _take(_shared_tags(target, index), other_picks, chosen, half)

    # 3. 同じサークル（タグで足りない場合）
    circle = _circle_key(target)
    if len(other_picks) < half and circle is not None:
        _take(index.by_circle.get(circle, ()), other_picks, chosen, half)

    # 4. 同じカテゴリ
    if len(other_picks) < half and target.category:
        _take(index.by_category.get(target.category, ()), other_picks, chosen, half)

    results = cast_picks + other_picks

    # まだ足りなければ同じカテゴリから limit まで補充
    if len(results) < limit and target.category:
        _take(index.by_category.get(target.category, ()), results, chosen, limit)

    return results[:limit]


def build_related_map(items: list[CanonicalItem], limit: int = RELATED_LIMIT) -> dict[int, list[int]]:
    """作品 id → 関連作品 id のリスト（id 昇順）."""
    index = build_related_index(items)
    related = {
        item.id: [r.id for r in recommend(item, index, limit)]
        for item in sorted(items, key=lambda i: i.id)
    }
    filled = sum(1 for ids in related.values() if len(ids) == limit)
    logger.info("関連作品: %d 件（%d 件ちょうど選定: %d 件）", len(related), limit, filled)
    return related
