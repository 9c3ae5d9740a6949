"""クライアント側検索用インデックスの生成.

ブラウザが初回検索時に丸ごと取得するため、キーは短縮名にし、
空の値は null を書かずにキーごと省略する。

検索仕様: クエリ文字列全体の大文字小文字を区別しない部分一致で、
タイトル・サークル名・声優名・タグのいずれかに一致すれば対象（OR）。
"""

from __future__ import annotations

import logging

from catalog_export.models import CanonicalItem

logger = logging.getLogger(__name__)

# 検索対象のキー
_TEXT_FIELDS = ("t", "c")
_LIST_FIELDS = ("cv", "tg")


def _first(values):
    """最初の None でない値（0 は有効値として扱う）."""
    for v in values:
        if v is not None:
            return v
    return None


def to_search_record(item: CanonicalItem) -> dict:
    """CanonicalItem → 検索レコード."""
    pricing = item.pricing
    cat = item.kind
    dlsite = item.offer("dlsite")
    fanza = item.offer("fanza")

    record: dict = {"id": item.id, "t": item.title}
    if item.circle_name:
        record["c"] = item.circle_name
    if item.cast:
        record["cv"] = list(item.cast)
    if item.tags:
        record["tg"] = list(item.tags)

    if pricing and pricing.lowest_price is not None:
        record["p"] = pricing.lowest_price
        # 表示用の元値は最安マーケットプレイスの定価
        cheaper = item.offer(pricing.cheaper_marketplace)
        if cheaper and cheaper.list_price is not None:
            record["dp"] = cheaper.list_price
    if pricing and pricing.is_on_sale and pricing.max_discount_rate:
        record["dr"] = pricing.max_discount_rate

    if item.thumbnail_url:
        record["img"] = item.thumbnail_url
    record["cat"] = cat
    if cat == "asmr" and item.duration_minutes:
        record["dur"] = item.duration_minutes
    if cat == "game" and item.cg_count:
        record["cg"] = item.cg_count
    if item.release_date:
        record["rel"] = item.release_date

    record["dl"] = bool(dlsite and dlsite.product_id)
    record["fa"] = bool(fanza and fanza.product_id)
    if dlsite and dlsite.rank:
        record["dlRank"] = dlsite.rank
    if fanza and fanza.rank:
        record["faRank"] = fanza.rank

    rating = _first(o.rating for o in item.offers)
    if rating is not None:
        record["rt"] = rating
    review_count = _first(o.review_count for o in item.offers)
    if review_count is not None:
        record["rc"] = review_count
    if pricing and pricing.is_on_sale and pricing.sale_end is not None:
        record["saleEnd"] = pricing.sale_end.isoformat()
    return record


def build_search_index(items: list[CanonicalItem]) -> list[dict]:
    """入力と同じ順序で検索レコードを並べる."""
    index = [to_search_record(item) for item in items]
    logger.info("検索インデックス: %d 件", len(index))
    return index


def matches(record: dict, query: str) -> bool:
    """正規化済み（casefold 済み）のクエリがレコードに一致するか."""
    for key in _TEXT_FIELDS:
        value = record.get(key)
        if value and query in value.casefold():
            return True
    for key in _LIST_FIELDS:
        for value in record.get(key, ()):
            if query in value.casefold():
                return True
    return False


def search(records: list[dict], query: str) -> list[dict]:
    """検索インデックスから部分一致で絞り込む. 空クエリは全件."""
    q = (query or "").strip().casefold()
    if not q:
        return list(records)
    return [r for r in records if matches(r, q)]
