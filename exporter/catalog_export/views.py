"""作品カード用レコードと一覧ビュー（新着・セール・爆安・高評価・ランキング）."""

from __future__ import annotations

import logging

from catalog_export.config import BARGAIN_MAX_PRICE, HIGH_RATING_MIN, LIST_VIEW_LIMIT
from catalog_export.models import CanonicalItem, recency_key, sort_by_recency

logger = logging.getLogger(__name__)


def to_view_record(item: CanonicalItem) -> dict:
    """作品カード表示に必要な項目だけを持つレコード（ページファイル・一覧で共通）."""
    pricing = item.pricing
    record: dict = {
        "id": item.id,
        "title": item.title,
        "circleName": item.circle_name,
        "thumbnailUrl": item.thumbnail_url,
        "releaseDate": item.release_date,
        "category": item.category,
        "kind": item.kind,
        "actors": list(item.cast),
        "aiTags": list(item.tags),
    }
    for offer in item.offers:
        suffix = offer.marketplace.capitalize()
        record[f"price{suffix}"] = offer.list_price
        record[f"discountRate{suffix}"] = offer.discount_rate
        record[f"saleEndDate{suffix}"] = offer.sale_end.isoformat() if offer.sale_end else None
        record[f"rating{suffix}"] = offer.rating
        record[f"reviewCount{suffix}"] = offer.review_count
    record["lowestPrice"] = pricing.lowest_price if pricing else None
    record["cheaperMarketplace"] = pricing.cheaper_marketplace if pricing else None
    record["isOnSale"] = pricing.is_on_sale if pricing else False
    record["maxDiscountRate"] = pricing.max_discount_rate if pricing else None
    return record


def _best_rating(item: CanonicalItem) -> float:
    return max((o.rating for o in item.offers if o.rating is not None), default=0.0)


def _total_reviews(item: CanonicalItem) -> int:
    return sum(o.review_count or 0 for o in item.offers)


def _ranked(items: list[CanonicalItem], marketplace: str) -> list[CanonicalItem]:
    ranked = []
    for i in items:
        offer = i.offer(marketplace)
        if offer and offer.rank:
            ranked.append((offer.rank, i))
    ranked.sort(key=lambda pair: (pair[0], -pair[1].id))
    return [i for _, i in ranked]


# 片方のマーケットプレイスにしか順位がない作品の不足分
_MISSING_RANK = 9999


def _kind_ranked(recent: list[CanonicalItem], kind: str) -> list[CanonicalItem]:
    """作品区分ごとの総合ランキング（DLsite・FANZA 順位の合計が小さい順、同点は新しい順）."""
    ranked = [i for i in recent if i.kind == kind and any(o.rank for o in i.offers)]
    ranked.sort(key=lambda i: sum(
        (o.rank if o and o.rank else _MISSING_RANK) for o in (i.offer("dlsite"), i.offer("fanza"))
    ))
    return ranked


def build_list_views(items: list[CanonicalItem], limit: int = LIST_VIEW_LIMIT) -> dict[str, list[dict]]:
    """一覧ビュー名 → カードレコードのリスト.

    価格集計（pricing）付与済みの items を前提とする。
    """
    recent = sort_by_recency(items)

    sale = [i for i in recent if i.pricing.is_on_sale]
    # sorted は安定ソートなので同率は新しい順のまま
    sale.sort(key=lambda i: i.pricing.max_discount_rate or 0, reverse=True)

    bargain = [
        i for i in recent
        if i.pricing.lowest_price is not None and i.pricing.lowest_price <= BARGAIN_MAX_PRICE
    ]
    bargain.sort(key=lambda i: i.pricing.lowest_price)

    high_rated = [i for i in recent if _best_rating(i) >= HIGH_RATING_MIN]
    high_rated.sort(key=lambda i: (_best_rating(i), _total_reviews(i), recency_key(i)), reverse=True)

    views = {
        "new": recent,
        "sale": sale,
        "bargain": bargain,
        "high-rated": high_rated,
        "ranking-dlsite": _ranked(items, "dlsite"),
        "ranking-fanza": _ranked(items, "fanza"),
        "ranking-voice": _kind_ranked(recent, "asmr"),
        "ranking-game": _kind_ranked(recent, "game"),
    }
    out = {name: [to_view_record(i) for i in selected[:limit]] for name, selected in views.items()}
    logger.info("一覧ビュー: %s", ", ".join(f"{k}={len(v)}" for k, v in out.items()))
    return out
