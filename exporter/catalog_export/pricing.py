"""マーケットプレイス横断の価格正規化.

実効価格 = 定価 × (1 − 割引率/100) を円単位で四捨五入（half-up）。
同額の場合は config.MARKETPLACES の並び順（DLsite → FANZA）で決める。
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from functools import partial

from catalog_export.config import EXPIRY_AWARE_PRICING, MARKETPLACES
from catalog_export.models import CanonicalItem, MarketplaceOffer, PricingSummary
from catalog_export.workers import map_partitions

logger = logging.getLogger(__name__)


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def discounted_price(list_price: int, discount_rate: int) -> int:
    return round_half_up(Decimal(list_price) * (Decimal(100) - Decimal(discount_rate)) / Decimal(100))


def is_sale_active(offer: MarketplaceOffer, now: datetime) -> bool:
    """割引があり、終了日時なし or 未来ならセール中."""
    if not offer.discount_rate or offer.discount_rate <= 0:
        return False
    return offer.sale_end is None or offer.sale_end > now


def effective_price(
    offer: MarketplaceOffer, now: datetime, expiry_aware: bool = EXPIRY_AWARE_PRICING
) -> int | None:
    """1 マーケットプレイスの実効価格. 定価がなければ None.

    expiry_aware=True なら期限切れの割引は無視して定価を返す。
    """
    if offer.list_price is None:
        return None
    if not offer.discount_rate:
        return offer.list_price
    if expiry_aware and not is_sale_active(offer, now):
        return offer.list_price
    return discounted_price(offer.list_price, offer.discount_rate)


def _priority(marketplace: str) -> int:
    try:
        return MARKETPLACES.index(marketplace)
    except ValueError:
        return len(MARKETPLACES)


def summarize_pricing(
    offers, now: datetime, expiry_aware: bool = EXPIRY_AWARE_PRICING
) -> PricingSummary:
    """販売情報から最安値・セール状態を集計する."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    ordered = sorted(offers, key=lambda o: _priority(o.marketplace))
    prices: list[tuple[str, int]] = []
    for offer in ordered:
        price = effective_price(offer, now, expiry_aware)
        if price is not None:
            prices.append((offer.marketplace, price))

    lowest: tuple[str, int] | None = None
    for marketplace, price in prices:
        # 厳密に小さい場合のみ更新（同額は優先順位の高い方が残る）
        if lowest is None or price < lowest[1]:
            lowest = (marketplace, price)

    active = [o for o in ordered if is_sale_active(o, now)]
    sale_ends = [o.sale_end for o in active if o.sale_end is not None]

    return PricingSummary(
        effective_prices=tuple(prices),
        lowest_price=lowest[1] if lowest else None,
        cheaper_marketplace=lowest[0] if lowest else None,
        max_discount_rate=max((o.discount_rate for o in active), default=None),
        is_on_sale=bool(active),
        sale_end=min(sale_ends) if sale_ends else None,
    )


def price_item(
    item: CanonicalItem, now: datetime, expiry_aware: bool = EXPIRY_AWARE_PRICING
) -> CanonicalItem:
    """価格集計を付与した新しい CanonicalItem を返す."""
    return replace(item, pricing=summarize_pricing(item.offers, now, expiry_aware))


def _price_partition(items, now: datetime, expiry_aware: bool) -> list[CanonicalItem]:
    return [price_item(item, now, expiry_aware) for item in items]


def price_items(
    items: list[CanonicalItem],
    now: datetime,
    workers: int = 1,
    expiry_aware: bool = EXPIRY_AWARE_PRICING,
) -> list[CanonicalItem]:
    priced = map_partitions(
        partial(_price_partition, now=now, expiry_aware=expiry_aware), items, workers
    )
    on_sale = sum(1 for i in priced if i.pricing.is_on_sale)
    logger.info("価格正規化: %d 件, セール中 %d 件", len(priced), on_sale)
    return priced
