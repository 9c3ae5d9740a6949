"""データモデル定義."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from catalog_export.config import INLINE_THRESHOLD, PAGE_SIZE

# ジャンル文字列にこれらが含まれれば ASMR（音声作品）扱い
ASMR_MARKERS = ("ボイス", "ASMR", "音声")


@dataclass(frozen=True)
class PaginationPolicy:
    """ページ分割ポリシー. planner とローダーで同じインスタンスを共有する."""

    page_size: int = PAGE_SIZE
    inline_threshold: int = INLINE_THRESHOLD


@dataclass(frozen=True)
class MarketplaceOffer:
    """1 マーケットプレイス上の販売情報."""

    marketplace: str  # "dlsite" or "fanza"
    product_id: str | None = None  # 例: RJ01234567
    url: str | None = None
    list_price: int | None = None  # 定価（円）
    discount_rate: int | None = None  # 0〜100
    sale_end: datetime | None = None  # タイムゾーン付き
    rating: float | None = None  # 0〜5
    review_count: int | None = None
    rank: int | None = None


@dataclass(frozen=True)
class PricingSummary:
    """価格正規化の結果."""

    effective_prices: tuple[tuple[str, int], ...]  # (marketplace, 実効価格)
    lowest_price: int | None
    cheaper_marketplace: str | None
    max_discount_rate: int | None
    is_on_sale: bool
    sale_end: datetime | None  # 有効なセールのうち最も早い終了日時


@dataclass(frozen=True)
class CanonicalItem:
    """正規化済みの作品 1 件. 正規化後は変更しない."""

    id: int
    title: str
    circle_id: int | None = None
    circle_name: str | None = None
    genre: str | None = None
    category: str | None = None
    release_date: str | None = None  # YYYY-MM-DD
    thumbnail_url: str | None = None
    sample_images: tuple[str, ...] = ()
    cast: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    offers: tuple[MarketplaceOffer, ...] = ()
    duration_minutes: int | None = None
    cg_count: int | None = None
    summary: str | None = None
    pricing: PricingSummary | None = field(default=None, compare=False)

    @property
    def classification(self) -> str | None:
        """ジャンル優先、なければカテゴリ."""
        return self.genre or self.category

    @property
    def kind(self) -> str:
        """作品区分（asmr / game）."""
        value = self.classification or ""
        if any(marker in value for marker in ASMR_MARKERS):
            return "asmr"
        return "game"

    def offer(self, marketplace: str) -> MarketplaceOffer | None:
        for o in self.offers:
            if o.marketplace == marketplace:
                return o
        return None


@dataclass(frozen=True)
class CircleSummary:
    """サークル一覧クエリの 1 行."""

    id: int
    name: str
    dlsite_id: str | None
    fanza_id: str | None
    main_genre: str | None
    work_count: int


@dataclass(frozen=True)
class NameCount:
    """声優名・タグ名と作品数."""

    name: str
    work_count: int


def recency_key(item: CanonicalItem) -> tuple:
    """新しい順ソート用のキー（reverse=True で使う）.

    発売日なしは最も古い扱い、同日は id の大きい方が先。
    """
    return (item.release_date is not None, item.release_date or "", item.id)


def sort_by_recency(items) -> list[CanonicalItem]:
    return sorted(items, key=recency_key, reverse=True)
