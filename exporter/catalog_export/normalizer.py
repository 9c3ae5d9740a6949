"""DB の行データを CanonicalItem に正規化するモジュール.

方針:
  - 非公開（is_available = false）の行は最初に除外
  - JSON 文字列の配列カラムは壊れていても空リストにして続行
  - id / title が欠けた行は InvalidRowError として除外・件数を報告
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time
from zoneinfo import ZoneInfo

from catalog_export.config import MARKETPLACES, SOURCE_TIMEZONE
from catalog_export.errors import DropRateExceededError, InvalidRowError
from catalog_export.models import CanonicalItem, MarketplaceOffer
from catalog_export.workers import map_partitions

logger = logging.getLogger(__name__)

_SOURCE_TZ = ZoneInfo(SOURCE_TIMEZONE)

# PostgreSQL の timestamptz::text は "+09" のように分を省略する
_SHORT_OFFSET = re.compile(r"([+-]\d{2})$")


@dataclass
class NormalizeResult:
    """正規化の集計結果."""

    items: list[CanonicalItem] = field(default_factory=list)
    total: int = 0
    unavailable: int = 0
    dropped: list[str] = field(default_factory=list)  # 除外理由

    @property
    def drop_rate(self) -> float:
        considered = self.total - self.unavailable
        return len(self.dropped) / considered if considered else 0.0


def parse_json_list(value, column: str = "", item_id=None) -> list:
    """配列カラムを list として取り出す.

    すでに list ならそのまま、JSON 文字列ならパースする。
    壊れた JSON や list 以外の値は空リスト。
    """
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError as e:
            logger.warning("JSON パース失敗: id=%s, column=%s, error=%s", item_id, column, e)
            return []
        if isinstance(parsed, list):
            return parsed
    logger.warning("配列ではない値を無視: id=%s, column=%s", item_id, column)
    return []


def _unique_names(values: list) -> tuple[str, ...]:
    """空文字を除き、順序を保ったまま重複を除く."""
    seen: dict[str, None] = {}
    for v in values:
        if not isinstance(v, str):
            continue
        name = v.strip()
        if name and name not in seen:
            seen[name] = None
    return tuple(seen)


def _to_int(value, column: str, item_id) -> int | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        logger.warning("数値変換失敗: id=%s, column=%s, value=%r", item_id, column, value)
        return None


def _to_float(value, column: str, item_id) -> float | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("数値変換失敗: id=%s, column=%s, value=%r", item_id, column, value)
        return None


def _to_text(value) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_datetime(value) -> datetime | None:
    """セール終了日時をタイムゾーン付き datetime にする.

    日付のみの値はその日の終わり、タイムゾーンなしは SOURCE_TIMEZONE とみなす。
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime.combine(value, time(23, 59, 59))
    else:
        text = str(value).strip()
        try:
            if len(text) == 10:
                dt = datetime.combine(date.fromisoformat(text), time(23, 59, 59))
            else:
                text = _SHORT_OFFSET.sub(r"\1:00", text.replace("Z", "+00:00"))
                dt = datetime.fromisoformat(text)
        except ValueError:
            logger.warning("日時パース失敗: value=%r", value)
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=_SOURCE_TZ)
    return dt


def _parse_release_date(value) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()[:10]
    text = str(value).strip()[:10]
    try:
        return date.fromisoformat(text).isoformat()
    except ValueError:
        logger.warning("発売日パース失敗: value=%r", value)
        return None


def _build_offer(row: dict, marketplace: str, item_id: int) -> MarketplaceOffer:
    """{column}_{marketplace} / {marketplace}_{column} 形式のカラムから販売情報を組み立てる."""
    discount = _to_int(row.get(f"discount_rate_{marketplace}"), f"discount_rate_{marketplace}", item_id)
    if discount is not None and not 0 <= discount <= 100:
        logger.warning("割引率が範囲外: id=%s, %s=%s", item_id, marketplace, discount)
        discount = None

    rating = _to_float(row.get(f"rating_{marketplace}"), f"rating_{marketplace}", item_id)
    if rating is not None and not 0 <= rating <= 5:
        logger.warning("評価が範囲外: id=%s, %s=%s", item_id, marketplace, rating)
        rating = None

    review_count = _to_int(row.get(f"review_count_{marketplace}"), f"review_count_{marketplace}", item_id)
    if review_count is not None and review_count < 0:
        review_count = None

    list_price = _to_int(row.get(f"price_{marketplace}"), f"price_{marketplace}", item_id)
    if list_price is not None and list_price < 0:
        list_price = None

    return MarketplaceOffer(
        marketplace=marketplace,
        product_id=_to_text(row.get(f"{marketplace}_product_id")),
        url=_to_text(row.get(f"{marketplace}_url")),
        list_price=list_price,
        discount_rate=discount,
        sale_end=parse_datetime(row.get(f"sale_end_date_{marketplace}")),
        rating=rating,
        review_count=review_count,
        rank=_to_int(row.get(f"{marketplace}_rank"), f"{marketplace}_rank", item_id),
    )


def normalize_row(row: dict) -> CanonicalItem:
    """DB の 1 行を CanonicalItem に変換する.

    Raises:
        InvalidRowError: id または title が欠けている場合
    """
    raw_id = row.get("id")
    if raw_id is None or isinstance(raw_id, bool):
        raise InvalidRowError("missing id")
    try:
        item_id = int(raw_id)
    except (TypeError, ValueError):
        raise InvalidRowError(f"invalid id: {raw_id!r}") from None

    title = _to_text(row.get("title"))
    if not title:
        raise InvalidRowError(f"missing title: id={item_id}")

    # サークル名は埋め込み（circles:circle_id(name)）でもフラットでも受け付ける
    circle = row.get("circles") or {}
    circle_name = _to_text(row.get("circle_name") or circle.get("name"))

    return CanonicalItem(
        id=item_id,
        title=title,
        circle_id=_to_int(row.get("circle_id"), "circle_id", item_id),
        circle_name=circle_name,
        genre=_to_text(row.get("genre")),
        category=_to_text(row.get("category")),
        release_date=_parse_release_date(row.get("release_date")),
        thumbnail_url=_to_text(row.get("thumbnail_url")),
        sample_images=tuple(
            s for s in parse_json_list(row.get("sample_images"), "sample_images", item_id)
            if isinstance(s, str) and s
        ),
        cast=_unique_names(parse_json_list(row.get("cv_names"), "cv_names", item_id)),
        tags=_unique_names(parse_json_list(row.get("ai_tags"), "ai_tags", item_id)),
        offers=tuple(_build_offer(row, m, item_id) for m in MARKETPLACES),
        duration_minutes=_to_int(row.get("duration_minutes"), "duration_minutes", item_id),
        cg_count=_to_int(row.get("cg_count"), "cg_count", item_id),
        summary=_to_text(row.get("ai_summary")),
    )


def _normalize_partition(rows) -> list[tuple]:
    """(item, 除外理由) のリストを返す. 非公開行は (None, None)."""
    out: list[tuple] = []
    for row in rows:
        if row.get("is_available") is False:
            out.append((None, None))
            continue
        try:
            out.append((normalize_row(row), None))
        except InvalidRowError as e:
            out.append((None, str(e)))
    return out


def normalize_rows(rows: list[dict], workers: int = 1) -> NormalizeResult:
    """全行を正規化する. 入力順を保つ."""
    result = NormalizeResult(total=len(rows))
    for item, reason in map_partitions(_normalize_partition, rows, workers):
        if item is not None:
            result.items.append(item)
        elif reason is None:
            result.unavailable += 1
        else:
            result.dropped.append(reason)

    for reason in result.dropped[:10]:
        logger.warning("除外: %s", reason)
    logger.info(
        "正規化: %d 件 → 有効 %d 件, 非公開 %d 件, 除外 %d 件",
        result.total, len(result.items), result.unavailable, len(result.dropped),
    )
    return result


def check_drop_rate(result: NormalizeResult, max_rate: float) -> None:
    """除外率がしきい値を超えていれば中断する."""
    if result.drop_rate > max_rate:
        raise DropRateExceededError(
            f"dropped {len(result.dropped)} of {result.total - result.unavailable} rows "
            f"({result.drop_rate:.1%} > {max_rate:.1%})"
        )
