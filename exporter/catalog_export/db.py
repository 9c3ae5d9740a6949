"""Supabase データベース読み取りモジュール.

エクスポートは読み取り専用で、書き込みは一切行わない。
PostgREST は 1 リクエストの取得件数に上限があるため、全件取得は range で分割する。
"""

from __future__ import annotations

import logging
from collections import Counter

from supabase import Client, create_client

from catalog_export import config
from catalog_export.errors import RetryExhaustedError, SourceQueryError
from catalog_export.models import CircleSummary, NameCount
from catalog_export.normalizer import parse_json_list
from catalog_export.retry import retry

logger = logging.getLogger(__name__)

WORK_COLUMNS = (
    "id, circle_id, title, genre, category, release_date, "
    "dlsite_product_id, fanza_product_id, dlsite_url, fanza_url, "
    "thumbnail_url, sample_images, price_dlsite, price_fanza, "
    "discount_rate_dlsite, discount_rate_fanza, "
    "sale_end_date_dlsite, sale_end_date_fanza, "
    "dlsite_rank, fanza_rank, ai_summary, ai_tags, cv_names, "
    "duration_minutes, cg_count, "
    "rating_dlsite, rating_fanza, review_count_dlsite, review_count_fanza, "
    "is_available, circles:circle_id(name)"
)

_client: Client | None = None


def connect(url: str | None = None, key: str | None = None) -> Client:
    """クライアントを生成する（引数省略時は環境変数の値）."""
    global _client
    _client = create_client(url or config.SUPABASE_URL, key or config.SUPABASE_SECRET_KEY)
    return _client


def get_client() -> Client:
    return _client or connect()


def _table(name: str):
    """SUPABASE_SCHEMA スキーマのテーブルを参照する."""
    return get_client().schema(config.SUPABASE_SCHEMA).table(name)


@retry()
def _fetch_range(table: str, columns: str, filters: dict, start: int, end: int) -> list[dict]:
    query = _table(table).select(columns)
    for column, value in filters.items():
        query = query.eq(column, value)
    resp = query.order("id").range(start, end).execute()
    return resp.data or []


def _fetch_all(table: str, columns: str, filters: dict) -> list[dict]:
    """range を進めながら全件取得する."""
    rows: list[dict] = []
    batch = config.QUERY_BATCH_SIZE
    start = 0
    try:
        while True:
            page = _fetch_range(table, columns, filters, start, start + batch - 1)
            rows.extend(page)
            if len(page) < batch:
                break
            start += batch
    except RetryExhaustedError as e:
        raise SourceQueryError(f"query failed: table={table}: {e.__cause__}") from e
    return rows


def get_available_works() -> list[dict]:
    """公開中（is_available = true）の全作品を取得する.

    Returns:
        works の行（circles:circle_id(name) でサークル名を埋め込み済み）
    """
    rows = _fetch_all("works", WORK_COLUMNS, {"is_available": True})
    logger.info("works から %d 件取得", len(rows))
    return rows


def get_circles() -> list[CircleSummary]:
    """サークル一覧と公開中の作品数を取得する（作品数の多い順）."""
    rows = _fetch_all(
        "circles",
        "id, name, dlsite_id, fanza_id, main_genre, works(is_available)",
        {},
    )
    circles = []
    for row in rows:
        works = row.get("works") or []
        circles.append(CircleSummary(
            id=row["id"],
            name=row["name"],
            dlsite_id=row.get("dlsite_id"),
            fanza_id=row.get("fanza_id"),
            main_genre=row.get("main_genre"),
            work_count=sum(1 for w in works if w.get("is_available")),
        ))
    circles.sort(key=lambda c: (-c.work_count, c.name))
    logger.info("circles から %d 件取得", len(circles))
    return circles


def _distinct_names(column: str) -> list[NameCount]:
    """works の配列カラムを展開して 名前 → 作品数 を集計する."""
    rows = _fetch_all("works", f"id, {column}", {"is_available": True})
    counts: Counter = Counter()
    for row in rows:
        names = parse_json_list(row.get(column), column, row.get("id"))
        for name in {n.strip() for n in names if isinstance(n, str)}:
            if name:
                counts[name] += 1
    return [NameCount(name, n) for name, n in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))]


def get_actor_names() -> list[NameCount]:
    """公開中作品の声優名（cv_names）一覧."""
    return _distinct_names("cv_names")


def get_tag_names() -> list[NameCount]:
    """公開中作品のタグ名（ai_tags）一覧."""
    return _distinct_names("ai_tags")
