"""カタログエクスポート — メインエントリーポイント.

処理フロー:
  1. DB から公開中の作品・サークル・声優名・タグ名を取得
  2. 行データを正規化（非公開・不正行を除外）
  3. マーケットプレイス横断で価格を正規化
  4. 検索インデックスを生成
  5. タグ・声優・サークル別にグルーピングし、大きいグループはページ分割
  6. 索引を作ってから関連作品を選定
  7. 一覧ビュー・フィード・サイトマップを生成
  8. ステージングに書き出して公開（失敗時は何も公開しない）
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from datetime import datetime, timezone
from pathlib import Path

from catalog_export import config
from catalog_export.db import (
    connect,
    get_actor_names,
    get_available_works,
    get_circles,
    get_tag_names,
)
from catalog_export.errors import ExportError
from catalog_export.feed import build_feed
from catalog_export.models import PaginationPolicy
from catalog_export.normalizer import check_drop_rate, normalize_rows
from catalog_export.pagination import DIMENSIONS, plan_groups, summarize_groups
from catalog_export.pricing import price_items
from catalog_export.related import build_related_map
from catalog_export.search_index import build_search_index
from catalog_export.sitemap import build_sitemap
from catalog_export.snapshot import SnapshotWriter, publish_remote
from catalog_export.views import build_list_views, to_view_record

logger = logging.getLogger(__name__)


def setup_logging() -> None:
    """ロギングの初期設定."""
    config.LOG_DIR.mkdir(parents=True, exist_ok=True)
    log_file = config.LOG_DIR / f"export_{datetime.now().strftime('%Y%m%d')}.log"
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_file, encoding="utf-8"),
        ],
    )


def snapshot_version(now: datetime) -> str:
    return now.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def _check_names(dimension: str, grouped: set[str], queried: set[str]) -> None:
    """グループ名と DB の名前一覧の食い違いを警告する（中断はしない）."""
    missing = grouped - queried
    extra = queried - grouped
    if missing or extra:
        logger.warning(
            "%s の名前一覧が一致しません: グループのみ %d 件, クエリのみ %d 件",
            dimension, len(missing), len(extra),
        )


def _circle_entries(entries: list[dict], circles) -> list[dict]:
    """サークル一覧にサークルのメタデータを付ける."""
    by_name = {}
    for c in circles:
        by_name.setdefault(c.name, c)
    out = []
    for entry in entries:
        circle = by_name.get(entry["name"])
        if circle is not None:
            entry = {
                **entry,
                "id": circle.id,
                "dlsiteId": circle.dlsite_id,
                "fanzaId": circle.fanza_id,
                "mainGenre": circle.main_genre,
            }
        out.append(entry)
    return out


def run_export(
    output_dir: Path,
    now: datetime,
    workers: int = 1,
    related_limit: int = config.RELATED_LIMIT,
    policy: PaginationPolicy | None = None,
    upload: bool = False,
) -> Path:
    """エクスポートを 1 回実行し、公開したバージョンのディレクトリを返す.

    Raises:
        ExportError: クエリ失敗・除外率超過・書き込み失敗など（何も公開されない）
    """
    logger.info("=== カタログエクスポート 開始 ===")
    start_time = time.time()
    policy = policy or PaginationPolicy()
    version = snapshot_version(now)

    # 1. DB から取得
    rows = get_available_works()
    circles = get_circles()
    actors = get_actor_names()
    tags = get_tag_names()
    logger.info(
        "取得: works=%d, circles=%d, 声優=%d, タグ=%d",
        len(rows), len(circles), len(actors), len(tags),
    )

    # 2. 正規化
    normalized = normalize_rows(rows, workers)
    check_drop_rate(normalized, config.MAX_DROP_RATE)

    # 3. 価格
    items = price_items(normalized.items, now, workers)

    # 4. 検索インデックス
    search_index = build_search_index(items)

    # 5. グルーピング・ページ分割
    plans = plan_groups(items, policy)
    summary = summarize_groups(plans)
    _check_names("cv", {e["name"] for e in summary.get("cv", [])}, {a.name for a in actors})
    _check_names("tags", {e["name"] for e in summary.get("tags", [])}, {t.name for t in tags})

    # 6. 関連作品（全作品の索引ができてから）
    related = build_related_map(items, related_limit)

    # 7. 一覧・フィード・サイトマップ
    views = build_list_views(items)
    feed = build_feed(items, now)
    sitemap = build_sitemap(
        work_ids=[i.id for i in items],
        actor_names=[a.name for a in actors],
        tag_names=[t.name for t in tags],
        circle_names=[c.name for c in circles if c.work_count > 0],
        now=now,
    )

    # 8. 書き出し・公開
    page_files = 0
    with SnapshotWriter(output_dir, version) as writer:
        writer.write_json("search-index.json", search_index)
        for dimension in DIMENSIONS:
            entries = summary.get(dimension, [])
            if dimension == "circles":
                entries = _circle_entries(entries, circles)
            writer.write_json(f"{dimension}.json", entries)
        for plan in plans:
            for page in plan.pages:
                writer.write_json(page.path, [to_view_record(i) for i in page.items])
                page_files += 1
        writer.write_json("related.json", {str(k): v for k, v in related.items()})
        for name, records in views.items():
            writer.write_json(f"lists/{name}.json", records)
        writer.write_text("feed.xml", feed)
        writer.write_text("sitemap.xml", sitemap)
        writer.write_json("manifest.json", {
            "version": version,
            "generatedAt": now.isoformat(),
            "policy": {"pageSize": policy.page_size, "inlineThreshold": policy.inline_threshold},
            "counts": {
                "works": len(items),
                "dropped": len(normalized.dropped),
                "searchIndex": len(search_index),
                "groups": {d: len(summary.get(d, [])) for d in DIMENSIONS},
                "pageFiles": page_files,
            },
        })
        version_dir = writer.publish()

    if upload:
        publish_remote(version_dir, version, config.SNAPSHOT_BUCKET, config.SNAPSHOT_PREFIX)

    elapsed = time.time() - start_time
    logger.info("=== カタログエクスポート 完了 ===")
    logger.info(
        "作品: %d 件, ページファイル: %d 件, 所要時間: %.1f 秒",
        len(items), page_files, elapsed,
    )
    return version_dir


def _parse_now(value: str) -> datetime:
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="カタログのスナップショットを書き出す")
    parser.add_argument("--supabase-url", default=config.SUPABASE_URL, help="Supabase URL（必須）")
    parser.add_argument("--supabase-key", default=config.SUPABASE_SECRET_KEY, help="Supabase secret key")
    parser.add_argument("--output-dir", type=Path, default=config.OUTPUT_DIR, help="出力先ルート")
    parser.add_argument("--now", type=_parse_now, help="基準時刻（ISO 8601）。再現実行用")
    parser.add_argument("--workers", type=int, default=config.EXPORT_WORKERS, help="ワーカープロセス数")
    parser.add_argument("--related-limit", type=int, default=config.RELATED_LIMIT, help="関連作品の件数")
    parser.add_argument("--upload", action="store_true", help="SNAPSHOT_BUCKET にも公開する")
    args = parser.parse_args(argv)

    if not args.supabase_url:
        parser.error("--supabase-url (or SUPABASE_URL) is required")
    if not args.supabase_key:
        parser.error("--supabase-key (or SUPABASE_SECRET_KEY) is required")
    if args.upload and not config.SNAPSHOT_BUCKET:
        parser.error("--upload requires SNAPSHOT_BUCKET")

    setup_logging()
    connect(args.supabase_url, args.supabase_key)
    now = args.now or datetime.now(timezone.utc)

    try:
        run_export(
            args.output_dir,
            now,
            workers=args.workers,
            related_limit=args.related_limit,
            upload=args.upload,
        )
    except ExportError as e:
        logger.error("エクスポート失敗: %s", e)
        raise SystemExit(1) from e


if __name__ == "__main__":
    main()
