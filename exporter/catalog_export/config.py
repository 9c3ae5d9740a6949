"""設定モジュール — 環境変数・エクスポート設定."""

import os
from pathlib import Path

from dotenv import load_dotenv

# .env はプロジェクトルートに配置
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# --- Supabase ---
# 接続先は CLI 引数でも上書きできる（必須チェックは CLI 側で行う）
SUPABASE_URL: str = os.environ.get("SUPABASE_URL", "")
SUPABASE_SECRET_KEY: str = os.environ.get("SUPABASE_SECRET_KEY", "")
SUPABASE_SCHEMA: str = os.environ.get("SUPABASE_SCHEMA", "public")

# PostgREST の 1 リクエストあたり最大取得件数
QUERY_BATCH_SIZE = 1000

# --- 出力先 ---
OUTPUT_DIR = Path(os.environ.get("EXPORT_OUTPUT_DIR", _PROJECT_ROOT / "public" / "data"))

# リモート公開先（空なら公開しない）
SNAPSHOT_BUCKET: str = os.environ.get("SNAPSHOT_BUCKET", "")
SNAPSHOT_PREFIX: str = os.environ.get("SNAPSHOT_PREFIX", "data")

# --- サイト ---
SITE_BASE_URL = os.environ.get("SITE_BASE_URL", "https://2d-adb.com")
SITE_TITLE = "2D-ADB - 同人音声・ASMRデータベース"
SITE_DESCRIPTION = "同人音声・ASMR作品の新着情報、セール情報をお届け"

# --- マーケットプレイス ---
# 並び順がそのまま同額時の優先順位になる
MARKETPLACES = ("dlsite", "fanza")

# 日付のみ・タイムゾーンなしの値はこのタイムゾーンとして解釈する
SOURCE_TIMEZONE = "Asia/Tokyo"

# セール期限切れの割引を実効価格にも反映するか
EXPIRY_AWARE_PRICING = _env_bool("EXPIRY_AWARE_PRICING", True)

# --- ページ分割ポリシー ---
# ビルド側（planner）と実行時ローダーの両方がここを参照する
PAGE_SIZE = 20
INLINE_THRESHOLD = 100

# --- 関連作品 ---
RELATED_LIMIT = 4

# --- 一覧ビュー ---
LIST_VIEW_LIMIT = 20
BARGAIN_MAX_PRICE = 500
HIGH_RATING_MIN = 4.5
FEED_ITEM_COUNT = 20

# --- 実行設定 ---
EXPORT_WORKERS = int(os.environ.get("EXPORT_WORKERS", "1"))
# 不正行の割合がこれを超えたら中断する
MAX_DROP_RATE = float(os.environ.get("MAX_DROP_RATE", "0.1"))

# --- リトライ・リクエスト設定 ---
RETRY_MAX = int(os.environ.get("RETRY_MAX", "3"))
RETRY_BACKOFF = float(os.environ.get("RETRY_BACKOFF", "2.0"))
REQUEST_TIMEOUT = 15  # 秒

# --- ログ ---
LOG_DIR = Path(os.environ.get("EXPORT_LOG_DIR", Path(__file__).resolve().parent.parent / "logs"))
