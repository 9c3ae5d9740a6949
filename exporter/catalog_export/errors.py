"""エクスポート処理の例外定義.

ExportError 系は実行全体を中断する致命的エラー。
InvalidRowError は 1 行単位のエラーで、行を除外して処理を続行する。
"""


class ExportError(Exception):
    """エクスポートを中断する致命的エラーの基底クラス."""


class SourceQueryError(ExportError):
    """データソースへのクエリ失敗・接続断."""


class SnapshotWriteError(ExportError):
    """スナップショットの書き込み・公開失敗."""


class DropRateExceededError(ExportError):
    """不正行の除外率がしきい値を超えた."""


class RetryExhaustedError(ExportError):
    """リトライ上限に達した."""


class InvalidRowError(ValueError):
    """必須項目（id, title）が欠けている行."""
