"""粗い粒度の I/O ステップ（一括読み込み・リモート公開）用のリトライ."""

from __future__ import annotations

import functools
import logging
import time
from typing import Callable

from catalog_export import config
from catalog_export.errors import RetryExhaustedError

logger = logging.getLogger(__name__)


def retry(
    max_retries: int | None = None,
    backoff: float | None = None,
    exceptions: tuple = (Exception,),
) -> Callable:
    """指数バックオフで関数をリトライするデコレータ.

    Args:
        max_retries: 最大リトライ回数（省略時は config.RETRY_MAX）
        backoff: バックオフ係数（省略時は config.RETRY_BACKOFF）
        exceptions: リトライ対象の例外

    上限に達したら RetryExhaustedError を送出する（元の例外は __cause__）。
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            tries = config.RETRY_MAX if max_retries is None else max_retries
            factor = config.RETRY_BACKOFF if backoff is None else backoff

            for attempt in range(tries + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == tries:
                        logger.error("リトライ上限到達: %s (%d 回): %s", func.__name__, tries, e)
                        raise RetryExhaustedError(
                            f"{func.__name__} failed after {tries} retries: {e}"
                        ) from e
                    delay = factor ** attempt
                    logger.warning(
                        "%s 失敗 (%d/%d)。%.1f 秒後に再試行: %s",
                        func.__name__, attempt + 1, tries + 1, delay, e,
                    )
                    time.sleep(delay)

        return wrapper

    return decorator
