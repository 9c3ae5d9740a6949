"""アイテム列をパーティションに分けてワーカープロセスで処理する."""

from __future__ import annotations

import logging
from concurrent.futures import ProcessPoolExecutor
from typing import Callable, Sequence

logger = logging.getLogger(__name__)


def _chunks(seq: Sequence, n: int) -> list[Sequence]:
    size = max(1, -(-len(seq) // n))
    return [seq[i:i + size] for i in range(0, len(seq), size)]


def map_partitions(func: Callable[[Sequence], list], seq: Sequence, workers: int = 1) -> list:
    """seq を workers 個に分割して func を適用し、入力順のまま結合する.

    func はプロセス間で受け渡すためモジュールレベル関数（または partial）であること。
    workers <= 1 の場合は同一プロセスで処理する。
    """
    if workers <= 1 or len(seq) < 2:
        return list(func(seq))

    parts = _chunks(list(seq), workers)
    logger.debug("パーティション処理: %d 件 → %d 分割", len(seq), len(parts))
    results: list = []
    with ProcessPoolExecutor(max_workers=workers) as pool:
        for chunk_result in pool.map(func, parts):
            results.extend(chunk_result)
    return results
