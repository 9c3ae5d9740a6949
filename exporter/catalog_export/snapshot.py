"""スナップショットの書き出しと公開.

書き出しは output_root/.staging/<version>/ に行い、publish() で
output_root/versions/<version>/ へ rename したうえで current シンボリックリンクを
差し替える。途中で失敗した場合はステージングを削除し、current は前回のまま残る。
"""

from __future__ import annotations

import json
import logging
import os
import shutil
from pathlib import Path

from catalog_export import db
from catalog_export.errors import RetryExhaustedError, SnapshotWriteError
from catalog_export.retry import retry

logger = logging.getLogger(__name__)

_CONTENT_TYPES = {
    ".json": "application/json",
    ".xml": "application/xml",
}


def dump_json(data) -> str:
    """同じ入力から常に同じバイト列になるコンパクトな JSON."""
    return json.dumps(data, ensure_ascii=False, separators=(",", ":"))


class SnapshotWriter:
    """1 バージョン分のスナップショットを書き出す.

    使い方:
        with SnapshotWriter(root, version) as writer:
            writer.write_json("search-index.json", records)
            writer.publish()
    """

    def __init__(self, output_root: Path, version: str):
        self.output_root = Path(output_root)
        self.version = version
        self.staging_dir = self.output_root / ".staging" / version
        self.version_dir = self.output_root / "versions" / version
        self.files_written = 0
        self.bytes_written = 0
        self.published = False

    def __enter__(self) -> "SnapshotWriter":
        if self.version_dir.exists():
            raise SnapshotWriteError(f"version already exists: {self.version_dir}")
        try:
            if self.staging_dir.exists():
                # 中断された前回実行の残骸
                shutil.rmtree(self.staging_dir)
            self.staging_dir.mkdir(parents=True)
        except OSError as e:
            raise SnapshotWriteError(f"cannot create staging dir: {e}") from e
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if not self.published:
            self.discard()
        if exc_type is not None and issubclass(exc_type, OSError):
            raise SnapshotWriteError(f"snapshot write failed: {exc}") from exc
        return False

    def discard(self) -> None:
        """ステージングを削除する（公開済みのバージョンには触れない）."""
        if self.staging_dir.exists():
            shutil.rmtree(self.staging_dir, ignore_errors=True)
            logger.warning("ステージングを破棄: %s", self.staging_dir)

    def _resolve(self, relpath: str) -> Path:
        path = (self.staging_dir / relpath).resolve()
        if not path.is_relative_to(self.staging_dir.resolve()):
            raise SnapshotWriteError(f"path escapes snapshot: {relpath}")
        return path

    def write_text(self, relpath: str, text: str) -> Path:
        path = self._resolve(relpath)
        data = text.encode("utf-8")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise SnapshotWriteError(f"write failed: {relpath}: {e}") from e
        self.files_written += 1
        self.bytes_written += len(data)
        return path

    def write_json(self, relpath: str, data) -> Path:
        return self.write_text(relpath, dump_json(data))

    def publish(self) -> Path:
        """ステージングを確定し、current を新バージョンに向ける."""
        current = self.output_root / "current"
        tmp_link = self.output_root / f".current-{self.version}"
        try:
            self.version_dir.parent.mkdir(parents=True, exist_ok=True)
            os.rename(self.staging_dir, self.version_dir)
            self.published = True

            if tmp_link.is_symlink():
                tmp_link.unlink()
            os.symlink(Path("versions") / self.version, tmp_link, target_is_directory=True)
            os.replace(tmp_link, current)

            pointer = self.output_root / ".latest.json.tmp"
            pointer.write_text(dump_json({"version": self.version}), encoding="utf-8")
            os.replace(pointer, self.output_root / "latest.json")
        except OSError as e:
            raise SnapshotWriteError(f"publish failed: {e}") from e

        logger.info(
            "スナップショット公開: %s (%d ファイル, %d bytes)",
            self.version_dir, self.files_written, self.bytes_written,
        )
        return self.version_dir


@retry()
def _upload(bucket: str, path: str, data: bytes, content_type: str) -> None:
    db.get_client().storage.from_(bucket).upload(
        path, data, {"content-type": content_type, "upsert": "true"}
    )


def publish_remote(version_dir: Path, version: str, bucket: str, prefix: str) -> int:
    """公開済みバージョンを Supabase Storage にアップロードする.

    全ファイルのアップロード後に <prefix>/current.json を書き換えるので、
    読み手が途中状態のバージョンを参照することはない。

    Returns:
        アップロードしたファイル数（current.json を除く）
    """
    files = sorted(p for p in Path(version_dir).rglob("*") if p.is_file())
    try:
        for path in files:
            rel = path.relative_to(version_dir).as_posix()
            content_type = _CONTENT_TYPES.get(path.suffix, "application/octet-stream")
            _upload(bucket, f"{prefix}/{version}/{rel}", path.read_bytes(), content_type)
        _upload(
            bucket,
            f"{prefix}/current.json",
            dump_json({"version": version}).encode("utf-8"),
            "application/json",
        )
    except (RetryExhaustedError, OSError) as e:
        raise SnapshotWriteError(f"remote publish failed: {e}") from e

    logger.info("リモート公開: bucket=%s, %s/%s (%d ファイル)", bucket, prefix, version, len(files))
    return len(files)
