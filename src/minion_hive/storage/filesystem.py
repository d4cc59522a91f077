"""Directory-tree backed record store."""

import os
from pathlib import Path
import shutil
import tempfile

import structlog

from minion_hive.storage.base import RecordStore

logger = structlog.get_logger()

TEMP_SUFFIX = ".tmp"


class FileStore(RecordStore):
    """Stores each record as a file below root.

    Writes go to a temporary file in the target directory and are moved
    into place with os.replace, so a concurrent reader sees either the old
    or the new record.
    """

    def __init__(self, root: Path, file_mode: int = 0o666):
        self.root = Path(root)
        self.file_mode = file_mode

    def _path(self, key: str) -> Path:
        return self.root / key

    def get(self, key: str) -> str | None:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8", errors="replace")
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            return None

    def put(self, key: str, value: str) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            dir=path.parent, prefix=f".{path.name}.", suffix=TEMP_SUFFIX
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(value)
            os.chmod(tmp_name, self.file_mode)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def delete(self, key: str) -> bool:
        try:
            self._path(key).unlink()
            return True
        except FileNotFoundError:
            return False

    def keys(self, prefix: str) -> list[str]:
        base = self._path(prefix)
        if not base.is_dir():
            return []
        keys = []
        for path in base.rglob("*"):
            if not path.is_file():
                continue
            if path.name.startswith(".") and path.name.endswith(TEMP_SUFFIX):
                continue
            keys.append(path.relative_to(base).as_posix())
        return sorted(keys)

    def children(self, namespace: str) -> list[str]:
        base = self._path(namespace)
        if not base.is_dir():
            return []
        return sorted(entry.name for entry in base.iterdir())

    def exists(self, namespace: str) -> bool:
        return self._path(namespace).exists()

    def create_namespace(self, namespace: str, mode: int | None = None) -> None:
        path = self._path(namespace)
        path.mkdir(parents=True, exist_ok=True)
        if mode is not None:
            # mkdir applies the umask, chmod does not
            os.chmod(path, mode)

    def locate(self, namespace: str) -> Path:
        return self._path(namespace).resolve()

    def drop(self, namespace: str) -> int:
        path = self._path(namespace)
        if not path.exists():
            return 0
        removed = len(self.keys(namespace))
        shutil.rmtree(path)
        logger.debug("namespace_dropped", namespace=namespace, records=removed)
        return removed

    def copy(self, source: str, target: str) -> None:
        src = self._path(source)
        if not src.exists():
            self.create_namespace(target)
            return
        shutil.copytree(src, self._path(target), dirs_exist_ok=True)

    def move(self, source: str, target: str) -> None:
        src = self._path(source)
        if not src.exists():
            return
        dst = self._path(target)
        if dst.exists():
            # shutil.move would nest src inside an existing dst
            shutil.copytree(src, dst, dirs_exist_ok=True)
            shutil.rmtree(src)
            return
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(src), str(dst))
