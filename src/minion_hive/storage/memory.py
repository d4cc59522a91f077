from pathlib import Path, PurePosixPath

from minion_hive.storage.base import RecordStore


class MemoryStore(RecordStore):
    """In-memory record store for testing."""

    def __init__(self, mount_root: Path = Path("/memory")):
        self.records: dict[str, str] = {}
        self.namespaces: set[str] = set()
        self.mount_root = mount_root

    @staticmethod
    def _norm(key: str) -> str:
        return str(PurePosixPath(key))

    def get(self, key: str) -> str | None:
        return self.records.get(self._norm(key))

    def put(self, key: str, value: str) -> None:
        self.records[self._norm(key)] = value

    def delete(self, key: str) -> bool:
        return self.records.pop(self._norm(key), None) is not None

    def keys(self, prefix: str) -> list[str]:
        base = self._norm(prefix) + "/"
        return sorted(key[len(base) :] for key in self.records if key.startswith(base))

    def children(self, namespace: str) -> list[str]:
        base = self._norm(namespace)
        names = set(super().children(namespace))
        for ns in self.namespaces:
            parent = PurePosixPath(ns).parent
            if str(parent) == base:
                names.add(PurePosixPath(ns).name)
        return sorted(names)

    def exists(self, namespace: str) -> bool:
        ns = self._norm(namespace)
        if ns in self.namespaces or ns in self.records:
            return True
        return any(n.startswith(ns + "/") for n in self.namespaces) or bool(self.keys(ns))

    def create_namespace(self, namespace: str, mode: int | None = None) -> None:
        self.namespaces.add(self._norm(namespace))

    def locate(self, namespace: str) -> Path:
        return self.mount_root / namespace

    def drop(self, namespace: str) -> int:
        ns = self._norm(namespace)
        removed = super().drop(ns)
        self.namespaces = {
            n for n in self.namespaces if n != ns and not n.startswith(ns + "/")
        }
        return removed

    def copy(self, source: str, target: str) -> None:
        src = self._norm(source)
        dst = self._norm(target)
        for ns in list(self.namespaces):
            if ns == src or ns.startswith(src + "/"):
                self.namespaces.add(dst + ns[len(src) :])
        super().copy(src, dst)
