"""Record store interface.

Keys are slash separated paths such as ``minions/worker-1/meta.json``.
The first segments of a key form its namespace; a namespace exists once it
has been created or holds at least one record. Every ``put`` replaces the
whole record, readers never observe a partial value.
"""

from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath


def join_key(*parts: str) -> str:
    return str(PurePosixPath(*parts))


class RecordStore(ABC):
    """Key-value storage used by the metadata store and the mailbox.

    Subclasses implement the four primitives; the namespace helpers are
    built on top of them and may be overridden with cheaper native versions.
    """

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the record stored under key, or None."""

    @abstractmethod
    def put(self, key: str, value: str) -> None:
        """Store value under key, replacing any previous record."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove the record. Returns False when there was none."""

    @abstractmethod
    def keys(self, prefix: str) -> list[str]:
        """All keys below prefix, relative to it, sorted."""

    @abstractmethod
    def exists(self, namespace: str) -> bool:
        """Whether the namespace exists."""

    @abstractmethod
    def create_namespace(self, namespace: str, mode: int | None = None) -> None:
        """Create an empty namespace. Existing namespaces are left alone."""

    @abstractmethod
    def locate(self, namespace: str) -> Path:
        """Host path backing the namespace, used for sandbox mounts."""

    def children(self, namespace: str) -> list[str]:
        """Immediate child names of a namespace."""
        names = {PurePosixPath(key).parts[0] for key in self.keys(namespace)}
        return sorted(names)

    def drop(self, namespace: str) -> int:
        """Delete a namespace with everything in it. Returns records removed."""
        removed = 0
        for key in self.keys(namespace):
            if self.delete(join_key(namespace, key)):
                removed += 1
        return removed

    def copy(self, source: str, target: str) -> None:
        self.create_namespace(target)
        for key in self.keys(source):
            value = self.get(join_key(source, key))
            if value is not None:
                self.put(join_key(target, key), value)

    def move(self, source: str, target: str) -> None:
        self.copy(source, target)
        self.drop(source)
