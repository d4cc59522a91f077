"""Per-minion durable state on top of a RecordStore.

Layout of one minion namespace (``minions/<name>/``):

    meta.json                 MinionMeta, rewritten on every mutation
    TASK.md                   full task text
    STATUS                    signal written by the worker process, read only here
    output/claude-output.log  worker output, read only here

The namespace existing is the only existence check; there is no index.
"""

from datetime import timedelta
from pathlib import Path
import re

from pydantic import ValidationError
import structlog

from minion_hive.errors import (
    HiveError,
    InvalidAgeFormatError,
    InvalidNameError,
    MinionNotFoundError,
    NotFoundError,
)
from minion_hive.models import MinionMeta, TaskStatus
from minion_hive.storage import RecordStore, join_key

logger = structlog.get_logger()

NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")
MAX_NAME_LENGTH = 128
AGE_PATTERN = re.compile(r"^(\d+)([dhm])$")
AGE_UNITS = {"d": "days", "h": "hours", "m": "minutes"}

MINIONS_NAMESPACE = "minions"
META_FILE = "meta.json"
TASK_FILE = "TASK.md"
STATUS_FILE = "STATUS"
OUTPUT_DIR = "output"
OUTPUT_FILE = f"{OUTPUT_DIR}/claude-output.log"

# The sandbox user differs from the host user and must write into the workspace
WORKSPACE_MODE = 0o777


def validate_name(name: str, kind: str = "Minion") -> str:
    """Check a minion or template name.

    Raises:
        InvalidNameError: name is empty, longer than 128 characters or
            contains anything but letters, digits, ``_``, ``.``, ``-``
            (the first character must be a letter or digit).
    """
    if not name or len(name) > MAX_NAME_LENGTH:
        raise InvalidNameError(
            f"{kind} name must be 1-{MAX_NAME_LENGTH} characters, got {len(name or '')}",
            name=name,
        )
    if not NAME_PATTERN.fullmatch(name):
        raise InvalidNameError(
            f"Invalid {kind.lower()} name '{name}': use letters, digits, '_', '.', '-' "
            "and start with a letter or digit",
            name=name,
        )
    return name


def parse_age(value: str) -> timedelta:
    """Parse ``7d``, ``12h`` or ``30m`` into a timedelta."""
    match = AGE_PATTERN.fullmatch(value.strip()) if value else None
    if not match:
        raise InvalidAgeFormatError(
            f"Invalid age '{value}': expected a number followed by d, h or m (e.g. 7d)"
        )
    amount, unit = match.groups()
    return timedelta(**{AGE_UNITS[unit]: int(amount)})


class MetadataStore:
    """Reads and writes minion records. No locking: whole-record replace only."""

    def __init__(self, store: RecordStore, namespace: str = MINIONS_NAMESPACE):
        self.store = store
        self.namespace = namespace

    def key(self, name: str, *parts: str) -> str:
        return join_key(self.namespace, name, *parts)

    def exists(self, name: str) -> bool:
        return self.store.exists(self.key(name))

    def require(self, name: str, error: type[NotFoundError] = MinionNotFoundError) -> None:
        if not self.exists(name):
            raise error(f"Minion '{name}' not found", name=name)

    def names(self) -> list[str]:
        return self.store.children(self.namespace)

    def workspace_path(self, name: str) -> Path:
        return self.store.locate(self.key(name))

    def create_workspace(self, name: str) -> None:
        self.store.create_namespace(self.key(name), mode=WORKSPACE_MODE)
        self.store.create_namespace(self.key(name, OUTPUT_DIR), mode=WORKSPACE_MODE)

    def load(self, name: str) -> MinionMeta:
        self.require(name)
        raw = self.store.get(self.key(name, META_FILE))
        if raw is None:
            raise MinionNotFoundError(f"Minion '{name}' has no metadata", name=name)
        try:
            return MinionMeta.model_validate_json(raw)
        except ValidationError as e:
            raise HiveError(f"Minion '{name}' has unreadable metadata: {e}", name=name) from e

    def save(self, meta: MinionMeta) -> None:
        self.store.put(self.key(meta.name, META_FILE), meta.model_dump_json(indent=2))

    def read_task(self, name: str) -> str | None:
        return self.store.get(self.key(name, TASK_FILE))

    def write_task(self, name: str, task: str) -> None:
        self.store.put(self.key(name, TASK_FILE), task)

    def read_signal(self, name: str) -> TaskStatus | None:
        """Current worker-written signal, None while absent or unrecognised."""
        raw = self.store.get(self.key(name, STATUS_FILE))
        if raw is None:
            return None
        value = raw.strip()
        if not value:
            return None
        try:
            return TaskStatus(value)
        except ValueError:
            logger.warning("unknown_task_status", minion=name, value=value[:50])
            return None

    def clear_signal(self, name: str) -> None:
        self.store.delete(self.key(name, STATUS_FILE))

    def read_output(self, name: str) -> str | None:
        return self.store.get(self.key(name, OUTPUT_FILE))

    def clear_output(self, name: str) -> None:
        self.store.drop(self.key(name, OUTPUT_DIR))
        self.store.create_namespace(self.key(name, OUTPUT_DIR), mode=WORKSPACE_MODE)

    def remove(self, name: str) -> None:
        self.store.drop(self.key(name))

    def move(self, old_name: str, new_name: str) -> None:
        self.store.move(self.key(old_name), self.key(new_name))

    def copy(self, source: str, target: str) -> None:
        self.store.copy(self.key(source), self.key(target))
        self.store.create_namespace(self.key(target), mode=WORKSPACE_MODE)
