"""Reusable task templates stored as ``templates/<name>.md``."""

from datetime import UTC, datetime

import structlog

from minion_hive.errors import TemplateNotFoundError
from minion_hive.metadata import validate_name
from minion_hive.models import TemplateInfo
from minion_hive.storage import FileStore

logger = structlog.get_logger()

TEMPLATES_NAMESPACE = "templates"
TEMPLATE_SUFFIX = ".md"
PREVIEW_LENGTH = 100


class TemplateStore:
    def __init__(self, store: FileStore, namespace: str = TEMPLATES_NAMESPACE):
        self.store = store
        self.namespace = namespace

    def _key(self, name: str) -> str:
        return f"{self.namespace}/{name}{TEMPLATE_SUFFIX}"

    def save(self, name: str, content: str) -> TemplateInfo:
        validate_name(name, kind="Template")
        self.store.put(self._key(name), content)
        logger.info("template_saved", template=name)
        return self._info(name)

    def get(self, name: str) -> str:
        content = self.store.get(self._key(name))
        if content is None:
            raise TemplateNotFoundError(f"Template '{name}' not found", name=name)
        return content

    def list_templates(self) -> list[TemplateInfo]:
        return [
            self._info(key[: -len(TEMPLATE_SUFFIX)])
            for key in self.store.keys(self.namespace)
            if key.endswith(TEMPLATE_SUFFIX) and "/" not in key
        ]

    def delete(self, name: str) -> None:
        if not self.store.delete(self._key(name)):
            raise TemplateNotFoundError(f"Template '{name}' not found", name=name)
        logger.info("template_deleted", template=name)

    def _info(self, name: str) -> TemplateInfo:
        path = self.store.locate(self._key(name))
        stat = path.stat()
        content = self.get(name)
        return TemplateInfo(
            name=name,
            path=str(path),
            size=stat.st_size,
            modified_at=datetime.fromtimestamp(stat.st_mtime, UTC),
            preview=content[:PREVIEW_LENGTH],
        )
