"""Read-only views over all minions.

Joins metadata, worker signals, mailbox sizes and live sandbox state. A
sandbox the runtime can no longer see is reported with a sentinel instead
of failing the whole view.
"""

from collections import Counter
from collections.abc import AsyncIterator
from datetime import UTC, datetime

import structlog

from minion_hive.errors import AdapterError, HiveError, NoSandboxError
from minion_hive.formatting import human_age
from minion_hive.mailbox import Mailbox
from minion_hive.metadata import MetadataStore
from minion_hive.models import (
    CollectResult,
    ContainerStats,
    ExecResult,
    HealthReport,
    MinionMeta,
    MinionStatus,
    MinionView,
)
from minion_hive.runtime import SandboxRuntime, must_adapter_call

logger = structlog.get_logger()

CONTAINER_REMOVED = "removed"
LOGS_REMOVED = "(container removed)"
DEFAULT_LOG_LINES = 50


class Registry:
    """List, search and report on minions."""

    def __init__(self, minions: MetadataStore, mailbox: Mailbox, runtime: SandboxRuntime):
        self.minions = minions
        self.mailbox = mailbox
        self.runtime = runtime

    async def list_minions(self) -> list[MinionView]:
        views = []
        for name in self.minions.names():
            try:
                meta = self.minions.load(name)
            except HiveError as e:
                logger.warning("minion_skipped", minion=name, error=str(e))
                continue
            views.append(await self._view(meta))
        return views

    async def search(
        self,
        text: str | None = None,
        status: str | None = None,
    ) -> list[MinionView]:
        """Filter list_minions() by a name/task substring and by any of the three statuses."""
        needle = text.lower() if text else None
        wanted = status.lower() if status else None

        matches = []
        for view in await self.list_minions():
            if needle and needle not in view.name.lower() and needle not in view.task.lower():
                continue
            if wanted and wanted not in _statuses(view):
                continue
            matches.append(view)
        return matches

    async def status(self, name: str) -> MinionStatus:
        meta = self.minions.load(name)
        view = await self._view(meta)

        logs = None
        if meta.container_id:
            try:
                logs = await self.runtime.logs(meta.container_id)
            except AdapterError:
                logs = LOGS_REMOVED

        return MinionStatus(
            **view.model_dump(),
            output=self.minions.read_output(name),
            logs=logs,
        )

    async def collect(self, name: str) -> CollectResult:
        status = await self.status(name)
        return CollectResult(
            name=name,
            task_status=status.task_status,
            output=status.output,
            logs=status.logs,
        )

    async def logs(self, name: str, lines: int = DEFAULT_LOG_LINES) -> str:
        meta = self._with_sandbox(name, "read logs of")
        return await must_adapter_call(
            self.runtime.logs(meta.container_id, tail=lines), "read logs of", name
        )

    async def follow_logs(self, name: str) -> AsyncIterator[str]:
        """Yield live log output until the sandbox stops or the caller stops iterating."""
        meta = self._with_sandbox(name, "watch")
        try:
            async for chunk in self.runtime.follow_logs(meta.container_id):
                yield chunk
        except AdapterError as e:
            logger.error("adapter_call_failed", action="watch", minion=name, error=str(e))
            raise AdapterError(f"Failed to watch minion '{name}': {e}", name=name) from e

    async def exec(self, name: str, command: list[str]) -> ExecResult:
        meta = self._with_sandbox(name, "exec in")
        result = await must_adapter_call(
            self.runtime.exec(meta.container_id, command), "exec in", name
        )
        logger.info("minion_exec", minion=name, command=command, exit_code=result.exit_code)
        return result

    async def stats(self, name: str) -> ContainerStats:
        meta = self._with_sandbox(name, "read stats of")
        return await must_adapter_call(
            self.runtime.stats(meta.container_id), "read stats of", name
        )

    async def health(self) -> HealthReport:
        report = HealthReport()
        report.docker_running = await self.runtime.ping()
        if not report.docker_running:
            return report

        try:
            created = await self.runtime.image_created()
        except AdapterError as e:
            logger.warning("image_inspect_failed", error=str(e))
            created = None
        if created:
            report.image_exists = True
            report.image_created = created
            report.image_age = human_age(created, datetime.now(UTC))

        views = await self.list_minions()
        counts = Counter(view.container_status or view.status.value for view in views)
        report.minions_total = len(views)
        report.minions_running = counts.get("running", 0)
        report.by_status = dict(counts)

        try:
            report.disk = await self.runtime.disk_usage()
        except AdapterError as e:
            logger.warning("disk_usage_failed", error=str(e))
        return report

    async def _view(self, meta: MinionMeta) -> MinionView:
        container_status = None
        if meta.container_id:
            try:
                container_status = await self.runtime.inspect_status(meta.container_id)
            except AdapterError:
                container_status = CONTAINER_REMOVED

        return MinionView(
            **meta.model_dump(),
            task_status=self.minions.read_signal(meta.name),
            container_status=container_status,
            message_count=self.mailbox.count(meta.name),
        )

    def _with_sandbox(self, name: str, action: str) -> MinionMeta:
        meta = self.minions.load(name)
        if not meta.container_id:
            raise NoSandboxError(f"Cannot {action} minion '{name}': it has no container", name=name)
        return meta


def _statuses(view: MinionView) -> set[str]:
    values = {view.status.value}
    if view.task_status:
        values.add(view.task_status.value.lower())
    if view.container_status:
        values.add(view.container_status.lower())
    return values


def display_status(view: MinionView) -> str:
    """Single status word for listings: worker signal first, lifecycle otherwise."""
    if view.task_status:
        return view.task_status.value
    return view.status.value
