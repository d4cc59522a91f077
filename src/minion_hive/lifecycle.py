"""Lifecycle state machine for a single minion.

LifecycleManager is the only writer of ``MinionMeta.status``:

    create ──> pending ──start──> running <──resume── paused
    create_waiting ──> waiting ──start/promotion──┘  └──pause──┘
    any ──kill──> killed          any ──retry──> running (fresh sandbox)

Adapter failures during teardown (kill, retry, prune, cleanup) are logged
and dropped; failures of start, pause, resume and restart are raised.
"""

from datetime import UTC, datetime

import structlog

from minion_hive.config import Settings, get_settings
from minion_hive.errors import (
    AlreadyExistsError,
    DependencyNotFoundError,
    HiveError,
    InvalidTransitionError,
    MissingTaskError,
    NoSandboxError,
    RunningConflictError,
)
from minion_hive.mailbox import Mailbox
from minion_hive.metadata import MetadataStore, parse_age, validate_name
from minion_hive.models import (
    CleanupOptions,
    CloneOptions,
    CreateOptions,
    LifecycleStatus,
    MinionMeta,
    PruneOptions,
    PruneResult,
    ResourceLimits,
    StartOptions,
    TaskStatus,
)
from minion_hive.runtime import SandboxRuntime, must_adapter_call, try_adapter_call

logger = structlog.get_logger()

STARTABLE = (LifecycleStatus.PENDING, LifecycleStatus.WAITING)
LIVE_CONTAINER_STATES = ("running", "paused", "restarting")


class LifecycleManager:
    """Creates minions and moves them through their lifecycle."""

    def __init__(
        self,
        minions: MetadataStore,
        mailbox: Mailbox,
        runtime: SandboxRuntime,
        settings: Settings | None = None,
    ):
        self.minions = minions
        self.mailbox = mailbox
        self.runtime = runtime
        self.settings = settings or get_settings()

    # --- creation -------------------------------------------------------

    async def create(
        self, name: str, task: str, options: CreateOptions | None = None
    ) -> MinionMeta:
        """Create a pending minion, starting it right away if options.start."""
        options = options or CreateOptions()
        self._claim(name)

        meta = self._init_workspace(name, task, LifecycleStatus.PENDING, options.limits)
        logger.info("minion_created", minion=name, status=meta.status.value)

        if options.start:
            return await self.start(name, options)
        return meta

    async def create_waiting(
        self,
        name: str,
        task: str,
        depends_on: str,
        options: StartOptions | None = None,
    ) -> MinionMeta:
        """Create a minion that the scheduler starts once depends_on completes."""
        options = options or StartOptions()
        validate_name(name)
        if not self.minions.exists(depends_on):
            raise DependencyNotFoundError(
                f"Dependency minion '{depends_on}' not found", name=depends_on
            )
        self._claim(name)

        meta = self._init_workspace(
            name, task, LifecycleStatus.WAITING, options.limits, depends_on=depends_on
        )
        logger.info("minion_created", minion=name, status=meta.status.value, depends_on=depends_on)
        return meta

    def _claim(self, name: str) -> None:
        validate_name(name)
        if self.minions.exists(name):
            raise AlreadyExistsError(f"Minion '{name}' already exists", name=name)

    def _init_workspace(
        self,
        name: str,
        task: str,
        status: LifecycleStatus,
        limits: ResourceLimits,
        depends_on: str | None = None,
    ) -> MinionMeta:
        self.minions.create_workspace(name)
        self.minions.write_task(name, task)
        meta = MinionMeta(
            name=name,
            created_at=datetime.now(UTC),
            task=MinionMeta.preview(task),
            status=status,
            depends_on=depends_on,
            resource_limits=limits,
        )
        self.minions.save(meta)
        return meta

    # --- transitions ----------------------------------------------------

    async def start(self, name: str, options: StartOptions | None = None) -> MinionMeta:
        """Start the sandbox of a pending or waiting minion."""
        meta = self.minions.load(name)
        if meta.status not in STARTABLE:
            raise InvalidTransitionError(
                f"Cannot start minion '{name}': status is {meta.status.value}",
                name=name,
            )
        return await self._launch(meta, options or StartOptions())

    async def _launch(self, meta: MinionMeta, options: StartOptions) -> MinionMeta:
        name = meta.name
        if self.minions.read_task(name) is None:
            raise MissingTaskError(f"Minion '{name}' has no task", name=name)

        limits = meta.resource_limits.merged(options.limits)
        await must_adapter_call(self.runtime.ensure_image(), "prepare image for", name)
        handle = await must_adapter_call(
            self.runtime.start(name, self.minions.workspace_path(name), self._env(options), limits),
            "start",
            name,
        )

        meta.status = LifecycleStatus.RUNNING
        meta.container_id = handle
        meta.started_at = datetime.now(UTC)
        meta.resource_limits = limits
        self.minions.save(meta)
        logger.info("minion_started", minion=name, container_id=handle[:12])
        return meta

    def _env(self, options: StartOptions) -> dict[str, str]:
        env = {}
        credential = options.credential or self.settings.claude_token
        if credential:
            env["CLAUDE_CODE_OAUTH_TOKEN"] = credential
        if options.keep_alive:
            env["KEEP_ALIVE"] = "true"
        return env

    async def kill(self, name: str) -> MinionMeta:
        """Tear the sandbox down (best effort) and mark the minion killed."""
        meta = self.minions.load(name)
        if meta.container_id:
            await self._teardown(meta)

        meta.status = LifecycleStatus.KILLED
        meta.killed_at = datetime.now(UTC)
        self.minions.save(meta)
        logger.info("minion_killed", minion=name)
        return meta

    async def _teardown(self, meta: MinionMeta) -> None:
        await try_adapter_call(self.runtime.stop(meta.container_id), "stop", meta.name)
        await try_adapter_call(self.runtime.remove(meta.container_id), "remove", meta.name)

    async def pause(self, name: str) -> MinionMeta:
        meta = self._with_sandbox(name, "pause")
        await must_adapter_call(self.runtime.pause(meta.container_id), "pause", name)

        meta.status = LifecycleStatus.PAUSED
        meta.paused_at = datetime.now(UTC)
        self.minions.save(meta)
        logger.info("minion_paused", minion=name)
        return meta

    async def resume(self, name: str) -> MinionMeta:
        meta = self._with_sandbox(name, "resume")
        await must_adapter_call(self.runtime.unpause(meta.container_id), "resume", name)

        meta.status = LifecycleStatus.RUNNING
        meta.resumed_at = datetime.now(UTC)
        self.minions.save(meta)
        logger.info("minion_resumed", minion=name)
        return meta

    async def restart(self, name: str) -> MinionMeta:
        meta = self._with_sandbox(name, "restart")
        await must_adapter_call(self.runtime.restart(meta.container_id), "restart", name)

        meta.status = LifecycleStatus.RUNNING
        meta.restarted_at = datetime.now(UTC)
        self.minions.save(meta)
        logger.info("minion_restarted", minion=name)
        return meta

    def _with_sandbox(self, name: str, action: str) -> MinionMeta:
        meta = self.minions.load(name)
        if not meta.container_id:
            raise NoSandboxError(f"Cannot {action} minion '{name}': it has no container", name=name)
        return meta

    async def retry(self, name: str, options: StartOptions | None = None) -> MinionMeta:
        """Run the task again in a fresh sandbox, whatever the current status."""
        meta = self.minions.load(name)
        if self.minions.read_task(name) is None:
            raise MissingTaskError(f"Minion '{name}' has no task", name=name)

        if meta.container_id:
            await self._teardown(meta)
        self.minions.clear_signal(name)
        self.minions.clear_output(name)

        now = datetime.now(UTC)
        meta.previous_created_at = meta.created_at
        meta.created_at = now
        meta.retried_at = now
        meta.status = LifecycleStatus.PENDING
        meta.container_id = None
        self.minions.save(meta)
        logger.info("minion_retrying", minion=name)

        return await self._launch(meta, options or StartOptions())

    async def clone(
        self, source: str, new_name: str, options: CloneOptions | None = None
    ) -> MinionMeta:
        """Create new_name from source, as a task-only or full-workspace copy."""
        options = options or CloneOptions()
        validate_name(new_name)
        source_meta = self.minions.load(source)
        self._claim(new_name)

        if options.full_workspace:
            self.minions.copy(source, new_name)
            self.minions.clear_signal(new_name)
            self.minions.clear_output(new_name)
            if options.include_mailbox:
                self.mailbox.copy(source, new_name)
            task = self.minions.read_task(new_name)
        else:
            task = self.minions.read_task(source)
            if task is None:
                raise MissingTaskError(f"Minion '{source}' has no task to clone", name=source)
            self.minions.create_workspace(new_name)
            self.minions.write_task(new_name, task)

        now = datetime.now(UTC)
        meta = MinionMeta(
            name=new_name,
            created_at=now,
            task=MinionMeta.preview(task) if task is not None else source_meta.task,
            status=LifecycleStatus.PENDING,
            resource_limits=source_meta.resource_limits.merged(options.limits),
            cloned_from=source,
            cloned_at=now,
        )
        self.minions.save(meta)
        logger.info(
            "minion_cloned",
            source=source,
            minion=new_name,
            full_workspace=options.full_workspace,
        )

        if options.start:
            return await self.start(new_name, options)
        return meta

    async def rename(self, old_name: str, new_name: str) -> MinionMeta:
        """Rename a stopped minion, moving its workspace and mailbox."""
        validate_name(new_name)
        meta = self.minions.load(old_name)
        if self.minions.exists(new_name):
            raise AlreadyExistsError(f"Minion '{new_name}' already exists", name=new_name)

        if meta.container_id:
            state = await try_adapter_call(
                self.runtime.inspect_status(meta.container_id), "inspect", old_name
            )
            if state in LIVE_CONTAINER_STATES:
                raise RunningConflictError(
                    f"Minion '{old_name}' is {state}; kill it before renaming",
                    name=old_name,
                )
            # the stopped container stays addressable only under the old name
            await try_adapter_call(self.runtime.remove(meta.container_id), "remove", old_name)

        self.minions.move(old_name, new_name)
        self.mailbox.move(old_name, new_name)

        now = datetime.now(UTC)
        meta.renamed_from = old_name
        meta.name = new_name
        meta.container_id = None
        meta.renamed_at = now
        if meta.status in (LifecycleStatus.RUNNING, LifecycleStatus.PAUSED):
            meta.status = LifecycleStatus.KILLED
            meta.killed_at = now
        self.minions.save(meta)
        logger.info("minion_renamed", old_name=old_name, minion=new_name)
        return meta

    # --- removal --------------------------------------------------------

    async def prune(self, options: PruneOptions | None = None) -> PruneResult:
        """Delete finished minions older than a threshold.

        A minion is finished when its worker signalled COMPLETE or FAILED.
        With dry_run the selection is reported and nothing is deleted.
        """
        options = options or PruneOptions()
        threshold = None
        if not options.all:
            threshold = parse_age(options.older_than or self.settings.prune_default_age)

        now = datetime.now(UTC)
        selected: list[MinionMeta] = []
        for meta in self._iter_meta():
            signal = self.minions.read_signal(meta.name)
            if signal is None or not signal.is_terminal:
                continue
            if threshold is not None and now - meta.created_at <= threshold:
                continue
            selected.append(meta)

        if not options.dry_run:
            for meta in selected:
                if meta.container_id:
                    await self._teardown(meta)
                self.minions.remove(meta.name)
                self.mailbox.drop(meta.name)

        pruned = [meta.name for meta in selected]
        logger.info("minions_pruned", count=len(pruned), dry_run=options.dry_run, minions=pruned)
        return PruneResult(pruned=pruned, dry_run=options.dry_run)

    async def cleanup(self, options: CleanupOptions | None = None) -> list[str]:
        """Remove containers of completed or killed minions (every minion with all).

        Workspaces and mailboxes are deleted only with remove_files.
        """
        options = options or CleanupOptions()
        cleaned = []
        for meta in self._iter_meta():
            signal = self.minions.read_signal(meta.name)
            done = signal == TaskStatus.COMPLETE or meta.status == LifecycleStatus.KILLED
            if not (done or options.all):
                continue

            if meta.container_id:
                await try_adapter_call(self.runtime.remove(meta.container_id), "remove", meta.name)
            if options.remove_files:
                self.minions.remove(meta.name)
                self.mailbox.drop(meta.name)
            cleaned.append(meta.name)

        logger.info("minions_cleaned", count=len(cleaned), remove_files=options.remove_files)
        return cleaned

    def _iter_meta(self):
        for name in self.minions.names():
            try:
                yield self.minions.load(name)
            except HiveError as e:
                logger.warning("minion_skipped", minion=name, error=str(e))
