"""Dependency scheduler and completion polling.

Workers signal their own outcome by writing STATUS into their workspace;
nothing notifies the hive. Both the scheduler and `wait` therefore poll a
``poll_signal(name)`` capability on a fixed interval.

One scheduler pass advances each dependency chain by one hop: a minion
promoted in this pass has only just started, so its own dependents stay
waiting until it signals COMPLETE and a later pass runs.
"""

import asyncio
from collections.abc import Callable

import structlog

from minion_hive.errors import HiveError
from minion_hive.lifecycle import LifecycleManager
from minion_hive.metadata import MetadataStore
from minion_hive.models import (
    LifecycleStatus,
    PromotionReport,
    StartOptions,
    TaskStatus,
    WaitOutcome,
    WaitResult,
)

logger = structlog.get_logger()

SignalPoller = Callable[[str], TaskStatus | None]
PromoteCallback = Callable[[str], None]


class DependencyScheduler:
    """Starts waiting minions once their dependency signals COMPLETE."""

    def __init__(
        self,
        lifecycle: LifecycleManager,
        minions: MetadataStore,
        poll_signal: SignalPoller | None = None,
    ):
        self.lifecycle = lifecycle
        self.minions = minions
        self.poll_signal = poll_signal or minions.read_signal

    async def check_and_promote(
        self,
        options: StartOptions | None = None,
        on_promote: PromoteCallback | None = None,
    ) -> PromotionReport:
        """Run a single promotion pass.

        A failure to start one dependent is recorded in the report and the
        pass continues with the rest.
        """
        options = options or StartOptions()
        report = PromotionReport()

        for meta in self._waiting():
            signal = self.poll_signal(meta.depends_on)
            if signal is None:
                if not self.minions.exists(meta.depends_on):
                    logger.warning(
                        "dependency_missing", minion=meta.name, depends_on=meta.depends_on
                    )
                continue
            if signal == TaskStatus.FAILED:
                logger.info("dependency_failed", minion=meta.name, depends_on=meta.depends_on)
                continue
            if signal != TaskStatus.COMPLETE:
                continue

            try:
                await self.lifecycle.start(meta.name, options)
            except HiveError as e:
                report.failed[meta.name] = str(e)
                logger.error(
                    "promotion_failed",
                    minion=meta.name,
                    depends_on=meta.depends_on,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue

            report.promoted.append(meta.name)
            logger.info("minion_promoted", minion=meta.name, depends_on=meta.depends_on)
            if on_promote:
                on_promote(meta.name)

        return report

    def _waiting(self):
        # Snapshot taken before any promotion so a pass never chains hops
        snapshot = []
        for name in self.minions.names():
            try:
                meta = self.minions.load(name)
            except HiveError as e:
                logger.warning("minion_skipped", minion=name, error=str(e))
                continue
            if meta.status == LifecycleStatus.WAITING and meta.depends_on:
                snapshot.append(meta)
        return snapshot

    async def watch(
        self,
        interval: float,
        options: StartOptions | None = None,
        on_promote: PromoteCallback | None = None,
        stop: asyncio.Event | None = None,
    ) -> list[str]:
        """Run promotion passes every `interval` seconds until stopped.

        The loop ends when `stop` is set or the task is cancelled; either is
        observed between passes, never in the middle of one.

        Returns:
            Every minion promoted while watching.
        """
        stop = stop or asyncio.Event()
        promoted: list[str] = []
        logger.info("scheduler_watch_started", interval=interval)

        try:
            while not stop.is_set():
                report = await self.check_and_promote(options, on_promote)
                promoted.extend(report.promoted)
                try:
                    await asyncio.wait_for(stop.wait(), timeout=interval)
                except TimeoutError:
                    pass
        except asyncio.CancelledError:
            logger.info("scheduler_watch_cancelled", promoted=len(promoted))
            raise

        logger.info("scheduler_watch_stopped", promoted=len(promoted))
        return promoted

    async def wait(
        self,
        name: str,
        timeout: float,
        poll_interval: float,
    ) -> WaitResult:
        """Block until `name` signals COMPLETE or FAILED, or the timeout passes."""
        self.minions.require(name)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            signal = self.poll_signal(name)
            if signal == TaskStatus.COMPLETE:
                return WaitResult(status=WaitOutcome.COMPLETE, output=self.minions.read_output(name))
            if signal == TaskStatus.FAILED:
                return WaitResult(status=WaitOutcome.FAILED, output=self.minions.read_output(name))

            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.info("wait_timed_out", minion=name, timeout=timeout)
                return WaitResult(status=WaitOutcome.TIMEOUT, output=self.minions.read_output(name))

            await asyncio.sleep(min(poll_interval, remaining))
