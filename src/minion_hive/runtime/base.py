"""Sandbox runtime contract consumed by the lifecycle manager and registry."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from datetime import datetime
from pathlib import Path

from minion_hive.models import ContainerStats, DiskUsage, ExecResult, ResourceLimits


class SandboxRuntime(ABC):
    """Container engine operations. Every failure raises AdapterError."""

    @abstractmethod
    async def ping(self) -> bool:
        """Whether the engine is reachable. Never raises."""

    @abstractmethod
    async def image_exists(self) -> bool: ...

    @abstractmethod
    async def image_created(self) -> datetime | None:
        """Creation time of the minion image, None when it is missing."""

    @abstractmethod
    async def build_image(self, context: Path) -> None: ...

    @abstractmethod
    async def ensure_image(self) -> None:
        """Make the minion image available, building it if needed."""

    @abstractmethod
    async def start(
        self,
        name: str,
        workspace: Path,
        env: dict[str, str],
        limits: ResourceLimits,
    ) -> str:
        """Start a sandbox for minion `name` with `workspace` mounted.

        Returns:
            Opaque handle used by every other call.
        """

    @abstractmethod
    async def stop(self, handle: str) -> None: ...

    @abstractmethod
    async def remove(self, handle: str) -> None: ...

    @abstractmethod
    async def pause(self, handle: str) -> None: ...

    @abstractmethod
    async def unpause(self, handle: str) -> None: ...

    @abstractmethod
    async def restart(self, handle: str) -> None: ...

    @abstractmethod
    async def inspect_status(self, handle: str) -> str:
        """Engine state such as running, paused, exited."""

    @abstractmethod
    async def logs(self, handle: str, tail: int | None = None) -> str: ...

    @abstractmethod
    async def stats(self, handle: str) -> ContainerStats: ...

    @abstractmethod
    def follow_logs(self, handle: str) -> AsyncIterator[str]:
        """Stream log output as it is written, until the sandbox stops."""

    @abstractmethod
    async def exec(self, handle: str, command: list[str]) -> ExecResult:
        """Run `command` inside the sandbox and capture its combined output."""

    @abstractmethod
    async def disk_usage(self) -> list[DiskUsage]: ...
