import asyncio
from collections.abc import AsyncIterator
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
import re
from typing import Any

import docker
from docker.errors import APIError, DockerException, ImageNotFound
from requests.exceptions import RequestException
import structlog

from minion_hive.config import Settings, get_settings
from minion_hive.errors import AdapterError
from minion_hive.formatting import human_size
from minion_hive.models import ContainerStats, DiskUsage, ExecResult, ResourceLimits
from minion_hive.runtime.base import SandboxRuntime

logger = structlog.get_logger()

HTTP_CONFLICT = 409
BUNDLED_BUILD_CONTEXT = Path(__file__).resolve().parent.parent / "docker"
_NANOS_FRACTION = re.compile(r"(\.\d{6})\d+")


def parse_docker_time(value: str) -> datetime:
    """Parse Docker's RFC 3339 timestamps (nanosecond precision, Z suffix)."""
    value = _NANOS_FRACTION.sub(r"\1", value.strip())
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def parse_stats(raw: dict[str, Any]) -> ContainerStats:
    """Turn a one-shot `container.stats(stream=False)` payload into ContainerStats.

    Uses the same formulas as `docker stats`.
    """
    cpu = raw.get("cpu_stats") or {}
    precpu = raw.get("precpu_stats") or {}
    cpu_delta = (cpu.get("cpu_usage") or {}).get("total_usage", 0) - (
        precpu.get("cpu_usage") or {}
    ).get("total_usage", 0)
    system_delta = cpu.get("system_cpu_usage", 0) - precpu.get("system_cpu_usage", 0)
    online_cpus = cpu.get("online_cpus") or len(
        (cpu.get("cpu_usage") or {}).get("percpu_usage") or []
    ) or 1
    cpu_percent = 0.0
    if cpu_delta > 0 and system_delta > 0:
        cpu_percent = cpu_delta / system_delta * online_cpus * 100.0

    memory = raw.get("memory_stats") or {}
    mem_detail = memory.get("stats") or {}
    # cgroup v2 reports inactive_file, v1 reports cache
    mem_cache = mem_detail.get("inactive_file", mem_detail.get("cache", 0))
    mem_used = max(memory.get("usage", 0) - mem_cache, 0)
    mem_limit = memory.get("limit", 0)
    mem_percent = mem_used / mem_limit * 100.0 if mem_limit else 0.0

    rx = tx = 0
    for net in (raw.get("networks") or {}).values():
        rx += net.get("rx_bytes", 0)
        tx += net.get("tx_bytes", 0)

    read = write = 0
    for entry in (raw.get("blkio_stats") or {}).get("io_service_bytes_recursive") or []:
        op = str(entry.get("op", "")).lower()
        if op == "read":
            read += entry.get("value", 0)
        elif op == "write":
            write += entry.get("value", 0)

    return ContainerStats(
        cpu_percent=round(cpu_percent, 2),
        mem_usage=f"{human_size(mem_used)} / {human_size(mem_limit)}",
        mem_percent=round(mem_percent, 2),
        net_io=f"{human_size(rx)} / {human_size(tx)}",
        block_io=f"{human_size(read)} / {human_size(write)}",
        pid_count=(raw.get("pids_stats") or {}).get("current", 0),
    )


def _total(items: list[dict[str, Any]], key: str) -> int:
    # the engine reports -1 for sizes it did not compute
    return sum(max(item.get(key) or 0, 0) for item in items)


def parse_disk_usage(raw: dict[str, Any]) -> list[DiskUsage]:
    """Summarise a `client.df()` payload into the rows `docker system df` prints."""
    images = raw.get("Images") or []
    containers = raw.get("Containers") or []
    volumes = raw.get("Volumes") or []
    cache = raw.get("BuildCache") or []

    unused_images = [image for image in images if (image.get("Containers") or 0) <= 0]
    stopped = [container for container in containers if container.get("State") != "running"]
    volume_usage = [volume.get("UsageData") or {} for volume in volumes]
    unused_volumes = [usage for usage in volume_usage if (usage.get("RefCount") or 0) <= 0]
    idle_cache = [entry for entry in cache if not entry.get("InUse")]

    return [
        DiskUsage(
            type="Images",
            total_count=len(images),
            active=len(images) - len(unused_images),
            size=raw.get("LayersSize") or _total(images, "Size"),
            reclaimable=_total(unused_images, "Size"),
        ),
        DiskUsage(
            type="Containers",
            total_count=len(containers),
            active=len(containers) - len(stopped),
            size=_total(containers, "SizeRw"),
            reclaimable=_total(stopped, "SizeRw"),
        ),
        DiskUsage(
            type="Local Volumes",
            total_count=len(volumes),
            active=len(volumes) - len(unused_volumes),
            size=_total(volume_usage, "Size"),
            reclaimable=_total(unused_volumes, "Size"),
        ),
        DiskUsage(
            type="Build Cache",
            total_count=len(cache),
            active=len(cache) - len(idle_cache),
            size=_total(cache, "Size"),
            reclaimable=_total(idle_cache, "Size"),
        ),
    ]


class DockerRuntime(SandboxRuntime):
    """
    Async sandbox runtime on the blocking docker-py client.
    Calls run in a thread pool; docker errors surface as AdapterError.
    """

    def __init__(self, settings: Settings | None = None, client: docker.DockerClient | None = None):
        self.settings = settings or get_settings()
        self._client = client
        self._executor = ThreadPoolExecutor(max_workers=self.settings.max_docker_threads)

    @property
    def client(self) -> docker.DockerClient:
        """Docker client, created on first use so offline commands never need a daemon."""
        if self._client is None:
            try:
                if self.settings.docker_base_url:
                    self._client = docker.DockerClient(base_url=self.settings.docker_base_url)
                else:
                    self._client = docker.from_env()
            except DockerException as e:
                raise AdapterError(f"Docker is not reachable: {e}") from e
        return self._client

    @property
    def image(self) -> str:
        return self.settings.image_name

    def container_name(self, name: str) -> str:
        return f"{self.settings.container_prefix}{name}"

    async def _run(self, func, *args, **kwargs):
        """Run blocking function in thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, lambda: func(*args, **kwargs))

    async def _call(self, action: str, func, *args, **kwargs):
        # docker-py lets transport errors from requests through unwrapped
        try:
            return await self._run(func, *args, **kwargs)
        except (DockerException, RequestException) as e:
            raise AdapterError(f"docker {action} failed: {e}") from e

    async def _on_container(self, handle: str, action: str, **kwargs) -> Any:
        """Look up a container and call one of its methods in the same thread hop."""

        def _do():
            container = self.client.containers.get(handle)
            return getattr(container, action)(**kwargs)

        return await self._call(action, _do)

    async def ping(self) -> bool:
        try:
            return bool(await self._call("ping", lambda: self.client.ping()))
        except AdapterError as e:
            logger.debug("docker_ping_failed", error=str(e))
            return False

    async def image_exists(self) -> bool:
        def _exists() -> bool:
            try:
                self.client.images.get(self.image)
                return True
            except ImageNotFound:
                return False

        return await self._call("image inspect", _exists)

    async def image_created(self) -> datetime | None:
        def _created() -> str | None:
            try:
                return self.client.images.get(self.image).attrs.get("Created")
            except ImageNotFound:
                return None

        created = await self._call("image inspect", _created)
        return parse_docker_time(created) if created else None

    async def build_image(self, context: Path) -> None:
        logger.info("building_image", image=self.image, context=str(context))
        await self._call(
            "build",
            lambda: self.client.images.build(
                path=str(context),
                tag=self.image,
                rm=True,  # Remove intermediate containers
                forcerm=True,
            ),
        )
        logger.info("image_built", image=self.image)

    async def ensure_image(self) -> None:
        if await self.image_exists():
            return
        await self.build_image(self.settings.image_build_context or BUNDLED_BUILD_CONTEXT)

    async def start(
        self,
        name: str,
        workspace: Path,
        env: dict[str, str],
        limits: ResourceLimits,
    ) -> str:
        container_name = self.container_name(name)
        run_kwargs: dict[str, Any] = {
            "name": container_name,
            "detach": True,
            "environment": env,
            "volumes": {
                str(workspace): {"bind": self.settings.container_workspace, "mode": "rw"}
            },
            "labels": {"com.hive.minion": name},
        }
        if limits.memory:
            run_kwargs["mem_limit"] = limits.memory
        if limits.cpus:
            run_kwargs["nano_cpus"] = int(limits.cpus * 1e9)

        def _run_container() -> str:
            try:
                container = self.client.containers.run(self.image, **run_kwargs)
            except APIError as e:
                if e.status_code != HTTP_CONFLICT:
                    raise
                # A stopped container left under this name (e.g. after a rename)
                logger.warning("stale_container_replaced", container_name=container_name)
                self.client.containers.get(container_name).remove(force=True)
                container = self.client.containers.run(self.image, **run_kwargs)
            return container.id

        logger.info(
            "starting_container",
            minion=name,
            container_name=container_name,
            memory=limits.memory,
            cpus=limits.cpus,
        )
        return await self._call("run", _run_container)

    async def stop(self, handle: str) -> None:
        await self._on_container(handle, "stop", timeout=self.settings.stop_timeout_sec)

    async def remove(self, handle: str) -> None:
        await self._on_container(handle, "remove", force=True)

    async def pause(self, handle: str) -> None:
        await self._on_container(handle, "pause")

    async def unpause(self, handle: str) -> None:
        await self._on_container(handle, "unpause")

    async def restart(self, handle: str) -> None:
        await self._on_container(handle, "restart", timeout=self.settings.stop_timeout_sec)

    async def inspect_status(self, handle: str) -> str:
        def _status() -> str:
            # get() returns a freshly inspected container
            return self.client.containers.get(handle).status

        return await self._call("inspect", _status)

    async def logs(self, handle: str, tail: int | None = None) -> str:
        output = await self._on_container(handle, "logs", tail=tail if tail else "all")
        return output.decode("utf-8", errors="replace")

    async def stats(self, handle: str) -> ContainerStats:
        def _stats() -> dict[str, Any]:
            container = self.client.containers.get(handle)
            if container.status != "running":
                raise AdapterError(f"container is {container.status}, not running")
            return container.stats(stream=False)

        return parse_stats(await self._call("stats", _stats))

    async def follow_logs(self, handle: str) -> AsyncIterator[str]:
        stream = await self._on_container(handle, "logs", stream=True, follow=True)
        try:
            while True:
                chunk = await self._call("logs", next, stream, None)
                if chunk is None:
                    return
                yield chunk.decode("utf-8", errors="replace")
        finally:
            # unblocks a reader thread still waiting on the socket
            stream.close()

    async def exec(self, handle: str, command: list[str]) -> ExecResult:
        result = await self._on_container(
            handle, "exec_run", cmd=command, workdir=self.settings.container_workspace
        )
        output = result.output or b""
        return ExecResult(exit_code=result.exit_code, output=output.decode("utf-8", errors="replace"))

    async def disk_usage(self) -> list[DiskUsage]:
        return parse_disk_usage(await self._call("system df", lambda: self.client.df()))
