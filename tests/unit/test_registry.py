import pytest

from minion_hive.errors import AdapterError, MinionNotFoundError, NoSandboxError
from minion_hive.models import CreateOptions, LifecycleStatus, TaskStatus
from minion_hive.registry import CONTAINER_REMOVED, LOGS_REMOVED, display_status


class TestList:
    @pytest.mark.asyncio
    async def test_list_joins_signal_container_and_mailbox(self, hive, write_signal):
        await hive.lifecycle.create("a", "first", CreateOptions(start=True))
        await hive.lifecycle.create("b", "second")
        write_signal(hive, "a", "WORKING")
        hive.mailbox.send("a", "b", "hi")

        views = {view.name: view for view in await hive.registry.list_minions()}

        assert views["a"].task_status == TaskStatus.WORKING
        assert views["a"].container_status == "running"
        assert views["b"].container_status is None
        assert views["b"].message_count == 1

    @pytest.mark.asyncio
    async def test_removed_container_uses_sentinel(self, hive, runtime):
        await hive.lifecycle.create("a", "first", CreateOptions(start=True))
        await hive.lifecycle.create("b", "second", CreateOptions(start=True))
        runtime.failing.add("inspect_status")

        views = await hive.registry.list_minions()

        assert [v.container_status for v in views] == [CONTAINER_REMOVED, CONTAINER_REMOVED]

    @pytest.mark.asyncio
    async def test_unreadable_record_is_skipped(self, hive):
        await hive.lifecycle.create("good", "task")
        await hive.lifecycle.create("bad", "task")
        hive.store.put(hive.minions.key("bad", "meta.json"), "{not json")

        views = await hive.registry.list_minions()

        assert [v.name for v in views] == ["good"]


class TestSearch:
    @pytest.mark.asyncio
    async def test_search_by_text(self, hive):
        await hive.lifecycle.create("frontend", "Build the login page")
        await hive.lifecycle.create("backend", "Write the API")

        by_name = await hive.registry.search("FRONT")
        by_task = await hive.registry.search("api")

        assert [v.name for v in by_name] == ["frontend"]
        assert [v.name for v in by_task] == ["backend"]

    @pytest.mark.asyncio
    async def test_search_by_any_status(self, hive, write_signal):
        await hive.lifecycle.create("a", "task")
        await hive.lifecycle.create("b", "task")
        await hive.lifecycle.kill("b")
        write_signal(hive, "a", "COMPLETE")

        assert [v.name for v in await hive.registry.search(status="complete")] == ["a"]
        assert [v.name for v in await hive.registry.search(status="killed")] == ["b"]
        assert [v.name for v in await hive.registry.search(status="pending")] == ["a"]


class TestStatus:
    @pytest.mark.asyncio
    async def test_status_includes_output_and_logs(self, hive, write_signal):
        await hive.lifecycle.create("a", "task", CreateOptions(start=True))
        write_signal(hive, "a", "COMPLETE", output="result text")

        status = await hive.registry.status("a")

        assert status.output == "result text"
        assert status.logs == "log line for a\n"
        assert display_status(status) == "COMPLETE"

    @pytest.mark.asyncio
    async def test_status_with_removed_container(self, hive, runtime):
        await hive.lifecycle.create("a", "task", CreateOptions(start=True))
        runtime.containers.clear()

        status = await hive.registry.status("a")

        assert status.logs == LOGS_REMOVED
        assert status.container_status == CONTAINER_REMOVED
        assert display_status(status) == LifecycleStatus.RUNNING.value

    @pytest.mark.asyncio
    async def test_status_unknown(self, hive):
        with pytest.raises(MinionNotFoundError):
            await hive.registry.status("ghost")

    @pytest.mark.asyncio
    async def test_collect(self, hive, write_signal):
        await hive.lifecycle.create("a", "task")
        write_signal(hive, "a", "FAILED", output="oops")

        result = await hive.registry.collect("a")

        assert result.name == "a"
        assert result.task_status == TaskStatus.FAILED
        assert result.output == "oops"
        assert result.logs is None


class TestLogsAndStats:
    @pytest.mark.asyncio
    async def test_logs(self, hive):
        await hive.lifecycle.create("a", "task", CreateOptions(start=True))

        assert await hive.registry.logs("a", lines=10) == "log line for a\n"

    @pytest.mark.asyncio
    async def test_logs_without_sandbox(self, hive):
        await hive.lifecycle.create("a", "task")

        with pytest.raises(NoSandboxError):
            await hive.registry.logs("a")

    @pytest.mark.asyncio
    async def test_logs_adapter_failure_surfaces(self, hive, runtime):
        await hive.lifecycle.create("a", "task", CreateOptions(start=True))
        runtime.failing.add("logs")

        with pytest.raises(AdapterError):
            await hive.registry.logs("a")

    @pytest.mark.asyncio
    async def test_stats(self, hive):
        await hive.lifecycle.create("a", "task", CreateOptions(start=True))

        stats = await hive.registry.stats("a")

        assert stats.cpu_percent == 12.5
        assert stats.pid_count == 3

    @pytest.mark.asyncio
    async def test_stats_of_paused_minion_fails(self, hive):
        await hive.lifecycle.create("a", "task", CreateOptions(start=True))
        await hive.lifecycle.pause("a")

        with pytest.raises(AdapterError):
            await hive.registry.stats("a")


class TestExecAndWatch:
    @pytest.mark.asyncio
    async def test_exec_runs_in_sandbox(self, hive, runtime):
        meta = await hive.lifecycle.create("a", "task", CreateOptions(start=True))

        result = await hive.registry.exec("a", ["ls", "-la"])

        assert result.exit_code == 0
        assert result.output == "ran ls -la\n"
        assert runtime.containers[meta.container_id]["exec"] == [["ls", "-la"]]

    @pytest.mark.asyncio
    async def test_exec_unknown_minion(self, hive):
        with pytest.raises(MinionNotFoundError):
            await hive.registry.exec("ghost", ["ls"])

    @pytest.mark.asyncio
    async def test_exec_without_sandbox(self, hive, runtime):
        await hive.lifecycle.create("a", "task")

        with pytest.raises(NoSandboxError):
            await hive.registry.exec("a", ["ls"])
        assert runtime.called("exec") == []

    @pytest.mark.asyncio
    async def test_exec_in_paused_sandbox_fails(self, hive):
        await hive.lifecycle.create("a", "task", CreateOptions(start=True))
        await hive.lifecycle.pause("a")

        with pytest.raises(AdapterError, match="exec in"):
            await hive.registry.exec("a", ["ls"])

    @pytest.mark.asyncio
    async def test_follow_logs(self, hive):
        await hive.lifecycle.create("a", "task", CreateOptions(start=True))

        chunks = [chunk async for chunk in hive.registry.follow_logs("a")]

        assert chunks == ["log line for a\n"]

    @pytest.mark.asyncio
    async def test_follow_logs_without_sandbox(self, hive):
        await hive.lifecycle.create("a", "task")

        with pytest.raises(NoSandboxError):
            [chunk async for chunk in hive.registry.follow_logs("a")]

    @pytest.mark.asyncio
    async def test_follow_logs_adapter_failure_surfaces(self, hive, runtime):
        await hive.lifecycle.create("a", "task", CreateOptions(start=True))
        runtime.failing.add("follow_logs")

        with pytest.raises(AdapterError, match="Failed to watch minion 'a'"):
            [chunk async for chunk in hive.registry.follow_logs("a")]


class TestHealth:
    @pytest.mark.asyncio
    async def test_health_counts(self, hive):
        await hive.lifecycle.create("a", "task", CreateOptions(start=True))
        await hive.lifecycle.create("b", "task")

        report = await hive.registry.health()

        assert report.docker_running is True
        assert report.image_exists is True
        assert report.image_age.endswith("h")
        assert report.minions_total == 2
        assert report.minions_running == 1
        assert report.by_status == {"running": 1, "pending": 1}

    @pytest.mark.asyncio
    async def test_health_docker_down(self, hive, runtime):
        runtime.reachable = False

        report = await hive.registry.health()

        assert report.docker_running is False
        assert report.image_exists is False
        assert report.minions_total == 0

    @pytest.mark.asyncio
    async def test_health_missing_image(self, hive, runtime):
        runtime.image_built_at = None

        report = await hive.registry.health()

        assert report.docker_running is True
        assert report.image_exists is False
        assert report.image_age is None

    @pytest.mark.asyncio
    async def test_health_reports_disk_usage(self, hive):
        report = await hive.registry.health()

        assert [row.type for row in report.disk] == ["Images"]
        assert report.disk[0].size == 2048

    @pytest.mark.asyncio
    async def test_health_without_disk_usage(self, hive, runtime):
        runtime.failing.add("disk_usage")

        report = await hive.registry.health()

        assert report.docker_running is True
        assert report.disk == []
