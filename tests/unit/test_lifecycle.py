"""Unit tests for LifecycleManager on a temporary hive with a fake runtime."""

from datetime import UTC, datetime, timedelta

import pytest

from minion_hive.errors import (
    AdapterError,
    AlreadyExistsError,
    DependencyNotFoundError,
    InvalidAgeFormatError,
    InvalidNameError,
    InvalidTransitionError,
    MinionNotFoundError,
    MissingTaskError,
    NoSandboxError,
    RunningConflictError,
)
from minion_hive.metadata import TASK_FILE
from minion_hive.models import (
    CleanupOptions,
    CloneOptions,
    CreateOptions,
    LifecycleStatus,
    PruneOptions,
    StartOptions,
)

INVALID_NAMES = ["has space", ".hidden", "-dash", "a@b", "a/b", "cost$", "x" * 129, ""]


def _age(hive, name: str, days: int) -> None:
    meta = hive.minions.load(name)
    meta.created_at = datetime.now(UTC) - timedelta(days=days)
    hive.minions.save(meta)


class TestCreate:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["worker-1", "a", "A.b_c-9", "x" * 128])
    async def test_create_succeeds_once_per_name(self, hive, name):
        meta = await hive.lifecycle.create(name, "do the thing")

        assert meta.status == LifecycleStatus.PENDING
        assert meta.container_id is None
        assert hive.minions.read_task(name) == "do the thing"

        with pytest.raises(AlreadyExistsError):
            await hive.lifecycle.create(name, "again")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", INVALID_NAMES)
    async def test_create_rejects_invalid_names(self, hive, name):
        with pytest.raises(InvalidNameError):
            await hive.lifecycle.create(name, "task")
        assert hive.minions.names() == []

    @pytest.mark.asyncio
    async def test_task_preview_is_truncated(self, hive):
        task = "t" * 500
        meta = await hive.lifecycle.create("long", task)

        assert meta.task == "t" * 200
        assert hive.minions.read_task("long") == task

    @pytest.mark.asyncio
    async def test_create_with_start_runs_sandbox(self, hive, runtime):
        meta = await hive.lifecycle.create(
            "w", "task", CreateOptions(start=True, keep_alive=True, memory="512m", cpus=1.5)
        )

        assert meta.status == LifecycleStatus.RUNNING
        assert meta.started_at is not None
        container = runtime.containers[meta.container_id]
        assert container["env"] == {"CLAUDE_CODE_OAUTH_TOKEN": "test-token", "KEEP_ALIVE": "true"}
        assert container["limits"].memory == "512m"
        assert container["limits"].cpus == 1.5
        assert container["workspace"] == hive.minions.workspace_path("w")

    @pytest.mark.asyncio
    async def test_create_waiting_requires_dependency(self, hive):
        with pytest.raises(DependencyNotFoundError):
            await hive.lifecycle.create_waiting("b", "task", "missing")
        assert not hive.minions.exists("b")

    @pytest.mark.asyncio
    async def test_create_waiting_records_dependency(self, hive):
        await hive.lifecycle.create("a", "first")
        meta = await hive.lifecycle.create_waiting("b", "second", "a")

        assert meta.status == LifecycleStatus.WAITING
        assert hive.minions.load("b").depends_on == "a"


class TestTransitions:
    @pytest.mark.asyncio
    async def test_start_pending(self, hive, runtime):
        await hive.lifecycle.create("w", "task")
        meta = await hive.lifecycle.start("w")

        assert meta.status == LifecycleStatus.RUNNING
        assert runtime.called("ensure_image") == [None]
        assert hive.minions.load("w").container_id == meta.container_id

    @pytest.mark.asyncio
    async def test_start_running_is_invalid(self, hive):
        await hive.lifecycle.create("w", "task", CreateOptions(start=True))

        with pytest.raises(InvalidTransitionError):
            await hive.lifecycle.start("w")

    @pytest.mark.asyncio
    async def test_start_unknown_minion(self, hive):
        with pytest.raises(MinionNotFoundError):
            await hive.lifecycle.start("ghost")

    @pytest.mark.asyncio
    async def test_start_without_task(self, hive):
        await hive.lifecycle.create("w", "task")
        hive.store.delete(hive.minions.key("w", TASK_FILE))

        with pytest.raises(MissingTaskError):
            await hive.lifecycle.start("w")
        assert hive.minions.load("w").status == LifecycleStatus.PENDING

    @pytest.mark.asyncio
    async def test_start_failure_propagates_and_keeps_status(self, hive, runtime):
        await hive.lifecycle.create("w", "task")
        runtime.failing.add("start")

        with pytest.raises(AdapterError) as exc_info:
            await hive.lifecycle.start("w")

        assert exc_info.value.name == "w"
        assert hive.minions.load("w").status == LifecycleStatus.PENDING

    @pytest.mark.asyncio
    async def test_start_limits_carry_forward(self, hive, runtime):
        await hive.lifecycle.create("w", "task", CreateOptions(memory="1g", cpus=2))
        meta = await hive.lifecycle.start("w", StartOptions(cpus=0.5))

        limits = runtime.containers[meta.container_id]["limits"]
        assert limits.memory == "1g"
        assert limits.cpus == 0.5

    @pytest.mark.asyncio
    async def test_explicit_credential_wins(self, hive, runtime):
        await hive.lifecycle.create("w", "task")
        meta = await hive.lifecycle.start("w", StartOptions(credential="other"))

        assert runtime.containers[meta.container_id]["env"] == {"CLAUDE_CODE_OAUTH_TOKEN": "other"}

    @pytest.mark.asyncio
    async def test_pause_and_resume(self, hive, runtime):
        await hive.lifecycle.create("w", "task", CreateOptions(start=True))

        paused = await hive.lifecycle.pause("w")
        assert paused.status == LifecycleStatus.PAUSED
        assert paused.paused_at is not None

        resumed = await hive.lifecycle.resume("w")
        assert resumed.status == LifecycleStatus.RUNNING
        assert resumed.resumed_at is not None
        assert runtime.containers[resumed.container_id]["status"] == "running"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation", ["pause", "resume", "restart"])
    async def test_operations_need_a_sandbox(self, hive, operation):
        await hive.lifecycle.create("w", "task")

        with pytest.raises(NoSandboxError):
            await getattr(hive.lifecycle, operation)("w")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("operation", "runtime_method"),
        [("pause", "pause"), ("resume", "unpause"), ("restart", "restart")],
    )
    async def test_adapter_failure_propagates(self, hive, runtime, operation, runtime_method):
        await hive.lifecycle.create("w", "task", CreateOptions(start=True))
        if operation == "resume":
            await hive.lifecycle.pause("w")
        before = hive.minions.load("w")
        runtime.failing.add(runtime_method)

        with pytest.raises(AdapterError):
            await getattr(hive.lifecycle, operation)("w")

        after = hive.minions.load("w")
        assert after.status == before.status
        assert after.resumed_at is None
        assert after.restarted_at is None

    @pytest.mark.asyncio
    async def test_restart(self, hive, runtime):
        meta = await hive.lifecycle.create("w", "task", CreateOptions(start=True))
        restarted = await hive.lifecycle.restart("w")

        assert restarted.restarted_at is not None
        assert runtime.called("restart") == [meta.container_id]


class TestKill:
    @pytest.mark.asyncio
    async def test_kill_without_sandbox(self, hive, runtime):
        await hive.lifecycle.create("w", "task")
        meta = await hive.lifecycle.kill("w")

        assert meta.status == LifecycleStatus.KILLED
        assert meta.killed_at is not None
        assert runtime.called("stop") == []

    @pytest.mark.asyncio
    async def test_kill_ignores_adapter_failures(self, hive, runtime):
        await hive.lifecycle.create("w", "task", CreateOptions(start=True))
        runtime.failing.update({"stop", "remove"})

        meta = await hive.lifecycle.kill("w")

        assert meta.status == LifecycleStatus.KILLED
        assert hive.minions.load("w").killed_at is not None

    @pytest.mark.asyncio
    async def test_kill_vanished_container(self, hive, runtime):
        meta = await hive.lifecycle.create("w", "task", CreateOptions(start=True))
        runtime.containers.clear()

        killed = await hive.lifecycle.kill("w")

        assert killed.status == LifecycleStatus.KILLED
        assert runtime.called("stop") == [meta.container_id]


class TestRetry:
    @pytest.mark.asyncio
    async def test_retry_resets_outcome(self, hive, runtime, write_signal):
        first = await hive.lifecycle.create("w", "task", CreateOptions(start=True))
        write_signal(hive, "w", "FAILED", output="boom")

        meta = await hive.lifecycle.retry("w")

        assert meta.status == LifecycleStatus.RUNNING
        assert meta.container_id != first.container_id
        assert meta.previous_created_at == first.created_at
        assert meta.retried_at is not None
        assert hive.minions.read_signal("w") is None
        assert hive.minions.read_output("w") is None
        assert first.container_id not in runtime.containers

    @pytest.mark.asyncio
    async def test_retry_from_killed(self, hive):
        await hive.lifecycle.create("w", "task")
        await hive.lifecycle.kill("w")

        meta = await hive.lifecycle.retry("w")

        assert meta.status == LifecycleStatus.RUNNING

    @pytest.mark.asyncio
    async def test_retry_without_task(self, hive):
        await hive.lifecycle.create("w", "task")
        hive.store.delete(hive.minions.key("w", TASK_FILE))

        with pytest.raises(MissingTaskError):
            await hive.lifecycle.retry("w")


class TestClone:
    @pytest.mark.asyncio
    async def test_task_only_clone(self, hive, write_signal):
        await hive.lifecycle.create("src", "the task", CreateOptions(memory="256m"))
        write_signal(hive, "src", "COMPLETE", output="done")

        meta = await hive.lifecycle.clone("src", "copy")

        assert meta.status == LifecycleStatus.PENDING
        assert meta.cloned_from == "src"
        assert meta.resource_limits.memory == "256m"
        assert hive.minions.read_task("copy") == "the task"
        assert hive.minions.read_signal("copy") is None
        assert hive.minions.read_output("copy") is None

    @pytest.mark.asyncio
    async def test_full_clone_copies_workspace_and_mailbox(self, hive, write_signal):
        await hive.lifecycle.create("src", "the task")
        await hive.lifecycle.create("peer", "other")
        hive.store.put(hive.minions.key("src", "notes.txt"), "keep me")
        write_signal(hive, "src", "COMPLETE", output="done")
        hive.mailbox.send("peer", "src", "hello")

        await hive.lifecycle.clone("src", "copy", CloneOptions(full_workspace=True, include_mailbox=True))

        assert hive.store.get(hive.minions.key("copy", "notes.txt")) == "keep me"
        assert hive.minions.read_signal("copy") is None
        assert hive.minions.read_output("copy") is None
        assert [m.body for m in hive.mailbox.inbox("copy")] == ["hello"]
        assert hive.minions.load("copy").name == "copy"

    @pytest.mark.asyncio
    async def test_clone_stores_limit_override(self, hive, runtime):
        await hive.lifecycle.create("src", "task", CreateOptions(memory="512m"))

        meta = await hive.lifecycle.clone("src", "dst", CloneOptions(memory="2g", cpus=2))

        stored = hive.minions.load("dst").resource_limits
        assert meta.resource_limits == stored
        assert stored.memory == "2g"
        assert stored.cpus == 2
        assert runtime.called("start") == []

        started = await hive.lifecycle.start("dst")
        assert runtime.containers[started.container_id]["limits"].memory == "2g"

    @pytest.mark.asyncio
    async def test_clone_keeps_source_limits_without_override(self, hive):
        await hive.lifecycle.create("src", "task", CreateOptions(memory="512m", cpus=1.5))

        meta = await hive.lifecycle.clone("src", "dst", CloneOptions(cpus=3))

        assert meta.resource_limits.memory == "512m"
        assert meta.resource_limits.cpus == 3

    @pytest.mark.asyncio
    async def test_clone_and_start(self, hive):
        await hive.lifecycle.create("src", "task")
        meta = await hive.lifecycle.clone("src", "copy", CloneOptions(start=True))

        assert meta.status == LifecycleStatus.RUNNING

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", INVALID_NAMES)
    async def test_clone_rejects_invalid_names(self, hive, name):
        await hive.lifecycle.create("src", "task")

        with pytest.raises(InvalidNameError):
            await hive.lifecycle.clone("src", name)

    @pytest.mark.asyncio
    async def test_clone_onto_existing(self, hive):
        await hive.lifecycle.create("src", "task")
        await hive.lifecycle.create("dst", "task")

        with pytest.raises(AlreadyExistsError):
            await hive.lifecycle.clone("src", "dst")


class TestRename:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("state", ["running", "paused"])
    async def test_rename_live_sandbox_conflicts(self, hive, runtime, state):
        meta = await hive.lifecycle.create("old", "task", CreateOptions(start=True))
        runtime.containers[meta.container_id]["status"] = state

        with pytest.raises(RunningConflictError):
            await hive.lifecycle.rename("old", "new")
        assert hive.minions.exists("old")
        assert not hive.minions.exists("new")

    @pytest.mark.asyncio
    async def test_rename_stopped_moves_everything(self, hive, runtime):
        meta = await hive.lifecycle.create("old", "task", CreateOptions(start=True))
        await hive.lifecycle.create("peer", "task")
        hive.mailbox.send("peer", "old", "ping")
        runtime.containers[meta.container_id]["status"] = "exited"

        renamed = await hive.lifecycle.rename("old", "new")

        assert renamed.name == "new"
        assert renamed.renamed_from == "old"
        assert renamed.container_id is None
        assert renamed.status == LifecycleStatus.KILLED
        assert not hive.minions.exists("old")
        assert hive.minions.read_task("new") == "task"
        assert [m.body for m in hive.mailbox.inbox("new")] == ["ping"]
        assert hive.mailbox.count("old") == 0

    @pytest.mark.asyncio
    async def test_rename_onto_stale_inbox_merges_messages(self, hive):
        await hive.lifecycle.create("old", "task")
        await hive.lifecycle.create("new", "task")
        await hive.lifecycle.create("peer", "task")
        hive.mailbox.send("peer", "new", "stale")
        hive.minions.remove("new")
        hive.mailbox.send("peer", "old", "fresh")

        await hive.lifecycle.rename("old", "new")

        assert [m.body for m in hive.mailbox.inbox("new")] == ["stale", "fresh"]

    @pytest.mark.asyncio
    async def test_rename_pending(self, hive):
        await hive.lifecycle.create("old", "task")

        renamed = await hive.lifecycle.rename("old", "new")

        assert renamed.status == LifecycleStatus.PENDING
        assert hive.minions.load("new").renamed_at is not None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", INVALID_NAMES)
    async def test_rename_rejects_invalid_names(self, hive, name):
        await hive.lifecycle.create("old", "task")

        with pytest.raises(InvalidNameError):
            await hive.lifecycle.rename("old", name)

    @pytest.mark.asyncio
    async def test_rename_onto_existing(self, hive):
        await hive.lifecycle.create("old", "task")
        await hive.lifecycle.create("new", "task")

        with pytest.raises(AlreadyExistsError):
            await hive.lifecycle.rename("old", "new")


class TestPrune:
    @pytest.mark.asyncio
    async def test_prune_old_terminal_only(self, hive, write_signal):
        for name in ("old-done", "old-failed", "old-working", "new-done"):
            await hive.lifecycle.create(name, "task")
        write_signal(hive, "old-done", "COMPLETE")
        write_signal(hive, "old-failed", "FAILED")
        write_signal(hive, "old-working", "WORKING")
        write_signal(hive, "new-done", "COMPLETE")
        for name in ("old-done", "old-failed", "old-working"):
            _age(hive, name, days=8)

        result = await hive.lifecycle.prune(PruneOptions(older_than="7d"))

        assert sorted(result.pruned) == ["old-done", "old-failed"]
        assert sorted(hive.minions.names()) == ["new-done", "old-working"]

    @pytest.mark.asyncio
    async def test_dry_run_deletes_nothing(self, hive, write_signal):
        await hive.lifecycle.create("old-done", "task")
        write_signal(hive, "old-done", "COMPLETE")
        _age(hive, "old-done", days=8)

        dry = await hive.lifecycle.prune(PruneOptions(dry_run=True))
        real = await hive.lifecycle.prune(PruneOptions())

        assert dry.dry_run is True
        assert dry.pruned == real.pruned == ["old-done"]
        assert hive.minions.names() == []

    @pytest.mark.asyncio
    async def test_prune_all_ignores_age(self, hive, write_signal):
        await hive.lifecycle.create("fresh", "task")
        write_signal(hive, "fresh", "COMPLETE")

        result = await hive.lifecycle.prune(PruneOptions(all=True))

        assert result.pruned == ["fresh"]

    @pytest.mark.asyncio
    async def test_prune_drops_mailbox_and_sandbox(self, hive, runtime, write_signal):
        meta = await hive.lifecycle.create("old", "task", CreateOptions(start=True))
        await hive.lifecycle.create("peer", "task")
        hive.mailbox.send("peer", "old", "hi")
        write_signal(hive, "old", "COMPLETE")
        _age(hive, "old", days=30)

        await hive.lifecycle.prune(PruneOptions(older_than="1d"))

        assert meta.container_id not in runtime.containers
        assert hive.mailbox.count("old") == 0

    @pytest.mark.asyncio
    async def test_prune_rejects_bad_age(self, hive):
        with pytest.raises(InvalidAgeFormatError):
            await hive.lifecycle.prune(PruneOptions(older_than="7 days"))


class TestCleanup:
    @pytest.mark.asyncio
    async def test_cleanup_completed_and_killed(self, hive, runtime, write_signal):
        done = await hive.lifecycle.create("done", "task", CreateOptions(start=True))
        await hive.lifecycle.create("killed", "task")
        await hive.lifecycle.kill("killed")
        await hive.lifecycle.create("busy", "task", CreateOptions(start=True))
        write_signal(hive, "done", "COMPLETE")

        cleaned = await hive.lifecycle.cleanup()

        assert sorted(cleaned) == ["done", "killed"]
        assert done.container_id not in runtime.containers
        assert sorted(hive.minions.names()) == ["busy", "done", "killed"]

    @pytest.mark.asyncio
    async def test_cleanup_remove_files(self, hive, write_signal):
        await hive.lifecycle.create("done", "task")
        write_signal(hive, "done", "COMPLETE")

        await hive.lifecycle.cleanup(CleanupOptions(remove_files=True))

        assert hive.minions.names() == []

    @pytest.mark.asyncio
    async def test_cleanup_all_swallows_adapter_errors(self, hive, runtime):
        await hive.lifecycle.create("busy", "task", CreateOptions(start=True))
        runtime.failing.add("remove")

        cleaned = await hive.lifecycle.cleanup(CleanupOptions(all=True))

        assert cleaned == ["busy"]
