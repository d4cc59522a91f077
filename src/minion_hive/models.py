"""Data models for minions, messages and operation options."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

TASK_PREVIEW_LENGTH = 200


class LifecycleStatus(str, Enum):
    """Lifecycle status owned by the LifecycleManager."""

    PENDING = "pending"
    WAITING = "waiting"
    RUNNING = "running"
    PAUSED = "paused"
    KILLED = "killed"


class TaskStatus(str, Enum):
    """Signal written by the worker process into its STATUS file."""

    STARTING = "STARTING"
    WORKING = "WORKING"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETE, TaskStatus.FAILED)


class ResourceLimits(BaseModel):
    """Memory/CPU constraints applied to a sandbox."""

    memory: str | None = Field(default=None, description="Memory limit, e.g. 512m or 2g")
    cpus: float | None = Field(default=None, gt=0, description="Number of CPUs")

    def merged(self, override: "ResourceLimits") -> "ResourceLimits":
        """Explicit override wins field by field, stored value otherwise."""
        return ResourceLimits(
            memory=override.memory if override.memory is not None else self.memory,
            cpus=override.cpus if override.cpus is not None else self.cpus,
        )

    @property
    def is_empty(self) -> bool:
        return self.memory is None and self.cpus is None


class MinionMeta(BaseModel):
    """Durable per-minion record, persisted as meta.json."""

    model_config = ConfigDict(extra="ignore")

    name: str
    created_at: datetime
    task: str = Field(default="", description="Task preview, full text lives in TASK.md")
    status: LifecycleStatus = LifecycleStatus.PENDING
    container_id: str | None = None
    depends_on: str | None = None
    resource_limits: ResourceLimits = Field(default_factory=ResourceLimits)

    started_at: datetime | None = None
    killed_at: datetime | None = None
    paused_at: datetime | None = None
    resumed_at: datetime | None = None
    restarted_at: datetime | None = None
    retried_at: datetime | None = None
    renamed_at: datetime | None = None
    cloned_at: datetime | None = None
    imported_at: datetime | None = None

    previous_created_at: datetime | None = None
    renamed_from: str | None = None
    cloned_from: str | None = None
    original_name: str | None = None

    @staticmethod
    def preview(task: str) -> str:
        return task[:TASK_PREVIEW_LENGTH]


class StartOptions(BaseModel):
    """Options recognised when a sandbox is started.

    Unset limits fall back to the values stored on the minion.
    """

    credential: str | None = Field(default=None, description="CLAUDE_CODE_OAUTH_TOKEN value")
    keep_alive: bool = Field(default=False, description="Keep the container after the task")
    memory: str | None = None
    cpus: float | None = Field(default=None, gt=0)

    @property
    def limits(self) -> ResourceLimits:
        return ResourceLimits(memory=self.memory, cpus=self.cpus)


class CreateOptions(StartOptions):
    start: bool = Field(default=False, description="Start the sandbox right away")


class CloneOptions(StartOptions):
    full_workspace: bool = Field(
        default=False,
        description="Copy the whole workspace instead of only the task",
    )
    include_mailbox: bool = Field(
        default=False,
        description="Copy the source mailbox (full-workspace clones only)",
    )
    start: bool = False


class PruneOptions(BaseModel):
    older_than: str | None = Field(default=None, description="Age threshold such as 7d, 12h, 30m")
    all: bool = Field(default=False, description="Select every terminal minion regardless of age")
    dry_run: bool = False


class CleanupOptions(BaseModel):
    all: bool = Field(default=False, description="Clean every minion regardless of status")
    remove_files: bool = False


class PruneResult(BaseModel):
    pruned: list[str] = Field(default_factory=list)
    dry_run: bool = False


class Message(BaseModel):
    """One mailbox entry. Immutable once written."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    sender: str = Field(alias="from")
    to: str
    body: str
    timestamp: datetime


class ClearResult(BaseModel):
    name: str
    cleared: int


class PromotionReport(BaseModel):
    """Outcome of one scheduler pass."""

    promoted: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)


class WaitOutcome(str, Enum):
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"
    TIMEOUT = "TIMEOUT"


class WaitResult(BaseModel):
    status: WaitOutcome
    output: str | None = None


class ContainerStats(BaseModel):
    """Resource usage snapshot of a running sandbox."""

    cpu_percent: float = 0.0
    mem_usage: str = ""
    mem_percent: float = 0.0
    net_io: str = ""
    block_io: str = ""
    pid_count: int = 0


class ExecResult(BaseModel):
    """Outcome of a command run inside a sandbox."""

    exit_code: int | None = None
    output: str = ""


class DiskUsage(BaseModel):
    """One row of engine disk usage, like `docker system df`."""

    type: str
    total_count: int = 0
    active: int = 0
    size: int = 0
    reclaimable: int = 0


class MinionView(MinionMeta):
    """Metadata joined with the worker signal, sandbox state and mailbox size."""

    task_status: TaskStatus | None = None
    container_status: str | None = None
    message_count: int = 0


class MinionStatus(MinionView):
    output: str | None = None
    logs: str | None = None


class CollectResult(BaseModel):
    name: str
    task_status: TaskStatus | None = None
    output: str | None = None
    logs: str | None = None


class HealthReport(BaseModel):
    docker_running: bool = False
    image_exists: bool = False
    image_created: datetime | None = None
    image_age: str | None = None
    minions_total: int = 0
    minions_running: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
    disk: list[DiskUsage] = Field(default_factory=list)


class TemplateInfo(BaseModel):
    name: str
    path: str
    size: int
    modified_at: datetime
    preview: str


class ExportResult(BaseModel):
    name: str
    path: str
    size: int
    size_human: str


class ImportResult(BaseModel):
    name: str
    path: str
    imported: bool = True
