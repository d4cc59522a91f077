"""Wires the stores, runtime and managers for one hive directory."""

from minion_hive.archive import WorkspaceArchiver
from minion_hive.config import Settings, get_settings
from minion_hive.lifecycle import LifecycleManager
from minion_hive.mailbox import Mailbox
from minion_hive.metadata import MetadataStore
from minion_hive.registry import Registry
from minion_hive.runtime import DockerRuntime, SandboxRuntime
from minion_hive.scheduler import DependencyScheduler
from minion_hive.storage import FileStore, RecordStore
from minion_hive.templates import TemplateStore


class Hive:
    """Composition root used by the CLI and by embedding code."""

    def __init__(
        self,
        settings: Settings | None = None,
        runtime: SandboxRuntime | None = None,
        store: RecordStore | None = None,
    ):
        self.settings = settings or get_settings()
        self.store = store or FileStore(self.settings.hive_dir)
        self.runtime = runtime or DockerRuntime(self.settings)

        self.minions = MetadataStore(self.store)
        self.mailbox = Mailbox(self.store, self.minions)
        self.lifecycle = LifecycleManager(self.minions, self.mailbox, self.runtime, self.settings)
        self.scheduler = DependencyScheduler(self.lifecycle, self.minions)
        self.registry = Registry(self.minions, self.mailbox, self.runtime)
        self.templates = TemplateStore(self._file_store())
        self.archiver = WorkspaceArchiver(self.minions, self.mailbox, self.runtime)

    def _file_store(self) -> FileStore:
        if isinstance(self.store, FileStore):
            return self.store
        return FileStore(self.settings.hive_dir)
