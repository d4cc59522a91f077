"""Run AI minions in Docker sandboxes and coordinate them through a shared directory."""

from minion_hive.errors import HiveError
from minion_hive.hive import Hive
from minion_hive.models import LifecycleStatus, MinionMeta, TaskStatus

__version__ = "0.1.0"

__all__ = ["Hive", "HiveError", "LifecycleStatus", "MinionMeta", "TaskStatus", "__version__"]
