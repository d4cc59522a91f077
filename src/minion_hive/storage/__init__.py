from minion_hive.storage.base import RecordStore, join_key
from minion_hive.storage.filesystem import FileStore
from minion_hive.storage.memory import MemoryStore

__all__ = ["RecordStore", "FileStore", "MemoryStore", "join_key"]
