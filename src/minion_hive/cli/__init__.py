from minion_hive.cli.main import app

__all__ = ["app"]
