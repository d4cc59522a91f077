from minion_hive.runtime.base import SandboxRuntime
from minion_hive.runtime.calls import must_adapter_call, try_adapter_call
from minion_hive.runtime.docker_ops import DockerRuntime

__all__ = ["SandboxRuntime", "DockerRuntime", "try_adapter_call", "must_adapter_call"]
