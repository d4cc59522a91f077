"""The two ways lifecycle code calls into the sandbox runtime.

``try_adapter_call`` is for teardown paths (kill, retry, prune, cleanup)
where the goal is converging local state; ``must_adapter_call`` is for
operations whose outcome is the adapter call itself (start, pause, resume,
restart).
"""

from collections.abc import Awaitable
from typing import TypeVar

import structlog

from minion_hive.errors import AdapterError

logger = structlog.get_logger()

T = TypeVar("T")


async def try_adapter_call(call: Awaitable[T], action: str, name: str) -> T | None:
    """Await call, logging and dropping AdapterError."""
    try:
        return await call
    except AdapterError as e:
        logger.info("adapter_call_swallowed", action=action, minion=name, error=str(e))
        return None


async def must_adapter_call(call: Awaitable[T], action: str, name: str) -> T:
    """Await call, re-raising AdapterError with the minion name attached."""
    try:
        return await call
    except AdapterError as e:
        logger.error("adapter_call_failed", action=action, minion=name, error=str(e))
        raise AdapterError(f"Failed to {action} minion '{name}': {e}", name=name) from e
