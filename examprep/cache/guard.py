"""
Bounded, failure-safe execution of Redis commands.

Every cache operation goes through ``OperationGuard.run``. It turns an
unavailable store, a timeout, or any command error into the caller's neutral
default, so cache failures never reach request handlers. When the connection
has been lost it is reopened on demand, throttled by the connector.
"""

import asyncio
from collections import Counter
from typing import Awaitable, Callable, Optional, TypeVar

from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError

from examprep.cache.connection import RedisConnector
from examprep.logging import get_logger

logger = get_logger("cache.guard")

T = TypeVar("T")

Operation = Callable[[Redis], Awaitable[T]]


class OperationGuard:
    """
    Runs store operations under a time budget.

    A timed-out operation is not cancelled: it keeps running as a detached
    task that holds its own pooled connection, and whatever it eventually
    returns is dropped. Detached tasks are cancelled by ``cancel_pending()``.

    Usage:
        guard = OperationGuard(connector, timeout=0.5)
        value = await guard.run("get", lambda r: r.get(key), key=key)
    """

    def __init__(self, connector: RedisConnector, timeout: float = 0.5):
        self._connector = connector
        self._timeout = timeout
        self._detached: set[asyncio.Task] = set()
        self.stats: Counter[str] = Counter()

    @property
    def pending(self) -> int:
        """Number of timed-out operations still running."""
        return len(self._detached)

    async def run(
        self,
        name: str,
        operation: Operation[T],
        *,
        timeout: Optional[float] = None,
        default: Optional[T] = None,
        key: Optional[str] = None,
    ) -> Optional[T]:
        """
        Execute ``operation(client)`` and return its result or ``default``.

        Args:
            name: Operation name for logs and counters
            operation: Coroutine function receiving the Redis client
            timeout: Budget in seconds (guard default if None)
            default: Neutral value returned on any failure
            key: Cache key, logged on failure

        Returns:
            The operation's result, or ``default`` when the store is
            unavailable, the budget elapses, or the command fails
        """
        budget = self._timeout if timeout is None else timeout
        client = self._connector.client
        if client is None and self._connector.reconnect_due():
            client, budget = await self._reconnect(budget)
        if client is None:
            self.stats["unavailable"] += 1
            return default
        if budget <= 0:
            self.stats["timeouts"] += 1
            logger.warning("cache_timeout", op=name, key=key, budget_seconds=0)
            return default

        try:
            task = asyncio.ensure_future(operation(client))
        except Exception as e:
            self.stats["errors"] += 1
            logger.debug("cache_op_error", op=name, key=key, error=str(e))
            return default

        try:
            done, _ = await asyncio.wait({task}, timeout=budget)
        except asyncio.CancelledError:
            self._detach(task)
            raise

        if not done:
            self._detach(task)
            self.stats["timeouts"] += 1
            logger.warning("cache_timeout", op=name, key=key, budget_seconds=budget)
            return default

        try:
            return task.result()
        except RedisConnectionError as e:
            self.stats["errors"] += 1
            logger.warning("cache_connection_lost", op=name, key=key, error=str(e))
            self._connector.mark_lost(str(e))
            return default
        except Exception as e:
            self.stats["errors"] += 1
            logger.debug("cache_op_error", op=name, key=key, error=str(e))
            return default

    async def _reconnect(self, budget: float) -> tuple[Optional[Redis], float]:
        """
        Wait up to ``budget`` for a reconnect attempt.

        An attempt that outlasts the budget keeps running in the connector and
        serves later operations. Returns the client (if ready) and the budget
        left for the operation itself.
        """
        loop = asyncio.get_running_loop()
        started = loop.time()
        self.stats["reconnects"] += 1
        logger.info("cache_reconnecting")
        await asyncio.wait({self._connector.begin_connect()}, timeout=budget)
        return self._connector.client, budget - (loop.time() - started)

    def _detach(self, task: asyncio.Task) -> None:
        self._detached.add(task)
        task.add_done_callback(self._reap)

    def _reap(self, task: asyncio.Task) -> None:
        self._detached.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.debug("cache_late_error_discarded", error=str(error))
        else:
            logger.debug("cache_late_result_discarded")

    async def cancel_pending(self) -> None:
        """Cancel detached operations and wait for them to unwind."""
        tasks = list(self._detached)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


__all__ = ["OperationGuard"]
