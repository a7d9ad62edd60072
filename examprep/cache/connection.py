"""
Redis connection supervisor.

Owns the single Redis client of the process:
- Lazy, idempotent connect with a bounded connect timeout
- Limited command retries with linear, capped backoff
- Throttled on-demand reconnect after the connection is lost
- TLS for ``rediss://`` URLs (Upstash)
- An observable status machine driving the availability gate

The connector never raises out of ``connect()``. A missing URL disables caching
for the lifetime of the connector.
"""

import asyncio
import time
from collections.abc import Callable
from typing import Any, Optional

from redis.asyncio import Redis
from redis.asyncio.retry import Retry
from redis.backoff import AbstractBackoff

from examprep.cache.models import ConnectionStatus
from examprep.config import Settings
from examprep.logging import get_logger

logger = get_logger("cache.connection")

StatusListener = Callable[[ConnectionStatus, ConnectionStatus], None]
ClientFactory = Callable[..., Redis]


class LinearBackoff(AbstractBackoff):
    """Backoff growing by ``step`` seconds per failure, capped at ``cap``."""

    def __init__(self, step: float = 0.5, cap: float = 2.0):
        self._step = step
        self._cap = cap

    def reset(self) -> None:
        pass

    def compute(self, failures: int) -> float:
        return min(self._cap, self._step * max(failures, 0))


class RedisConnector:
    """
    Supervises one Redis client.

    Status transitions:
        uninitialized -> connecting -> ready
        connecting -> error -> uninitialized   (failed attempt, may retry later)
        ready -> closed -> uninitialized       (connection lost or close())

    Usage:
        connector = RedisConnector.from_settings(get_settings())
        client = await connector.connect()   # None when Redis is unusable
        if connector.is_available():
            ...
    """

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        connect_timeout: float = 10.0,
        command_timeout: float = 5.0,
        max_retries: int = 3,
        retry_step: float = 0.5,
        retry_cap: float = 2.0,
        tls_verify: bool = False,
        reconnect_interval: float = 5.0,
        client_factory: Optional[ClientFactory] = None,
    ):
        self._url = url
        self._connect_timeout = connect_timeout
        self._command_timeout = command_timeout
        self._max_retries = max_retries
        self._retry_step = retry_step
        self._retry_cap = retry_cap
        self._tls_verify = tls_verify
        self._reconnect_interval = reconnect_interval
        self._client_factory = client_factory or Redis.from_url

        self._client: Optional[Redis] = None
        self._status = ConnectionStatus.UNINITIALIZED
        self._attempt: Optional[asyncio.Future] = None
        self._listeners: list[StatusListener] = []
        self._disposals: set[asyncio.Task] = set()
        self._disabled_logged = False
        self._closed = False
        self._last_attempt_at = float("-inf")

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        client_factory: Optional[ClientFactory] = None,
    ) -> "RedisConnector":
        return cls(
            settings.redis_url,
            connect_timeout=settings.redis_connect_timeout,
            command_timeout=settings.redis_command_timeout,
            max_retries=settings.redis_max_retries,
            retry_step=settings.redis_retry_step,
            retry_cap=settings.redis_retry_cap,
            tls_verify=settings.redis_tls_verify,
            reconnect_interval=settings.redis_reconnect_interval,
            client_factory=client_factory,
        )

    # =========================================================================
    # State
    # =========================================================================

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def configured(self) -> bool:
        """Whether a Redis URL was supplied."""
        return bool(self._url)

    @property
    def client(self) -> Optional[Redis]:
        """The live client, or None unless the connection is ready."""
        if not self.is_available():
            return None
        return self._client

    def is_available(self) -> bool:
        """
        Check whether Redis is usable right now.

        Pure state inspection: never performs I/O and never raises.
        """
        try:
            return self._client is not None and self._status is ConnectionStatus.READY
        except Exception:
            return False

    def add_listener(self, listener: StatusListener) -> None:
        """Register a callback invoked as ``listener(old, new)`` on every transition."""
        self._listeners.append(listener)

    def _set_status(self, status: ConnectionStatus, **details: Any) -> None:
        previous = self._status
        if previous is status:
            return
        self._status = status
        logger.info(
            "redis_status_changed",
            previous=previous.value,
            status=status.value,
            **details,
        )
        for listener in list(self._listeners):
            try:
                listener(previous, status)
            except Exception as e:
                logger.warning("redis_status_listener_error", error=str(e))

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def _client_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {
            "decode_responses": True,
            "socket_connect_timeout": self._connect_timeout,
            "socket_timeout": self._command_timeout,
            "socket_keepalive": True,
            "health_check_interval": 30,
            "retry": Retry(
                LinearBackoff(self._retry_step, self._retry_cap),
                self._max_retries,
            ),
        }
        if self._url and self._url.startswith("rediss://"):
            options["ssl_cert_reqs"] = "required" if self._tls_verify else "none"
        return options

    async def connect(self) -> Optional[Redis]:
        """
        Acquire the shared client, connecting if needed.

        Concurrent callers share one in-flight attempt. Returns None when
        Redis is not configured or the attempt failed.
        """
        if self.is_available():
            return self._client

        if not self._url:
            if not self._disabled_logged:
                logger.warning("redis_disabled", reason="UPSTASH_REDIS_URL not set")
                self._disabled_logged = True
            return None

        self._closed = False
        attempt = self.begin_connect()
        try:
            # A cancelled waiter must not abort the attempt other callers share
            return await asyncio.shield(attempt)
        except asyncio.CancelledError:
            if attempt.cancelled():
                return None
            raise

    def begin_connect(self) -> asyncio.Future:
        """Start a connection attempt, or return the one already in flight."""
        if self._attempt is None:
            self._last_attempt_at = time.monotonic()
            self._attempt = asyncio.ensure_future(self._open())
        return self._attempt

    def reconnect_due(self) -> bool:
        """
        Whether an operation should reopen a lost or failed connection.

        At most one attempt per ``reconnect_interval`` seconds, and none after
        ``close()`` until ``connect()`` is called again.
        """
        return (
            self.configured
            and not self._closed
            and self._attempt is None
            and self._status is ConnectionStatus.UNINITIALIZED
            and time.monotonic() - self._last_attempt_at >= self._reconnect_interval
        )

    async def _open(self) -> Optional[Redis]:
        self._set_status(ConnectionStatus.CONNECTING)
        client: Optional[Redis] = None
        try:
            client = self._client_factory(self._url, **self._client_options())
            await asyncio.wait_for(client.ping(), timeout=self._connect_timeout)
        except asyncio.CancelledError:
            self._fail(client, "connect cancelled")
            raise
        except asyncio.TimeoutError:
            self._fail(client, "connection timeout")
            return None
        except Exception as e:
            self._fail(client, str(e))
            return None
        finally:
            self._attempt = None

        self._client = client
        self._set_status(ConnectionStatus.READY)
        return client

    def _fail(self, client: Optional[Redis], error: str) -> None:
        logger.warning("redis_connection_failed", error=error)
        self._set_status(ConnectionStatus.ERROR, error=error)
        if client is not None:
            self._dispose(client)
        self._client = None
        self._set_status(ConnectionStatus.UNINITIALIZED)

    def mark_lost(self, reason: str = "connection lost") -> None:
        """
        Record that the server dropped the connection.

        The client is discarded so the next ``connect()`` opens a new one.
        """
        if self._client is None:
            return
        client = self._client
        self._client = None
        self._set_status(ConnectionStatus.CLOSED, reason=reason)
        self._dispose(client)
        self._set_status(ConnectionStatus.UNINITIALIZED)

    def _dispose(self, client: Redis) -> None:
        try:
            task = asyncio.get_running_loop().create_task(self._aclose(client))
        except RuntimeError:
            return
        self._disposals.add(task)
        task.add_done_callback(self._disposals.discard)

    @staticmethod
    async def _aclose(client: Redis) -> None:
        try:
            await client.aclose()
        except Exception as e:
            logger.debug("redis_close_error", error=str(e))

    async def close(self) -> None:
        """Close the client and wait for discarded clients to finish closing."""
        self._closed = True
        if self._attempt is not None:
            attempt = self._attempt
            attempt.cancel()
            await asyncio.gather(attempt, return_exceptions=True)
            self._attempt = None
        if self._client is not None:
            client = self._client
            self._client = None
            await self._aclose(client)
            self._set_status(ConnectionStatus.CLOSED, reason="shutdown")
            self._set_status(ConnectionStatus.UNINITIALIZED)
        if self._disposals:
            await asyncio.gather(*self._disposals, return_exceptions=True)


__all__ = ["LinearBackoff", "RedisConnector"]
