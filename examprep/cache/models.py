"""
Value types shared by the cache layer.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Optional


class ConnectionStatus(str, Enum):
    """Lifecycle of the Redis connection held by RedisConnector."""

    UNINITIALIZED = "uninitialized"
    CONNECTING = "connecting"
    READY = "ready"
    ERROR = "error"
    CLOSED = "closed"


@dataclass(frozen=True)
class RateLimitStatus:
    """
    Outcome of a fixed-window counter check.

    When the store could not be consulted the check fails open and only
    ``allowed`` is set; the counter fields stay None.
    """

    allowed: bool
    current: Optional[int] = None
    limit: Optional[int] = None
    reset_in: Optional[int] = None

    @property
    def failed_open(self) -> bool:
        return self.current is None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


FAIL_OPEN = RateLimitStatus(allowed=True)


__all__ = ["ConnectionStatus", "RateLimitStatus", "FAIL_OPEN"]
