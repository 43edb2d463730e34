# caredoc/core/rate_limit.py
"""
In-process counter for anonymous (not logged in) free-tier generations.

Counts are per client IP, per process, and reset on restart. They deter casual
abuse of the free tier and are not a billing control.
"""
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional

from starlette.requests import Request


@dataclass(frozen=True)
class UsageResult:
    allowed: bool
    remaining: int
    reason: Optional[str] = None


class AnonymousUsageLimiter:
    """
    Fixed quota of free uses per client key.

    Data structure:
    - _counts: OrderedDict[client_key, uses_so_far], least recently seen first

    At most `max_keys` clients are tracked. Past that the least recently seen
    client is forgotten and starts over with a full quota.
    """

    LIMIT_REACHED = "free_limit_reached"

    def __init__(self, limit: int, max_keys: int = 10000):
        self.limit = limit
        self.max_keys = max(max_keys, 1)
        self._counts: "OrderedDict[str, int]" = OrderedDict()
        self._lock = threading.Lock()

    def consume(self, client_key: str) -> UsageResult:
        """Take one free use if any remain."""
        with self._lock:
            used = self._counts.get(client_key, 0)
            if used >= self.limit:
                if client_key in self._counts:
                    self._counts.move_to_end(client_key)
                return UsageResult(allowed=False, remaining=0, reason=self.LIMIT_REACHED)
            used += 1
            self._counts[client_key] = used
            self._counts.move_to_end(client_key)
            while len(self._counts) > self.max_keys:
                self._counts.popitem(last=False)
            return UsageResult(allowed=True, remaining=self.limit - used)

    def remaining(self, client_key: str) -> int:
        with self._lock:
            return max(self.limit - self._counts.get(client_key, 0), 0)

    def tracked(self) -> int:
        with self._lock:
            return len(self._counts)

    def reset(self) -> None:
        with self._lock:
            self._counts.clear()


def client_key(request: Request) -> str:
    """Client IP, honouring the first X-Forwarded-For hop set by the proxy."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else "unknown"
