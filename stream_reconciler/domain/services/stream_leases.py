"""Per-key mutual exclusion for reconciliation passes."""

import asyncio
import contextlib
import logging
from typing import AsyncIterator, Dict

logger = logging.getLogger(__name__)


class _Lease:
    __slots__ = ("lock", "holders")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.holders = 0


class StreamLeaseManager:
    """In-process leases keyed by stream or memorial id.

    At most one holder per key runs at a time; different keys never block
    each other. Lease entries are dropped once nobody holds or waits on them.
    """

    def __init__(self):
        self._leases: Dict[str, _Lease] = {}

    @contextlib.asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Hold the lease for ``key`` for the duration of the block."""
        lease = self._leases.get(key)
        if lease is None:
            lease = self._leases[key] = _Lease()
        lease.holders += 1
        try:
            async with lease.lock:
                yield
        finally:
            lease.holders -= 1
            if lease.holders == 0:
                self._leases.pop(key, None)

    def stream(self, stream_id: str):
        """Lease serializing passes for one stream."""
        return self.hold(f"stream:{stream_id}")

    def memorial(self, memorial_id: str):
        """Lease serializing live-slot checks for one memorial."""
        return self.hold(f"memorial:{memorial_id}")

    def is_held(self, key: str) -> bool:
        lease = self._leases.get(key)
        return lease is not None and lease.lock.locked()

    @property
    def active_keys(self) -> int:
        return len(self._leases)
