"""Consistency-aware routing between a primary and a replica store."""
import asyncio
import logging
import time
from typing import Callable, Optional, TypeVar

from lending.database import Session

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_STALE_MS = 2000


class ConsistencyRouter:
    """
    Owns the primary and replica store handles and decides which one serves
    each unit of work.

    A store handle is anything with ``connect()``, ``close()`` and the
    ``transaction()`` / ``session()`` context managers yielding a
    :class:`~lending.database.Session`. Units of work are plain callables
    taking that session; they run in a worker thread so the router's
    coroutines never block the event loop.

    Reads issued with ``require_fresh=True`` within ``max_stale_ms`` of the
    last successful write are sent to the primary (read-your-own-write).
    """

    def __init__(
        self,
        primary,
        replica,
        max_stale_ms: int = DEFAULT_MAX_STALE_MS,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Args:
            primary: Store handle used for writes and fresh reads
            replica: Store handle used for ordinary reads
            max_stale_ms: Default staleness window in milliseconds
            clock: Monotonic clock returning seconds
        """
        self._primary = primary
        self._replica = replica
        self.max_stale_ms = max_stale_ms
        self._clock = clock
        self._last_write_at: Optional[float] = None
        self._connected = False

    @property
    def last_write_at(self) -> Optional[float]:
        return self._last_write_at

    async def connect(self):
        """Connect the primary (fatal on failure) and the replica (best effort)."""
        if self._connected:
            return
        await asyncio.to_thread(self._primary.connect)
        try:
            await asyncio.to_thread(self._replica.connect)
        except Exception as e:
            logger.warning(f"Replica connect failed, reads will use the primary: {e}")
        self._connected = True

    async def disconnect(self):
        """Release both store handles. Errors are ignored."""
        for store in (self._primary, self._replica):
            try:
                await asyncio.to_thread(store.close)
            except Exception as e:
                logger.debug(f"Ignoring error while closing store: {e}")
        self._connected = False

    async def transact_on_primary(self, work: Callable[[Session], T]) -> T:
        """
        Run ``work`` inside a primary transaction and return its result.

        Any exception raised by ``work`` rolls the transaction back and
        propagates unchanged.
        """
        result = await asyncio.to_thread(_run_in_transaction, self._primary, work)
        self._record_write()
        return result

    async def execute_on_primary(self, work: Callable[[Session], T]) -> T:
        """Run ``work`` on the primary without an explicit transaction."""
        result = await asyncio.to_thread(_run_in_session, self._primary, work)
        self._record_write()
        return result

    async def query_on_replica(
        self,
        work: Callable[[Session], T],
        require_fresh: bool = False,
        max_stale_ms: Optional[int] = None
    ) -> T:
        """
        Run a read, preferring the replica.

        Args:
            work: Read to execute
            require_fresh: Route to the primary if a write happened within
                the staleness window
            max_stale_ms: Override of the staleness window for this call

        Returns:
            Result of ``work``
        """
        window = self.max_stale_ms if max_stale_ms is None else max_stale_ms

        if require_fresh and self._wrote_within(window):
            logger.debug("Recent write inside staleness window, reading from primary")
            return await asyncio.to_thread(_run_in_session, self._primary, work)

        try:
            return await asyncio.to_thread(_run_in_session, self._replica, work)
        except Exception as e:
            logger.warning(f"Replica read failed, falling back to primary: {e}")
            return await asyncio.to_thread(_run_in_session, self._primary, work)

    def clear_last_write(self):
        """Forget the last write (used in tests)."""
        self._last_write_at = None

    def _record_write(self):
        self._last_write_at = self._clock()

    def _wrote_within(self, window_ms: int) -> bool:
        if self._last_write_at is None:
            return False
        age_ms = (self._clock() - self._last_write_at) * 1000
        return age_ms < window_ms


def _run_in_transaction(store, work: Callable[[Session], T]) -> T:
    with store.transaction() as session:
        return work(session)


def _run_in_session(store, work: Callable[[Session], T]) -> T:
    with store.session() as session:
        return work(session)
