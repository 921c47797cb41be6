"""Best-effort replication of local writes to the remote store.

Local state and the cache are written first; the replicator then runs the
remote write as a background task. A failed write is logged, kept in a
bounded failure list and pushed to subscribers. It is never retried or
rolled back.
"""

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from careersync.core.schemas import utcnow

logger = logging.getLogger(__name__)


class ReplicationFailure(BaseModel):
    """A remote write that did not land."""

    model_config = ConfigDict(frozen=True)

    operation: str
    record_id: str
    error: str
    failed_at: datetime = Field(default_factory=utcnow)


FailureListener = Callable[[ReplicationFailure], None]


class Replicator:
    """Runs remote writes in the background without blocking the caller.

    Usage::

        replicator = Replicator()
        replicator.subscribe(lambda failure: print(failure.error))
        replicator.submit("insert_job", job.id, remote.insert_job(job))
        await replicator.drain()  # only when the caller wants to wait
    """

    def __init__(self, max_failures: int = 50) -> None:
        self._tasks: set[asyncio.Task[None]] = set()
        self._failures: deque[ReplicationFailure] = deque(maxlen=max_failures)
        self._listeners: list[FailureListener] = []

    @property
    def pending(self) -> int:
        return len(self._tasks)

    @property
    def failures(self) -> list[ReplicationFailure]:
        """Most recent failures, oldest first."""
        return list(self._failures)

    def subscribe(self, listener: FailureListener) -> Callable[[], None]:
        """Register a failure listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def submit(self, operation: str, record_id: str, write: Awaitable[None]) -> asyncio.Task[None]:
        """Schedule ``write`` on the running loop and return immediately."""
        task = asyncio.get_running_loop().create_task(self._run(operation, record_id, write))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait until every submitted write has settled."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def _run(self, operation: str, record_id: str, write: Awaitable[None]) -> None:
        try:
            await write
        except Exception as e:  # noqa: BLE001
            logger.warning("Remote %s failed for '%s': %s", operation, record_id, e)
            self._record(ReplicationFailure(operation=operation, record_id=record_id, error=str(e)))
            return
        logger.debug("Remote %s succeeded for '%s'", operation, record_id)

    def _record(self, failure: ReplicationFailure) -> None:
        self._failures.append(failure)
        for listener in list(self._listeners):
            try:
                listener(failure)
            except Exception:  # noqa: BLE001
                logger.exception("Replication failure listener raised")
