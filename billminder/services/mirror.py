"""
Remote Mirror

Best-effort background replication of local mutations to the remote store.

CONTRACT:
- The local write has already happened when a call is submitted
- Remote failures are logged and audited, never raised, never rolled back
- No retry unless `retry_attempts` > 1 (bounded, then dropped)
- The caller never waits. Inside a running event loop a call becomes a
  background task; without one it is handed to a single worker thread
  that runs it under its own loop, in submission order.
"""

import asyncio
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Awaitable, Callable, Optional, Union

import structlog
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from billminder.audit.logger import AuditLogger
from billminder.models.bill import Bill, UserProfile
from billminder.services.storage.interface import RemoteStoreInterface


logger = structlog.get_logger(__name__)


Submitted = Union[asyncio.Task, Future]


class RemoteMirror:
    """
    Fire-and-forget wrapper around a RemoteStoreInterface.
    """

    def __init__(
        self,
        remote: RemoteStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        retry_attempts: int = 1,
    ):
        self._remote = remote
        self._audit_logger = audit_logger
        self._retry_attempts = max(retry_attempts, 1)
        self._pending: set[asyncio.Task] = set()
        self._futures: set[Future] = set()
        self._lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None
        self.failures = 0

    @property
    def remote(self) -> RemoteStoreInterface:
        return self._remote

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending) + len(self._futures)

    async def _run(
        self,
        operation: str,
        entity_id: Optional[str],
        call: Callable[[], Awaitable[Any]],
    ) -> bool:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._retry_attempts),
                wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
                reraise=True,
            ):
                with attempt:
                    await call()
        except Exception as e:
            with self._lock:
                self.failures += 1
            logger.error(
                "remote_sync_failed",
                operation=operation,
                entity_id=entity_id,
                error=str(e),
            )
            if self._audit_logger:
                self._audit_logger.log_remote_failure(operation, entity_id, str(e))
            return False

        logger.debug("remote_sync_ok", operation=operation, entity_id=entity_id)
        return True

    def _worker(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                # One worker keeps sync-path calls in order (upsert before delete)
                self._executor = ThreadPoolExecutor(
                    max_workers=1,
                    thread_name_prefix="remote-mirror",
                )
            return self._executor

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._futures.discard(future)

    def submit(
        self,
        operation: str,
        entity_id: Optional[str],
        call: Callable[[], Awaitable[Any]],
    ) -> Submitted:
        """
        Start a remote call and return without waiting for it.

        Returns the asyncio task when a loop is running, otherwise the
        concurrent.futures.Future of the worker thread.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is None:
            future = self._worker().submit(asyncio.run, self._run(operation, entity_id, call))
            with self._lock:
                self._futures.add(future)
            future.add_done_callback(self._forget)
            return future

        task = loop.create_task(self._run(operation, entity_id, call))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def upsert_bill(self, bill: Bill) -> Submitted:
        return self.submit("upsert_bill", bill.id, lambda: self._remote.upsert_bill(bill))

    def delete_bill(self, bill_id: str) -> Submitted:
        return self.submit("delete_bill", bill_id, lambda: self._remote.delete_bill(bill_id))

    def upsert_profile(self, profile: UserProfile) -> Submitted:
        return self.submit(
            "upsert_profile",
            profile.uid,
            lambda: self._remote.upsert_profile(profile),
        )

    def join(self, timeout: Optional[float] = None) -> None:
        """Block until worker-thread calls finish (sync shutdown and tests)."""
        with self._lock:
            futures = list(self._futures)
        if futures:
            wait(futures, timeout=timeout)

    async def drain(self) -> None:
        """Wait for every scheduled call to finish (shutdown and tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        with self._lock:
            futures = list(self._futures)
        if futures:
            await asyncio.gather(
                *(asyncio.wrap_future(f) for f in futures),
                return_exceptions=True,
            )
