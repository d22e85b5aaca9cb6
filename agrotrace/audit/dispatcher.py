"""Bounded asynchronous hand-off between change interception and the audit recorder."""

import asyncio
import concurrent.futures
import logging
import threading
from dataclasses import dataclass
from typing import List, Literal, Optional

from agrotrace.audit.recorder import AuditRecorder
from agrotrace.core.context import correlation_id_ctx
from agrotrace.domain.models.audit_event import AuditCommand
from agrotrace.observability.metrics import (
    AUDIT_DROPPED,
    AUDIT_ENQUEUED,
    AUDIT_RECORD_FAILURES,
    MetricsCollector,
)

OverflowPolicy = Literal["drop_oldest", "block"]


@dataclass(frozen=True)
class _QueuedCommand:
    command: AuditCommand
    correlation_id: Optional[str]


class AuditDispatcher:
    """
    Bounded queues consumed by background workers that call recorder.record().
    Each worker owns one queue and commands are routed by tenant, so one
    tenant's commands (and therefore one entity's) are recorded in submission
    order whatever the worker count. max_queue_size bounds each worker's queue.

    Producers never wait on the audit write: a full queue either evicts the
    oldest command (drop_oldest) or waits up to enqueue_timeout (block).
    Worker failures are logged and counted; they never reach the producer.
    """

    def __init__(
        self,
        recorder: AuditRecorder,
        *,
        max_queue_size: int = 1000,
        overflow_policy: OverflowPolicy = "drop_oldest",
        enqueue_timeout_seconds: float = 2.0,
        workers: int = 1,
        drain_timeout_seconds: float = 5.0,
        metrics: Optional[MetricsCollector] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if max_queue_size < 1:
            raise ValueError("max_queue_size must be >= 1")
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self._recorder = recorder
        self._max_queue_size = max_queue_size
        self._policy = overflow_policy
        self._enqueue_timeout = enqueue_timeout_seconds
        self._worker_count = workers
        self._drain_timeout = drain_timeout_seconds
        self._metrics = metrics or MetricsCollector()
        self._logger = logger or logging.getLogger(__name__)
        self._queues: List[asyncio.Queue[_QueuedCommand]] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_thread_id: Optional[int] = None
        self._workers: List[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return bool(self._workers) and not all(t.done() for t in self._workers)

    @property
    def queue_size(self) -> int:
        return sum(q.qsize() for q in self._queues)

    async def start(self) -> None:
        """Create the queues on the running loop and start the workers. Idempotent."""
        if self.running:
            return
        self._loop = asyncio.get_running_loop()
        self._loop_thread_id = threading.get_ident()
        self._queues = [
            asyncio.Queue(maxsize=self._max_queue_size) for _ in range(self._worker_count)
        ]
        self._workers = [
            asyncio.create_task(self._run_worker(queue), name=f"audit-worker-{i}")
            for i, queue in enumerate(self._queues)
        ]
        self._logger.info(
            "audit_dispatcher_started",
            extra={"workers": self._worker_count, "max_queue_size": self._max_queue_size},
        )

    async def stop(self) -> None:
        """Drain the queues (bounded by drain_timeout), then cancel the workers."""
        if not self._workers:
            return
        pending = self.queue_size
        try:
            await asyncio.wait_for(self.join(), timeout=self._drain_timeout)
        except asyncio.TimeoutError:
            self._logger.warning(
                "audit_dispatcher_drain_timeout",
                extra={"pending": self.queue_size},
            )
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        self._logger.info("audit_dispatcher_stopped", extra={"drained": pending})

    async def join(self) -> None:
        """Wait until every queued command has been processed."""
        await asyncio.gather(*(q.join() for q in self._queues))

    def submit_nowait(self, command: AuditCommand) -> bool:
        """
        Enqueue from synchronous code (ORM callbacks). Returns False when the
        command was dropped. Safe to call from threads other than the loop's.
        """
        if not self.running or self._loop is None:
            self._drop(command, "not_started", logging.WARNING)
            return False
        item = _QueuedCommand(command, correlation_id_ctx.get())

        if threading.get_ident() == self._loop_thread_id:
            return self._put_on_loop(item)

        if self._policy == "drop_oldest":
            self._loop.call_soon_threadsafe(self._put_on_loop, item)
            return True

        future = asyncio.run_coroutine_threadsafe(self._put_waiting(item), self._loop)
        try:
            # Small grace over the in-loop timeout for the cross-thread hop.
            return future.result(timeout=self._enqueue_timeout + 0.5)
        except concurrent.futures.TimeoutError:
            future.cancel()
            self._drop(command, "enqueue_timeout", logging.ERROR)
            return False

    async def submit(self, command: AuditCommand) -> bool:
        """Enqueue from async code. With the block policy waits up to enqueue_timeout."""
        if not self.running:
            self._drop(command, "not_started", logging.WARNING)
            return False
        item = _QueuedCommand(command, correlation_id_ctx.get())
        if self._policy == "block":
            return await self._put_waiting(item)
        return self._put_on_loop(item)

    def _queue_for(self, command: AuditCommand) -> asyncio.Queue:
        return self._queues[(command.actor.tenant_id or 0) % len(self._queues)]

    def _put_on_loop(self, item: _QueuedCommand) -> bool:
        queue = self._queue_for(item.command)
        try:
            queue.put_nowait(item)
        except asyncio.QueueFull:
            if self._policy == "block":
                # Waiting here would stall the event loop.
                self._drop(item.command, "queue_full", logging.ERROR)
                return False
            evicted = queue.get_nowait()
            queue.task_done()
            self._drop(evicted.command, "queue_full", logging.WARNING)
            queue.put_nowait(item)
        self._metrics.increment(AUDIT_ENQUEUED)
        return True

    async def _put_waiting(self, item: _QueuedCommand) -> bool:
        queue = self._queue_for(item.command)
        try:
            await asyncio.wait_for(queue.put(item), timeout=self._enqueue_timeout)
        except asyncio.TimeoutError:
            self._drop(item.command, "enqueue_timeout", logging.ERROR)
            return False
        self._metrics.increment(AUDIT_ENQUEUED)
        return True

    def _drop(self, command: AuditCommand, reason: str, level: int) -> None:
        self._metrics.increment(AUDIT_DROPPED, reason=reason)
        self._logger.log(
            level,
            "audit_event_dropped",
            extra={
                "reason": reason,
                "entity_type": command.entity_type,
                "entity_id": command.entity_id,
                "operation_type": command.operation.value,
            },
        )

    async def _run_worker(self, queue: asyncio.Queue) -> None:
        while True:
            item = await queue.get()
            token = correlation_id_ctx.set(item.correlation_id)
            try:
                await self._recorder.record(item.command)
            except Exception as e:
                self._metrics.increment(AUDIT_RECORD_FAILURES, error=type(e).__name__)
                self._logger.error(
                    "audit_record_failed",
                    extra={
                        "entity_type": item.command.entity_type,
                        "entity_id": item.command.entity_id,
                        "operation_type": item.command.operation.value,
                        "error": str(e),
                    },
                    exc_info=True,
                )
            finally:
                correlation_id_ctx.reset(token)
                queue.task_done()
