"""
=============================================================================
THREAD POOL
=============================================================================

A fixed-floor, bounded-ceiling pool of worker threads pulling tasks from
one queue. The bridge runs two of them:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       TWO POOLS, TWO JOBS                           │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   ENGINE POOL  ("engine-N")                                         │
    │     read bytes → parse → call bridging handler → return             │
    │     Never waits for an answer: the connection is parked and the     │
    │     worker is free again as soon as the handler returns.            │
    │                                                                      │
    │   HANDLER POOL ("handler-N")                                        │
    │     run the scripting-layer handler for one InboundEvent            │
    │     → validate → respond(request_id, status, data)                  │
    │     Handlers for different requests run in parallel; responses     │
    │     can finish in any order.                                        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Keeping them apart means a slow handler can never starve the threads that
accept and read new requests.

=============================================================================
SHUTDOWN
=============================================================================

    shutdown(wait=True)   let queued tasks run, then stop workers
    shutdown(wait=False)  discard queued tasks, then stop workers

Stopping the server uses wait=False: queued work belongs to requests that
are being abandoned anyway. Tasks already running are never interrupted;
they finish and their late respond() calls become logged no-ops.

=============================================================================
"""

import threading
import queue
import time
import logging
from typing import Callable, Optional, Any
from dataclasses import dataclass, field
from enum import Enum


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    """Worker thread states, for stats and debugging."""
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


@dataclass
class Task:
    """
    A deferred call: func(*args, **kwargs).

    `timeout` is a staleness bound: a task that sat in the queue longer
    than this is skipped instead of run.
    """
    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)
    timeout: Optional[float] = None
    submitted_at: float = field(default_factory=time.time)


class Worker(threading.Thread):
    """
    One pool thread.

        loop:
            task = queue.get(timeout=idle_timeout)
            None          → exit (poison pill)
            queue.Empty   → re-check shutdown flag
            otherwise     → run it, log failures, keep going
    """

    def __init__(
        self,
        task_queue: queue.Queue,
        worker_id: int,
        name_prefix: str = "worker",
        idle_timeout: float = 1.0
    ):
        # daemon: a stuck handler must not keep the process alive
        super().__init__(name=f"{name_prefix}-{worker_id}", daemon=True)

        self.task_queue = task_queue
        self.worker_id = worker_id
        self.idle_timeout = idle_timeout

        self.state = WorkerState.IDLE
        self._shutdown = threading.Event()

        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        logger.debug(f"{self.name} started")

        while not self._shutdown.is_set():
            try:
                task = self.task_queue.get(timeout=self.idle_timeout)
            except queue.Empty:
                continue

            try:
                if task is None:
                    break
                self._execute_task(task)
            finally:
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"{self.name} stopped")

    def _execute_task(self, task: Task):
        """Run one task; a failing task never takes the worker down."""
        self.state = WorkerState.BUSY
        start_time = time.time()

        try:
            if task.timeout and (start_time - task.submitted_at) > task.timeout:
                logger.warning(
                    f"{self.name}: task expired in queue "
                    f"(waited {start_time - task.submitted_at:.2f}s, limit {task.timeout}s)"
                )
                self.tasks_failed += 1
                return

            task.func(*task.args, **task.kwargs)
            self.tasks_completed += 1

        except Exception as e:
            elapsed = time.time() - start_time
            logger.exception(f"{self.name}: task failed after {elapsed:.3f}s: {e}")
            self.tasks_failed += 1

        finally:
            self.state = WorkerState.IDLE

    def shutdown(self):
        self._shutdown.set()


class ThreadPool:
    """
    Bounded pool of Worker threads.

        pool = ThreadPool(min_workers=2, max_workers=8, name_prefix="handler")
        pool.start()
        pool.submit(run_handler, args=(event,))
        pool.shutdown(wait=False)

    Starts with min_workers threads and adds one (up to max_workers)
    whenever every worker is busy and work is queued. A pool can be
    started again after shutdown, which is what a server restart does.
    """

    def __init__(
        self,
        min_workers: int = 4,
        max_workers: int = 16,
        queue_size: int = 1024,
        name_prefix: str = "worker",
        idle_timeout: float = 1.0
    ):
        self.min_workers = min_workers
        self.max_workers = max_workers
        self.name_prefix = name_prefix
        self.idle_timeout = idle_timeout

        # queue.Queue is already thread-safe; _lock only guards _workers
        self._task_queue: queue.Queue[Optional[Task]] = queue.Queue(maxsize=queue_size)

        self._workers: list[Worker] = []
        self._lock = threading.Lock()
        self._started = False
        self._shutdown = False
        self._next_worker_id = 0

    @property
    def is_running(self) -> bool:
        return self._started and not self._shutdown

    def start(self):
        """Spawn min_workers threads. No-op if already running."""
        with self._lock:
            if self._started and not self._shutdown:
                return

            logger.debug(f"Starting {self.name_prefix} pool with {self.min_workers} workers")
            self._shutdown = False

            # poison pills left over from a previous shutdown would kill
            # the new workers
            self._drain()

            for _ in range(self.min_workers):
                self._add_worker()

            self._started = True

    def _add_worker(self) -> Worker:
        # caller holds self._lock
        worker = Worker(
            task_queue=self._task_queue,
            worker_id=self._next_worker_id,
            name_prefix=self.name_prefix,
            idle_timeout=self.idle_timeout,
        )
        self._next_worker_id += 1
        self._workers.append(worker)
        worker.start()
        return worker

    def submit(
        self,
        func: Callable[..., Any],
        args: tuple = (),
        kwargs: Optional[dict] = None,
        timeout: Optional[float] = None,
        block: bool = False,
        queue_timeout: Optional[float] = None
    ) -> bool:
        """
        Queue func(*args, **kwargs) for a worker.

        Returns:
            True if queued, False if the queue is full.

        Raises:
            RuntimeError: If the pool is not running.
        """
        if not self._started or self._shutdown:
            raise RuntimeError(f"{self.name_prefix} pool is not running")

        task = Task(func=func, args=args, kwargs=kwargs or {}, timeout=timeout)

        try:
            self._task_queue.put(task, block=block, timeout=queue_timeout)
        except queue.Full:
            return False

        self._maybe_scale_up()
        return True

    def _maybe_scale_up(self):
        """Add a worker when all are busy and tasks are waiting."""
        with self._lock:
            if self._shutdown or len(self._workers) >= self.max_workers:
                return

            busy_count = sum(1 for w in self._workers if w.state == WorkerState.BUSY)
            if busy_count == len(self._workers) and self._task_queue.qsize() > 0:
                logger.debug(
                    f"Scaling {self.name_prefix} pool: "
                    f"{len(self._workers)} -> {len(self._workers) + 1} workers"
                )
                self._add_worker()

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Stop all workers.

        Args:
            wait: Run already-queued tasks first (True) or drop them (False).
            timeout: Upper bound on the wait for the queue to drain.
        """
        with self._lock:
            if not self._started or self._shutdown:
                return
            self._shutdown = True
            workers = list(self._workers)

        if wait:
            deadline = time.time() + timeout if timeout else None
            while not self._task_queue.empty():
                if deadline and time.time() > deadline:
                    logger.warning(f"{self.name_prefix} pool: drain timeout, dropping queued tasks")
                    break
                time.sleep(0.05)

        dropped = self._drain()
        if dropped:
            logger.debug(f"{self.name_prefix} pool: dropped {dropped} queued tasks")

        for worker in workers:
            worker.shutdown()
            try:
                self._task_queue.put_nowait(None)
            except queue.Full:
                pass

        current = threading.current_thread()
        for worker in workers:
            # a task may stop its own pool (e.g. a handler calling stop())
            if worker is not current:
                worker.join(timeout=2.0)

        with self._lock:
            self._workers.clear()
            self._started = False

        logger.debug(f"{self.name_prefix} pool shut down")

    def _drain(self) -> int:
        """Discard everything still queued; returns how many tasks."""
        dropped = 0
        while True:
            try:
                task = self._task_queue.get_nowait()
            except queue.Empty:
                return dropped
            self._task_queue.task_done()
            if task is not None:
                dropped += 1

    # =========================================================================
    # MONITORING
    # =========================================================================

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def queue_size(self) -> int:
        return self._task_queue.qsize()

    @property
    def stats(self) -> dict:
        """Worker and task counts."""
        return {
            "workers": {
                "total": len(self._workers),
                "busy": self.busy_workers,
                "idle": sum(1 for w in self._workers if w.state == WorkerState.IDLE),
            },
            "tasks": {
                "queued": self._task_queue.qsize(),
                "completed": sum(w.tasks_completed for w in self._workers),
                "failed": sum(w.tasks_failed for w in self._workers),
            },
        }
