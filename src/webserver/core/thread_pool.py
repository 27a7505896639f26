"""
=============================================================================
THREAD POOL
=============================================================================

Each listener owns one pool. The accept loop submits every accepted
connection as a task; a worker then runs that connection's whole
request loop (keep-alive included).

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      THREAD POOL LAYOUT                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   accept loop ── submit(conn) ──►  ┌───────────────────────┐        │
    │                                    │  Task Queue (bounded) │        │
    │                                    └──────────┬────────────┘        │
    │                       ┌───────────────────────┼──────────────┐      │
    │                       ▼                       ▼              ▼      │
    │                  ┌─────────┐            ┌─────────┐    ┌─────────┐  │
    │                  │Worker 0 │            │Worker 1 │ …  │Worker N │  │
    │                  └─────────┘            └─────────┘    └─────────┘  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    - min_workers threads start with the pool; more are added, up to
      max_workers, while submitted tasks outnumber the workers.
    - A full queue makes submit(block=False) return False; the listener
      answers 503 on that connection.

=============================================================================
GRACEFUL DRAIN
=============================================================================

    shutdown(wait=True)
        1. reject new tasks
        2. queue.join()      every submitted connection runs to completion,
                             however long that takes
        3. poison pills      one None per worker, workers exit
        4. join workers

=============================================================================
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    """Worker thread states."""
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


@dataclass
class Task:
    """A deferred function call."""

    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)


class Worker(threading.Thread):
    """
    Worker thread that processes tasks from the queue until it receives
    a poison pill (None). A failing task is logged and never kills the
    worker.
    """

    def __init__(
        self,
        task_queue: queue.Queue,
        worker_id: int,
        name_prefix: str = "Worker",
        on_done: Optional[Callable[[], None]] = None,
    ):
        super().__init__(name=f"{name_prefix}-{worker_id}", daemon=True)

        self.task_queue = task_queue
        self.worker_id = worker_id
        self._on_done = on_done

        self.state = WorkerState.IDLE
        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        logger.debug(f"{self.name} started")

        while True:
            task = self.task_queue.get()
            try:
                if task is None:
                    break
                self._execute_task(task)
            finally:
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"{self.name} stopped")

    def _execute_task(self, task: Task):
        self.state = WorkerState.BUSY
        start_time = time.monotonic()

        try:
            task.func(*task.args, **task.kwargs)
            self.tasks_completed += 1
        except Exception as e:
            elapsed = time.monotonic() - start_time
            logger.exception(f"{self.name} task failed after {elapsed:.3f}s: {e}")
            self.tasks_failed += 1
        finally:
            self.state = WorkerState.IDLE
            if self._on_done is not None:
                self._on_done()


class ThreadPool:
    """
    Thread pool for concurrent connection handling.

        pool = ThreadPool(min_workers=4, max_workers=16, name="site")
        pool.start()
        pool.submit(handle_connection, args=(conn,), block=False)
        pool.shutdown(wait=True)
    """

    def __init__(
        self,
        min_workers: int = 4,
        max_workers: int = 16,
        queue_size: int = 100,
        name: str = "Worker",
    ):
        """
        Args:
            min_workers: Threads created at start().
            max_workers: Upper bound reached under load.
            queue_size: Bound of the task queue.
            name: Thread name prefix, e.g. the listener name.
        """
        self.min_workers = min_workers
        self.max_workers = max_workers
        self.queue_size = queue_size
        self.name = name

        self._task_queue: queue.Queue[Optional[Task]] = queue.Queue(maxsize=queue_size)

        self._workers: list[Worker] = []
        self._lock = threading.Lock()
        self._started = False
        self._shutdown = False
        self._next_worker_id = 0
        self._in_flight = 0

    def start(self):
        """Start the pool with min_workers threads."""
        if self._started:
            return

        logger.debug(f"Starting {self.name} pool with {self.min_workers} workers")

        with self._lock:
            for _ in range(self.min_workers):
                self._add_worker()

        self._started = True

    def _add_worker(self) -> Worker:
        """Create and start one worker. Caller holds self._lock."""
        worker = Worker(
            task_queue=self._task_queue,
            worker_id=self._next_worker_id,
            name_prefix=self.name,
            on_done=self._task_finished,
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
        block: bool = True,
        queue_timeout: Optional[float] = None
    ) -> bool:
        """
        Submit a task for execution.

        Returns:
            True if the task was queued, False if the queue was full.

        Raises:
            RuntimeError: The pool isn't started or is shutting down.
        """
        if not self._started:
            raise RuntimeError("Thread pool not started")

        if self._shutdown:
            raise RuntimeError("Thread pool is shutting down")

        task = Task(func=func, args=args, kwargs=kwargs or {})

        try:
            self._task_queue.put(task, block=block, timeout=queue_timeout)
        except queue.Full:
            return False

        with self._lock:
            self._in_flight += 1
            self._maybe_scale_up()
        return True

    def _task_finished(self):
        with self._lock:
            self._in_flight -= 1

    def _maybe_scale_up(self):
        """
        Add a worker while submitted tasks outnumber workers, up to
        max_workers. Caller holds self._lock.
        """
        if len(self._workers) < self.max_workers and self._in_flight > len(self._workers):
            logger.debug(
                f"Scaling {self.name} pool: "
                f"{len(self._workers)} -> {len(self._workers) + 1} workers"
            )
            self._add_worker()

    def shutdown(self, wait: bool = True):
        """
        Shut the pool down.

        Args:
            wait: Wait for every queued and running task first. There is
                  no deadline; per-request timeouts bound the wait.
        """
        if not self._started:
            return

        logger.debug(f"Shutting down {self.name} pool...")
        self._shutdown = True

        if wait:
            self._task_queue.join()

        with self._lock:
            workers = list(self._workers)

        for _ in workers:
            self._task_queue.put(None)

        for worker in workers:
            worker.join()

        with self._lock:
            self._workers.clear()
        self._started = False

        logger.debug(f"{self.name} pool shutdown complete")

    # =========================================================================
    # MONITORING
    # =========================================================================

    @property
    def active_workers(self) -> int:
        return sum(1 for w in self._workers if w.state != WorkerState.STOPPED)

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def pending(self) -> int:
        """Tasks waiting in the queue."""
        return self._task_queue.qsize()

    @property
    def stats(self) -> dict:
        return {
            "workers": {
                "total": len(self._workers),
                "active": self.active_workers,
                "busy": self.busy_workers,
            },
            "tasks": {
                "queued": self.pending,
                "completed": sum(w.tasks_completed for w in self._workers),
                "failed": sum(w.tasks_failed for w in self._workers),
            },
        }
