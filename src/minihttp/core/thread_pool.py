"""
=============================================================================
THREAD POOL
=============================================================================

A fixed set of worker threads pulling connection tasks from a shared,
bounded queue. Each accepted connection becomes exactly one task.

=============================================================================
WHY A POOL?
=============================================================================

    Thread per connection:

        for conn in server.connections():
            threading.Thread(target=handle, args=(conn,)).start()

        No limit on concurrent threads. A burst of 10,000 connections
        means 10,000 stacks.

    Pool:

        pool = ThreadPool(min_workers=4, max_workers=16, queue_size=100)
        pool.start()

        for conn in server.connections():
            if not pool.submit(handle, args=(conn,), block=False):
                reject(conn)        # 503, the accept loop never blocks

        Bounded threads, bounded backlog, overload is answered instead of
        queued forever.

=============================================================================
ARCHITECTURE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        Thread Pool                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   submit(handle, conn) ──► ┌──────────────────────────────┐         │
    │                            │  TASK QUEUE (maxsize=100)    │         │
    │                            │  FIFO, thread-safe           │         │
    │                            └──────────────┬───────────────┘         │
    │                                           │ get()                    │
    │                                           ▼                          │
    │   ┌──────────┐ ┌──────────┐ ┌──────────┐ ┌──────────┐               │
    │   │ Worker 0 │ │ Worker 1 │ │ Worker 2 │ │ Worker 3 │  ... up to     │
    │   │ (idle)   │ │ (busy)   │ │ (busy)   │ │ (idle)   │  max_workers   │
    │   └──────────┘ └──────────┘ └──────────┘ └──────────┘               │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Shutdown uses the "poison pill" pattern: one None per worker is put
    on the queue; a worker that gets None leaves its loop.

=============================================================================
ISOLATION
=============================================================================

A worker catches and logs every exception a task raises, then moves on
to the next task. One failing connection can never take down a worker,
the accept loop, or any other connection.

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
    """Worker thread states."""
    IDLE = "idle"        # Waiting for task
    BUSY = "busy"        # Executing task
    STOPPED = "stopped"  # Thread exited


@dataclass
class Task:
    """
    A deferred call: func(*args, **kwargs).

    Attributes:
        func: The function to execute.
        args: Positional arguments for the function.
        kwargs: Keyword arguments for the function.
        submitted_at: Time the task was queued (for queue-wait logging).
        on_discard: Called instead of func when shutdown abandons the task,
                    so whatever it holds (a client socket) is released.
    """
    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)
    submitted_at: float = field(default_factory=time.time)
    on_discard: Optional[Callable[[], Any]] = None


class Worker(threading.Thread):
    """
    Worker thread that processes tasks from the queue.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        Worker Loop                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1. queue.get(timeout=idle_timeout)                                │
    │          ├── Empty    → check shutdown flag, loop                   │
    │          ├── None     → poison pill, exit                           │
    │          └── Task     → step 2                                      │
    │                                                                      │
    │   2. task.func(*task.args, **task.kwargs)                           │
    │          └── any exception is logged, never re-raised               │
    │                                                                      │
    │   3. queue.task_done(), back to step 1                              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘
    """

    def __init__(
        self,
        task_queue: queue.Queue,
        worker_id: int,
        idle_timeout: float = 1.0
    ):
        # daemon=True: a stuck task never keeps the process alive
        super().__init__(name=f"Worker-{worker_id}", daemon=True)

        self.task_queue = task_queue
        self.worker_id = worker_id
        self.idle_timeout = idle_timeout

        self.state = WorkerState.IDLE
        self._shutdown = threading.Event()

        # Metrics
        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")

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
                # Keeps queue.join() accurate, pills included
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute_task(self, task: Task):
        """Run one task with state tracking and failure isolation."""
        self.state = WorkerState.BUSY
        start_time = time.time()
        waited = start_time - task.submitted_at

        try:
            task.func(*task.args, **task.kwargs)

            elapsed = time.time() - start_time
            logger.debug(
                f"Worker {self.worker_id} completed task in {elapsed:.3f}s "
                f"(queued {waited:.3f}s)"
            )
            self.tasks_completed += 1

        except Exception as e:
            elapsed = time.time() - start_time
            logger.exception(
                f"Worker {self.worker_id} task failed after {elapsed:.3f}s: {e}"
            )
            self.tasks_failed += 1

        finally:
            self.state = WorkerState.IDLE

    def shutdown(self):
        """Signal the worker to stop after its current task."""
        self._shutdown.set()


class ThreadPool:
    """
    Thread pool for per-connection work.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      ThreadPool Usage                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   pool = ThreadPool(min_workers=4, max_workers=16)                  │
    │   pool.start()                                                       │
    │                                                                      │
    │   accepted = pool.submit(handler, args=(conn,), block=False)        │
    │                                                                      │
    │   pool.stats   # {"workers": {"busy": 3, ...}, "tasks": {...}}      │
    │                                                                      │
    │   pool.shutdown(wait=True, timeout=5.0)                             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘
    """

    def __init__(
        self,
        min_workers: int = 4,
        max_workers: int = 16,
        queue_size: int = 100,
        idle_timeout: float = 1.0
    ):
        """
        Initialize the thread pool.

        Args:
            min_workers: Workers created at start() and kept running.
            max_workers: Upper bound reached by scaling up under load.
            queue_size: Maximum number of queued tasks. A full queue makes
                        a non-blocking submit() return False.
            idle_timeout: How often idle workers wake to check for shutdown.
        """
        if min_workers < 1 or max_workers < min_workers:
            raise ValueError(
                f"Invalid worker bounds: min={min_workers}, max={max_workers}"
            )

        self.min_workers = min_workers
        self.max_workers = max_workers
        self.max_queue_size = queue_size
        self.idle_timeout = idle_timeout

        # queue.Queue does its own locking; maxsize bounds the backlog
        self._task_queue: queue.Queue[Optional[Task]] = queue.Queue(maxsize=queue_size)

        self._workers: list[Worker] = []
        self._lock = threading.Lock()  # Protects _workers
        self._started = False
        self._shutdown = False
        self._next_worker_id = 0

    def start(self):
        """Start the minimum number of workers."""
        if self._started:
            return

        logger.info(f"Starting thread pool with {self.min_workers} workers (max {self.max_workers})")

        with self._lock:
            for _ in range(self.min_workers):
                self._add_worker()

        self._started = True
        self._shutdown = False

    def _add_worker(self) -> Worker:
        """Create and start one worker. Caller holds _lock."""
        if len(self._workers) >= self.max_workers:
            raise RuntimeError("Maximum workers reached")

        worker = Worker(
            task_queue=self._task_queue,
            worker_id=self._next_worker_id,
            idle_timeout=self.idle_timeout
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
        queue_timeout: Optional[float] = None,
        on_discard: Optional[Callable[[], Any]] = None,
    ) -> bool:
        """
        Submit a task for execution.

        ┌─────────────────────────────────────────────────────────────────┐
        │                    submit() Flow                                 │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │   Queue has space  → enqueue, maybe scale up, return True       │
        │   Queue full:                                                   │
        │       block=True   → wait (up to queue_timeout)                 │
        │       block=False  → return False, caller rejects the work      │
        │                                                                  │
        └─────────────────────────────────────────────────────────────────┘

        Returns:
            True if the task was queued, False if the queue was full.

        Raises:
            RuntimeError: Pool not started or shutting down.
        """
        if not self._started:
            raise RuntimeError("Thread pool not started")

        if self._shutdown:
            raise RuntimeError("Thread pool is shutting down")

        task = Task(func=func, args=args, kwargs=kwargs or {}, on_discard=on_discard)

        try:
            self._task_queue.put(task, block=block, timeout=queue_timeout)
        except queue.Full:
            return False

        self._maybe_scale_up()
        return True

    def _maybe_scale_up(self):
        """Add a worker when every worker is busy and tasks are waiting."""
        with self._lock:
            if len(self._workers) >= self.max_workers:
                return

            busy_count = sum(1 for w in self._workers if w.state == WorkerState.BUSY)
            if busy_count == len(self._workers) and self._task_queue.qsize() > 0:
                logger.debug(
                    f"Scaling up: {len(self._workers)} -> {len(self._workers) + 1} workers"
                )
                self._add_worker()

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Shutdown the thread pool.

        ┌─────────────────────────────────────────────────────────────────┐
        │                    shutdown() Flow                               │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │   1. Reject new tasks                                           │
        │   2. wait=True: let the queue drain (bounded by timeout)        │
        │   3. Signal workers and send one poison pill each               │
        │   4. Join workers (2s each)                                     │
        │   5. Discard whatever is still queued (on_discard each)         │
        │                                                                  │
        └─────────────────────────────────────────────────────────────────┘

        Args:
            wait: Let queued tasks run first. If False they are discarded.
            timeout: Maximum time to wait for the queue to drain.
        """
        if not self._started:
            return

        logger.info("Shutting down thread pool...")
        self._shutdown = True

        if wait:
            if timeout is not None:
                deadline = time.time() + timeout
                while self._task_queue.unfinished_tasks:
                    if time.time() > deadline:
                        logger.warning("Shutdown timeout, abandoning queued tasks")
                        break
                    time.sleep(0.05)
            else:
                self._task_queue.join()

        with self._lock:
            workers = list(self._workers)
            self._workers.clear()

        for worker in workers:
            worker.shutdown()
            try:
                self._task_queue.put(None, block=False)
            except queue.Full:
                pass  # Shutdown flag still stops the worker

        for worker in workers:
            worker.join(timeout=2.0)

        self._discard_pending()

        self._started = False
        logger.info("Thread pool shutdown complete")

    def _discard_pending(self):
        """Empty the queue, releasing each abandoned task via on_discard."""
        discarded = 0
        while True:
            try:
                task = self._task_queue.get_nowait()
            except queue.Empty:
                break

            try:
                if task is not None and task.on_discard is not None:
                    discarded += 1
                    task.on_discard()
            except Exception as e:
                logger.exception(f"Discarding queued task failed: {e}")
            finally:
                self._task_queue.task_done()

        if discarded:
            logger.warning(f"Discarded {discarded} queued task(s) at shutdown")

    # =========================================================================
    # MONITORING
    # =========================================================================

    @property
    def worker_count(self) -> int:
        return len(self._workers)

    @property
    def stats(self) -> dict:
        """Worker and task counts, for debug logging."""
        with self._lock:
            workers = list(self._workers)

        return {
            "workers": {
                "total": len(workers),
                "busy": sum(1 for w in workers if w.state == WorkerState.BUSY),
                "idle": sum(1 for w in workers if w.state == WorkerState.IDLE),
            },
            "tasks": {
                "queued": self._task_queue.qsize(),
                "completed": sum(w.tasks_completed for w in workers),
                "failed": sum(w.tasks_failed for w in workers),
            },
        }
