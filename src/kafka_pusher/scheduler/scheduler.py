"""
Periodic task execution with a fixed worker pool.

A ticker thread fires immediately on start and then every ``interval``
seconds. Each tick is queued for one of ``worker_pool_size`` worker threads.
If every worker is busy and the queue is full the tick is dropped, so a slow
task never builds an unbounded backlog.

Usage:
    scheduler = Scheduler(settings.scheduler, push_round)
    scheduler.start()
    ...
    scheduler.stop()
    print(scheduler.stats())
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, List, Optional

from ..config.settings import SchedulerSettings

logger = logging.getLogger(__name__)

Task = Callable[[], None]

_STOP = object()


class SchedulerError(Exception):
    """Raised on invalid scheduler use (bad settings, double start/stop)."""
    pass


@dataclass
class SchedulerStats:
    """Execution counters."""
    execution_count: int = 0
    success_count: int = 0
    error_count: int = 0
    dropped_ticks: int = 0
    last_execution: Optional[datetime] = None
    last_error: Optional[BaseException] = None


class Scheduler:
    """Runs a task periodically on a pool of worker threads."""

    def __init__(self, settings: SchedulerSettings, task: Task):
        if settings is None:
            raise SchedulerError("scheduler settings are required")
        if task is None:
            raise SchedulerError("task is required")
        if settings.interval <= 0:
            raise SchedulerError("interval must be positive")

        self._settings = settings
        self._task = task
        self._lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self._stats = SchedulerStats()
        self._running = False
        self._stop_event = threading.Event()
        self._queue: "queue.Queue[object]" = queue.Queue(maxsize=settings.worker_pool_size)
        self._threads: List[threading.Thread] = []

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._running

    def start(self) -> None:
        """
        Start the ticker and the worker pool.

        Raises:
            SchedulerError: If already running
        """
        with self._lock:
            if self._running:
                raise SchedulerError("scheduler is already running")
            self._running = True
            self._stop_event = threading.Event()
            self._queue = queue.Queue(maxsize=self._settings.worker_pool_size)

            workers = [
                threading.Thread(target=self._worker, args=(i,), name=f"pusher-worker-{i}", daemon=True)
                for i in range(self._settings.worker_pool_size)
            ]
            ticker = threading.Thread(target=self._ticker, name="pusher-ticker", daemon=True)
            self._threads = workers + [ticker]

        logger.info(
            f"Starting scheduler (interval={self._settings.interval}s, "
            f"workers={self._settings.worker_pool_size})"
        )
        for thread in self._threads:
            thread.start()

    def _offer_tick(self) -> None:
        try:
            self._queue.put_nowait(None)
        except queue.Full:
            with self._stats_lock:
                self._stats.dropped_ticks += 1
            logger.debug("All workers busy, tick dropped")

    def _ticker(self) -> None:
        self._offer_tick()
        while not self._stop_event.wait(self._settings.interval):
            self._offer_tick()
        logger.info("Ticker stopped")

    def _worker(self, worker_id: int) -> None:
        logger.debug(f"Worker {worker_id} started")
        while True:
            item = self._queue.get()
            if item is _STOP:
                logger.debug(f"Worker {worker_id} stopped")
                return
            self._execute(worker_id)

    def _execute(self, worker_id: int) -> None:
        start = time.monotonic()
        with self._stats_lock:
            self._stats.execution_count += 1
            self._stats.last_execution = datetime.now()
            execution = self._stats.execution_count

        logger.debug(f"Worker {worker_id} executing task (execution {execution})")
        try:
            self._task()
        except Exception as e:
            with self._stats_lock:
                self._stats.error_count += 1
                self._stats.last_error = e
            logger.error(
                f"Task execution failed on worker {worker_id} "
                f"after {time.monotonic() - start:.3f}s: {e}"
            )
            return

        with self._stats_lock:
            self._stats.success_count += 1
        logger.info(f"Task executed successfully on worker {worker_id} in {time.monotonic() - start:.3f}s")

    def stop(self) -> None:
        """
        Stop ticking, let in-flight tasks finish, and join all threads.

        Raises:
            SchedulerError: If not running
        """
        with self._lock:
            if not self._running:
                raise SchedulerError("scheduler is not running")
            threads = self._threads

        logger.info("Stopping scheduler")
        self._stop_event.set()
        for thread in threads:
            if thread.name == "pusher-ticker":
                thread.join()

        # Discard ticks that no worker has picked up yet
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break

        for _ in range(self._settings.worker_pool_size):
            self._queue.put(_STOP)
        for thread in threads:
            thread.join()

        with self._lock:
            self._running = False
            self._threads = []

        stats = self.stats()
        logger.info(
            f"Scheduler stopped (executions={stats.execution_count}, "
            f"successful={stats.success_count}, failed={stats.error_count})"
        )

    def stats(self) -> SchedulerStats:
        """Return a snapshot of the counters."""
        with self._stats_lock:
            return replace(self._stats)
