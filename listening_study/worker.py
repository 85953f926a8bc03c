"""
Worker Pool
===========

Bounded-concurrency executor for independent measurement tasks.

Features:
- At most `workers` items run concurrently (thread pool)
- Results aligned with input order, whatever the completion order
- Progress callback after every finished item, serialized under one lock
- Collect-all failure policy: every item runs, failures are aggregated
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Generic, Iterable, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

ProgressCallback = Callable[[int, int], None]


class TaskError(Exception):
    """A single failed work item."""

    def __init__(self, key: str, index: int, item: Any, cause: BaseException):
        super().__init__(f"{key}: {cause}")
        self.key = key
        self.index = index
        self.item = item
        self.cause = cause


class AggregateError(Exception):
    """
    All failures from one pool run.

    errors holds the TaskErrors in input order; results holds the
    input-aligned results with None where an item failed.
    """

    def __init__(self, errors: List[TaskError], results: List[Any]):
        keys = ", ".join(e.key for e in errors)
        super().__init__(f"{len(errors)} failures across {len(results)} tasks: {keys}")
        self.errors = errors
        self.results = results

    @property
    def failed_keys(self) -> List[str]:
        return [e.key for e in self.errors]


class WorkerPool(Generic[T]):
    """
    Generic bounded-concurrency dispatcher.

    Usage:
        pool = WorkerPool(workers=8, on_change=bar.update)
        results = pool.map(items, measure, key=lambda item: item.name)
    """

    def __init__(self, workers: int, on_change: Optional[ProgressCallback] = None):
        """
        Initialize pool.

        Args:
            workers: Maximum number of concurrently running items (>= 1)
            on_change: Called as on_change(completed, total) from worker
                threads after each item finishes
        """
        if workers < 1:
            raise ValueError(f"workers must be >= 1, got {workers}")
        self.workers = workers
        self.on_change = on_change

    def map(self, items: Iterable[Any],
            fn: Callable[[Any], T],
            key: Callable[[Any], str] = str) -> List[T]:
        """
        Run fn on every item exactly once.

        Args:
            items: Finite sequence of work items
            fn: Per-item function; raising marks the item as failed
            key: Names an item in error reports

        Returns:
            Results aligned with items

        Raises:
            AggregateError: If one or more items failed, after all items ran
        """
        items = list(items)
        total = len(items)
        results: List[Optional[T]] = [None] * total
        errors: List[TaskError] = []

        if total == 0:
            return []

        lock = threading.Lock()
        completed = 0

        def finish(index: int, result: Optional[T], error: Optional[TaskError]):
            nonlocal completed
            with lock:
                if error is None:
                    results[index] = result
                else:
                    errors.append(error)
                completed += 1
                if self.on_change is not None:
                    self.on_change(completed, total)

        def run_one(index: int, item: Any):
            try:
                result = fn(item)
            except Exception as e:
                try:
                    item_key = key(item)
                except Exception:
                    item_key = str(index)
                logger.error(f"Task failed: {item_key}: {e}")
                error = TaskError(item_key, index, item, e)
                error.__cause__ = e
                finish(index, None, error)
            else:
                finish(index, result, None)

        logger.debug(f"Dispatching {total} tasks to {self.workers} workers")

        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            futures = [executor.submit(run_one, index, item) for index, item in enumerate(items)]

        # Only on_change can raise here; fn failures are already collected
        for future in futures:
            future.result()

        if errors:
            errors.sort(key=lambda e: e.index)
            raise AggregateError(errors, results)

        return results
