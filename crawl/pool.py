"""
Bounded-concurrency worker pool

Runs a worker function over a list of items with a fixed number of threads
pulling from one shared cursor.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, List, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass
class PoolFailure:
    """An item whose worker raised instead of handling its own error"""
    item: Any
    error: BaseException


def run_pool(items: Sequence[T], concurrency: int, worker: Callable[[T], Any],
             name: str = 'pool') -> List[PoolFailure]:
    """
    Process every item with at most ``concurrency`` workers in parallel

    Each item is claimed by exactly one worker; completion order is
    unspecified. An exception raised by ``worker`` is logged and returned as
    a PoolFailure; it never stops the other items and is never retried.

    Args:
        items: Items to process
        concurrency: Number of worker threads (at least one is used)
        worker: Callable invoked once per item
        name: Thread name prefix, useful in logs

    Returns:
        Failures raised by the worker, empty when every call returned
    """
    items = list(items)
    if not items:
        return []

    cursor = 0
    lock = threading.Lock()
    failures: List[PoolFailure] = []

    def claim_next():
        nonlocal cursor
        with lock:
            if cursor >= len(items):
                return None, False
            item = items[cursor]
            cursor += 1
            return item, True

    def runner():
        while True:
            item, claimed = claim_next()
            if not claimed:
                return
            try:
                worker(item)
            except Exception as e:
                logger.error(f"Worker failed on {item!r}: {e}")
                with lock:
                    failures.append(PoolFailure(item=item, error=e))

    worker_count = min(max(1, concurrency), len(items))
    threads = [
        threading.Thread(target=runner, name=f"{name}-{i}", daemon=True)
        for i in range(worker_count)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    return failures
