"""Bounded-concurrency, order-preserving map over a list of work items."""

import logging
import threading
from collections.abc import Callable, Sequence
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def indexed_parallel_map(
    items: Sequence[T], fn: Callable[[T], R], workers: int = 4
) -> list[R]:
    """Apply ``fn`` to every item with at most ``workers`` threads.

    Workers claim indices from a shared cursor and write each result into
    the output slot of the same index, so ``result[i]`` always belongs to
    ``items[i]`` whatever order the calls finish in.

    When a call raises, no further indices are claimed; calls already in
    flight are allowed to finish and the first error is re-raised once all
    workers have stopped.

    Args:
        items: Work items
        fn: Function applied to each item
        workers: Maximum number of concurrent calls

    Returns:
        Results aligned with ``items``
    """
    if workers < 1:
        raise ValueError(f"workers must be >= 1, got {workers}")

    items = list(items)
    total = len(items)
    if total == 0:
        return []

    results: list = [None] * total
    errors: list[Exception] = []
    lock = threading.Lock()
    cursor = 0

    def claim() -> int | None:
        nonlocal cursor
        with lock:
            if errors or cursor >= total:
                return None
            index = cursor
            cursor += 1
            return index

    def work() -> None:
        while (index := claim()) is not None:
            try:
                results[index] = fn(items[index])
            except Exception as e:
                with lock:
                    errors.append(e)
                logger.debug(f"Work item {index} failed: {e}")
                return

    threads = [
        threading.Thread(target=work, name=f"indexed-map-{n}", daemon=True)
        for n in range(min(workers, total))
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    if errors:
        raise errors[0]
    return results
