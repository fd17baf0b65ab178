"""Bounded-parallel fetch orchestration.

Runs one unit of work per item (resource group, stack, storage account,
instance) on a capped thread pool and pairs every result with the item
that produced it.

Philosophy:
- Every item is attempted exactly once
- One failing item never cancels its siblings
- Failures are surfaced, never swallowed: soft failures are the call
  site's business (see fallback_policy), everything else is reported
  through ParallelFetchError once the whole pass has finished
- Worker limit 0 runs strictly sequentially in the calling thread

Public API (the "studs"):
    ParallelFetcher: Bounded-parallel executor
"""

import logging
import time
from collections.abc import Callable, Hashable, Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, TypeVar

from azcollect.errors import ParallelFetchError

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def _identity(item: Any) -> Hashable:
    return item


class ParallelFetcher:
    """Execute a fetch operation over a list of items with a worker cap."""

    def __init__(self, worker_limit: int = 0):
        """Initialize parallel fetcher.

        Args:
            worker_limit: Maximum concurrent calls (0 = sequential)

        Raises:
            ValueError: If worker_limit is negative
        """
        if worker_limit < 0:
            raise ValueError("worker_limit cannot be negative")
        self.worker_limit = worker_limit

    def run(
        self,
        items: Iterable[T],
        op: Callable[[T], R],
        key: Callable[[T], Hashable] = _identity,
        name: str = "parallel fetch",
    ) -> dict[Hashable, R]:
        """Run ``op`` once per item.

        Args:
            items: Items to process
            op: Unit of work for a single item
            key: Identity of an item in the result mapping (default: the item)
            name: Label used in logs and errors

        Returns:
            Mapping of key(item) -> op(item)

        Raises:
            ParallelFetchError: If any item raised; carries partial results and
                the per-item failures

        Example:
            >>> fetcher = ParallelFetcher(worker_limit=4)
            >>> fetcher.run(groups, lambda g: client.list_stacks(g.name), key=lambda g: g.name)
        """
        pending: dict[Hashable, T] = {}
        for item in items:
            pending.setdefault(key(item), item)

        if not pending:
            return {}

        start_time = time.time()
        results: dict[Hashable, R] = {}
        failures: dict[Hashable, BaseException] = {}

        if self.worker_limit == 0:
            for item_key, item in pending.items():
                try:
                    results[item_key] = op(item)
                except Exception as e:
                    failures[item_key] = e
        else:
            with ThreadPoolExecutor(max_workers=self.worker_limit) as executor:
                futures = {
                    executor.submit(op, item): item_key for item_key, item in pending.items()
                }
                for future in as_completed(futures):
                    item_key = futures[future]
                    try:
                        results[item_key] = future.result()
                    except Exception as e:
                        failures[item_key] = e

        duration = time.time() - start_time
        logger.debug(
            f"{name}: {len(pending)} items, {len(failures)} failed, "
            f"workers={self.worker_limit or 'sequential'}, {duration:.2f}s"
        )

        if failures:
            raise ParallelFetchError(name, results, failures)
        return results


__all__ = ["ParallelFetcher"]
