from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, List, Optional, TypeVar

from loguru import logger

T = TypeVar("T")
R = TypeVar("R")

ProgressCallback = Callable[[int, int], None]


class CancellationToken:
    """Cooperative stop flag, checked by optimizers between steps."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class PopulationEvaluator:
    """
    Order-preserving map over a thread pool.

    Fitness evaluation is a pure function of its vector, so a generation is
    just `map(score, population)` followed by a join. With `max_workers <= 1`
    everything runs inline on the calling thread.
    """

    def __init__(self, max_workers: Optional[int] = None) -> None:
        self.max_workers = max(1, int(max_workers or 1))
        self._executor: Optional[ThreadPoolExecutor] = None

    def __enter__(self) -> "PopulationEvaluator":
        if self.max_workers > 1 and self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix="fitness"
            )
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def map(self, fn: Callable[[T], R], items: Iterable[T]) -> List[R]:
        batch = list(items)
        if self._executor is None or len(batch) <= 1:
            return [fn(item) for item in batch]
        logger.trace(
            "[pool] mapping {} item(s) on {} worker(s)", len(batch), self.max_workers
        )
        return list(self._executor.map(fn, batch))


__all__ = ["CancellationToken", "PopulationEvaluator", "ProgressCallback"]
