from __future__ import annotations

from abc import ABC, abstractmethod
from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor, as_completed
from typing import Callable, Iterable, Literal, TypeVar

from orthomatrix.logging import get_logger

T = TypeVar("T")
R = TypeVar("R")

ParallelBackend = Literal["sequential", "threads", "processes"]

logger = get_logger(__name__)


class ParallelService(ABC):
    """Map independent, read-only work units over a pool of workers.

    Result order is not guaranteed to follow input order; the set of results
    equals sequential application of the function. Reduce steps that write
    shared outputs go through `run_once_on_coordinator`.
    """

    def __init__(self, workers: int = 1) -> None:
        self.workers = max(1, workers)

    def worker_count(self) -> int:
        return self.workers

    def run_once_on_coordinator(self, block: Callable[[], R]) -> R:
        return block()

    @abstractmethod
    def parallel_map(
        self,
        func: Callable[[T], R],
        items: Iterable[T],
        *,
        on_result: Callable[[R], None] | None = None,
    ) -> list[R]: ...


class SequentialService(ParallelService):
    def __init__(self, workers: int = 1) -> None:
        super().__init__(1)

    def parallel_map(
        self,
        func: Callable[[T], R],
        items: Iterable[T],
        *,
        on_result: Callable[[R], None] | None = None,
    ) -> list[R]:
        results: list[R] = []
        for item in items:
            result = func(item)
            if on_result is not None:
                on_result(result)
            results.append(result)
        return results


class _ExecutorService(ParallelService):
    def _executor(self) -> Executor:
        raise NotImplementedError

    def parallel_map(
        self,
        func: Callable[[T], R],
        items: Iterable[T],
        *,
        on_result: Callable[[R], None] | None = None,
    ) -> list[R]:
        results: list[R] = []
        with self._executor() as pool:
            futures = [pool.submit(func, item) for item in items]
            for future in as_completed(futures):
                result = future.result()
                if on_result is not None:
                    on_result(result)
                results.append(result)
        return results


class ThreadPoolService(_ExecutorService):
    def _executor(self) -> Executor:
        return ThreadPoolExecutor(max_workers=self.workers)


class ProcessPoolService(_ExecutorService):
    """Forked workers; `func` and items must be picklable."""

    def _executor(self) -> Executor:
        return ProcessPoolExecutor(max_workers=self.workers)


_BACKENDS: dict[str, type[ParallelService]] = {
    "sequential": SequentialService,
    "threads": ThreadPoolService,
    "processes": ProcessPoolService,
}


def create_parallel_service(backend: ParallelBackend = "threads", workers: int = 1) -> ParallelService:
    try:
        service_cls = _BACKENDS[backend]
    except KeyError as exc:
        raise ValueError(f"Unknown parallel backend: {backend!r}") from exc

    if workers <= 1 and backend != "sequential":
        logger.debug("Single worker requested; using sequential execution instead of %s", backend)
        return SequentialService()
    return service_cls(workers)
