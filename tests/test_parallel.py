from __future__ import annotations

import pytest

from orthomatrix.parallel import (
    SequentialService,
    ThreadPoolService,
    create_parallel_service,
)


def _square(value: int) -> int:
    return value * value


def test_thread_pool_result_set_matches_sequential() -> None:
    items = list(range(20))
    seen: list[int] = []

    threaded = ThreadPoolService(4).parallel_map(_square, items, on_result=seen.append)
    sequential = SequentialService().parallel_map(_square, items)

    assert sorted(threaded) == sorted(sequential)
    assert sorted(seen) == sorted(sequential)


def test_create_parallel_service_selects_backend() -> None:
    assert isinstance(create_parallel_service("threads", 1), SequentialService)
    service = create_parallel_service("threads", 3)
    assert isinstance(service, ThreadPoolService)
    assert service.worker_count() == 3
    assert service.run_once_on_coordinator(lambda: "done") == "done"

    with pytest.raises(ValueError):
        create_parallel_service("mpi", 2)  # type: ignore[arg-type]


def test_coordinator_block_runs_exactly_once() -> None:
    calls: list[str] = []

    def _reduce() -> int:
        calls.append("reduce")
        return len(calls)

    for service in (SequentialService(), ThreadPoolService(3)):
        calls.clear()
        assert service.run_once_on_coordinator(_reduce) == 1
        assert calls == ["reduce"]
