from __future__ import annotations

import threading

from strategy_optimizer.optimize.pool import CancellationToken, PopulationEvaluator


def test_map_preserves_order_on_threads():
    names = set()

    def square(x):
        names.add(threading.current_thread().name)
        return x * x

    with PopulationEvaluator(4) as pool:
        assert pool.map(square, range(20)) == [x * x for x in range(20)]
    assert all(n.startswith("fitness") for n in names)


def test_single_worker_runs_inline():
    caller = threading.current_thread().name
    seen = []
    with PopulationEvaluator(1) as pool:
        pool.map(lambda x: seen.append(threading.current_thread().name), [1, 2])
    assert seen == [caller, caller]


def test_cancellation_token():
    token = CancellationToken()
    assert token.cancelled is False
    token.cancel()
    assert token.cancelled is True
