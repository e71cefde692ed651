from __future__ import annotations

from dataclasses import dataclass
from types import SimpleNamespace

import pytest

from strategy_optimizer.backtest.engine import run_backtest
from strategy_optimizer.backtest.series import PriceSeries, Signal
from strategy_optimizer.core.exceptions import ConfigError
from strategy_optimizer.strats import STRATEGIES, get_strategy
from strategy_optimizer.strats.common import get_param, signals_from_targets


def test_signals_from_targets_transitions():
    out = signals_from_targets([1, 1, 1, 0, -1, -1, 1])
    assert out == (
        Signal.HOLD,
        Signal.ENTER_LONG,
        Signal.HOLD,
        Signal.EXIT_LONG,
        Signal.ENTER_SHORT,
        Signal.HOLD,
        Signal.EXIT_SHORT,
    )


@pytest.mark.parametrize("name", sorted(STRATEGIES))
def test_strategies_produce_valid_signals(name, trending_prices):
    definition = get_strategy(name)
    params = definition.schema.defaults()
    signals = definition.generate_signals(trending_prices, params)
    assert len(signals) == len(trending_prices)
    assert signals[0] is Signal.HOLD
    assert any(s is not Signal.HOLD for s in signals)
    res = run_backtest(trending_prices, signals)
    assert len(res.equity_curve) == len(trending_prices)


def test_sma_crossover_holds_when_fast_not_faster(trending_prices):
    rule = get_strategy("sma_crossover").generate_signals
    signals = rule(trending_prices, {"fast_window": 30, "slow_window": 30})
    assert set(signals) == {Signal.HOLD}


def test_mean_reversion_fades_a_spike():
    prices = PriceSeries([100.0] * 10 + [90.0] + [100.0] * 5)
    rule = get_strategy("mean_reversion").generate_signals
    signals = rule(prices, {"lookback": 10, "z_entry": 2.0, "z_exit": 0.5})
    assert signals[10] is Signal.ENTER_LONG
    assert Signal.EXIT_LONG in signals[11:]


def test_unknown_strategy():
    with pytest.raises(ConfigError):
        get_strategy("martingale")


def test_get_param_reads_mappings_and_attributes():
    @dataclass(frozen=True)
    class Knobs:
        window: int = 7

    assert get_param({"window": 3}, "window", 10) == 3
    assert get_param({}, "window", 10) == 10
    assert get_param(Knobs(), "window", 10) == 7
    assert get_param(SimpleNamespace(window=4), "window", 10) == 4
    assert get_param(Knobs(), "missing", 1.5) == 1.5
