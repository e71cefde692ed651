from __future__ import annotations

import pytest

from strategy_optimizer.backtest.engine import EngineConfig
from strategy_optimizer.core.exceptions import ConfigError, MalformedInputError
from strategy_optimizer.optimize.fitness import FitnessConstraints, FitnessFunction


def test_default_weights_combine_sharpe_and_return(hold_fitness):
    ev = hold_fitness.evaluate({"hold": 10})
    expected = 0.7 * ev.metrics.sharpe_ratio + 0.3 * ev.metrics.total_return
    assert ev.fitness == pytest.approx(expected)
    assert ev.parameters == {"hold": 10}
    assert len(ev.trades) == 1
    assert len(ev.equity_curve) == len(hold_fitness.prices)


def test_score_is_deterministic(hold_fitness):
    assert hold_fitness({"hold": 7}) == hold_fitness.score({"hold": 7})


def test_longer_hold_earns_more_on_rising_prices(hold_fitness):
    short = hold_fitness.evaluate({"hold": 2})
    long = hold_fitness.evaluate({"hold": 20})
    assert long.metrics.total_return > short.metrics.total_return


def test_rejects_out_of_schema_vectors(hold_fitness):
    with pytest.raises(MalformedInputError):
        hold_fitness.score({"hold": 99})
    with pytest.raises(MalformedInputError):
        hold_fitness.score({"hold": 5, "other": 1})


def test_unknown_weight_metric(rising_prices, hold_rule):
    rule, schema = hold_rule
    with pytest.raises(ConfigError):
        FitnessFunction(rising_prices, rule, schema, weights={"alpha": 1.0})
    with pytest.raises(ConfigError, match="at least one metric"):
        FitnessFunction(rising_prices, rule, schema, weights={})


def test_constraints_subtract_penalty(rising_prices, hold_rule, frictionless):
    rule, schema = hold_rule
    plain = FitnessFunction(rising_prices, rule, schema, engine=frictionless)
    strict = FitnessFunction(
        rising_prices,
        rule,
        schema,
        engine=frictionless,
        constraints=FitnessConstraints(min_win_rate=1.1, min_profit_factor=1e9),
    )
    # one winning trade: profit factor is +inf, so only win rate is violated
    assert strict.score({"hold": 5}) == pytest.approx(plain.score({"hold": 5}) - 10.0)


def test_infinite_metric_is_clipped(rising_prices, hold_rule, frictionless):
    rule, schema = hold_rule
    fn = FitnessFunction(
        rising_prices, rule, schema, engine=frictionless, weights={"profit_factor": 1.0}
    )
    assert fn.score({"hold": 5}) == pytest.approx(1e6)


def test_with_prices_keeps_configuration(hold_fitness):
    part = hold_fitness.with_prices(hold_fitness.prices.slice(0, 30))
    assert len(part.prices) == 30
    assert part.weights == hold_fitness.weights
    assert part.engine is hold_fitness.engine
    assert isinstance(part.engine, EngineConfig)
