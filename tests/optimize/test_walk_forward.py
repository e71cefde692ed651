from __future__ import annotations

import json

import pytest

from strategy_optimizer.core.exceptions import ConfigError, MalformedInputError
from strategy_optimizer.optimize.fitness import FitnessFunction
from strategy_optimizer.optimize.genetic import EvolutionarySearch, GeneticConfig
from strategy_optimizer.optimize.walk_forward import (
    consistency,
    split_windows,
    walk_forward,
)


def test_split_windows_rolls_forward():
    assert split_windows(100, 50, 25, 0.5) == [
        (0, 25, 50),
        (25, 50, 75),
        (50, 75, 100),
    ]


def test_split_windows_rejects_bad_shapes():
    with pytest.raises(MalformedInputError):
        split_windows(30, 50, 10, 0.2)
    with pytest.raises(MalformedInputError):
        split_windows(100, 10, 10, 0.05)
    with pytest.raises(ConfigError):
        split_windows(100, 50, 10, 1.0)
    with pytest.raises(ConfigError):
        split_windows(100, 50, 0, 0.2)


def test_consistency_ratio():
    assert consistency(2.0, 1.0) == pytest.approx(0.5)
    assert consistency(0.0, 1.0) == 0.0
    assert consistency(-1.0, 1.0) == 0.0
    assert consistency(1.0, float("nan")) == 0.0


def test_walk_forward_report(trending_prices, hold_rule, frictionless):
    rule, schema = hold_rule
    fitness = FitnessFunction(trending_prices, rule, schema, engine=frictionless)
    cfg = GeneticConfig(population_size=6, generations=3)

    report = walk_forward(
        fitness,
        lambda f: EvolutionarySearch(f, cfg, seed=1),
        window_size=100,
        step_size=100,
        out_of_sample_fraction=0.25,
    )
    assert report.algorithm == "genetic"
    assert len(report.windows) == 3
    first = report.windows[0]
    assert (first.start, first.in_sample_end, first.end) == (0, 75, 100)
    assert len(first.out_of_sample.equity_curve) == 25
    payload = json.loads(json.dumps(report.to_dict()))
    assert len(payload["windows"]) == 3
    assert payload["average_consistency"] == pytest.approx(
        sum(w.consistency for w in report.windows) / 3
    )
