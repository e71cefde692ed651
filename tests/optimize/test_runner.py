from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pandas as pd
import pytest
import yaml

from strategy_optimizer.core.exceptions import ConfigError
from strategy_optimizer.optimize import run_registry, runner


@pytest.fixture
def prices_csv(tmp_path: Path) -> Path:
    gen = np.random.default_rng(seed=42)
    n = 160
    close = 100.0 * np.cumprod(1 + gen.normal(0.0005, 0.01, n))
    frame = pd.DataFrame(
        {
            "date": pd.date_range("2023-01-02", periods=n, freq="B"),
            "close": close,
        }
    )
    path = tmp_path / "prices.csv"
    frame.to_csv(path, index=False)
    return path


def _write_config(tmp_path: Path, **overrides) -> Path:
    cfg = {
        "prices": {"csv": "prices.csv", "symbol": "TOY"},
        "strategy": "sma_crossover",
        "algorithm": "genetic",
        "seed": 5,
        "max_workers": 2,
        "parameters": {
            "fast_window": {"min": 3, "max": 10, "kind": "int"},
            "slow_window": {"min": 15, "max": 40, "kind": "int"},
        },
        "optimizer": {"population_size": 6, "generations": 2},
        "output_dir": str(tmp_path / "runs"),
    }
    cfg.update(overrides)
    path = tmp_path / "run.yml"
    path.write_text(yaml.safe_dump(cfg))
    return path


def test_run_optimization_writes_artifacts(tmp_path, prices_csv):
    cfg_path = _write_config(tmp_path)

    out = runner.run_optimization(cfg_path, run_id="test-run")

    run_dir = Path(out["run_dir"])
    assert run_dir == tmp_path / "runs" / "test-run"
    payload = json.loads((run_dir / "result.json").read_text())
    assert payload["algorithm"] == "genetic"
    assert set(payload["best_parameters"]) == {"fast_window", "slow_window"}
    assert len(payload["equity_curve"]) == 160
    assert len(payload["convergence_history"]) == 2

    equity = pd.read_csv(run_dir / "equity.csv")
    assert list(equity.columns) == ["date", "equity"]
    assert len(equity) == 160

    runs = run_registry.load_runs(root=tmp_path / "runs")
    assert [r["status"] for r in runs] == ["completed", "running"]
    assert runs[0]["run_id"] == "test-run"


@pytest.mark.parametrize("algorithm", ["annealing", "swarm"])
def test_other_algorithms(tmp_path, prices_csv, algorithm):
    options = {
        "annealing": {"iterations": 10},
        "swarm": {"swarm_size": 4, "iterations": 3},
    }[algorithm]
    cfg_path = _write_config(tmp_path, algorithm=algorithm, optimizer=options)
    out = runner.run_optimization(cfg_path, run_id=algorithm)
    assert out["result"].algorithm == algorithm


def test_walk_forward_section(tmp_path, prices_csv):
    cfg_path = _write_config(
        tmp_path,
        walk_forward={
            "window_size": 80,
            "step_size": 80,
            "out_of_sample_fraction": 0.25,
        },
    )
    out = runner.run_optimization(cfg_path, run_id="wf")
    report = json.loads(Path(out["walk_forward_path"]).read_text())
    assert len(report["windows"]) == 2


def test_unknown_algorithm_is_config_error(tmp_path, prices_csv):
    with pytest.raises(ConfigError):
        runner.run_optimization(_write_config(tmp_path, algorithm="tabu"))


def test_unknown_optimizer_option_records_failure(tmp_path, prices_csv):
    cfg_path = _write_config(tmp_path, optimizer={"generationz": 3})
    with pytest.raises(ConfigError):
        runner.run_optimization(cfg_path, run_id="bad")
    runs = run_registry.load_runs(root=tmp_path / "runs")
    assert runs[0]["status"] == "failed"


def test_unknown_strategy(tmp_path, prices_csv):
    with pytest.raises(ConfigError):
        runner.run_optimization(_write_config(tmp_path, strategy="nope"), run_id="x")


def test_main_parses_arguments(tmp_path, prices_csv, monkeypatch):
    calls = []
    monkeypatch.setattr(
        runner,
        "run_optimization",
        lambda path, run_id=None: calls.append((path, run_id)),
    )
    monkeypatch.setattr(runner, "setup_logging", lambda level=None: None)
    runner.main(["--config", str(tmp_path / "run.yml"), "--run-id", "cli"])
    assert calls == [(tmp_path / "run.yml", "cli")]


def test_empty_fitness_weights_rejected(tmp_path, prices_csv):
    cfg_path = _write_config(tmp_path, fitness={"weights": {}})
    with pytest.raises(ConfigError, match="at least one metric"):
        runner.run_optimization(cfg_path, run_id="no-weights")
