from __future__ import annotations

import argparse
import json
from dataclasses import fields
from datetime import datetime, timezone
from pathlib import Path
from time import perf_counter
from typing import Any, Dict, Literal, Optional, Tuple, Type

import pandas as pd
import yaml
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from strategy_optimizer.backtest.engine import EngineConfig
from strategy_optimizer.backtest.series import PriceSeries
from strategy_optimizer.core.exceptions import ConfigError
from strategy_optimizer.logging_utils import logging_context, setup_logging
from strategy_optimizer.optimize import run_registry
from strategy_optimizer.optimize.annealing import (
    AnnealingConfig,
    ProbabilisticLocalSearch,
)
from strategy_optimizer.optimize.fitness import (
    DEFAULT_WEIGHTS,
    FitnessConstraints,
    FitnessFunction,
)
from strategy_optimizer.optimize.genetic import EvolutionarySearch, GeneticConfig
from strategy_optimizer.optimize.result import OptimizationResult
from strategy_optimizer.optimize.schema import ParameterSchema
from strategy_optimizer.optimize.swarm import ParticleSwarmSearch, SwarmConfig
from strategy_optimizer.optimize.walk_forward import walk_forward
from strategy_optimizer.settings import get_settings
from strategy_optimizer.strats import get_strategy

AlgorithmName = Literal["genetic", "annealing", "swarm"]

ALGORITHMS: Dict[str, Tuple[Type[Any], Type[Any]]] = {
    "genetic": (EvolutionarySearch, GeneticConfig),
    "annealing": (ProbabilisticLocalSearch, AnnealingConfig),
    "swarm": (ParticleSwarmSearch, SwarmConfig),
}


# -------- Run file models --------
class PricesSection(BaseModel):
    model_config = ConfigDict(extra="forbid")

    csv: str
    column: str = "close"
    date_column: Optional[str] = "date"
    symbol: Optional[str] = None
    timeframe: Optional[str] = None


class EngineSection(BaseModel):
    model_config = ConfigDict(extra="forbid")

    initial_capital: float = 100_000.0
    commission_rate: float = 0.001
    slippage_rate: float = 0.0005
    risk_free_rate: float = 0.02
    close_open_position: bool = False

    def to_config(self) -> EngineConfig:
        return EngineConfig(**self.model_dump())


class FitnessSection(BaseModel):
    model_config = ConfigDict(extra="forbid")

    weights: Dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_WEIGHTS)
    )
    max_drawdown_limit: Optional[float] = None
    min_win_rate: Optional[float] = None
    min_profit_factor: Optional[float] = None
    penalty: float = 10.0
    var_confidence: float = 0.95

    def constraints(self) -> Optional[FitnessConstraints]:
        limits = (
            self.max_drawdown_limit,
            self.min_win_rate,
            self.min_profit_factor,
        )
        if all(v is None for v in limits):
            return None
        return FitnessConstraints(
            max_drawdown_limit=self.max_drawdown_limit,
            min_win_rate=self.min_win_rate,
            min_profit_factor=self.min_profit_factor,
            penalty=self.penalty,
        )


class WalkForwardSection(BaseModel):
    model_config = ConfigDict(extra="forbid")

    window_size: int = 252
    step_size: int = 63
    out_of_sample_fraction: float = 0.2


class RunConfig(BaseModel):
    """Shape of a YAML run file."""

    model_config = ConfigDict(extra="forbid")

    prices: PricesSection
    strategy: str
    algorithm: AlgorithmName = "genetic"
    seed: Optional[int] = None
    max_workers: Optional[int] = None
    parameters: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    engine: EngineSection = Field(default_factory=EngineSection)
    fitness: FitnessSection = Field(default_factory=FitnessSection)
    optimizer: Dict[str, Any] = Field(default_factory=dict)
    walk_forward: Optional[WalkForwardSection] = None
    output_dir: Optional[str] = None


def _load_config(path: Path) -> RunConfig:
    data = yaml.safe_load(path.read_text())
    if not isinstance(data, dict):
        raise ConfigError("Run config must be a mapping")
    base = path.parent
    prices = data.get("prices")
    if isinstance(prices, dict) and "csv" in prices:
        csv_path = Path(str(prices["csv"]))
        if not csv_path.is_absolute():
            prices["csv"] = str(base / csv_path)
    try:
        return RunConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid run config {path}: {exc}") from exc


def load_prices(section: PricesSection) -> PriceSeries:
    path = Path(section.csv)
    if not path.exists():
        raise ConfigError(f"Price file not found: {path}")
    frame = pd.read_csv(path)
    if section.date_column and section.date_column in frame.columns:
        frame[section.date_column] = pd.to_datetime(frame[section.date_column])
        frame = frame.set_index(section.date_column).sort_index()
    return PriceSeries.from_frame(
        frame,
        column=section.column,
        symbol=section.symbol or path.stem,
        timeframe=section.timeframe,
    )


def build_optimizer(
    algorithm: str,
    fitness: FitnessFunction,
    options: Dict[str, Any] | None = None,
    *,
    seed: int | None = None,
    max_workers: int | None = None,
):
    """Instantiate an optimizer by name with dataclass knobs from `options`."""
    try:
        cls, config_cls = ALGORITHMS[algorithm]
    except KeyError:
        raise ConfigError(
            f"Unknown algorithm {algorithm!r}; available: {sorted(ALGORITHMS)}"
        ) from None
    opts = dict(options or {})
    allowed = {f.name for f in fields(config_cls)}
    unknown = sorted(set(opts) - allowed)
    if unknown:
        raise ConfigError(f"Unknown {algorithm} option(s): {unknown}")
    if max_workers is not None:
        opts.setdefault("max_workers", max_workers)
    return cls(fitness, config_cls(**opts), seed=seed)


def _write_artifacts(
    run_dir: Path, result: OptimizationResult, cfg: RunConfig
) -> Dict[str, str]:
    run_dir.mkdir(parents=True, exist_ok=True)
    result_path = run_dir / "result.json"
    result_path.write_text(result.to_json(indent=2))
    equity_path = run_dir / "equity.csv"
    result.equity_curve.to_frame().to_csv(equity_path)
    (run_dir / "config.json").write_text(cfg.model_dump_json(indent=2))
    return {"result_path": str(result_path), "equity_path": str(equity_path)}


def run_optimization(
    config_path: Path, *, run_id: str | None = None
) -> Dict[str, Any]:
    cfg = _load_config(Path(config_path))
    settings = get_settings()
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    run_ref = run_id or f"{cfg.strategy}-{cfg.algorithm}-{timestamp}"
    base_output = Path(cfg.output_dir or settings.output_dir)
    run_dir = base_output / run_ref
    seed = cfg.seed if cfg.seed is not None else settings.seed
    workers = settings.max_workers if cfg.max_workers is None else cfg.max_workers

    with logging_context(run_id=run_ref):
        run_registry.record_run_event(
            run_ref,
            "running",
            root=base_output,
            strategy=cfg.strategy,
            algorithm=cfg.algorithm,
            config_path=str(config_path),
            seed=seed,
        )
        logger.info(
            "[runner] starting run={} strategy={} algorithm={} dir={}",
            run_ref,
            cfg.strategy,
            cfg.algorithm,
            run_dir,
        )
        started = perf_counter()
        try:
            definition = get_strategy(cfg.strategy)
            schema = (
                ParameterSchema.from_mapping(cfg.parameters)
                if cfg.parameters
                else definition.schema
            )
            prices = load_prices(cfg.prices)
            fitness = FitnessFunction(
                prices,
                definition.generate_signals,
                schema,
                engine=cfg.engine.to_config(),
                weights=cfg.fitness.weights,
                constraints=cfg.fitness.constraints(),
                var_confidence=cfg.fitness.var_confidence,
            )
            optimizer = build_optimizer(
                cfg.algorithm,
                fitness,
                cfg.optimizer,
                seed=seed,
                max_workers=workers,
            )
            result = optimizer.run()
            paths = _write_artifacts(run_dir, result, cfg)

            report = None
            if cfg.walk_forward is not None:
                wf = cfg.walk_forward
                report = walk_forward(
                    fitness,
                    lambda f: build_optimizer(
                        cfg.algorithm,
                        f,
                        cfg.optimizer,
                        seed=seed,
                        max_workers=workers,
                    ),
                    window_size=wf.window_size,
                    step_size=wf.step_size,
                    out_of_sample_fraction=wf.out_of_sample_fraction,
                )
                wf_path = run_dir / "walk_forward.json"
                wf_path.write_text(
                    json.dumps(report.to_dict(), indent=2, default=str)
                )
                paths["walk_forward_path"] = str(wf_path)
        except Exception:
            run_registry.record_run_event(
                run_ref,
                "failed",
                root=base_output,
                finished_at=datetime.now(timezone.utc).isoformat(),
            )
            raise

        duration_ms = (perf_counter() - started) * 1000.0
        run_registry.record_run_event(
            run_ref,
            "completed",
            root=base_output,
            run_dir=str(run_dir),
            best_fitness=result.best_fitness,
            best_parameters=dict(result.best_parameters),
            duration_ms=duration_ms,
            **paths,
        )
        logger.info(
            "[runner] completed run={} best={:.4f} params={} ms={:.1f}",
            run_ref,
            result.best_fitness,
            dict(result.best_parameters),
            duration_ms,
        )
    return {
        "run_id": run_ref,
        "run_dir": str(run_dir),
        "result": result,
        "walk_forward": report,
        **paths,
    }


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        description="Optimize a trading rule's parameters over historical prices"
    )
    parser.add_argument("--config", required=True, help="Path to YAML run definition")
    parser.add_argument("--run-id", default=None, help="Name for the output folder")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    args = parser.parse_args(argv)
    setup_logging(level=args.log_level)
    run_optimization(Path(args.config), run_id=args.run_id)


if __name__ == "__main__":
    main()
