"""Parameter search over a trading rule's ParameterSchema.

The YAML runner lives in `strategy_optimizer.optimize.runner` and is not
imported here, since it pulls in the strategy registry.
"""

from strategy_optimizer.optimize.annealing import (
    AnnealingConfig,
    ProbabilisticLocalSearch,
    metropolis_accept,
)
from strategy_optimizer.optimize.fitness import (
    DEFAULT_WEIGHTS,
    Evaluation,
    FitnessConstraints,
    FitnessFunction,
)
from strategy_optimizer.optimize.genetic import EvolutionarySearch, GeneticConfig
from strategy_optimizer.optimize.pool import CancellationToken, PopulationEvaluator
from strategy_optimizer.optimize.result import ConvergencePoint, OptimizationResult
from strategy_optimizer.optimize.schema import (
    ParameterSchema,
    ParameterVector,
    ParamSpec,
)
from strategy_optimizer.optimize.swarm import ParticleSwarmSearch, SwarmConfig
from strategy_optimizer.optimize.walk_forward import WalkForwardReport, walk_forward

__all__ = [
    "AnnealingConfig",
    "CancellationToken",
    "ConvergencePoint",
    "DEFAULT_WEIGHTS",
    "Evaluation",
    "EvolutionarySearch",
    "FitnessConstraints",
    "FitnessFunction",
    "GeneticConfig",
    "OptimizationResult",
    "ParamSpec",
    "ParameterSchema",
    "ParameterVector",
    "ParticleSwarmSearch",
    "PopulationEvaluator",
    "ProbabilisticLocalSearch",
    "SwarmConfig",
    "WalkForwardReport",
    "metropolis_accept",
    "walk_forward",
]
