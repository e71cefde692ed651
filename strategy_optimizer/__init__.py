"""Strategy backtesting simulator and metaheuristic parameter optimizer."""

__version__ = "0.4.0"
