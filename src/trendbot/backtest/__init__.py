"""Backtest package.

Bar-by-bar simulation of catalog templates over candle history, cost
models, trade metrics, and the parameter sweep with its trend annotation,
export and candidate scoring.
"""

from trendbot.backtest.annotation import annotate_trend
from trendbot.backtest.candidates import Candidate, CandidateBuckets, select_buckets, to_candidate
from trendbot.backtest.costs import (
    ExecutionImpactProvider,
    fixed_cost,
    load_cost_config,
    load_empirical_cost,
    parse_execution_impacts,
)
from trendbot.backtest.engine import BacktestEngine, run_backtest
from trendbot.backtest.export import SWEEP_COLUMNS, sweep_rows, write_sweep_csv
from trendbot.backtest.metrics import compute_metrics, format_backtest_report
from trendbot.backtest.models import (
    BacktestConfig,
    BacktestMetrics,
    BacktestResult,
    BacktestStrategy,
    BacktestTrade,
    CostConfig,
    ExitReason,
    StrategyContext,
    SweepResult,
    TrendAnnotation,
)
from trendbot.backtest.strategy import TemplateStrategy
from trendbot.backtest.sweep import (
    DEFAULT_SWEEP_TEMPLATES,
    ParameterSweep,
    SweepTemplate,
    expand_grid,
    format_sweep_summary,
    rank_results,
)

__all__ = [
    "BacktestConfig",
    "BacktestEngine",
    "BacktestMetrics",
    "BacktestResult",
    "BacktestStrategy",
    "BacktestTrade",
    "Candidate",
    "CandidateBuckets",
    "CostConfig",
    "DEFAULT_SWEEP_TEMPLATES",
    "ExecutionImpactProvider",
    "ExitReason",
    "ParameterSweep",
    "SWEEP_COLUMNS",
    "StrategyContext",
    "SweepResult",
    "SweepTemplate",
    "TemplateStrategy",
    "TrendAnnotation",
    "annotate_trend",
    "compute_metrics",
    "expand_grid",
    "fixed_cost",
    "format_backtest_report",
    "format_sweep_summary",
    "load_cost_config",
    "load_empirical_cost",
    "parse_execution_impacts",
    "rank_results",
    "run_backtest",
    "select_buckets",
    "sweep_rows",
    "to_candidate",
    "write_sweep_csv",
]
