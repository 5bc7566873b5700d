"""Parameter sweep over catalog templates, tokens, timeframes and exit modes.

Each template declares a parameter grid. expand_grid produces every
combination (last key varies fastest, like itertools.product). The "sl"
and "tp" grid keys become the strategy's stop-loss / take-profit; the
remaining keys are template parameters.

For each (token, timeframe) the candles are aggregated once, indicators
are precomputed once and the trend annotation is computed once; every
(template, params, exit mode) combination then reuses them. When both
exit modes run, each row's parity_delta is the indicator-exit win rate
minus the price-exit win rate for the same combination.

Unknown templates and incomplete grids raise ConfigurationError before
any backtest runs.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from functools import cmp_to_key
from itertools import product

from trendbot.backtest.annotation import annotate_trend
from trendbot.backtest.engine import run_backtest
from trendbot.backtest.metrics import compute_metrics, format_ratio
from trendbot.backtest.models import BacktestConfig, CostConfig, SweepResult
from trendbot.backtest.strategy import TemplateStrategy
from trendbot.config import BacktestSettings, RegimeSettings, SweepSettings
from trendbot.data.candles import aggregate_candles
from trendbot.data.models import TokenDataset
from trendbot.exceptions import ConfigurationError
from trendbot.indicators.snapshot import precompute_indicators
from trendbot.logging import get_logger, log_context
from trendbot.models import ExitMode
from trendbot.strategy.templates import REQUIRED_PARAMS, TemplateId, parse_template_id

logger = get_logger(__name__)

BOUND_KEYS = ("sl", "tp")


def expand_grid(grid: Mapping[str, Sequence[float]]) -> list[dict[str, float]]:
    """Every combination of grid values, last key varying fastest.

    An empty grid yields a single empty combination.
    """
    keys = list(grid.keys())
    return [dict(zip(keys, combo)) for combo in product(*(grid[k] for k in keys))]


@dataclass(frozen=True)
class SweepTemplate:
    """A catalog template plus the parameter grid to search."""

    template_id: TemplateId
    grid: dict[str, list[float]] = field(default_factory=dict)

    def validate(self) -> None:
        """Check that the grid covers every required parameter.

        Raises:
            ConfigurationError: If a required key is missing or has no values.
        """
        missing = [k for k in REQUIRED_PARAMS[self.template_id] if not self.grid.get(k)]
        empty = [k for k, values in self.grid.items() if not values]
        if missing or empty:
            raise ConfigurationError(
                f"Sweep grid for {self.template_id.value} is incomplete: "
                f"{', '.join(sorted(set(missing + empty)))}"
            )

    def combinations(self) -> list[dict[str, float]]:
        return expand_grid(self.grid)

    def build(self, params: Mapping[str, float]) -> TemplateStrategy:
        """Build a strategy for one grid combination, splitting out sl/tp."""
        template_params = {k: v for k, v in params.items() if k not in BOUND_KEYS}
        return TemplateStrategy(
            self.template_id,
            template_params,
            stop_loss_pct=params.get("sl"),
            take_profit_pct=params.get("tp"),
        )

    @classmethod
    def from_config(cls, template: str, grid: Mapping[str, Sequence[float]]) -> "SweepTemplate":
        """Build from a raw template id string (e.g. from a config file)."""
        sweep_template = cls(parse_template_id(template), {k: list(v) for k, v in grid.items()})
        sweep_template.validate()
        return sweep_template


_SL = [-1.5, -2.0, -3.0]
_TP = [2.0, 3.0, 4.0]

DEFAULT_SWEEP_TEMPLATES: tuple[SweepTemplate, ...] = (
    SweepTemplate(TemplateId.RSI, {"entry": [20, 25, 30], "exit": [60, 65, 70], "sl": _SL, "tp": _TP}),
    SweepTemplate(TemplateId.CRSI, {"entry": [5, 10, 15, 20], "exit": [70, 80, 90], "sl": _SL, "tp": _TP}),
    SweepTemplate(TemplateId.BB_RSI, {"rsi_entry": [25, 30, 35], "rsi_exit": [55, 60, 65], "sl": _SL}),
    SweepTemplate(
        TemplateId.RSI_CRSI_CONFLUENCE,
        {"entry_rsi": [30, 35], "entry_crsi": [10, 20], "exit_rsi": [60, 65], "exit_crsi": [70, 80], "sl": _SL},
    ),
    SweepTemplate(TemplateId.CRSI_DIP_RECOVER, {"dip": [10, 15], "recover": [20, 25], "exit": [70, 80], "sl": _SL}),
    SweepTemplate(TemplateId.TREND_PULLBACK_RSI, {"entry": [35, 40, 45], "exit": [60, 65, 70], "sl": _SL}),
    SweepTemplate(TemplateId.VWAP_RSI_RECLAIM, {"rsi_max": [50, 55, 60], "exit_rsi": [65, 70], "sl": _SL}),
    SweepTemplate(
        TemplateId.BB_RSI_CRSI_REVERSAL,
        {"rsi_entry": [30, 35], "crsi_entry": [10, 20], "rsi_exit": [55, 60], "sl": _SL},
    ),
    SweepTemplate(TemplateId.RSI_CRSI_MIDPOINT_EXIT, {"entry_rsi": [30, 35], "entry_crsi": [10, 20], "sl": _SL}),
    SweepTemplate(
        TemplateId.ADX_RANGE_RSI_BB, {"adx_max": [20, 25], "rsi_entry": [30, 35], "rsi_exit": [55, 60], "sl": _SL}
    ),
    SweepTemplate(
        TemplateId.ADX_TREND_RSI_PULLBACK,
        {"adx_min": [20, 25], "rsi_entry": [40, 45], "rsi_exit": [65, 70], "sl": _SL},
    ),
    SweepTemplate(TemplateId.MACD_ZERO_RSI_CONFIRM, {"rsi_max": [55, 60, 65], "rsi_exit": [70, 75], "sl": _SL}),
    SweepTemplate(TemplateId.MACD_SIGNAL_OBV_CONFIRM, {"sl": _SL, "tp": _TP}),
    SweepTemplate(TemplateId.BB_SQUEEZE_BREAKOUT, {"width_threshold": [0.01, 0.02, 0.03], "sl": _SL, "tp": _TP}),
    SweepTemplate(TemplateId.VWAP_TREND_PULLBACK, {"rsi_entry": [40, 45], "rsi_exit": [65, 70], "sl": _SL}),
    SweepTemplate(TemplateId.VWAP_RSI_RANGE_REVERT, {"adx_max": [20, 25], "rsi_entry": [30, 35], "sl": _SL}),
    SweepTemplate(TemplateId.CONNORS_SMA50_PULLBACK, {"entry": [10, 15, 20], "exit": [70, 80], "sl": _SL}),
    SweepTemplate(
        TemplateId.RSI2_MICRO_RANGE, {"rsi2_entry": [5, 10, 15], "rsi2_exit": [60, 70], "adx_max": [20, 25], "sl": _SL}
    ),
    SweepTemplate(TemplateId.ATR_BREAKOUT_FOLLOW, {"adx_min": [20, 25, 30], "sl": _SL, "tp": _TP}),
    SweepTemplate(
        TemplateId.RSI_SESSION_GATE, {"entry": [25, 30], "exit": [65, 70], "session": [0, 8, 16], "sl": _SL}
    ),
    SweepTemplate(
        TemplateId.CRSI_SESSION_GATE, {"entry": [10, 20], "exit": [70, 80], "session": [0, 8, 16], "sl": _SL}
    ),
)


def exit_modes_for(setting: str) -> list[ExitMode]:
    """Exit modes to run for an exit_parity setting ("indicator", "price" or "both")."""
    if setting == "both":
        return [ExitMode.INDICATOR, ExitMode.PRICE]
    return [ExitMode(setting)]


class ParameterSweep:
    """Grid search over templates for a set of token datasets.

    Args:
        cost: Round-trip cost model applied to every backtest.
        settings: Sweep defaults (timeframes, exit parity, ranking).
        backtest_settings: Position cap for every backtest.
        regime_settings: Thresholds used for the trend annotation.
        keep_trades: Retain the per-trade log on every SweepResult.
    """

    def __init__(
        self,
        cost: CostConfig | None = None,
        settings: SweepSettings | None = None,
        backtest_settings: BacktestSettings | None = None,
        regime_settings: RegimeSettings | None = None,
        keep_trades: bool = False,
    ) -> None:
        self._cost = cost
        self._settings = settings or SweepSettings()
        self._backtest_settings = backtest_settings or BacktestSettings()
        self._regime_settings = regime_settings or RegimeSettings()
        self._keep_trades = keep_trades

    def run(
        self,
        datasets: Sequence[TokenDataset],
        templates: Sequence[SweepTemplate] = DEFAULT_SWEEP_TEMPLATES,
        timeframes: Sequence[int] | None = None,
        exit_modes: Sequence[ExitMode] | None = None,
        baseline: TokenDataset | None = None,
    ) -> list[SweepResult]:
        """Run every combination and return one SweepResult per evaluation.

        Args:
            datasets: Token candle histories. Tokens without candles are skipped.
            templates: Templates and grids to search.
            timeframes: Bar sizes in minutes. Defaults to settings.timeframes.
            exit_modes: Exit parity modes. Defaults to settings.exit_parity.
            baseline: Reference asset for relative strength. Defaults to the
                dataset labelled settings.baseline_label, if present.

        Returns:
            Unranked results in evaluation order.

        Raises:
            ConfigurationError: If a template grid is incomplete.
        """
        for template in templates:
            template.validate()

        timeframes = list(timeframes or self._settings.timeframes)
        exit_modes = list(exit_modes or exit_modes_for(self._settings.exit_parity))
        if baseline is None:
            baseline = next(
                (d for d in datasets if d.label.upper() == self._settings.baseline_label.upper()),
                None,
            )

        combos_per_token = sum(len(t.combinations()) for t in templates) * len(exit_modes)
        logger.info(
            "sweep_starting",
            templates=len(templates),
            tokens=len(datasets),
            timeframes=timeframes,
            exit_modes=[m.value for m in exit_modes],
            combinations_per_token=combos_per_token * len(timeframes),
        )

        results: list[SweepResult] = []
        for dataset in datasets:
            if not dataset.candles:
                logger.warning("sweep_token_skipped", token=dataset.label, reason="no candles")
                continue
            for timeframe in timeframes:
                with log_context(token=dataset.label, timeframe=timeframe):
                    results.extend(
                        self._run_token(dataset, timeframe, templates, exit_modes, baseline)
                    )

        logger.info("sweep_complete", results=len(results))
        return results

    def _run_token(
        self,
        dataset: TokenDataset,
        timeframe: int,
        templates: Sequence[SweepTemplate],
        exit_modes: Sequence[ExitMode],
        baseline: TokenDataset | None,
    ) -> list[SweepResult]:
        candles = aggregate_candles(dataset.candles, timeframe)
        pre = precompute_indicators(candles)
        annotation = annotate_trend(
            candles,
            baseline.candles if baseline is not None and baseline.mint != dataset.mint else None,
            self._regime_settings,
            atr_values=pre.atr,
        )

        results: list[SweepResult] = []
        for template in templates:
            for params in template.combinations():
                strategy = template.build(params)
                by_mode: dict[ExitMode, SweepResult] = {}
                for mode in exit_modes:
                    config = BacktestConfig(
                        mint=dataset.mint,
                        label=dataset.label,
                        strategy=strategy,
                        commission_pct=self._backtest_settings.commission_pct,
                        slippage_pct=self._backtest_settings.slippage_pct,
                        cost=self._cost,
                        max_positions=self._backtest_settings.max_positions,
                        exit_parity_mode=mode,
                    )
                    result = run_backtest(candles, config, pre)
                    by_mode[mode] = SweepResult(
                        template=template.template_id.value,
                        params=dict(params),
                        token=dataset.label,
                        mint=dataset.mint,
                        timeframe=timeframe,
                        exit_mode=mode,
                        metrics=compute_metrics(result.trades, result.date_range_ms),
                        annotation=annotation,
                        trades=result.trades if self._keep_trades else [],
                    )

                if ExitMode.INDICATOR in by_mode and ExitMode.PRICE in by_mode:
                    delta = (
                        by_mode[ExitMode.INDICATOR].metrics.win_rate
                        - by_mode[ExitMode.PRICE].metrics.win_rate
                    )
                    for row in by_mode.values():
                        row.parity_delta = delta
                results.extend(by_mode.values())

        logger.debug("sweep_token_complete", candles=len(candles), results=len(results))
        return results

    def rank(self, results: Sequence[SweepResult]) -> list[SweepResult]:
        """Rank results with the configured min_trades and epsilon.

        When the results hold more than one exit mode, only rows of
        settings.rank_exit_parity are ranked.
        """
        modes = {r.exit_mode for r in results}
        exit_mode = ExitMode(self._settings.rank_exit_parity) if len(modes) > 1 else None
        return rank_results(
            results,
            min_trades=self._settings.min_trades,
            epsilon=self._settings.rank_epsilon,
            exit_mode=exit_mode,
        )

    def summarize(self, ranked: Sequence[SweepResult]) -> str:
        return format_sweep_summary(ranked, top_n=self._settings.top_n)


def _desc(a: float, b: float) -> float:
    if a == b:
        return 0.0
    return b - a


def rank_results(
    results: Sequence[SweepResult],
    min_trades: int = 3,
    epsilon: float = 0.01,
    exit_mode: ExitMode | None = None,
) -> list[SweepResult]:
    """Filter by min_trades (and exit_mode, when given) and sort best first.

    Sharpe is the primary key and profit factor the secondary key; each only
    decides when the difference exceeds epsilon. Total PnL breaks the rest.
    """

    def compare(a: SweepResult, b: SweepResult) -> float:
        sharpe = _desc(a.metrics.sharpe_ratio, b.metrics.sharpe_ratio)
        if abs(sharpe) > epsilon:
            return sharpe
        pf = _desc(a.metrics.profit_factor, b.metrics.profit_factor)
        if abs(pf) > epsilon:
            return pf
        return _desc(a.metrics.total_pnl_pct, b.metrics.total_pnl_pct)

    meaningful = [
        r
        for r in results
        if r.metrics.total_trades >= min_trades and (exit_mode is None or r.exit_mode is exit_mode)
    ]
    return sorted(meaningful, key=cmp_to_key(compare))


def format_sweep_summary(results: Sequence[SweepResult], top_n: int = 30) -> str:
    """Render the top rows of an already ranked result list as a text table."""
    if not results:
        return "No parameter combos produced enough trades."

    top = list(results[:top_n])
    width = 118
    lines = [
        "=" * width,
        f"TOP {len(top)} RESULTS (sorted by Sharpe)",
        "=" * width,
        (
            f"{'#':>3} {'Template':<24}{'Token':<8}{'TF':>3} {'Params':<36}"
            f"{'Trades':>7}{'WinR%':>7}{'PnL%':>8}{'PF':>6}{'Sharpe':>8}{'MaxDD%':>8}"
        ),
        "-" * width,
    ]
    for i, r in enumerate(top, 1):
        m = r.metrics
        pf = format_ratio(m.profit_factor, 1)
        lines.append(
            f"{i:>3} {r.template:<24}{r.token:<8}{r.timeframe:>3} {r.params_string:<36}"
            f"{m.total_trades:>7}{m.win_rate:>6.0f}%{m.total_pnl_pct:>+7.1f}%{pf:>6}"
            f"{m.sharpe_ratio:>8.2f}{m.max_drawdown_pct:>7.1f}%"
        )
    lines.append("=" * width)
    return "\n".join(lines)
