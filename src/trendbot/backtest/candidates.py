"""Candidate scoring and probe/core bucketing of sweep results.

Raw win rate over a handful of trades is noisy, so candidates are scored
on a win rate shrunk towards a Bayesian prior:

    adjusted = (wins + prior_wins) / (trades + prior_wins + prior_losses)

Probe candidates (few trades) are scored on adjusted win rate, sample
depth and PnL; core candidates (many trades) on adjusted win rate, profit
factor and depth.
"""

import math
from collections.abc import Sequence
from dataclasses import dataclass, field

from trendbot.backtest.models import SweepResult
from trendbot.config import CandidateSettings


@dataclass(frozen=True)
class Candidate:
    """A sweep result with its candidate scores.

    adjusted_win_rate is a fraction (0-1); expectancy_pct is the expected
    PnL percent per trade.
    """

    result: SweepResult
    wins: float
    losses: float
    adjusted_win_rate: float
    expectancy_pct: float
    score_probe: float
    score_core: float

    @property
    def trades(self) -> int:
        return self.result.metrics.total_trades


@dataclass
class CandidateBuckets:
    probe: list[Candidate] = field(default_factory=list)
    core: list[Candidate] = field(default_factory=list)


def _clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


def to_candidate(result: SweepResult, prior_wins: float = 3.0, prior_losses: float = 3.0) -> Candidate:
    m = result.metrics
    trades = m.total_trades
    wins = m.win_rate / 100 * trades
    losses = max(trades - wins, 0.0)
    adjusted = (wins + prior_wins) / (trades + prior_wins + prior_losses)
    expectancy = m.win_rate / 100 * m.avg_win_pct + (1 - m.win_rate / 100) * m.avg_loss_pct

    # infinite profit factor (no losses) exports empty and scores as 0
    profit_factor = m.profit_factor if math.isfinite(m.profit_factor) else 0.0
    pnl_boost = 1 + _clamp(m.total_pnl_pct, -25, 25) / 100
    pf_boost = 1 + _clamp(profit_factor - 1, -0.5, 2) / 5
    depth_boost = 1 + _clamp((trades - 3) / 50, 0, 1)
    depth = math.log(trades + 1)

    return Candidate(
        result=result,
        wins=wins,
        losses=losses,
        adjusted_win_rate=adjusted,
        expectancy_pct=expectancy,
        score_probe=adjusted * depth * pnl_boost,
        score_core=adjusted * depth * pf_boost * depth_boost,
    )


def _rank(candidates: list[Candidate], score: str) -> list[Candidate]:
    return sorted(
        candidates,
        key=lambda c: (getattr(c, score), c.result.metrics.total_pnl_pct, c.trades),
        reverse=True,
    )


def select_buckets(
    results: Sequence[SweepResult], settings: CandidateSettings | None = None
) -> CandidateBuckets:
    """Split results into ranked probe and core buckets.

    Both buckets require win_rate >= min_win_rate. Probe takes rows within
    the probe trade-count range; core takes rows with enough trades, PnL
    and profit factor.

    Raises:
        ValueError: If the probe and core trade ranges overlap.
    """
    settings = settings or CandidateSettings()
    if settings.probe_max_trades < settings.probe_min_trades:
        raise ValueError("probe_max_trades must be >= probe_min_trades")
    if settings.core_min_trades <= settings.probe_max_trades:
        raise ValueError("core_min_trades must be > probe_max_trades")

    candidates = [
        to_candidate(r, settings.prior_wins, settings.prior_losses)
        for r in results
        if r.metrics.total_trades > 0 and r.metrics.win_rate >= settings.min_win_rate
    ]
    probe = [
        c for c in candidates
        if settings.probe_min_trades <= c.trades <= settings.probe_max_trades
    ]
    core = [
        c for c in candidates
        if c.trades >= settings.core_min_trades
        and c.result.metrics.total_pnl_pct >= settings.core_min_pnl_pct
        and c.result.metrics.profit_factor >= settings.core_min_profit_factor
    ]
    return CandidateBuckets(probe=_rank(probe, "score_probe"), core=_rank(core, "score_core"))
