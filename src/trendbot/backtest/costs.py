"""Round-trip cost models for the backtest engine.

Two models:

* fixed: (commission + slippage) per side, charged twice.
* empirical: median quoted price impact from live execution logs plus the
  protocol fee, charged twice. Requires a minimum number of successful
  executions; below that the caller must fall back to fixed explicitly.
"""

import math
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from trendbot.backtest.models import DEFAULT_COMMISSION_PCT, DEFAULT_SLIPPAGE_PCT, CostConfig
from trendbot.config import BacktestSettings, CostSettings
from trendbot.exceptions import InsufficientSamplesError
from trendbot.logging import get_logger

logger = get_logger(__name__)


def fixed_cost(
    commission_pct: float = DEFAULT_COMMISSION_PCT,
    slippage_pct: float = DEFAULT_SLIPPAGE_PCT,
) -> CostConfig:
    return CostConfig(model="fixed", round_trip_pct=(commission_pct + slippage_pct) * 2)


def load_empirical_cost(
    impacts: Sequence[float],
    fixed_fee_pct: float = 0.25,
    min_samples: int = 30,
) -> CostConfig:
    """Build an empirical cost model from observed price impacts.

    For an even sample count the upper-middle element is used as the median.

    Args:
        impacts: Quoted price impact percent per successful execution.
        fixed_fee_pct: Protocol fee per side in percent.
        min_samples: Minimum number of impacts required.

    Returns:
        CostConfig with round_trip_pct = 2 * (fee + median impact).

    Raises:
        InsufficientSamplesError: If fewer than min_samples impacts are given.
    """
    if len(impacts) < min_samples:
        raise InsufficientSamplesError(
            f"Empirical cost model requires >= {min_samples} successful executions, "
            f"found {len(impacts)}. Use the fixed cost model instead."
        )
    ordered = sorted(impacts)
    median_impact = ordered[len(ordered) // 2]
    return CostConfig(
        model="empirical",
        round_trip_pct=(fixed_fee_pct + median_impact) * 2,
        sample_size=len(ordered),
    )


@dataclass(frozen=True)
class ImpactParseResult:
    impacts: list[float]
    skipped: int


def parse_execution_impacts(records: Iterable[Mapping[str, Any]]) -> ImpactParseResult:
    """Extract quotedImpactPct from successful execution records.

    Rows that are not successes or whose impact is missing, non-finite or
    negative are counted as skipped.
    """
    impacts: list[float] = []
    skipped = 0
    for record in records:
        if record.get("result") != "success":
            skipped += 1
            continue
        try:
            impact = float(record.get("quotedImpactPct"))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            skipped += 1
            continue
        if not math.isfinite(impact) or impact < 0:
            skipped += 1
            continue
        impacts.append(impact)
    return ImpactParseResult(impacts=impacts, skipped=skipped)


class ExecutionImpactProvider(ABC):
    """Source of live execution records for the empirical cost model."""

    @abstractmethod
    def load_impacts(
        self, from_date: str | None = None, to_date: str | None = None
    ) -> list[Mapping[str, Any]]:
        """Return raw execution records between the given YYYY-MM-DD dates (inclusive)."""


def load_cost_config(
    cost_settings: CostSettings | None = None,
    backtest_settings: BacktestSettings | None = None,
    provider: ExecutionImpactProvider | None = None,
    from_date: str | None = None,
    to_date: str | None = None,
) -> CostConfig:
    """Build the configured cost model.

    Raises:
        InsufficientSamplesError: If the empirical model is selected and the
            provider yields too few successful executions.
        ValueError: If the empirical model is selected without a provider.
    """
    cost_settings = cost_settings or CostSettings()
    backtest_settings = backtest_settings or BacktestSettings()

    if cost_settings.model == "fixed":
        return fixed_cost(backtest_settings.commission_pct, backtest_settings.slippage_pct)

    if provider is None:
        raise ValueError("Empirical cost model requires an execution impact provider")

    parsed = parse_execution_impacts(provider.load_impacts(from_date, to_date))
    cost = load_empirical_cost(
        parsed.impacts,
        fixed_fee_pct=cost_settings.commission_per_side_pct,
        min_samples=cost_settings.min_empirical_samples,
    )
    logger.info(
        "empirical_cost_loaded",
        round_trip_pct=round(cost.round_trip_pct, 4),
        samples=cost.sample_size,
        skipped=parsed.skipped,
    )
    return cost
