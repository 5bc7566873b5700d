"""Trend regime classification with hysteresis.

Per token, a weighted score of 24h/48h/72h percentage returns classifies
the token as uptrend, sideways or downtrend. Longer horizons need more
hourly coverage before they count, and below low_coverage_hours the token
is forced sideways.

Raw classifications pass through a hysteresis filter before they change
the confirmed regime:

* raw == confirmed clears any pending flip;
* a score strictly inside +/- score_buffer of either threshold cancels a
  pending flip (the confirmed regime is left alone);
* otherwise a new candidate starts a count at 1, and the same candidate
  must repeat until the count reaches hysteresis_cycles.

RegimeDetector owns the per-token state. Its background refresh runs
provider loads in worker threads and replaces each token's RegimeState
atomically, so readers never block and see the last confirmed state (at
most one refresh cycle stale).
"""

import asyncio
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace

from trendbot.config import RegimeSettings
from trendbot.data.candles import CandleProvider
from trendbot.data.models import Candle
from trendbot.logging import get_logger
from trendbot.models import TrendRegime

logger = get_logger(__name__)

HOUR_MS = 60 * 60_000
DAY_MS = 24 * HOUR_MS

# Minimum distinct hourly buckets before a horizon's return is trusted.
COVERAGE_REQUIRED_HOURS = {24: 24, 48: 36, 72: 60, 168: 120}


@dataclass(frozen=True)
class RegimeData:
    """Inputs to the regime decision for one token at one point in time."""

    trend_score: float | None
    ret24h: float | None
    ret48h: float | None
    ret72h: float | None
    coverage_hours: int
    ret168h: float | None = None


EMPTY_REGIME_DATA = RegimeData(None, None, None, None, 0)


@dataclass(frozen=True)
class HysteresisState:
    """Finite-state view of the hysteresis filter."""

    confirmed: TrendRegime
    pending: TrendRegime | None = None
    pending_count: int = 0


@dataclass(frozen=True)
class RegimeState:
    """Published per-token regime state."""

    regime: TrendRegime
    pending: TrendRegime | None
    pending_count: int
    data: RegimeData
    last_updated_ms: int

    @property
    def trend_score(self) -> float | None:
        return self.data.trend_score

    @property
    def hysteresis(self) -> HysteresisState:
        return HysteresisState(self.regime, self.pending, self.pending_count)


def now_ms() -> int:
    return int(time.time() * 1000)


# ── Pure computation ──────────────────────────────────────────────────


def coverage_hours(candles: Sequence[Candle]) -> int:
    """Number of distinct hourly buckets spanned by the candles."""
    return len({c.timestamp_ms // HOUR_MS for c in candles})


def return_since(candles: Sequence[Candle], last_price: float, target_ms: int) -> float | None:
    """Percent return from the last candle at or before target_ms to last_price."""
    base: Candle | None = None
    for candle in candles:
        if candle.timestamp_ms <= target_ms:
            base = candle
        else:
            break
    if base is None or base.close == 0:
        return None
    return (last_price - base.close) / base.close * 100


def weighted_score(
    ret24h: float | None,
    ret48h: float | None,
    ret72h: float | None,
    settings: RegimeSettings,
) -> float | None:
    """Weighted mean of the available horizon returns (weights renormalized)."""
    parts = [
        (value, weight)
        for value, weight in (
            (ret24h, settings.weight_ret24h),
            (ret48h, settings.weight_ret48h),
            (ret72h, settings.weight_ret72h),
        )
        if value is not None
    ]
    if not parts:
        return None
    total_weight = sum(w for _, w in parts)
    if total_weight <= 0:
        return None
    return sum(v * w for v, w in parts) / total_weight


def compute_regime_data(
    candles: Sequence[Candle],
    at_ms: int,
    settings: RegimeSettings,
) -> RegimeData:
    """Compute horizon returns, coverage and trend score as of at_ms.

    Coverage for the 24h/48h/72h returns is measured over the lookback
    window (72h by default); the 168h return uses its own 168h window.

    Args:
        candles: Candles ordered by timestamp; may extend further back.
        at_ms: Evaluation time in epoch milliseconds.
        settings: Weights and lookback.
    """
    ordered = [c for c in candles if c.timestamp_ms <= at_ms]
    window = [c for c in ordered if c.timestamp_ms >= at_ms - settings.lookback_hours * HOUR_MS]
    if not window:
        return EMPTY_REGIME_DATA

    coverage = coverage_hours(window)
    last_price = window[-1].close

    def horizon(hours: int) -> float | None:
        if coverage < COVERAGE_REQUIRED_HOURS[hours]:
            return None
        return return_since(window, last_price, at_ms - hours * HOUR_MS)

    ret24h = horizon(24)
    ret48h = horizon(48)
    ret72h = horizon(72)

    week = [c for c in ordered if c.timestamp_ms >= at_ms - 168 * HOUR_MS]
    ret168h = None
    if coverage_hours(week) >= COVERAGE_REQUIRED_HOURS[168]:
        ret168h = return_since(week, last_price, at_ms - 168 * HOUR_MS)

    return RegimeData(
        trend_score=weighted_score(ret24h, ret48h, ret72h, settings),
        ret24h=ret24h,
        ret48h=ret48h,
        ret72h=ret72h,
        coverage_hours=coverage,
        ret168h=ret168h,
    )


def classify_regime(data: RegimeData, settings: RegimeSettings) -> TrendRegime:
    """Raw (unfiltered) regime for the given data.

    The 24h gate falls back to the score itself when ret24h is unavailable.
    """
    if data.coverage_hours < settings.low_coverage_hours:
        return TrendRegime.SIDEWAYS

    score = data.trend_score
    gate24 = data.ret24h if data.ret24h is not None else score
    if score is not None and gate24 is not None:
        if score >= settings.uptrend_score and gate24 >= settings.uptrend_gate24:
            return TrendRegime.UPTREND
        if score <= settings.downtrend_score and gate24 <= settings.downtrend_gate24:
            return TrendRegime.DOWNTREND
    return TrendRegime.SIDEWAYS


def is_near_threshold(score: float | None, settings: RegimeSettings) -> bool:
    if score is None:
        return False
    return (
        abs(score - settings.uptrend_score) < settings.score_buffer
        or abs(score - settings.downtrend_score) < settings.score_buffer
    )


def apply_hysteresis(
    state: HysteresisState,
    raw: TrendRegime,
    score: float | None,
    settings: RegimeSettings,
) -> HysteresisState:
    """Advance the hysteresis filter by one refresh cycle.

    The buffer band only cancels pending flips; it never reverts a
    confirmed regime.
    """
    if raw == state.confirmed:
        return HysteresisState(confirmed=state.confirmed)

    if is_near_threshold(score, settings):
        return HysteresisState(confirmed=state.confirmed)

    if raw != state.pending:
        count = 1
    else:
        count = state.pending_count + 1

    if count >= settings.hysteresis_cycles:
        return HysteresisState(confirmed=raw)
    return HysteresisState(confirmed=state.confirmed, pending=raw, pending_count=count)


# ── Stateful detector ─────────────────────────────────────────────────


class RegimeDetector:
    """Owns per-token regime state and its periodic refresh.

    Args:
        provider: Source of candle history.
        settings: Thresholds, weights and scheduling.
        clock: Returns the current time in epoch milliseconds.
    """

    def __init__(
        self,
        provider: CandleProvider,
        settings: RegimeSettings | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._provider = provider
        self._settings = settings or RegimeSettings()
        self._clock = clock
        self._states: dict[str, RegimeState] = {}
        self._tasks: list[asyncio.Task] = []  # type: ignore[type-arg]

    def get(self, mint: str) -> RegimeState | None:
        """Last published state for mint, or None before the first refresh."""
        return self._states.get(mint)

    def regime_for(self, mint: str) -> TrendRegime:
        """Confirmed regime, defaulting to sideways for unknown tokens."""
        state = self._states.get(mint)
        return state.regime if state is not None else TrendRegime.SIDEWAYS

    def states(self) -> dict[str, RegimeState]:
        return dict(self._states)

    def update(self, mint: str, candles: Sequence[Candle], at_ms: int) -> RegimeState:
        """Run one classification cycle for mint from the given candles."""
        data = compute_regime_data(candles, at_ms, self._settings)
        raw = classify_regime(data, self._settings)
        existing = self._states.get(mint)

        if existing is None:
            state = RegimeState(raw, None, 0, data, at_ms)
            self._states[mint] = state
            logger.debug(
                "regime_initialized",
                mint=mint,
                regime=raw.value,
                score=_round(data.trend_score),
                coverage_hours=data.coverage_hours,
            )
            return state

        new = apply_hysteresis(existing.hysteresis, raw, data.trend_score, self._settings)
        state = replace(
            existing,
            regime=new.confirmed,
            pending=new.pending,
            pending_count=new.pending_count,
            data=data,
            last_updated_ms=at_ms,
        )
        self._states[mint] = state

        if new.confirmed != existing.regime:
            logger.info(
                "regime_transition",
                mint=mint,
                from_regime=existing.regime.value,
                to_regime=new.confirmed.value,
                score=_round(data.trend_score),
                ret24h=_round(data.ret24h),
                ret48h=_round(data.ret48h),
                ret72h=_round(data.ret72h),
                coverage_hours=data.coverage_hours,
            )
        return state

    def refresh_token(self, mint: str) -> RegimeState:
        """Load recent candles from the provider and run one cycle."""
        at_ms = self._clock()
        candles = self._provider.load_candles(
            mint,
            start_ms=at_ms - self._settings.history_days * DAY_MS,
            end_ms=at_ms,
        )
        return self.update(mint, candles, at_ms)

    def refresh_all(self, mints: Sequence[str]) -> None:
        """Refresh every mint once; a failure for one mint is logged and skipped."""
        for mint in mints:
            self._safe_refresh(mint)

    def _safe_refresh(self, mint: str) -> None:
        try:
            self.refresh_token(mint)
        except Exception as e:
            logger.warning("regime_refresh_failed", mint=mint, error=str(e), exc_info=True)

    async def start(self, mints: Sequence[str]) -> None:
        """Start one background refresh loop per mint, staggered at startup."""
        if self._tasks:
            logger.warning("regime_refresh_already_running")
            return
        for i, mint in enumerate(mints):
            delay = i * self._settings.stagger_seconds
            self._tasks.append(asyncio.create_task(self._refresh_loop(mint, delay)))
        logger.info(
            "regime_refresh_started",
            tokens=len(mints),
            interval_seconds=self._settings.refresh_interval_seconds,
        )

    async def stop(self) -> None:
        """Cancel all refresh loops and wait for them to finish."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("regime_refresh_stopped")

    async def _refresh_loop(self, mint: str, initial_delay: float) -> None:
        if initial_delay > 0:
            await asyncio.sleep(initial_delay)
        while True:
            # provider loads block; they run off the event loop
            await asyncio.to_thread(self._safe_refresh, mint)
            await asyncio.sleep(self._settings.refresh_interval_seconds)


def _round(value: float | None) -> float | None:
    return round(value, 2) if value is not None else None
