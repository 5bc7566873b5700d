"""Tests for trend regime scoring, hysteresis and the detector."""

import asyncio
import threading
from collections.abc import Callable

import pytest

from trendbot.config import RegimeSettings
from trendbot.data.candles import CandleProvider, InMemoryCandleProvider
from trendbot.data.models import Candle
from trendbot.models import TrendRegime
from trendbot.strategy.regime import (
    HysteresisState,
    RegimeData,
    RegimeDetector,
    apply_hysteresis,
    classify_regime,
    compute_regime_data,
    is_near_threshold,
    weighted_score,
)

T0_MS = 1_704_067_200_000
HOUR_MS = 3_600_000
AT_MS = T0_MS + 72 * HOUR_MS


def hourly(make_candles: Callable[..., list[Candle]], closes: list[float]) -> list[Candle]:
    return make_candles(closes, start_ms=T0_MS, step_ms=HOUR_MS)


def rising(make_candles: Callable[..., list[Candle]]) -> list[Candle]:
    """73 hourly candles, flat at 100 then +10% on the final bar."""
    return hourly(make_candles, [100.0] * 72 + [110.0])


def flat(make_candles: Callable[..., list[Candle]]) -> list[Candle]:
    return hourly(make_candles, [100.0] * 73)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        assert loop.time() < deadline, "condition not met before timeout"
        await asyncio.sleep(0.01)


class TestComputeRegimeData:
    def test_full_coverage(self, make_candles, regime_settings: RegimeSettings) -> None:
        """Three full days give every horizon and a weighted score."""
        data = compute_regime_data(rising(make_candles), AT_MS, regime_settings)
        assert data.coverage_hours == 73
        assert data.ret24h == pytest.approx(10.0)
        assert data.ret48h == pytest.approx(10.0)
        assert data.ret72h == pytest.approx(10.0)
        assert data.trend_score == pytest.approx(10.0)
        assert data.ret168h is None

    def test_partial_coverage_drops_long_horizons(
        self, make_candles, regime_settings: RegimeSettings
    ) -> None:
        """Horizons longer than the history are None."""
        closes = [100.0] * 29 + [105.0]
        candles = hourly(make_candles, closes)
        data = compute_regime_data(candles, T0_MS + 29 * HOUR_MS, regime_settings)
        assert data.coverage_hours == 30
        assert data.ret24h == pytest.approx(5.0)
        assert data.ret48h is None
        assert data.ret72h is None
        assert data.trend_score == pytest.approx(5.0)

    def test_low_coverage_has_no_score(self, make_candles, regime_settings: RegimeSettings) -> None:
        """Under low_coverage_hours of history gives no score."""
        candles = hourly(make_candles, [100.0] * 10)
        data = compute_regime_data(candles, T0_MS + 9 * HOUR_MS, regime_settings)
        assert data.coverage_hours == 10
        assert data.trend_score is None

    def test_ignores_future_candles(self, make_candles, regime_settings: RegimeSettings) -> None:
        """Candles after at_ms are not used."""
        candles = rising(make_candles) + hourly(make_candles, [500.0] * 80)[73:]
        data = compute_regime_data(candles, AT_MS, regime_settings)
        assert data.ret24h == pytest.approx(10.0)

    def test_no_candles(self, regime_settings: RegimeSettings) -> None:
        """No candles give zero coverage and no score."""
        data = compute_regime_data([], AT_MS, regime_settings)
        assert data.coverage_hours == 0
        assert data.trend_score is None

    def test_weighted_score_renormalizes(self, regime_settings: RegimeSettings) -> None:
        """Missing horizons drop out and the remaining weights are rescaled."""
        assert weighted_score(10.0, None, None, regime_settings) == pytest.approx(10.0)
        score = weighted_score(10.0, 0.0, None, regime_settings)
        assert score == pytest.approx(10.0 * 0.5 / 0.8)
        assert weighted_score(None, None, None, regime_settings) is None


class TestClassifyRegime:
    def _data(self, score: float | None, ret24h: float | None, coverage: int = 72) -> RegimeData:
        return RegimeData(score, ret24h, None, None, coverage)

    def test_uptrend(self, regime_settings: RegimeSettings) -> None:
        """Score and 24h return above their gates classify as uptrend."""
        assert classify_regime(self._data(9.0, 4.0), regime_settings) is TrendRegime.UPTREND

    def test_uptrend_needs_24h_gate(self, regime_settings: RegimeSettings) -> None:
        """A high score with a weak 24h return stays sideways."""
        assert classify_regime(self._data(9.0, 1.0), regime_settings) is TrendRegime.SIDEWAYS

    def test_downtrend(self, regime_settings: RegimeSettings) -> None:
        """Score and 24h return below their gates classify as downtrend."""
        assert classify_regime(self._data(-7.0, -3.0), regime_settings) is TrendRegime.DOWNTREND

    def test_gate_falls_back_to_score(self, regime_settings: RegimeSettings) -> None:
        """Without a 24h return the score alone decides."""
        assert classify_regime(self._data(9.0, None), regime_settings) is TrendRegime.UPTREND

    def test_low_coverage_forces_sideways(self, regime_settings: RegimeSettings) -> None:
        """Thin history is always sideways."""
        data = self._data(20.0, 20.0, coverage=10)
        assert classify_regime(data, regime_settings) is TrendRegime.SIDEWAYS

    def test_missing_score_is_sideways(self, regime_settings: RegimeSettings) -> None:
        """No score classifies as sideways."""
        assert classify_regime(self._data(None, None), regime_settings) is TrendRegime.SIDEWAYS


class TestApplyHysteresis:
    """The filter is a pure function of (state, raw, score)."""

    SIDEWAYS = HysteresisState(confirmed=TrendRegime.SIDEWAYS)

    def test_single_cycle_only_pends(self, regime_settings: RegimeSettings) -> None:
        """One cycle of a new regime only marks it pending."""
        state = apply_hysteresis(self.SIDEWAYS, TrendRegime.UPTREND, 9.0, regime_settings)
        assert state == HysteresisState(TrendRegime.SIDEWAYS, TrendRegime.UPTREND, 1)

    def test_two_cycles_confirm(self, regime_settings: RegimeSettings) -> None:
        """Two consecutive cycles confirm the new regime."""
        state = self.SIDEWAYS
        for _ in range(2):
            state = apply_hysteresis(state, TrendRegime.UPTREND, 9.0, regime_settings)
        assert state == HysteresisState(TrendRegime.UPTREND)

    def test_buffer_cancels_pending(self, regime_settings: RegimeSettings) -> None:
        """A score inside the buffer drops the pending regime."""
        pending = HysteresisState(TrendRegime.SIDEWAYS, TrendRegime.UPTREND, 1)
        state = apply_hysteresis(pending, TrendRegime.UPTREND, 8.5, regime_settings)
        assert state == HysteresisState(TrendRegime.SIDEWAYS)

    def test_buffer_never_reverts_confirmed(self, regime_settings: RegimeSettings) -> None:
        """The buffer does not undo a confirmed regime."""
        up = HysteresisState(TrendRegime.UPTREND)
        state = apply_hysteresis(up, TrendRegime.SIDEWAYS, 7.5, regime_settings)
        assert state.confirmed is TrendRegime.UPTREND

    def test_matching_raw_clears_pending(self, regime_settings: RegimeSettings) -> None:
        """Returning to the confirmed regime clears the pending one."""
        pending = HysteresisState(TrendRegime.SIDEWAYS, TrendRegime.UPTREND, 1)
        state = apply_hysteresis(pending, TrendRegime.SIDEWAYS, 2.0, regime_settings)
        assert state == HysteresisState(TrendRegime.SIDEWAYS)

    def test_new_candidate_restarts_count(self, regime_settings: RegimeSettings) -> None:
        """A different candidate restarts the count at one."""
        pending = HysteresisState(TrendRegime.SIDEWAYS, TrendRegime.UPTREND, 1)
        state = apply_hysteresis(pending, TrendRegime.DOWNTREND, -10.0, regime_settings)
        assert state == HysteresisState(TrendRegime.SIDEWAYS, TrendRegime.DOWNTREND, 1)

    def test_single_cycle_setting_flips_immediately(self) -> None:
        """hysteresis_cycles=1 commits on the first cycle."""
        settings = RegimeSettings(hysteresis_cycles=1)
        state = apply_hysteresis(self.SIDEWAYS, TrendRegime.DOWNTREND, -10.0, settings)
        assert state == HysteresisState(TrendRegime.DOWNTREND)

    def test_buffer_is_strict(self, regime_settings: RegimeSettings) -> None:
        """Only scores strictly inside the buffer are near a threshold."""
        assert is_near_threshold(8.5, regime_settings)
        assert is_near_threshold(-6.5, regime_settings)
        assert not is_near_threshold(9.0, regime_settings)
        assert not is_near_threshold(None, regime_settings)


class TestRegimeDetector:
    def test_unknown_token_defaults_to_sideways(self, regime_settings: RegimeSettings) -> None:
        """A token never refreshed reads as sideways."""
        detector = RegimeDetector(InMemoryCandleProvider({}), regime_settings)
        assert detector.get("mint") is None
        assert detector.regime_for("mint") is TrendRegime.SIDEWAYS

    def test_first_observation_commits(self, make_candles, regime_settings: RegimeSettings) -> None:
        """The first observation commits without hysteresis."""
        detector = RegimeDetector(InMemoryCandleProvider({}), regime_settings)
        state = detector.update("mint", rising(make_candles), AT_MS)
        assert state.regime is TrendRegime.UPTREND
        assert state.pending is None
        assert state.last_updated_ms == AT_MS
        assert state.trend_score == pytest.approx(10.0)

    def test_transition_after_hysteresis(
        self, make_candles, regime_settings: RegimeSettings
    ) -> None:
        """The detector confirms a change only after the hysteresis cycles."""
        detector = RegimeDetector(InMemoryCandleProvider({}), regime_settings)
        detector.update("mint", rising(make_candles), AT_MS)

        state = detector.update("mint", flat(make_candles), AT_MS + HOUR_MS)
        assert state.regime is TrendRegime.UPTREND
        assert state.pending is TrendRegime.SIDEWAYS
        assert state.pending_count == 1

        state = detector.update("mint", flat(make_candles), AT_MS + 2 * HOUR_MS)
        assert state.regime is TrendRegime.SIDEWAYS
        assert detector.regime_for("mint") is TrendRegime.SIDEWAYS

    def test_refresh_token_uses_provider_and_clock(
        self, make_candles, regime_settings: RegimeSettings
    ) -> None:
        """refresh_token loads from the provider up to the clock time."""
        provider = InMemoryCandleProvider({"mint": rising(make_candles)})
        detector = RegimeDetector(provider, regime_settings, clock=lambda: AT_MS)
        state = detector.refresh_token("mint")
        assert state.regime is TrendRegime.UPTREND

    def test_refresh_all_isolates_failures(
        self, make_candles, regime_settings: RegimeSettings
    ) -> None:
        """A provider error for one mint does not stop the others."""
        candles = rising(make_candles)

        class FlakyProvider(CandleProvider):
            def load_candles(
                self, mint: str, start_ms: int | None = None, end_ms: int | None = None
            ) -> list[Candle]:
                if mint == "bad":
                    raise OSError("disk gone")
                return candles

        detector = RegimeDetector(FlakyProvider(), regime_settings, clock=lambda: AT_MS)
        detector.refresh_all(["bad", "good"])

        assert detector.get("bad") is None
        good = detector.get("good")
        assert good is not None
        assert good.regime is TrendRegime.UPTREND
        assert set(detector.states()) == {"good"}

    @pytest.mark.asyncio
    async def test_start_and_stop_background_refresh(
        self, make_candles, regime_settings: RegimeSettings
    ) -> None:
        """Background loops refresh every token until stopped."""
        provider = InMemoryCandleProvider({"a": rising(make_candles), "b": flat(make_candles)})
        detector = RegimeDetector(provider, regime_settings, clock=lambda: AT_MS)

        await detector.start(["a", "b"])
        await wait_until(lambda: set(detector.states()) == {"a", "b"})
        await detector.stop()

        assert detector.regime_for("a") is TrendRegime.UPTREND
        assert detector.regime_for("b") is TrendRegime.SIDEWAYS

    @pytest.mark.asyncio
    async def test_stop_without_start(self, regime_settings: RegimeSettings) -> None:
        """Stopping an idle detector is a no-op."""
        detector = RegimeDetector(InMemoryCandleProvider({}), regime_settings)
        await detector.stop()

    @pytest.mark.asyncio
    async def test_blocking_provider_does_not_stall_other_tokens(
        self, make_candles, regime_settings: RegimeSettings
    ) -> None:
        """A provider load stuck on one token leaves the other tokens refreshing."""
        candles = rising(make_candles)
        release = threading.Event()

        class SlowProvider(CandleProvider):
            def load_candles(
                self, mint: str, start_ms: int | None = None, end_ms: int | None = None
            ) -> list[Candle]:
                if mint == "slow":
                    release.wait(timeout=5.0)
                return candles

        detector = RegimeDetector(SlowProvider(), regime_settings, clock=lambda: AT_MS)
        await detector.start(["slow", "fast"])
        try:
            await wait_until(lambda: detector.get("fast") is not None)
            assert detector.get("slow") is None
        finally:
            release.set()
            await detector.stop()

        assert detector.regime_for("fast") is TrendRegime.UPTREND
