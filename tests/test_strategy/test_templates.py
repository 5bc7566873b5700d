"""Tests for the strategy template catalog."""

import math

import pytest

from trendbot.exceptions import MissingParameterError, UnknownTemplateError
from trendbot.indicators.snapshot import BollingerValue, IndicatorSnapshot, MacdValue
from trendbot.models import Signal
from trendbot.strategy.templates import (
    LIVE_COMPATIBLE_TEMPLATES,
    REQUIRED_PARAMS,
    TEMPLATE_METADATA,
    TemplateContext,
    TemplateId,
    evaluate_signal,
    get_template_metadata,
    missing_indicators,
    parse_template_id,
    validate_params,
)


def _ctx(
    close: float = 100.0,
    has_position: bool = False,
    hour_utc: int = 12,
    prev: IndicatorSnapshot | None = None,
    prev_close: float | None = None,
    prev_high: float | None = None,
    **indicators: object,
) -> TemplateContext:
    return TemplateContext(
        close=close,
        indicators=IndicatorSnapshot(**indicators),  # type: ignore[arg-type]
        hour_utc=hour_utc,
        has_position=has_position,
        prev_close=prev_close,
        prev_high=prev_high,
        prev_indicators=prev,
    )


def _filled_params(template_id: TemplateId) -> dict[str, float]:
    return {key: 50.0 for key in REQUIRED_PARAMS[template_id]}


class TestCatalog:
    def test_every_template_has_metadata_and_params(self) -> None:
        """All 21 templates have metadata and a required-params entry."""
        assert set(TEMPLATE_METADATA) == set(TemplateId)
        assert set(REQUIRED_PARAMS) == set(TemplateId)
        assert len(TemplateId) == 21

    def test_metadata_lookup(self) -> None:
        """Metadata carries history, indicators and live compatibility."""
        meta = get_template_metadata(TemplateId.BB_RSI)
        assert meta.required_history == 21
        assert meta.required_indicators == ("bollinger", "rsi")
        assert TemplateId.BB_RSI in LIVE_COMPATIBLE_TEMPLATES

    def test_parse_template_id(self) -> None:
        """Template ids parse from their kebab-case names."""
        assert parse_template_id("crsi-session-gate") is TemplateId.CRSI_SESSION_GATE

    def test_parse_unknown_template_id(self) -> None:
        """An unknown id raises UnknownTemplateError naming it."""
        with pytest.raises(UnknownTemplateError, match="bogus"):
            parse_template_id("bogus")


class TestValidateParams:
    def test_valid(self) -> None:
        """A complete param set passes."""
        validate_params(TemplateId.RSI, {"entry": 30, "exit": 70})

    def test_missing_keys_listed(self) -> None:
        """The error lists every missing key."""
        with pytest.raises(MissingParameterError, match="dip, exit"):
            validate_params(TemplateId.CRSI_DIP_RECOVER, {"recover": 20})

    def test_non_finite_rejected(self) -> None:
        """A nan param value counts as missing."""
        with pytest.raises(MissingParameterError, match="exit"):
            validate_params(TemplateId.RSI, {"entry": 30, "exit": math.nan})

    def test_no_params_needed(self) -> None:
        """Templates without params accept an empty mapping."""
        validate_params(TemplateId.MACD_SIGNAL_OBV_CONFIRM, {})


class TestMissingIndicatorsHold:
    """Templates hold rather than raise when indicators are unavailable."""

    @pytest.mark.parametrize("template_id", list(TemplateId))
    def test_empty_snapshot_holds(self, template_id: TemplateId) -> None:
        """Every template holds on an empty snapshot."""
        ctx = _ctx(has_position=True)
        assert evaluate_signal(template_id, _filled_params(template_id), ctx) is Signal.HOLD

    def test_missing_indicators_lists_names(self) -> None:
        """Only indicators absent from the snapshot are listed."""
        snap = IndicatorSnapshot(rsi=40.0)
        assert missing_indicators(TemplateId.BB_RSI, snap) == ["bollinger"]
        assert missing_indicators(TemplateId.RSI, snap) == []


class TestRsiTemplates:
    PARAMS = {"entry": 30.0, "exit": 70.0}

    def test_rsi_buy_below_entry(self) -> None:
        """RSI below entry buys."""
        assert evaluate_signal(TemplateId.RSI, self.PARAMS, _ctx(rsi=25.0)) is Signal.BUY

    def test_rsi_sell_above_exit_with_position(self) -> None:
        """RSI above exit sells an open position."""
        ctx = _ctx(rsi=75.0, has_position=True)
        assert evaluate_signal(TemplateId.RSI, self.PARAMS, ctx) is Signal.SELL

    def test_rsi_no_sell_when_flat(self) -> None:
        """No sell is issued without a position."""
        assert evaluate_signal(TemplateId.RSI, self.PARAMS, _ctx(rsi=75.0)) is Signal.HOLD

    def test_crsi_uses_connors(self) -> None:
        """The crsi template reads ConnorsRSI, not RSI."""
        ctx = _ctx(rsi=90.0, connors_rsi=10.0)
        assert evaluate_signal(TemplateId.CRSI, self.PARAMS, ctx) is Signal.BUY

    def test_trend_pullback_requires_close_above_sma50(self) -> None:
        """Pullback entries need the close above the 50 SMA."""
        params = {"entry": 40.0, "exit": 70.0}
        above = _ctx(close=101.0, rsi=35.0, sma={50: 100.0})
        below = _ctx(close=99.0, rsi=35.0, sma={50: 100.0})
        assert evaluate_signal(TemplateId.TREND_PULLBACK_RSI, params, above) is Signal.BUY
        assert evaluate_signal(TemplateId.TREND_PULLBACK_RSI, params, below) is Signal.HOLD


class TestBandTemplates:
    BANDS = BollingerValue(upper=110.0, middle=100.0, lower=90.0, width=0.2)

    def test_bb_rsi_buy_at_lower_band(self) -> None:
        """A close under the lower band with low RSI buys."""
        params = {"rsi_entry": 30.0, "rsi_exit": 60.0}
        ctx = _ctx(close=89.0, rsi=25.0, bollinger=self.BANDS)
        assert evaluate_signal(TemplateId.BB_RSI, params, ctx) is Signal.BUY

    def test_bb_rsi_sell_at_upper_band(self) -> None:
        """A close over the upper band sells."""
        params = {"rsi_entry": 30.0, "rsi_exit": 60.0}
        ctx = _ctx(close=111.0, rsi=50.0, bollinger=self.BANDS, has_position=True)
        assert evaluate_signal(TemplateId.BB_RSI, params, ctx) is Signal.SELL

    def test_squeeze_breakout(self) -> None:
        """A breakout after a narrow squeeze buys."""
        prev = IndicatorSnapshot(
            bollinger=BollingerValue(upper=101.0, middle=100.0, lower=99.0, width=0.02)
        )
        ctx = _ctx(close=111.0, bollinger=self.BANDS, prev=prev)
        params = {"width_threshold": 0.03}
        assert evaluate_signal(TemplateId.BB_SQUEEZE_BREAKOUT, params, ctx) is Signal.BUY


class TestCrossTemplates:
    def test_crsi_dip_recover(self) -> None:
        """ConnorsRSI crossing up through recover after a dip buys."""
        params = {"dip": 10.0, "recover": 20.0, "exit": 80.0}
        prev = IndicatorSnapshot(connors_rsi=5.0)
        ctx = _ctx(connors_rsi=25.0, prev=prev)
        assert evaluate_signal(TemplateId.CRSI_DIP_RECOVER, params, ctx) is Signal.BUY

    def test_macd_zero_cross(self) -> None:
        """MACD crossing zero with RSI under its cap buys."""
        params = {"rsi_max": 60.0, "rsi_exit": 75.0}
        prev = IndicatorSnapshot(macd=MacdValue(macd=-0.1, signal=0.0, histogram=-0.1))
        ctx = _ctx(rsi=50.0, macd=MacdValue(macd=0.2, signal=0.1, histogram=0.1), prev=prev)
        assert evaluate_signal(TemplateId.MACD_ZERO_RSI_CONFIRM, params, ctx) is Signal.BUY

    def test_macd_signal_obv_confirm(self) -> None:
        """A MACD signal cross with rising OBV buys."""
        prev = IndicatorSnapshot(
            macd=MacdValue(macd=-0.1, signal=0.0, histogram=-0.1), obv_proxy=10.0
        )
        ctx = _ctx(macd=MacdValue(macd=0.2, signal=0.1, histogram=0.1), obv_proxy=12.0, prev=prev)
        assert evaluate_signal(TemplateId.MACD_SIGNAL_OBV_CONFIRM, {}, ctx) is Signal.BUY

    def test_vwap_reclaim(self) -> None:
        """A close reclaiming VWAP with moderate RSI buys."""
        params = {"rsi_max": 55.0, "exit_rsi": 70.0}
        prev = IndicatorSnapshot(vwap_proxy=100.0)
        ctx = _ctx(close=101.0, prev_close=99.0, rsi=45.0, vwap_proxy=100.5, prev=prev)
        assert evaluate_signal(TemplateId.VWAP_RSI_RECLAIM, params, ctx) is Signal.BUY


class TestSessionGate:
    PARAMS = {"entry": 30.0, "exit": 70.0, "session": 8.0}

    @pytest.mark.parametrize(
        ("hour", "expected"),
        [(7, Signal.HOLD), (8, Signal.BUY), (15, Signal.BUY), (16, Signal.HOLD)],
    )
    def test_entry_only_inside_session(self, hour: int, expected: Signal) -> None:
        """Entries are allowed only inside the session window."""
        ctx = _ctx(rsi=20.0, hour_utc=hour)
        assert evaluate_signal(TemplateId.RSI_SESSION_GATE, self.PARAMS, ctx) is expected

    def test_exit_ignores_session(self) -> None:
        """Exits fire outside the session window."""
        ctx = _ctx(connors_rsi=90.0, hour_utc=3, has_position=True)
        assert evaluate_signal(TemplateId.CRSI_SESSION_GATE, self.PARAMS, ctx) is Signal.SELL
