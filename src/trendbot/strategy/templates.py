"""Strategy template catalog: the signal logic shared by the sweep and live trading.

Each template is a TemplateId with a pure evaluator
(params, TemplateContext) -> Signal. Evaluators read only the indicator
fields they need and return HOLD whenever one of them is missing. They
never raise on missing indicators. Parameters are validated up front
with validate_params.

Stop-loss and take-profit are not template parameters: they belong to the
strategy configuration wrapping the template (sweep grid or live map).
"""

import math
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import assert_never

from trendbot.exceptions import MissingParameterError, UnknownTemplateError
from trendbot.indicators.snapshot import IndicatorSnapshot
from trendbot.models import Signal

SESSION_HOURS = 8


class TemplateId(str, Enum):
    """Identifiers of the catalog templates."""

    RSI = "rsi"
    CRSI = "crsi"
    BB_RSI = "bb-rsi"
    RSI_CRSI_CONFLUENCE = "rsi-crsi-confluence"
    CRSI_DIP_RECOVER = "crsi-dip-recover"
    TREND_PULLBACK_RSI = "trend-pullback-rsi"
    VWAP_RSI_RECLAIM = "vwap-rsi-reclaim"
    BB_RSI_CRSI_REVERSAL = "bb-rsi-crsi-reversal"
    RSI_CRSI_MIDPOINT_EXIT = "rsi-crsi-midpoint-exit"
    ADX_RANGE_RSI_BB = "adx-range-rsi-bb"
    ADX_TREND_RSI_PULLBACK = "adx-trend-rsi-pullback"
    MACD_ZERO_RSI_CONFIRM = "macd-zero-rsi-confirm"
    MACD_SIGNAL_OBV_CONFIRM = "macd-signal-obv-confirm"
    BB_SQUEEZE_BREAKOUT = "bb-squeeze-breakout"
    VWAP_TREND_PULLBACK = "vwap-trend-pullback"
    VWAP_RSI_RANGE_REVERT = "vwap-rsi-range-revert"
    CONNORS_SMA50_PULLBACK = "connors-sma50-pullback"
    RSI2_MICRO_RANGE = "rsi2-micro-range"
    ATR_BREAKOUT_FOLLOW = "atr-breakout-follow"
    RSI_SESSION_GATE = "rsi-session-gate"
    CRSI_SESSION_GATE = "crsi-session-gate"


@dataclass(frozen=True)
class TemplateContext:
    """Everything a template may look at for one decision.

    Attributes:
        close: Current bar close.
        indicators: Indicator snapshot for the current bar.
        hour_utc: UTC hour of the current bar (0-23).
        has_position: True when a position is open for the token.
        prev_close: Previous bar close, when known.
        prev_high: Previous bar high, when known.
        prev_indicators: Snapshot for the previous bar, when known.
    """

    close: float
    indicators: IndicatorSnapshot
    hour_utc: int
    has_position: bool
    prev_close: float | None = None
    prev_high: float | None = None
    prev_indicators: IndicatorSnapshot | None = None


@dataclass(frozen=True)
class TemplateMetadata:
    """Static facts about a template.

    required_history is the minimum number of candles before the template
    can produce a signal; required_indicators lists the snapshot fields it reads.
    """

    template_id: TemplateId
    required_history: int
    required_indicators: tuple[str, ...]
    live_compatible: bool = True


Params = Mapping[str, float]


# ── Evaluators ────────────────────────────────────────────────────────


def _rsi(p: Params, ctx: TemplateContext) -> Signal:
    rsi = ctx.indicators.rsi
    if rsi is None:
        return Signal.HOLD
    if ctx.has_position and rsi > p["exit"]:
        return Signal.SELL
    if rsi < p["entry"]:
        return Signal.BUY
    return Signal.HOLD


def _crsi(p: Params, ctx: TemplateContext) -> Signal:
    crsi = ctx.indicators.connors_rsi
    if crsi is None:
        return Signal.HOLD
    if ctx.has_position and crsi > p["exit"]:
        return Signal.SELL
    if crsi < p["entry"]:
        return Signal.BUY
    return Signal.HOLD


def _bb_rsi(p: Params, ctx: TemplateContext) -> Signal:
    bb, rsi = ctx.indicators.bollinger, ctx.indicators.rsi
    if bb is None or rsi is None:
        return Signal.HOLD
    if ctx.has_position and (rsi > p["rsi_exit"] or ctx.close >= bb.upper):
        return Signal.SELL
    if ctx.close <= bb.lower and rsi < p["rsi_entry"]:
        return Signal.BUY
    return Signal.HOLD


def _rsi_crsi_confluence(p: Params, ctx: TemplateContext) -> Signal:
    rsi, crsi = ctx.indicators.rsi, ctx.indicators.connors_rsi
    if rsi is None or crsi is None:
        return Signal.HOLD
    if ctx.has_position and (rsi > p["exit_rsi"] or crsi > p["exit_crsi"]):
        return Signal.SELL
    if rsi < p["entry_rsi"] and crsi < p["entry_crsi"]:
        return Signal.BUY
    return Signal.HOLD


def _crsi_dip_recover(p: Params, ctx: TemplateContext) -> Signal:
    crsi = ctx.indicators.connors_rsi
    prev = ctx.prev_indicators.connors_rsi if ctx.prev_indicators else None
    if crsi is None or prev is None:
        return Signal.HOLD
    if ctx.has_position and crsi > p["exit"]:
        return Signal.SELL
    if prev < p["dip"] and crsi >= p["recover"]:
        return Signal.BUY
    return Signal.HOLD


def _trend_pullback_rsi(p: Params, ctx: TemplateContext) -> Signal:
    rsi, sma50 = ctx.indicators.rsi, ctx.indicators.sma.get(50)
    if rsi is None or sma50 is None:
        return Signal.HOLD
    if ctx.has_position and (rsi > p["exit"] or ctx.close < sma50):
        return Signal.SELL
    if ctx.close > sma50 and rsi < p["entry"]:
        return Signal.BUY
    return Signal.HOLD


def _vwap_rsi_reclaim(p: Params, ctx: TemplateContext) -> Signal:
    rsi, vwap = ctx.indicators.rsi, ctx.indicators.vwap_proxy
    prev_vwap = ctx.prev_indicators.vwap_proxy if ctx.prev_indicators else None
    if rsi is None or vwap is None or prev_vwap is None or ctx.prev_close is None:
        return Signal.HOLD
    if ctx.has_position and (rsi > p["exit_rsi"] or ctx.close < vwap):
        return Signal.SELL
    if ctx.prev_close < prev_vwap and ctx.close >= vwap and rsi < p["rsi_max"]:
        return Signal.BUY
    return Signal.HOLD


def _bb_rsi_crsi_reversal(p: Params, ctx: TemplateContext) -> Signal:
    ind = ctx.indicators
    bb, rsi, crsi = ind.bollinger, ind.rsi, ind.connors_rsi
    if bb is None or rsi is None or crsi is None:
        return Signal.HOLD
    if ctx.has_position and (ctx.close >= bb.middle or rsi > p["rsi_exit"]):
        return Signal.SELL
    if ctx.close <= bb.lower and rsi < p["rsi_entry"] and crsi < p["crsi_entry"]:
        return Signal.BUY
    return Signal.HOLD


def _rsi_crsi_midpoint_exit(p: Params, ctx: TemplateContext) -> Signal:
    rsi, crsi = ctx.indicators.rsi, ctx.indicators.connors_rsi
    if rsi is None or crsi is None:
        return Signal.HOLD
    if ctx.has_position and rsi > 50:
        return Signal.SELL
    if rsi < p["entry_rsi"] and crsi < p["entry_crsi"]:
        return Signal.BUY
    return Signal.HOLD


def _adx_range_rsi_bb(p: Params, ctx: TemplateContext) -> Signal:
    ind = ctx.indicators
    adx, rsi, bb = ind.adx, ind.rsi, ind.bollinger
    if adx is None or rsi is None or bb is None:
        return Signal.HOLD
    if ctx.has_position and (rsi > p["rsi_exit"] or ctx.close >= bb.middle):
        return Signal.SELL
    if adx < p["adx_max"] and ctx.close <= bb.lower and rsi < p["rsi_entry"]:
        return Signal.BUY
    return Signal.HOLD


def _adx_trend_rsi_pullback(p: Params, ctx: TemplateContext) -> Signal:
    ind = ctx.indicators
    ema12, ema26, sma50 = ind.ema.get(12), ind.ema.get(26), ind.sma.get(50)
    if ind.adx is None or ind.rsi is None or ema12 is None or ema26 is None or sma50 is None:
        return Signal.HOLD
    if ctx.has_position and (ema12 < ema26 or ind.rsi > p["rsi_exit"]):
        return Signal.SELL
    if (
        ind.adx > p["adx_min"]
        and ema12 > ema26
        and ctx.close > sma50
        and ind.rsi < p["rsi_entry"]
    ):
        return Signal.BUY
    return Signal.HOLD


def _macd_zero_rsi_confirm(p: Params, ctx: TemplateContext) -> Signal:
    m, rsi = ctx.indicators.macd, ctx.indicators.rsi
    prev = ctx.prev_indicators.macd if ctx.prev_indicators else None
    if m is None or rsi is None or prev is None:
        return Signal.HOLD
    if ctx.has_position and (m.histogram < 0 or rsi > p["rsi_exit"]):
        return Signal.SELL
    if prev.histogram < 0 and m.histogram > 0 and rsi < p["rsi_max"]:
        return Signal.BUY
    return Signal.HOLD


def _macd_signal_obv_confirm(p: Params, ctx: TemplateContext) -> Signal:
    m, obv = ctx.indicators.macd, ctx.indicators.obv_proxy
    prev_ind = ctx.prev_indicators
    if m is None or obv is None or prev_ind is None:
        return Signal.HOLD
    prev_m, prev_obv = prev_ind.macd, prev_ind.obv_proxy
    if prev_m is None or prev_obv is None:
        return Signal.HOLD
    if ctx.has_position and (m.macd < m.signal or obv < prev_obv):
        return Signal.SELL
    if prev_m.macd < prev_m.signal and m.macd > m.signal and obv > prev_obv:
        return Signal.BUY
    return Signal.HOLD


def _bb_squeeze_breakout(p: Params, ctx: TemplateContext) -> Signal:
    bb = ctx.indicators.bollinger
    prev = ctx.prev_indicators.bollinger if ctx.prev_indicators else None
    if bb is None or prev is None:
        return Signal.HOLD
    if ctx.has_position and ctx.close < bb.middle:
        return Signal.SELL
    if prev.width < p["width_threshold"] and bb.width > prev.width and ctx.close > bb.upper:
        return Signal.BUY
    return Signal.HOLD


def _vwap_trend_pullback(p: Params, ctx: TemplateContext) -> Signal:
    rsi, vwap = ctx.indicators.rsi, ctx.indicators.vwap_proxy
    if rsi is None or vwap is None:
        return Signal.HOLD
    if ctx.has_position and (ctx.close < vwap or rsi > p["rsi_exit"]):
        return Signal.SELL
    if ctx.close > vwap and rsi < p["rsi_entry"]:
        return Signal.BUY
    return Signal.HOLD


def _vwap_rsi_range_revert(p: Params, ctx: TemplateContext) -> Signal:
    ind = ctx.indicators
    if ind.adx is None or ind.rsi is None or ind.vwap_proxy is None:
        return Signal.HOLD
    if ctx.has_position and ctx.close >= ind.vwap_proxy:
        return Signal.SELL
    if ind.adx < p["adx_max"] and ctx.close < ind.vwap_proxy and ind.rsi < p["rsi_entry"]:
        return Signal.BUY
    return Signal.HOLD


def _connors_sma50_pullback(p: Params, ctx: TemplateContext) -> Signal:
    crsi, sma50 = ctx.indicators.connors_rsi, ctx.indicators.sma.get(50)
    if crsi is None or sma50 is None:
        return Signal.HOLD
    if ctx.has_position and (crsi > p["exit"] or ctx.close < sma50):
        return Signal.SELL
    if ctx.close > sma50 and crsi < p["entry"]:
        return Signal.BUY
    return Signal.HOLD


def _rsi2_micro_range(p: Params, ctx: TemplateContext) -> Signal:
    rsi2, adx = ctx.indicators.rsi_short, ctx.indicators.adx
    if rsi2 is None or adx is None:
        return Signal.HOLD
    if ctx.has_position and rsi2 > p["rsi2_exit"]:
        return Signal.SELL
    if adx < p["adx_max"] and rsi2 < p["rsi2_entry"]:
        return Signal.BUY
    return Signal.HOLD


def _atr_breakout_follow(p: Params, ctx: TemplateContext) -> Signal:
    atr, adx = ctx.indicators.atr, ctx.indicators.adx
    prev_atr = ctx.prev_indicators.atr if ctx.prev_indicators else None
    if atr is None or adx is None or prev_atr is None or ctx.prev_high is None:
        return Signal.HOLD
    if ctx.has_position and (adx < p["adx_min"] or ctx.close < ctx.prev_high):
        return Signal.SELL
    if ctx.close > ctx.prev_high and atr > prev_atr and adx > p["adx_min"]:
        return Signal.BUY
    return Signal.HOLD


def _in_session(p: Params, ctx: TemplateContext) -> bool:
    return p["session"] <= ctx.hour_utc < p["session"] + SESSION_HOURS


def _rsi_session_gate(p: Params, ctx: TemplateContext) -> Signal:
    rsi = ctx.indicators.rsi
    if rsi is None:
        return Signal.HOLD
    if ctx.has_position and rsi > p["exit"]:
        return Signal.SELL
    if _in_session(p, ctx) and rsi < p["entry"]:
        return Signal.BUY
    return Signal.HOLD


def _crsi_session_gate(p: Params, ctx: TemplateContext) -> Signal:
    crsi = ctx.indicators.connors_rsi
    if crsi is None:
        return Signal.HOLD
    if ctx.has_position and crsi > p["exit"]:
        return Signal.SELL
    if _in_session(p, ctx) and crsi < p["entry"]:
        return Signal.BUY
    return Signal.HOLD


def evaluate_signal(template_id: TemplateId, params: Params, ctx: TemplateContext) -> Signal:
    """Evaluate a template for one bar.

    Args:
        template_id: Catalog template.
        params: Template parameters (validated with validate_params).
        ctx: Current/previous prices and indicator snapshots.

    Returns:
        BUY, SELL or HOLD. HOLD whenever a required indicator is missing.
    """
    match template_id:
        case TemplateId.RSI:
            return _rsi(params, ctx)
        case TemplateId.CRSI:
            return _crsi(params, ctx)
        case TemplateId.BB_RSI:
            return _bb_rsi(params, ctx)
        case TemplateId.RSI_CRSI_CONFLUENCE:
            return _rsi_crsi_confluence(params, ctx)
        case TemplateId.CRSI_DIP_RECOVER:
            return _crsi_dip_recover(params, ctx)
        case TemplateId.TREND_PULLBACK_RSI:
            return _trend_pullback_rsi(params, ctx)
        case TemplateId.VWAP_RSI_RECLAIM:
            return _vwap_rsi_reclaim(params, ctx)
        case TemplateId.BB_RSI_CRSI_REVERSAL:
            return _bb_rsi_crsi_reversal(params, ctx)
        case TemplateId.RSI_CRSI_MIDPOINT_EXIT:
            return _rsi_crsi_midpoint_exit(params, ctx)
        case TemplateId.ADX_RANGE_RSI_BB:
            return _adx_range_rsi_bb(params, ctx)
        case TemplateId.ADX_TREND_RSI_PULLBACK:
            return _adx_trend_rsi_pullback(params, ctx)
        case TemplateId.MACD_ZERO_RSI_CONFIRM:
            return _macd_zero_rsi_confirm(params, ctx)
        case TemplateId.MACD_SIGNAL_OBV_CONFIRM:
            return _macd_signal_obv_confirm(params, ctx)
        case TemplateId.BB_SQUEEZE_BREAKOUT:
            return _bb_squeeze_breakout(params, ctx)
        case TemplateId.VWAP_TREND_PULLBACK:
            return _vwap_trend_pullback(params, ctx)
        case TemplateId.VWAP_RSI_RANGE_REVERT:
            return _vwap_rsi_range_revert(params, ctx)
        case TemplateId.CONNORS_SMA50_PULLBACK:
            return _connors_sma50_pullback(params, ctx)
        case TemplateId.RSI2_MICRO_RANGE:
            return _rsi2_micro_range(params, ctx)
        case TemplateId.ATR_BREAKOUT_FOLLOW:
            return _atr_breakout_follow(params, ctx)
        case TemplateId.RSI_SESSION_GATE:
            return _rsi_session_gate(params, ctx)
        case TemplateId.CRSI_SESSION_GATE:
            return _crsi_session_gate(params, ctx)
        case _:
            assert_never(template_id)


# ── Metadata ──────────────────────────────────────────────────────────


def _meta(template_id: TemplateId, history: int, *indicators: str) -> TemplateMetadata:
    return TemplateMetadata(template_id, history, tuple(indicators))


TEMPLATE_METADATA: dict[TemplateId, TemplateMetadata] = {
    m.template_id: m
    for m in (
        _meta(TemplateId.RSI, 15, "rsi"),
        _meta(TemplateId.CRSI, 102, "connors_rsi"),
        _meta(TemplateId.BB_RSI, 21, "bollinger", "rsi"),
        _meta(TemplateId.RSI_CRSI_CONFLUENCE, 102, "rsi", "connors_rsi"),
        _meta(TemplateId.CRSI_DIP_RECOVER, 102, "connors_rsi"),
        _meta(TemplateId.TREND_PULLBACK_RSI, 51, "rsi", "sma"),
        _meta(TemplateId.VWAP_RSI_RECLAIM, 15, "rsi", "vwap_proxy"),
        _meta(TemplateId.BB_RSI_CRSI_REVERSAL, 102, "bollinger", "rsi", "connors_rsi"),
        _meta(TemplateId.RSI_CRSI_MIDPOINT_EXIT, 102, "rsi", "connors_rsi"),
        _meta(TemplateId.ADX_RANGE_RSI_BB, 21, "adx", "rsi", "bollinger"),
        _meta(TemplateId.ADX_TREND_RSI_PULLBACK, 51, "adx", "rsi", "ema", "sma"),
        _meta(TemplateId.MACD_ZERO_RSI_CONFIRM, 35, "macd", "rsi"),
        _meta(TemplateId.MACD_SIGNAL_OBV_CONFIRM, 35, "macd", "obv_proxy"),
        _meta(TemplateId.BB_SQUEEZE_BREAKOUT, 21, "bollinger"),
        _meta(TemplateId.VWAP_TREND_PULLBACK, 15, "rsi", "vwap_proxy"),
        _meta(TemplateId.VWAP_RSI_RANGE_REVERT, 15, "adx", "rsi", "vwap_proxy"),
        _meta(TemplateId.CONNORS_SMA50_PULLBACK, 102, "connors_rsi", "sma"),
        _meta(TemplateId.RSI2_MICRO_RANGE, 15, "rsi_short", "adx"),
        _meta(TemplateId.ATR_BREAKOUT_FOLLOW, 15, "atr", "adx"),
        _meta(TemplateId.RSI_SESSION_GATE, 15, "rsi"),
        _meta(TemplateId.CRSI_SESSION_GATE, 102, "connors_rsi"),
    )
}

REQUIRED_PARAMS: dict[TemplateId, tuple[str, ...]] = {
    TemplateId.RSI: ("entry", "exit"),
    TemplateId.CRSI: ("entry", "exit"),
    TemplateId.BB_RSI: ("rsi_entry", "rsi_exit"),
    TemplateId.RSI_CRSI_CONFLUENCE: ("entry_rsi", "entry_crsi", "exit_rsi", "exit_crsi"),
    TemplateId.CRSI_DIP_RECOVER: ("dip", "recover", "exit"),
    TemplateId.TREND_PULLBACK_RSI: ("entry", "exit"),
    TemplateId.VWAP_RSI_RECLAIM: ("rsi_max", "exit_rsi"),
    TemplateId.BB_RSI_CRSI_REVERSAL: ("rsi_entry", "crsi_entry", "rsi_exit"),
    TemplateId.RSI_CRSI_MIDPOINT_EXIT: ("entry_rsi", "entry_crsi"),
    TemplateId.ADX_RANGE_RSI_BB: ("adx_max", "rsi_entry", "rsi_exit"),
    TemplateId.ADX_TREND_RSI_PULLBACK: ("adx_min", "rsi_entry", "rsi_exit"),
    TemplateId.MACD_ZERO_RSI_CONFIRM: ("rsi_max", "rsi_exit"),
    TemplateId.MACD_SIGNAL_OBV_CONFIRM: (),
    TemplateId.BB_SQUEEZE_BREAKOUT: ("width_threshold",),
    TemplateId.VWAP_TREND_PULLBACK: ("rsi_entry", "rsi_exit"),
    TemplateId.VWAP_RSI_RANGE_REVERT: ("adx_max", "rsi_entry"),
    TemplateId.CONNORS_SMA50_PULLBACK: ("entry", "exit"),
    TemplateId.RSI2_MICRO_RANGE: ("rsi2_entry", "rsi2_exit", "adx_max"),
    TemplateId.ATR_BREAKOUT_FOLLOW: ("adx_min",),
    TemplateId.RSI_SESSION_GATE: ("entry", "exit", "session"),
    TemplateId.CRSI_SESSION_GATE: ("entry", "exit", "session"),
}


def parse_template_id(value: str | TemplateId) -> TemplateId:
    """Convert a string to a TemplateId.

    Raises:
        UnknownTemplateError: If value is not a catalog template.
    """
    try:
        return TemplateId(value)
    except ValueError:
        known = ", ".join(t.value for t in TemplateId)
        raise UnknownTemplateError(
            f"Unknown template id '{value}'. Available: {known}"
        ) from None


def get_template_metadata(template_id: TemplateId) -> TemplateMetadata:
    return TEMPLATE_METADATA[template_id]


def validate_params(template_id: TemplateId, params: Params) -> None:
    """Check that every required parameter is present and finite.

    Raises:
        MissingParameterError: Listing each missing or non-finite key.
    """
    missing = [
        key
        for key in REQUIRED_PARAMS[template_id]
        if key not in params or not _is_finite_number(params[key])
    ]
    if missing:
        raise MissingParameterError(
            f"Missing/invalid params for {template_id.value}: {', '.join(missing)}"
        )


def _is_finite_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def missing_indicators(template_id: TemplateId, snapshot: IndicatorSnapshot) -> list[str]:
    """Required indicator fields the snapshot does not provide.

    Live callers use this to tell "not warmed up yet" apart from "hold".
    """
    available = set(snapshot.available())
    return [
        name
        for name in TEMPLATE_METADATA[template_id].required_indicators
        if name not in available
    ]


LIVE_COMPATIBLE_TEMPLATES: tuple[TemplateId, ...] = tuple(
    m.template_id for m in TEMPLATE_METADATA.values() if m.live_compatible
)
