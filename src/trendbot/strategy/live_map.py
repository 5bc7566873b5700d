"""Live strategy map: per-token, per-regime strategy configuration.

The on-disk map is keyed by token mint. Two entry shapes exist:

* v1 (flat): one indicator kind (rsi/crsi) and one params block
  {entry, exit, sl, tp} applied regardless of regime.
* v2 (per-regime): a "regimes" block with one entry per trend regime.

Parsing produces a single canonical in-memory shape (v2). v1 entries are
promoted by replicating the flat params into all three regimes
(promote_v1_entry), and the store warns once per promoted mint.

The resolver returns None (no active strategy) when the token is
missing, master-disabled, or its regime entry is missing or disabled.
"""

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from trendbot.config import LiveMapSettings
from trendbot.exceptions import ConfigurationError
from trendbot.logging import get_logger
from trendbot.models import ExitMode, TrendRegime
from trendbot.strategy.templates import TemplateId, parse_template_id, validate_params

logger = get_logger(__name__)


# ── Canonical in-memory shape ─────────────────────────────────────────


@dataclass(frozen=True)
class RegimeStrategy:
    """Strategy active for one token in one regime."""

    enabled: bool
    template_id: TemplateId
    params: dict[str, float]
    stop_loss_pct: float  # negative, e.g. -5 exits at -5%
    take_profit_pct: float
    exit_mode: ExitMode = ExitMode.PRICE
    max_position_usdc: float | None = None


@dataclass(frozen=True)
class TokenStrategyEntry:
    """All regime strategies for one token plus its master switch."""

    mint: str
    label: str
    tier: str
    enabled: bool
    max_position_usdc: float
    regimes: dict[TrendRegime, RegimeStrategy] = field(default_factory=dict)


@dataclass(frozen=True)
class LiveStrategyMap:
    """Canonical live map. promoted_mints lists tokens loaded from the v1 shape."""

    version: str
    tokens: dict[str, TokenStrategyEntry]
    promoted_mints: frozenset[str] = frozenset()


# ── Raw file shapes ───────────────────────────────────────────────────


class _V1Indicator(BaseModel):
    kind: Literal["rsi", "crsi"]
    rsi_period: int = 14
    streak_rsi_period: int | None = None
    percent_rank_period: int | None = None


class _V1Params(BaseModel):
    entry: float
    exit: float
    sl: float
    tp: float


class _V1Token(BaseModel):
    model_config = ConfigDict(extra="ignore")

    label: str = ""
    tier: Literal["core", "probe"] = "probe"
    max_position_usdc: float = 0.0
    enabled: bool = False
    indicator: _V1Indicator
    params: _V1Params


class _V2Regime(BaseModel):
    model_config = ConfigDict(extra="ignore")

    enabled: bool = False
    template_id: str
    params: dict[str, float] = Field(default_factory=dict)
    sl: float
    tp: float
    exit_mode: ExitMode = ExitMode.PRICE
    max_position_usdc: float | None = None


class _V2Token(BaseModel):
    model_config = ConfigDict(extra="ignore")

    label: str = ""
    tier: Literal["core", "probe"] = "probe"
    max_position_usdc: float = 0.0
    enabled: bool = False
    regimes: dict[TrendRegime, _V2Regime] = Field(default_factory=dict)


# ── Parsing ───────────────────────────────────────────────────────────


def promote_v1_entry(mint: str, raw: Mapping[str, Any]) -> TokenStrategyEntry:
    """Promote a flat v1 token entry into the per-regime shape.

    The same template, params and SL/TP are used for uptrend, sideways and
    downtrend. v1 live exits were driven by SL/TP only, so exit mode is PRICE.

    Raises:
        ConfigurationError: If the entry does not match the v1 shape.
    """
    try:
        v1 = _V1Token.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid v1 live-map entry for {mint}: {exc}") from exc

    template_id = TemplateId.RSI if v1.indicator.kind == "rsi" else TemplateId.CRSI
    params = {"entry": v1.params.entry, "exit": v1.params.exit}
    regimes = {
        regime: RegimeStrategy(
            enabled=True,
            template_id=template_id,
            params=dict(params),
            stop_loss_pct=v1.params.sl,
            take_profit_pct=v1.params.tp,
            exit_mode=ExitMode.PRICE,
            max_position_usdc=v1.max_position_usdc,
        )
        for regime in TrendRegime
    }
    return TokenStrategyEntry(
        mint=mint,
        label=v1.label,
        tier=v1.tier,
        enabled=v1.enabled,
        max_position_usdc=v1.max_position_usdc,
        regimes=regimes,
    )


def _parse_v2_entry(mint: str, raw: Mapping[str, Any]) -> TokenStrategyEntry:
    try:
        v2 = _V2Token.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid v2 live-map entry for {mint}: {exc}") from exc

    regimes: dict[TrendRegime, RegimeStrategy] = {}
    for regime, entry in v2.regimes.items():
        template_id = parse_template_id(entry.template_id)
        validate_params(template_id, entry.params)
        regimes[regime] = RegimeStrategy(
            enabled=entry.enabled,
            template_id=template_id,
            params=dict(entry.params),
            stop_loss_pct=entry.sl,
            take_profit_pct=entry.tp,
            exit_mode=entry.exit_mode,
            max_position_usdc=entry.max_position_usdc,
        )
    return TokenStrategyEntry(
        mint=mint,
        label=v2.label,
        tier=v2.tier,
        enabled=v2.enabled,
        max_position_usdc=v2.max_position_usdc,
        regimes=regimes,
    )


def parse_live_map(raw: Mapping[str, Any]) -> LiveStrategyMap:
    """Parse a raw live map document into the canonical shape.

    The shape is detected per token: a "regimes" block means v2, a flat
    "params" block means v1 (promoted). Mixed documents are accepted so a
    map can be migrated token by token.

    Raises:
        ConfigurationError: On unknown shapes, unknown template ids or
            missing template parameters.
    """
    if not isinstance(raw, Mapping):
        raise ConfigurationError("Live strategy map must be a JSON object")
    tokens_raw = raw.get("tokens")
    if not isinstance(tokens_raw, Mapping):
        raise ConfigurationError("Live strategy map has no 'tokens' object")

    tokens: dict[str, TokenStrategyEntry] = {}
    promoted: set[str] = set()
    for mint, entry in tokens_raw.items():
        if not isinstance(entry, Mapping):
            raise ConfigurationError(f"Live-map entry for {mint} is not an object")
        if "regimes" in entry:
            tokens[mint] = _parse_v2_entry(mint, entry)
        elif "params" in entry:
            tokens[mint] = promote_v1_entry(mint, entry)
            promoted.add(mint)
        else:
            raise ConfigurationError(
                f"Live-map entry for {mint} has neither 'regimes' (v2) nor 'params' (v1)"
            )

    return LiveStrategyMap(
        version=str(raw.get("version", "v2")),
        tokens=tokens,
        promoted_mints=frozenset(promoted),
    )


def resolve_strategy(
    live_map: LiveStrategyMap, mint: str, regime: TrendRegime
) -> RegimeStrategy | None:
    """Active strategy for (mint, regime), or None when nothing should trade."""
    entry = live_map.tokens.get(mint)
    if entry is None or not entry.enabled:
        return None
    strategy = entry.regimes.get(regime)
    if strategy is None or not strategy.enabled:
        return None
    return strategy


# ── Store ─────────────────────────────────────────────────────────────


class LiveStrategyMapStore:
    """Owns the parsed live map and re-reads it when the file's mtime changes.

    Args:
        path: Path to the live map JSON file.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._cached: LiveStrategyMap | None = None
        self._cached_mtime_ns: int | None = None
        self._warned_v1: set[str] = set()

    @classmethod
    def from_settings(cls, settings: LiveMapSettings | None = None) -> "LiveStrategyMapStore":
        """Build a store for the configured live map path."""
        return cls((settings or LiveMapSettings()).path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> LiveStrategyMap:
        """Return the current map, re-reading the file if it changed on disk.

        Raises:
            ConfigurationError: If the file is missing, not valid JSON, or invalid.
        """
        try:
            mtime_ns = os.stat(self._path).st_mtime_ns
        except FileNotFoundError as exc:
            raise ConfigurationError(f"Live strategy map not found: {self._path}") from exc

        if self._cached is not None and self._cached_mtime_ns == mtime_ns:
            return self._cached

        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Live strategy map is not valid JSON: {exc}") from exc

        live_map = parse_live_map(raw)

        for mint in sorted(live_map.promoted_mints - self._warned_v1):
            logger.warning(
                "live_map_v1_entry_promoted",
                mint=mint,
                label=live_map.tokens[mint].label,
                path=str(self._path),
            )
            self._warned_v1.add(mint)

        self._cached = live_map
        self._cached_mtime_ns = mtime_ns
        logger.info(
            "live_map_loaded",
            path=str(self._path),
            version=live_map.version,
            tokens=len(live_map.tokens),
            promoted_v1=len(live_map.promoted_mints),
        )
        return live_map

    def invalidate(self) -> None:
        """Drop the cached map so the next load() re-reads the file."""
        self._cached = None
        self._cached_mtime_ns = None

    def resolve(self, mint: str, regime: TrendRegime) -> RegimeStrategy | None:
        return resolve_strategy(self.load(), mint, regime)
