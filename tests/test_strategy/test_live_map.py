"""Tests for the live strategy map: v1 promotion, v2 parsing, resolver and store."""

import json
import os
from pathlib import Path
from typing import Any

import pytest

from trendbot.config import LiveMapSettings
from trendbot.exceptions import ConfigurationError, MissingParameterError, UnknownTemplateError
from trendbot.models import ExitMode, TrendRegime
from trendbot.strategy.live_map import (
    LiveStrategyMap,
    LiveStrategyMapStore,
    parse_live_map,
    promote_v1_entry,
    resolve_strategy,
)
from trendbot.strategy.templates import TemplateId

V1_ENTRY: dict[str, Any] = {
    "label": "BONK",
    "tier": "core",
    "max_position_usdc": 25.0,
    "enabled": True,
    "indicator": {"kind": "crsi", "rsi_period": 3, "streak_rsi_period": 2},
    "params": {"entry": 10, "exit": 85, "sl": -5, "tp": 8},
}


def _v2_entry(**overrides: Any) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "label": "WIF",
        "enabled": True,
        "max_position_usdc": 10.0,
        "regimes": {
            "uptrend": {
                "enabled": True,
                "template_id": "trend-pullback-rsi",
                "params": {"entry": 40, "exit": 70},
                "sl": -4,
                "tp": 6,
                "exit_mode": "indicator",
            },
            "sideways": {
                "enabled": False,
                "template_id": "rsi",
                "params": {"entry": 30, "exit": 70},
                "sl": -3,
                "tp": 3,
            },
        },
    }
    entry.update(overrides)
    return entry


class TestPromoteV1:
    def test_replicates_params_into_every_regime(self) -> None:
        """A v1 entry becomes the same enabled strategy in every regime."""
        entry = promote_v1_entry("mint-a", V1_ENTRY)
        assert set(entry.regimes) == set(TrendRegime)
        strategies = list(entry.regimes.values())
        assert all(s == strategies[0] for s in strategies)
        first = strategies[0]
        assert first.template_id is TemplateId.CRSI
        assert first.params == {"entry": 10.0, "exit": 85.0}
        assert first.stop_loss_pct == -5
        assert first.take_profit_pct == 8
        assert first.exit_mode is ExitMode.PRICE
        assert first.enabled is True

    def test_rsi_kind_maps_to_rsi_template(self) -> None:
        """kind "rsi" promotes to the rsi template."""
        raw = {**V1_ENTRY, "indicator": {"kind": "rsi"}}
        entry = promote_v1_entry("mint-a", raw)
        assert entry.regimes[TrendRegime.UPTREND].template_id is TemplateId.RSI

    def test_resolves_identically_for_all_regimes(self) -> None:
        """A promoted token resolves to one strategy regardless of regime."""
        live_map = parse_live_map({"version": "v1", "tokens": {"mint-a": V1_ENTRY}})
        resolved = [resolve_strategy(live_map, "mint-a", regime) for regime in TrendRegime]
        assert resolved[0] is not None
        assert all(strategy == resolved[0] for strategy in resolved)
        assert live_map.promoted_mints == frozenset({"mint-a"})

    def test_invalid_v1_entry(self) -> None:
        """A v1 entry with incomplete params names the mint in the error."""
        raw = {**V1_ENTRY, "params": {"entry": 10}}
        with pytest.raises(ConfigurationError, match="mint-a"):
            promote_v1_entry("mint-a", raw)


class TestParseV2:
    def test_parses_regimes(self) -> None:
        """Regime blocks parse with their template and exit mode."""
        live_map = parse_live_map({"version": "v2", "tokens": {"mint-b": _v2_entry()}})
        entry = live_map.tokens["mint-b"]
        assert entry.label == "WIF"
        assert set(entry.regimes) == {TrendRegime.UPTREND, TrendRegime.SIDEWAYS}
        up = entry.regimes[TrendRegime.UPTREND]
        assert up.template_id is TemplateId.TREND_PULLBACK_RSI
        assert up.exit_mode is ExitMode.INDICATOR
        assert entry.regimes[TrendRegime.SIDEWAYS].exit_mode is ExitMode.PRICE
        assert live_map.promoted_mints == frozenset()

    def test_mixed_document(self) -> None:
        """v1 and v2 entries can share one document."""
        live_map = parse_live_map({"tokens": {"a": V1_ENTRY, "b": _v2_entry()}})
        assert set(live_map.tokens) == {"a", "b"}
        assert live_map.promoted_mints == frozenset({"a"})

    def test_unknown_template(self) -> None:
        """An unknown template id is rejected."""
        entry = _v2_entry()
        entry["regimes"]["uptrend"]["template_id"] = "moon-shot"
        with pytest.raises(UnknownTemplateError):
            parse_live_map({"tokens": {"mint-b": entry}})

    def test_missing_template_params(self) -> None:
        """A regime missing template params is rejected."""
        entry = _v2_entry()
        entry["regimes"]["uptrend"]["params"] = {"entry": 40}
        with pytest.raises(MissingParameterError):
            parse_live_map({"tokens": {"mint-b": entry}})

    def test_missing_tokens(self) -> None:
        """A document without a tokens object is rejected."""
        with pytest.raises(ConfigurationError, match="tokens"):
            parse_live_map({"version": "v2"})

    def test_unknown_entry_shape(self) -> None:
        """An entry with neither regimes nor params is rejected."""
        with pytest.raises(ConfigurationError, match="neither"):
            parse_live_map({"tokens": {"mint-c": {"label": "X"}}})

    def test_non_object_document(self) -> None:
        """A top-level value that is not an object is rejected."""
        with pytest.raises(ConfigurationError):
            parse_live_map([])  # type: ignore[arg-type]


class TestResolveStrategy:
    @pytest.fixture
    def live_map(self) -> LiveStrategyMap:
        return parse_live_map(
            {
                "tokens": {
                    "on": _v2_entry(),
                    "off": _v2_entry(enabled=False),
                }
            }
        )

    def test_enabled_regime(self, live_map: LiveStrategyMap) -> None:
        """An enabled regime on an enabled token resolves."""
        strategy = resolve_strategy(live_map, "on", TrendRegime.UPTREND)
        assert strategy is not None
        assert strategy.take_profit_pct == 6

    def test_missing_token(self, live_map: LiveStrategyMap) -> None:
        """An unknown mint resolves to None."""
        assert resolve_strategy(live_map, "nope", TrendRegime.UPTREND) is None

    def test_master_disabled(self, live_map: LiveStrategyMap) -> None:
        """A disabled token resolves to None in every regime."""
        assert resolve_strategy(live_map, "off", TrendRegime.UPTREND) is None

    def test_regime_disabled(self, live_map: LiveStrategyMap) -> None:
        """A disabled regime resolves to None."""
        assert resolve_strategy(live_map, "on", TrendRegime.SIDEWAYS) is None

    def test_regime_missing(self, live_map: LiveStrategyMap) -> None:
        """A regime absent from the entry resolves to None."""
        assert resolve_strategy(live_map, "on", TrendRegime.DOWNTREND) is None


class TestLiveStrategyMapStore:
    def _write(self, path: Path, doc: dict[str, Any]) -> None:
        path.write_text(json.dumps(doc), encoding="utf-8")

    def test_caches_until_mtime_changes(self, tmp_path: Path) -> None:
        """The parsed map is reused until the file mtime changes."""
        path = tmp_path / "live.json"
        self._write(path, {"tokens": {"a": V1_ENTRY}})
        store = LiveStrategyMapStore(path)

        first = store.load()
        assert store.load() is first

        self._write(path, {"tokens": {"a": V1_ENTRY, "b": _v2_entry()}})
        stat = os.stat(path)
        os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))

        second = store.load()
        assert second is not first
        assert set(second.tokens) == {"a", "b"}

    def test_invalidate_forces_reload(self, tmp_path: Path) -> None:
        """invalidate() makes the next load re-read the file."""
        path = tmp_path / "live.json"
        self._write(path, {"tokens": {"a": V1_ENTRY}})
        store = LiveStrategyMapStore(path)
        first = store.load()
        store.invalidate()
        assert store.load() is not first

    def test_resolve_through_store(self, tmp_path: Path) -> None:
        """The store resolves strategies from the file it owns."""
        path = tmp_path / "live.json"
        self._write(path, {"tokens": {"b": _v2_entry()}})
        store = LiveStrategyMapStore(path)
        strategy = store.resolve("b", TrendRegime.UPTREND)
        assert strategy is not None
        assert strategy.template_id is TemplateId.TREND_PULLBACK_RSI

    def test_missing_file(self, tmp_path: Path) -> None:
        """A missing file raises ConfigurationError."""
        store = LiveStrategyMapStore(tmp_path / "absent.json")
        with pytest.raises(ConfigurationError, match="not found"):
            store.load()

    def test_bad_json(self, tmp_path: Path) -> None:
        """Malformed JSON raises ConfigurationError."""
        path = tmp_path / "live.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="not valid JSON"):
            LiveStrategyMapStore(path).load()

    def test_from_settings_uses_configured_path(self, tmp_path: Path) -> None:
        """The store reads the path given by LiveMapSettings."""
        path = tmp_path / "live.json"
        self._write(path, {"tokens": {"a": V1_ENTRY}})
        store = LiveStrategyMapStore.from_settings(LiveMapSettings(path=str(path)))
        assert store.path == path
        assert set(store.load().tokens) == {"a"}

    def test_from_settings_reads_environment(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Without explicit settings the path comes from LIVE_MAP_PATH."""
        monkeypatch.setenv("LIVE_MAP_PATH", str(tmp_path / "env.json"))
        assert LiveStrategyMapStore.from_settings().path == tmp_path / "env.json"
