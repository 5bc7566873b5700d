"""Strategy package: template catalog, regime classifier and live strategy map."""

from trendbot.strategy.live_map import (
    LiveStrategyMap,
    LiveStrategyMapStore,
    RegimeStrategy,
    TokenStrategyEntry,
    parse_live_map,
    promote_v1_entry,
    resolve_strategy,
)
from trendbot.strategy.regime import (
    HysteresisState,
    RegimeData,
    RegimeDetector,
    RegimeState,
    apply_hysteresis,
    classify_regime,
    compute_regime_data,
)
from trendbot.strategy.templates import (
    TemplateContext,
    TemplateId,
    TemplateMetadata,
    evaluate_signal,
    get_template_metadata,
    parse_template_id,
    validate_params,
)

__all__ = [
    "HysteresisState",
    "LiveStrategyMap",
    "LiveStrategyMapStore",
    "RegimeData",
    "RegimeDetector",
    "RegimeState",
    "RegimeStrategy",
    "TemplateContext",
    "TemplateId",
    "TemplateMetadata",
    "TokenStrategyEntry",
    "apply_hysteresis",
    "classify_regime",
    "compute_regime_data",
    "evaluate_signal",
    "get_template_metadata",
    "parse_live_map",
    "parse_template_id",
    "promote_v1_entry",
    "resolve_strategy",
    "validate_params",
]
