"""Adapter that runs catalog templates inside the backtest engine.

The same evaluate_signal table drives live decisions; only the source of
the indicator snapshot differs.
"""

from collections.abc import Mapping

from trendbot.backtest.models import BacktestStrategy, StrategyContext
from trendbot.models import Signal
from trendbot.strategy.templates import (
    TemplateContext,
    TemplateId,
    evaluate_signal,
    get_template_metadata,
    validate_params,
)


class TemplateStrategy(BacktestStrategy):
    """A catalog template with fixed parameters and optional SL/TP bounds.

    Args:
        template_id: Catalog template.
        params: Template parameters; validated on construction.
        stop_loss_pct: Negative percent from entry, or None.
        take_profit_pct: Positive percent from entry, or None.
        name: Result label. Defaults to the template id plus params.

    Raises:
        MissingParameterError: If a required parameter is missing or non-finite.
    """

    def __init__(
        self,
        template_id: TemplateId,
        params: Mapping[str, float],
        stop_loss_pct: float | None = None,
        take_profit_pct: float | None = None,
        name: str | None = None,
    ) -> None:
        validate_params(template_id, params)
        self.template_id = template_id
        self.params = dict(params)
        self.stop_loss_pct = stop_loss_pct
        self.take_profit_pct = take_profit_pct
        self.required_history = get_template_metadata(template_id).required_history
        self.name = name or _default_name(template_id, self.params, stop_loss_pct, take_profit_pct)

    def evaluate(self, ctx: StrategyContext) -> Signal:
        template_ctx = TemplateContext(
            close=ctx.candle.close,
            indicators=ctx.indicators,
            hour_utc=ctx.hour_utc,
            has_position=ctx.has_position,
            prev_close=ctx.prev_candle.close if ctx.prev_candle else None,
            prev_high=ctx.prev_candle.high if ctx.prev_candle else None,
            prev_indicators=ctx.prev_indicators,
        )
        return evaluate_signal(self.template_id, self.params, template_ctx)


def _default_name(
    template_id: TemplateId,
    params: Mapping[str, float],
    stop_loss_pct: float | None,
    take_profit_pct: float | None,
) -> str:
    parts = [template_id.value, *(f"{k}{v:g}" for k, v in params.items())]
    if stop_loss_pct is not None:
        parts.append(f"sl{stop_loss_pct:g}")
    if take_profit_pct is not None:
        parts.append(f"tp{take_profit_pct:g}")
    return "-".join(parts)
