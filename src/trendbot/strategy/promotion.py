"""Promotion of ranked sweep candidates into live-map regime entries.

Candidates arrive ranked best first. For each (mint, regime) slot the
first candidate that passes every filter is promoted; later candidates
for a filled slot are ignored. Promoted entries always start disabled and
need a manual review before they trade.
"""

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from trendbot.backtest.candidates import Candidate
from trendbot.config import PromotionSettings
from trendbot.logging import get_logger
from trendbot.models import ExitMode, TrendRegime
from trendbot.strategy.live_map import RegimeStrategy
from trendbot.strategy.templates import LIVE_COMPATIBLE_TEMPLATES, TemplateId

logger = get_logger(__name__)


@dataclass(frozen=True)
class PromotedStrategy:
    mint: str
    token: str
    regime: TrendRegime
    strategy: RegimeStrategy
    reason: str
    parity_delta: float | None = None


@dataclass(frozen=True)
class PromotionRejection:
    token: str
    regime: str
    template: str
    reason: str


@dataclass
class PromotionOutcome:
    promoted: dict[tuple[str, TrendRegime], PromotedStrategy] = field(default_factory=dict)
    rejections: list[PromotionRejection] = field(default_factory=list)


def parse_params_string(value: str) -> tuple[dict[str, float], float | None, float | None]:
    """Parse "k=v k=v" into (template params, sl, tp).

    Malformed pairs are ignored.
    """
    params: dict[str, float] = {}
    for part in value.split():
        key, sep, raw = part.partition("=")
        if not sep or not key:
            continue
        try:
            params[key] = float(raw)
        except ValueError:
            continue
    sl = params.pop("sl", None)
    tp = params.pop("tp", None)
    return params, sl, tp


def check_candidate(candidate: Candidate, settings: PromotionSettings) -> str | None:
    """Return the first failed filter as a reason, or None when the candidate passes."""
    m = candidate.result.metrics
    adjusted_pct = candidate.adjusted_win_rate * 100
    parity = candidate.result.parity_delta

    if m.total_trades < settings.min_trades:
        return f"trades={m.total_trades} < {settings.min_trades}"
    if adjusted_pct < settings.min_adjusted_win_rate:
        return f"adjWR={adjusted_pct:.1f}% < {settings.min_adjusted_win_rate}%"
    if m.profit_factor < settings.min_profit_factor:
        return f"PF={m.profit_factor:.2f} < {settings.min_profit_factor}"
    if parity is not None and parity < settings.min_parity_delta:
        return f"parityDelta={parity:.1f}pp < {settings.min_parity_delta}pp"
    if m.avg_hold_minutes > settings.max_hold_minutes:
        return f"avgHold={m.avg_hold_minutes:.0f}min > {settings.max_hold_minutes}min"
    return None


def promote_candidates(
    candidates: Iterable[Candidate],
    settings: PromotionSettings | None = None,
    supported: Iterable[TemplateId] = LIVE_COMPATIBLE_TEMPLATES,
) -> PromotionOutcome:
    """Pick the first passing candidate per (mint, regime) slot.

    Args:
        candidates: Candidates ranked best first.
        settings: Filter thresholds and preferred exit mode.
        supported: Templates the live runtime can evaluate.

    Returns:
        PromotionOutcome with disabled RegimeStrategy entries and the
        reasons every other candidate was skipped or rejected.
    """
    settings = settings or PromotionSettings()
    outcome = PromotionOutcome()
    exit_mode = ExitMode(settings.preferred_exit_mode)
    supported_values = {t.value for t in supported}

    for candidate in candidates:
        r = candidate.result
        regime_label = r.annotation.regime

        if regime_label not in {regime.value for regime in TrendRegime}:
            outcome.rejections.append(
                PromotionRejection(r.token, regime_label, r.template, "unknown regime")
            )
            continue
        if r.template not in supported_values:
            outcome.rejections.append(
                PromotionRejection(r.token, regime_label, r.template, "template not live-compatible")
            )
            continue

        regime = TrendRegime(regime_label)
        key = (r.mint, regime)
        if key in outcome.promoted:
            continue

        reason = check_candidate(candidate, settings)
        if reason is not None:
            outcome.rejections.append(PromotionRejection(r.token, regime_label, r.template, reason))
            continue

        params = dict(r.params)
        sl = params.pop("sl", None)
        tp = params.pop("tp", None)
        if sl is None or tp is None:
            outcome.rejections.append(
                PromotionRejection(r.token, regime_label, r.template, "missing sl/tp")
            )
            continue

        outcome.promoted[key] = PromotedStrategy(
            mint=r.mint,
            token=r.token,
            regime=regime,
            strategy=RegimeStrategy(
                enabled=False,
                template_id=TemplateId(r.template),
                params=params,
                stop_loss_pct=sl,
                take_profit_pct=tp,
                exit_mode=exit_mode,
            ),
            reason=(
                f"trades={r.metrics.total_trades} "
                f"adjWR={candidate.adjusted_win_rate * 100:.1f}% "
                f"hold={r.metrics.avg_hold_minutes:.0f}min"
            ),
            parity_delta=r.parity_delta,
        )

    logger.info(
        "promotion_complete",
        promoted=len(outcome.promoted),
        rejected=len(outcome.rejections),
    )
    return outcome


def build_live_map_patch(
    promoted: Sequence[PromotedStrategy] | Mapping[Any, PromotedStrategy],
) -> dict:
    """Render promoted strategies as v2 live-map token blocks (all disabled)."""
    items = promoted.values() if isinstance(promoted, Mapping) else promoted
    tokens: dict[str, dict] = {}
    for p in items:
        block = tokens.setdefault(p.mint, {"label": p.token, "regimes": {}})
        s = p.strategy
        block["regimes"][p.regime.value] = {
            "enabled": s.enabled,
            "template_id": s.template_id.value,
            "params": dict(s.params),
            "sl": s.stop_loss_pct,
            "tp": s.take_profit_pct,
            "exit_mode": s.exit_mode.value,
        }
    return {"version": "v2", "tokens": tokens}
