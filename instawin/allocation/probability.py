"""Win probability calculator.

The calculator is a pipeline of pure stages. The base stage yields the naive
"fair pacing" probability; every later stage inspects the play context, the
engine settings and the running probability, and returns an
:class:`Adjustment`. Stages run in ascending precedence::

    base < fatigue < pacing < time_pressure < force_win < desperation

A multiplicative adjustment contributes a factor. An adjustment may
supersede the factor of a lower stage (time pressure replaces pacing once
the campaign enters its closing phases) or force the probability outright
(force win, desperation). The result is clamped to
``[min_probability, max_probability]``.

Nothing here performs I/O; the same inputs always give the same output.
"""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

from .config import EngineSettings

logger = logging.getLogger(__name__)

# Conservation phase slows distribution to this band when stock would run
# out before the distribution phase.
CONSERVATION_SLOWDOWN_FLOOR = 0.3
CONSERVATION_SLOWDOWN_CEILING = 0.8
# Lowest boost applied during the distribution phase.
DISTRIBUTION_BOOST_FLOOR = 1.5


@dataclass(frozen=True)
class PlayContext:
    """Campaign and player state a single play is evaluated against.

    Attributes
    ----------
    plays_so_far : int
        Plays the player recorded in this promotion before this one.
    wins_so_far : int
        Wins among those plays.
    remaining_stock : int
        Units left across all prize types.
    initial_stock : int
        Units the prize types started with.
    total_tokens : int
        Tokens planned for the campaign.
    used_tokens : int
        Tokens consumed before this play.
    minutes_remaining : float
        Minutes until the campaign closes.
    minutes_elapsed : float
        Minutes since the campaign opened.
    elapsed_fraction : float
        Share of the campaign window already elapsed.
    eligible_stock : Optional[int]
        Units left among the prize types this player may win. ``None``
        means every unit is winnable.
    """

    plays_so_far: int
    wins_so_far: int
    remaining_stock: int
    initial_stock: int
    total_tokens: int
    used_tokens: int
    minutes_remaining: float
    minutes_elapsed: float
    elapsed_fraction: float
    eligible_stock: Optional[int] = None

    @property
    def remaining_tokens(self) -> int:
        return max(self.total_tokens - self.used_tokens, 0)

    @property
    def prizes_awarded(self) -> int:
        return max(self.initial_stock - self.remaining_stock, 0)

    @property
    def winnable_stock(self) -> int:
        if self.eligible_stock is None:
            return self.remaining_stock
        return min(self.eligible_stock, self.remaining_stock)

    def expected_remaining_plays(self) -> float:
        """Plays expected before close at the rate observed so far."""

        if self.minutes_elapsed <= 0 or self.minutes_remaining <= 0:
            return 0.0
        plays_per_minute = self.used_tokens / self.minutes_elapsed
        return min(plays_per_minute * self.minutes_remaining, float(self.remaining_tokens))


@dataclass(frozen=True)
class Adjustment:
    """Outcome of one pipeline stage."""

    stage: str
    factor: float = 1.0
    forced: Optional[float] = None
    supersedes: tuple[str, ...] = ()
    detail: Optional[str] = None

    @property
    def active(self) -> bool:
        return self.forced is not None or self.factor != 1.0


Stage = Callable[[PlayContext, EngineSettings, float], Adjustment]


@dataclass(frozen=True)
class ProbabilityBreakdown:
    """Final probability together with how it was reached."""

    probability: float
    base: float
    raw_probability: float
    factors: dict[str, float] = field(default_factory=dict)
    forced_by: Optional[str] = None
    adjustments: tuple[Adjustment, ...] = ()

    def to_json(self) -> dict[str, Any]:
        return {
            "probability": self.probability,
            "base": self.base,
            "raw_probability": self.raw_probability,
            "factors": dict(self.factors),
            "forced_by": self.forced_by,
            "stages": [
                {"stage": adj.stage, "factor": adj.factor, "forced": adj.forced, "detail": adj.detail}
                for adj in self.adjustments
                if adj.active
            ],
        }


def base_probability(context: PlayContext, settings: EngineSettings) -> float:
    """Probability that spreads the remaining stock over the remaining tokens."""

    if context.winnable_stock <= 0:
        return 0.0
    if settings.base_probability is not None:
        return settings.base_probability
    if context.remaining_tokens <= 0:
        # More plays than planned: every remaining unit is overdue.
        return 1.0
    return context.winnable_stock / context.remaining_tokens


def fatigue_adjustment(
    context: PlayContext, settings: EngineSettings, probability: float
) -> Adjustment:
    """Penalize players who play or win repeatedly."""

    if not settings.fatigue_enabled:
        return Adjustment("fatigue")

    factor = 1.0
    if context.plays_so_far >= settings.fatigue_play_threshold:
        extra = context.plays_so_far - settings.fatigue_play_threshold
        penalty = settings.fatigue_play_base_penalty + extra * settings.fatigue_play_increment
        factor *= 1.0 - min(penalty, settings.fatigue_play_max)
    if context.wins_so_far >= 1:
        penalty = context.wins_so_far * settings.fatigue_win_penalty
        factor *= 1.0 - min(penalty, settings.fatigue_win_max)

    factor = max(factor, settings.fatigue_min_probability)
    return Adjustment(
        "fatigue",
        factor=factor,
        detail=f"plays={context.plays_so_far} wins={context.wins_so_far}",
    )


def pacing_adjustment(
    context: PlayContext, settings: EngineSettings, probability: float
) -> Adjustment:
    """Steer the distribution rate back toward the ideal schedule."""

    if not settings.pacing_enabled or context.initial_stock <= 0:
        return Adjustment("pacing")

    if settings.pacing_basis == "tokens":
        progress = (
            context.used_tokens / context.total_tokens if context.total_tokens > 0 else 0.0
        )
    else:
        progress = context.elapsed_fraction
    if progress <= 0:
        return Adjustment("pacing")

    ratio = (context.prizes_awarded / context.initial_stock) / progress

    # Most extreme band first so it wins over the milder one.
    if ratio > settings.pacing_too_fast_threshold:
        factor = settings.pacing_too_fast_multiplier
    elif ratio > settings.pacing_fast_threshold:
        factor = settings.pacing_fast_multiplier
    elif ratio < settings.pacing_too_slow_threshold:
        factor = settings.pacing_too_slow_multiplier
    elif ratio < settings.pacing_slow_threshold:
        factor = settings.pacing_slow_multiplier
    else:
        factor = 1.0
    return Adjustment("pacing", factor=factor, detail=f"ratio={ratio:.4f}")


def _conservation_factor(context: PlayContext, settings: EngineSettings) -> float:
    time_until_distribution = context.minutes_remaining - settings.time_distribution_start_min
    if time_until_distribution <= 0:
        return 1.0

    prize_rate = (
        context.prizes_awarded / context.minutes_elapsed
        if context.minutes_elapsed > 0
        else 0.0
    )
    minutes_to_empty = (
        context.remaining_stock / prize_rate if prize_rate > 0 else math.inf
    )

    if minutes_to_empty < time_until_distribution:
        return max(
            CONSERVATION_SLOWDOWN_FLOOR,
            min(CONSERVATION_SLOWDOWN_CEILING, minutes_to_empty / time_until_distribution),
        )

    margin = minutes_to_empty / time_until_distribution
    if margin > 3:
        return settings.time_conservation_boost
    if margin > 2:
        return 1.0 + (settings.time_conservation_boost - 1.0) / 2
    return 1.0


def _distribution_boost(context: PlayContext, settings: EngineSettings) -> float:
    floor = min(
        max(DISTRIBUTION_BOOST_FLOOR, settings.time_conservation_boost),
        settings.time_distribution_max,
    )
    expected_plays = context.expected_remaining_plays()
    if expected_plays <= 0:
        return settings.time_distribution_max

    required_rate = context.remaining_stock / expected_plays
    fair_rate = context.remaining_stock / context.remaining_tokens
    return max(floor, min(settings.time_distribution_max, required_rate / fair_rate))


def time_pressure_adjustment(
    context: PlayContext, settings: EngineSettings, probability: float
) -> Adjustment:
    """Escalate the odds as the campaign approaches its end.

    Phases by minutes remaining: conservation (keep stock for the closing
    minutes), distribution (boost toward the required rate) and final
    (``time_final_boost``). An active phase replaces the pacing factor.
    """

    if not settings.time_pressure_enabled:
        return Adjustment("time_pressure")
    if context.remaining_stock <= 0 or context.remaining_tokens <= 0:
        return Adjustment("time_pressure")

    minutes = context.minutes_remaining
    if minutes > settings.time_conservation_start_min:
        return Adjustment("time_pressure")

    if minutes <= settings.time_final_start_min:
        phase, factor = "final", settings.time_final_boost
    elif minutes <= settings.time_distribution_start_min:
        phase, factor = "distribution", _distribution_boost(context, settings)
    else:
        phase, factor = "conservation", _conservation_factor(context, settings)

    if factor == 1.0:
        return Adjustment("time_pressure", detail=phase)
    return Adjustment("time_pressure", factor=factor, supersedes=("pacing",), detail=phase)


def force_win_adjustment(
    context: PlayContext, settings: EngineSettings, probability: float
) -> Adjustment:
    """Guarantee the win when stock would otherwise be stranded at close."""

    if not settings.force_win_enabled or context.winnable_stock <= 0:
        return Adjustment("force_win")
    if context.minutes_remaining > settings.force_win_threshold_min:
        return Adjustment("force_win")

    expected_wins = probability * context.expected_remaining_plays()
    if context.winnable_stock <= expected_wins:
        return Adjustment("force_win", detail=f"expected_wins={expected_wins:.2f}")
    return Adjustment("force_win", forced=1.0, detail=f"expected_wins={expected_wins:.2f}")


def desperation_adjustment(
    context: PlayContext, settings: EngineSettings, probability: float
) -> Adjustment:
    """Last-resort clearance: every play wins while stock remains."""

    if not settings.desperation_mode_enabled or context.winnable_stock <= 0:
        return Adjustment("desperation")
    if context.minutes_remaining > settings.desperation_start_min:
        return Adjustment("desperation")
    return Adjustment("desperation", forced=settings.max_probability)


DEFAULT_STAGES: tuple[Stage, ...] = (
    fatigue_adjustment,
    pacing_adjustment,
    time_pressure_adjustment,
    force_win_adjustment,
    desperation_adjustment,
)


def clamp_probability(probability: float, settings: EngineSettings) -> float:
    return min(max(probability, settings.min_probability), settings.max_probability)


def calculate_probability(
    context: PlayContext,
    settings: EngineSettings,
    stages: Sequence[Stage] = DEFAULT_STAGES,
) -> ProbabilityBreakdown:
    """Run the adjustment pipeline and return the clamped probability.

    Parameters
    ----------
    context : PlayContext
        State of the campaign and of the player for this play.
    settings : EngineSettings
        Validated engine settings of the promotion.
    stages : Sequence[Stage], default: DEFAULT_STAGES
        Adjustment stages in ascending precedence.

    Returns
    -------
    ProbabilityBreakdown
        ``probability`` always lies in ``[min_probability, max_probability]``.
    """

    base = base_probability(context, settings)
    factors: dict[str, float] = {}
    forced_by: Optional[str] = None
    forced_value = 0.0
    probability = base
    adjustments: list[Adjustment] = []

    for stage in stages:
        adjustment = stage(context, settings, probability)
        adjustments.append(adjustment)
        for name in adjustment.supersedes:
            factors.pop(name, None)
        if adjustment.forced is not None:
            forced_by = adjustment.stage
            forced_value = adjustment.forced
        elif adjustment.factor != 1.0:
            factors[adjustment.stage] = adjustment.factor

        if forced_by is not None:
            probability = forced_value
        else:
            probability = base * math.prod(factors.values())

    breakdown = ProbabilityBreakdown(
        probability=clamp_probability(probability, settings),
        base=base,
        raw_probability=probability,
        factors=factors,
        forced_by=forced_by,
        adjustments=tuple(adjustments),
    )
    logger.debug(
        "Probability %.6f (base=%.6f factors=%s forced_by=%s)",
        breakdown.probability,
        base,
        factors,
        forced_by,
    )
    return breakdown


def draw(probability: float, rng: Optional[random.Random] = None) -> bool:
    """Uniform draw: ``True`` with the given probability."""

    return (rng or random).random() < probability


__all__ = [
    "Adjustment",
    "DEFAULT_STAGES",
    "PlayContext",
    "ProbabilityBreakdown",
    "Stage",
    "base_probability",
    "calculate_probability",
    "clamp_probability",
    "desperation_adjustment",
    "draw",
    "fatigue_adjustment",
    "force_win_adjustment",
    "pacing_adjustment",
    "time_pressure_adjustment",
]
