"""Immutable engine settings and their write-time validation."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Mapping, Optional

from ..errors import ConfigurationInvalid

PACING_BASES = ("time", "tokens")
SELECTION_POLICIES = ("weighted", "uniform", "priority")


@dataclass(frozen=True)
class EngineSettings:
    """Tunable parameters of the probability calculator and stock allocator.

    Field names are the snake_case form of the option names accepted by
    :meth:`from_options` (``fatiguePlayThreshold`` -> ``fatigue_play_threshold``).
    Thresholds suffixed ``_min`` are expressed in minutes remaining.
    """

    fatigue_enabled: bool = True
    fatigue_play_threshold: int = 6
    fatigue_play_base_penalty: float = 0.10
    fatigue_play_increment: float = 0.02
    fatigue_play_max: float = 0.50
    fatigue_win_penalty: float = 0.20
    fatigue_win_max: float = 0.60
    fatigue_min_probability: float = 0.10

    pacing_enabled: bool = True
    pacing_too_fast_threshold: float = 1.30
    pacing_too_fast_multiplier: float = 0.60
    pacing_fast_threshold: float = 1.15
    pacing_fast_multiplier: float = 0.80
    pacing_slow_threshold: float = 0.85
    pacing_slow_multiplier: float = 1.20
    pacing_too_slow_threshold: float = 0.70
    pacing_too_slow_multiplier: float = 1.40

    time_pressure_enabled: bool = True
    time_conservation_start_min: float = 60.0
    time_distribution_start_min: float = 5.0
    time_final_start_min: float = 1.0
    time_conservation_boost: float = 1.30
    time_distribution_max: float = 5.0
    time_final_boost: float = 10.0

    force_win_enabled: bool = False
    force_win_threshold_min: float = 1.0

    desperation_mode_enabled: bool = False
    desperation_start_min: float = 5.0

    max_probability: float = 1.0
    min_probability: float = 0.001
    logging_enabled: bool = False

    base_probability: Optional[float] = None
    pacing_basis: str = "time"
    prize_selection_policy: str = "weighted"

    @classmethod
    def from_options(
        cls,
        options: Mapping[str, Any],
        *,
        base: Optional["EngineSettings"] = None,
    ) -> "EngineSettings":
        """Build validated settings from camelCase (or snake_case) options.

        Parameters
        ----------
        options : Mapping[str, Any]
            Options to apply. Keys may use either the camelCase names of the
            admin surface or the field names of this class.
        base : Optional[EngineSettings], default: None
            Settings the options are layered on. Defaults are used when omitted.

        Raises
        ------
        ConfigurationInvalid
            If an option is unknown or the resulting settings are invalid.
        """
        changes: dict[str, Any] = {}
        for key, value in options.items():
            name = OPTION_NAMES.get(key, key)
            if name not in FIELD_NAMES:
                raise ConfigurationInvalid(f"Unknown engine option '{key}'")
            changes[name] = value
        settings = replace(base or cls(), **changes)
        settings.validate()
        return settings

    def to_options(self) -> dict[str, Any]:
        """Return the settings keyed by their camelCase option names."""
        return {_camel(name): value for name, value in asdict(self).items()}

    def validate(self) -> None:
        """Raise :class:`ConfigurationInvalid` unless every invariant holds."""
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name.endswith("_enabled"):
                if not isinstance(value, bool):
                    raise ConfigurationInvalid(f"{_camel(f.name)} must be a boolean")
            elif f.name in ("pacing_basis", "prize_selection_policy"):
                continue
            elif f.name == "base_probability" and value is None:
                continue
            elif isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigurationInvalid(f"{_camel(f.name)} must be a number")
            elif value < 0:
                raise ConfigurationInvalid(f"{_camel(f.name)} must not be negative")

        if not isinstance(self.fatigue_play_threshold, int):
            raise ConfigurationInvalid("fatiguePlayThreshold must be an integer")

        if self.min_probability > self.max_probability:
            raise ConfigurationInvalid("minProbability must not exceed maxProbability")
        _require_fraction(self, "max_probability", "min_probability")
        _require_fraction(
            self,
            "fatigue_play_base_penalty",
            "fatigue_play_max",
            "fatigue_win_penalty",
            "fatigue_win_max",
            "fatigue_min_probability",
        )
        if self.base_probability is not None:
            _require_fraction(self, "base_probability")

        if not (
            self.pacing_too_fast_threshold
            >= self.pacing_fast_threshold
            > self.pacing_slow_threshold
            >= self.pacing_too_slow_threshold
        ):
            raise ConfigurationInvalid(
                "Pacing thresholds must be ordered tooFast >= fast > slow >= tooSlow"
            )
        if not (
            0
            < self.pacing_too_fast_multiplier
            <= self.pacing_fast_multiplier
            <= 1
            <= self.pacing_slow_multiplier
            <= self.pacing_too_slow_multiplier
        ):
            raise ConfigurationInvalid(
                "Pacing multipliers must dampen when fast (<= 1) and boost when slow (>= 1), "
                "with the extreme bands at least as strong as the mild ones"
            )

        if not (
            self.time_conservation_start_min
            >= self.time_distribution_start_min
            >= self.time_final_start_min
        ):
            raise ConfigurationInvalid(
                "Time-pressure thresholds must be ordered conservation >= distribution >= final"
            )
        if not (
            1
            <= self.time_conservation_boost
            <= self.time_distribution_max
            <= self.time_final_boost
        ):
            raise ConfigurationInvalid(
                "Time-pressure boosts must escalate: 1 <= conservation <= distribution <= final"
            )

        if self.pacing_basis not in PACING_BASES:
            raise ConfigurationInvalid(
                f"pacingBasis must be one of {', '.join(PACING_BASES)}"
            )
        if self.prize_selection_policy not in SELECTION_POLICIES:
            raise ConfigurationInvalid(
                f"prizeSelectionPolicy must be one of {', '.join(SELECTION_POLICIES)}"
            )


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _require_fraction(settings: EngineSettings, *names: str) -> None:
    for name in names:
        if not 0 <= getattr(settings, name) <= 1:
            raise ConfigurationInvalid(f"{_camel(name)} must be between 0 and 1")


FIELD_NAMES = frozenset(f.name for f in fields(EngineSettings))
OPTION_NAMES = {_camel(name): name for name in FIELD_NAMES}

DEFAULT_SETTINGS = EngineSettings()


__all__ = [
    "DEFAULT_SETTINGS",
    "EngineSettings",
    "OPTION_NAMES",
    "PACING_BASES",
    "SELECTION_POLICIES",
]
