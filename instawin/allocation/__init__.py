"""Prize-allocation decision engine.

The pure parts (settings, clock, probability) are re-exported here. The
database-bound parts live in :mod:`.history`, :mod:`.stock`,
:mod:`.recorder` and :mod:`.engine`, which import the ORM models.
"""

from .clock import CampaignWindow, campaign_window, measure_window
from .config import DEFAULT_SETTINGS, EngineSettings
from .probability import (
    Adjustment,
    DEFAULT_STAGES,
    PlayContext,
    ProbabilityBreakdown,
    calculate_probability,
    draw,
)

__all__ = [
    "Adjustment",
    "CampaignWindow",
    "DEFAULT_SETTINGS",
    "DEFAULT_STAGES",
    "EngineSettings",
    "PlayContext",
    "ProbabilityBreakdown",
    "calculate_probability",
    "campaign_window",
    "draw",
    "measure_window",
]
