"""Campaign clock: where ``now`` sits inside a promotion's window."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from ..db.utils import as_utc, dt_iso
from ..errors import CampaignNotActive

if TYPE_CHECKING:
    from ..models import Promotion


@dataclass(frozen=True)
class CampaignWindow:
    """Position of a reference time inside a campaign window.

    Attributes
    ----------
    minutes_remaining : float
        Minutes until the window closes; zero or negative once it has.
    minutes_elapsed : float
        Minutes since the window opened; negative before it does.
    elapsed_fraction : float
        Share of the window already elapsed, clamped to ``[0, 1]``.
    """

    minutes_remaining: float
    minutes_elapsed: float
    elapsed_fraction: float


def measure_window(start_at: datetime, end_at: datetime, now: datetime) -> CampaignWindow:
    """Compute the :class:`CampaignWindow` of ``now`` without any status check."""

    start = as_utc(start_at)
    end = as_utc(end_at)
    ref = as_utc(now)
    total = (end - start).total_seconds()
    if total <= 0:
        raise ValueError("Campaign window must end after it starts")

    elapsed = (ref - start).total_seconds()
    remaining = (end - ref).total_seconds()
    fraction = min(max(elapsed / total, 0.0), 1.0)
    return CampaignWindow(
        minutes_remaining=remaining / 60.0,
        minutes_elapsed=elapsed / 60.0,
        elapsed_fraction=fraction,
    )


def campaign_window(promotion: "Promotion", now: Optional[datetime] = None) -> CampaignWindow:
    """Return the window position of ``now`` for an open promotion.

    Raises
    ------
    CampaignNotActive
        If the promotion status is not ``"active"`` or ``now`` lies outside
        ``[start_at, end_at]``.
    """

    ref = as_utc(now or datetime.now(timezone.utc))
    if promotion.status != "active":
        raise CampaignNotActive(
            f"Promotion {promotion.id} is {promotion.status}, not active"
        )
    if ref < as_utc(promotion.start_at):
        raise CampaignNotActive(
            f"Promotion {promotion.id} opens at {dt_iso(promotion.start_at)}"
        )
    if ref > as_utc(promotion.end_at):
        raise CampaignNotActive(
            f"Promotion {promotion.id} closed at {dt_iso(promotion.end_at)}"
        )
    return measure_window(promotion.start_at, promotion.end_at, ref)


__all__ = ["CampaignWindow", "campaign_window", "measure_window"]
