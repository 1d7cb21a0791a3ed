"""Exceptions raised by the play path and the admin workflows."""

from __future__ import annotations


class InstantWinError(Exception):
    """Base class for every error the engine raises on purpose."""

    retryable = False


class CampaignNotActive(InstantWinError):
    """The promotion is not active or ``now`` is outside its window."""


class TokenInvalid(InstantWinError):
    """Unknown or malformed token code, or a token from another promotion."""


class TokenAlreadyUsed(InstantWinError):
    """The token has already been consumed by a recorded play."""


class PlayerNotFound(InstantWinError):
    """The player does not exist or is registered to another promotion."""


class StockExhausted(InstantWinError):
    """No prize type has remaining stock.

    The play engine never lets this escape a play: a winning draw with no
    stock is recorded as a loss.
    """


class AllocationConflict(InstantWinError):
    """A concurrent write was detected; the whole play may be retried."""

    retryable = True


class ConfigurationInvalid(InstantWinError, ValueError):
    """Engine configuration breaks one of its invariants."""


class PrizeNotFound(InstantWinError):
    """No prize assignment matches the redemption code."""


class PrizeAlreadyRedeemed(InstantWinError):
    """The prize assignment was redeemed before."""

    def __init__(self, message: str, *, redeemed_at=None, redeemed_by=None) -> None:
        super().__init__(message)
        self.redeemed_at = redeemed_at
        self.redeemed_by = redeemed_by


class PrizeInUse(InstantWinError):
    """A prize type with assignments cannot be deleted."""


__all__ = [
    "AllocationConflict",
    "CampaignNotActive",
    "ConfigurationInvalid",
    "InstantWinError",
    "PlayerNotFound",
    "PrizeAlreadyRedeemed",
    "PrizeInUse",
    "PrizeNotFound",
    "StockExhausted",
    "TokenAlreadyUsed",
    "TokenInvalid",
]
