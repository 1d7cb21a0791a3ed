"""Read-only counters over the play ledger, prize stock and tokens."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from ..models import PlayEvent, PrizeType, Token, TOKEN_USED

if TYPE_CHECKING:
    from ..models import Promotion


@dataclass(frozen=True)
class PlayerHistory:
    """Plays and wins of one player within one promotion."""

    plays_so_far: int
    wins_so_far: int


@dataclass(frozen=True)
class PromotionProgress:
    """Campaign-wide counters used to pace the distribution."""

    total_tokens: int
    used_tokens: int
    initial_stock: int
    remaining_stock: int


def player_history(session: Session, player_id: int, promotion_id: int) -> PlayerHistory:
    """Count the player's recorded plays and wins in ``promotion_id``.

    Only committed ledger rows (and rows flushed earlier in the current
    transaction) are counted. The play engine calls this before inserting
    the current play, so the current play is never part of its own history.
    """

    stmt = select(
        func.count(PlayEvent.id),
        func.coalesce(func.sum(case((PlayEvent.is_winner.is_(True), 1), else_=0)), 0),
    ).where(
        PlayEvent.player_id == player_id,
        PlayEvent.promotion_id == promotion_id,
    )
    plays, wins = session.execute(stmt).one()
    return PlayerHistory(plays_so_far=int(plays), wins_so_far=int(wins))


def promotion_progress(session: Session, promotion: "Promotion") -> PromotionProgress:
    """Snapshot token usage and prize stock of ``promotion``.

    ``total_tokens`` is the promotion's ``planned_tokens`` when set, otherwise
    the number of tokens issued so far.
    """

    issued, used = session.execute(
        select(
            func.count(Token.id),
            func.coalesce(func.sum(case((Token.status == TOKEN_USED, 1), else_=0)), 0),
        ).where(Token.promotion_id == promotion.id)
    ).one()
    initial, remaining = session.execute(
        select(
            func.coalesce(func.sum(PrizeType.initial_stock), 0),
            func.coalesce(func.sum(PrizeType.remaining_stock), 0),
        ).where(PrizeType.promotion_id == promotion.id)
    ).one()

    total = promotion.planned_tokens if promotion.planned_tokens else int(issued)
    return PromotionProgress(
        total_tokens=max(total, int(used)),
        used_tokens=int(used),
        initial_stock=int(initial),
        remaining_stock=int(remaining),
    )


__all__ = [
    "PlayerHistory",
    "PromotionProgress",
    "player_history",
    "promotion_progress",
]
