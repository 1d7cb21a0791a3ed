"""Leaderboard projection of the play ledger."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .models import PlayEvent, Player


@dataclass(frozen=True)
class LeaderboardEntry:
    rank: int
    player_id: int
    name: str
    phone: str
    plays: int
    is_me: bool = False

    def to_json(self) -> dict:
        return {
            "rank": self.rank,
            "name": self.name,
            "phone": self.phone,
            "plays": self.plays,
            "isMe": self.is_me,
        }


@dataclass(frozen=True)
class PlayerStanding:
    rank: int
    plays: int


def _ranked_rows(session: Session, promotion_id: int, limit: Optional[int] = None):
    plays = func.count(PlayEvent.id).label("plays")
    stmt = (
        select(Player, plays)
        .join(PlayEvent, PlayEvent.player_id == Player.id)
        .where(PlayEvent.promotion_id == promotion_id)
        .group_by(Player.id)
        .order_by(plays.desc(), Player.registered_at.asc(), Player.id.asc())
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    return session.execute(stmt).all()


def leaderboard(
    session: Session,
    promotion_id: int,
    *,
    limit: int = 10,
    player_id: Optional[int] = None,
) -> list[LeaderboardEntry]:
    """Rank players of ``promotion_id`` by recorded plays.

    Ties on play count go to the player who registered first. Only players
    with at least one recorded play appear. ``player_id`` flags the
    requesting player's row with ``is_me``.
    """

    if limit <= 0:
        raise ValueError("limit must be a positive integer")

    return [
        LeaderboardEntry(
            rank=index + 1,
            player_id=player.id,
            name=player.display_name,
            phone=player.masked_phone,
            plays=int(plays),
            is_me=player_id is not None and player.id == player_id,
        )
        for index, (player, plays) in enumerate(
            _ranked_rows(session, promotion_id, limit)
        )
    ]


def player_standing(
    session: Session, promotion_id: int, player_id: int
) -> Optional[PlayerStanding]:
    """Return the rank and play count of one player, ``None`` if they never played."""

    for index, (player, plays) in enumerate(_ranked_rows(session, promotion_id)):
        if player.id == player_id:
            return PlayerStanding(rank=index + 1, plays=int(plays))
    return None


__all__ = ["LeaderboardEntry", "PlayerStanding", "leaderboard", "player_standing"]
