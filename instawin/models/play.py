"""Append-only ledger of plays."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    JSON,
    event,
    inspect,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..db.utils import dt_iso
from .base import ID_TYPE, Base

if TYPE_CHECKING:
    from .player import Player
    from .prize import PrizeAssignment, PrizeType
    from .promotion import Promotion
    from .token import Token


class PlayEvent(Base):
    """Immutable record of one play.

    One row per token (``token_id`` is unique). Rows are inserted in the same
    transaction that consumes the token and are never updated or deleted.
    """

    __tablename__ = "play_events"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Surrogate primary key."""

    token_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("tokens.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )
    """Token consumed by the play."""

    promotion_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("promotions.id", ondelete="RESTRICT"), nullable=False
    )
    player_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("players.id", ondelete="RESTRICT"), nullable=False
    )

    is_winner: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    """Final outcome, after a possible demotion for lack of stock."""

    prize_type_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("prize_types.id", ondelete="RESTRICT"), nullable=True
    )
    """Prize awarded, ``None`` for losses."""

    probability: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    """Win probability the draw was made against."""

    decision: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    """Probability breakdown, stored when engine logging is enabled."""

    played_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    token: Mapped["Token"] = relationship(back_populates="play_event")
    promotion: Mapped["Promotion"] = relationship(back_populates="play_events")
    player: Mapped["Player"] = relationship(back_populates="play_events")
    prize_type: Mapped[Optional["PrizeType"]] = relationship()
    prize_assignment: Mapped[Optional["PrizeAssignment"]] = relationship(
        back_populates="play_event", uselist=False
    )

    __table_args__ = (
        Index("ix_play_events_promotion_player", "promotion_id", "player_id"),
        Index("ix_play_events_promotion_winner", "promotion_id", "is_winner"),
    )

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<PlayEvent(id={id}, token_id={token}, player_id={player}, is_winner={win}, prize_type_id={prize})>".format(
            id=self.id,
            token=self.token_id,
            player=self.player_id,
            win=self.is_winner,
            prize=self.prize_type_id,
        )

    def to_json(self) -> dict:
        return {
            "id": self.id,
            "token_id": self.token_id,
            "player_id": self.player_id,
            "is_winner": self.is_winner,
            "prize_type_id": self.prize_type_id,
            "probability": self.probability,
            "played_at": dt_iso(self.played_at),
        }


@event.listens_for(PlayEvent, "before_update")
def _reject_play_event_update(mapper, connection, target: PlayEvent) -> None:
    # Relationship bookkeeping marks rows dirty without touching columns.
    state = inspect(target)
    changed = [
        attr.key
        for attr in mapper.column_attrs
        if state.attrs[attr.key].history.has_changes()
    ]
    if changed:
        raise RuntimeError(
            f"PlayEvent rows are append-only; refused update of {', '.join(changed)}"
        )


@event.listens_for(PlayEvent, "before_delete")
def _reject_play_event_delete(mapper, connection, target: PlayEvent) -> None:
    raise RuntimeError("PlayEvent rows are append-only and cannot be deleted")
