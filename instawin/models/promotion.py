"""Promotion (campaign window) model."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import CheckConstraint, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..db.utils import dt_iso
from .base import ID_TYPE, Base

if TYPE_CHECKING:
    from .engine_config import EngineConfig
    from .play import PlayEvent
    from .player import Player
    from .prize import PrizeType
    from .token import Token

PROMOTION_STATUSES = ("draft", "active", "closed")


class Promotion(Base):
    """A campaign: a time window during which tokens can be played."""

    __tablename__ = "promotions"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Primary key."""

    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    """Human readable campaign name."""

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    """Lifecycle status: ``"draft"``, ``"active"`` or ``"closed"``."""

    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    """First instant at which plays are accepted."""

    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    """Last instant at which plays are accepted."""

    planned_tokens: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    """Number of tokens the campaign plans to distribute.

    When unset, the number of issued tokens is used as the plan.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    tokens: Mapped[list["Token"]] = relationship(
        back_populates="promotion", cascade="all, delete-orphan"
    )
    prize_types: Mapped[list["PrizeType"]] = relationship(
        back_populates="promotion",
        cascade="all, delete-orphan",
        order_by="PrizeType.id",
    )
    players: Mapped[list["Player"]] = relationship(
        back_populates="promotion", cascade="all, delete-orphan"
    )
    play_events: Mapped[list["PlayEvent"]] = relationship(back_populates="promotion")
    engine_config: Mapped[Optional["EngineConfig"]] = relationship(
        back_populates="promotion", cascade="all, delete-orphan", uselist=False
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft','active','closed')", name="status_enum"
        ),
        CheckConstraint("end_at > start_at", name="window_order"),
    )

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            "<Promotion("
            f"id={self.id}, name='{self.name}', status={self.status}, "
            f"start_at={dt_iso(self.start_at)}, end_at={dt_iso(self.end_at)}"
            ")>"
        )

    def to_json(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status,
            "start_at": dt_iso(self.start_at),
            "end_at": dt_iso(self.end_at),
            "planned_tokens": self.planned_tokens,
        }
