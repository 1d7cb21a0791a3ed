"""Prize stock and prize assignments."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    or_,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from ..db.utils import dt_iso
from .base import ID_TYPE, Base
from .utils import normalize_gender

if TYPE_CHECKING:
    from .play import PlayEvent
    from .player import Player
    from .promotion import Promotion


class PrizeType(Base):
    """A kind of prize with a finite stock.

    ``remaining_stock`` stays within ``[0, initial_stock]``; the database
    enforces it with a CHECK constraint as well.
    """

    __tablename__ = "prize_types"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Primary key."""

    promotion_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("promotions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    """Promotion the prize belongs to."""

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    """Name shown to the winner."""

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    initial_stock: Mapped[int] = mapped_column(Integer, nullable=False)
    """Units available when the campaign starts."""

    remaining_stock: Mapped[int] = mapped_column(Integer, nullable=False)
    """Units not yet awarded."""

    weight: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    """Relative weight used by the ``"weighted"`` selection policy."""

    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    """Order used by the ``"priority"`` selection policy (lowest first)."""

    gender_restriction: Mapped[Optional[str]] = mapped_column(String(1), nullable=True)
    """When set, only players of this gender (``"F"`` or ``"M"``) may win the prize."""

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

    promotion: Mapped["Promotion"] = relationship(back_populates="prize_types")
    assignments: Mapped[list["PrizeAssignment"]] = relationship(
        back_populates="prize_type"
    )

    __table_args__ = (
        CheckConstraint(
            "remaining_stock >= 0 AND remaining_stock <= initial_stock",
            name="stock_bounds",
        ),
        CheckConstraint("weight > 0", name="weight_positive"),
        CheckConstraint(
            "gender_restriction IS NULL OR gender_restriction IN ('F','M')",
            name="gender_restriction_enum",
        ),
    )

    def __init__(
        self,
        *,
        name: str,
        initial_stock: int,
        remaining_stock: Optional[int] = None,
        promotion: Optional["Promotion"] = None,
        promotion_id: Optional[int] = None,
        description: Optional[str] = None,
        weight: int = 1,
        priority: int = 0,
        gender_restriction: Optional[str] = None,
    ) -> None:
        if initial_stock < 0:
            raise ValueError("initial_stock must not be negative")
        if remaining_stock is None:
            remaining_stock = initial_stock
        if not 0 <= remaining_stock <= initial_stock:
            raise ValueError("remaining_stock must be within [0, initial_stock]")
        self.name = name
        self.initial_stock = initial_stock
        self.remaining_stock = remaining_stock
        if promotion is not None:
            self.promotion = promotion
        if promotion_id is not None:
            self.promotion_id = promotion_id
        self.description = description
        self.weight = weight
        self.priority = priority
        self.gender_restriction = normalize_gender(gender_restriction)

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<PrizeType(id={id}, name={name}, stock={remaining}/{initial})>".format(
            id=self.id,
            name=self.name,
            remaining=self.remaining_stock,
            initial=self.initial_stock,
        )

    @classmethod
    def available_for(
        cls,
        session: Session,
        promotion_id: int,
        player: Optional["Player"] = None,
    ) -> list["PrizeType"]:
        """Return the promotion's prize types that still have stock.

        Parameters
        ----------
        session : Session
            Session used for the query.
        promotion_id : int
            Promotion whose prizes are listed.
        player : Optional[Player], default: None
            When given, gender-restricted prizes the player is not eligible
            for are left out. A player with no known gender only sees
            unrestricted prizes.
        """

        stmt = select(cls).where(
            cls.promotion_id == promotion_id, cls.remaining_stock > 0
        )
        if player is not None:
            if player.gender is None:
                stmt = stmt.where(cls.gender_restriction.is_(None))
            else:
                stmt = stmt.where(
                    or_(
                        cls.gender_restriction.is_(None),
                        cls.gender_restriction == player.gender,
                    )
                )
        return list(session.scalars(stmt.order_by(cls.id)))

    def to_json(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "initial_stock": self.initial_stock,
            "remaining_stock": self.remaining_stock,
            "weight": self.weight,
            "priority": self.priority,
            "gender_restriction": self.gender_restriction,
        }


class PrizeAssignment(Base):
    """A prize unit awarded by a winning play, redeemable once."""

    __tablename__ = "prize_assignments"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    play_event_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("play_events.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )
    prize_type_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("prize_types.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    player_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("players.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    redemption_code: Mapped[str] = mapped_column(
        String(64), nullable=False, unique=True
    )
    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    redeemed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    redeemed_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    """Identifier of the staff member who handed the prize over."""

    play_event: Mapped["PlayEvent"] = relationship(back_populates="prize_assignment")
    prize_type: Mapped["PrizeType"] = relationship(back_populates="assignments")
    player: Mapped["Player"] = relationship(back_populates="prize_assignments")

    def __repr__(self) -> str:
        return (
            "<PrizeAssignment("
            f"id={self.id}, code='{self.redemption_code}', prize_type_id={self.prize_type_id}, "
            f"player_id={self.player_id}, redeemed_at={dt_iso(self.redeemed_at)}"
            ")>"
        )

    @classmethod
    def get_by_redemption_code(
        cls, session: Session, redemption_code: str
    ) -> Optional["PrizeAssignment"]:
        """Retrieve an assignment by its unique redemption code."""

        return session.scalar(select(cls).where(cls.redemption_code == redemption_code))

    @property
    def redeemed(self) -> bool:
        return self.redeemed_at is not None
