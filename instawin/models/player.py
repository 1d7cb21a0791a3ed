from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    String,
    UniqueConstraint,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship, validates

from .base import ID_TYPE, Base
from .utils import mask_phone, normalize_gender

if TYPE_CHECKING:
    from .play import PlayEvent
    from .prize import PrizeAssignment
    from .promotion import Promotion


class Player(Base):
    """Participant registered to a single promotion."""

    __tablename__ = "players"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, index=True, autoincrement=True)
    promotion_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("promotions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[str] = mapped_column(String(32), nullable=False)
    gender: Mapped[Optional[str]] = mapped_column(String(1), nullable=True)
    """``"F"``, ``"M"`` or ``None`` when unknown. Gates gender-restricted prizes."""

    registered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    promotion: Mapped["Promotion"] = relationship(back_populates="players")
    play_events: Mapped[list["PlayEvent"]] = relationship(back_populates="player")
    prize_assignments: Mapped[list["PrizeAssignment"]] = relationship(
        back_populates="player"
    )

    __table_args__ = (
        UniqueConstraint("promotion_id", "phone", name="uq_players_promotion_phone"),
        CheckConstraint("gender IS NULL OR gender IN ('F','M')", name="gender_enum"),
    )

    @validates("phone")
    def _normalize_phone(self, _key: str, value: str) -> str:
        normalized = "".join(ch for ch in value if ch.isdigit() or ch == "+")
        if not normalized:
            raise ValueError("phone must contain digits")
        return normalized

    @validates("gender")
    def _normalize_gender(self, _key: str, value: Optional[str]) -> Optional[str]:
        return normalize_gender(value)

    @classmethod
    def get_by_phone(
        cls, session: Session, promotion_id: int, phone: str
    ) -> Optional["Player"]:
        """Get the player registered to ``promotion_id`` with ``phone``."""
        normalized = "".join(ch for ch in phone if ch.isdigit() or ch == "+")
        return session.scalar(
            select(cls).where(cls.promotion_id == promotion_id, cls.phone == normalized)
        )

    @property
    def display_name(self) -> str:
        """Public name in the form ``"Mario R."``."""
        initial = f" {self.last_name[:1].upper()}." if self.last_name else ""
        return f"{self.first_name}{initial}"

    @property
    def masked_phone(self) -> str:
        return mask_phone(self.phone)
