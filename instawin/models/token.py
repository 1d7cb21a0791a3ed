"""Single-use play tokens."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from ..db.utils import dt_iso
from .base import ID_TYPE, Base

if TYPE_CHECKING:
    from .play import PlayEvent
    from .promotion import Promotion

TOKEN_AVAILABLE = "available"
TOKEN_USED = "used"


class Token(Base):
    """A code that gates exactly one play.

    ``status`` only ever moves from ``"available"`` to ``"used"``, and that
    move is committed together with the :class:`PlayEvent` it produced.
    """

    __tablename__ = "tokens"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    promotion_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("promotions.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TOKEN_AVAILABLE
    )
    used_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    promotion: Mapped["Promotion"] = relationship(back_populates="tokens")
    play_event: Mapped[Optional["PlayEvent"]] = relationship(
        back_populates="token", uselist=False
    )

    __table_args__ = (
        CheckConstraint("status IN ('available','used')", name="status_enum"),
        Index("ix_tokens_promotion_status", "promotion_id", "status"),
    )

    def __repr__(self) -> str:
        return (
            "<Token("
            f"id={self.id}, promotion_id={self.promotion_id}, status={self.status}, "
            f"used_at={dt_iso(self.used_at)}"
            ")>"
        )

    @property
    def is_available(self) -> bool:
        return self.status == TOKEN_AVAILABLE

    @classmethod
    def get_by_code(cls, session: Session, code: str) -> Optional["Token"]:
        """Retrieve a token by its unique code."""

        return session.scalar(select(cls).where(cls.code == code))
