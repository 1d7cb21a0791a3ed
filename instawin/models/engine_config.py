"""Per-promotion engine configuration."""

from __future__ import annotations

from dataclasses import fields
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Mapping, Optional

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, event
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from ..allocation.config import DEFAULT_SETTINGS, EngineSettings
from .base import ID_TYPE, Base

if TYPE_CHECKING:
    from .promotion import Promotion

_D = DEFAULT_SETTINGS


class EngineConfig(Base):
    """Stored engine settings of one promotion.

    Columns mirror :class:`~instawin.allocation.config.EngineSettings` field
    for field. Rows are validated whenever they are flushed, so an invalid
    combination is rejected at write time and never reaches a play.
    """

    __tablename__ = "engine_configs"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    promotion_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("promotions.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    fatigue_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=_D.fatigue_enabled)
    fatigue_play_threshold: Mapped[int] = mapped_column(Integer, nullable=False, default=_D.fatigue_play_threshold)
    fatigue_play_base_penalty: Mapped[float] = mapped_column(Float, nullable=False, default=_D.fatigue_play_base_penalty)
    fatigue_play_increment: Mapped[float] = mapped_column(Float, nullable=False, default=_D.fatigue_play_increment)
    fatigue_play_max: Mapped[float] = mapped_column(Float, nullable=False, default=_D.fatigue_play_max)
    fatigue_win_penalty: Mapped[float] = mapped_column(Float, nullable=False, default=_D.fatigue_win_penalty)
    fatigue_win_max: Mapped[float] = mapped_column(Float, nullable=False, default=_D.fatigue_win_max)
    fatigue_min_probability: Mapped[float] = mapped_column(Float, nullable=False, default=_D.fatigue_min_probability)

    pacing_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=_D.pacing_enabled)
    pacing_too_fast_threshold: Mapped[float] = mapped_column(Float, nullable=False, default=_D.pacing_too_fast_threshold)
    pacing_too_fast_multiplier: Mapped[float] = mapped_column(Float, nullable=False, default=_D.pacing_too_fast_multiplier)
    pacing_fast_threshold: Mapped[float] = mapped_column(Float, nullable=False, default=_D.pacing_fast_threshold)
    pacing_fast_multiplier: Mapped[float] = mapped_column(Float, nullable=False, default=_D.pacing_fast_multiplier)
    pacing_slow_threshold: Mapped[float] = mapped_column(Float, nullable=False, default=_D.pacing_slow_threshold)
    pacing_slow_multiplier: Mapped[float] = mapped_column(Float, nullable=False, default=_D.pacing_slow_multiplier)
    pacing_too_slow_threshold: Mapped[float] = mapped_column(Float, nullable=False, default=_D.pacing_too_slow_threshold)
    pacing_too_slow_multiplier: Mapped[float] = mapped_column(Float, nullable=False, default=_D.pacing_too_slow_multiplier)

    time_pressure_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=_D.time_pressure_enabled)
    time_conservation_start_min: Mapped[float] = mapped_column(Float, nullable=False, default=_D.time_conservation_start_min)
    time_distribution_start_min: Mapped[float] = mapped_column(Float, nullable=False, default=_D.time_distribution_start_min)
    time_final_start_min: Mapped[float] = mapped_column(Float, nullable=False, default=_D.time_final_start_min)
    time_conservation_boost: Mapped[float] = mapped_column(Float, nullable=False, default=_D.time_conservation_boost)
    time_distribution_max: Mapped[float] = mapped_column(Float, nullable=False, default=_D.time_distribution_max)
    time_final_boost: Mapped[float] = mapped_column(Float, nullable=False, default=_D.time_final_boost)

    force_win_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=_D.force_win_enabled)
    force_win_threshold_min: Mapped[float] = mapped_column(Float, nullable=False, default=_D.force_win_threshold_min)

    desperation_mode_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=_D.desperation_mode_enabled)
    desperation_start_min: Mapped[float] = mapped_column(Float, nullable=False, default=_D.desperation_start_min)

    max_probability: Mapped[float] = mapped_column(Float, nullable=False, default=_D.max_probability)
    min_probability: Mapped[float] = mapped_column(Float, nullable=False, default=_D.min_probability)
    logging_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=_D.logging_enabled)

    base_probability: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    pacing_basis: Mapped[str] = mapped_column(String(20), nullable=False, default=_D.pacing_basis)
    prize_selection_policy: Mapped[str] = mapped_column(String(20), nullable=False, default=_D.prize_selection_policy)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    promotion: Mapped["Promotion"] = relationship(back_populates="engine_config")

    def __init__(
        self,
        *,
        promotion: Optional["Promotion"] = None,
        promotion_id: Optional[int] = None,
        settings: Optional[EngineSettings] = None,
    ) -> None:
        if promotion is not None:
            self.promotion = promotion
        if promotion_id is not None:
            self.promotion_id = promotion_id
        self.apply_settings(settings or DEFAULT_SETTINGS)

    @classmethod
    def for_promotion(cls, session: Session, promotion_id: int) -> Optional["EngineConfig"]:
        """Return the configuration row of ``promotion_id``, if any."""

        return session.query(cls).filter(cls.promotion_id == promotion_id).one_or_none()

    def apply_settings(self, settings: EngineSettings) -> None:
        """Copy every field of ``settings`` onto the row."""

        settings.validate()
        for f in fields(EngineSettings):
            setattr(self, f.name, getattr(settings, f.name))

    def apply_options(self, options: Mapping[str, Any]) -> EngineSettings:
        """Layer camelCase ``options`` over the stored settings and save them.

        Raises
        ------
        ConfigurationInvalid
            If an option is unknown or the merged settings are invalid. The
            row is left untouched in that case.
        """

        settings = EngineSettings.from_options(options, base=self.to_settings(validate=False))
        self.apply_settings(settings)
        return settings

    def to_settings(self, *, validate: bool = True) -> EngineSettings:
        """Return the stored values as an immutable :class:`EngineSettings`."""

        settings = EngineSettings(
            **{f.name: getattr(self, f.name) for f in fields(EngineSettings)}
        )
        if validate:
            settings.validate()
        return settings


@event.listens_for(Session, "before_flush")
def _validate_engine_configs(session: Session, flush_context, instances) -> None:
    for obj in list(session.new) + list(session.dirty):
        if isinstance(obj, EngineConfig):
            obj.to_settings()
