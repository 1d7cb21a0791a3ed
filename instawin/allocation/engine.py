"""Play engine: decides and records a single play."""

from __future__ import annotations

import logging
import random
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from ..db.utils import as_utc
from ..errors import (
    AllocationConflict,
    PlayerNotFound,
    StockExhausted,
    TokenAlreadyUsed,
    TokenInvalid,
)
from ..models import EngineConfig, Player, PrizeType, Promotion, Token
from .clock import campaign_window
from .config import DEFAULT_SETTINGS, EngineSettings
from .history import player_history, promotion_progress
from .probability import (
    DEFAULT_STAGES,
    PlayContext,
    ProbabilityBreakdown,
    Stage,
    calculate_probability,
    draw,
)
from .recorder import PlayRecorder
from .stock import StockAllocator

logger = logging.getLogger(__name__)

TOKEN_CODE_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{3,63}$")


@dataclass(frozen=True)
class PlayOutcome:
    """Final, committed-once result of a play.

    Attributes
    ----------
    play_event_id : int
        Ledger row recording the play.
    is_winner : bool
        ``True`` when a prize unit was awarded.
    prize_type_name : Optional[str]
        Name of the prize awarded, ``None`` for losses.
    redemption_code : Optional[str]
        Code the winner presents to claim the prize.
    probability : float
        Probability the draw was made against.
    demoted : bool
        ``True`` when the draw was won but no stock was left.
    """

    play_event_id: int
    is_winner: bool
    prize_type_name: Optional[str]
    redemption_code: Optional[str]
    probability: float
    demoted: bool = False

    def to_json(self) -> dict[str, Any]:
        """Return the response body of the play endpoint."""
        prize_assignment = None
        if self.is_winner:
            prize_assignment = {
                "prizeTypeName": self.prize_type_name,
                "redemptionCode": self.redemption_code,
            }
        return {"isWinner": self.is_winner, "prizeAssignment": prize_assignment}


def normalize_token_code(token_code: str) -> str:
    """Strip ``token_code`` and check its shape.

    Raises
    ------
    TokenInvalid
        If the code is not a string or is malformed.
    """

    if not isinstance(token_code, str):
        raise TokenInvalid("Token code must be a string")
    code = token_code.strip()
    if not TOKEN_CODE_PATTERN.match(code):
        raise TokenInvalid("Malformed token code")
    return code


def is_duplicate_play(exc: IntegrityError) -> bool:
    """Return ``True`` when ``exc`` is a second ledger row for the same token."""

    message = str(exc.orig)
    return "play_events.token_id" in message or "uq_play_events_token_id" in message


def load_settings(session: Session, promotion_id: int) -> EngineSettings:
    """Return the engine settings of ``promotion_id`` (defaults when unset)."""

    config = EngineConfig.for_promotion(session, promotion_id)
    if config is None:
        return DEFAULT_SETTINGS
    return config.to_settings()


class PlayEngine:
    """Engine that turns one token into one recorded play."""

    def __init__(
        self,
        session: Session,
        *,
        rng: Optional[random.Random] = None,
        stages: Sequence[Stage] = DEFAULT_STAGES,
    ) -> None:
        """Create a play engine bound to a SQLAlchemy session.

        Parameters
        ----------
        session : Session
            Session inside an open transaction. The engine flushes but never
            commits; committing (or rolling back) is the caller's job.
        rng : Optional[random.Random], default: None
            Random source for the draw and prize selection.
        stages : Sequence[Stage], default: DEFAULT_STAGES
            Probability adjustment pipeline.
        """

        self._session = session
        self._rng = rng or random.Random()
        self._stages = tuple(stages)

    def play(
        self,
        promotion_id: int,
        token_code: str,
        player_id: int,
        *,
        now: Optional[datetime] = None,
    ) -> PlayOutcome:
        """Decide and record the play of ``token_code`` by ``player_id``.

        Notes
        -----
        Steps, all inside the caller's transaction:

        1. Resolve the token and reject unknown, foreign or used tokens.
        2. Check the campaign window.
        3. Snapshot the player's history and the campaign progress.
        4. Claim the token (conditional update).
        5. Compute the probability and draw.
        6. On a win, take a unit of a prize the player is eligible for; no
           such unit left demotes to a loss.
        7. Append the play (and prize assignment) to the ledger.

        Every check that can reject the play runs before the first write.

        Raises
        ------
        TokenInvalid, TokenAlreadyUsed, CampaignNotActive, PlayerNotFound
            When the play is rejected. Nothing has been written. A second
            ledger row for the same token also surfaces as
            ``TokenAlreadyUsed``.
        AllocationConflict
            When a concurrent transaction interfered; retry the whole play.
        """

        played_at = as_utc(now or datetime.now(timezone.utc))
        try:
            return self._play(promotion_id, token_code, player_id, played_at)
        except IntegrityError as exc:
            if is_duplicate_play(exc):
                raise TokenAlreadyUsed(
                    f"Token {token_code.strip()!r} was played concurrently"
                ) from exc
            raise AllocationConflict(
                f"Concurrent write while recording play for promotion {promotion_id}"
            ) from exc
        except OperationalError as exc:
            raise AllocationConflict(
                f"Concurrent write while recording play for promotion {promotion_id}"
            ) from exc

    def _play(
        self,
        promotion_id: int,
        token_code: str,
        player_id: int,
        played_at: datetime,
    ) -> PlayOutcome:
        code = normalize_token_code(token_code)
        token = Token.get_by_code(self._session, code)
        if token is None or token.promotion_id != promotion_id:
            raise TokenInvalid("Unknown token code for this promotion")
        if not token.is_available:
            raise TokenAlreadyUsed(f"Token {token.id} has already been used")

        promotion = self._session.get(Promotion, promotion_id)
        if promotion is None:
            raise TokenInvalid(f"Unknown promotion {promotion_id}")
        window = campaign_window(promotion, played_at)

        player = self._session.get(Player, player_id)
        if player is None or player.promotion_id != promotion_id:
            raise PlayerNotFound(f"Player {player_id} is not registered to promotion {promotion_id}")

        settings = load_settings(self._session, promotion_id)
        history = player_history(self._session, player_id, promotion_id)
        progress = promotion_progress(self._session, promotion)
        candidates = PrizeType.available_for(self._session, promotion_id, player)

        recorder = PlayRecorder(self._session)
        recorder.claim_token(token, played_at)

        context = PlayContext(
            plays_so_far=history.plays_so_far,
            wins_so_far=history.wins_so_far,
            remaining_stock=progress.remaining_stock,
            initial_stock=progress.initial_stock,
            total_tokens=progress.total_tokens,
            used_tokens=progress.used_tokens,
            minutes_remaining=window.minutes_remaining,
            minutes_elapsed=window.minutes_elapsed,
            elapsed_fraction=window.elapsed_fraction,
            eligible_stock=sum(p.remaining_stock for p in candidates),
        )
        breakdown = calculate_probability(context, settings, self._stages)
        won_draw = draw(breakdown.probability, self._rng)

        prize_type: Optional[PrizeType] = None
        demoted = False
        if won_draw:
            allocator = StockAllocator(
                self._session,
                policy=settings.prize_selection_policy,
                rng=self._rng,
            )
            try:
                prize_type = allocator.allocate(candidates)
            except StockExhausted:
                demoted = True
                logger.warning(
                    "Promotion %s: winning draw demoted to a loss, no eligible stock left",
                    promotion_id,
                )

        play_event = recorder.record(
            token=token,
            player_id=player_id,
            prize_type=prize_type,
            probability=breakdown.probability,
            played_at=played_at,
            decision=self._decision_log(breakdown, won_draw, demoted, settings),
        )

        if settings.logging_enabled:
            logger.info(
                "Promotion %s play %s: player=%s winner=%s prize=%s p=%.6f forced_by=%s",
                promotion_id,
                play_event.id,
                player_id,
                play_event.is_winner,
                prize_type.id if prize_type is not None else None,
                breakdown.probability,
                breakdown.forced_by,
            )

        assignment = play_event.prize_assignment
        return PlayOutcome(
            play_event_id=play_event.id,
            is_winner=play_event.is_winner,
            prize_type_name=prize_type.name if prize_type is not None else None,
            redemption_code=assignment.redemption_code if assignment is not None else None,
            probability=breakdown.probability,
            demoted=demoted,
        )

    @staticmethod
    def _decision_log(
        breakdown: ProbabilityBreakdown,
        won_draw: bool,
        demoted: bool,
        settings: EngineSettings,
    ) -> Optional[dict[str, Any]]:
        if not settings.logging_enabled:
            return None
        payload = breakdown.to_json()
        payload["won_draw"] = won_draw
        payload["demoted"] = demoted
        return payload


__all__ = [
    "PlayEngine",
    "PlayOutcome",
    "TOKEN_CODE_PATTERN",
    "is_duplicate_play",
    "load_settings",
    "normalize_token_code",
]
