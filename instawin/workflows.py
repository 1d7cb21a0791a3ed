import logging
import random
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from .allocation.clock import campaign_window
from .allocation.config import EngineSettings
from .allocation.engine import (
    PlayEngine,
    PlayOutcome,
    is_duplicate_play,
    normalize_token_code,
)
from .allocation.history import promotion_progress
from .errors import (
    AllocationConflict,
    PrizeAlreadyRedeemed,
    PrizeInUse,
    PrizeNotFound,
    TokenAlreadyUsed,
    TokenInvalid,
)
from .models import (
    EngineConfig,
    PlayEvent,
    Player,
    PrizeAssignment,
    PrizeType,
    Promotion,
    Token,
)
from .models.utils import generate_unique_code
from .settings import PLAY_MAX_RETRIES, PLAY_RETRY_BACKOFF_MS

logger = logging.getLogger(__name__)


def play_token(
    session_factory: sessionmaker,
    promotion_id: int,
    token_code: str,
    player_id: int,
    *,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
    max_retries: Optional[int] = None,
) -> PlayOutcome:
    """Play ``token_code`` for ``player_id`` in its own transaction.

    The play is decided and recorded by :class:`PlayEngine` inside
    ``session_factory.begin()``: the token flip, the stock decrement and the
    ledger insert commit together or not at all. When a concurrent writer
    interferes (during the play or at commit), the whole transaction is
    retried up to ``max_retries`` times. A retry of a play whose first attempt
    actually committed finds the token used and raises
    :class:`TokenAlreadyUsed`; it never draws a second time.

    Parameters
    ----------
    session_factory : sessionmaker
        Factory for the sessions the play runs in.
    promotion_id : int
        Promotion the token must belong to.
    token_code : str
        Code printed on the token.
    player_id : int
        Authenticated player.
    now : Optional[datetime], default: None
        Reference time of the play. Defaults to the current UTC time.
    rng : Optional[random.Random], default: None
        Random source for the draw and the prize selection.
    max_retries : Optional[int], default: None
        Retries after a conflict. Defaults to ``PLAY_MAX_RETRIES``.

    Returns
    -------
    PlayOutcome
        The committed outcome.

    Raises
    ------
    TokenInvalid, TokenAlreadyUsed, CampaignNotActive, PlayerNotFound
        The play was rejected before anything was written.
    AllocationConflict
        Conflicts persisted past the retry budget.
    """

    retries = PLAY_MAX_RETRIES if max_retries is None else max_retries
    attempt = 0
    while True:
        try:
            with session_factory.begin() as session:
                engine = PlayEngine(session, rng=rng)
                return engine.play(promotion_id, token_code, player_id, now=now)
        except AllocationConflict as exc:
            conflict = exc
        except IntegrityError as exc:
            # Raised while committing, after the engine returned.
            if is_duplicate_play(exc):
                raise TokenAlreadyUsed(
                    f"Token {token_code.strip()!r} was played concurrently"
                ) from exc
            conflict = AllocationConflict(
                f"Commit of play for promotion {promotion_id} conflicted"
            )
            conflict.__cause__ = exc
        except OperationalError as exc:
            conflict = AllocationConflict(
                f"Commit of play for promotion {promotion_id} conflicted"
            )
            conflict.__cause__ = exc

        attempt += 1
        if attempt > retries:
            logger.error(
                "Promotion %s: play abandoned after %d conflicting attempts",
                promotion_id,
                attempt,
            )
            raise conflict
        logger.warning(
            "Promotion %s: play conflicted (%s), retry %d/%d",
            promotion_id,
            conflict.__cause__ or conflict,
            attempt,
            retries,
        )
        time.sleep(PLAY_RETRY_BACKOFF_MS / 1000.0 * attempt * random.uniform(0.5, 1.5))


def validate_token(
    session: Session, token_code: str, *, now: Optional[datetime] = None
) -> Promotion:
    """Check that ``token_code`` can be played right now.

    This is the pre-registration check shown before a participant signs up;
    it writes nothing.

    Returns
    -------
    Promotion
        The promotion the token belongs to.

    Raises
    ------
    TokenInvalid
        If the code is malformed or unknown.
    TokenAlreadyUsed
        If the token has been played.
    CampaignNotActive
        If the promotion is not currently open.
    """

    token = Token.get_by_code(session, normalize_token_code(token_code))
    if token is None:
        raise TokenInvalid("Unknown token code")
    if not token.is_available:
        raise TokenAlreadyUsed(f"Token {token.id} has already been used")
    campaign_window(token.promotion, now)
    return token.promotion


def issue_tokens(
    session: Session,
    promotion: Promotion,
    count: int,
    *,
    prefix: str = "TKN",
) -> list[Token]:
    """Generate ``count`` new available tokens with unique codes."""

    if promotion.id is None:
        raise ValueError("Promotion must be persisted before issuing tokens")
    if count <= 0:
        raise ValueError("count must be a positive integer")

    tokens: list[Token] = []
    for _ in range(count):
        token = Token(
            code=generate_unique_code(prefix, Token.code, session),
            promotion_id=promotion.id,
        )
        session.add(token)
        tokens.append(token)
    session.flush()
    return tokens


def register_player(
    session: Session,
    promotion: Promotion,
    *,
    first_name: str,
    last_name: str,
    phone: str,
    gender: Optional[str] = None,
) -> Player:
    """Register a participant, or return the existing one with the same phone.

    The insert runs in a SAVEPOINT: when a concurrent registration of the
    same phone wins the unique constraint, the caller's transaction stays
    usable and the already registered player is returned.
    """

    if promotion.id is None:
        raise ValueError("Promotion must be persisted before registering players")

    existing = Player.get_by_phone(session, promotion.id, phone)
    if existing is not None:
        return existing

    player = Player(
        promotion_id=promotion.id,
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        phone=phone,
        gender=gender,
    )
    try:
        with session.begin_nested():
            session.add(player)
            session.flush()
    except IntegrityError:
        existing = Player.get_by_phone(session, promotion.id, phone)
        if existing is None:
            raise
        logger.info(
            "Promotion %s: phone %s registered concurrently, reusing player %s",
            promotion.id,
            existing.masked_phone,
            existing.id,
        )
        return existing
    return player


def save_engine_config(
    session: Session,
    promotion: Promotion,
    options: Mapping[str, Any],
) -> EngineSettings:
    """Validate ``options`` and store them as the promotion's engine config.

    Options are layered on the stored configuration (or the defaults when the
    promotion has none), so partial updates are allowed.

    Raises
    ------
    ConfigurationInvalid
        If an option is unknown or the resulting settings break an invariant.
        Nothing is written in that case.
    """

    if promotion.id is None:
        raise ValueError("Promotion must be persisted before configuring its engine")

    config = EngineConfig.for_promotion(session, promotion.id)
    if config is None:
        settings = EngineSettings.from_options(options)
        config = EngineConfig(promotion_id=promotion.id, settings=settings)
        session.add(config)
    else:
        settings = config.apply_options(options)
    session.flush()
    logger.info("Promotion %s: engine configuration saved", promotion.id)
    return settings


def reset_prize_stock(session: Session, prize_type: PrizeType) -> PrizeType:
    """Restore ``remaining_stock`` to ``initial_stock`` (explicit admin reset)."""

    prize_type.remaining_stock = prize_type.initial_stock
    session.flush()
    logger.info(
        "Prize type %s stock reset to %d", prize_type.id, prize_type.initial_stock
    )
    return prize_type


def delete_prize_type(session: Session, prize_type: PrizeType) -> None:
    """Delete a prize type that has never been awarded.

    Raises
    ------
    PrizeInUse
        If any prize assignment references it.
    """

    assigned = session.scalar(
        select(func.count(PrizeAssignment.id)).where(
            PrizeAssignment.prize_type_id == prize_type.id
        )
    )
    if assigned:
        raise PrizeInUse(
            f"Prize type {prize_type.id} has {assigned} assignments and cannot be deleted"
        )
    session.delete(prize_type)
    session.flush()


def redeem_prize(
    session: Session,
    redemption_code: str,
    *,
    redeemed_by: Optional[str] = None,
    now: Optional[datetime] = None,
) -> PrizeAssignment:
    """Mark the prize behind ``redemption_code`` as handed over.

    Uses the same conditional-update discipline as token consumption, so a
    code redeemed twice concurrently succeeds once.

    Raises
    ------
    PrizeNotFound
        If no assignment has this code.
    PrizeAlreadyRedeemed
        If the assignment was redeemed before.
    """

    assignment = PrizeAssignment.get_by_redemption_code(session, redemption_code.strip())
    if assignment is None:
        raise PrizeNotFound("Unknown redemption code")

    timestamp = now or datetime.now(timezone.utc)
    result = session.execute(
        update(PrizeAssignment)
        .where(
            PrizeAssignment.id == assignment.id,
            PrizeAssignment.redeemed_at.is_(None),
        )
        .values(redeemed_at=timestamp, redeemed_by=redeemed_by)
        .execution_options(synchronize_session=False)
    )
    session.refresh(assignment)
    if result.rowcount != 1:
        raise PrizeAlreadyRedeemed(
            "Prize already redeemed",
            redeemed_at=assignment.redeemed_at,
            redeemed_by=assignment.redeemed_by,
        )
    return assignment


@dataclass(frozen=True)
class PromotionStats:
    total_tokens: int
    used_tokens: int
    plays: int
    wins: int
    initial_stock: int
    remaining_stock: int

    def to_json(self) -> dict:
        return {
            "totalTokens": self.total_tokens,
            "usedTokens": self.used_tokens,
            "plays": self.plays,
            "wins": self.wins,
            "initialStock": self.initial_stock,
            "remainingStock": self.remaining_stock,
        }


def promotion_stats(session: Session, promotion: Promotion) -> PromotionStats:
    """Summarize tokens, plays and stock of ``promotion``."""

    progress = promotion_progress(session, promotion)
    plays = session.scalar(
        select(func.count(PlayEvent.id)).where(PlayEvent.promotion_id == promotion.id)
    )
    wins = session.scalar(
        select(func.count(PlayEvent.id)).where(
            PlayEvent.promotion_id == promotion.id, PlayEvent.is_winner.is_(True)
        )
    )
    return PromotionStats(
        total_tokens=progress.total_tokens,
        used_tokens=progress.used_tokens,
        plays=int(plays or 0),
        wins=int(wins or 0),
        initial_stock=progress.initial_stock,
        remaining_stock=progress.remaining_stock,
    )


__all__ = [
    "PromotionStats",
    "delete_prize_type",
    "issue_tokens",
    "play_token",
    "promotion_stats",
    "redeem_prize",
    "register_player",
    "reset_prize_stock",
    "save_engine_config",
    "validate_token",
]
