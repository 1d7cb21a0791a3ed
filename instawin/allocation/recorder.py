"""Token consumption and play ledger writes."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from ..errors import TokenAlreadyUsed
from ..models import PlayEvent, PrizeAssignment, PrizeType, Token
from ..models.token import TOKEN_AVAILABLE, TOKEN_USED
from ..models.utils import generate_unique_code

REDEMPTION_CODE_PREFIX = "WIN"


class PlayRecorder:
    """Writes the token, stock and ledger side of a play to one session.

    The recorder never commits. The caller owns the transaction, so a failure
    anywhere in the play rolls every write back together.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def claim_token(self, token: Token, now: datetime) -> None:
        """Flip ``token`` from available to used.

        The flip is a conditional ``UPDATE``; when another transaction got
        there first it matches no row.

        Raises
        ------
        TokenAlreadyUsed
            If the token is no longer available.
        """

        result = self._session.execute(
            update(Token)
            .where(Token.id == token.id, Token.status == TOKEN_AVAILABLE)
            .values(status=TOKEN_USED, used_at=now)
            .execution_options(synchronize_session=False)
        )
        self._session.expire(token, ["status", "used_at"])
        if result.rowcount != 1:
            raise TokenAlreadyUsed(f"Token {token.id} has already been used")

    def record(
        self,
        *,
        token: Token,
        player_id: int,
        prize_type: Optional[PrizeType],
        probability: Optional[float],
        played_at: datetime,
        decision: Optional[dict[str, Any]] = None,
    ) -> PlayEvent:
        """Append the play to the ledger.

        A winning play (``prize_type`` given) also gets a
        :class:`PrizeAssignment` carrying a fresh redemption code.
        """

        play_event = PlayEvent(
            token_id=token.id,
            promotion_id=token.promotion_id,
            player_id=player_id,
            is_winner=prize_type is not None,
            prize_type_id=prize_type.id if prize_type is not None else None,
            probability=probability,
            decision=decision,
            played_at=played_at,
        )
        self._session.add(play_event)

        if prize_type is not None:
            assignment = PrizeAssignment(
                play_event=play_event,
                prize_type_id=prize_type.id,
                player_id=player_id,
                redemption_code=generate_unique_code(
                    REDEMPTION_CODE_PREFIX,
                    PrizeAssignment.redemption_code,
                    self._session,
                ),
                assigned_at=played_at,
            )
            self._session.add(assignment)

        self._session.flush()
        return play_event


__all__ = ["PlayRecorder", "REDEMPTION_CODE_PREFIX"]
