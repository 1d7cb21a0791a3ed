"""Atomic prize stock allocation."""

from __future__ import annotations

import logging
import random
from typing import Iterable, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from ..errors import StockExhausted
from ..models import PrizeType
from .config import SELECTION_POLICIES

logger = logging.getLogger(__name__)


class StockAllocator:
    """Select a prize with stock and take one unit of it.

    A unit is taken with a single conditional ``UPDATE`` (``remaining_stock >
    0`` in the ``WHERE`` clause), so two transactions racing for the last unit
    cannot both succeed. The loser moves on to the next candidate.
    """

    def __init__(
        self,
        session: Session,
        *,
        policy: str = "weighted",
        rng: Optional[random.Random] = None,
    ) -> None:
        """Create an allocator bound to a SQLAlchemy session.

        Parameters
        ----------
        session : Session
            Session whose transaction the decrements belong to.
        policy : str, default: "weighted"
            Candidate ordering: ``"weighted"`` (by remaining stock times
            ``weight``), ``"uniform"`` or ``"priority"`` (ascending
            ``priority``, then id).
        rng : Optional[random.Random], default: None
            Random source for the weighted and uniform policies.
        """

        if policy not in SELECTION_POLICIES:
            raise ValueError(f"Unknown prize selection policy '{policy}'")
        self._session = session
        self._policy = policy
        self._rng = rng or random.Random()

    @property
    def policy(self) -> str:
        return self._policy

    def order_candidates(self, prize_types: Iterable[PrizeType]) -> list[PrizeType]:
        """Return the prize types with stock in the order they will be tried."""

        candidates = [p for p in prize_types if p.remaining_stock > 0]
        if self._policy == "priority":
            return sorted(candidates, key=lambda p: (p.priority, p.id))
        if self._policy == "uniform":
            shuffled = list(candidates)
            self._rng.shuffle(shuffled)
            return shuffled

        # Weighted sampling without replacement (Efraimidis-Spirakis keys).
        keyed = [
            (self._rng.random() ** (1.0 / (p.remaining_stock * p.weight)), p)
            for p in candidates
        ]
        keyed.sort(key=lambda item: item[0], reverse=True)
        return [p for _, p in keyed]

    def take_unit(self, prize_type: PrizeType) -> bool:
        """Decrement ``prize_type`` by one unit if it still has stock.

        Returns
        -------
        bool
            ``True`` when this transaction took the unit.
        """

        result = self._session.execute(
            update(PrizeType)
            .where(PrizeType.id == prize_type.id, PrizeType.remaining_stock > 0)
            .values(remaining_stock=PrizeType.remaining_stock - 1)
            .execution_options(synchronize_session=False)
        )
        # Reload on next access; the in-memory value may be stale either way.
        self._session.expire(prize_type, ["remaining_stock", "updated_at"])
        return result.rowcount == 1

    def allocate(self, prize_types: Iterable[PrizeType]) -> PrizeType:
        """Take one unit from the first candidate that still has stock.

        Raises
        ------
        StockExhausted
            If every candidate ran out before a unit could be taken.
        """

        for prize_type in self.order_candidates(prize_types):
            if self.take_unit(prize_type):
                return prize_type
            logger.debug("Lost the race for prize type %s; trying next", prize_type.id)
        raise StockExhausted("No prize type has remaining stock")


__all__ = ["StockAllocator"]
