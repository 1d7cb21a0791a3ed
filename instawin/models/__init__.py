from .base import Base

# import models so Alembic/autoloaders can discover mappers
from .promotion import Promotion, PROMOTION_STATUSES  # noqa: F401
from .token import Token, TOKEN_AVAILABLE, TOKEN_USED  # noqa: F401
from .player import Player  # noqa: F401
from .prize import PrizeType, PrizeAssignment  # noqa: F401
from .play import PlayEvent  # noqa: F401
from .engine_config import EngineConfig  # noqa: F401

__all__ = [
    "Base",
    "Promotion",
    "PROMOTION_STATUSES",
    "Token",
    "TOKEN_AVAILABLE",
    "TOKEN_USED",
    "Player",
    "PrizeType",
    "PrizeAssignment",
    "PlayEvent",
    "EngineConfig",
]
