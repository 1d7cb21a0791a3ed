"""Utility helpers for the models package."""

from __future__ import annotations

import secrets
import string
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

BASE62_ALPHABET = string.digits + string.ascii_uppercase + string.ascii_lowercase


def generate_unique_code(
    prefix: str,
    column: Any,
    session: Optional[Session] = None,
    length: int = 10,
    max_attempts: int = 32,
) -> str:
    """Return a unique code of the form ``{prefix}-{base62 suffix}``.

    When a session is provided, the helper retries if the generated value is
    already present in ``column`` either in the database or among the
    session's pending objects.

    Parameters
    ----------
    prefix : str
        Leading part of the code, e.g. ``"WIN"``.
    column : InstrumentedAttribute
        Mapped column holding the codes, e.g. ``Token.code``.
    session : Optional[Session], default: None
        Session used for the collision checks.
    length : int, default: 10
        Number of random base62 characters.
    max_attempts : int, default: 32
        Candidates tried before giving up.
    """

    owner = column.class_
    attr = column.key

    for _ in range(max_attempts):
        suffix = "".join(secrets.choice(BASE62_ALPHABET) for _ in range(length))
        candidate = f"{prefix}-{suffix}"[:64]

        if session is not None:
            if any(
                isinstance(obj, owner) and getattr(obj, attr, None) == candidate
                for obj in session.new
            ):
                continue
            exists = session.scalar(select(column).where(column == candidate))
            if exists is not None:
                continue

        return candidate

    raise RuntimeError(
        f"Unable to generate a unique {owner.__name__}.{attr} after multiple attempts"
    )


def mask_phone(phone: Optional[str]) -> str:
    """Hide all but the last four digits of ``phone``."""

    if not phone:
        return "*** ***"
    return f"*** *** {phone[-4:]}"


GENDERS = ("F", "M")


def normalize_gender(value: Optional[str]) -> Optional[str]:
    """Return ``"F"``, ``"M"`` or ``None`` for a loosely written gender value.

    Blank values mean "unknown" and map to ``None``.
    """

    if value is None:
        return None
    normalized = value.strip().upper()[:1]
    if not normalized:
        return None
    if normalized not in GENDERS:
        raise ValueError(f"gender must be one of {GENDERS}, got {value!r}")
    return normalized
