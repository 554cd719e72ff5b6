"""Canonical match lifecycle enumerations.

Stored rows have historically carried the status as text in some places and
as an integer code in others; ``parse_match_status`` is the only place that
tolerates that, everything past the persistence boundary uses the enum.
"""

from __future__ import annotations

from enum import Enum, IntEnum


class MatchStatus(IntEnum):
    PENDING = 1  # scheduled, waiting for start time or scores
    NEEDS_CONFIRMATION = 2  # scores submitted, participants confirming
    CANCELLED = 3
    COMPLETED = 4  # scores confirmed
    RECRUITING = 5  # public match with open slots


class Phase(str, Enum):
    UPCOMING = "upcoming"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ValidationStatus(str, Enum):
    NONE = "none"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DISPUTED = "disputed"


class Vote(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


def parse_match_status(value: object) -> MatchStatus:
    """Parse a stored status into ``MatchStatus``.

    Accepts the enum itself, its integer code, a digit string such as ``"4"``
    or a case-insensitive member name (``"needs_confirmation"`` and
    ``"needs-confirmation"`` are both fine).

    Raises:
        ValueError: If ``value`` does not name a known status.
    """

    if isinstance(value, MatchStatus):
        return value
    if isinstance(value, bool):
        raise ValueError(f"invalid match status: {value!r}")
    if isinstance(value, int):
        try:
            return MatchStatus(value)
        except ValueError:
            raise ValueError(f"invalid match status: {value!r}") from None
    if isinstance(value, str):
        raw = value.strip()
        if raw.isdigit():
            return parse_match_status(int(raw))
        key = raw.upper().replace("-", "_").replace(" ", "_")
        try:
            return MatchStatus[key]
        except KeyError:
            raise ValueError(f"invalid match status: {value!r}") from None
    raise ValueError(f"invalid match status: {value!r}")


def parse_validation_status(value: object) -> ValidationStatus:
    if value is None:
        return ValidationStatus.NONE
    if isinstance(value, ValidationStatus):
        return value
    if isinstance(value, str):
        raw = value.strip().lower()
        if not raw:
            return ValidationStatus.NONE
        try:
            return ValidationStatus(raw)
        except ValueError:
            pass
    raise ValueError(f"invalid validation status: {value!r}")
