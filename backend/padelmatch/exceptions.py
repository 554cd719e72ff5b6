from fastapi import HTTPException
from pydantic import BaseModel
from typing import Optional


class ProblemDetail(BaseModel):
    """RFC 7807 compliant error response."""

    type: str = "about:blank"
    title: str
    detail: Optional[str] = None
    status: int
    instance: Optional[str] = None
    code: str


class DataIntegrityWarning(UserWarning):
    """A stored match result contradicts the result computed from its sets.

    The resolver only logs it; write paths refuse to proceed until the record
    is reconciled.
    """


class DomainException(Exception):
    """Base class for domain-specific exceptions."""

    def __init__(
        self,
        status_code: int,
        title: str,
        *,
        code: str,
        detail: str | None = None,
        type_: str = "about:blank",
    ) -> None:
        super().__init__(detail or title)
        self.status_code = status_code
        self.title = title
        self.detail = detail
        self.type = type_
        self.code = code


class PlayerAlreadyExists(DomainException):
    def __init__(self, player_id: str) -> None:
        super().__init__(
            status_code=400,
            title="Player exists",
            detail=f"player '{player_id}' already exists",
            code="player_exists",
        )


class PlayerNotFound(DomainException):
    def __init__(self, player_id: str) -> None:
        super().__init__(
            status_code=404,
            title="Player not found",
            detail=f"player '{player_id}' not found",
            code="player_not_found",
        )


class MatchNotFound(DomainException):
    def __init__(self, match_id: str) -> None:
        super().__init__(
            status_code=404,
            title="Match not found",
            detail=f"match '{match_id}' not found",
            code="match_not_found",
        )


class MatchForbidden(DomainException):
    def __init__(self, detail: str) -> None:
        super().__init__(
            status_code=403,
            title="Forbidden",
            detail=detail,
            code="match_forbidden",
        )


class StateConflict(DomainException):
    """A transition found the match in a different state than it expected.

    Raised by the persistence layer when a conditional update touches no rows,
    usually because another participant changed the match first.
    """

    def __init__(self, match_id: str, detail: str) -> None:
        super().__init__(
            status_code=409,
            title="Match state conflict",
            detail=f"match '{match_id}': {detail}",
            code="match_state_conflict",
        )
        self.match_id = match_id


class MatchIntegrityError(DomainException):
    def __init__(self, match_id: str, warnings: list[str]) -> None:
        super().__init__(
            status_code=409,
            title="Match data needs reconciliation",
            detail=f"match '{match_id}': " + "; ".join(warnings),
            code="match_integrity_error",
        )
        self.match_id = match_id
        self.warnings = list(warnings)


def http_problem(
    status_code: int,
    detail: str,
    code: str,
    *,
    headers: Optional[dict[str, str]] = None,
) -> HTTPException:
    """Create an HTTPException with an attached problem code."""

    exc = HTTPException(status_code=status_code, detail=detail, headers=headers)
    setattr(exc, "code", code)
    return exc
