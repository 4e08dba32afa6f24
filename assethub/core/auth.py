"""
Authentication context for company-scoped requests.

Authentication itself happens upstream (gateway / session middleware).
By the time a request reaches this service the gateway has stamped the
authenticated user and company on the X-User-Id and X-Company-Id headers.
Every import query is scoped by ``AuthContext.company_id``.
"""

from dataclasses import dataclass

from fastapi import Header, HTTPException


@dataclass(frozen=True)
class AuthContext:
    """Immutable tenant boundary for one request."""
    user_id: int
    company_id: int


def _parse_id(raw: str | None, header: str) -> int:
    if raw is None or not raw.strip():
        raise HTTPException(status_code=401, detail=f"Missing {header} header")
    try:
        value = int(raw)
    except ValueError:
        raise HTTPException(status_code=401, detail=f"Invalid {header} header")
    if value < 1:
        raise HTTPException(status_code=401, detail=f"Invalid {header} header")
    return value


async def require_auth_context(
    x_user_id: str | None = Header(None),
    x_company_id: str | None = Header(None),
) -> AuthContext:
    return AuthContext(
        user_id=_parse_id(x_user_id, "X-User-Id"),
        company_id=_parse_id(x_company_id, "X-Company-Id"),
    )
