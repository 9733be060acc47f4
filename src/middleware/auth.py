"""Caller identity for protected endpoints.

OTP login and token issuance live in the upstream identity gateway.  The
gateway forwards the verified caller as ``X-User-Id``, ``X-User-Role`` and
``X-User-Phone`` headers and proves it is the gateway with a shared
``X-Gateway-Key`` (``SHIKAYAT_GATEWAY_API_KEY``).  The key is compared in
constant time.
"""

from __future__ import annotations

import hmac
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import structlog
from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import APIKeyHeader

from config.settings import settings
from src.models.enums import UserRole

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_gateway_key_header = APIKeyHeader(name="X-Gateway-Key", auto_error=False)


@dataclass(frozen=True, slots=True)
class Actor:
    """The authenticated caller of a request."""

    user_id: str
    role: UserRole
    phone: str | None = None


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _verify_gateway_key(request: Request, api_key: str | None) -> None:
    configured_key = settings.gateway_api_key

    if not configured_key:
        if not settings.is_production:
            return
        logger.error("auth.gateway_key_not_configured_production")
        raise HTTPException(status_code=503, detail="Authentication is not configured.")

    if not api_key or not hmac.compare_digest(api_key.encode(), configured_key.encode()):
        logger.warning("auth.invalid_gateway_key", path=request.url.path, client_ip=_client_ip(request))
        raise HTTPException(status_code=401, detail="Request did not come through the gateway.")


async def get_actor(
    request: Request,
    api_key: str | None = Security(_gateway_key_header),
) -> Actor:
    """FastAPI dependency returning the verified caller; 401 when absent."""
    _verify_gateway_key(request, api_key)

    user_id = request.headers.get("X-User-Id", "").strip()
    raw_role = request.headers.get("X-User-Role", "").strip().lower()
    if not user_id or not raw_role:
        raise HTTPException(
            status_code=401,
            detail="Missing X-User-Id or X-User-Role header.",
            headers={"WWW-Authenticate": "Gateway"},
        )
    try:
        role = UserRole(raw_role)
    except ValueError:
        raise HTTPException(status_code=401, detail=f"Unknown role '{raw_role}'.") from None

    phone = request.headers.get("X-User-Phone", "").strip() or None
    return Actor(user_id=user_id, role=role, phone=phone)


def require_roles(*roles: UserRole) -> Callable[..., Awaitable[Actor]]:
    """Build a dependency that admits only callers holding one of *roles*.

    Usage::

        @router.post("/{ref}/assign")
        async def assign(actor: Actor = Depends(require_roles(UserRole.ADMIN))): ...
    """
    allowed = frozenset(roles)

    async def dependency(request: Request, actor: Actor = Depends(get_actor)) -> Actor:
        if actor.role not in allowed:
            logger.warning(
                "auth.role_forbidden",
                path=request.url.path,
                user_id=actor.user_id,
                role=actor.role,
            )
            raise HTTPException(status_code=403, detail="Not allowed for your role.")
        return actor

    return dependency
