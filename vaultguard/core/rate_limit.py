"""Lockout and write budget dependencies for FastAPI routes.

This module wires the rate limit service into the HTTP layer.

Design goals:
- Minimal coupling: routes depend on a dependency function only.
- Fail closed: store errors propagate as StoreUnavailableError and the global
  handler turns them into 503, so the protected operation never runs.
- Safe logging: identifiers are only logged hashed.

The dependencies are plain ``def`` so FastAPI runs the blocking store calls in
its threadpool.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from vaultguard.core.config import settings
from vaultguard.core.logging import hash_identifier
from vaultguard.services.rate_limit_service import RateLimitService, get_rate_limit_service
from vaultguard.services.results import WriteBudgetResult

logger = logging.getLogger(__name__)

WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

RateLimitServiceDep = Annotated[RateLimitService, Depends(get_rate_limit_service)]


def _write_budget_headers(result: WriteBudgetResult) -> dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset_at),
    }
    if result.retry_after_seconds is not None:
        headers["Retry-After"] = str(result.retry_after_seconds)
    return headers


def enforce_write_budget(request: Request, service: RateLimitServiceDep) -> None:
    """FastAPI dependency enforcing the per-caller write budget.

    Only state-changing methods consume budget; reads pass through.

    Args:
        request: FastAPI request.
        service: Rate limit service (injected).

    Raises:
        HTTPException: 429 Too Many Requests when the window is exhausted.
        StoreUnavailableError: When the counter store cannot be reached.
    """

    if not settings.app.rate_limit_enabled:
        return
    if request.method.upper() not in WRITE_METHODS:
        return

    identifier = service.resolve_identifier(request.headers)
    result = service.consume_api_write_budget(identifier)
    if result.allowed:
        return

    logger.warning(
        "rate_limit.write_budget_exceeded",
        extra={
            "identifier_hash": hash_identifier(identifier),
            "method": request.method,
            "path": request.url.path,
            "retry_after_s": result.retry_after_seconds,
        },
    )

    headers = _write_budget_headers(result) if settings.app.rate_limit_include_headers else None
    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Write rate limit exceeded. Try again later.",
        headers=headers,
    )


def enforce_login_allowed(request: Request, service: RateLimitServiceDep) -> str:
    """FastAPI dependency rejecting login attempts from locked-out callers.

    Usage:
        @router.post("/login")
        def login(identifier: Annotated[str, Depends(enforce_login_allowed)], ...):
            ...
            service.record_failed_login(identifier)  # or clear_login_attempts

    Args:
        request: FastAPI request.
        service: Rate limit service (injected).

    Returns:
        The resolved caller identifier, for recording the outcome later.

    Raises:
        HTTPException: 429 Too Many Requests while the caller is locked out.
        StoreUnavailableError: When the counter store cannot be reached.
    """

    identifier = service.resolve_identifier(request.headers)
    if not settings.app.rate_limit_enabled:
        return identifier

    result = service.check_login_attempt(identifier)
    if result.allowed:
        return identifier

    retry_after = result.retry_after_seconds or 0
    logger.warning(
        "rate_limit.login_locked",
        extra={
            "identifier_hash": hash_identifier(identifier),
            "retry_after_s": retry_after,
        },
    )

    headers = {"Retry-After": str(retry_after)} if settings.app.rate_limit_include_headers else None
    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Too many failed login attempts. Try again later.",
        headers=headers,
    )
