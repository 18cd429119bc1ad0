from __future__ import annotations

from fastapi import APIRouter

from vaultguard.core.rate_limit import RateLimitServiceDep

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness probe; does not touch the counter store."""

    return {"status": "ok"}


@router.get("/health/ready")
def readiness_check(service: RateLimitServiceDep) -> dict:
    """Readiness probe.

    Ensures the counter tables exist. A store failure surfaces as 503 through
    the global exception handler.
    """

    service.store.ensure_schema()
    return {"status": "ready"}
