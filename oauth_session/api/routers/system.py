"""System-level API endpoints."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter

from ...core import utcnow

router = APIRouter(tags=["system"])


@router.get("/health")
def health() -> Dict[str, bool]:
    """Simple readiness probe."""

    return {"ok": True}


@router.get("/utils/healthCheck")
def health_check() -> Dict[str, Any]:
    return {"status": "ok", "timestamp": utcnow().isoformat()}


__all__ = ["router"]
