"""Aggregate API routers."""

from fastapi import APIRouter

from .auth import router as auth_router
from .system import router as system_router

ALL_ROUTERS: tuple[APIRouter, ...] = (
    system_router,
    auth_router,
)

__all__ = ["ALL_ROUTERS"]
