"""Dashboard analytics and health check."""

from __future__ import annotations

from fastapi import APIRouter

from ...analytics import get_analytics, get_incomplete_fields

router = APIRouter()


@router.get("/health")
def health():
    return {"status": "ok", "version": "1.0.0"}


@router.get("/analytics")
def analytics():
    return get_analytics()


@router.get("/analytics/incomplete")
def analytics_incomplete():
    return get_incomplete_fields()
