"""Unified search route."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter

from ...search import search
from ..dependencies import error

router = APIRouter()


@router.get("/search")
def search_all(q: str = ""):
    try:
        results = search(q)
    except ValueError as exc:
        return error(str(exc))
    return [asdict(r) for r in results]
