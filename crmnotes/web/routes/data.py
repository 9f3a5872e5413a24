"""Data export and reset routes."""

from __future__ import annotations

from fastapi import APIRouter

from ...data import clear_all, export_all

router = APIRouter()


@router.get("/export")
def data_export():
    return export_all()


@router.delete("/data")
def data_clear():
    removed = clear_all()
    return {"message": "All data cleared successfully", "removed": removed}
