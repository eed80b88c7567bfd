from __future__ import annotations

from fastapi import APIRouter


router = APIRouter()


@router.get("/healthz")
def healthz():
    """Healthcheck: ядро без БД, поэтому достаточно ответить 200."""
    return {"status": "ok"}
