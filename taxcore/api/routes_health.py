from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.orm import Session

from taxcore.db.session import get_db
from taxcore.rules.loader import load_manifest

router = APIRouter(tags=["health"])


def _check_db(db: Session) -> bool:
    db.execute(text("SELECT 1"))
    return True


@router.get("/health")
def health(db: Annotated[Session, Depends(get_db)]) -> dict:
    """Liveness check: database reachable and rule sets loaded."""
    try:
        _check_db(db)
    except Exception as exc:  # noqa: BLE001
        raise HTTPException(status_code=503, detail="Database connectivity check failed") from exc
    manifest = load_manifest()
    return {
        "status": "ok",
        "rule_sets": [entry.effective_from for entry in manifest.files],
    }
