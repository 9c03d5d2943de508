"""
civicfix.api.routes.authority — Authority issue handling (JWT-protected)
=========================================================================
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from civicfix.api.deps import get_current_authority, get_engine
from civicfix.engine.outcomes import TransitionResult
from civicfix.errors import PrimaryFailure, ValidationFailure
from civicfix.services import issue_service

router = APIRouter(prefix="/authority", tags=["authority"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class StatusUpdate(BaseModel):
    status: str
    comment: str | None = None
    estimated_resolution_date: datetime | None = None


class BulkStatusUpdate(BaseModel):
    issue_ids: list[str] = Field(default_factory=list)
    status: str
    comment: str | None = None


def _transition_response(result: TransitionResult) -> dict:
    return {
        "success": True,
        "status": result.status,
        "updated": result.updated,
        "issue_ids": result.issue_ids,
        "failures": [f.to_dict() for f in result.failures],
    }


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------
@router.post("/issues/{issue_id}/status")
def update_status(
    issue_id: str,
    body: StatusUpdate,
    user: dict = Depends(get_current_authority),
    engine=Depends(get_engine),
):
    try:
        result = issue_service.update_issue_status(
            engine,
            issue_id,
            body.status,
            authority_id=user["sub"],
            comment=body.comment,
            estimated_date=body.estimated_resolution_date,
        )
    except ValidationFailure as exc:
        raise HTTPException(400, detail=str(exc))
    except PrimaryFailure as exc:
        raise HTTPException(500, detail=str(exc))
    if not result.updated:
        raise HTTPException(404, detail="Issue not found")
    return _transition_response(result)


@router.post("/bulk-update")
def bulk_update(
    body: BulkStatusUpdate,
    user: dict = Depends(get_current_authority),
    engine=Depends(get_engine),
):
    """Apply one status (and comment) to many issues at once."""
    try:
        result = issue_service.bulk_update_status(
            engine,
            body.issue_ids,
            body.status,
            authority_id=user["sub"],
            comment=body.comment,
        )
    except ValidationFailure as exc:
        raise HTTPException(400, detail=str(exc))
    except PrimaryFailure as exc:
        raise HTTPException(500, detail=str(exc))
    return _transition_response(result)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
@router.get("/issues/{issue_id}/updates")
def issue_updates(
    issue_id: str,
    user: dict = Depends(get_current_authority),
    engine=Depends(get_engine),
):
    return {"updates": issue_service.get_issue_history(engine, issue_id)}


@router.get("/metrics")
def metrics(
    user: dict = Depends(get_current_authority),
    engine=Depends(get_engine),
):
    return issue_service.authority_metrics(engine, user["sub"])
