"""
civicfix.api.routes.citizen — Citizen & shared endpoints (JWT-protected)
=========================================================================

Issue reporting and following, notifications, the leaderboard and the
caller's own badges.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from civicfix.api.deps import get_config, get_current_citizen, get_current_user, get_engine
from civicfix.config import CivicConfig
from civicfix.errors import PrimaryFailure, ValidationFailure
from civicfix.services import (
    badge_service,
    issue_service,
    ledger_service,
    notification_service,
    settings_service,
)

router = APIRouter(tags=["citizen"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class IssueCreate(BaseModel):
    title: str
    description: str
    category_id: str
    location_lat: float
    location_lng: float
    location_address: str
    photos: list[str] = Field(default_factory=list)


class MarkRead(BaseModel):
    notification_id: int


# ---------------------------------------------------------------------------
# Issues
# ---------------------------------------------------------------------------
@router.post("/citizen/issues", status_code=201)
def report_issue(
    body: IssueCreate,
    user: dict = Depends(get_current_citizen),
    engine=Depends(get_engine),
):
    try:
        created = issue_service.create_issue(
            engine, user_id=user["sub"], **body.model_dump(),
        )
    except ValidationFailure as exc:
        raise HTTPException(400, detail=str(exc))
    except PrimaryFailure as exc:
        raise HTTPException(500, detail=str(exc))

    ledger = created["ledger"]
    return {
        "success": True,
        "issue_id": created["issue_id"],
        "assigned_to": created["assigned_to"],
        "points": ledger.new_points,
        "badges_earned": len(ledger.badges.granted),
        "failures": [f.to_dict() for f in ledger.failures],
    }


@router.post("/issues/{issue_id}/follow")
def follow_issue(
    issue_id: str,
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    following = issue_service.toggle_follow(engine, issue_id, user["sub"])
    if following is None:
        raise HTTPException(404, detail="Issue not found")
    return {"following": following}


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------
@router.get("/notifications")
def notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    return {
        "notifications": notification_service.list_notifications(
            engine, user["sub"], unread_only=unread_only, limit=limit,
        ),
        "unread": notification_service.unread_count(engine, user["sub"]),
    }


@router.post("/notifications/mark-read")
def mark_read(
    body: MarkRead,
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    if not notification_service.mark_read(engine, body.notification_id, user["sub"]):
        raise HTTPException(404, detail="Notification not found")
    return {"success": True}


@router.post("/notifications/mark-all-read")
def mark_all_read(
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    return {"success": True, "updated": notification_service.mark_all_read(engine, user["sub"])}


# ---------------------------------------------------------------------------
# Leaderboard & badges
# ---------------------------------------------------------------------------
@router.get("/leaderboard")
def leaderboard(
    limit: int | None = Query(None, ge=1, le=100),
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
    cfg: CivicConfig = Depends(get_config),
):
    """Top citizens.  Size: ``limit``, else the ``display.leaderboard_size``
    setting, else ``leaderboard_size`` from config.yaml."""
    if limit is None:
        limit = settings_service.get_int(
            engine, "display.leaderboard_size", cfg.leaderboard_size, minimum=1,
        )
    return {"leaderboard": ledger_service.get_leaderboard(engine, limit)}


@router.get("/me/badges")
def my_badges(
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    return {"badges": badge_service.get_user_badges(engine, user["sub"])}
