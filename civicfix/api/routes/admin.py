"""
civicfix.api.routes.admin — Admin endpoints (JWT-protected)
============================================================
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from civicfix.api.deps import get_current_admin, get_engine
from civicfix.errors import ValidationFailure
from civicfix.services import admin_service, badge_service, ledger_service, settings_service
from civicfix.services.log_buffer import VALID_LEVELS, get_logs

router = APIRouter(prefix="/admin", tags=["admin"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class BadgeCreate(BaseModel):
    name: str
    points_required: int
    icon: str
    description: str | None = None


class BadgeUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    points_required: int | None = None
    icon: str | None = None


class CategoryCreate(BaseModel):
    name: str
    department: str
    default_estimate_hours: int = 72
    description: str | None = None


class CategoryUpdate(BaseModel):
    name: str | None = None
    department: str | None = None
    default_estimate_hours: int | None = None
    description: str | None = None


class AuthorityAssign(BaseModel):
    user_id: str
    category_id: str


class SettingUpdate(BaseModel):
    key: str
    value: Any
    category: str | None = None
    description: str | None = None


def _badge_dict(badge) -> dict:
    return {
        "id": badge.id,
        "name": badge.name,
        "description": badge.description,
        "points_required": badge.points_required,
        "icon": badge.icon,
    }


def _category_dict(category) -> dict:
    return {
        "id": category.id,
        "name": category.name,
        "description": category.description,
        "department": category.department,
        "default_estimate_hours": category.default_estimate_hours,
    }


# ---------------------------------------------------------------------------
# Badge repair
# ---------------------------------------------------------------------------
@router.post("/fix-badges")
def fix_badges(
    dry_run: bool = Query(False),
    notify: bool = Query(False),
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    """Reconcile every citizen's badges against their current points."""
    return badge_service.reconcile_all_badges(
        engine, dry_run=dry_run, notify=notify, actor_id=admin["sub"],
    )


# ---------------------------------------------------------------------------
# Badge catalogue
# ---------------------------------------------------------------------------
@router.get("/badges")
def list_badges(
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    return {"badges": admin_service.list_badges(engine)}


@router.post("/badges", status_code=201)
def create_badge(
    body: BadgeCreate,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    try:
        badge = admin_service.create_badge(engine, actor_id=admin["sub"], **body.model_dump())
    except ValidationFailure as exc:
        raise HTTPException(400, detail=str(exc)) from exc
    return _badge_dict(badge)


@router.patch("/badges/{badge_id}")
def update_badge(
    badge_id: str,
    body: BadgeUpdate,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    """Edit a badge.  Held badges are not reconciled here; when the
    threshold changes the response sets ``needs_repair`` and operators
    run ``POST /api/admin/fix-badges``."""
    changes = body.model_dump(exclude_unset=True)
    try:
        badge = admin_service.update_badge(engine, badge_id, actor_id=admin["sub"], **changes)
    except ValidationFailure as exc:
        raise HTTPException(400, detail=str(exc)) from exc
    if badge is None:
        raise HTTPException(404, detail="Badge not found")
    return _badge_dict(badge) | {"needs_repair": "points_required" in changes}


@router.delete("/badges/{badge_id}")
def delete_badge(
    badge_id: str,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    if not admin_service.delete_badge(engine, badge_id, actor_id=admin["sub"]):
        raise HTTPException(404, detail="Badge not found")
    return {"success": True}


# ---------------------------------------------------------------------------
# Issue categories & authority assignments
# ---------------------------------------------------------------------------
@router.get("/categories")
def list_categories(
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    return {"categories": admin_service.list_categories(engine)}


@router.post("/categories", status_code=201)
def create_category(
    body: CategoryCreate,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    try:
        category = admin_service.create_category(engine, actor_id=admin["sub"], **body.model_dump())
    except ValidationFailure as exc:
        raise HTTPException(400, detail=str(exc)) from exc
    return _category_dict(category)


@router.patch("/categories/{category_id}")
def update_category(
    category_id: str,
    body: CategoryUpdate,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    try:
        category = admin_service.update_category(
            engine, category_id, actor_id=admin["sub"], **body.model_dump(exclude_unset=True),
        )
    except ValidationFailure as exc:
        raise HTTPException(400, detail=str(exc)) from exc
    if category is None:
        raise HTTPException(404, detail="Category not found")
    return _category_dict(category)


@router.delete("/categories/{category_id}")
def delete_category(
    category_id: str,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    try:
        deleted = admin_service.delete_category(engine, category_id, actor_id=admin["sub"])
    except ValidationFailure as exc:
        raise HTTPException(400, detail=str(exc)) from exc
    if not deleted:
        raise HTTPException(404, detail="Category not found")
    return {"success": True}


@router.get("/authorities")
def list_authorities(
    category_id: str | None = Query(None),
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    return {"authorities": admin_service.list_authorities(engine, category_id=category_id)}


@router.post("/authorities", status_code=201)
def assign_authority(
    body: AuthorityAssign,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    try:
        authority = admin_service.assign_authority(
            engine, user_id=body.user_id, category_id=body.category_id, actor_id=admin["sub"],
        )
    except ValidationFailure as exc:
        raise HTTPException(400, detail=str(exc)) from exc
    return {"id": authority.id, "user_id": authority.user_id, "category_id": authority.category_id}


@router.delete("/authorities/{authority_id}")
def remove_authority(
    authority_id: str,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    if not admin_service.remove_authority(engine, authority_id, actor_id=admin["sub"]):
        raise HTTPException(404, detail="Authority assignment not found")
    return {"success": True}


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
@router.post("/users/{user_id}/reset-points")
def reset_points(
    user_id: str,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    result = ledger_service.reset_user_points(engine, user_id, actor_id=admin["sub"])
    if not result.applied:
        raise HTTPException(404, detail="User not found")
    return {
        "success": True,
        "old_points": result.old_points,
        "new_points": result.new_points,
        "badges_revoked": len(result.badges.revoked),
    }


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------
@router.get("/settings")
def list_settings(
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    rows = settings_service.get_all_settings(engine)
    return {"settings": [settings_service.setting_to_dict(r) for r in rows]}


@router.put("/settings")
def update_settings(
    body: list[SettingUpdate],
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    items = [s.model_dump(exclude_none=True) | {"value": s.value} for s in body]
    count = settings_service.bulk_upsert(engine, items, actor_id=admin["sub"])
    return {"updated": count}


# ---------------------------------------------------------------------------
# Audit log & live logs
# ---------------------------------------------------------------------------
@router.get("/audit")
def get_audit_log(
    page: int = Query(1, ge=1),
    page_size: int = Query(25, ge=1, le=100),
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    entries = admin_service.get_audit_log(
        engine, limit=page_size, offset=(page - 1) * page_size,
    )
    return {"page": page, "page_size": page_size, "entries": entries}


@router.get("/logs")
def get_live_logs(
    tail: int = Query(200, ge=1, le=1000),
    level: str | None = Query(None),
    logger_filter: str | None = Query(None, alias="logger"),
    admin: dict = Depends(get_current_admin),
):
    """Recent log entries from the in-memory buffer."""
    if level and level.upper() not in VALID_LEVELS:
        raise HTTPException(400, detail=f"Invalid level. Must be one of: {', '.join(VALID_LEVELS)}")
    entries = get_logs(tail=tail, level=level, logger_filter=logger_filter)
    return {"entries": entries, "total": len(entries)}
