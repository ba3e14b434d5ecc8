"""
API endpoints for ad-hoc blocked sites.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...core.auth import ActorContext, get_current_admin, require_roles
from ...core.db import get_db
from ...schemas.blocked_site import BlockedSiteCreate, BlockedSiteUpdate, BulkImportRequest
from ...services import blocklist as blocklist_service


router = APIRouter(prefix="/api/v1/blocklist", tags=["blocklist"])

MANAGERS = ("super_admin", "admin", "pod_admin")


@router.get("")
def list_sites(
    scope: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    search: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_current_admin),
) -> dict:
    rows = blocklist_service.list_sites(db, actor, scope=scope, category=category, is_active=is_active, search=search)
    return {"success": True, "data": [blocklist_service.to_site_out(s) for s in rows]}


@router.get("/stats/summary")
def site_stats(
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_current_admin),
) -> dict:
    return {"success": True, "data": blocklist_service.site_stats(db, actor)}


@router.get("/{site_id}")
def get_site(
    site_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_current_admin),
) -> dict:
    return {"success": True, "data": blocklist_service.to_site_out(blocklist_service.get_site(db, actor, site_id))}


@router.post("", status_code=201)
def create_site(
    payload: BlockedSiteCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_roles(*MANAGERS)),
) -> dict:
    site = blocklist_service.create_site(db, actor, payload)
    return {"success": True, "data": blocklist_service.to_site_out(site)}


@router.post("/bulk", status_code=201)
def bulk_import(
    payload: BulkImportRequest,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_roles(*MANAGERS)),
) -> dict:
    result = blocklist_service.bulk_import(db, actor, payload)
    return {
        "success": True,
        "data": result.model_dump(mode="json", by_alias=True),
        "message": f"{len(result.created)} sites added to blocklist",
    }


@router.put("/{site_id}")
def update_site(
    site_id: str,
    payload: BlockedSiteUpdate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_roles(*MANAGERS)),
) -> dict:
    site = blocklist_service.update_site(db, actor, site_id, payload)
    return {"success": True, "data": blocklist_service.to_site_out(site)}


@router.delete("/{site_id}")
def delete_site(
    site_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_roles(*MANAGERS)),
) -> dict:
    blocklist_service.delete_site(db, actor, site_id)
    return {"success": True, "message": "Blocked site deleted"}


@router.patch("/{site_id}/toggle")
def toggle_site(
    site_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_roles(*MANAGERS)),
) -> dict:
    site = blocklist_service.toggle_site(db, actor, site_id)
    return {"success": True, "data": blocklist_service.to_site_out(site)}
