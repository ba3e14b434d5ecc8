"""
Blocked-site administration.

Bulk import writes each entry on its own: a bad entry is reported back
and does not undo the entries already stored.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import case, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.auth import ActorContext
from ..core.errors import NotFoundError, ValidationError, log_exception
from ..models.blocked_site import PATTERN_TYPES, SITE_CATEGORIES, BlockedSite
from ..schemas.blocked_site import (
    BlockedSiteCreate,
    BlockedSiteOut,
    BlockedSiteUpdate,
    BulkImportFailure,
    BulkImportRequest,
    BulkImportResult,
)
from .scope import CenterScope, Scope, StudentScope, ensure_can_manage, resolve_targets, site_scope, visible_site_clause

logger = logging.getLogger("blocklist")


def to_site_out(site: BlockedSite) -> dict:
    payload = {
        "id": site.id,
        "pattern": site.pattern,
        "pattern_type": site.pattern_type,
        "category": site.category,
        "scope": site.scope,
        "scope_id": site.scope_id,
        "description": site.description,
        "is_active": bool(site.is_active),
        "added_by": site.added_by,
        "created_at": site.created_at,
        "updated_at": site.updated_at,
    }
    return BlockedSiteOut.model_validate(payload).model_dump(mode="json", by_alias=True)


def _scope_id(scope: Scope) -> Optional[str]:
    if isinstance(scope, CenterScope):
        return scope.center_id
    if isinstance(scope, StudentScope):
        return scope.student_id
    return None


def _resolve_site_scope(db: Session, actor: ActorContext, kind: str, scope_id: Optional[str]) -> Scope:
    if kind == "center":
        return resolve_targets(db, kind, actor, center_id=scope_id)
    if kind == "student":
        return resolve_targets(db, kind, actor, student_id=scope_id)
    return resolve_targets(db, kind, actor)


def list_sites(
    db: Session,
    actor: ActorContext,
    *,
    scope: Optional[str] = None,
    category: Optional[str] = None,
    is_active: Optional[bool] = None,
    search: Optional[str] = None,
) -> list[BlockedSite]:
    stmt = select(BlockedSite)
    if scope:
        stmt = stmt.where(BlockedSite.scope == scope)
    if category:
        stmt = stmt.where(BlockedSite.category == category)
    if is_active is not None:
        stmt = stmt.where(BlockedSite.is_active == is_active)
    if search:
        needle = f"%{search.lower()}%"
        stmt = stmt.where(or_(BlockedSite.pattern.ilike(needle), BlockedSite.description.ilike(needle)))
    visible = visible_site_clause(actor)
    if visible is not None:
        stmt = stmt.where(visible)
    stmt = stmt.order_by(BlockedSite.created_at.desc(), BlockedSite.id.desc())
    return list(db.execute(stmt).scalars().all())


def get_site(db: Session, actor: ActorContext, site_id: str) -> BlockedSite:
    site = db.get(BlockedSite, site_id)
    if not site:
        raise NotFoundError("Blocked site not found")
    ensure_can_manage(db, actor, site_scope(site))
    return site


def create_site(db: Session, actor: ActorContext, data: BlockedSiteCreate) -> BlockedSite:
    pattern = data.pattern.strip()
    if not pattern:
        raise ValidationError("Pattern is required")
    scope = _resolve_site_scope(db, actor, data.scope, data.scope_id)
    site = BlockedSite(
        pattern=pattern,
        pattern_type=data.pattern_type,
        category=data.category,
        scope=scope.kind,
        scope_id=_scope_id(scope),
        description=data.description,
        is_active=True,
        added_by=actor.admin_id,
    )
    db.add(site)
    db.commit()
    db.refresh(site)
    logger.info("Blocked %s pattern=%s scope=%s", site.pattern_type, site.pattern, site.scope)
    return site


def update_site(db: Session, actor: ActorContext, site_id: str, data: BlockedSiteUpdate) -> BlockedSite:
    site = get_site(db, actor, site_id)
    ensure_can_manage(db, actor, site_scope(site), write=True)
    fields = data.model_fields_set

    if data.scope:
        scope = _resolve_site_scope(db, actor, data.scope, data.scope_id or site.scope_id)
        site.scope = scope.kind
        site.scope_id = _scope_id(scope)
    if data.pattern:
        site.pattern = data.pattern.strip()
    if data.pattern_type:
        site.pattern_type = data.pattern_type
    if data.category:
        site.category = data.category
    if "description" in fields:
        site.description = data.description
    if data.is_active is not None:
        site.is_active = data.is_active

    db.commit()
    db.refresh(site)
    return site


def delete_site(db: Session, actor: ActorContext, site_id: str) -> None:
    site = get_site(db, actor, site_id)
    ensure_can_manage(db, actor, site_scope(site), write=True)
    db.delete(site)
    db.commit()
    logger.info("Deleted blocked site %s", site_id)


def toggle_site(db: Session, actor: ActorContext, site_id: str) -> BlockedSite:
    site = get_site(db, actor, site_id)
    ensure_can_manage(db, actor, site_scope(site), write=True)
    site.is_active = not site.is_active
    db.commit()
    db.refresh(site)
    return site


def bulk_import(db: Session, actor: ActorContext, data: BulkImportRequest) -> BulkImportResult:
    scope = _resolve_site_scope(db, actor, data.scope, data.scope_id)
    scope_id = _scope_id(scope)
    result = BulkImportResult()

    for index, entry in enumerate(data.sites):
        if isinstance(entry, str):
            pattern, pattern_type, category, description = entry, None, None, None
        else:
            pattern, pattern_type, category, description = (
                entry.pattern,
                entry.pattern_type,
                entry.category,
                entry.description,
            )
        pattern = (pattern or "").strip()
        pattern_type = pattern_type or "domain"
        category = category or data.category or "custom"

        error = None
        if not pattern:
            error = "Pattern is required"
        elif pattern_type not in PATTERN_TYPES:
            error = "Invalid pattern type"
        elif category not in SITE_CATEGORIES:
            error = "Invalid category"
        if error:
            result.failed.append(BulkImportFailure(index=index, pattern=pattern or None, error=error))
            continue

        site = BlockedSite(
            pattern=pattern,
            pattern_type=pattern_type,
            category=category,
            scope=scope.kind,
            scope_id=scope_id,
            description=description,
            is_active=True,
            added_by=actor.admin_id,
        )
        try:
            db.add(site)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            log_exception(logger, "Bulk import entry failed", extra={"index": index, "pattern": pattern}, exc=exc)
            result.failed.append(BulkImportFailure(index=index, pattern=pattern, error="Failed to store entry"))
            continue
        db.refresh(site)
        result.created.append(BlockedSiteOut.model_validate(to_site_out(site)))

    logger.info("Bulk import stored=%d failed=%d scope=%s", len(result.created), len(result.failed), scope.kind)
    return result


def site_stats(db: Session, actor: ActorContext) -> dict:
    visible = visible_site_clause(actor)
    filters = [visible] if visible is not None else []

    def _count_when(condition):
        return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)

    total, active, global_count, center_count, student_count = db.execute(
        select(
            func.count(BlockedSite.id),
            _count_when(BlockedSite.is_active.is_(True)),
            _count_when(BlockedSite.scope == "global"),
            _count_when(BlockedSite.scope == "center"),
            _count_when(BlockedSite.scope == "student"),
        ).where(*filters)
    ).one()

    by_category = db.execute(
        select(BlockedSite.category, func.count(BlockedSite.id))
        .where(BlockedSite.is_active.is_(True), *filters)
        .group_by(BlockedSite.category)
        .order_by(func.count(BlockedSite.id).desc(), BlockedSite.category.asc())
    ).all()

    return {
        "summary": {
            "total": int(total or 0),
            "active": int(active or 0),
            "global": int(global_count or 0),
            "center": int(center_count or 0),
            "student": int(student_count or 0),
        },
        "byCategory": [{"category": category, "count": int(count)} for category, count in by_category],
    }
