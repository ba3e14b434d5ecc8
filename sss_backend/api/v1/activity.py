"""
Activity ingestion from the extension and activity-category administration.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...core.auth import ActorContext, get_current_admin, get_current_student, require_roles
from ...core.db import get_db
from ...models.student import Student
from ...schemas.activity import (
    ActivityBatch,
    CategoryCreate,
    CategoryRuleCreate,
    CategoryRuleUpdate,
    CategoryUpdate,
)
from ...services import activity as activity_service
from ...services.category_classifier import CategoryClassifier, get_classifier


router = APIRouter(prefix="/api/v1/activity", tags=["activity"])
categories_router = APIRouter(prefix="/api/v1/activity-categories", tags=["activity-categories"])
category_rules_router = APIRouter(prefix="/api/v1/activity-category-rules", tags=["activity-categories"])

MANAGERS = ("super_admin", "admin", "pod_admin")


@router.post("/batch")
def ingest_batch(
    payload: ActivityBatch,
    student: Student = Depends(get_current_student),
    db: Session = Depends(get_db),
    classifier: CategoryClassifier = Depends(get_classifier),
) -> dict:
    result = activity_service.ingest_batch(db, student, payload, classifier)
    return {"success": True, "data": result.model_dump(by_alias=True)}


@categories_router.get("")
def list_categories(
    is_active: Optional[bool] = Query(None, alias="isActive"),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_current_admin),
) -> dict:
    rows = activity_service.list_categories(db, is_active=is_active)
    return {"success": True, "data": [activity_service.to_category_out(c) for c in rows]}


@categories_router.post("", status_code=201)
def create_category(
    payload: CategoryCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_roles(*MANAGERS)),
    classifier: CategoryClassifier = Depends(get_classifier),
) -> dict:
    category = activity_service.create_category(db, payload, classifier)
    return {"success": True, "data": activity_service.to_category_out(category)}


@categories_router.put("/{category_id}")
def update_category(
    category_id: str,
    payload: CategoryUpdate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_roles(*MANAGERS)),
    classifier: CategoryClassifier = Depends(get_classifier),
) -> dict:
    category = activity_service.update_category(db, category_id, payload, classifier)
    return {"success": True, "data": activity_service.to_category_out(category)}


@categories_router.delete("/{category_id}")
def delete_category(
    category_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_roles(*MANAGERS)),
    classifier: CategoryClassifier = Depends(get_classifier),
) -> dict:
    activity_service.delete_category(db, category_id, classifier)
    return {"success": True, "message": "Category deleted"}


@category_rules_router.get("")
def list_category_rules(
    category: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_current_admin),
) -> dict:
    rows = activity_service.list_category_rules(db, category_id=category, is_active=is_active)
    return {"success": True, "data": [activity_service.to_rule_out(r) for r in rows]}


@category_rules_router.post("", status_code=201)
def create_category_rule(
    payload: CategoryRuleCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_roles(*MANAGERS)),
    classifier: CategoryClassifier = Depends(get_classifier),
) -> dict:
    rule = activity_service.create_category_rule(db, actor, payload, classifier)
    return {"success": True, "data": activity_service.to_rule_out(rule)}


@category_rules_router.put("/{rule_id}")
def update_category_rule(
    rule_id: str,
    payload: CategoryRuleUpdate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_roles(*MANAGERS)),
    classifier: CategoryClassifier = Depends(get_classifier),
) -> dict:
    rule = activity_service.update_category_rule(db, rule_id, payload, classifier)
    return {"success": True, "data": activity_service.to_rule_out(rule)}


@category_rules_router.delete("/{rule_id}")
def delete_category_rule(
    rule_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_roles(*MANAGERS)),
    classifier: CategoryClassifier = Depends(get_classifier),
) -> dict:
    activity_service.delete_category_rule(db, rule_id, classifier)
    return {"success": True, "message": "Category rule deleted"}
