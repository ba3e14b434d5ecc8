"""
Activity ingestion and activity-category administration.

Every category or rule write invalidates the classifier's rule cache so
the next ingested batch sees it without waiting for the TTL.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.auth import ActorContext
from ..core.errors import ConflictError, NotFoundError, ValidationError
from ..models.activity import DEFAULT_CATEGORY_NAME, Activity, ActivityCategory, ActivityCategoryRule
from ..models.student import Student
from ..schemas.activity import (
    ActivityBatch,
    ActivityBatchResult,
    CategoryCreate,
    CategoryOut,
    CategoryRuleCreate,
    CategoryRuleOut,
    CategoryRuleUpdate,
    CategoryUpdate,
)
from .category_classifier import CategoryClassifier
from .pattern_matcher import normalize_domain

logger = logging.getLogger("activity")


def ingest_batch(db: Session, student: Student, batch: ActivityBatch, classifier: CategoryClassifier) -> ActivityBatchResult:
    records: list[Activity] = []
    for entry in batch.entries:
        if not entry.url or entry.visit_time is None:
            continue
        domain = entry.domain or normalize_domain(entry.url)
        records.append(
            Activity(
                student_id=student.id,
                center_id=student.center_id,
                url=entry.url,
                domain=domain,
                title=entry.title or "",
                visit_time=entry.visit_time,
                duration_seconds=entry.duration_seconds or 0,
                idle_seconds=entry.idle_seconds or 0,
                was_blocked=bool(entry.was_blocked),
                block_reason=entry.block_reason,
                block_category=entry.block_category,
                category=classifier.classify(entry.url, domain) or DEFAULT_CATEGORY_NAME,
            )
        )
    if not records:
        raise ValidationError("No valid entries")
    db.add_all(records)
    db.commit()
    logger.debug("Stored %d activity records for student=%s", len(records), student.id)
    return ActivityBatchResult(received=len(batch.entries), processed=len(records))


def to_category_out(category: ActivityCategory) -> dict:
    payload = {
        "id": category.id,
        "name": category.name,
        "description": category.description,
        "color": category.color,
        "is_active": bool(category.is_active),
        "created_at": category.created_at,
        "updated_at": category.updated_at,
    }
    return CategoryOut.model_validate(payload).model_dump(mode="json", by_alias=True)


def to_rule_out(rule: ActivityCategoryRule) -> dict:
    payload = {
        "id": rule.id,
        "category": rule.category_id,
        "category_name": rule.category.name if rule.category else None,
        "pattern": rule.pattern,
        "pattern_type": rule.pattern_type,
        "is_active": bool(rule.is_active),
        "created_by": rule.created_by,
        "created_at": rule.created_at,
        "updated_at": rule.updated_at,
    }
    return CategoryRuleOut.model_validate(payload).model_dump(mode="json", by_alias=True)


def _category_by_name(db: Session, name: str) -> Optional[ActivityCategory]:
    return db.execute(select(ActivityCategory).where(ActivityCategory.name == name)).scalar_one_or_none()


def list_categories(db: Session, *, is_active: Optional[bool] = None) -> list[ActivityCategory]:
    stmt = select(ActivityCategory)
    if is_active is not None:
        stmt = stmt.where(ActivityCategory.is_active == is_active)
    return list(db.execute(stmt.order_by(ActivityCategory.name.asc())).scalars().all())


def get_category(db: Session, category_id: str) -> ActivityCategory:
    category = db.get(ActivityCategory, category_id)
    if not category:
        raise NotFoundError("Category not found")
    return category


def create_category(db: Session, data: CategoryCreate, classifier: CategoryClassifier) -> ActivityCategory:
    name = data.name.strip()
    if _category_by_name(db, name):
        raise ConflictError("Category already exists")
    category = ActivityCategory(
        name=name,
        description=data.description or "",
        color=data.color or "slate",
        is_active=data.is_active,
    )
    db.add(category)
    db.commit()
    db.refresh(category)
    classifier.invalidate()
    return category


def update_category(db: Session, category_id: str, data: CategoryUpdate, classifier: CategoryClassifier) -> ActivityCategory:
    category = get_category(db, category_id)
    if data.name and data.name.strip() != category.name:
        name = data.name.strip()
        if _category_by_name(db, name):
            raise ConflictError("Category already exists")
        category.name = name
    if data.description is not None:
        category.description = data.description
    if data.color is not None:
        category.color = data.color
    if data.is_active is not None:
        category.is_active = data.is_active
    db.commit()
    db.refresh(category)
    classifier.invalidate()
    return category


def delete_category(db: Session, category_id: str, classifier: CategoryClassifier) -> None:
    category = get_category(db, category_id)
    # Rules go with the category (delete-orphan cascade).
    db.delete(category)
    db.commit()
    classifier.invalidate()
    logger.info("Deleted activity category %s", category_id)


def list_category_rules(
    db: Session,
    *,
    category_id: Optional[str] = None,
    is_active: Optional[bool] = None,
) -> list[ActivityCategoryRule]:
    stmt = select(ActivityCategoryRule)
    if category_id:
        stmt = stmt.where(ActivityCategoryRule.category_id == category_id)
    if is_active is not None:
        stmt = stmt.where(ActivityCategoryRule.is_active == is_active)
    stmt = stmt.order_by(ActivityCategoryRule.created_at.asc(), ActivityCategoryRule.id.asc())
    return list(db.execute(stmt).scalars().all())


def get_category_rule(db: Session, rule_id: str) -> ActivityCategoryRule:
    rule = db.get(ActivityCategoryRule, rule_id)
    if not rule:
        raise NotFoundError("Category rule not found")
    return rule


def create_category_rule(
    db: Session,
    actor: ActorContext,
    data: CategoryRuleCreate,
    classifier: CategoryClassifier,
) -> ActivityCategoryRule:
    category = get_category(db, data.category)
    rule = ActivityCategoryRule(
        category_id=category.id,
        pattern=data.pattern.strip(),
        pattern_type=data.pattern_type,
        is_active=data.is_active,
        created_by=actor.admin_id,
    )
    db.add(rule)
    db.commit()
    db.refresh(rule)
    classifier.invalidate()
    return rule


def update_category_rule(
    db: Session,
    rule_id: str,
    data: CategoryRuleUpdate,
    classifier: CategoryClassifier,
) -> ActivityCategoryRule:
    rule = get_category_rule(db, rule_id)
    if data.category:
        rule.category_id = get_category(db, data.category).id
    if data.pattern:
        rule.pattern = data.pattern.strip()
    if data.pattern_type:
        rule.pattern_type = data.pattern_type
    if data.is_active is not None:
        rule.is_active = data.is_active
    db.commit()
    db.refresh(rule)
    classifier.invalidate()
    return rule


def delete_category_rule(db: Session, rule_id: str, classifier: CategoryClassifier) -> None:
    rule = get_category_rule(db, rule_id)
    db.delete(rule)
    db.commit()
    classifier.invalidate()
