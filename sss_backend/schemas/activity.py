"""
Pydantic schemas for activity ingestion and activity categories.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import Field

from .policy import CamelModel


class ActivityEntry(CamelModel):
    url: Optional[str] = None
    domain: Optional[str] = None
    title: Optional[str] = None
    visit_time: Optional[datetime] = None
    duration_seconds: int = 0
    idle_seconds: int = 0
    was_blocked: bool = False
    block_reason: Optional[str] = None
    block_category: Optional[str] = None


class ActivityBatch(CamelModel):
    entries: List[ActivityEntry] = Field(..., min_length=1)


class ActivityBatchResult(CamelModel):
    received: int
    processed: int


class CategoryCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=128)
    description: Optional[str] = None
    color: Optional[str] = None
    is_active: bool = True


class CategoryUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=128)
    description: Optional[str] = None
    color: Optional[str] = None
    is_active: Optional[bool] = None


class CategoryOut(CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    color: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CategoryRuleCreate(CamelModel):
    category: str
    pattern: str = Field(..., min_length=1, max_length=1024)
    pattern_type: Literal["domain", "url", "regex"] = "domain"
    is_active: bool = True


class CategoryRuleUpdate(CamelModel):
    category: Optional[str] = None
    pattern: Optional[str] = Field(default=None, min_length=1, max_length=1024)
    pattern_type: Optional[Literal["domain", "url", "regex"]] = None
    is_active: Optional[bool] = None


class CategoryRuleOut(CamelModel):
    id: str
    category: str
    category_name: Optional[str] = None
    pattern: str
    pattern_type: str
    is_active: bool
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
