"""
Pydantic schemas for ad-hoc blocked sites.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional, Union

from pydantic import Field

from .policy import CamelModel, ScopeKind

PatternType = Literal["domain", "url", "regex"]
SiteCategory = Literal[
    "adult",
    "gambling",
    "social_media",
    "gaming",
    "streaming",
    "malware",
    "violence",
    "drugs",
    "custom",
]


class BlockedSiteCreate(CamelModel):
    pattern: str = Field(..., min_length=1, max_length=1024)
    pattern_type: PatternType = "domain"
    category: SiteCategory = "custom"
    scope: ScopeKind = "global"
    scope_id: Optional[str] = None
    description: Optional[str] = None


class BlockedSiteUpdate(CamelModel):
    pattern: Optional[str] = Field(default=None, min_length=1, max_length=1024)
    pattern_type: Optional[PatternType] = None
    category: Optional[SiteCategory] = None
    scope: Optional[ScopeKind] = None
    scope_id: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


class BulkSiteItem(CamelModel):
    pattern: Optional[str] = None
    pattern_type: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None


class BulkImportRequest(CamelModel):
    sites: List[Union[str, BulkSiteItem]]
    scope: ScopeKind = "global"
    scope_id: Optional[str] = None
    category: Optional[SiteCategory] = None


class BlockedSiteOut(CamelModel):
    id: str
    pattern: str
    pattern_type: str
    category: str
    scope: str
    scope_id: Optional[str] = None
    description: Optional[str] = None
    is_active: bool
    added_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BulkImportFailure(CamelModel):
    index: int
    pattern: Optional[str] = None
    error: str


class BulkImportResult(CamelModel):
    created: List[BlockedSiteOut] = Field(default_factory=list)
    failed: List[BulkImportFailure] = Field(default_factory=list)
