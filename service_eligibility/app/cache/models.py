"""
Cache administration request and response models.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class CacheInvalidationRequest(BaseModel):
    """Entries to invalidate; an empty request clears both caches."""
    state_code: Optional[str] = Field(None, min_length=2, max_length=2)
    program_id: Optional[str] = None
    fpl_years: Optional[List[int]] = None


class CacheInvalidationResponse(BaseModel):
    rules_removed: int
    fpl_removed: int
