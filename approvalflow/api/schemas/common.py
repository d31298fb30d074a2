"""Common schemas for the approval flow API."""

from typing import Any, Dict, Optional

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    category: str
    detail: Optional[str] = None
    context: Dict[str, Any] = {}


class ActiveToggle(BaseModel):
    is_active: bool
