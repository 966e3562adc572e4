"""
sap_odata.api.models - Pydantic models for API requests/responses
==================================================================
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class EntityListResponse(BaseModel):
    """Response model for entity set reads."""

    service: str
    entity_set: str
    count: int
    items: List[Dict[str, Any]]


class EntityResponse(BaseModel):
    """Response model for single entity reads and creates."""

    service: str
    entity_set: str
    item: Optional[Dict[str, Any]] = None


class WriteResult(BaseModel):
    """Response model for updates and deletes."""

    service: str
    entity_set: str
    key: str
    ok: bool = True


class UpstreamErrorDetail(BaseModel):
    """Error detail returned when the OData service rejects a call."""

    upstream_status: Optional[int] = Field(default=None, description="HTTP status from SAP")
    code: Optional[str] = Field(default=None, description="SAP error code")
    message: str = Field(description="Error message")
    url: Optional[str] = None
