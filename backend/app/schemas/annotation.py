"""
Point Cloud Annotator Backend: Pydantic Request/Response Schemas
==================================================================

What:  Pydantic models defining the API contract between frontend and backend.
How:   FastAPI validates request bodies against the request models and
       serializes responses through the response models. The same
       `AnnotationData` model is the JSON payload stored in the cache.

Envelope:
    Success:  {"data": <record>}  or  {"data": [<record>, ...]}
    Failure:  {"error": "<machine code>", "message": "<human text>", "request_id": "..."}
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ══════════════════════════════════════════════════════════════════════════
# Entity
# ══════════════════════════════════════════════════════════════════════════


class AnnotationData(BaseModel):
    """
    What:  Full representation of an annotation.
    Who:   Returned by every annotation endpoint; cached verbatim in Redis.
    """
    id: str = Field(description="Unique annotation identifier (UUID)")
    x: float = Field(description="X coordinate in point cloud space")
    y: float = Field(description="Y coordinate in point cloud space")
    z: float = Field(description="Z coordinate in point cloud space")
    title: str = Field(description="Short label, at most 256 bytes of UTF-8")
    description: str = Field(default="", description="Free text, at most 256 bytes of UTF-8")
    created_at: datetime = Field(description="Creation timestamp (UTC ISO 8601)")
    updated_at: datetime = Field(description="Last modification timestamp (UTC ISO 8601)")

    model_config = ConfigDict(from_attributes=True)


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class AnnotationCreate(BaseModel):
    """
    What:  Body of POST /api/v1/annotations.

    Coordinates and title are required; description defaults to "".
    Byte-length rules for title/description are applied by AnnotationService,
    so they hold identically for create and update.
    """
    x: float
    y: float
    z: float
    title: str
    description: str = ""

    model_config = ConfigDict(allow_inf_nan=False)


class AnnotationUpdate(BaseModel):
    """
    What:  Body of PUT/PATCH /api/v1/annotations/{id}.

    Every field is optional. `changes()` returns only the fields the client
    actually sent, so an absent field and a present empty string stay
    distinguishable. An explicit JSON null counts as absent.
    """
    x: Optional[float] = None
    y: Optional[float] = None
    z: Optional[float] = None
    title: Optional[str] = None
    description: Optional[str] = None

    model_config = ConfigDict(allow_inf_nan=False)

    def changes(self) -> Dict[str, Any]:
        """Fields present in the request body, with nulls dropped."""
        return self.model_dump(exclude_unset=True, exclude_none=True)


# ══════════════════════════════════════════════════════════════════════════
# Response Envelopes
# ══════════════════════════════════════════════════════════════════════════


class AnnotationResponse(BaseModel):
    """Single-record envelope."""
    data: AnnotationData


class AnnotationListResponse(BaseModel):
    """
    List envelope. `data` is always an array, empty when there are no
    annotations, never null.
    """
    data: List[AnnotationData] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """
    What:  Standardized error body for every failure, in both roles.

    Fields:
        error: Machine-readable code, one of invalid_request, not_found,
               internal_error, configuration_error, service_unavailable,
               proxy_error
        message: Human-readable description, safe to display
        request_id: Correlation ID for tracing this error in server logs
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """
    What:  Liveness payload for GET /health.

    The gateway reports identity only; the handler additionally reports the
    reachability of its database and cache.
    """
    status: str = Field(description="healthy, degraded or unhealthy")
    role: str = Field(description="gateway or handler")
    service: str = Field(description="Service identity")
    version: str = Field(description="Application version")
    database: Optional[str] = Field(default=None, description="connected or disconnected")
    cache: Optional[str] = Field(default=None, description="connected, disconnected or disabled")
    uptime_seconds: float = Field(description="Seconds since service started")
