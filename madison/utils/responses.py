"""Response envelopes shared by every endpoint."""

from datetime import datetime, timezone
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, Field

from madison.config.settings import settings

T = TypeVar("T")


class ResponseMetadata(BaseModel):
    """Metadata included in all API responses."""

    app_name: str = Field(default=settings.APP_NAME)
    app_version: str = Field(default=settings.APP_VERSION)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SuccessResponse(BaseModel, Generic[T]):
    """Generic success response with data and metadata."""

    success: bool = Field(default=True)
    message: str = Field(default="Operation completed successfully")
    data: T
    metadata: ResponseMetadata = Field(default_factory=ResponseMetadata)

    model_config = {
        "json_schema_extra": {
            "example": {
                "success": True,
                "message": "Image generated",
                "data": {},
                "metadata": {
                    "app_name": "Madison Studio Backend",
                    "app_version": "1.0.0",
                    "timestamp": "2026-01-12T15:58:36Z",
                },
            }
        }
    }


class ErrorResponse(BaseModel):
    """Single structured error returned to the caller."""

    success: bool = Field(default=False)
    error: str
    detail: Optional[str] = None
    error_type: Optional[str] = Field(default=None, description="Machine-readable error class")
    metadata: ResponseMetadata = Field(default_factory=ResponseMetadata)


def success_response(
    data: T,
    message: str = "Operation completed successfully",
    **kwargs: Any
) -> SuccessResponse[T]:
    """Create a success response."""
    return SuccessResponse(
        success=True,
        message=message,
        data=data,
        metadata=ResponseMetadata(**kwargs) if kwargs else ResponseMetadata()
    )


def error_response(
    error: str,
    detail: Optional[str] = None,
    error_type: Optional[str] = None,
) -> ErrorResponse:
    """Create an error response."""
    return ErrorResponse(success=False, error=error, detail=detail, error_type=error_type)
