"""Schemas for brand knowledge endpoints."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class SupersedeKnowledgeRequest(BaseModel):
    """Request schema for POST /v1/knowledge/{organization_id}/{knowledge_type}."""

    content: Dict[str, Any] = Field(..., description="Structured guidance for this knowledge type.")
    document_id: Optional[str] = Field(default=None, description="Brand document the content was extracted from.")

    model_config = {
        "json_schema_extra": {
            "example": {
                "content": {
                    "toneAttributes": ["warm", "assured"],
                    "personalityTraits": ["curious"],
                    "writingStyle": "Short declarative sentences.",
                }
            }
        }
    }


class KnowledgeVersionResponse(BaseModel):
    id: str
    knowledge_type: str
    version: int
    is_active: bool
