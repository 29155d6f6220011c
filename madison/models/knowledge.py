"""Brand knowledge fragment model."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from sqlalchemy import Column, DateTime, JSON
from sqlmodel import Field, SQLModel


class KnowledgeType(str, Enum):
    """Fixed knowledge types. Category guidance uses the ``category_`` prefix."""

    BRAND_VOICE = "brand_voice"
    VOCABULARY = "vocabulary"
    WRITING_EXAMPLES = "writing_examples"
    STRUCTURAL_GUIDELINES = "structural_guidelines"
    VISUAL_STANDARDS = "visual_standards"


CATEGORY_KNOWLEDGE_PREFIX = "category_"


def is_known_knowledge_type(knowledge_type: str) -> bool:
    if knowledge_type.startswith(CATEGORY_KNOWLEDGE_PREFIX):
        return len(knowledge_type) > len(CATEGORY_KNOWLEDGE_PREFIX)
    return knowledge_type in {item.value for item in KnowledgeType}


class KnowledgeFragment(SQLModel, table=True):
    """One typed, versioned slice of brand guidance.

    Rows are never edited in place: a new version is inserted and the
    previous one is deactivated.
    """

    __tablename__ = "brand_knowledge"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    organization_id: UUID = Field(index=True, description="Owning organization")
    knowledge_type: str = Field(max_length=100, index=True)
    content: Dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON),
        description="Structured guidance extracted from brand documents or website scans",
    )
    is_active: bool = Field(default=True, index=True)
    version: int = Field(default=1, ge=1)
    document_id: Optional[UUID] = Field(default=None, description="Source brand document, if any")

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True))
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True))
    )
