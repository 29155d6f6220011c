"""Persisted results of generation calls."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from sqlalchemy import Column, DateTime, JSON, Text
from sqlmodel import Field, SQLModel


class GenerationRecord(SQLModel, table=True):
    """One generated image or video.

    Records form a forest through ``parent_image_id``: a refinement points
    at the image it refined and sits one level deeper in the chain.
    """

    __tablename__ = "generated_images"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    organization_id: UUID = Field(index=True)
    user_id: Optional[UUID] = Field(default=None, index=True)
    session_id: Optional[str] = Field(default=None, max_length=100)

    media_type: str = Field(default="image", max_length=20)
    goal_type: Optional[str] = Field(default=None, max_length=100)
    aspect_ratio: Optional[str] = Field(default=None, max_length=20)
    output_format: Optional[str] = Field(default="png", max_length=10)

    final_prompt: str = Field(sa_column=Column(Text), description="Directive actually sent to the provider")
    source_prompt: Optional[str] = Field(default=None, sa_column=Column(Text), description="User scene before context assembly")
    image_url: Optional[str] = None
    video_url: Optional[str] = None
    description: Optional[str] = None
    reference_images: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    brand_context_used: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))

    generation_provider: str = Field(max_length=100, description="Provider that served the call, with fallback marker")
    image_generator: Optional[str] = Field(default=None, max_length=100, description="Model identifier")

    parent_image_id: Optional[UUID] = Field(default=None, index=True)
    chain_depth: int = Field(default=0, ge=0)
    is_chain_origin: bool = Field(default=True)
    refinement_instruction: Optional[str] = None

    library_category: Optional[str] = Field(default=None, max_length=50)
    saved_to_library: bool = Field(default=True)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True))
    )


class GeneratedContent(SQLModel, table=True):
    """One generated piece of copy."""

    __tablename__ = "generated_content"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    organization_id: UUID = Field(index=True)
    user_id: Optional[UUID] = Field(default=None, index=True)
    product_id: Optional[UUID] = Field(default=None)

    content_type: Optional[str] = Field(default=None, max_length=100)
    mode: str = Field(default="generate", max_length=20)
    final_prompt: str = Field(sa_column=Column(Text))
    system_prompt: str = Field(sa_column=Column(Text))
    generated_content: str = Field(sa_column=Column(Text))

    generation_provider: str = Field(max_length=100)
    copy_squad: Optional[str] = Field(default=None, max_length=50)
    awareness_stage: Optional[str] = Field(default=None, max_length=50)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True))
    )
