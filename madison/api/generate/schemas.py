"""Request and response schemas for the generation endpoints."""

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class RewriteRule(BaseModel):
    find: str = Field(..., min_length=1, description="Phrase to replace (case-insensitive).")
    replace: str = Field(default="", description="Replacement text; empty removes the phrase.")


class ConstraintsIn(BaseModel):
    """Caller-supplied rewrite rules and prohibited terms."""

    rewrite_rules: List[RewriteRule] = Field(default_factory=list)
    prohibited_terms: List[str] = Field(default_factory=list)


class ReferenceImageIn(BaseModel):
    url: str = Field(..., min_length=1, description="HTTP(S) or base64 data URL.")
    label: Optional[str] = Field(default=None, description="Free text; decides the product/background/style role.")
    description: Optional[str] = None


class ProModeSettings(BaseModel):
    camera: Optional[str] = None
    lighting: Optional[str] = None
    environment: Optional[str] = None


class GenerateCopyRequest(BaseModel):
    """Request schema for POST /v1/generate/copy."""

    brief: str = Field(..., min_length=1, description="What the copy should accomplish.")
    organization_id: Optional[str] = None
    product_id: Optional[str] = None
    content_type: Optional[str] = Field(default=None, description="e.g. product_description, instagram_caption, ad_copy")
    style_override: Optional[str] = Field(default=None, description="Explicit style or squad name.")
    mode: Literal["generate", "consult"] = "generate"
    constraints: Optional[ConstraintsIn] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "brief": "Write a product description for our new oud perfume oil",
                "organization_id": "6f1c9a3e-1d2b-4c33-9a55-1b9f4f8e2a10",
                "product_id": "c3d1e2f0-0b7a-4a2e-8f0c-5d6e7f8a9b0c",
                "content_type": "product_description",
            }
        }
    }


class CopyGenerationResponse(BaseModel):
    content: str
    provider: str = Field(..., description="Provider that produced the copy; marked when a fallback served it.")
    model: str
    copy_squad: str
    awareness_stage: str
    generation_id: Optional[str] = None
    system_prompt: str
    user_prompt: str


class GenerateImageRequest(BaseModel):
    """Request schema for POST /v1/generate/image."""

    prompt: str = Field(..., min_length=1, description="Scene description, or the refinement when chaining.")
    organization_id: Optional[str] = None
    product_id: Optional[str] = None
    session_id: Optional[str] = None
    goal_type: Optional[str] = Field(default=None, description="e.g. product, lifestyle, flat_lay, social")
    aspect_ratio: str = "1:1"
    output_format: str = "png"
    negative_prompt: Optional[str] = None
    seed: Optional[int] = None
    reference_images: List[ReferenceImageIn] = Field(default_factory=list)
    pro_mode: Optional[ProModeSettings] = None
    constraints: Optional[ConstraintsIn] = None

    parent_image_id: Optional[str] = Field(default=None, description="Generation being refined.")
    parent_prompt: Optional[str] = Field(default=None, description="Prompt of the parent when the store lacks it.")
    refinement_instruction: Optional[str] = None

    provider: Optional[Literal["auto", "gemini", "freepik"]] = "auto"
    freepik_model: Optional[str] = None
    resolution: Optional[str] = Field(default=None, description="1k, 2k or 4k; gated by subscription tier.")


class ImageGenerationResponse(BaseModel):
    image_url: str
    generation_id: Optional[str] = None
    provider: str
    model: str
    final_prompt: str
    chain_depth: int = 0
    parent_image_id: Optional[str] = None
    library_category: str
    resolution: str
    tier_restricted: bool = False
    restrictions: List[str] = Field(default_factory=list)
    references_used: int = 0


class GenerateVideoRequest(BaseModel):
    """Request schema for POST /v1/generate/video."""

    image_url: str = Field(..., min_length=1, description="Still image to animate.")
    prompt: str = Field(..., min_length=1)
    organization_id: Optional[str] = None
    goal_type: Optional[str] = None
    aspect_ratio: str = "16:9"
    resolution: Literal["720p", "1080p"] = "720p"
    duration: Literal["5", "10"] = "5"
    camera_fixed: bool = False
    seed: Optional[int] = None


class VideoGenerationResponse(BaseModel):
    video_url: str
    generation_id: Optional[str] = None
    provider: str
    resolution: str
    task_id: Optional[str] = None
    final_prompt: str


class RouteRequest(BaseModel):
    """Request schema for POST /v1/generate/route."""

    brief: str = ""
    content_type: Optional[str] = None
    style_override: Optional[str] = None


class RouteResponse(BaseModel):
    copy_squad: str
    visual_squad: str
    primary_master: str
    secondary_master: Optional[str] = None
    awareness_stage: str
    forbidden_language: List[str]
    reason: str
    scores: Dict[str, int] = Field(default_factory=dict)
