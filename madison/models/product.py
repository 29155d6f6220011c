"""Product record model and the static semantic/visual field partition."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple
from uuid import UUID, uuid4

from sqlalchemy import Column, DateTime, Text
from sqlmodel import Field, SQLModel


class ProductRecord(SQLModel, table=True):
    """A sellable item. Every descriptive field is optional."""

    __tablename__ = "brand_products"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    organization_id: UUID = Field(index=True)
    handle: Optional[str] = Field(default=None, max_length=255, index=True)

    # Semantic: identity
    name: Optional[str] = Field(default=None, max_length=255)
    collection: Optional[str] = None
    category: Optional[str] = Field(default=None, max_length=100)
    product_type: Optional[str] = None
    format: Optional[str] = None
    description: Optional[str] = Field(default=None, sa_column=Column(Text))

    # Semantic: brand narrative
    brand_story: Optional[str] = Field(default=None, sa_column=Column(Text))
    brand_philosophy: Optional[str] = None
    heritage_notes: Optional[str] = None
    usp: Optional[str] = None
    tone: Optional[str] = None
    collection_theme: Optional[str] = None

    # Semantic: archetypes and audience
    archetype_hero: Optional[str] = None
    archetype_everyman: Optional[str] = None
    archetype_explorer: Optional[str] = None
    archetype_lover: Optional[str] = None
    target_audience: Optional[str] = None
    psychographic_profile: Optional[str] = None
    emotional_benefits: Optional[str] = None
    aspirational_identity: Optional[str] = None

    # Semantic: sensory
    scent_family: Optional[str] = None
    top_notes: Optional[str] = None
    middle_notes: Optional[str] = None
    base_notes: Optional[str] = None
    scent_profile: Optional[str] = None
    sensory_experience: Optional[str] = None
    texture_feel: Optional[str] = None
    key_ingredients: Optional[str] = None
    benefits: Optional[str] = None
    usage: Optional[str] = None
    burn_time_hours: Optional[int] = None

    # Visual: world and codes
    visual_world: Optional[str] = None
    visual_world_week: Optional[int] = None
    aesthetic_codes: Optional[str] = None
    symbolic_elements: Optional[str] = None

    # Visual: camera
    shot_type: Optional[str] = None
    shot_type_secondary: Optional[str] = None
    camera_settings: Optional[str] = None
    lens_type: Optional[str] = None
    depth_of_field: Optional[str] = None

    # Visual: light and color
    lighting_mood: Optional[str] = None
    lighting_setup: Optional[str] = None
    color_grading: Optional[str] = None
    composition_style: Optional[str] = None

    # Visual: set
    background_type: Optional[str] = None
    surface_materials: Optional[str] = None
    approved_props: Optional[str] = None
    prop_placement: Optional[str] = None
    styling_direction: Optional[str] = None
    mood_atmosphere: Optional[str] = None
    seasonal_context: Optional[str] = None
    time_of_day: Optional[str] = None
    weather_conditions: Optional[str] = None
    texture_emphasis: Optional[str] = None
    bottle_type: Optional[str] = Field(default=None, max_length=20, description="oil | spray | auto")

    # Visual: archetype flags
    archetype_hero_enabled: Optional[bool] = None
    archetype_everyman_enabled: Optional[bool] = None
    archetype_explorer_enabled: Optional[bool] = None
    archetype_lover_enabled: Optional[bool] = None

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True))
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True))
    )

    def value_of(self, field_name: str) -> Optional[str]:
        """Prompt-ready text for a field, or None when it is empty."""
        value = getattr(self, field_name, None)
        if value is None:
            return None
        if isinstance(value, bool):
            return "yes" if value else None
        text = str(value).strip()
        return text or None

    def filled_fields(self, field_names: Tuple[str, ...]) -> Dict[str, str]:
        """Ordered mapping of the non-empty fields among ``field_names``."""
        filled: Dict[str, str] = {}
        for field_name in field_names:
            value = self.value_of(field_name)
            if value is not None:
                filled[field_name] = value
        return filled


SEMANTIC_FIELDS: Tuple[str, ...] = (
    "name",
    "collection",
    "category",
    "product_type",
    "format",
    "description",
    "brand_story",
    "brand_philosophy",
    "heritage_notes",
    "usp",
    "tone",
    "collection_theme",
    "archetype_hero",
    "archetype_everyman",
    "archetype_explorer",
    "archetype_lover",
    "target_audience",
    "psychographic_profile",
    "emotional_benefits",
    "aspirational_identity",
    "scent_family",
    "top_notes",
    "middle_notes",
    "base_notes",
    "scent_profile",
    "sensory_experience",
    "texture_feel",
    "key_ingredients",
    "benefits",
    "usage",
    "burn_time_hours",
)

VISUAL_FIELDS: Tuple[str, ...] = (
    "visual_world",
    "visual_world_week",
    "aesthetic_codes",
    "symbolic_elements",
    "shot_type",
    "shot_type_secondary",
    "camera_settings",
    "lens_type",
    "depth_of_field",
    "lighting_mood",
    "lighting_setup",
    "color_grading",
    "composition_style",
    "background_type",
    "surface_materials",
    "approved_props",
    "prop_placement",
    "styling_direction",
    "mood_atmosphere",
    "seasonal_context",
    "time_of_day",
    "weather_conditions",
    "texture_emphasis",
    "bottle_type",
    "archetype_hero_enabled",
    "archetype_everyman_enabled",
    "archetype_explorer_enabled",
    "archetype_lover_enabled",
)

# Bookkeeping columns that are neither semantic nor visual
RECORD_FIELDS: Tuple[str, ...] = (
    "id",
    "organization_id",
    "handle",
    "created_at",
    "updated_at",
)


def product_from_row(row: Dict[str, Any]) -> ProductRecord:
    """Validate a store row into a ProductRecord, ignoring unknown columns."""
    known = {
        key: value
        for key, value in row.items()
        if key in ProductRecord.model_fields and value is not None
    }
    return ProductRecord.model_validate(known)
