"""Models module - imports all models for SQLModel registration."""

from madison.models.knowledge import KnowledgeFragment, KnowledgeType
from madison.models.product import ProductRecord, SEMANTIC_FIELDS, VISUAL_FIELDS
from madison.models.generation import GenerationRecord, GeneratedContent
from madison.models.master import MasterDocument

__all__ = [
    "KnowledgeFragment",
    "KnowledgeType",
    "ProductRecord",
    "SEMANTIC_FIELDS",
    "VISUAL_FIELDS",
    "GenerationRecord",
    "GeneratedContent",
    "MasterDocument",
]
