"""Shared fixtures for the Madison test suite."""

from typing import Any, Dict
from uuid import uuid4

import pytest

from madison.models.knowledge import KnowledgeFragment
from madison.models.product import ProductRecord, product_from_row
from madison.services.knowledge_store import BrandKnowledge

ORG_ID = "6f1c9a3e-1d2b-4c33-9a55-1b9f4f8e2a10"
USER_ID = "0b9a8c7d-6e5f-4a3b-9c2d-1e0f9a8b7c6d"


def make_product(**fields: Any) -> ProductRecord:
    row: Dict[str, Any] = {"id": str(uuid4()), "organization_id": ORG_ID}
    row.update(fields)
    return product_from_row(row)


def make_knowledge(**contents: Dict[str, Any]) -> BrandKnowledge:
    fragments = {
        knowledge_type: KnowledgeFragment.model_validate({
            "organization_id": ORG_ID,
            "knowledge_type": knowledge_type,
            "content": content,
            "version": 1,
        })
        for knowledge_type, content in contents.items()
    }
    return BrandKnowledge(fragments=fragments)


@pytest.fixture
def midnight_oudh() -> ProductRecord:
    return make_product(
        name="Midnight Oudh",
        category="personal_fragrance",
        format="perfume oil",
        collection="Nocturne",
        top_notes="bergamot, pink pepper",
        middle_notes="oudh, rose",
        base_notes="amber, musk",
    )


@pytest.fixture
def cedar_candle() -> ProductRecord:
    return make_product(
        name="Cedar Nights Candle",
        category="home_fragrance",
        format="candle",
        scent_profile="warm cedar and vanilla smoke",
        top_notes="cedar leaf",
        base_notes="vanilla",
    )


@pytest.fixture
def brand_knowledge() -> BrandKnowledge:
    return make_knowledge(
        brand_voice={
            "toneAttributes": ["warm", "assured"],
            "personalityTraits": ["curious"],
            "writingStyle": "Short declarative sentences.",
        },
        vocabulary={
            "approvedTerms": ["ritual", "crafted"],
            "forbiddenPhrases": ["game-changer", "must-have"],
        },
        writing_examples={
            "goodExamples": [{"text": "Evening, distilled.", "analysis": "Restraint."}],
            "badExamples": [{"text": "The BEST scent EVER!!!", "analysis": "Shouting."}],
        },
        structural_guidelines={"sentenceStructure": "Mostly short.", "rhythmPatterns": "Short, short, long."},
        visual_standards={
            "golden_rule": "Light is the subject.",
            "color_palette": [{"name": "Ink", "hex": "#0B0B10"}, {"name": "Brass", "hex": "#B08D57"}],
            "forbidden_elements": ["neon", "clutter"],
        },
    )
