"""Unit tests for context section rendering."""

from madison.models.product import SEMANTIC_FIELDS, VISUAL_FIELDS
from madison.services.context_formatter import (
    BANNER,
    MADISON_SYSTEM_RULES,
    build_copy_context,
    build_image_context,
    find_register_violations,
    format_brand_voice,
    format_collection_context,
    format_product_specification,
    format_vocabulary,
    format_visual_standards,
)
from madison.services.knowledge_store import BrandKnowledge

from conftest import make_product


class TestFieldPartition:
    """The semantic and visual field sets."""

    def test_partitions_are_disjoint(self):
        """No product field belongs to both partitions."""
        assert not set(SEMANTIC_FIELDS) & set(VISUAL_FIELDS)

    def test_partitions_have_no_duplicates(self):
        """Each partition lists a field once."""
        assert len(SEMANTIC_FIELDS) == len(set(SEMANTIC_FIELDS))
        assert len(VISUAL_FIELDS) == len(set(VISUAL_FIELDS))


class TestKnowledgeSections:
    """Rendering of brand knowledge fragments."""

    def test_empty_content_renders_nothing(self):
        """Missing fragments are omitted rather than rendered empty."""
        assert format_brand_voice(None) == ""
        assert format_vocabulary({}) == ""
        assert format_visual_standards(None) == ""

    def test_brand_voice_accepts_camel_and_snake_case(self):
        """Extractor output in either key style renders the same lines."""
        camel = format_brand_voice({"toneAttributes": ["warm"], "personalityTraits": ["bold"]})
        snake = format_brand_voice({"tone_attributes": ["warm"], "personality_traits": ["bold"]})
        assert camel == snake
        assert "Tone: warm" in camel
        assert camel.startswith(BANNER)

    def test_vocabulary_renders_never_use_list(self):
        """Forbidden phrases become an explicit never-use list."""
        text = format_vocabulary({"approvedTerms": ["ritual"], "forbiddenPhrases": ["game-changer"]})
        assert "Approved terms: ritual" in text
        assert "- NEVER: game-changer" in text

    def test_visual_standards_limits_palette_to_five_colors(self):
        """Only the first five palette colors are listed, as name (hex)."""
        palette = [{"name": f"C{i}", "hex": f"#00000{i}"} for i in range(8)]
        text = format_visual_standards({"color_palette": palette})
        assert "C0 (#000000)" in text
        assert "C4 (#000004)" in text
        assert "C5" not in text


class TestProductSpecification:
    """Category registers and field omission."""

    def test_personal_fragrance_lists_every_recorded_note(self, midnight_oudh):
        """The notes pyramid is rendered verbatim from the record."""
        text = format_product_specification(midnight_oudh)
        assert "bergamot, pink pepper" in text
        assert "oudh, rose" in text
        assert "amber, musk" in text
        assert "Never invent" in text

    def test_home_fragrance_omits_notes_pyramid(self, cedar_candle):
        """A candle is described by its scent profile, never by notes."""
        text = format_product_specification(cedar_candle)
        assert "warm cedar and vanilla smoke" in text
        assert "top notes" not in text.lower()
        assert "base notes" not in text.lower()
        assert "cedar leaf" not in text

    def test_skincare_uses_ingredients(self):
        """Skincare products speak in ingredients and benefits."""
        serum = make_product(
            name="Dew Serum",
            category="skincare",
            key_ingredients="squalane, niacinamide",
            benefits="barrier repair",
            top_notes="neroli",
        )
        text = format_product_specification(serum)
        assert "squalane, niacinamide" in text
        assert "barrier repair" in text
        assert "neroli" not in text

    def test_blank_fields_are_omitted(self):
        """Empty, whitespace and N/A values never reach the prompt."""
        product = make_product(name="Plain", category="personal_fragrance", usp="   ", tone="N/A")
        text = format_product_specification(product)
        assert "Unique selling proposition" not in text
        assert "N/A" not in text

    def test_collection_is_kept_out_of_specification(self, midnight_oudh):
        """The collection name lives in its own section with a mention limit."""
        assert "Nocturne" not in format_product_specification(midnight_oudh)
        collection = format_collection_context(midnight_oudh)
        assert "Collection: Nocturne" in collection
        assert "at most once" in collection

    def test_register_violations_are_detected(self):
        """Notes vocabulary in home fragrance copy is reported."""
        assert find_register_violations("Top notes of cedar.", "home_fragrance") == ["top notes"]
        assert find_register_violations("Top notes of cedar.", "personal_fragrance") == []


class TestContextAssembly:
    """Section order for copy and image prompts."""

    def test_copy_context_follows_fixed_order(self, brand_knowledge, midnight_oudh):
        """System rules, voice, vocabulary, examples, structure, product, collection."""
        sections = build_copy_context(brand_knowledge, midnight_oudh)
        titles = [section.splitlines()[1] if section.startswith(BANNER) else "SYSTEM" for section in sections]
        assert titles == [
            "SYSTEM",
            "BRAND VOICE",
            "VOCABULARY RULES",
            "WRITING EXAMPLES",
            "STRUCTURAL RULES",
            "PRODUCT SPECIFICATION",
            "COLLECTION CONTEXT",
        ]
        assert sections[0] == MADISON_SYSTEM_RULES

    def test_copy_context_without_knowledge_degrades(self):
        """No knowledge and no product leaves just the system rules."""
        assert build_copy_context(BrandKnowledge(), None) == [MADISON_SYSTEM_RULES]

    def test_copy_context_excludes_visual_fields(self, brand_knowledge):
        """Copy prompts carry semantic fields only."""
        product = make_product(name="Lumen", category="personal_fragrance", lighting_mood="chiaroscuro")
        joined = "\n".join(build_copy_context(brand_knowledge, product))
        assert "chiaroscuro" not in joined

    def test_image_context_promotes_visual_fields(self, brand_knowledge):
        """Visual fields lead; semantic fields trail as context."""
        product = make_product(
            name="Lumen",
            category="personal_fragrance",
            lighting_mood="chiaroscuro",
            brand_story="Made in Grasse.",
        )
        primary, trailing = build_image_context(brand_knowledge, product)
        assert "chiaroscuro" in "\n".join(primary)
        assert "Made in Grasse." not in "\n".join(primary)
        assert "Made in Grasse." in "\n".join(trailing)
        assert primary[0].splitlines()[1] == "BRAND VISUAL STANDARDS"
