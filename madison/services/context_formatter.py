"""
Context Formatter.

Renders brand knowledge fragments and product fields into directive text
sections. Rendering is deterministic: the same knowledge and product always
produce the same sections in the same order.

Copy prompts use this order:
    1. Global persona and quality rules
    2. Brand voice
    3. Vocabulary (approved terms and explicit "never use" lists)
    4. Writing examples
    5. Structural rules
    6. Category-specific product specification
    7. Collection context

Image prompts promote the visual fields to the technical specification and
demote the semantic fields to a trailing context block.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from madison.models.knowledge import KnowledgeType
from madison.models.product import SEMANTIC_FIELDS, VISUAL_FIELDS, ProductRecord
from madison.services.knowledge_store import BrandKnowledge


BANNER = "═" * 60

MADISON_SYSTEM_RULES = """You are Madison, the editorial director of a luxury brand studio.
You write with precision and restraint, in the brand's own voice.

QUALITY RULES:
- Output clean, copy-paste ready plain text with no Markdown formatting
- No emojis, no exclamation-driven enthusiasm, no generic marketing cliches
- Use only the product facts provided below; never invent specifications, claims or ingredients
- When a detail is not provided, leave it out rather than guessing"""

_EMPTY_MARKERS = {"", "n/a", "na", "none", "not specified", "null", "-", "—"}

# Values listed in the generic product block; category and collection fields
# get their own sections.
NOTES_FIELDS: Tuple[str, ...] = ("top_notes", "middle_notes", "base_notes")
CATEGORY_GOVERNED_FIELDS: Tuple[str, ...] = NOTES_FIELDS + (
    "scent_family",
    "scent_profile",
    "key_ingredients",
    "benefits",
)
COLLECTION_FIELDS: Tuple[str, ...] = ("collection", "collection_theme")

FIELD_LABELS: Dict[str, str] = {
    "usp": "Unique selling proposition",
    "burn_time_hours": "Burn time (hours)",
    "visual_world_week": "Visual world week",
    "shot_type_secondary": "Secondary shot type",
    "archetype_hero_enabled": "Hero archetype visuals",
    "archetype_everyman_enabled": "Everyman archetype visuals",
    "archetype_explorer_enabled": "Explorer archetype visuals",
    "archetype_lover_enabled": "Lover archetype visuals",
}


def field_label(field_name: str) -> str:
    return FIELD_LABELS.get(field_name, field_name.replace("_", " ").capitalize())


def section(title: str, lines: Iterable[str]) -> str:
    """Render a banner section. Returns "" when there are no lines."""
    body = [line for line in lines if line]
    if not body:
        return ""
    return "\n".join([BANNER, title.upper(), BANNER, *body])


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return str(value).strip().lower() in _EMPTY_MARKERS


def _pick(content: Dict[str, Any], *keys: str) -> Any:
    """First non-blank value among ``keys`` (extractors emit camelCase or snake_case)."""
    for key in keys:
        value = content.get(key)
        if not is_blank(value):
            return value
    return None


def _as_list(value: Any) -> List[str]:
    if is_blank(value):
        return []
    if isinstance(value, dict):
        return [f"{key}: {item}" for key, item in value.items() if not is_blank(item)]
    if isinstance(value, (list, tuple, set)):
        items: List[str] = []
        for item in value:
            if isinstance(item, dict):
                text = item.get("text") or item.get("name") or item.get("value")
                if not is_blank(text):
                    items.append(str(text).strip())
            elif not is_blank(item):
                items.append(str(item).strip())
        return items
    return [str(value).strip()]


def _bullets(values: Iterable[str], prefix: str = "- ") -> List[str]:
    return [f"{prefix}{value}" for value in values]


# ═══════════════════════════════════════════════════════════════════════════════
# BRAND KNOWLEDGE SECTIONS
# ═══════════════════════════════════════════════════════════════════════════════

def format_brand_voice(content: Optional[Dict[str, Any]]) -> str:
    if not content:
        return ""
    lines: List[str] = []
    tone = _as_list(_pick(content, "toneAttributes", "tone_attributes", "tone"))
    if tone:
        lines.append(f"Tone: {', '.join(tone)}")
    personality = _as_list(_pick(content, "personalityTraits", "personality_traits", "personality"))
    if personality:
        lines.append(f"Personality: {', '.join(personality)}")
    style = _pick(content, "writingStyle", "writing_style", "style")
    if style:
        lines.append(f"Writing style: {' '.join(_as_list(style))}")
    characteristics = _as_list(_pick(content, "keyCharacteristics", "key_characteristics", "characteristics"))
    if characteristics:
        lines.append("Key characteristics:")
        lines.extend(_bullets(characteristics))
    return section("Brand voice", lines)


def format_vocabulary(content: Optional[Dict[str, Any]]) -> str:
    if not content:
        return ""
    lines: List[str] = []
    approved = _as_list(_pick(content, "approvedTerms", "approved_terms", "approved"))
    if approved:
        lines.append(f"Approved terms: {', '.join(approved)}")
    terminology = _as_list(_pick(content, "industryTerminology", "industry_terminology"))
    if terminology:
        lines.append(f"Industry terminology: {', '.join(terminology)}")
    preferred = _pick(content, "preferredPhrasing", "preferred_phrasing")
    if isinstance(preferred, dict) and preferred:
        lines.append("Preferred phrasing (use -> instead of):")
        lines.extend(
            f"- {use} -> not {avoid}"
            for use, avoid in preferred.items()
            if not is_blank(use) and not is_blank(avoid)
        )
    forbidden = forbidden_phrases(content)
    if forbidden:
        lines.append("NEVER USE these words or phrases:")
        lines.extend(_bullets(forbidden, prefix="- NEVER: "))
    return section("Vocabulary rules", lines)


def forbidden_phrases(vocabulary: Optional[Dict[str, Any]]) -> List[str]:
    """Brand-level forbidden phrases from a vocabulary fragment."""
    if not vocabulary:
        return []
    return _as_list(_pick(vocabulary, "forbiddenPhrases", "forbidden_phrases", "forbidden"))


def format_writing_examples(content: Optional[Dict[str, Any]]) -> str:
    if not content:
        return ""
    lines: List[str] = []
    for key_options, heading in (
        (("goodExamples", "good_examples", "good"), "ON-BRAND EXAMPLE"),
        (("badExamples", "bad_examples", "bad"), "OFF-BRAND EXAMPLE (avoid)"),
    ):
        examples = _pick(content, *key_options) or []
        for example in examples:
            if isinstance(example, dict):
                text = example.get("text")
                analysis = example.get("analysis") or example.get("rationale")
            else:
                text, analysis = example, None
            if is_blank(text):
                continue
            lines.append(f"{heading}: \"{str(text).strip()}\"")
            if not is_blank(analysis):
                lines.append(f"  Why: {str(analysis).strip()}")
    return section("Writing examples", lines)


def format_structural_guidelines(content: Optional[Dict[str, Any]]) -> str:
    if not content:
        return ""
    rules = (
        (("sentenceStructure", "sentence_structure", "sentences"), "Sentences"),
        (("paragraphLength", "paragraph_length", "paragraphs"), "Paragraphs"),
        (("punctuationStyle", "punctuation_style", "punctuation"), "Punctuation"),
        (("rhythmPatterns", "rhythm_patterns", "rhythm"), "Rhythm"),
    )
    lines = []
    for keys, label in rules:
        value = _pick(content, *keys)
        if value:
            lines.append(f"{label}: {' '.join(_as_list(value))}")
    return section("Structural rules", lines)


def format_visual_standards(content: Optional[Dict[str, Any]]) -> str:
    """Visual standards block for image prompts."""
    if not content:
        return ""
    lines: List[str] = []
    golden_rule = _pick(content, "golden_rule", "goldenRule")
    if golden_rule:
        lines.append(f"Golden rule: {' '.join(_as_list(golden_rule))}")

    palette = _pick(content, "color_palette", "colorPalette") or []
    colors = []
    for color in list(palette)[:5]:
        if isinstance(color, dict):
            name, hex_code = color.get("name"), color.get("hex")
            if name and hex_code:
                colors.append(f"{name} ({hex_code})")
            elif name or hex_code:
                colors.append(str(name or hex_code))
        elif not is_blank(color):
            colors.append(str(color))
    if colors:
        lines.append(f"Brand colors: {', '.join(colors)}")

    props = _as_list(_pick(content, "approved_props", "approvedProps"))[:20]
    if props:
        lines.append(f"Approved props: {', '.join(props)}")
    lighting = _pick(content, "lighting_mandates", "lightingMandates")
    if lighting:
        lines.append(f"Lighting: {' '.join(_as_list(lighting))}")
    templates = _as_list(_pick(content, "templates"))
    if templates:
        lines.append(f"Approved templates: {', '.join(templates)}")
    forbidden = _as_list(_pick(content, "forbidden_elements", "forbiddenElements"))
    if forbidden:
        lines.append(f"Forbidden elements: {', '.join(forbidden)}")
    return section("Brand visual standards", lines)


def format_category_guidance(content: Optional[Dict[str, Any]]) -> List[str]:
    """Lines from a ``category_<name>`` fragment, rendered generically."""
    if not content:
        return []
    lines: List[str] = []
    for key, value in content.items():
        values = _as_list(value)
        if values:
            lines.append(f"{field_label(key)}: {'; '.join(values)}")
    return lines


# ═══════════════════════════════════════════════════════════════════════════════
# CATEGORY VOCABULARY REGISTERS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class CategoryRegister:
    """Which scent or ingredient vocabulary a category may use."""

    category: str
    fields: Tuple[str, ...]
    directives: Tuple[str, ...]
    forbidden_terms: Tuple[str, ...] = field(default_factory=tuple)


NOTES_PYRAMID_TERMS: Tuple[str, ...] = (
    "top notes",
    "top note",
    "middle notes",
    "middle note",
    "heart notes",
    "heart note",
    "base notes",
    "base note",
)

CATEGORY_REGISTERS: Dict[str, CategoryRegister] = {
    "personal_fragrance": CategoryRegister(
        category="personal_fragrance",
        fields=("scent_family",) + NOTES_FIELDS,
        directives=(
            "Describe the fragrance through its notes pyramid, using only the notes listed here.",
            "Never invent, add or imply any note that is not listed.",
        ),
    ),
    "home_fragrance": CategoryRegister(
        category="home_fragrance",
        fields=("scent_profile", "scent_family"),
        directives=(
            "Describe the scent as one holistic impression of the room it fills.",
            "Do not break the scent into layered or tiered notes, and do not use perfumery pyramid terms.",
        ),
        forbidden_terms=NOTES_PYRAMID_TERMS,
    ),
    "skincare": CategoryRegister(
        category="skincare",
        fields=("key_ingredients", "benefits"),
        directives=(
            "Speak in ingredients and the benefits they deliver.",
            "Do not use perfumery or fragrance-note language of any kind.",
        ),
        forbidden_terms=NOTES_PYRAMID_TERMS + ("sillage", "dry down", "drydown"),
    ),
}


def category_register(category: Optional[str]) -> Optional[CategoryRegister]:
    if not category:
        return None
    return CATEGORY_REGISTERS.get(category.strip().lower())


def find_register_violations(text: str, category: Optional[str]) -> List[str]:
    """Forbidden vocabulary for ``category`` that appears in ``text``."""
    register = category_register(category)
    if register is None or not text:
        return []
    violations = []
    for term in register.forbidden_terms:
        if re.search(rf"\b{re.escape(term)}\b", text, flags=re.IGNORECASE):
            violations.append(term)
    return violations


# ═══════════════════════════════════════════════════════════════════════════════
# PRODUCT SECTIONS
# ═══════════════════════════════════════════════════════════════════════════════

def _field_lines(product: ProductRecord, field_names: Tuple[str, ...]) -> List[str]:
    return [
        f"{field_label(name)}: {value}"
        for name, value in product.filled_fields(field_names).items()
        if not is_blank(value)
    ]


def format_product_specification(
    product: Optional[ProductRecord],
    category_guidance: Optional[Dict[str, Any]] = None,
) -> str:
    """Category-specific product block for copy prompts (semantic fields only)."""
    if product is None:
        return ""

    general_fields = tuple(
        name for name in SEMANTIC_FIELDS
        if name not in CATEGORY_GOVERNED_FIELDS and name not in COLLECTION_FIELDS
    )
    lines = _field_lines(product, general_fields)

    register = category_register(product.category)
    if register is not None:
        sensory_lines = _field_lines(product, register.fields)
        if register.category == "home_fragrance" and product.value_of("scent_profile"):
            # scent family is redundant next to a holistic profile
            sensory_lines = _field_lines(product, ("scent_profile",))
        if sensory_lines:
            lines.append("")
            lines.extend(sensory_lines)
        lines.append("")
        lines.append("CATEGORY RULES:")
        lines.extend(_bullets(register.directives))
    else:
        sensory_lines = _field_lines(product, CATEGORY_GOVERNED_FIELDS)
        if sensory_lines:
            lines.append("")
            lines.extend(sensory_lines)

    guidance = format_category_guidance(category_guidance)
    if guidance:
        lines.append("")
        lines.append("CATEGORY GUIDANCE:")
        lines.extend(_bullets(guidance))

    return section("Product specification", lines)


def format_collection_context(product: Optional[ProductRecord]) -> str:
    if product is None:
        return ""
    collection = product.value_of("collection")
    theme = product.value_of("collection_theme")
    if not collection and not theme:
        return ""
    lines = []
    if collection:
        lines.append(f"Collection: {collection}")
    if theme:
        lines.append(f"Collection theme: {theme}")
    if collection:
        lines.append("Mention the collection name at most once, or not at all.")
    return section("Collection context", lines)


def format_visual_specification(product: Optional[ProductRecord]) -> str:
    """Primary technical block for image prompts."""
    if product is None:
        return ""
    lines = _field_lines(product, VISUAL_FIELDS)
    if product.value_of("name"):
        lines.insert(0, f"Product: {product.value_of('name')}")
    return section("Product visual specification", lines)


def format_semantic_context(product: Optional[ProductRecord]) -> str:
    """Trailing context block for image prompts."""
    if product is None:
        return ""
    return section("Product context", _field_lines(product, SEMANTIC_FIELDS))


# ═══════════════════════════════════════════════════════════════════════════════
# ASSEMBLY
# ═══════════════════════════════════════════════════════════════════════════════

def build_copy_context(
    knowledge: BrandKnowledge,
    product: Optional[ProductRecord],
    persona_section: str = "",
    include_system_rules: bool = True,
) -> List[str]:
    """Ordered, non-empty context sections for a copywriting prompt."""
    category = product.category if product else None
    sections = [
        MADISON_SYSTEM_RULES if include_system_rules else "",
        persona_section,
        format_brand_voice(knowledge.content(KnowledgeType.BRAND_VOICE.value)),
        format_vocabulary(knowledge.content(KnowledgeType.VOCABULARY.value)),
        format_writing_examples(knowledge.content(KnowledgeType.WRITING_EXAMPLES.value)),
        format_structural_guidelines(knowledge.content(KnowledgeType.STRUCTURAL_GUIDELINES.value)),
        format_product_specification(product, knowledge.category_content(category)),
        format_collection_context(product),
    ]
    return [text for text in sections if text]


def build_image_context(
    knowledge: BrandKnowledge,
    product: Optional[ProductRecord],
) -> Tuple[List[str], List[str]]:
    """Primary and trailing context sections for an image prompt."""
    primary = [
        format_visual_standards(knowledge.content(KnowledgeType.VISUAL_STANDARDS.value)),
        format_visual_specification(product),
    ]
    trailing = [format_semantic_context(product)]
    return [text for text in primary if text], [text for text in trailing if text]
