"""
Style/Squad Router.

Chooses the copywriting squad (a cluster of master personas) and the reader's
awareness stage for a generation request. Routing is a pure keyword
classifier with no model call, so the same (content type, brief, override)
always yields the same strategy.

Squad precedence:
    1. Explicit style override
    2. Direct content-type mapping
    3. Keyword scoring of the brief
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from madison.config.logger import app_logger
from madison.models.master import MasterDocument
from madison.services.context_formatter import section
from madison.services.knowledge_store import fetch_master_documents


class Squad(str, Enum):
    SCIENTISTS = "THE_SCIENTISTS"
    STORYTELLERS = "THE_STORYTELLERS"
    DISRUPTORS = "THE_DISRUPTORS"
    # Visual-only squad paired with the Scientists
    MINIMALISTS = "THE_MINIMALISTS"


COPY_SQUADS: Tuple[Squad, ...] = (Squad.SCIENTISTS, Squad.STORYTELLERS, Squad.DISRUPTORS)
DEFAULT_SQUAD = Squad.STORYTELLERS


class AwarenessStage(str, Enum):
    UNAWARE = "unaware"
    PROBLEM_AWARE = "problem_aware"
    SOLUTION_AWARE = "solution_aware"
    PRODUCT_AWARE = "product_aware"
    MOST_AWARE = "most_aware"


DEFAULT_AWARENESS_STAGE = AwarenessStage.SOLUTION_AWARE


@dataclass(frozen=True)
class SquadDefinition:
    philosophy: str
    masters: Tuple[str, ...]
    use_when: str
    forbidden_language: Tuple[str, ...]

    @property
    def primary_master(self) -> str:
        return self.masters[0]

    @property
    def secondary_master(self) -> Optional[str]:
        return self.masters[1] if len(self.masters) > 1 else None


SQUAD_DEFINITIONS: Dict[Squad, SquadDefinition] = {
    Squad.SCIENTISTS: SquadDefinition(
        philosophy="Specificity sells. Every claim earns its place with a fact, a number or a reason why.",
        masters=("OGILVY_SPECIFICITY", "HOPKINS_REASON_WHY", "CAPLES_HEADLINES"),
        use_when="Product pages, technical specifications, ingredient breakdowns, educational content",
        forbidden_language=("romantic imagery", "vague claims", "metaphors", "wandering narratives"),
    ),
    Squad.STORYTELLERS: SquadDefinition(
        philosophy="Sell the dream, not the product. Romance the reader into the world around the object.",
        masters=("PETERMAN_ROMANCE", "COLLIER_CONVERSATION"),
        use_when="Brand stories, lifestyle content, social captions, fragrance and candle narratives",
        forbidden_language=("clinical language", "percentages", "data-driven claims", "mechanism talk"),
    ),
    Squad.DISRUPTORS: SquadDefinition(
        philosophy="Stop the scroll. Break the pattern first, then earn the attention you took.",
        masters=("HALBERT_URGENCY", "BERNBACH_DISRUPTION"),
        use_when="Paid social, ads, launches, subject lines and headlines",
        forbidden_language=("gentle language", "qualifiers", "long explanations", "safe phrasing"),
    ),
}

STYLE_OVERRIDE_TO_SQUAD: Dict[str, Squad] = {
    "poetic": Squad.STORYTELLERS,
    "story": Squad.STORYTELLERS,
    "direct": Squad.SCIENTISTS,
    "educational": Squad.SCIENTISTS,
    "minimal": Squad.SCIENTISTS,
    "disruptive": Squad.DISRUPTORS,
    "urgent": Squad.DISRUPTORS,
}

CONTENT_TYPE_TO_SQUAD: Dict[str, Squad] = {
    "instagram_caption": Squad.STORYTELLERS,
    "social_post": Squad.STORYTELLERS,
    "brand_story": Squad.STORYTELLERS,
    "lifestyle_description": Squad.STORYTELLERS,
    "product_description": Squad.SCIENTISTS,
    "product_page": Squad.SCIENTISTS,
    "technical_spec": Squad.SCIENTISTS,
    "ingredient_breakdown": Squad.SCIENTISTS,
    "educational": Squad.SCIENTISTS,
    "ad_copy": Squad.DISRUPTORS,
    "paid_social": Squad.DISRUPTORS,
    "email_subject": Squad.DISRUPTORS,
    "headline": Squad.DISRUPTORS,
    "launch_announcement": Squad.DISRUPTORS,
}

SCIENTIST_KEYWORDS: Tuple[str, ...] = (
    "specific", "data", "proof", "technical", "ingredients", "clinical",
    "efficacy", "percentage", "features", "specs",
)
STORYTELLER_KEYWORDS: Tuple[str, ...] = (
    "story", "romance", "lifestyle", "fragrance", "candle", "journey",
    "adventure", "dream", "imagine", "evoke", "atmosphere",
)
DISRUPTOR_KEYWORDS: Tuple[str, ...] = (
    "ad", "scroll", "attention", "launch", "urgent", "bold", "break",
    "stop", "now", "limited", "exclusive",
)

# Checked in this order; the first stage with a hit wins.
AWARENESS_STAGE_KEYWORDS: Tuple[Tuple[AwarenessStage, Tuple[str, ...]], ...] = (
    (AwarenessStage.UNAWARE, ("unaware", "introduce", "discover")),
    (AwarenessStage.PROBLEM_AWARE, ("problem", "pain point", "struggle")),
    (AwarenessStage.SOLUTION_AWARE, ("compare", "alternative", "option")),
    (AwarenessStage.PRODUCT_AWARE, ("reorder", "restock", "returning customer", "loyal", "back in stock")),
    (AwarenessStage.MOST_AWARE, ("buy", "purchase", "ready")),
)

AWARENESS_TEMPLATES: Dict[AwarenessStage, Tuple[str, ...]] = {
    AwarenessStage.UNAWARE: (
        "Open with a relatable observation about the reader's life",
        "Reveal a hidden problem they did not know they had",
        "Show why this problem matters to them",
        "Introduce the solution category, not the product yet",
    ),
    AwarenessStage.PROBLEM_AWARE: (
        "Validate their pain immediately and show you understand",
        "Explain why the problem persists (the mechanism)",
        "Present the unique approach",
        "Provide proof that it works",
    ),
    AwarenessStage.SOLUTION_AWARE: (
        "Acknowledge they are evaluating options",
        "Lead with what makes this different",
        "Compare to alternatives without naming them",
        "Remove objections before they arise",
    ),
    AwarenessStage.PRODUCT_AWARE: (
        "Reinforce their good judgment in considering the product",
        "Add new information they have not heard",
        "Create gentle urgency (limited, seasonal)",
        "Make the next step crystal clear",
    ),
    AwarenessStage.MOST_AWARE: (
        "Lead with the offer",
        "Stack the value",
        "One clear call to action",
        "Keep the copy minimal; they are ready",
    ),
}


@dataclass(frozen=True)
class RoutingStrategy:
    """Per-request routing decision. Never persisted beyond the squad name."""

    copy_squad: Squad
    visual_squad: Squad
    primary_master: str
    secondary_master: Optional[str]
    awareness_stage: AwarenessStage
    forbidden_language: Tuple[str, ...]
    reason: str = "default"
    scores: Dict[str, int] = field(default_factory=dict, compare=False)

    @property
    def master_names(self) -> List[str]:
        return [name for name in (self.primary_master, self.secondary_master) if name]


def _normalize(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def squad_for_override(style_override: Optional[str]) -> Optional[Squad]:
    """Map an explicit style override (or a squad name) to a copy squad."""
    override = _normalize(style_override)
    if not override:
        return None
    if override in STYLE_OVERRIDE_TO_SQUAD:
        return STYLE_OVERRIDE_TO_SQUAD[override]
    for squad in COPY_SQUADS:
        if override in (squad.value.lower(), squad.value.lower().replace("the_", "")):
            return squad
    return None


def score_brief(brief: Optional[str]) -> Dict[Squad, int]:
    """Count keyword hits per squad (substring match on the lower-cased brief)."""
    text = _normalize(brief)
    return {
        Squad.SCIENTISTS: sum(1 for keyword in SCIENTIST_KEYWORDS if keyword in text),
        Squad.STORYTELLERS: sum(1 for keyword in STORYTELLER_KEYWORDS if keyword in text),
        Squad.DISRUPTORS: sum(1 for keyword in DISRUPTOR_KEYWORDS if keyword in text),
    }


def squad_from_scores(scores: Dict[Squad, int]) -> Squad:
    """Pick a squad from keyword scores.

    Disruptors need a strictly higher score than both others. Otherwise
    Scientists win only when strictly ahead of Storytellers. Every other
    case, including no hits at all, lands on Storytellers.
    """
    scientists = scores.get(Squad.SCIENTISTS, 0)
    storytellers = scores.get(Squad.STORYTELLERS, 0)
    disruptors = scores.get(Squad.DISRUPTORS, 0)

    if disruptors > scientists and disruptors > storytellers:
        return Squad.DISRUPTORS
    if scientists > storytellers:
        return Squad.SCIENTISTS
    return DEFAULT_SQUAD


def detect_awareness_stage(brief: Optional[str]) -> AwarenessStage:
    text = _normalize(brief)
    for stage, keywords in AWARENESS_STAGE_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return stage
    return DEFAULT_AWARENESS_STAGE


def build_strategy(squad: Squad, awareness_stage: AwarenessStage, reason: str = "default",
                   scores: Optional[Dict[str, int]] = None) -> RoutingStrategy:
    definition = SQUAD_DEFINITIONS[squad]
    return RoutingStrategy(
        copy_squad=squad,
        visual_squad=Squad.MINIMALISTS if squad == Squad.SCIENTISTS else squad,
        primary_master=definition.primary_master,
        secondary_master=definition.secondary_master,
        awareness_stage=awareness_stage,
        forbidden_language=definition.forbidden_language,
        reason=reason,
        scores=scores or {},
    )


def route(
    content_type: Optional[str],
    brief: Optional[str],
    style_override: Optional[str] = None,
) -> RoutingStrategy:
    """Choose the squad and awareness stage for a request."""
    awareness_stage = detect_awareness_stage(brief)

    squad = squad_for_override(style_override)
    if squad is not None:
        strategy = build_strategy(squad, awareness_stage, reason="style_override")
    elif _normalize(content_type) in CONTENT_TYPE_TO_SQUAD:
        strategy = build_strategy(
            CONTENT_TYPE_TO_SQUAD[_normalize(content_type)], awareness_stage, reason="content_type"
        )
    else:
        scores = score_brief(brief)
        strategy = build_strategy(
            squad_from_scores(scores),
            awareness_stage,
            reason="keywords" if any(scores.values()) else "default",
            scores={squad.value: count for squad, count in scores.items()},
        )

    app_logger.info(
        f"Routed to {strategy.copy_squad.value} ({strategy.reason}), stage={strategy.awareness_stage.value}"
    )
    return strategy


# ═══════════════════════════════════════════════════════════════════════════════
# PERSONA CONTEXT
# ═══════════════════════════════════════════════════════════════════════════════

def build_master_context(strategy: RoutingStrategy, documents: Sequence[MasterDocument]) -> str:
    """Persona section for the chosen masters. Empty when no documents were found."""
    if not documents:
        return ""

    definition = SQUAD_DEFINITIONS.get(strategy.copy_squad)
    lines: List[str] = []
    if definition is not None:
        lines.append(f"Squad philosophy: {definition.philosophy}")
        lines.append(f"Use when: {definition.use_when}")

    for document in documents:
        role = "PRIMARY MASTER" if document.master_name == strategy.primary_master else "SECONDARY MASTER"
        lines.append("")
        lines.append(f"{role}: {document.master_name}")
        lines.append(document.full_content.strip())
        if document.forbidden_language:
            lines.append(f"Forbidden for this master: {', '.join(document.forbidden_language)}")
        if document.example_output:
            lines.append(f"Example of this voice: {document.example_output.strip()}")

    return section(f"Madison masters: {strategy.copy_squad.value}", lines)


def build_strategy_directives(strategy: RoutingStrategy) -> str:
    """Squad-level forbidden language and the awareness-stage structure."""
    lines = [f"NEVER USE: {', '.join(strategy.forbidden_language)}"] if strategy.forbidden_language else []
    lines.append("")
    lines.append(f"Reader awareness stage: {strategy.awareness_stage.value}")
    lines.extend(
        f"{index}. {step}"
        for index, step in enumerate(AWARENESS_TEMPLATES[strategy.awareness_stage], start=1)
    )
    return section("Copy strategy", lines)


async def load_master_context(strategy: RoutingStrategy) -> str:
    """Fetch the strategy's master documents and render the persona section."""
    documents = await fetch_master_documents(strategy.master_names)
    if not documents:
        app_logger.warning(f"No master documents for {strategy.copy_squad.value}; persona section omitted")
    return build_master_context(strategy, documents)
