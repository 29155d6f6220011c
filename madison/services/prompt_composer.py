"""
Prompt Composer.

Merges formatted context sections, routing output, the user's intent and
reference-image directives into the final directive string sent to a
provider.

Layout of a composed prompt:
    bottle safety directive   (oil/spray products only, always first)
    reference-image directives
    intent
    context sections          (fixed order from the formatter/router)
    trailing context
    image block               (aspect ratio, negative prompt)
    avoid block               (repeats the bottle constraint)

Rewrite rules and prohibited terms are applied to everything between the
bottle directive and the avoid block, which are emitted verbatim.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from madison.services.bottle_type import BottleType, bottle_directives
from madison.services.context_formatter import BANNER, section


# ═══════════════════════════════════════════════════════════════════════════════
# CONSTRAINTS
# ═══════════════════════════════════════════════════════════════════════════════

RewriteRules = Union[Sequence[Tuple[str, str]], Dict[str, str]]


@dataclass
class PromptConstraints:
    """Ordered rewrite rules plus whole-word prohibited terms."""

    rewrite_rules: List[Tuple[str, str]] = field(default_factory=list)
    prohibited_terms: List[str] = field(default_factory=list)

    @classmethod
    def build(
        cls,
        rewrite_rules: Optional[RewriteRules] = None,
        prohibited_terms: Optional[Iterable[str]] = None,
    ) -> "PromptConstraints":
        if isinstance(rewrite_rules, dict):
            rules = list(rewrite_rules.items())
        else:
            rules = [tuple(rule) for rule in (rewrite_rules or [])]
        return cls(
            rewrite_rules=[(str(find), str(replace or "")) for find, replace in rules if find],
            prohibited_terms=[term for term in (prohibited_terms or []) if term and term.strip()],
        )

    def extended(self, prohibited_terms: Iterable[str]) -> "PromptConstraints":
        extra = [term for term in prohibited_terms if term not in self.prohibited_terms]
        return PromptConstraints(list(self.rewrite_rules), self.prohibited_terms + extra)


def _tidy(text: str) -> str:
    text = re.sub(r"[ \t]{2,}", " ", text)
    text = re.sub(r"[ \t]+([,.;:!?])", r"\1", text)
    return re.sub(r"[ \t]+\n", "\n", text).strip()


def apply_constraints(text: str, constraints: Optional[PromptConstraints]) -> str:
    """Apply rewrite rules in order, then strip prohibited terms as whole words."""
    if not constraints or not text:
        return text
    result = text
    for find, replace in constraints.rewrite_rules:
        result = re.sub(re.escape(find), lambda _match, text=replace: text, result, flags=re.IGNORECASE)
    for term in constraints.prohibited_terms:
        result = re.sub(rf"\b{re.escape(term.strip())}\b", "", result, flags=re.IGNORECASE)
    return _tidy(result)


# ═══════════════════════════════════════════════════════════════════════════════
# CHAINED REFINEMENT
# ═══════════════════════════════════════════════════════════════════════════════

class RefinementKind(str, Enum):
    ADJUST = "adjust"
    ADD = "add"
    REMOVE = "remove"
    GENERIC = "generic"


ADJUST_PATTERN = re.compile(r"\b(darker|lighter|brighter|cooler|warmer)\b", re.IGNORECASE)
ADD_PATTERN = re.compile(r"\b(add|include|with)\b", re.IGNORECASE)
REMOVE_PATTERN = re.compile(r"\b(remove|without|exclude)\b", re.IGNORECASE)

# Trailing clause dropped from the original before a removal is appended.
TRAILING_CLAUSE_PATTERN = re.compile(
    r"(\b(with|featuring|showing)\b|\b(adjust|refinement):).*",
    re.IGNORECASE | re.DOTALL,
)


def classify_refinement(instruction: str) -> RefinementKind:
    if ADJUST_PATTERN.search(instruction):
        return RefinementKind.ADJUST
    if ADD_PATTERN.search(instruction):
        return RefinementKind.ADD
    if REMOVE_PATTERN.search(instruction):
        return RefinementKind.REMOVE
    return RefinementKind.GENERIC


def _strip_end(text: str) -> str:
    return text.strip().rstrip(".").rstrip()


def build_chain_prompt(original_prompt: str, refinement: str) -> str:
    """Fold a refinement instruction into the prompt that produced the parent image.

    Pure string transform. Applying the same instruction to its own output
    returns that output unchanged.
    """
    original = _strip_end(original_prompt)
    instruction = refinement.strip()
    if not instruction:
        return original

    kind = classify_refinement(instruction)
    if kind == RefinementKind.ADJUST:
        suffix = f"Adjust: {instruction}"
    elif kind == RefinementKind.ADD:
        suffix = instruction
    elif kind == RefinementKind.REMOVE:
        suffix = instruction
    else:
        suffix = f"Refinement: {instruction}"

    if original.endswith(f". {_strip_end(suffix)}") or original.endswith(f". {suffix}"):
        return original

    if kind == RefinementKind.REMOVE:
        base = _strip_end(TRAILING_CLAUSE_PATTERN.sub("", original))
        return f"{base}. {suffix}" if base else suffix
    return f"{original}. {suffix}" if original else suffix


# ═══════════════════════════════════════════════════════════════════════════════
# MODE AND IMAGE BLOCKS
# ═══════════════════════════════════════════════════════════════════════════════

GENERATE_MODE_RULES = section("Your role", [
    "You are a professional copywriter executing a creative brief.",
    "Generate the requested copy immediately. Do not ask clarifying questions,",
    "analyze the brief, or add commentary. Return only the final copy.",
])

CONSULT_MODE_RULES = section("Your role", [
    "You are the editorial director, in the tradition of David Ogilvy.",
    "Guide the marketer with precision and strategic rigor. Focus on the core proposition first.",
    "Challenge vague requests: ask what the objective is and who the audience is.",
    "Be candid and concise. No generic praise.",
])


def mode_rules(mode: str) -> str:
    return CONSULT_MODE_RULES if (mode or "").lower() == "consult" else GENERATE_MODE_RULES


def format_pro_mode(pro_mode: Optional[Dict[str, Optional[str]]]) -> str:
    """Camera, lighting and environment overrides from pro mode."""
    if not pro_mode:
        return ""
    lines = []
    for key, label in (("camera", "Camera"), ("lighting", "Lighting"), ("environment", "Environment")):
        value = pro_mode.get(key)
        if value and str(value).strip():
            lines.append(f"{label}: {str(value).strip()}")
    if not lines:
        return ""
    lines.append("Apply these professional settings exactly.")
    return section("Pro mode specifications", lines)


def format_image_block(aspect_ratio: Optional[str], negative_prompt: Optional[str]) -> str:
    lines = []
    if aspect_ratio:
        lines.append(f"ASPECT RATIO: {aspect_ratio}")
    if negative_prompt and negative_prompt.strip():
        lines.append(f"NEGATIVE PROMPT: {negative_prompt.strip()}")
    return "\n".join(lines)


def format_avoid_block(bottle_type: BottleType, extra_avoid: Iterable[str] = ()) -> str:
    _, bottle_avoid = bottle_directives(bottle_type)
    items = [item for item in ([bottle_avoid] if bottle_avoid else []) + list(extra_avoid) if item]
    if not items:
        return ""
    return "\n".join([BANNER, "AVOID", BANNER, *[f"- {item}" for item in items]])


# ═══════════════════════════════════════════════════════════════════════════════
# COMPOSITION
# ═══════════════════════════════════════════════════════════════════════════════

def compose(
    intent: Optional[str],
    context_sections: Sequence[str],
    reference_directives: Optional[Sequence[str]] = None,
    constraints: Optional[PromptConstraints] = None,
    bottle_type: BottleType = BottleType.UNKNOWN,
    trailing_sections: Sequence[str] = (),
    aspect_ratio: Optional[str] = None,
    negative_prompt: Optional[str] = None,
) -> str:
    """Assemble one directive string in the fixed section order."""
    leading, _ = bottle_directives(bottle_type)

    body_parts = [
        *(reference_directives or []),
        (intent or "").strip(),
        *context_sections,
        *trailing_sections,
        format_image_block(aspect_ratio, negative_prompt),
    ]
    body = "\n\n".join(part for part in body_parts if part and part.strip())
    body = apply_constraints(body, constraints)

    parts = [leading or "", body, format_avoid_block(bottle_type)]
    return "\n\n".join(part for part in parts if part)


@dataclass
class CopyPrompt:
    system_prompt: str
    user_prompt: str

    @property
    def full_text(self) -> str:
        return f"{self.system_prompt}\n\n{BANNER}\nBRIEF\n{BANNER}\n{self.user_prompt}"


def compose_copy_prompt(
    brief: str,
    context_sections: Sequence[str],
    strategy_section: str = "",
    mode: str = "generate",
    constraints: Optional[PromptConstraints] = None,
    bottle_type: BottleType = BottleType.UNKNOWN,
) -> CopyPrompt:
    """System and user prompts for a copywriting call."""
    sections = [*context_sections, strategy_section, mode_rules(mode)]
    system_prompt = compose(
        intent=None,
        context_sections=[text for text in sections if text],
        constraints=constraints,
        bottle_type=bottle_type,
    )
    return CopyPrompt(system_prompt=system_prompt, user_prompt=apply_constraints(brief.strip(), constraints))


def compose_image_prompt(
    scene: str,
    primary_sections: Sequence[str],
    trailing_sections: Sequence[str] = (),
    reference_directives: Optional[Sequence[str]] = None,
    constraints: Optional[PromptConstraints] = None,
    bottle_type: BottleType = BottleType.UNKNOWN,
    aspect_ratio: Optional[str] = None,
    negative_prompt: Optional[str] = None,
    pro_mode: Optional[Dict[str, Optional[str]]] = None,
) -> str:
    """Final directive for an image call."""
    return compose(
        intent=scene,
        context_sections=list(primary_sections),
        reference_directives=reference_directives,
        constraints=constraints,
        bottle_type=bottle_type,
        trailing_sections=[*trailing_sections, format_pro_mode(pro_mode)],
        aspect_ratio=aspect_ratio,
        negative_prompt=negative_prompt,
    )
