"""Bottle-type classification and the matching safety directives."""

from __future__ import annotations

import re
from enum import Enum
from typing import Iterable, Optional, Tuple

from madison.models.product import ProductRecord


class BottleType(str, Enum):
    OIL = "oil"
    SPRAY = "spray"
    UNKNOWN = "unknown"


OIL_INDICATORS: Tuple[str, ...] = (
    "dropper",
    "roller",
    "rollerball",
    "roll-on",
    "attar",
    "concentrate",
    "oil",
)

SPRAY_INDICATORS: Tuple[str, ...] = (
    "spray",
    "atomizer",
    "atomiser",
    "mist",
    "eau de parfum",
    "eau de toilette",
    "eau de cologne",
    "edp",
    "edt",
)

# These force an oil classification even when a spray keyword also matches.
OIL_FORCING_PHRASES: Tuple[str, ...] = ("perfume oil", "fragrance oil")
OIL_FORCING_CATEGORIES: Tuple[str, ...] = ("skincare",)

_SCANNED_FIELDS: Tuple[str, ...] = ("name", "format", "product_type", "description")


def _contains_any(text: str, keywords: Iterable[str]) -> bool:
    return any(re.search(rf"\b{re.escape(keyword)}\b", text) for keyword in keywords)


def parse_bottle_override(value: Optional[str]) -> Optional[BottleType]:
    """Explicit per-product override; ``auto`` and blanks mean detect."""
    normalized = (value or "").strip().lower()
    if normalized == BottleType.OIL.value:
        return BottleType.OIL
    if normalized == BottleType.SPRAY.value:
        return BottleType.SPRAY
    return None


def classify_bottle_type(product: Optional[ProductRecord]) -> BottleType:
    """Classify a product's dispensing mechanism.

    Precedence: explicit ``bottle_type`` override, then oil-forcing category
    or phrase, then oil keywords, then spray keywords.
    """
    if product is None:
        return BottleType.UNKNOWN

    override = parse_bottle_override(product.bottle_type)
    if override is not None:
        return override

    if (product.category or "").strip().lower() in OIL_FORCING_CATEGORIES:
        return BottleType.OIL

    text = " ".join(
        value.lower() for value in (product.value_of(name) for name in _SCANNED_FIELDS) if value
    )
    if not text:
        return BottleType.UNKNOWN
    if _contains_any(text, OIL_FORCING_PHRASES):
        return BottleType.OIL
    if _contains_any(text, OIL_INDICATORS):
        return BottleType.OIL
    if _contains_any(text, SPRAY_INDICATORS):
        return BottleType.SPRAY
    return BottleType.UNKNOWN


BOTTLE_DIRECTIVES = {
    BottleType.OIL: (
        "BOTTLE SAFETY (NON-NEGOTIABLE): This product is an oil-based format. "
        "Show or describe it only with a dropper, roller or simple cap. "
        "NEVER show or describe a spray nozzle, atomizer, pump sprayer or dip tube.",
        "spray nozzle, atomizer, pump sprayer, dip tube inside the bottle",
    ),
    BottleType.SPRAY: (
        "BOTTLE SAFETY (NON-NEGOTIABLE): This product is a spray. "
        "Show or describe it only with its spray nozzle or atomizer. "
        "NEVER show or describe a dropper, pipette or roller ball.",
        "dropper, pipette, roller ball",
    ),
}


def bottle_directives(bottle_type: BottleType) -> Tuple[Optional[str], Optional[str]]:
    """(leading directive, trailing avoid list) for a bottle type."""
    if bottle_type not in BOTTLE_DIRECTIVES:
        return None, None
    return BOTTLE_DIRECTIVES[bottle_type]
