"""
Reference Image Pipeline.

Classifies reference images into product / background / style roles from
their labels, downloads them concurrently and returns base64 payloads in
role priority order: every product image, then backgrounds, then styles.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple

import httpx

from madison.config.logger import app_logger
from madison.config.settings import settings


class ReferenceRole(str, Enum):
    PRODUCT = "product"
    BACKGROUND = "background"
    STYLE = "style"


ROLE_ORDER: Tuple[ReferenceRole, ...] = (
    ReferenceRole.PRODUCT,
    ReferenceRole.BACKGROUND,
    ReferenceRole.STYLE,
)

# Checked in this order against the lower-cased label
ROLE_KEYWORDS: Tuple[Tuple[ReferenceRole, Tuple[str, ...]], ...] = (
    (ReferenceRole.PRODUCT, ("product", "subject")),
    (ReferenceRole.BACKGROUND, ("background", "scene")),
    (ReferenceRole.STYLE, ("style", "lighting", "reference")),
)

PREVIOUS_ITERATION_LABEL = "Previous iteration"

ROLE_DIRECTIVES = {
    ReferenceRole.PRODUCT: "Reproduce this product exactly. Do not alter its shape, label, color or packaging.",
    ReferenceRole.BACKGROUND: "Use this as the scene and background for the composition.",
    ReferenceRole.STYLE: "Match its lighting, color grading and mood. Do not copy its contents.",
}


@dataclass
class ReferenceImage:
    url: str
    label: Optional[str] = None
    description: Optional[str] = None

    @property
    def role(self) -> ReferenceRole:
        return classify_reference(self.label)


@dataclass
class CategorizedReferences:
    product: List[ReferenceImage] = field(default_factory=list)
    background: List[ReferenceImage] = field(default_factory=list)
    style: List[ReferenceImage] = field(default_factory=list)

    def bucket(self, role: ReferenceRole) -> List[ReferenceImage]:
        return getattr(self, role.value)

    def ordered(self) -> List[Tuple[ReferenceRole, ReferenceImage]]:
        return [(role, image) for role in ROLE_ORDER for image in self.bucket(role)]

    def __len__(self) -> int:
        return len(self.product) + len(self.background) + len(self.style)


@dataclass
class MaterializedReference:
    url: str
    role: ReferenceRole
    mime_type: str
    data: str
    label: Optional[str] = None

    @property
    def content(self) -> bytes:
        return base64.b64decode(self.data)


def classify_reference(label: Optional[str]) -> ReferenceRole:
    """Role for a label; unlabeled or unmatched images are product images."""
    text = (label or "").lower()
    if text:
        for role, keywords in ROLE_KEYWORDS:
            if any(keyword in text for keyword in keywords):
                return role
    return ReferenceRole.PRODUCT


def categorize(images: Iterable[ReferenceImage]) -> CategorizedReferences:
    """Split images into role buckets, keeping input order inside each bucket."""
    categorized = CategorizedReferences()
    for image in images:
        if not image.url:
            continue
        categorized.bucket(image.role).append(image)
    return categorized


def inject_parent_reference(images: Sequence[ReferenceImage], parent_image_url: Optional[str]) -> List[ReferenceImage]:
    """Put the parent generation's image ahead of the user's references."""
    if not parent_image_url:
        return list(images)
    parent = ReferenceImage(
        url=parent_image_url,
        label=PREVIOUS_ITERATION_LABEL,
        description="Auto-included parent reference",
    )
    return [parent, *[image for image in images if image.url != parent_image_url]]


def _decode_data_url(url: str) -> Tuple[str, str]:
    header, _, payload = url.partition(",")
    mime_type = header[5:].split(";")[0] or "image/png"
    if ";base64" not in header:
        raise ValueError("Only base64 data URLs are supported")
    base64.b64decode(payload, validate=True)
    return mime_type, payload


async def fetch_reference(
    client: httpx.AsyncClient,
    role: ReferenceRole,
    image: ReferenceImage,
) -> MaterializedReference:
    """Download one reference image and base64-encode it."""
    if image.url.startswith("data:"):
        mime_type, data = _decode_data_url(image.url)
    else:
        response = await client.get(image.url)
        response.raise_for_status()
        if not response.content:
            raise ValueError("empty response body")
        mime_type = response.headers.get("content-type", "image/png").split(";")[0].strip() or "image/png"
        if not mime_type.startswith("image/"):
            raise ValueError(f"unexpected content type {mime_type}")
        data = base64.b64encode(response.content).decode("ascii")
    return MaterializedReference(url=image.url, role=role, mime_type=mime_type, data=data, label=image.label)


async def materialize(
    categorized: CategorizedReferences,
    client: Optional[httpx.AsyncClient] = None,
) -> List[MaterializedReference]:
    """Fetch every reference concurrently and return them in role order.

    An image that fails to download or decode is skipped with a warning.
    """
    ordered = categorized.ordered()
    if not ordered:
        return []

    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=settings.REFERENCE_IMAGE_TIMEOUT_SECONDS, follow_redirects=True)
    try:
        results = await asyncio.gather(
            *(fetch_reference(client, role, image) for role, image in ordered),
            return_exceptions=True,
        )
    finally:
        if owns_client:
            await client.aclose()

    materialized: List[MaterializedReference] = []
    for (role, image), result in zip(ordered, results):
        if isinstance(result, (httpx.HTTPError, ValueError, binascii.Error)):
            app_logger.warning(f"Skipping {role.value} reference {image.url[:80]}: {result}")
            continue
        if isinstance(result, BaseException):
            raise result
        materialized.append(result)
    return materialized


def reference_directives(materialized: Sequence[MaterializedReference]) -> List[str]:
    """Prompt lines telling the model how to use each attached image."""
    if not materialized:
        return []
    lines = ["REFERENCE IMAGES (attached in order of importance):"]
    for index, reference in enumerate(materialized, start=1):
        label = f", {reference.label}" if reference.label else ""
        lines.append(f"Image {index} ({reference.role.value}{label}): {ROLE_DIRECTIVES[reference.role]}")
    return ["\n".join(lines)]


def reference_summary(images: Sequence[ReferenceImage]) -> List[dict]:
    """JSON-friendly description of the references used, for persistence."""
    return [
        {
            "url": image.url,
            "label": image.label,
            "description": image.description,
            "role": image.role.value,
        }
        for image in images
        if image.url and not image.url.startswith("data:")
    ]
