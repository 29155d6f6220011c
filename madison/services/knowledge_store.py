"""
Knowledge Store Accessor.

Reads brand knowledge fragments, product records, master persona documents
and prior generations from Supabase. Absence of data is a normal state:
every read returns an empty collection or None rather than raising. Store
connectivity failures propagate to the caller.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from madison.config.logger import app_logger
from madison.db.supabase_db import (
    get_records,
    get_single_record,
    insert_record,
    update_records_by_ids,
)
from madison.models.knowledge import (
    CATEGORY_KNOWLEDGE_PREFIX,
    KnowledgeFragment,
    KnowledgeType,
)
from madison.models.master import MasterDocument
from madison.models.product import ProductRecord, product_from_row


KNOWLEDGE_TABLE = "brand_knowledge"
PRODUCTS_TABLE = "brand_products"
MASTERS_TABLE = "madison_masters"
GENERATED_IMAGES_TABLE = "generated_images"
ORGANIZATION_MEMBERS_TABLE = "organization_members"
SUBSCRIPTIONS_TABLE = "subscriptions"

COPY_KNOWLEDGE_TYPES: Tuple[str, ...] = (
    KnowledgeType.BRAND_VOICE.value,
    KnowledgeType.VOCABULARY.value,
    KnowledgeType.WRITING_EXAMPLES.value,
    KnowledgeType.STRUCTURAL_GUIDELINES.value,
)

IMAGE_KNOWLEDGE_TYPES: Tuple[str, ...] = (
    KnowledgeType.VISUAL_STANDARDS.value,
    KnowledgeType.VOCABULARY.value,
    KnowledgeType.BRAND_VOICE.value,
)


@dataclass
class BrandKnowledge:
    """Current (active, highest-version) fragment per knowledge type."""

    fragments: Dict[str, KnowledgeFragment] = field(default_factory=dict)

    def content(self, knowledge_type: str) -> Optional[Dict[str, Any]]:
        fragment = self.fragments.get(knowledge_type)
        if fragment is None or not fragment.content:
            return None
        return fragment.content

    def category_content(self, category: Optional[str]) -> Optional[Dict[str, Any]]:
        if not category:
            return None
        return self.content(f"{CATEGORY_KNOWLEDGE_PREFIX}{category}")

    @property
    def is_empty(self) -> bool:
        return not any(fragment.content for fragment in self.fragments.values())

    def merge(self, other: "BrandKnowledge") -> "BrandKnowledge":
        """Combine two loads; the higher version wins per type."""
        merged = dict(self.fragments)
        for knowledge_type, fragment in other.fragments.items():
            existing = merged.get(knowledge_type)
            if existing is None or fragment.version > existing.version:
                merged[knowledge_type] = fragment
        return BrandKnowledge(fragments=merged)

    def summary(self) -> Dict[str, bool]:
        """Which knowledge types were available, for persistence metadata."""
        return {knowledge_type: True for knowledge_type in sorted(self.fragments)}


def _current_fragments(rows: List[Dict[str, Any]]) -> Dict[str, KnowledgeFragment]:
    current: Dict[str, KnowledgeFragment] = {}
    for row in rows:
        if not row.get("is_active", True):
            continue
        fragment = KnowledgeFragment.model_validate(
            {key: value for key, value in row.items() if value is not None}
        )
        existing = current.get(fragment.knowledge_type)
        if existing is None or fragment.version > existing.version:
            current[fragment.knowledge_type] = fragment
    return current


async def _fetch_active_rows(
    organization_id: str,
    knowledge_type: Optional[str] = None,
) -> List[Dict[str, Any]]:
    filters: Dict[str, Any] = {"organization_id": organization_id, "is_active": True}
    if knowledge_type:
        filters["knowledge_type"] = knowledge_type
    return await get_records(KNOWLEDGE_TABLE, filters=filters)


async def load_brand_knowledge(
    organization_id: Optional[str],
    knowledge_types: Optional[Sequence[str]] = None,
) -> BrandKnowledge:
    """Load the active fragments for an organization.

    With ``knowledge_types`` the types are fetched concurrently, one query
    each; without it a single query returns every active fragment.
    """
    if not organization_id:
        return BrandKnowledge()

    if knowledge_types:
        batches = await asyncio.gather(
            *(_fetch_active_rows(organization_id, knowledge_type) for knowledge_type in knowledge_types)
        )
        rows = [row for batch in batches for row in batch]
    else:
        rows = await _fetch_active_rows(organization_id)

    knowledge = BrandKnowledge(fragments=_current_fragments(rows))
    app_logger.info(
        f"Loaded {len(knowledge.fragments)} knowledge fragment type(s) for org={organization_id}"
    )
    return knowledge


async def fetch_product(organization_id: Optional[str], product_id: Optional[str]) -> Optional[ProductRecord]:
    """Return one product owned by the organization, or None."""
    if not organization_id or not product_id:
        return None
    row = await get_single_record(
        PRODUCTS_TABLE,
        filters={"id": product_id, "organization_id": organization_id},
    )
    if row is None:
        app_logger.warning(f"Product {product_id} not found for org={organization_id}")
        return None
    return product_from_row(row)


async def load_generation_context(
    organization_id: Optional[str],
    product_id: Optional[str],
    knowledge_types: Optional[Sequence[str]] = None,
) -> Tuple[BrandKnowledge, Optional[ProductRecord]]:
    """Fetch brand knowledge and the product together."""
    knowledge, product = await asyncio.gather(
        load_brand_knowledge(organization_id, knowledge_types),
        fetch_product(organization_id, product_id),
    )
    return knowledge, product


async def fetch_master_documents(master_names: Sequence[str]) -> List[MasterDocument]:
    """Fetch master persona documents by name, preserving the requested order.

    Missing rows or an unreachable table yield an empty list so that the
    caller can render an empty persona section instead of failing.
    """
    names = [name for name in master_names if name]
    if not names:
        return []
    try:
        rows = await get_records(MASTERS_TABLE, in_filters={"master_name": names})
    except Exception as exc:
        app_logger.warning(f"Master documents unavailable ({', '.join(names)}): {exc}")
        return []

    by_name = {row.get("master_name"): row for row in rows}
    documents = [
        MasterDocument.model_validate({k: v for k, v in by_name[name].items() if v is not None})
        for name in names
        if name in by_name
    ]
    missing = [name for name in names if name not in by_name]
    if missing:
        app_logger.warning(f"Master documents missing from store: {', '.join(missing)}")
    return documents


async def fetch_generation(generation_id: Optional[str]) -> Optional[Dict[str, Any]]:
    """Return a stored generation row, or None."""
    if not generation_id:
        return None
    return await get_single_record(GENERATED_IMAGES_TABLE, filters={"id": generation_id})


async def resolve_organization_id(
    organization_id: Optional[str],
    user_id: Optional[str] = None,
    parent_generation_id: Optional[str] = None,
) -> Optional[str]:
    """Resolve the owning organization for a request.

    Order: explicit id, then the parent generation's owner, then the user's
    first organization membership.
    """
    if organization_id:
        return organization_id

    if parent_generation_id:
        parent = await get_single_record(
            GENERATED_IMAGES_TABLE,
            filters={"id": parent_generation_id},
            columns="organization_id",
        )
        if parent and parent.get("organization_id"):
            return str(parent["organization_id"])

    if user_id:
        membership = await get_single_record(
            ORGANIZATION_MEMBERS_TABLE,
            filters={"user_id": user_id},
            columns="organization_id",
        )
        if membership and membership.get("organization_id"):
            return str(membership["organization_id"])

    return None


async def fetch_subscription_tier(organization_id: str) -> Optional[str]:
    """Return the active subscription tier id for an organization, if any."""
    row = await get_single_record(
        SUBSCRIPTIONS_TABLE,
        filters={"organization_id": organization_id, "status": "active"},
        columns="tier_id",
    )
    if not row:
        return None
    tier = row.get("tier_id")
    return str(tier).strip().lower() if tier else None


async def supersede_knowledge(
    organization_id: str,
    knowledge_type: str,
    content: Dict[str, Any],
    document_id: Optional[str] = None,
) -> KnowledgeFragment:
    """Store new content for a knowledge type as a new active version.

    The new version is inserted before the previous ones are deactivated,
    so readers never observe a type with no active fragment.
    """
    active_rows = await _fetch_active_rows(organization_id, knowledge_type)
    latest_version = max((int(row.get("version") or 1) for row in active_rows), default=0)

    fragment = KnowledgeFragment.model_validate({
        "organization_id": organization_id,
        "knowledge_type": knowledge_type,
        "content": content,
        "is_active": True,
        "version": latest_version + 1,
        "document_id": document_id,
    })
    payload = fragment.model_dump(mode="json", exclude_none=True)
    stored = await insert_record(KNOWLEDGE_TABLE, payload)

    previous_ids = [row["id"] for row in active_rows if row.get("id")]
    if previous_ids:
        await update_records_by_ids(KNOWLEDGE_TABLE, previous_ids, {"is_active": False})

    app_logger.info(
        f"Knowledge {knowledge_type} for org={organization_id} now at version {fragment.version}"
    )
    return KnowledgeFragment.model_validate({k: v for k, v in stored.items() if v is not None})
