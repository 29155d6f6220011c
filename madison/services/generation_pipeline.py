"""
Generation pipeline.

Wires the knowledge store, formatter, router, composer, reference images
and dispatcher together for the three media kinds:

    copy   route -> knowledge + product + masters -> compose -> text chain -> save
    image  org/parent -> tier -> knowledge + references -> compose -> image chain -> upload -> save
    video  org -> tier -> video chain -> save
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Dict, Optional, Sequence, Tuple
from uuid import UUID

import httpx

from madison.api.generate.schemas import (
    ConstraintsIn,
    CopyGenerationResponse,
    GenerateCopyRequest,
    GenerateImageRequest,
    GenerateVideoRequest,
    ImageGenerationResponse,
    VideoGenerationResponse,
)
from madison.config.logger import app_logger, log_performance
from madison.db.media_storage import upload_generated_image
from madison.models.generation import GeneratedContent, GenerationRecord
from madison.models.knowledge import CATEGORY_KNOWLEDGE_PREFIX
from madison.models.product import ProductRecord
from madison.services.ai_providers import GeminiImageProvider, ImageResult, TextResult, VideoResult
from madison.services.bottle_type import classify_bottle_type
from madison.services.context_formatter import (
    build_copy_context,
    build_image_context,
    category_register,
    find_register_violations,
)
from madison.services.dispatcher import (
    dispatch_text,
    image_chain,
    persist_content,
    persist_generation,
    run_chain,
    video_chain,
)
from madison.services.entitlements import check_video_access, resolve_entitlement, select_image_provider
from madison.services.freepik_provider import FreepikProvider, build_video_prompt
from madison.services.knowledge_store import (
    COPY_KNOWLEDGE_TYPES,
    IMAGE_KNOWLEDGE_TYPES,
    BrandKnowledge,
    fetch_generation,
    load_brand_knowledge,
    load_generation_context,
    resolve_organization_id,
)
from madison.services.prompt_composer import (
    PromptConstraints,
    build_chain_prompt,
    compose_copy_prompt,
    compose_image_prompt,
)
from madison.services.reference_images import (
    ReferenceImage,
    categorize,
    inject_parent_reference,
    materialize,
    reference_directives,
    reference_summary,
)
from madison.services.squad_router import build_strategy_directives, load_master_context, route
from madison.utils.auth import CurrentUser
from madison.utils.errors import OrganizationNotFoundError


# Checked in order; the first bucket with a keyword hit wins.
LIBRARY_CATEGORY_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("flat_lay", ("flat lay", "flat_lay", "flatlay", "overhead")),
    ("lifestyle", ("lifestyle", "hands", "ritual", "model", "person")),
    ("social", ("instagram", "social", "story", "pinterest", "tiktok")),
    ("editorial", ("editorial", "campaign", "magazine")),
    ("product", ("product", "hero", "packshot", "studio", "ecommerce")),
)
DEFAULT_LIBRARY_CATEGORY = "other"


def infer_library_category(goal_type: Optional[str], prompt: Optional[str], media_type: str = "image") -> str:
    """Library bucket for the UI, from the goal type first and the prompt second."""
    if media_type == "video":
        return "video"
    for text in (goal_type, prompt):
        lowered = (text or "").lower()
        if not lowered:
            continue
        for category, keywords in LIBRARY_CATEGORY_KEYWORDS:
            if any(keyword in lowered for keyword in keywords):
                return category
    return DEFAULT_LIBRARY_CATEGORY


def build_constraints(constraints: Optional[ConstraintsIn], category: Optional[str]) -> PromptConstraints:
    """Caller constraints plus the terms the product's category register forbids."""
    base = PromptConstraints.build(
        rewrite_rules=[(rule.find, rule.replace) for rule in constraints.rewrite_rules] if constraints else None,
        prohibited_terms=constraints.prohibited_terms if constraints else None,
    )
    register = category_register(category)
    if register is None or not register.forbidden_terms:
        return base
    return base.extended(register.forbidden_terms)


async def load_knowledge_with_category(
    organization_id: Optional[str],
    product_id: Optional[str],
    knowledge_types: Sequence[str],
) -> Tuple[BrandKnowledge, Optional[ProductRecord]]:
    """Knowledge and product, plus the category fragment once the category is known."""
    knowledge, product = await load_generation_context(organization_id, product_id, knowledge_types)
    if product is not None and product.category:
        category_knowledge = await load_brand_knowledge(
            organization_id, [f"{CATEGORY_KNOWLEDGE_PREFIX}{product.category.strip().lower()}"]
        )
        knowledge = knowledge.merge(category_knowledge)
    return knowledge, product


def _user_id(user: Optional[CurrentUser]) -> Optional[str]:
    """User id as stored on generation rows; a token subject that is not a UUID is left off."""
    if not user or not user.user_id:
        return None
    try:
        return str(UUID(str(user.user_id)))
    except ValueError:
        app_logger.warning(f"Token subject {user.user_id!r} is not a UUID; the generation will not record a user")
        return None


def _require_uuid(value: str, field_name: str) -> str:
    try:
        return str(UUID(str(value)))
    except ValueError:
        raise ValueError(f"{field_name} must be a UUID, got {value!r}") from None


# ═══════════════════════════════════════════════════════════════════════════════
# COPY
# ═══════════════════════════════════════════════════════════════════════════════

async def generate_copy(
    request: GenerateCopyRequest,
    user: Optional[CurrentUser] = None,
    providers: Optional[Sequence[Any]] = None,
) -> CopyGenerationResponse:
    """Compose an on-brand copy prompt and run it through the text chain."""
    started = time.perf_counter()
    user_id = _user_id(user)
    organization_id = await resolve_organization_id(
        request.organization_id or (user.organization_id if user else None),
        user_id,
    )
    strategy = route(request.content_type, request.brief, request.style_override)

    (knowledge, product), persona_section = await asyncio.gather(
        load_knowledge_with_category(organization_id, request.product_id, COPY_KNOWLEDGE_TYPES),
        load_master_context(strategy),
    )
    if knowledge.is_empty:
        app_logger.info(f"No brand knowledge for org={organization_id}; composing without brand sections")

    category = product.category if product else None
    prompt = compose_copy_prompt(
        brief=request.brief,
        context_sections=build_copy_context(knowledge, product, persona_section),
        strategy_section=build_strategy_directives(strategy),
        mode=request.mode,
        constraints=build_constraints(request.constraints, category),
        bottle_type=classify_bottle_type(product),
    )

    result = await dispatch_text(prompt.system_prompt, prompt.user_prompt, providers)
    text: TextResult = result.value

    violations = find_register_violations(text.text, category)
    if violations:
        app_logger.warning(f"Generated copy uses vocabulary forbidden for {category}: {', '.join(violations)}")

    generation_id = None
    if organization_id:
        try:
            record = GeneratedContent.model_validate({
                "organization_id": organization_id,
                "user_id": user_id,
                "product_id": product.id if product else None,
                "content_type": request.content_type,
                "mode": request.mode,
                "final_prompt": prompt.full_text,
                "system_prompt": prompt.system_prompt,
                "generated_content": text.text,
                "generation_provider": result.provider_label,
                "copy_squad": strategy.copy_squad.value,
                "awareness_stage": strategy.awareness_stage.value,
            })
            stored = await persist_content(record)
            generation_id = str(stored.get("id") or record.id)
        except Exception as e:
            app_logger.warning(f"Failed to save generated copy: {e}")

    log_performance("copy_generation", time.perf_counter() - started, provider=result.provider_label)
    return CopyGenerationResponse(
        content=text.text,
        provider=result.provider_label,
        model=text.model,
        copy_squad=strategy.copy_squad.value,
        awareness_stage=strategy.awareness_stage.value,
        generation_id=generation_id,
        system_prompt=prompt.system_prompt,
        user_prompt=prompt.user_prompt,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# IMAGE
# ═══════════════════════════════════════════════════════════════════════════════

def resolve_scene(request: GenerateImageRequest, parent: Optional[Dict[str, Any]]) -> str:
    """Scene text for the request, folding in a refinement when chaining.

    The refinement is applied to the parent's scene, never to its fully
    composed prompt, so context blocks are not nested on every step.
    """
    instruction = (request.refinement_instruction or "").strip()
    if not instruction:
        return request.prompt.strip()
    base = (parent or {}).get("source_prompt") or request.parent_prompt or request.prompt
    return build_chain_prompt(base, instruction)


async def generate_image(
    request: GenerateImageRequest,
    user: Optional[CurrentUser] = None,
    gemini: Optional[GeminiImageProvider] = None,
    freepik: Optional[FreepikProvider] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> ImageGenerationResponse:
    """Compose, generate, upload and record one image.

    Raises:
        OrganizationNotFoundError: If no organization can be resolved
        ValueError: If the organization id is not a UUID or the parent generation does not exist
    """
    started = time.perf_counter()
    user_id = _user_id(user)
    organization_id = await resolve_organization_id(
        request.organization_id or (user.organization_id if user else None),
        user_id,
        request.parent_image_id,
    )
    if not organization_id:
        raise OrganizationNotFoundError("Could not resolve an organization for this image request")
    organization_id = _require_uuid(organization_id, "organization_id")

    parent = None
    chain_depth = 0
    if request.parent_image_id:
        parent = await fetch_generation(request.parent_image_id)
        if parent is None:
            raise ValueError(f"Parent generation {request.parent_image_id} not found")
        chain_depth = int(parent.get("chain_depth") or 0) + 1

    scene = resolve_scene(request, parent)

    entitlement = await resolve_entitlement(organization_id, user.email if user else None)
    selection = select_image_provider(entitlement, request.provider, request.freepik_model, request.resolution)

    references = inject_parent_reference(
        [ReferenceImage(url=ref.url, label=ref.label, description=ref.description) for ref in request.reference_images],
        parent.get("image_url") if parent else None,
    )
    categorized = categorize(references)

    (knowledge, product), materialized = await asyncio.gather(
        load_knowledge_with_category(organization_id, request.product_id, IMAGE_KNOWLEDGE_TYPES),
        materialize(categorized, client=http_client),
    )
    primary_sections, trailing_sections = build_image_context(knowledge, product)

    final_prompt = compose_image_prompt(
        scene=scene,
        primary_sections=primary_sections,
        trailing_sections=trailing_sections,
        reference_directives=reference_directives(materialized),
        constraints=build_constraints(request.constraints, product.category if product else None),
        bottle_type=classify_bottle_type(product),
        aspect_ratio=request.aspect_ratio,
        negative_prompt=request.negative_prompt,
        pro_mode=request.pro_mode.model_dump() if request.pro_mode else None,
    )
    app_logger.info(
        f"Image prompt composed: {len(final_prompt)} chars, {len(materialized)}/{len(categorized)} reference(s), "
        f"provider={selection.provider}, depth={chain_depth}"
    )

    result = await run_chain(
        image_chain(
            selection,
            final_prompt,
            materialized,
            aspect_ratio=request.aspect_ratio,
            seed=request.seed,
            negative_prompt=request.negative_prompt,
            gemini=gemini,
            freepik=freepik,
        ),
        "image",
    )
    image: ImageResult = result.value
    image_url = image.image_url or await upload_generated_image(organization_id, image.image_base64, image.mime_type)

    library_category = infer_library_category(request.goal_type, scene)
    record = GenerationRecord.model_validate({
        "organization_id": organization_id,
        "user_id": user_id,
        "session_id": request.session_id,
        "media_type": "image",
        "goal_type": request.goal_type,
        "aspect_ratio": request.aspect_ratio,
        "output_format": request.output_format,
        "final_prompt": final_prompt,
        "source_prompt": scene,
        "image_url": image_url,
        "description": scene[:500],
        "reference_images": reference_summary(references),
        "brand_context_used": {
            **knowledge.summary(),
            "product_id": str(product.id) if product and product.id else None,
            "resolution": selection.resolution,
        },
        "generation_provider": result.provider_label,
        "image_generator": image.model,
        "parent_image_id": request.parent_image_id,
        "chain_depth": chain_depth,
        "is_chain_origin": request.parent_image_id is None,
        "refinement_instruction": request.refinement_instruction,
        "library_category": library_category,
        "saved_to_library": True,
    })
    stored = await persist_generation(record)
    log_performance("image_generation", time.perf_counter() - started, provider=result.provider_label)

    return ImageGenerationResponse(
        image_url=image_url,
        generation_id=str(stored.get("id") or record.id),
        provider=result.provider_label,
        model=image.model,
        final_prompt=final_prompt,
        chain_depth=chain_depth,
        parent_image_id=request.parent_image_id,
        library_category=library_category,
        resolution=selection.resolution,
        tier_restricted=selection.tier_restricted,
        restrictions=selection.restrictions,
        references_used=len(materialized),
    )


# ═══════════════════════════════════════════════════════════════════════════════
# VIDEO
# ═══════════════════════════════════════════════════════════════════════════════

async def generate_video(
    request: GenerateVideoRequest,
    user: Optional[CurrentUser] = None,
    freepik: Optional[FreepikProvider] = None,
) -> VideoGenerationResponse:
    """Animate a still image through Freepik.

    Raises:
        OrganizationNotFoundError: If no organization can be resolved
        ValueError: If the organization id is not a UUID
        UpgradeRequiredError: If the tier has no video access
    """
    started = time.perf_counter()
    user_id = _user_id(user)
    organization_id = await resolve_organization_id(
        request.organization_id or (user.organization_id if user else None),
        user_id,
    )
    if not organization_id:
        raise OrganizationNotFoundError("Could not resolve an organization for this video request")
    organization_id = _require_uuid(organization_id, "organization_id")

    entitlement = await resolve_entitlement(organization_id, user.email if user else None)
    resolution = check_video_access(entitlement, request.resolution)

    result = await run_chain(
        video_chain(
            request.image_url,
            request.prompt,
            aspect_ratio=request.aspect_ratio,
            resolution=resolution,
            duration=request.duration,
            camera_fixed=request.camera_fixed,
            seed=request.seed,
            freepik=freepik,
        ),
        "video",
    )
    video: VideoResult = result.value
    final_prompt = build_video_prompt(request.prompt, request.camera_fixed)

    record = GenerationRecord.model_validate({
        "organization_id": organization_id,
        "user_id": user_id,
        "media_type": "video",
        "goal_type": request.goal_type,
        "aspect_ratio": request.aspect_ratio,
        "output_format": "mp4",
        "final_prompt": final_prompt,
        "source_prompt": request.prompt,
        "image_url": request.image_url,
        "video_url": video.video_url,
        "generation_provider": result.provider_label,
        "image_generator": video.model,
        "library_category": infer_library_category(request.goal_type, request.prompt, media_type="video"),
        "saved_to_library": True,
    })
    stored = await persist_generation(record)
    log_performance("video_generation", time.perf_counter() - started, provider=result.provider_label)

    return VideoGenerationResponse(
        video_url=video.video_url,
        generation_id=str(stored.get("id") or record.id),
        provider=result.provider_label,
        resolution=resolution,
        task_id=video.task_id,
        final_prompt=final_prompt,
    )
