"""
Subscription-tier entitlements for image and video generation.

Tiers gate which image provider and resolution an organization may use and
whether video is available at all. Super admins bypass every restriction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from madison.config.logger import app_logger
from madison.config.settings import settings
from madison.services.knowledge_store import fetch_subscription_tier
from madison.utils.errors import UpgradeRequiredError


DEFAULT_TIER = "essentials"
SUPER_ADMIN_TIER = "super_admin"

GEMINI = "gemini"
FREEPIK = "freepik"

HIGH_RESOLUTIONS = frozenset({"2k", "4k"})
STANDARD_RESOLUTION = "1k"
HIGH_VIDEO_RESOLUTION = "1080p"
STANDARD_VIDEO_RESOLUTION = "720p"


@dataclass(frozen=True)
class Entitlement:
    tier: str
    freepik: bool = False
    high_resolution: bool = False
    video: bool = False


TIER_ENTITLEMENTS: Dict[str, Entitlement] = {
    "essentials": Entitlement("essentials"),
    "atelier": Entitlement("atelier"),
    "studio": Entitlement("studio", freepik=True, high_resolution=True),
    "signature": Entitlement("signature", freepik=True, high_resolution=True, video=True),
    "maison": Entitlement("maison", freepik=True, high_resolution=True, video=True),
}

SUPER_ADMIN_ENTITLEMENT = Entitlement(SUPER_ADMIN_TIER, freepik=True, high_resolution=True, video=True)


def entitlement_for_tier(tier: Optional[str]) -> Entitlement:
    """Unknown or missing tiers get the entry tier."""
    return TIER_ENTITLEMENTS.get((tier or "").strip().lower(), TIER_ENTITLEMENTS[DEFAULT_TIER])


def is_super_admin(email: Optional[str]) -> bool:
    return bool(email) and email.strip().lower() in settings.super_admin_emails


async def resolve_entitlement(organization_id: Optional[str], email: Optional[str] = None) -> Entitlement:
    if is_super_admin(email):
        app_logger.info(f"Super admin {email} bypasses tier restrictions")
        return SUPER_ADMIN_ENTITLEMENT
    if not organization_id:
        return entitlement_for_tier(None)
    tier = await fetch_subscription_tier(organization_id)
    return entitlement_for_tier(tier)


@dataclass
class ImageSelection:
    provider: str
    freepik_model: Optional[str] = None
    resolution: str = STANDARD_RESOLUTION
    tier_restricted: bool = False
    restrictions: List[str] = field(default_factory=list)


def select_image_provider(
    entitlement: Entitlement,
    requested_provider: Optional[str] = None,
    freepik_model: Optional[str] = None,
    resolution: Optional[str] = None,
) -> ImageSelection:
    """Pick the image provider the tier allows.

    A request for something the tier excludes is downgraded to Gemini at
    standard resolution rather than rejected.
    """
    requested = (requested_provider or "").strip().lower()
    wants_freepik = requested == FREEPIK or (requested in ("", "auto") and bool(freepik_model))
    wanted_resolution = (resolution or "").strip().lower()
    restrictions: List[str] = []

    if wants_freepik and not entitlement.freepik:
        restrictions.append(f"freepik is not available on the '{entitlement.tier}' tier")
        wants_freepik = False
    if wanted_resolution in HIGH_RESOLUTIONS and not entitlement.high_resolution:
        restrictions.append(f"{wanted_resolution} resolution is not available on the '{entitlement.tier}' tier")
        wanted_resolution = STANDARD_RESOLUTION

    if restrictions:
        app_logger.info(f"Image request downgraded: {'; '.join(restrictions)}")

    if wants_freepik:
        return ImageSelection(
            provider=FREEPIK,
            freepik_model=freepik_model or None,
            resolution=wanted_resolution or "2k",
            tier_restricted=bool(restrictions),
            restrictions=restrictions,
        )
    return ImageSelection(
        provider=GEMINI,
        resolution=wanted_resolution if wanted_resolution in HIGH_RESOLUTIONS else STANDARD_RESOLUTION,
        tier_restricted=bool(restrictions),
        restrictions=restrictions,
    )


def check_video_access(entitlement: Entitlement, resolution: Optional[str] = None) -> str:
    """Return the video resolution the tier allows.

    Raises:
        UpgradeRequiredError: If the tier has no video access
    """
    if not entitlement.video:
        raise UpgradeRequiredError("video", entitlement.tier)
    wanted = (resolution or STANDARD_VIDEO_RESOLUTION).strip().lower()
    if wanted == HIGH_VIDEO_RESOLUTION and not entitlement.high_resolution:
        return STANDARD_VIDEO_RESOLUTION
    return wanted
