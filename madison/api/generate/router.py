"""Copy, image and video generation endpoints."""

from fastapi import APIRouter, HTTPException, status

from madison.api.generate.schemas import (
    CopyGenerationResponse,
    GenerateCopyRequest,
    GenerateImageRequest,
    GenerateVideoRequest,
    ImageGenerationResponse,
    RouteRequest,
    RouteResponse,
    VideoGenerationResponse,
)
from madison.config.logger import app_logger
from madison.services.generation_pipeline import generate_copy, generate_image, generate_video
from madison.services.squad_router import route
from madison.utils.auth import CurrentUser, RequireAuth
from madison.utils.errors import MadisonError
from madison.utils.responses import SuccessResponse, success_response

router = APIRouter(prefix="/v1/generate", tags=["generate"])


@router.post("/copy", response_model=SuccessResponse[CopyGenerationResponse])
async def create_copy(
    request: GenerateCopyRequest,
    user: CurrentUser = RequireAuth,
):
    """Generate brand copy.

    Brand knowledge, the product record and the routed squad's masters are
    composed into one system prompt; Claude serves the call with Gemini as
    the fallback.
    """
    app_logger.info(f"Copy request: content_type={request.content_type}, mode={request.mode}")
    try:
        result = await generate_copy(request, user)
    except MadisonError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        app_logger.error(f"Copy generation failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Copy generation failed: {str(e)}",
        )
    return success_response(data=result, message="Copy generated")


@router.post("/image", response_model=SuccessResponse[ImageGenerationResponse])
async def create_image(
    request: GenerateImageRequest,
    user: CurrentUser = RequireAuth,
):
    """Generate an image, or refine one when ``parent_image_id`` is set."""
    app_logger.info(
        f"Image request: goal={request.goal_type}, refs={len(request.reference_images)}, "
        f"parent={request.parent_image_id}"
    )
    try:
        result = await generate_image(request, user)
    except MadisonError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        app_logger.error(f"Image generation failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Image generation failed: {str(e)}",
        )
    message = "Image generated"
    if result.tier_restricted:
        message = "Image generated with tier restrictions applied"
    return success_response(data=result, message=message)


@router.post("/video", response_model=SuccessResponse[VideoGenerationResponse])
async def create_video(
    request: GenerateVideoRequest,
    user: CurrentUser = RequireAuth,
):
    """Animate an image. Requires a tier with video access."""
    app_logger.info(f"Video request: resolution={request.resolution}, duration={request.duration}s")
    try:
        result = await generate_video(request, user)
    except MadisonError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        app_logger.error(f"Video generation failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Video generation failed: {str(e)}",
        )
    return success_response(data=result, message="Video generated")


@router.post("/route", response_model=SuccessResponse[RouteResponse])
async def preview_route(
    request: RouteRequest,
    user: CurrentUser = RequireAuth,
):
    """Show which squad and awareness stage a brief would be routed to."""
    strategy = route(request.content_type, request.brief, request.style_override)
    return success_response(
        data=RouteResponse(
            copy_squad=strategy.copy_squad.value,
            visual_squad=strategy.visual_squad.value,
            primary_master=strategy.primary_master,
            secondary_master=strategy.secondary_master,
            awareness_stage=strategy.awareness_stage.value,
            forbidden_language=list(strategy.forbidden_language),
            reason=strategy.reason,
            scores=strategy.scores,
        ),
        message="Routing computed",
    )
