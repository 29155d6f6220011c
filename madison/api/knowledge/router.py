"""Brand knowledge versioning endpoint."""

from fastapi import APIRouter, HTTPException, status

from madison.api.knowledge.schemas import KnowledgeVersionResponse, SupersedeKnowledgeRequest
from madison.config.logger import app_logger
from madison.models.knowledge import is_known_knowledge_type
from madison.services.knowledge_store import supersede_knowledge
from madison.utils.auth import CurrentUser, RequireAuth
from madison.utils.responses import SuccessResponse, success_response

router = APIRouter(prefix="/v1/knowledge", tags=["knowledge"])


@router.post("/{organization_id}/{knowledge_type}", response_model=SuccessResponse[KnowledgeVersionResponse])
async def store_knowledge(
    organization_id: str,
    knowledge_type: str,
    request: SupersedeKnowledgeRequest,
    user: CurrentUser = RequireAuth,
):
    """Store a new active version of a knowledge type, retiring the previous one."""
    if not is_known_knowledge_type(knowledge_type):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown knowledge type '{knowledge_type}'",
        )
    try:
        fragment = await supersede_knowledge(organization_id, knowledge_type, request.content, request.document_id)
    except Exception as e:
        app_logger.error(f"Failed to store {knowledge_type} for org={organization_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to store knowledge: {str(e)}",
        )
    return success_response(
        data=KnowledgeVersionResponse(
            id=str(fragment.id),
            knowledge_type=fragment.knowledge_type,
            version=fragment.version,
            is_active=fragment.is_active,
        ),
        message=f"{knowledge_type} is now at version {fragment.version}",
    )
