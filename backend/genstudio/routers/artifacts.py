import logging
from uuid import UUID
from fastapi import APIRouter, Depends, Query
from genstudio.config import get_settings
from genstudio.dependencies import get_artifact_store
from genstudio.errors import ErrorCode, Forbidden, GenerationError, NotFound
from genstudio.middleware.auth import CurrentUser, get_current_user
from genstudio.schemas.artifact import ArtifactResponse, SignedUrlResponse
from genstudio.services.artifacts import ArtifactStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/artifacts", tags=["Artifacts"])


@router.get("", response_model=list[ArtifactResponse])
async def list_artifacts(
    kind: str = Query("image"),
    current_user: CurrentUser = Depends(get_current_user),
    store: ArtifactStore = Depends(get_artifact_store),
):
    return await store.list_for_user(current_user.id, kind)


@router.post("/{artifact_id}/signed-url", response_model=SignedUrlResponse)
async def create_signed_url(
    artifact_id: UUID,
    current_user: CurrentUser = Depends(get_current_user),
    store: ArtifactStore = Depends(get_artifact_store),
):
    artifact = await store.get(artifact_id)
    if not artifact:
        raise NotFound("Artifact not found")
    if artifact.user_id != current_user.id:
        raise Forbidden("Artifact belongs to another user")
    try:
        url = await store.signed_url(artifact, get_settings().SIGNED_URL_TTL_SECONDS)
    except Exception as e:
        logger.error(f"Signed URL failed for artifact {artifact_id}: {e}")
        raise GenerationError("Could not sign artifact URL", code=ErrorCode.SIGN_FAILED)
    return SignedUrlResponse(signed_url=url, mime_type=artifact.mime_type)
