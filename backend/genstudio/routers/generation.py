from typing import Optional
from fastapi import APIRouter, Depends, File, Form, Response, UploadFile
from pydantic import ValidationError
from genstudio.dependencies import enforce_rate_limit, get_orchestrator
from genstudio.errors import ErrorCode, InvalidInput
from genstudio.middleware.auth import CurrentUser, get_current_user
from genstudio.schemas.generation import GenerationRequest, GenerationResponse
from genstudio.services.generation import GenerationOrchestrator

router = APIRouter(prefix="/api/generations", tags=["Generations"])


async def _read_upload(upload: Optional[UploadFile]) -> Optional[dict]:
    if upload is None:
        return None
    return {
        "data": await upload.read(),
        "content_type": upload.content_type or "",
        "filename": upload.filename,
    }


def _invalid_input(exc: ValidationError) -> InvalidInput:
    errors = [
        {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]
    code = ErrorCode.BAD_FORMDATA
    if any(err["field"].startswith("model_tier") for err in errors):
        code = ErrorCode.BAD_MODEL_TIER
    return InvalidInput("Invalid generation request", code=code, details={"errors": errors})


@router.post("", response_model=GenerationResponse, dependencies=[Depends(enforce_rate_limit)])
async def create_generation(
    response: Response,
    image: Optional[UploadFile] = File(None),
    ref_image: Optional[UploadFile] = File(None, alias="refImage"),
    prompt: str = Form(""),
    model_tier: str = Form("cheap", alias="modelTier"),
    aspect_ratio: str = Form("16:9", alias="aspectRatio"),
    image_size: Optional[str] = Form(None, alias="imageSize"),
    current_user: CurrentUser = Depends(get_current_user),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    try:
        request = GenerationRequest(
            image=await _read_upload(image),
            ref_image=await _read_upload(ref_image),
            prompt=prompt,
            model_tier=model_tier.strip().lower(),
            aspect_ratio=aspect_ratio,
            image_size=image_size,
        )
    except ValidationError as e:
        raise _invalid_input(e)

    result = await orchestrator.run(current_user.id, request)
    response.headers["Cache-Control"] = "no-store"
    response.headers["X-Token-Balance"] = str(result.balance)
    return result
