from genstudio.schemas.generation import (
    GenerationRequest, GenerationResponse, ImageUpload, ModelTier,
)
from genstudio.schemas.token import BalanceResponse, SpendRequest, SpendResponse
from genstudio.schemas.artifact import ArtifactResponse, SignedUrlResponse
