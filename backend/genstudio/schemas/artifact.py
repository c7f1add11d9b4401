from pydantic import BaseModel
from typing import Optional
from uuid import UUID
from datetime import datetime


class ArtifactResponse(BaseModel):
    id: UUID
    kind: str
    model: Optional[str]
    mime_type: str
    bytes: int
    status: str
    created_at: datetime

    class Config:
        from_attributes = True


class SignedUrlResponse(BaseModel):
    signed_url: str
    mime_type: Optional[str] = None
