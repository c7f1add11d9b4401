from enum import Enum
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional
from uuid import UUID
from genstudio.models.token import ActionKind

ASPECT_RATIOS = ("1:1", "2:3", "3:2", "3:4", "4:3", "4:5", "5:4", "9:16", "16:9", "21:9")
IMAGE_TYPES = ("image/png", "image/jpeg", "image/jpg", "image/webp")
IMAGE_SIZES = ("1K", "2K", "4K")
EXTENSION_TYPES = {".png": "image/png", ".jpg": "image/jpeg", ".jpeg": "image/jpeg", ".webp": "image/webp"}


class ModelTier(str, Enum):
    CHEAP = "cheap"
    STRONG = "strong"

    @property
    def action(self) -> ActionKind:
        return ActionKind.AI_PRO if self is ModelTier.STRONG else ActionKind.AI_QUICK


class ImageUpload(BaseModel):
    data: bytes = Field(repr=False)
    content_type: str
    filename: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _type_from_filename(cls, values):
        # generic content types fall back to the file extension
        if isinstance(values, dict):
            content_type = (values.get("content_type") or "").lower()
            if content_type not in IMAGE_TYPES:
                guessed = type_for_filename(values.get("filename"))
                if guessed:
                    values = {**values, "content_type": guessed}
        return values

    @field_validator("content_type")
    @classmethod
    def _check_type(cls, v: str) -> str:
        v = (v or "").lower()
        if v not in IMAGE_TYPES:
            raise ValueError(f"unsupported image type: {v or 'unknown'}")
        return v

    @field_validator("data")
    @classmethod
    def _check_data(cls, v: bytes) -> bytes:
        if not v:
            raise ValueError("empty image")
        return v

    @property
    def size(self) -> int:
        return len(self.data)


class GenerationRequest(BaseModel):
    image: ImageUpload
    ref_image: Optional[ImageUpload] = None
    prompt: str = Field(min_length=1)
    model_tier: ModelTier = ModelTier.CHEAP
    aspect_ratio: str = "16:9"
    image_size: Optional[str] = None

    @field_validator("prompt", mode="before")
    @classmethod
    def _strip_prompt(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("aspect_ratio", mode="before")
    @classmethod
    def _check_aspect_ratio(cls, v):
        if isinstance(v, str):
            v = v.strip()
        if not v:
            v = "16:9"
        if v not in ASPECT_RATIOS:
            raise ValueError(f"unsupported aspect ratio: {v}")
        return v

    @field_validator("image_size", mode="before")
    @classmethod
    def _normalize_image_size(cls, v):
        return normalize_image_size(v)


def normalize_image_size(value: Optional[str]) -> Optional[str]:
    """
    Map a client size hint onto the provider's imageSize values (1K, 2K, 4K).

    Editor flags such as SAFE_4MP / 1MP are accepted; anything else maps to None.
    """
    s = (value or "").strip().upper()
    if not s:
        return None
    if s in IMAGE_SIZES:
        return s
    if "4MP" in s:
        return "4K"
    if "1MP" in s:
        return "1K"
    return None


class GenerationResponse(BaseModel):
    image_base64: str
    mime_type: str
    model_used: str
    artifact_id: UUID
    charge_id: UUID
    cost: int
    balance: int
    result_url: Optional[str] = None


def type_for_filename(filename: Optional[str]) -> Optional[str]:
    """Image MIME type from a .png / .jpg / .jpeg / .webp filename, else None."""
    name = (filename or "").strip().lower()
    for ext, content_type in EXTENSION_TYPES.items():
        if name.endswith(ext):
            return content_type
    return None
