"""
Google Gemini - Client de génération d'images (generateContent).

Modèles:
    cheap  → gemini-2.5-flash-image
    strong → gemini-3-pro-image-preview

Le client n'écrit jamais dans le stockage ni dans le ledger : il transforme
un appel réseau en GeneratedImage, ou lève une erreur typée:
    - ModelTimeout     : l'appel a dépassé le délai (annulé)
    - ProviderError    : réponse non-2xx ou erreur de transport
    - NoImageReturned  : réponse 2xx sans image décodable (filtre de sécurité...)
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from genstudio.errors import ModelTimeout, NoImageReturned, ProviderError
from genstudio.schemas.generation import ImageUpload, ModelTier

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com"


@dataclass(frozen=True)
class GeneratedImage:
    data: bytes
    mime_type: str
    model: str


def parse_body(resp: httpx.Response) -> Any:
    """JSON de la réponse, ou {"_nonJson": texte} si le corps n'est pas du JSON."""
    text = resp.text
    if not text:
        return None
    try:
        return resp.json()
    except ValueError:
        return {"_nonJson": text}


def pick_first_image(payload: Any) -> Optional[tuple[bytes, str]]:
    """Première image inline décodable de la réponse Gemini."""
    if not isinstance(payload, dict):
        return None
    candidates = payload.get("candidates") or []
    if not candidates or not isinstance(candidates[0], dict):
        return None
    parts = (candidates[0].get("content") or {}).get("parts")
    if not isinstance(parts, list):
        return None

    for part in parts:
        inline = part.get("inlineData") if isinstance(part, dict) else None
        if not isinstance(inline, dict):
            continue
        encoded = inline.get("data")
        if not isinstance(encoded, str) or not encoded:
            continue
        try:
            data = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError):
            continue
        if data:
            return data, inline.get("mimeType") or "image/png"
    return None


def _inline(image: ImageUpload) -> dict[str, Any]:
    return {
        "inlineData": {
            "mimeType": image.content_type or "image/jpeg",
            "data": base64.b64encode(image.data).decode("ascii"),
        }
    }


class GeminiImageProvider:
    """Client HTTP Gemini pour la génération d'images, avec délai borné."""

    def __init__(
        self,
        api_key: str,
        models: dict[ModelTier, str],
        timeout: float = 60.0,
        base_url: str = DEFAULT_BASE_URL,
        strong_image_size: str = "4K",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_key = api_key
        self._models = models
        self._timeout = timeout
        self._strong_image_size = strong_image_size
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
        )

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def model_for(self, tier: ModelTier) -> str:
        return self._models[tier]

    async def aclose(self) -> None:
        await self._client.aclose()

    def build_payload(
        self,
        image: ImageUpload,
        reference: Optional[ImageUpload],
        prompt: str,
        tier: ModelTier,
        aspect_ratio: str,
        image_size: Optional[str] = None,
    ) -> dict[str, Any]:
        parts: list[dict[str, Any]] = [{"text": prompt}, _inline(image)]
        if reference is not None:
            parts.append(_inline(reference))

        image_config: dict[str, Any] = {"aspectRatio": aspect_ratio}
        if tier is ModelTier.STRONG:
            image_config["imageSize"] = image_size or self._strong_image_size

        return {
            "contents": [{"parts": parts}],
            "generationConfig": {
                "responseModalities": ["Image"],
                "imageConfig": image_config,
            },
        }

    async def generate(
        self,
        image: ImageUpload,
        reference: Optional[ImageUpload],
        prompt: str,
        tier: ModelTier,
        aspect_ratio: str,
        image_size: Optional[str] = None,
    ) -> GeneratedImage:
        model = self.model_for(tier)
        payload = self.build_payload(image, reference, prompt, tier, aspect_ratio, image_size)
        url = f"/v1beta/models/{model}:generateContent"

        try:
            resp = await asyncio.wait_for(
                self._client.post(
                    url,
                    json=payload,
                    headers={"x-goog-api-key": self._api_key, "Cache-Control": "no-store"},
                ),
                timeout=self._timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.warning(f"Gemini {model} timed out after {self._timeout}s")
            raise ModelTimeout(
                f"Model did not answer within {self._timeout:g}s",
                details={"model_used": model},
            ) from e
        except httpx.HTTPError as e:
            logger.warning(f"Gemini {model} transport error: {e}")
            raise ProviderError(
                f"Gemini transport error: {e}",
                details={"model_used": model},
            ) from e

        body = parse_body(resp)
        if not resp.is_success:
            logger.warning(f"Gemini {model} returned {resp.status_code}")
            details = body.get("_nonJson", body) if isinstance(body, dict) else body
            raise ProviderError(
                f"Gemini API {resp.status_code}",
                details={"model_used": model, "upstream_status": resp.status_code, "upstream": details},
            )

        picked = pick_first_image(body)
        if picked is None:
            logger.warning(f"Gemini {model} returned no image")
            raise NoImageReturned(
                "No image returned (safety filter or empty result)",
                details={"model_used": model, "upstream": body},
            )

        data, mime_type = picked
        logger.info(f"Gemini {model} returned {len(data)} bytes ({mime_type})")
        return GeneratedImage(data=data, mime_type=mime_type, model=model)
