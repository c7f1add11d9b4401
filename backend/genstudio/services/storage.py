"""
Object Store - Stockage MinIO des images générées.

Namespace MinIO:
    ai-results/
    └── {user_id}/
        ├── {uuid}.png
        └── {uuid}.jpg

Chaque utilisateur a son propre préfixe : deux générations concurrentes de
deux utilisateurs ne peuvent pas écrire la même clé.

Le SDK MinIO est synchrone : les appels sont exécutés dans un thread
(asyncio.to_thread) pour ne pas bloquer la boucle d'événements.
"""

from __future__ import annotations

import asyncio
import io
import logging
from datetime import timedelta
from typing import Iterable
from uuid import UUID

from minio import Minio
from minio.deleteobjects import DeleteObject

logger = logging.getLogger(__name__)

EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/webp": "webp",
    "image/png": "png",
}


def extension_for(content_type: str) -> str:
    """Extension de fichier pour un type MIME (png par défaut)."""
    return EXTENSIONS.get((content_type or "").lower(), "png")


def user_key(user_id: UUID | str, name: str) -> str:
    """
    Résout la clé complète d'un objet dans le namespace de l'utilisateur.

    Raises:
        ValueError: Si le nom tente un path traversal
    """
    clean = name.lstrip("/")
    if not clean or ".." in clean:
        raise ValueError("Path traversal interdit")
    return f"{user_id}/{clean}"


class ObjectStore:
    """
    Gestionnaire de stockage MinIO pour les résultats de génération.

    Toutes les opérations portent sur un seul bucket, créé au démarrage
    s'il n'existe pas.
    """

    def __init__(
        self,
        endpoint: str,
        access_key: str,
        secret_key: str,
        bucket: str = "ai-results",
        secure: bool = False,
    ):
        self._client = Minio(
            endpoint=endpoint,
            access_key=access_key,
            secret_key=secret_key,
            secure=secure,
        )
        self.bucket = bucket

    def ensure_bucket(self) -> None:
        """Crée le bucket s'il n'existe pas."""
        if not self._client.bucket_exists(self.bucket):
            self._client.make_bucket(self.bucket)
            logger.info(f"MinIO bucket created: {self.bucket}")

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        """
        Stocke un objet. Les erreurs du SDK sont propagées.

        Returns:
            La clé écrite
        """
        await asyncio.to_thread(
            self._client.put_object,
            self.bucket,
            key,
            io.BytesIO(data),
            length=len(data),
            content_type=content_type,
        )
        logger.info(f"Storage put: {key} ({len(data)} bytes)")
        return key

    async def remove(self, key: str) -> None:
        await asyncio.to_thread(self._client.remove_object, self.bucket, key)
        logger.info(f"Storage delete: {key}")

    async def remove_many(self, keys: Iterable[str]) -> list[str]:
        """
        Supprime un lot d'objets.

        Returns:
            Les clés dont la suppression a échoué
        """
        keys = [k for k in keys if k]
        if not keys:
            return []

        def _remove() -> list[str]:
            # remove_objects est paresseux : il faut consommer l'itérateur
            errors = self._client.remove_objects(self.bucket, [DeleteObject(k) for k in keys])
            return [err.name for err in errors]

        failed = await asyncio.to_thread(_remove)
        logger.info(f"Storage batch delete: {len(keys) - len(failed)}/{len(keys)} objects")
        return failed

    async def presigned_url(self, key: str, ttl_seconds: int) -> str:
        return await asyncio.to_thread(
            self._client.presigned_get_object,
            self.bucket,
            key,
            expires=timedelta(seconds=ttl_seconds),
        )
