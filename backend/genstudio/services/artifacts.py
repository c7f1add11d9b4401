import logging
import uuid
from datetime import datetime
from typing import List, Optional
from uuid import UUID
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from genstudio.errors import DbInsertFailed, UploadFailed
from genstudio.models.artifact import Artifact
from genstudio.services.storage import ObjectStore, extension_for, user_key

logger = logging.getLogger(__name__)


class ArtifactStore:
    """Persists generated images: blob in the object store, row in the metadata store."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], object_store: ObjectStore):
        self._session_factory = session_factory
        self._objects = object_store

    @property
    def object_store(self) -> ObjectStore:
        return self._objects

    async def persist(
        self,
        user_id: UUID,
        data: bytes,
        content_type: str,
        model: Optional[str] = None,
        kind: str = "image",
    ) -> Artifact:
        """
        Write the blob, then insert the metadata row.

        The two stores are not transactional with each other: if the row
        insert fails, the blob just written is removed (best effort) before
        DbInsertFailed is raised. Never retries.
        """
        key = user_key(user_id, f"{uuid.uuid4()}.{extension_for(content_type)}")

        try:
            await self._objects.put(key, data, content_type)
        except Exception as e:
            logger.error(f"Blob upload failed for user {user_id} at {key}: {e}")
            raise UploadFailed(details={"detail": str(e)}) from e

        now = datetime.utcnow()
        artifact = Artifact(
            user_id=user_id,
            kind=kind,
            model=model,
            storage_bucket=self._objects.bucket,
            storage_path=key,
            mime_type=content_type,
            bytes=len(data),
            status="ready",
            created_at=now,
            ready_at=now,
        )
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(artifact)
        except Exception as e:
            logger.error(f"Artifact row insert failed for {key}, rolling back blob: {e}")
            try:
                await self._objects.remove(key)
            except Exception as cleanup_error:
                logger.error(f"Orphan blob left at {key}: {cleanup_error}")
            raise DbInsertFailed(details={"detail": str(e)}) from e

        logger.info(f"Artifact {artifact.id} persisted: user={user_id} key={key} ({len(data)} bytes)")
        return artifact

    async def get(self, artifact_id: UUID) -> Optional[Artifact]:
        async with self._session_factory() as session:
            return await session.get(Artifact, artifact_id)

    async def list_for_user(self, user_id: UUID, kind: Optional[str] = None) -> List[Artifact]:
        query = select(Artifact).where(Artifact.user_id == user_id)
        if kind:
            query = query.where(Artifact.kind == kind)
        query = query.order_by(Artifact.created_at.desc())
        async with self._session_factory() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def signed_url(self, artifact: Artifact, ttl_seconds: int) -> str:
        return await self._objects.presigned_url(artifact.storage_path, ttl_seconds)
