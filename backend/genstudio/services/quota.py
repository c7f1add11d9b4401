import logging
from typing import Optional
from uuid import UUID
from sqlalchemy import select, delete, and_
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from genstudio.models.artifact import Artifact
from genstudio.services.storage import ObjectStore

logger = logging.getLogger(__name__)


class QuotaEnforcer:
    """Keeps only the newest `limit` artifacts of a kind per user."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], object_store: ObjectStore):
        self._session_factory = session_factory
        self._objects = object_store

    async def enforce(self, user_id: UUID, kind: str, limit: int, keep: Optional[UUID] = None) -> int:
        """
        Delete the artifacts beyond the newest `limit` (blobs first, then rows).

        `keep` is always counted inside the window when `limit > 0`, so the
        artifact a generation just created is never trimmed by that same
        generation. Best effort: failures are logged and 0 is returned.
        """
        try:
            return await self._enforce(user_id, kind, max(limit, 0), keep)
        except Exception as e:
            logger.warning(f"Quota trim failed for user {user_id} kind={kind}: {e}")
            return 0

    async def _enforce(self, user_id: UUID, kind: str, limit: int, keep: Optional[UUID]) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Artifact.id, Artifact.storage_path)
                .where(and_(Artifact.user_id == user_id, Artifact.kind == kind))
                .order_by(Artifact.created_at.desc(), Artifact.id.desc())
            )
            rows = list(result.all())

        if len(rows) <= limit:
            return 0

        if keep is not None and limit > 0:
            kept = [r for r in rows if r.id == keep]
            rows = kept + [r for r in rows if r.id != keep]

        excess = rows[limit:]
        failed = await self._objects.remove_many([r.storage_path for r in excess])
        if failed:
            # rows stay so the blobs remain reachable for the next trim
            logger.warning(f"Quota trim: {len(failed)} blobs not removed for user {user_id}")
        failed_keys = set(failed)
        ids = [r.id for r in excess if r.storage_path not in failed_keys]
        if not ids:
            return 0

        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(delete(Artifact).where(Artifact.id.in_(ids)))

        logger.info(f"Quota trim: removed {len(ids)} {kind} artifacts for user {user_id} (limit {limit})")
        return len(ids)
