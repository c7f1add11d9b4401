import base64
import os
import uuid
from datetime import datetime, timedelta

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("GEMINI_API_KEY", "test-key")

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from genstudio.database import Base
from genstudio.models.artifact import Artifact
from genstudio.schemas.generation import GenerationRequest, ImageUpload, ModelTier
from genstudio.services.artifacts import ArtifactStore
from genstudio.services.generation import GenerationOrchestrator, GenerationPolicy, TierPolicy
from genstudio.services.ledger import LedgerClient
from genstudio.services.provider import GeminiImageProvider
from genstudio.services.quota import QuotaEnforcer

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 256
MODELS = {ModelTier.CHEAP: "gemini-2.5-flash-image", ModelTier.STRONG: "gemini-3-pro-image-preview"}


class FakeObjectStore:
    """In-memory stand-in for the MinIO bucket."""

    def __init__(self, bucket: str = "ai-results"):
        self.bucket = bucket
        self.objects: dict[str, bytes] = {}
        self.fail_put = False
        self.fail_remove = False
        self.fail_presign = False
        self.removed: list[str] = []

    async def put(self, key, data, content_type):
        if self.fail_put:
            raise ConnectionError("object store unreachable")
        self.objects[key] = data
        return key

    async def remove(self, key):
        if self.fail_remove:
            raise ConnectionError("object store unreachable")
        self.objects.pop(key, None)
        self.removed.append(key)

    async def remove_many(self, keys):
        if self.fail_remove:
            raise ConnectionError("object store unreachable")
        for key in keys:
            self.objects.pop(key, None)
            self.removed.append(key)
        return []

    async def presigned_url(self, key, ttl_seconds):
        if self.fail_presign:
            raise ConnectionError("object store unreachable")
        return f"https://storage.test/{self.bucket}/{key}?ttl={ttl_seconds}"


class RecordingLedger(LedgerClient):
    """LedgerClient that counts refund and settle calls."""

    def __init__(self, session_factory):
        super().__init__(session_factory)
        self.refund_calls = []
        self.settle_calls = []

    async def refund_charge(self, charge_id):
        self.refund_calls.append(charge_id)
        return await super().refund_charge(charge_id)

    async def settle_charge(self, charge_id, artifact_id=None):
        self.settle_calls.append((charge_id, artifact_id))
        return await super().settle_charge(charge_id, artifact_id)


def gemini_image_body(data: bytes = PNG_BYTES, mime_type: str = "image/png") -> dict:
    return {
        "candidates": [
            {
                "content": {
                    "parts": [
                        {"text": "here you go"},
                        {"inlineData": {"mimeType": mime_type, "data": base64.b64encode(data).decode()}},
                    ]
                }
            }
        ]
    }


def make_provider(handler, timeout: float = 5.0, api_key: str = "test-key") -> GeminiImageProvider:
    return GeminiImageProvider(
        api_key=api_key,
        models=MODELS,
        timeout=timeout,
        base_url="https://gemini.test",
        transport=httpx.MockTransport(handler),
    )


def make_request(**overrides) -> GenerationRequest:
    fields = {
        "image": ImageUpload(data=PNG_BYTES, content_type="image/png", filename="scene.png"),
        "prompt": "put the subject on a beach at sunset",
        "model_tier": ModelTier.CHEAP,
        "aspect_ratio": "16:9",
    }
    fields.update(overrides)
    return GenerationRequest(**fields)


@pytest.fixture
def user_id():
    return uuid.uuid4()


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'genstudio.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def broken_session_factory(tmp_path):
    """Session factory on a database without any table: every statement fails."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


class UnreachableSessionFactory:
    """Session factory whose database refuses connections (raw OSError, not wrapped by SQLAlchemy)."""

    def __call__(self):
        raise ConnectionRefusedError("database unreachable")


@pytest.fixture
def unreachable_session_factory():
    return UnreachableSessionFactory()


@pytest.fixture
def object_store():
    return FakeObjectStore()


@pytest.fixture
def ledger(session_factory):
    return RecordingLedger(session_factory)


@pytest.fixture
def artifact_store(session_factory, object_store):
    return ArtifactStore(session_factory, object_store)


@pytest.fixture
def quota(session_factory, object_store):
    return QuotaEnforcer(session_factory, object_store)


@pytest.fixture
def policy():
    return GenerationPolicy(
        tiers={
            ModelTier.CHEAP: TierPolicy(cost=15, max_scene_bytes=2_000_000),
            ModelTier.STRONG: TierPolicy(cost=45, max_scene_bytes=6_000_000),
        },
        max_ref_bytes=512_000,
        retention_limit=10,
    )


@pytest.fixture
def build_orchestrator(ledger, artifact_store, quota, policy):
    def _build(provider, **overrides):
        return GenerationOrchestrator(
            ledger=overrides.get("ledger", ledger),
            provider=provider,
            artifacts=overrides.get("artifacts", artifact_store),
            quota=overrides.get("quota", quota),
            policy=overrides.get("policy", policy),
        )
    return _build


async def seed_artifacts(session_factory, object_store, user_id, count, kind="image", start=None):
    """Insert `count` artifacts, oldest first, one minute apart."""
    start = start or datetime.utcnow() - timedelta(hours=1)
    ids = []
    async with session_factory() as session:
        async with session.begin():
            for i in range(count):
                key = f"{user_id}/{uuid.uuid4()}.png"
                object_store.objects[key] = b"x"
                artifact = Artifact(
                    user_id=user_id,
                    kind=kind,
                    storage_bucket=object_store.bucket,
                    storage_path=key,
                    mime_type="image/png",
                    bytes=1,
                    created_at=start + timedelta(minutes=i),
                )
                session.add(artifact)
                await session.flush()
                ids.append(artifact.id)
    return ids
