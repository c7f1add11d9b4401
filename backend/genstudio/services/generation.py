"""
Generation saga - charge, generate, persist, trim, settle.

    VALIDATING ─► CHARGING ─► GENERATING ─► PERSISTING ─► TRIMMING ─► SETTLING ─► DONE
        │             │            │              │
        ▼             ▼            └──────┬───────┘
      FAILED        FAILED          COMPENSATING ─► FAILED   (refund once)

Nothing before CHARGING touches the ledger. Once the charge is open, any
failure (typed error, unexpected exception, cancellation) goes through
COMPENSATING, which issues exactly one refund before the original error is
re-raised. TRIMMING and SETTLING are best effort: their failures are logged
and the generation is still reported as a success.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional
from uuid import UUID

from genstudio.errors import (
    GenerationError,
    InternalError,
    PayloadTooLarge,
    ProviderNotConfigured,
    ErrorCode,
)
from genstudio.models.artifact import Artifact
from genstudio.schemas.generation import GenerationRequest, GenerationResponse, ModelTier
from genstudio.services.artifacts import ArtifactStore
from genstudio.services.ledger import ChargeReceipt, LedgerClient
from genstudio.services.provider import GeminiImageProvider, GeneratedImage
from genstudio.services.quota import QuotaEnforcer

logger = logging.getLogger(__name__)


class SagaState(str, Enum):
    VALIDATING = "validating"
    CHARGING = "charging"
    GENERATING = "generating"
    PERSISTING = "persisting"
    TRIMMING = "trimming"
    SETTLING = "settling"
    DONE = "done"
    COMPENSATING = "compensating"
    FAILED = "failed"


@dataclass(frozen=True)
class TierPolicy:
    cost: int
    max_scene_bytes: int


@dataclass(frozen=True)
class GenerationPolicy:
    tiers: dict[ModelTier, TierPolicy]
    max_ref_bytes: int = 512_000
    retention_limit: int = 10
    artifact_kind: str = "image"
    result_url_ttl_seconds: int = 60

    @classmethod
    def from_settings(cls, settings) -> GenerationPolicy:
        return cls(
            tiers={
                ModelTier.CHEAP: TierPolicy(settings.COST_CHEAP, settings.MAX_SCENE_BYTES_CHEAP),
                ModelTier.STRONG: TierPolicy(settings.COST_STRONG, settings.MAX_SCENE_BYTES_STRONG),
            },
            max_ref_bytes=settings.MAX_REF_BYTES,
            retention_limit=settings.ARTIFACT_RETENTION_LIMIT,
            result_url_ttl_seconds=settings.RESULT_URL_TTL_SECONDS,
        )


@dataclass
class SagaRun:
    """Trace of one saga execution."""

    user_id: UUID
    tier: ModelTier
    state: SagaState = SagaState.VALIDATING
    history: list[SagaState] = field(default_factory=lambda: [SagaState.VALIDATING])
    receipt: Optional[ChargeReceipt] = None
    artifact: Optional[Artifact] = None
    refunded: Optional[bool] = None
    settled: Optional[bool] = None
    trimmed: int = 0

    def to(self, state: SagaState) -> None:
        logger.debug(f"Saga user={self.user_id}: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)


class GenerationOrchestrator:
    """One parameterized saga for every model tier."""

    def __init__(
        self,
        ledger: LedgerClient,
        provider: GeminiImageProvider,
        artifacts: ArtifactStore,
        quota: QuotaEnforcer,
        policy: GenerationPolicy,
    ):
        self._ledger = ledger
        self._provider = provider
        self._artifacts = artifacts
        self._quota = quota
        self._policy = policy

    @property
    def policy(self) -> GenerationPolicy:
        return self._policy

    def validate(self, request: GenerationRequest) -> TierPolicy:
        """Size caps and provider readiness; raises before anything is charged."""
        tier = self._policy.tiers[request.model_tier]
        if request.image.size > tier.max_scene_bytes:
            raise PayloadTooLarge(
                f"Scene image too large (max {tier.max_scene_bytes / 1_000_000:.1f}MB)",
                code=ErrorCode.SCENE_TOO_LARGE,
                details={"max_bytes": tier.max_scene_bytes, "got_bytes": request.image.size},
            )
        if request.ref_image is not None and request.ref_image.size > self._policy.max_ref_bytes:
            raise PayloadTooLarge(
                f"Reference image too large (max {self._policy.max_ref_bytes // 1000}KB)",
                code=ErrorCode.REF_TOO_LARGE,
                details={"max_bytes": self._policy.max_ref_bytes, "got_bytes": request.ref_image.size},
            )
        if not self._provider.configured:
            raise ProviderNotConfigured("Image provider credentials are missing")
        return tier

    async def run(self, user_id: UUID, request: GenerationRequest, run: Optional[SagaRun] = None) -> GenerationResponse:
        run = run or SagaRun(user_id=user_id, tier=request.model_tier)
        try:
            tier = self.validate(request)
        except Exception:
            run.to(SagaState.FAILED)
            raise

        run.to(SagaState.CHARGING)
        try:
            run.receipt = await self._ledger.open_charge(user_id, tier.cost, request.model_tier.action)
        except Exception:
            run.to(SagaState.FAILED)
            raise

        try:
            run.to(SagaState.GENERATING)
            image = await self._provider.generate(
                request.image,
                request.ref_image,
                request.prompt,
                request.model_tier,
                request.aspect_ratio,
                request.image_size,
            )

            run.to(SagaState.PERSISTING)
            run.artifact = await self._artifacts.persist(
                user_id,
                image.data,
                image.mime_type,
                model=request.model_tier.value,
                kind=self._policy.artifact_kind,
            )
        except asyncio.CancelledError:
            await self._compensate(run, "request cancelled")
            raise
        except GenerationError as e:
            await self._compensate(run, f"{e.code.value}: {e.message}")
            raise
        except Exception as e:
            logger.exception(f"Unexpected failure in generation saga for user {user_id}")
            await self._compensate(run, repr(e))
            raise InternalError(f"Generation failed: {e}") from e

        run.to(SagaState.TRIMMING)
        run.trimmed = await self._quota.enforce(
            user_id, self._policy.artifact_kind, self._policy.retention_limit, keep=run.artifact.id
        )

        run.to(SagaState.SETTLING)
        run.settled = await self._settle(run)

        result_url = await self._result_url(run.artifact)
        run.to(SagaState.DONE)
        return self._response(run, image, result_url)

    async def _compensate(self, run: SagaRun, reason: str) -> None:
        run.to(SagaState.COMPENSATING)
        logger.warning(f"Refunding charge {run.receipt.charge_id} for user {run.user_id}: {reason}")
        # the refund must outlive a cancelled request
        try:
            run.refunded = await asyncio.shield(self._ledger.refund_charge(run.receipt.charge_id))
        except Exception as e:
            logger.error(f"Refund call raised for charge {run.receipt.charge_id}: {e}")
            run.refunded = False
        if not run.refunded:
            logger.error(f"Charge {run.receipt.charge_id} could not be refunded, needs reconciliation")
        run.to(SagaState.FAILED)

    async def _settle(self, run: SagaRun) -> bool:
        try:
            return await self._ledger.settle_charge(run.receipt.charge_id, run.artifact.id)
        except Exception as e:
            logger.error(f"Settle raised for charge {run.receipt.charge_id}, left pending: {e}")
            return False

    async def _result_url(self, artifact: Artifact) -> Optional[str]:
        try:
            return await self._artifacts.signed_url(artifact, self._policy.result_url_ttl_seconds)
        except Exception as e:
            logger.warning(f"Signed URL failed for artifact {artifact.id}: {e}")
            return None

    @staticmethod
    def _response(run: SagaRun, image: GeneratedImage, result_url: Optional[str]) -> GenerationResponse:
        return GenerationResponse(
            image_base64=base64.b64encode(image.data).decode("ascii"),
            mime_type=image.mime_type,
            model_used=image.model,
            artifact_id=run.artifact.id,
            charge_id=run.receipt.charge_id,
            cost=run.receipt.cost,
            balance=run.receipt.balance,
            result_url=result_url,
        )
