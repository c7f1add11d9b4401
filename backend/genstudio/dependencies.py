from fastapi import Depends, Request
from genstudio.errors import RateLimited
from genstudio.services.artifacts import ArtifactStore
from genstudio.services.generation import GenerationOrchestrator
from genstudio.services.ledger import LedgerClient
from genstudio.services.rate_limit import RateLimiter


def client_address(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded.split(",")[0].strip():
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def get_ledger(request: Request) -> LedgerClient:
    return request.app.state.ledger


def get_artifact_store(request: Request) -> ArtifactStore:
    return request.app.state.artifacts


def get_orchestrator(request: Request) -> GenerationOrchestrator:
    return request.app.state.orchestrator


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


async def enforce_rate_limit(request: Request, limiter: RateLimiter = Depends(get_rate_limiter)) -> None:
    key = client_address(request)
    if not limiter.allow(key):
        raise RateLimited(
            "Too many requests, please wait and try again",
            details={"retry_after": round(limiter.retry_after(key), 1)},
        )
