import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from genstudio.config import get_settings
from genstudio.database import engine, Base, async_session
from genstudio.errors import ErrorCode, GenerationError
from genstudio.models import *
from genstudio.routers import generation, tokens, artifacts
from genstudio.schemas.generation import ModelTier
from genstudio.services.artifacts import ArtifactStore
from genstudio.services.generation import GenerationOrchestrator, GenerationPolicy
from genstudio.services.ledger import LedgerClient
from genstudio.services.provider import GeminiImageProvider
from genstudio.services.quota import QuotaEnforcer
from genstudio.services.rate_limit import RateLimiter
from genstudio.services.storage import ObjectStore
from genstudio.services.vault import resolve_provider_key

logger = logging.getLogger(__name__)
settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


async def init_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def init_services(app: FastAPI) -> None:
    object_store = ObjectStore(
        endpoint=settings.MINIO_ENDPOINT,
        access_key=settings.MINIO_ACCESS_KEY,
        secret_key=settings.MINIO_SECRET_KEY,
        bucket=settings.MINIO_BUCKET,
        secure=settings.MINIO_SECURE,
    )
    try:
        object_store.ensure_bucket()
    except Exception as e:
        logger.warning(f"MinIO bucket check on startup: {e}")

    api_key = resolve_provider_key(settings)
    if not api_key:
        logger.warning("No Gemini API key configured, generations will be rejected")

    provider = GeminiImageProvider(
        api_key=api_key,
        models={
            ModelTier.CHEAP: settings.GEMINI_MODEL_CHEAP,
            ModelTier.STRONG: settings.GEMINI_MODEL_STRONG,
        },
        timeout=settings.PROVIDER_TIMEOUT_SECONDS,
        base_url=settings.GEMINI_BASE_URL,
        strong_image_size=settings.GEMINI_STRONG_IMAGE_SIZE,
    )
    ledger = LedgerClient(async_session)
    artifact_store = ArtifactStore(async_session, object_store)

    app.state.ledger = ledger
    app.state.artifacts = artifact_store
    app.state.provider = provider
    app.state.rate_limiter = RateLimiter(settings.RATE_LIMIT_REQUESTS, settings.RATE_LIMIT_WINDOW_SECONDS)
    app.state.orchestrator = GenerationOrchestrator(
        ledger=ledger,
        provider=provider,
        artifacts=artifact_store,
        quota=QuotaEnforcer(async_session, object_store),
        policy=GenerationPolicy.from_settings(settings),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    init_services(app)
    yield
    await app.state.provider.aclose()
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Token-Balance"],
)


@app.exception_handler(GenerationError)
async def generation_error_handler(request: Request, exc: GenerationError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code.value} {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.to_dict()},
        headers={"Cache-Control": "no-store"},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"detail": {"error": "Invalid request", "code": ErrorCode.BAD_FORMDATA.value, "errors": errors}},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Catch-all handler ensuring unhandled exceptions return a proper JSON
    response that passes through the CORS middleware.
    """
    logger.exception(f"Unhandled exception on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": {"error": str(exc), "code": ErrorCode.INTERNAL_ERROR.value}},
    )


app.include_router(generation.router)
app.include_router(tokens.router)
app.include_router(artifacts.router)


@app.get("/api/health")
async def health():
    return {"status": "ok", "version": settings.APP_VERSION}
