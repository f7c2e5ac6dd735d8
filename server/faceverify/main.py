import logging
from contextlib import asynccontextmanager
from functools import partial
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse

from faceverify import config
from faceverify.api.v1.router import router as v1_router
from faceverify.errors import ProviderUnavailable
from faceverify.logging_config import configure_logging
from faceverify.services.face_service import EmbeddingProvider, FaceRecognitionProvider
from faceverify.services.face_store import FaceStore, InMemoryFaceStore, SupabaseFaceStore
from faceverify.services.workflow import CoordinatorRegistry, VerificationWorkflow
from faceverify.supabase_client import create_supabase_client

logger = logging.getLogger(__name__)

INDEX_PAGE = Path(__file__).resolve().parent / "static" / "index.html"


def build_store() -> FaceStore:
    if config.FACE_STORE == "memory":
        logger.warning("[main] FACE_STORE=memory, faces are lost on restart")
        return InMemoryFaceStore()
    return SupabaseFaceStore(create_supabase_client(), table=config.FACES_TABLE)


def build_registry(provider: EmbeddingProvider, store: FaceStore) -> CoordinatorRegistry:
    factory = partial(
        _make_workflow,
        provider,
        store,
        config.MATCH_THRESHOLD,
        config.MATCH_STRATEGY,
        config.REQUEST_TIMEOUT_SECONDS,
    )
    return CoordinatorRegistry(factory)


def _make_workflow(provider, store, threshold, strategy, timeout, is_current, generation):
    return VerificationWorkflow(
        provider,
        store,
        threshold=threshold,
        strategy=strategy,
        timeout=timeout,
        is_current=is_current,
        generation=generation,
    )


def create_app(
    provider: EmbeddingProvider | None = None,
    store: FaceStore | None = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(config.LOG_LEVEL)
        config.validate_config(require_supabase=store is None)

        face_provider = provider or FaceRecognitionProvider(config.FACE_DETECTION_MODEL)
        face_store = store or build_store()

        if config.PRELOAD_MODELS:
            logger.info("[main] Loading face model...")
            try:
                face_provider.load()
            except ProviderUnavailable as exc:
                # Requests report provider_unavailable and retry the load.
                logger.warning("[main] Failed to preload face model: %s", exc.detail)

        app.state.registry = build_registry(face_provider, face_store)
        logger.info(
            "[main] Ready (threshold=%.2f, strategy=%s, store=%s)",
            config.MATCH_THRESHOLD,
            config.MATCH_STRATEGY,
            type(face_store).__name__,
        )
        yield
        logger.info("[main] Shutting down...")

    app = FastAPI(title="Face Verify API", version="0.1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(v1_router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/", include_in_schema=False)
    async def index():
        return FileResponse(INDEX_PAGE, media_type="text/html")

    return app


app = create_app()
