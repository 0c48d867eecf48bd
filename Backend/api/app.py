# Backend/api/app.py
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
import time
import uuid
import logging
from contextlib import asynccontextmanager
from typing import Optional

from config.settings import Settings, settings as default_settings
from database.message_store import InMemoryMessageStore, MessageStore
from services.completion_provider import CompletionProvider, OpenAICompletionProvider
from services.conversation_service import ConversationService
from services.stream_relay import StreamRelay
from services.title_service import TitleService
from api.middleware.error_handler import error_handler_middleware, register_exception_handlers
from api.routes import conversations, health
from api import app_state

logger = logging.getLogger(__name__)


def build_message_store(settings: Settings) -> MessageStore:
    """Select the storage backend named by STORAGE_BACKEND"""
    if settings.storage_backend == "supabase":
        from database.chat_repository import ChatRepository
        return ChatRepository(settings)
    return InMemoryMessageStore(settings.seq_allocation_retries)


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[MessageStore] = None,
    provider: Optional[CompletionProvider] = None,
    title_service: Optional[TitleService] = None,
) -> FastAPI:
    """Build the application; collaborators can be injected for tests"""
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan management"""
        logger.info("Starting streaming chat backend...")

        try:
            settings.validate()
            logger.info("✓ Settings loaded and validated")

            message_store = store or build_message_store(settings)
            completion_provider = provider or OpenAICompletionProvider(settings)
            titles = title_service or TitleService(settings)

            app_state.settings = settings
            app_state.store = message_store
            app_state.relay = StreamRelay(settings, message_store, completion_provider)
            app_state.conversations = ConversationService(message_store, titles)
            logger.info(f"✓ Storage backend: {settings.storage_backend}, model: {settings.llm_model}")

        except Exception as e:
            logger.error(f"❌ Failed to initialize application: {e}")
            raise

        yield

        logger.info("Shutting down streaming chat backend...")
        try:
            await completion_provider.close()
            await message_store.close()
        except Exception as e:
            logger.error(f"❌ Error during shutdown: {e}")
        finally:
            app_state.reset()
        logger.info("✓ Application shutdown completed")

    app = FastAPI(
        title="Streaming Chat API",
        description="Persists chat messages and streams LLM replies as server-sent events",
        version="1.0.0",
        docs_url="/api/docs" if settings.debug_mode else None,
        redoc_url="/api/redoc" if settings.debug_mode else None,
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(error_handler_middleware)

    @app.middleware("http")
    async def add_process_time_header(request: Request, call_next):
        """Add processing time and request ID headers"""
        start_time = time.time()
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)

        # For streams this measures time to first byte, not stream duration
        process_time = time.time() - start_time
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Processing-Time"] = str(process_time)

        logger.info(
            f"Request {request_id}: {request.method} {request.url.path} "
            f"- Status: {response.status_code} - Time: {process_time:.3f}s"
        )
        return response

    register_exception_handlers(app)

    app.include_router(conversations.router)
    app.include_router(health.router, tags=["Health"])

    return app
