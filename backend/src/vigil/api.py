"""FastAPI application with a DBOS-scheduled daily quote dispatcher."""

import logging

from fastapi import Depends, FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from vigil_models import DeviceRegistration
from vigil.auth import AuthenticatedUser, get_current_user
from vigil.config import configure_logging, settings
from vigil.db import Store, db
from vigil.dependencies import get_chat_service, get_dispatcher, get_store
from vigil.errors import (
    Internal,
    InvalidArgument,
    NotFound,
    RateLimited,
    Unauthenticated,
    VigilError,
)
from vigil.models import (
    BadgeUpdate,
    ChatRequest,
    ChatResponse,
    ConversationSummary,
    DailyQuoteResponse,
    DeviceResponse,
    DispatchRunResponse,
    FavoriteUpdate,
)
from vigil.services import devices
from vigil.services.chat_handler import ChatService
from vigil.services.dispatcher import QuoteDispatcher

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Vigil API",
    description="Chat and daily quote notification backend",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event():
    """Initialize the store and DBOS on startup."""
    configure_logging()

    await db.connect()
    await db.ensure_tables_exist()

    # Registers the scheduled workflow, which also initializes DBOS
    from dbos import DBOS
    import vigil.workflows.daily_quotes  # noqa: F401

    DBOS.launch()


@app.on_event("shutdown")
async def shutdown_event():
    """Clean up on shutdown."""
    await db.disconnect()


@app.exception_handler(VigilError)
async def vigil_error_handler(request: Request, exc: VigilError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "detail": exc.message},
    )


# ============= Health & Info =============


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": "Vigil API", "version": "0.1.0"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "store": settings.store_backend}


# ============= Chat Endpoints =============


@app.get("/chat/history", response_model=list[ConversationSummary])
async def get_chat_history(
    user: AuthenticatedUser = Depends(get_current_user),
    chat: ChatService = Depends(get_chat_service),
):
    """Most recent conversations, newest first. Never fails on store errors."""
    conversations = await chat.get_history(user.uid)
    return [ConversationSummary.from_conversation(c) for c in conversations]


@app.post("/chat/messages", response_model=ChatResponse)
async def process_chat_message(
    request: ChatRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    chat: ChatService = Depends(get_chat_service),
):
    """Send a message and get the assistant's reply."""
    try:
        result = await chat.process_message(
            user_id=user.uid,
            message=request.message,
            conversation_id=request.conversation_id,
        )
    except (InvalidArgument, RateLimited):
        raise
    except Exception as e:
        logger.error(f"Error processing message for {user.uid}: {e}")
        raise Internal("Failed to process message") from e

    return ChatResponse(
        message=result.reply,
        response=result.reply,
        conversation_id=result.conversation_id,
    )


# ============= Device Endpoints =============


@app.post("/devices", response_model=DeviceResponse)
async def register_device(
    registration: DeviceRegistration,
    user: AuthenticatedUser = Depends(get_current_user),
    store: Store = Depends(get_store),
):
    """Register or refresh a push token for the caller."""
    device = await devices.register_device(store, user.uid, registration, email=user.email)
    return DeviceResponse.from_device(device)


@app.put("/devices/{token}/badge")
async def set_badge(
    token: str,
    update: BadgeUpdate,
    user: AuthenticatedUser = Depends(get_current_user),
    store: Store = Depends(get_store),
):
    """Set a device's badge count, e.g. reset to zero after reading."""
    await devices.set_badge_count(store, user.uid, token, update.count)
    return {"status": "ok", "badgeCount": update.count}


# ============= Daily Quote Endpoints =============


@app.get("/quotes", response_model=list[DailyQuoteResponse])
async def list_quotes(
    limit: int = 30,
    user: AuthenticatedUser = Depends(get_current_user),
    store: Store = Depends(get_store),
):
    """List the caller's daily quote history, newest first."""
    quotes = await store.list_daily_quotes(user.uid, max(1, min(limit, 100)))
    return [DailyQuoteResponse.from_quote(q) for q in quotes]


@app.post("/quotes/{quote_id}/favorite", response_model=DailyQuoteResponse)
async def set_quote_favorite(
    quote_id: str,
    update: FavoriteUpdate,
    user: AuthenticatedUser = Depends(get_current_user),
    store: Store = Depends(get_store),
):
    """Mark or unmark a quote as favourite."""
    quote = await store.set_quote_favorite(user.uid, quote_id, update.is_favorite)
    if not quote:
        raise NotFound("Quote not found")
    return DailyQuoteResponse.from_quote(quote)


# ============= Internal Endpoints =============


@app.post("/internal/daily-quotes/run", response_model=DispatchRunResponse)
async def run_daily_quotes(
    x_internal_token: str | None = Header(None, alias="X-Internal-Token"),
    dispatcher: QuoteDispatcher = Depends(get_dispatcher),
):
    """Run one dispatcher pass immediately, outside the hourly schedule."""
    if not settings.internal_token or x_internal_token != settings.internal_token:
        raise Unauthenticated("Invalid internal token")

    stats = await dispatcher.run()
    return DispatchRunResponse(stats=stats.as_dict())


# ============= Run =============


def run():
    """Run the application."""
    import uvicorn

    uvicorn.run(
        "vigil.api:app",
        host=settings.host,
        port=settings.port,
    )


if __name__ == "__main__":
    run()
