"""Shared dependency factories for FastAPI endpoints and workflows."""

from fastapi import Depends

from vigil.db import Store, db
from vigil.services.chat_handler import ChatService
from vigil.services.completion import CompletionClient, get_completion_client
from vigil.services.dispatcher import QuoteDispatcher
from vigil.services.entitlements import EntitlementService
from vigil.services.push import PushSender, get_push_sender
from vigil.services.quotes import QuoteGenerator


def get_store() -> Store:
    """Get the global store."""
    return db


def get_completion() -> CompletionClient:
    """Get the configured completion client."""
    return get_completion_client()


def get_push() -> PushSender:
    """Get the configured push sender."""
    return get_push_sender()


def get_chat_service(
    store: Store = Depends(get_store),
    completion: CompletionClient = Depends(get_completion),
) -> ChatService:
    """Get a chat service bound to the request's store and completion client."""
    return ChatService(store=store, completion=completion, entitlements=EntitlementService(store))


# Singleton dispatcher instance
_dispatcher: QuoteDispatcher | None = None


def get_dispatcher() -> QuoteDispatcher:
    """Get the singleton dispatcher used by the scheduled workflow."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = QuoteDispatcher(
            store=get_store(),
            quotes=QuoteGenerator(get_completion()),
            push=get_push(),
        )
    return _dispatcher
