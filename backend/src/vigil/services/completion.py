"""Text completion clients.

Both the chat path and the daily quote generator treat the model as a
black box: a prompt goes in, text comes out, and anything else is a
``CompletionError``.
"""

import asyncio
import logging
from abc import ABC, abstractmethod

from claude_agent_sdk import (
    AssistantMessage,
    ClaudeAgentOptions,
    ResultMessage,
    TextBlock,
    query,
)
from google import genai

from vigil.config import settings

logger = logging.getLogger(__name__)


class CompletionError(Exception):
    """The completion provider failed or returned nothing usable."""


class CompletionClient(ABC):
    """A single-shot text completion service with a request timeout."""

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout if timeout is not None else settings.completion_timeout_seconds

    async def complete(self, prompt: str) -> str:
        """Return the model's text for ``prompt``.

        Raises:
            CompletionError: on timeout, provider error, or an empty response.
        """
        try:
            text = await asyncio.wait_for(self._generate(prompt), timeout=self.timeout)
        except CompletionError:
            raise
        except asyncio.TimeoutError as e:
            raise CompletionError(f"Completion timed out after {self.timeout}s") from e
        except Exception as e:
            raise CompletionError(f"{type(e).__name__}: {e}") from e

        if not text or not text.strip():
            raise CompletionError("Empty completion")
        return text

    @abstractmethod
    async def _generate(self, prompt: str) -> str: ...


class GeminiCompletionClient(CompletionClient):
    """Gemini via the google-genai SDK."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
    ):
        super().__init__(timeout)
        self.model = model or settings.gemini_model
        self._api_key = api_key if api_key is not None else settings.gemini_api_key
        self._client: genai.Client | None = None

    def _get_client(self) -> genai.Client:
        if not self._api_key:
            raise CompletionError("Gemini API key is not configured")
        if self._client is None:
            self._client = genai.Client(api_key=self._api_key)
        return self._client

    async def _generate(self, prompt: str) -> str:
        client = self._get_client()
        response = await client.aio.models.generate_content(
            model=self.model,
            contents=prompt,
        )
        return getattr(response, "text", "") or ""


class ClaudeCompletionClient(CompletionClient):
    """Claude via the Agent SDK."""

    def __init__(self, model: str | None = None, timeout: float | None = None):
        super().__init__(timeout)
        self.model = model or settings.claude_model

    async def _generate(self, prompt: str) -> str:
        options = ClaudeAgentOptions(
            model=self.model,
            permission_mode="bypassPermissions",
        )

        collected_text: list[str] = []
        async for msg in query(prompt=prompt, options=options):
            if isinstance(msg, AssistantMessage):
                for block in msg.content:
                    if isinstance(block, TextBlock):
                        collected_text.append(block.text)
            elif isinstance(msg, ResultMessage):
                if msg.is_error:
                    raise CompletionError(msg.result or "Unknown error")

        return "\n".join(collected_text)


def create_completion_client() -> CompletionClient:
    """Build the client selected by ``settings.completion_provider``."""
    if settings.completion_provider == "claude":
        return ClaudeCompletionClient()
    return GeminiCompletionClient()


# Singleton client instance
_client: CompletionClient | None = None


def get_completion_client() -> CompletionClient:
    """Get the singleton completion client."""
    global _client
    if _client is None:
        _client = create_completion_client()
        logger.info(f"Completion provider: {settings.completion_provider}")
    return _client
