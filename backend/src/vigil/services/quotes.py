"""Short uplifting quotes for daily notifications."""

import logging
from typing import Sequence

from vigil.services.completion import CompletionClient

logger = logging.getLogger(__name__)

MAX_QUOTE_LENGTH = 150
TRUNCATED_LENGTH = 147
ELLIPSIS = "..."

FALLBACK_QUOTE = (
    "Reflect on your spiritual journey today. "
    "Each step brings you closer to understanding."
)


def build_quote_prompt(recent_user_messages: Sequence[str]) -> str:
    """Build the prompt for a quote, personalized when messages are available."""
    if recent_user_messages:
        joined = '" "'.join(recent_user_messages)
        return f"""Based on these previous messages from a user of a spiritual app: "{joined}",
create a short, uplifting spiritual quote or message (max 100 characters) that would be meaningful to them.
The quote should be general enough to be appropriate as a daily notification.
Include only the quote text without quotation marks or attribution."""

    return """Create a short, uplifting spiritual or biblical quote or message (max 100 characters) that would be
meaningful to send as a daily notification to a user of a spiritual app.
Include only the quote text without quotation marks or attribution."""


def truncate_quote(text: str) -> str:
    """Cap notification text at MAX_QUOTE_LENGTH characters."""
    if len(text) > MAX_QUOTE_LENGTH:
        return text[:TRUNCATED_LENGTH] + ELLIPSIS
    return text


class QuoteGenerator:
    """Generates quotes via the completion service, never raising."""

    def __init__(self, completion: CompletionClient):
        self.completion = completion

    async def generate_quote(self, recent_user_messages: Sequence[str] = ()) -> str:
        """Return a quote of at most 150 characters, or FALLBACK_QUOTE on any error."""
        personalized = bool(recent_user_messages)
        prompt = build_quote_prompt(list(recent_user_messages))
        try:
            text = await self.completion.complete(prompt)
        except Exception as e:
            logger.error(f"Quote generation failed, using fallback: {e}")
            return FALLBACK_QUOTE

        quote = truncate_quote(text.strip())
        logger.info(f"Generated {'personalized' if personalized else 'generic'} quote: {quote}")
        return quote
