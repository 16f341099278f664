"""Search term generation from a business description."""

import logging
from typing import Optional

from models.video import SearchQuery
from services.model_clients import TextModelClient
from services.response_normalizer import ListShape, extract_structured

logger = logging.getLogger(__name__)

DEFAULT_QUERY = "trending"

SYSTEM_PROMPT = (
    "You are a short-form video marketing researcher. You answer with a JSON "
    "array of strings and nothing else."
)


class QueryGenerator:
    """Turns a business description into short-video search terms."""

    def __init__(self, text_client: TextModelClient, default_query: str = DEFAULT_QUERY):
        self.text_client = text_client
        self.default_query = default_query

    def build_prompt(self, business_description: str, count: int) -> str:
        return f"""Generate exactly {count} TikTok search terms for finding trending videos relevant to this business.

BUSINESS
{business_description}

RULES
• Each term is 1-4 words, specific and searchable.
• Prefer terms people actually type into TikTok search.
• Mix product, audience and format angles (e.g. recipes, reviews, day in the life).
• No hashtags, no numbering, no explanations.

OUTPUT
A JSON array of {count} strings, for example: ["healthy meal prep", "protein bowl recipe"]"""

    async def generate(
        self, business_description: str, count: int = 5, owner_id: Optional[str] = None
    ) -> list[SearchQuery]:
        """Ask the text model for ``count`` search terms.

        Malformed output never raises: the response normalizer falls back to a
        single default term.

        Raises:
            UpstreamUnavailableError: If the text model cannot be reached
        """
        prompt = self.build_prompt(business_description, count)
        raw = await self.text_client.complete(
            prompt, system=SYSTEM_PROMPT, json_mode=False, temperature=0.8
        )

        result = extract_structured(raw, ListShape(count=count, default=self.default_query))
        if result.fell_back:
            logger.warning(
                f"Query generation fell back to '{self.default_query}' "
                f"(model returned {len(raw or '')} chars)"
            )
        else:
            logger.info(f"Generated {len(result.value)} search queries via '{result.strategy}'")

        return [SearchQuery(text=text, owner_id=owner_id) for text in result.value]
