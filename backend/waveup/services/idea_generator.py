"""AI idea generator collaborator.

The entitlement subsystem treats a generator as an opaque async callable
returning a list of ideas; `OpenAIIdeaGenerator` is the production one.
"""

import json
import os
from typing import Any, Protocol

import structlog
from openai import AsyncOpenAI

from waveup.config import get_settings

logger = structlog.get_logger(__name__)

IDEAS_PROMPT = """Tu es un assistant pour créateurs de contenu TikTok.
Propose {count} idées de vidéos sur le thème "{topic}".
Réponds uniquement en JSON: {{"ideas": [{{"title": str, "hook": str, "hashtags": [str]}}]}}"""


class IdeaGenerator(Protocol):
    async def __call__(self, **kwargs: Any) -> list[Any]:
        """Produce a list of ideas. The payload is never inspected by the gate."""


def get_openai_client(api_key: str | None = None) -> AsyncOpenAI:
    """
    Create an AsyncOpenAI client, wrapped with LangSmith tracing when
    LANGCHAIN_TRACING_V2 is enabled in the environment.

    Args:
        api_key: OpenAI API key. Defaults to settings.openai_api_key.
    """
    settings = get_settings()
    client = AsyncOpenAI(api_key=api_key or settings.openai_api_key)

    if os.getenv("LANGCHAIN_TRACING_V2", "").lower() == "true":
        from langsmith.wrappers import wrap_openai

        client = wrap_openai(client)

    return client


class OpenAIIdeaGenerator:
    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> None:
        settings = get_settings()
        self.client = client or get_openai_client()
        self.model = model or settings.openai_ideas_model
        self.max_tokens = max_tokens or settings.openai_ideas_max_tokens

    async def __call__(self, topic: str = "tendances du moment", count: int = 5, **_: Any) -> list[dict]:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": IDEAS_PROMPT.format(topic=topic, count=count)}],
            max_tokens=self.max_tokens,
            response_format={"type": "json_object"},
        )
        msg = response.choices[0].message
        if msg.refusal:
            logger.warning("idea_generation_refusal", refusal=msg.refusal)
            raise ValueError("OpenAI refused to generate ideas")
        if msg.content is None:
            logger.warning("idea_generation_null_content", finish_reason=response.choices[0].finish_reason)
            raise ValueError("OpenAI returned null content for ideas")

        try:
            payload = json.loads(msg.content)
        except json.JSONDecodeError as e:
            raise ValueError("OpenAI returned malformed ideas JSON") from e
        ideas = payload.get("ideas") if isinstance(payload, dict) else None
        if not isinstance(ideas, list):
            raise ValueError("OpenAI response has no ideas list")
        logger.info("ideas_generated", topic=topic, requested=count, received=len(ideas))
        return ideas
