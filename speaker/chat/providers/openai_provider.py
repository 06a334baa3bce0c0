from loguru import logger

from chat.base import ChatCompletion, ChatCompletionError
from core.config import ChatRequestSettings


class OpenAIProvider(ChatCompletion):
    """OpenAI chat completions (ChatGPT)."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-3.5-turbo",
        organization_id: str = "",
        client=None,
    ):
        self.api_key = api_key
        self.model = model
        self.organization_id = organization_id
        self._client = client

    def _ensure_client(self):
        if self._client is None:
            from openai import AsyncOpenAI
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                organization=self.organization_id or None,
            )

    async def generate_reply(
        self, messages: list[dict], settings: ChatRequestSettings
    ) -> str:
        """Request one completion for the full conversation."""
        from openai import APIError, APIStatusError

        self._ensure_client()

        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=settings.max_tokens,
                temperature=settings.temperature,
                frequency_penalty=settings.frequency_penalty,
                presence_penalty=settings.presence_penalty,
                top_p=settings.top_p,
            )
        except APIStatusError as e:
            raise ChatCompletionError(str(e.code or e.status_code), e.message) from e
        except APIError as e:
            # Connection errors and timeouts carry no status code
            raise ChatCompletionError(e.code or type(e).__name__, e.message) from e

        message = response.choices[0].message if response.choices else None
        content = message.content if message else None
        if not content or not content.strip():
            raise ChatCompletionError("empty_response", "OpenAI returned no text")

        logger.debug("OpenAI usage: {}", getattr(response, "usage", None))
        return content.strip()

    async def close(self):
        if self._client is not None:
            await self._client.close()
            self._client = None
