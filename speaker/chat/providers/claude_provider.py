from loguru import logger

from chat.base import ChatCompletion, ChatCompletionError
from core.config import ChatRequestSettings


class ClaudeProvider(ChatCompletion):
    """Anthropic Claude messages API."""

    def __init__(self, api_key: str, model: str = "claude-haiku-4-5-20251001", client=None):
        self.api_key = api_key
        self.model = model
        self._client = client

    def _ensure_client(self):
        if self._client is None:
            from anthropic import AsyncAnthropic
            self._client = AsyncAnthropic(api_key=self.api_key)

    async def generate_reply(
        self, messages: list[dict], settings: ChatRequestSettings
    ) -> str:
        """Request one reply. Penalties and top_p are not sent to Claude."""
        from anthropic import APIError, APIStatusError

        self._ensure_client()

        # Claude takes the system prompt separately from the conversation
        system_msg = ""
        conversation = []
        for msg in messages:
            if msg["role"] == "system":
                system_msg = msg["content"]
            else:
                conversation.append(msg)

        try:
            response = await self._client.messages.create(
                model=self.model,
                max_tokens=settings.max_tokens,
                temperature=min(settings.temperature, 1.0),
                system=system_msg,
                messages=conversation,
            )
        except APIStatusError as e:
            raise ChatCompletionError(str(e.status_code), e.message) from e
        except APIError as e:
            raise ChatCompletionError(type(e).__name__, e.message) from e

        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        ).strip()
        if not text:
            raise ChatCompletionError("empty_response", "Claude returned no text")

        logger.debug("Claude stop reason: {}", getattr(response, "stop_reason", None))
        return text

    async def close(self):
        if self._client is not None:
            await self._client.close()
            self._client = None
