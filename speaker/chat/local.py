import time

from loguru import logger

from chat.base import APOLOGY, LOCAL, ChatBackend, ChatCompletion, ChatCompletionError
from core.config import ChatRequestSettings


class ChatHistory:
    """Ordered transcript: one system message, then user/assistant pairs."""

    def __init__(self, system_prompt: str):
        self.system_prompt = system_prompt
        self._messages: list[dict] = [{"role": "system", "content": system_prompt}]

    def add_user_message(self, text: str) -> None:
        self._messages.append({"role": "user", "content": text})

    def add_assistant_message(self, text: str) -> None:
        self._messages.append({"role": "assistant", "content": text})

    def drop_last_user_message(self) -> None:
        if len(self._messages) > 1 and self._messages[-1]["role"] == "user":
            self._messages.pop()

    def clear(self) -> None:
        """Discard the conversation, keeping only the system prompt."""
        del self._messages[1:]

    @property
    def messages(self) -> list[dict]:
        return [dict(m) for m in self._messages]

    @property
    def turns(self) -> int:
        return (len(self._messages) - 1) // 2

    def __len__(self) -> int:
        return len(self._messages)


class LocalHistoryBackend(ChatBackend):
    """Keeps the whole conversation locally and sends it on every call."""

    kind = LOCAL

    def __init__(
        self,
        completion: ChatCompletion,
        system_prompt: str,
        settings: ChatRequestSettings,
    ):
        self.completion = completion
        self.settings = settings
        self.history = ChatHistory(system_prompt)

    async def exchange(self, utterance: str) -> str:
        self.history.add_user_message(utterance)
        t0 = time.monotonic()
        try:
            reply = await self.completion.generate_reply(self.history.messages, self.settings)
        except ChatCompletionError as e:
            logger.error("Chat completion returned an error. {}: {}", e.code, e.message)
            # Keep strict user/assistant alternation for the next attempt
            self.history.drop_last_user_message()
            return APOLOGY

        self.history.add_assistant_message(reply)
        logger.info("[TIMING] Chat completion: {:.1f}s", time.monotonic() - t0)
        logger.debug("[HISTORY] {} turns in conversation", self.history.turns)
        return reply

    def reset(self) -> None:
        if self.history.turns:
            logger.debug("Chat history cleared ({} messages)", len(self.history))
        self.history.clear()

    async def close(self):
        await self.completion.close()
