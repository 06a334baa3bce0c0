import time
from typing import Optional

import httpx
from loguru import logger

from chat.base import APOLOGY, REMOTE, ChatBackend, RemoteChatError


async def check_endpoint(url: str, timeout: float = 3.0, transport=None) -> bool:
    """Quick reachability check for the remote chat endpoint."""
    try:
        async with httpx.AsyncClient(transport=transport) as client:
            resp = await client.head(url, timeout=timeout)
            return resp.status_code < 500
    except httpx.HTTPError as e:
        logger.debug("Endpoint check failed for {}: {}", url, e)
        return False


class RemoteSessionBackend(ChatBackend):
    """Chat service that keeps the history server-side.

    Only the message id returned by the previous exchange is held here; it is
    echoed back as ``messageId`` so the service can find the conversation.
    """

    kind = REMOTE

    def __init__(
        self,
        url: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.session_token = ""
        self._client = client

    def _ensure_client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)

    async def send(self, utterance: str, token: str) -> tuple[str, str]:
        """POST one prompt and return (reply text, new message id).

        Raises:
            RemoteChatError: on transport errors, non-2xx status or a body
                without a string ``text`` and a usable ``id``.
        """
        self._ensure_client()
        payload = {"prompt": utterance, "name": "", "messageId": token}

        try:
            response = await self._client.post(self.url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RemoteChatError(
                f"Remote chat returned HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise RemoteChatError(f"Remote chat request failed: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise RemoteChatError("Remote chat returned invalid JSON") from e

        if not isinstance(body, dict):
            raise RemoteChatError("Remote chat response is not a JSON object")

        text = body.get("text")
        new_token = body.get("id")
        if not isinstance(text, str):
            raise RemoteChatError("Remote chat response has no 'text' string")
        if isinstance(new_token, bool) or not isinstance(new_token, (str, int)):
            raise RemoteChatError("Remote chat response has no 'id'")

        return text, str(new_token)

    async def exchange(self, utterance: str) -> str:
        t0 = time.monotonic()
        try:
            reply, token = await self.send(utterance, self.session_token)
        except RemoteChatError as e:
            # Token stays as it was so the next turn retries in the same session
            logger.error("Remote chat error: {}", e)
            return APOLOGY

        self.session_token = token
        logger.info("[TIMING] Remote chat: {:.1f}s", time.monotonic() - t0)
        logger.debug("Remote session id: '{}'", token)
        return reply

    def reset(self) -> None:
        if self.session_token:
            logger.debug("Remote session '{}' released", self.session_token)
        self.session_token = ""

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None
