from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Union

from loguru import logger

from core.config import AppConfig, ChatRequestSettings

# Spoken whenever a backend call fails, so the user is never left in silence
APOLOGY = "Sorry, I couldn't get an answer just now. Please try again."

LOCAL = "local"
REMOTE = "remote"


class ChatBackendError(Exception):
    """A recoverable failure while getting a reply from a chat backend."""


class ChatCompletionError(ChatBackendError):
    """Error raised by a chat-completion provider (rate limit, bad request, outage)."""

    def __init__(self, code: str, message: str):
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message


class RemoteChatError(ChatBackendError):
    """Network failure, non-2xx status or malformed body from the remote endpoint."""


class ChatSetupError(Exception):
    """Fatal configuration problem detected before the conversation loop starts."""


class ChatCompletion(ABC):
    """A chat-completion call over a full, role-tagged message list."""

    @abstractmethod
    async def generate_reply(
        self, messages: list[dict], settings: ChatRequestSettings
    ) -> str:
        """Generate the assistant's next message.

        Args:
            messages: Ordered {"role": ..., "content": ...} dicts, system prompt first.
            settings: Sampling settings shared by every call.

        Raises:
            ChatCompletionError: if the provider rejects or fails the request.
        """
        ...

    async def close(self):
        """Release the underlying client."""
        pass


class ChatBackend(ABC):
    """Turns one user utterance into one reply, owning its own session state."""

    kind: str = ""

    @abstractmethod
    async def exchange(self, utterance: str) -> str:
        """Get a reply for the utterance. Backend failures return APOLOGY."""
        ...

    @abstractmethod
    def reset(self) -> None:
        """Forget the current conversation."""
        ...

    async def close(self):
        pass


@dataclass(frozen=True)
class LocalBackendConfig:
    provider: str
    api_key: str
    model: str
    system_prompt: str
    settings: ChatRequestSettings
    organization_id: str = ""


@dataclass(frozen=True)
class RemoteBackendConfig:
    url: str
    timeout: float = 30.0


BackendConfig = Union[LocalBackendConfig, RemoteBackendConfig]

_PROVIDERS = ("openai", "claude")


def resolve_backend_config(config: AppConfig, system_prompt: str) -> BackendConfig:
    """Pick the one backend this process will use.

    A configured remote chat URL always wins; otherwise the local history
    backend talks to the configured completion provider.
    """
    url = config.remote.chat_url.strip()
    if url:
        if not url.startswith(("http://", "https://")):
            raise ChatSetupError(f"Remote chat URL must be http(s): '{url}'")
        return RemoteBackendConfig(url=url, timeout=config.remote.timeout_seconds)

    provider = config.provider.lower().strip()
    if provider not in _PROVIDERS:
        raise ChatSetupError(f"Unknown chat provider '{config.provider}'")

    api_key = getattr(config.api_keys, provider, "")
    if not api_key:
        raise ChatSetupError(
            f"No API key configured for '{provider}' and no remote chat URL set"
        )

    if provider == "openai":
        model = config.openai.model
        organization_id = config.openai.organization_id
    else:
        model = config.claude.model
        organization_id = ""

    return LocalBackendConfig(
        provider=provider,
        api_key=api_key,
        model=model,
        system_prompt=system_prompt,
        settings=config.chat,
        organization_id=organization_id,
    )


def create_completion(backend_config: LocalBackendConfig) -> ChatCompletion:
    if backend_config.provider == "openai":
        from chat.providers.openai_provider import OpenAIProvider
        return OpenAIProvider(
            api_key=backend_config.api_key,
            model=backend_config.model,
            organization_id=backend_config.organization_id,
        )
    if backend_config.provider == "claude":
        from chat.providers.claude_provider import ClaudeProvider
        return ClaudeProvider(api_key=backend_config.api_key, model=backend_config.model)
    raise ChatSetupError(f"Unknown chat provider '{backend_config.provider}'")


def create_backend(backend_config: BackendConfig) -> ChatBackend:
    """Build the concrete backend for a resolved configuration."""
    if isinstance(backend_config, RemoteBackendConfig):
        from chat.remote import RemoteSessionBackend
        backend = RemoteSessionBackend(url=backend_config.url, timeout=backend_config.timeout)
        logger.info("Chat backend: remote session at {}", backend_config.url)
        return backend

    from chat.local import LocalHistoryBackend
    backend = LocalHistoryBackend(
        completion=create_completion(backend_config),
        system_prompt=backend_config.system_prompt,
        settings=backend_config.settings,
    )
    logger.info(
        "Chat backend: local history via {} ({})",
        backend_config.provider, backend_config.model,
    )
    return backend
