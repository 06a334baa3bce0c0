import json
from pathlib import Path
from typing import Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field


class APIKeysConfig(BaseModel):
    openai: str = ""
    claude: str = ""


class OpenAIConfig(BaseModel):
    model: str = "gpt-3.5-turbo"
    organization_id: str = ""


class ClaudeConfig(BaseModel):
    model: str = "claude-haiku-4-5-20251001"


class ChatRequestSettings(BaseModel):
    """Sampling settings applied to every chat-completion call."""

    model_config = ConfigDict(frozen=True)

    max_tokens: int = Field(default=250, ge=1)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    frequency_penalty: float = Field(default=0.0, ge=-2.0, le=2.0)
    presence_penalty: float = Field(default=0.0, ge=-2.0, le=2.0)
    top_p: float = Field(default=1.0, ge=0.0, le=1.0)


class RemoteChatConfig(BaseModel):
    chat_url: str = ""  # When set, the remote session backend is used
    timeout_seconds: float = 30.0


class ConversationConfig(BaseModel):
    system_prompt: str = ""  # Empty = built-in prompt
    greeting: str = "Hello!"
    termination_phrase: str = Field(default="goodbye", min_length=1, pattern=r"\S")


class HardwareConfig(BaseModel):
    wake_word: str = "hey jarvis"
    language: str = "en"
    cloud_stt: bool = False  # When True + OpenAI key, use the Whisper API
    tts_voice: str = "en_US-lessac-medium"
    notification_sound: str = "ding.wav"
    listen_timeout_seconds: float = 5.0


class APIServerConfig(BaseModel):
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 8080


class AppConfig(BaseModel):
    provider: str = "openai"  # "openai" or "claude"
    api_keys: APIKeysConfig = Field(default_factory=APIKeysConfig)
    openai: OpenAIConfig = Field(default_factory=OpenAIConfig)
    claude: ClaudeConfig = Field(default_factory=ClaudeConfig)
    chat: ChatRequestSettings = Field(default_factory=ChatRequestSettings)
    remote: RemoteChatConfig = Field(default_factory=RemoteChatConfig)
    conversation: ConversationConfig = Field(default_factory=ConversationConfig)
    hardware: HardwareConfig = Field(default_factory=HardwareConfig)
    api: APIServerConfig = Field(default_factory=APIServerConfig)


class ConfigManager:
    """Loads and persists the application configuration as JSON."""

    def __init__(self, data_dir: Path):
        self.data_dir = data_dir
        self.config_path = data_dir / "config.json"
        self._config: Optional[AppConfig] = None

    @property
    def config(self) -> AppConfig:
        if self._config is None:
            self._config = self._load()
        return self._config

    def _load(self) -> AppConfig:
        """Load config from disk. Returns defaults if no usable config exists."""
        if self.config_path.exists():
            try:
                data = json.loads(self.config_path.read_text())
                logger.info("Configuration loaded from {}", self.config_path)
                return AppConfig(**data)
            except Exception as e:
                logger.error("Failed to load config: {}. Using defaults.", e)
                return AppConfig()
        logger.info("No existing config found. Using defaults.")
        return AppConfig()

    def save(self) -> None:
        """Persist current config to disk."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.config_path.write_text(self.config.model_dump_json(indent=2))
        logger.debug("Configuration saved to {}", self.config_path)

    def update_nested(self, section: str, **kwargs) -> AppConfig:
        """Update fields within a nested config section and save."""
        current = self.config.model_dump()
        if section in current and isinstance(current[section], dict):
            current[section].update(kwargs)
        self._config = AppConfig(**current)
        self.save()
        return self._config

    @property
    def uses_remote_chat(self) -> bool:
        return bool(self.config.remote.chat_url.strip())
