import asyncio
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from chat.base import ChatSetupError, RemoteBackendConfig, create_backend, resolve_backend_config
from core.config import ConfigManager
from core.state import SharedState

# Base directory for the application
BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = BASE_DIR / "data"
MODELS_DIR = BASE_DIR / "models"
SOUNDS_DIR = BASE_DIR / "audio" / "sounds"

# How long a stop request may take to unwind before the loop is cancelled
_SHUTDOWN_GRACE = 5.0


class Orchestrator:
    """Wires configuration, audio components and the chat backend into one session."""

    def __init__(self, config_manager: Optional[ConfigManager] = None):
        self.config_manager = config_manager or ConfigManager(DATA_DIR)
        self.state = SharedState()

        self._audio_capture = None
        self._audio_player = None
        self._backend = None
        self._session = None
        self._session_task: Optional[asyncio.Task] = None

    async def start(self):
        """Boot sequence: resolve the chat backend, load models, run the conversation loop."""
        logger.info("=== Conversational Speaker starting ===")
        config = self.config_manager.config

        # Fails fast: never enter the loop without a usable backend
        self._backend = await self._create_backend()
        self.state.backend_kind = self._backend.kind

        if config.api.enabled:
            await self._start_api_server()

        await self._load_components()

        self._session_task = asyncio.create_task(self._session.run())
        await self._session_task

    async def _create_backend(self):
        from chat.prompts import build_system_prompt
        from audio.tts import SPEAKING_STYLES

        config = self.config_manager.config
        system_prompt = config.conversation.system_prompt or build_system_prompt(
            styles=list(SPEAKING_STYLES)
        )
        backend_config = resolve_backend_config(config, system_prompt)

        if isinstance(backend_config, RemoteBackendConfig):
            from chat.remote import check_endpoint
            if not await check_endpoint(backend_config.url):
                raise ChatSetupError(f"Remote chat endpoint unreachable: {backend_config.url}")

        return create_backend(backend_config)

    async def _start_api_server(self):
        """Start the FastAPI status/control server in the background."""
        from api.server import create_app

        import uvicorn

        api = self.config_manager.config.api
        app = create_app(self.config_manager, self.state)
        server = uvicorn.Server(
            uvicorn.Config(app, host=api.host, port=api.port, log_level="warning")
        )
        asyncio.create_task(server.serve())
        logger.info("API server started on {}:{}", api.host, api.port)

    async def _load_components(self):
        """Load the audio models and build the conversation session."""
        logger.info("Loading components...")

        from audio.audio_capture import AudioCapture
        from audio.audio_player import AudioPlayer
        from audio.listener import Listener
        from audio.speaker import Speaker
        from audio.stt import CloudSpeechToText, SpeechToText
        from audio.tts import TextToSpeech
        from audio.vad import VADDetector
        from audio.wake_word import WakeWordDetector
        from core.session import ConversationSession

        config = self.config_manager.config
        hardware = config.hardware

        self._audio_capture = AudioCapture()
        self._audio_player = AudioPlayer()
        wake_word = WakeWordDetector(
            self._audio_capture,
            model_dir=MODELS_DIR / "wake_word",
            wake_word=hardware.wake_word,
        )
        stt = SpeechToText(model_dir=MODELS_DIR / "stt", language=hardware.language)
        tts = TextToSpeech(model_dir=MODELS_DIR / "tts", voice=hardware.tts_voice)

        cloud_stt = None
        if hardware.cloud_stt and config.api_keys.openai:
            cloud_stt = CloudSpeechToText(api_key=config.api_keys.openai, language=hardware.language)

        await wake_word.load()
        await stt.load()
        await tts.load()

        listener = Listener(
            self._audio_capture, VADDetector(), stt,
            cloud_stt=cloud_stt,
            initial_wait=hardware.listen_timeout_seconds,
        )
        self._session = ConversationSession(
            state=self.state,
            wake_word=wake_word,
            listener=listener,
            speaker=Speaker(tts, self._audio_player),
            backend=self._backend,
            audio_player=self._audio_player,
            notification_sound=SOUNDS_DIR / hardware.notification_sound,
            greeting=config.conversation.greeting,
            termination_phrase=config.conversation.termination_phrase,
        )
        logger.info("All components loaded.")

    async def shutdown(self):
        """Graceful shutdown: stop the loop, then release the backend and devices."""
        logger.info("Shutting down...")
        self.state.request_stop()

        task = self._session_task
        if task is not None and not task.done():
            try:
                await asyncio.wait_for(task, timeout=_SHUTDOWN_GRACE)
            except asyncio.TimeoutError:
                logger.warning("Conversation loop did not stop in {}s; cancelled.", _SHUTDOWN_GRACE)
            except asyncio.CancelledError:
                pass

        if self._audio_player is not None:
            await self._audio_player.stop()
            self._audio_player.close()
        if self._backend is not None:
            await self._backend.close()
        if self._audio_capture is not None:
            self._audio_capture.close()
        logger.info("Shutdown complete.")


def main():
    """Entry point."""
    logger.remove()
    logger.add(sys.stderr, level="INFO", format="{time:HH:mm:ss} | {level:<7} | {message}")
    logger.add(DATA_DIR / "speaker.log", rotation="10 MB", retention="7 days", level="DEBUG")

    orchestrator = Orchestrator()

    loop = asyncio.new_event_loop()
    exit_code = 0
    try:
        loop.run_until_complete(orchestrator.start())
    except ChatSetupError as e:
        logger.error("Cannot start: {}", e)
        exit_code = 1
    except KeyboardInterrupt:
        pass
    finally:
        loop.run_until_complete(orchestrator.shutdown())
        loop.close()
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
