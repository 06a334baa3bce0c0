import asyncio
import io
import wave
from pathlib import Path

import numpy as np
from loguru import logger

from audio.audio_capture import SAMPLE_RATE


class SpeechToText:
    """Local speech-to-text using Whisper.cpp (via pywhispercpp)."""

    def __init__(self, model_dir: Path, model_name: str = "base", language: str = "en",
                 n_threads: int = 4):
        self.model_dir = model_dir
        self.model_name = model_name
        self.language = language
        self.n_threads = n_threads
        self._model = None

    async def load(self):
        """Load the Whisper model."""
        loop = asyncio.get_event_loop()
        await loop.run_in_executor(None, self._load_sync)

    def _load_sync(self):
        from pywhispercpp.model import Model

        model_path = self.model_dir / f"ggml-{self.model_name}.bin"
        if model_path.exists():
            self._model = Model(str(model_path), n_threads=self.n_threads)
        else:
            logger.info("Whisper model not found at {}. Downloading.", model_path)
            self._model = Model(self.model_name, models_dir=str(self.model_dir),
                                n_threads=self.n_threads)
        logger.info("Whisper STT loaded: {}", self.model_name)

    async def transcribe(self, audio: np.ndarray) -> str:
        """Transcribe 16kHz int16 audio to text."""
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, self._transcribe_sync, audio)

    def _transcribe_sync(self, audio: np.ndarray) -> str:
        if self._model is None:
            return ""

        # Whisper expects float32 normalized to [-1, 1]
        audio_float = audio.astype(np.float32)
        if audio.dtype == np.int16:
            audio_float /= 32768.0

        segments = self._model.transcribe(audio_float, language=self.language)
        text = " ".join(seg.text.strip() for seg in segments).strip()
        logger.debug("STT result: '{}'", text)
        return text


class CloudSpeechToText:
    """Speech-to-text through the OpenAI transcription API.

    Returns an empty string on any failure so the caller can fall back to
    local transcription.
    """

    def __init__(self, api_key: str, language: str = "en", model: str = "whisper-1"):
        self.api_key = api_key
        self.language = language
        self.model = model
        self._client = None

    def _ensure_client(self):
        if self._client is None:
            from openai import AsyncOpenAI
            self._client = AsyncOpenAI(api_key=self.api_key)

    @staticmethod
    def to_wav_bytes(audio: np.ndarray) -> bytes:
        """Wrap 16kHz mono audio in a WAV container."""
        if audio.dtype != np.int16:
            audio = (audio * 32767.0).astype(np.int16)

        buf = io.BytesIO()
        with wave.open(buf, "wb") as wf:
            wf.setnchannels(1)
            wf.setsampwidth(2)  # 16-bit
            wf.setframerate(SAMPLE_RATE)
            wf.writeframes(audio.tobytes())
        return buf.getvalue()

    async def transcribe(self, audio: np.ndarray) -> str:
        if not self.api_key:
            return ""

        self._ensure_client()
        audio_file = io.BytesIO(self.to_wav_bytes(audio))
        audio_file.name = "utterance.wav"  # the API infers the format from the name

        try:
            response = await self._client.audio.transcriptions.create(
                model=self.model,
                file=audio_file,
                language=self.language,
            )
        except Exception as e:
            logger.error("Cloud STT error: {}. Falling back to local.", e)
            return ""

        text = response.text.strip()
        logger.debug("Cloud STT result: '{}'", text)
        return text
