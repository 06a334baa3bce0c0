import asyncio
import io
import wave
from pathlib import Path
from typing import Optional

import numpy as np
from loguru import logger

# Speaking styles the chat model may request, mapped to piper's length_scale
# (below 1.0 speaks faster, above 1.0 slower)
SPEAKING_STYLES = {
    "cheerful": 0.9,
    "excited": 0.85,
    "friendly": 1.0,
    "calm": 1.15,
    "sad": 1.25,
    "whispering": 1.2,
}


class TextToSpeech:
    """Text-to-speech using Piper TTS."""

    def __init__(
        self,
        model_dir: Path,
        voice: str = "en_US-lessac-medium",
        sample_rate: int = 22050,
    ):
        self.model_dir = model_dir
        self.voice = voice
        self.sample_rate = sample_rate
        self._piper = None

    async def load(self):
        """Load the Piper voice model."""
        loop = asyncio.get_event_loop()
        await loop.run_in_executor(None, self._load_sync)

    def _load_sync(self):
        from piper import PiperVoice

        model_path = self.model_dir / f"{self.voice}.onnx"
        config_path = self.model_dir / f"{self.voice}.onnx.json"
        if not model_path.exists():
            logger.warning("Piper voice model not found at {}.", model_path)
            return

        self._piper = PiperVoice.load(str(model_path), config_path=str(config_path))
        self.sample_rate = self._piper.config.sample_rate
        logger.info("Piper TTS loaded: {}", self.voice)

    async def synthesize(self, text: str, style: Optional[str] = None) -> bytes:
        """Synthesize text to WAV bytes, optionally in one of SPEAKING_STYLES."""
        if not text or not text.strip():
            return b""

        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, self._synthesize_sync, text, style)

    def _synthesize_sync(self, text: str, style: Optional[str] = None) -> bytes:
        if self._piper is None:
            logger.warning("TTS not loaded. Returning empty audio.")
            return b""

        from piper import SynthesisConfig

        syn_config = SynthesisConfig(length_scale=SPEAKING_STYLES.get(style or "", 1.0))

        # Piper yields chunks of float32 audio normalized to [-1, 1]
        pieces = [
            (chunk.audio_float_array * 32767).astype(np.int16)
            for chunk in self._piper.synthesize(text, syn_config=syn_config)
        ]
        if not pieces:
            logger.warning("TTS produced no audio for: '{}'", text[:50])
            return b""

        wav_buffer = io.BytesIO()
        with wave.open(wav_buffer, "wb") as wav:
            wav.setnchannels(1)
            wav.setsampwidth(2)  # 16-bit
            wav.setframerate(self.sample_rate)
            wav.writeframes(np.concatenate(pieces).tobytes())

        audio_bytes = wav_buffer.getvalue()
        logger.debug("TTS: synthesized {} bytes for '{}'", len(audio_bytes), text[:50])
        return audio_bytes
