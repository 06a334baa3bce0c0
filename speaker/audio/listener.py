import asyncio
import time
from typing import Optional

import numpy as np
from loguru import logger

# Phrases Whisper invents from silence or background noise. The termination
# phrase must never appear here or "goodbye" could not end a conversation.
_HALLUCINATIONS = {
    "thank you", "thanks", "thanks for watching",
    "thank you for watching", "thanks for listening",
    "thank you for listening", "you", "the end", "subscribe",
    "like and subscribe", "see you next time", "oh",
}


class Listener:
    """Captures one spoken utterance and returns its transcription.

    Returns an empty string when nothing usable was said.
    """

    def __init__(self, audio_capture, vad, stt, cloud_stt=None,
                 initial_wait: float = 5.0, min_rms: float = 300.0):
        self.audio_capture = audio_capture
        self.vad = vad
        self.stt = stt
        self.cloud_stt = cloud_stt
        self.initial_wait = initial_wait
        self.min_rms = min_rms

    async def listen(self, stop_event: asyncio.Event) -> str:
        t0 = time.monotonic()
        audio = await self.vad.capture_until_silence(
            self.audio_capture, stop_event, initial_wait=self.initial_wait
        )
        if audio is None or len(audio) == 0 or stop_event.is_set():
            return ""

        # VAD occasionally triggers on noise; Whisper then hallucinates text
        rms = float(np.sqrt(np.mean(audio.astype(np.float32) ** 2)))
        if rms < self.min_rms:
            logger.debug("Audio too quiet (RMS={:.0f}), skipping.", rms)
            return ""

        t_capture = time.monotonic()
        logger.info("[TIMING] Capture: {:.1f}s", t_capture - t0)

        transcript = await self._transcribe(audio)
        logger.info("[TIMING] STT: {:.1f}s", time.monotonic() - t_capture)

        transcript = transcript.strip()
        if self.is_hallucination(transcript):
            logger.info("Whisper hallucination filtered: '{}'", transcript)
            return ""
        return transcript

    async def _transcribe(self, audio: np.ndarray) -> str:
        transcript: Optional[str] = None
        if self.cloud_stt is not None:
            transcript = await self.cloud_stt.transcribe(audio)
            if not transcript:
                logger.info("Cloud STT returned empty, falling back to local.")
        if not transcript:
            transcript = await self.stt.transcribe(audio)
        return transcript or ""

    @staticmethod
    def is_hallucination(transcript: str) -> bool:
        return transcript.strip().lower().rstrip(".!") in _HALLUCINATIONS
