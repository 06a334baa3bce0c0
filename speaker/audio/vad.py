import asyncio
from typing import Optional

import numpy as np
from loguru import logger

from audio.audio_capture import SAMPLE_RATE

# Silero-VAD requires exactly this many samples per call at 16kHz
_VAD_CHUNK_SAMPLES = 512


class VADDetector:
    """Voice Activity Detection using Silero-VAD.

    Ends a recording once the speaker has been quiet for ``silence_duration``.
    """

    def __init__(
        self,
        sample_rate: int = SAMPLE_RATE,
        silence_duration: float = 0.8,  # seconds of silence that end an utterance
        max_duration: float = 20.0,     # hard cap on one utterance
        speech_threshold: float = 0.5,
    ):
        self.sample_rate = sample_rate
        self.silence_duration = silence_duration
        self.max_duration = max_duration
        self.speech_threshold = speech_threshold
        self._model = None

    def _ensure_model(self):
        """Load Silero-VAD lazily."""
        if self._model is not None:
            return

        import torch
        model, _ = torch.hub.load(
            repo_or_dir="snakers4/silero-vad",
            model="silero_vad",
            trust_repo=True,
        )
        self._model = model
        logger.info("Silero-VAD loaded.")

    async def capture_until_silence(
        self,
        audio_capture,
        stop_event: asyncio.Event,
        initial_wait: float = 5.0,
    ) -> Optional[np.ndarray]:
        """Record one utterance.

        Returns None if nobody starts talking within ``initial_wait`` seconds
        or if ``stop_event`` is set while recording.
        """
        self._ensure_model()
        self._model.reset_states()

        loop = asyncio.get_event_loop()
        frames = []
        speech_started = False
        silence_time = 0.0
        total_time = 0.0
        vad_buffer = np.array([], dtype=np.int16)

        while total_time < self.max_duration:
            if stop_event.is_set():
                logger.debug("Capture abandoned: stop requested.")
                return None

            chunk = await loop.run_in_executor(None, audio_capture.read_chunk)
            frames.append(chunk)
            total_time += len(chunk) / self.sample_rate
            vad_buffer = np.concatenate([vad_buffer, chunk])

            while len(vad_buffer) >= _VAD_CHUNK_SAMPLES:
                window = vad_buffer[:_VAD_CHUNK_SAMPLES]
                vad_buffer = vad_buffer[_VAD_CHUNK_SAMPLES:]

                if await loop.run_in_executor(None, self._is_speech, window):
                    speech_started = True
                    silence_time = 0.0
                elif speech_started:
                    silence_time += _VAD_CHUNK_SAMPLES / self.sample_rate
                    if silence_time >= self.silence_duration:
                        logger.debug("End of speech detected after {:.1f}s", total_time)
                        return np.concatenate(frames)

            if not speech_started and total_time >= initial_wait:
                logger.debug("No speech within {:.0f}s.", initial_wait)
                return None

        if not speech_started:
            return None
        logger.debug("Utterance hit the {:.0f}s cap.", self.max_duration)
        return np.concatenate(frames)

    def _is_speech(self, window: np.ndarray) -> bool:
        """Check whether a 512-sample int16 window contains speech."""
        import torch

        tensor = torch.from_numpy(window.astype(np.float32) / 32768.0)
        return self._model(tensor, self.sample_rate).item() > self.speech_threshold
