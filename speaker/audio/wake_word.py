import asyncio
from pathlib import Path

import numpy as np
from loguru import logger


class WakeWordDetector:
    """Blocks until the wake phrase is heard, using OpenWakeWord."""

    # Map config names to the label OpenWakeWord uses internally
    _LABEL_MAP = {
        "hey jarvis": "hey_jarvis",
        "alexa": "alexa",
        "hey mycroft": "hey_mycroft",
        "hey marvin": "hey_marvin",
    }

    def __init__(self, audio_capture, model_dir: Path, wake_word: str = "hey jarvis",
                 threshold: float = 0.5):
        self.audio_capture = audio_capture
        self.model_dir = model_dir
        self.wake_word = wake_word.lower().strip()
        self.threshold = threshold
        self._model = None
        self._target_label = self._LABEL_MAP.get(self.wake_word, self.wake_word.replace(" ", "_"))

    async def load(self):
        """Load the OpenWakeWord model."""
        loop = asyncio.get_event_loop()
        await loop.run_in_executor(None, self._load_sync)

    def _load_sync(self):
        from openwakeword.model import Model

        custom_onnx = self.model_dir / f"{self.wake_word.replace(' ', '_')}.onnx"
        if custom_onnx.exists():
            self._model = Model(wakeword_model_paths=[str(custom_onnx)])
            logger.info("Using custom wake word model: {}", custom_onnx)
        else:
            self._model = Model()
            logger.info("Loaded bundled OpenWakeWord models")

        # Prime the model so prediction_buffer knows its labels
        self._model.predict(np.zeros(1280, dtype=np.int16))
        logger.info(
            "Wake word detector ready. Target: '{}', Available: {}",
            self._target_label, list(self._model.prediction_buffer.keys()),
        )

    async def wait_for_wake_word(self, stop_event: asyncio.Event) -> bool:
        """Return True once the wake phrase is heard, False if stopped first.

        The stop event is checked between 80ms chunks, so cancellation is
        observed promptly. Safe to call again after it returns.
        """
        loop = asyncio.get_event_loop()

        while not stop_event.is_set():
            chunk = await loop.run_in_executor(None, self.audio_capture.read_chunk)
            if await loop.run_in_executor(None, self._predict, chunk):
                return True
        return False

    def _predict(self, chunk: np.ndarray) -> bool:
        """Score a single audio chunk against the target label."""
        if self._model is None:
            return False

        self._model.predict(chunk)

        for model_name, scores in self._model.prediction_buffer.items():
            if self._target_label not in model_name:
                continue
            if len(scores) > 0 and scores[-1] > self.threshold:
                logger.info("Wake word '{}' detected (score: {:.2f})", model_name, scores[-1])
                # Clear the score buffer so the next wait starts fresh
                self._model.reset()
                return True

        return False
