import numpy as np
from loguru import logger

# Sample rate expected by Whisper, Silero-VAD and OpenWakeWord
SAMPLE_RATE = 16000
CHANNELS = 1
CHUNK_SIZE = 1280  # 80ms at 16kHz, OpenWakeWord's preferred frame
FORMAT_DTYPE = np.int16

# Native rates to fall back to when the device refuses 16kHz
_FALLBACK_RATES = (44100, 48000)


class AudioCapture:
    """Reads fixed-size 16kHz chunks from the default microphone.

    Opens the device at 16kHz when it can, otherwise at a native rate with
    linear-interpolation resampling down to 16kHz.
    """

    def __init__(self, sample_rate: int = SAMPLE_RATE, chunk_size: int = CHUNK_SIZE):
        self.sample_rate = sample_rate
        self.chunk_size = chunk_size
        self._stream = None
        self._pa = None
        self._capture_rate = sample_rate
        self._capture_chunk = chunk_size

    def _open(self):
        """Lazily open the PyAudio input stream."""
        if self._stream is not None:
            return

        import pyaudio
        self._pa = pyaudio.PyAudio()

        for rate in (self.sample_rate, *_FALLBACK_RATES):
            frames = int(self.chunk_size * rate / self.sample_rate)
            try:
                self._stream = self._pa.open(
                    format=pyaudio.paInt16,
                    channels=CHANNELS,
                    rate=rate,
                    input=True,
                    frames_per_buffer=frames,
                )
            except Exception as e:
                logger.debug("Microphone rejected {}Hz: {}", rate, e)
                continue
            self._capture_rate = rate
            self._capture_chunk = frames
            logger.info("Microphone open: capture={}Hz, output={}Hz", rate, self.sample_rate)
            return

        self._pa.terminate()
        self._pa = None
        raise RuntimeError("Could not open the microphone at any supported rate")

    def _resample(self, chunk: np.ndarray) -> np.ndarray:
        if self._capture_rate == self.sample_rate:
            return chunk

        positions = np.arange(self.chunk_size) * (self._capture_rate / self.sample_rate)
        positions = np.clip(positions, 0, len(chunk) - 1)
        resampled = np.interp(positions, np.arange(len(chunk)), chunk.astype(np.float32))
        return resampled.astype(FORMAT_DTYPE)

    def read_chunk(self) -> np.ndarray:
        """Blocking read of one chunk at 16kHz (call from an executor)."""
        self._open()
        raw = self._stream.read(self._capture_chunk, exception_on_overflow=False)
        return self._resample(np.frombuffer(raw, dtype=FORMAT_DTYPE))

    def close(self):
        if self._stream is not None:
            self._stream.stop_stream()
            self._stream.close()
            self._stream = None
        if self._pa is not None:
            self._pa.terminate()
            self._pa = None
