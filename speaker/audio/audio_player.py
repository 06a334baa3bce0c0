import asyncio
import subprocess
import tempfile
from pathlib import Path

from loguru import logger

_PLAY_TIMEOUT = 60  # seconds


class AudioPlayer:
    """Plays WAV audio on the default output through PipeWire/PulseAudio (paplay).

    ``stop()`` kills the running paplay process, which makes a pending
    ``play()`` return immediately.
    """

    def __init__(self):
        self._current_process: subprocess.Popen | None = None

    async def play(self, wav_bytes: bytes) -> None:
        """Play complete WAV bytes (header included)."""
        if not wav_bytes:
            return

        loop = asyncio.get_event_loop()
        await loop.run_in_executor(None, self._play_bytes_sync, wav_bytes)

    async def play_file(self, path: Path) -> None:
        """Play a WAV file from disk, e.g. the notification sound."""
        if not path.exists():
            logger.warning("Sound file not found: {}", path)
            return

        loop = asyncio.get_event_loop()
        await loop.run_in_executor(None, self._paplay, str(path))

    def _play_bytes_sync(self, wav_bytes: bytes) -> None:
        with tempfile.NamedTemporaryFile(suffix=".wav") as tmp:
            tmp.write(wav_bytes)
            tmp.flush()
            self._paplay(tmp.name)

    def _paplay(self, filename: str) -> None:
        try:
            proc = subprocess.Popen(
                ["paplay", filename],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )
        except FileNotFoundError:
            logger.error("paplay not found. Install pulseaudio-utils.")
            return

        self._current_process = proc
        try:
            proc.wait(timeout=_PLAY_TIMEOUT)
        except subprocess.TimeoutExpired:
            proc.kill()
            logger.error("Audio playback timed out ({}s)", _PLAY_TIMEOUT)
            return
        finally:
            self._current_process = None

        # -9: killed by stop()
        if proc.returncode not in (0, -9):
            logger.error("paplay error: {}", proc.stderr.read().decode().strip())

    async def stop(self) -> None:
        """Stop any currently playing audio immediately."""
        proc = self._current_process
        if proc is not None:
            try:
                proc.kill()
                logger.info("Audio playback stopped.")
            except OSError as e:
                logger.debug("Error killing paplay: {}", e)
            self._current_process = None

    def close(self):
        proc, self._current_process = self._current_process, None
        if proc is not None and proc.poll() is None:
            proc.kill()
