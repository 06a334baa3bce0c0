import asyncio
import re
import time
from typing import Optional

from loguru import logger

from audio.tts import SPEAKING_STYLES

# "~style~" at the very start or very end of a reply
_LEADING_STYLE = re.compile(r"^\s*~\s*([A-Za-z_-]+)\s*~\s*")
_TRAILING_STYLE = re.compile(r"\s*~\s*([A-Za-z_-]+)\s*~\s*$")


def parse_style(text: str) -> tuple[Optional[str], str]:
    """Split an optional style marker off a reply.

    >>> parse_style("~cheerful~ Hi there!")
    ('cheerful', 'Hi there!')
    """
    for pattern in (_LEADING_STYLE, _TRAILING_STYLE):
        match = pattern.search(text)
        if match:
            cleaned = (text[:match.start()] + text[match.end():]).strip()
            return match.group(1).lower(), cleaned
    return None, text.strip()


class Speaker:
    """Speaks replies through TTS and the audio player."""

    def __init__(self, tts, audio_player):
        self.tts = tts
        self.audio_player = audio_player

    async def speak(self, text: str, stop_event: asyncio.Event) -> None:
        """Render text to audio and block until playback finishes or stop is requested."""
        style, clean_text = parse_style(text)
        if not clean_text or stop_event.is_set():
            return
        if style is not None and style not in SPEAKING_STYLES:
            logger.debug("Unknown speaking style '{}', using default voice.", style)
            style = None

        t0 = time.monotonic()
        audio = await self.tts.synthesize(clean_text, style=style)
        logger.info("[TIMING] TTS: {:.1f}s", time.monotonic() - t0)
        if stop_event.is_set():
            return

        play_task = asyncio.create_task(self.audio_player.play(audio))
        stop_task = asyncio.create_task(stop_event.wait())
        try:
            await asyncio.wait({play_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
            if not play_task.done():
                await self.audio_player.stop()
            await play_task
        finally:
            stop_task.cancel()
