import asyncio
import time
from pathlib import Path

from loguru import logger

from chat.base import ChatBackend
from core.state import SessionState, SharedState


def is_termination(utterance: str, phrase: str = "goodbye") -> bool:
    """True if the utterance starts with the termination phrase (any case).

    A blank phrase never matches.
    """
    phrase = phrase.strip().lower()
    return bool(phrase) and utterance.strip().lower().startswith(phrase)


class ConversationSession:
    """The wake -> greet -> listen/think/speak -> re-arm cycle.

    Two nested loops: the outer one waits for the wake word, the inner one
    takes turns until the user says the termination phrase. Setting
    ``state.stop_event`` unwinds both at the next suspension point without
    playing further audio.
    """

    def __init__(
        self,
        state: SharedState,
        wake_word,
        listener,
        speaker,
        backend: ChatBackend,
        audio_player,
        notification_sound: Path,
        greeting: str = "Hello!",
        termination_phrase: str = "goodbye",
        error_backoff: float = 2.0,
    ):
        self.state = state
        self.wake_word = wake_word
        self.listener = listener
        self.speaker = speaker
        self.backend = backend
        self.audio_player = audio_player
        self.notification_sound = notification_sound
        self.greeting = greeting
        self.termination_phrase = termination_phrase
        self.error_backoff = error_backoff

    async def run(self) -> None:
        """Run until the stop event is set."""
        self.state.backend_kind = self.backend.kind
        while self.state.is_running:
            try:
                await self._wait_and_converse()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception("Error in conversation loop: {}", e)
                self.state.set_state(SessionState.ERROR)
                self.state.last_error = str(e)
                self.backend.reset()
                await self._backoff()

        self.state.set_state(SessionState.IDLE)
        logger.info("Conversation loop stopped.")

    async def _wait_and_converse(self) -> None:
        self.state.set_state(SessionState.IDLE)
        self.state.current_transcript = None

        # Audible cue that the wake word is armed
        await self._notify()
        logger.info("Listening for wake word...")
        if not await self.wake_word.wait_for_wake_word(self.state.stop_event):
            return
        if not self.state.is_running:
            return

        logger.info("Wake word detected!")
        self.state.set_state(SessionState.GREETING)
        await self._notify()
        await self.speaker.speak(self.greeting, self.state.stop_event)

        await self.converse()

    async def converse(self) -> None:
        """Take turns until the termination phrase or a stop request."""
        while self.state.is_running:
            self.state.set_state(SessionState.LISTENING)
            utterance = await self.listener.listen(self.state.stop_event)
            if not self.state.is_running:
                return
            if not utterance or not utterance.strip():
                continue

            await self.take_turn(utterance)

            if is_termination(utterance, self.termination_phrase):
                logger.info("Conversation ended by user. Back to wake word.")
                self.backend.reset()
                return

    async def take_turn(self, utterance: str) -> None:
        """Send one utterance to the backend and speak the reply."""
        t0 = time.monotonic()
        logger.info("User said: '{}'", utterance)
        self.state.current_transcript = utterance

        self.state.set_state(SessionState.THINKING)
        reply = await self.backend.exchange(utterance)
        if not self.state.is_running:
            return
        logger.info("Reply: '{}'", reply)

        self.state.set_state(SessionState.SPEAKING)
        await self.speaker.speak(reply, self.state.stop_event)

        self.state.turns += 1
        logger.info("[TIMING] Turn complete: {:.1f}s", time.monotonic() - t0)

    async def _notify(self) -> None:
        if self.state.is_running:
            await self.audio_player.play_file(self.notification_sound)

    async def _backoff(self) -> None:
        """Pause after an error, returning early if stop is requested."""
        try:
            await asyncio.wait_for(self.state.stop_event.wait(), timeout=self.error_backoff)
        except asyncio.TimeoutError:
            pass
