import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class SessionState(str, Enum):
    IDLE = "idle"              # Waiting for the wake word
    GREETING = "greeting"      # Wake word heard, saying hello
    LISTENING = "listening"    # Capturing the user's utterance
    THINKING = "thinking"      # Waiting on the chat backend
    SPEAKING = "speaking"      # Playing the reply
    ERROR = "error"            # Recovering from an unexpected failure


@dataclass
class SharedState:
    """State shared between the conversation loop and the control API."""

    session_state: SessionState = SessionState.IDLE
    backend_kind: str = ""

    # Set to unwind the conversation loop at its next suspension point
    stop_event: asyncio.Event = field(default_factory=asyncio.Event)

    # Current conversation info (ephemeral, not persisted)
    current_transcript: Optional[str] = None
    turns: int = 0
    last_error: Optional[str] = None

    def set_state(self, state: SessionState) -> None:
        self.session_state = state

    def request_stop(self) -> None:
        self.stop_event.set()

    @property
    def is_running(self) -> bool:
        return not self.stop_event.is_set()

    @property
    def is_idle(self) -> bool:
        return self.session_state == SessionState.IDLE
