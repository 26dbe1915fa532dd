"""Live statistics for a writing session."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from core.wpm_calculator import calculate_wpm, count_words

log = logging.getLogger("freewrite.session_stats")

# ctrl/cmd + one of these would select, cut, copy, paste, undo or redo
BLOCKED_COMBO_KEYS = frozenset("axcvzy")


class KeyEventType(str, Enum):
    """Kind of key event fed to a writing session."""

    CHAR = "char"
    BACKSPACE = "backspace"
    ENTER = "enter"
    ARROW = "arrow"
    BLOCKED_COMBO = "blocked_combo"


@dataclass(frozen=True)
class KeyEvent:
    """A single discrete key event."""

    type: KeyEventType
    payload: Optional[str] = None

    @classmethod
    def char(cls, text: str) -> "KeyEvent":
        return cls(KeyEventType.CHAR, text)

    @classmethod
    def from_key(cls, key: str, ctrl: bool = False, meta: bool = False) -> Optional["KeyEvent"]:
        """Classify a raw key name as reported by a keyboard handler.

        Args:
            key: Key name, e.g. "a", "Backspace", "Enter", "ArrowLeft"
            ctrl: Whether ctrl was held
            meta: Whether cmd/meta was held

        Returns:
            KeyEvent, or None for keys that have no meaning in a session
            (modifiers alone, function keys, other shortcuts)
        """
        if ctrl or meta:
            if key.lower() in BLOCKED_COMBO_KEYS:
                return cls(KeyEventType.BLOCKED_COMBO, key.lower())
            return None
        if key == "Backspace":
            return cls(KeyEventType.BACKSPACE)
        if key == "Enter":
            return cls(KeyEventType.ENTER)
        if key.startswith("Arrow"):
            return cls(KeyEventType.ARROW, key)
        if len(key) == 1:
            return cls(KeyEventType.CHAR, key)
        return None

    @property
    def modifies_content(self) -> bool:
        return self.type in (KeyEventType.CHAR, KeyEventType.BACKSPACE)


class SessionStats(BaseModel):
    """Snapshot of writing session statistics."""

    word_count: int = Field(default=0, ge=0, description="Words in current content")
    words_per_minute: int = Field(default=0, ge=0, description="Words per minute")
    duration_seconds: float = Field(default=0.0, ge=0, description="Elapsed time (sec)")
    backspace_count: int = Field(default=0, ge=0, description="Backspaces pressed")
    blocked_edit_count: int = Field(
        default=0, ge=0, description="Blocked cut/copy/paste/undo/redo/select-all attempts"
    )
    enter_count: int = Field(default=0, ge=0, description="Enter presses (never inserted)")
    arrow_key_count: int = Field(default=0, ge=0, description="Arrow presses (never applied)")

    model_config = ConfigDict(extra="ignore")


class SessionStatsTracker:
    """Accumulates content and counters from a stream of key events.

    Every event is accepted. Enter and arrow keys are counted but never
    change the content, so the text stays a single append-only stream with
    the cursor pinned to its end.
    """

    def __init__(self):
        self._chars: list[str] = []
        self._word_count = 0
        self._elapsed_seconds = 0.0
        self.backspace_count = 0
        self.blocked_edit_count = 0
        self.enter_count = 0
        self.arrow_key_count = 0

    @property
    def content(self) -> str:
        return "".join(self._chars)

    def apply(self, event: KeyEvent) -> SessionStats:
        """Apply a key event and return the updated statistics."""
        if event.type == KeyEventType.CHAR:
            if event.payload:
                self._chars.append(event.payload)
                self._word_count = count_words(self.content)
        elif event.type == KeyEventType.BACKSPACE:
            self.backspace_count += 1
            if self._chars:
                self._chars.pop()
                self._word_count = count_words(self.content)
        elif event.type == KeyEventType.ENTER:
            self.enter_count += 1
        elif event.type == KeyEventType.ARROW:
            self.arrow_key_count += 1
        elif event.type == KeyEventType.BLOCKED_COMBO:
            self.blocked_edit_count += 1
        else:
            log.debug(f"Ignoring unknown event type: {event.type}")
        return self.snapshot()

    def sample(self, elapsed_seconds: float) -> SessionStats:
        """Recompute duration-derived statistics."""
        self._elapsed_seconds = max(0.0, elapsed_seconds)
        return self.snapshot()

    def snapshot(self) -> SessionStats:
        return SessionStats(
            word_count=self._word_count,
            words_per_minute=calculate_wpm(self._word_count, self._elapsed_seconds),
            duration_seconds=self._elapsed_seconds,
            backspace_count=self.backspace_count,
            blocked_edit_count=self.blocked_edit_count,
            enter_count=self.enter_count,
            arrow_key_count=self.arrow_key_count,
        )


__all__ = [
    "BLOCKED_COMBO_KEYS",
    "KeyEvent",
    "KeyEventType",
    "SessionStats",
    "SessionStatsTracker",
]
