# app/services/game_events.py
import time
from typing import Any, Dict, List, Literal, Optional

# Signals the presentation layer reacts to (sound, banners)
GameEventType = Literal[
    "memory_correct",
    "turn_success",
    "game_over",
    "timer_warning",
    "connection_lost",
]

SOUND_CUES: Dict[str, str] = {
    "memory_correct": "correct",
    "turn_success": "turn_success",
    "game_over": "game_over",
    "timer_warning": "timer_warning",
}

class GameEvent:
    def __init__(self, event_type: GameEventType, payload: Dict[str, Any], sound: Optional[str] = None):
        self.type = event_type
        self.payload = payload
        self.sound = sound # Only set when the owning controller has sound enabled
        self.created_at = time.time()

    def to_dict(self):
        return {"type": self.type, "payload": self.payload, "sound": self.sound}


class EventLog:
    """Per-controller outbox of GameEvents. The sound toggle is configuration of this log, not a global."""

    def __init__(self, sound_enabled: bool = True, max_events: int = 100):
        self.sound_enabled = sound_enabled
        self.max_events = max_events
        self._events: List[GameEvent] = []

    def emit(self, event_type: GameEventType, payload: Optional[Dict[str, Any]] = None) -> GameEvent:
        sound = SOUND_CUES.get(event_type) if self.sound_enabled else None
        event = GameEvent(event_type, payload or {}, sound=sound)
        self._events.append(event)
        if len(self._events) > self.max_events:
            del self._events[: len(self._events) - self.max_events] # Nobody is listening, keep the newest
        return event

    def drain(self) -> List[GameEvent]:
        events, self._events = self._events, []
        return events

    def peek(self) -> List[GameEvent]:
        return list(self._events)

    def clear(self):
        self._events = []
