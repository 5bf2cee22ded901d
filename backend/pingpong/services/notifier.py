"""Notifier capability.

The engine decides *what* changed and hands it to a Notifier. Delivery
(websocket rooms, SMS, queues) belongs to the implementation, and a failing
implementation never breaks the engine step that emitted the event.
"""

import logging
from typing import Any, Dict, List, Protocol, Tuple

logger = logging.getLogger(__name__)

BRACKET_GENERATED = "bracket-generated"
MANUAL_SEEDING_COMPLETED = "manual-seeding-completed"
MATCH_STARTED = "match-started"
MATCH_UPDATED = "match-updated"
TOURNAMENT_FINISHED = "tournament-finished"


def tournament_topic(tournament_id: int) -> str:
    return f"tournament-{tournament_id}"


class Notifier(Protocol):
    def emit(self, topic: str, event_name: str, payload: Dict[str, Any]) -> None:
        ...


class NullNotifier:
    """Drops every event."""

    def emit(self, topic: str, event_name: str, payload: Dict[str, Any]) -> None:
        return None


class LoggingNotifier:
    """Default notifier: writes events to the application log."""

    def emit(self, topic: str, event_name: str, payload: Dict[str, Any]) -> None:
        logger.info(f"[{topic}] {event_name}: {payload}")


class RecordingNotifier:
    """Keeps emitted events in memory (tests, dry runs)."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, str, Dict[str, Any]]] = []

    def emit(self, topic: str, event_name: str, payload: Dict[str, Any]) -> None:
        self.events.append((topic, event_name, payload))

    def names(self) -> List[str]:
        return [name for _, name, _ in self.events]


def safe_emit(notifier: Notifier, tournament_id: int, event_name: str, payload: Dict[str, Any]) -> None:
    """Fire-and-forget emit on the tournament topic."""
    topic = tournament_topic(tournament_id)
    try:
        notifier.emit(topic, event_name, payload)
    except Exception:
        logger.exception("Notifier failed for %s on %s", event_name, topic)


_default_notifier = LoggingNotifier()


def get_notifier() -> Notifier:
    """FastAPI dependency; tests override it with a RecordingNotifier."""
    return _default_notifier
