"""
Playback Event Source Protocol - the boundary with the host media server.

The host delivers playback start/stop notifications to subscribed
listeners. The session tracker only ever sees the event payloads.
"""

import threading
from typing import Protocol

from playback_billing.models.domain import PlaybackStartEvent, PlaybackStopEvent
from playback_billing.observability import get_logger

logger = get_logger(__name__)


class PlaybackListener(Protocol):
    """Receiver of playback lifecycle notifications."""

    def on_start(self, event: PlaybackStartEvent) -> None:
        """Handle a playback-started notification."""
        ...

    def on_stop(self, event: PlaybackStopEvent) -> None:
        """Handle a playback-stopped notification."""
        ...


class PlaybackEventSource(Protocol):
    """
    Playback event source protocol.

    Any host integration (webhooks, an embedded session manager, a message
    queue consumer) must implement this interface.
    """

    def subscribe(self, listener: PlaybackListener) -> None:
        """Start delivering events to the listener."""
        ...

    def unsubscribe(self, listener: PlaybackListener) -> None:
        """Stop delivering events to the listener."""
        ...


class InProcessEventSource:
    """
    Fans published events out to every subscribed listener.

    Used by the webhook routes: each request publishes one event on the
    request's worker thread.
    """

    def __init__(self) -> None:
        self._listeners: list[PlaybackListener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: PlaybackListener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def unsubscribe(self, listener: PlaybackListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def publish_start(self, event: PlaybackStartEvent) -> None:
        for listener in self._snapshot():
            try:
                listener.on_start(event)
            except Exception as e:
                logger.error(
                    "playback_listener_failed", event_type="start", error=str(e), exc_info=True
                )

    def publish_stop(self, event: PlaybackStopEvent) -> None:
        for listener in self._snapshot():
            try:
                listener.on_stop(event)
            except Exception as e:
                logger.error(
                    "playback_listener_failed", event_type="stop", error=str(e), exc_info=True
                )

    def _snapshot(self) -> list[PlaybackListener]:
        with self._lock:
            return list(self._listeners)
