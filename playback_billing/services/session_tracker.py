"""
Session Tracker - turns paired playback start/stop events into usage records.

Every event handler is a failure boundary: bad data or a storage failure
drops that one session with a log entry and never propagates to the host.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from playback_billing.config import Settings
from playback_billing.db.stores import UsageRecordStore
from playback_billing.exceptions import InvalidFormatError, ValidationError
from playback_billing.models.domain import (
    MediaItemType,
    PlaybackStartEvent,
    PlaybackStopEvent,
    UsageRecord,
    ticks_from_timedelta,
)
from playback_billing.observability import get_logger, metrics
from playback_billing.services.event_source import PlaybackEventSource
from playback_billing.validation import (
    TICKS_PER_SECOND,
    sanitize_text,
    validate_duration,
    validate_identifier,
)

logger = get_logger(__name__)

# Sessions shorter than this are noise, not viewing
MIN_BILLABLE_TICKS = 30 * TICKS_PER_SECOND
MAX_SESSION_TOKEN_LENGTH = 100


def _utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


@dataclass(frozen=True)
class OpenSession:
    """A playback session that has started but not yet stopped."""

    user_id: UUID
    item_id: UUID
    item_name: str
    item_type: MediaItemType
    start_time: datetime


class SessionTracker:
    """
    In-memory table of open playback sessions keyed by session token.

    The table is a plain dict touched only through single-key operations
    (assignment and pop), each atomic on its own, so concurrent events for
    different tokens never contend on a shared lock. A duplicate start for a
    live token replaces the earlier entry.

    A start that never gets a stop stays in the table until shutdown, so the
    table grows with abandoned sessions. Its size is exported as the
    open_playback_sessions gauge.
    """

    def __init__(self, settings: Settings, usage_records: UsageRecordStore) -> None:
        self._settings = settings
        self._usage_records = usage_records
        self._sessions: dict[str, OpenSession] = {}
        self._source: PlaybackEventSource | None = None

    @property
    def open_session_count(self) -> int:
        return len(self._sessions)

    def start(self, source: PlaybackEventSource) -> None:
        """Subscribe to playback events from the host."""
        source.subscribe(self)
        self._source = source
        logger.info("session_tracker_started", tracking_enabled=self._settings.tracking_enabled)

    def stop(self) -> None:
        """Unsubscribe and discard every open session."""
        if self._source is not None:
            self._source.unsubscribe(self)
            self._source = None
        discarded = len(self._sessions)
        self._sessions.clear()
        metrics.open_playback_sessions.set(0)
        logger.info("session_tracker_stopped", open_sessions_discarded=discarded)

    def on_start(self, event: PlaybackStartEvent) -> None:
        if not self._settings.tracking_enabled:
            return

        try:
            token = self._session_token(event.session_token)
            session = OpenSession(
                user_id=validate_identifier(event.user_id, "user_id"),
                item_id=validate_identifier(event.item_id, "item_id"),
                item_name=sanitize_text(
                    event.item_name or "Unknown", self._settings.max_title_length
                ),
                item_type=MediaItemType.from_hint(event.item_type_hint),
                start_time=_utc_now(),
            )
        except ValidationError as e:
            logger.warning("playback_start_rejected", param=e.param_name, error=e.message)
            metrics.record_playback_event("start", "rejected")
            return
        except Exception as e:
            logger.error("playback_start_failed", error=str(e), exc_info=True)
            metrics.record_playback_event("start", "error")
            return

        if self._sessions.get(token) is not None:
            logger.info("session_replaced", user_id=str(session.user_id))
        self._sessions[token] = session
        metrics.open_playback_sessions.set(len(self._sessions))
        metrics.record_playback_event("start", "opened")
        logger.debug(
            "playback_session_opened",
            user_id=str(session.user_id),
            item_id=str(session.item_id),
        )

    def on_stop(self, event: PlaybackStopEvent) -> None:
        if not self._settings.tracking_enabled:
            return

        try:
            token = self._session_token(event.session_token)
        except ValidationError as e:
            logger.debug("playback_stop_rejected", error=e.message)
            metrics.record_playback_event("stop", "rejected")
            return

        session = self._sessions.pop(token, None)
        metrics.open_playback_sessions.set(len(self._sessions))
        if session is None:
            logger.debug("no_open_session", session_token=token)
            metrics.record_playback_event("stop", "unmatched")
            return

        record = self._build_record(session, event.position_ticks)
        if record is None:
            return

        try:
            self._usage_records.save(record)
        except Exception as e:
            logger.error(
                "usage_record_save_failed",
                user_id=str(record.user_id),
                error=str(e),
                exc_info=True,
            )
            metrics.record_session_dropped("storage_error")
            return

        metrics.record_playback_event("stop", "recorded")
        logger.info(
            "usage_recorded",
            record_id=str(record.id),
            user_id=str(record.user_id),
            item_name=record.item_name,
            duration_seconds=record.duration.total_seconds(),
        )

    def _build_record(self, session: OpenSession, position_ticks: Any) -> UsageRecord | None:
        try:
            end_time = _utc_now()
            duration = validate_duration(self._duration_ticks(session, end_time, position_ticks))

            if duration < MIN_BILLABLE_TICKS:
                logger.debug("session_dropped", reason="too_short", user_id=str(session.user_id))
                metrics.record_session_dropped("too_short")
                return None

            return UsageRecord.create(
                user_id=session.user_id,
                item_id=session.item_id,
                item_name=session.item_name,
                item_type=session.item_type,
                start_time=session.start_time,
                end_time=end_time,
                duration_ticks=duration,
                max_name_length=self._settings.max_title_length,
            )
        except ValidationError as e:
            logger.warning("session_dropped", reason="invalid", param=e.param_name, error=e.message)
            metrics.record_session_dropped("invalid")
        except Exception as e:
            logger.error("usage_record_build_failed", error=str(e), exc_info=True)
            metrics.record_session_dropped("error")
        return None

    @staticmethod
    def _duration_ticks(session: OpenSession, end_time: datetime, position_ticks: Any) -> int:
        """Reported playback position when positive, else wall-clock time."""
        if isinstance(position_ticks, int) and not isinstance(position_ticks, bool):
            if position_ticks > 0:
                return position_ticks
        return ticks_from_timedelta(end_time - session.start_time)

    @staticmethod
    def _session_token(raw: Any) -> str:
        if raw is None:
            raise InvalidFormatError("session_token", "session token is missing")
        token = sanitize_text(str(raw), MAX_SESSION_TOKEN_LENGTH)
        if not token:
            raise InvalidFormatError("session_token", "session token is empty")
        return token
