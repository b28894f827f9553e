"""Per-event normalization into records."""

from __future__ import annotations

import logging
import re

from logship.eligibility import EventPolicy, is_event_eligible
from logship.errors import SerializationError
from logship.metrics import Clock, SystemClock
from logship.models import Event, EventKind, Record
from logship.records import event_to_record
from logship.redaction import compile_pattern, redact

ENVIRONMENT_DETAILS_ATTRIBUTE = "environment_details"


class EventNormalizer:
    """Converts one incoming lifecycle event into at most one record."""

    def __init__(
        self,
        *,
        policy: EventPolicy | None = None,
        redaction_pattern: str | re.Pattern[str] | None = None,
        stream_tag: str = "",
        clock: Clock | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._policy = policy or EventPolicy()
        self._redaction_pattern = compile_pattern(redaction_pattern)
        self._stream_tag = stream_tag
        self._clock = clock or SystemClock()
        self._logger = logger or logging.getLogger("logship.normalizer")

    def normalize(self, event: Event) -> Record | None:
        if not is_event_eligible(event, self._policy):
            self._logger.debug("event_skipped", extra={"event": event.event_name})
            return None

        try:
            if event.kind is EventKind.ENVIRONMENT_UPDATE:
                event = self.redact_event(event)
            return event_to_record(event, self._clock.time(), stream_tag=self._stream_tag)
        except SerializationError:
            self._logger.warning("event_serialization_failed", extra={"event": event.event_name}, exc_info=True)
            return None

    def redact_event(self, event: Event) -> Event:
        details = event.attributes.get(ENVIRONMENT_DETAILS_ATTRIBUTE)
        if not details:
            return event
        attributes = dict(event.attributes)
        attributes[ENVIRONMENT_DETAILS_ATTRIBUTE] = redact(details, self._redaction_pattern)
        return Event(kind=event.kind, attributes=attributes, log_event=event.log_event, name=event.name)
