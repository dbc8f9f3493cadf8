from __future__ import annotations

import logging
from typing import Optional, Protocol

from ..core.exceptions import TransientError
from .model import Event, EventDraft

logger = logging.getLogger(__name__)


class EventPublisher(Protocol):
    """Sink the attendance services hand their state transitions to."""

    def publish(self, draft: EventDraft) -> Event:
        raise NotImplementedError


def emit(publisher: EventPublisher, draft: EventDraft) -> Optional[Event]:
    """Publish after the mutation has committed.

    The mutation cannot be undone at this point, so a log failure is reported
    and the command still succeeds; subscribers recover through a snapshot.
    """

    try:
        return publisher.publish(draft)
    except TransientError:
        # TODO: append events through an outbox table written in the mutation's transaction.
        logger.exception("event %s for worker_id=%s was not recorded", draft.type.value, draft.worker_id)
        return None
