"""Lifecycle events emitted while a request is being executed."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class RequestPhase(str, Enum):
    """States of the per-request state machine."""

    BUILDING = "building"
    CONNECTING = "connecting"
    SENDING = "sending"
    AWAITING_RESPONSE = "awaiting_response"
    REDIRECTING = "redirecting"
    AUTHENTICATING = "authenticating"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RequestPhase.COMPLETE, RequestPhase.FAILED)


@dataclass
class ExchangeEvent:
    """
    Event emitted on every phase transition of a request.

    Example:
        def hook(event: ExchangeEvent) -> None:
            if event.phase == RequestPhase.REDIRECTING:
                print(f"hop {event.hop}: {event.status_code} -> {event.uri}")

        client = HttpClient(config, event_hook=hook)
    """

    phase: RequestPhase
    uri: str

    # Timestamp (always UTC)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    status_code: Optional[int] = None
    hop: int = 0  # number of redirects followed so far
    error: Optional[str] = None

    @property
    def is_error(self) -> bool:
        """Check if this is a failure event."""
        return self.phase == RequestPhase.FAILED
