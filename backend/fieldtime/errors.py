from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from .models import StatusEvent


class ConfigurationError(RuntimeError):
    """Raised at startup when a business parameter in the environment is unusable."""


class InvalidEventSequence(ValueError):
    """A ticket's sorted events break the lifecycle (something follows COMPLETED).

    ``partial_events`` keeps the valid prefix, up to and including the
    ``COMPLETED`` event, so the ticket can still be reported in degraded form.
    """

    def __init__(
        self,
        ticket_id: int,
        message: str,
        partial_events: Sequence["StatusEvent"] = (),
    ) -> None:
        super().__init__(f"ticket {ticket_id}: {message}")
        self.ticket_id = ticket_id
        self.reason = message
        self.partial_events = tuple(partial_events)


class MissingMetadata(LookupError):
    def __init__(self, ticket_id: int) -> None:
        super().__init__(f"no metadata record for ticket {ticket_id}")
        self.ticket_id = ticket_id
