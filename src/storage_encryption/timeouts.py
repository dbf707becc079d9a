"""Per-operation deadlines and cancellation checks.

Each reconciler call gets one deadline covering all of its remote calls.
The deadline is checked before every call so that nothing new is issued
once the budget is spent or the caller asked to stop.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field

from .config import Config, Operation
from .errors import Cancelled


@dataclass
class OperationDeadline:
    """Deadline and optional cancel signal for one reconciler call.

    Attributes:
        operation: Operation the deadline belongs to.
        resource: Resource name used in error messages.
        timeout_seconds: Total budget for the operation.
        cancel_event: Caller-owned event; when set, the operation stops.
    """

    operation: Operation
    resource: str
    timeout_seconds: float
    cancel_event: asyncio.Event | None = None
    started_at: float = field(default_factory=time.monotonic)

    @classmethod
    def for_operation(
        cls,
        config: Config,
        operation: Operation,
        resource: str,
        cancel_event: asyncio.Event | None = None,
    ) -> OperationDeadline:
        return cls(
            operation=operation,
            resource=resource,
            timeout_seconds=config.timeout_for(operation),
            cancel_event=cancel_event,
        )

    def remaining(self) -> float:
        """Seconds left before the deadline (never negative)."""
        elapsed = time.monotonic() - self.started_at
        return max(0.0, self.timeout_seconds - elapsed)

    def ensure_active(self) -> None:
        """Raise Cancelled if the caller cancelled or the deadline passed."""
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise Cancelled(self.operation.value, self.resource, "cancellation requested")
        if self.remaining() <= 0:
            raise Cancelled(
                self.operation.value,
                self.resource,
                f"deadline of {self.timeout_seconds:.0f}s exceeded",
            )
