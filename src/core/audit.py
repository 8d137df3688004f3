from dataclasses import dataclass
from typing import Iterator, Protocol, Sequence

from loguru import logger

BATCH_TRANSFER = "batch_transfer"
DEPOSIT = "deposit"


@dataclass(frozen=True)
class AuditEvent:
    account: str
    action: str
    amount: int
    block_number: int


class AuditSink(Protocol):
    def publish(self, events: Sequence[AuditEvent]) -> None:
        ...


class AuditTrail:
    """Append-only, in-memory record of committed events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    def publish(self, events: Sequence[AuditEvent]) -> None:
        self._events.extend(events)

    @property
    def events(self) -> tuple[AuditEvent, ...]:
        return tuple(self._events)

    def __iter__(self) -> Iterator[AuditEvent]:
        return iter(self.events)

    def __len__(self) -> int:
        return len(self._events)


class LogAuditSink:
    def publish(self, events: Sequence[AuditEvent]) -> None:
        for event in events:
            logger.info(
                f"Audit {event.action}: {event.amount} wei, account {event.account}, block {event.block_number}"
            )
