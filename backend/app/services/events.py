"""In-transaction publish/subscribe for panel lifecycle transitions.

The lifecycle and inspection services publish an event after each
transition; the order tracker, pallet manager and history recorder
subscribe.  Handlers run synchronously in registration order on the same
session, so a transition and all of its downstream effects commit or roll
back together.

Dispatch follows the event's MRO: a handler subscribed to ``PanelEvent``
receives every panel event.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Awaitable, Callable, ClassVar

from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger("paneltrace.events")

Handler = Callable[[AsyncSession, "PanelEvent"], Awaitable[None]]


@dataclass(frozen=True, kw_only=True)
class PanelEvent:
    panel_id: str
    order_id: str
    from_status: str | None = None
    to_status: str | None = None
    station: int | None = None

    event_type: ClassVar[str] = "panel_event"

    def details(self) -> dict:
        return {}


@dataclass(frozen=True, kw_only=True)
class PanelCreated(PanelEvent):
    barcode: str
    line: str

    event_type: ClassVar[str] = "created"

    def details(self) -> dict:
        return {"barcode": self.barcode, "line": self.line}


@dataclass(frozen=True, kw_only=True)
class PanelAdmitted(PanelEvent):
    event_type: ClassVar[str] = "admitted"


@dataclass(frozen=True, kw_only=True)
class StationPassed(PanelEvent):
    inspector_id: str
    attempt: int = 0

    event_type: ClassVar[str] = "station_passed"

    def details(self) -> dict:
        return {"inspector_id": self.inspector_id, "attempt": self.attempt}


@dataclass(frozen=True, kw_only=True)
class PanelCompleted(PanelEvent):
    wattage: float
    vmp: float
    imp: float

    event_type: ClassVar[str] = "completed"

    def details(self) -> dict:
        return {"wattage": self.wattage, "vmp": self.vmp, "imp": self.imp}


@dataclass(frozen=True, kw_only=True)
class PanelFailed(PanelEvent):
    result: str
    notes: str
    failed_criteria: tuple[str, ...] = field(default_factory=tuple)

    event_type: ClassVar[str] = "failed"

    def details(self) -> dict:
        return {
            "result": self.result,
            "notes": self.notes,
            "failed_criteria": list(self.failed_criteria),
        }


@dataclass(frozen=True, kw_only=True)
class PanelReworked(PanelEvent):
    reason: str
    rework_count: int
    failed_criteria: tuple[str, ...] = field(default_factory=tuple)

    event_type: ClassVar[str] = "rework"

    def details(self) -> dict:
        return {
            "reason": self.reason,
            "rework_count": self.rework_count,
            "failed_criteria": list(self.failed_criteria),
        }


class EventBus:
    """Registry of async handlers keyed by event class."""

    def __init__(self):
        self._handlers: dict[type, list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: type) -> Callable[[Handler], Handler]:
        def register(handler: Handler) -> Handler:
            self._handlers[event_type].append(handler)
            return handler
        return register

    async def publish(self, db: AsyncSession, event: PanelEvent) -> None:
        logger.debug("Publishing %s for panel %s", event.event_type, event.panel_id)
        for cls in type(event).__mro__:
            for handler in self._handlers.get(cls, ()):
                await handler(db, event)


bus = EventBus()
subscribe = bus.subscribe
publish = bus.publish
