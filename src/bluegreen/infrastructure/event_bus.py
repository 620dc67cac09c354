"""Event bus infrastructure for the blue/green orchestrator.

A thread-safe synchronous pub-sub bus plus an in-memory event store.  The
orchestrator, validation pipeline and traffic switch publish ``DomainEvent``
instances; the CLI console, the run history and the tests subscribe.  A
failing subscriber is logged and skipped so it can never abort a deployment
phase.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from collections.abc import Callable, Sequence

from bluegreen.domain.events import DomainEvent

logger = logging.getLogger(__name__)

Handler = Callable[[DomainEvent], None]


# ===================================================================== #
#  Event Bus                                                             #
# ===================================================================== #

class EventBus:
    """Thread-safe synchronous pub-sub for domain events.

    Handlers run in registration order, global handlers first.  Concurrent
    deployment runs for different services may share one bus.

    Usage::

        bus = EventBus()
        bus.subscribe(TrafficSwitched, on_switch)
        bus.publish(TrafficSwitched(domain="example.com", color=Color.GREEN))
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handlers: dict[type[DomainEvent], list[Handler]] = defaultdict(list)
        self._global_handlers: list[Handler] = []

    # -- subscription -------------------------------------------------------

    def subscribe(self, event_type: type[DomainEvent], handler: Handler) -> None:
        """Register *handler* for *event_type* (exact type match)."""
        with self._lock:
            self._handlers[event_type].append(handler)

    def subscribe_all(self, handler: Handler) -> None:
        """Register *handler* to receive every published event."""
        with self._lock:
            self._global_handlers.append(handler)

    def unsubscribe(self, event_type: type[DomainEvent], handler: Handler) -> bool:
        """Remove *handler* from *event_type*. Returns ``True`` if found."""
        with self._lock:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)
                return True
            return False

    # -- publishing ---------------------------------------------------------

    def publish(self, event: DomainEvent) -> None:
        """Deliver *event* to global handlers, then typed handlers."""
        with self._lock:
            snapshot = list(self._global_handlers) + list(self._handlers.get(type(event), []))

        for handler in snapshot:
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Error in handler %r for %s", handler, type(event).__name__
                )

    def handler_count(self, event_type: type[DomainEvent] | None = None) -> int:
        with self._lock:
            if event_type is not None:
                return len(self._handlers.get(event_type, []))
            return sum(len(hs) for hs in self._handlers.values()) + len(self._global_handlers)


# ===================================================================== #
#  Event Store                                                           #
# ===================================================================== #

class EventStore:
    """In-memory append-only history of a process's deployment events.

    Wire it to a bus with ``bus.subscribe_all(store.append)``.
    """

    def __init__(self, max_size: int = 0) -> None:
        self._events: list[DomainEvent] = []
        self._max_size = max_size
        self._lock = threading.Lock()

    def append(self, event: DomainEvent) -> None:
        with self._lock:
            self._events.append(event)
            if self._max_size > 0 and len(self._events) > self._max_size:
                self._events = self._events[-self._max_size:]

    def query(
        self,
        event_type: type[DomainEvent] | None = None,
        source_id: str | None = None,
    ) -> Sequence[DomainEvent]:
        """Return stored events, optionally filtered by type and service."""
        with self._lock:
            result = list(self._events)
        if event_type is not None:
            result = [e for e in result if isinstance(e, event_type)]
        if source_id is not None:
            result = [e for e in result if e.source_id == source_id]
        return result

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
