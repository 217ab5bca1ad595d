"""
Event Broadcasting

Fan-out of named events to every registered extension host.

Delivery is at-most-once and fire-and-forget: no acknowledgment, no retry.
A host that raises is logged and skipped; the others still receive the event.

Design: Observer pattern with per-observer failure isolation.
"""

import itertools
import logging
import queue
import threading
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from .errors import DeliveryFailure

logger = logging.getLogger(__name__)

Event = Tuple[str, Tuple[Any, ...]]


class ExtensionHost(Protocol):
    """A privileged script context subscribed to broadcast events."""

    id: Any

    def send(self, event_name: str, *args: Any) -> None: ...


class EventBroadcaster:
    """Delivers events to the current host set in unspecified order."""

    def __init__(self):
        self._hosts: Dict[int, ExtensionHost] = {}

    def add(self, host: ExtensionHost) -> bool:
        key = id(host)
        if key in self._hosts:
            return False
        self._hosts[key] = host
        return True

    def discard(self, host: ExtensionHost) -> bool:
        return self._hosts.pop(id(host), None) is not None

    def clear(self):
        self._hosts.clear()

    @property
    def hosts(self) -> List[ExtensionHost]:
        return list(self._hosts.values())

    def __contains__(self, host: ExtensionHost) -> bool:
        return id(host) in self._hosts

    def __len__(self) -> int:
        return len(self._hosts)

    def broadcast(self, event_name: str, *payload: Any) -> int:
        """Send to every host. Returns the number of successful deliveries."""
        delivered = 0
        for host in self.hosts:
            try:
                host.send(event_name, *payload)
            except Exception as e:
                failure = e if isinstance(e, DeliveryFailure) else DeliveryFailure(
                    getattr(host, "id", None), event_name, repr(e))
                logger.warning("%s", failure)
                continue
            delivered += 1
        return delivered


# ═══════════════════════════════════════════════════════════════════
# Mailbox host
# ═══════════════════════════════════════════════════════════════════

class MailboxHost:
    """
    Extension host backed by a bounded mailbox.

    The broadcaster only ever enqueues, so a slow consumer cannot stall
    delivery to other hosts. When the mailbox is full the event is dropped
    for this host and `send` raises DeliveryFailure.

    Usage:
        host = MailboxHost(maxsize=256)
        context.observe_extension_host(host)
        event_name, args = host.get(timeout=1.0)
    """

    _ids = itertools.count(1)

    def __init__(self, maxsize: int = 256, host_id: Optional[Any] = None,
                 kind: str = "remote", window_id: Optional[int] = None):
        self.id = host_id if host_id is not None else next(self._ids)
        self.kind = kind
        self.window_id = window_id
        self._mailbox: "queue.Queue[Event]" = queue.Queue(maxsize=maxsize)
        self._destroyed = threading.Event()
        self._on_destroyed: List[Callable[[], None]] = []
        self.dropped = 0

    def send(self, event_name: str, *args: Any):
        if self._destroyed.is_set():
            raise DeliveryFailure(self.id, event_name, "host destroyed")
        try:
            self._mailbox.put_nowait((event_name, args))
        except queue.Full:
            self.dropped += 1
            raise DeliveryFailure(self.id, event_name, "mailbox full")

    def get(self, timeout: Optional[float] = None) -> Optional[Event]:
        """Next event, or None if none arrived within timeout."""
        try:
            return self._mailbox.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> List[Event]:
        events = []
        while True:
            try:
                events.append(self._mailbox.get_nowait())
            except queue.Empty:
                return events

    def once(self, signal: str, callback: Callable[[], None]) -> Callable[[], None]:
        if signal != "destroyed":
            raise ValueError(f"Unsupported host signal: {signal}")
        self._on_destroyed.append(callback)

        def unsubscribe():
            if callback in self._on_destroyed:
                self._on_destroyed.remove(callback)
        return unsubscribe

    @property
    def destroyed(self) -> bool:
        return self._destroyed.is_set()

    def close(self):
        """Mark destroyed and notify listeners once."""
        if self._destroyed.is_set():
            return
        self._destroyed.set()
        callbacks, self._on_destroyed = self._on_destroyed, []
        for cb in callbacks:
            cb()

    def __repr__(self) -> str:
        return f"MailboxHost(id={self.id!r}, kind={self.kind!r})"
