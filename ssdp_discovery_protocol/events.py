#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Events emitted by SSDP endpoints, advertisers and browsers.

Every event is an instance of an SsdpEvent subclass carrying a string `kind` tag.
Consumers register a single handler per interest with add_event_handler() and
dispatch on the event's type or kind; there is no per-event-name registration.

Handlers are plain synchronous callables invoked on the event loop thread. A handler
that raises is logged and otherwise ignored.

For async consumers, SsdpEventSubscriber provides an async context manager/iterator
over the events of a source.
"""

from __future__ import annotations

import asyncio
import time
import datetime

from .internal_types import *
from .pkg_logging import logger

if TYPE_CHECKING:
    from .ssdp_message import SsdpMessage, SsdpSearch, SsdpNotification, SsdpReply

MAX_QUEUE_SIZE = 1000

class SsdpEvent:
    """Base class for all events."""

    kind: ClassVar[str] = ''
    """A tag identifying the type of event; e.g., "discover"."""

    monotonic_time: float
    """The local time (in seconds) since an arbitrary point in the past at which
       the event was created, as returned by time.monotonic()."""

    utc_time: datetime.datetime
    """The UTC time at which the event was created."""

    def __init__(self) -> None:
        self.monotonic_time = time.monotonic()
        self.utc_time = datetime.datetime.now(datetime.timezone.utc)

    def __repr__(self) -> str:
        return str(self)

class ErrorEvent(SsdpEvent):
    """A recoverable error: an undecodable datagram, a failed send, or an unknown search target."""

    kind = 'error'

    error: Exception

    def __init__(self, error: Exception) -> None:
        super().__init__()
        self.error = error

    def __str__(self) -> str:
        return f"ErrorEvent({self.error!r})"

class DatagramEvent(SsdpEvent):
    """Base class for events that result from a received datagram."""

    remote: HostAndPort
    """The address of the sender."""

    local: HostAndPort
    """The local address on which the datagram was received."""

    def __init__(self, remote: HostAndPort, local: HostAndPort) -> None:
        super().__init__()
        self.remote = remote
        self.local = local

class MessageReceivedEvent(DatagramEvent):
    """A datagram was received and decoded by an SsdpEndpoint."""

    message: SsdpMessage

    from_self: bool
    """True if the datagram was sent by this process. Consumers that want to ignore their own
       traffic may filter on this; nothing in this package does."""

    def __init__(self, message: SsdpMessage, remote: HostAndPort, local: HostAndPort, from_self: bool=False) -> None:
        super().__init__(remote, local)
        self.message = message
        self.from_self = from_self

    def __str__(self) -> str:
        return f"{type(self).__name__}({self.remote[0]}:{self.remote[1]}, {self.message!r}, from_self={self.from_self})"

class SearchReceived(MessageReceivedEvent):
    kind = 'search-received'
    message: SsdpSearch

class NotificationReceived(MessageReceivedEvent):
    kind = 'notification-received'
    message: SsdpNotification

class ReplyReceived(MessageReceivedEvent):
    kind = 'reply-received'
    message: SsdpReply

class ServiceEvent(DatagramEvent):
    """Base class for events about a single service type."""

    service: str
    """The service type (search target) the event concerns."""

    message: SsdpMessage
    """The message that triggered the event."""

    def __init__(self, service: str, message: SsdpMessage, remote: HostAndPort, local: HostAndPort) -> None:
        super().__init__(remote, local)
        self.service = service
        self.message = message

    def __str__(self) -> str:
        return f"{type(self).__name__}({self.service!r}, {self.remote[0]}:{self.remote[1]}, {self.message!r})"

class SearchEvent(ServiceEvent):
    """An advertiser received a valid search for a target it serves, and is replying."""
    kind = 'search'
    message: SsdpSearch

    @property
    def target(self) -> str:
        return self.service

class DiscoverEvent(ServiceEvent):
    """A browser learned that a subscribed service is available (reply, ssdp:alive or ssdp:update)."""
    kind = 'discover'

class WithdrawEvent(ServiceEvent):
    """A browser learned that a subscribed service has gone away (ssdp:byebye)."""
    kind = 'withdraw'
    message: SsdpNotification

SsdpEventHandler = Callable[[SsdpEvent], None]
"""A callback for emitted events."""

class SsdpEventSource:
    """A registry of event handlers with synchronous fan-out."""

    event_handlers: Dict[int, SsdpEventHandler]
    """Registered handlers, indexed by ID number."""

    i_next_event_handler: int = 0
    """The next event handler ID to assign."""

    def __init__(self) -> None:
        self.event_handlers = {}

    def add_event_handler(self, handler: SsdpEventHandler) -> int:
        """Adds a handler to be called with every emitted event. Returns an ID for remove_event_handler()."""
        i = self.i_next_event_handler
        self.i_next_event_handler += 1
        self.event_handlers[i] = handler
        return i

    def remove_event_handler(self, i: int) -> None:
        """Removes a previously added event handler. Removing an unknown ID is a no-op."""
        self.event_handlers.pop(i, None)

    def emit(self, event: SsdpEvent) -> None:
        logger.debug(f"{type(self).__name__}: emitting {event}")
        for handler in list(self.event_handlers.values()):
            try:
                handler(event)
            except Exception as e:
                logger.warning(f"Event handler raised exception processing {event}: {e}")

    def emit_error(self, error: Exception) -> None:
        self.emit(ErrorEvent(error))

    def emit_errors(self, errors: Iterable[Exception]) -> None:
        """Emits one ErrorEvent for each error in a send error list."""
        for error in errors:
            self.emit_error(error)

class SsdpEventSubscriber(
        AsyncContextManager['SsdpEventSubscriber'],
        AsyncIterable[SsdpEvent]
      ):
    """An async iterator over the events emitted by an SsdpEventSource.

    Usage:
        async with SsdpEventSubscriber(browser) as subscriber:
            async for event in subscriber:
                ...

    Iteration ends when close() is called or the context manager exits. Events that arrive
    while the queue is full are dropped with a warning.
    """

    source: SsdpEventSource
    queue: asyncio.Queue[Optional[SsdpEvent]]
    kinds: Optional[Set[str]] = None
    eos: bool = False
    _handler_id: Optional[int] = None

    def __init__(
            self,
            source: SsdpEventSource,
            kinds: Optional[Iterable[str]]=None,
            max_queue_size: int=MAX_QUEUE_SIZE
          ):
        self.source = source
        self.queue = asyncio.Queue(max_queue_size)
        if kinds is not None:
            self.kinds = set(kinds)

    async def __aenter__(self) -> SsdpEventSubscriber:
        self._handler_id = self.source.add_event_handler(self.on_event)
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        self.close()
        return False

    def close(self) -> None:
        """Stops receiving events. Events already queued are still delivered."""
        if self._handler_id is not None:
            self.source.remove_event_handler(self._handler_id)
            self._handler_id = None
        if not self.eos:
            self.eos = True
            try:
                # wake up any waiting tasks
                self.queue.put_nowait(None)
            except asyncio.QueueFull:
                # queue is full so waiters will wake up soon
                pass

    def on_event(self, event: SsdpEvent) -> None:
        if self.eos:
            return
        if self.kinds is not None and event.kind not in self.kinds:
            return
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(f"Queue full, dropping event: {event}")

    async def receive(self) -> Optional[SsdpEvent]:
        """Waits for the next event. Returns None at end of stream."""
        if self.eos and self.queue.empty():
            return None
        result = await self.queue.get()
        self.queue.task_done()
        return result

    async def iter_events(self) -> AsyncIterator[SsdpEvent]:
        while True:
            result = await self.receive()
            if result is None:
                break
            yield result

    def __aiter__(self) -> AsyncIterator[SsdpEvent]:
        return self.iter_events()
