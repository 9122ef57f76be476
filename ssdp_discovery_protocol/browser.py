#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
SsdpBrowser -- looks for a set of subscribed service types over SSDP. It:

  1. Multicasts an M-SEARCH for every subscribed service type, immediately and then periodically
  2. Emits DiscoverEvent for replies and ssdp:alive/ssdp:update notifications about subscribed
     service types
  3. Emits WithdrawEvent for ssdp:byebye notifications about subscribed service types

Traffic about service types that are not subscribed is dropped silently.
"""

from __future__ import annotations

from .internal_types import *
from .pkg_logging import logger
from .constants import (
    SSDP_MULTICAST_ADDRESS,
    SSDP_PORT,
    DEFAULT_TTL,
    DEFAULT_INTERVAL,
    DEFAULT_SEARCH_WAIT_TIME,
    MIN_SEARCH_WAIT_TIME,
    MAX_SEARCH_WAIT_TIME,
    SSDP_ALL,
    NTS_ALIVE,
    NTS_UPDATE,
    NTS_BYEBYE,
  )
from .events import (
    SsdpEvent,
    SsdpEventSource,
    ErrorEvent,
    MessageReceivedEvent,
    NotificationReceived,
    ReplyReceived,
    DiscoverEvent,
    WithdrawEvent,
  )
from .ssdp_endpoint import SsdpEndpoint
from .timer import RepeatingTimer

def normalize_search_target(service: str) -> str:
    """Maps the wildcard "*" to "ssdp:all"; other targets are returned unchanged."""
    return SSDP_ALL if service == '*' else service

class SsdpBrowser(SsdpEventSource, AsyncContextManager['SsdpBrowser']):
    """
    An SSDP browser that searches for subscribed service types and reports their arrival and departure.

    Emits DiscoverEvent, WithdrawEvent and ErrorEvent.

    Usage:
        async with await SsdpBrowser.create(services=['upnp:rootdevice']) as browser:
            async with SsdpEventSubscriber(browser) as subscriber:
                async for event in subscriber:
                    print(event)
    """

    endpoint: SsdpEndpoint

    interval: float
    """The interval (in seconds) between periodic searches."""

    wait_time: int
    """The MX value (in seconds) placed in outgoing searches."""

    timer: RepeatingTimer

    destroyed: bool = False

    _search_targets: Dict[str, None]
    """The subscription set. A dict is used as an insertion-ordered set."""

    _endpoint_handler_id: Optional[int] = None

    def __init__(
            self,
            endpoint: SsdpEndpoint,
            services: Optional[Union[str, Iterable[str]]]=None,
            interval: float=DEFAULT_INTERVAL,
            wait_time: int=DEFAULT_SEARCH_WAIT_TIME,
          ) -> None:
        """Creates a browser on an existing endpoint and sends the first round of searches.

        Must be called with a running event loop.

        Parameters:
            endpoint:  The SsdpEndpoint to send and receive on. It is destroyed with the browser.
            services:  An initial service type, or iterable of service types, to subscribe to.
            interval:  The interval (in seconds) between periodic searches. Defaults to 60.
            wait_time: The MX value (1..5 seconds) for outgoing searches. Defaults to 3.
        """
        if wait_time < MIN_SEARCH_WAIT_TIME or wait_time > MAX_SEARCH_WAIT_TIME:
            raise ValueError(f"Invalid wait time: {wait_time}. Must be between {MIN_SEARCH_WAIT_TIME} and {MAX_SEARCH_WAIT_TIME} seconds.")
        super().__init__()
        self.endpoint = endpoint
        self.interval = interval
        self.wait_time = wait_time
        self._search_targets = {}
        if services is not None:
            if isinstance(services, str):
                services = [services]
            for service in services:
                self._search_targets[normalize_search_target(service)] = None
        self._endpoint_handler_id = endpoint.add_event_handler(self._on_endpoint_event)
        self.timer = RepeatingTimer(interval, self.search_now, name="SsdpBrowser timer")
        self.timer.start()

    @classmethod
    async def create(
            cls,
            host: Optional[str]=None,
            loopback: bool=False,
            ttl: int=DEFAULT_TTL,
            services: Optional[Union[str, Iterable[str]]]=None,
            interval: float=DEFAULT_INTERVAL,
            wait_time: int=DEFAULT_SEARCH_WAIT_TIME,
            multicast_address: str=SSDP_MULTICAST_ADDRESS,
            multicast_port: int=SSDP_PORT,
          ) -> SsdpBrowser:
        """Creates a browser on a new multicast transport.

        Raises SsdpTransportError if the transport cannot be created.
        """
        endpoint = await SsdpEndpoint.create(
            host=host,
            loopback=loopback,
            ttl=ttl,
            multicast_address=multicast_address,
            multicast_port=multicast_port,
          )
        try:
            return cls(endpoint, services=services, interval=interval, wait_time=wait_time)
        except BaseException:
            endpoint.destroy()
            raise

    @property
    def subscriptions(self) -> List[str]:
        """The currently subscribed service types."""
        return list(self._search_targets.keys())

    def subscribe(self, service: str) -> None:
        """Adds a service type. A new service type is searched for immediately."""
        if self.destroyed:
            return
        service = normalize_search_target(service)
        if service not in self._search_targets:
            self._browse([service])
        self._search_targets[service] = None

    def unsubscribe(self, service: str) -> bool:
        """Removes a service type. Returns True if it was subscribed."""
        service = normalize_search_target(service)
        if service not in self._search_targets:
            return False
        del self._search_targets[service]
        return True

    def search_now(self) -> None:
        """Searches for every subscribed service type, independent of the timer."""
        if self.destroyed:
            return
        self._browse(self.subscriptions)

    def destroy(self) -> None:
        """Stops searching and releases the transport. No traffic is sent. Calling destroy() again is a no-op."""
        if self.destroyed:
            return
        self.destroyed = True
        logger.debug("Destroying SsdpBrowser")
        self.timer.cancel()
        if self._endpoint_handler_id is not None:
            self.endpoint.remove_event_handler(self._endpoint_handler_id)
            self._endpoint_handler_id = None
        self.endpoint.destroy()

    async def wait_closed(self) -> None:
        """Waits for the timer task to exit after destroy()."""
        await self.timer.wait_done()

    async def __aenter__(self) -> SsdpBrowser:
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        self.destroy()
        await self.wait_closed()
        return False

    def _browse(self, search_targets: Iterable[str]) -> None:
        for target in search_targets:
            self.emit_errors(self.endpoint.search(target, wait_time=self.wait_time))

    def _on_endpoint_event(self, event: SsdpEvent) -> None:
        if self.destroyed:
            return
        if isinstance(event, ErrorEvent):
            self.emit(event)
        elif isinstance(event, NotificationReceived):
            target = event.message.get_header('NT')
            if target:
                self.handle_message(target, event)
        elif isinstance(event, ReplyReceived):
            target = event.message.get_header('ST')
            if target:
                self.handle_message(target, event)

    def handle_message(self, target: str, event: MessageReceivedEvent) -> None:
        """Classifies a received reply or notification about `target` and emits the matching event."""
        if target not in self._search_targets:
            return
        message = event.message
        if message.is_reply:
            self.emit(DiscoverEvent(target, message, event.remote, event.local))
            return
        nts = message.get_header('NTS')
        if nts == NTS_ALIVE or nts == NTS_UPDATE:
            self.emit(DiscoverEvent(target, message, event.remote, event.local))
        elif nts == NTS_BYEBYE:
            self.emit(WithdrawEvent(target, message, event.remote, event.local))
        else:
            logger.debug(f"Ignoring notification for {target} from {event.remote} with NTS={nts!r}")
