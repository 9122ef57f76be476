#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
SsdpAdvertiser -- publishes a set of services over SSDP. It:

  1. Multicasts ssdp:alive notifications for the device identity (upnp:rootdevice and
     uuid:<uuid>) and for every announced service, immediately and then periodically
  2. Answers M-SEARCH requests for ssdp:all, upnp:rootdevice, its own uuid:<uuid>, or any
     announced service with unicast replies to the requester
  3. Multicasts ssdp:byebye when a service is withdrawn, and for everything on destroy()

Every send failure is emitted as an ErrorEvent; nothing raises out of the receive path.
"""

from __future__ import annotations

import asyncio
import inspect
import uuid as uuid_module

from .internal_types import *
from .pkg_logging import logger
from .constants import (
    SSDP_MULTICAST_ADDRESS,
    SSDP_PORT,
    DEFAULT_TTL,
    DEFAULT_INTERVAL,
    SSDP_DISCOVER,
    SSDP_ALL,
    UPNP_ROOTDEVICE,
  )
from .exceptions import SsdpUnknownTargetError
from .events import SsdpEvent, SsdpEventSource, ErrorEvent, SearchReceived, SearchEvent
from .headers import HeaderSet
from .ssdp_message import SsdpSearch, SsdpReply
from .ssdp_endpoint import SsdpEndpoint
from .timer import RepeatingTimer

AuthenticationProvider = Callable[[str], Union[bool, Awaitable[bool]]]
"""Decides whether to answer a search from a given IP address. May be a coroutine function."""

def allow_all(address: str) -> bool:
    return True

class SsdpAdvertiser(SsdpEventSource, AsyncContextManager['SsdpAdvertiser']):
    """
    An SSDP advertiser that publishes services and answers searches for them.

    Emits SearchEvent for every search it answers, and ErrorEvent for send failures,
    undecodable datagrams and searches for unknown targets.

    Usage:
        async with await SsdpAdvertiser.create(services={'urn:acme:service:Widget:1': {'LOCATION': url}}) as advertiser:
            advertiser.add_event_handler(print)
            ...
    """

    endpoint: SsdpEndpoint

    authentication_provider: AuthenticationProvider
    """Called with the requester's IP address before a search is answered."""

    interval: float
    """The interval (in seconds) between periodic announcements."""

    timer: RepeatingTimer

    destroyed: bool = False

    _uuid: str
    _services: Dict[str, HeaderSet]
    _endpoint_handler_id: Optional[int] = None
    _pending_tasks: Set[asyncio.Future[None]]

    def __init__(
            self,
            endpoint: SsdpEndpoint,
            uuid: Optional[str]=None,
            services: Optional[Mapping[str, Optional[HeadersInit]]]=None,
            interval: float=DEFAULT_INTERVAL,
            authentication_provider: Optional[AuthenticationProvider]=None,
          ) -> None:
        """Creates an advertiser on an existing endpoint and sends the first round of announcements.

        Must be called with a running event loop.

        Parameters:
            endpoint:                The SsdpEndpoint to send and receive on. It is destroyed with the advertiser.
            uuid:                    The device identity used in USN headers. Defaults to a random UUID.
            services:                Initial services, as a mapping of service type to extra headers.
            interval:                The interval (in seconds) between periodic announcements. Defaults to 60.
            authentication_provider: Called with the requester's IP address; searches are only answered if
                                        it returns True (or an awaitable resolving to True). Defaults to
                                        allowing everyone.
        """
        super().__init__()
        self.endpoint = endpoint
        self._uuid = str(uuid_module.uuid4()) if uuid is None else uuid
        self._services = {}
        if services is not None:
            for service, headers in services.items():
                self._check_service(service)
                self._services[service] = HeaderSet(headers)
        self.authentication_provider = allow_all if authentication_provider is None else authentication_provider
        self.interval = interval
        self._pending_tasks = set()
        self._endpoint_handler_id = endpoint.add_event_handler(self._on_endpoint_event)
        self.timer = RepeatingTimer(interval, self.announce_now, name=f"SsdpAdvertiser({self._uuid}) timer")
        self.timer.start()

    @classmethod
    async def create(
            cls,
            host: Optional[str]=None,
            loopback: bool=False,
            ttl: int=DEFAULT_TTL,
            uuid: Optional[str]=None,
            services: Optional[Mapping[str, Optional[HeadersInit]]]=None,
            interval: float=DEFAULT_INTERVAL,
            authentication_provider: Optional[AuthenticationProvider]=None,
            multicast_address: str=SSDP_MULTICAST_ADDRESS,
            multicast_port: int=SSDP_PORT,
          ) -> SsdpAdvertiser:
        """Creates an advertiser on a new multicast transport.

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
            return cls(
                endpoint,
                uuid=uuid,
                services=services,
                interval=interval,
                authentication_provider=authentication_provider,
              )
        except BaseException:
            endpoint.destroy()
            raise

    @property
    def uuid(self) -> str:
        """The device identity. Immutable for the lifetime of the advertiser."""
        return self._uuid

    @property
    def root_identity(self) -> str:
        """The identity target, "uuid:<uuid>"."""
        return f"uuid:{self._uuid}"

    @property
    def services(self) -> List[Tuple[str, HeaderSet]]:
        """The announced services and their extra headers."""
        return list(self._services.items())

    def usn(self, service: str) -> str:
        """The USN header value for a service type."""
        return f"uuid:{self._uuid}::{service}"

    def _check_service(self, service: str) -> None:
        if not isinstance(service, str) or service == '':
            raise ValueError(f"Service type must be a non-empty string: {service!r}")

    def announce(self, service: str, headers: Optional[HeadersInit]=None) -> None:
        """Adds or replaces a service. A newly added service is announced immediately;
           a replaced one is picked up by the next periodic announcement."""
        if self.destroyed:
            return
        self._check_service(service)
        is_new = service not in self._services
        self._services[service] = HeaderSet(headers)
        if is_new:
            self._notify_service(service, self._services[service])

    def update(self, service: str, headers: Optional[HeadersInit]=None) -> None:
        """Adds or replaces a service and multicasts an ssdp:update notification for it."""
        if self.destroyed:
            return
        self._check_service(service)
        self._services[service] = HeaderSet(headers)
        service_headers = self._services[service].copy()
        service_headers['USN'] = self.usn(service)
        self.emit_errors(self.endpoint.update(service, service_headers))

    def withdraw(self, service: str) -> bool:
        """Removes a service and multicasts ssdp:byebye for it.

        Returns True if the service was present. If it was not, nothing is sent.
        """
        if self.destroyed or service not in self._services:
            return False
        del self._services[service]
        self.emit_errors(self._send_goodbye(service))
        return True

    def announce_now(self) -> None:
        """Multicasts ssdp:alive for the device identity and every service, independent of the timer."""
        if self.destroyed:
            return
        self._notify_root_devices()
        for service, headers in list(self._services.items()):
            self._notify_service(service, headers)

    def destroy(self) -> None:
        """Multicasts ssdp:byebye for the device identity and every service, then stops the
           timer and releases the transport. Farewells are best-effort: failures are emitted as
           ErrorEvents and not retried. Calling destroy() again is a no-op."""
        if self.destroyed:
            return
        self.destroyed = True
        logger.debug(f"Destroying SsdpAdvertiser {self._uuid}")
        errors = self.endpoint.bye(self.root_identity, {'USN': self.root_identity})
        errors.extend(self.endpoint.bye(UPNP_ROOTDEVICE, {'USN': self.usn(UPNP_ROOTDEVICE)}))
        for service in list(self._services.keys()):
            errors.extend(self._send_goodbye(service))
        self._services.clear()
        self.emit_errors(errors)
        self.timer.cancel()
        for task in list(self._pending_tasks):
            task.cancel()
        if self._endpoint_handler_id is not None:
            self.endpoint.remove_event_handler(self._endpoint_handler_id)
            self._endpoint_handler_id = None
        self.endpoint.destroy()

    async def wait_closed(self) -> None:
        """Waits for the timer task to exit after destroy()."""
        await self.timer.wait_done()

    async def __aenter__(self) -> SsdpAdvertiser:
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

    def _on_endpoint_event(self, event: SsdpEvent) -> None:
        if self.destroyed:
            return
        if isinstance(event, ErrorEvent):
            self.emit(event)
        elif isinstance(event, SearchReceived):
            self.handle_search(event)

    def handle_search(self, event: SearchReceived) -> None:
        """Validates, authenticates and answers a received search request."""
        if self.destroyed:
            return
        request = event.message
        man = request.get_header('MAN')
        target = request.get_header('ST')
        if man != SSDP_DISCOVER or not target:
            logger.debug(f"Ignoring invalid search from {event.remote}: MAN={man!r}, ST={target!r}")
            return
        try:
            allowed = self.authentication_provider(event.remote[0])
        except Exception as e:
            self.emit_error(e)
            return
        if inspect.isawaitable(allowed):
            task = asyncio.ensure_future(self._answer_search_when_allowed(allowed, event, target))
            self._pending_tasks.add(task)
            task.add_done_callback(self._pending_tasks.discard)
            if inspect.iscoroutine(allowed):
                # a task cancelled before its first step never awaits the coroutine
                coro = allowed
                task.add_done_callback(lambda _: coro.close())
        elif allowed:
            self._answer_search(event, target)
        else:
            logger.debug(f"Search from {event.remote[0]} rejected by authentication provider")

    async def _answer_search_when_allowed(self, allowed: Awaitable[bool], event: SearchReceived, target: str) -> None:
        try:
            is_allowed = await allowed
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not self.destroyed:
                self.emit_error(e)
            return
        if is_allowed and not self.destroyed:
            self._answer_search(event, target)
        elif not is_allowed:
            logger.debug(f"Search from {event.remote[0]} rejected by authentication provider")

    def _answer_search(self, event: SearchReceived, target: str) -> None:
        matches: List[Tuple[str, HeaderSet]]
        if target == SSDP_ALL:
            matches = [
                (UPNP_ROOTDEVICE, HeaderSet()),
                (self.root_identity, HeaderSet()),
              ]
            matches.extend(self._services.items())
        elif target == UPNP_ROOTDEVICE or target == self.root_identity:
            matches = [(target, HeaderSet())]
        elif target in self._services:
            matches = [(target, self._services[target])]
        else:
            self.emit_error(SsdpUnknownTargetError(target))
            return
        self.emit(SearchEvent(target, event.message, event.remote, event.local))
        self._reply(event.message, matches)

    def _reply(self, request: SsdpSearch, services: Iterable[Tuple[str, HeaderSet]]) -> None:
        for service, headers in services:
            reply = SsdpReply(headers)
            reply.set_header('ST', service)
            reply.set_header('USN', self.usn(service))
            self.emit_errors(self.endpoint.reply(request, reply))

    def _notify_root_devices(self) -> None:
        self.emit_errors(self.endpoint.notify(UPNP_ROOTDEVICE, {'USN': self.usn(UPNP_ROOTDEVICE)}))
        self.emit_errors(self.endpoint.notify(self.root_identity, {'USN': self.root_identity}))

    def _notify_service(self, service: str, headers: HeaderSet) -> None:
        service_headers = headers.copy()
        service_headers['USN'] = self.usn(service)
        self.emit_errors(self.endpoint.notify(service, service_headers))

    def _send_goodbye(self, service: str) -> List[Exception]:
        return self.endpoint.bye(service, {'USN': self.usn(service)})
