#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
SsdpEndpoint -- the SSDP message layer on top of an SsdpTransport. It:

  1. Decodes received datagrams into SsdpSearch, SsdpNotification or SsdpReply messages and
     emits them as SearchReceived, NotificationReceived or ReplyReceived events
  2. Converts undecodable datagrams into ErrorEvents rather than raising
  3. Composes and sends outgoing M-SEARCH requests, NOTIFY announcements (alive, update, byebye)
     and unicast replies, returning each send's list of per-destination errors
"""

from __future__ import annotations

from .internal_types import *
from .pkg_logging import logger
from .constants import (
    SSDP_MULTICAST_ADDRESS,
    SSDP_PORT,
    DEFAULT_TTL,
    DEFAULT_SEARCH_WAIT_TIME,
    MIN_SEARCH_WAIT_TIME,
    MAX_SEARCH_WAIT_TIME,
    SSDP_DISCOVER,
    NTS_ALIVE,
    NTS_UPDATE,
    NTS_BYEBYE,
  )
from .exceptions import SsdpDecodeError
from .events import SsdpEventSource, SearchReceived, NotificationReceived, ReplyReceived
from .ssdp_message import SsdpMessage, SsdpSearch, SsdpNotification, SsdpReply, decode_message
from .transport import SsdpTransport, MulticastTransport, InboundDatagram

class SsdpEndpoint(SsdpEventSource):
    """Sends and receives SSDP messages over a transport.

    Emits SearchReceived, NotificationReceived, ReplyReceived and ErrorEvent events.
    """

    transport: SsdpTransport

    _datagram_handler_id: Optional[int] = None
    _error_handler_id: Optional[int] = None

    def __init__(self, transport: SsdpTransport):
        super().__init__()
        self.transport = transport
        self._datagram_handler_id = transport.add_datagram_handler(self.datagram_received)
        self._error_handler_id = transport.add_error_handler(self.emit_error)

    @classmethod
    async def create(
            cls,
            host: Optional[str]=None,
            loopback: bool=False,
            ttl: int=DEFAULT_TTL,
            multicast_address: str=SSDP_MULTICAST_ADDRESS,
            multicast_port: int=SSDP_PORT,
          ) -> SsdpEndpoint:
        """Creates an endpoint on a new MulticastTransport.

        Raises SsdpTransportError if the transport cannot be created.
        """
        transport = await MulticastTransport.create(
            host=host,
            loopback=loopback,
            ttl=ttl,
            multicast_address=multicast_address,
            multicast_port=multicast_port,
          )
        return cls(transport)

    @property
    def host_header(self) -> str:
        """The HOST header value for multicast messages."""
        return f"{self.transport.multicast_address}:{self.transport.multicast_port}"

    def datagram_received(self, datagram: InboundDatagram) -> None:
        try:
            message = decode_message(datagram.data, datagram.remote)
        except SsdpDecodeError as e:
            logger.debug(f"Error decoding datagram from {datagram.remote}: {e}")
            self.emit_error(e)
            return
        if isinstance(message, SsdpSearch):
            self.emit(SearchReceived(message, datagram.remote, datagram.local, datagram.from_self))
        elif isinstance(message, SsdpNotification):
            self.emit(NotificationReceived(message, datagram.remote, datagram.local, datagram.from_self))
        else:
            assert isinstance(message, SsdpReply)
            self.emit(ReplyReceived(message, datagram.remote, datagram.local, datagram.from_self))

    def send_message(self, message: SsdpMessage, dst_address: Optional[str]=None, dst_port: Optional[int]=None) -> List[Exception]:
        """Serializes and sends a message. Returns the transport's per-destination errors."""
        return self.transport.send(message.encode(), dst_address=dst_address, dst_port=dst_port)

    def search(
            self,
            service_type: str,
            wait_time: int=DEFAULT_SEARCH_WAIT_TIME,
            headers: Optional[HeadersInit]=None
          ) -> List[Exception]:
        """Multicasts an M-SEARCH request for a service type.

        `wait_time` is the MX value: the number of seconds responders may wait before replying.
        Raises ValueError if it is outside the range 1..5.
        """
        if wait_time < MIN_SEARCH_WAIT_TIME or wait_time > MAX_SEARCH_WAIT_TIME:
            raise ValueError(f"Invalid wait time: {wait_time}. Must be between {MIN_SEARCH_WAIT_TIME} and {MAX_SEARCH_WAIT_TIME} seconds.")
        message = SsdpSearch(self.transport.multicast_address, self.transport.multicast_port, headers=headers)
        message.set_header('MAN', SSDP_DISCOVER)
        message.set_header('HOST', self.host_header)
        message.set_header('ST', service_type)
        message.set_header('MX', wait_time)
        if not message.has_header('EXT'):
            message.set_header('EXT', '')
        return self.send_message(message)

    def _send_notification(self, service_type: str, nts: str, headers: Optional[HeadersInit]) -> List[Exception]:
        message = SsdpNotification(headers)
        message.set_header('HOST', self.host_header)
        message.set_header('NT', service_type)
        message.set_header('NTS', nts)
        return self.send_message(message)

    def notify(self, service_type: str, headers: Optional[HeadersInit]=None) -> List[Exception]:
        """Multicasts an ssdp:alive notification for a service type."""
        return self._send_notification(service_type, NTS_ALIVE, headers)

    def update(self, service_type: str, headers: Optional[HeadersInit]=None) -> List[Exception]:
        """Multicasts an ssdp:update notification for a service type."""
        return self._send_notification(service_type, NTS_UPDATE, headers)

    def bye(self, service_type: str, headers: Optional[HeadersInit]=None) -> List[Exception]:
        """Multicasts an ssdp:byebye notification for a service type."""
        return self._send_notification(service_type, NTS_BYEBYE, headers)

    def reply(self, request: SsdpSearch, response: SsdpReply) -> List[Exception]:
        """Unicasts a reply to the sender of a search request."""
        return self.send_message(response, dst_address=request.host, dst_port=request.port)

    def destroy(self) -> None:
        """Detaches from the transport and releases it."""
        if self._datagram_handler_id is not None:
            self.transport.remove_handler(self._datagram_handler_id)
            self._datagram_handler_id = None
        if self._error_handler_id is not None:
            self.transport.remove_handler(self._error_handler_id)
            self._error_handler_id = None
        self.transport.destroy()
