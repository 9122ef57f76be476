#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
SsdpTransport -- the datagram transport used by SSDP endpoints, and MulticastTransport, an
asyncio implementation that:

  1. Binds a UDP socket to the SSDP port and joins the SSDP multicast group
     (typically 239.255.255.250:1900)
  2. Delivers received datagrams, with local/remote addressing and a "from self" flag,
     to any number of handlers
  3. Sends datagrams to the multicast group or to a unicast address, returning a list of
     per-destination errors rather than raising

The protocol logic in this package depends only on the abstract SsdpTransport, so it can
be driven by an in-memory transport in tests.
"""

from __future__ import annotations

import asyncio
import collections
import socket
import sys
from abc import ABC, abstractmethod

from .internal_types import *
from .pkg_logging import logger
from .constants import SSDP_MULTICAST_ADDRESS, SSDP_PORT, DEFAULT_TTL
from .exceptions import SsdpTransportError
from .util import get_preferred_local_ip_address

IP_MULTICAST_ALL = 49

MAX_RECENTLY_SENT = 64
"""The number of recently sent payloads remembered for recognizing looped-back datagrams."""

class InboundDatagram:
    """A datagram received by a transport."""

    data: bytes
    """The raw UDP datagram contents"""

    local: HostAndPort
    """The local address on which the datagram was received"""

    remote: HostAndPort
    """The source address of the datagram"""

    from_self: bool
    """True if the datagram was sent by this transport and looped back"""

    def __init__(self, data: bytes, local: HostAndPort, remote: HostAndPort, from_self: bool=False):
        self.data = data
        self.local = local
        self.remote = remote
        self.from_self = from_self

    def __str__(self) -> str:
        return f"InboundDatagram({self.remote[0]}:{self.remote[1]} -> {self.local[0]}:{self.local[1]}, from_self={self.from_self}, data={self.data!r})"

    def __repr__(self) -> str:
        return str(self)

SsdpDatagramHandler = Callable[[InboundDatagram], None]
"""A callback for received datagrams."""

SsdpTransportErrorHandler = Callable[[Exception], None]
"""A callback for asynchronous transport errors (e.g., ICMP errors reported after a send)."""

class SsdpTransport(ABC):
    """Abstract datagram transport consumed by SsdpEndpoint."""

    multicast_address: str = SSDP_MULTICAST_ADDRESS
    """The multicast address used when a send has no explicit destination."""

    multicast_port: int = SSDP_PORT
    """The multicast port used when a send has no explicit destination."""

    datagram_handlers: Dict[int, SsdpDatagramHandler]
    error_handlers: Dict[int, SsdpTransportErrorHandler]
    i_next_handler: int = 0

    def __init__(self, multicast_address: str=SSDP_MULTICAST_ADDRESS, multicast_port: int=SSDP_PORT):
        self.multicast_address = multicast_address
        self.multicast_port = multicast_port
        self.datagram_handlers = {}
        self.error_handlers = {}

    def add_datagram_handler(self, handler: SsdpDatagramHandler) -> int:
        """Adds a handler to be called with each received datagram. Returns an ID for remove_handler()."""
        i = self.i_next_handler
        self.i_next_handler += 1
        self.datagram_handlers[i] = handler
        return i

    def add_error_handler(self, handler: SsdpTransportErrorHandler) -> int:
        """Adds a handler to be called with asynchronous transport errors. Returns an ID for remove_handler()."""
        i = self.i_next_handler
        self.i_next_handler += 1
        self.error_handlers[i] = handler
        return i

    def remove_handler(self, i: int) -> None:
        """Removes a previously added datagram or error handler."""
        self.datagram_handlers.pop(i, None)
        self.error_handlers.pop(i, None)

    def deliver_datagram(self, datagram: InboundDatagram) -> None:
        """Passes a received datagram to every datagram handler."""
        for handler in list(self.datagram_handlers.values()):
            try:
                handler(datagram)
            except Exception as e:
                logger.warning(f"Handler raised exception processing datagram {datagram}: {e}")

    def deliver_error(self, exc: Exception) -> None:
        """Passes an asynchronous transport error to every error handler."""
        for handler in list(self.error_handlers.values()):
            try:
                handler(exc)
            except Exception as e:
                logger.warning(f"Handler raised exception processing transport error {exc!r}: {e}")

    @abstractmethod
    def send(self, data: bytes, dst_address: Optional[str]=None, dst_port: Optional[int]=None) -> List[Exception]:
        """Sends a datagram. If no destination is given, it is sent to the multicast group.

        Never raises for delivery problems; returns a list with one error per destination
        that failed (empty on success).
        """
        raise NotImplementedError()

    @abstractmethod
    def destroy(self) -> None:
        """Releases the underlying socket. Idempotent."""
        raise NotImplementedError()

    @property
    @abstractmethod
    def destroyed(self) -> bool:
        raise NotImplementedError()

class _SsdpTransportProtocol(asyncio.DatagramProtocol):
    """An adapter between the asyncio transport and MulticastTransport."""

    ssdp_transport: MulticastTransport

    def __init__(self, ssdp_transport: MulticastTransport):
        self.ssdp_transport = ssdp_transport

    def connection_made(self, transport: asyncio.BaseTransport):
        """Called when a connection is made."""
        logger.debug(f"Connection made: {self.ssdp_transport}")

    def datagram_received(self, data: bytes, addr: Tuple[str, int]):
        """Called when some datagram is received."""
        self.ssdp_transport.datagram_received(data, (addr[0], addr[1]))

    def error_received(self, exc: Exception):
        """Called when a send or receive operation raises an OSError.

        (Other than BlockingIOError or InterruptedError.)
        """
        self.ssdp_transport.error_received(exc)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        """Called when the connection is lost or closed."""
        self.ssdp_transport.connection_lost(exc)

class MulticastTransport(SsdpTransport):
    """An asyncio UDP transport bound to the SSDP multicast group.

    Usage:
        transport = await MulticastTransport.create(host="192.168.1.10", loopback=True)
        ...
        transport.destroy()
    """

    host: Optional[str] = None
    """The local unicast IP address to join the group on and send from. If None, the
       wildcard address is used and the operating system chooses the interface."""

    loopback: bool = False
    """If True, multicast datagrams sent by this host are also received by it."""

    ttl: int = DEFAULT_TTL
    """The multicast time-to-live (hop count) for outgoing datagrams."""

    sock: Optional[socket.socket] = None
    transport: Optional[asyncio.DatagramTransport] = None

    unicast_addr: HostAndPort
    """The local address reported for received datagrams."""

    _destroyed: bool = False
    _recently_sent: Deque[bytes]

    def __init__(
            self,
            host: Optional[str]=None,
            loopback: bool=False,
            ttl: int=DEFAULT_TTL,
            multicast_address: str=SSDP_MULTICAST_ADDRESS,
            multicast_port: int=SSDP_PORT,
          ):
        super().__init__(multicast_address=multicast_address, multicast_port=multicast_port)
        if host == '':
            host = None
        self.host = host
        self.loopback = loopback
        self.ttl = ttl
        self._recently_sent = collections.deque(maxlen=MAX_RECENTLY_SENT)
        unicast_ip = host
        if unicast_ip is None or unicast_ip == '0.0.0.0':
            unicast_ip = get_preferred_local_ip_address() or '0.0.0.0'
        self.unicast_addr = (unicast_ip, multicast_port)

    @classmethod
    async def create(
            cls,
            host: Optional[str]=None,
            loopback: bool=False,
            ttl: int=DEFAULT_TTL,
            multicast_address: str=SSDP_MULTICAST_ADDRESS,
            multicast_port: int=SSDP_PORT,
          ) -> MulticastTransport:
        """Creates, binds and starts a transport.

        Raises SsdpTransportError if the socket cannot be created, bound, or joined to the group.
        """
        result = cls(
            host=host,
            loopback=loopback,
            ttl=ttl,
            multicast_address=multicast_address,
            multicast_port=multicast_port,
          )
        await result.start()
        return result

    def __str__(self) -> str:
        return f"MulticastTransport({self.multicast_address}:{self.multicast_port} on {self.host or '*'})"

    def __repr__(self) -> str:
        return str(self)

    def create_socket(self) -> socket.socket:
        """Creates the UDP socket, binds it to the SSDP port, and joins the multicast group."""
        group_bin = socket.inet_aton(self.multicast_address)
        interface_bin = socket.inet_aton('0.0.0.0' if self.host is None else self.host)
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if sys.platform not in ( 'win32', 'cygwin' ):
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
            # On Linux, disabling IP_MULTICAST_ALL ensures that the socket only receives
            # multicast packets for groups it has joined itself.
            if sys.platform in ('linux', 'linux2'):
                sock.setsockopt(socket.IPPROTO_IP, IP_MULTICAST_ALL, 0)
            # Multicast listeners MUST bind to 0.0.0.0:<port> to receive multicast packets
            sock.bind(('', self.multicast_port))
            mreq = group_bin + interface_bin
            logger.debug(f"Joining multicast group {self.multicast_address} on {self.host or '*'}; mreq={mreq!r}")
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, mreq)
            if self.host is not None:
                sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_IF, interface_bin)
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, self.ttl)
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_LOOP, 1 if self.loopback else 0)
            sock.setblocking(False)
        except BaseException:
            sock.close()
            raise
        return sock

    async def start(self) -> None:
        if self.sock is not None or self._destroyed:
            raise SsdpTransportError(f"{self} cannot be restarted")
        try:
            loop = asyncio.get_running_loop()
            self.sock = self.create_socket()
            untyped_transport, protocol = await loop.create_datagram_endpoint(
                lambda: _SsdpTransportProtocol(self),
                sock=self.sock
              )
            # asyncio datagram transports do not inherit from asyncio.DatagramTransport, but they
            # implement the same interface.
            transport: asyncio.DatagramTransport = untyped_transport # type: ignore[assignment]
            self.transport = transport
            logger.debug(f"Created datagram endpoint for {self}. transport={transport}, protocol={protocol}")
        except OSError as e:
            self._close_sock()
            raise SsdpTransportError(f"Unable to create {self}: {e}") from e
        except BaseException:
            self._close_sock()
            raise

    def send(self, data: bytes, dst_address: Optional[str]=None, dst_port: Optional[int]=None) -> List[Exception]:
        addr = (
            self.multicast_address if dst_address is None else dst_address,
            self.multicast_port if dst_port is None else dst_port,
          )
        if self.transport is None or self._destroyed:
            return [SsdpTransportError(f"Cannot send to {addr[0]}:{addr[1]}; {self} is not open")]
        logger.debug(f"Sending datagram via {self} to {addr}: {data!r}")
        try:
            self.transport.sendto(data, addr)
        except Exception as e:
            logger.debug(f"Send to {addr} failed: {e}")
            return [e]
        self._recently_sent.append(data)
        return []

    def is_from_self(self, data: bytes, addr: HostAndPort) -> bool:
        """True if a received datagram is one this transport recently sent, looped back."""
        if addr[1] != self.multicast_port:
            return False
        if addr[0] != self.unicast_addr[0] and not addr[0].startswith('127.'):
            return False
        return data in self._recently_sent

    def datagram_received(self, data: bytes, addr: HostAndPort) -> None:
        datagram = InboundDatagram(data, self.unicast_addr, addr, from_self=self.is_from_self(data, addr))
        logger.debug(f"Received {datagram}")
        self.deliver_datagram(datagram)

    def error_received(self, exc: Exception) -> None:
        logger.info(f"Error received from {self}: {exc}")
        self.deliver_error(exc)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        logger.debug(f"Connection to transport lost on {self}, exc={exc}")
        self.transport = None
        if exc is not None:
            self.deliver_error(exc)

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def destroy(self) -> None:
        if self._destroyed:
            return
        self._destroyed = True
        if self.transport is not None:
            try:
                self.transport.close()
            except Exception as e:
                logger.error(f"Error closing transport on {self}: {e}")
            self.transport = None
        else:
            self._close_sock()

    def _close_sock(self) -> None:
        if self.sock is not None:
            try:
                self.sock.close()
            except OSError as e:
                logger.error(f"Error closing socket on {self}: {e}")
            self.sock = None
