"""Shared fixtures: an in-memory transport and network for driving endpoints without sockets."""

from __future__ import annotations

import asyncio
from typing import List, Optional, Tuple

import pytest

from ssdp_discovery_protocol import (
    SsdpTransport,
    InboundDatagram,
    SsdpEndpoint,
    SsdpMessage,
    SsdpEvent,
    SsdpEventSource,
    decode_message,
)

TEST_UUID = "2f402f80-da50-11e1-9b23-00173ea60b0f"
REQUESTER_ADDR = ("192.168.1.50", 50000)
LOCAL_ADDR = ("192.168.1.10", 1900)


class FakeTransport(SsdpTransport):
    """Records sent datagrams and lets tests inject received ones."""

    def __init__(self, address: Tuple[str, int] = LOCAL_ADDR, network: Optional[FakeNetwork] = None):
        super().__init__()
        self.address = address
        self.network = network
        self.sent: List[Tuple[bytes, Tuple[str, int]]] = []
        self.send_errors: List[Exception] = []
        self._destroyed = False
        if network is not None:
            network.attach(self)

    def send(self, data, dst_address=None, dst_port=None):
        addr = (
            self.multicast_address if dst_address is None else dst_address,
            self.multicast_port if dst_port is None else dst_port,
        )
        self.sent.append((data, addr))
        if self.network is not None:
            self.network.route(self, data, addr)
        return list(self.send_errors)

    def destroy(self):
        self._destroyed = True
        if self.network is not None:
            self.network.detach(self)

    @property
    def destroyed(self):
        return self._destroyed

    def inject(self, data, remote=REQUESTER_ADDR, from_self=False):
        if isinstance(data, str):
            data = data.encode("utf-8")
        self.deliver_datagram(InboundDatagram(data, self.address, remote, from_self))

    def sent_messages(self) -> List[Tuple[SsdpMessage, Tuple[str, int]]]:
        return [(decode_message(data, addr), addr) for data, addr in self.sent]

    def sent_headers(self, header: str) -> List[Optional[str]]:
        return [message.get_header(header) for message, _ in self.sent_messages()]

    def clear(self):
        self.sent.clear()


class FakeNetwork:
    """Routes datagrams between FakeTransports on later loop iterations, like a real socket would."""

    def __init__(self):
        self.transports: List[FakeTransport] = []

    def attach(self, transport: FakeTransport):
        self.transports.append(transport)

    def detach(self, transport: FakeTransport):
        if transport in self.transports:
            self.transports.remove(transport)

    def route(self, sender: FakeTransport, data: bytes, addr: Tuple[str, int]):
        loop = asyncio.get_running_loop()
        is_multicast = addr == (sender.multicast_address, sender.multicast_port)
        for transport in list(self.transports):
            if transport is sender:
                continue
            if is_multicast or transport.address == addr:
                loop.call_soon(self._deliver, transport, data, sender.address)

    def _deliver(self, transport: FakeTransport, data: bytes, remote: Tuple[str, int]):
        if not transport.destroyed:
            transport.deliver_datagram(InboundDatagram(data, transport.address, remote, False))


class EventRecorder:
    """Collects every event emitted by a source."""

    def __init__(self, source: SsdpEventSource):
        self.events: List[SsdpEvent] = []
        source.add_event_handler(self.events.append)

    def of_kind(self, kind: str) -> List[SsdpEvent]:
        return [event for event in self.events if event.kind == kind]

    def kinds(self) -> List[str]:
        return [event.kind for event in self.events]


async def settle(iterations: int = 10) -> None:
    """Lets callbacks scheduled with call_soon run."""
    for _ in range(iterations):
        await asyncio.sleep(0)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def endpoint(transport) -> SsdpEndpoint:
    return SsdpEndpoint(transport)
