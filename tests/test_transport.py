"""Tests for MulticastTransport that do not open sockets."""

from ssdp_discovery_protocol import MulticastTransport, SsdpTransportError


def make_transport():
    return MulticastTransport(host="192.168.1.10", loopback=True)


def test_defaults():
    transport = MulticastTransport(host="192.168.1.10")
    assert transport.multicast_address == "239.255.255.250"
    assert transport.multicast_port == 1900
    assert transport.ttl == 2
    assert not transport.loopback
    assert transport.unicast_addr == ("192.168.1.10", 1900)


def test_empty_host_means_any_interface():
    assert MulticastTransport(host="").host is None


def test_send_before_start_returns_error():
    transport = make_transport()
    errors = transport.send(b"NOTIFY * HTTP/1.1\r\n\r\n")
    assert len(errors) == 1
    assert isinstance(errors[0], SsdpTransportError)


def test_received_datagrams_delivered_with_addressing():
    transport = make_transport()
    received = []
    transport.add_datagram_handler(received.append)
    transport.datagram_received(b"HTTP/1.1 200 OK\r\n\r\n", ("192.168.1.50", 50000))
    [datagram] = received
    assert datagram.remote == ("192.168.1.50", 50000)
    assert datagram.local == ("192.168.1.10", 1900)
    assert not datagram.from_self


def test_looped_back_datagram_is_from_self():
    transport = make_transport()
    data = b"NOTIFY * HTTP/1.1\r\nNT: urn:test:1\r\n\r\n"
    transport._recently_sent.append(data)
    assert transport.is_from_self(data, ("192.168.1.10", 1900))
    assert transport.is_from_self(data, ("127.0.0.1", 1900))
    assert not transport.is_from_self(data, ("192.168.1.11", 1900))
    assert not transport.is_from_self(data, ("192.168.1.10", 50000))
    assert not transport.is_from_self(b"other", ("192.168.1.10", 1900))


def test_errors_delivered_to_error_handlers():
    transport = make_transport()
    errors = []
    handler_id = transport.add_error_handler(errors.append)
    transport.error_received(ConnectionRefusedError("refused"))
    transport.remove_handler(handler_id)
    transport.error_received(ConnectionRefusedError("refused again"))
    assert len(errors) == 1


def test_destroy_is_idempotent():
    transport = make_transport()
    transport.destroy()
    transport.destroy()
    assert transport.destroyed
    assert transport.send(b"x")
