"""Tests for SsdpBrowser."""

import asyncio

import pytest

from ssdp_discovery_protocol import (
    SsdpBrowser,
    SsdpAdvertiser,
    SsdpEndpoint,
    SsdpSearch,
    SsdpDecodeError,
    DiscoverEvent,
    WithdrawEvent,
)
from ssdp_discovery_protocol.browser import normalize_search_target

from conftest import FakeTransport, FakeNetwork, EventRecorder, TEST_UUID, settle


def notify_payload(target, nts):
    return (
        "NOTIFY * HTTP/1.1\r\n"
        "HOST: 239.255.255.250:1900\r\n"
        f"NT: {target}\r\n"
        f"NTS: {nts}\r\n"
        f"USN: uuid:{TEST_UUID}::{target}\r\n"
        "\r\n"
    )


def reply_payload(target):
    return f"HTTP/1.1 200 OK\r\nST: {target}\r\nUSN: uuid:{TEST_UUID}::{target}\r\n\r\n"


class TestSearching:
    """Test outgoing M-SEARCH requests."""

    async def test_initial_searches(self, transport, endpoint):
        browser = SsdpBrowser(endpoint, services=["urn:test:1", "urn:test:2"])
        sent = transport.sent_messages()
        assert all(isinstance(message, SsdpSearch) for message, _ in sent)
        assert transport.sent_headers("ST") == ["urn:test:1", "urn:test:2"]
        assert transport.sent_headers("MAN") == ['"ssdp:discover"'] * 2
        assert transport.sent_headers("MX") == ["3", "3"]
        browser.destroy()

    async def test_single_service_string(self, transport, endpoint):
        browser = SsdpBrowser(endpoint, services="urn:test:1")
        assert browser.subscriptions == ["urn:test:1"]
        browser.destroy()

    async def test_wildcard_normalized(self, transport, endpoint):
        browser = SsdpBrowser(endpoint, services="*")
        assert browser.subscriptions == ["ssdp:all"]
        assert transport.sent_headers("ST") == ["ssdp:all"]
        assert browser.unsubscribe("*")
        assert browser.subscriptions == []
        browser.destroy()

    def test_normalize_search_target(self):
        assert normalize_search_target("*") == "ssdp:all"
        assert normalize_search_target("ssdp:all") == "ssdp:all"
        assert normalize_search_target("urn:test:1") == "urn:test:1"

    async def test_no_services_sends_nothing(self, transport, endpoint):
        browser = SsdpBrowser(endpoint)
        assert transport.sent == []
        browser.destroy()

    async def test_subscribe_searches_new_service_once(self, transport, endpoint):
        browser = SsdpBrowser(endpoint)
        browser.subscribe("urn:test:1")
        browser.subscribe("urn:test:1")
        assert transport.sent_headers("ST") == ["urn:test:1"]
        assert browser.subscriptions == ["urn:test:1"]
        browser.destroy()

    async def test_unsubscribe(self, transport, endpoint):
        browser = SsdpBrowser(endpoint, services="urn:test:1")
        assert browser.unsubscribe("urn:test:1")
        assert not browser.unsubscribe("urn:test:1")
        transport.clear()
        browser.search_now()
        assert transport.sent == []
        browser.destroy()

    async def test_search_now(self, transport, endpoint):
        browser = SsdpBrowser(endpoint, services=["urn:test:1", "urn:test:2"], wait_time=1)
        transport.clear()
        browser.search_now()
        assert transport.sent_headers("ST") == ["urn:test:1", "urn:test:2"]
        assert transport.sent_headers("MX") == ["1", "1"]
        browser.destroy()

    async def test_periodic_searches(self, transport, endpoint):
        browser = SsdpBrowser(endpoint, services="urn:test:1", interval=0.02)
        await asyncio.sleep(0.07)
        browser.destroy()
        await browser.wait_closed()
        assert len(transport.sent) >= 2

    @pytest.mark.parametrize("wait_time", [0, 6])
    async def test_invalid_wait_time(self, transport, endpoint, wait_time):
        with pytest.raises(ValueError):
            SsdpBrowser(endpoint, services="urn:test:1", wait_time=wait_time)
        assert transport.sent == []

    async def test_send_errors_emitted(self, transport, endpoint):
        browser = SsdpBrowser(endpoint)
        recorder = EventRecorder(browser)
        transport.send_errors = [OSError("Network is unreachable")]
        browser.subscribe("urn:test:1")
        assert recorder.kinds() == ["error"]
        browser.destroy()


class TestClassification:
    """Test classification of received replies and notifications."""

    async def test_reply_is_discover(self, transport, endpoint):
        browser = SsdpBrowser(endpoint, services="urn:test:1")
        recorder = EventRecorder(browser)
        transport.inject(reply_payload("urn:test:1"))
        [event] = recorder.events
        assert isinstance(event, DiscoverEvent)
        assert event.service == "urn:test:1"
        assert event.message.get_header("USN") == f"uuid:{TEST_UUID}::urn:test:1"
        browser.destroy()

    @pytest.mark.parametrize("nts, kind", [
        ("ssdp:alive", "discover"),
        ("ssdp:update", "discover"),
        ("ssdp:byebye", "withdraw"),
    ])
    async def test_notification_kinds(self, transport, endpoint, nts, kind):
        browser = SsdpBrowser(endpoint, services="urn:test:1")
        recorder = EventRecorder(browser)
        transport.inject(notify_payload("urn:test:1", nts))
        assert recorder.kinds() == [kind]
        browser.destroy()

    async def test_unknown_nts_dropped(self, transport, endpoint):
        browser = SsdpBrowser(endpoint, services="urn:test:1")
        recorder = EventRecorder(browser)
        transport.inject(notify_payload("urn:test:1", "ssdp:propchange"))
        transport.inject("NOTIFY * HTTP/1.1\r\nNT: urn:test:1\r\n\r\n")
        assert recorder.events == []
        browser.destroy()

    async def test_unsubscribed_targets_dropped(self, transport, endpoint):
        browser = SsdpBrowser(endpoint, services="urn:test:1")
        recorder = EventRecorder(browser)
        transport.inject(notify_payload("urn:test:2", "ssdp:alive"))
        transport.inject(reply_payload("urn:test:2"))
        transport.inject("HTTP/1.1 200 OK\r\nUSN: uuid:x\r\n\r\n")
        assert recorder.events == []
        browser.destroy()

    async def test_searches_ignored(self, transport, endpoint):
        browser = SsdpBrowser(endpoint, services="urn:test:1")
        recorder = EventRecorder(browser)
        transport.inject('M-SEARCH * HTTP/1.1\r\nMAN: "ssdp:discover"\r\nST: urn:test:1\r\n\r\n')
        assert recorder.events == []
        browser.destroy()

    async def test_ssdp_all_matches_only_literal_target(self, transport, endpoint):
        browser = SsdpBrowser(endpoint, services="ssdp:all")
        recorder = EventRecorder(browser)
        transport.inject(notify_payload("urn:test:1", "ssdp:alive"))
        assert recorder.events == []
        browser.destroy()

    async def test_decode_errors_forwarded(self, transport, endpoint):
        browser = SsdpBrowser(endpoint, services="urn:test:1")
        recorder = EventRecorder(browser)
        transport.inject(b"HTTP/1.1 200 OK\r\nST: \xff\r\n\r\n")
        assert recorder.kinds() == ["error"]
        assert isinstance(recorder.events[0].error, SsdpDecodeError)
        browser.destroy()

    async def test_withdraw_emitted_once(self, transport, endpoint):
        browser = SsdpBrowser(endpoint, services="urn:test:1")
        recorder = EventRecorder(browser)
        transport.inject(notify_payload("urn:test:1", "ssdp:byebye"))
        withdrawals = recorder.of_kind("withdraw")
        assert len(withdrawals) == 1
        assert isinstance(withdrawals[0], WithdrawEvent)
        assert withdrawals[0].service == "urn:test:1"
        browser.destroy()


class TestLifecycle:
    """Test destroy()."""

    async def test_destroy_sends_nothing(self, transport, endpoint):
        browser = SsdpBrowser(endpoint, services="urn:test:1")
        transport.clear()
        browser.destroy()
        assert transport.sent == []
        assert transport.destroyed
        assert not browser.timer.running

    async def test_destroy_is_idempotent_and_stops_events(self, transport, endpoint):
        browser = SsdpBrowser(endpoint, services="urn:test:1")
        recorder = EventRecorder(browser)
        browser.destroy()
        browser.destroy()
        browser.subscribe("urn:test:2")
        browser.search_now()
        transport.inject(reply_payload("urn:test:1"))
        assert recorder.events == []

    async def test_context_manager_destroys(self, transport, endpoint):
        async with SsdpBrowser(endpoint) as browser:
            assert not browser.destroyed
        assert browser.destroyed


class TestIntegration:
    """An advertiser and a browser talking over an in-memory network."""

    async def test_discover_and_withdraw(self):
        network = FakeNetwork()
        advertiser = SsdpAdvertiser(
            SsdpEndpoint(FakeTransport(("192.168.1.10", 1900), network)),
            uuid=TEST_UUID,
          )
        browser = SsdpBrowser(
            SsdpEndpoint(FakeTransport(("192.168.1.20", 1900), network)),
            services="urn:test:1",
            wait_time=1,
          )
        recorder = EventRecorder(browser)
        await settle()
        assert recorder.events == []

        advertiser.announce("urn:test:1", {"LOCATION": "http://192.168.1.10:8080/desc.xml"})
        await settle()
        [event] = recorder.events
        assert event.kind == "discover"
        assert event.message.get_header("LOCATION") == "http://192.168.1.10:8080/desc.xml"
        assert event.remote == ("192.168.1.10", 1900)

        browser.search_now()
        await settle()
        assert recorder.kinds() == ["discover", "discover"]
        assert recorder.events[1].message.is_reply

        assert advertiser.withdraw("urn:test:1")
        await settle()
        assert recorder.kinds() == ["discover", "discover", "withdraw"]

        advertiser.destroy()
        browser.destroy()
        await settle()
        assert recorder.kinds() == ["discover", "discover", "withdraw"]
