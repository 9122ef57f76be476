"""Tests for the ssdp command-line tool."""

import json

import pytest

from ssdp_discovery_protocol import __version__, ErrorEvent, DiscoverEvent, SsdpReply
from ssdp_discovery_protocol.__main__ import arun, event_summary, CommandHandler, CmdExitError
from ssdp_discovery_protocol.util import parse_header_assignment

from conftest import REQUESTER_ADDR, LOCAL_ADDR


async def test_version(capsys):
    assert await arun(["version"]) == 0
    assert capsys.readouterr().out.strip() == __version__


async def test_bare_command_fails(capsys):
    assert await arun([]) == 1
    assert "A command is required" in capsys.readouterr().err


async def test_bad_arguments(capsys):
    assert await arun(["browse", "--wait-time", "9"]) == 2
    assert await arun(["no-such-command"]) == 2


def test_bad_header_assignment():
    handler = CommandHandler()
    with pytest.raises(CmdExitError) as exc_info:
        handler._parse_arg_headers(["LOCATION"])
    assert exc_info.value.exit_code == 1


def test_header_assignments():
    headers = CommandHandler()._parse_arg_headers(["location=http://192.168.1.10/desc.xml", "server = test/1.0"])
    assert headers["LOCATION"] == "http://192.168.1.10/desc.xml"
    assert headers["SERVER"] == "test/1.0"
    assert parse_header_assignment("X-EMPTY=") == ("X-EMPTY", "")


def test_event_summary_for_service_event():
    reply = SsdpReply({"ST": "urn:test:1", "USN": "uuid:x::urn:test:1"})
    summary = event_summary(DiscoverEvent("urn:test:1", reply, REQUESTER_ADDR, LOCAL_ADDR))
    assert summary["kind"] == "discover"
    assert summary["service"] == "urn:test:1"
    assert summary["src_addr"] == "192.168.1.50:50000"
    assert summary["headers"] == {"ST": "urn:test:1", "USN": "uuid:x::urn:test:1"}
    json.dumps(summary)


def test_event_summary_for_error_event():
    summary = event_summary(ErrorEvent(OSError("Network is unreachable")))
    assert summary["kind"] == "error"
    assert summary["error_type"] == "OSError"
    assert summary["error"] == "Network is unreachable"


@pytest.mark.parametrize("assignment", ["BAD NAME=x", "SERVER=x/1.0\r\nNTS: ssdp:byebye"])
def test_invalid_header_rejected(assignment):
    with pytest.raises(CmdExitError) as exc_info:
        CommandHandler()._parse_arg_headers([assignment])
    assert exc_info.value.exit_code == 1
