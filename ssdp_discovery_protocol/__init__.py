# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Package ssdp_discovery_protocol implements the Simple Service Discovery Protocol (SSDP).

SSDP is the UDP multicast discovery protocol defined by the UPnP Forum. Devices and services
announce themselves with NOTIFY messages sent to 239.255.255.250:1900, and clients look for
them with M-SEARCH requests sent to the same group, which are answered with unicast
"HTTP/1.1 200 OK" replies.

This package provides:

  * A codec for the three SSDP message kinds (SsdpSearch, SsdpNotification, SsdpReply)
  * SsdpAdvertiser, which publishes services and answers searches for them
  * SsdpBrowser, which searches for subscribed service types and reports their arrival and departure
  * MulticastTransport, an asyncio UDP multicast transport for both

Retrieval of UPnP device description documents is not provided.
"""

from .version import __version__

from .internal_types import Jsonable, JsonableDict, HostAndPort

from .exceptions import SsdpError, SsdpDecodeError, SsdpUnknownTargetError, SsdpTransportError

from .headers import HeaderSet
from .ssdp_message import SsdpMessage, SsdpSearch, SsdpNotification, SsdpReply, decode_message
from .events import (
    SsdpEvent,
    ErrorEvent,
    SearchReceived,
    NotificationReceived,
    ReplyReceived,
    SearchEvent,
    DiscoverEvent,
    WithdrawEvent,
    SsdpEventSource,
    SsdpEventSubscriber,
  )
from .timer import RepeatingTimer
from .transport import SsdpTransport, MulticastTransport, InboundDatagram
from .ssdp_endpoint import SsdpEndpoint
from .advertiser import SsdpAdvertiser
from .browser import SsdpBrowser
from .constants import (
    SSDP_MULTICAST_ADDRESS,
    SSDP_PORT,
    DEFAULT_TTL,
    DEFAULT_INTERVAL,
    DEFAULT_SEARCH_WAIT_TIME,
    SSDP_ALL,
    UPNP_ROOTDEVICE,
  )

__all__ = [
    '__version__',
    'Jsonable', 'JsonableDict', 'HostAndPort',
    'SsdpError', 'SsdpDecodeError', 'SsdpUnknownTargetError', 'SsdpTransportError',
    'HeaderSet',
    'SsdpMessage', 'SsdpSearch', 'SsdpNotification', 'SsdpReply', 'decode_message',
    'SsdpEvent', 'ErrorEvent', 'SearchReceived', 'NotificationReceived', 'ReplyReceived',
    'SearchEvent', 'DiscoverEvent', 'WithdrawEvent', 'SsdpEventSource', 'SsdpEventSubscriber',
    'RepeatingTimer',
    'SsdpTransport', 'MulticastTransport', 'InboundDatagram',
    'SsdpEndpoint',
    'SsdpAdvertiser',
    'SsdpBrowser',
    'SSDP_MULTICAST_ADDRESS', 'SSDP_PORT', 'DEFAULT_TTL', 'DEFAULT_INTERVAL',
    'DEFAULT_SEARCH_WAIT_TIME', 'SSDP_ALL', 'UPNP_ROOTDEVICE',
]
