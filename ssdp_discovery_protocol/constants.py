# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Constants used by this package"""

SSDP_MULTICAST_ADDRESS = "239.255.255.250"
"""The multicast address used by SSDP for UDP multicast."""

SSDP_PORT = 1900
"""The port number used by SSDP for UDP multicast."""

SSDP_HOST_HEADER = f"{SSDP_MULTICAST_ADDRESS}:{SSDP_PORT}"
"""The value of the HOST header in multicast SSDP messages."""

DEFAULT_TTL = 2
"""The default multicast time-to-live (hop count) for outgoing datagrams."""

DEFAULT_INTERVAL = 60.0
"""The default interval (in seconds) between periodic advertisements or searches."""

DEFAULT_SEARCH_WAIT_TIME = 3
"""The default MX value (in seconds) placed in outgoing M-SEARCH requests."""

MIN_SEARCH_WAIT_TIME = 1
MAX_SEARCH_WAIT_TIME = 5
"""The range of MX values permitted in outgoing M-SEARCH requests."""

SSDP_DISCOVER = '"ssdp:discover"'
"""The required value of the MAN header in a search request, including the quotes."""

SSDP_ALL = "ssdp:all"
"""The search target that matches every service."""

UPNP_ROOTDEVICE = "upnp:rootdevice"
"""The well-known target representing the advertising device itself."""

NTS_ALIVE = "ssdp:alive"
NTS_UPDATE = "ssdp:update"
NTS_BYEBYE = "ssdp:byebye"
"""Notification sub-types carried in the NTS header."""
