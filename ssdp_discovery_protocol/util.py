#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Simple utility functions used by this package
"""

from __future__ import annotations

import netifaces
import socket
from ipaddress import IPv4Address, IPv6Address

from .internal_types import *

def split_header_line(line: str) -> Optional[Tuple[str, str]]:
    """Split a "Name: value" header line at the first colon.

    Both halves are trimmed. Returns None if the line has no colon or the name is empty.
    The value may be empty, and may itself contain colons (e.g., "HOST: 239.255.255.250:1900").
    """
    name, sep, value = line.partition(':')
    name = name.strip()
    if sep == '' or name == '':
        return None
    return (name, value.strip())

def format_host_and_port(addr: HostAndPort) -> str:
    """Formats a (host, port) tuple as "host:port"."""
    return f"{addr[0]}:{addr[1]}"

def parse_header_assignment(assignment: str) -> Tuple[str, str]:
    """Parses a "<name>=<value>" command-line header assignment.

    Raises ValueError if there is no '=' or the name is empty.
    """
    name, sep, value = assignment.partition('=')
    name = name.strip()
    if sep == '' or name == '':
        raise ValueError(f"Invalid header assignment (expected <name>=<value>): {assignment!r}")
    return (name, value)

def get_local_ip_addresses_and_interfaces(
        address_family: Union[socket.AddressFamily, int]=socket.AF_INET,
        include_loopback: bool=True
    ) -> List[Tuple[str, str]]:
    """Returns a list of Tuple[ip_address: str, interface_name: str] for the IP addresses of the local host
       in a requested address family. The result is sorted so that the preferred address for
       multicast traffic comes first:
           1. Addresses on the default gateway interface precede all other addresses.
           2. Non-loopback addresses precede loopback addresses.
           3. IPV4 addresses that begin with 172. follow other IPV4 addresses. This deprioritizes
              local docker network addresses.
    """
    result_with_priority: List[Tuple[int, str, str]] = []
    assert int(address_family) in (int(socket.AF_INET), int(socket.AF_INET6))
    is_ipv6 = int(address_family) == int(socket.AF_INET6)
    _, default_gateway_ifname = get_default_ip_gateway(address_family)
    netiface_family = netifaces.AF_INET6 if is_ipv6 else netifaces.AF_INET
    for ifname in netifaces.interfaces():
        ifinfo = netifaces.ifaddresses(ifname)
        for addrinfo in ifinfo.get(netiface_family, []):
            ip_str = addrinfo['addr']
            assert isinstance(ip_str, str)
            is_loopback = IPv6Address(ip_str.split('%', 1)[0]).is_loopback if is_ipv6 else IPv4Address(ip_str).is_loopback
            if is_loopback:
                if not include_loopback:
                    continue
                priority = 3
            elif ifname == default_gateway_ifname:
                priority = 0
            elif not is_ipv6 and ip_str.startswith('172.'):
                priority = 2
            else:
                priority = 1
            result_with_priority.append((priority, ip_str, ifname))
    return [ (ip, ifname) for _, ip, ifname in sorted(result_with_priority) ]

def get_local_ip_addresses(address_family: Union[socket.AddressFamily, int]=socket.AF_INET, include_loopback: bool=True) -> List[str]:
    """Returns the IP addresses of the local host in a requested address family, preferred address first.
       See get_local_ip_addresses_and_interfaces() for the ordering."""
    return [ ip for ip, _ in get_local_ip_addresses_and_interfaces(address_family, include_loopback=include_loopback) ]

def get_default_ip_gateway(address_family: Union[socket.AddressFamily, int]=socket.AF_INET) -> Tuple[Optional[str], Optional[str]]:
    """Returns the (gateway_ip_address, gateway_interface_name) for the default IP gateway in the
       requested family, or (None, None) if there is no default gateway in that family."""
    assert int(address_family) in (int(socket.AF_INET), int(socket.AF_INET6))
    netiface_family = netifaces.AF_INET if int(address_family) == int(socket.AF_INET) else netifaces.AF_INET6
    gws = netifaces.gateways()
    default_gateway_infos = gws.get('default', {})
    if netiface_family in default_gateway_infos:
        gw_ip, gw_interface_name = default_gateway_infos[netiface_family][:2]
        return (gw_ip, gw_interface_name)
    return (None, None)

def get_preferred_local_ip_address(address_family: Union[socket.AddressFamily, int]=socket.AF_INET) -> Optional[str]:
    """Returns the local address multicast traffic is most likely to leave from, or None if the
       host has no non-loopback address in the family."""
    addresses = get_local_ip_addresses(address_family, include_loopback=False)
    return addresses[0] if len(addresses) > 0 else None
