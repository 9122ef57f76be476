#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Abstraction of the three SSDP message kinds: M-SEARCH requests, NOTIFY announcements,
and unicast search replies.

Wire format (UTF-8 text, CRLF line endings):

    <request or status line>
    KEY: value          (zero or more, names upper case, sorted by name)
    <empty line>

Decoding is lenient: LF line endings are accepted, blank lines and lines without a
colon are ignored, and no header is required. Checking for required headers is left
to the code that consumes the message.
"""

from __future__ import annotations

from abc import ABC

from .internal_types import *
from .pkg_logging import logger
from .constants import NTS_ALIVE, NTS_UPDATE, NTS_BYEBYE
from .exceptions import SsdpDecodeError
from .headers import HeaderSet
from .util import split_header_line

METHOD_SEARCH = 'm-search'
METHOD_NOTIFY = 'notify'
METHOD_REPLY = 'reply'

SEARCH_STATEMENT = 'M-SEARCH * HTTP/1.1'
NOTIFY_STATEMENT = 'NOTIFY * HTTP/1.1'
REPLY_STATEMENT = 'HTTP/1.1 200 OK'

_SsdpMessageT = TypeVar('_SsdpMessageT', bound='SsdpMessage')

class SsdpMessage(ABC):
    """Base class for SSDP messages.

    A message is built once, either by decoding a received datagram or by a sender
    filling in headers, and is not reused across sends.
    """

    kind: ClassVar[str] = ''
    """The label used for this message kind in decode errors; e.g., "NOTIFY"."""

    statement_line: ClassVar[str] = ''
    """The request or status line that begins the serialized message."""

    method: str
    """One of 'm-search', 'notify', or 'reply'."""

    is_reply: bool
    """True if this message is a reply to a search request."""

    _headers: HeaderSet

    def __init__(self, method: str, is_reply: bool=False, headers: Optional[HeadersInit]=None):
        self.method = method
        self.is_reply = is_reply
        self._headers = HeaderSet(headers)

    @property
    def headers(self) -> HeaderSet:
        """The message headers."""
        return self._headers

    @property
    def is_alive(self) -> bool:
        return self.get_header('NTS') == NTS_ALIVE

    @property
    def is_update(self) -> bool:
        return self.get_header('NTS') == NTS_UPDATE

    @property
    def is_byebye(self) -> bool:
        return self.get_header('NTS') == NTS_BYEBYE

    def get_header(self, name: str) -> Optional[str]:
        """Returns the value of a header, or None if it is not present. `name` is case-insensitive."""
        return self._headers.get(name)

    def set_header(self, name: str, value: HeaderValue) -> None:
        """Sets a header, replacing any previous value. `name` is case-insensitive."""
        self._headers[name] = value

    def has_header(self, name: str) -> bool:
        return name in self._headers

    def delete_header(self, name: str) -> None:
        """Deletes a header if it exists. If it does not, this is a no-op."""
        self._headers.pop(name, None)

    def clear_headers(self) -> None:
        self._headers.clear()

    def update_headers(self, headers: Optional[HeadersInit]) -> None:
        """Copies headers into this message, replacing existing values of the same name."""
        if headers is not None:
            self._headers.update(headers)

    def to_text(self) -> str:
        """Serializes the message. Headers are emitted in sorted order so the result is deterministic."""
        lines = [self.statement_line]
        for name, value in self._headers.sorted_items():
            lines.append(f"{name}: {value}")
        lines.append('')
        lines.append('')
        return '\r\n'.join(lines)

    def encode(self) -> bytes:
        """Serializes the message to the raw datagram contents."""
        return self.to_text().encode('utf-8')

    def __str__(self) -> str:
        return self.to_text()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._headers!r})"

    def __eq__(self, other: Any) -> bool:
        if type(other) is not type(self):
            return False
        return self._headers == other._headers

    @classmethod
    def decode_headers(cls, payload: Union[str, bytes]) -> HeaderSet:
        """Parses the headers of a raw message. The first (request/status) line is discarded.

        Raises SsdpDecodeError if the payload cannot be treated as UTF-8 text.
        """
        try:
            if isinstance(payload, bytes):
                text = payload.decode('utf-8')
            elif isinstance(payload, str):
                text = payload
            else:
                raise TypeError(f"Expected str or bytes payload, got {type(payload).__name__}")
        except (UnicodeDecodeError, TypeError) as e:
            raise SsdpDecodeError(cls.kind, payload, e) from e

        headers = HeaderSet()
        for line in text.split('\n')[1:]:
            line = line.strip()
            if line == '':
                continue
            name_value = split_header_line(line)
            if name_value is None:
                logger.debug(f"Ignoring malformed {cls.kind} header line: {line!r}")
                continue
            name, value = name_value
            try:
                headers[name] = value
            except ValueError as e:
                logger.debug(f"Ignoring invalid {cls.kind} header line: {line!r}: {e}")
        return headers

class SsdpSearch(SsdpMessage):
    """An M-SEARCH request.

    `host` and `port` are the address the search is sent to. For a received search they
    are the requester's address, which is where replies must be sent.
    """

    kind = 'M-SEARCH'
    statement_line = SEARCH_STATEMENT

    host: str
    port: int

    def __init__(self, host: str, port: int, headers: Optional[HeadersInit]=None):
        super().__init__(METHOD_SEARCH, is_reply=False, headers=headers)
        self.host = host
        self.port = port

    @classmethod
    def decode(cls, payload: Union[str, bytes], host: str, port: int) -> SsdpSearch:
        message = cls(host, port)
        message._headers = cls.decode_headers(payload)
        return message

    def __repr__(self) -> str:
        return f"SsdpSearch({self.host}:{self.port}, {self._headers!r})"

    def __eq__(self, other: Any) -> bool:
        return super().__eq__(other) and self.host == other.host and self.port == other.port

class SsdpNotification(SsdpMessage):
    """A NOTIFY announcement, classified by its NT and NTS headers."""

    kind = 'NOTIFY'
    statement_line = NOTIFY_STATEMENT

    def __init__(self, headers: Optional[HeadersInit]=None):
        super().__init__(METHOD_NOTIFY, is_reply=False, headers=headers)

    @classmethod
    def decode(cls, payload: Union[str, bytes]) -> SsdpNotification:
        message = cls()
        message._headers = cls.decode_headers(payload)
        return message

class SsdpReply(SsdpMessage):
    """A unicast reply to an M-SEARCH request, classified by its ST header."""

    kind = 'REPLY'
    statement_line = REPLY_STATEMENT

    def __init__(self, headers: Optional[HeadersInit]=None):
        super().__init__(METHOD_REPLY, is_reply=True, headers=headers)

    @classmethod
    def decode(cls, payload: Union[str, bytes]) -> SsdpReply:
        message = cls()
        message._headers = cls.decode_headers(payload)
        return message

def decode_message(payload: Union[str, bytes], remote_addr: HostAndPort) -> SsdpMessage:
    """Decodes a received datagram into the message kind named by its first line.

    Text beginning with "M-SEARCH" is a search, text beginning with "NOTIFY" is a
    notification, and anything else is treated as a reply. `remote_addr` is the sender's
    address, recorded on searches so that replies can be addressed.

    Raises SsdpDecodeError, tagged with the attempted kind, if decoding fails.
    """
    if isinstance(payload, bytes):
        is_search = payload.startswith(b'M-SEARCH')
        is_notify = payload.startswith(b'NOTIFY')
    elif isinstance(payload, str):
        is_search = payload.startswith('M-SEARCH')
        is_notify = payload.startswith('NOTIFY')
    else:
        raise SsdpDecodeError(SsdpReply.kind, repr(payload), TypeError(f"Expected str or bytes payload, got {type(payload).__name__}"))

    if is_search:
        return SsdpSearch.decode(payload, remote_addr[0], remote_addr[1])
    if is_notify:
        return SsdpNotification.decode(payload)
    return SsdpReply.decode(payload)
