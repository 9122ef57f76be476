#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
HeaderSet -- the header collection carried by every SSDP message.

A HeaderSet is a case-insensitive mapping from header name to a single string value.
Unlike a plain CaseInsensitiveDict, names are normalized on write: they are trimmed
and converted to upper case, which is the form in which they are emitted on the wire.
Values are converted to str and trimmed. Writing an existing name overwrites it.
Names containing a colon, whitespace or control characters, and values containing
CR, LF or NUL, are rejected with ValueError so that one header can never be read
back as several.

Iteration follows insertion order; use sorted_items() for the deterministic,
lexicographically ordered view used when serializing.
"""

from __future__ import annotations

import re

from requests.structures import CaseInsensitiveDict

from .internal_types import *

_INVALID_NAME_CHARS = re.compile(r'[\s:\x00-\x1f\x7f]')
_INVALID_VALUE_CHARS = re.compile(r'[\r\n\x00]')

def normalize_header_name(name: str) -> str:
    """Returns the canonical (trimmed, upper case) form of a header name.

    Raises ValueError if the result is empty or contains a colon, whitespace or a control character.
    """
    normalized = name.strip().upper()
    if normalized == '' or _INVALID_NAME_CHARS.search(normalized) is not None:
        raise ValueError(f"Invalid header name: {name!r}")
    return normalized

def check_header_value(name: str, value: str) -> str:
    """Returns a trimmed header value. Raises ValueError if it contains CR, LF or NUL."""
    if _INVALID_VALUE_CHARS.search(value) is not None:
        raise ValueError(f"Header {name!r} value must not contain CR, LF or NUL: {value!r}")
    return value.strip()

class HeaderSet(CaseInsensitiveDict):
    """A case-insensitive str->str mapping with upper-case normalized keys."""

    def __init__(self, data: Optional[HeadersInit]=None, **kwargs: HeaderValue):
        super().__init__(data, **kwargs)

    def __setitem__(self, key: str, value: HeaderValue) -> None:
        if not isinstance(value, str):
            if not isinstance(value, (int, float)) or isinstance(value, bool):
                raise TypeError(f"Header {key!r} value must be str, int or float, not {type(value).__name__}")
            value = str(value)
        name = normalize_header_name(key)
        super().__setitem__(name, check_header_value(name, value))

    def __getitem__(self, key: str) -> str:
        return super().__getitem__(key.strip())

    def __delitem__(self, key: str) -> None:
        super().__delitem__(key.strip())

    def sorted_items(self) -> List[Tuple[str, str]]:
        """Returns (name, value) pairs sorted by name."""
        return sorted(self.items())

    def copy(self) -> HeaderSet:
        return HeaderSet(self.items())

    def __repr__(self) -> str:
        return f"HeaderSet({dict(self.sorted_items())})"
