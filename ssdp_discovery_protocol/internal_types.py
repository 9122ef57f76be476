#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Type hints used internally by this package"""

from __future__ import annotations

from typing import (
    Dict, List, Optional, Union, Any, Set, Tuple, Type, TypeVar, Callable, ClassVar,
    Iterable, Iterator, Mapping, MutableMapping, Sequence, Deque,
    Awaitable, AsyncIterable, AsyncIterator, AsyncContextManager,
    TYPE_CHECKING,
)
from types import TracebackType
from typing_extensions import Self, TypeAlias

JsonableTypes = (str, int, float, bool, dict, list)
# A tuple of types to use for isinstance checking of JSON-serializable types. Excludes None. Useful for isinstance.

if TYPE_CHECKING:
    Jsonable: TypeAlias = Union[str, int, float, bool, None, Dict[str, 'Jsonable'], List['Jsonable']]
    """A Type hint for a simple JSON-serializable value; i.e., str, int, float, bool, None, Dict[str, Jsonable], List[Jsonable]"""
else:
    Jsonable = Union[str, int, float, bool, None, Dict[str, Any], List[Any]]
    """A Type hint for a simple JSON-serializable value; i.e., str, int, float, bool, None, Dict[str, Jsonable], List[Jsonable]"""

JsonableDict = Dict[str, Jsonable]
"""A type hint for a simple JSON-serializable dict; i.e., Dict[str, Jsonable]"""

HostAndPort = Tuple[str, int]
"""A type hint for an IP address/hostname and port number, as used by socket.sendto()"""

HeaderValue = Union[str, int, float]
"""A type hint for a header value as accepted on write. Values are always stored as str."""

HeadersInit = Union[Mapping[str, HeaderValue], Iterable[Tuple[str, HeaderValue]]]
"""A type hint for anything that can be used to initialize a HeaderSet."""
