#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Exceptions defined by this package"""

from __future__ import annotations

from typing import Optional, Union

class SsdpError(Exception):
  """Base class for all error exceptions defined by this package."""
  pass

class SsdpDecodeError(SsdpError):
  """An inbound datagram could not be decoded as the message kind its first line announced."""

  kind: str
  """The message kind that decoding was attempted as; one of "M-SEARCH", "NOTIFY", "REPLY"."""

  payload: Union[str, bytes]
  """The raw payload that could not be decoded."""

  def __init__(self, kind: str, payload: Union[str, bytes], cause: Optional[BaseException]=None):
    if cause is None:
      cause_msg = 'Unknown error'
    else:
      cause_msg = str(cause) or type(cause).__name__
    if isinstance(payload, bytes):
      text = payload.decode('utf-8', errors='replace')
    else:
      text = payload
    super().__init__(f"[{kind}] {cause_msg}:\n{text}")
    self.kind = kind
    self.payload = payload
    self.__cause__ = cause

class SsdpUnknownTargetError(SsdpError):
  """A valid search request asked for a target that this advertiser does not serve."""

  target: str

  def __init__(self, target: str):
    super().__init__(f"Unknown target or service: {target}")
    self.target = target

class SsdpTransportError(SsdpError):
  """The multicast transport could not be created, or was used after it was destroyed."""
  pass
