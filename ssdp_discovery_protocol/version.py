# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Version of the ssdp_discovery_protocol package. Keep in sync with pyproject.toml."""

__version__ = "1.0.0"

__all__ = [ '__version__' ]
