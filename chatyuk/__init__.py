# Copyright (c) Chatyuk developers.
# See LICENSE for details

"""
Chatyuk.

Thin XMPP multi-user chat client over BOSH, built on Twisted.
"""

from chatyuk._version import __version__ as _incremental_version

__version__ = _incremental_version.public()

__all__ = ["__version__"]
