# Copyright (c) Chatyuk developers.
# See LICENSE for details.

from twisted.application.service import ServiceMaker

ChatyukClient = ServiceMaker(
    "Chatyuk chat client",
    "chatyuk.tap",
    "An XMPP multi-user chat client over BOSH",
    "chatyuk")
