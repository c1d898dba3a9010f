# -*- test-case-name: chatyuk.test.test_subprotocols -*-
#
# Copyright (c) Chatyuk developers.
# See LICENSE for details.

"""
XMPP subprotocol support.
"""

from zope.interface import implementer

from chatyuk.ichatyuk import IXMPPHandler, IXMPPHandlerCollection

@implementer(IXMPPHandler)
class XMPPHandler(object):
    """
    XMPP protocol handler.

    Classes derived from this class implement (part of) one or more XMPP
    extension protocols, and are referred to as a subprotocol implementation.
    """

    parent = None
    xmlstream = None

    def setHandlerParent(self, parent):
        self.parent = parent
        self.parent.addHandler(self)


    def disownHandlerParent(self, parent):
        self.parent.removeHandler(self)
        self.parent = None


    def makeConnection(self, xs):
        self.xmlstream = xs
        self.connectionMade()


    def connectionMade(self):
        """
        Called after a session has been requested.

        Can be overridden to perform work before stream initialization.
        """


    def connectionInitialized(self):
        """
        The session has been initialized.

        Can be overridden to perform work after stream initialization, e.g.
        to set up observers and start exchanging XML stanzas.
        """


    def connectionLost(self, reason):
        """
        The session has been terminated.

        @param reason: The reason for the disconnection, or C{None}.
        @type reason: L{failure.Failure}
        """
        self.xmlstream = None


    def send(self, obj):
        """
        Send data over the managed connection.

        @note: The connection maintains a queue for data sent using this
               method when there is no initialized session. This data is
               then sent as soon as the session has been established and
               initialized. If this queueing is not desired, use C{send} on
               C{self.xmlstream}.

        @param obj: data to be sent. This is usually an object providing
                    L{domish.IElement}.
        """
        self.parent.send(obj)



@implementer(IXMPPHandlerCollection)
class XMPPHandlerCollection(object):
    """
    Collection of XMPP subprotocol handlers.

    This allows for grouping of subprotocol handlers, but is not an
    L{XMPPHandler} itself, so this is not recursive.

    @ivar xmlstream: Event dispatcher of the current session.
    @type xmlstream: L{EventDispatcher<twisted.words.xish.utility.EventDispatcher>}
    @ivar handlers: List of protocol handlers.
    @type handlers: L{list} of objects providing
                      L{IXMPPHandler}
    """

    def __init__(self):
        self.handlers = []
        self.xmlstream = None
        self._initialized = False


    def __iter__(self):
        """
        Act as a container for handlers.
        """
        return iter(self.handlers)


    def addHandler(self, handler):
        """
        Add protocol handler.

        Protocol handlers are expected to provide L{IXMPPHandler}.

        When a session has already been initialized, the handler's
        C{connectionInitialized} will be called to get it up to speed.
        """
        self.handlers.append(handler)

        # get protocol handler up to speed when a session has already
        # been established
        if self.xmlstream is not None and self._initialized:
            handler.makeConnection(self.xmlstream)
            handler.connectionInitialized()


    def removeHandler(self, handler):
        """
        Remove protocol handler.
        """
        self.handlers.remove(handler)
