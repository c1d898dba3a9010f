# Copyright (c) Chatyuk developers.
# See LICENSE for details.

"""
Unit test helpers.
"""

from twisted.internet import defer, task
from twisted.words.xish.utility import EventDispatcher

from chatyuk.bosh import BOSHConnection
from chatyuk.generic import parseXml
from chatyuk.subprotocols import XMPPHandlerCollection

class XmlStreamStub(object):
    """
    Stub for testing objects that communicate through XML Streams.

    Instances of this stub hold an object in L{xmlstream} that acts like a
    session dispatcher after initialization. Stanzas can be sent through it
    by calling its C{send} method with an object implementing
    L{IElement<twisted.words.xish.domish.IElement>} as its first argument.
    These appear in sequence in the L{output} instance variable of the stub.

    For the reverse direction, stanzas passed to L{send} of the stub, will be
    dispatched in the stubbed XmlStream as if it was received over the wire, so
    that registered observers will be called.

    @ivar xmlstream: Stubbed XML Stream.
    @type xmlstream: L{EventDispatcher}
    @ivar output: List of stanzas sent to the XML Stream.
    @type output: L{list}
    """

    def __init__(self):
        self.output = []
        self.xmlstream = EventDispatcher()
        self.xmlstream.send = self.output.append


    def send(self, obj):
        """
        Pass an element to the XML Stream as if received.

        @param obj: Element to be dispatched to C{self.xmlstream}.
        @type obj: object implementing
                   L{IElement<twisted.words.xish.domish.IElement>}.
        """
        self.xmlstream.dispatch(obj)



class FakeConnection(XMPPHandlerCollection):
    """
    Stand-in for L{BOSHConnection} with an initialized session.

    Handlers added to it are connected to an L{XmlStreamStub} right away.
    Calls to L{connect} and L{attach} are recorded, with their status
    callback, in L{connectCalls} and L{attachCalls}.
    """

    logTraffic = False

    def __init__(self, boshService, reactor=None):
        XMPPHandlerCollection.__init__(self)
        self.boshService = boshService
        self.stub = XmlStreamStub()
        self.xmlstream = self.stub.xmlstream
        self._initialized = True

        self.jid = None
        self.password = None
        self.sid = u'fakesid-123123'
        self.rid = 999
        self.callback = None

        self.connectCalls = []
        self.attachCalls = []
        self.resetCalls = 0
        self.disconnectCalls = 0


    def connect(self, jid, password, callback):
        self.jid = jid
        self.password = password
        self.callback = callback
        self.connectCalls.append((jid, password))


    def attach(self, jid, sid, rid, callback):
        self.jid = jid
        self.sid = sid
        self.rid = rid
        self.callback = callback
        self.attachCalls.append((jid, sid, rid))


    def send(self, obj):
        self.xmlstream.send(obj)


    def disconnect(self, reason=None):
        self.disconnectCalls += 1


    def reset(self):
        self.resetCalls += 1



class TestableBOSHConnection(BOSHConnection):
    """
    BOSH connection that records HTTP requests instead of making them.

    Every request is appended to L{sent} as a tuple of the parsed body and
    the deferred standing in for the response. Use L{respond} to answer the
    oldest outstanding request.
    """

    def __init__(self, boshService=u'http://example.org/http-bind',
                       reactor=None):
        if reactor is None:
            reactor = task.Clock()
        BOSHConnection.__init__(self, boshService, reactor=reactor)
        self.sent = []


    def _post(self, data):
        d = defer.Deferred()
        self.sent.append((parseXml(data), d))
        return d


    def outstanding(self):
        """
        Return the requests that were not yet answered.
        """
        return [(body, d) for body, d in self.sent if not d.called]


    def respond(self, xml=u"<body xmlns='http://jabber.org/protocol/httpbind'/>"):
        """
        Answer the oldest outstanding request.

        @return: The body of the request that was answered.
        """
        body, d = self.outstanding()[0]
        if not isinstance(xml, bytes):
            xml = xml.encode('utf-8')
        d.callback(xml)
        return body


    def fail(self, failure):
        """
        Fail the oldest outstanding request.
        """
        body, d = self.outstanding()[0]
        d.errback(failure)
        return body
