# -*- test-case-name: chatyuk.test.test_bosh -*-
#
# Copyright (c) Chatyuk developers.
# See LICENSE for details.

"""
XMPP client connections over BOSH.

BOSH, Bidirectional-streams Over Synchronous HTTP, carries an XMPP session
over a series of HTTP requests to a connection manager. The binding is
specified in U{XEP-0124<http://xmpp.org/extensions/xep-0124.html>} and
U{XEP-0206<http://xmpp.org/extensions/xep-0206.html>}.

Unlike a TCP connection, a BOSH session is identified by its session
identifier (C{sid}) and the request identifier (C{rid}) of the next request.
Knowing both, another connection object can take over the session with
L{BOSHConnection.attach}.
"""

import base64
import random
from io import BytesIO

from constantly import Values, ValueConstant
from zope.interface import implementer

from twisted.internet import defer
from twisted.python import log
from twisted.web import client
from twisted.web import error as weberror
from twisted.web.http_headers import Headers
from twisted.words.protocols.jabber import error, jid, sasl_mechanisms
from twisted.words.xish import domish, utility

from chatyuk import xmppim
from chatyuk.generic import NS_CLIENT, parseXml
from chatyuk.ichatyuk import IBOSHConnection
from chatyuk.subprotocols import XMPPHandlerCollection

NS_HTTPBIND = 'http://jabber.org/protocol/httpbind'
NS_XBOSH = 'urn:xmpp:xbosh'
NS_XML = 'http://www.w3.org/XML/1998/namespace'
NS_XMPP_SASL = 'urn:ietf:params:xml:ns:xmpp-sasl'
NS_XMPP_BIND = 'urn:ietf:params:xml:ns:xmpp-bind'
NS_XMPP_SESSION = 'urn:ietf:params:xml:ns:xmpp-session'

BOSH_VERSION = '1.6'
XMPP_VERSION = '1.0'

# HTTP status codes that end a session, and the matching conditions
FATAL_HTTP_CODES = {
    400: 'bad-request',
    403: 'policy-violation',
    404: 'item-not-found',
}

class Status(Values):
    """
    Connection status, as reported to the status callback.
    """
    ERROR = ValueConstant(0)
    CONNECTING = ValueConstant(1)
    CONNFAIL = ValueConstant(2)
    AUTHENTICATING = ValueConstant(3)
    AUTHFAIL = ValueConstant(4)
    CONNECTED = ValueConstant(5)
    DISCONNECTED = ValueConstant(6)
    DISCONNECTING = ValueConstant(7)
    ATTACHED = ValueConstant(8)



class BOSHStream(utility.EventDispatcher):
    """
    Event dispatcher for a single BOSH session.

    This takes the place of an XML stream for subprotocol handlers: stanzas
    received in the session are dispatched to observers added here, and
    C{send} passes stanzas to the connection right away. A new instance is
    created for every session, so that observers don't outlive it.
    """

    def __init__(self, connection):
        utility.EventDispatcher.__init__(self)
        self.connection = connection


    def send(self, obj):
        self.connection._sendData(obj)



class _PendingRequest(object):
    """
    An HTTP request in flight.

    @ivar rid: The request identifier of the wrapped body.
    @ivar data: The serialized body, kept to resend it after errors.
    @ivar deferred: The deferred of the current HTTP request.
    @ivar retry: Delayed call resending the body, if scheduled.
    """

    deferred = None
    retry = None

    def __init__(self, rid, data):
        self.rid = rid
        self.data = data


    def cancel(self):
        if self.retry is not None and self.retry.active():
            self.retry.cancel()
        if self.deferred is not None:
            self.deferred.cancel()



@implementer(IBOSHConnection)
class BOSHConnection(XMPPHandlerCollection):
    """
    XMPP client connection over BOSH.

    Subprotocol handlers, like L{chatyuk.muc.MUCClient}, are added with
    L{addHandler}. When a session is requested, handlers get a
    L{BOSHStream} passed to C{makeConnection}. Their C{connectionInitialized}
    is called when the session is ready for exchanging stanzas, right before
    the status callback is invoked with L{Status.CONNECTED} or
    L{Status.ATTACHED}.

    @ivar boshService: URL of the BOSH connection manager.
    @type boshService: C{unicode}
    @ivar jid: The JID of this connection. After resource binding, this is
        the full JID assigned by the server.
    @type jid: L{jid.JID}
    @ivar sid: Session identifier, or C{None} if there is no session.
    @type sid: C{unicode}
    @ivar rid: Request identifier of the next request.
    @type rid: C{int}
    @ivar status: The last reported status, or C{None}.
    @type status: L{Status}
    @ivar wait: Longest time, in seconds, the connection manager may hold a
        request. Updated from the session creation response.
    @ivar hold: Number of requests the connection manager may hold.
    @ivar requests: Maximum number of simultaneous requests.
    @ivar maxRetries: Number of consecutive failed requests tolerated before
        the connection is considered lost.
    @ivar retryDelay: Seconds to wait before resending a failed request.
    @ivar logTraffic: if true, log all traffic.
    @type logTraffic: L{bool}
    """

    logTraffic = False

    wait = 60
    hold = 1
    requests = 2
    maxRetries = 5
    retryDelay = 1
    timeoutMargin = 10
    lang = 'en'

    def __init__(self, boshService, reactor=None, agent=None):
        XMPPHandlerCollection.__init__(self)

        if reactor is None:
            from twisted.internet import reactor
        self._reactor = reactor
        self.agent = agent

        self.boshService = boshService
        self.jid = None
        self.password = None
        self.status = None
        self._callback = None
        self._resetState()


    def _resetState(self):
        self.sid = None
        self.rid = None
        self.xmlstream = None
        self._initialized = False
        self._terminating = False
        self._data = []
        self._packetQueue = []
        self._pending = []
        self._errors = 0


    def _changeStatus(self, status, condition=None):
        self.status = status
        if self._callback is not None:
            self._callback(status, condition)


    def _startSession(self):
        """
        Set up a new event dispatcher and hand it to the handlers.
        """
        self.xmlstream = BOSHStream(self)
        for e in self:
            e.makeConnection(self.xmlstream)


    def _initialize(self, status):
        """
        The session is ready for exchanging stanzas.
        """
        self._initialized = True

        for e in self:
            e.connectionInitialized()

        # Flush all pending packets
        for p in self._packetQueue:
            self._data.append(p)
        self._packetQueue = []

        self._changeStatus(status)
        self._pump()


    def connect(self, jid, password, callback):
        """
        Create a new session and log in.

        When C{jid} has no user part, C{ANONYMOUS} authentication is used.
        Otherwise, the C{PLAIN} mechanism is used with the given password.

        @param jid: The JID to log in as.
        @type jid: L{jid.JID}
        @param password: The password.
        @type password: C{unicode}
        @param callback: Called with C{(status, condition)} on status changes.
        """
        if self.xmlstream is not None:
            self.reset()

        self.jid = jid
        self.password = password
        self._callback = callback
        self.rid = random.randint(0, 4294967295)

        self._startSession()
        self.xmlstream.addOnetimeObserver('/features', self._onFeatures)
        self._changeStatus(Status.CONNECTING)

        body = self._buildBody()
        body['to'] = jid.host
        body[(NS_XML, 'lang')] = self.lang
        body['wait'] = str(self.wait)
        body['hold'] = str(self.hold)
        body['content'] = 'text/xml; charset=utf-8'
        body['ver'] = BOSH_VERSION
        body[(NS_XBOSH, 'version')] = XMPP_VERSION
        self._sendBody(body)


    def attach(self, jid, sid, rid, callback):
        """
        Attach to an existing session.

        No request is needed to take over a session: the status callback is
        invoked with L{Status.ATTACHED} right away. If the connection manager
        doesn't know the session, the next response will report
        L{Status.CONNFAIL}, followed by L{Status.DISCONNECTED}.

        @param sid: The session identifier.
        @type sid: C{unicode}
        @param rid: The request identifier of the next request.
        @type rid: C{int} or C{unicode}
        """
        if self.xmlstream is not None:
            self.reset()

        self.jid = jid
        self.sid = sid
        self.rid = int(rid)
        self._callback = callback

        self._startSession()
        self._initialize(Status.ATTACHED)


    def send(self, obj):
        """
        Send a stanza in the session.

        When the session is not yet initialized, the stanza is queued and
        sent out when it is.

        @param obj: The stanza to be sent.
        @type obj: L{domish.Element}
        """
        if self._initialized:
            self._sendData(obj)
        else:
            self._packetQueue.append(obj)


    def disconnect(self, reason=None):
        """
        Terminate the session.

        Sends unavailable presence, along with any queued stanzas, in a
        terminating request. The status callback is invoked with
        L{Status.DISCONNECTING} and, upon response, L{Status.DISCONNECTED}.

        While the session is still being created, there is nothing to
        terminate yet: the session creation request is abandoned and
        L{Status.DISCONNECTED} is reported right away.

        @param reason: Optional reason passed as condition with
            L{Status.DISCONNECTING}.
        """
        if self._terminating:
            return

        if self.sid is None:
            if self.xmlstream is not None:
                self._changeStatus(Status.DISCONNECTING, reason)
                self._disconnected()
            return

        self._changeStatus(Status.DISCONNECTING, reason)

        elements = self._data
        self._data = []
        if self._initialized:
            presence = xmppim.Presence(available=False)
            elements.append(presence.toElement())

        body = self._buildBody(elements)
        body['type'] = 'terminate'
        self._terminating = True
        self._sendBody(body)


    def reset(self):
        """
        Drop all session state.

        Outstanding requests are cancelled, and no status changes are
        reported. Handlers are notified of the lost session.
        """
        hadSession = self.xmlstream is not None

        self._abortRequests()
        self._resetState()
        self.jid = None
        self.password = None
        self.status = None
        self._callback = None

        if hadSession:
            for e in self:
                e.connectionLost(None)


    def _buildBody(self, elements=()):
        """
        Create a body element wrapping C{elements}, using the next rid.
        """
        body = domish.Element((NS_HTTPBIND, 'body'),
                              localPrefixes={'xmpp': NS_XBOSH})
        body['rid'] = str(self.rid)
        self.rid += 1

        if self.sid is not None:
            body['sid'] = self.sid

        for element in elements:
            if element.uri is None:
                element.uri = element.defaultUri = NS_CLIENT
            body.addChild(element)

        return body


    def _sendData(self, obj):
        self._data.append(obj)
        self._pump()


    def _pump(self):
        """
        Send out queued data, or keep a request open for the server to
        respond with incoming stanzas.
        """
        if self.sid is None or self._terminating:
            return

        if (not self._pending or
            (self._data and len(self._pending) < self.requests)):
            body = self._buildBody(self._data)
            self._data = []
            self._sendBody(body)


    def _sendBody(self, body):
        data = body.toXml().encode('utf-8')
        request = _PendingRequest(int(body['rid']), data)
        self._pending.append(request)
        self._transmit(request)


    def _transmit(self, request):
        request.retry = None

        if self.logTraffic:
            log.msg("SEND: %r" % request.data)

        d = self._post(request.data)
        d.addTimeout(self.wait + self.timeoutMargin, self._reactor)
        request.deferred = d
        d.addCallbacks(self._onResponse, self._onRequestFailed,
                       callbackArgs=(request,), errbackArgs=(request,))
        d.addErrback(log.err, "Error processing BOSH response")


    def _post(self, data):
        """
        POST data to the connection manager.

        @return: Deferred that fires with the response body.
        """
        if self.agent is None:
            self.agent = client.Agent(self._reactor)

        headers = Headers({b'Content-Type': [b'text/xml; charset=utf-8']})
        d = self.agent.request(b'POST', self.boshService.encode('utf-8'),
                               headers,
                               client.FileBodyProducer(BytesIO(data)))

        def checkResponse(response):
            if response.code != 200:
                raise weberror.Error(response.code)
            return client.readBody(response)

        d.addCallback(checkResponse)
        return d


    def _onResponse(self, data, request):
        if request not in self._pending:
            # Aborted
            return

        self._pending.remove(request)
        self._errors = 0

        if self.logTraffic:
            log.msg("RECV: %r" % data)

        try:
            body = parseXml(data)
        except domish.ParserError:
            body = None

        if body is None or body.uri != NS_HTTPBIND or body.name != 'body':
            log.msg("Unexpected BOSH response: %r" % data)
            self._fail('bad-request')
            return

        self._onBody(body)
        self._pump()


    def _onRequestFailed(self, failure, request):
        if request not in self._pending:
            # Aborted
            return

        log.msg("BOSH request %d failed: %s" % (request.rid,
                                                 failure.getErrorMessage()))

        if self._terminating:
            self._disconnected()
            return

        if failure.check(weberror.Error):
            code = int(failure.value.status)
            if code in FATAL_HTTP_CODES:
                self._fail(FATAL_HTTP_CODES[code])
                return

        self._errors += 1
        if self._errors > self.maxRetries:
            self._fail('remote-connection-failed')
        else:
            request.retry = self._reactor.callLater(self.retryDelay,
                                                    self._transmit, request)


    def _onBody(self, body):
        if self._terminating:
            self._disconnected()
            return

        if body.getAttribute('type') == 'terminate':
            condition = body.getAttribute('condition')
            log.msg("BOSH session terminated by server: %s" % condition)
            self._fail(condition)
            return

        if self.sid is None:
            self._onSessionCreated(body)
            if self.sid is None:
                return

        for element in body.elements():
            self.xmlstream.dispatch(element)


    def _onSessionCreated(self, body):
        """
        Adopt the session parameters from the session creation response.
        """
        sid = body.getAttribute('sid')
        if not sid:
            self._fail('bad-request')
            return

        self.sid = sid
        for attribute in ('wait', 'hold', 'requests'):
            value = body.getAttribute(attribute)
            if value is not None:
                try:
                    setattr(self, attribute, int(value))
                except ValueError:
                    pass

        if body.getAttribute('requests') is None:
            self.requests = self.hold + 1


    def _onFeatures(self, features):
        """
        Stream features were received, start authentication.
        """
        mechanisms = set()
        for element in features.elements(NS_XMPP_SASL, 'mechanisms'):
            for mechanism in element.elements(NS_XMPP_SASL, 'mechanism'):
                mechanisms.add(str(mechanism))

        if self.jid.user is None and 'ANONYMOUS' in mechanisms:
            mechanism = sasl_mechanisms.Anonymous()
        elif self.jid.user is not None and 'PLAIN' in mechanisms:
            mechanism = sasl_mechanisms.Plain(None, self.jid.user,
                                              self.password or '')
        else:
            self._authFailed('invalid-mechanism')
            return

        self._changeStatus(Status.AUTHENTICATING)

        auth = domish.Element((NS_XMPP_SASL, 'auth'))
        auth['mechanism'] = mechanism.name
        response = mechanism.getInitialResponse()
        if response:
            auth.addContent(base64.b64encode(response).decode('ascii'))
        else:
            auth.addContent('=')

        self.xmlstream.addOnetimeObserver('/success', self._onAuthSuccess)
        self.xmlstream.addOnetimeObserver('/failure', self._onAuthFailure)
        self._sendData(auth)


    def _onAuthSuccess(self, element):
        self.xmlstream.removeObserver('/failure', self._onAuthFailure)
        self.xmlstream.addOnetimeObserver('/features', self._onRestartFeatures)

        body = self._buildBody(self._data)
        self._data = []
        body['to'] = self.jid.host
        body[(NS_XML, 'lang')] = self.lang
        body[(NS_XBOSH, 'restart')] = 'true'
        self._sendBody(body)


    def _onAuthFailure(self, element):
        self.xmlstream.removeObserver('/success', self._onAuthSuccess)

        condition = None
        for child in element.elements():
            condition = child.name
            break

        self._authFailed(condition)


    def _authFailed(self, condition):
        log.msg("Authentication failed: %s" % condition)
        self._changeStatus(Status.AUTHFAIL, condition)
        self.disconnect()


    def _onRestartFeatures(self, features):
        """
        Stream features after authentication were received, bind a resource.
        """
        self._sessionRequired = bool(list(
            features.elements(NS_XMPP_SESSION, 'session')))

        iq = domish.Element((NS_CLIENT, 'iq'))
        iq['type'] = 'set'
        iq.addUniqueId()
        bind = iq.addElement((NS_XMPP_BIND, 'bind'))
        if self.jid.resource:
            bind.addElement('resource', content=self.jid.resource)

        d = self._sendIQ(iq)
        d.addCallback(self._onBound)
        d.addErrback(self._onBindFailed)


    def _onBound(self, iq):
        for bind in iq.elements(NS_XMPP_BIND, 'bind'):
            for element in bind.elements(NS_XMPP_BIND, 'jid'):
                self.jid = jid.internJID(str(element))

        if self._sessionRequired:
            session = domish.Element((NS_CLIENT, 'iq'))
            session['type'] = 'set'
            session.addUniqueId()
            session.addElement((NS_XMPP_SESSION, 'session'))
            d = self._sendIQ(session)
            d.addCallback(lambda _: self._initialize(Status.CONNECTED))
            return d
        else:
            self._initialize(Status.CONNECTED)


    def _onBindFailed(self, failure):
        failure.trap(error.StanzaError)
        log.msg("Resource binding failed: %s" % failure.value.condition)
        self._changeStatus(Status.CONNFAIL, failure.value.condition)
        self.disconnect()


    def _sendIQ(self, iq):
        """
        Send an iq request in a session that is not yet initialized.

        @return: Deferred that fires with the result response, or errbacks
            with L{error.StanzaError} on an error response.
        """
        d = defer.Deferred()

        def onResponse(response):
            if response.getAttribute('type') == 'error':
                d.errback(error.exceptionFromStanza(response))
            else:
                d.callback(response)

        self.xmlstream.addOnetimeObserver('/iq[@id="%s"]' % iq['id'],
                                          onResponse)
        self._sendData(iq)
        return d


    def _fail(self, condition):
        self._changeStatus(Status.CONNFAIL, condition)
        self._disconnected()


    def _abortRequests(self):
        pending = self._pending
        self._pending = []
        for request in pending:
            request.cancel()


    def _disconnected(self):
        hadSession = self.xmlstream is not None

        self._abortRequests()
        self._resetState()

        if hadSession:
            for e in self:
                e.connectionLost(None)

        self._changeStatus(Status.DISCONNECTED)
