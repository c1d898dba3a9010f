# Copyright (c) Chatyuk developers.
# See LICENSE for details.

"""
Tests for L{chatyuk.comms}.
"""

from datetime import datetime
from dateutil.tz import tzutc

from twisted.internet import task
from twisted.trial import unittest
from twisted.words.protocols.jabber.jid import JID

from chatyuk import comms, muc
from chatyuk.bosh import Status
from chatyuk.cookies import MemoryCookieStore
from chatyuk.generic import parseXml
from chatyuk.test.helpers import FakeConnection, TestableBOSHConnection

class RecordingCookieStore(MemoryCookieStore):
    """
    Cookie store that records calls to L{setItem}.
    """

    def __init__(self):
        MemoryCookieStore.__init__(self)
        self.setCalls = []


    def setItem(self, key, value):
        self.setCalls.append((key, value))
        MemoryCookieStore.setItem(self, key, value)



class XmppCommsTestBase(unittest.TestCase):

    def setUp(self):
        self.clock = task.Clock()
        self.cookies = RecordingCookieStore()
        self.comms = comms.XmppComms(self.cookies,
                                     connectionFactory=FakeConnection,
                                     reactor=self.clock)
        self.connected = []
        self.disconnected = []
        self.messages = []
        self.comms.registerCallbacks(lambda: self.connected.append(None),
                                     lambda: self.disconnected.append(None),
                                     self.messages.append)


    def setPriorSession(self, rid=123):
        self.cookies.setItem('chatyuk_user', 'fakeuser')
        self.cookies.setItem('chatyuk_room', 'fakeroom')
        self.cookies.setItem('chatyuk_sid', 's123')
        self.cookies.setItem('chatyuk_rid', rid)
        del self.cookies.setCalls[:]



class InitTest(XmppCommsTestBase):
    """
    Tests for L{comms.XmppComms.init}.
    """

    def test_restoresSession(self):
        """
        Initializing tries to restore an existing session.
        """
        called = []
        self.comms.restoreSession = lambda: called.append(None)
        self.comms.init()
        self.assertEqual([None], called)


    def test_createsConnection(self):
        """
        Without a connection, one is created.
        """
        self.assertIdentical(None, self.comms.connection)
        self.comms.init()
        self.assertIsInstance(self.comms.connection, FakeConnection)
        self.assertIn(self.comms.muc, list(self.comms.connection))


    def test_boshService(self):
        """
        The connection is created for the configured BOSH service.
        """
        self.comms.init()
        self.assertEqual(self.comms.boshServiceUrl(),
                         self.comms.connection.boshService)


    def test_boshServiceDefault(self):
        """
        Without explicit BOSH service, it is derived from the chat server.
        """
        self.assertEqual('http://chatyuk.com:5280/http-bind',
                         self.comms.boshServiceUrl())


    def test_boshServiceExplicit(self):
        """
        An explicitly configured BOSH service is used as is.
        """
        self.patch(comms.XmppComms, 'BOSH_SERVICE',
                   'https://bosh.example.org/bind')
        self.assertEqual('https://bosh.example.org/bind',
                         self.comms.boshServiceUrl())


    def test_resetsExistingConnection(self):
        """
        An existing connection is reset, not replaced.
        """
        self.comms.init()
        connection = self.comms.connection
        self.comms.init()
        self.assertIdentical(connection, self.comms.connection)
        self.assertEqual(1, connection.resetCalls)


    def test_currentStatusNone(self):
        """
        The current status is C{None} until the connection reports one.
        """
        self.comms.init()
        self.comms.connect('fakeuser', 'fakepass', 'fakeroom')
        self.assertIdentical(None, self.comms.currentStatus)



class ServerConfigTest(unittest.TestCase):
    """
    Tests for L{comms.XmppComms.setServerConfig}.
    """

    def setUp(self):
        for name in ('CHAT_SERVER', 'CONFERENCE_SERVER', 'BOSH_SERVICE'):
            self.patch(comms.XmppComms, name,
                       getattr(comms.XmppComms, name))


    def test_setServerConfig(self):
        """
        The chat and conference servers are set for all instances.
        """
        comms.XmppComms.setServerConfig('example.com',
                                        'conference.example.com')
        self.assertEqual('example.com', comms.XmppComms.CHAT_SERVER)
        self.assertEqual('conference.example.com',
                         comms.XmppComms.CONFERENCE_SERVER)
        self.assertEqual('conference.example.com',
                         comms.XmppComms().CONFERENCE_SERVER)



class RegisterCallbacksTest(unittest.TestCase):
    """
    Tests for L{comms.XmppComms.registerCallbacks}.
    """

    def test_registerCallbacks(self):
        """
        The connected, disconnected and message callbacks are stored.
        """
        onConnected = lambda: None
        onDisconnected = lambda: None
        onMessage = lambda message: None

        xmppComms = comms.XmppComms()
        xmppComms.registerCallbacks(onConnected, onDisconnected, onMessage)
        self.assertIdentical(onConnected, xmppComms.onConnectedCb)
        self.assertIdentical(onDisconnected, xmppComms.onDisconnectedCb)
        self.assertIdentical(onMessage, xmppComms.onMessageCb)


    def test_setOnMessageCb(self):
        """
        The message callback can be replaced on its own.
        """
        onMessage = lambda message: None

        xmppComms = comms.XmppComms()
        xmppComms.setOnMessageCb(onMessage)
        self.assertIdentical(onMessage, xmppComms.onMessageCb)



class ConnectTest(XmppCommsTestBase):
    """
    Tests for L{comms.XmppComms.connect}.
    """

    def setUp(self):
        XmppCommsTestBase.setUp(self)
        self.comms.init()


    def test_credentials(self):
        """
        The username, password and room are stored.
        """
        self.comms.connect('fakeuser1', 'fakepass1', 'fakeroom1')
        self.assertEqual('fakeuser1', self.comms.username)
        self.assertEqual('fakepass1', self.comms.password)
        self.assertEqual('fakeroom1', self.comms.room)


    def test_connection(self):
        """
        The connection is asked to log in with the JID and password.
        """
        self.comms.connect('fakeuser', 'fakepass', 'fakeroom')
        self.assertEqual(self.comms.jid(), self.comms.connection.jid)
        self.assertEqual(self.comms.password, self.comms.connection.password)
        self.assertEqual([(JID('fakeuser@chatyuk.com'), 'fakepass')],
                         self.comms.connection.connectCalls)


    def test_connectionAnonymous(self):
        """
        Without password, the chat server is logged in to anonymously.
        """
        self.comms.connect('fakeuser', '', 'fakeroom')
        self.assertEqual(JID('chatyuk.com'), self.comms.connection.jid)


    def test_callback(self):
        """
        Status changes of the connection are passed to onServerConnect.
        """
        self.comms.connect('fakeuser', 'fakepass', 'fakeroom')
        self.comms.connection.callback(Status.CONNECTING, None)
        self.assertEqual(Status.CONNECTING, self.comms.currentStatus)


    def test_roomAndServer(self):
        """
        The room JID combines the room with the conference server.
        """
        self.comms.connect('fakeuser', 'fakepass', 'fakeroom')
        self.assertEqual('fakeroom@conference.chatyuk.com',
                         self.comms.roomAndServer())



class SessionTest(XmppCommsTestBase):
    """
    Tests for saving, restoring and clearing sessions.
    """

    def test_saveSession(self):
        """
        The user, room, sid and rid are stored in the cookies, in order.
        """
        self.comms.init()
        self.comms.connect('fakeuser', 'fakepass', 'fakeroom')
        self.comms.saveSession()
        self.assertEqual([('chatyuk_user', 'fakeuser'),
                          ('chatyuk_room', 'fakeroom'),
                          ('chatyuk_sid', u'fakesid-123123'),
                          ('chatyuk_rid', 999)],
                         self.cookies.setCalls)


    def test_noPriorSession(self):
        """
        Without a prior session, there is no attempt to attach.
        """
        self.comms.init()
        self.assertFalse(self.comms.hasPriorSession())
        self.assertEqual([], self.comms.connection.attachCalls)


    def test_restoreSession(self):
        """
        A prior session is attached to with the stored values.
        """
        self.setPriorSession()
        self.comms.init()

        self.assertEqual('fakeuser', self.comms.username)
        self.assertEqual('fakeroom', self.comms.room)
        self.assertEqual([(JID('chatyuk.com'), 's123', 123)],
                         self.comms.connection.attachCalls)


    def test_restoreSessionMalformedRid(self):
        """
        A session with a malformed rid is discarded.
        """
        self.setPriorSession(rid='abc')
        self.comms.init()

        self.assertEqual([], self.comms.connection.attachCalls)
        self.assertFalse(self.comms.hasPriorSession())


    def test_attachFailed(self):
        """
        When attaching fails, the prior session is forgotten.
        """
        self.setPriorSession()
        self.comms.init()
        self.comms.onServerConnect(Status.ATTACHED)
        self.comms.onServerConnect(Status.CONNFAIL, 'item-not-found')
        self.comms.onServerConnect(Status.DISCONNECTED)

        self.assertFalse(self.comms.hasPriorSession())
        self.assertEqual('fakeuser', self.cookies.getItem('chatyuk_user'))
        self.assertEqual('fakeroom', self.cookies.getItem('chatyuk_room'))
        self.assertEqual([None], self.disconnected)


    def test_logout(self):
        """
        Logging out forgets the session and disconnects.
        """
        self.comms.init()
        self.comms.connect('fakeuser', 'fakepass', 'fakeroom')
        self.comms.onServerConnect(Status.CONNECTED)
        self.comms.logout()

        self.assertFalse(self.comms.hasPriorSession())
        self.assertEqual(1, self.comms.connection.disconnectCalls)



class StatusTest(XmppCommsTestBase):
    """
    Tests for L{comms.XmppComms.onServerConnect} and
    L{comms.XmppComms.isConnected}.
    """

    def setUp(self):
        XmppCommsTestBase.setUp(self)
        self.comms.init()
        self.comms.connect('fakeuser', 'fakepass', 'fakeroom')


    def test_currentStatus(self):
        """
        The reported status is kept as current status.
        """
        self.comms.onServerConnect(Status.CONNECTING)
        self.assertEqual(Status.CONNECTING, self.comms.currentStatus)
        self.comms.onServerConnect(Status.DISCONNECTED)
        self.assertEqual(Status.DISCONNECTED, self.comms.currentStatus)


    def test_isConnectedConnected(self):
        self.comms.onServerConnect(Status.CONNECTED)
        self.assertTrue(self.comms.isConnected())


    def test_isConnectedAttached(self):
        self.comms.onServerConnect(Status.ATTACHED)
        self.assertTrue(self.comms.isConnected())


    def test_isConnectedOther(self):
        """
        In all other states, the session is not connected.
        """
        self.assertFalse(self.comms.isConnected())
        self.comms.onServerConnect(Status.CONNECTING)
        self.assertFalse(self.comms.isConnected())
        self.comms.onServerConnect(Status.DISCONNECTED)
        self.assertFalse(self.comms.isConnected())


    def test_connectedJoinsRoom(self):
        """
        Once connected, the room is joined as the user, with history.
        """
        self.comms.onServerConnect(Status.CONNECTED)

        presence = self.comms.connection.stub.output[-1]
        self.assertEqual(u'presence', presence.name)
        self.assertEqual(u'fakeroom@conference.chatyuk.com/fakeuser',
                         presence['to'])
        self.assertEqual(muc.NS_MUC, presence.x.uri)
        self.assertEqual(u'20', presence.x.history['maxstanzas'])


    def test_connectedSavesSession(self):
        """
        Once connected, the session is saved.
        """
        self.comms.onServerConnect(Status.CONNECTED)
        self.assertTrue(self.comms.hasPriorSession())
        self.assertEqual([None], self.connected)


    def test_attachedJoinsRoom(self):
        """
        After attaching, the room is joined again.
        """
        self.comms.onServerConnect(Status.ATTACHED)

        presence = self.comms.connection.stub.output[-1]
        self.assertEqual(u'fakeroom@conference.chatyuk.com/fakeuser',
                         presence['to'])
        self.assertEqual([None], self.connected)


    def test_joinTimeout(self):
        """
        If the room doesn't respond, the failure is logged.
        """
        self.comms.onServerConnect(Status.CONNECTED)
        d = self.comms.joinRoom()
        self.clock.advance(self.comms.muc.timeout)
        return d


    def test_disconnected(self):
        """
        Disconnecting forgets the session and calls the callback.
        """
        self.comms.onServerConnect(Status.CONNECTED)
        self.comms.onServerConnect(Status.DISCONNECTED)

        self.assertFalse(self.comms.hasPriorSession())
        self.assertEqual([None], self.disconnected)



class MessageTest(XmppCommsTestBase):
    """
    Tests for passing messages between the room and the callbacks.
    """

    def setUp(self):
        XmppCommsTestBase.setUp(self)
        self.comms.init()
        self.comms.connect('fakeuser', 'fakepass', 'fakeroom')


    def test_onMessage(self):
        """
        A message element is parsed and passed to the message callback.
        """
        xml = u"""
            <message xmlns="jabber:client"
                     type="groupchat"
                     to="aaf868ec@chatyuk.com/84e99860"
                     from="vip@conference.chatyuk.com/sillylogger"
                     id="1">
              <body>Don't Tell 'Em</body>
              <x xmlns="jabber:x:event">
                <composing/>
              </x>
            </message>
        """

        self.comms.onMessage(parseXml(xml))

        self.assertEqual(1, len(self.messages))
        message = self.messages[0]
        self.assertEqual(u"Don't Tell 'Em", message.body)
        self.assertEqual(u'sillylogger', message.sender)
        self.assertIdentical(None, message.stamp)


    def test_onMessageWithoutCallback(self):
        """
        Without message callback, messages are dropped.
        """
        self.comms.setOnMessageCb(None)
        self.comms.onMessage(muc.GroupChat(body=u'Hi'))


    def test_receivedFromRoom(self):
        """
        Messages in the joined room reach the message callback.
        """
        self.comms.onServerConnect(Status.CONNECTED)
        stub = self.comms.connection.stub
        stub.send(parseXml(u"""
            <presence xmlns='jabber:client'
                      from='fakeroom@conference.chatyuk.com/fakeuser'>
              <x xmlns='http://jabber.org/protocol/muc#user'>
                <status code='110'/>
              </x>
            </presence>
            """))
        stub.send(parseXml(u"""
            <message xmlns='jabber:client' type='groupchat'
                     from='fakeroom@conference.chatyuk.com/bob'>
              <body>Hello</body>
            </message>
            """))

        self.assertEqual(1, len(self.messages))
        self.assertEqual(u'Hello', self.messages[0].body)
        self.assertEqual(u'bob', self.messages[0].sender)


    def test_receivedHistory(self):
        """
        Messages from the room's history carry their timestamp.
        """
        self.comms.onServerConnect(Status.CONNECTED)
        stub = self.comms.connection.stub
        stub.send(parseXml(u"""
            <message xmlns='jabber:client' type='groupchat'
                     from='fakeroom@conference.chatyuk.com/bob'>
              <body>Earlier</body>
              <delay xmlns='urn:xmpp:delay' stamp='2002-10-13T23:58:37Z'
                     from='fakeroom@conference.chatyuk.com'/>
            </message>
            """))

        self.assertEqual(1, len(self.messages))
        self.assertEqual(datetime(2002, 10, 13, 23, 58, 37, tzinfo=tzutc()),
                         self.messages[0].stamp)


    def test_sendMessage(self):
        """
        Messages are sent to the room as groupchat.
        """
        self.comms.onServerConnect(Status.CONNECTED)
        self.comms.sendMessage(u'Hi all')

        message = self.comms.connection.stub.output[-1]
        self.assertEqual(u'message', message.name)
        self.assertEqual(u'groupchat', message['type'])
        self.assertEqual(u'fakeroom@conference.chatyuk.com', message['to'])
        self.assertEqual(u'Hi all', str(message.body))



class BOSHSessionTest(unittest.TestCase):
    """
    Tests for L{comms.XmppComms} on a BOSH connection.
    """

    def setUp(self):
        self.clock = task.Clock()
        self.cookies = MemoryCookieStore()
        self.comms = comms.XmppComms(self.cookies,
                                     connectionFactory=TestableBOSHConnection,
                                     reactor=self.clock)
        self.disconnected = []
        self.comms.registerCallbacks(lambda: None,
                                     lambda: self.disconnected.append(None),
                                     lambda message: None)
        self.logged = []
        self.patch(self.comms, 'log', self.logged.append)


    def test_restoreFailedWhileJoining(self):
        """
        When the server doesn't know the restored session, the pending join
        fails and the session is forgotten.
        """
        self.cookies.setItem('chatyuk_user', 'fakeuser')
        self.cookies.setItem('chatyuk_room', 'fakeroom')
        self.cookies.setItem('chatyuk_sid', 's123')
        self.cookies.setItem('chatyuk_rid', '123')
        self.comms.init()

        body = self.comms.connection.respond(u"""
            <body xmlns='http://jabber.org/protocol/httpbind'
                  type='terminate' condition='item-not-found'/>
            """)
        self.clock.advance(self.comms.muc.timeout)

        self.assertEqual(u'fakeroom@conference.chatyuk.com/fakeuser',
                         body.presence['to'])
        self.assertEqual(Status.DISCONNECTED, self.comms.currentStatus)
        self.assertEqual([None], self.disconnected)
        self.assertFalse(self.comms.hasPriorSession())
        self.assertEqual({}, self.comms.muc._waiting)
        self.assertTrue(self.logged[-1].startswith(
            "Joining fakeroom@conference.chatyuk.com failed: "))


    def test_logoutWhileConnecting(self):
        """
        Logging out before the session exists stops setting it up.
        """
        self.comms.init()
        self.comms.connect(u'fakeuser', u'', u'fakeroom')
        self.comms.logout()
        self.clock.advance(self.comms.connection.retryDelay)

        self.assertEqual(Status.DISCONNECTED, self.comms.currentStatus)
        self.assertEqual([None], self.disconnected)
        self.assertEqual(1, len(self.comms.connection.sent))
        self.assertEqual([], self.comms.connection.outstanding())
        self.assertFalse(self.comms.hasPriorSession())
