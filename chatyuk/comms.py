# -*- test-case-name: chatyuk.test.test_comms -*-
#
# Copyright (c) Chatyuk developers.
# See LICENSE for details.

"""
Chat session lifecycle.

L{XmppComms} ties a L{BOSHConnection<chatyuk.bosh.BOSHConnection>} to a
single multi-user chat room: it logs in, joins the room, passes messages to
the user interface through callbacks, and keeps the session identifiers in a
cookie store so that the session can be taken over after a restart.
"""

from twisted.python import log
from twisted.words.protocols.jabber.jid import JID
from twisted.words.xish.domish import IElement

from chatyuk import muc
from chatyuk.bosh import BOSHConnection, Status
from chatyuk.cookies import COOKIE_USER, COOKIE_ROOM, COOKIE_SID, COOKIE_RID
from chatyuk.cookies import MemoryCookieStore

class ChatMessage(object):
    """
    A message in the chat room, as presented to the user interface.

    @ivar body: The text of the message.
    @type body: C{unicode}
    @ivar sender: The nick of the occupant that sent the message, or C{None}
        if the message came from the room itself.
    @type sender: C{unicode}
    @ivar stamp: When the message was originally sent, for messages from the
        room's history. C{None} for live messages.
    @type stamp: L{datetime.datetime}
    """

    def __init__(self, body, sender=None, stamp=None):
        self.body = body
        self.sender = sender
        self.stamp = stamp


    def __repr__(self):
        return "ChatMessage(%r, sender=%r)" % (self.body, self.sender)



class RoomHandler(muc.MUCClient):
    """
    Multi-user chat handler passing room events to L{XmppComms}.
    """

    def __init__(self, comms, reactor=None):
        muc.MUCClient.__init__(self, reactor)
        self.comms = comms


    def receivedGroupChat(self, room, user, message):
        self.comms.onMessage(message)


    def receivedHistory(self, room, user, message):
        self.comms.onMessage(message)


    def receivedSubject(self, room, user, subject):
        self.comms.log("Subject of %s: %s" % (room.roomJID.full(), subject))


    def userJoinedRoom(self, room, user):
        self.comms.log("%s joined %s" % (user.nick, room.roomJID.full()))


    def userLeftRoom(self, room, user):
        self.comms.log("%s left %s" % (user.nick, room.roomJID.full()))



class XmppComms(object):
    """
    Chat session in a single multi-user chat room.

    Server settings are class attributes, shared by all instances, and set
    with L{setServerConfig}.

    @cvar CHAT_SERVER: The XMPP domain to log in to.
    @cvar CONFERENCE_SERVER: The multi-user chat service hosting the rooms.
    @cvar BOSH_SERVICE: URL of the BOSH connection manager. If C{None}, the
        URL is derived from L{CHAT_SERVER}.

    @ivar connection: The connection, created by L{init}.
    @type connection: L{BOSHConnection}
    @ivar muc: The handler for the joined room.
    @type muc: L{RoomHandler}
    @ivar currentStatus: The last connection status, C{None} until the
        connection reports one.
    @type currentStatus: L{Status}
    @ivar cookies: Storage for the session identifiers.
    @type cookies: L{ICookieStore<chatyuk.ichatyuk.ICookieStore>}
    @ivar historySize: Number of messages from the room's history to request
        when joining.
    @type historySize: C{int}
    """

    CHAT_SERVER = 'chatyuk.com'
    CONFERENCE_SERVER = 'conference.chatyuk.com'
    BOSH_SERVICE = None

    historySize = 20
    logTraffic = False

    connection = None
    muc = None
    username = None
    password = None
    room = None
    currentStatus = None

    onConnectedCb = None
    onDisconnectedCb = None
    onMessageCb = None

    def __init__(self, cookies=None, connectionFactory=BOSHConnection,
                       reactor=None):
        if cookies is None:
            cookies = MemoryCookieStore()
        self.cookies = cookies
        self.connectionFactory = connectionFactory
        self._reactor = reactor


    @classmethod
    def setServerConfig(cls, chatServer, conferenceServer, boshService=None):
        cls.CHAT_SERVER = chatServer
        cls.CONFERENCE_SERVER = conferenceServer
        cls.BOSH_SERVICE = boshService


    def boshServiceUrl(self):
        if self.BOSH_SERVICE:
            return self.BOSH_SERVICE
        return 'http://%s:5280/http-bind' % self.CHAT_SERVER


    def init(self):
        """
        Set up the connection and restore a prior session, if any.

        An existing connection is reset.
        """
        if self.connection is None:
            self.connection = self.connectionFactory(self.boshServiceUrl(),
                                                     reactor=self._reactor)
            self.connection.logTraffic = self.logTraffic
            self.muc = RoomHandler(self, reactor=self._reactor)
            self.muc.setHandlerParent(self.connection)
        else:
            self.connection.reset()

        self.currentStatus = None
        self.restoreSession()


    def registerCallbacks(self, onConnected, onDisconnected, onMessage):
        """
        Register the user interface callbacks.

        @param onConnected: Called without arguments when logged in or when
            a prior session was restored.
        @param onDisconnected: Called without arguments when the session has
            ended.
        @param onMessage: Called with a L{ChatMessage} for each message in
            the room.
        """
        self.onConnectedCb = onConnected
        self.onDisconnectedCb = onDisconnected
        self.onMessageCb = onMessage


    def setOnMessageCb(self, onMessage):
        self.onMessageCb = onMessage


    def jid(self):
        """
        The JID to log in as.

        Without a password, the client logs in anonymously to the chat
        server and the user name is only used as nick in the room.
        """
        if self.password:
            return JID(tuple=(self.username, self.CHAT_SERVER, None))
        else:
            return JID(self.CHAT_SERVER)


    def roomAndServer(self):
        return u'%s@%s' % (self.room, self.CONFERENCE_SERVER)


    def connect(self, username, password, room):
        """
        Log in and join C{room} as C{username}.
        """
        self.username = username
        self.password = password
        self.room = room
        self.connection.connect(self.jid(), password, self.onServerConnect)


    def isConnected(self):
        return self.currentStatus in (Status.CONNECTED, Status.ATTACHED)


    def onServerConnect(self, status, condition=None):
        """
        Called by the connection on status changes.
        """
        self.currentStatus = status

        if status == Status.CONNECTED:
            self.saveSession()
            self.joinRoom()
            if self.onConnectedCb is not None:
                self.onConnectedCb()
        elif status == Status.ATTACHED:
            self.joinRoom()
            if self.onConnectedCb is not None:
                self.onConnectedCb()
        elif status in (Status.CONNFAIL, Status.AUTHFAIL):
            self.log("Connection failed: %s" % condition)
        elif status == Status.DISCONNECTED:
            # The session can no longer be taken over.
            self.clearSession()
            if self.onDisconnectedCb is not None:
                self.onDisconnectedCb()


    def joinRoom(self):
        """
        Join the room, asking for some of its history.
        """
        def joined(room):
            self.log("Joined %s as %s" % (room.roomJID.full(), room.nick))

        def failed(failure):
            self.log("Joining %s failed: %s" % (self.roomAndServer(),
                                                failure.getErrorMessage()))

        d = self.muc.join(JID(self.roomAndServer()), self.username,
                          history=self.historySize)
        d.addCallbacks(joined, failed)
        return d


    def sendMessage(self, body):
        """
        Send a message to the room.
        """
        self.muc.groupChat(JID(self.roomAndServer()), body)


    def onMessage(self, message):
        """
        Pass a message from the room to the user interface.

        @param message: The message, as parsed stanza or as DOM.
        @type message: L{muc.GroupChat} or L{domish.Element}
        """
        if IElement.providedBy(message):
            message = muc.GroupChat.fromElement(message)

        sender = None
        if message.sender is not None:
            sender = message.sender.resource

        stamp = None
        if message.delay is not None:
            stamp = message.delay.stamp

        if self.onMessageCb is not None:
            self.onMessageCb(ChatMessage(message.body, sender, stamp))


    def logout(self):
        """
        End the session.

        The stored session is forgotten first. The unavailable presence that
        terminates the session also takes us out of the room, so the room is
        not left separately.
        """
        self.clearSession()
        self.connection.disconnect()


    def saveSession(self):
        """
        Store the session in the cookies.
        """
        self.cookies.setItem(COOKIE_USER, self.username)
        self.cookies.setItem(COOKIE_ROOM, self.room)
        self.cookies.setItem(COOKIE_SID, self.connection.sid)
        self.cookies.setItem(COOKIE_RID, self.connection.rid)


    def hasPriorSession(self):
        return (self.cookies.hasItem(COOKIE_SID) and
                self.cookies.hasItem(COOKIE_RID))


    def restoreSession(self):
        """
        Take over the session stored in the cookies, if any.
        """
        if not self.hasPriorSession():
            return

        try:
            rid = int(self.cookies.getItem(COOKIE_RID))
        except ValueError:
            self.log("Discarding session with malformed rid")
            self.clearSession()
            return

        self.username = self.cookies.getItem(COOKIE_USER)
        self.room = self.cookies.getItem(COOKIE_ROOM)
        sid = self.cookies.getItem(COOKIE_SID)
        self.connection.attach(self.jid(), sid, rid, self.onServerConnect)


    def clearSession(self):
        """
        Forget the stored session.

        The user and room are kept to prefill the login form.
        """
        self.cookies.removeItem(COOKIE_SID)
        self.cookies.removeItem(COOKIE_RID)


    def log(self, *message):
        log.msg(*message, system='chatyuk')
