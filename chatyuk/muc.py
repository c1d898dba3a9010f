# -*- test-case-name: chatyuk.test.test_muc -*-
#
# Copyright (c) Chatyuk developers.
# See LICENSE for details.

"""
XMPP Multi-User Chat protocol, client side.

This protocol is specified in
U{XEP-0045<http://xmpp.org/extensions/xep-0045.html>}. Only the occupant
use cases are covered: joining and leaving rooms, following who is in them
and exchanging messages.
"""

from dateutil.tz import tzutc

from constantly import Values, ValueConstant
from zope.interface import implementer

from twisted.internet import defer
from twisted.internet.error import ConnectionLost
from twisted.words.protocols.jabber import jid, error, xmlstream
from twisted.words.xish import domish

from chatyuk import xmppim
from chatyuk.delay import DelayMixin
from chatyuk.ichatyuk import IMUCClient
from chatyuk.subprotocols import XMPPHandler

# Multi User Chat namespaces
NS_MUC = 'http://jabber.org/protocol/muc'
NS_MUC_USER = NS_MUC + '#user'

PRESENCE = '/presence'
GROUPCHAT = '/message[@type="groupchat"]'

DEFER_TIMEOUT = 30 # basic timeout is 30 seconds

class STATUS_CODE(Values):
    REALJID_PUBLIC = ValueConstant(100)
    AFFILIATION_CHANGED = ValueConstant(101)
    UNAVAILABLE_SHOWN = ValueConstant(102)
    UNAVAILABLE_NOT_SHOWN = ValueConstant(103)
    CONFIGURATION_CHANGED = ValueConstant(104)
    SELF_PRESENCE = ValueConstant(110)
    LOGGING_ENABLED = ValueConstant(170)
    LOGGING_DISABLED = ValueConstant(171)
    NON_ANONYMOUS = ValueConstant(172)
    SEMI_ANONYMOUS = ValueConstant(173)
    FULLY_ANONYMOUS = ValueConstant(174)
    ROOM_CREATED = ValueConstant(201)
    NICK_ASSIGNED = ValueConstant(210)
    BANNED = ValueConstant(301)
    NEW_NICK = ValueConstant(303)
    KICKED = ValueConstant(307)
    REMOVED_AFFILIATION = ValueConstant(321)
    REMOVED_MEMBERSHIP = ValueConstant(322)
    REMOVED_SHUTDOWN = ValueConstant(332)



class Statuses(set):
    """
    Set of L{STATUS_CODE} values received with a presence.
    """



class GroupChat(xmppim.Message, DelayMixin):
    """
    A groupchat message.

    @ivar delay: Delayed delivery information, present on messages from the
        room's discussion history.
    @type delay: L{chatyuk.delay.Delay}
    """

    stanzaType = 'groupchat'



class HistoryOptions(object):
    """
    How much of the discussion history a room sends when joining.

    Each limit is left out of the request when C{None}.

    @ivar maxchars: Total characters of the history stanzas, markup
        included.
    @ivar maxstanzas: Number of messages.
    @ivar seconds: Age, in seconds, of the oldest message.
    @ivar since: Only messages after this offset-aware datetime.
    @type since: L{datetime.datetime}
    """

    def __init__(self, maxchars=None, maxstanzas=None, seconds=None,
                       since=None):
        self.maxchars = maxchars
        self.maxstanzas = maxstanzas
        self.seconds = seconds
        self.since = since


    def toElement(self):
        element = domish.Element((NS_MUC, 'history'))

        for name in ('maxchars', 'maxstanzas', 'seconds'):
            value = getattr(self, name)
            if value is not None:
                element[name] = str(value)

        if self.since is not None:
            stamp = self.since.astimezone(tzutc())
            element['since'] = stamp.strftime('%Y-%m-%dT%H:%M:%SZ')

        return element



class User(object):
    """
    An occupant of a room, as last announced by its presence.

    @ivar nick: The occupant's nick, the resource of its occupant JID.
    @ivar entity: The real JID, if the room discloses it.
    @type entity: L{jid.JID}
    """

    affiliation = 'none'
    role = 'none'
    entity = None
    show = None
    status = None

    def __init__(self, nick):
        self.nick = nick


    def update(self, presence):
        """
        Take over the state announced in a L{UserPresence}.
        """
        self.show = presence.show
        self.status = presence.status
        if presence.affiliation:
            self.affiliation = presence.affiliation
        if presence.role:
            self.role = presence.role
        if presence.entity:
            self.entity = presence.entity



class Room(object):
    """
    A room joined, or being joined, by this client.

    @ivar roomJID: The bare JID of the room.
    @type roomJID: L{jid.JID}
    @ivar nick: Our nick in the room.
    @type nick: C{unicode}
    @ivar state: C{'joining'} until the room reflected our presence,
        C{'joined'} afterwards.
    @type state: C{str}
    @ivar statuses: Status codes received with our own presence.
    @type statuses: L{Statuses}
    @ivar occupants: The occupants, including ourselves once joined, by
        nick.
    @type occupants: C{dict}
    """

    def __init__(self, roomJID, nick, state=None):
        self.roomJID = roomJID
        self.nick = nick
        self.state = state
        self.statuses = Statuses()
        self.occupants = {}


    @property
    def occupantJID(self):
        """
        Our address in the room.
        """
        return jid.JID(tuple=(self.roomJID.user, self.roomJID.host, self.nick))



class BasicPresence(xmppim.Presence):
    """
    Presence sent to a room to join it.

    @ivar history: What to ask for of the discussion history.
    @type history: L{HistoryOptions}
    @ivar password: Password for protected rooms.
    @type password: C{unicode}
    """

    history = None
    password = None

    def toElement(self):
        element = xmppim.Presence.toElement(self)

        muc = element.addElement((NS_MUC, 'x'))
        if self.password:
            muc.addElement('password', content=self.password)
        if self.history:
            muc.addChild(self.history.toElement())

        return element



class UserPresence(xmppim.Presence):
    """
    Presence of an occupant, as sent by the room.

    @ivar affiliation: Affiliation of the occupant to the room.
    @ivar role: Role of the occupant in the room.
    @ivar entity: The real JID of the occupant, if disclosed.
    @type entity: L{jid.JID}
    @ivar mucStatuses: Status codes, like L{STATUS_CODE.SELF_PRESENCE}.
    @type mucStatuses: L{Statuses}
    """

    affiliation = None
    role = None
    entity = None

    childParsers = {(NS_MUC_USER, 'x'): '_childParser_mucUser'}

    def __init__(self, *args, **kwargs):
        xmppim.Presence.__init__(self, *args, **kwargs)
        self.mucStatuses = Statuses()


    def _childParser_mucUser(self, element):
        for status in element.elements(NS_MUC_USER, 'status'):
            try:
                code = int(status.getAttribute('code'))
                self.mucStatuses.add(STATUS_CODE.lookupByValue(code))
            except (TypeError, ValueError):
                continue

        for item in element.elements(NS_MUC_USER, 'item'):
            self.affiliation = item.getAttribute('affiliation')
            self.role = item.getAttribute('role')
            if item.hasAttribute('jid'):
                self.entity = jid.JID(item['jid'])



@implementer(IMUCClient)
class MUCClient(XMPPHandler):
    """
    Multi-User Chat client protocol.

    Rooms are joined with L{join}. While in a room, presence from its
    occupants keeps L{Room.occupants} up to date and messages are passed to
    the C{received*} and C{user*} methods, meant to be overridden.

    Joining and leaving wait for the room to answer our presence. The
    returned deferreds errback with L{xmlstream.TimeoutError} after
    L{timeout} seconds without answer, or with
    L{ConnectionLost<twisted.internet.error.ConnectionLost>} when the
    session ends before that.

    @ivar timeout: Seconds to wait for the room to answer our presence.
    @type timeout: C{int}
    """

    timeout = DEFER_TIMEOUT

    def __init__(self, reactor=None):
        if reactor is None:
            from twisted.internet import reactor
        self._reactor = reactor
        self._rooms = {}
        self._waiting = {}


    def connectionInitialized(self):
        self.xmlstream.addObserver(PRESENCE, self._onPresence)
        self.xmlstream.addObserver(GROUPCHAT, self._onGroupChat)


    def connectionLost(self, reason):
        XMPPHandler.connectionLost(self, reason)
        self._rooms = {}

        waiting, self._waiting = self._waiting, {}
        for d, call in waiting.items():
            call.cancel()
            d.errback(ConnectionLost("Session ended before the room answered"))


    def _roomFor(self, occupantJID):
        """
        Look up the room an occupant JID belongs to.

        @rtype: L{Room} or C{None}
        """
        if occupantJID is None:
            return None
        return self._rooms.get(occupantJID.userhostJID())


    def _onPresence(self, element):
        presenceType = element.getAttribute('type')
        if presenceType not in (None, 'unavailable', 'error'):
            return

        presence = UserPresence.fromElement(element)
        room = self._roomFor(presence.sender)
        if room is None or not presence.sender.resource:
            return

        nick = presence.sender.resource
        if presenceType is None:
            self._occupantAvailable(room, nick, presence)
        else:
            # Error presence from an occupant JID means it is gone as well.
            user = room.occupants.pop(nick, None)
            if user is not None:
                self.userLeftRoom(room, user)


    def _occupantAvailable(self, room, nick, presence):
        user = room.occupants.get(nick)
        if user is None:
            user = room.occupants[nick] = User(nick)
            user.update(presence)
            self.userJoinedRoom(room, user)
        else:
            user.update(presence)
            self.userUpdatedStatus(room, user, presence.show, presence.status)


    def _onGroupChat(self, element):
        """
        A group chat message has been received from a MUC room.

        Depending on the contents, this calls L{receivedSubject},
        L{receivedHistory} or L{receivedGroupChat}.
        """
        message = GroupChat.fromElement(element)

        room = self._roomFor(message.sender)
        if room is None:
            return

        nick = message.sender.resource
        if nick:
            user = room.occupants.get(nick) or User(nick)
        else:
            # From the room itself
            user = None

        if message.body is None:
            if message.subject is not None:
                self.receivedSubject(room, user, message.subject)
        elif message.delay is None:
            self.receivedGroupChat(room, user, message)
        else:
            self.receivedHistory(room, user, message)


    def _sendPresence(self, presence, query, onResponse):
        """
        Send presence and wait for the room to respond.

        @param query: XPath query matching the response.
        @param onResponse: Called with the response presence, returns the
            result of the deferred or raises an exception.
        @return: Deferred that fires with the result of C{onResponse}.
        """
        d = defer.Deferred()

        def onPresence(element):
            self._waiting.pop(d).cancel()
            try:
                result = onResponse(element)
            except Exception:
                d.errback()
            else:
                d.callback(result)

        def onTimeout():
            del self._waiting[d]
            self.xmlstream.removeObserver(query, onPresence)
            d.errback(xmlstream.TimeoutError("Timeout waiting for response."))

        self._waiting[d] = self._reactor.callLater(self.timeout, onTimeout)
        self.xmlstream.addOnetimeObserver(query, onPresence, 1)
        self.xmlstream.send(presence.toElement())
        return d


    def join(self, roomJID, nick, history=None, password=None):
        """
        Join a MUC room by sending presence to it.

        @param roomJID: The JID of the room the entity is joining.
        @type roomJID: L{jid.JID}

        @param nick: The nick name for the entitity joining the room.
        @type nick: C{unicode}

        @param history: The maximum number of history stanzas you would like.
        @type history: C{int}

        @param password: Optional password for the room.
        @type password: C{unicode}

        @return: A deferred that fires with the L{Room} when the entity is in
                 the room or an error has occurred.
        """
        room = Room(roomJID.userhostJID(), nick, state='joining')
        self._rooms[room.roomJID] = room

        presence = BasicPresence(recipient=room.occupantJID)
        presence.password = password
        if history is not None:
            presence.history = HistoryOptions(maxstanzas=history)

        def joined(element):
            if element.getAttribute('type') == 'error':
                self._rooms.pop(room.roomJID, None)
                raise error.exceptionFromStanza(element)

            room.state = 'joined'
            room.statuses = UserPresence.fromElement(element).mucStatuses
            return room

        query = PRESENCE + u"[@from='%s']" % room.occupantJID.full()
        return self._sendPresence(presence, query, joined)


    def leave(self, roomJID):
        """
        Leave a MUC room.

        @param roomJID: The JID of the room to leave.
        @type roomJID: L{jid.JID}
        @return: Deferred that fires when the room confirmed our departure.
            If the room was not joined, it has already fired.
        """
        room = self._roomFor(roomJID)
        if room is None:
            return defer.succeed(None)

        presence = xmppim.Presence(recipient=room.occupantJID, available=False)

        def left(element):
            if element.getAttribute('type') == 'error':
                raise error.exceptionFromStanza(element)
            self._rooms.pop(room.roomJID, None)

        query = (PRESENCE + u"[@from='%s' and @type='unavailable']" %
                 room.occupantJID.full())
        return self._sendPresence(presence, query, left)


    def groupChat(self, roomJID, body):
        """
        Send a groupchat message.
        """
        message = GroupChat(recipient=roomJID, body=body)
        self.send(message.toElement())


    def userJoinedRoom(self, room, user):
        """
        An occupant entered the room.

        Our own presence, reflected by the room when joining, is reported
        too.

        @type room: L{Room}
        @type user: L{User}
        """


    def userLeftRoom(self, room, user):
        """
        An occupant left the room.

        @type room: L{Room}
        @type user: L{User}
        """


    def userUpdatedStatus(self, room, user, show, status):
        """
        An occupant changed its availability.
        """


    def receivedSubject(self, room, user, subject):
        """
        The room's subject was set, or announced when joining.

        @param user: The occupant that set the subject, or C{None} if it
            came from the room itself.
        """


    def receivedGroupChat(self, room, user, message):
        """
        A groupchat message was received.

        @param room: The room the message was received from.
        @type room: L{Room}

        @param user: The user that sent the message, or C{None} if it was a
            message from the room itself.
        @type user: L{User}

        @param message: The message.
        @type message: L{GroupChat}
        """


    def receivedHistory(self, room, user, message):
        """
        A groupchat message from the room's discussion history was received.

        This is identical to L{receivedGroupChat}, with the delayed delivery
        information (timestamp and original sender) in C{message.delay}.
        """
