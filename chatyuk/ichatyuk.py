# Copyright (c) Chatyuk developers.
# See LICENSE for details.

"""
Chatyuk interfaces.
"""

from zope.interface import Attribute, Interface

class IXMPPHandler(Interface):
    """
    Interface for XMPP protocol handlers.

    Objects that provide this interface can be added to a BOSH connection to
    handle (part of) an XMPP extension protocol.
    """

    parent = Attribute("""Connection managing this handler""")
    xmlstream = Attribute("""The event dispatcher of the current session""")

    def setHandlerParent(parent):
        """
        Set the parent of the handler.

        @type parent: L{IXMPPHandlerCollection}
        """


    def disownHandlerParent(parent):
        """
        Remove the parent of the handler.

        @type parent: L{IXMPPHandlerCollection}
        """


    def makeConnection(xs):
        """
        A new BOSH session is being set up.

        At this point, no stanzas have been exchanged in the session given in
        C{xs}.

        This should setup L{xmlstream} and call L{connectionMade}.
        """


    def connectionMade():
        """
        Called after a session has been requested.
        """


    def connectionInitialized():
        """
        The session has been initialized.

        At this point, authentication and resource binding were successful
        (or an existing session was attached to), and stanzas can be
        exchanged over L{xmlstream}. This method can be used to setup
        observers for incoming stanzas.
        """


    def connectionLost(reason):
        """
        The session has been terminated.

        @type reason: L{twisted.python.failure.Failure} or C{None}
        """



class IXMPPHandlerCollection(Interface):
    """
    Collection of handlers.

    Contain several handlers and manage their connection.
    """

    def __iter__():
        """
        Get an iterator over all child handlers.
        """


    def addHandler(handler):
        """
        Add a child handler.

        @type handler: L{IXMPPHandler}
        """


    def removeHandler(handler):
        """
        Remove a child handler.

        @type handler: L{IXMPPHandler}
        """



class IBOSHConnection(IXMPPHandlerCollection):
    """
    An XMPP client connection over BOSH.
    """

    boshService = Attribute("""URL of the connection manager""")
    jid = Attribute("""The JID used to connect, updated after binding""")
    sid = Attribute("""BOSH session identifier, or C{None}""")
    rid = Attribute("""Request identifier of the next request, or C{None}""")
    status = Attribute("""The last reported connection status""")

    def connect(jid, password, callback):
        """
        Create a new session and log in.

        @param jid: The JID to log in as. Without a user part, anonymous
            login is used.
        @type jid: L{JID<twisted.words.protocols.jabber.jid.JID>}
        @param password: The password, possibly empty.
        @type password: C{unicode}
        @param callback: Called with C{(status, condition)} on every status
            change.
        """


    def attach(jid, sid, rid, callback):
        """
        Attach to an existing session.

        @param sid: BOSH session identifier of the prior session.
        @type sid: C{unicode}
        @param rid: Next request identifier of the prior session.
        @type rid: C{int}
        """


    def send(obj):
        """
        Send a stanza, queueing it until the session is initialized.

        @type obj: L{domish.Element}
        """


    def disconnect(reason=None):
        """
        Log out and terminate the session.
        """


    def reset():
        """
        Drop all session state without contacting the server.
        """



class ICookieStore(Interface):
    """
    Storage of simple string values by key, like a browser cookie jar.
    """

    def getItem(key):
        """
        Get the value stored under C{key}.

        @return: The value or C{None} if there is none.
        @rtype: C{unicode}
        """


    def setItem(key, value):
        """
        Store C{value} under C{key}.

        Values are stored as text.
        """


    def hasItem(key):
        """
        Check whether a value is stored under C{key}.

        @rtype: C{bool}
        """


    def removeItem(key):
        """
        Remove the value stored under C{key}, if any.
        """



class IMUCClient(Interface):
    """
    Multi-User Chat Client.

    A client interface to XEP-045 : http://xmpp.org/extensions/xep-0045.html
    """

    def receivedGroupChat(room, user, message):
        """
        A groupchat message has been received from a MUC room.

        @param room: The room the message was received from.
        @type room: L{muc.Room}
        @param user: The user that sent the message, or C{None} if it was a
            message from the room itself.
        @type user: L{muc.User}
        @param message: The message.
        @type message: L{muc.GroupChat}
        """


    def receivedHistory(room, user, message):
        """
        A groupchat message from the room's discussion history was received.
        """


    def receivedSubject(room, user, subject):
        """
        A (new) room subject has been received.
        """


    def userJoinedRoom(room, user):
        """
        User has joined a MUC room.
        """


    def userLeftRoom(room, user):
        """
        User has left a room.
        """


    def join(roomJID, nick, history=None, password=None):
        """
        Join a MUC room by sending presence to it.

        @param roomJID: The JID of the room the entity is joining.
        @type roomJID: L{JID<twisted.words.protocols.jabber.jid.JID>}
        @param nick: The nick name for the entity joining the room.
        @type nick: C{unicode}
        @param history: The maximum number of history stanzas you would like.
        @param password: Optional password for the room.
        @return: A deferred that fires with the L{muc.Room} when the entity
            is in the room or an error has occurred.
        """


    def leave(roomJID):
        """
        Leave a MUC room.

        @type roomJID: L{JID<twisted.words.protocols.jabber.jid.JID>}
        """


    def groupChat(roomJID, body):
        """
        Send a groupchat message.
        """
