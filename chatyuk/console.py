# -*- test-case-name: chatyuk.test.test_console -*-
#
# Copyright (c) Chatyuk developers.
# See LICENSE for details.

"""
Terminal user interface.

The console shows either a login form, asking for a user name and a room,
or the chat box of the joined room: incoming messages are printed, typed
lines are sent to the room.
"""

from twisted.protocols import basic

COMMAND_LOGOUT = '/logout'
COMMAND_QUIT = '/quit'

class ChatConsole(basic.LineReceiver):
    """
    Line based chat interface on top of L{XmppComms<chatyuk.comms.XmppComms>}.

    @ivar state: What typed lines are for: C{'username'} and C{'room'} for
        the login form, C{'chat'} for messages and commands.
    @type state: C{str}
    """

    delimiter = b'\n'

    state = None

    def __init__(self, comms, quit=None, defaultUsername=u'test',
                       defaultRoom=u'testroom'):
        self.comms = comms
        self.quit = quit
        self.defaultUsername = defaultUsername
        self.defaultRoom = defaultRoom
        self._username = None


    def connectionMade(self):
        self.comms.registerCallbacks(self.sessionConnected,
                                     self.sessionDisconnected,
                                     self.messageReceived)


    def write(self, text):
        self.transport.write(text.encode('utf-8'))


    def render(self):
        """
        Show the chat box when logged in, the login form otherwise.
        """
        if self.comms.isConnected():
            self.showLoggedIn()
        else:
            self.showLoginForm()


    def showLoginForm(self):
        self.state = 'username'
        self._username = None
        self.write(u"Username [%s]: " % (self.comms.username or
                                         self.defaultUsername))


    def showLoggedIn(self):
        self.state = 'chat'
        self.write(u"Logged in as %s in %s. Type %s to log out, "
                   u"%s to leave.\n" % (self.comms.username, self.comms.room,
                                        COMMAND_LOGOUT, COMMAND_QUIT))


    def lineReceived(self, line):
        line = line.decode('utf-8').strip()
        handler = getattr(self, '_%sLineReceived' % self.state, None)
        if handler is not None:
            handler(line)


    def _usernameLineReceived(self, line):
        self._username = line or self.comms.username or self.defaultUsername
        self.state = 'room'
        self.write(u"Room [%s]: " % (self.comms.room or self.defaultRoom))


    def _roomLineReceived(self, line):
        room = line or self.comms.room or self.defaultRoom
        self.comms.connect(self._username, u'', room)
        self.showLoggedIn()


    def _chatLineReceived(self, line):
        if not line:
            return
        elif line == COMMAND_LOGOUT:
            self.showLoginForm()
            self.comms.logout()
        elif line == COMMAND_QUIT:
            self.leave()
        elif line.startswith(u'/'):
            self.write(u"Unknown command: %s\n" % line)
        else:
            self.comms.sendMessage(line)


    def leave(self):
        """
        Stop the client, keeping the session for the next run.
        """
        if self.quit is not None:
            self.quit()
        else:
            self.transport.loseConnection()


    def sessionConnected(self):
        self.write(u"Connected.\n")


    def sessionDisconnected(self):
        if self.state == 'chat':
            self.write(u"Disconnected.\n")
            self.showLoginForm()


    def messageReceived(self, message):
        if message.sender:
            text = u"<%s> %s" % (message.sender, message.body)
        else:
            text = u"* %s" % message.body

        if message.stamp is not None:
            text = u"[%s] %s" % (message.stamp.strftime('%H:%M'), text)

        self.write(text + u"\n")
