# -*- test-case-name: chatyuk.test.test_tap -*-
#
# Copyright (c) Chatyuk developers.
# See LICENSE for details.

"""
Chat client service.

This runs the terminal chat client as a Twisted application, e.g. with
C{twistd -n chatyuk --room=lobby}.
"""

from twisted.application import service
from twisted.internet import stdio
from twisted.python import usage

from chatyuk.comms import XmppComms
from chatyuk.console import ChatConsole
from chatyuk.cookies import FileCookieStore, MemoryCookieStore

class Options(usage.Options):

    optParameters = [
            ('chat-server', None, XmppComms.CHAT_SERVER,
                'XMPP domain to log in to'),
            ('conference-server', None, XmppComms.CONFERENCE_SERVER,
                'Multi-user chat service hosting the rooms'),
            ('bosh-service', None, None,
                'URL of the BOSH connection manager '
                '[default: http://<chat-server>:5280/http-bind]'),
            ('cookies', None, None,
                'File to keep the session in, so it survives restarts '
                '[default: keep it in memory]'),
            ('username', None, u'test',
                'User name proposed on the login form'),
            ('room', None, u'testroom',
                'Room proposed on the login form'),
    ]

    optFlags = [
            ('verbose', 'v', 'Log traffic'),
    ]

    def postOptions(self):
        if not self['chat-server']:
            raise usage.UsageError('Need a chat server')
        if not self['conference-server']:
            raise usage.UsageError('Need a conference server')



class ChatClientService(service.Service):
    """
    Service running the chat console on standard I/O.

    @ivar comms: The chat session.
    @type comms: L{XmppComms}
    """

    stdioFactory = stdio.StandardIO

    def __init__(self, comms, defaultUsername=u'test', defaultRoom=u'testroom',
                       reactor=None):
        self.comms = comms
        self.defaultUsername = defaultUsername
        self.defaultRoom = defaultRoom
        self.console = None

        if reactor is None:
            from twisted.internet import reactor
        self._reactor = reactor


    def startService(self):
        service.Service.startService(self)

        self.console = ChatConsole(self.comms, quit=self.quit,
                                   defaultUsername=self.defaultUsername,
                                   defaultRoom=self.defaultRoom)
        self.stdioFactory(self.console)
        self.comms.init()
        self.console.render()


    def stopService(self):
        service.Service.stopService(self)

        if self.comms.isConnected():
            self.comms.saveSession()


    def quit(self):
        self._reactor.stop()



def makeService(config):
    XmppComms.setServerConfig(config['chat-server'],
                              config['conference-server'],
                              config['bosh-service'])

    if config['cookies']:
        cookies = FileCookieStore(config['cookies'])
    else:
        cookies = MemoryCookieStore()

    comms = XmppComms(cookies)
    comms.logTraffic = config['verbose']

    return ChatClientService(comms,
                             defaultUsername=config['username'],
                             defaultRoom=config['room'])
