# -*- test-case-name: chatyuk.test.test_xmppim -*-
#
# Copyright (c) Chatyuk developers.
# See LICENSE for details.

"""
Presence and message stanzas.

Only the parts of U{RFC 6121<http://xmpp.org/rfcs/rfc6121.html>} that an
occupant of a chat room deals with are represented here: availability
presence, as sent to and reflected by rooms, and messages with a body or
subject.
"""

from chatyuk.generic import Stanza

SHOW_VALUES = ('away', 'chat', 'dnd', 'xa')

class Presence(Stanza):
    """
    Availability presence.

    @ivar available: Whether the sender is available. Presence of type
        C{'unavailable'} has this set to C{False}.
    @type available: C{bool}
    @ivar show: One of L{SHOW_VALUES}, or C{None} for plain availability.
    @type show: C{unicode}
    @ivar status: Free text detailing the availability. Of several status
        texts, only the first is kept.
    @type status: C{unicode}
    """

    stanzaKind = 'presence'

    childParsers = {(None, 'show'): '_childParser_show',
                    (None, 'status'): '_childParser_status'}

    def __init__(self, recipient=None, sender=None, available=True,
                       show=None, status=None):
        Stanza.__init__(self, recipient=recipient, sender=sender)
        self.available = available
        self.show = show
        self.status = status


    def _childParser_show(self, element):
        show = str(element).strip()
        if show in SHOW_VALUES:
            self.show = show


    def _childParser_status(self, element):
        if self.status is None:
            self.status = str(element)


    def parseElement(self, element):
        Stanza.parseElement(self, element)
        self.available = self.stanzaType != 'unavailable'


    def toElement(self):
        if not self.available:
            self.stanzaType = 'unavailable'

        element = Stanza.toElement(self)

        if self.available and self.show in SHOW_VALUES:
            element.addElement('show', content=self.show)
        if self.status:
            element.addElement('status', content=self.status)

        return element



class Message(Stanza):
    """
    A message stanza.

    @ivar body: The text of the message, or C{None}.
    @ivar subject: The subject, or C{None}. In rooms, a message with only
        a subject changes the room's subject.
    """

    stanzaKind = 'message'

    childParsers = {(None, 'body'): '_childParser_body',
                    (None, 'subject'): '_childParser_subject'}

    def __init__(self, recipient=None, sender=None, body=None, subject=None):
        Stanza.__init__(self, recipient, sender)
        self.body = body
        self.subject = subject


    def _childParser_body(self, element):
        self.body = str(element)


    def _childParser_subject(self, element):
        self.subject = str(element)


    def toElement(self):
        element = Stanza.toElement(self)

        for name in ('subject', 'body'):
            text = getattr(self, name)
            if text:
                element.addElement(name, content=text)

        return element
