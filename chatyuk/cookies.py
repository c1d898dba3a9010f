# -*- test-case-name: chatyuk.test.test_cookies -*-
#
# Copyright (c) Chatyuk developers.
# See LICENSE for details.

"""
Session cookies.

The identifiers needed to take over a BOSH session are kept in a cookie
store, so that a client can be restarted without logging in again.
"""

import json

from zope.interface import implementer

from twisted.python import log
from twisted.python.filepath import FilePath

from chatyuk.ichatyuk import ICookieStore

COOKIE_USER = 'chatyuk_user'
COOKIE_ROOM = 'chatyuk_room'
COOKIE_SID = 'chatyuk_sid'
COOKIE_RID = 'chatyuk_rid'

@implementer(ICookieStore)
class MemoryCookieStore(object):
    """
    Cookie store that keeps values in memory only.
    """

    def __init__(self):
        self.store = {}


    def getItem(self, key):
        return self.store.get(key)


    def setItem(self, key, value):
        self.store[key] = str(value)


    def hasItem(self, key):
        return key in self.store


    def removeItem(self, key):
        self.store.pop(key, None)



class FileCookieStore(MemoryCookieStore):
    """
    Cookie store backed by a JSON document on disk.

    The document is read when the store is created and rewritten on every
    change.

    @ivar path: Location of the document.
    @type path: L{FilePath}
    """

    def __init__(self, path):
        MemoryCookieStore.__init__(self)
        if not isinstance(path, FilePath):
            path = FilePath(path)
        self.path = path
        self._load()


    def _load(self):
        if not self.path.exists():
            return

        try:
            store = json.loads(self.path.getContent().decode('utf-8'))
        except ValueError:
            log.msg("Ignoring malformed cookie file %s" % self.path.path)
            return

        if isinstance(store, dict):
            self.store = dict((key, str(value))
                              for key, value in store.items())


    def _save(self):
        parent = self.path.parent()
        if not parent.exists():
            parent.makedirs()
        content = json.dumps(self.store, indent=2, sort_keys=True)
        self.path.setContent(content.encode('utf-8'))


    def setItem(self, key, value):
        MemoryCookieStore.setItem(self, key, value)
        self._save()


    def removeItem(self, key):
        if self.hasItem(key):
            MemoryCookieStore.removeItem(self, key)
            self._save()
