#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
The shared in-memory item index.

Scan, cache load and reconciliation all mutate the same ItemIndex. Writers
take the lock once per completed batch rather than once per item.
"""

import threading

from requests.structures import CaseInsensitiveDict


class ItemIndex:
    """Case-insensitive name -> ScannedItem map guarded by a single lock."""

    def __init__(self, items=None):
        self.lock = threading.Lock()
        self._items = CaseInsensitiveDict()
        if items:
            self._items.update(items)

    def add_batch(self, items):
        """Inserts a list of ScannedItems; same name overwrites."""
        with self.lock:
            for item in items:
                self._items[item.name] = item

    def replace(self, items):
        with self.lock:
            self._items = CaseInsensitiveDict()
            for item in items:
                self._items[item.name] = item

    def clear(self):
        with self.lock:
            self._items = CaseInsensitiveDict()

    def get(self, name, default=None):
        with self.lock:
            return self._items.get(name, default)

    def values(self):
        with self.lock:
            return list(self._items.values())

    def names(self):
        with self.lock:
            return list(self._items.keys())

    def as_dict(self):
        """A snapshot copy, still case-insensitive."""
        with self.lock:
            return self._items.copy()

    def __contains__(self, name):
        with self.lock:
            return name in self._items

    def __getitem__(self, name):
        with self.lock:
            return self._items[name]

    def __len__(self):
        with self.lock:
            return len(self._items)

    def __iter__(self):
        return iter(self.values())


def make_lookup(pairs=None):
    """Builds an empty (or pre-filled) case-insensitive name map."""
    lookup = CaseInsensitiveDict()
    if pairs:
        for key, value in pairs:
            lookup[key] = value
    return lookup
