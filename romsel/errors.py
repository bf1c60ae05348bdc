#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Exception types raised by the romselector core.

Hard failures (missing repository, bad settings) propagate to the caller.
Cancellation has its own type so a user-requested stop is never reported as
a failure. Cache problems are never raised: the cache layer returns a
CacheError inside its result objects instead.
"""


class RomSelectorError(Exception):
    """Base class for all romselector errors."""


class NotFoundError(RomSelectorError):
    """A required path (catalog file, ROM repository) does not exist."""

    def __init__(self, what, path):
        super(NotFoundError, self).__init__('{} not found: {}'.format(what, path))
        self.what = what
        self.path = path


class SettingsError(RomSelectorError):
    """Settings are incomplete or point at missing resources."""

    def __init__(self, reasons):
        super(SettingsError, self).__init__('Configuration errors: {}'.format(', '.join(reasons)))
        self.reasons = list(reasons)


class ScanCancelled(RomSelectorError):
    """A long running operation observed the cancellation signal."""


class ScanInProgressError(RomSelectorError):
    """A scan or cache load is already running against the same index."""


class CacheError(RomSelectorError):
    """Reading or writing the cache file failed. Returned, not raised."""
