#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Progress reporting and cooperative cancellation.

The core only talks to a sink object with a report(progress) method; the
presentation layer decides how to render it.
"""

import threading
from dataclasses import dataclass

from .errors import ScanCancelled
from .utils import info


@dataclass(frozen=True)
class ScanProgress:
    phase: str
    percentage: int = 0
    items_processed: int = 0


class ProgressSink:
    """Receives ScanProgress updates. The default implementation drops them."""

    def report(self, progress):
        pass


class CallbackProgress(ProgressSink):
    """Adapts a plain callable taking a ScanProgress."""

    def __init__(self, callback):
        self.callback = callback

    def report(self, progress):
        self.callback(progress)


class LogProgress(ProgressSink):
    """Logs progress, skipping repeats of the same phase and percentage."""

    def __init__(self, step=10):
        self.step = step
        self._last = None

    def report(self, progress):
        bucket = progress.percentage - (progress.percentage % self.step) if self.step else progress.percentage
        key = (progress.phase, bucket)
        if key == self._last:
            return
        self._last = key
        info('{} ({}%, {} processed)'.format(progress.phase, progress.percentage, progress.items_processed))


class CancelToken:
    """Cancellation signal shared between the caller and worker threads."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self):
        return self._event.is_set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise ScanCancelled('operation cancelled')


def emit(sink, phase, percentage=0, items_processed=0):
    if sink is not None:
        sink.report(ScanProgress(phase, int(percentage), int(items_processed)))


def check_cancel(cancel):
    if cancel is not None:
        cancel.raise_if_cancelled()


def scale(done, total, start=0, span=100):
    """Maps done/total onto the [start, start + span] percentage window."""
    if total <= 0:
        return start + span
    return start + int(float(done) / total * span)
