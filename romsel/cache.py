#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
On-disk snapshot of the item index.

The cache is a single compact JSON document. It is only trusted when it was
written by the same format version, against the same three source paths,
those paths still exist, and it is younger than CACHE_MAX_AGE_DAYS. Nothing
in this module raises on a bad or missing cache: the caller gets a result
object with a reason and falls back to a full scan.
"""

import os
import json
import datetime
from dataclasses import dataclass
from typing import List, Optional

from .errors import CacheError
from .models import ScannedItem
from .progress import emit, check_cancel, scale
from .utils import (
    AttrDict, AtomicWriter, info, warn, error, debug, chunked,
    CACHE_FORMAT_VERSION, CACHE_MAX_AGE_DAYS, CACHE_LOAD_BATCH_SIZE
)

PHASE_CACHE = 'Loading from cache...'


@dataclass
class CacheSaveResult:
    saved: bool
    error: Optional[CacheError] = None


@dataclass
class CacheLoadResult:
    """Outcome of a cache load. items is None whenever the cache was rejected."""
    items: Optional[List[ScannedItem]] = None
    reason: str = ''
    companion_blob_directory_count: int = 0
    created_at: Optional[datetime.datetime] = None
    error: Optional[CacheError] = None

    @property
    def valid(self):
        return self.items is not None


def _utcnow():
    return datetime.datetime.now(datetime.timezone.utc)


def _same_path(a, b):
    """Exact string comparison; any textual change to a source path invalidates."""
    return (a or '') == (b or '')


def parse_timestamp(value):
    """Parses a createdAt value. Naive timestamps are taken as UTC."""
    stamp = datetime.datetime.fromisoformat(value)
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=datetime.timezone.utc)
    return stamp


def _item_values(items):
    if hasattr(items, 'values'):
        return list(items.values())
    return list(items)


def build_snapshot(items, settings, companion_blob_directory_count, now=None):
    """The JSON-ready dict written to the cache file."""
    created_at = now or _utcnow()
    return {
        'version': CACHE_FORMAT_VERSION,
        'createdAt': created_at.isoformat(),
        'romRepositoryPath': settings.get('rom_repository_path') or '',
        'chdRepositoryPath': settings.get('chd_repository_path') or '',
        'mameXmlPath': settings.get('mame_xml_path') or '',
        'scannedRoms': dict((item.name, item.to_dict()) for item in _item_values(items)),
        'totalChdDirectories': companion_blob_directory_count,
    }


def save_cache(items, settings, companion_blob_directory_count, cache_path, now=None):
    """Writes the index to cache_path. Never raises.

    Returns:
        CacheSaveResult; on failure saved is False and error holds the cause
    """
    info('saving cache to {}...'.format(cache_path))
    try:
        snapshot = build_snapshot(items, settings, companion_blob_directory_count, now)
        with AtomicWriter(cache_path) as w:
            json.dump(snapshot, w, separators=(',', ':'))
    except (OSError, TypeError, ValueError) as e:
        error('failed to save cache: {}'.format(e))
        return CacheSaveResult(False, CacheError('failed to save cache {}: {}'.format(cache_path, e)))
    info('saved cache with {} items'.format(len(snapshot['scannedRoms'])))
    return CacheSaveResult(True)


def read_snapshot(cache_path):
    with open(cache_path, 'r', encoding='utf-8') as r:
        data = json.load(r)
    if not isinstance(data, dict):
        raise ValueError('cache root is not an object')
    return data


def validate_snapshot(data, settings, now=None):
    """Checks a decoded snapshot against the current settings.

    Returns:
        None when the snapshot can be used, otherwise the rejection reason
    """
    if data.get('version') != CACHE_FORMAT_VERSION:
        return 'version mismatch'

    if not _same_path(data.get('romRepositoryPath'), settings.get('rom_repository_path')):
        return 'ROM repository path changed'
    if not _same_path(data.get('chdRepositoryPath'), settings.get('chd_repository_path')):
        return 'CHD repository path changed'
    if not _same_path(data.get('mameXmlPath'), settings.get('mame_xml_path')):
        return 'MAME XML path changed'

    if not os.path.isdir(settings.get('rom_repository_path') or ''):
        return 'ROM repository no longer exists'
    chd_path = settings.get('chd_repository_path')
    if chd_path and not os.path.isdir(chd_path):
        return 'CHD repository no longer exists'
    if not os.path.isfile(settings.get('mame_xml_path') or ''):
        return 'MAME XML file no longer exists'

    try:
        created_at = parse_timestamp(data.get('createdAt') or '')
    except (TypeError, ValueError):
        return 'invalid cache timestamp'
    if (now or _utcnow()) - created_at > datetime.timedelta(days=CACHE_MAX_AGE_DAYS):
        return 'cache too old'
    return None


def load_cache(settings, cache_path, index=None, progress=None, cancel=None, now=None):
    """Loads and validates the cache.

    On success the items are also transferred into index (cleared first) in
    batches of CACHE_LOAD_BATCH_SIZE. Every loaded item starts with
    in_destination False; reconciliation sets it again.

    Args:
        settings: Current settings (rom/chd repository and MAME XML paths)
        cache_path: Location of the cache file
        index: Optional ItemIndex to fill
        progress: Optional progress sink
        cancel: Optional CancelToken, checked once per batch
        now: Reference time for the age check, UTC

    Returns:
        CacheLoadResult

    Raises:
        ScanCancelled: If cancellation was requested during the transfer
    """
    if not os.path.isfile(cache_path):
        info('no cache file at {}'.format(cache_path))
        return CacheLoadResult(reason='cache file not found')

    try:
        data = read_snapshot(cache_path)
    except (OSError, ValueError) as e:
        warn('failed to read cache: {}'.format(e))
        return CacheLoadResult(reason='cache file unreadable',
                               error=CacheError('failed to read cache {}: {}'.format(cache_path, e)))

    reason = validate_snapshot(data, settings, now)
    if reason is not None:
        info('cache invalid: {}'.format(reason))
        return CacheLoadResult(reason=reason)

    raw_items = data.get('scannedRoms') or {}
    if not isinstance(raw_items, dict):
        return CacheLoadResult(reason='cache file corrupt',
                               error=CacheError('scannedRoms in {} is not an object'.format(cache_path)))
    if index is not None:
        index.clear()
    emit(progress, PHASE_CACHE, 0)

    items = []
    batches = chunked(list(raw_items.values()), CACHE_LOAD_BATCH_SIZE)
    for done, batch in enumerate(batches, 1):
        check_cancel(cancel)
        try:
            loaded = [ScannedItem.from_dict(raw) for raw in batch]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            warn('cache entries could not be decoded: {}'.format(e))
            if index is not None:
                index.clear()
            return CacheLoadResult(reason='cache file corrupt',
                                   error=CacheError('bad cache entry in {}: {}'.format(cache_path, e)))
        for item in loaded:
            item.in_destination = False
        if index is not None:
            index.add_batch(loaded)
        items.extend(loaded)
        emit(progress, PHASE_CACHE, scale(done, len(batches)), len(items))

    emit(progress, PHASE_CACHE, 100, len(items))
    info('loaded {} items from cache'.format(len(items)))
    return CacheLoadResult(items=items,
                           companion_blob_directory_count=int(data.get('totalChdDirectories') or 0),
                           created_at=parse_timestamp(data['createdAt']))


def get_cache_info(cache_path):
    """Describes the cache file without validating it. None when absent."""
    if not os.path.isfile(cache_path):
        return None
    result = AttrDict(path=cache_path, file_size=os.path.getsize(cache_path))
    try:
        data = read_snapshot(cache_path)
    except (OSError, ValueError) as e:
        debug('cache info unavailable: {}'.format(e))
        result.error = str(e)
        return result
    result.version = data.get('version')
    result.created_at = data.get('createdAt')
    result.item_count = len(data.get('scannedRoms') or {})
    result.chd_directory_count = data.get('totalChdDirectories') or 0
    result.rom_repository_path = data.get('romRepositoryPath') or ''
    result.chd_repository_path = data.get('chdRepositoryPath') or ''
    result.mame_xml_path = data.get('mameXmlPath') or ''
    return result


def clear_cache(cache_path):
    """Deletes the cache file. Returns True if there was one."""
    if not os.path.isfile(cache_path):
        return False
    os.remove(cache_path)
    info('cache cleared: {}'.format(cache_path))
    return True
