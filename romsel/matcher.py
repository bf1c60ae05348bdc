#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Resolves an archive name to a catalog record.

The archive name is tried exactly first, then through a fixed sequence of
normalizations. The order is significant: the first variation that hits the
lookup wins, so results are deterministic for a given name and catalog.
"""

import re

from .progress import emit, check_cancel, scale
from .utils import info, chunked, SCAN_BATCH_SIZE

REGION_PATTERNS = [
    r'\(USA\)', r'\(Europe\)', r'\(Japan\)', r'\(World\)',
    r'\[!\]', r'\[a\d*\]', r'\[b\d*\]', r'\[f\d*\]',
    r'\(Rev \d+\)', r'\(v\d+\.\d+\)',
]

VERSION_PATTERNS = [
    r'v\d+\.\d+', r'rev\d+', r'r\d+', r'\d+\.\d+$',
]

_REGION_RES = [re.compile(p, re.IGNORECASE) for p in REGION_PATTERNS]
_VERSION_RES = [re.compile(p, re.IGNORECASE) for p in VERSION_PATTERNS]


def _strip_patterns(name, compiled):
    for regex in compiled:
        name = regex.sub('', name).strip()
    return name


def name_variations(name):
    """The normalized forms tried after the exact lookup, in order."""
    return [
        name.replace('_', ''),
        name.replace('-', ''),
        name.lower(),
        name.upper(),
        _strip_patterns(name, _REGION_RES),
        _strip_patterns(name, _VERSION_RES),
    ]


def match(name, lookup):
    """Finds the catalog record for an archive name.

    Args:
        name: Archive file name without extension
        lookup: Case-insensitive name -> CatalogRecord mapping

    Returns:
        The matching CatalogRecord, or None
    """
    if not name or not lookup:
        return None

    record = lookup.get(name)
    if record is not None:
        return record

    for variation in name_variations(name):
        if not variation or variation == name:
            continue
        record = lookup.get(variation)
        if record is not None:
            return record
    return None


def match_items(items, lookup, progress=None, cancel=None):
    """Retries matching for every item that has no metadata yet.

    Returns the number of items newly matched.
    """
    pending = [item for item in items if item.metadata is None]
    if not pending or not lookup:
        return 0

    matched = 0
    batches = chunked(pending, SCAN_BATCH_SIZE)
    for done, batch in enumerate(batches, 1):
        check_cancel(cancel)
        for item in batch:
            record = match(item.name, lookup)
            if record is not None:
                item.metadata = record
                matched += 1
        emit(progress, 'Matching metadata...', scale(done, len(batches)), done * SCAN_BATCH_SIZE)

    info('matched {} of {} items without metadata'.format(matched, len(pending)))
    return matched


def get_matching_stats(items):
    """Summary counts for a collection of ScannedItems."""
    items = list(items)
    total = len(items)
    matched = sum(1 for item in items if item.has_metadata)
    return {
        'total': total,
        'matched': matched,
        'unmatched': total - matched,
        'with_chd': sum(1 for item in items if item.has_companion_blobs),
        'clones': sum(1 for item in items if item.is_clone),
        'match_percentage': (matched * 100.0 / total) if total else 0.0,
    }
