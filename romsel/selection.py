#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Selecting items and moving selections in and out of files.
"""

import os
import json
import datetime

from .utils import AtomicWriter, info, warn, SELECTION_FORMAT_VERSION, SELECTION_FILE_EXT


def select_by_predicate(items, predicate, select=True):
    """Sets (or clears) is_selected on every item the predicate accepts.

    Returns:
        list of the items whose flag now equals select
    """
    affected = []
    for item in items:
        if predicate(item):
            item.is_selected = select
            affected.append(item)
    return affected


def clear_selection(items):
    for item in items:
        item.is_selected = False


def selected_items(items):
    return [item for item in items if item.is_selected]


def export_selection(items, name='', description=None, now=None):
    """Builds a selection document from a list of items."""
    created_at = now or datetime.datetime.now(datetime.timezone.utc)
    return {
        'version': SELECTION_FORMAT_VERSION,
        'createdAt': created_at.isoformat(),
        'name': name,
        'description': description,
        'romNames': [item.name for item in items],
    }


def import_selection(document, items):
    """Marks the items named in a selection document as selected.

    Names are matched case-insensitively. Names with no matching item are
    logged and skipped.

    Args:
        document: Selection dict as produced by export_selection
        items: Case-insensitive name -> ScannedItem mapping

    Returns:
        list of the matched items, in document order
    """
    if document.get('version') != SELECTION_FORMAT_VERSION:
        warn('selection format version {!r}, expected {!r}'.format(document.get('version'), SELECTION_FORMAT_VERSION))
    matched = []
    missing = []
    for rom_name in document.get('romNames') or []:
        item = items.get(rom_name)
        if item is None:
            missing.append(rom_name)
            continue
        item.is_selected = True
        matched.append(item)
    if missing:
        warn('{} names in selection not found: {}'.format(len(missing), ', '.join(missing[:20])))
    info('imported selection {!r}: {} of {} names matched'.format(
        document.get('name') or '', len(matched), len(matched) + len(missing)))
    return matched


def selection_filename(name):
    """Default file name for a selection called name."""
    safe = ''.join(c if c.isalnum() or c in '-_ ' else '_' for c in name).strip() or 'selection'
    return safe + SELECTION_FILE_EXT


def save_selection(document, filepath):
    with AtomicWriter(filepath) as w:
        json.dump(document, w, indent=2)
    info('saved selection with {} names to {}'.format(len(document.get('romNames') or []), filepath))


def load_selection(filepath):
    """Reads a selection document.

    Raises:
        OSError: If the file cannot be read
        ValueError: If it is not a selection document
    """
    with open(filepath, 'r', encoding='utf-8') as r:
        document = json.load(r)
    if not isinstance(document, dict) or not isinstance(document.get('romNames'), list):
        raise ValueError('{} is not a selection file'.format(os.path.basename(filepath)))
    return document
