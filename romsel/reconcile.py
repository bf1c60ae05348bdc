#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Marks which indexed items are already present in the destination directory.
"""

import os

from .progress import emit, check_cancel
from .utils import info, debug, split_name, is_rom_file, is_chd_file

PHASE_RECONCILE = 'Checking destination...'


def find_destination_names(destination_path, cancel=None):
    """Collects the item names present below destination_path.

    Archive files contribute their file name minus extension. A CHD file
    directly in the destination root contributes its own stem; anywhere
    deeper it contributes the name of the directory holding it.

    Returns:
        set of lower-cased names
    """
    names = set()
    root_dir = os.path.abspath(destination_path)
    for root, dirs, files in os.walk(root_dir):
        check_cancel(cancel)
        at_root = os.path.abspath(root) == root_dir
        for filename in files:
            if is_rom_file(filename):
                names.add(split_name(filename)[0].lower())
            elif is_chd_file(filename):
                if at_root:
                    names.add(split_name(filename)[0].lower())
                else:
                    names.add(os.path.basename(root).lower())
    return names


def reconcile_destination(destination_path, items, progress=None, cancel=None):
    """Sets in_destination on every item found in the destination.

    All flags are cleared first, so running this twice gives the same
    result as running it once.

    Args:
        destination_path: The installed directory; empty or missing means
            nothing is installed
        items: Iterable of ScannedItems (or an ItemIndex)
        progress: Optional progress sink
        cancel: Optional CancelToken

    Returns:
        Number of items marked as installed
    """
    items = list(items.values()) if hasattr(items, 'values') else list(items)
    for item in items:
        item.in_destination = False

    if not destination_path or not os.path.isdir(destination_path):
        debug('destination {!r} does not exist, nothing installed'.format(destination_path))
        return 0

    emit(progress, PHASE_RECONCILE, 0)
    names = find_destination_names(destination_path, cancel)
    emit(progress, PHASE_RECONCILE, 50, len(names))

    marked = 0
    known = set()
    for item in items:
        key = item.name.lower()
        known.add(key)
        if key in names:
            item.in_destination = True
            marked += 1

    orphans = names - known
    if orphans:
        info('{} names in destination have no matching item'.format(len(orphans)))
        debug('orphans: {}'.format(', '.join(sorted(orphans))))
    emit(progress, PHASE_RECONCILE, 100, len(items))
    info('{} items present in destination {}'.format(marked, destination_path))
    return marked
