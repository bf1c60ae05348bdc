#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Item filtering logic for ROM selection.

Provides the filtering used by the select, export, copy, verify and delete
commands to decide which scanned items they act on.
"""

from dataclasses import dataclass, field
from typing import List, Optional

DESTINATION_PREFIX = 'destination:'

CRITERIA = [
    'all',
    'with_metadata',
    'without_metadata',
    'with_chd',
    'without_chd',
    'parents_only',
    'clones_only',
    'installed',
    'not_installed',
    'selected',
]


@dataclass
class ItemFilter:
    """Encapsulates item filtering parameters.

    Tri-state flags are None when they should not filter at all.

    Attributes:
        ids: Item names to include. Empty list means include all.
        skipids: Item names to exclude. Exclusion wins over ids.
        text: Free text searched (case-insensitively) in the name, display
            name and manufacturer. 'destination:yes' / 'destination:no'
            filters on installed state instead.
        has_metadata: True for matched items only, False for unmatched only.
        has_chd: True for items with CHD files, False for items without.
        clones: True for clones only, False for parents only.
        installed: True for items in the destination, False for the rest.
        selected: True for selected items only.

    Examples:
        >>> # Unmatched items only
        >>> filter = ItemFilter(has_metadata=False)

        >>> # Installed clones of pacman
        >>> filter = ItemFilter(text='pac', clones=True, installed=True)
    """
    ids: List[str] = field(default_factory=list)
    skipids: List[str] = field(default_factory=list)
    text: str = ''
    has_metadata: Optional[bool] = None
    has_chd: Optional[bool] = None
    clones: Optional[bool] = None
    installed: Optional[bool] = None
    selected: Optional[bool] = None


def item_matches_id(item, id_value):
    """Case-insensitive name comparison."""
    return item.name.lower() == str(id_value).lower()


def should_process_item_by_id(item, filter_obj):
    """Include / exclude list check. Exclusion takes priority."""
    for skip_id in filter_obj.skipids:
        if item_matches_id(item, skip_id):
            return False
    if filter_obj.ids:
        for include_id in filter_obj.ids:
            if item_matches_id(item, include_id):
                return True
        return False
    return True


def should_process_item_by_text(item, filter_obj):
    """Determine if an item matches the free text filter.

    Args:
        item: ScannedItem
        filter_obj: ItemFilter with the text to look for

    Returns:
        bool: True if the text is empty or found

    Examples:
        >>> should_process_item_by_text(pacman, ItemFilter(text='NAMCO'))
        True
        >>> should_process_item_by_text(pacman, ItemFilter(text='destination:no'))
        True  # pacman is not installed
    """
    text = (filter_obj.text or '').strip().lower()
    if not text:
        return True
    if text.startswith(DESTINATION_PREFIX):
        wanted = text[len(DESTINATION_PREFIX):].strip()
        if wanted in ('yes', 'true', '1'):
            return item.in_destination
        if wanted in ('no', 'false', '0'):
            return not item.in_destination
        return True
    haystacks = [item.name, item.display_name, item.display_manufacturer]
    return any(text in h.lower() for h in haystacks)


def _tri_state(value, wanted):
    return wanted is None or bool(value) == wanted


def should_process_item_by_flags(item, filter_obj):
    return (_tri_state(item.has_metadata, filter_obj.has_metadata)
            and _tri_state(item.has_companion_blobs, filter_obj.has_chd)
            and _tri_state(item.is_clone, filter_obj.clones)
            and _tri_state(item.in_destination, filter_obj.installed)
            and _tri_state(item.is_selected, filter_obj.selected))


def should_process_item(item, filter_obj):
    """Master filter combining all item filtering criteria. All must pass."""
    if not should_process_item_by_id(item, filter_obj):
        return False
    if not should_process_item_by_text(item, filter_obj):
        return False
    if not should_process_item_by_flags(item, filter_obj):
        return False
    return True


def filter_item_list(items, filter_obj):
    """Returns the items that pass filter_obj, in their original order."""
    return [item for item in items if should_process_item(item, filter_obj)]


def create_filter_for_criteria(criteria, text='', ids=None, skipids=None):
    """Builds an ItemFilter from one of the named CRITERIA.

    Raises:
        ValueError: If criteria is not a known name
    """
    if criteria not in CRITERIA:
        raise ValueError('unknown selection criteria: {}'.format(criteria))
    filter_obj = ItemFilter(ids=ids or [], skipids=skipids or [], text=text)
    if criteria == 'with_metadata':
        filter_obj.has_metadata = True
    elif criteria == 'without_metadata':
        filter_obj.has_metadata = False
    elif criteria == 'with_chd':
        filter_obj.has_chd = True
    elif criteria == 'without_chd':
        filter_obj.has_chd = False
    elif criteria == 'parents_only':
        # unmatched items are not known to be parents
        filter_obj.has_metadata = True
        filter_obj.clones = False
    elif criteria == 'clones_only':
        filter_obj.clones = True
    elif criteria == 'installed':
        filter_obj.installed = True
    elif criteria == 'not_installed':
        filter_obj.installed = False
    elif criteria == 'selected':
        filter_obj.selected = True
    return filter_obj


def as_predicate(filter_obj):
    """Wraps an ItemFilter as a one-argument predicate."""
    return lambda item: should_process_item(item, filter_obj)
