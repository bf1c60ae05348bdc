#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
The operation surface a front end drives.

The Controller owns the shared ItemIndex, the catalog lookup for the current
catalog path and the settings. Only one scan or cache load runs at a time;
a second one is refused rather than queued.
"""

import threading

from .cache import load_cache, save_cache, get_cache_info, clear_cache
from .catalog import load_catalog
from .config import validate_settings
from .errors import SettingsError, ScanInProgressError
from .index import ItemIndex
from .item_filter import create_filter_for_criteria, as_predicate
from .matcher import match, match_items, get_matching_stats
from .reconcile import reconcile_destination
from .scanner import scan_items, ScanResult
from .selection import select_by_predicate, selected_items, export_selection, import_selection
from .transfer import validate_copy_operation, copy_items, verify_items, delete_from_destination
from .utils import AttrDict, info, warn


class Controller:
    """Coordinates scanning, caching, reconciliation and selection.

    Args:
        settings: Settings AttrDict (see romsel.config)
        cache_path: Location of the scan cache file
    """

    def __init__(self, settings, cache_path):
        self.settings = settings
        self.cache_path = cache_path
        self.index = ItemIndex()
        self.catalog_lookup = None
        self.companion_blob_directory_count = 0
        self._scan_lock = threading.Lock()

    def _require_settings(self, require_destination=False):
        errors = validate_settings(self.settings, require_destination)
        if errors:
            raise SettingsError(errors)

    def _acquire_scan(self):
        if not self._scan_lock.acquire(blocking=False):
            raise ScanInProgressError('a scan is already in progress')

    def get_catalog_lookup(self, progress=None, cancel=None):
        """The catalog lookup, parsed on first use for the current catalog path."""
        if self.catalog_lookup is None:
            self.catalog_lookup = load_catalog(self.settings.mame_xml_path, progress, cancel)
        return self.catalog_lookup

    def _scan(self, progress, cancel):
        lookup = self.get_catalog_lookup(progress, cancel)
        result = scan_items(self.settings.rom_repository_path,
                            self.settings.get('chd_repository_path') or None,
                            lookup, progress, cancel, index=self.index)
        self.companion_blob_directory_count = result.companion_blob_directory_count
        self._reconcile(progress, cancel)
        self.save()
        return result

    def save(self):
        """Writes the index to the cache. Failures are logged, not raised."""
        saved = save_cache(self.index, self.settings, self.companion_blob_directory_count, self.cache_path)
        if not saved.saved:
            warn('continuing without cache: {}'.format(saved.error))
        return saved

    def scan(self, progress=None, cancel=None):
        """Full scan of the repositories, then reconcile and save the cache.

        Raises:
            SettingsError: If the configured paths are unusable
            ScanInProgressError: If another scan is running
            ScanCancelled: If cancellation was requested
        """
        self._require_settings()
        self._acquire_scan()
        try:
            return self._scan(progress, cancel)
        finally:
            self._scan_lock.release()

    def load_from_cache_or_scan(self, progress=None, cancel=None):
        """Uses the cache when it is valid, otherwise scans.

        Returns:
            ScanResult; from_cache tells which path was taken
        """
        self._require_settings()
        self._acquire_scan()
        try:
            cached = load_cache(self.settings, self.cache_path, self.index, progress, cancel)
            if not cached.valid:
                info('cache not used ({}), scanning'.format(cached.reason))
                return self._scan(progress, cancel)

            self.companion_blob_directory_count = cached.companion_blob_directory_count
            self._reconcile(progress, cancel)
            return ScanResult(items=self.index.as_dict(),
                              companion_blob_directory_count=cached.companion_blob_directory_count,
                              archive_count=sum(1 for item in cached.items if item.has_archive),
                              from_cache=True)
        finally:
            self._scan_lock.release()

    def _reconcile(self, progress=None, cancel=None):
        return reconcile_destination(self.settings.get('destination_path'), self.index, progress, cancel)

    def reconcile_destination(self, progress=None, cancel=None):
        """Refreshes in_destination. Returns the number of installed items.

        Raises:
            ScanInProgressError: If a scan or cache load is filling the index
        """
        self._acquire_scan()
        try:
            return self._reconcile(progress, cancel)
        finally:
            self._scan_lock.release()

    def match(self, name):
        return match(name, self.get_catalog_lookup())

    def rematch(self, progress=None, cancel=None):
        """Retries the catalog match for unmatched items."""
        return match_items(self.index.values(), self.get_catalog_lookup(progress, cancel), progress, cancel)

    def items(self):
        return self.index.values()

    def selected(self):
        return selected_items(self.index.values())

    def select_by_predicate(self, predicate, select=True):
        return select_by_predicate(self.index.values(), predicate, select)

    def select_by_criteria(self, criteria, select=True, text=''):
        return self.select_by_predicate(as_predicate(create_filter_for_criteria(criteria, text)), select)

    def export_selection(self, items=None, name='', description=None):
        """Selection document for items (default: the current selection)."""
        if items is None:
            items = self.selected()
        return export_selection(items, name, description)

    def import_selection(self, document):
        return import_selection(document, self.index.as_dict())

    def copy_selected(self, progress=None, cancel=None):
        """Copies the selected items to the destination.

        Raises:
            SettingsError: If the destination is unset, unwritable or too small
        """
        self._require_settings(require_destination=True)
        items = self.selected()
        validation = validate_copy_operation(items, self.settings.destination_path)
        for warning in validation.warnings:
            warn(warning)
        if not validation.valid:
            raise SettingsError(validation.errors)
        return copy_items(items, self.settings.destination_path, progress, cancel,
                          verify_checksums=bool(self.settings.get('verify_checksums')))

    def verify_selected(self, progress=None, cancel=None, deep=False):
        return verify_items(self.selected(), progress, cancel, deep)

    def delete_selected(self, items=None):
        """Removes items (default: the selected ones) from the destination."""
        if not self.settings.get('destination_path'):
            raise SettingsError(['Destination path is not configured'])
        if items is None:
            items = self.selected()
        return delete_from_destination(items, self.settings.destination_path)

    def stats(self):
        items = self.index.values()
        stats = AttrDict(get_matching_stats(items))
        stats.selected = sum(1 for item in items if item.is_selected)
        stats.installed = sum(1 for item in items if item.in_destination)
        stats.total_size = sum(item.total_size for item in items)
        stats.chd_directories = self.companion_blob_directory_count
        return stats

    def cache_info(self):
        return get_cache_info(self.cache_path)

    def clear_cache(self):
        return clear_cache(self.cache_path)

    def update_settings(self, settings):
        """Applies new settings.

        A different catalog path drops the parsed catalog. A different
        destination clears every in_destination flag until the next
        reconciliation.
        """
        old = self.settings
        if (old.get('mame_xml_path') or '') != (settings.get('mame_xml_path') or ''):
            info('catalog path changed, dropping parsed catalog')
            self.catalog_lookup = None
        if (old.get('destination_path') or '') != (settings.get('destination_path') or ''):
            for item in self.index.values():
                item.in_destination = False
        self.settings = settings
