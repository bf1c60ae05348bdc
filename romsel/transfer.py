#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Copy, verify and delete operations against the destination directory.

Every operation here works item by item and never stops on a single bad
item: failures are collected into the returned result together with the
error text, and the caller decides how to present them.

Destination layout (the same one reconciliation reads back):

    <destination>/<name>.zip
    <destination>/<name>/<disk>.chd
"""

import os
import shutil
import zipfile
from dataclasses import dataclass, field
from typing import List, Tuple

from .progress import emit, check_cancel, scale
from .utils import (
    info, warn, error, debug, hashfile, format_crc, pretty_size, split_name,
    get_free_space, check_zipfile, MAX_REPORT_DETAILS
)

WRITE_TEST_FILENAME = 'test_write.tmp'


def _cap(lines):
    """Limits a detail list to MAX_REPORT_DETAILS lines."""
    if len(lines) <= MAX_REPORT_DETAILS:
        return list(lines)
    return list(lines[:MAX_REPORT_DETAILS]) + ['... and {} more'.format(len(lines) - MAX_REPORT_DETAILS)]


@dataclass
class CopyValidation:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    required_bytes: int = 0

    @property
    def valid(self):
        return not self.errors


@dataclass
class CopyResult:
    successful: int = 0
    failed: int = 0
    copied: List[str] = field(default_factory=list)
    failures: List[Tuple[str, str]] = field(default_factory=list)
    bytes_copied: int = 0

    def summary(self):
        lines = ['{} copied, {} failed ({})'.format(self.successful, self.failed, pretty_size(self.bytes_copied))]
        lines.extend(_cap(['{}: {}'.format(name, reason) for name, reason in self.failures]))
        return lines


@dataclass
class VerifyReport:
    total: int = 0
    verified: List[str] = field(default_factory=list)
    failures: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def failed(self):
        return len(self.failures)

    def summary(self):
        lines = ['{0}/{1} items verified with no errors'.format(len(self.verified), self.total)]
        lines.extend(_cap(['{}: {}'.format(name, reason) for name, reason in self.failures]))
        return lines


@dataclass
class DeleteResult:
    deleted: List[str] = field(default_factory=list)
    failures: List[Tuple[str, str]] = field(default_factory=list)

    def summary(self):
        lines = ['{} deleted, {} failed'.format(len(self.deleted), len(self.failures))]
        lines.extend(_cap(['{}: {}'.format(name, reason) for name, reason in self.failures]))
        return lines


def validate_copy_operation(items, destination):
    """Pre-flight checks for copy_items.

    Errors (destination unset, not writable, not enough free space) block the
    copy. Missing source files are only warnings; those items will fail
    individually.
    """
    result = CopyValidation()
    items = list(items)
    if not items:
        result.errors.append('No ROMs selected')
        return result
    if not destination:
        result.errors.append('Destination path is not configured')
        return result

    try:
        if not os.path.isdir(destination):
            os.makedirs(destination)
        probe = os.path.join(destination, WRITE_TEST_FILENAME)
        with open(probe, 'w') as w:
            w.write('test')
        os.remove(probe)
    except OSError as e:
        result.errors.append('Cannot write to destination directory: {}'.format(e))
        return result

    for item in items:
        if item.archive_path and not os.path.isfile(item.archive_path):
            result.warnings.append('ROM file not found: {} ({})'.format(item.name, item.archive_path))
        else:
            result.required_bytes += item.archive_size
        for blob in item.companion_blob_paths:
            if not os.path.isfile(blob):
                result.warnings.append('CHD file not found: {} ({})'.format(item.name, blob))
        result.required_bytes += item.companion_blob_total_size

    free = get_free_space(destination)
    if result.required_bytes > free:
        result.errors.append('Not enough free space: {} needed, {} available'.format(
            pretty_size(result.required_bytes), pretty_size(free)))
    return result


def _copy_file(src, dest, verify_checksums):
    dest_dir = os.path.dirname(dest)
    if not os.path.isdir(dest_dir):
        os.makedirs(dest_dir)
    shutil.copy2(src, dest)
    if verify_checksums:
        src_crc = hashfile(src, 'crc32')
        dest_crc = hashfile(dest, 'crc32')
        if src_crc != dest_crc:
            raise IOError('checksum mismatch after copy of {} ({} != {})'.format(
                os.path.basename(src), src_crc, dest_crc))
    return os.path.getsize(dest)


def copy_item(item, destination, verify_checksums=False):
    """Copies one item's archive and CHD files. Returns bytes copied."""
    if not item.archive_path or not os.path.isfile(item.archive_path):
        raise IOError('source archive missing: {}'.format(item.archive_path))
    copied = _copy_file(item.archive_path,
                        os.path.join(destination, os.path.basename(item.archive_path)),
                        verify_checksums)
    if item.companion_blob_paths:
        chd_dir = os.path.join(destination, item.name)
        for blob in item.companion_blob_paths:
            if os.path.isfile(blob):
                copied += _copy_file(blob, os.path.join(chd_dir, os.path.basename(blob)), verify_checksums)
            else:
                warn('CHD file not found, skipped: {}'.format(blob))
    return copied


def copy_items(items, destination, progress=None, cancel=None, verify_checksums=False):
    """Copies items into the destination. Copied items get in_destination set.

    Raises:
        ScanCancelled: If cancellation was requested between items
    """
    items = list(items)
    result = CopyResult()
    if not os.path.isdir(destination):
        os.makedirs(destination)

    emit(progress, 'Starting copy operation...', 0)
    for i, item in enumerate(items):
        check_cancel(cancel)
        emit(progress, 'Copying {}...'.format(item.name), scale(i, len(items)), i)
        try:
            result.bytes_copied += copy_item(item, destination, verify_checksums)
        except (IOError, OSError, shutil.Error) as e:
            error('failed to copy {}: {}'.format(item.name, e))
            result.failed += 1
            result.failures.append((item.name, str(e)))
            continue
        item.in_destination = True
        result.successful += 1
        result.copied.append(item.name)

    emit(progress, 'Copy operation completed', 100, len(items))
    info('copied {} items ({}), {} failed'.format(result.successful, pretty_size(result.bytes_copied), result.failed))
    return result


def zip_crc_table(archive_path):
    """Maps lower-cased member names (full and base name) to their CRC32."""
    table = {}
    with zipfile.ZipFile(archive_path) as z:
        for member in z.infolist():
            if member.is_dir():
                continue
            crc = format_crc(member.CRC)
            table[member.filename.lower()] = crc
            table.setdefault(os.path.basename(member.filename).lower(), crc)
    return table


def verify_item(item, deep=False):
    """Checks one item. Returns None if it is fine, otherwise the problem."""
    if item.metadata is None:
        return 'No metadata available'
    if not item.archive_path or not os.path.isfile(item.archive_path):
        return 'archive missing'
    if os.path.getsize(item.archive_path) == 0:
        return 'archive is empty'

    if split_name(item.archive_path)[1] == '.zip':
        try:
            table = zip_crc_table(item.archive_path)
        except (zipfile.BadZipFile, OSError) as e:
            return 'corrupt zip: {}'.format(e)
        for rom in item.metadata.rom_files:
            if not rom.crc:
                continue
            actual = table.get(rom.name.lower())
            if actual is None:
                return 'missing rom {}'.format(rom.name)
            if actual != rom.crc.lower():
                return 'Invalid CRC for {} (expected {}, found {})'.format(rom.name, rom.crc, actual)
        if deep:
            try:
                if not check_zipfile(item.archive_path):
                    return 'zip failed integrity test'
            except NotImplementedError:
                return 'zip uses an unsupported compression method'

    for blob in item.companion_blob_paths:
        if not os.path.isfile(blob):
            return 'CHD file missing: {}'.format(os.path.basename(blob))
    return None


def verify_items(items, progress=None, cancel=None, deep=False):
    """Verifies items against their catalog records.

    Only zip directories are read; CRCs come from the central directory so no
    member is decompressed unless deep is set.
    """
    items = list(items)
    report = VerifyReport(total=len(items))
    for i, item in enumerate(items):
        check_cancel(cancel)
        emit(progress, 'Verifying {}...'.format(item.name), scale(i, len(items)), i)
        problem = verify_item(item, deep)
        if problem is None:
            report.verified.append(item.name)
        else:
            warn('{}: {}'.format(item.name, problem))
            report.failures.append((item.name, problem))

    emit(progress, 'Verification complete', 100, len(items))
    info('{0}/{1} items verified with no errors'.format(len(report.verified), report.total))
    return report


def delete_from_destination(items, destination):
    """Removes items' archives and CHD directories from the destination."""
    result = DeleteResult()
    for item in items:
        try:
            removed = False
            ext = split_name(item.archive_path)[1] if item.archive_path else '.zip'
            archive = os.path.join(destination, item.name + ext)
            if os.path.isfile(archive):
                os.remove(archive)
                removed = True
            chd_dir = os.path.join(destination, item.name)
            if os.path.isdir(chd_dir):
                shutil.rmtree(chd_dir)
                removed = True
            if not removed:
                debug('{} was not present in {}'.format(item.name, destination))
        except OSError as e:
            error('failed to delete {}: {}'.format(item.name, e))
            result.failures.append((item.name, str(e)))
            continue
        item.in_destination = False
        result.deleted.append(item.name)

    info('deleted {} items from {}, {} failed'.format(len(result.deleted), destination, len(result.failures)))
    return result
