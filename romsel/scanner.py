#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Two phase filesystem scan of the ROM and CHD repositories.

Phase 1 pre-indexes the CHD repository: every immediate subdirectory is
walked for disk images and remembered by its (case-insensitive) name.
Phase 2 lists the archives at the top of the ROM repository and turns each
one into a ScannedItem, attaching its CHD directory and catalog record on
the spot.

Both phases run on a pool of worker threads pulling batches from a queue.
Workers never report progress themselves; the calling thread samples a
shared counter every PROGRESS_INTERVAL seconds.
"""

import os
import threading
import time
from dataclasses import dataclass, field
from queue import Queue, Empty
from typing import List

from requests.structures import CaseInsensitiveDict

from .errors import NotFoundError
from .index import ItemIndex
from .matcher import match
from .models import ScannedItem
from .progress import emit, check_cancel, scale
from .utils import (
    info, warn, debug, log_exception, chunked, split_name, is_rom_file, is_chd_file,
    get_zip_file_list, get_worker_count,
    SCAN_BATCH_SIZE, CHD_SCAN_BATCH_SIZE, PROGRESS_INTERVAL
)

PHASE_CHD = 'Indexing CHD files...'
PHASE_ROM = 'Scanning ROM files...'
PHASE_DONE = 'Scan complete'


@dataclass
class ScanResult:
    items: CaseInsensitiveDict = field(default_factory=CaseInsensitiveDict)
    companion_blob_directory_count: int = 0
    archive_count: int = 0
    from_cache: bool = False
    skipped: List[str] = field(default_factory=list)

    @property
    def items_with_companion_blobs(self):
        return sum(1 for item in self.items.values() if item.has_companion_blobs)

    @property
    def skipped_count(self):
        return len(self.skipped)


def run_batches(batches, handle_batch, worker_count, on_progress=None, cancel=None):
    """Runs handle_batch over every batch on a pool of threads.

    The first worker exception stops the remaining workers from taking new
    batches and is re-raised here once the pool has drained. A cancelled
    token does the same and raises ScanCancelled.

    Args:
        batches: List of lists of work items
        handle_batch: Callable run on a worker thread with one batch
        worker_count: Upper bound on the number of threads
        on_progress: Called on this thread with the number of finished work
            items, every PROGRESS_INTERVAL seconds and once at the end
        cancel: Optional CancelToken
    """
    work = Queue()
    for batch in batches:
        work.put(batch)

    lock = threading.Lock()
    errors = []
    done = [0]

    def worker():
        while True:
            if errors or (cancel is not None and cancel.cancelled):
                return
            try:
                batch = work.get_nowait()
            except Empty:
                return
            try:
                handle_batch(batch)
            except Exception as e:
                with lock:
                    warn("The unhandled exception was:")
                    log_exception('')
                    warn("End exception report.")
                    errors.append(e)
            finally:
                with lock:
                    done[0] += len(batch)
                work.task_done()

    def progress():
        if on_progress is not None:
            with lock:
                finished = done[0]
            on_progress(finished)

    pool = []
    for i in range(max(1, min(worker_count, len(batches)))):
        t = threading.Thread(target=worker)
        t.daemon = True
        t.start()
        pool.append(t)
    try:
        while any(t.is_alive() for t in pool):
            progress()
            time.sleep(PROGRESS_INTERVAL)
    except KeyboardInterrupt:
        if cancel is not None:
            cancel.cancel()
        raise

    if errors:
        raise errors[0]
    check_cancel(cancel)
    progress()


def scan_chd_directory(directory, skipped=None):
    """Returns (sorted .chd paths, total size) found anywhere below directory.

    Unreadable subdirectories and disk images that cannot be stat'ed (for
    example dangling links) are logged and left out. Their paths are
    appended to skipped when a list is given.
    """
    paths = []
    total = 0

    def on_walk_error(e):
        warn('cannot read CHD directory {}: {}'.format(e.filename, e))
        if skipped is not None:
            skipped.append(e.filename)

    for root, dirs, files in os.walk(directory, onerror=on_walk_error):
        for filename in files:
            if is_chd_file(filename):
                path = os.path.join(root, filename)
                try:
                    size = os.path.getsize(path)
                except OSError as e:
                    warn('skipping unreadable CHD file {}: {}'.format(path, e))
                    if skipped is not None:
                        skipped.append(path)
                    continue
                paths.append(path)
                total += size
    paths.sort()
    return paths, total


def list_chd_directories(chd_repository_path):
    with os.scandir(chd_repository_path) as it:
        return sorted(entry.path for entry in it if entry.is_dir())


def list_rom_files(rom_repository_path):
    with os.scandir(rom_repository_path) as it:
        return sorted(entry.path for entry in it if entry.is_file() and is_rom_file(entry.name))


def index_companion_blobs(chd_repository_path, progress=None, cancel=None, start=0, span=50, skipped=None):
    """Builds the CHD pre-index.

    Directories without any .chd file are dropped, so the length of the
    returned map is the CHD directory count. Unreadable entries below the
    repository root are skipped and appended to skipped; only a failure to
    list the root itself is raised.

    Returns:
        CaseInsensitiveDict of directory name -> (paths, total_size)
    """
    blob_index = CaseInsensitiveDict()
    directories = list_chd_directories(chd_repository_path)
    info('indexing {} CHD directories in {}'.format(len(directories), chd_repository_path))
    if not directories:
        return blob_index

    lock = threading.Lock()

    def handle_batch(batch):
        found = []
        missed = []
        for directory in batch:
            paths, total = scan_chd_directory(directory, missed)
            if paths:
                found.append((os.path.basename(directory), paths, total))
        with lock:
            for name, paths, total in found:
                blob_index[name] = (paths, total)
            if skipped is not None:
                skipped.extend(missed)

    def on_progress(finished):
        emit(progress, PHASE_CHD, scale(finished, len(directories), start, span), finished)

    run_batches(chunked(directories, CHD_SCAN_BATCH_SIZE), handle_batch,
                get_worker_count(io_bound=True), on_progress, cancel)
    info('found {} CHD directories with disk images'.format(len(blob_index)))
    return blob_index


def build_item(archive_path, blob_index=None, catalog_lookup=None, list_contents=False):
    """Creates the ScannedItem for one archive file."""
    name, ext = split_name(archive_path)
    st = os.stat(archive_path)
    item = ScannedItem(name=name, archive_path=archive_path,
                       archive_size=st.st_size, last_modified=st.st_mtime)
    if blob_index is not None:
        companion = blob_index.get(name)
        if companion is not None:
            item.attach_companion(*companion)
    if catalog_lookup:
        item.metadata = match(name, catalog_lookup)
    if list_contents and ext == '.zip':
        item.internal_files = get_zip_file_list(archive_path)
    return item


def scan_items(rom_repository_path, chd_repository_path=None, catalog_lookup=None,
               progress=None, cancel=None, index=None, list_contents=False):
    """Scans the repositories into an item index.

    Args:
        rom_repository_path: Flat directory holding the archives
        chd_repository_path: Optional directory of per-game CHD directories.
            Missing or empty means CHD matching is skipped.
        catalog_lookup: Optional name -> CatalogRecord map for inline matching
        progress: Optional progress sink
        cancel: Optional CancelToken
        index: ItemIndex to fill. It is cleared first. A new one is used
            when not given.
        list_contents: Also record the member names of zip archives

    Returns:
        ScanResult; files and directories that could not be read below
        either repository root are listed in its skipped field

    Raises:
        NotFoundError: If the ROM repository does not exist
        OSError: If a repository root itself cannot be listed
        ScanCancelled: If cancellation was requested
    """
    if not rom_repository_path or not os.path.isdir(rom_repository_path):
        raise NotFoundError('ROM repository', rom_repository_path)
    if index is None:
        index = ItemIndex()
    index.clear()

    has_chd = bool(chd_repository_path) and os.path.isdir(chd_repository_path)
    if chd_repository_path and not has_chd:
        warn('CHD repository {} does not exist, skipping CHD matching'.format(chd_repository_path))

    skipped = []
    skipped_lock = threading.Lock()
    blob_index = None
    rom_start = 0
    if has_chd:
        emit(progress, PHASE_CHD, 0)
        blob_index = index_companion_blobs(chd_repository_path, progress, cancel, 0, 50, skipped)
        rom_start = 50
    check_cancel(cancel)

    archives = list_rom_files(rom_repository_path)
    info('scanning {} ROM files in {}'.format(len(archives), rom_repository_path))
    emit(progress, PHASE_ROM, rom_start)

    def handle_batch(batch):
        items = []
        missed = []
        for path in batch:
            try:
                items.append(build_item(path, blob_index, catalog_lookup, list_contents))
            except OSError as e:
                # listed, then removed or made unreadable
                warn('skipping unreadable ROM file {}: {}'.format(path, e))
                missed.append(path)
        index.add_batch(items)
        if missed:
            with skipped_lock:
                skipped.extend(missed)

    def on_progress(finished):
        emit(progress, PHASE_ROM, scale(finished, len(archives), rom_start, 100 - rom_start), finished)

    if archives:
        run_batches(chunked(archives, SCAN_BATCH_SIZE), handle_batch,
                    get_worker_count(), on_progress, cancel)

    result = ScanResult(items=index.as_dict(),
                        companion_blob_directory_count=len(blob_index) if blob_index is not None else 0,
                        archive_count=len(archives),
                        skipped=sorted(skipped, key=str))
    emit(progress, PHASE_DONE, 100, len(result.items))
    info('scan complete: {} items, {} with CHDs, {} CHD directories'.format(
        len(result.items), result.items_with_companion_blobs, result.companion_blob_directory_count))
    if skipped:
        warn('{} unreadable files or directories were skipped'.format(len(skipped)))
    debug('{} archives listed, {} unique names'.format(len(archives), len(result.items)))
    return result


def count_items(rom_repository_path, chd_repository_path=None):
    """Pre-flight count: archives plus CHD directories holding disk images."""
    if not rom_repository_path or not os.path.isdir(rom_repository_path):
        raise NotFoundError('ROM repository', rom_repository_path)
    count = len(list_rom_files(rom_repository_path))
    if chd_repository_path and os.path.isdir(chd_repository_path):
        for directory in list_chd_directories(chd_repository_path):
            if scan_chd_directory(directory)[0]:
                count += 1
    return count
