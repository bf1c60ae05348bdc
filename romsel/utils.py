#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import os
import logging
import zipfile
import hashlib
import zlib
import tempfile

import psutil

# Basic constants
__appname__ = 'romselector'
__version__ = '1.2.0'
__licence__ = 'GPLv3'

# Logging constants
LOG_FILENAME = 'romselector.log'

# File and Directory Constants
APP_DIR_NAME = 'romselector'
SETTINGS_FILENAME = 'settings.json'
CACHE_FILENAME = 'rom_cache.json'
SELECTION_FILE_EXT = '.romsel.json'

# Cache constants
CACHE_FORMAT_VERSION = 1
CACHE_MAX_AGE_DAYS = 30
CACHE_LOAD_BATCH_SIZE = 500

# Scan constants
SCAN_BATCH_SIZE = 100           # archive files per worker batch
CHD_SCAN_BATCH_SIZE = 25        # blob directories per worker batch
PROGRESS_INTERVAL = 0.1         # seconds between progress reports
CATALOG_PROGRESS_INTERVAL = 1000
CATALOG_READ_CHUNK_SIZE = 1024 * 1024

SELECTION_FORMAT_VERSION = '1.0'
MAX_REPORT_DETAILS = 20

# Lists
ROM_EXTENSIONS = ['.zip', '.7z', '.rar']
CHD_EXTENSIONS = ['.chd']
CATALOG_GAME_TAGS = ['machine', 'game']

DEFAULT_DISK_ESTIMATED_SIZE = 700000000  # ~700MB per disk image when unknown
UNKNOWN_LABEL = 'Unknown'

rootLogger = logging.getLogger('romsel')


def log_exception(msg):
    rootLogger.error(msg, exc_info=True)

def info(msg):
    rootLogger.info(msg)

def warn(msg):
    rootLogger.warning(msg)

def error(msg):
    rootLogger.error(msg)

def debug(msg):
    rootLogger.debug(msg)


class AttrDict(dict):
    """A dictionary that can be accessed with dot notation."""
    def __init__(self, *args, **kwargs):
        super(AttrDict, self).__init__(*args, **kwargs)
        self.__dict__ = self


class AtomicWriter:
    """A context manager that buffers text and swaps it into place on exit.

    The content is written to a temporary file in the destination directory
    and moved over the target with os.replace, so an interrupted write never
    damages the previous file. Nothing is written if the block raises.
    """
    def __init__(self, path):
        self.path = path
        self.io = None

    def __enter__(self):
        from io import StringIO
        self.io = StringIO()
        return self.io

    def __exit__(self, type, value, traceback):
        content = self.io.getvalue()
        self.io.close()
        if type is not None:
            return False

        target_dir = os.path.dirname(os.path.abspath(self.path))
        if not os.path.isdir(target_dir):
            os.makedirs(target_dir)
        fd, tmp_path = tempfile.mkstemp(prefix='.tmp-', dir=target_dir)
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.remove(tmp_path)
            except OSError:
                pass
            raise
        return False


def hashfile(file, algorithm='md5'):
    """Calculates a checksum of a file.

    algorithm is 'crc32' or any hashlib name. CRC32 is returned as the
    8 digit lower-case hex string catalogs use.
    """
    BLOCKSIZE = 65536
    if algorithm == 'crc32':
        crc = 0
        with open(file, 'rb') as afile:
            buf = afile.read(BLOCKSIZE)
            while len(buf) > 0:
                crc = zlib.crc32(buf, crc)
                buf = afile.read(BLOCKSIZE)
        return format_crc(crc)

    hasher = hashlib.new(algorithm)
    with open(file, 'rb') as afile:
        buf = afile.read(BLOCKSIZE)
        while len(buf) > 0:
            hasher.update(buf)
            buf = afile.read(BLOCKSIZE)
    return hasher.hexdigest()

def format_crc(value):
    return '%08x' % (value & 0xffffffff)

def pretty_size(b):
    """Returns a purely human readable size string."""
    if b < 1024:
        return '%iB' % b
    elif b < 1024 * 1024:
        return '%.2fKB' % (b / 1024.0)
    elif b < 1024 * 1024 * 1024:
        return '%.2fMB' % (b / 1024.0 / 1024.0)
    else:
        return '%.2fGB' % (b / 1024.0 / 1024.0 / 1024.0)

def split_name(filename):
    """Returns (stem, lower-case extension) of a file name."""
    stem, ext = os.path.splitext(os.path.basename(filename))
    return stem, ext.lower()

def is_rom_file(filename):
    return split_name(filename)[1] in ROM_EXTENSIONS

def is_chd_file(filename):
    return split_name(filename)[1] in CHD_EXTENSIONS

def check_zipfile(filepath):
    """Tests integrity of a zip file."""
    try:
        with zipfile.ZipFile(filepath) as z:
            ret = z.testzip()
            if ret is not None:
                return False
        return True
    except (zipfile.BadZipFile, zipfile.LargeZipFile):
         return False
    except NotImplementedError:
        raise # Compression not supported

def get_zip_file_list(filepath):
    """Lists member names of a zip archive, empty if it can't be read."""
    try:
        with zipfile.ZipFile(filepath) as z:
            return [member.filename for member in z.infolist() if not member.is_dir()]
    except (zipfile.BadZipFile, OSError) as e:
        debug('could not list archive {}: {}'.format(filepath, e))
        return []

def get_worker_count(io_bound=False):
    """Worker pool size from the available hardware parallelism.

    I/O bound phases (large blob files) get half the logical CPUs.
    """
    count = psutil.cpu_count(logical=True) or 1
    if io_bound:
        count = count // 2
    return max(1, count)

def get_free_space(path):
    """Free bytes on the volume holding path (or its nearest existing parent)."""
    probe = os.path.abspath(path)
    while not os.path.exists(probe):
        parent = os.path.dirname(probe)
        if parent == probe:
            break
        probe = parent
    return psutil.disk_usage(probe).free

def chunked(seq, size):
    """Splits a list into consecutive batches of at most size elements."""
    return [seq[i:i + size] for i in range(0, len(seq), size)]
