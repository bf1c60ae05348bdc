#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Streaming reader for MAME -listxml style catalogs.

A full catalog is several hundred megabytes and well over forty thousand
machines, so the document is never loaded as a tree. The file is read in
chunks and each top-level <machine> (or DAT-style <game>) element is cut out
of the stream and parsed on its own with ElementTree. A fragment that fails
to parse is dropped and reading resumes at the next element, so one broken
entry never costs the rest of the catalog.

BIOS and device machines are filtered here, before their bodies are parsed.
Nothing downstream ever sees them.
"""

import os
import re
import xml.etree.ElementTree

from .errors import NotFoundError
from .index import make_lookup
from .models import CatalogRecord, RomFile, DiskFile
from .progress import emit, check_cancel, scale
from .utils import (
    info, debug,
    CATALOG_GAME_TAGS, CATALOG_PROGRESS_INTERVAL, CATALOG_READ_CHUNK_SIZE
)

_TAG_ALTERNATION = '|'.join(re.escape(t) for t in CATALOG_GAME_TAGS)
_START_TAG_RE = re.compile(
    r'<(' + _TAG_ALTERNATION + r')(?=[\s/>])(?:[^>"\']|"[^"]*"|\'[^\']*\')*?(/?)>')
_END_TAG_RES = dict((t, re.compile(r'</' + re.escape(t) + r'\s*>')) for t in CATALOG_GAME_TAGS)

TRUE_VALUES = ('yes', 'true', '1')


def iter_game_fragments(xml_file_path, chunk_size=CATALOG_READ_CHUNK_SIZE):
    """Yields the raw text of each top-level game element, in document order.

    Memory use is bounded by the largest single element. When an element has
    no end tag before the next element starts, the broken text is yielded on
    its own (it will fail to parse) and reading continues at the new element.

    Args:
        xml_file_path: Path to the catalog document
        chunk_size: Characters read from the file per refill

    Yields:
        tuple of (start_tag_text, fragment_text)
    """
    with open(xml_file_path, 'r', encoding='utf-8', errors='replace') as f:
        buf = ''
        pos = 0
        eof = False

        def refill(keep_from):
            nonlocal buf, pos, eof
            buf = buf[keep_from:]
            pos = 0
            chunk = f.read(chunk_size)
            if not chunk:
                eof = True
            buf += chunk

        while True:
            m = _START_TAG_RE.search(buf, pos)
            if m is None:
                if eof:
                    return
                # a start tag may be split across the chunk boundary
                tail = buf.rfind('<', pos)
                refill(tail if tail >= 0 else len(buf))
                continue

            start_tag = m.group(0)
            if m.group(2) == '/':
                yield start_tag, start_tag
                pos = m.end()
                continue

            end_m = _END_TAG_RES[m.group(1)].search(buf, m.end())
            next_start = _START_TAG_RE.search(buf, m.end())

            if next_start is not None and (end_m is None or next_start.start() < end_m.start()):
                # missing end tag, resynchronize on the next element
                yield start_tag, buf[m.start():next_start.start()]
                pos = next_start.start()
                continue

            if end_m is None:
                if eof:
                    yield start_tag, buf[m.start():]
                    return
                refill(m.start())
                continue

            yield start_tag, buf[m.start():end_m.end()]
            pos = end_m.end()


def count_catalog_entries(xml_file_path, cancel=None):
    """Counts top-level game elements. Used to turn progress into a percentage."""
    if not os.path.isfile(xml_file_path):
        raise NotFoundError('MAME XML file', xml_file_path)
    count = 0
    for _ in iter_game_fragments(xml_file_path):
        count += 1
        if count % CATALOG_PROGRESS_INTERVAL == 0:
            check_cancel(cancel)
    return count


def _is_true(value):
    return (value or '').strip().lower() in TRUE_VALUES


def _read_start_attributes(start_tag):
    if not start_tag.endswith('/>'):
        start_tag = start_tag[:-1] + '/>'
    return xml.etree.ElementTree.fromstring(start_tag).attrib


def _parse_size(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def parse_rom_element(element):
    name = element.get('name')
    if not name:
        return None
    return RomFile(
        name=name,
        size=_parse_size(element.get('size')),
        crc=(element.get('crc') or '').lower(),
        sha1=(element.get('sha1') or '').lower(),
        md5=(element.get('md5') or '').lower(),
    )


def parse_disk_element(element):
    name = element.get('name')
    if not name:
        return None
    return DiskFile(
        name=name,
        sha1=(element.get('sha1') or '').lower(),
        md5=(element.get('md5') or '').lower(),
    )


def parse_game_element(element):
    """Builds a CatalogRecord from a parsed game element.

    Returns None for BIOS / device entries and for entries without a name.
    """
    name = (element.get('name') or '').strip()
    if not name:
        return None
    if _is_true(element.get('isbios')) or _is_true(element.get('isdevice')):
        return None

    texts = {}
    roms = []
    disks = []
    for child in element:
        if child.tag in ('description', 'year', 'manufacturer', 'category'):
            if child.tag not in texts:
                texts[child.tag] = (child.text or '').strip()
        elif child.tag == 'rom':
            rom = parse_rom_element(child)
            if rom is not None:
                roms.append(rom)
        elif child.tag == 'disk':
            disk = parse_disk_element(child)
            if disk is not None:
                disks.append(disk)
        # anything else (driver, input, display, ...) is ignored

    return CatalogRecord(
        name=name,
        description=texts.get('description', ''),
        year=texts.get('year', ''),
        manufacturer=texts.get('manufacturer', ''),
        category=texts.get('category', ''),
        clone_of=(element.get('cloneof') or '').strip(),
        rom_files=tuple(roms),
        disk_files=tuple(disks),
    )


class CatalogParser:
    """Parses a catalog into CatalogRecords and keeps per-pass statistics.

    Attributes:
        parsed: Records yielded by the last pass
        skipped: BIOS, device and nameless entries dropped
        malformed: Fragments that could not be parsed and were dropped
    """

    def __init__(self):
        self.parsed = 0
        self.skipped = 0
        self.malformed = 0

    def parse(self, xml_file_path, progress=None, cancel=None):
        """Yields CatalogRecords in document order.

        Args:
            xml_file_path: Path to the catalog document
            progress: Optional progress sink. When given, a counting pass runs
                first so that percentages are exact.
            cancel: Optional CancelToken, checked every
                CATALOG_PROGRESS_INTERVAL elements

        Raises:
            NotFoundError: If the catalog file does not exist
            ScanCancelled: If cancellation was requested
        """
        if not os.path.isfile(xml_file_path):
            raise NotFoundError('MAME XML file', xml_file_path)

        self.parsed = self.skipped = self.malformed = 0
        total = 0
        if progress is not None:
            emit(progress, 'Counting catalog entries...', 0)
            total = count_catalog_entries(xml_file_path, cancel)
            emit(progress, 'Loading MAME XML...', 0, 0)

        processed = 0
        for start_tag, fragment in iter_game_fragments(xml_file_path):
            processed += 1
            if processed % CATALOG_PROGRESS_INTERVAL == 0:
                check_cancel(cancel)
                if total:
                    emit(progress, 'Loading MAME XML...', scale(processed, total), processed)

            record = self._parse_fragment(start_tag, fragment)
            if record is not None:
                self.parsed += 1
                yield record

        emit(progress, 'Loading MAME XML...', 100, processed)
        info('catalog parsed: {} games, {} skipped, {} malformed'.format(
            self.parsed, self.skipped, self.malformed))

    def _parse_fragment(self, start_tag, fragment):
        try:
            attrs = _read_start_attributes(start_tag)
        except xml.etree.ElementTree.ParseError as e:
            self.malformed += 1
            debug('malformed catalog element {!r}: {}'.format(start_tag[:80], e))
            return None

        # decide on identity and flags before paying for the body
        if not (attrs.get('name') or '').strip() or _is_true(attrs.get('isbios')) or _is_true(attrs.get('isdevice')):
            self.skipped += 1
            return None

        try:
            element = xml.etree.ElementTree.fromstring(fragment)
            return parse_game_element(element)
        except (xml.etree.ElementTree.ParseError, ValueError) as e:
            self.malformed += 1
            debug('malformed catalog element "{}": {}'.format(attrs.get('name'), e))
            return None


def parse_catalog(xml_file_path, progress=None, cancel=None):
    """Parses a catalog file and returns the list of usable records."""
    return list(CatalogParser().parse(xml_file_path, progress, cancel))


def build_catalog_lookup(records):
    """Case-insensitive name -> CatalogRecord map. Later duplicates win."""
    return make_lookup((record.name, record) for record in records)


def load_catalog(xml_file_path, progress=None, cancel=None):
    """Parses a catalog straight into a lookup without keeping the list."""
    info('loading MAME XML from {}...'.format(xml_file_path))
    return build_catalog_lookup(CatalogParser().parse(xml_file_path, progress, cancel))
