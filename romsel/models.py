#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Data types shared by the catalog parser, scanner and cache.

CatalogRecord and its file descriptors are immutable once parsed. ScannedItem
is the mutable index entry; only its in_destination and is_selected flags
change after a scan. Both serialize to the camelCase shape stored in the
cache file.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .utils import DEFAULT_DISK_ESTIMATED_SIZE, UNKNOWN_LABEL


@dataclass(frozen=True)
class RomFile:
    name: str
    size: int = 0
    crc: str = ''
    sha1: str = ''
    md5: str = ''

    def to_dict(self):
        return {'name': self.name, 'size': self.size, 'crc': self.crc,
                'sha1': self.sha1, 'md5': self.md5}

    @classmethod
    def from_dict(cls, data):
        return cls(name=data['name'], size=int(data.get('size') or 0),
                   crc=data.get('crc') or '', sha1=data.get('sha1') or '',
                   md5=data.get('md5') or '')


@dataclass(frozen=True)
class DiskFile:
    name: str
    sha1: str = ''
    md5: str = ''
    estimated_size: int = DEFAULT_DISK_ESTIMATED_SIZE

    def to_dict(self):
        return {'name': self.name, 'sha1': self.sha1, 'md5': self.md5,
                'estimatedSize': self.estimated_size}

    @classmethod
    def from_dict(cls, data):
        return cls(name=data['name'], sha1=data.get('sha1') or '',
                   md5=data.get('md5') or '',
                   estimated_size=int(data.get('estimatedSize', DEFAULT_DISK_ESTIMATED_SIZE)))


@dataclass(frozen=True)
class CatalogRecord:
    """One game entry of the reference catalog.

    Attributes:
        name: Unique short name, compared case-insensitively.
        clone_of: Name of the parent game; empty for parents.
        is_bios, is_device: Set by the catalog. Records carrying either flag
            are dropped by the parser, so in practice both are False.
        rom_files: Constituent ROM images in catalog order.
        disk_files: Disk images (CHD companions) in catalog order.
    """
    name: str
    description: str = ''
    year: str = ''
    manufacturer: str = ''
    category: str = ''
    clone_of: str = ''
    is_bios: bool = False
    is_device: bool = False
    rom_files: Tuple[RomFile, ...] = ()
    disk_files: Tuple[DiskFile, ...] = ()

    @property
    def is_clone(self):
        return self.clone_of != ''

    @property
    def has_companion_blob(self):
        return len(self.disk_files) > 0

    @property
    def total_rom_size(self):
        return sum(r.size for r in self.rom_files)

    @property
    def total_disk_size(self):
        return sum(d.estimated_size for d in self.disk_files)

    def to_dict(self):
        return {
            'name': self.name,
            'description': self.description,
            'year': self.year,
            'manufacturer': self.manufacturer,
            'category': self.category,
            'cloneOf': self.clone_of,
            'isBios': self.is_bios,
            'isDevice': self.is_device,
            'romFiles': [r.to_dict() for r in self.rom_files],
            'diskFiles': [d.to_dict() for d in self.disk_files],
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            name=data['name'],
            description=data.get('description') or '',
            year=data.get('year') or '',
            manufacturer=data.get('manufacturer') or '',
            category=data.get('category') or '',
            clone_of=data.get('cloneOf') or '',
            is_bios=bool(data.get('isBios', False)),
            is_device=bool(data.get('isDevice', False)),
            rom_files=tuple(RomFile.from_dict(r) for r in data.get('romFiles') or []),
            disk_files=tuple(DiskFile.from_dict(d) for d in data.get('diskFiles') or []),
        )


@dataclass
class ScannedItem:
    """A ROM archive found on disk, plus its CHD companions if any."""
    name: str
    archive_path: Optional[str] = None
    archive_size: int = 0
    last_modified: float = 0.0
    companion_blob_paths: List[str] = field(default_factory=list)
    companion_blob_total_size: int = 0
    internal_files: List[str] = field(default_factory=list)
    metadata: Optional[CatalogRecord] = None
    in_destination: bool = False
    is_selected: bool = False

    @property
    def total_size(self):
        return self.archive_size + self.companion_blob_total_size

    @property
    def has_archive(self):
        return bool(self.archive_path)

    @property
    def has_companion_blobs(self):
        return len(self.companion_blob_paths) > 0

    @property
    def has_metadata(self):
        return self.metadata is not None

    @property
    def display_name(self):
        if self.metadata is not None and self.metadata.description:
            return self.metadata.description
        return self.name

    @property
    def display_manufacturer(self):
        if self.metadata is not None and self.metadata.manufacturer:
            return self.metadata.manufacturer
        return UNKNOWN_LABEL

    @property
    def display_year(self):
        if self.metadata is not None and self.metadata.year:
            return self.metadata.year
        return UNKNOWN_LABEL

    @property
    def is_clone(self):
        return self.metadata.is_clone if self.metadata is not None else False

    @property
    def is_bios(self):
        return self.metadata.is_bios if self.metadata is not None else False

    @property
    def is_device(self):
        return self.metadata.is_device if self.metadata is not None else False

    def attach_companion(self, paths, total_size):
        self.companion_blob_paths = list(paths)
        self.companion_blob_total_size = total_size

    def to_dict(self):
        return {
            'name': self.name,
            'romFilePath': self.archive_path,
            'romFileSize': self.archive_size,
            'lastModified': self.last_modified,
            'chdFiles': list(self.companion_blob_paths),
            'totalChdSize': self.companion_blob_total_size,
            'internalFiles': list(self.internal_files),
            'inDestination': self.in_destination,
            'isSelected': self.is_selected,
            'metadata': self.metadata.to_dict() if self.metadata is not None else None,
        }

    @classmethod
    def from_dict(cls, data):
        metadata = data.get('metadata')
        return cls(
            name=data['name'],
            archive_path=data.get('romFilePath'),
            archive_size=int(data.get('romFileSize') or 0),
            last_modified=float(data.get('lastModified') or 0.0),
            companion_blob_paths=list(data.get('chdFiles') or []),
            companion_blob_total_size=int(data.get('totalChdSize') or 0),
            internal_files=list(data.get('internalFiles') or []),
            metadata=CatalogRecord.from_dict(metadata) if metadata else None,
            in_destination=bool(data.get('inDestination', False)),
            is_selected=bool(data.get('isSelected', False)),
        )
