"""
Shared test fixtures for romselector test suite.
"""
import pytest
import os
import sys
import tempfile
import shutil
import zipfile

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

SAMPLE_CATALOG = '''<?xml version="1.0"?>
<!DOCTYPE mame [
<!ELEMENT mame (machine+)>
\t<!ATTLIST mame build CDATA #IMPLIED>
<!ELEMENT machine (description, year?, manufacturer?, rom*, disk*)>
\t<!ATTLIST machine name CDATA #REQUIRED>
]>
<mame build="0.250 (mame0250)" debug="no" mameconfig="10">
\t<machine name="pacman" sourcefile="pacman/pacman.cpp" cloneof="puckman" romof="puckman">
\t\t<description>Pac-Man</description>
\t\t<year>1980</year>
\t\t<manufacturer>Namco (Midway license)</manufacturer>
\t\t<rom name="pacman.6e" size="4096" crc="abc123" sha1="e87e059c5be45753f7e9f33dff851f16d6751181" region="maincpu" offset="0"/>
\t\t<rom name="pacman.6f" size="4096" crc="1a6fb2d4" sha1="674d3a7f00d8be5e38b1fdc208ebef5a92d38329" region="maincpu" offset="1000"/>
\t\t<driver status="good" emulation="good"/>
\t</machine>
\t<machine name="puckman" sourcefile="pacman/pacman.cpp">
\t\t<description>PuckMan (Japan set 1)</description>
\t\t<year>1980</year>
\t\t<manufacturer>Namco</manufacturer>
\t\t<rom name="pm1_prg1.6e" size="2048" crc="f36e88ab"/>
\t</machine>
\t<machine name="neogeo" sourcefile="neogeo/neogeo.cpp" isbios="yes">
\t\t<description>Neo-Geo</description>
\t\t<year>1990</year>
\t\t<manufacturer>SNK</manufacturer>
\t\t<rom name="sp-s2.sp1" size="131072" crc="9036d879"/>
\t</machine>
\t<machine name="z80" sourcefile="src/devices/cpu/z80/z80.cpp" isdevice="yes" runnable="no">
\t\t<description>Zilog Z80</description>
\t</machine>
\t<machine name="kinst" sourcefile="midway/kinst.cpp">
\t\t<description>Killer Instinct (v1.5d)</description>
\t\t<year>1994</year>
\t\t<manufacturer>Rare / Nintendo</manufacturer>
\t\t<rom name="ki-l15d.u98" size="524288" crc="7b65f38b"/>
\t\t<disk name="kinst" sha1="81d833236e994528d1482979261401b198d1ca53" region="ata:0:hdd" index="0" writable="no"/>
\t</machine>
</mame>
'''


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    tmpdir = tempfile.mkdtemp()
    yield tmpdir
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def make_file():
    """Returns a helper that writes a file of the given size (or content)."""
    def _make_file(path, size=0, content=None):
        directory = os.path.dirname(path)
        if directory and not os.path.isdir(directory):
            os.makedirs(directory)
        with open(path, 'wb') as f:
            f.write(content if content is not None else b'\0' * size)
        return path
    return _make_file


@pytest.fixture
def make_zip():
    """Returns a helper that writes a real zip with the given members."""
    def _make_zip(path, members):
        directory = os.path.dirname(path)
        if directory and not os.path.isdir(directory):
            os.makedirs(directory)
        with zipfile.ZipFile(path, 'w') as z:
            for name, data in members.items():
                z.writestr(name, data)
        return path
    return _make_zip


@pytest.fixture
def catalog_file(temp_dir):
    """A small MAME style catalog with a parent, a clone, a BIOS, a device and a CHD game."""
    path = os.path.join(temp_dir, 'mame.xml')
    with open(path, 'w', encoding='utf-8') as f:
        f.write(SAMPLE_CATALOG)
    return path


@pytest.fixture
def pacman_record():
    from romsel.models import CatalogRecord, RomFile
    return CatalogRecord(
        name='pacman',
        description='Pac-Man',
        year='1980',
        manufacturer='Namco (Midway license)',
        clone_of='puckman',
        rom_files=(RomFile(name='pacman.6e', size=4096, crc='abc123'),),
    )


@pytest.fixture
def sample_items(pacman_record):
    """Three scanned items: a matched clone, an unmatched archive and a CHD game."""
    from romsel.models import ScannedItem, CatalogRecord, DiskFile
    kinst = CatalogRecord(name='kinst', description='Killer Instinct (v1.5d)', year='1994',
                          manufacturer='Rare / Nintendo', disk_files=(DiskFile(name='kinst'),))
    return [
        ScannedItem(name='pacman', archive_path='/roms/pacman.zip', archive_size=10000,
                    last_modified=1700000000.0, metadata=pacman_record),
        ScannedItem(name='homebrew', archive_path='/roms/homebrew.7z', archive_size=2048,
                    last_modified=1700000001.0),
        ScannedItem(name='kinst', archive_path='/roms/kinst.zip', archive_size=30000,
                    last_modified=1700000002.0, companion_blob_paths=['/chds/kinst/kinst.chd'],
                    companion_blob_total_size=500, metadata=kinst),
    ]


@pytest.fixture
def repositories(temp_dir, catalog_file, make_file):
    """ROM repository, CHD repository and an empty destination on disk."""
    from romsel.utils import AttrDict
    rom_dir = os.path.join(temp_dir, 'roms')
    chd_dir = os.path.join(temp_dir, 'chds')
    dest_dir = os.path.join(temp_dir, 'dest')
    make_file(os.path.join(rom_dir, 'pacman.zip'), 10000)
    make_file(os.path.join(rom_dir, 'kinst.zip'), 3000)
    make_file(os.path.join(chd_dir, 'kinst', 'kinst.chd'), 500)
    os.makedirs(dest_dir)
    return AttrDict(rom_dir=rom_dir, chd_dir=chd_dir, dest_dir=dest_dir, catalog=catalog_file, root=temp_dir)


@pytest.fixture
def settings(repositories):
    """Valid settings pointing at the repositories fixture."""
    from romsel.config import default_settings
    s = default_settings()
    s.mame_xml_path = repositories.catalog
    s.rom_repository_path = repositories.rom_dir
    s.chd_repository_path = repositories.chd_dir
    s.destination_path = repositories.dest_dir
    return s
