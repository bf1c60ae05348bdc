"""
Tests for shared helpers, the item index and progress reporting.
"""
import pytest
import os
import threading
import zlib

from romsel.index import ItemIndex, make_lookup
from romsel.models import ScannedItem
from romsel.progress import LogProgress, ScanProgress, scale
from romsel.utils import (
    AtomicWriter, hashfile, split_name, is_rom_file, is_chd_file, pretty_size,
    chunked, get_worker_count, get_free_space, format_crc
)


class TestFileHelpers:

    def test_crc32(self, temp_dir, make_file):
        path = make_file(os.path.join(temp_dir, 'a.bin'), content=b'pacman')
        assert hashfile(path, 'crc32') == format_crc(zlib.crc32(b'pacman'))
        assert len(hashfile(path, 'md5')) == 32

    def test_names(self):
        assert split_name('/roms/PacMan.ZIP') == ('PacMan', '.zip')
        assert is_rom_file('x.7z') and is_rom_file('x.RAR')
        assert not is_rom_file('x.chd')
        assert is_chd_file('disk.CHD')

    def test_pretty_size(self):
        assert pretty_size(500) == '500B'
        assert pretty_size(2048) == '2.00KB'
        assert pretty_size(3 * 1024 * 1024) == '3.00MB'

    def test_chunked(self):
        assert chunked([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]
        assert chunked([], 3) == []

    def test_worker_count(self, mocker):
        """Worker counts follow the logical CPU count and never drop below one."""
        mocker.patch('romsel.utils.psutil.cpu_count', return_value=8)
        assert get_worker_count() == 8
        assert get_worker_count(io_bound=True) == 4
        mocker.patch('romsel.utils.psutil.cpu_count', return_value=None)
        assert get_worker_count(io_bound=True) == 1

    def test_free_space_of_missing_path(self, temp_dir):
        assert get_free_space(os.path.join(temp_dir, 'not', 'yet')) > 0


class TestAtomicWriter:

    def test_writes(self, temp_dir):
        path = os.path.join(temp_dir, 'sub', 'out.json')
        with AtomicWriter(path) as w:
            w.write('{}')
        with open(path) as r:
            assert r.read() == '{}'

    def test_error_in_block_keeps_old_content(self, temp_dir):
        path = os.path.join(temp_dir, 'out.json')
        with AtomicWriter(path) as w:
            w.write('old')
        with pytest.raises(RuntimeError):
            with AtomicWriter(path) as w:
                w.write('new')
                raise RuntimeError('boom')
        with open(path) as r:
            assert r.read() == 'old'
        assert os.listdir(temp_dir) == ['out.json']


class TestItemIndex:

    def test_case_insensitive(self):
        index = ItemIndex()
        index.add_batch([ScannedItem(name='PacMan')])
        assert 'pacman' in index
        assert index['PACMAN'].name == 'PacMan'
        assert index.names() == ['PacMan']

    def test_same_name_overwrites(self):
        index = ItemIndex()
        index.add_batch([ScannedItem(name='pacman', archive_size=1)])
        index.add_batch([ScannedItem(name='PACMAN', archive_size=2)])
        assert len(index) == 1
        assert index['pacman'].archive_size == 2

    def test_replace_clear_and_snapshot(self):
        index = ItemIndex()
        index.add_batch([ScannedItem(name='a')])
        index.replace([ScannedItem(name='b'), ScannedItem(name='c')])
        snapshot = index.as_dict()
        index.clear()
        assert len(index) == 0
        assert sorted(snapshot) == ['b', 'c']
        assert index.get('b') is None

    def test_lookups_wait_for_writer(self):
        """get, in, [] and len block while a writer holds the lock."""
        index = ItemIndex()
        index.add_batch([ScannedItem(name='pacman')])
        results = []

        def read():
            results.append(index.get('PACMAN').name)
            results.append('pacman' in index)
            results.append(index['pacman'].name)
            results.append(len(index))

        index.lock.acquire()
        try:
            reader = threading.Thread(target=read)
            reader.start()
            reader.join(0.2)
            assert reader.is_alive()
            assert results == []
        finally:
            index.lock.release()
        reader.join(5)
        assert results == ['pacman', True, 'pacman', 1]

    def test_make_lookup(self):
        assert make_lookup([('Kinst', 1)])['KINST'] == 1


class TestProgress:

    def test_scale(self):
        assert scale(0, 4) == 0
        assert scale(2, 4, 50, 50) == 75
        assert scale(0, 0, 50, 50) == 100

    def test_log_progress_skips_repeats(self, mocker):
        logged = mocker.patch('romsel.progress.info')
        sink = LogProgress(step=10)
        for percentage in (1, 2, 5, 12, 12, 100):
            sink.report(ScanProgress('Scanning ROM files...', percentage))
        assert logged.call_count == 3
