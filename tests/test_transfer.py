"""
Tests for copy, verify and delete against the destination.
"""
import pytest
import os
import zlib
import zipfile

from romsel.errors import ScanCancelled
from romsel.models import ScannedItem, CatalogRecord, RomFile
from romsel.progress import CancelToken, CallbackProgress
from romsel.transfer import (
    validate_copy_operation, copy_items, verify_items, verify_item, delete_from_destination,
    zip_crc_table, CopyResult, VerifyReport
)
from romsel.utils import MAX_REPORT_DETAILS


def crc_of(data):
    return '%08x' % (zlib.crc32(data) & 0xffffffff)


@pytest.fixture
def repo_items(repositories):
    pacman = ScannedItem(name='pacman', archive_path=os.path.join(repositories.rom_dir, 'pacman.zip'),
                         archive_size=10000)
    kinst = ScannedItem(name='kinst', archive_path=os.path.join(repositories.rom_dir, 'kinst.zip'),
                        archive_size=3000,
                        companion_blob_paths=[os.path.join(repositories.chd_dir, 'kinst', 'kinst.chd')],
                        companion_blob_total_size=500)
    return [pacman, kinst]


class TestValidateCopy:

    def test_nothing_selected(self, repositories):
        assert validate_copy_operation([], repositories.dest_dir).errors == ['No ROMs selected']

    def test_no_destination(self, repo_items):
        result = validate_copy_operation(repo_items, '')
        assert not result.valid
        assert result.errors == ['Destination path is not configured']

    def test_valid(self, repo_items, repositories):
        """Sizes add up and the write probe is removed again."""
        result = validate_copy_operation(repo_items, repositories.dest_dir)
        assert result.valid
        assert result.required_bytes == 13500
        assert os.listdir(repositories.dest_dir) == []

    def test_missing_sources_warn(self, repositories):
        item = ScannedItem(name='gone', archive_path=os.path.join(repositories.rom_dir, 'gone.zip'),
                           companion_blob_paths=['/nowhere/gone.chd'])
        result = validate_copy_operation([item], repositories.dest_dir)
        assert result.valid
        assert len(result.warnings) == 2

    def test_not_enough_space(self, repo_items, repositories, mocker):
        """Free space below the required total is an error."""
        mocker.patch('romsel.transfer.get_free_space', return_value=100)
        result = validate_copy_operation(repo_items, repositories.dest_dir)
        assert not result.valid
        assert result.errors[0].startswith('Not enough free space')

    def test_unwritable_destination(self, repo_items, temp_dir, make_file):
        blocker = make_file(os.path.join(temp_dir, 'blocker'), 1)
        result = validate_copy_operation(repo_items, os.path.join(blocker, 'dest'))
        assert result.errors[0].startswith('Cannot write to destination directory')


class TestCopy:

    def test_layout(self, repo_items, repositories):
        """Archives land at the top level, CHDs under <name>/."""
        result = copy_items(repo_items, repositories.dest_dir)

        assert result.successful == 2
        assert result.failed == 0
        assert result.bytes_copied == 13500
        assert os.path.getsize(os.path.join(repositories.dest_dir, 'pacman.zip')) == 10000
        assert os.path.isfile(os.path.join(repositories.dest_dir, 'kinst', 'kinst.chd'))
        assert all(item.in_destination for item in repo_items)

    def test_one_failure_does_not_stop_the_rest(self, repo_items, repositories):
        missing = ScannedItem(name='gone', archive_path=os.path.join(repositories.rom_dir, 'gone.zip'))
        result = copy_items([missing] + repo_items, repositories.dest_dir)
        assert result.successful == 2
        assert result.failed == 1
        assert result.failures[0][0] == 'gone'
        assert missing.in_destination is False

    def test_verify_checksums(self, repo_items, repositories, mocker):
        """A CRC mismatch after copying counts as a failure."""
        mocker.patch('romsel.transfer.hashfile', side_effect=['00000001', '00000002'])
        result = copy_items(repo_items[:1], repositories.dest_dir, verify_checksums=True)
        assert result.failed == 1
        assert 'checksum mismatch' in result.failures[0][1]

    def test_progress_and_cancel(self, repo_items, repositories):
        reports = []
        copy_items(repo_items, repositories.dest_dir, progress=CallbackProgress(reports.append))
        assert reports[-1].percentage == 100

        cancel = CancelToken()
        cancel.cancel()
        with pytest.raises(ScanCancelled):
            copy_items(repo_items, repositories.dest_dir, cancel=cancel)

    def test_summary_is_capped(self):
        result = CopyResult(failed=MAX_REPORT_DETAILS + 5,
                            failures=[('g%d' % i, 'boom') for i in range(MAX_REPORT_DETAILS + 5)])
        lines = result.summary()
        assert len(lines) == MAX_REPORT_DETAILS + 2
        assert lines[-1] == '... and 5 more'


class TestVerify:

    @pytest.fixture
    def good_zip(self, temp_dir, make_zip):
        return make_zip(os.path.join(temp_dir, 'roms', 'pacman.zip'),
                        {'pacman.6e': b'first', 'pacman.6f': b'second'})

    def item_for(self, path, roms):
        record = CatalogRecord(name='pacman', rom_files=tuple(RomFile(name=n, crc=c) for n, c in roms))
        return ScannedItem(name='pacman', archive_path=path, metadata=record)

    def test_good(self, good_zip):
        item = self.item_for(good_zip, [('pacman.6e', crc_of(b'first')), ('pacman.6f', crc_of(b'second'))])
        assert verify_item(item) is None
        assert verify_item(item, deep=True) is None

    def test_bad_crc(self, good_zip):
        item = self.item_for(good_zip, [('pacman.6e', '12345678')])
        assert verify_item(item).startswith('Invalid CRC for pacman.6e')

    def test_missing_member(self, good_zip):
        item = self.item_for(good_zip, [('pacman.7h', '12345678')])
        assert verify_item(item) == 'missing rom pacman.7h'

    def test_member_names_ignore_case(self, good_zip):
        item = self.item_for(good_zip, [('PACMAN.6E', crc_of(b'first').upper())])
        assert verify_item(item) is None

    def test_simple_failures(self, temp_dir, make_file):
        assert verify_item(ScannedItem(name='x')) == 'No metadata available'
        assert verify_item(self.item_for(os.path.join(temp_dir, 'none.zip'), [])) == 'archive missing'
        empty = make_file(os.path.join(temp_dir, 'empty.zip'))
        assert verify_item(self.item_for(empty, [])) == 'archive is empty'
        junk = make_file(os.path.join(temp_dir, 'junk.zip'), 50)
        assert verify_item(self.item_for(junk, [])).startswith('corrupt zip')

    def test_missing_chd(self, good_zip):
        item = self.item_for(good_zip, [])
        item.companion_blob_paths = ['/nowhere/pacman.chd']
        assert verify_item(item) == 'CHD file missing: pacman.chd'

    def test_report(self, good_zip):
        good = self.item_for(good_zip, [('pacman.6e', crc_of(b'first'))])
        bad = ScannedItem(name='bad')
        report = verify_items([good, bad])
        assert report.total == 2
        assert report.verified == ['pacman']
        assert report.failed == 1
        assert report.summary()[0] == '1/2 items verified with no errors'

    def test_zip_crc_table(self, good_zip):
        table = zip_crc_table(good_zip)
        assert table['pacman.6e'] == crc_of(b'first')

    def test_empty_report(self):
        assert VerifyReport().summary() == ['0/0 items verified with no errors']


class TestDelete:

    def test_delete(self, repo_items, repositories):
        """Deleting removes the archive and the CHD directory and clears the flag."""
        copy_items(repo_items, repositories.dest_dir)
        result = delete_from_destination(repo_items, repositories.dest_dir)
        assert sorted(result.deleted) == ['kinst', 'pacman']
        assert os.listdir(repositories.dest_dir) == []
        assert not any(item.in_destination for item in repo_items)

    def test_delete_absent_is_fine(self, repo_items, repositories):
        result = delete_from_destination(repo_items, repositories.dest_dir)
        assert len(result.deleted) == 2
        assert result.failures == []

    def test_failure_is_collected(self, repo_items, repositories, mocker):
        copy_items(repo_items[:1], repositories.dest_dir)
        mocker.patch('romsel.transfer.os.remove', side_effect=PermissionError('locked'))
        result = delete_from_destination(repo_items[:1], repositories.dest_dir)
        assert result.failures == [('pacman', 'locked')]
        assert repo_items[0].in_destination is True
