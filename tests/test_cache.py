"""
Tests for the scan cache.
"""
import pytest
import os
import json
import datetime

from romsel.cache import (
    save_cache, load_cache, validate_snapshot, build_snapshot, get_cache_info, clear_cache
)
from romsel.errors import ScanCancelled
from romsel.index import ItemIndex
from romsel.progress import CancelToken, CallbackProgress
from romsel.utils import CACHE_FORMAT_VERSION


@pytest.fixture
def cache_path(temp_dir):
    return os.path.join(temp_dir, 'state', 'rom_cache.json')


def rewrite(cache_path, **changes):
    with open(cache_path, 'r', encoding='utf-8') as r:
        data = json.load(r)
    data.update(changes)
    with open(cache_path, 'w', encoding='utf-8') as w:
        json.dump(data, w)


class TestRoundTrip:

    def test_save_then_load(self, sample_items, settings, cache_path):
        """Items come back field for field, with in_destination cleared."""
        sample_items[0].in_destination = True
        sample_items[0].is_selected = True
        assert save_cache(sample_items, settings, 4, cache_path).saved

        result = load_cache(settings, cache_path)

        assert result.valid
        assert result.reason == ''
        assert result.companion_blob_directory_count == 4
        loaded = dict((i.name, i) for i in result.items)
        assert set(loaded) == {'pacman', 'homebrew', 'kinst'}
        assert loaded['pacman'].in_destination is False
        assert loaded['pacman'].is_selected is True
        sample_items[0].in_destination = False
        for original in sample_items:
            assert loaded[original.name] == original

    def test_loads_into_index(self, sample_items, settings, cache_path):
        """A supplied index is cleared and filled."""
        save_cache(sample_items, settings, 1, cache_path)
        index = ItemIndex()
        index.add_batch(sample_items[:1])
        load_cache(settings, cache_path, index=index)
        assert len(index) == 3
        assert index['KINST'].companion_blob_total_size == 500

    def test_file_layout(self, sample_items, settings, cache_path):
        """The file uses the documented camelCase keys."""
        save_cache(sample_items, settings, 2, cache_path)
        with open(cache_path, 'r', encoding='utf-8') as r:
            data = json.load(r)
        assert set(data) == {'version', 'createdAt', 'romRepositoryPath', 'chdRepositoryPath',
                             'mameXmlPath', 'scannedRoms', 'totalChdDirectories'}
        assert data['version'] == CACHE_FORMAT_VERSION
        assert data['totalChdDirectories'] == 2
        assert data['scannedRoms']['pacman']['romFileSize'] == 10000
        assert data['scannedRoms']['pacman']['metadata']['romFiles'][0]['crc'] == 'abc123'

    def test_batches_and_progress(self, settings, cache_path, mocker):
        """Transfer reports progress per batch and ends at 100."""
        from romsel.models import ScannedItem
        mocker.patch('romsel.cache.CACHE_LOAD_BATCH_SIZE', 2)
        items = [ScannedItem(name='g%d' % i) for i in range(5)]
        save_cache(items, settings, 0, cache_path)
        reports = []
        result = load_cache(settings, cache_path, progress=CallbackProgress(reports.append))
        assert len(result.items) == 5
        assert [r.percentage for r in reports] == [0, 33, 66, 100, 100]

    def test_cancel_during_load(self, sample_items, settings, cache_path):
        save_cache(sample_items, settings, 0, cache_path)
        cancel = CancelToken()
        cancel.cancel()
        with pytest.raises(ScanCancelled):
            load_cache(settings, cache_path, cancel=cancel)


class TestInvalidation:

    def test_version_mismatch(self, sample_items, settings, cache_path):
        """A snapshot from the previous format version is rejected."""
        save_cache(sample_items, settings, 0, cache_path)
        rewrite(cache_path, version=CACHE_FORMAT_VERSION - 1)
        result = load_cache(settings, cache_path)
        assert result.items is None
        assert result.reason == 'version mismatch'

    @pytest.mark.parametrize('key,reason', [
        ('rom_repository_path', 'ROM repository path changed'),
        ('chd_repository_path', 'CHD repository path changed'),
        ('mame_xml_path', 'MAME XML path changed'),
    ])
    def test_path_changed(self, sample_items, settings, cache_path, key, reason):
        """Changing any one source path invalidates the cache."""
        save_cache(sample_items, settings, 0, cache_path)
        settings[key] = settings[key] + '_moved'
        result = load_cache(settings, cache_path)
        assert not result.valid
        assert result.reason == reason

    def test_trailing_separator_counts_as_changed(self, sample_items, settings, cache_path):
        """Paths are compared as stored, without normalisation."""
        save_cache(sample_items, settings, 0, cache_path)
        settings.rom_repository_path = settings.rom_repository_path + os.sep
        result = load_cache(settings, cache_path)
        assert not result.valid
        assert result.reason == 'ROM repository path changed'

    def test_empty_and_missing_chd_path_match(self, sample_items, settings, cache_path):
        """An unset CHD repository stored as '' matches an unset one now."""
        settings.chd_repository_path = ''
        save_cache(sample_items, settings, 0, cache_path)
        settings.chd_repository_path = None
        assert load_cache(settings, cache_path).valid

    def test_repository_gone(self, sample_items, settings, cache_path, repositories):
        import shutil
        save_cache(sample_items, settings, 0, cache_path)
        shutil.rmtree(repositories.chd_dir)
        assert load_cache(settings, cache_path).reason == 'CHD repository no longer exists'
        shutil.rmtree(repositories.rom_dir)
        assert load_cache(settings, cache_path).reason == 'ROM repository no longer exists'

    def test_catalog_gone(self, sample_items, settings, cache_path):
        save_cache(sample_items, settings, 0, cache_path)
        os.remove(settings.mame_xml_path)
        assert load_cache(settings, cache_path).reason == 'MAME XML file no longer exists'

    def test_too_old(self, sample_items, settings, cache_path):
        """Snapshots older than 30 days are rejected."""
        created = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)
        save_cache(sample_items, settings, 0, cache_path, now=created)
        fresh = load_cache(settings, cache_path, now=created + datetime.timedelta(days=29))
        stale = load_cache(settings, cache_path, now=created + datetime.timedelta(days=31))
        assert fresh.valid
        assert stale.reason == 'cache too old'

    def test_missing_file(self, settings, cache_path):
        result = load_cache(settings, cache_path)
        assert not result.valid
        assert result.reason == 'cache file not found'

    def test_corrupt_file(self, settings, cache_path, make_file):
        """Garbage never raises, it just invalidates."""
        make_file(cache_path, content=b'{"version": 1, "scannedRoms": {')
        result = load_cache(settings, cache_path)
        assert not result.valid
        assert result.error is not None

    def test_corrupt_entry(self, sample_items, settings, cache_path):
        save_cache(sample_items, settings, 0, cache_path)
        rewrite(cache_path, scannedRoms={'bad': {'romFileSize': 'x'}})
        index = ItemIndex()
        result = load_cache(settings, cache_path, index=index)
        assert result.reason == 'cache file corrupt'
        assert len(index) == 0

    def test_validate_snapshot_ok(self, settings):
        snapshot = build_snapshot([], settings, 0)
        assert validate_snapshot(snapshot, settings) is None


class TestSaveFailures:

    def test_unwritable_location(self, sample_items, settings, make_file, temp_dir):
        """A save into a path under a regular file reports failure without raising."""
        blocker = make_file(os.path.join(temp_dir, 'blocker'), 1)
        result = save_cache(sample_items, settings, 0, os.path.join(blocker, 'cache.json'))
        assert result.saved is False
        assert result.error is not None

    def test_failed_write_keeps_old_file(self, sample_items, settings, cache_path, mocker):
        """An error while replacing leaves the previous cache intact."""
        save_cache(sample_items, settings, 7, cache_path)
        mocker.patch('romsel.utils.os.replace', side_effect=OSError('disk full'))
        assert save_cache(sample_items[:1], settings, 0, cache_path).saved is False
        mocker.stopall()
        assert load_cache(settings, cache_path).companion_blob_directory_count == 7
        assert [f for f in os.listdir(os.path.dirname(cache_path)) if f.startswith('.tmp-')] == []


class TestCacheInfo:

    def test_info_and_clear(self, sample_items, settings, cache_path):
        assert get_cache_info(cache_path) is None
        save_cache(sample_items, settings, 0, cache_path)
        details = get_cache_info(cache_path)
        assert details.item_count == 3
        assert details.rom_repository_path == settings.rom_repository_path
        assert details.file_size > 0
        assert clear_cache(cache_path) is True
        assert clear_cache(cache_path) is False
