"""
Settings persistence and file locations.

Settings are a flat JSON object. In portable mode every file lives in the
current directory; otherwise under a per-user application directory.
"""

import os
import json

from .utils import (
    AttrDict, AtomicWriter, info, warn,
    APP_DIR_NAME, SETTINGS_FILENAME, CACHE_FILENAME, LOG_FILENAME
)

DEFAULT_SETTINGS = {
    'mame_xml_path': '',
    'rom_repository_path': '',
    'chd_repository_path': '',
    'destination_path': '',
    'copy_bios_files': True,
    'copy_device_files': True,
    'create_subfolders': False,
    'verify_checksums': False,
    'portable_mode': False,
}

# saved and shown, but copying ignores them
STORED_ONLY_KEYS = ('copy_bios_files', 'copy_device_files', 'create_subfolders')

PATH_KEYS = ('mame_xml_path', 'rom_repository_path', 'chd_repository_path', 'destination_path')


def get_user_app_dir():
    """Per-user application directory (%APPDATA% on Windows, ~/.config elsewhere)."""
    base = os.environ.get('APPDATA')
    if not base:
        base = os.environ.get('XDG_CONFIG_HOME') or os.path.join(os.path.expanduser('~'), '.config')
    return os.path.join(base, APP_DIR_NAME)


def get_app_paths(portable=False):
    """Get paths for the settings, cache and log files.

    Args:
        portable: If True, everything lives in the current directory.
            Otherwise the per-user application directory is used and created
            when missing.

    Returns:
        dict with keys:
            - 'settings': Path to the settings file
            - 'cache': Path to the scan cache
            - 'log': Path to the log file
            - 'app_dir': Directory holding all of the above

    Examples:
        >>> get_app_paths(True)
        {'settings': 'settings.json', 'cache': 'rom_cache.json', ...}
    """
    if portable:
        return {
            'settings': SETTINGS_FILENAME,
            'cache': CACHE_FILENAME,
            'log': LOG_FILENAME,
            'app_dir': os.curdir,
        }
    app_dir = get_user_app_dir()
    os.makedirs(app_dir, exist_ok=True)
    return {
        'settings': os.path.join(app_dir, SETTINGS_FILENAME),
        'cache': os.path.join(app_dir, CACHE_FILENAME),
        'log': os.path.join(app_dir, LOG_FILENAME),
        'app_dir': app_dir,
    }


def locate_settings_file():
    """Finds the settings file to load: portable copy first, then per-user."""
    if os.path.isfile(SETTINGS_FILENAME):
        return SETTINGS_FILENAME
    roaming = os.path.join(get_user_app_dir(), SETTINGS_FILENAME)
    if os.path.isfile(roaming):
        return roaming
    return None


def default_settings():
    return AttrDict(DEFAULT_SETTINGS)


def load_settings(filepath):
    """Loads settings, filling in defaults for missing keys.

    A missing or unparsable file gives the defaults.
    """
    settings = default_settings()
    if not filepath or not os.path.exists(filepath):
        info('no settings file at {}, using defaults'.format(filepath))
        return settings
    try:
        with open(filepath, 'r', encoding='utf-8') as r:
            data = json.load(r)
        if not isinstance(data, dict):
            raise ValueError('settings root is not an object')
    except (OSError, ValueError) as e:
        warn('failed to parse settings file {}: {}'.format(filepath, e))
        return settings
    for key, value in data.items():
        if key in DEFAULT_SETTINGS:
            settings[key] = value
    return settings


def save_settings(settings, filepath):
    with AtomicWriter(filepath) as w:
        json.dump(dict((k, settings.get(k, v)) for k, v in DEFAULT_SETTINGS.items()), w, indent=2)
    info('saved settings to {}'.format(filepath))


def validate_settings(settings, require_destination=False):
    """Checks that the configured paths exist.

    Args:
        settings: Settings AttrDict
        require_destination: Also require a destination directory (copy,
            delete and reconcile need one; scanning does not)

    Returns:
        list of error strings, empty when the settings are usable
    """
    errors = []
    xml_path = settings.get('mame_xml_path')
    if not xml_path:
        errors.append('MAME XML file path is not configured')
    elif not os.path.isfile(xml_path):
        errors.append('MAME XML file not found: {}'.format(xml_path))

    rom_path = settings.get('rom_repository_path')
    if not rom_path:
        errors.append('ROM repository path is not configured')
    elif not os.path.isdir(rom_path):
        errors.append('ROM repository not found: {}'.format(rom_path))

    chd_path = settings.get('chd_repository_path')
    if chd_path and not os.path.isdir(chd_path):
        errors.append('CHD repository not found: {}'.format(chd_path))

    if require_destination and not settings.get('destination_path'):
        errors.append('Destination path is not configured')
    return errors
