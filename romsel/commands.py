#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Command implementations behind romselector.py.

Each cmd_* function is one user command. They build a Controller from the
stored settings, do their work through it and report through the logger.
Selections live in the cache (isSelected), so commands that change the
selection or the destination save the cache afterwards.
"""

from .config import (
    get_app_paths, locate_settings_file, load_settings, save_settings, validate_settings, STORED_ONLY_KEYS
)
from .controller import Controller
from .errors import SettingsError
from .item_filter import ItemFilter, create_filter_for_criteria, filter_item_list, as_predicate
from .progress import LogProgress
from .scanner import count_items
from .selection import save_selection, load_selection, selection_filename
from .utils import AttrDict, info, warn, error, pretty_size, SETTINGS_FILENAME


def resolve_paths(portable=False):
    """App paths for this run. A portable settings file forces portable mode."""
    if portable or locate_settings_file() == SETTINGS_FILENAME:
        return get_app_paths(True)
    return get_app_paths(False)


def open_controller(portable=False):
    paths = resolve_paths(portable)
    settings = load_settings(paths['settings'])
    return Controller(settings, paths['cache'])


def load_index(controller, cancel=None):
    """Fills the controller's index from the cache, scanning if needed."""
    result = controller.load_from_cache_or_scan(LogProgress(), cancel)
    info('{} items loaded{}'.format(len(result.items), ' from cache' if result.from_cache else ''))
    return result


def print_stats(stats):
    info('items:            {}'.format(stats.total))
    info('with metadata:    {} ({:.1f}%)'.format(stats.matched, stats.match_percentage))
    info('without metadata: {}'.format(stats.unmatched))
    info('with CHDs:        {} ({} CHD directories)'.format(stats.with_chd, stats.chd_directories))
    info('clones:           {}'.format(stats.clones))
    info('in destination:   {}'.format(stats.installed))
    info('selected:         {}'.format(stats.selected))
    info('total size:       {}'.format(pretty_size(stats.total_size)))


def cmd_settings(portable, updates, show=True):
    """Shows and edits the stored settings.

    Args:
        portable: Use the portable settings file
        updates: dict of setting name -> new value; None values are ignored
        show: Log the resulting settings
    """
    paths = resolve_paths(portable)
    settings = load_settings(paths['settings'])
    changed = False
    for key, value in updates.items():
        if value is not None and settings.get(key) != value:
            settings[key] = value
            changed = True
    if changed:
        save_settings(settings, paths['settings'])

    if show:
        info('settings file: {}'.format(paths['settings']))
        for key in sorted(settings.keys()):
            info('  {:<22} {}{}'.format(key, settings[key], ' (stored only)' if key in STORED_ONLY_KEYS else ''))
    for problem in validate_settings(settings):
        warn(problem)
    return settings


def cmd_scan(portable, cancel=None):
    controller = open_controller(portable)
    result = controller.scan(LogProgress(), cancel)
    info('scanned {} archives, {} items with CHDs'.format(result.archive_count, result.items_with_companion_blobs))
    print_stats(controller.stats())
    return result


def cmd_load(portable, cancel=None):
    controller = open_controller(portable)
    load_index(controller, cancel)
    print_stats(controller.stats())
    return controller


def cmd_status(portable):
    """Settings health and cache summary, without scanning."""
    paths = resolve_paths(portable)
    settings = load_settings(paths['settings'])
    problems = validate_settings(settings)
    if problems:
        for problem in problems:
            warn(problem)
    else:
        info('settings ok')
    cmd_cache(portable, 'info')
    return not problems


def cmd_count(portable):
    paths = resolve_paths(portable)
    settings = load_settings(paths['settings'])
    total = count_items(settings.rom_repository_path, settings.get('chd_repository_path') or None)
    info('{} items (archives + CHD directories)'.format(total))
    return total


def cmd_match(portable, names):
    controller = open_controller(portable)
    errors = validate_settings(controller.settings)
    if errors:
        raise SettingsError(errors)
    results = AttrDict()
    for name in names:
        record = controller.match(name)
        results[name] = record
        if record is None:
            info('{}: no match'.format(name))
        else:
            info('{}: {} ({}, {}){}'.format(name, record.description or record.name,
                                            record.manufacturer or 'Unknown', record.year or 'Unknown',
                                            ' clone of ' + record.clone_of if record.clone_of else ''))
    return results


def cmd_select(portable, criteria, text='', ids=None, skipids=None, deselect=False, clear=False, cancel=None):
    """Changes the selection and saves it to the cache."""
    controller = open_controller(portable)
    load_index(controller, cancel)
    if clear:
        controller.select_by_predicate(lambda item: True, select=False)
    filter_obj = create_filter_for_criteria(criteria, text, ids, skipids)
    affected = controller.select_by_predicate(as_predicate(filter_obj), select=not deselect)
    info('{} {} items'.format('deselected' if deselect else 'selected', len(affected)))
    controller.save()
    info('{} items selected in total'.format(len(controller.selected())))
    return affected


def cmd_list(portable, criteria='selected', text='', cancel=None):
    controller = open_controller(portable)
    load_index(controller, cancel)
    items = filter_item_list(sorted(controller.items(), key=lambda i: i.name.lower()),
                             create_filter_for_criteria(criteria, text))
    for item in items:
        info('{:<16} {:<48} {:>10} {}{}'.format(item.name, item.display_name[:48], pretty_size(item.total_size),
                                                'CHD ' if item.has_companion_blobs else '',
                                                'installed' if item.in_destination else ''))
    info('{} items'.format(len(items)))
    return items


def cmd_export(portable, outfile=None, name='', description=None, cancel=None):
    controller = open_controller(portable)
    load_index(controller, cancel)
    document = controller.export_selection(name=name, description=description)
    if not document['romNames']:
        warn('nothing selected, exporting an empty selection')
    outfile = outfile or selection_filename(name or 'selection')
    save_selection(document, outfile)
    return document


def cmd_import(portable, infile, cancel=None):
    controller = open_controller(portable)
    load_index(controller, cancel)
    document = load_selection(infile)
    matched = controller.import_selection(document)
    controller.save()
    return matched


def cmd_copy(portable, cancel=None):
    controller = open_controller(portable)
    load_index(controller, cancel)
    if not controller.selected():
        warn('no items selected')
        return None
    result = controller.copy_selected(LogProgress(), cancel)
    controller.save()
    for line in result.summary():
        info(line)
    return result


def cmd_verify(portable, deep=False, cancel=None):
    controller = open_controller(portable)
    load_index(controller, cancel)
    report = controller.verify_selected(LogProgress(), cancel, deep)
    for line in report.summary():
        info(line)
    return report


def cmd_delete(portable, dryrun=False, cancel=None):
    controller = open_controller(portable)
    load_index(controller, cancel)
    items = filter_item_list(controller.selected(), ItemFilter(installed=True))
    if dryrun:
        for item in items:
            info('would delete {}'.format(item.name))
        return None
    result = controller.delete_selected(items)
    controller.save()
    for line in result.summary():
        info(line)
    return result


def cmd_cache(portable, action='info'):
    paths = resolve_paths(portable)
    if action == 'clear':
        if not Controller(AttrDict(), paths['cache']).clear_cache():
            info('no cache to clear')
        return None

    details = Controller(AttrDict(), paths['cache']).cache_info()
    if details is None:
        info('no cache at {}'.format(paths['cache']))
    elif 'error' in details:
        error('cache at {} is unreadable: {}'.format(paths['cache'], details.error))
    else:
        info('cache:        {} ({})'.format(details.path, pretty_size(details.file_size)))
        info('created at:   {}'.format(details.created_at))
        info('items:        {}'.format(details.item_count))
        info('ROM repo:     {}'.format(details.rom_repository_path))
        info('CHD repo:     {}'.format(details.chd_repository_path))
        info('MAME XML:     {}'.format(details.mame_xml_path))
    return details
