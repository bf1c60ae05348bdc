# The following code block between #START# and #END#
# generates an error message if this script is called as a shell script.
# Using a "shebang" instead would fail on Windows.
#START#
if False:
    print("Please start this script with a python interpreter: python /path/to/romselector.py")
#END#
__appname__ = 'romselector.py'
__version__ = '1.2.0'

# Standard library imports
import sys
import datetime
import argparse
import logging
import logging.handlers

# Module imports
from romsel.utils import info, warn, error, log_exception
from romsel.commands import (
    resolve_paths,
    cmd_settings, cmd_scan, cmd_load, cmd_status, cmd_count, cmd_match,
    cmd_select, cmd_list, cmd_export, cmd_import, cmd_copy, cmd_verify,
    cmd_delete, cmd_cache
)
from romsel.errors import RomSelectorError, ScanCancelled
from romsel.item_filter import CRITERIA
from romsel.progress import CancelToken

minPy3 = [3,8]

if sys.version_info[0] == 3 and (sys.version_info[1] < minPy3[1]):
    print("Your Python version is not supported, please update to 3.8+")
    sys.exit(1)

# Configure logging
LOG_MAX_MB = 20
LOG_BACKUPS = 4
logFormatter = logging.Formatter("%(asctime)s | %(message)s", datefmt='%H:%M:%S')
rootLogger = logging.getLogger('romsel')
rootLogger.setLevel(logging.DEBUG)
consoleHandler = logging.StreamHandler(sys.stdout)
consoleHandler.setFormatter(logFormatter)
rootLogger.addHandler(consoleHandler)


def make_file_handler(path):
    handler = logging.handlers.RotatingFileHandler(path, mode='a+', maxBytes=1024*1024*LOG_MAX_MB, backupCount=LOG_BACKUPS, encoding='utf-8', delay=True)
    handler.setFormatter(logFormatter)
    return handler


def str2bool(value):
    if value.lower() in ('yes', 'true', 'on', '1'):
        return True
    if value.lower() in ('no', 'false', 'off', '0'):
        return False
    raise argparse.ArgumentTypeError('expected yes or no, got %r' % value)


# Helper functions for common argument patterns
def add_common_flags(parser):
    """Add common -nolog and -debug flags to a parser"""
    parser.add_argument('-nolog', action='store_true', help='doesn\'t write log file romselector.log')
    parser.add_argument('-debug', action='store_true', help='Includes debug messages')

def add_id_filters(parser):
    """Add mutually exclusive -ids and -skipids arguments"""
    group = parser.add_mutually_exclusive_group()
    group.add_argument('-ids', action='store', help='name(s) of ROM(s) to include', nargs='*', default=[])
    group.add_argument('-skipids', action='store', help='name(s) of ROM(s) to skip', nargs='*', default=[])
    return group

def add_settings_command(subparsers):
    parser = subparsers.add_parser(
        'settings',
        help='Show or change the stored settings',
        description='Without options shows the current settings and any problems with them. '
                    'Options change the named setting and save the file.'
    )
    parser.add_argument('-mamexml', dest='mame_xml_path', help='path to the MAME -listxml output')
    parser.add_argument('-romdir', dest='rom_repository_path', help='directory holding the ROM archives')
    parser.add_argument('-chddir', dest='chd_repository_path', help='directory holding per-game CHD directories')
    parser.add_argument('-destdir', dest='destination_path', help='destination (installed) directory')
    parser.add_argument('-verifychecksums', dest='verify_checksums', type=str2bool, metavar='yes|no', help='compare CRC32 of copies with the source')
    parser.add_argument('-copybios', dest='copy_bios_files', type=str2bool, metavar='yes|no', help='copy BIOS files (stored only, copying does not read it)')
    parser.add_argument('-copydevices', dest='copy_device_files', type=str2bool, metavar='yes|no', help='copy device files (stored only, copying does not read it)')
    parser.add_argument('-subfolders', dest='create_subfolders', type=str2bool, metavar='yes|no', help='create subfolders in the destination (stored only, copying does not read it)')
    add_common_flags(parser)

def add_scan_command(subparsers):
    parser = subparsers.add_parser(
        'scan',
        help='Scan the ROM and CHD repositories and rebuild the cache',
        description='Parses the MAME XML, scans both repositories, checks the destination '
                    'and saves the result to the cache.'
    )
    add_common_flags(parser)

def add_load_command(subparsers):
    parser = subparsers.add_parser('load', help='Load from cache, scanning only if the cache is invalid')
    add_common_flags(parser)

def add_status_command(subparsers):
    parser = subparsers.add_parser('status', help='Check the settings and show the cache summary')
    add_common_flags(parser)

def add_count_command(subparsers):
    parser = subparsers.add_parser('count', help='Count archives and CHD directories without scanning')
    add_common_flags(parser)

def add_match_command(subparsers):
    parser = subparsers.add_parser('match', help='Look up catalog entries for archive names')
    parser.add_argument('names', action='store', help='archive name(s) without extension', nargs='+')
    add_common_flags(parser)

def add_select_command(subparsers):
    parser = subparsers.add_parser(
        'select',
        help='Select or deselect ROMs by criteria',
        description='The selection is stored in the cache and used by export, copy, verify and delete.'
    )
    parser.add_argument('criteria', action='store', choices=CRITERIA, nargs='?', default='all', help='which ROMs to select')
    parser.add_argument('-text', action='store', default='', help='only ROMs whose name, description or manufacturer contain this (destination:yes|no filters on installed state)')
    parser.add_argument('-deselect', action='store_true', help='deselect instead of select')
    parser.add_argument('-clear', action='store_true', help='clear the current selection first')
    add_id_filters(parser)
    add_common_flags(parser)

def add_list_command(subparsers):
    parser = subparsers.add_parser('list', help='List ROMs (the selection by default)')
    parser.add_argument('criteria', action='store', choices=CRITERIA, nargs='?', default='selected', help='which ROMs to list')
    parser.add_argument('-text', action='store', default='', help='text filter')
    add_common_flags(parser)

def add_export_command(subparsers):
    parser = subparsers.add_parser('export', help='Export the selection to a file')
    parser.add_argument('outfile', action='store', nargs='?', default=None, help='selection file to write')
    parser.add_argument('-name', action='store', default='', help='name stored in the selection')
    parser.add_argument('-description', action='store', default=None, help='description stored in the selection')
    add_common_flags(parser)

def add_import_command(subparsers):
    parser = subparsers.add_parser('import', help='Select the ROMs named in a selection file')
    parser.add_argument('infile', action='store', help='selection file to read')
    add_common_flags(parser)

def add_copy_command(subparsers):
    parser = subparsers.add_parser('copy', help='Copy the selected ROMs and their CHDs to the destination')
    add_common_flags(parser)

def add_verify_command(subparsers):
    parser = subparsers.add_parser('verify', help='Verify the selected ROMs against the MAME XML CRCs')
    parser.add_argument('-deep', action='store_true', help='also decompress and test every zip member')
    add_common_flags(parser)

def add_delete_command(subparsers):
    parser = subparsers.add_parser('delete', help='Delete the selected ROMs from the destination')
    parser.add_argument('-dryrun', action='store_true', help='show what would be deleted without deleting')
    add_common_flags(parser)

def add_cache_command(subparsers):
    parser = subparsers.add_parser('cache', help='Show or clear the scan cache')
    parser.add_argument('action', action='store', choices=['info', 'clear'], nargs='?', default='info')
    add_common_flags(parser)


SETTING_KEYS = ['mame_xml_path', 'rom_repository_path', 'chd_repository_path', 'destination_path',
                'verify_checksums', 'copy_bios_files', 'copy_device_files', 'create_subfolders']


def process_argv(argv):
    description = 'romselector: index a MAME ROM collection and manage what is copied to a destination.'
    epilog = '''
TYPICAL WORKFLOW:
  %(prog)s settings -mamexml mame.xml -romdir /roms -chddir /chds -destdir /mnt/arcade
  %(prog)s scan
  %(prog)s select with_metadata -text namco
  %(prog)s copy

For detailed help on a specific command:
  %(prog)s COMMAND -h
    '''

    p1 = argparse.ArgumentParser(
        prog='romselector.py',
        description=description,
        epilog=epilog,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        add_help=False
    )
    sp1 = p1.add_subparsers(help='command', dest='command', title='commands')
    sp1.required = True

    add_settings_command(sp1)
    add_scan_command(sp1)
    add_load_command(sp1)
    add_status_command(sp1)
    add_count_command(sp1)
    add_match_command(sp1)
    add_select_command(sp1)
    add_list_command(sp1)
    add_export_command(sp1)
    add_import_command(sp1)
    add_copy_command(sp1)
    add_verify_command(sp1)
    add_delete_command(sp1)
    add_cache_command(sp1)

    # Other arguments
    g1 = p1.add_argument_group('other')
    g1.add_argument('--portable', action='store_true', help='keep settings, cache and log in the current directory')
    g1.add_argument('-h', '--help', action='help', help='show help message and exit')
    g1.add_argument('-v', '--version', action='version', help='show version number and exit',
                    version="%s (version %s)" % (__appname__, __version__))

    # parse the given argv.  raises SystemExit on error
    args = p1.parse_args(argv[1:])

    if not args.nolog:
        rootLogger.addHandler(make_file_handler(resolve_paths(args.portable)['log']))

    if not args.debug:
        rootLogger.setLevel(logging.INFO)

    return args

def main(args, cancel=None):
    stime = datetime.datetime.now()

    if args.command == 'settings':
        cmd_settings(args.portable, dict((k, getattr(args, k)) for k in SETTING_KEYS))
        return  # no need to see time stats
    elif args.command == 'status':
        cmd_status(args.portable)
        return
    elif args.command == 'cache':
        cmd_cache(args.portable, args.action)
        return
    elif args.command == 'scan':
        cmd_scan(args.portable, cancel)
    elif args.command == 'load':
        cmd_load(args.portable, cancel)
    elif args.command == 'count':
        cmd_count(args.portable)
    elif args.command == 'match':
        cmd_match(args.portable, args.names)
    elif args.command == 'select':
        cmd_select(args.portable, args.criteria, args.text, args.ids, args.skipids, args.deselect, args.clear, cancel)
    elif args.command == 'list':
        cmd_list(args.portable, args.criteria, args.text, cancel)
    elif args.command == 'export':
        cmd_export(args.portable, args.outfile, args.name, args.description, cancel)
    elif args.command == 'import':
        cmd_import(args.portable, args.infile, cancel)
    elif args.command == 'copy':
        cmd_copy(args.portable, cancel)
    elif args.command == 'verify':
        cmd_verify(args.portable, args.deep, cancel)
    elif args.command == 'delete':
        cmd_delete(args.portable, args.dryrun, cancel)

    etime = datetime.datetime.now()
    info('--')
    info('total time: %s' % (etime - stime))

def run():
    cancel = CancelToken()
    try:
        main(process_argv(sys.argv), cancel)
        info('exiting...')
    except KeyboardInterrupt:
        cancel.cancel()
        info('exiting...')
        sys.exit(1)
    except ScanCancelled:
        warn('cancelled')
        sys.exit(1)
    except RomSelectorError as e:
        error(str(e))
        sys.exit(1)
    except SystemExit:
        raise
    except Exception:
        log_exception('fatal...')
        sys.exit(1)

if __name__ == "__main__":
    run()
