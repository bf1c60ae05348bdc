#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
romselector core package
"""

__version__ = '1.2.0'
__author__ = 'romselector contributors'

from . import utils
from . import catalog
from . import matcher
from . import scanner
from . import cache
from . import reconcile
from . import transfer
from . import config
from . import item_filter
from . import selection
from . import controller
from . import commands

__all__ = ['utils', 'catalog', 'matcher', 'scanner', 'cache', 'reconcile',
           'transfer', 'config', 'item_filter', 'selection', 'controller', 'commands']
