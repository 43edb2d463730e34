# caredoc/schemas/__init__.py
"""
Schema module initialization.
Exports all schema classes from submodules for convenient imports.
"""
from .auth import *
from .access import *
from .billing import *
from .admin import *
