"""
cratedig - Terminal sample browser with collections, tagging and previews.
"""

__version__ = "2.0.0"
__author__ = "cratedig Team"
__description__ = "A terminal sample browser for tagging audio files into collections and auditioning them."

__all__ = [
    # Items and store
    'Item',
    'FileSystemEntry',
    'CollectionSummary',
    'SubcollectionLabel',
    'ExportTarget',
    'TagRecord',
    'NavigationState',

    # Audio
    'PreviewEngine',
    'Codec',
    'OutputFormat',

    # Session
    'Session',
    'Controller',
    'WindowName',
    'WindowKind',

    # Catalog and config
    'Catalog',
    'AppConfig',
    'ConfigManager',
    'load_config',
]

from .items import Item, FileSystemEntry, CollectionSummary, SubcollectionLabel, ExportTarget, TagRecord
from .navigation import NavigationState
from .audio import Codec, OutputFormat
from .preview import PreviewEngine
from .windows import WindowName, WindowKind
from .state import Session
from .catalog import Catalog
from .controller import Controller
from .config import AppConfig, ConfigManager, load_config
