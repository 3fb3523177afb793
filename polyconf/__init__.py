"""
Public API for the polyconf package.
Import the main user-facing functions and classes.
"""

from polyconf.config import ConfigStore, load_config, ABSENT
from polyconf.base import (
    FormatTag,
    EXTENSION_FORMATS,
    CodecError,
    FormatRegistry,
    detect_format,
    get_format_registry,
    register_format,
)

# Codecs
from polyconf.formats import (
    PropertiesFormat,
    JsonFormat,
    YamlFormat,
    SerializedFormat,
    EnumFormat,
    fix_yaml_indexes,
)

# Default merging
from polyconf.util import merge_defaults, fill_defaults

from polyconf.log import NOTICE, get_logger

# Shorter alias, as in "polyconf.Config('server.properties')"
Config = ConfigStore

__all__ = [
    # Store
    'ConfigStore',
    'Config',
    'load_config',
    'ABSENT',
    # Formats
    'FormatTag',
    'EXTENSION_FORMATS',
    'CodecError',
    'FormatRegistry',
    'detect_format',
    'get_format_registry',
    'register_format',
    'PropertiesFormat',
    'JsonFormat',
    'YamlFormat',
    'SerializedFormat',
    'EnumFormat',
    'fix_yaml_indexes',
    # Defaults
    'merge_defaults',
    'fill_defaults',
    # Logging
    'NOTICE',
    'get_logger',
]
