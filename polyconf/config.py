"""
Configuration management using Mapping interfaces.

Implement:
- ConfigStore: MutableMapping over a config file in any supported format
- load_config: convenience factory

A store loads its file on construction, fills in missing keys from a default
template (rewriting the file when it had to), and writes changes back with
``save``. It never raises on I/O or decoding problems: a file it can't make
sense of falls back to the defaults, and a store whose format can't be
determined is "not well formed" and ignores all mutations.

>>> import os, tempfile
>>> path = os.path.join(tempfile.mkdtemp(), 'server.properties')
>>> store = ConfigStore(path, default={'motd': 'Welcome', 'pvp': True})
>>> store.check(), os.path.exists(path)
(True, True)
>>> store.get('pvp'), store.get('spawn-protection')
(True, False)
>>> store.set('max-players', 20)
True
>>> store.save()
True
>>> ConfigStore(path).get('max-players')
'20'
"""

import copy
import logging
import os
from collections.abc import Mapping, MutableMapping
from typing import Any, Optional, Union

from polyconf import formats  # noqa: F401  (registers the codecs)
from polyconf.base import (
    FormatHint,
    FormatTag,
    CodecError,
    detect_format,
    get_format_registry,
    to_format_tag,
)
from polyconf.log import get_logger
from polyconf.util import merge_defaults, read_bytes, write_bytes

PathLike = Union[str, os.PathLike]

# What get() gives for absent keys, and what every read gives on a store
# that isn't well formed
ABSENT = False


class ConfigStore(MutableMapping):
    """Configuration store backed by a file, with defaults.

    :param path: The config file. Created (with the defaults) if missing.
    :param format: A FormatTag (or its name). DETECT picks it from the
        file extension.
    :param default: Template of default values. Missing keys (at any nesting
        level) are filled in from it, and the file is rewritten if any were.
    :param logger: Where diagnostics go. Defaults to the ``polyconf.config``
        logger.
    :param encoding: Text encoding of the text based formats.
    """

    def __init__(
        self,
        path: PathLike,
        format: FormatHint = FormatTag.DETECT,
        default: Optional[Mapping] = None,
        *,
        logger: Optional[logging.Logger] = None,
        encoding: Optional[str] = None,
    ):
        self._logger = logger or get_logger(__name__)
        self._encoding = encoding
        self._config: dict = {}
        self._path = os.fspath(path)
        self._format: Any = FormatTag.DETECT
        self._well_formed = False
        self.loaded = self.load(path, format, default)

    # ----------------------------------------------------------------------------------
    # Loading and saving

    def load(
        self,
        path: PathLike,
        format: FormatHint = FormatTag.DETECT,
        default: Optional[Mapping] = None,
    ) -> bool:
        """(Re)load the store from ``path``.

        When the format can't be resolved or has no codec, the store is not
        well formed. That is a failure (False) for an existing file; a missing
        file is then simply not created, and loading still returns True.
        """
        self._well_formed = True
        self._format = to_format_tag(format)
        self._path = os.fspath(path)
        if not isinstance(default, Mapping):
            default = {}
        self._config = copy.deepcopy(dict(default))
        file_exists = os.path.exists(self._path)

        if self._format is FormatTag.DETECT:
            detected = detect_format(self._path)
            if detected is None:
                self._logger.warning(
                    "Can't tell the format of %s from its extension", self._path
                )
                self._well_formed = False
                return not file_exists
            self._format = detected

        registry = get_format_registry()
        if not registry.is_registered(self._format):
            self._logger.warning('Unsupported config format: %r', self._format)
            self._well_formed = False
            return not file_exists
        codec = registry.get_codec(self._format)

        if not file_exists:
            self.save()
            return True

        raw = read_bytes(self._path, log=self._logger)
        config = codec.decode(raw, self._codec_context())
        if isinstance(config, Mapping):
            config = dict(config)
        else:
            self._logger.debug('%s holds no mapping, using the defaults', self._path)
            config = dict(default)
        self._config, changed = merge_defaults(default, config)
        if changed > 0:
            self._logger.debug('Filled %d default value(s) into %s', changed, self._path)
            self.save()
        return True

    def reload(self) -> bool:
        """Drop all changes in memory and load the file again.

        The format is detected again from the file extension.
        """
        self._config = {}
        self._format = FormatTag.DETECT
        self._well_formed = False
        self.loaded = self.load(self._path)
        return self.loaded

    def save(self) -> bool:
        """Write the store to its file.

        Returns False if the store is not well formed or its content can't be
        encoded in its format. Write failures are logged but still count as a
        successful save.
        """
        if not self._well_formed:
            return False
        codec = get_format_registry().get_codec(self._format)
        try:
            content = codec.encode(self._config, self._codec_context())
        except CodecError as e:
            self._logger.error("Can't save %s: %s", self._path, e)
            return False
        write_bytes(self._path, content, log=self._logger)
        return True

    def check(self) -> bool:
        """Whether the store is well formed."""
        return self._well_formed

    def _codec_context(self) -> dict:
        ctx = {'path': self._path, 'logger': self._logger}
        if self._encoding:
            ctx['encoding'] = self._encoding
        return ctx

    @property
    def well_formed(self) -> bool:
        return self._well_formed

    @property
    def path(self) -> str:
        return self._path

    @property
    def format(self):
        return self._format

    # ----------------------------------------------------------------------------------
    # Key access

    def get(self, key, default=ABSENT):
        """Value of ``key``, or ``default`` (False) if it isn't there.

        A stored False looks just like a missing key; use ``exists`` or
        ``lookup`` to tell them apart.
        """
        value, found = self.lookup(key)
        return value if found else default

    def lookup(self, key) -> tuple[Any, bool]:
        """Return ``(value, True)``, or ``(None, False)`` if ``key`` is absent."""
        if self._well_formed and key in self._config:
            return self._config[key], True
        return None, False

    def set(self, key, value=True) -> bool:
        """Set ``key`` to ``value``. A bare ``set(key)`` marks it as present."""
        if not self._well_formed:
            return False
        self._config[key] = value
        return True

    def set_all(self, document: Mapping) -> bool:
        """Replace the whole document."""
        if not self._well_formed or not isinstance(document, Mapping):
            return False
        self._config = dict(document)
        return True

    def exists(self, key, case_insensitive: bool = False) -> bool:
        """Whether ``key`` is set.

        With ``case_insensitive``, top-level keys are compared lowercased.
        """
        if not self._well_formed:
            return False
        if not case_insensitive:
            return key in self._config
        lowered = {_lower(k) for k in self._config}
        return _lower(key) in lowered

    def remove(self, key) -> bool:
        """Delete ``key`` if it's there."""
        if not self._well_formed:
            return False
        self._config.pop(key, None)
        return True

    def get_all(self, keys_only: bool = False):
        """A copy of the whole document, or just its keys."""
        if not self._well_formed:
            return [] if keys_only else {}
        if keys_only:
            return list(self._config)
        return copy.deepcopy(self._config)

    # ----------------------------------------------------------------------------------
    # MutableMapping interface

    def __getitem__(self, key: str) -> Any:
        value, found = self.lookup(key)
        if not found:
            raise KeyError(key)
        return value

    def __setitem__(self, key: str, value: Any) -> None:
        self.set(key, value)

    def __delitem__(self, key: str) -> None:
        if not self.exists(key):
            raise KeyError(key)
        self.remove(key)

    def __contains__(self, key) -> bool:
        return self.exists(key)

    def __iter__(self):
        return iter(self._config if self._well_formed else ())

    def __len__(self) -> int:
        return len(self._config) if self._well_formed else 0

    def __repr__(self):
        fmt = getattr(self._format, 'value', self._format)
        return f'{type(self).__name__}({self._path!r}, format={fmt!r})'


def _lower(key):
    return key.lower() if isinstance(key, str) else key


def load_config(
    path: PathLike,
    format: FormatHint = FormatTag.DETECT,
    default: Optional[Mapping] = None,
    **kwargs,
) -> ConfigStore:
    """Load the config at ``path`` into a ConfigStore."""
    return ConfigStore(path, format, default, **kwargs)
