"""
Core data models and protocols for the polyconf package.

Define:
- FormatTag: identifiers of the supported on-disk encodings
- EXTENSION_FORMATS: read-only file extension -> FormatTag table
- Codec: Protocol for format-specific decode/encode pairs
- CodecError: what a codec raises when it can't encode a document
- FormatRegistry: Registry of codecs, keyed by FormatTag
"""

import os
from enum import Enum
from types import MappingProxyType
from typing import Protocol, Any, Optional, Union
from collections.abc import Mapping


class FormatTag(str, Enum):
    """On-disk encodings a ConfigStore can read and write."""

    DETECT = 'detect'  # derive from the file extension at load time
    PROPERTIES = 'properties'
    JSON = 'json'
    YAML = 'yaml'
    SERIALIZED = 'serialized'
    ENUM = 'enum'

    # Aliases
    CNF = 'properties'
    ENUMERATION = 'enum'


EXTENSION_FORMATS: Mapping[str, FormatTag] = MappingProxyType(
    {
        'properties': FormatTag.PROPERTIES,
        'cnf': FormatTag.PROPERTIES,
        'conf': FormatTag.PROPERTIES,
        'config': FormatTag.PROPERTIES,
        'json': FormatTag.JSON,
        'js': FormatTag.JSON,
        'yml': FormatTag.YAML,
        'yaml': FormatTag.YAML,
        'sl': FormatTag.SERIALIZED,
        'serialize': FormatTag.SERIALIZED,
        'txt': FormatTag.ENUM,
        'list': FormatTag.ENUM,
        'enum': FormatTag.ENUM,
    }
)

FormatHint = Union[FormatTag, str]


def to_format_tag(hint: Any) -> Any:
    """Coerce a format hint to a FormatTag where possible.

    Strings are matched against tag values and names, case-insensitively.
    Anything that can't be coerced is returned unchanged, so that an invalid
    explicit tag is only caught when a codec is looked up for it.

    >>> to_format_tag('JSON')
    <FormatTag.JSON: 'json'>
    >>> to_format_tag('cnf')
    <FormatTag.PROPERTIES: 'properties'>
    >>> to_format_tag('ini')
    'ini'
    """
    if isinstance(hint, FormatTag):
        return hint
    if isinstance(hint, str):
        key = hint.strip()
        try:
            return FormatTag(key.lower())
        except ValueError:
            member = FormatTag.__members__.get(key.upper())
            if member is not None:
                return member
    return hint


def file_extension(path: Union[str, os.PathLike]) -> Optional[str]:
    """Return the lowercased segment after the last dot of the base name.

    >>> file_extension('/srv/server.Properties')
    'properties'
    >>> file_extension('backup.2024.json')
    'json'
    >>> file_extension('Makefile') is None
    True
    """
    name = os.path.basename(os.fspath(path))
    if '.' not in name:
        return None
    return name.rsplit('.', 1)[1].strip().lower()


def detect_format(path: Union[str, os.PathLike]) -> Optional[FormatTag]:
    """Find the FormatTag for ``path`` from its extension, or None if unknown.

    >>> detect_format('ops.txt')
    <FormatTag.ENUM: 'enum'>
    >>> detect_format('settings.cfg') is None
    True
    """
    extension = file_extension(path)
    if extension is None:
        return None
    return EXTENSION_FORMATS.get(extension)


class CodecError(ValueError):
    """Raised when a document can't be encoded in a given format."""


class Codec(Protocol):
    """Protocol for format codecs.

    ``ctx`` is an optional dict of context knobs. Codecs look up ``path``
    (for diagnostics), ``logger`` (the notice sink) and ``encoding`` in it.

    ``decode`` never raises: content it can't make sense of gives None.
    ``encode`` raises CodecError.
    """

    def decode(self, raw: bytes, ctx: Optional[dict] = None) -> Any: ...

    def encode(self, document: Mapping[str, Any], ctx: Optional[dict] = None) -> bytes: ...


class FormatRegistry:
    """Maps each FormatTag to the codec that reads and writes files in it.

    One codec instance per tag is built lazily and shared by every store that
    loads or saves in that format. Re-registering a tag drops its instance, so
    a custom codec can replace a builtin one for all later loads.

    >>> registry = FormatRegistry()
    >>> registry.is_registered('json')
    False
    """

    def __init__(self):
        self._codecs: dict[FormatTag, type[Codec]] = {}
        self._instances: dict[FormatTag, Codec] = {}

    def register(self, tag: FormatHint, codec_class: type[Codec]) -> None:
        """Make ``codec_class`` handle files of format ``tag``.

        DETECT (and anything that isn't a FormatTag) can't have a codec.
        """
        tag = to_format_tag(tag)
        if not isinstance(tag, FormatTag) or tag is FormatTag.DETECT:
            raise ValueError(f"Can't register a codec for format: {tag!r}")
        self._codecs[tag] = codec_class
        self._instances.pop(tag, None)

    def get_codec(self, tag: Any) -> Codec:
        """The shared codec for ``tag`` (a FormatTag, alias or name)."""
        tag = to_format_tag(tag)
        if not self.is_registered(tag):
            raise ValueError(f"No codec registered for format: {tag!r}")
        if tag not in self._instances:
            self._instances[tag] = self._codecs[tag]()
        return self._instances[tag]

    def list_formats(self) -> list[FormatTag]:
        """Formats that stores can currently read and write."""
        return list(self._codecs.keys())

    def is_registered(self, tag: Any) -> bool:
        """Whether a store could load a file of format ``tag``."""
        tag = to_format_tag(tag)
        return isinstance(tag, FormatTag) and tag in self._codecs


# Codecs that ConfigStore looks up; polyconf.formats fills it on import
_format_registry = FormatRegistry()


def register_format(tag: FormatHint):
    """Class decorator making the decorated codec handle format ``tag``."""

    def decorator(codec_class: type[Codec]):
        _format_registry.register(tag, codec_class)
        return codec_class

    return decorator


def get_format_registry() -> FormatRegistry:
    """The registry every ConfigStore resolves its codec from."""
    return _format_registry
