"""
Codecs for the supported on-disk formats.

Each codec turns the raw bytes of a file into a document (a dict) and back.
Decoding is forgiving: anything that can't be decoded gives None, and it's up
to the caller to fall back on defaults. Encoding raises CodecError.

Importing this module registers all codecs on the global format registry.
"""

from __future__ import annotations

import io
import json
import pickle
import re
from datetime import datetime
from typing import Any, Mapping, Optional

import yaml  # pip install PyYAML

from polyconf.base import CodecError, FormatTag, register_format
from polyconf.log import get_logger, notice

logger = get_logger(__name__)

DEFAULT_ENCODING = 'utf-8'
PROPERTIES_HEADER = '#Properties Config file'

# JSON integers outside this range are kept as strings
BIGINT_MIN = -(2**63)
BIGINT_MAX = 2**63 - 1


# --- Helpers ------------------------------------------------------------------


def _ctx_get(ctx: Optional[dict], key: str, default=None):
    return ctx.get(key, default) if ctx else default


def _encoding(ctx: Optional[dict]) -> str:
    return _ctx_get(ctx, 'encoding') or DEFAULT_ENCODING


def _decode_text(raw: bytes, ctx: Optional[dict]) -> Optional[str]:
    try:
        return raw.decode(_encoding(ctx))
    except UnicodeDecodeError as e:
        logger.debug('Content of %s is not text: %s', _ctx_get(ctx, 'path'), e)
        return None


def _normalize_newlines(text: str) -> str:
    return text.replace('\r\n', '\n').replace('\r', '\n')


# --- Properties ---------------------------------------------------------------

_PROPERTY_LINE = re.compile(r'^[ \t]*([A-Za-z0-9\-_.]+)=(.*)$', re.MULTILINE)
_TRUE_WORDS = frozenset({'on', 'true', 'yes'})
_FALSE_WORDS = frozenset({'off', 'false', 'no'})


def _coerce_property(value: str):
    """
    >>> _coerce_property('On'), _coerce_property('NO'), _coerce_property('20')
    (True, False, '20')
    """
    lowered = value.lower()
    if lowered in _TRUE_WORDS:
        return True
    if lowered in _FALSE_WORDS:
        return False
    return value


def _property_value(value) -> str:
    if isinstance(value, bool):
        return 'on' if value else 'off'
    if value is None:
        return ''
    if isinstance(value, Mapping):
        value = list(value.values())
    if isinstance(value, (list, tuple, set, frozenset)):
        return ';'.join(_property_value(v) for v in value)
    return str(value)


def _properties_timestamp(when: datetime) -> str:
    """
    >>> from datetime import timezone
    >>> _properties_timestamp(datetime(2026, 10, 5, 14, 3, 7, tzinfo=timezone.utc))
    'Mon Oct 5 14:03:07 UTC 2026'
    """
    return f'{when:%a %b} {when.day} {when:%H:%M:%S %Z %Y}'


@register_format(FormatTag.PROPERTIES)
class PropertiesFormat:
    """Line oriented ``key=value`` files (.properties, .cnf, .conf, .config).

    >>> PropertiesFormat().decode(b'flag=On\\r\\nname=Steve\\r\\n')
    {'flag': True, 'name': 'Steve'}
    """

    def decode(self, raw: bytes, ctx: Optional[dict] = None) -> Optional[dict]:
        text = _decode_text(raw, ctx)
        if text is None:
            return None
        log = _ctx_get(ctx, 'logger') or logger
        document = {}
        for match in _PROPERTY_LINE.finditer(_normalize_newlines(text)):
            k, v = match.group(1), _coerce_property(match.group(2).strip())
            if k in document:
                notice(
                    log,
                    'Repeated property %s on file %s',
                    k,
                    _ctx_get(ctx, 'path', '<string>'),
                )
            document[k] = v
        return document

    def encode(self, document: Mapping[str, Any], ctx: Optional[dict] = None) -> bytes:
        now = datetime.now().astimezone()
        lines = [PROPERTIES_HEADER, '#' + _properties_timestamp(now)]
        lines.extend(f'{k}={_property_value(v)}' for k, v in document.items())
        try:
            return ('\r\n'.join(lines) + '\r\n').encode(_encoding(ctx))
        except UnicodeEncodeError as e:
            raise CodecError(f"Can't encode properties: {e}") from e


# --- JSON ---------------------------------------------------------------------


def _parse_int(literal: str):
    """Parse a JSON integer, keeping it as a string if it's beyond 64 bits.

    >>> _parse_int('42')
    42
    >>> _parse_int('18446744073709551616')
    '18446744073709551616'
    """
    if len(literal.lstrip('-')) > 19:
        return literal
    n = int(literal)
    return n if BIGINT_MIN <= n <= BIGINT_MAX else literal


def _stringify_big_ints(obj):
    if isinstance(obj, bool):
        return obj
    if isinstance(obj, int):
        return obj if BIGINT_MIN <= obj <= BIGINT_MAX else str(obj)
    if isinstance(obj, Mapping):
        return {k: _stringify_big_ints(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_stringify_big_ints(v) for v in obj]
    return obj


@register_format(FormatTag.JSON)
class JsonFormat:
    """JSON objects (.json, .js), pretty printed on the way out."""

    def decode(self, raw: bytes, ctx: Optional[dict] = None) -> Any:
        text = _decode_text(raw, ctx)
        if text is None:
            return None
        try:
            return json.loads(text, parse_int=_parse_int)
        except (ValueError, RecursionError) as e:
            logger.debug('Invalid JSON in %s: %s', _ctx_get(ctx, 'path'), e)
            return None

    def encode(self, document: Mapping[str, Any], ctx: Optional[dict] = None) -> bytes:
        try:
            text = json.dumps(_stringify_big_ints(document), indent=4, ensure_ascii=False)
            return text.encode(_encoding(ctx))
        except (TypeError, ValueError) as e:
            raise CodecError(f"Can't encode JSON: {e}") from e


# --- YAML ---------------------------------------------------------------------

# A plain key at the start of a line, up to the first ':' that ends a key
_YAML_PLAIN_KEY = re.compile(
    r'^([ \t]*)([A-Za-z_][^\r\n]*?)[ \t]*:(?=[ \t\r\n]|$)', re.MULTILINE
)


def _quote_yaml_key(match: re.Match) -> str:
    indent, key = match.group(1), match.group(2)
    key = key.replace('\\', '\\\\').replace('"', '\\"')
    return f'{indent}"{key}":'


def fix_yaml_indexes(text: str) -> str:
    """Double-quote the plain mapping keys of a YAML document.

    This keeps keys like ``yes``, ``off`` or ``null`` as strings.

    >>> print(fix_yaml_indexes('on: 1\\nserver:\\n  max-players: 20\\n- item\\n'))
    "on": 1
    "server":
      "max-players": 20
    - item
    <BLANKLINE>
    """
    return _YAML_PLAIN_KEY.sub(_quote_yaml_key, text)


@register_format(FormatTag.YAML)
class YamlFormat:
    """YAML mappings (.yml, .yaml)."""

    def decode(self, raw: bytes, ctx: Optional[dict] = None) -> Any:
        text = _decode_text(raw, ctx)
        if text is None:
            return None
        try:
            # Use safe_load for security reasons.
            return yaml.safe_load(fix_yaml_indexes(text))
        except (yaml.YAMLError, RecursionError) as e:
            logger.debug('Invalid YAML in %s: %s', _ctx_get(ctx, 'path'), e)
            return None

    def encode(self, document: Mapping[str, Any], ctx: Optional[dict] = None) -> bytes:
        try:
            # sort_keys=False keeps the document's key order.
            text = yaml.safe_dump(
                dict(document),
                sort_keys=False,
                default_flow_style=False,
                allow_unicode=True,
            )
            return text.encode(_encoding(ctx))
        except (yaml.YAMLError, UnicodeEncodeError) as e:
            raise CodecError(f"Can't encode YAML: {e}") from e


# --- Serialized (pickle) ------------------------------------------------------

# The only globals a serialized config may reference
_SAFE_GLOBALS = frozenset(
    {
        ('builtins', 'set'),
        ('builtins', 'frozenset'),
        ('collections', 'OrderedDict'),
    }
)


class _PrimitiveUnpickler(pickle.Unpickler):
    """Unpickler restricted to builtin containers and scalars."""

    def find_class(self, module, name):
        if (module, name) in _SAFE_GLOBALS:
            return super().find_class(module, name)
        raise pickle.UnpicklingError(f"global '{module}.{name}' is forbidden")


@register_format(FormatTag.SERIALIZED)
class SerializedFormat:
    """Python's native serialization (.sl, .serialize)."""

    def decode(self, raw: bytes, ctx: Optional[dict] = None) -> Any:
        if not raw:
            return None
        try:
            return _PrimitiveUnpickler(io.BytesIO(raw)).load()
        except Exception as e:
            # Corrupt pickles fail in many ways (EOFError, IndexError, ...)
            logger.debug('Invalid pickle in %s: %s', _ctx_get(ctx, 'path'), e)
            return None

    def encode(self, document: Mapping[str, Any], ctx: Optional[dict] = None) -> bytes:
        """Pickle ``document``, refusing anything ``decode`` couldn't read back."""
        try:
            raw = pickle.dumps(document)
        except (pickle.PicklingError, TypeError, AttributeError) as e:
            raise CodecError(f"Can't serialize: {e}") from e
        try:
            _PrimitiveUnpickler(io.BytesIO(raw)).load()
        except pickle.UnpicklingError as e:
            raise CodecError(f"Can't serialize: {e}") from e
        return raw


# --- Enumeration --------------------------------------------------------------


@register_format(FormatTag.ENUM)
class EnumFormat:
    """One key per line (.txt, .list, .enum). Values are all True.

    >>> EnumFormat().decode(b'one\\n\\ntwo\\n')
    {'one': True, 'two': True}
    """

    def decode(self, raw: bytes, ctx: Optional[dict] = None) -> Optional[dict]:
        text = _decode_text(raw, ctx)
        if text is None:
            return None
        document = {}
        for line in _normalize_newlines(text).split('\n'):
            line = line.strip()
            if line:
                document[line] = True
        return document

    def encode(self, document: Mapping[str, Any], ctx: Optional[dict] = None) -> bytes:
        try:
            return '\r\n'.join(str(k) for k in document).encode(_encoding(ctx))
        except UnicodeEncodeError as e:
            raise CodecError(f"Can't encode list: {e}") from e
