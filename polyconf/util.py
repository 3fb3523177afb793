"""
Default merging and file I/O helpers.
"""

import copy
import logging
import os
import threading
import weakref
from contextlib import contextmanager, suppress
from collections.abc import Mapping, MutableMapping
from typing import Optional, Union

from polyconf.log import get_logger

logger = get_logger(__name__)

PathLike = Union[str, os.PathLike]


# --------------------------------------------------------------------------------------
# Default merging


def fill_defaults(defaults: Mapping, data: MutableMapping) -> int:
    """Fill ``data`` in place with whatever ``defaults`` has that it lacks.

    Nested mappings of ``defaults`` are walked depth-first. A branch of
    ``data`` that is missing, or isn't a mapping, is (re)created as an empty
    dict, which counts as one change. Leaf values are only set when the key is
    absent (a present ``None`` or ``False`` is left alone).

    Returns the number of changes made.

    >>> data = {'port': 8080}
    >>> fill_defaults({'port': 19132, 'motd': 'hi', 'limits': {'players': 20}}, data)
    3
    >>> data
    {'port': 8080, 'motd': 'hi', 'limits': {'players': 20}}
    >>> fill_defaults({'port': 19132, 'motd': 'hi', 'limits': {'players': 20}}, data)
    0
    """
    changed = 0
    for k, v in defaults.items():
        if isinstance(v, Mapping):
            if k not in data or not isinstance(data[k], MutableMapping):
                data[k] = {}
                changed += 1
            changed += fill_defaults(v, data[k])
        elif k not in data:
            data[k] = copy.deepcopy(v)
            changed += 1
    return changed


def merge_defaults(defaults: Mapping, data: Mapping) -> tuple[dict, int]:
    """Like ``fill_defaults``, but leaves ``data`` untouched.

    Returns a filled copy of ``data`` and the number of injected values.

    >>> data = {}
    >>> merge_defaults({'a': {'b': 1}}, data)
    ({'a': {'b': 1}}, 2)
    >>> data
    {}
    """
    merged = copy.deepcopy(dict(data))
    changed = fill_defaults(defaults, merged)
    return merged, changed


# --------------------------------------------------------------------------------------
# File I/O
#
# Both helpers swallow (and log) OSError: a store would rather keep a usable
# in-memory document than fail on a flaky disk.

# Entries vanish once no caller holds the lock for that path
_path_locks: 'weakref.WeakValueDictionary[str, threading.Lock]' = (
    weakref.WeakValueDictionary()
)
_path_locks_guard = threading.Lock()


@contextmanager
def locked_path(path: PathLike):
    """Hold the process-wide exclusive lock for ``path``."""
    key = os.path.abspath(os.fspath(path))
    with _path_locks_guard:
        lock = _path_locks.get(key)
        if lock is None:
            lock = _path_locks[key] = threading.Lock()
    with lock:
        yield


def read_bytes(path: PathLike, *, log: Optional[logging.Logger] = None) -> bytes:
    """Read the whole file, or return ``b''`` if it can't be read."""
    log = log or logger
    try:
        with open(path, 'rb') as f:
            return f.read()
    except OSError as e:
        log.warning('Could not read %s: %s', os.fspath(path), e)
        return b''


def write_bytes(
    path: PathLike, data: bytes, *, log: Optional[logging.Logger] = None
) -> bool:
    """Replace the contents of ``path`` with ``data``.

    Writes go to a sibling ``.tmp`` file that is then moved over ``path``, all
    while holding the lock for ``path``. Returns False (after logging) if the
    write failed.
    """
    log = log or logger
    path = os.fspath(path)
    tmp_path = f'{path}.tmp'
    with locked_path(path):
        try:
            with open(tmp_path, 'wb') as f:
                f.write(data)
            os.replace(tmp_path, path)
            return True
        except OSError as e:
            log.warning('Could not write %s: %s', path, e)
            return False
        finally:
            if os.path.exists(tmp_path):
                with suppress(OSError):
                    os.remove(tmp_path)
