"""
Unit tests for polyconf.config
"""

import datetime
import json
import logging

import pytest

from polyconf import config as config_module
from polyconf.base import FormatTag
from polyconf.config import ABSENT, ConfigStore, load_config
from polyconf.log import NOTICE


def test_config_store(tmp_path):
    c = ConfigStore(tmp_path / 'c.json', default={'a': 1})
    assert c['a'] == 1
    c['b'] = 2
    assert c['b'] == 2
    del c['a']
    assert 'a' not in c
    assert len(c) == 1
    assert list(c) == ['b']
    with pytest.raises(KeyError):
        c['a']
    with pytest.raises(KeyError):
        del c['a']


def test_missing_file_is_created_with_defaults(tmp_path):
    path = tmp_path / 'server.properties'
    store = ConfigStore(path, default={'debug': False})
    assert store.loaded
    assert path.exists()

    fresh = ConfigStore(path)
    assert fresh.get('debug') is False
    assert fresh.exists('debug')


def test_unknown_extension(tmp_path):
    path = tmp_path / 'settings.cfg'
    store = ConfigStore(path, default={'anything': 1})
    assert store.loaded is True
    assert not store.check()
    assert store.get('anything') is ABSENT is False
    assert not store.exists('anything')
    assert store.set('key', 'value') is False
    assert store.remove('anything') is False
    assert store.set_all({'a': 1}) is False
    assert store.save() is False
    assert store.get_all() == {}
    assert store.get_all(keys_only=True) == []
    assert len(store) == 0
    assert not path.exists()


def test_unknown_extension_does_not_read_file(tmp_path):
    path = tmp_path / 'settings.cfg'
    path.write_text('a=1\n')
    store = ConfigStore(path)
    assert not store.check()
    assert path.read_text() == 'a=1\n'


def test_invalid_explicit_format(tmp_path, caplog):
    caplog.set_level(logging.WARNING)
    path = tmp_path / 'conf.json'
    path.write_text('{"a": 1}')
    store = ConfigStore(path, format='toml')
    assert store.loaded is False
    assert not store.well_formed
    assert store.get('a') is False
    assert 'Unsupported config format' in caplog.text


def test_invalid_explicit_format_missing_file(tmp_path):
    path = tmp_path / 'conf.json'
    store = ConfigStore(path, format='toml', default={'a': 1})
    # Nothing to read, so loading did not fail, but nothing can be saved either
    assert store.loaded is True
    assert not store.check()
    assert store.save() is False
    assert not path.exists()


def test_explicit_format_wins_over_extension(tmp_path):
    path = tmp_path / 'ops.txt'
    path.write_text('{"steve": "op"}')
    store = ConfigStore(path, FormatTag.JSON)
    assert store.format is FormatTag.JSON
    assert store.get('steve') == 'op'

    store = ConfigStore(path, 'enum')
    assert store.format is FormatTag.ENUM
    assert store.get('{"steve": "op"}') is True


def test_defaults_are_filled_and_saved(tmp_path):
    path = tmp_path / 'conf.json'
    path.write_text(json.dumps({'motd': 'hello', 'limits': {'players': 5}}))
    defaults = {'motd': 'hi', 'limits': {'players': 20, 'view': 10}, 'pvp': True}
    store = ConfigStore(path, default=defaults)
    expected = {'motd': 'hello', 'limits': {'players': 5, 'view': 10}, 'pvp': True}
    assert store.get_all() == expected
    assert json.loads(path.read_text()) == expected
    # The template itself is never modified
    assert defaults == {'motd': 'hi', 'limits': {'players': 20, 'view': 10}, 'pvp': True}


def test_nothing_to_fill_means_no_rewrite(tmp_path):
    path = tmp_path / 'conf.json'
    path.write_text('{"motd": "hello"}')
    store = ConfigStore(path, default={'motd': 'hi'})
    assert store.get('motd') == 'hello'
    assert path.read_text() == '{"motd": "hello"}'


def test_corrupt_file_falls_back_to_defaults(tmp_path):
    path = tmp_path / 'conf.json'
    path.write_text('{not json')
    store = ConfigStore(path, default={'motd': 'hi'})
    assert store.check()
    assert store.get_all() == {'motd': 'hi'}
    # The defaults were substituted, not merged, so nothing is rewritten
    assert path.read_text() == '{not json'


@pytest.mark.parametrize('name', ['deep.json', 'deep.yml'])
def test_deeply_nested_file_falls_back_to_defaults(tmp_path, name):
    path = tmp_path / name
    path.write_text('[' * 100000)
    store = ConfigStore(path, default={'a': 1})
    assert store.loaded is True
    assert store.get('a') == 1


def test_non_mapping_document_falls_back_to_defaults(tmp_path):
    path = tmp_path / 'conf.yml'
    path.write_text('- just\n- a list\n')
    store = ConfigStore(path, default={'a': {'b': 1}})
    assert store.get_all() == {'a': {'b': 1}}


def test_non_mapping_default_is_ignored(tmp_path):
    store = ConfigStore(tmp_path / 'conf.json', default=['not', 'a', 'mapping'])
    assert store.check()
    assert store.get_all() == {}


def test_get_and_lookup(tmp_path):
    store = ConfigStore(tmp_path / 'conf.json', default={'debug': False, 'name': None})
    assert store.get('debug') is False
    assert store.get('missing') is False
    assert store.get('missing', 'fallback') == 'fallback'
    assert store.lookup('debug') == (False, True)
    assert store.lookup('name') == (None, True)
    assert store.lookup('missing') == (None, False)


def test_set_defaults_to_true(tmp_path):
    store = ConfigStore(tmp_path / 'ops.txt')
    assert store.set('steve')
    assert store.get('steve') is True


def test_exists_case_insensitive(tmp_path):
    store = ConfigStore(tmp_path / 'conf.json', default={'key': 1, 'sub': {'Inner': 2}})
    assert store.exists('Key', case_insensitive=True)
    assert not store.exists('Key')
    assert store.exists('key')
    # Only top-level keys are folded
    assert not store.exists('inner', case_insensitive=True)


def test_remove(tmp_path):
    store = ConfigStore(tmp_path / 'conf.json', default={'a': 1, 'b': 2})
    assert store.remove('a')
    assert store.remove('a')
    assert store.get_all() == {'b': 2}


def test_get_all(tmp_path):
    store = ConfigStore(tmp_path / 'conf.json', default={'a': {'b': 1}, 'c': 2})
    assert store.get_all(keys_only=True) == ['a', 'c']
    everything = store.get_all()
    everything['a']['b'] = 100
    assert store.get('a') == {'b': 1}


def test_set_all(tmp_path):
    store = ConfigStore(tmp_path / 'conf.json', default={'a': 1})
    assert store.set_all({'x': 1, 'y': 2})
    assert store.get_all() == {'x': 1, 'y': 2}
    assert store.set_all(['not', 'a', 'mapping']) is False
    assert store.get_all() == {'x': 1, 'y': 2}


def test_save_and_reload(tmp_path):
    path = tmp_path / 'conf.yml'
    store = ConfigStore(path, default={'a': 1})
    store.set('b', 2)
    assert store.save()
    store.set('c', 3)
    assert store.reload()
    assert store.get_all() == {'a': 1, 'b': 2}
    assert store.format is FormatTag.YAML


def test_reload_detects_format_again(tmp_path):
    path = tmp_path / 'ops.txt'
    path.write_text('{"steve": "op"}')
    store = ConfigStore(path, FormatTag.JSON)
    assert store.get('steve') == 'op'
    store.reload()
    assert store.format is FormatTag.ENUM
    assert store.get_all() == {'{"steve": "op"}': True}


def test_save_unencodable_value(tmp_path, caplog):
    caplog.set_level(logging.ERROR)
    path = tmp_path / 'conf.json'
    store = ConfigStore(path, default={'a': 1})
    store.set('obj', object())
    assert store.save() is False
    assert "Can't save" in caplog.text
    assert json.loads(path.read_text()) == {'a': 1}


def test_save_unreadable_serialized_value(tmp_path, caplog):
    caplog.set_level(logging.ERROR)
    path = tmp_path / 'data.sl'
    store = ConfigStore(path, default={'name': 'steve'})
    store.set('joined', datetime.date(2024, 1, 1))
    # Writing it would give a file that only decodes as the defaults
    assert store.save() is False
    assert "Can't save" in caplog.text
    assert store.reload()
    assert store.get('name') == 'steve'
    assert store.get('joined') is False


def test_write_failure_is_not_reported(tmp_path, monkeypatch):
    store = ConfigStore(tmp_path / 'conf.json', default={'a': 1})
    written = []

    def failing_write(path, data, *, log=None):
        written.append(path)
        return False

    monkeypatch.setattr(config_module, 'write_bytes', failing_write)
    assert store.save() is True
    assert written == [store.path]


def test_repeated_property_notice_names_the_file(tmp_path, caplog):
    caplog.set_level(NOTICE)
    path = tmp_path / 'server.properties'
    path.write_text('port=1\nport=2\n')
    store = ConfigStore(path)
    assert store.get('port') == '2'
    assert f'Repeated property port on file {path}' in caplog.text


def test_injected_logger(tmp_path, caplog):
    caplog.set_level(NOTICE)
    path = tmp_path / 'server.properties'
    path.write_text('port=1\nport=2\n')
    ConfigStore(path, logger=logging.getLogger('myserver.settings'))
    assert [r.name for r in caplog.records if r.levelno == NOTICE] == [
        'myserver.settings'
    ]


def test_encoding(tmp_path):
    path = tmp_path / 'motd.properties'
    path.write_bytes('motd=Caf\xe9\n'.encode('latin-1'))
    store = ConfigStore(path, encoding='latin-1')
    assert store.get('motd') == 'Caf\xe9'


def test_load_config(tmp_path):
    d = {'foo': 'bar'}
    path = tmp_path / 'c.json'
    path.write_text(json.dumps(d))
    c = load_config(path)
    assert c['foo'] == 'bar'
    assert repr(c) == f"ConfigStore({str(path)!r}, format='json')"
