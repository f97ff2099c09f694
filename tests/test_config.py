"""
Tests for configuration loading.
"""

from pathlib import Path

import pytest
import yaml

from engagement_analytics.config import get_default_config, load_config, merge_config, validate_config
from engagement_analytics.exceptions import ConfigError


def test_defaults():
    config = get_default_config()

    assert config['session']['tick_interval'] == 0.1
    assert config['session']['flush_interval'] == 3.0
    assert config['session']['buffer_size'] == 1000
    assert config['fusion']['weights'] == {'face': 40.0, 'looking': 40.0, 'posture': 20.0, 'phone': -30.0}
    assert config['blink']['debounce_seconds'] == 0.2
    assert config['logging']['level'] == 'INFO'


def test_defaults_are_fresh_copies():
    get_default_config()['session']['buffer_size'] = 1
    assert get_default_config()['session']['buffer_size'] == 1000


def test_no_path_returns_defaults():
    assert load_config(None) == get_default_config()


def test_missing_file_falls_back_to_defaults(tmp_path):
    assert load_config(str(tmp_path / 'missing.yaml')) == get_default_config()


def test_invalid_yaml_falls_back_to_defaults(tmp_path):
    path = tmp_path / 'broken.yaml'
    path.write_text('session: [unclosed\n')
    assert load_config(str(path)) == get_default_config()


def test_partial_file_is_merged_over_defaults(tmp_path):
    path = tmp_path / 'settings.yaml'
    path.write_text(yaml.safe_dump({'session': {'flush_interval': 5.0}, 'fusion': {'weights': {'phone': -50.0}}}))

    config = load_config(str(path))

    assert config['session']['flush_interval'] == 5.0
    assert config['session']['tick_interval'] == 0.1
    assert config['fusion']['weights']['phone'] == -50.0
    assert config['fusion']['weights']['face'] == 40.0


def test_non_mapping_file_raises(tmp_path):
    path = tmp_path / 'list.yaml'
    path.write_text('- a\n- b\n')
    with pytest.raises(ConfigError):
        load_config(str(path))


@pytest.mark.parametrize('override', [
    {'session': {'tick_interval': 0}},
    {'session': {'flush_interval': -1.0}},
    {'session': {'flush_interval': 'often'}},
    {'session': {'buffer_size': 0}},
    {'session': {'buffer_size': 10.5}},
])
def test_validation_rejects_bad_session_values(override):
    with pytest.raises(ConfigError):
        validate_config(merge_config(get_default_config(), override))


def test_merge_does_not_modify_base():
    base = get_default_config()
    merge_config(base, {'session': {'buffer_size': 5}})
    assert base['session']['buffer_size'] == 1000


def test_shipped_settings_match_defaults():
    path = Path(__file__).parent.parent / 'config' / 'settings.yaml'
    assert load_config(str(path)) == get_default_config()
