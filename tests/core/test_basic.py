import copy
import logging
import pytest
from unittest.mock import patch
import yaml

from commentsniff.config.settings import (
    ConfigError,
    DEFAULT_CONFIG,
    deep_merge,
    find_config_file,
    load_config,
    validate_config,
)


@patch('commentsniff.config.settings.find_config_file')
def test_load_config_with_no_user_file(mock_find_config):
    """Test that default configuration loads correctly when no user file is found."""
    mock_find_config.return_value = None
    config = load_config()
    assert config == DEFAULT_CONFIG
    assert config["rules"]["detectors"]["keyword"]["keywords"] == ["hack", "todo", "fixme"]


@patch('commentsniff.config.settings.find_config_file')
def test_load_config_with_user_overrides(mock_find_config, tmp_path):
    """Test that user configuration correctly overrides default settings."""
    # Arrange: Create a custom config file
    user_config_content = {
        "rules": {
            "excluded_paths": ["/test/only/this/path"],
            "detectors": {"keyword": {"keywords": ["xxx", "todo"]}},
        },
    }
    config_file = tmp_path / "commentsniff.config.yaml"
    config_file.write_text(yaml.dump(user_config_content))
    mock_find_config.return_value = config_file

    # Act: Load the configuration
    config = load_config()

    # Assert: Check that the overrides were applied
    assert config["rules"]["excluded_paths"] == ["/test/only/this/path"]
    assert config["rules"]["detectors"]["keyword"]["keywords"] == ["xxx", "todo"]
    # Assert that defaults not in the user config are still present
    assert config["rules"]["detectors"]["keyword"]["enabled"] is True
    assert "max_file_size" in config["rules"]


@patch('commentsniff.config.settings.find_config_file')
def test_load_config_does_not_leak_into_defaults(mock_find_config):
    """Mutating a loaded config must not change the defaults for later loads."""
    mock_find_config.return_value = None
    pristine = copy.deepcopy(DEFAULT_CONFIG)

    config = load_config()
    config["rules"]["detectors"]["keyword"]["keywords"].append("xxx")
    config["rules"]["excluded_paths"].clear()

    assert DEFAULT_CONFIG == pristine
    assert load_config() == pristine


@patch('commentsniff.config.settings.find_config_file')
def test_load_config_with_broken_yaml_uses_defaults(mock_find_config, tmp_path, caplog):
    config_file = tmp_path / "commentsniff.config.yaml"
    config_file.write_text("rules: [unclosed")
    mock_find_config.return_value = config_file

    with caplog.at_level(logging.WARNING):
        config = load_config()

    assert config == DEFAULT_CONFIG
    assert "Could not load or parse" in caplog.text


def test_find_config_file_searches_parent_directories(tmp_path):
    config_file = tmp_path / "commentsniff.config.yaml"
    config_file.write_text("rules: {}")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)

    assert find_config_file(nested) == config_file


def test_deep_merge_replaces_lists_and_merges_dicts():
    destination = {"rules": {"excluded_paths": ["a"], "max_file_size": "5MB"}}

    merged = deep_merge({"rules": {"excluded_paths": ["b"]}}, destination)

    assert merged == {"rules": {"excluded_paths": ["b"], "max_file_size": "5MB"}}


def test_validate_config_accepts_defaults():
    assert validate_config(DEFAULT_CONFIG) is True


def test_validate_config_ignores_disabled_keyword_rule():
    config = {"rules": {"detectors": {"keyword": {"enabled": False, "keywords": []}}}}

    assert validate_config(config) is True


@pytest.mark.parametrize("keywords", [[], "todo", None, ["todo", ""], ["todo", 3]])
def test_validate_config_rejects_bad_keyword_lists(keywords):
    config = {"rules": {"detectors": {"keyword": {"enabled": True, "keywords": keywords}}}}

    with pytest.raises(ConfigError):
        validate_config(config)


def test_validate_config_requires_rules_mapping():
    with pytest.raises(ConfigError):
        validate_config({"rules": ["keyword"]})
