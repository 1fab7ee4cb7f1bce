import copy
import logging
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, Tuple

log = logging.getLogger(__name__)

CONFIG_FILE_NAME = "commentsniff.config.yaml"

DEFAULT_KEYWORDS: Tuple[str, ...] = ("hack", "todo", "fixme")

# Define the default configuration settings for the application.
# These values are used if they are not specified in the user's config file.
DEFAULT_CONFIG: Dict[str, Any] = {
    "rules": {
        "excluded_paths": [
            "**/node_modules/**",
            "**/.git/**",
            "**/vendor/**",
            "**/__pycache__/**",
            "**/*.lock",
        ],
        "max_file_size": "5MB",
        "detectors": {
            "keyword": {
                "enabled": True,
                "keywords": list(DEFAULT_KEYWORDS),
            },
        },
    },
}


class ConfigError(ValueError):
    """Raised when the configuration cannot be used to run a scan."""


def deep_merge(source: Dict, destination: Dict) -> Dict:
    """
    Recursively merges source dict into destination dict.
    """
    for key, value in source.items():
        if isinstance(value, dict):
            node = destination.setdefault(key, {})
            deep_merge(value, node)
        else:
            destination[key] = value
    return destination


def find_config_file(start_path: Path) -> Optional[Path]:
    """
    Search for commentsniff.config.yaml upwards from the start_path.
    This allows running the tool from any subdirectory of a project.
    """
    current_path = start_path.resolve()
    while True:
        config_file = current_path / CONFIG_FILE_NAME
        if config_file.is_file():
            return config_file
        if current_path.parent == current_path:  # Reached the filesystem root
            return None
        current_path = current_path.parent


def load_config() -> Dict[str, Any]:
    """
    Loads configuration from commentsniff.config.yaml by searching up from the
    current directory, and merges it with the default configuration.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)
    config_file_path = find_config_file(Path.cwd())

    if config_file_path:
        try:
            with open(config_file_path, "r", encoding="utf-8") as f:
                user_config = yaml.safe_load(f)
            if user_config:
                config = deep_merge(user_config, config)
            log.debug("Loaded configuration from %s", config_file_path)
        except (IOError, yaml.YAMLError) as e:
            log.warning("Could not load or parse %s. Using default settings. Error: %s", config_file_path, e)

    return config


def validate_config(config: Dict[str, Any]) -> bool:
    """
    Checks the parts of the configuration a scan depends on.

    Raises:
        ConfigError: If the keyword rule is enabled without a usable keyword list.
    """
    rules = config.get("rules")
    if not isinstance(rules, dict):
        raise ConfigError("'rules' must be a mapping.")

    keyword_block = rules.get("detectors", {}).get("keyword", {})
    if not keyword_block.get("enabled"):
        return True

    keywords = keyword_block.get("keywords")
    if not isinstance(keywords, list):
        raise ConfigError("'rules.detectors.keyword.keywords' must be a list of strings.")
    if not keywords:
        raise ConfigError("'rules.detectors.keyword.keywords' must not be empty.")
    for keyword in keywords:
        if not isinstance(keyword, str) or not keyword.strip():
            raise ConfigError(f"Invalid keyword in configuration: {keyword!r}")
    return True
