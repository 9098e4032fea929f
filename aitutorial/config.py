# =============================================================================
# Configuration Loading and Merging
# =============================================================================
# This module handles loading YAML config files and merging them with
# command-line overrides. It keeps things simple using plain dictionaries.
# Secrets come from configs/secrets.yaml or, failing that, from environment
# variables (optionally loaded from env/.env with python-dotenv).

import os
from pathlib import Path

import yaml
from dotenv import load_dotenv


def get_project_root():
    """
    Get the root directory of the project.
    This is the folder containing main.py and the configs/ directory.

    Returns:
        Path: The project root directory
    """
    # Go up from aitutorial/ to the project root
    return Path(__file__).parent.parent


def load_yaml_file(file_path):
    """
    Load a YAML file and return its contents as a dictionary.

    Args:
        file_path: Path to the YAML file

    Returns:
        dict: The parsed YAML contents, or empty dict if file doesn't exist
    """
    path = Path(file_path)
    if not path.exists():
        return {}

    with open(path, 'r', encoding='utf-8') as f:
        return yaml.safe_load(f) or {}


def deep_merge(base, override):
    """
    Recursively merge two dictionaries.
    Values in 'override' take precedence over values in 'base'.

    Args:
        base: The base dictionary (default values)
        override: The override dictionary (custom values)

    Returns:
        dict: A new dictionary with merged values

    Example:
        base = {'a': 1, 'b': {'x': 10, 'y': 20}}
        override = {'b': {'x': 99}}
        result = {'a': 1, 'b': {'x': 99, 'y': 20}}
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def load_config(config_path=None, cli_overrides=None):
    """
    Load configuration from YAML files and merge with CLI overrides.

    The loading order is:
    1. configs/base.yaml (default values)
    2. Custom config file (if provided via --config)
    3. OPENAI_MODEL environment variable (overrides llm.model)
    4. CLI overrides (highest priority)

    Args:
        config_path: Optional path to a custom config YAML file
        cli_overrides: Optional dict of CLI argument overrides

    Returns:
        dict: The merged configuration dictionary

    Raises:
        FileNotFoundError: If a custom config path was given but doesn't exist
    """
    project_root = get_project_root()

    # Step 1: Load base config (defaults)
    config = load_yaml_file(project_root / 'configs' / 'base.yaml')

    # Step 2: Merge custom config file (if provided)
    if config_path:
        if not Path(config_path).exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        config = deep_merge(config, load_yaml_file(config_path))

    # Step 3: Model name from the environment, like the rest of the secrets
    load_environment()
    env_model = os.getenv('OPENAI_MODEL')
    if env_model:
        config = deep_merge(config, {'llm': {'model': env_model}})

    # Step 4: Apply CLI overrides (if provided)
    if cli_overrides:
        config = deep_merge(config, cli_overrides)

    return config


def load_environment():
    """
    Load environment variables from env/.env and .env (if they exist).

    Variables already set in the process environment are never overwritten.
    """
    project_root = get_project_root()
    for env_file in (project_root / 'env' / '.env', project_root / '.env'):
        if env_file.exists():
            load_dotenv(env_file, override=False)


def get_secrets():
    """
    Load API keys and other secrets.

    configs/secrets.yaml wins when it exists. Otherwise the OPENAI_API_KEY
    environment variable is used (after loading env/.env).

    Returns:
        dict: Dictionary containing secrets (e.g., openai_api_key)
    """
    secrets_path = get_project_root() / 'configs' / 'secrets.yaml'
    secrets = load_yaml_file(secrets_path)

    if not secrets.get('openai_api_key'):
        load_environment()
        api_key = os.getenv('OPENAI_API_KEY')
        if api_key:
            secrets['openai_api_key'] = api_key

    return secrets


def get_openai_api_key():
    """
    Get the OpenAI API key or fail with a helpful message.

    Returns:
        str: The API key

    Raises:
        ValueError: If no key is configured anywhere
    """
    api_key = get_secrets().get('openai_api_key')
    if not api_key:
        raise ValueError(
            "OpenAI API key not found.\n"
            "Copy configs/secrets.example.yaml to configs/secrets.yaml and add your key, "
            "or set OPENAI_API_KEY (for example in env/.env)."
        )
    return api_key


def resolve_path(path_str):
    """
    Convert a relative path string to an absolute Path object.
    Relative paths are resolved from the project root.

    Args:
        path_str: A path string (can be relative or absolute)

    Returns:
        Path: An absolute Path object
    """
    path = Path(path_str)

    if path.is_absolute():
        return path

    return get_project_root() / path


# =============================================================================
# Helper function to print config for debugging
# =============================================================================
def print_config(config, indent=0, file=None):
    """
    Pretty-print a configuration dictionary.

    Args:
        config: The configuration dictionary to print
        indent: Current indentation level (used internally for recursion)
        file: Stream to print to (default: stdout)
    """
    prefix = "  " * indent
    for key, value in config.items():
        if isinstance(value, dict):
            print(f"{prefix}{key}:", file=file)
            print_config(value, indent + 1, file)
        else:
            print(f"{prefix}{key}: {value}", file=file)
