"""Configuration loader with YAML defaults, user overrides and env variables."""

import os

import yaml

_PROVIDERS_WITH_KEYS = {"groq", "openrouter", "anthropic"}
_VALID_PROVIDERS = _PROVIDERS_WITH_KEYS | {"ollama"}

_ENV_KEYS = {
    "GROQ_API_KEY": "groq",
    "OPENROUTER_API_KEY": "openrouter",
    "ANTHROPIC_API_KEY": "anthropic",
}

USER_CONFIG_PATH = "~/.config/ebaston/config.yaml"


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base dict."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _expand_paths(config: dict) -> dict:
    """Expand ~ in string values that look like paths."""
    result = {}
    for key, value in config.items():
        if isinstance(value, dict):
            result[key] = _expand_paths(value)
        elif isinstance(value, str) and value.startswith("~"):
            result[key] = os.path.expanduser(value)
        else:
            result[key] = value
    return result


def _apply_env_overrides(config: dict) -> dict:
    """Apply API keys, provider and user id from the environment."""
    for env_name, section in _ENV_KEYS.items():
        value = os.environ.get(env_name)
        if value:
            config.setdefault(section, {})["api_key"] = value

    provider = os.environ.get("EBASTON_PROVIDER")
    if provider:
        config["provider"] = provider

    user_id = os.environ.get("EBASTON_USER_ID")
    if user_id:
        config["user_id"] = user_id

    return config


def _get_default_config_path() -> str:
    project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    return os.path.join(project_root, "config", "default.yaml")


def load_config(config_path: str | None = None) -> dict:
    """Load configuration from YAML with user overrides and env overrides.

    Args:
        config_path: YAML file to load. Uses config/default.yaml if None.

    Returns:
        Merged configuration dict.
    """
    path = config_path or _get_default_config_path()

    if not os.path.exists(path):
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}

    user_path = os.path.expanduser(USER_CONFIG_PATH)
    if os.path.exists(user_path):
        with open(user_path, encoding="utf-8") as f:
            config = _deep_merge(config, yaml.safe_load(f) or {})

    config = _apply_env_overrides(config)
    return _expand_paths(config)


def validate_config(config: dict) -> list[str]:
    """Validate configuration values. Returns a list of error strings (empty = valid)."""
    errors: list[str] = []

    provider = config.get("provider", "groq")
    if provider not in _VALID_PROVIDERS:
        errors.append(
            f"Invalid provider '{provider}', must be one of {sorted(_VALID_PROVIDERS)}"
        )
    elif provider in _PROVIDERS_WITH_KEYS and not config.get(provider, {}).get("api_key"):
        errors.append(f"API key required for provider '{provider}'")

    db_path = config.get("database", {}).get("path", "")
    if not isinstance(db_path, str) or not db_path:
        errors.append("database.path must be a non-empty string")

    timeout = config.get("completion", {}).get("timeout", 30)
    if not isinstance(timeout, (int, float)) or timeout <= 0:
        errors.append("completion.timeout must be a positive number")

    for name, delay in config.get("assistant", {}).get("auto_close", {}).items():
        if not isinstance(delay, (int, float)) or delay < 0:
            errors.append(f"assistant.auto_close.{name} must be a non-negative number")

    if not str(config.get("user_id", "")).strip():
        errors.append("user_id must not be empty")

    return errors
