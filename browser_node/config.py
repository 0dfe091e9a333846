"""
Configuration management for Browser Node.

Handles loading, validation, and access to configuration settings
from environment variables and config files. The resulting ``NodeSettings``
object is passed explicitly into the runner; nothing below the CLI reads
``os.environ`` directly.
"""
import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional, Tuple, Type

import yaml
from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from browser_node.constants import (
    DEFAULT_NAVIGATION_TIMEOUT_MS,
    DEFAULT_PROTOCOL_TIMEOUT_MS,
)

# Default configuration file paths
DEFAULT_CONFIG_PATHS = [
    "./browser_node.yaml",
    "./browser_node.yml",
    "./browser_node.json",
    "~/.config/browser_node/config.yaml",
]

# Environment variable prefix
ENV_PREFIX = "BROWSER_NODE_"

# Global configuration instance
_config = None

# Basic logger for config loading issues before full logging is set up
config_logger = logging.getLogger("browser_node.config")
handler = logging.StreamHandler(sys.stderr)
if not config_logger.hasHandlers():
    config_logger.addHandler(handler)
    config_logger.setLevel(logging.INFO)


def _split_csv(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


class LoggingConfig(BaseModel):
    """Logging configuration settings."""
    level: str = Field("info", description="Logging level (debug, info, warning, error, critical)")
    file: Optional[str] = Field(None, description="Optional log file path")
    emoji_enabled: bool = Field(True, description="Prefix log lines with emojis")
    show_timestamps: bool = Field(True, description="Show timestamps in console output")

    @field_validator('level')
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        allowed = ['debug', 'info', 'warning', 'error', 'critical']
        level_lower = v.lower()
        if level_lower not in allowed:
            raise ValueError(f"Log level must be one of {allowed}")
        return level_lower


class DefaultsConfig(BaseModel):
    """Fallbacks applied when a run does not set an option."""
    batch_size: int = Field(1, description="Items processed concurrently per batch")
    protocol_timeout: int = Field(DEFAULT_PROTOCOL_TIMEOUT_MS, description="Browser protocol timeout (ms)")
    navigation_timeout: int = Field(DEFAULT_NAVIGATION_TIMEOUT_MS, description="Page navigation timeout (ms)")


class NodeSettings(BaseSettings):
    """Main Browser Node configuration model."""
    model_config = SettingsConfigDict(
        env_nested_delimiter='__',  # BROWSER_NODE_LOGGING__LEVEL
        env_prefix=ENV_PREFIX,
        extra='ignore',
        env_file='.env',
        env_file_encoding='utf-8',
        populate_by_name=True,
    )

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)

    # Host-compatible variables, read without the prefix
    browser_ws_endpoint: str = Field(
        "",
        validation_alias=AliasChoices("BROWSER_WS_ENDPOINT", "browser_ws_endpoint"),
        description="Base WebSocket endpoint of a remote browser",
    )
    browser_ws_token: str = Field(
        "",
        validation_alias=AliasChoices("BROWSER_WS_TOKEN", "browser_ws_token"),
        description="Token appended to the remote endpoint as ?token=",
    )
    code_enable_stdout: bool = Field(
        False,
        validation_alias=AliasChoices("CODE_ENABLE_STDOUT", "code_enable_stdout"),
        description="Log console output of custom scripts outside manual runs",
    )
    allow_builtin_modules: str = Field(
        "",
        validation_alias=AliasChoices("NODE_FUNCTION_ALLOW_BUILTIN", "allow_builtin_modules"),
        description="Comma separated standard library modules scripts may import",
    )
    allow_external_modules: str = Field(
        "",
        validation_alias=AliasChoices("NODE_FUNCTION_ALLOW_EXTERNAL", "allow_external_modules"),
        description="Comma separated third-party modules scripts may import",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        # Env vars override values coming from config files (passed as init kwargs)
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @property
    def allowed_script_modules(self) -> List[str]:
        """Modules custom scripts are allowed to import."""
        return _split_csv(self.allow_builtin_modules) + _split_csv(self.allow_external_modules)


def expand_path(path: str) -> str:
    """Expand user and variables in path."""
    expanded = os.path.expanduser(path)
    expanded = os.path.expandvars(expanded)
    return os.path.abspath(expanded)


def find_config_file() -> Optional[str]:
    """Find the first available configuration file from default paths."""
    for path in DEFAULT_CONFIG_PATHS:
        expanded_path = expand_path(path)
        if os.path.isfile(expanded_path):
            config_logger.debug(f"Found config file: {expanded_path}")
            return expanded_path
    config_logger.debug("No default config file found in standard locations.")
    return None


def load_config_from_file(path: str) -> Dict[str, Any]:
    """Load configuration from a file (YAML or JSON)."""
    path = expand_path(path)
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Configuration file not found: {path}")

    config_logger.debug(f"Loading configuration from file: {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            if path.endswith(('.yaml', '.yml')):
                config_data = yaml.safe_load(f)
            elif path.endswith('.json'):
                config_data = json.load(f)
            else:
                raise ValueError(f"Unsupported configuration file format: {path}. Use .yaml or .json.")
            return config_data if config_data is not None else {}
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ValueError(f"Invalid format in configuration file {path}: {e}") from e


def load_config(
    config_file_path: Optional[str] = None,
    load_default_files: bool = True,
) -> NodeSettings:
    """Load configuration from defaults, file, and environment variables.

    Priority: Env Vars > Specific Config File > Default Config Files > Pydantic Defaults

    Args:
        config_file_path: Explicit path to a config file.
        load_default_files: Whether to search for default config files.

    Returns:
        Validated NodeSettings object.
    """
    global _config

    file_config_data: Dict[str, Any] = {}

    chosen_file_path = None
    if config_file_path:
        chosen_file_path = expand_path(config_file_path)
        if not os.path.isfile(chosen_file_path):
            raise FileNotFoundError(f"Specified configuration file not found: {config_file_path}")
    elif load_default_files:
        chosen_file_path = find_config_file()

    if chosen_file_path:
        try:
            file_config_data = load_config_from_file(chosen_file_path)
        except (OSError, ValueError) as e:
            config_logger.warning(f"Could not load config file {chosen_file_path}: {e}")
            if config_file_path:
                raise ValueError(f"Failed to load specified config: {chosen_file_path}") from e

    try:
        loaded_config = NodeSettings(**file_config_data)
    except ValidationError as e:
        config_logger.error("Configuration validation failed. Details below:")
        config_logger.error(str(e))
        config_logger.warning("Returning default configuration due to validation errors.")
        loaded_config = NodeSettings.model_construct()

    if loaded_config.logging.file:
        loaded_config.logging.file = expand_path(loaded_config.logging.file)

    _config = loaded_config
    config_logger.debug("Configuration loaded successfully.")
    return _config


def get_config() -> NodeSettings:
    """Get the globally loaded configuration, loading it on first use."""
    global _config
    if _config is None:
        load_config()
    if _config is None:
        raise RuntimeError("Configuration is None after loading attempt.")
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the next get_config() reloads it."""
    global _config
    _config = None


def get_config_as_dict() -> Dict[str, Any]:
    """Get the current configuration as a dictionary."""
    return get_config().model_dump()
