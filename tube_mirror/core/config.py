"""
Configuration management for tube-mirror.

This module handles loading, validating, and providing access to the
application configuration stored in config.yaml.

The configuration file contains:
    - The data directory holding stats.json, data/ and the view roots
    - The input URL list and the to-delete directory
    - How to invoke yt-dlp (binary, cookies, metadata query timeout)
    - How to invoke ffprobe
    - The name of the single-instance lock

Configuration File Location:
    config.yaml is looked up in the current working directory unless an
    explicit path is given with --config.

Example config.yaml:
    output:
      directory: "~/Videos/TubeMirror"

    input:
      url_file: "urls.txt"                    # relative to output.directory
      delete_directory: "playlists/to_delete"

    downloader:
      binary: null                            # null: run yt_dlp with this interpreter
      cookie_file: null
      query_timeout: 600
      extra_args: []

    prober:
      binary: "ffprobe"

    lock:
      name: "tube-mirror"
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from tube_mirror.core.exceptions import ConfigError


# Default configuration file name (always in current working directory)
CONFIG_FILENAME = "config.yaml"

DEFAULT_URL_FILE = "urls.txt"
DEFAULT_DELETE_DIRECTORY = "playlists/to_delete"
DEFAULT_QUERY_TIMEOUT = 600.0
DEFAULT_PROBER_BINARY = "ffprobe"
DEFAULT_LOCK_NAME = "tube-mirror"


@dataclass(frozen=True)
class OutputConfig:
    """
    Data directory configuration.

    Attributes:
        directory: Absolute path of the data directory. Everything the
                   mirror persists lives below it. Created if missing.
    """
    directory: Path


@dataclass(frozen=True)
class InputConfig:
    """
    Input files configuration.

    Attributes:
        url_file: Path of the URL list (one resource URL per line).
        delete_directory: Directory whose symlinks name the videos to purge.
    """
    url_file: Path
    delete_directory: Path


@dataclass(frozen=True)
class DownloaderConfig:
    """
    External downloader configuration.

    Attributes:
        binary: Executable to run. None runs the yt_dlp module with the
                current Python interpreter.
        cookie_file: Optional cookies.txt passed with --cookies.
        query_timeout: Seconds before a metadata query is killed.
                       None disables the timeout.
        extra_args: Additional arguments appended to every video download.
    """
    binary: str | None
    cookie_file: Path | None
    query_timeout: float | None
    extra_args: tuple[str, ...]


@dataclass(frozen=True)
class ProberConfig:
    """
    External media prober configuration.

    Attributes:
        binary: ffprobe executable name or path.
    """
    binary: str


@dataclass(frozen=True)
class Config:
    """
    Complete application configuration.

    Created by load_config() and treated as immutable.

    Example:
        config = load_config()
        print(f"Mirroring into: {config.output.directory}")
    """
    output: OutputConfig
    input: InputConfig
    downloader: DownloaderConfig
    prober: ProberConfig
    lock_name: str


def load_config(config_path: Path | None = None) -> Config:
    """
    Load and validate configuration from config.yaml.

    Args:
        config_path: Optional explicit path to config file.
                     If None, looks for config.yaml in current working directory.

    Returns:
        Config: A frozen dataclass containing all configuration values.

    Raises:
        ConfigError: If the config file is not found, has invalid YAML syntax,
                     is missing required fields, or contains invalid values.
    """
    if config_path is None:
        config_path = Path.cwd() / CONFIG_FILENAME

    if not config_path.exists():
        raise ConfigError(
            f"Configuration file not found: {config_path}",
            details={"file_path": str(config_path)}
        )

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            content = f.read()
    except IOError as e:
        raise ConfigError(
            f"Failed to read configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    try:
        raw_config = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML syntax in configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    if not isinstance(raw_config, dict):
        raise ConfigError(
            "Configuration file must contain a YAML dictionary",
            details={"file_path": str(config_path)}
        )

    return parse_config(raw_config)


def parse_config(raw_config: dict[str, Any]) -> Config:
    """
    Build a Config from an already parsed YAML dictionary.

    Args:
        raw_config: Dictionary parsed from config.yaml.

    Returns:
        Config with defaults applied for every optional section.

    Raises:
        ConfigError: If a section or value is invalid.
    """
    _validate_config(raw_config)

    output_config = _parse_output_config(raw_config["output"])
    input_config = _parse_input_config(
        _optional_section(raw_config, "input"), output_config.directory
    )
    downloader_config = _parse_downloader_config(_optional_section(raw_config, "downloader"))
    prober_config = _parse_prober_config(_optional_section(raw_config, "prober"))

    lock_section = _optional_section(raw_config, "lock")
    lock_name = lock_section.get("name", DEFAULT_LOCK_NAME)
    if not isinstance(lock_name, str) or not lock_name.strip():
        raise ConfigError(
            "'lock.name' must be a non-empty string",
            details={"field": "lock.name"}
        )

    return Config(
        output=output_config,
        input=input_config,
        downloader=downloader_config,
        prober=prober_config,
        lock_name=lock_name.strip(),
    )


def _validate_config(raw_config: dict[str, Any]) -> None:
    """
    Validate the raw configuration dictionary structure.

    Raises:
        ConfigError: If the required 'output' section is missing or any
                     present section is not a dictionary.
    """
    if "output" not in raw_config:
        raise ConfigError(
            "Missing required section: 'output'",
            details={"missing_section": "output"}
        )

    for section in ("output", "input", "downloader", "prober", "lock"):
        value = raw_config.get(section)
        if value is not None and not isinstance(value, dict):
            raise ConfigError(
                f"Section '{section}' must be a dictionary",
                details={"section": section}
            )


def _optional_section(raw_config: dict[str, Any], name: str) -> dict[str, Any]:
    return raw_config.get(name) or {}


def _parse_output_config(output_section: dict[str, Any]) -> OutputConfig:
    """
    Parse and validate the output configuration section.

    Expands ~ to home directory and converts to absolute Path.
    Does NOT create the directory (that happens at startup).

    Raises:
        ConfigError: If directory is missing or empty.
    """
    directory = output_section.get("directory", "")

    if not isinstance(directory, str) or not directory.strip():
        raise ConfigError(
            "'output.directory' must be a non-empty string",
            details={"field": "output.directory"}
        )

    return OutputConfig(directory=Path(directory.strip()).expanduser().resolve())


def _resolve_relative(raw: str, base: Path) -> Path:
    path = Path(raw.strip()).expanduser()
    if not path.is_absolute():
        path = base / path
    return path


def _parse_input_config(input_section: dict[str, Any], data_dir: Path) -> InputConfig:
    """
    Parse the input section. Relative paths are resolved against the
    data directory.
    """
    values = {}
    for field, default in (
        ("url_file", DEFAULT_URL_FILE),
        ("delete_directory", DEFAULT_DELETE_DIRECTORY),
    ):
        raw = input_section.get(field, default)
        if not isinstance(raw, str) or not raw.strip():
            raise ConfigError(
                f"'input.{field}' must be a non-empty string",
                details={"field": f"input.{field}"}
            )
        values[field] = _resolve_relative(raw, data_dir)

    return InputConfig(**values)


def _parse_downloader_config(downloader_section: dict[str, Any]) -> DownloaderConfig:
    """
    Parse and validate the downloader configuration section.

    Defaults:
        binary: None (python -m yt_dlp)
        cookie_file: None
        query_timeout: 600 seconds
        extra_args: empty

    Raises:
        ConfigError: If a value has the wrong type, the timeout is not
                     positive, or the cookie file does not exist.
    """
    binary = downloader_section.get("binary")
    if binary is not None and (not isinstance(binary, str) or not binary.strip()):
        raise ConfigError(
            "'downloader.binary' must be a non-empty string or null",
            details={"field": "downloader.binary"}
        )

    cookie_file = None
    raw_cookie = downloader_section.get("cookie_file")
    if raw_cookie is not None:
        if not isinstance(raw_cookie, str):
            raise ConfigError(
                "'downloader.cookie_file' must be a string path or null",
                details={"field": "downloader.cookie_file"}
            )

        cookie_path = Path(raw_cookie).expanduser().resolve()
        if not cookie_path.exists():
            raise ConfigError(
                f"Cookie file not found: {cookie_path}",
                details={"field": "downloader.cookie_file", "path": str(cookie_path)}
            )
        cookie_file = cookie_path

    query_timeout: float | None = DEFAULT_QUERY_TIMEOUT
    if "query_timeout" in downloader_section:
        raw_timeout = downloader_section["query_timeout"]
        if raw_timeout is None:
            query_timeout = None
        elif isinstance(raw_timeout, bool) or not isinstance(raw_timeout, (int, float)) or raw_timeout <= 0:
            raise ConfigError(
                "'downloader.query_timeout' must be a positive number or null",
                details={"field": "downloader.query_timeout", "value": raw_timeout}
            )
        else:
            query_timeout = float(raw_timeout)

    extra_args = downloader_section.get("extra_args") or []
    if not isinstance(extra_args, list) or not all(isinstance(a, str) for a in extra_args):
        raise ConfigError(
            "'downloader.extra_args' must be a list of strings",
            details={"field": "downloader.extra_args"}
        )

    return DownloaderConfig(
        binary=binary.strip() if binary else None,
        cookie_file=cookie_file,
        query_timeout=query_timeout,
        extra_args=tuple(extra_args),
    )


def _parse_prober_config(prober_section: dict[str, Any]) -> ProberConfig:
    binary = prober_section.get("binary", DEFAULT_PROBER_BINARY)
    if not isinstance(binary, str) or not binary.strip():
        raise ConfigError(
            "'prober.binary' must be a non-empty string",
            details={"field": "prober.binary"}
        )
    return ProberConfig(binary=binary.strip())
