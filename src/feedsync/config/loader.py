"""
Settings loading.

Reads an optional ``feedsync.yaml`` (flat ``KEY: value`` mapping, ``${VAR}``
placeholders allowed), overlays the recognised environment variables
(plus any set in a ``.env`` file beside it), and validates the result into frozen settings objects.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values

from feedsync.config.resolver import resolve_config
from feedsync.exceptions import ConfigurationError

CONFIG_FILENAME = "feedsync.yaml"
ENV_FILENAME = ".env"

# Fixed set of recognised keys; anything else in the file is rejected.
RECOGNISED_KEYS = frozenset(
    {
        "FTP_PROTOCOL",
        "FTP_HOST",
        "FTP_PORT",
        "FTP_USER",
        "FTP_PASSWORD",
        "FTP_REMOTE_DIR",
        "FTP_TIMEOUT",
        "FEED_EXTENSION",
        "TRANSFER_MAX_ATTEMPTS",
        "TRANSFER_RETRY_DELAY",
        "DOWNLOAD_DIR",
        "KEEP_FILES_DAYS",
        "SHOPIFY_STORE_URL",
        "SHOPIFY_ACCESS_TOKEN",
        "SHOPIFY_API_VERSION",
        "SHOPIFY_BATCH_SIZE",
        "SHOPIFY_BATCH_DELAY",
        "SHOPIFY_DRY_RUN",
        "SHOPIFY_PARALLEL_BATCH",
        "SHOPIFY_ENABLE_UPDATES",
        "CRON_SCHEDULE",
        "TIMEZONE",
        "LOG_LEVEL",
        "LOG_FILE",
    }
)

SECRET_KEYS = ("password", "access_token")


@dataclass(frozen=True)
class TransferSettings:
    protocol: str = "ftp"
    host: str = ""
    port: int = 21
    username: str | None = None
    password: str | None = None
    remote_dir: str = "/"
    timeout_s: float = 30.0
    extension: str = ".csv"
    max_attempts: int = 10
    retry_delay_s: float = 5.0


@dataclass(frozen=True)
class CatalogSettings:
    store_url: str = ""
    access_token: str = ""
    api_version: str = "2023-10"

    @property
    def base_url(self) -> str:
        return f"{self.store_url}/admin/api/{self.api_version}"


@dataclass(frozen=True)
class DispatchSettings:
    batch_size: int = 10
    inter_batch_delay_s: float = 1.0
    dry_run: bool = False
    parallel: bool = True
    enable_updates: bool = True


@dataclass(frozen=True)
class ScheduleSettings:
    cron: str = "0 2 * * *"
    timezone: str = "UTC"


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"
    file: str | None = None


@dataclass(frozen=True)
class Settings:
    transfer: TransferSettings = field(default_factory=TransferSettings)
    catalog: CatalogSettings = field(default_factory=CatalogSettings)
    dispatch: DispatchSettings = field(default_factory=DispatchSettings)
    schedule: ScheduleSettings = field(default_factory=ScheduleSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    download_dir: Path = Path("./downloads")
    keep_files_days: int = 7

    def redacted(self) -> dict[str, Any]:
        """Settings as a plain dict with secrets masked (safe to print or log)."""
        data = asdict(self)
        for section in data.values():
            if isinstance(section, dict):
                for key in SECRET_KEYS:
                    if section.get(key):
                        section[key] = "****"
        data["download_dir"] = str(self.download_dir)
        return data


def load_settings(
    project_path: Path | None = None,
    config_file: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """
    Load feedsync settings.

    Args:
        project_path: Directory searched for ``feedsync.yaml`` (default: cwd)
        config_file: Explicit config file path (must exist when given)
        environ: Environment mapping (default: ``os.environ``). Values from a
            ``.env`` file in project_path fill in keys it does not set.

    Returns:
        Validated Settings

    Raises:
        ConfigurationError: If the file cannot be parsed or a value is invalid
    """
    root = project_path or Path.cwd()
    env = _with_env_file(root / ENV_FILENAME, os.environ if environ is None else environ)
    if config_file is None:
        candidate = root / CONFIG_FILENAME
        file_values = _read_config_file(candidate) if candidate.is_file() else {}
    else:
        if not config_file.is_file():
            raise ConfigurationError(f"Configuration file not found: {config_file}")
        file_values = _read_config_file(config_file)

    values = resolve_config(file_values, env)
    for key in RECOGNISED_KEYS:
        if key in env and env[key] != "":
            values[key] = env[key]

    return build_settings(values)


def _with_env_file(path: Path, env: Mapping[str, str]) -> Mapping[str, str]:
    if not path.is_file():
        return env
    # Variables already in the environment win over the file
    file_env = {k: v for k, v in dotenv_values(path).items() if v is not None}
    return {**file_env, **env}


def _read_config_file(path: Path) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        where = f" at line {mark.line + 1}, column {mark.column + 1}" if mark is not None else ""
        raise ConfigurationError(f"Error parsing {path}{where}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping, got {type(data).__name__}")

    values = {str(k).upper(): v for k, v in data.items()}
    unknown = sorted(set(values) - RECOGNISED_KEYS)
    if unknown:
        raise ConfigurationError(f"Unrecognised configuration keys in {path}: {', '.join(unknown)}")
    return values


def build_settings(values: Mapping[str, Any]) -> Settings:
    """Coerce a flat key/value mapping into Settings."""
    protocol = str(values.get("FTP_PROTOCOL", "ftp")).lower()
    if protocol not in ("ftp", "sftp"):
        raise ConfigurationError(f"FTP_PROTOCOL must be 'ftp' or 'sftp', got {protocol!r}")

    transfer = TransferSettings(
        protocol=protocol,
        host=str(values.get("FTP_HOST", "")),
        port=_as_int(values, "FTP_PORT", 22 if protocol == "sftp" else 21, minimum=1),
        username=_as_optional_str(values.get("FTP_USER")),
        password=_as_optional_str(values.get("FTP_PASSWORD")),
        remote_dir=str(values.get("FTP_REMOTE_DIR", "/")) or "/",
        timeout_s=_as_float(values, "FTP_TIMEOUT", 30.0),
        extension=_normalise_extension(str(values.get("FEED_EXTENSION", ".csv"))),
        max_attempts=_as_int(values, "TRANSFER_MAX_ATTEMPTS", 10, minimum=1),
        retry_delay_s=_as_float(values, "TRANSFER_RETRY_DELAY", 5.0),
    )
    catalog = CatalogSettings(
        store_url=normalise_store_url(str(values.get("SHOPIFY_STORE_URL", ""))),
        access_token=str(values.get("SHOPIFY_ACCESS_TOKEN", "")),
        api_version=str(values.get("SHOPIFY_API_VERSION", "2023-10")),
    )
    dispatch = DispatchSettings(
        batch_size=_as_int(values, "SHOPIFY_BATCH_SIZE", 10, minimum=1),
        # Configured in milliseconds
        inter_batch_delay_s=_as_int(values, "SHOPIFY_BATCH_DELAY", 1000, minimum=0) / 1000.0,
        dry_run=_as_bool(values, "SHOPIFY_DRY_RUN", False),
        parallel=_as_bool(values, "SHOPIFY_PARALLEL_BATCH", True),
        enable_updates=_as_bool(values, "SHOPIFY_ENABLE_UPDATES", True),
    )
    schedule = ScheduleSettings(
        cron=str(values.get("CRON_SCHEDULE", "0 2 * * *")),
        timezone=str(values.get("TIMEZONE", "UTC")),
    )
    logging_settings = LoggingSettings(
        level=str(values.get("LOG_LEVEL", "INFO")).upper(),
        file=_as_optional_str(values.get("LOG_FILE")),
    )
    return Settings(
        transfer=transfer,
        catalog=catalog,
        dispatch=dispatch,
        schedule=schedule,
        logging=logging_settings,
        download_dir=Path(str(values.get("DOWNLOAD_DIR", "./downloads"))),
        keep_files_days=_as_int(values, "KEEP_FILES_DAYS", 7, minimum=0),
    )


def normalise_store_url(url: str) -> str:
    """``mystore`` / ``mystore.com`` / ``http://x.myshopify.com/`` -> ``https://<shop>.myshopify.com``."""
    url = url.strip().rstrip("/")
    if not url:
        return ""
    for prefix in ("https://", "http://"):
        if url.startswith(prefix):
            url = url[len(prefix) :]
    if not url.endswith(".myshopify.com"):
        if url.endswith(".com"):
            url = url[: -len(".com")]
        url = f"{url}.myshopify.com"
    return f"https://{url}"


def _normalise_extension(ext: str) -> str:
    ext = ext.strip().lower()
    return ext if ext.startswith(".") else f".{ext}"


def _as_optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _as_bool(values: Mapping[str, Any], key: str, default: bool) -> bool:
    value = values.get(key)
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off"):
        return False
    raise ConfigurationError(f"{key} must be a boolean, got {value!r}")


def _as_int(values: Mapping[str, Any], key: str, default: int, *, minimum: int | None = None) -> int:
    value = values.get(key)
    if value is None or value == "":
        return default
    try:
        result = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be an integer, got {value!r}") from None
    if minimum is not None and result < minimum:
        raise ConfigurationError(f"{key} must be >= {minimum}, got {result}")
    return result


def _as_float(values: Mapping[str, Any], key: str, default: float) -> float:
    value = values.get(key)
    if value is None or value == "":
        return default
    try:
        result = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be a number, got {value!r}") from None
    if result < 0:
        raise ConfigurationError(f"{key} must be >= 0, got {result}")
    return result
