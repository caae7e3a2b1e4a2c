"""
Configuration loading, validation, and parsing.

Two sources feed a run:
- the certbot renewal configuration for the domain, which names the four
  PEM artifacts (cert, chain, fullchain, privkey)
- an optional YAML settings file with the renewal window and the Fastly
  API connection details
"""

import os
import re
from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict, Any, Optional

import yaml

from .logger import get_logger


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""
    pass


DEFAULT_RENEWAL_WINDOW_DAYS = 30
DEFAULT_API_URL = "https://api.fastly.com"
DEFAULT_TIMEOUT = 30
API_TOKEN_ENV_VAR = "FASTLY_API_TOKEN"

# Keys in the certbot renewal file; each names a CertificatePaths field
RENEWAL_CONF_KEYS = ("cert", "chain", "fullchain", "privkey")


@dataclass(frozen=True)
class CertificatePaths:
    """Locations of the four PEM artifacts for one domain."""
    cert: str
    chain: str
    fullchain: str
    privkey: str


@dataclass
class FastlyConfig:
    """Fastly API connection settings."""
    api_url: str = DEFAULT_API_URL
    api_token: Optional[str] = None
    timeout: int = DEFAULT_TIMEOUT


@dataclass
class Settings:
    """Global settings."""
    renewal_window_days: int = DEFAULT_RENEWAL_WINDOW_DAYS
    dry_run: bool = False


@dataclass
class Config:
    """Root configuration object."""
    settings: Settings = field(default_factory=Settings)
    fastly: FastlyConfig = field(default_factory=FastlyConfig)


def _expand_env_vars(value: Any) -> Any:
    """
    Expand environment variables in string values.

    Supports ${VAR_NAME} syntax. Unknown variables are left as-is.

    Args:
        value: Value to expand (string, dict, or list)

    Returns:
        Value with environment variables expanded
    """
    if isinstance(value, str):
        pattern = r"\$\{([^}]+)\}"

        def replace(match):
            var_name = match.group(1)
            return os.environ.get(var_name, match.group(0))

        return re.sub(pattern, replace, value)

    elif isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}

    elif isinstance(value, list):
        return [_expand_env_vars(item) for item in value]

    return value


def parse_renewal_conf(text: str) -> CertificatePaths:
    """
    Extract the artifact paths from certbot renewal configuration text.

    Only top-level ``key = value`` lines are considered; the lookup stops
    at the first section header (``[renewalparams]`` and friends), which
    keeps keys from nested sections out of the result.

    Args:
        text: Contents of the renewal configuration file

    Returns:
        CertificatePaths for the four artifacts

    Raises:
        ConfigurationError: If any of the four keys is missing or empty
    """
    values: Dict[str, str] = {}

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("["):
            break
        if "=" not in line:
            continue
        key, _, value = line.partition("=")
        key = key.strip()
        if key in RENEWAL_CONF_KEYS and key not in values:
            values[key] = value.strip()

    missing = [key for key in RENEWAL_CONF_KEYS if not values.get(key)]
    if missing:
        raise ConfigurationError(
            f"Renewal configuration is missing: {', '.join(missing)}"
        )

    return CertificatePaths(
        **{key: values[key] for key in RENEWAL_CONF_KEYS}
    )


def load_certificate_paths(renewal_conf_path: str) -> CertificatePaths:
    """
    Read a certbot renewal configuration file and return the artifact paths.

    Args:
        renewal_conf_path: Path to e.g. /etc/letsencrypt/renewal/example.org.conf

    Returns:
        CertificatePaths for the four artifacts

    Raises:
        ConfigurationError: If the file cannot be read or lacks a key
    """
    logger = get_logger()

    try:
        raw = Path(renewal_conf_path).read_bytes()
    except OSError as e:
        raise ConfigurationError(
            f"Error with renewal config path given: {e}"
        )

    paths = parse_renewal_conf(raw.decode("utf-8", errors="replace"))

    logger.debug(f"Loaded renewal configuration from {renewal_conf_path}")
    logger.debug(f"  cert:      {paths.cert}")
    logger.debug(f"  chain:     {paths.chain}")
    logger.debug(f"  fullchain: {paths.fullchain}")
    logger.debug(f"  privkey:   {paths.privkey}")

    return paths


def _parse_settings(data: Dict[str, Any]) -> Settings:
    """
    Parse the settings section.

    Args:
        data: Raw settings data from YAML

    Returns:
        Settings instance
    """
    settings = Settings(
        renewal_window_days=data.get("renewal_window_days", DEFAULT_RENEWAL_WINDOW_DAYS),
        dry_run=bool(data.get("dry_run", False)),
    )

    validate_renewal_window(settings.renewal_window_days)

    return settings


def _parse_fastly(data: Dict[str, Any]) -> FastlyConfig:
    """
    Parse the fastly section.

    Args:
        data: Raw fastly data from YAML

    Returns:
        FastlyConfig instance
    """
    api_token = data.get("api_token")
    # An unexpanded ${VAR} means the variable was not set
    if isinstance(api_token, str) and re.fullmatch(r"\$\{[^}]+\}", api_token):
        api_token = None

    fastly = FastlyConfig(
        api_url=data.get("api_url", DEFAULT_API_URL),
        api_token=api_token or None,
        timeout=data.get("timeout", DEFAULT_TIMEOUT),
    )

    if not fastly.api_url.startswith("https://"):
        raise ConfigurationError(f"Fastly api_url must start with https://: {fastly.api_url}")
    if not isinstance(fastly.timeout, int) or fastly.timeout < 1:
        raise ConfigurationError("Fastly timeout must be a positive number of seconds")

    return fastly


def validate_renewal_window(days: Any) -> None:
    """
    Check a renewal window value.

    Raises:
        ConfigurationError: If the value is not an integer between 1 and 90
    """
    if not isinstance(days, int) or isinstance(days, bool):
        raise ConfigurationError("renewal_window_days must be an integer")
    if days < 1:
        raise ConfigurationError("renewal_window_days must be at least 1")
    if days > 90:
        raise ConfigurationError("renewal_window_days should not exceed 90")


def load_settings(settings_path: Optional[str] = None) -> Config:
    """
    Load and validate the YAML settings file.

    Without a path the defaults are returned.

    Args:
        settings_path: Path to the settings file

    Returns:
        Validated Config instance

    Raises:
        ConfigurationError: If the settings file is invalid
    """
    logger = get_logger()

    if settings_path is None:
        return Config()

    path = Path(settings_path)

    if not path.exists():
        raise ConfigurationError(f"Settings file not found: {settings_path}")

    if path.suffix not in (".yaml", ".yml"):
        raise ConfigurationError(
            f"Settings file must be YAML (.yaml or .yml): {settings_path}"
        )

    try:
        with open(path, "r") as f:
            raw_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in settings file: {e}")
    except IOError as e:
        raise ConfigurationError(f"Failed to read settings file: {e}")

    if raw_data is None:
        raw_data = {}
    if not isinstance(raw_data, dict):
        raise ConfigurationError("Settings file must contain a mapping")

    data = _expand_env_vars(raw_data)

    config = Config(
        settings=_parse_settings(data.get("settings") or {}),
        fastly=_parse_fastly(data.get("fastly") or {}),
    )

    logger.info(f"Loaded settings from {settings_path}")
    logger.info(f"  Renewal window: {config.settings.renewal_window_days} days")
    logger.info(f"  Fastly API: {config.fastly.api_url}")

    return config


def resolve_api_token(
    cli_token: Optional[str],
    config: Config,
) -> str:
    """
    Pick the API token from the command line, settings file, or environment.

    Priority:
    1. Command-line argument
    2. fastly.api_token in the settings file
    3. FASTLY_API_TOKEN environment variable

    Raises:
        ConfigurationError: If no token is available
    """
    token = cli_token or config.fastly.api_token or os.environ.get(API_TOKEN_ENV_VAR)
    if not token:
        raise ConfigurationError(
            "No Fastly API token given. Pass it as an argument, set fastly.api_token "
            f"in the settings file, or export {API_TOKEN_ENV_VAR}."
        )
    return token
