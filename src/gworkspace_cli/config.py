"""Configuration and file locations for gws.

Files live in a per-user directory:

    $XDG_CONFIG_HOME/gws/      (defaults to ~/.config/gws/)
        config.yaml            optional settings (client_id, client_secret, services)
        token.json             persisted OAuth token
        token.json.lock        sidecar lock while the token is being written
        services.json          services granted at the last scoped login

Environment Variables:
    GWS_CLIENT_ID: Google OAuth client ID.
    GWS_CLIENT_SECRET: Google OAuth client secret.
    GWS_SERVICES: Comma-separated services to request at login.
    XDG_CONFIG_HOME: Base directory for the config directory.
"""

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = "gws"
TOKEN_FILE_NAME = "token.json"
GRANTED_SERVICES_FILE_NAME = "services.json"
CONFIG_FILE_NAME = "config.yaml"

ENV_CLIENT_ID = "GWS_CLIENT_ID"
ENV_CLIENT_SECRET = "GWS_CLIENT_SECRET"  # nosec B105 - env var name, not a secret
ENV_SERVICES = "GWS_SERVICES"


def get_config_dir() -> Path:
    """Return the gws configuration directory."""
    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        return Path(xdg_config) / CONFIG_DIR_NAME
    return Path.home() / ".config" / CONFIG_DIR_NAME


def get_token_path() -> Path:
    """Return the path of the persisted token."""
    return get_config_dir() / TOKEN_FILE_NAME


def get_granted_services_path() -> Path:
    """Return the path of the granted-services record."""
    return get_config_dir() / GRANTED_SERVICES_FILE_NAME


def get_config_path() -> Path:
    """Return the path of the optional YAML config file."""
    return get_config_dir() / CONFIG_FILE_NAME


def ensure_config_dir(path: Path | None = None) -> Path:
    """Create the config directory with owner-only permissions if needed."""
    config_dir = path or get_config_dir()
    if not config_dir.exists():
        config_dir.mkdir(parents=True, mode=0o700)
    else:
        config_dir.chmod(0o700)
    return config_dir


def split_services(value: str) -> list[str]:
    """Split a comma-separated service list, dropping blanks."""
    return [s.strip() for s in value.split(",") if s.strip()]


class Settings(BaseModel):
    """User settings for gws.

    Attributes:
        client_id: OAuth client ID.
        client_secret: OAuth client secret.
        services: Services to request at login when --services is not given.
    """

    client_id: str | None = Field(default=None, description="OAuth client ID")
    client_secret: str | None = Field(default=None, description="OAuth client secret")
    services: list[str] = Field(default_factory=list, description="Default login services")

    @field_validator("services", mode="before")
    @classmethod
    def _split_services(cls, value: object) -> object:
        if isinstance(value, str):
            return split_services(value)
        if value is None:
            return []
        return value


def _read_config_file(path: Path) -> dict:
    """Read the YAML config file, returning an empty dict when unusable."""
    if not path.exists():
        return {}

    try:
        data = yaml.safe_load(path.read_text())
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
        logger.warning(f"Error reading config {path}: {e}")
        return {}

    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning(f"Ignoring config {path}: expected a mapping")
        return {}
    return data


def load_settings(config_path: Path | None = None) -> Settings:
    """Load settings from the config file, overridden by the environment.

    Args:
        config_path: YAML file to read. Defaults to get_config_path().

    Returns:
        Merged settings. An invalid config file is logged and ignored.
    """
    path = config_path or get_config_path()
    data = _read_config_file(path)

    env_overrides = {
        "client_id": os.environ.get(ENV_CLIENT_ID),
        "client_secret": os.environ.get(ENV_CLIENT_SECRET),
        "services": os.environ.get(ENV_SERVICES),
    }
    env_overrides = {key: value for key, value in env_overrides.items() if value}

    try:
        return Settings.model_validate({**data, **env_overrides})
    except ValidationError as e:
        logger.warning(f"Ignoring invalid config {path}: {e}")
        return Settings.model_validate(env_overrides)
