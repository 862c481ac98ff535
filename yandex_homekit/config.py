"""Bridge settings loaded from YAML and the environment."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import voluptuous as vol
import yaml

from .const import (
    DEFAULT_BRIDGE_NAME,
    DEFAULT_DEBOUNCE_MAX_WAIT,
    DEFAULT_DEBOUNCE_WAIT,
    DEFAULT_FETCH_INTERVAL,
    DEFAULT_PORT,
)

_LOGGER = logging.getLogger(__name__)

CONF_CLIENT_ID = "client_id"
CONF_CLIENT_SECRET = "client_secret"
CONF_FETCH_INTERVAL = "fetch_interval"
CONF_DEBOUNCE_WAIT = "debounce_wait"
CONF_DEBOUNCE_MAX_WAIT = "debounce_max_wait"
CONF_BRIDGE_NAME = "bridge_name"
CONF_PORT = "port"
CONF_PINCODE = "pincode"

ENV_HOME = "YANDEX_HOMEKIT_HOME"
DEFAULT_HOME = "~/.yandex-to-homekit"
SETTINGS_FILE = "settings.yaml"
AUTH_FILE = "yandex.json"
DEVICES_FILE = "devices.json"
ACCESSORY_STATE_FILE = "accessory.state"

# Environment variables overriding file settings.
ENV_OVERRIDES: dict[str, str] = {
    "YANDEX_CLIENT_ID": CONF_CLIENT_ID,
    "YANDEX_CLIENT_SECRET": CONF_CLIENT_SECRET,
    "BRIDGE_PIN": CONF_PINCODE,
    "PORT": CONF_PORT,
}

_PINCODE = vol.Match(r"^\d{3}-\d{2}-\d{3}$", msg="pincode must look like 123-45-678")
_POSITIVE = vol.All(vol.Coerce(float), vol.Range(min=0, min_included=False))

SETTINGS_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_CLIENT_ID): vol.All(str, vol.Length(min=1)),
        vol.Required(CONF_CLIENT_SECRET): vol.All(str, vol.Length(min=1)),
        vol.Optional(CONF_FETCH_INTERVAL, default=DEFAULT_FETCH_INTERVAL): _POSITIVE,
        vol.Optional(CONF_DEBOUNCE_WAIT, default=DEFAULT_DEBOUNCE_WAIT): _POSITIVE,
        vol.Optional(
            CONF_DEBOUNCE_MAX_WAIT, default=DEFAULT_DEBOUNCE_MAX_WAIT
        ): _POSITIVE,
        vol.Optional(CONF_BRIDGE_NAME, default=DEFAULT_BRIDGE_NAME): vol.All(
            str, vol.Length(min=1)
        ),
        vol.Optional(CONF_PORT, default=DEFAULT_PORT): vol.All(
            vol.Coerce(int), vol.Range(min=1, max=65535)
        ),
        vol.Optional(CONF_PINCODE): vol.Any(None, _PINCODE),
    }
)


class ConfigurationError(RuntimeError):
    """Raised when the bridge cannot start with the provided settings."""


@dataclass(frozen=True)
class BridgeSettings:
    """Validated bridge settings."""

    config_dir: Path
    client_id: str
    client_secret: str
    fetch_interval: float = DEFAULT_FETCH_INTERVAL
    debounce_wait: float = DEFAULT_DEBOUNCE_WAIT
    debounce_max_wait: float = DEFAULT_DEBOUNCE_MAX_WAIT
    bridge_name: str = DEFAULT_BRIDGE_NAME
    port: int = DEFAULT_PORT
    pincode: str | None = None

    @property
    def auth_path(self) -> Path:
        return self.config_dir / AUTH_FILE

    @property
    def devices_path(self) -> Path:
        return self.config_dir / DEVICES_FILE

    @property
    def accessory_state_path(self) -> Path:
        return self.config_dir / ACCESSORY_STATE_FILE


def default_config_dir(environ: Mapping[str, str] | None = None) -> Path:
    """Return the directory holding settings, tokens and snapshots."""

    environ = os.environ if environ is None else environ
    return Path(environ.get(ENV_HOME) or DEFAULT_HOME).expanduser()


def _read_settings_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as err:
        raise ConfigurationError(f"Invalid settings file {path}: {err}") from err
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Settings file {path} must contain a mapping")
    return data


def load_settings(
    config_dir: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> BridgeSettings:
    """Merge the settings file with environment overrides and validate them."""

    environ = os.environ if environ is None else environ
    directory = (
        Path(config_dir).expanduser()
        if config_dir is not None
        else default_config_dir(environ)
    )
    raw = _read_settings_file(directory / SETTINGS_FILE)
    for env_key, conf_key in ENV_OVERRIDES.items():
        value = environ.get(env_key)
        if value:
            raw[conf_key] = value

    try:
        validated = SETTINGS_SCHEMA(raw)
    except vol.Invalid as err:
        raise ConfigurationError(f"Yandex not configured: {err}") from err

    if validated[CONF_DEBOUNCE_MAX_WAIT] < validated[CONF_DEBOUNCE_WAIT]:
        raise ConfigurationError("debounce_max_wait must be at least debounce_wait")

    _LOGGER.debug("Loaded settings from %s", directory)
    return BridgeSettings(config_dir=directory, **validated)
