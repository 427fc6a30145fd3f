"""
Client Settings

Local settings for the configuration client, read from a YAML file
with environment variable overrides. These describe *where* to poll;
the polled configuration itself lives in the config cache.
"""

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

from .exceptions import SettingsError
from .logging_setup import get_service_logger

logger = get_service_logger("settings")

# Bounds the store accepts for RequiredMinimumPollIntervalInSeconds
MIN_POLL_INTERVAL_BOUNDS = (15, 86400)

ENV_OVERRIDES = {
    "AWS_REGION": "region",
    "APPCONFIG_APPLICATION_ID": "application_id",
    "APPCONFIG_ENVIRONMENT": "environment",
    "APPCONFIG_CONFIGURATION_PROFILE": "configuration_profile",
    "APPCONFIG_REFRESH_INTERVAL_S": "refresh_interval_s",
}


@dataclass(frozen=True)
class ClientSettings:
    """Configuration client settings"""
    region: str = "us-east-1"
    application_id: str = ""  # Empty disables the client
    environment: str = "dev"
    configuration_profile: str = "application-config"
    refresh_interval_s: float = 300.0  # 5 minutes
    shutdown_grace_s: float = 10.0
    minimum_poll_interval_s: int | None = None

    @property
    def is_configured(self) -> bool:
        """True when an application identifier was supplied"""
        return bool(self.application_id)

    def validate(self) -> list[str]:
        """
        Check settings for values the client cannot run with.

        Returns:
            List of error messages (empty when valid)
        """
        errors = []

        if self.refresh_interval_s <= 0:
            errors.append(f"refresh_interval_s must be positive, got {self.refresh_interval_s}")

        if self.shutdown_grace_s < 0:
            errors.append(f"shutdown_grace_s must not be negative, got {self.shutdown_grace_s}")

        if self.minimum_poll_interval_s is not None:
            low, high = MIN_POLL_INTERVAL_BOUNDS
            if not low <= self.minimum_poll_interval_s <= high:
                errors.append(
                    f"minimum_poll_interval_s must be between {low} and {high}, "
                    f"got {self.minimum_poll_interval_s}"
                )

        return errors


def load_settings_file(path: str | Path) -> dict:
    """Load raw settings from a YAML file"""
    path = Path(path)
    try:
        with open(path, "r") as f:
            return yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning(f"Settings file not found: {path}")
        return {}
    except yaml.YAMLError as e:
        raise SettingsError(f"Error parsing {path}: {e}") from e


def load_client_settings(data: Mapping[str, Any]) -> ClientSettings:
    """Load ClientSettings from dictionary (e.g., from the YAML file)"""
    aws = data.get("aws") or {}
    appconfig = data.get("appconfig") or {}
    defaults = ClientSettings()

    try:
        minimum_poll = appconfig.get("minimum_poll_interval_s")
        return ClientSettings(
            region=str(aws.get("region") or defaults.region),
            application_id=str(appconfig.get("application_id") or ""),
            environment=str(appconfig.get("environment") or defaults.environment),
            configuration_profile=str(
                appconfig.get("configuration_profile") or defaults.configuration_profile
            ),
            refresh_interval_s=float(
                appconfig.get("refresh_interval_s", defaults.refresh_interval_s)
            ),
            shutdown_grace_s=float(
                appconfig.get("shutdown_grace_s", defaults.shutdown_grace_s)
            ),
            minimum_poll_interval_s=int(minimum_poll) if minimum_poll is not None else None,
        )
    except (TypeError, ValueError) as e:
        raise SettingsError(f"Invalid numeric setting: {e}") from e


def apply_env_overrides(
    settings: ClientSettings,
    environ: Mapping[str, str] | None = None,
) -> ClientSettings:
    """
    Overlay environment variables on top of file settings.

    Args:
        settings: Settings loaded from file
        environ: Environment mapping (defaults to os.environ)

    Returns:
        New settings with overrides applied
    """
    environ = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}

    for env_name, field_name in ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value is None or value == "":
            continue

        if field_name == "refresh_interval_s":
            try:
                overrides[field_name] = float(value)
            except ValueError as e:
                raise SettingsError(f"{env_name} must be a number, got {value!r}") from e
        else:
            overrides[field_name] = value

    if overrides:
        logger.debug(f"Environment overrides applied: {sorted(overrides)}")

    return replace(settings, **overrides)
