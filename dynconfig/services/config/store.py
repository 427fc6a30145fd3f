"""
Configuration Store Client

Remote store boundary: start a configuration session, then poll it with
continuation tokens. The production store is AWS AppConfig (appconfigdata);
anything implementing ConfigStore can stand in for it.

AWS error codes are translated into the client's exception taxonomy so
the session manager never handles botocore types directly.
"""

from dataclasses import dataclass
from typing import Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from dynconfig.common.config import ClientSettings
from dynconfig.common.exceptions import (
    InvalidSessionError,
    ResourceNotFoundError,
    StoreError,
    ThrottledError,
)
from dynconfig.common.logging_setup import get_service_logger

logger = get_service_logger("config.store")

_ERROR_CODES: dict[str, type[StoreError]] = {
    "BadRequestException": InvalidSessionError,
    "ResourceNotFoundException": ResourceNotFoundError,
    "ThrottlingException": ThrottledError,
}


@dataclass(frozen=True)
class PollResult:
    """One poll response"""
    payload: bytes
    next_token: str
    version_label: str | None = None
    content_type: str | None = None
    next_poll_interval_s: int | None = None

    @property
    def has_payload(self) -> bool:
        """False when nothing changed since the previous poll"""
        return bool(self.payload)


class ConfigStore(Protocol):
    """Remote configuration store"""

    def start_session(
        self,
        application_id: str,
        environment_id: str,
        profile_id: str,
    ) -> str:
        """Open a session and return the initial continuation token"""
        ...

    def poll(self, token: str) -> PollResult:
        """Fetch changes since the position identified by token"""
        ...

    def close(self) -> None:
        ...


def translate_client_error(error: ClientError, operation: str) -> StoreError:
    """Map an AWS ClientError onto the store exception taxonomy"""
    details = error.response.get("Error", {})
    code = details.get("Code", "")
    message = details.get("Message") or str(error)
    error_class = _ERROR_CODES.get(code, StoreError)
    return error_class(f"{code or 'ClientError'}: {message}", operation=operation)


class AppConfigDataStore:
    """
    ConfigStore backed by the AWS AppConfig data plane.

    Credentials come from the default boto3 chain (environment, profile,
    instance role).
    """

    def __init__(
        self,
        region: str,
        minimum_poll_interval_s: int | None = None,
        client=None,
    ):
        self.region = region
        self.minimum_poll_interval_s = minimum_poll_interval_s
        self._client = client or boto3.client("appconfigdata", region_name=region)

    def start_session(
        self,
        application_id: str,
        environment_id: str,
        profile_id: str,
    ) -> str:
        params = {
            "ApplicationIdentifier": application_id,
            "EnvironmentIdentifier": environment_id,
            "ConfigurationProfileIdentifier": profile_id,
        }
        if self.minimum_poll_interval_s is not None:
            params["RequiredMinimumPollIntervalInSeconds"] = self.minimum_poll_interval_s

        try:
            response = self._client.start_configuration_session(**params)
        except ClientError as e:
            raise translate_client_error(e, "start_session") from e
        except BotoCoreError as e:
            raise StoreError(str(e), operation="start_session") from e

        return response["InitialConfigurationToken"]

    def poll(self, token: str) -> PollResult:
        try:
            response = self._client.get_latest_configuration(ConfigurationToken=token)
            body = response.get("Configuration")
            if body is None:
                payload = b""
            else:
                payload = body.read() if hasattr(body, "read") else bytes(body)
        except ClientError as e:
            raise translate_client_error(e, "poll") from e
        except BotoCoreError as e:
            raise StoreError(str(e), operation="poll") from e

        return PollResult(
            payload=payload,
            next_token=response["NextPollConfigurationToken"],
            version_label=response.get("VersionLabel"),
            content_type=response.get("ContentType"),
            next_poll_interval_s=response.get("NextPollIntervalInSeconds"),
        )

    def close(self) -> None:
        self._client.close()
        logger.debug("AppConfig data client closed")


def create_store(settings: ClientSettings) -> ConfigStore:
    """Default store factory used by ConfigService"""
    return AppConfigDataStore(
        region=settings.region,
        minimum_poll_interval_s=settings.minimum_poll_interval_s,
    )
