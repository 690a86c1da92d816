"""Webhook secret lookup from AWS SSM Parameter Store.

Deployments that do not inject THIRDWEB_WEBHOOK_SECRET into the environment
store it as a SecureString parameter instead.
"""

import logging
from functools import lru_cache
from typing import ClassVar

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from fanflow_shared.config import WebhookSettings

logger = logging.getLogger(__name__)


class SSMServiceError(Exception):
    """A parameter could not be read."""

    pass


class SSMService:
    """Reads decrypted SecureString parameters, caching values per process.

    Usage:
        secret = SSMService().get_parameter("/fanflow/prod/thirdweb/webhook_secret")
    """

    # Shared by all instances so a warm Lambda reads each parameter once
    _cache: ClassVar[dict[str, str]] = {}

    def __init__(self) -> None:
        self._client = boto3.client("ssm")

    def get_parameter(self, name: str, *, use_cache: bool = True) -> str:
        """Return the decrypted value of a parameter.

        Args:
            name: Full parameter path
            use_cache: Return a previously read value without calling SSM

        Raises:
            SSMServiceError: If the parameter is missing, not readable, or
                SSM cannot be reached
        """
        if use_cache and name in self._cache:
            return self._cache[name]

        logger.info("Reading SSM parameter %s", name)
        try:
            response = self._client.get_parameter(Name=name, WithDecryption=True)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "Unknown")
            if code == "ParameterNotFound":
                raise SSMServiceError(f"SSM parameter not found: {name}") from e
            if code == "AccessDeniedException":
                raise SSMServiceError(f"Access denied to SSM parameter {name} (ssm:GetParameter)") from e
            raise SSMServiceError(f"SSM get_parameter failed for {name}: {code}") from e
        except BotoCoreError as e:
            raise SSMServiceError(f"SSM get_parameter failed for {name}: {e}") from e

        value: str = response["Parameter"]["Value"]
        self._cache[name] = value
        return value

    @classmethod
    def clear_cache(cls) -> None:
        cls._cache.clear()


@lru_cache(maxsize=1)
def get_ssm_service() -> SSMService:
    """Get the process-wide SSMService."""
    return SSMService()


def resolve_webhook_secret(settings: WebhookSettings) -> str | None:
    """Find the webhook signing secret.

    The THIRDWEB_WEBHOOK_SECRET environment value wins; otherwise the
    configured SSM parameter is read.

    Returns:
        The secret, or None when neither source provides one
    """
    if settings.webhook_secret:
        return settings.webhook_secret
    if not settings.webhook_secret_ssm_parameter:
        return None
    try:
        return get_ssm_service().get_parameter(settings.webhook_secret_ssm_parameter) or None
    except SSMServiceError as e:
        logger.error("Webhook secret lookup failed: %s", e)
        return None
