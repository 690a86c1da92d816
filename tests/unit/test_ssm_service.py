"""Unit tests for SSM secret retrieval using moto."""

from typing import Generator

import boto3
import pytest
from moto import mock_aws

from fanflow_shared.config import WebhookSettings
from fanflow_shared.services.ssm_service import SSMService, SSMServiceError, resolve_webhook_secret

PARAMETER = "/fanflow/test/thirdweb/webhook_secret"


@pytest.fixture
def ssm(aws_credentials: None) -> Generator[None, None, None]:
    with mock_aws():
        boto3.client("ssm", region_name="eu-west-1").put_parameter(
            Name=PARAMETER, Value="whsec_from_ssm", Type="SecureString"
        )
        yield


class TestSSMService:
    def test_get_parameter_decrypts(self, ssm: None) -> None:
        assert SSMService().get_parameter(PARAMETER) == "whsec_from_ssm"

    def test_get_parameter_is_cached(self, ssm: None) -> None:
        service = SSMService()
        service.get_parameter(PARAMETER)
        boto3.client("ssm", region_name="eu-west-1").put_parameter(
            Name=PARAMETER, Value="rotated", Type="SecureString", Overwrite=True
        )

        assert service.get_parameter(PARAMETER) == "whsec_from_ssm"
        assert service.get_parameter(PARAMETER, use_cache=False) == "rotated"

    def test_missing_parameter(self, ssm: None) -> None:
        with pytest.raises(SSMServiceError, match="not found"):
            SSMService().get_parameter("/fanflow/test/missing")


class TestResolveWebhookSecret:
    @pytest.fixture(autouse=True)
    def no_env_secret(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("THIRDWEB_WEBHOOK_SECRET", raising=False)
        monkeypatch.delenv("WEBHOOK_SECRET_SSM_PARAMETER", raising=False)

    def test_environment_secret_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("THIRDWEB_WEBHOOK_SECRET", "env-secret")
        settings = WebhookSettings(webhook_secret_ssm_parameter=PARAMETER)

        assert resolve_webhook_secret(settings) == "env-secret"

    def test_falls_back_to_ssm(self, ssm: None) -> None:
        settings = WebhookSettings(webhook_secret_ssm_parameter=PARAMETER)

        assert resolve_webhook_secret(settings) == "whsec_from_ssm"

    def test_no_source_configured(self) -> None:
        assert resolve_webhook_secret(WebhookSettings()) is None

    def test_ssm_failure_resolves_to_none(self, ssm: None) -> None:
        settings = WebhookSettings(webhook_secret_ssm_parameter="/fanflow/test/missing")

        assert resolve_webhook_secret(settings) is None
