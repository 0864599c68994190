"""
Tests for CloudWatch metrics utilities module.

Tests cover metric emission and error handling using moto to mock
CloudWatch.
"""

from unittest.mock import MagicMock, patch

import boto3
import pytest
from moto import mock_aws

from shared.metrics import (
    NAMESPACE,
    emit_error_metric,
    emit_metric,
    emit_referral_outcome_metric,
)


@pytest.fixture
def mock_cloudwatch():
    """Provide mocked CloudWatch client."""
    with mock_aws():
        yield boto3.client("cloudwatch", region_name="us-east-1")


def _metric_names(client):
    return {m["MetricName"] for m in client.list_metrics(Namespace=NAMESPACE)["Metrics"]}


class TestEmitMetric:
    """Tests for emit_metric function."""

    def test_emits_simple_metric(self, mock_cloudwatch):
        emit_metric("TestMetric")

        assert "TestMetric" in _metric_names(mock_cloudwatch)

    def test_emits_dimensions(self):
        client = MagicMock()

        with patch("shared.metrics.get_cloudwatch", return_value=client):
            emit_metric("Latency", value=12.0, unit="Milliseconds", dimensions={"Handler": "telegram_webhook"})

        kwargs = client.put_metric_data.call_args[1]
        assert kwargs["Namespace"] == NAMESPACE
        datum = kwargs["MetricData"][0]
        assert datum["Value"] == 12.0
        assert datum["Unit"] == "Milliseconds"
        assert datum["Dimensions"] == [{"Name": "Handler", "Value": "telegram_webhook"}]

    def test_failures_are_swallowed(self):
        client = MagicMock()
        client.put_metric_data.side_effect = Exception("CloudWatch down")

        with patch("shared.metrics.get_cloudwatch", return_value=client):
            emit_metric("TestMetric")

        client.put_metric_data.assert_called_once()


class TestReferralOutcomeMetric:
    def test_outcome_dimension(self, mock_cloudwatch):
        emit_referral_outcome_metric("rewarded")

        metrics = mock_cloudwatch.list_metrics(Namespace=NAMESPACE, MetricName="ReferralOutcome")["Metrics"]
        assert metrics[0]["Dimensions"] == [{"Name": "Outcome", "Value": "rewarded"}]


class TestEmitErrorMetric:
    def test_all_dimensions(self):
        with patch("shared.metrics.emit_metric") as mock_emit:
            emit_error_metric("transient_store_error", service="dynamodb", handler="telegram_webhook")

        mock_emit.assert_called_once_with(
            "Errors",
            dimensions={
                "ErrorType": "transient_store_error",
                "Service": "dynamodb",
                "Handler": "telegram_webhook",
            },
        )

    def test_error_type_only(self):
        with patch("shared.metrics.emit_metric") as mock_emit:
            emit_error_metric("welcome_failed")

        mock_emit.assert_called_once_with("Errors", dimensions={"ErrorType": "welcome_failed"})
