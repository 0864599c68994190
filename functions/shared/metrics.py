"""
CloudWatch Metrics Helper

Emits referral outcome and error counters. Metrics are best-effort:
a CloudWatch failure never fails the webhook.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Dict, Optional

from .aws_clients import get_cloudwatch

logger = logging.getLogger(__name__)

NAMESPACE = os.environ.get("CLOUDWATCH_NAMESPACE", "ReferralBot")


def emit_metric(
    metric_name: str,
    value: float = 1.0,
    unit: str = "Count",
    dimensions: Optional[Dict[str, str]] = None,
) -> None:
    """
    Emit a custom metric to CloudWatch.

    Args:
        metric_name: Name of the metric
        value: Metric value (default: 1.0)
        unit: Unit of measurement (Count, Seconds, Bytes, etc.)
        dimensions: Optional dimensions for filtering metrics

    Example:
        emit_metric("ReferralOutcome", dimensions={"Outcome": "rewarded"})
    """
    try:
        metric_data = {
            "MetricName": metric_name,
            "Value": value,
            "Unit": unit,
            "Timestamp": datetime.now(timezone.utc),
        }

        if dimensions:
            metric_data["Dimensions"] = [{"Name": k, "Value": v} for k, v in dimensions.items()]

        get_cloudwatch().put_metric_data(
            Namespace=NAMESPACE,
            MetricData=[metric_data],
        )

        logger.debug(
            f"Emitted metric: {metric_name}={value} {unit}",
            extra={"dimensions": dimensions},
        )

    except Exception as e:
        logger.warning(f"Failed to emit metric {metric_name}: {e}")


def emit_referral_outcome_metric(outcome: str) -> None:
    """Count one referral engine outcome (rewarded, already_rewarded, ...)."""
    emit_metric("ReferralOutcome", dimensions={"Outcome": outcome})


def emit_error_metric(
    error_type: str,
    service: Optional[str] = None,
    handler: Optional[str] = None,
) -> None:
    """
    Emit an error metric with standard dimensions.

    Args:
        error_type: Type of error (e.g., 'transient_store_error', 'telegram')
        service: External service name (e.g., 'dynamodb', 'telegram')
        handler: Lambda handler name
    """
    dimensions = {"ErrorType": error_type}

    if service:
        dimensions["Service"] = service
    if handler:
        dimensions["Handler"] = handler

    emit_metric("Errors", dimensions=dimensions)
