"""
Response utilities for Lambda handlers.

Telegram only looks at the status code of a webhook answer; anything other
than 2xx makes it redeliver the update.
"""

import json
from decimal import Decimal
from typing import Any, Dict, Optional

from .types import LambdaResponse


def decimal_default(obj: Any) -> Any:
    """JSON serializer for Decimal types from DynamoDB."""
    if isinstance(obj, Decimal):
        if obj % 1 == 0:
            return int(obj)
        return float(obj)
    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


def json_response(status_code: int, body: dict, headers: Optional[dict] = None) -> LambdaResponse:
    """
    Create standardized JSON response.

    Args:
        status_code: HTTP status code
        body: Response body dictionary
        headers: Optional additional headers

    Returns:
        Lambda response dictionary
    """
    response_headers = {"Content-Type": "application/json"}
    if headers:
        response_headers.update(headers)

    return {
        "statusCode": status_code,
        "headers": response_headers,
        "body": json.dumps(body, default=decimal_default),
    }


def text_response(body: str = "OK", status_code: int = 200) -> LambdaResponse:
    """Plain-text acknowledgement."""
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "text/plain"},
        "body": body,
    }


def error_response(
    status_code: int,
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> dict:
    """
    Create an error response.

    Args:
        status_code: HTTP status code
        code: Machine-readable error code (snake_case)
        message: Human-readable error message
        details: Optional additional error details

    Returns:
        Lambda response dict
    """
    body = {
        "error": {
            "code": code,
            "message": message,
        }
    }
    if details:
        body["error"]["details"] = details

    return json_response(status_code, body)
