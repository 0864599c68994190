"""
Telegram Webhook Endpoint - POST /webhooks/telegram

Handles /start commands:
- Creates or refreshes the user's record
- Issues the one-time referral reward to the inviting user
- Sends the welcome message

Telegram redelivers any update that doesn't get a 2xx answer, so every path
answers 200 except a bad secret token. The welcome message is sent whatever
the reward outcome; a failed reward is logged and never retried here.
"""

import base64
import hmac
import logging
import os
import time
from typing import Optional

import httpx

from shared.errors import TelegramAPIError, TransientStoreError
from shared.logging_utils import (
    configure_structured_logging,
    log_api_request,
    set_request_id,
    set_update_id,
)
from shared.metrics import emit_error_metric, emit_referral_outcome_metric
from shared.referral_rules import RewardOutcome
from shared.referral_utils import process_referral
from shared.request_utils import StartEvent, parse_start_event, parse_update_body
from shared.response_utils import error_response, json_response, text_response
from shared.telegram_client import get_user_photo_url, read_secret, send_welcome
from shared.types import APIGatewayEvent, LambdaResponse
from shared.user_records import ensure_user

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

HANDLER_NAME = "telegram_webhook"
WEBHOOK_PATH = "/webhooks/telegram"
SECRET_TOKEN_HEADER = "x-telegram-bot-api-secret-token"

TELEGRAM_WEBHOOK_SECRET_ARN = os.environ.get("TELEGRAM_WEBHOOK_SECRET_ARN")

# Cached webhook secret with TTL
_webhook_secret_cache: Optional[str] = None
_webhook_secret_cache_time = 0.0
WEBHOOK_SECRET_CACHE_TTL = 300  # 5 minutes


def get_webhook_secret() -> Optional[str]:
    """Secret token Telegram echoes in every delivery (None = not enforced)."""
    global _webhook_secret_cache, _webhook_secret_cache_time

    if _webhook_secret_cache and (time.time() - _webhook_secret_cache_time) < WEBHOOK_SECRET_CACHE_TTL:
        return _webhook_secret_cache

    secret = read_secret(TELEGRAM_WEBHOOK_SECRET_ARN, "secret") or os.environ.get("TELEGRAM_WEBHOOK_SECRET")
    if secret:
        _webhook_secret_cache = secret
        _webhook_secret_cache_time = time.time()
    return secret


def _verify_secret_token(headers: dict) -> bool:
    expected = get_webhook_secret()
    if not expected:
        return True

    provided = next(
        (value for key, value in headers.items() if key.lower() == SECRET_TOKEN_HEADER),
        None,
    )
    if not provided:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


def _get_method(event: dict) -> str:
    method = event.get("httpMethod")
    if not method:
        # HTTP API (payload v2)
        method = (event.get("requestContext") or {}).get("http", {}).get("method", "")
    return method.upper()


def _get_body(event: dict) -> Optional[str]:
    body = event.get("body")
    if body and event.get("isBase64Encoded"):
        try:
            body = base64.b64decode(body).decode("utf-8")
        except (ValueError, UnicodeDecodeError):
            logger.warning("Could not decode base64 webhook body")
            return None
    return body


def _issue_reward(start: StartEvent) -> Optional[RewardOutcome]:
    """Run the reward transaction; failures are logged, never raised."""
    try:
        outcome = process_referral(start.subject_user_id, start.referral_token)
    except TransientStoreError as e:
        logger.error(
            f"Referral reward for {start.subject_user_id} gave up after {e.attempts} attempts: {e}",
            extra={"subject_user_id": start.subject_user_id, "attempts": e.attempts},
        )
        emit_error_metric("transient_store_error", service="dynamodb", handler=HANDLER_NAME)
        return None
    except Exception as e:
        logger.error(f"Referral reward for {start.subject_user_id} failed: {e}", exc_info=True)
        emit_error_metric("referral_failed", service="dynamodb", handler=HANDLER_NAME)
        return None

    emit_referral_outcome_metric(outcome.value)
    return outcome


def _send_welcome(start: StartEvent) -> bool:
    try:
        send_welcome(start.chat_id, start.display_name)
        return True
    except (TelegramAPIError, httpx.HTTPError) as e:
        logger.error(f"Failed to send welcome to {start.subject_user_id}: {e}")
        emit_error_metric("welcome_failed", service="telegram", handler=HANDLER_NAME)
        return False
    except Exception as e:
        logger.error(f"Unexpected error sending welcome to {start.subject_user_id}: {e}", exc_info=True)
        emit_error_metric("welcome_failed", service="telegram", handler=HANDLER_NAME)
        return False


def handler(event: APIGatewayEvent, context) -> LambdaResponse:
    """
    Lambda handler for Telegram webhooks.

    Returns:
        200 for every update (body "OK", or "Error" if the user record
        couldn't be written), 401 for a wrong secret token
    """
    configure_structured_logging()
    set_request_id(event)
    start_time = time.time()

    method = _get_method(event)
    if method != "POST":
        return json_response(200, {"status": "ok", "message": "Telegram Bot Webhook Active"})

    if not _verify_secret_token(event.get("headers") or {}):
        logger.warning("Rejected webhook call with missing or wrong secret token")
        return error_response(401, "invalid_secret_token", "Invalid secret token")

    update = parse_update_body(_get_body(event))
    if update is None:
        return text_response("OK")

    set_update_id(update.get("update_id"))
    start = parse_start_event(update)
    if start is None:
        return text_response("OK")

    logger.info(
        f"Processing /start for {start.subject_user_id}",
        extra={"user_id": start.subject_user_id, "referral_token": start.referral_token},
    )

    photo_url = get_user_photo_url(start.subject_user_id)

    user_saved = True
    try:
        ensure_user(start.subject_user_id, start.display_name, photo_url, start.referral_token)
    except Exception as e:
        user_saved = False
        logger.error(f"Webhook Error: could not save user {start.subject_user_id}: {e}", exc_info=True)
        emit_error_metric("ensure_user_failed", service="dynamodb", handler=HANDLER_NAME)

    if user_saved:
        _issue_reward(start)

    _send_welcome(start)

    latency_ms = (time.time() - start_time) * 1000
    log_api_request(logger, "POST", WEBHOOK_PATH, 200, latency_ms, user_id=start.subject_user_id)

    return text_response("OK" if user_saved else "Error")
