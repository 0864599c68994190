"""
Telegram Bot API client.

Provides a reusable httpx.Client shared across warm invocations, plus the
two Bot API interactions the webhook needs: resolving a user's profile photo
and sending the welcome message.

Testing:
    Set USE_CONNECTION_POOLING=false in test fixtures to get a new client per
    call, so tests can swap the transport with httpx.MockTransport or respx.
"""

import json
import logging
import os
import time
from dataclasses import replace
from typing import Any, Optional

import httpx
from botocore.exceptions import BotoCoreError, ClientError

from .aws_clients import get_secretsmanager
from .constants import DEFAULT_DISPLAY_NAME, TELEGRAM_API, TELEGRAM_CONNECT_TIMEOUT, TELEGRAM_TIMEOUT
from .errors import TelegramAPIError
from .logging_utils import log_external_call
from .retry import TELEGRAM_RETRY_CONFIG, retry_call

logger = logging.getLogger(__name__)

TELEGRAM_BOT_TOKEN_ARN = os.environ.get("TELEGRAM_BOT_TOKEN_ARN")

# Welcome message content
WELCOME_PHOTO_URL = os.environ.get("WELCOME_PHOTO_URL") or "https://i.ibb.co/CKK6Hyqq/1e48400d0ef9.jpg"
MINI_APP_URL = os.environ.get("MINI_APP_URL") or "https://khanbhai009-cloud.github.io/Telegram-bot-web"
CHANNEL_URL = os.environ.get("CHANNEL_URL") or "https://t.me/finisher_tech"
COMMUNITY_URL = os.environ.get("COMMUNITY_URL") or "https://t.me/finisher_techg"

WELCOME_CAPTION = """👋 *Hi! Welcome {first_name}* ⭐
Yaha aap tasks complete karke real rewards kama sakte ho!

🔥 *Daily Tasks*
🔥 *Video Watch*
🔥 *Mini Apps*
🔥 *Referral Bonus*
🔥 *Auto Wallet System*

Ready to earn?
Tap START and your journey begins!"""

DEFAULT_TIMEOUT = httpx.Timeout(TELEGRAM_TIMEOUT, connect=TELEGRAM_CONNECT_TIMEOUT)

# Only network failures are retried; ok=false answers are final
SEND_RETRY_CONFIG = replace(TELEGRAM_RETRY_CONFIG, retryable_exceptions=(httpx.TransportError,))

# Global client instance (lazy-initialized)
_client: Optional[httpx.Client] = None

# Cached bot token with TTL
_bot_token_cache: Optional[str] = None
_bot_token_cache_time = 0.0
BOT_TOKEN_CACHE_TTL = 300  # 5 minutes


def _use_connection_pooling() -> bool:
    """Check if connection pooling is enabled (runtime check)."""
    return os.environ.get("USE_CONNECTION_POOLING", "true").lower() == "true"


def get_http_client() -> httpx.Client:
    """
    Get an HTTP client for Bot API calls.

    In production the client is created once and reused; in tests
    (USE_CONNECTION_POOLING=false) a new one is created per call.
    """
    global _client

    if not _use_connection_pooling():
        return httpx.Client(timeout=DEFAULT_TIMEOUT)

    if _client is None:
        logger.debug("Initializing shared Telegram HTTP client")
        _client = httpx.Client(timeout=DEFAULT_TIMEOUT)
    return _client


def reset_client() -> None:
    """Drop the cached client and token. Used in tests."""
    global _client, _bot_token_cache, _bot_token_cache_time
    if _client is not None:
        _client.close()
    _client = None
    _bot_token_cache = None
    _bot_token_cache_time = 0.0


def read_secret(secret_arn: Optional[str], json_key: str) -> Optional[str]:
    """
    Read a secret string from Secrets Manager.

    Accepts either a raw string or a JSON object holding json_key.
    Returns None if the ARN is unset or the secret can't be read.
    """
    if not secret_arn:
        return None
    try:
        response = get_secretsmanager().get_secret_value(SecretId=secret_arn)
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Failed to retrieve secret {json_key}: {e}")
        return None

    secret_value = response.get("SecretString", "")
    try:
        secret_json = json.loads(secret_value)
    except json.JSONDecodeError:
        return secret_value or None
    if isinstance(secret_json, dict):
        return secret_json.get(json_key) or None
    return secret_value or None


def get_bot_token() -> Optional[str]:
    """Bot token from Secrets Manager (cached with TTL), else TELEGRAM_BOT_TOKEN."""
    global _bot_token_cache, _bot_token_cache_time

    if _bot_token_cache and (time.time() - _bot_token_cache_time) < BOT_TOKEN_CACHE_TTL:
        return _bot_token_cache

    token = read_secret(TELEGRAM_BOT_TOKEN_ARN, "token") or os.environ.get("TELEGRAM_BOT_TOKEN")
    if token:
        _bot_token_cache = token
        _bot_token_cache_time = time.time()
    return token


def caption_safe_name(name: str) -> str:
    """Drop characters that would close the bold greeting entity early."""
    return name.replace("*", "").replace("`", "").strip() or DEFAULT_DISPLAY_NAME


def _post(method: str, payload: dict) -> Any:
    token = get_bot_token()
    if not token:
        raise TelegramAPIError(method, "Bot token not configured")

    url = f"{TELEGRAM_API}/bot{token}/{method}"
    start = time.time()
    try:
        response = get_http_client().post(url, json=payload)
    except httpx.TransportError as e:
        log_external_call(logger, "telegram", method, False, (time.time() - start) * 1000, str(e))
        raise

    latency_ms = (time.time() - start) * 1000
    try:
        body = response.json()
    except ValueError:
        body = {}

    if response.status_code >= 400 or not body.get("ok"):
        description = body.get("description") or response.reason_phrase
        log_external_call(logger, "telegram", method, False, latency_ms, description)
        raise TelegramAPIError(method, description, status_code=response.status_code)

    log_external_call(logger, "telegram", method, True, latency_ms)
    return body.get("result")


def call_api(method: str, payload: dict) -> Any:
    """
    Call a Bot API method, retrying network failures.

    Args:
        method: Bot API method name (e.g. "sendPhoto")
        payload: JSON parameters

    Returns:
        The "result" field of the answer

    Raises:
        TelegramAPIError: Bot API answered with an error
        httpx.TransportError: Network failure after retries
    """
    return retry_call(_post, method, payload, config=SEND_RETRY_CONFIG)


def get_user_photo_url(user_id: str) -> Optional[str]:
    """
    Resolve a downloadable URL of the user's current profile photo.

    Best-effort: returns None if the user has no photo or any call fails.
    """
    try:
        photos = call_api("getUserProfilePhotos", {"user_id": int(user_id), "limit": 1})
        if not photos or photos.get("total_count", 0) == 0:
            return None

        file_id = photos["photos"][0][0]["file_id"]
        file_info = call_api("getFile", {"file_id": file_id})
        file_path = file_info.get("file_path")
        if not file_path:
            return None

        return f"{TELEGRAM_API}/file/bot{get_bot_token()}/{file_path}"

    except (TelegramAPIError, httpx.HTTPError, KeyError, IndexError, ValueError) as e:
        logger.warning(f"Error fetching photo for {user_id}: {e}")
        return None
    except Exception as e:
        logger.warning(f"Unexpected error fetching photo for {user_id}: {e}", exc_info=True)
        return None


def build_welcome_markup() -> dict:
    """Inline keyboard: Open App (web app), Channel and Community links."""
    return {
        "inline_keyboard": [
            [{"text": "▶ Open App", "web_app": {"url": MINI_APP_URL}}],
            [
                {"text": "📢 Channel", "url": CHANNEL_URL},
                {"text": "🌐 Community", "url": COMMUNITY_URL},
            ],
        ]
    }


def send_welcome(chat_id: int, first_name: str) -> dict:
    """
    Send the welcome photo with caption and inline keyboard.

    Args:
        chat_id: Chat to send to
        first_name: User's first name for the greeting

    Returns:
        The sent Message object
    """
    return call_api(
        "sendPhoto",
        {
            "chat_id": chat_id,
            "photo": WELCOME_PHOTO_URL,
            "caption": WELCOME_CAPTION.format(first_name=caption_safe_name(first_name)),
            "parse_mode": "Markdown",
            "reply_markup": build_welcome_markup(),
        },
    )
