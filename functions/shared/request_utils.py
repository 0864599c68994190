"""Shared request utilities for the webhook handler."""

import json
import logging
from dataclasses import dataclass
from typing import Optional

from .constants import DEFAULT_DISPLAY_NAME, REFERRAL_PREFIXES, START_COMMAND
from .types import TelegramUpdate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StartEvent:
    """The parts of a /start update the handler acts on."""

    subject_user_id: str
    display_name: str
    chat_id: int
    referral_token: Optional[str]
    update_id: Optional[int] = None


def is_start_command(text: Optional[str]) -> bool:
    """True for "/start", "/start payload" and "/start@BotName payload"."""
    if not text or not text.startswith(START_COMMAND):
        return False
    command = text.split(maxsplit=1)[0]
    return command == START_COMMAND or command.startswith(START_COMMAND + "@")


def extract_referral_token(text: Optional[str]) -> Optional[str]:
    """
    Extract the referrer id from a /start deep-link payload.

    Examples:
        "/start ref_12345" -> "12345"
        "/start ref12345"  -> "12345"
        "/start 12345"     -> "12345"
        "/start"           -> None

    Args:
        text: Message text

    Returns:
        Referral token, or None when absent
    """
    if not is_start_command(text):
        return None

    parts = text.split()
    if len(parts) < 2:
        return None

    payload = parts[1]
    for prefix in REFERRAL_PREFIXES:
        if payload.startswith(prefix):
            payload = payload[len(prefix):]
            break

    return payload or None


def parse_update_body(body: Optional[str]) -> Optional[TelegramUpdate]:
    """Decode the webhook body; None if it is not a JSON object."""
    if not body:
        return None
    try:
        update = json.loads(body)
    except (json.JSONDecodeError, TypeError):
        logger.warning("Webhook body is not valid JSON")
        return None
    return update if isinstance(update, dict) else None


def parse_start_event(update: TelegramUpdate) -> Optional[StartEvent]:
    """
    Pick out a /start command from a human user.

    Returns None for updates without a message or sender, for bots, for
    malformed messages and for any text other than /start.
    """
    message = update.get("message")
    if not isinstance(message, dict):
        return None

    sender = message.get("from")
    if not isinstance(sender, dict) or sender.get("is_bot") or sender.get("id") is None:
        return None

    text = message.get("text")
    if not isinstance(text, str) or not is_start_command(text):
        return None

    chat = message.get("chat")
    if not isinstance(chat, dict):
        chat = {}
    return StartEvent(
        subject_user_id=str(sender["id"]),
        display_name=sender.get("first_name") or DEFAULT_DISPLAY_NAME,
        chat_id=chat.get("id", sender["id"]),
        referral_token=extract_referral_token(text),
        update_id=update.get("update_id"),
    )
