"""Notification dispatch.

Sends announcements to campaign notification chats and reports what
happened as a NotificationOutcome instead of raising, so a failed
announcement can be mentioned in the KOL's reply without touching the
deliverable that triggered it.
"""

import html
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from services.telegram_client import TelegramClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Delivered:
    message_id: Optional[int] = None


@dataclass(frozen=True)
class PlatformRejected:
    reason: str


@dataclass(frozen=True)
class TransportFailed:
    message: str


NotificationOutcome = Union[Delivered, PlatformRejected, TransportFailed]


async def dispatch_notification(
    client: TelegramClient,
    destination: str,
    text: str,
    parse_mode: Optional[str] = "HTML",
) -> NotificationOutcome:
    """Send `text` to `destination` and classify the result."""
    try:
        response = await client.send_message(
            destination, text, parse_mode=parse_mode, disable_web_page_preview=True
        )
    except Exception as e:
        logger.warning(f"Notification to {destination} raised: {e}")
        return TransportFailed(message=str(e) or type(e).__name__)

    if response.ok:
        message_id = response.result.get("message_id") if isinstance(response.result, dict) else None
        logger.info(f"Notification delivered to {destination}")
        return Delivered(message_id=message_id)

    if response.transport_error:
        return TransportFailed(message=response.description or "Network error")

    logger.warning(f"Notification to {destination} rejected: {response.description}")
    return PlatformRejected(reason=response.description or "Unknown error")


def describe_outcome(outcome: NotificationOutcome) -> str:
    """One line for the KOL's confirmation reply."""
    match outcome:
        case Delivered():
            return "Campaign group notified."
        case PlatformRejected(reason=reason):
            return f"Note: could not notify the campaign group ({reason})."
        case TransportFailed(message=message):
            return f"Note: could not reach the campaign group ({message})."


def format_count(value: int) -> str:
    """Compact engagement count: 950, 1.2K, 3.4M."""
    if value >= 1_000_000:
        return f"{value / 1_000_000:.1f}M"
    if value >= 1_000:
        return f"{value / 1_000:.1f}K"
    return str(value)


def format_submission_announcement(
    kol_name: str,
    campaign_name: str,
    tweet_url: str,
    content: str,
    impressions: int,
    likes: int,
    retweets: int,
    replies: int,
    posted_at: Optional[datetime] = None,
) -> str:
    """HTML announcement posted to the campaign's notification chat."""
    preview = content if len(content) <= 280 else content[:277] + "..."
    lines = [
        "<b>New post submitted</b>",
        "",
        f"<b>KOL:</b> {html.escape(kol_name)}",
        f"<b>Campaign:</b> {html.escape(campaign_name)}",
    ]
    if posted_at:
        lines.append(f"<b>Posted:</b> {posted_at.strftime('%Y-%m-%d %H:%M UTC')}")
    lines.extend([
        "",
        f"<i>{html.escape(preview)}</i>",
        "",
        f"Views: {format_count(impressions)} | Likes: {format_count(likes)} | "
        f"RTs: {format_count(retweets)} | Replies: {format_count(replies)}",
        "",
        html.escape(tweet_url),
    ])
    return "\n".join(lines)
