"""
Telegram update processing.

Routes a verified webhook update to membership or message handling. The
organization is resolved once at ingress and passed down as plain values.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings
from models.telegram_message import MessageDirection
from services.campaign_matcher import ChatTitleCampaignMatcher
from services.command_handlers import CommandContext, dispatch_command
from services.commands import parse_command
from services.identity import link_kol_to_chat, resolve_kol_by_username
from services.telegram_chats import (
    get_or_create_chat,
    handle_membership_update,
    log_group_message,
    log_kol_message,
)
from services.telegram_client import TelegramClient
from services.telegram_types import TelegramMessage, TelegramUpdate

logger = logging.getLogger(__name__)

GROUP_CHAT_TYPES = {"group", "supergroup"}


async def process_update(
    db: AsyncSession,
    update: TelegramUpdate,
    organization_id: str,
    bot_token: Optional[str],
    settings: Settings,
) -> None:
    if update.my_chat_member is not None:
        await handle_membership_update(db, organization_id, update.my_chat_member)
    elif update.message is not None:
        await handle_message(db, update.message, organization_id, bot_token, settings)
    else:
        logger.debug(f"Ignoring update {update.update_id} with no handled payload")


def _build_context(
    message: TelegramMessage,
    chat_record,
    organization_id: str,
    bot_token: Optional[str],
    settings: Settings,
) -> CommandContext:
    sender = message.from_user
    return CommandContext(
        organization_id=organization_id,
        client=TelegramClient(bot_token) if bot_token else None,
        chat=chat_record,
        telegram_chat_id=str(message.chat.id),
        is_group=message.chat.type in GROUP_CHAT_TYPES,
        sender_username=sender.username if sender else None,
        sender_id=sender.id if sender else None,
        sender_name=sender.display_name if sender else None,
        group_title=message.chat.title,
        message=message,
        budget_allow_list=settings.budget_allow_list,
        schedule_url=settings.schedule_url,
        campaign_matcher=ChatTitleCampaignMatcher(settings.budget_chat_title_prefixes),
    )


async def handle_message(
    db: AsyncSession,
    message: TelegramMessage,
    organization_id: str,
    bot_token: Optional[str],
    settings: Settings,
) -> None:
    """Dispatch commands; log and link plain text. Channels and media-only messages are ignored."""
    content = message.content
    if not content:
        return

    chat_type = message.chat.type
    if chat_type == "private":
        await _handle_private_message(db, message, content, organization_id, bot_token, settings)
    elif chat_type in GROUP_CHAT_TYPES:
        await _handle_group_message(db, message, content, organization_id, bot_token, settings)
    else:
        logger.debug(f"Ignoring message in {chat_type} chat {message.chat.id}")


async def _handle_private_message(
    db: AsyncSession,
    message: TelegramMessage,
    content: str,
    organization_id: str,
    bot_token: Optional[str],
    settings: Settings,
) -> None:
    sender = message.from_user
    sender_username = sender.username if sender else None
    sender_name = sender.display_name if sender else None
    logger.info(f"Private message from @{sender_username} ({sender.id if sender else None}): {content[:50]}")

    chat_record = await get_or_create_chat(
        db,
        organization_id,
        message.chat,
        title=sender_name or sender_username,
        username=sender_username,
        refresh=True,
    )

    ctx = _build_context(message, chat_record, organization_id, bot_token, settings)
    if await dispatch_command(db, ctx, parse_command(content)):
        return

    if sender is None or not sender_username:
        logger.info("Private message without sender username, not linked")
        return

    kol = await resolve_kol_by_username(db, organization_id, sender_username)
    if kol is None:
        logger.info(f"No KOL found for @{sender_username}")
        return

    kol_id, kol_name = kol.id, kol.name
    telegram_chat_id = str(message.chat.id)
    await link_kol_to_chat(db, chat_record, kol, sender.id, matched_by="username")
    await log_kol_message(
        db,
        kol_id,
        telegram_chat_id,
        content,
        MessageDirection.INBOUND,
        message=message,
        sender_name=sender_name,
    )
    logger.info(f"Stored private message and linked KOL {kol_name}")

    if content.strip().lower().startswith("/start"):
        await ctx.reply(
            db,
            f"Hi {sender_name or sender_username}! You're now connected. "
            "Your agency can send you messages through this chat.",
        )


async def _handle_group_message(
    db: AsyncSession,
    message: TelegramMessage,
    content: str,
    organization_id: str,
    bot_token: Optional[str],
    settings: Settings,
) -> None:
    chat_record = await get_or_create_chat(db, organization_id, message.chat)

    ctx = _build_context(message, chat_record, organization_id, bot_token, settings)
    if await dispatch_command(db, ctx, parse_command(content)):
        return

    await log_group_message(db, ctx.chat_record_id, content, MessageDirection.INBOUND, message)

    sender = message.from_user
    if sender is None or sender.is_bot or not sender.username:
        return

    # Enrichment only: a sender who is not a KOL is not an error
    try:
        kol = await resolve_kol_by_username(db, organization_id, sender.username)
        if kol is not None:
            await link_kol_to_chat(db, chat_record, kol, sender.id, matched_by="username")
    except Exception:
        logger.exception(f"Failed to link @{sender.username} in chat {message.chat.id}")
        await db.rollback()
