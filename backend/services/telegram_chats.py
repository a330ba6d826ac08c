"""Telegram chat persistence.

Chat records, bot membership transitions and the message audit logs.
Upserts rely on the (organization_id, telegram_chat_id) unique constraint:
when a concurrent redelivery inserts the same chat first, the loser rolls
back and applies its change to the winning row.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from models.telegram_chat import TelegramChat, TelegramChatStatus
from models.telegram_message import MessageDirection, TelegramGroupMessage, TelegramMessage
from services.telegram_client import map_chat_type
from services.telegram_types import TelegramChat as TelegramChatPayload
from services.telegram_types import TelegramChatMemberUpdated, TelegramMessage as TelegramMessagePayload

logger = logging.getLogger(__name__)

ACTIVE_MEMBER_STATUSES = {"member", "administrator"}
REMOVED_MEMBER_STATUSES = {"left": TelegramChatStatus.LEFT, "kicked": TelegramChatStatus.KICKED}


async def get_chat(db: AsyncSession, organization_id: str, telegram_chat_id: str) -> Optional[TelegramChat]:
    result = await db.execute(
        select(TelegramChat).where(
            TelegramChat.organization_id == organization_id,
            TelegramChat.telegram_chat_id == telegram_chat_id,
        )
    )
    return result.scalar_one_or_none()


async def get_or_create_chat(
    db: AsyncSession,
    organization_id: str,
    chat: TelegramChatPayload,
    title: Optional[str] = None,
    username: Optional[str] = None,
    refresh: bool = False,
) -> TelegramChat:
    """
    Return the chat record for `chat`, creating it as ACTIVE on first sight.

    With refresh=True an existing record's title/username are updated and a
    LEFT/KICKED record is reactivated (used for private chats, whose "title"
    is the sender's current name and who can message the bot again).
    Commits.
    """
    telegram_chat_id = str(chat.id)
    title = title or chat.title
    username = username or chat.username

    for attempt in range(2):
        record = await get_chat(db, organization_id, telegram_chat_id)
        if record is not None:
            if not refresh:
                return record
            if (
                record.title == title
                and record.username == username
                and record.status == TelegramChatStatus.ACTIVE
            ):
                return record
            record.title = title
            record.username = username
            if record.status != TelegramChatStatus.ACTIVE:
                logger.info(f"Chat {telegram_chat_id} reactivated (was {record.status.value})")
                record.status = TelegramChatStatus.ACTIVE
                record.bot_left_at = None
        else:
            record = TelegramChat(
                organization_id=organization_id,
                telegram_chat_id=telegram_chat_id,
                title=title,
                type=map_chat_type(chat.type),
                username=username,
                status=TelegramChatStatus.ACTIVE,
                bot_joined_at=datetime.now(timezone.utc),
            )
            db.add(record)
        try:
            await db.commit()
            return record
        except IntegrityError:
            await db.rollback()
            if attempt:
                raise
            logger.info(f"Chat {telegram_chat_id} created concurrently, retrying")

    raise RuntimeError("unreachable")


async def handle_membership_update(
    db: AsyncSession,
    organization_id: str,
    update: TelegramChatMemberUpdated,
) -> Optional[TelegramChat]:
    """
    Apply a my_chat_member update to the chat's lifecycle.

    member/administrator -> ACTIVE (created if unknown, bot_left_at cleared)
    left/kicked          -> LEFT/KICKED (existing record only, never deleted)
    """
    chat = update.chat
    telegram_chat_id = str(chat.id)
    status = update.new_chat_member.status
    now = datetime.now(timezone.utc)

    if status in ACTIVE_MEMBER_STATUSES:
        for attempt in range(2):
            record = await get_chat(db, organization_id, telegram_chat_id)
            if record is None:
                record = TelegramChat(
                    organization_id=organization_id,
                    telegram_chat_id=telegram_chat_id,
                    status=TelegramChatStatus.ACTIVE,
                )
                db.add(record)
            record.title = chat.title
            record.type = map_chat_type(chat.type)
            record.username = chat.username
            record.status = TelegramChatStatus.ACTIVE
            record.bot_joined_at = now
            record.bot_left_at = None
            try:
                await db.commit()
                break
            except IntegrityError:
                await db.rollback()
                if attempt:
                    raise
        logger.info(f"Bot active in chat {telegram_chat_id} ({chat.title or chat.type}) as {status}")
        return record

    if status in REMOVED_MEMBER_STATUSES:
        record = await get_chat(db, organization_id, telegram_chat_id)
        if record is None:
            logger.info(f"Bot removed from unknown chat {telegram_chat_id}, nothing to update")
            return None
        record.status = REMOVED_MEMBER_STATUSES[status]
        record.bot_left_at = now
        await db.commit()
        logger.info(f"Bot {status} from chat {telegram_chat_id} ({record.title})")
        return record

    logger.debug(f"Ignoring membership status {status} for chat {telegram_chat_id}")
    return None


async def _find_logged(db: AsyncSession, model, *criteria):
    result = await db.execute(select(model).where(*criteria).limit(1))
    return result.scalars().first()


def _message_timestamp(message: Optional[TelegramMessagePayload]) -> datetime:
    if message is not None:
        return datetime.fromtimestamp(message.date, tz=timezone.utc)
    return datetime.now(timezone.utc)


async def log_group_message(
    db: AsyncSession,
    chat_id: str,
    content: str,
    direction: MessageDirection,
    message: Optional[TelegramMessagePayload] = None,
    commit: bool = True,
) -> TelegramGroupMessage:
    """
    Append a message to a group chat's log. `chat_id` is the TelegramChat record id.

    A redelivered Telegram message is logged once; the existing entry is returned.
    """
    if message is not None:
        existing = await _find_logged(
            db,
            TelegramGroupMessage,
            TelegramGroupMessage.chat_id == chat_id,
            TelegramGroupMessage.telegram_message_id == str(message.message_id),
            TelegramGroupMessage.direction == direction,
        )
        if existing is not None:
            return existing

    sender = message.from_user if message is not None else None
    entry = TelegramGroupMessage(
        chat_id=chat_id,
        telegram_message_id=str(message.message_id) if message is not None else None,
        content=content,
        direction=direction,
        sender_telegram_id=str(sender.id) if sender else None,
        sender_username=sender.username if sender else None,
        sender_name=sender.display_name if sender else None,
        reply_to_message_id=(
            str(message.reply_to_message.message_id)
            if message is not None and message.reply_to_message
            else None
        ),
        timestamp=_message_timestamp(message),
    )
    db.add(entry)
    if commit:
        await db.commit()
    return entry


async def log_kol_message(
    db: AsyncSession,
    kol_id: str,
    telegram_chat_id: str,
    content: str,
    direction: MessageDirection,
    message: Optional[TelegramMessagePayload] = None,
    sender_name: Optional[str] = None,
    commit: bool = True,
) -> TelegramMessage:
    """Append a message to a KOL's direct (1:1) log."""
    if message is not None:
        existing = await _find_logged(
            db,
            TelegramMessage,
            TelegramMessage.kol_id == kol_id,
            TelegramMessage.telegram_chat_id == telegram_chat_id,
            TelegramMessage.telegram_message_id == str(message.message_id),
            TelegramMessage.direction == direction,
        )
        if existing is not None:
            return existing

    entry = TelegramMessage(
        kol_id=kol_id,
        telegram_chat_id=telegram_chat_id,
        telegram_message_id=str(message.message_id) if message is not None else None,
        content=content,
        direction=direction,
        sender_name=sender_name,
        timestamp=_message_timestamp(message),
    )
    db.add(entry)
    if commit:
        await db.commit()
    return entry