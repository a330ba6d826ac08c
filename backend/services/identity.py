"""
KOL identity resolution for Telegram senders.

Maps a Telegram username (or, failing that, a Telegram user id seen in an
earlier chat link) to an existing KOL of the organization. Resolution never
creates KOLs; it only links existing ones to chats.
"""

import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from models.kol import KOL
from models.telegram_chat import TelegramChat, TelegramChatKOL

logger = logging.getLogger(__name__)


def normalize_username(username: Optional[str]) -> Optional[str]:
    """
    Normalize a Telegram username for matching.

    "@Alice_X " -> "alice_x"
    """
    if not username:
        return None
    normalized = username.strip().lstrip("@").lower()
    return normalized or None


async def resolve_kol_by_username(
    db: AsyncSession,
    organization_id: str,
    username: Optional[str],
) -> Optional[KOL]:
    """
    Find the organization's KOL whose telegram_username matches exactly,
    ignoring case.

    Duplicate usernames are a setup error in the agency app; the oldest
    record wins and a warning is logged so the duplicate can be fixed.
    """
    normalized = normalize_username(username)
    if not normalized:
        return None

    result = await db.execute(
        select(KOL)
        .where(
            KOL.organization_id == organization_id,
            func.lower(KOL.telegram_username) == normalized,
        )
        .order_by(KOL.created_at, KOL.id)
        .limit(2)
    )
    matches = result.scalars().all()

    if len(matches) > 1:
        logger.warning(
            f"Multiple KOLs in organization {organization_id} share Telegram username "
            f"@{normalized}; using {matches[0].name} ({matches[0].id})"
        )
    return matches[0] if matches else None


async def resolve_kol_by_telegram_user_id(
    db: AsyncSession,
    organization_id: str,
    telegram_user_id: Optional[str | int],
) -> Optional[KOL]:
    """Find a KOL through any existing chat link carrying this Telegram user id."""
    if telegram_user_id is None:
        return None

    result = await db.execute(
        select(KOL)
        .join(TelegramChatKOL, TelegramChatKOL.kol_id == KOL.id)
        .where(
            KOL.organization_id == organization_id,
            TelegramChatKOL.telegram_user_id == str(telegram_user_id),
        )
        .order_by(TelegramChatKOL.created_at, TelegramChatKOL.id)
        .limit(1)
    )
    return result.scalars().first()


async def resolve_kol(
    db: AsyncSession,
    organization_id: str,
    username: Optional[str],
    telegram_user_id: Optional[str | int],
) -> Optional[KOL]:
    """Resolve by username first, then by previously linked Telegram user id."""
    kol = await resolve_kol_by_username(db, organization_id, username)
    if kol is not None:
        return kol

    kol = await resolve_kol_by_telegram_user_id(db, organization_id, telegram_user_id)
    if kol is not None:
        logger.info(f"Resolved Telegram user {telegram_user_id} to KOL {kol.name} via chat link")
    return kol


async def _get_link(db: AsyncSession, chat_id: str, kol_id: str) -> Optional[TelegramChatKOL]:
    result = await db.execute(
        select(TelegramChatKOL).where(
            TelegramChatKOL.chat_id == chat_id,
            TelegramChatKOL.kol_id == kol_id,
        )
    )
    return result.scalar_one_or_none()


async def link_kol_to_chat(
    db: AsyncSession,
    chat: TelegramChat,
    kol: KOL,
    telegram_user_id: Optional[str | int] = None,
    matched_by: str = "username",
) -> TelegramChatKOL:
    """
    Link a KOL to a chat, at most once per (chat, KOL) pair.

    An existing link is updated with the sender's Telegram user id; its
    original `matched_by` provenance is kept. Commits.
    """
    user_id = str(telegram_user_id) if telegram_user_id is not None else None
    chat_id, kol_id = chat.id, kol.id

    link = await _get_link(db, chat_id, kol_id)
    if link is None:
        link = TelegramChatKOL(
            chat_id=chat_id,
            kol_id=kol_id,
            telegram_user_id=user_id,
            matched_by=matched_by,
        )
        db.add(link)
        try:
            await db.commit()
            logger.info(f"Linked KOL {kol_id} to chat {chat_id} (matched by {matched_by})")
            return link
        except IntegrityError:
            # Same pair linked by a concurrent delivery
            await db.rollback()
            await db.refresh(chat)
            await db.refresh(kol)
            link = await _get_link(db, chat_id, kol_id)
            if link is None:
                raise

    if user_id and link.telegram_user_id != user_id:
        link.telegram_user_id = user_id
        await db.commit()
    return link


def pin_home_chat(kol: KOL, telegram_chat_id: str) -> bool:
    """
    Pin `telegram_chat_id` as the KOL's home chat.

    Returns True if the pin changed. The caller commits.
    """
    if kol.telegram_chat_id == telegram_chat_id:
        return False
    logger.info(f"Pinning home chat {telegram_chat_id} for KOL {kol.name} (was {kol.telegram_chat_id})")
    kol.telegram_chat_id = telegram_chat_id
    return True
