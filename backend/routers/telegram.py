"""Telegram router - receives bot webhook updates."""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings, get_settings
from database import get_db
from models.kol import KOL
from models.organization import Organization
from models.post import Post
from models.telegram_chat import TelegramChat, TelegramChatKOL
from services.telegram_types import TelegramUpdate
from services.telegram_updates import process_update

router = APIRouter(prefix="/telegram", tags=["telegram"])
logger = logging.getLogger(__name__)


async def get_webhook_organization(
    db: Annotated[AsyncSession, Depends(get_db)],
    x_telegram_bot_api_secret_token: Annotated[Optional[str], Header()] = None,
) -> Organization:
    """Resolve the organization whose webhook secret was sent by Telegram."""
    if not x_telegram_bot_api_secret_token:
        logger.warning("Telegram webhook called without secret token")
        raise HTTPException(status_code=401, detail="Unauthorized")

    result = await db.execute(
        select(Organization).where(
            Organization.telegram_webhook_secret == x_telegram_bot_api_secret_token
        )
    )
    organization = result.scalar_one_or_none()
    if organization is None:
        logger.warning("Telegram webhook called with unknown secret token")
        raise HTTPException(status_code=401, detail="Unauthorized")
    return organization


@router.post("/webhook")
async def telegram_webhook(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    organization: Annotated[Organization, Depends(get_webhook_organization)],
    settings: Annotated[Settings, Depends(get_settings)],
):
    """
    Receive one Telegram update.

    Always acknowledges once authenticated: Telegram redelivers anything
    that is not a 200, so processing errors are logged and swallowed here.
    """
    organization_id = organization.id
    bot_token = organization.telegram_bot_token

    try:
        payload = await request.json()
        update = TelegramUpdate.model_validate(payload)
        await process_update(db, update, organization_id, bot_token, settings)
    except Exception:
        logger.exception(f"Error processing Telegram update for organization {organization_id}")
        await db.rollback()

    return {"ok": True}


@router.get("/status")
async def telegram_status(
    db: Annotated[AsyncSession, Depends(get_db)],
    organization: Annotated[Organization, Depends(get_webhook_organization)],
):
    """Chat, KOL link and submission counts for the organization's bot."""
    status_result = await db.execute(
        select(TelegramChat.status, func.count(TelegramChat.id))
        .where(TelegramChat.organization_id == organization.id)
        .group_by(TelegramChat.status)
    )
    chats_by_status = {row[0].value: row[1] for row in status_result}

    linked_result = await db.execute(
        select(func.count(func.distinct(TelegramChatKOL.kol_id)))
        .select_from(TelegramChatKOL)
        .join(KOL, KOL.id == TelegramChatKOL.kol_id)
        .where(KOL.organization_id == organization.id)
    )
    linked_kols = linked_result.scalar() or 0

    posts_result = await db.execute(
        select(func.count(Post.id)).where(
            Post.organization_id == organization.id,
            Post.source == "telegram",
        )
    )
    submitted_posts = posts_result.scalar() or 0

    return {
        "organization": organization.slug,
        "total_chats": sum(chats_by_status.values()),
        "chats_by_status": chats_by_status,
        "linked_kols": linked_kols,
        "telegram_deliverables": submitted_posts,
    }
