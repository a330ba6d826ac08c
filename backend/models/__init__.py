"""Database models."""

from database import Base

# Tenant
from models.organization import Organization

# Influencers and campaigns
from models.kol import KOL, KOLStatus
from models.campaign import Campaign, CampaignKOL, CampaignKOLStatus, CampaignStatus
from models.post import Post, PostStatus, PostType

# Telegram
from models.telegram_chat import TelegramChat, TelegramChatKOL, TelegramChatStatus, TelegramChatType
from models.telegram_message import MessageDirection, TelegramGroupMessage, TelegramMessage

__all__ = [
    # Base
    "Base",
    # Tenant
    "Organization",
    # Influencers and campaigns
    "KOL",
    "KOLStatus",
    "Campaign",
    "CampaignKOL",
    "CampaignKOLStatus",
    "CampaignStatus",
    "Post",
    "PostStatus",
    "PostType",
    # Telegram
    "TelegramChat",
    "TelegramChatKOL",
    "TelegramChatStatus",
    "TelegramChatType",
    "MessageDirection",
    "TelegramGroupMessage",
    "TelegramMessage",
]
