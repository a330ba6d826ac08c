"""Organization model - the tenant that owns a Telegram bot."""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import DateTime, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class Organization(Base):
    """
    Agency organization (tenant).

    Each organization runs its own Telegram bot. Inbound webhook calls are
    attributed to an organization by the secret token Telegram echoes back
    in the X-Telegram-Bot-Api-Secret-Token header.
    """

    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)

    # Telegram bot configuration
    telegram_bot_token: Mapped[str | None] = mapped_column(String(255), nullable=True)
    telegram_webhook_secret: Mapped[str | None] = mapped_column(
        String(255), unique=True, nullable=True, index=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )

    # Relationships
    telegram_chats: Mapped[list["TelegramChat"]] = relationship(
        "TelegramChat",
        back_populates="organization",
        cascade="all, delete-orphan"
    )
    kols: Mapped[list["KOL"]] = relationship(
        "KOL",
        back_populates="organization",
        cascade="all, delete-orphan"
    )
    campaigns: Mapped[list["Campaign"]] = relationship(
        "Campaign",
        back_populates="organization",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Organization {self.slug}: {self.name}>"


# Import at bottom to avoid circular imports
from models.campaign import Campaign
from models.kol import KOL
from models.telegram_chat import TelegramChat
