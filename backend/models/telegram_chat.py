"""Telegram chat models - chats the bot is in, and the KOLs seen in them."""

import enum
from datetime import datetime
from uuid import uuid4

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class TelegramChatType(str, enum.Enum):
    """Telegram chat kind, upper-cased from the Bot API value."""
    PRIVATE = "PRIVATE"
    GROUP = "GROUP"
    SUPERGROUP = "SUPERGROUP"
    CHANNEL = "CHANNEL"


class TelegramChatStatus(str, enum.Enum):
    """Bot membership in the chat."""
    ACTIVE = "ACTIVE"
    LEFT = "LEFT"
    KICKED = "KICKED"


class TelegramChat(Base):
    """
    A Telegram chat (group, supergroup, channel or 1:1) the bot has seen.

    Keyed by (organization_id, telegram_chat_id). Rows are never deleted:
    when the bot leaves, status flips to LEFT/KICKED so message history and
    KOL links survive a later rejoin.
    """

    __tablename__ = "telegram_chats"
    __table_args__ = (
        UniqueConstraint("organization_id", "telegram_chat_id", name="uix_telegram_chats_org_chat"),
    )

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4())
    )
    organization_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    telegram_chat_id: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    type: Mapped[TelegramChatType] = mapped_column(
        Enum(TelegramChatType, name="telegram_chat_type"),
        default=TelegramChatType.GROUP,
        nullable=False
    )
    username: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[TelegramChatStatus] = mapped_column(
        Enum(TelegramChatStatus, name="telegram_chat_status"),
        default=TelegramChatStatus.ACTIVE,
        nullable=False
    )
    member_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    bot_joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )
    bot_left_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

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
    organization: Mapped["Organization"] = relationship("Organization", back_populates="telegram_chats")
    kol_links: Mapped[list["TelegramChatKOL"]] = relationship(
        "TelegramChatKOL",
        back_populates="chat",
        cascade="all, delete-orphan"
    )

    @property
    def is_group(self) -> bool:
        return self.type in (TelegramChatType.GROUP, TelegramChatType.SUPERGROUP)

    def __repr__(self) -> str:
        return f"<TelegramChat {self.telegram_chat_id} {self.type.value} {self.status.value}>"


class TelegramChatKOL(Base):
    """
    Link between a chat and a KOL seen in it.

    `telegram_user_id` lets the bot recognise the KOL in this chat after a
    username change (or when they have no public username).
    """

    __tablename__ = "telegram_chat_kols"
    __table_args__ = (
        UniqueConstraint("chat_id", "kol_id", name="uix_telegram_chat_kols_chat_kol"),
    )

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4())
    )
    chat_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("telegram_chats.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    kol_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("kols.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    telegram_user_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    matched_by: Mapped[str] = mapped_column(String(20), default="username", nullable=False)  # username | command

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )

    # Relationships
    chat: Mapped[TelegramChat] = relationship("TelegramChat", back_populates="kol_links")
    kol: Mapped["KOL"] = relationship("KOL", back_populates="chat_links")

    def __repr__(self) -> str:
        return f"<TelegramChatKOL {self.kol_id} in {self.chat_id}>"


# Import at bottom to avoid circular imports
from models.kol import KOL
from models.organization import Organization
