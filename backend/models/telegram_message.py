"""Telegram message logs - append-only audit trail of text exchanged."""

import enum
from datetime import datetime
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Index, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class MessageDirection(str, enum.Enum):
    INBOUND = "INBOUND"
    OUTBOUND = "OUTBOUND"


class TelegramMessage(Base):
    """1:1 message between the bot and a KOL in a private chat."""

    __tablename__ = "telegram_messages"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4())
    )
    kol_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("kols.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    telegram_chat_id: Mapped[str] = mapped_column(String(64), nullable=False)
    telegram_message_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    direction: Mapped[MessageDirection] = mapped_column(
        Enum(MessageDirection, name="message_direction"),
        nullable=False
    )
    sender_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<TelegramMessage {self.direction.value} kol={self.kol_id}>"


class TelegramGroupMessage(Base):
    """Message seen (or sent by the bot) in a group chat."""

    __tablename__ = "telegram_group_messages"
    __table_args__ = (
        Index("ix_telegram_group_messages_chat_timestamp", "chat_id", "timestamp"),
    )

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4())
    )
    chat_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("telegram_chats.id", ondelete="CASCADE"),
        nullable=False
    )
    telegram_message_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    direction: Mapped[MessageDirection] = mapped_column(
        Enum(MessageDirection, name="message_direction"),
        nullable=False
    )
    sender_telegram_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    sender_username: Mapped[str | None] = mapped_column(String(100), nullable=True)
    sender_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    reply_to_message_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<TelegramGroupMessage {self.direction.value} chat={self.chat_id}>"
