"""KOL (Key Opinion Leader) model - influencers tracked by an agency."""

import enum
from datetime import datetime
from uuid import uuid4

from sqlalchemy import DateTime, Enum, ForeignKey, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class KOLStatus(str, enum.Enum):
    """Relationship status between the agency and the KOL."""
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    BLACKLISTED = "BLACKLISTED"
    PENDING = "PENDING"


class KOL(Base):
    """
    Key Opinion Leader - an influencer/creator under contract with the agency.

    KOLs are matched to Telegram senders by `telegram_username`
    (case-insensitive). `telegram_chat_id` is the pinned "home chat": the
    chat where agency notifications for this KOL should be delivered.
    Rates, tiers and the rest of the profile are managed by the agency app.
    """

    __tablename__ = "kols"

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
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    twitter_handle: Mapped[str | None] = mapped_column(String(100), nullable=True)
    telegram_username: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    telegram_chat_id: Mapped[str | None] = mapped_column(String(64), nullable=True)  # Home chat
    status: Mapped[KOLStatus] = mapped_column(
        Enum(KOLStatus, name="kol_status"),
        default=KOLStatus.ACTIVE,
        nullable=False
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
    organization: Mapped["Organization"] = relationship("Organization", back_populates="kols")
    chat_links: Mapped[list["TelegramChatKOL"]] = relationship(
        "TelegramChatKOL",
        back_populates="kol",
        cascade="all, delete-orphan"
    )
    campaign_assignments: Mapped[list["CampaignKOL"]] = relationship(
        "CampaignKOL",
        back_populates="kol",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<KOL {self.name} (@{self.telegram_username})>"


# Import at bottom to avoid circular imports
from models.campaign import CampaignKOL
from models.organization import Organization
from models.telegram_chat import TelegramChatKOL
