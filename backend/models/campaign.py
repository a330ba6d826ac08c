"""Campaign models - campaigns and their KOL assignments."""

import enum
from datetime import datetime
from uuid import uuid4

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class CampaignStatus(str, enum.Enum):
    """Campaign lifecycle."""
    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class CampaignKOLStatus(str, enum.Enum):
    """Status of a KOL's assignment to a campaign."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    DECLINED = "DECLINED"
    COMPLETED = "COMPLETED"


class Campaign(Base):
    """
    Agency campaign.

    `telegram_chat_id` optionally points at the client-facing group where
    new deliverables are announced.
    """

    __tablename__ = "campaigns"

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
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[CampaignStatus] = mapped_column(
        Enum(CampaignStatus, name="campaign_status"),
        default=CampaignStatus.DRAFT,
        nullable=False
    )
    total_budget: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    telegram_chat_id: Mapped[str | None] = mapped_column(String(64), nullable=True)  # Notification chat

    start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

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
    organization: Mapped["Organization"] = relationship("Organization", back_populates="campaigns")
    assignments: Mapped[list["CampaignKOL"]] = relationship(
        "CampaignKOL",
        back_populates="campaign",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Campaign {self.name} ({self.status.value})>"


class CampaignKOL(Base):
    """Assignment of a KOL to a campaign, with budget and required deliverables."""

    __tablename__ = "campaign_kols"
    __table_args__ = (
        UniqueConstraint("campaign_id", "kol_id", name="uix_campaign_kols_campaign_kol"),
    )

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4())
    )
    campaign_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("campaigns.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    kol_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("kols.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    status: Mapped[CampaignKOLStatus] = mapped_column(
        Enum(CampaignKOLStatus, name="campaign_kol_status"),
        default=CampaignKOLStatus.PENDING,
        nullable=False
    )
    assigned_budget: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Required deliverables per type
    required_posts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    required_threads: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    required_retweets: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    required_spaces: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

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
    campaign: Mapped[Campaign] = relationship("Campaign", back_populates="assignments")
    kol: Mapped["KOL"] = relationship("KOL", back_populates="campaign_assignments")

    def __repr__(self) -> str:
        return f"<CampaignKOL {self.kol_id} in {self.campaign_id}>"


# Import at bottom to avoid circular imports
from models.kol import KOL
from models.organization import Organization
