"""Post model - one deliverable contributed by a KOL toward a campaign.

Posts reach this service from two Telegram commands:
- /review: a DRAFT with the proposed text, no tweet yet
- /submit: a POSTED deliverable with metrics scraped from the live tweet
"""

import enum
from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class PostType(str, enum.Enum):
    """Kind of deliverable."""
    POST = "POST"
    THREAD = "THREAD"
    RETWEET = "RETWEET"
    QUOTE = "QUOTE"
    SPACE = "SPACE"


class PostStatus(str, enum.Enum):
    """Review/verification pipeline status."""
    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    CHANGES_REQUESTED = "CHANGES_REQUESTED"
    REJECTED = "REJECTED"
    SCHEDULED = "SCHEDULED"
    POSTED = "POSTED"
    VERIFIED = "VERIFIED"


class Post(Base):
    """Campaign deliverable with engagement metrics."""

    __tablename__ = "posts"
    __table_args__ = (
        # One deliverable per tweet, tenant-wide. Drafts have no tweet_id.
        UniqueConstraint("organization_id", "tweet_id", name="uix_posts_org_tweet"),
        # One draft per /review message
        UniqueConstraint(
            "organization_id", "source_chat_id", "source_message_id",
            name="uix_posts_org_source_message",
        ),
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

    type: Mapped[PostType] = mapped_column(
        Enum(PostType, name="post_type"),
        default=PostType.POST,
        nullable=False
    )
    status: Mapped[PostStatus] = mapped_column(
        Enum(PostStatus, name="post_status"),
        default=PostStatus.DRAFT,
        nullable=False
    )
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tweet_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    tweet_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    posted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Source: "telegram" (bot command) or "dashboard" (agency app)
    source: Mapped[str] = mapped_column(String(20), default="telegram")
    # Telegram message a draft came from (chat id, message id)
    source_chat_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    source_message_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Engagement metrics, copied verbatim from the scraper at submission time
    impressions: Mapped[int] = mapped_column(Integer, default=0)
    likes: Mapped[int] = mapped_column(Integer, default=0)
    retweets: Mapped[int] = mapped_column(Integer, default=0)
    replies: Mapped[int] = mapped_column(Integer, default=0)
    quotes: Mapped[int] = mapped_column(Integer, default=0)

    last_metrics_update: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
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
    campaign = relationship("Campaign", foreign_keys=[campaign_id])
    kol = relationship("KOL", foreign_keys=[kol_id])

    def __repr__(self) -> str:
        return f"<Post {self.id}: {self.status.value} tweet={self.tweet_id}>"
