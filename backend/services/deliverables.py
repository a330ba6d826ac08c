"""
Deliverable recording for /review and /submit.

A submitted post is recorded at most once per organization: the pre-check
answers redeliveries without a scrape, and the (organization_id, tweet_id)
unique constraint settles concurrent ones.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Union

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from models.campaign import CampaignKOL
from models.post import Post, PostStatus, PostType
from services.x_service import ContentFetchError, FetchedPost, fetch_post

logger = logging.getLogger(__name__)

COUNTED_STATUSES = (PostStatus.POSTED, PostStatus.VERIFIED)


class DuplicateDeliverableError(Exception):
    """A deliverable for this tweet already exists in the organization."""

    def __init__(self, tweet_id: str):
        self.tweet_id = tweet_id
        super().__init__(f"Deliverable for tweet {tweet_id} already exists")


async def find_existing_deliverable(
    db: AsyncSession, organization_id: str, tweet_id: str
) -> Optional[Post]:
    result = await db.execute(
        select(Post).where(
            Post.organization_id == organization_id,
            Post.tweet_id == tweet_id,
        )
    )
    return result.scalars().first()


async def find_draft_for_message(
    db: AsyncSession,
    organization_id: str,
    source_chat_id: Optional[str],
    source_message_id: Optional[str],
) -> Optional[Post]:
    """The draft already recorded for a /review message, if any."""
    if source_chat_id is None or source_message_id is None:
        return None
    result = await db.execute(
        select(Post).where(
            Post.organization_id == organization_id,
            Post.source_chat_id == source_chat_id,
            Post.source_message_id == source_message_id,
        )
    )
    return result.scalars().first()


async def create_draft_deliverable(
    db: AsyncSession,
    organization_id: str,
    campaign_id: str,
    kol_id: str,
    content: str,
    source_chat_id: Optional[str] = None,
    source_message_id: Optional[str] = None,
) -> Post:
    """
    DRAFT post holding proposed text for agency review. Commits.

    Keyed on the source message: if a redelivery of the same message
    recorded its draft first, that draft is returned instead.
    """
    post = Post(
        organization_id=organization_id,
        campaign_id=campaign_id,
        kol_id=kol_id,
        type=PostType.POST,
        status=PostStatus.DRAFT,
        content=content,
        source="telegram",
        source_chat_id=source_chat_id,
        source_message_id=source_message_id,
    )
    db.add(post)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        existing = await find_draft_for_message(db, organization_id, source_chat_id, source_message_id)
        if existing is None:
            raise
        logger.info(f"Draft for message {source_message_id} in chat {source_chat_id} recorded concurrently")
        return existing
    logger.info(f"Draft deliverable {post.id} created for KOL {kol_id} in campaign {campaign_id}")
    return post


async def create_posted_deliverable(
    db: AsyncSession,
    organization_id: str,
    campaign_id: str,
    kol_id: str,
    fetched: FetchedPost,
    tweet_url: str,
) -> Post:
    """
    POSTED post with the scraped content and counters. Commits.

    Raises DuplicateDeliverableError if the tweet was recorded concurrently.
    The session is rolled back in that case, expiring loaded instances.
    """
    post = Post(
        organization_id=organization_id,
        campaign_id=campaign_id,
        kol_id=kol_id,
        type=PostType.POST,
        status=PostStatus.POSTED,
        content=fetched.content,
        tweet_id=fetched.id,
        tweet_url=tweet_url,
        posted_at=fetched.posted_at,
        source="telegram",
        impressions=fetched.metrics.views,
        likes=fetched.metrics.likes,
        retweets=fetched.metrics.retweets,
        replies=fetched.metrics.replies,
        quotes=fetched.metrics.quotes,
        last_metrics_update=datetime.now(timezone.utc),
    )
    db.add(post)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.info(f"Tweet {fetched.id} recorded concurrently in organization {organization_id}")
        raise DuplicateDeliverableError(fetched.id) from e

    logger.info(f"Posted deliverable {post.id} recorded for tweet {fetched.id} (KOL {kol_id})")
    return post


# --- Submission ---

@dataclass(frozen=True)
class Recorded:
    post: Post
    fetched: FetchedPost


@dataclass(frozen=True)
class AlreadySubmitted:
    tweet_id: str


@dataclass(frozen=True)
class FetchFailed:
    reason: str


SubmissionResult = Union[Recorded, AlreadySubmitted, FetchFailed]


async def record_submission(
    db: AsyncSession,
    organization_id: str,
    campaign_id: str,
    kol_id: str,
    tweet_id: str,
    post_url: str,
) -> SubmissionResult:
    """
    Pre-check, fetch, then write.

    Nothing is written unless the fetch succeeds; failed fetches are not
    retried. On AlreadySubmitted after a lost race the session has been
    rolled back, so callers must not touch previously loaded instances.
    """
    if await find_existing_deliverable(db, organization_id, tweet_id) is not None:
        logger.info(f"Tweet {tweet_id} already submitted in organization {organization_id}")
        return AlreadySubmitted(tweet_id=tweet_id)

    try:
        fetched = await fetch_post(post_url)
    except ContentFetchError as e:
        logger.warning(f"Content fetch failed for {post_url}: {e}")
        return FetchFailed(reason=str(e))
    except Exception as e:
        logger.exception(f"Unexpected error fetching {post_url}")
        return FetchFailed(reason=str(e) or type(e).__name__)

    if not fetched or not fetched.content:
        logger.warning(f"Content fetch returned nothing for {post_url}")
        return FetchFailed(reason="Empty fetch result")

    # Keyed on the id parsed from the URL so a fetcher echoing a different
    # id cannot bypass the pre-check
    fetched.id = tweet_id

    try:
        post = await create_posted_deliverable(
            db, organization_id, campaign_id, kol_id, fetched, tweet_url=post_url
        )
    except DuplicateDeliverableError:
        return AlreadySubmitted(tweet_id=tweet_id)

    return Recorded(post=post, fetched=fetched)


# --- Progress ---

@dataclass
class DeliverableProgressItem:
    type: PostType
    required: int
    completed: int


@dataclass
class DeliverableProgress:
    items: list[DeliverableProgressItem] = field(default_factory=list)

    @property
    def total_required(self) -> int:
        return sum(item.required for item in self.items)

    @property
    def total_completed(self) -> int:
        return sum(min(item.completed, item.required) for item in self.items)

    @property
    def percentage(self) -> int:
        if not self.total_required:
            return 0
        return round(self.total_completed * 100 / self.total_required)

    @property
    def met_kpi(self) -> bool:
        return self.total_required > 0 and self.percentage >= 100


async def get_deliverable_progress(
    db: AsyncSession,
    kol_id: str,
    campaign_id: str,
    assignment: CampaignKOL,
) -> DeliverableProgress:
    """
    Completed vs required deliverables per type for one assignment.

    Only POSTED/VERIFIED posts count; types with nothing required are left out.
    """
    result = await db.execute(
        select(Post.type, func.count(Post.id))
        .where(
            Post.kol_id == kol_id,
            Post.campaign_id == campaign_id,
            Post.status.in_(COUNTED_STATUSES),
        )
        .group_by(Post.type)
    )
    counts = {post_type: count for post_type, count in result.all()}

    required = [
        (PostType.POST, assignment.required_posts),
        (PostType.THREAD, assignment.required_threads),
        (PostType.RETWEET, assignment.required_retweets),
        (PostType.SPACE, assignment.required_spaces),
    ]
    return DeliverableProgress(items=[
        DeliverableProgressItem(type=post_type, required=amount or 0, completed=counts.get(post_type, 0))
        for post_type, amount in required
        if amount
    ])
