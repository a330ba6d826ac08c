"""
Bot command handlers.

Each handler answers with a reply in the invoking chat. User mistakes
(missing arguments, unknown sender, no or ambiguous campaign, duplicate
submission) are answered in text; nothing here raises for them. A reply
that cannot be delivered is logged and dropped.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from models.campaign import CampaignKOL
from models.telegram_chat import TelegramChat
from models.telegram_message import MessageDirection
from services.campaign_matcher import (
    REVIEW_CAMPAIGN_STATUSES,
    SUBMIT_CAMPAIGN_STATUSES,
    AmbiguousCampaign,
    CampaignChatMatcher,
    HintUnmatched,
    NoActiveCampaign,
    Resolved,
    disambiguate,
    get_active_assignments,
    get_budget_summary,
)
from services.commands import (
    BudgetCommand,
    Command,
    HelpCommand,
    PlainText,
    ReviewCommand,
    ScheduleCommand,
    SubmitCommand,
)
from services.deliverables import (
    AlreadySubmitted,
    DeliverableProgress,
    FetchFailed,
    Recorded,
    create_draft_deliverable,
    find_draft_for_message,
    get_deliverable_progress,
    record_submission,
)
from services.identity import (
    link_kol_to_chat,
    normalize_username,
    pin_home_chat,
    resolve_kol,
    resolve_kol_by_username,
)
from services.notifications import (
    describe_outcome,
    dispatch_notification,
    format_count,
    format_submission_announcement,
)
from services.telegram_chats import log_group_message
from services.telegram_client import TelegramClient
from services.telegram_types import TelegramMessage as TelegramMessagePayload
from services.x_service import extract_tweet_id

logger = logging.getLogger(__name__)

HELP_TEXT = (
    "Available commands:\n\n"
    "/submit [campaign] <post URL> - Submit a published post\n"
    "/review <draft text> - Send a draft to your agency for review\n"
    "/schedule - Book a call with the agency\n"
    "/help - Show this message"
)

REVIEW_USAGE = (
    "Please include your draft after the command.\n\n"
    "Usage: /review <your draft text>\n"
    "Example: /review Excited to be part of the launch! Check it out..."
)

SUBMIT_USAGE = (
    "Please include a link to your post.\n\n"
    "Usage: /submit [campaign name] <post URL>\n"
    "Example: /submit https://x.com/yourhandle/status/1234567890"
)

NO_USERNAME_TEXT = (
    "Unable to identify you. Please make sure your Telegram username is set "
    "in your Telegram settings."
)

NO_CAMPAIGN_TEXT = (
    "No active campaign found for your profile. "
    "Please contact your agency to be assigned to a campaign."
)


def no_kol_text(username: Optional[str]) -> str:
    if not username:
        return NO_USERNAME_TEXT
    return (
        f"No KOL profile found for @{username}. Please ask your agency contact "
        f"to add your Telegram username to your profile."
    )


@dataclass
class CommandContext:
    """Everything a handler needs about the invoking message.

    Values are captured when the message arrives; handlers must not rely on
    `chat` staying loaded after a rollback, so `chat_record_id` is kept as a
    plain value for logging.
    """

    organization_id: str
    client: Optional[TelegramClient]
    chat: TelegramChat
    telegram_chat_id: str
    is_group: bool
    sender_username: Optional[str] = None
    sender_id: Optional[int] = None
    sender_name: Optional[str] = None
    group_title: Optional[str] = None
    message: Optional[TelegramMessagePayload] = None
    budget_allow_list: frozenset[str] = frozenset()
    schedule_url: str = ""
    campaign_matcher: Optional[CampaignChatMatcher] = None
    chat_record_id: str = field(init=False)

    def __post_init__(self):
        self.chat_record_id = self.chat.id

    async def reply(self, db: AsyncSession, text: str, parse_mode: Optional[str] = None) -> bool:
        """Send `text` to the invoking chat. Never raises."""
        if self.client is None:
            logger.warning(f"No bot token for organization {self.organization_id}, reply dropped")
            return False

        response = await self.client.send_message(self.telegram_chat_id, text, parse_mode=parse_mode)
        if not response.ok:
            logger.warning(f"Reply to chat {self.telegram_chat_id} failed: {response.description}")

        if self.is_group:
            try:
                await log_group_message(db, self.chat_record_id, text, MessageDirection.OUTBOUND)
            except Exception:
                logger.exception(f"Failed to log outbound message for chat {self.telegram_chat_id}")
                await db.rollback()
        return response.ok

    async def log_inbound(self, db: AsyncSession, content: str) -> None:
        if self.is_group:
            await log_group_message(db, self.chat_record_id, content, MessageDirection.INBOUND, self.message)


async def dispatch_command(db: AsyncSession, ctx: CommandContext, command: Command) -> bool:
    """Run the handler for `command`. Returns False for plain text."""
    match command:
        case HelpCommand():
            await ctx.reply(db, HELP_TEXT)
        case ScheduleCommand():
            await handle_schedule(db, ctx)
        case BudgetCommand():
            await handle_budget(db, ctx)
        case ReviewCommand(draft=draft):
            await handle_review(db, ctx, draft)
        case SubmitCommand(campaign_hint=hint, post_url=url):
            await handle_submit(db, ctx, hint, url)
        case PlainText():
            return False
    return True


async def handle_schedule(db: AsyncSession, ctx: CommandContext) -> None:
    await ctx.reply(db, f"Book a time with the team here:\n{ctx.schedule_url}")


# --- /review ---

async def handle_review(db: AsyncSession, ctx: CommandContext, draft: str) -> None:
    """Record a DRAFT deliverable from the draft text for agency review."""
    draft = draft.strip()
    if ctx.message is not None and ctx.message.content:
        await ctx.log_inbound(db, ctx.message.content)

    if not draft:
        await ctx.reply(db, REVIEW_USAGE)
        return
    if not ctx.sender_username:
        await ctx.reply(db, NO_USERNAME_TEXT)
        return

    kol = await resolve_kol_by_username(db, ctx.organization_id, ctx.sender_username)
    if kol is None:
        logger.info(f"/review from unknown sender @{ctx.sender_username}")
        await ctx.reply(db, no_kol_text(ctx.sender_username))
        return

    assignments = await get_active_assignments(
        db, ctx.organization_id, kol.id, campaign_statuses=REVIEW_CAMPAIGN_STATUSES
    )
    if not assignments:
        await ctx.reply(db, NO_CAMPAIGN_TEXT)
        return

    assignment = assignments[0]
    kol_id, kol_name = kol.id, kol.name
    campaign_id, campaign_name = assignment.campaign_id, assignment.campaign.name
    source_message_id = str(ctx.message.message_id) if ctx.message is not None else None

    existing = await find_draft_for_message(db, ctx.organization_id, ctx.telegram_chat_id, source_message_id)
    if existing is not None:
        logger.info(f"Draft for message {source_message_id} already recorded as post {existing.id}")
    else:
        await link_kol_to_chat(db, ctx.chat, kol, ctx.sender_id, matched_by="command")
        if pin_home_chat(kol, ctx.telegram_chat_id):
            await db.commit()

        post = await create_draft_deliverable(
            db,
            ctx.organization_id,
            campaign_id,
            kol_id,
            draft,
            source_chat_id=ctx.telegram_chat_id,
            source_message_id=source_message_id,
        )
        logger.info(f"Draft submitted: post {post.id} for KOL {kol_name} in campaign {campaign_name}")

    await ctx.reply(db, _draft_confirmation(campaign_name, kol_name))


def _draft_confirmation(campaign_name: str, kol_name: str) -> str:
    return (
        "Draft submitted for review.\n\n"
        f"Campaign: {campaign_name}\n"
        f"KOL: {kol_name}\n"
        "Status: Pending Review\n\n"
        "Your agency will review and approve this content shortly."
    )


# --- /submit ---

def _campaign_list(assignments: list[CampaignKOL]) -> str:
    return "\n".join(f"- {a.campaign.name}" for a in assignments)


def format_progress(progress: DeliverableProgress) -> Optional[str]:
    if not progress.items:
        return None
    lines = [f"Progress: {progress.total_completed}/{progress.total_required} ({progress.percentage}%)"]
    for item in progress.items:
        lines.append(f"- {item.type.value.title()}s: {min(item.completed, item.required)}/{item.required}")
    return "\n".join(lines)


async def handle_submit(
    db: AsyncSession,
    ctx: CommandContext,
    campaign_hint: Optional[str],
    post_url: Optional[str],
) -> None:
    """Record a POSTED deliverable for an already published post."""
    if ctx.message is not None and ctx.message.content:
        await ctx.log_inbound(db, ctx.message.content)

    tweet_id = extract_tweet_id(post_url) if post_url else None
    if not tweet_id:
        await ctx.reply(db, SUBMIT_USAGE)
        return

    kol = await resolve_kol(db, ctx.organization_id, ctx.sender_username, ctx.sender_id)
    if kol is None:
        logger.info(f"/submit from unknown sender @{ctx.sender_username} ({ctx.sender_id})")
        await ctx.reply(db, no_kol_text(ctx.sender_username))
        return

    assignments = await get_active_assignments(
        db, ctx.organization_id, kol.id, campaign_statuses=SUBMIT_CAMPAIGN_STATUSES
    )

    match disambiguate(assignments, campaign_hint):
        case NoActiveCampaign():
            await ctx.reply(db, NO_CAMPAIGN_TEXT)
            return
        case HintUnmatched(hint=hint, assignments=candidates):
            await ctx.reply(
                db,
                f'No active campaign matching "{hint}".\n\n'
                f"Your active campaigns:\n{_campaign_list(candidates)}\n\n"
                "Usage: /submit <campaign name> <post URL>",
            )
            return
        case AmbiguousCampaign(assignments=candidates):
            await ctx.reply(
                db,
                "You have multiple active campaigns:\n"
                f"{_campaign_list(candidates)}\n\n"
                "Please include the campaign name, e.g.:\n"
                f"/submit {candidates[0].campaign.name} {post_url}",
            )
            return
        case Resolved(assignment=assignment):
            pass

    # Plain values: a lost insert race rolls the session back
    kol_id, kol_name = kol.id, kol.name
    campaign = assignment.campaign
    campaign_id, campaign_name = campaign.id, campaign.name
    notification_chat_id = campaign.telegram_chat_id

    result = await record_submission(db, ctx.organization_id, campaign_id, kol_id, tweet_id, post_url)

    match result:
        case AlreadySubmitted():
            await ctx.reply(db, f"This post has already been submitted.\n\n{post_url}")
            return
        case FetchFailed():
            await ctx.reply(
                db,
                "Could not fetch the post. Please check the URL and try again.\n\n"
                f"{post_url}",
            )
            return
        case Recorded(post=post, fetched=fetched):
            pass

    progress = await get_deliverable_progress(db, kol_id, campaign_id, assignment)

    await link_kol_to_chat(db, ctx.chat, kol, ctx.sender_id, matched_by="command")
    if ctx.is_group and pin_home_chat(kol, ctx.telegram_chat_id):
        await db.commit()

    notification_note = None
    if notification_chat_id and ctx.client is not None:
        announcement = format_submission_announcement(
            kol_name=kol_name,
            campaign_name=campaign_name,
            tweet_url=post.tweet_url,
            content=fetched.content,
            impressions=fetched.metrics.views,
            likes=fetched.metrics.likes,
            retweets=fetched.metrics.retweets,
            replies=fetched.metrics.replies,
            posted_at=fetched.posted_at,
        )
        outcome = await dispatch_notification(ctx.client, notification_chat_id, announcement)
        notification_note = describe_outcome(outcome)

    lines = [
        f"Post submitted for {campaign_name}!",
        "",
        f"KOL: {kol_name}",
        f"Views: {format_count(fetched.metrics.views)} | Likes: {format_count(fetched.metrics.likes)} | "
        f"RTs: {format_count(fetched.metrics.retweets)} | Replies: {format_count(fetched.metrics.replies)}",
        post_url,
    ]
    progress_text = format_progress(progress)
    if progress_text:
        lines.extend(["", progress_text])
    if notification_note:
        lines.extend(["", notification_note])

    await ctx.reply(db, "\n".join(lines))


# --- /budget ---

async def handle_budget(db: AsyncSession, ctx: CommandContext) -> None:
    """Budget breakdown for the campaign a group belongs to. Allow-listed senders only."""
    if normalize_username(ctx.sender_username) not in ctx.budget_allow_list:
        return

    if not ctx.is_group:
        await ctx.reply(db, "Please use /budget inside a campaign group chat.")
        return

    campaign = None
    if ctx.campaign_matcher is not None and ctx.group_title:
        campaign = await ctx.campaign_matcher.match(db, ctx.organization_id, ctx.group_title)
    if campaign is None:
        await ctx.reply(db, "Could not match this chat to an active campaign.")
        return

    summary = await get_budget_summary(db, campaign)
    await ctx.reply(
        db,
        f"Budget: {summary.campaign_name}\n\n"
        f"Total: ${summary.total_budget:,}\n"
        f"Allocated: ${summary.allocated_budget:,}\n"
        f"Remaining: ${summary.remaining_budget:,}\n"
        f"KOLs: {summary.kol_count}\n"
        f"Days active: {summary.days_active}",
    )
