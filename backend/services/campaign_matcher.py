"""
Campaign matching for bot commands.

- Disambiguates which active assignment a KOL's /submit or /review applies to.
- Matches a campaign group chat to its campaign for /budget.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional, Protocol, Sequence, Union

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import contains_eager

from models.campaign import Campaign, CampaignKOL, CampaignKOLStatus, CampaignStatus

logger = logging.getLogger(__name__)

ACTIVE_ASSIGNMENT_STATUSES = (CampaignKOLStatus.PENDING, CampaignKOLStatus.CONFIRMED)
SUBMIT_CAMPAIGN_STATUSES = (CampaignStatus.ACTIVE,)
REVIEW_CAMPAIGN_STATUSES = (CampaignStatus.ACTIVE, CampaignStatus.PENDING_APPROVAL)
BUDGET_CAMPAIGN_STATUSES = (CampaignStatus.ACTIVE,)

TITLE_SEPARATORS = " -|:·–—"


async def get_active_assignments(
    db: AsyncSession,
    organization_id: str,
    kol_id: str,
    campaign_statuses: Sequence[CampaignStatus] = SUBMIT_CAMPAIGN_STATUSES,
) -> list[CampaignKOL]:
    """
    A KOL's PENDING/CONFIRMED assignments whose campaign is in
    `campaign_statuses`, oldest assignment first. Campaigns are loaded.
    """
    result = await db.execute(
        select(CampaignKOL)
        .join(CampaignKOL.campaign)
        .options(contains_eager(CampaignKOL.campaign))
        .where(
            CampaignKOL.kol_id == kol_id,
            CampaignKOL.status.in_(ACTIVE_ASSIGNMENT_STATUSES),
            Campaign.organization_id == organization_id,
            Campaign.status.in_(campaign_statuses),
        )
        .order_by(CampaignKOL.created_at, CampaignKOL.id)
    )
    return list(result.scalars().unique().all())


# --- Disambiguation ---

@dataclass(frozen=True)
class Resolved:
    assignment: CampaignKOL


@dataclass(frozen=True)
class NoActiveCampaign:
    pass


@dataclass(frozen=True)
class HintUnmatched:
    hint: str
    assignments: list[CampaignKOL]


@dataclass(frozen=True)
class AmbiguousCampaign:
    assignments: list[CampaignKOL]


CampaignResolution = Union[Resolved, NoActiveCampaign, HintUnmatched, AmbiguousCampaign]


def disambiguate(assignments: list[CampaignKOL], hint: Optional[str]) -> CampaignResolution:
    """
    Pick the assignment a command applies to.

    1. Exactly one active assignment: use it, any hint is ignored.
    2. Several and a hint: first whose campaign name contains the hint
       (case-insensitive).
    3. Several and no hint: ambiguous, the caller asks for a hint.
    """
    if not assignments:
        return NoActiveCampaign()
    if len(assignments) == 1:
        return Resolved(assignments[0])

    needle = (hint or "").strip().lower()
    if needle:
        for assignment in assignments:
            if needle in assignment.campaign.name.lower():
                return Resolved(assignment)
        return HintUnmatched(hint=hint.strip(), assignments=assignments)

    return AmbiguousCampaign(assignments)


# --- Chat -> campaign matching for /budget ---

class CampaignChatMatcher(Protocol):
    """Finds the campaign a group chat belongs to."""

    async def match(
        self, db: AsyncSession, organization_id: str, chat_title: str
    ) -> Optional[Campaign]:
        ...


class ChatTitleCampaignMatcher:
    """
    Best-effort match on the group title.

    Campaign groups are named like "KOL x Summer Launch": the organizational
    prefix is stripped, then
      a) an active campaign whose name contains the remainder, else
      b) an active campaign whose name appears anywhere in the full title.
    """

    def __init__(self, prefixes: Iterable[str] = ()):
        # Longest first so "KOLs x" wins over "KOL"
        self.prefixes = sorted((p for p in prefixes if p), key=len, reverse=True)

    def derive_campaign_name(self, title: str) -> str:
        name = (title or "").strip()
        lowered = name.lower()
        for prefix in self.prefixes:
            if lowered.startswith(prefix.lower()):
                name = name[len(prefix):]
                break
        return name.strip(TITLE_SEPARATORS)

    async def match(
        self, db: AsyncSession, organization_id: str, chat_title: str
    ) -> Optional[Campaign]:
        if not chat_title:
            return None

        derived = self.derive_campaign_name(chat_title)
        if derived:
            result = await db.execute(
                select(Campaign)
                .where(
                    Campaign.organization_id == organization_id,
                    Campaign.status.in_(BUDGET_CAMPAIGN_STATUSES),
                    func.lower(Campaign.name).contains(derived.lower(), autoescape=True),
                )
                .order_by(Campaign.created_at, Campaign.id)
                .limit(1)
            )
            campaign = result.scalars().first()
            if campaign is not None:
                logger.debug(f"Chat '{chat_title}' matched campaign '{campaign.name}' by derived name")
                return campaign

        result = await db.execute(
            select(Campaign)
            .where(
                Campaign.organization_id == organization_id,
                Campaign.status.in_(BUDGET_CAMPAIGN_STATUSES),
            )
            .order_by(Campaign.created_at, Campaign.id)
        )
        title_lower = chat_title.lower()
        for campaign in result.scalars().all():
            if campaign.name and campaign.name.lower() in title_lower:
                logger.debug(f"Chat '{chat_title}' matched campaign '{campaign.name}' by title scan")
                return campaign

        logger.info(f"No active campaign matches chat title '{chat_title}'")
        return None


# --- Budget ---

@dataclass
class BudgetSummary:
    campaign_name: str
    total_budget: int
    allocated_budget: int
    kol_count: int
    days_active: int

    @property
    def remaining_budget(self) -> int:
        return self.total_budget - self.allocated_budget


async def get_budget_summary(
    db: AsyncSession,
    campaign: Campaign,
    now: Optional[datetime] = None,
) -> BudgetSummary:
    """Allocated budget is the sum of per-assignment budgets."""
    result = await db.execute(
        select(
            func.coalesce(func.sum(CampaignKOL.assigned_budget), 0),
            func.count(CampaignKOL.id),
        ).where(CampaignKOL.campaign_id == campaign.id)
    )
    allocated, kol_count = result.one()

    now = now or datetime.now(timezone.utc)
    created_at = campaign.created_at
    if created_at is not None and created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    days_active = max((now - created_at).days, 0) if created_at else 0

    return BudgetSummary(
        campaign_name=campaign.name,
        total_budget=campaign.total_budget or 0,
        allocated_budget=int(allocated or 0),
        kol_count=int(kol_count or 0),
        days_active=days_active,
    )
