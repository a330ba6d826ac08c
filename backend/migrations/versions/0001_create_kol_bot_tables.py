"""Create organization, KOL, campaign, post and Telegram tables.

Revision ID: create_kol_bot_tables
Revises:
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = 'create_kol_bot_tables'
down_revision = None
branch_labels = None
depends_on = None

kol_status = postgresql.ENUM('ACTIVE', 'INACTIVE', 'BLACKLISTED', 'PENDING', name='kol_status', create_type=False)
campaign_status = postgresql.ENUM(
    'DRAFT', 'PENDING_APPROVAL', 'ACTIVE', 'PAUSED', 'COMPLETED', 'CANCELLED',
    name='campaign_status', create_type=False,
)
campaign_kol_status = postgresql.ENUM(
    'PENDING', 'CONFIRMED', 'DECLINED', 'COMPLETED', name='campaign_kol_status', create_type=False
)
post_type = postgresql.ENUM('POST', 'THREAD', 'RETWEET', 'QUOTE', 'SPACE', name='post_type', create_type=False)
post_status = postgresql.ENUM(
    'DRAFT', 'PENDING_APPROVAL', 'APPROVED', 'CHANGES_REQUESTED', 'REJECTED', 'SCHEDULED', 'POSTED', 'VERIFIED',
    name='post_status', create_type=False,
)
telegram_chat_type = postgresql.ENUM(
    'PRIVATE', 'GROUP', 'SUPERGROUP', 'CHANNEL', name='telegram_chat_type', create_type=False
)
telegram_chat_status = postgresql.ENUM('ACTIVE', 'LEFT', 'KICKED', name='telegram_chat_status', create_type=False)
message_direction = postgresql.ENUM('INBOUND', 'OUTBOUND', name='message_direction', create_type=False)

ENUMS = [
    kol_status, campaign_status, campaign_kol_status, post_type, post_status,
    telegram_chat_type, telegram_chat_status, message_direction,
]


def _uuid():
    return postgresql.UUID(as_uuid=False)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    """Create all tables used by the Telegram bot."""
    bind = op.get_bind()
    for enum_type in ENUMS:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        'organizations',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(100), nullable=False),
        sa.Column('telegram_bot_token', sa.String(255), nullable=True),
        sa.Column('telegram_webhook_secret', sa.String(255), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_organizations_slug', 'organizations', ['slug'], unique=True)
    op.create_index(
        'ix_organizations_telegram_webhook_secret', 'organizations', ['telegram_webhook_secret'], unique=True
    )

    op.create_table(
        'kols',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('organization_id', _uuid(), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('twitter_handle', sa.String(100), nullable=True),
        sa.Column('telegram_username', sa.String(100), nullable=True),
        sa.Column('telegram_chat_id', sa.String(64), nullable=True),
        sa.Column('status', kol_status, nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_kols_organization_id', 'kols', ['organization_id'])
    op.create_index('ix_kols_telegram_username', 'kols', ['telegram_username'])

    op.create_table(
        'campaigns',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('organization_id', _uuid(), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', campaign_status, nullable=False),
        sa.Column('total_budget', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('telegram_chat_id', sa.String(64), nullable=True),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_campaigns_organization_id', 'campaigns', ['organization_id'])

    op.create_table(
        'campaign_kols',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('campaign_id', _uuid(), sa.ForeignKey('campaigns.id', ondelete='CASCADE'), nullable=False),
        sa.Column('kol_id', _uuid(), sa.ForeignKey('kols.id', ondelete='CASCADE'), nullable=False),
        sa.Column('status', campaign_kol_status, nullable=False),
        sa.Column('assigned_budget', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('required_posts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('required_threads', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('required_retweets', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('required_spaces', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.UniqueConstraint('campaign_id', 'kol_id', name='uix_campaign_kols_campaign_kol'),
    )
    op.create_index('ix_campaign_kols_campaign_id', 'campaign_kols', ['campaign_id'])
    op.create_index('ix_campaign_kols_kol_id', 'campaign_kols', ['kol_id'])

    op.create_table(
        'posts',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('organization_id', _uuid(), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('campaign_id', _uuid(), sa.ForeignKey('campaigns.id', ondelete='CASCADE'), nullable=False),
        sa.Column('kol_id', _uuid(), sa.ForeignKey('kols.id', ondelete='CASCADE'), nullable=False),
        sa.Column('type', post_type, nullable=False),
        sa.Column('status', post_status, nullable=False),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('tweet_id', sa.String(64), nullable=True),
        sa.Column('tweet_url', sa.String(1000), nullable=True),
        sa.Column('posted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('source', sa.String(20), nullable=True),
        sa.Column('source_chat_id', sa.String(64), nullable=True),
        sa.Column('source_message_id', sa.String(64), nullable=True),
        sa.Column('impressions', sa.Integer(), nullable=True),
        sa.Column('likes', sa.Integer(), nullable=True),
        sa.Column('retweets', sa.Integer(), nullable=True),
        sa.Column('replies', sa.Integer(), nullable=True),
        sa.Column('quotes', sa.Integer(), nullable=True),
        sa.Column('last_metrics_update', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('organization_id', 'tweet_id', name='uix_posts_org_tweet'),
        sa.UniqueConstraint(
            'organization_id', 'source_chat_id', 'source_message_id', name='uix_posts_org_source_message'
        ),
    )
    op.create_index('ix_posts_organization_id', 'posts', ['organization_id'])
    op.create_index('ix_posts_campaign_id', 'posts', ['campaign_id'])
    op.create_index('ix_posts_kol_id', 'posts', ['kol_id'])

    op.create_table(
        'telegram_chats',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('organization_id', _uuid(), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('telegram_chat_id', sa.String(64), nullable=False),
        sa.Column('title', sa.String(255), nullable=True),
        sa.Column('type', telegram_chat_type, nullable=False),
        sa.Column('username', sa.String(100), nullable=True),
        sa.Column('status', telegram_chat_status, nullable=False),
        sa.Column('member_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('bot_joined_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('bot_left_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('organization_id', 'telegram_chat_id', name='uix_telegram_chats_org_chat'),
    )
    op.create_index('ix_telegram_chats_organization_id', 'telegram_chats', ['organization_id'])

    op.create_table(
        'telegram_chat_kols',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('chat_id', _uuid(), sa.ForeignKey('telegram_chats.id', ondelete='CASCADE'), nullable=False),
        sa.Column('kol_id', _uuid(), sa.ForeignKey('kols.id', ondelete='CASCADE'), nullable=False),
        sa.Column('telegram_user_id', sa.String(64), nullable=True),
        sa.Column('matched_by', sa.String(20), nullable=False, server_default='username'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('chat_id', 'kol_id', name='uix_telegram_chat_kols_chat_kol'),
    )
    op.create_index('ix_telegram_chat_kols_chat_id', 'telegram_chat_kols', ['chat_id'])
    op.create_index('ix_telegram_chat_kols_kol_id', 'telegram_chat_kols', ['kol_id'])
    op.create_index('ix_telegram_chat_kols_telegram_user_id', 'telegram_chat_kols', ['telegram_user_id'])

    op.create_table(
        'telegram_messages',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('kol_id', _uuid(), sa.ForeignKey('kols.id', ondelete='CASCADE'), nullable=False),
        sa.Column('telegram_chat_id', sa.String(64), nullable=False),
        sa.Column('telegram_message_id', sa.String(64), nullable=True),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('direction', message_direction, nullable=False),
        sa.Column('sender_name', sa.String(255), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('timestamp', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_telegram_messages_kol_id', 'telegram_messages', ['kol_id'])

    op.create_table(
        'telegram_group_messages',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('chat_id', _uuid(), sa.ForeignKey('telegram_chats.id', ondelete='CASCADE'), nullable=False),
        sa.Column('telegram_message_id', sa.String(64), nullable=True),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('direction', message_direction, nullable=False),
        sa.Column('sender_telegram_id', sa.String(64), nullable=True),
        sa.Column('sender_username', sa.String(100), nullable=True),
        sa.Column('sender_name', sa.String(255), nullable=True),
        sa.Column('reply_to_message_id', sa.String(64), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        'ix_telegram_group_messages_chat_timestamp', 'telegram_group_messages', ['chat_id', 'timestamp']
    )


def downgrade() -> None:
    """Drop all bot tables and enum types."""
    op.drop_table('telegram_group_messages')
    op.drop_table('telegram_messages')
    op.drop_table('telegram_chat_kols')
    op.drop_table('telegram_chats')
    op.drop_table('posts')
    op.drop_table('campaign_kols')
    op.drop_table('campaigns')
    op.drop_table('kols')
    op.drop_table('organizations')

    bind = op.get_bind()
    for enum_type in reversed(ENUMS):
        enum_type.drop(bind, checkfirst=True)
