"""Create profiles, messages, rules, reply queue and reply log tables

Revision ID: 0001_reply_pipeline
Revises:
Create Date: 2025-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_reply_pipeline'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        'profiles',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('full_name', sa.String(255), nullable=True),
        sa.Column('business_name', sa.String(255), nullable=True),
        sa.Column('instagram_access_token', sa.Text(), nullable=True),
        sa.Column('instagram_user_id', sa.String(100), nullable=True),
        sa.Column('facebook_page_id', sa.String(100), nullable=True),
        sa.Column('last_instagram_sync', sa.DateTime(), nullable=True),
        sa.Column('last_comment_sync', sa.DateTime(), nullable=True),
        sa.Column('auto_reply_dms_enabled', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('auto_reply_comments_enabled', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('subscription_tier', sa.String(20), nullable=False, server_default='free'),
        sa.Column('subscription_status', sa.String(20), nullable=False, server_default='trialing'),
        sa.Column('trial_ends_at', sa.DateTime(), nullable=True),
        sa.Column('monthly_message_count', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('last_message_reset', sa.Date(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_profiles_id', 'profiles', ['id'])
    op.create_index('ix_profiles_instagram_user_id', 'profiles', ['instagram_user_id'])
    op.create_index('ix_profiles_facebook_page_id', 'profiles', ['facebook_page_id'])

    op.create_table(
        'instagram_messages',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.BigInteger(), sa.ForeignKey('profiles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('message_type', sa.String(20), nullable=False),
        sa.Column('message_id', sa.String(255), nullable=False),
        sa.Column('conversation_id', sa.String(255), nullable=True),
        sa.Column('post_id', sa.String(255), nullable=True),
        sa.Column('sender_id', sa.String(255), nullable=False),
        sa.Column('sender_username', sa.String(255), nullable=True),
        sa.Column('sender_name', sa.String(255), nullable=True),
        sa.Column('message_text', sa.Text(), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('is_question', sa.Boolean(), nullable=True),
        sa.Column('intent', sa.String(50), nullable=True),
        sa.Column('intent_confidence', sa.Float(), nullable=True),
        sa.Column('detected_language', sa.String(5), nullable=True),
        sa.Column('ai_reply_suggestion_fi', sa.Text(), nullable=True),
        sa.Column('ai_reply_suggestion_en', sa.Text(), nullable=True),
        sa.Column('replied_at', sa.DateTime(), nullable=True),
        sa.Column('replied_by', sa.String(20), nullable=True),
        sa.Column('reply_text', sa.Text(), nullable=True),
        sa.Column('reply_id', sa.String(255), nullable=True),
        sa.Column('archived_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('user_id', 'message_id', name='uq_instagram_messages_user_message'),
    )
    op.create_index('ix_instagram_messages_id', 'instagram_messages', ['id'])
    op.create_index('ix_instagram_messages_user_id', 'instagram_messages', ['user_id'])
    op.create_index('ix_instagram_messages_message_id', 'instagram_messages', ['message_id'])
    op.create_index('ix_instagram_messages_conversation_id', 'instagram_messages', ['conversation_id'])

    op.create_table(
        'automation_rules',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.BigInteger(), sa.ForeignKey('profiles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('trigger_type', sa.String(20), nullable=False),
        sa.Column('trigger_text', sa.String(500), nullable=False),
        sa.Column('reply_text', sa.Text(), nullable=False),
        sa.Column('match_type', sa.String(20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('usage_count', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('last_used_at', sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_automation_rules_id', 'automation_rules', ['id'])
    op.create_index('ix_automation_rules_user_id', 'automation_rules', ['user_id'])

    op.create_table(
        'business_rules',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.BigInteger(), sa.ForeignKey('profiles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('rule_type', sa.String(20), nullable=False),
        sa.Column('rule_key', sa.String(255), nullable=False),
        sa.Column('rule_value', sa.Text(), nullable=False),
        sa.Column('rule_metadata', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        *_timestamps(),
    )
    op.create_index('ix_business_rules_id', 'business_rules', ['id'])
    op.create_index('ix_business_rules_user_id', 'business_rules', ['user_id'])

    op.create_table(
        'auto_reply_queue',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.BigInteger(), sa.ForeignKey('profiles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('message_type', sa.String(20), nullable=False),
        sa.Column('message_id', sa.String(255), nullable=False),
        sa.Column('conversation_id', sa.String(255), nullable=True),
        sa.Column('sender_id', sa.String(255), nullable=True),
        sa.Column('sender_username', sa.String(255), nullable=True),
        sa.Column('message_text', sa.Text(), nullable=False),
        sa.Column('suggested_reply', sa.Text(), nullable=False),
        sa.Column('detected_language', sa.String(5), nullable=False, server_default='en'),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('final_reply', sa.Text(), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('rejected_at', sa.DateTime(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('claimed_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('user_id', 'message_id', name='uq_auto_reply_queue_user_message'),
    )
    op.create_index('ix_auto_reply_queue_id', 'auto_reply_queue', ['id'])
    op.create_index('ix_auto_reply_queue_user_id', 'auto_reply_queue', ['user_id'])
    op.create_index('ix_auto_reply_queue_status', 'auto_reply_queue', ['status'])

    op.create_table(
        'auto_reply_logs',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.BigInteger(), sa.ForeignKey('profiles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('message_type', sa.String(20), nullable=False),
        sa.Column('message_id', sa.String(255), nullable=False),
        sa.Column('original_message_text', sa.Text(), nullable=True),
        sa.Column('sender_username', sa.String(255), nullable=True),
        sa.Column('reply_text', sa.Text(), nullable=False),
        sa.Column('reply_type', sa.String(20), nullable=False),
        sa.Column('automation_rule_id', sa.BigInteger(), nullable=True),
        sa.Column('instagram_reply_id', sa.String(255), nullable=True),
        sa.Column('success', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('sent_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_auto_reply_logs_id', 'auto_reply_logs', ['id'])
    op.create_index('ix_auto_reply_logs_user_id', 'auto_reply_logs', ['user_id'])
    op.create_index('ix_auto_reply_logs_message_id', 'auto_reply_logs', ['message_id'])
    op.create_index('ix_auto_reply_logs_sent_at', 'auto_reply_logs', ['sent_at'])


def downgrade() -> None:
    op.drop_table('auto_reply_logs')
    op.drop_table('auto_reply_queue')
    op.drop_table('business_rules')
    op.drop_table('automation_rules')
    op.drop_table('instagram_messages')
    op.drop_table('profiles')
