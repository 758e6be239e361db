"""Initial schema: profiles, dashboards, data tables, integrations, usage and billing

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

Users live in Supabase Auth; every user_id column holds the Supabase user id
without a foreign key.
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    ]


def upgrade() -> None:
    # Profiles table (one row per Supabase user)
    op.create_table(
        'profiles',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('full_name', sa.String(255), nullable=True),
        sa.Column('avatar_url', sa.String(1024), nullable=True),
        sa.Column('company', sa.String(255), nullable=True),
        sa.Column('role', sa.Enum('user', 'pro', 'admin', name='profile_role'), nullable=False, server_default='user'),
        sa.Column('stripe_customer_id', sa.String(255), nullable=True, unique=True),
        sa.Column('subscription_status', sa.String(64), nullable=True),
        sa.Column('subscription_tier', sa.Enum('free', 'pro', name='subscription_tier'), nullable=False, server_default='free'),
        sa.Column('subscription_price_id', sa.String(255), nullable=True),
        sa.Column('current_period_end', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('cancel_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('trial_ends_at', sa.TIMESTAMP(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('idx_profiles_email', 'profiles', ['email'])

    # Dashboards table
    op.create_table(
        'dashboards',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(255), nullable=False, server_default='Untitled Dashboard'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('slug', sa.String(255), nullable=True),
        sa.Column('share_slug', sa.String(255), nullable=True, unique=True),
        sa.Column('is_public', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('is_unlisted', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('allow_comments', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('allow_downloads', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('canvas_mode', sa.String(32), nullable=False, server_default='design'),
        sa.Column('canvas_items', postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column('canvas_elements', postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column('data_tables', postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column('connections', postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column('canvas_background', postgresql.JSONB(), nullable=True),
        sa.Column('theme', sa.String(32), nullable=True),
        sa.Column('state_json', postgresql.JSONB(), nullable=True),
        sa.Column('thumbnail_url', sa.String(1024), nullable=True),
        sa.Column('view_count', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
    )
    op.create_index('idx_dashboards_user_id', 'dashboards', ['user_id'])
    op.create_index('idx_dashboards_share_slug', 'dashboards', ['share_slug'])
    op.create_index('idx_dashboards_updated_at', 'dashboards', ['updated_at'])

    # User data tables
    op.create_table(
        'user_data_tables',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('source', sa.String(64), nullable=False, server_default='manual'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('data', postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column('schema', postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column('row_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('source_config', postgresql.JSONB(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('user_id', 'name', name='uq_user_data_tables_user_name'),
    )
    op.create_index('idx_user_data_tables_user_id', 'user_data_tables', ['user_id'])

    # OAuth state tokens
    op.create_table(
        'oauth_states',
        sa.Column('state', sa.String(128), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('provider', sa.String(64), nullable=False),
        sa.Column('extra', postgresql.JSONB(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('idx_oauth_states_user_id', 'oauth_states', ['user_id'])

    # Encrypted OAuth credentials
    op.create_table(
        'integration_credentials',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('provider', sa.String(64), nullable=False),
        sa.Column('access_token_encrypted', sa.Text(), nullable=False),
        sa.Column('refresh_token_encrypted', sa.Text(), nullable=True),
        sa.Column('expires_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('metadata', postgresql.JSONB(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('user_id', 'provider', name='uq_integration_credentials_user_provider'),
    )
    op.create_index('idx_integration_credentials_user_id', 'integration_credentials', ['user_id'])

    # Encrypted data source connections
    op.create_table(
        'data_connections',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('source_type', sa.String(64), nullable=False),
        sa.Column('label', sa.String(255), nullable=False, server_default='default'),
        sa.Column('config_encrypted', sa.Text(), nullable=False),
        sa.Column('last_used', sa.TIMESTAMP(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('user_id', 'source_type', 'label', name='uq_data_connections_user_source_label'),
    )
    op.create_index('idx_data_connections_user_id', 'data_connections', ['user_id'])

    # Encrypted third-party API keys
    op.create_table(
        'api_keys',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('service', sa.String(64), nullable=False),
        sa.Column('key_name', sa.String(255), nullable=True),
        sa.Column('encrypted_key', sa.Text(), nullable=False),
        sa.Column('last_used_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.UniqueConstraint('user_id', 'service', name='uq_api_keys_user_service'),
    )
    op.create_index('idx_api_keys_user_id', 'api_keys', ['user_id'])

    # Daily image generation counters
    op.create_table(
        'ai_image_usage',
        sa.Column('user_id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('usage_date', sa.Date(), primary_key=True),
        sa.Column('used', sa.Integer(), nullable=False, server_default='0'),
        sa.CheckConstraint('used >= 0', name='ck_ai_image_usage_used_non_negative'),
    )

    # Activity log
    op.create_table(
        'activity_log',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('action', sa.String(127), nullable=False),
        sa.Column('resource_type', sa.String(64), nullable=True),
        sa.Column('resource_id', sa.String(255), nullable=True),
        sa.Column('metadata', postgresql.JSONB(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('idx_activity_log_user_id', 'activity_log', ['user_id'])
    op.create_index('idx_activity_log_action', 'activity_log', ['action'])
    op.create_index('idx_activity_log_created_at', 'activity_log', ['created_at'])

    # Billing events (one row per Stripe event)
    op.create_table(
        'billing_events',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('stripe_customer_id', sa.String(255), nullable=True),
        sa.Column('event_type', sa.String(127), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=True),
        sa.Column('currency', sa.String(8), nullable=True),
        sa.Column('status', sa.String(64), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('stripe_event_id', sa.String(255), nullable=True, unique=True),
        sa.Column('metadata', postgresql.JSONB(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('idx_billing_events_user_id', 'billing_events', ['user_id'])
    op.create_index('idx_billing_events_created_at', 'billing_events', ['created_at'])


def downgrade() -> None:
    for table in (
        'billing_events',
        'activity_log',
        'ai_image_usage',
        'api_keys',
        'data_connections',
        'integration_credentials',
        'oauth_states',
        'user_data_tables',
        'dashboards',
        'profiles',
    ):
        op.drop_table(table)
    op.execute('DROP TYPE IF EXISTS subscription_tier')
    op.execute('DROP TYPE IF EXISTS profile_role')
