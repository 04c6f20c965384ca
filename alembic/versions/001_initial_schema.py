"""Initial schema for Checkin

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create users table
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('role', sa.String(20), nullable=False, server_default='VIEWER'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # Create integrations table
    op.create_table(
        'integrations',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('config_encrypted', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('sync_interval', sa.Integer(), nullable=True),
        sa.Column('sync_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_sync', sa.DateTime(), nullable=True),
        sa.Column('next_sync_at', sa.DateTime(), nullable=True),
        sa.Column('created_by', sa.Uuid(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_integrations_type', 'integrations', ['type'])
    op.create_index('ix_integrations_next_sync', 'integrations', ['next_sync_at'])

    # Create data_fields table
    op.create_table(
        'data_fields',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('integration_id', sa.Uuid(), sa.ForeignKey('integrations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('variable_name', sa.String(255), nullable=False),
        sa.Column('source_field', sa.String(500), nullable=False),
        sa.Column('target_field', sa.String(255), nullable=True),
        sa.Column('field_type', sa.String(20), nullable=False, server_default='NUMBER'),
        sa.Column('transform', sa.String(500), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_data_fields_integration_id', 'data_fields', ['integration_id'])

    # Create data_values table
    op.create_table(
        'data_values',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('data_field_id', sa.Uuid(), sa.ForeignKey('data_fields.id', ondelete='CASCADE'), nullable=False),
        sa.Column('value', sa.JSON(), nullable=True),
        sa.Column('synced_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_data_values_field_synced', 'data_values', ['data_field_id', 'synced_at'])

    # Create kpis table
    op.create_table(
        'kpis',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('formula', sa.String(500), nullable=False),
        sa.Column('owner_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('target_value', sa.Float(), nullable=True),
        sa.Column('target_direction', sa.String(20), nullable=True),
        sa.Column('target_period', sa.String(20), nullable=True),
        sa.Column('current_value', sa.Float(), nullable=True),
        sa.Column('calculation_error', sa.Text(), nullable=True),
        sa.Column('calculated_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_kpis_owner_id', 'kpis', ['owner_id'])

    # Create kpi_sources table
    op.create_table(
        'kpi_sources',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('kpi_id', sa.Uuid(), sa.ForeignKey('kpis.id', ondelete='CASCADE'), nullable=False),
        sa.Column('data_field_id', sa.Uuid(), sa.ForeignKey('data_fields.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('alias', sa.String(50), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.UniqueConstraint('kpi_id', 'alias', name='uq_kpi_source_alias'),
    )
    op.create_index('ix_kpi_sources_data_field_id', 'kpi_sources', ['data_field_id'])

    # Create dashboards table
    op.create_table(
        'dashboards',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('owner_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('layout', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_dashboards_owner_id', 'dashboards', ['owner_id'])

    # Create widgets table
    op.create_table(
        'widgets',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('dashboard_id', sa.Uuid(), sa.ForeignKey('dashboards.id', ondelete='CASCADE'), nullable=False),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('kpi_id', sa.Uuid(), sa.ForeignKey('kpis.id', ondelete='CASCADE'), nullable=True),
        sa.Column('config', sa.JSON(), nullable=False),
        sa.Column('position', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_widgets_dashboard_id', 'widgets', ['dashboard_id'])
    op.create_index('ix_widgets_kpi_id', 'widgets', ['kpi_id'])

    # Create access tables
    op.create_table(
        'dashboard_access',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('dashboard_id', sa.Uuid(), sa.ForeignKey('dashboards.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('permission', sa.String(10), nullable=False, server_default='VIEW'),
        sa.Column('granted_by', sa.Uuid(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('granted_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('dashboard_id', 'user_id', name='uq_dashboard_access_user'),
    )
    op.create_index('ix_dashboard_access_user_id', 'dashboard_access', ['user_id'])

    op.create_table(
        'kpi_access',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('kpi_id', sa.Uuid(), sa.ForeignKey('kpis.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('permission', sa.String(10), nullable=False, server_default='VIEW'),
        sa.Column('granted_by', sa.Uuid(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('granted_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('kpi_id', 'user_id', name='uq_kpi_access_user'),
    )
    op.create_index('ix_kpi_access_user_id', 'kpi_access', ['user_id'])

    # Create share_links table
    op.create_table(
        'share_links',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('token', sa.String(128), nullable=False),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('resource_type', sa.String(20), nullable=False),
        sa.Column('dashboard_id', sa.Uuid(), sa.ForeignKey('dashboards.id', ondelete='CASCADE'), nullable=True),
        sa.Column('kpi_id', sa.Uuid(), sa.ForeignKey('kpis.id', ondelete='CASCADE'), nullable=True),
        sa.Column('created_by', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('show_target', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('access_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_accessed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_share_links_token', 'share_links', ['token'], unique=True)
    op.create_index('ix_share_links_created_by', 'share_links', ['created_by'])

    # Create sync_logs table
    op.create_table(
        'sync_logs',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('integration_id', sa.Uuid(), sa.ForeignKey('integrations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('trigger_type', sa.String(20), nullable=False, server_default='manual'),
        sa.Column('started_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('duration_ms', sa.Integer(), nullable=True),
        sa.Column('records_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_message', sa.Text(), nullable=True),
    )
    op.create_index('ix_sync_logs_integration_id', 'sync_logs', ['integration_id'])
    op.create_index('ix_sync_logs_started_at', 'sync_logs', ['started_at'])


def downgrade() -> None:
    op.drop_table('sync_logs')
    op.drop_table('share_links')
    op.drop_table('kpi_access')
    op.drop_table('dashboard_access')
    op.drop_table('widgets')
    op.drop_table('dashboards')
    op.drop_table('kpi_sources')
    op.drop_table('kpis')
    op.drop_table('data_values')
    op.drop_table('data_fields')
    op.drop_table('integrations')
    op.drop_table('users')
