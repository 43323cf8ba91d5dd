"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19

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


ENUMS = {
    'userrole': ('admin', 'player', 'coach', 'staff'),
    'playerstatus': ('active', 'injured', 'reserve', 'inactive'),
    'documentcategory': ('contracts', 'medical', 'training', 'matches', 'players', 'administration', 'general'),
    'accesslevel': ('public', 'team', 'admin', 'specific'),
    'eventtype': ('training', 'match', 'meeting', 'medical', 'other'),
    'eventstatus': ('scheduled', 'cancelled', 'completed'),
    'notificationtype': ('document', 'event', 'reminder', 'system'),
    'conversationstatus': ('active', 'completed', 'archived'),
    'messagesender': ('user', 'agent'),
    'channelkind': ('file', 'changes'),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def upgrade() -> None:
    bind = op.get_bind()
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    # Create users table
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('role', _enum('userrole'), nullable=False, server_default='player'),
        sa.Column('position', sa.String(length=100), nullable=True),
        sa.Column('jersey_number', sa.Integer(), nullable=True),
        sa.Column('player_status', _enum('playerstatus'), nullable=True),
        sa.Column('google_access_token', sa.Text(), nullable=True),
        sa.Column('google_refresh_token', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('email_notifications', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('timezone', sa.String(length=50), nullable=False, server_default='Africa/Harare'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('last_login_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'], unique=False)

    # Create folders table
    op.create_table(
        'folders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('google_drive_id', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=500), nullable=False),
        sa.Column('parent_folder_id', sa.Integer(), nullable=True),
        sa.Column('path', sa.Text(), nullable=False),
        sa.Column('access_level', _enum('accesslevel'), nullable=False, server_default='team'),
        sa.Column('allowed_users', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['parent_folder_id'], ['folders.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_folders_google_drive_id', 'folders', ['google_drive_id'], unique=True)
    op.create_index('ix_folders_parent_folder_id', 'folders', ['parent_folder_id'], unique=False)
    op.create_index('ix_folders_path', 'folders', ['path'], unique=False)

    # Create documents table
    op.create_table(
        'documents',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('google_drive_id', sa.String(length=255), nullable=False),
        sa.Column('google_drive_link', sa.Text(), nullable=True),
        sa.Column('title', sa.String(length=500), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('mime_type', sa.String(length=255), nullable=False),
        sa.Column('file_extension', sa.String(length=20), nullable=False, server_default=''),
        sa.Column('size', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('folder_id', sa.String(length=255), nullable=True),
        sa.Column('folder_path', sa.Text(), nullable=False, server_default=''),
        sa.Column('created_by_id', sa.Integer(), nullable=True),
        sa.Column('category', _enum('documentcategory'), nullable=False, server_default='general'),
        sa.Column('access_level', _enum('accesslevel'), nullable=False, server_default='team'),
        sa.Column('allowed_users', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('tags', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('version_history', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('metadata', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('content_index', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('last_synced_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['created_by_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_documents_google_drive_id', 'documents', ['google_drive_id'], unique=True)
    op.create_index('ix_documents_folder_id', 'documents', ['folder_id'], unique=False)
    op.create_index('ix_documents_category', 'documents', ['category'], unique=False)
    op.create_index('ix_documents_access_level', 'documents', ['access_level'], unique=False)

    # Create events table
    op.create_table(
        'events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('google_event_id', sa.String(length=255), nullable=True),
        sa.Column('calendar_id', sa.String(length=255), nullable=False, server_default='primary'),
        sa.Column('title', sa.String(length=500), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('location', sa.String(length=500), nullable=True),
        sa.Column('event_type', _enum('eventtype'), nullable=False, server_default='other'),
        sa.Column('status', _enum('eventstatus'), nullable=False, server_default='scheduled'),
        sa.Column('start_time', sa.DateTime(), nullable=False),
        sa.Column('end_time', sa.DateTime(), nullable=False),
        sa.Column('attendees', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('related_documents', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('created_by_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['created_by_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_events_google_event_id', 'events', ['google_event_id'], unique=True)
    op.create_index('ix_events_status', 'events', ['status'], unique=False)
    op.create_index('ix_events_start_time', 'events', ['start_time'], unique=False)

    # Create notifications table
    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('notification_type', _enum('notificationtype'), nullable=False, server_default='system'),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('related_document_id', sa.String(length=255), nullable=True),
        sa.Column('related_event_id', sa.Integer(), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('read_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['related_event_id'], ['events.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'], unique=False)
    op.create_index('ix_notifications_is_read', 'notifications', ['is_read'], unique=False)

    # Create audit_logs table
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=50), nullable=False),
        sa.Column('resource_type', sa.String(length=50), nullable=False),
        sa.Column('resource_id', sa.String(length=255), nullable=False),
        sa.Column('details', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_audit_logs_user_id', 'audit_logs', ['user_id'], unique=False)
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'], unique=False)
    op.create_index('ix_audit_logs_resource_id', 'audit_logs', ['resource_id'], unique=False)
    op.create_index('ix_audit_logs_timestamp', 'audit_logs', ['timestamp'], unique=False)

    # Create search_queries table
    op.create_table(
        'search_queries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('query_text', sa.Text(), nullable=False, server_default=''),
        sa.Column('filters', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('result_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('took_ms', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_search_queries_user_id', 'search_queries', ['user_id'], unique=False)
    op.create_index('ix_search_queries_created_at', 'search_queries', ['created_at'], unique=False)

    # Create agent_conversations table
    op.create_table(
        'agent_conversations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('status', _enum('conversationstatus'), nullable=False, server_default='active'),
        sa.Column('intent', sa.String(length=50), nullable=True),
        sa.Column('context', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('ended_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_agent_conversations_user_id', 'agent_conversations', ['user_id'], unique=False)
    op.create_index('ix_agent_conversations_status', 'agent_conversations', ['status'], unique=False)

    # Create agent_messages table
    op.create_table(
        'agent_messages',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('conversation_id', sa.Integer(), nullable=False),
        sa.Column('sender', _enum('messagesender'), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('related_documents', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('related_events', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('actions', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['conversation_id'], ['agent_conversations.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_agent_messages_conversation_id', 'agent_messages', ['conversation_id'], unique=False)

    # Create drive_sync_state table
    op.create_table(
        'drive_sync_state',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('page_token', sa.String(length=255), nullable=True),
        sa.Column('last_poll_at', sa.DateTime(), nullable=True),
        sa.Column('poll_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )

    # Create drive_watch_channels table
    op.create_table(
        'drive_watch_channels',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('channel_id', sa.String(length=255), nullable=False),
        sa.Column('resource_id', sa.String(length=255), nullable=True),
        sa.Column('resource_uri', sa.Text(), nullable=True),
        sa.Column('kind', _enum('channelkind'), nullable=False, server_default='file'),
        sa.Column('file_id', sa.String(length=255), nullable=True),
        sa.Column('token', sa.String(length=255), nullable=True),
        sa.Column('expiration', sa.DateTime(), nullable=True),
        sa.Column('last_message_number', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_drive_watch_channels_channel_id', 'drive_watch_channels', ['channel_id'], unique=True)
    op.create_index('ix_drive_watch_channels_expiration', 'drive_watch_channels', ['expiration'], unique=False)
    op.create_index('ix_drive_watch_channels_active', 'drive_watch_channels', ['active'], unique=False)


def downgrade() -> None:
    op.drop_table('drive_watch_channels')
    op.drop_table('drive_sync_state')
    op.drop_table('agent_messages')
    op.drop_table('agent_conversations')
    op.drop_table('search_queries')
    op.drop_table('audit_logs')
    op.drop_table('notifications')
    op.drop_table('events')
    op.drop_table('documents')
    op.drop_table('folders')
    op.drop_table('users')

    bind = op.get_bind()
    for name in reversed(list(ENUMS)):
        postgresql.ENUM(name=name).drop(bind, checkfirst=True)
