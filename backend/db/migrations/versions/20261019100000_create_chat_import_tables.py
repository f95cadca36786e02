"""Create chat, message and chat_imports tables for CSV history import

Revision ID: 20261019100000
Revises:
Create Date: 2026-10-19 10:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261019100000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_id', 'users', ['id'], unique=False)

    op.create_table(
        'chats',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('chat_name', sa.String(200), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_message_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_chats_id', 'chats', ['id'], unique=False)

    op.create_table(
        'chat_participants',
        sa.Column('chat_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('chat_id', 'user_id'),
        sa.ForeignKeyConstraint(['chat_id'], ['chats.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_chat_participants_chat_id', 'chat_participants', ['chat_id'], unique=False)
    op.create_index('ix_chat_participants_user_id', 'chat_participants', ['user_id'], unique=False)

    op.create_table(
        'messages',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('chat_id', sa.Integer(), nullable=False),
        sa.Column('sender_id', sa.Integer(), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('content_type', sa.String(20), nullable=False, server_default='text'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        # Imported-from metadata (NULL for live messages)
        sa.Column('import_id', sa.String(32), nullable=True),
        sa.Column('import_source', sa.String(20), nullable=True),
        sa.Column('original_timestamp', sa.DateTime(timezone=True), nullable=True),
        sa.Column('original_text', sa.Text(), nullable=True),
        sa.Column('was_translated', sa.Boolean(), nullable=True),
        sa.Column('import_row', sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['chat_id'], ['chats.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['sender_id'], ['users.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_messages_id', 'messages', ['id'], unique=False)
    op.create_index('ix_messages_chat_id', 'messages', ['chat_id'], unique=False)
    op.create_index('ix_messages_sender_id', 'messages', ['sender_id'], unique=False)
    op.create_index('ix_messages_created_at', 'messages', ['created_at'], unique=False)
    op.create_index('ix_messages_import_id', 'messages', ['import_id'], unique=False)
    op.create_index('ix_messages_chat_created', 'messages', ['chat_id', 'created_at'], unique=False)
    op.create_index('ix_messages_chat_import', 'messages', ['chat_id', 'import_id'], unique=False)

    op.create_table(
        'chat_imports',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('import_id', sa.String(32), nullable=False),
        sa.Column('chat_id', sa.Integer(), nullable=False),
        sa.Column('uploaded_by', sa.Integer(), nullable=True),
        sa.Column('file_name', sa.String(255), nullable=False),
        sa.Column('format', sa.String(20), nullable=False, server_default='generic'),
        sa.Column('imported_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('message_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('skipped_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('date_range_start', sa.DateTime(timezone=True), nullable=True),
        sa.Column('date_range_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sender_breakdown', sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['chat_id'], ['chats.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['uploaded_by'], ['users.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_chat_imports_id', 'chat_imports', ['id'], unique=False)
    op.create_index('ix_chat_imports_import_id', 'chat_imports', ['import_id'], unique=True)
    op.create_index('ix_chat_imports_chat_id', 'chat_imports', ['chat_id'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_chat_imports_chat_id', table_name='chat_imports')
    op.drop_index('ix_chat_imports_import_id', table_name='chat_imports')
    op.drop_index('ix_chat_imports_id', table_name='chat_imports')
    op.drop_table('chat_imports')

    op.drop_index('ix_messages_chat_import', table_name='messages')
    op.drop_index('ix_messages_chat_created', table_name='messages')
    op.drop_index('ix_messages_import_id', table_name='messages')
    op.drop_index('ix_messages_created_at', table_name='messages')
    op.drop_index('ix_messages_sender_id', table_name='messages')
    op.drop_index('ix_messages_chat_id', table_name='messages')
    op.drop_index('ix_messages_id', table_name='messages')
    op.drop_table('messages')

    op.drop_index('ix_chat_participants_user_id', table_name='chat_participants')
    op.drop_index('ix_chat_participants_chat_id', table_name='chat_participants')
    op.drop_table('chat_participants')

    op.drop_index('ix_chats_id', table_name='chats')
    op.drop_table('chats')

    op.drop_index('ix_users_id', table_name='users')
    op.drop_table('users')
