"""Merchant onboarding schema

Revision ID: 20261019_onboarding
Revises:
Create Date: 2026-10-19

This migration adds:
1. users and session_tokens (matricule login, supervisor reporting link)
2. merchants (versioned row, sparse-unique short_code) and merchant_operators
   (national_id and phone unique across the store)
3. merchant_history (append-only transition audit trail)
4. short_code_sequences (atomic short-code counter)
5. agent_performance (per-user counters)
6. activity_logs
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_onboarding'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. USERS / SESSIONS
    # ==========================================================================
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('matricule', sa.String(length=64), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('affiliation', sa.String(length=128), nullable=True),
        sa.Column('supervisor_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['supervisor_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_users_matricule'), ['matricule'], unique=True)
        batch_op.create_index(batch_op.f('ix_users_supervisor_id'), ['supervisor_id'], unique=False)
        batch_op.create_index('ix_users_role', ['role'], unique=False)

    op.create_table('session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('last_used_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('session_tokens', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_session_tokens_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_session_tokens_token_hash'), ['token_hash'], unique=True)
        batch_op.create_index(batch_op.f('ix_session_tokens_expires_at'), ['expires_at'], unique=False)
        batch_op.create_index(batch_op.f('ix_session_tokens_is_revoked'), ['is_revoked'], unique=False)
        batch_op.create_index('ix_session_tokens_user_active', ['user_id', 'is_revoked'], unique=False)

    # ==========================================================================
    # 2. MERCHANTS / OPERATORS
    # ==========================================================================
    op.create_table('merchants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('short_code', sa.String(length=16), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('sector', sa.String(length=128), nullable=False),
        sa.Column('commerce_type', sa.String(length=128), nullable=False),
        sa.Column('region', sa.String(length=128), nullable=False),
        sa.Column('city', sa.String(length=128), nullable=False),
        sa.Column('commune', sa.String(length=128), nullable=False),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('manager_last_name', sa.String(length=128), nullable=False),
        sa.Column('manager_first_name', sa.String(length=128), nullable=False),
        sa.Column('address', sa.String(length=255), nullable=False),
        sa.Column('contact', sa.String(length=32), nullable=False),
        sa.Column('tax_id', sa.String(length=64), nullable=True),
        sa.Column('trade_register', sa.String(length=64), nullable=True),
        sa.Column('id_document_type', sa.String(length=32), nullable=False),
        sa.Column('id_front_url', sa.String(length=512), nullable=True),
        sa.Column('id_back_url', sa.String(length=512), nullable=True),
        sa.Column('passport_url', sa.String(length=512), nullable=True),
        sa.Column('shop_photo_url', sa.String(length=512), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='PENDING'),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('rejection_source', sa.String(length=16), nullable=True),
        sa.Column('submitted_by_id', sa.Integer(), nullable=False),
        sa.Column('supervisor_validated_by_id', sa.Integer(), nullable=True),
        sa.Column('supervisor_validated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('final_validated_by_id', sa.Integer(), nullable=True),
        sa.Column('final_validated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_modified_by_id', sa.Integer(), nullable=True),
        sa.Column('last_modified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('data_entry_agent_id', sa.Integer(), nullable=True),
        sa.Column('dispatched_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('provisioning_status', sa.String(length=16), nullable=True),
        sa.Column('provisioning_note', sa.Text(), nullable=True),
        sa.Column('provisioned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['submitted_by_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['supervisor_validated_by_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['final_validated_by_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['last_modified_by_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['data_entry_agent_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('short_code', name='uq_merchants_short_code'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('merchants', schema=None) as batch_op:
        batch_op.create_index('ix_merchants_status', ['status'], unique=False)
        batch_op.create_index('ix_merchants_submitted_by_status', ['submitted_by_id', 'status'], unique=False)
        batch_op.create_index(batch_op.f('ix_merchants_submitted_by_id'), ['submitted_by_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_merchants_data_entry_agent_id'), ['data_entry_agent_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_merchants_created_at'), ['created_at'], unique=False)

    op.create_table('merchant_operators',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('merchant_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_name', sa.String(length=128), nullable=False),
        sa.Column('first_name', sa.String(length=128), nullable=False),
        sa.Column('national_id', sa.String(length=64), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=False),
        sa.Column('short_code', sa.String(length=16), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['merchant_id'], ['merchants.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('national_id', name='uq_merchant_operators_national_id'),
        sa.UniqueConstraint('phone', name='uq_merchant_operators_phone'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('merchant_operators', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_merchant_operators_merchant_id'), ['merchant_id'], unique=False)

    # ==========================================================================
    # 3. MERCHANT HISTORY
    # ==========================================================================
    op.create_table('merchant_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('merchant_id', sa.Integer(), nullable=False),
        sa.Column('actor_id', sa.Integer(), nullable=False),
        sa.Column('event', sa.String(length=32), nullable=False),
        sa.Column('from_status', sa.String(length=32), nullable=True),
        sa.Column('to_status', sa.String(length=32), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('short_code', sa.String(length=16), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['merchant_id'], ['merchants.id'], ),
        sa.ForeignKeyConstraint(['actor_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('merchant_history', schema=None) as batch_op:
        batch_op.create_index('ix_merchant_history_merchant_occurred', ['merchant_id', 'occurred_at'], unique=False)
        batch_op.create_index(batch_op.f('ix_merchant_history_actor_id'), ['actor_id'], unique=False)

    # ==========================================================================
    # 4. SHORT-CODE COUNTER
    # ==========================================================================
    op.create_table('short_code_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=32), nullable=False),
        sa.Column('next_value', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name', name='uq_short_code_sequences_name'),
        sqlite_autoincrement=True
    )

    # ==========================================================================
    # 5. PERFORMANCE COUNTERS
    # ==========================================================================
    op.create_table('agent_performance',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('enrollments', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('validations', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('rejections', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('data_entry_created', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('data_entry_failed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', name='uq_agent_performance_user'),
        sqlite_autoincrement=True
    )

    # ==========================================================================
    # 6. ACTIVITY LOG
    # ==========================================================================
    op.create_table('activity_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('matricule', sa.String(length=64), nullable=True),
        sa.Column('action', sa.String(length=255), nullable=False),
        sa.Column('status_code', sa.Integer(), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('activity_logs', schema=None) as batch_op:
        batch_op.create_index('ix_activity_logs_user_created', ['user_id', 'created_at'], unique=False)
        batch_op.create_index(batch_op.f('ix_activity_logs_created_at'), ['created_at'], unique=False)


def downgrade():
    with op.batch_alter_table('activity_logs', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_activity_logs_created_at'))
        batch_op.drop_index('ix_activity_logs_user_created')
    op.drop_table('activity_logs')

    op.drop_table('agent_performance')
    op.drop_table('short_code_sequences')

    with op.batch_alter_table('merchant_history', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_merchant_history_actor_id'))
        batch_op.drop_index('ix_merchant_history_merchant_occurred')
    op.drop_table('merchant_history')

    with op.batch_alter_table('merchant_operators', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_merchant_operators_merchant_id'))
    op.drop_table('merchant_operators')

    with op.batch_alter_table('merchants', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_merchants_created_at'))
        batch_op.drop_index(batch_op.f('ix_merchants_data_entry_agent_id'))
        batch_op.drop_index(batch_op.f('ix_merchants_submitted_by_id'))
        batch_op.drop_index('ix_merchants_submitted_by_status')
        batch_op.drop_index('ix_merchants_status')
    op.drop_table('merchants')

    with op.batch_alter_table('session_tokens', schema=None) as batch_op:
        batch_op.drop_index('ix_session_tokens_user_active')
        batch_op.drop_index(batch_op.f('ix_session_tokens_is_revoked'))
        batch_op.drop_index(batch_op.f('ix_session_tokens_expires_at'))
        batch_op.drop_index(batch_op.f('ix_session_tokens_token_hash'))
        batch_op.drop_index(batch_op.f('ix_session_tokens_user_id'))
    op.drop_table('session_tokens')

    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.drop_index('ix_users_role')
        batch_op.drop_index(batch_op.f('ix_users_supervisor_id'))
        batch_op.drop_index(batch_op.f('ix_users_matricule'))
    op.drop_table('users')
