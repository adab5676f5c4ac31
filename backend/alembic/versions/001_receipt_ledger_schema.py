"""Receipt ledger schema

Revision ID: 001_receipt_ledger
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_receipt_ledger'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create users table
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('default_currency', sa.String(3), nullable=False, server_default='NGN'),
        sa.Column('custom_context_prompt', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)

    # Create categories table (system categories have no owner)
    op.create_table(
        'categories',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(36), nullable=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('normalized_name', sa.String(), nullable=False),
        sa.Column('name_variations', sa.JSON(), nullable=False),
        sa.Column('icon', sa.String(), nullable=True),
        sa.Column('color', sa.String(), nullable=True),
        sa.Column('is_system', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'normalized_name', name='uq_categories_user_normalized_name')
    )
    op.create_index(op.f('ix_categories_id'), 'categories', ['id'], unique=False)
    op.create_index(op.f('ix_categories_user_id'), 'categories', ['user_id'], unique=False)

    # Create contacts table
    op.create_table(
        'contacts',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('normalized_name', sa.String(), nullable=False),
        sa.Column('name_variations', sa.JSON(), nullable=False),
        sa.Column('contact_type', sa.String(20), nullable=True),
        sa.Column('category_id', sa.String(36), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'normalized_name', name='uq_contacts_user_normalized_name')
    )
    op.create_index(op.f('ix_contacts_id'), 'contacts', ['id'], unique=False)
    op.create_index(op.f('ix_contacts_user_id'), 'contacts', ['user_id'], unique=False)
    op.create_index(op.f('ix_contacts_name'), 'contacts', ['name'], unique=False)

    # Create bank_accounts table
    op.create_table(
        'bank_accounts',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('account_name', sa.String(), nullable=True),
        sa.Column('account_number', sa.String(), nullable=True),
        sa.Column('bank_name', sa.String(), nullable=False),
        sa.Column('account_type', sa.String(20), nullable=True),
        sa.Column('currency', sa.String(3), nullable=False, server_default='NGN'),
        sa.Column('nickname', sa.String(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_primary', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_bank_accounts_id'), 'bank_accounts', ['id'], unique=False)
    op.create_index(op.f('ix_bank_accounts_user_id'), 'bank_accounts', ['user_id'], unique=False)

    # Create documents table
    op.create_table(
        'documents',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('filename', sa.String(), nullable=True),
        sa.Column('raw_text', sa.Text(), nullable=True),
        sa.Column('document_type', sa.String(32), nullable=True),
        sa.Column('transaction_count', sa.Integer(), nullable=True),
        sa.Column('detection_confidence', sa.Float(), nullable=True),
        sa.Column('detection', sa.JSON(), nullable=True),
        sa.Column('processing_status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('processed_transactions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_documents_id'), 'documents', ['id'], unique=False)
    op.create_index(op.f('ix_documents_user_id'), 'documents', ['user_id'], unique=False)
    op.create_index(op.f('ix_documents_document_type'), 'documents', ['document_type'], unique=False)
    op.create_index(op.f('ix_documents_processing_status'), 'documents', ['processing_status'], unique=False)

    # Create transactions table
    op.create_table(
        'transactions',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('document_id', sa.String(36), nullable=True),
        sa.Column('contact_id', sa.String(36), nullable=True),
        sa.Column('category_id', sa.String(36), nullable=True),
        sa.Column('user_bank_account_id', sa.String(36), nullable=True),
        sa.Column('to_bank_account_id', sa.String(36), nullable=True),
        sa.Column('amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('transaction_type', sa.String(20), nullable=False),
        sa.Column('transaction_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_self_transaction', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('payment_method', sa.String(20), nullable=True),
        sa.Column('reference_number', sa.String(), nullable=False),
        sa.Column('ai_confidence', sa.Float(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='confirmed'),
        sa.Column('summary', sa.Text(), nullable=True),
        sa.Column('embedding', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['document_id'], ['documents.id'], ),
        sa.ForeignKeyConstraint(['contact_id'], ['contacts.id'], ),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ),
        sa.ForeignKeyConstraint(['user_bank_account_id'], ['bank_accounts.id'], ),
        sa.ForeignKeyConstraint(['to_bank_account_id'], ['bank_accounts.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_transactions_id'), 'transactions', ['id'], unique=False)
    op.create_index(op.f('ix_transactions_user_id'), 'transactions', ['user_id'], unique=False)
    op.create_index(op.f('ix_transactions_document_id'), 'transactions', ['document_id'], unique=False)

    # Create batch_sessions table
    op.create_table(
        'batch_sessions',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('document_id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('processing_mode', sa.String(20), nullable=False, server_default='sequential'),
        sa.Column('status', sa.String(20), nullable=False, server_default='in_progress'),
        sa.Column('current_index', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_expected', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_processed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_skipped', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('user_bank_account_id', sa.String(36), nullable=True),
        sa.Column('tool_calls', sa.JSON(), nullable=True),
        sa.Column('auto_tool_results', sa.JSON(), nullable=True),
        sa.Column('model_notes', sa.Text(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('started_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['document_id'], ['documents.id'], ),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['user_bank_account_id'], ['bank_accounts.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_batch_sessions_id'), 'batch_sessions', ['id'], unique=False)
    op.create_index(op.f('ix_batch_sessions_document_id'), 'batch_sessions', ['document_id'], unique=False)
    op.create_index(op.f('ix_batch_sessions_user_id'), 'batch_sessions', ['user_id'], unique=False)
    op.create_index(op.f('ix_batch_sessions_status'), 'batch_sessions', ['status'], unique=False)

    # Create clarification_sessions table
    op.create_table(
        'clarification_sessions',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('document_id', sa.String(36), nullable=False),
        sa.Column('batch_session_id', sa.String(36), nullable=True),
        sa.Column('record_index', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(24), nullable=False, server_default='active'),
        sa.Column('tool_results', sa.JSON(), nullable=False),
        sa.Column('pending_tool_calls', sa.JSON(), nullable=True),
        sa.Column('transaction_id', sa.String(36), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['document_id'], ['documents.id'], ),
        sa.ForeignKeyConstraint(['batch_session_id'], ['batch_sessions.id'], ),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_clarification_sessions_id'), 'clarification_sessions', ['id'], unique=False)
    op.create_index(op.f('ix_clarification_sessions_user_id'), 'clarification_sessions', ['user_id'], unique=False)
    op.create_index(op.f('ix_clarification_sessions_document_id'), 'clarification_sessions', ['document_id'], unique=False)
    op.create_index(op.f('ix_clarification_sessions_batch_session_id'), 'clarification_sessions', ['batch_session_id'], unique=False)
    op.create_index(op.f('ix_clarification_sessions_status'), 'clarification_sessions', ['status'], unique=False)

    # Create clarification_messages table
    op.create_table(
        'clarification_messages',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('session_id', sa.String(36), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('role', sa.String(10), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['session_id'], ['clarification_sessions.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_clarification_messages_id'), 'clarification_messages', ['id'], unique=False)
    op.create_index(op.f('ix_clarification_messages_session_id'), 'clarification_messages', ['session_id'], unique=False)

    # Create extraction_records table
    op.create_table(
        'extraction_records',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('batch_session_id', sa.String(36), nullable=False),
        sa.Column('record_index', sa.Integer(), nullable=False),
        sa.Column('is_complete', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('confidence_score', sa.Float(), nullable=False, server_default='0'),
        sa.Column('transaction', sa.JSON(), nullable=True),
        sa.Column('enrichment', sa.JSON(), nullable=True),
        sa.Column('missing_fields', sa.JSON(), nullable=True),
        sa.Column('questions', sa.JSON(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('raw_text', sa.Text(), nullable=True),
        sa.Column('review_status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('transaction_id', sa.String(36), nullable=True),
        sa.Column('clarification_session_id', sa.String(36), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['batch_session_id'], ['batch_sessions.id'], ),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id'], ),
        sa.ForeignKeyConstraint(['clarification_session_id'], ['clarification_sessions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('batch_session_id', 'record_index', name='uq_extraction_records_session_index')
    )
    op.create_index(op.f('ix_extraction_records_id'), 'extraction_records', ['id'], unique=False)
    op.create_index(op.f('ix_extraction_records_batch_session_id'), 'extraction_records', ['batch_session_id'], unique=False)


def downgrade() -> None:
    op.drop_table('extraction_records')
    op.drop_table('clarification_messages')
    op.drop_table('clarification_sessions')
    op.drop_table('batch_sessions')
    op.drop_table('transactions')
    op.drop_table('documents')
    op.drop_table('bank_accounts')
    op.drop_table('contacts')
    op.drop_table('categories')
    op.drop_table('users')
