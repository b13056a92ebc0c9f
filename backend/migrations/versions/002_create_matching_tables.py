"""Create match candidate, history, rule, job and AI call tables

Revision ID: 002
Revises: 001
Create Date: 2026-10-01 09:30:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '002'
down_revision = '001'
branch_labels = None
depends_on = None


ENUMS = {
    'match_target_type': ('SUPPLIER', 'INVENTORY', 'WEB_RESULT'),
    'match_method': (
        'EXACT_NORMALIZED', 'LINE_PART', 'DESCRIPTION_SIMILARITY', 'FUZZY_SUBSTRING',
        'INTERCHANGE', 'AI', 'WEB_SEARCH', 'MASTER_RULE', 'SUPERSESSION', 'HUMAN_REVIEW',
    ),
    'match_status': ('PENDING', 'CONFIRMED', 'REJECTED'),
    'vendor_action': ('NONE', 'LIFT', 'REBOX', 'UNKNOWN', 'CONTACT_VENDOR'),
    'review_source': ('UI', 'BULK', 'AI_AUTO', 'RULE', 'SYSTEM'),
    'master_rule_type': ('POSITIVE_MAP', 'NEGATIVE_BLOCK'),
    'master_rule_scope': ('GLOBAL', 'PROJECT'),
    'master_rule_state': ('ENABLED', 'DISABLED'),
    'suggested_rule_type': ('PUNCTUATION_EQUIVALENCE', 'LINE_CODE_MAPPING'),
    'suggested_rule_status': ('SUGGESTED', 'APPROVED', 'REJECTED'),
    'matching_job_type': ('exact', 'fuzzy', 'ai', 'supersession', 'full'),
    'matching_job_status': ('pending', 'processing', 'completed', 'failed', 'cancelled'),
    'ai_call_status': ('SUCCEEDED', 'FAILED'),
}


def _enum(name):
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _history_table(name, with_reason):
    columns = [
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('project_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('match_candidate_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('store_part_number', sa.Text(), nullable=False),
        sa.Column('store_line_code', sa.Text(), nullable=True),
        sa.Column('supplier_part_number', sa.Text(), nullable=True),
        sa.Column('supplier_line_code', sa.Text(), nullable=True),
        sa.Column('method', sa.Text(), nullable=False),
        sa.Column('confidence', sa.Float(), nullable=True),
        sa.Column('decided_by', sa.Text(), nullable=True),
        sa.Column('decided_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    ]
    if with_reason:
        columns.append(sa.Column('reason', sa.Text(), nullable=True))
    op.create_table(
        name,
        *columns,
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['project_id'], ['project.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['match_candidate_id'], ['match_candidate.id'], ondelete='CASCADE'),
    )


def upgrade():
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(op.get_bind(), checkfirst=True)

    # One row per (store item, target); re-runs skip existing pairs
    op.create_table(
        'match_candidate',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('project_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('store_item_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('target_type', _enum('match_target_type'), nullable=False),
        sa.Column('target_id', sa.String(128), nullable=False),
        sa.Column('target_part_number', sa.Text(), nullable=True),
        sa.Column('method', _enum('match_method'), nullable=False),
        sa.Column('confidence', sa.Float(), server_default='0', nullable=False),
        sa.Column('status', _enum('match_status'), server_default='PENDING', nullable=False),
        sa.Column('matched_on', sa.Text(), nullable=True),
        sa.Column('features', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('vendor_action', _enum('vendor_action'), server_default='NONE', nullable=False),
        sa.Column('corrected_supplier_part_number', sa.Text(), nullable=True),
        sa.Column('review_source', _enum('review_source'), nullable=True),
        sa.Column('decided_by', sa.Text(), nullable=True),
        sa.Column('decided_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['project_id'], ['project.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['store_item_id'], ['store_item.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('project_id', 'store_item_id', 'target_type', 'target_id', name='uq_match_candidate_pair'),
    )
    op.create_index('ix_match_candidate_project_status', 'match_candidate', ['project_id', 'status'])
    op.create_index('ix_match_candidate_store_item', 'match_candidate', ['store_item_id'])

    _history_table('accepted_match_history', with_reason=False)
    op.create_index('ix_accepted_history_project', 'accepted_match_history', ['project_id'])
    _history_table('rejected_match_history', with_reason=True)
    op.create_index('ix_rejected_history_project', 'rejected_match_history', ['project_id'])

    op.create_table(
        'enrichment_data',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('match_candidate_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('field_name', sa.Text(), nullable=False),
        sa.Column('field_value', sa.Text(), nullable=False),
        sa.Column('confidence', sa.Float(), server_default='0', nullable=False),
        sa.Column('source', sa.Text(), server_default='AI', nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['match_candidate_id'], ['match_candidate.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_enrichment_data_candidate', 'enrichment_data', ['match_candidate_id'])

    op.create_table(
        'master_rule',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('rule_type', _enum('master_rule_type'), nullable=False),
        sa.Column('scope', _enum('master_rule_scope'), server_default='GLOBAL', nullable=False),
        sa.Column('project_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('store_part_number', sa.Text(), nullable=False),
        sa.Column('store_part_key', sa.Text(), nullable=False),
        sa.Column('supplier_part_number', sa.Text(), nullable=False),
        sa.Column('supplier_part_key', sa.Text(), nullable=False),
        sa.Column('line_code', sa.Text(), nullable=True),
        sa.Column('supplier_line_code', sa.Text(), nullable=True),
        sa.Column('natural_key', sa.Text(), nullable=False),
        sa.Column('confidence', sa.Float(), server_default='1.0', nullable=False),
        sa.Column('state', _enum('master_rule_state'), server_default='ENABLED', nullable=False),
        sa.Column('applied_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('last_applied_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('created_by', sa.Text(), nullable=True),
        sa.Column('created_from_candidate_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['project_id'], ['project.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_master_rule_natural_key', 'master_rule', ['rule_type', 'store_part_key', 'supplier_part_key'])
    op.create_index('ix_master_rule_state_scope', 'master_rule', ['state', 'scope', 'project_id'])
    op.create_index(
        'uq_master_rule_enabled_natural_key',
        'master_rule',
        ['natural_key'],
        unique=True,
        postgresql_where=sa.text("state = 'ENABLED'")
    )

    op.create_table(
        'project_match_rule',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('project_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('rule_type', _enum('suggested_rule_type'), nullable=False),
        sa.Column('status', _enum('suggested_rule_status'), server_default='SUGGESTED', nullable=False),
        sa.Column('pattern_key', sa.Text(), nullable=False),
        sa.Column('source_line_code', sa.Text(), nullable=True),
        sa.Column('mapped_manufacturer', sa.Text(), nullable=True),
        sa.Column('evidence_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('config', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('approved_by', sa.Text(), nullable=True),
        sa.Column('approved_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['project_id'], ['project.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_project_match_rule_project_status', 'project_match_rule', ['project_id', 'status'])

    op.create_table(
        'vendor_action_rule',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('project_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('supplier_line_code', sa.Text(), nullable=False),
        sa.Column('category_pattern', sa.Text(), server_default='*', nullable=False),
        sa.Column('subcategory_pattern', sa.Text(), server_default='*', nullable=False),
        sa.Column('action', _enum('vendor_action'), nullable=False),
        sa.Column('active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['project_id'], ['project.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_vendor_action_rule_line_code', 'vendor_action_rule', ['supplier_line_code', 'active'])

    op.create_table(
        'matching_job',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('project_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('job_type', _enum('matching_job_type'), nullable=False),
        sa.Column('status', _enum('matching_job_status'), server_default='pending', nullable=False),
        sa.Column('stage_index', sa.Integer(), server_default='0', nullable=False),
        sa.Column('current_stage_name', sa.Text(), nullable=True),
        sa.Column('cursor', sa.Text(), nullable=True),
        sa.Column('total_items', sa.Integer(), server_default='0', nullable=False),
        sa.Column('processed_items', sa.Integer(), server_default='0', nullable=False),
        sa.Column('matches_found', sa.Integer(), server_default='0', nullable=False),
        sa.Column('progress_percentage', sa.Float(), server_default='0', nullable=False),
        sa.Column('cost_spent_micros', sa.BigInteger(), server_default='0', nullable=False),
        sa.Column('config', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('cancellation_requested', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('lease_expires_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('lease_token', sa.Text(), nullable=True),
        sa.Column('failure_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Text(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('started_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('completed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['project_id'], ['project.id'], ondelete='CASCADE'),
    )
    # Scheduler tick: oldest active job per project
    op.create_index('ix_matching_job_status_created', 'matching_job', ['status', 'created_at'])
    op.create_index('ix_matching_job_project', 'matching_job', ['project_id'])

    op.create_table(
        'ai_call_log',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('project_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('job_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('store_item_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('call_type', sa.Text(), nullable=False),
        sa.Column('provider', sa.Text(), nullable=False),
        sa.Column('model', sa.Text(), nullable=False),
        sa.Column('input_hash', sa.Text(), nullable=True),
        sa.Column('prompt_tokens', sa.Integer(), nullable=True),
        sa.Column('completion_tokens', sa.Integer(), nullable=True),
        sa.Column('total_tokens', sa.Integer(), nullable=True),
        sa.Column('cost_micros', sa.BigInteger(), server_default='0', nullable=False),
        sa.Column('latency_ms', sa.Integer(), nullable=True),
        sa.Column('status', _enum('ai_call_status'), server_default='SUCCEEDED', nullable=False),
        sa.Column('error_json', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['project_id'], ['project.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['job_id'], ['matching_job.id'], ondelete='SET NULL'),
    )
    # Budget gate: sum(cost_micros) WHERE job_id=X
    op.create_index('ix_ai_call_log_job', 'ai_call_log', ['job_id'])
    op.create_index('ix_ai_call_log_project_created', 'ai_call_log', ['project_id', 'created_at'])
    op.create_index('ix_ai_call_log_input_hash', 'ai_call_log', ['input_hash'])


def downgrade():
    op.drop_table('ai_call_log')
    op.drop_table('matching_job')
    op.drop_table('vendor_action_rule')
    op.drop_table('project_match_rule')
    op.drop_table('master_rule')
    op.drop_table('enrichment_data')
    op.drop_table('rejected_match_history')
    op.drop_table('accepted_match_history')
    op.drop_table('match_candidate')

    for name in reversed(list(ENUMS)):
        postgresql.ENUM(name=name).drop(op.get_bind(), checkfirst=True)
