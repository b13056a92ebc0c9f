"""Create project, catalog and interchange tables

Revision ID: 001
Revises:
Create Date: 2026-10-01 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'project',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('enable_rule_based_fuzzy_boosts', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('enable_punctuation_equivalence', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('fuzzy_hard_reject_enabled', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('created_by', sa.Text(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    # Store inventory: always project-scoped
    op.create_table(
        'store_item',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('project_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('part_number', sa.Text(), nullable=False),
        sa.Column('canonical_part_number', sa.Text(), nullable=False),
        sa.Column('line_code', sa.Text(), nullable=True),
        sa.Column('manufacturer_part', sa.Text(), nullable=True),
        sa.Column('manufacturer_part_canonical', sa.Text(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.Text(), nullable=True),
        sa.Column('subcategory', sa.Text(), nullable=True),
        sa.Column('cost', sa.Numeric(12, 4), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['project_id'], ['project.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_store_item_project', 'store_item', ['project_id'])
    op.create_index('ix_store_item_project_canonical', 'store_item', ['project_id', 'canonical_part_number'])
    op.create_index('ix_store_item_project_mfr', 'store_item', ['project_id', 'manufacturer_part_canonical'])

    # Supplier catalog: project_id NULL means the shared global catalog
    op.create_table(
        'supplier_item',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('project_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('part_number', sa.Text(), nullable=False),
        sa.Column('canonical_part_number', sa.Text(), nullable=False),
        sa.Column('line_code', sa.Text(), nullable=True),
        sa.Column('manufacturer_part', sa.Text(), nullable=True),
        sa.Column('manufacturer_part_canonical', sa.Text(), nullable=True),
        sa.Column('brand', sa.Text(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.Text(), nullable=True),
        sa.Column('subcategory', sa.Text(), nullable=True),
        sa.Column('cost', sa.Numeric(12, 4), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['project_id'], ['project.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_supplier_item_canonical', 'supplier_item', ['canonical_part_number'])
    op.create_index('ix_supplier_item_mfr', 'supplier_item', ['manufacturer_part_canonical'])
    op.create_index('ix_supplier_item_project', 'supplier_item', ['project_id'])

    op.create_table(
        'interchange',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('project_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('theirs_part_number', sa.Text(), nullable=False),
        sa.Column('theirs_canonical', sa.Text(), nullable=False),
        sa.Column('theirs_line_code', sa.Text(), nullable=True),
        sa.Column('ours_part_number', sa.Text(), nullable=False),
        sa.Column('ours_canonical', sa.Text(), nullable=False),
        sa.Column('ours_line_code', sa.Text(), nullable=True),
        sa.Column('source', sa.Text(), server_default='import', nullable=False),
        sa.Column('confidence', sa.Numeric(5, 4), server_default='1.0', nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['project_id'], ['project.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_interchange_theirs', 'interchange', ['theirs_canonical'])
    op.create_index('ix_interchange_ours', 'interchange', ['ours_canonical'])

    op.create_table(
        'line_code_alias',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('project_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('line_code', sa.Text(), nullable=False),
        sa.Column('brand', sa.Text(), nullable=False),
        sa.Column('priority', sa.Integer(), server_default='0', nullable=False),
        sa.Column('active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['project_id'], ['project.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_line_code_alias_project', 'line_code_alias', ['project_id', 'active'])


def downgrade():
    op.drop_table('line_code_alias')
    op.drop_table('interchange')
    op.drop_table('supplier_item')
    op.drop_table('store_item')
    op.drop_table('project')
