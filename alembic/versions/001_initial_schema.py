"""Initial database schema

Revision ID: 001
Revises:
Create Date: 2026-10-18

Creates the initial database tables:
- archives: archive records (skeletons from PDF ingestion, enriched by CSV)
- import_jobs: per-file and per-CSV-batch progress tracking
- operation_logs: audit trail
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create archives table
    op.create_table(
        'archives',
        sa.Column('id', sa.String(32), nullable=False),
        sa.Column('archive_no', sa.String(255), nullable=False),
        sa.Column('fonds_no', sa.String(100), server_default='', nullable=False),
        sa.Column('retention_period', sa.String(50), server_default='', nullable=False),
        sa.Column('retention_code', sa.String(50), server_default='', nullable=False),
        sa.Column('year', sa.String(20), server_default='', nullable=False),
        sa.Column('dept_code', sa.String(100), server_default='', nullable=False),
        sa.Column('box_no', sa.String(50), server_default='', nullable=False),
        sa.Column('piece_no', sa.String(50), server_default='', nullable=False),
        sa.Column('title', sa.Text(), server_default='', nullable=False),
        sa.Column('dept_issue', sa.String(255), server_default='', nullable=False),
        sa.Column('responsible', sa.String(255), server_default='', nullable=False),
        sa.Column('doc_no', sa.String(255), server_default='', nullable=False),
        sa.Column('date', sa.String(50), server_default='', nullable=False),
        sa.Column('page_no', sa.String(50), server_default='', nullable=False),
        sa.Column('remark', sa.Text(), nullable=True),
        sa.Column('file_url', sa.String(500), nullable=False),
        sa.Column('import_job_id', sa.String(32), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_archives_archive_no', 'archives', ['archive_no'], unique=True)
    op.create_index('ix_archives_year', 'archives', ['year'])
    op.create_index('ix_archives_import_job_id', 'archives', ['import_job_id'])
    op.create_index('ix_archives_created_at', 'archives', ['created_at'])

    # Create import_jobs table
    op.create_table(
        'import_jobs',
        sa.Column('id', sa.String(32), nullable=False),
        sa.Column('job_type', sa.String(10), server_default='pdf', nullable=False),
        sa.Column('file_name', sa.String(255), nullable=True),
        sa.Column('operator', sa.String(100), nullable=False),
        sa.Column('status', sa.String(20), server_default='pending', nullable=False),
        sa.Column('total', sa.Integer(), server_default='0', nullable=False),
        sa.Column('processed', sa.Integer(), server_default='0', nullable=False),
        sa.Column('failed', sa.Integer(), server_default='0', nullable=False),
        sa.Column('skipped', sa.Integer(), server_default='0', nullable=False),
        sa.Column('errors', sa.JSON(), nullable=True),
        sa.Column('archive_id', sa.String(32), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed', 'skipped', 'cancelled')",
            name='check_import_status'
        ),
        sa.CheckConstraint('processed <= total', name='check_processed_le_total'),
        sa.CheckConstraint('failed + skipped <= processed', name='check_failed_skipped_le_processed'),
    )
    op.create_index('ix_import_jobs_operator', 'import_jobs', ['operator'])
    op.create_index('ix_import_jobs_status', 'import_jobs', ['status'])
    op.create_index('ix_import_jobs_created_at', 'import_jobs', ['created_at'])

    # Create operation_logs table
    op.create_table(
        'operation_logs',
        sa.Column('id', sa.String(32), nullable=False),
        sa.Column('operator', sa.String(100), nullable=False),
        sa.Column('operation', sa.String(50), nullable=False),
        sa.Column('target', sa.Text(), nullable=False),
        sa.Column('ip', sa.String(64), server_default='', nullable=False),
        sa.Column('archive_id', sa.String(32), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_operation_logs_operator', 'operation_logs', ['operator'])
    op.create_index('ix_operation_logs_operation', 'operation_logs', ['operation'])
    op.create_index('ix_operation_logs_created_at', 'operation_logs', ['created_at'])


def downgrade() -> None:
    op.drop_table('operation_logs')
    op.drop_table('import_jobs')
    op.drop_table('archives')
