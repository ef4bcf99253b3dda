"""Initial schema

Revision ID: 001
Revises: 
Create Date: 2025-01-15 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create inspections table
    op.create_table(
        'inspections',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('stream_sid', sa.String(), nullable=False),
        sa.Column('phone_number', sa.String(), nullable=True),
        sa.Column('call_started_at', sa.DateTime(), nullable=False),
        sa.Column('call_ended_at', sa.DateTime(), nullable=True),
        sa.Column('call_duration_seconds', sa.Integer(), nullable=True),
        sa.Column('equipment_id', sa.String(), nullable=True),
        sa.Column('inspector_name', sa.String(), nullable=True),
        sa.Column('location', sa.String(), nullable=True),
        sa.Column('inspection_result', sa.String(), nullable=True),
        sa.Column('comments', sa.Text(), nullable=True),
        sa.Column('submitted_at', sa.DateTime(), nullable=True),
        sa.Column('status', sa.String(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_inspections_id'), 'inspections', ['id'], unique=False)
    op.create_index(op.f('ix_inspections_stream_sid'), 'inspections', ['stream_sid'], unique=True)
    op.create_index(op.f('ix_inspections_phone_number'), 'inspections', ['phone_number'], unique=False)
    op.create_index(op.f('ix_inspections_call_started_at'), 'inspections', ['call_started_at'], unique=False)
    op.create_index(op.f('ix_inspections_equipment_id'), 'inspections', ['equipment_id'], unique=False)
    op.create_index(op.f('ix_inspections_inspector_name'), 'inspections', ['inspector_name'], unique=False)
    op.create_index(op.f('ix_inspections_location'), 'inspections', ['location'], unique=False)
    op.create_index(op.f('ix_inspections_inspection_result'), 'inspections', ['inspection_result'], unique=False)

    # Create callers table
    op.create_table(
        'callers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('phone_number', sa.String(), nullable=False),
        sa.Column('caller_name', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_callers_id'), 'callers', ['id'], unique=False)
    op.create_index(op.f('ix_callers_phone_number'), 'callers', ['phone_number'], unique=True)


def downgrade() -> None:
    op.drop_table('callers')
    op.drop_table('inspections')
