"""initial availability schema

Revision ID: 20250301000000
Revises:
Create Date: 2025-03-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '20250301000000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'providers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('timezone', sa.String(length=64), nullable=False),
        sa.Column('skills', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='[]'),
        sa.Column('default_durations', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='{}'),
        sa.Column('default_slot_minutes', sa.Integer(), nullable=False, server_default='10'),
        sa.Column('buffer_before_minutes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('buffer_after_minutes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_providers_id'), 'providers', ['id'], unique=False)
    op.create_index('idx_providers_active_name', 'providers', ['is_active', 'name'], unique=False)

    op.create_table(
        'provider_schedules',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('provider_id', sa.Integer(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('effective_from', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('effective_to', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['provider_id'], ['providers.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_provider_schedules_id'), 'provider_schedules', ['id'], unique=False)
    op.create_index(
        'idx_provider_schedules_provider_effective',
        'provider_schedules',
        ['provider_id', 'effective_from', 'effective_to'],
        unique=False,
    )
    # One version number per provider
    op.create_unique_constraint(
        'uq_provider_schedules_provider_version', 'provider_schedules', ['provider_id', 'version']
    )

    op.create_table(
        'schedule_blocks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('schedule_id', sa.Integer(), nullable=False),
        sa.Column('day_of_week', sa.Integer(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('ends_next_day', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('is_break', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('chair', sa.String(length=255), nullable=True),
        sa.CheckConstraint('day_of_week >= 0 AND day_of_week <= 6', name='check_valid_day_of_week'),
        sa.ForeignKeyConstraint(['schedule_id'], ['provider_schedules.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_schedule_blocks_id'), 'schedule_blocks', ['id'], unique=False)
    op.create_index('idx_schedule_blocks_schedule_day', 'schedule_blocks', ['schedule_id', 'day_of_week'], unique=False)

    op.create_table(
        'provider_exceptions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('provider_id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=32), nullable=False),
        sa.Column('start_utc', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('end_utc', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('reason', sa.String(length=500), nullable=True),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('chair', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.CheckConstraint(
            "kind IN ('PTO', 'Sick', 'Course', 'PublicHoliday', 'Block')",
            name='check_valid_exception_kind',
        ),
        sa.CheckConstraint('start_utc < end_utc', name='check_exception_time_range'),
        sa.ForeignKeyConstraint(['provider_id'], ['providers.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_provider_exceptions_id'), 'provider_exceptions', ['id'], unique=False)
    op.create_index(
        'idx_provider_exceptions_provider_start', 'provider_exceptions', ['provider_id', 'start_utc'], unique=False
    )

    op.create_table(
        'booking_assignments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('provider_id', sa.Integer(), nullable=False),
        sa.Column('appointment_id', sa.String(length=64), nullable=False),
        sa.Column('slot_id', sa.String(length=64), nullable=True),
        sa.Column('start_utc', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('end_utc', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('context', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.CheckConstraint('start_utc < end_utc', name='check_assignment_time_range'),
        sa.ForeignKeyConstraint(['provider_id'], ['providers.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_booking_assignments_id'), 'booking_assignments', ['id'], unique=False)
    op.create_index(
        'idx_booking_assignments_provider_start', 'booking_assignments', ['provider_id', 'start_utc'], unique=False
    )
    op.create_index(
        'idx_booking_assignments_appointment', 'booking_assignments', ['appointment_id', 'start_utc'], unique=False
    )

    # Last line of defence against double booking: no two assignments of the
    # same provider may overlap, whatever path wrote them.
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
    op.execute("""
        ALTER TABLE booking_assignments
        ADD CONSTRAINT excl_booking_assignments_no_overlap
        EXCLUDE USING gist (provider_id WITH =, tstzrange(start_utc, end_utc, '[)') WITH &&)
    """)


def downgrade() -> None:
    op.execute("ALTER TABLE booking_assignments DROP CONSTRAINT IF EXISTS excl_booking_assignments_no_overlap")
    op.drop_index('idx_booking_assignments_appointment', table_name='booking_assignments')
    op.drop_index('idx_booking_assignments_provider_start', table_name='booking_assignments')
    op.drop_index(op.f('ix_booking_assignments_id'), table_name='booking_assignments')
    op.drop_table('booking_assignments')

    op.drop_index('idx_provider_exceptions_provider_start', table_name='provider_exceptions')
    op.drop_index(op.f('ix_provider_exceptions_id'), table_name='provider_exceptions')
    op.drop_table('provider_exceptions')

    op.drop_index('idx_schedule_blocks_schedule_day', table_name='schedule_blocks')
    op.drop_index(op.f('ix_schedule_blocks_id'), table_name='schedule_blocks')
    op.drop_table('schedule_blocks')

    op.drop_constraint('uq_provider_schedules_provider_version', 'provider_schedules', type_='unique')
    op.drop_index('idx_provider_schedules_provider_effective', table_name='provider_schedules')
    op.drop_index(op.f('ix_provider_schedules_id'), table_name='provider_schedules')
    op.drop_table('provider_schedules')

    op.drop_index('idx_providers_active_name', table_name='providers')
    op.drop_index(op.f('ix_providers_id'), table_name='providers')
    op.drop_table('providers')
