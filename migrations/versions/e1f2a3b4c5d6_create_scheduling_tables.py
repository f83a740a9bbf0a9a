"""create scheduling tables

Revision ID: e1f2a3b4c5d6
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'e1f2a3b4c5d6'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'machines',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('machine_number', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('is_available', sa.Boolean(), nullable=False),
        sa.Column('lock_version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('machine_number'),
    )
    op.create_table(
        'trainers',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('full_name', sa.String(length=120), nullable=False),
        sa.Column('max_clients_per_session', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('lock_version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_table(
        'members',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('full_name', sa.String(length=120), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('lock_version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_members_email', 'members', ['email'], unique=False)

    op.create_table(
        'studio_settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('max_sessions_per_week', sa.Integer(), nullable=True),
        sa.Column('max_member_sessions_per_week', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('effective_from', sa.DateTime(timezone=True), nullable=False),
        sa.Column('lock_version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('version'),
    )
    op.create_index('ix_studio_settings_effective_from', 'studio_settings', ['effective_from'], unique=False)

    op.create_table(
        'training_sessions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('machine_id', sa.String(length=36), nullable=False),
        sa.Column('trainer_id', sa.String(length=36), nullable=True),
        sa.Column('scheduled_start', sa.DateTime(timezone=True), nullable=False),
        sa.Column('scheduled_end', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('session_type', sa.String(length=20), nullable=False),
        sa.Column('location', sa.String(length=160), nullable=False),
        sa.Column('max_participants', sa.Integer(), nullable=False),
        sa.Column('current_participants', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('scheduled_end > scheduled_start', name='ck_session_interval_positive'),
        sa.ForeignKeyConstraint(['machine_id'], ['machines.id']),
        sa.ForeignKeyConstraint(['trainer_id'], ['trainers.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_training_sessions_machine_id', 'training_sessions', ['machine_id'], unique=False)
    op.create_index('ix_training_sessions_trainer_id', 'training_sessions', ['trainer_id'], unique=False)
    op.create_index('ix_training_sessions_scheduled_start', 'training_sessions', ['scheduled_start'], unique=False)
    op.create_index(
        'ix_sessions_machine_window',
        'training_sessions',
        ['machine_id', 'scheduled_start', 'scheduled_end'],
        unique=False,
    )

    op.create_table(
        'training_session_members',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('session_id', sa.String(length=36), nullable=False),
        sa.Column('member_id', sa.String(length=36), nullable=False),
        sa.Column('booking_status', sa.String(length=20), nullable=False),
        sa.Column('booked_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancel_reason', sa.String(length=120), nullable=True),
        sa.ForeignKeyConstraint(['session_id'], ['training_sessions.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['member_id'], ['members.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('session_id', 'member_id', name='uq_session_member_once'),
    )
    op.create_index('ix_training_session_members_session_id', 'training_session_members', ['session_id'], unique=False)
    op.create_index('ix_training_session_members_member_id', 'training_session_members', ['member_id'], unique=False)

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=80), nullable=False),
        sa.Column('entity', sa.String(length=80), nullable=True),
        sa.Column('entity_id', sa.String(length=80), nullable=True),
        sa.Column('ip', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('metadata_json', sa.Text(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    # Postgres only: non-cancelled sessions on one machine may not overlap
    if op.get_bind().dialect.name == 'postgresql':
        op.execute('CREATE EXTENSION IF NOT EXISTS btree_gist')
        op.execute(
            "ALTER TABLE training_sessions ADD CONSTRAINT ex_training_sessions_machine_overlap "
            "EXCLUDE USING gist (machine_id WITH =, "
            "tstzrange(scheduled_start, scheduled_end, '[)') WITH &&) "
            "WHERE (status <> 'cancelled')"
        )


def downgrade():
    if op.get_bind().dialect.name == 'postgresql':
        op.execute('ALTER TABLE training_sessions DROP CONSTRAINT IF EXISTS ex_training_sessions_machine_overlap')

    op.drop_table('audit_logs')
    op.drop_index('ix_training_session_members_member_id', table_name='training_session_members')
    op.drop_index('ix_training_session_members_session_id', table_name='training_session_members')
    op.drop_table('training_session_members')
    op.drop_index('ix_sessions_machine_window', table_name='training_sessions')
    op.drop_index('ix_training_sessions_scheduled_start', table_name='training_sessions')
    op.drop_index('ix_training_sessions_trainer_id', table_name='training_sessions')
    op.drop_index('ix_training_sessions_machine_id', table_name='training_sessions')
    op.drop_table('training_sessions')
    op.drop_index('ix_studio_settings_effective_from', table_name='studio_settings')
    op.drop_table('studio_settings')
    op.drop_table('members')
    op.drop_table('trainers')
    op.drop_table('machines')
