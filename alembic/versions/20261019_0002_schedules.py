"""schedules with series linkage

Revision ID: 20261019_0002
Revises: 20261019_0001
Create Date: 2026-10-19 00:02:00
"""

from alembic import op
import sqlalchemy as sa


revision = '20261019_0002'
down_revision = '20261019_0001'
branch_labels = None
depends_on = None


def _index_exists(inspector, table_name: str, index_name: str) -> bool:
    return any(idx.get('name') == index_name for idx in inspector.get_indexes(table_name))


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if 'schedules' not in set(inspector.get_table_names()):
        op.create_table(
            'schedules',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('organization_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
            sa.Column('student_id', sa.Integer(), sa.ForeignKey('profiles.id'), nullable=False),
            sa.Column('program_id', sa.Integer(), sa.ForeignKey('programs.id', ondelete='SET NULL'), nullable=True),
            sa.Column('start_time', sa.DateTime(), nullable=False),
            sa.Column('end_time', sa.DateTime(), nullable=False),
            sa.Column('rrule', sa.Text(), nullable=True),
            sa.Column('parent_schedule_id', sa.Integer(), sa.ForeignKey('schedules.id'), nullable=True),
            sa.Column('is_exception', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
            sa.CheckConstraint('end_time > start_time', name='ck_schedules_end_after_start'),
        )
        inspector = sa.inspect(bind)

    for name, columns in (
        ('ix_schedules_id', ['id']),
        ('ix_schedules_organization_id', ['organization_id']),
        ('ix_schedules_student_id', ['student_id']),
        ('ix_schedules_program_id', ['program_id']),
        ('ix_schedules_start_time', ['start_time']),
        ('ix_schedules_end_time', ['end_time']),
        ('ix_schedules_parent_schedule_id', ['parent_schedule_id']),
        ('ix_schedules_org_start', ['organization_id', 'start_time']),
        ('ix_schedules_student_start', ['student_id', 'start_time']),
    ):
        if not _index_exists(inspector, 'schedules', name):
            op.create_index(name, 'schedules', columns)


def downgrade() -> None:
    op.drop_table('schedules')
