"""organizations, profiles, programs and organization settings

Revision ID: 20261019_0001
Revises: 
Create Date: 2026-10-19 00:01:00
"""

from alembic import op
import sqlalchemy as sa


revision = '20261019_0001'
down_revision = None
branch_labels = None
depends_on = None


def _table_exists(inspector, table_name: str) -> bool:
    return table_name in set(inspector.get_table_names())


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not _table_exists(inspector, 'organizations'):
        op.create_table(
            'organizations',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('name', sa.String(length=180), nullable=False, server_default='default-organization'),
            sa.Column('slug', sa.String(length=120), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.UniqueConstraint('slug', name='uq_organizations_slug'),
        )
        op.create_index('ix_organizations_id', 'organizations', ['id'])
        op.create_index('ix_organizations_slug', 'organizations', ['slug'], unique=True)
        op.create_index('ix_organizations_created_at', 'organizations', ['created_at'])

    if not _table_exists(inspector, 'profiles'):
        op.create_table(
            'profiles',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('organization_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
            sa.Column('name', sa.String(length=120), nullable=False),
            sa.Column('role', sa.String(length=20), nullable=False, server_default='student'),
            sa.Column('phone', sa.String(length=32), nullable=False, server_default=''),
            sa.Column('color', sa.String(length=16), nullable=False, server_default='#2f7bf6'),
            sa.Column('class_start_date', sa.Date(), nullable=True),
            sa.Column('class_end_date', sa.Date(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
        )
        op.create_index('ix_profiles_id', 'profiles', ['id'])
        op.create_index('ix_profiles_organization_id', 'profiles', ['organization_id'])
        op.create_index('ix_profiles_role', 'profiles', ['role'])
        op.create_index('ix_profiles_created_at', 'profiles', ['created_at'])

    if not _table_exists(inspector, 'programs'):
        op.create_table(
            'programs',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('organization_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
            sa.Column('title', sa.String(length=160), nullable=False),
            sa.Column('description', sa.Text(), nullable=False, server_default=''),
            sa.Column('created_at', sa.DateTime(), nullable=False),
        )
        op.create_index('ix_programs_id', 'programs', ['id'])
        op.create_index('ix_programs_organization_id', 'programs', ['organization_id'])
        op.create_index('ix_programs_title', 'programs', ['title'])
        op.create_index('ix_programs_created_at', 'programs', ['created_at'])

    if not _table_exists(inspector, 'organization_settings'):
        op.create_table(
            'organization_settings',
            sa.Column('organization_id', sa.Integer(), sa.ForeignKey('organizations.id'), primary_key=True),
            sa.Column('setting_key', sa.String(length=60), primary_key=True),
            sa.Column('setting_value', sa.Text(), nullable=False, server_default='{}'),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
        )


def downgrade() -> None:
    op.drop_table('organization_settings')
    op.drop_table('programs')
    op.drop_table('profiles')
    op.drop_table('organizations')
