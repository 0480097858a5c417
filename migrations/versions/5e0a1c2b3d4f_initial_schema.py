"""initial schema: packages, definitions, sessions and imported configuration

Revision ID: 5e0a1c2b3d4f
Revises:
Create Date: 2026-10-18
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5e0a1c2b3d4f'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _package_ref() -> sa.Column:
    return sa.Column('package_ref', sa.Integer(), sa.ForeignKey('packages.id', ondelete='CASCADE'), nullable=False)


def upgrade() -> None:
    op.create_table(
        'packages',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('path', sa.String(length=1024), nullable=False),
        sa.Column('type', sa.String(length=64), nullable=False),
        sa.Column('version', sa.String(length=64), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_packages_path'), 'packages', ['path'])
    op.create_index(op.f('ix_packages_type'), 'packages', ['type'])
    op.create_index('ix_packages_path_type_version', 'packages', ['path', 'type', 'version'])

    op.create_table(
        'clusters',
        sa.Column('id', sa.Integer(), nullable=False),
        _package_ref(),
        sa.Column('code', sa.Integer(), nullable=False),
        sa.Column('manufacturer_code', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_clusters_package_ref'), 'clusters', ['package_ref'])
    op.create_index('ix_clusters_package_code', 'clusters', ['package_ref', 'code'])

    op.create_table(
        'attributes',
        sa.Column('id', sa.Integer(), nullable=False),
        _package_ref(),
        sa.Column('cluster_ref', sa.Integer(), sa.ForeignKey('clusters.id', ondelete='CASCADE'), nullable=True),
        sa.Column('code', sa.Integer(), nullable=False),
        sa.Column('manufacturer_code', sa.Integer(), nullable=True),
        sa.Column('side', sa.String(length=16), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_attributes_package_ref'), 'attributes', ['package_ref'])
    op.create_index(op.f('ix_attributes_cluster_ref'), 'attributes', ['cluster_ref'])

    op.create_table(
        'commands',
        sa.Column('id', sa.Integer(), nullable=False),
        _package_ref(),
        sa.Column('cluster_ref', sa.Integer(), sa.ForeignKey('clusters.id', ondelete='CASCADE'), nullable=True),
        sa.Column('code', sa.Integer(), nullable=False),
        sa.Column('manufacturer_code', sa.Integer(), nullable=True),
        sa.Column('source', sa.String(length=16), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_commands_package_ref'), 'commands', ['package_ref'])
    op.create_index(op.f('ix_commands_cluster_ref'), 'commands', ['cluster_ref'])

    op.create_table(
        'atomics',
        sa.Column('id', sa.Integer(), nullable=False),
        _package_ref(),
        sa.Column('atomic_identifier', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('description', sa.String(length=200), nullable=True),
        sa.Column('atomic_size', sa.Integer(), nullable=True),
        sa.Column('is_discrete', sa.Boolean(), nullable=False),
        sa.Column('is_string', sa.Boolean(), nullable=False),
        sa.Column('is_long', sa.Boolean(), nullable=False),
        sa.Column('is_char', sa.Boolean(), nullable=False),
        sa.Column('is_signed', sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_atomics_package_ref'), 'atomics', ['package_ref'])
    op.create_index('ix_atomics_package_identifier', 'atomics', ['package_ref', 'atomic_identifier'])

    op.create_table(
        'sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_key', sa.String(length=36), nullable=False),
        sa.Column('dirty', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('session_key'),
    )

    op.create_table(
        'session_key_values',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_ref', sa.Integer(), sa.ForeignKey('sessions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('key', sa.String(length=200), nullable=False),
        sa.Column('value', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('session_ref', 'key', name='ux_session_key_values_key'),
    )
    op.create_index(op.f('ix_session_key_values_session_ref'), 'session_key_values', ['session_ref'])

    op.create_table(
        'session_packages',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_ref', sa.Integer(), sa.ForeignKey('sessions.id', ondelete='CASCADE'), nullable=False),
        _package_ref(),
        sa.Column('required', sa.Boolean(), nullable=False),
        sa.Column('enabled', sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('session_ref', 'package_ref', name='ux_session_packages_pair'),
    )
    op.create_index(op.f('ix_session_packages_session_ref'), 'session_packages', ['session_ref'])

    op.create_table(
        'endpoint_types',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_ref', sa.Integer(), sa.ForeignKey('sessions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('package_ref', sa.Integer(), sa.ForeignKey('packages.id', ondelete='SET NULL'), nullable=True),
        sa.Column('name', sa.String(length=200), nullable=True),
        sa.Column('device_type_name', sa.String(length=200), nullable=True),
        sa.Column('device_type_code', sa.Integer(), nullable=True),
        sa.Column('device_type_profile_id', sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_endpoint_types_session_ref'), 'endpoint_types', ['session_ref'])

    op.create_table(
        'endpoints',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_ref', sa.Integer(), sa.ForeignKey('sessions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('endpoint_type_ref', sa.Integer(), sa.ForeignKey('endpoint_types.id', ondelete='CASCADE'), nullable=False),
        sa.Column('endpoint_identifier', sa.Integer(), nullable=True),
        sa.Column('profile_id', sa.Integer(), nullable=True),
        sa.Column('network_identifier', sa.Integer(), nullable=True),
        sa.Column('endpoint_version', sa.Integer(), nullable=True),
        sa.Column('device_identifier', sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_endpoints_session_ref'), 'endpoints', ['session_ref'])
    op.create_index(op.f('ix_endpoints_endpoint_type_ref'), 'endpoints', ['endpoint_type_ref'])

    op.create_table(
        'endpoint_type_clusters',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('endpoint_type_ref', sa.Integer(), sa.ForeignKey('endpoint_types.id', ondelete='CASCADE'), nullable=False),
        sa.Column('cluster_ref', sa.Integer(), sa.ForeignKey('clusters.id', ondelete='SET NULL'), nullable=True),
        sa.Column('code', sa.Integer(), nullable=False),
        sa.Column('manufacturer_code', sa.Integer(), nullable=True),
        sa.Column('side', sa.String(length=16), nullable=True),
        sa.Column('enabled', sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_endpoint_type_clusters_endpoint_type_ref'), 'endpoint_type_clusters', ['endpoint_type_ref'])

    op.create_table(
        'endpoint_type_attributes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('endpoint_type_ref', sa.Integer(), sa.ForeignKey('endpoint_types.id', ondelete='CASCADE'), nullable=False),
        sa.Column('endpoint_type_cluster_ref', sa.Integer(), sa.ForeignKey('endpoint_type_clusters.id', ondelete='CASCADE'), nullable=False),
        sa.Column('attribute_ref', sa.Integer(), sa.ForeignKey('attributes.id', ondelete='SET NULL'), nullable=True),
        sa.Column('code', sa.Integer(), nullable=False),
        sa.Column('manufacturer_code', sa.Integer(), nullable=True),
        sa.Column('included', sa.Boolean(), nullable=False),
        sa.Column('storage_option', sa.String(length=32), nullable=True),
        sa.Column('singleton', sa.Boolean(), nullable=False),
        sa.Column('bounded', sa.Boolean(), nullable=False),
        sa.Column('default_value', sa.String(length=200), nullable=True),
        sa.Column('include_reportable', sa.Boolean(), nullable=False),
        sa.Column('min_interval', sa.Integer(), nullable=True),
        sa.Column('max_interval', sa.Integer(), nullable=True),
        sa.Column('reportable_change', sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_endpoint_type_attributes_endpoint_type_ref'), 'endpoint_type_attributes', ['endpoint_type_ref'])
    op.create_index(op.f('ix_endpoint_type_attributes_endpoint_type_cluster_ref'), 'endpoint_type_attributes', ['endpoint_type_cluster_ref'])

    op.create_table(
        'endpoint_type_commands',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('endpoint_type_ref', sa.Integer(), sa.ForeignKey('endpoint_types.id', ondelete='CASCADE'), nullable=False),
        sa.Column('endpoint_type_cluster_ref', sa.Integer(), sa.ForeignKey('endpoint_type_clusters.id', ondelete='CASCADE'), nullable=False),
        sa.Column('command_ref', sa.Integer(), sa.ForeignKey('commands.id', ondelete='SET NULL'), nullable=True),
        sa.Column('code', sa.Integer(), nullable=False),
        sa.Column('manufacturer_code', sa.Integer(), nullable=True),
        sa.Column('source', sa.String(length=16), nullable=True),
        sa.Column('incoming', sa.Boolean(), nullable=False),
        sa.Column('outgoing', sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_endpoint_type_commands_endpoint_type_ref'), 'endpoint_type_commands', ['endpoint_type_ref'])
    op.create_index(op.f('ix_endpoint_type_commands_endpoint_type_cluster_ref'), 'endpoint_type_commands', ['endpoint_type_cluster_ref'])


def downgrade() -> None:
    for table in (
        'endpoint_type_commands',
        'endpoint_type_attributes',
        'endpoint_type_clusters',
        'endpoints',
        'endpoint_types',
        'session_packages',
        'session_key_values',
        'sessions',
        'atomics',
        'commands',
        'attributes',
        'clusters',
        'packages',
    ):
        op.drop_table(table)
