"""Initial schema - payment order workflow

Revision ID: 001
Revises:
Create Date: 2026-10-19

WHY: Creates the tenant tables (users, organizations, memberships), the
submission profiles and tags, and the order workflow tables (orders,
documents, history, outbox events).
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


PAYMENT_ORDER_STATUSES = (
    "CREATED",
    "IN_REVIEW",
    "NEEDS_SUPPORT",
    "APPROVED",
    "PAID",
    "RECONCILED",
    "REJECTED",
    "CANCELLED",
)

HISTORY_ACTIONS = (
    "CREATED",
    "STATUS_CHANGED",
    "DOCUMENT_ADDED",
    "DOCUMENT_REMOVED",
    "UPDATED",
    "COMMENT_ADDED",
)


def upgrade() -> None:
    """
    Create all workflow tables.

    WHY: Enum columns reuse one named type per enum so PostgreSQL creates
    each type once; order and history share paymentorderstatus.
    """
    membership_role = sa.Enum("owner", "admin", "member", name="membershiprole")
    order_status = sa.Enum(*PAYMENT_ORDER_STATUSES, name="paymentorderstatus")
    history_action = sa.Enum(*HISTORY_ACTIONS, name="historyaction")
    event_type = sa.Enum(
        "ORDER_CREATED", "STATUS_CHANGED", "DOCUMENT_ADDED", name="ordereventtype"
    )
    event_status = sa.Enum("pending", "delivered", "failed", name="ordereventstatus")

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('avatar_url', sa.String(length=1024), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'organizations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('slug', sa.String(length=255), nullable=False),
        sa.Column('owner_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_organizations_id', 'organizations', ['id'])
    op.create_index('ix_organizations_name', 'organizations', ['name'])
    op.create_index('ix_organizations_slug', 'organizations', ['slug'], unique=True)
    op.create_index('ix_organizations_owner_id', 'organizations', ['owner_id'])

    op.create_table(
        'organization_memberships',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column(
            'organization_id',
            sa.Integer(),
            sa.ForeignKey('organizations.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column(
            'user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False
        ),
        sa.Column('role', membership_role, nullable=False),
        sa.Column(
            'invited_by_id',
            sa.Integer(),
            sa.ForeignKey('users.id', ondelete='SET NULL'),
            nullable=True,
        ),
        sa.Column('joined_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('organization_id', 'user_id', name='uq_membership_org_user'),
    )
    op.create_index('ix_organization_memberships_id', 'organization_memberships', ['id'])
    op.create_index(
        'ix_organization_memberships_organization_id',
        'organization_memberships',
        ['organization_id'],
    )
    op.create_index(
        'ix_organization_memberships_user_id', 'organization_memberships', ['user_id']
    )

    op.create_table(
        'payment_order_profiles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column(
            'organization_id',
            sa.Integer(),
            sa.ForeignKey('organizations.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('owner_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('slug', sa.String(length=255), nullable=False),
        sa.Column('allowed_emails', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('organization_id', 'slug', name='uq_profile_org_slug'),
    )
    op.create_index('ix_payment_order_profiles_id', 'payment_order_profiles', ['id'])
    op.create_index(
        'ix_payment_order_profiles_organization_id',
        'payment_order_profiles',
        ['organization_id'],
    )
    op.create_index('ix_payment_order_profiles_owner_id', 'payment_order_profiles', ['owner_id'])

    op.create_table(
        'tags',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column(
            'profile_id',
            sa.Integer(),
            sa.ForeignKey('payment_order_profiles.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('color', sa.String(length=7), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('file_requirements', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('profile_id', 'name', name='uq_tag_profile_name'),
    )
    op.create_index('ix_tags_id', 'tags', ['id'])
    op.create_index('ix_tags_profile_id', 'tags', ['profile_id'])

    op.create_table(
        'payment_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column(
            'profile_id',
            sa.Integer(),
            sa.ForeignKey('payment_order_profiles.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('created_by_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('status', order_status, nullable=False),
        sa.Column(
            'tag_id', sa.Integer(), sa.ForeignKey('tags.id', ondelete='SET NULL'), nullable=True
        ),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('amount > 0', name='ck_payment_orders_amount_positive'),
    )
    op.create_index('ix_payment_orders_profile_id', 'payment_orders', ['profile_id'])
    op.create_index('ix_payment_orders_created_by_id', 'payment_orders', ['created_by_id'])
    op.create_index('ix_payment_orders_status', 'payment_orders', ['status'])
    op.create_index('ix_payment_orders_tag_id', 'payment_orders', ['tag_id'])
    op.create_index(
        'ix_payment_orders_profile_status', 'payment_orders', ['profile_id', 'status']
    )

    op.create_table(
        'payment_order_documents',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column(
            'payment_order_id',
            sa.Integer(),
            sa.ForeignKey('payment_orders.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('uploaded_by_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('requirement_label', sa.String(length=255), nullable=False),
        sa.Column('file_name', sa.String(length=500), nullable=False),
        sa.Column('file_key', sa.String(length=1024), nullable=False),
        sa.Column('file_url', sa.String(length=2048), nullable=False),
        sa.Column('mime_type', sa.String(length=255), nullable=False),
        sa.Column('file_size', sa.BigInteger(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'payment_order_id', 'requirement_label', name='uq_document_order_label'
        ),
    )
    op.create_index(
        'ix_payment_order_documents_payment_order_id',
        'payment_order_documents',
        ['payment_order_id'],
    )
    op.create_index(
        'ix_payment_order_documents_uploaded_by_id',
        'payment_order_documents',
        ['uploaded_by_id'],
    )

    op.create_table(
        'payment_order_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column(
            'payment_order_id',
            sa.Integer(),
            sa.ForeignKey('payment_orders.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column(
            'user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=True
        ),
        sa.Column('is_system_actor', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('action', history_action, nullable=False),
        sa.Column('previous_status', order_status, nullable=True),
        sa.Column('new_status', order_status, nullable=True),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('extra_data', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_payment_order_history_payment_order_id',
        'payment_order_history',
        ['payment_order_id'],
    )
    op.create_index('ix_payment_order_history_user_id', 'payment_order_history', ['user_id'])
    op.create_index('ix_payment_order_history_action', 'payment_order_history', ['action'])
    op.create_index(
        'ix_payment_order_history_created_at', 'payment_order_history', ['created_at']
    )

    op.create_table(
        'order_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column(
            'payment_order_id',
            sa.Integer(),
            sa.ForeignKey('payment_orders.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('event_type', event_type, nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('status', event_status, nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('delivered_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_order_events_payment_order_id', 'order_events', ['payment_order_id'])
    op.create_index('ix_order_events_status_created', 'order_events', ['status', 'created_at'])


def downgrade() -> None:
    """
    Drop all workflow tables and their enum types.

    WARNING: This will delete all order data.
    """
    op.drop_table('order_events')
    op.drop_table('payment_order_history')
    op.drop_table('payment_order_documents')
    op.drop_table('payment_orders')
    op.drop_table('tags')
    op.drop_table('payment_order_profiles')
    op.drop_table('organization_memberships')
    op.drop_table('organizations')
    op.drop_table('users')

    bind = op.get_bind()
    for enum_name in (
        'ordereventstatus',
        'ordereventtype',
        'historyaction',
        'paymentorderstatus',
        'membershiprole',
    ):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
